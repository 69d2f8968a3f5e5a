"""
dynreg_panel - Touchpanel endpoints

Bounded Context: Endpoint Registration Protocol
Responsibilities:
  - Contract used by the provisioner (construct, register, item lists)
  - In-memory bus for tests and dry runs
  - MQTT bus for the registration handshake with real panels
"""

from .protocol import (
    DESTINATION_LIST_ID,
    MAX_ITEM_COUNT,
    SOURCE_LIST_ID,
    SUPPORTED_PANEL_TYPES,
    EndpointFactory,
    ItemListSurface,
    TouchpanelEndpoint,
    check_uint16,
)
from .simulated import SimulatedBus, SimulatedItemList, SimulatedTouchpanel
from .bus import MQTTPanelBus, MQTTTouchpanel, MQTTItemList

__all__ = [
    "DESTINATION_LIST_ID",
    "MAX_ITEM_COUNT",
    "SOURCE_LIST_ID",
    "SUPPORTED_PANEL_TYPES",
    "EndpointFactory",
    "ItemListSurface",
    "TouchpanelEndpoint",
    "check_uint16",
    "SimulatedBus",
    "SimulatedItemList",
    "SimulatedTouchpanel",
    "MQTTPanelBus",
    "MQTTTouchpanel",
    "MQTTItemList",
]
