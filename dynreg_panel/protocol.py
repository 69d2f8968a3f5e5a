"""
Endpoint Registration Protocol
==============================

Bounded Context: Touchpanel endpoint contract

The provisioner never talks to a touchpanel driver directly. It only needs:

    construct -> register -> (on success) indexed item lists

    factory(panel_type, panel_id, label) -> TouchpanelEndpoint
    endpoint.register() -> bool
    endpoint.item_list(list_id) -> ItemListSurface
    surface.set_count(n) / surface.set_icon(slot, icon) / surface.set_text(slot, text)

Implementations:
- dynreg_panel.simulated: in-memory bus (tests, dry runs)
- dynreg_panel.bus: MQTT registration handshake
"""

from typing import Callable, FrozenSet, Protocol, runtime_checkable

# Item-count and icon registers are 16 bits wide on the panel side
MAX_ITEM_COUNT = 0xFFFF
MAX_ICON = 0xFFFF

# Smart object ids of the two item lists on the panel project
SOURCE_LIST_ID = 1
DESTINATION_LIST_ID = 2

SUPPORTED_PANEL_TYPES: FrozenSet[str] = frozenset({
    "TSW-560",
    "TSW-570",
    "TSW-760",
    "TSW-770",
    "TSW-1060",
    "TSW-1070",
    "TS-770",
    "TS-1070",
    "TSS-770",
    "TSS-1070",
    "XPanel",
})


def check_uint16(value: int, name: str) -> int:
    """
    Validate that a value fits a 16-bit register.

    Raises:
        ValueError: If value is not an int in [0, 65535]
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    if not 0 <= value <= 0xFFFF:
        raise ValueError(f"{name} must be in [0, 65535], got {value}")
    return value


@runtime_checkable
class ItemListSurface(Protocol):
    """Indexed item list exposed by a registered panel."""

    def set_count(self, count: int) -> None:
        ...

    def set_icon(self, slot: int, icon: int) -> None:
        """Set the icon register of a 1-based slot."""
        ...

    def set_text(self, slot: int, text: str) -> None:
        """Set the label text of a 1-based slot."""
        ...


@runtime_checkable
class TouchpanelEndpoint(Protocol):
    """Live handle for one touchpanel on the bus."""

    panel_type: str
    panel_id: int
    label: str

    @property
    def is_registered(self) -> bool:
        ...

    def register(self) -> bool:
        """Run the registration handshake. Returns True on success."""
        ...

    def unregister(self) -> None:
        ...

    def item_list(self, list_id: int) -> ItemListSurface:
        ...


# Construct(type, id, label). Never fails; registration is a separate step.
EndpointFactory = Callable[[str, int, str], TouchpanelEndpoint]
