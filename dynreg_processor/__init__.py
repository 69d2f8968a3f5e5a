"""
dynreg_processor - Dynamic touchpanel registration for room control processors

This package turns a declarative room configuration (touchpanels, sources,
destinations) into registered touchpanels whose item lists are populated
with the configured icons.

Architecture:
- RoomConfig: Configuration management (YAML / JSON)
- PanelProvisioner: Main orchestrator (register + populate, per panel)
- PanelRegistry: Thread-safe registered panel ownership
- ProvisioningReport: One outcome per panel, in configuration order
- ControlSystemService: Host bootstrap (background setup, control commands)

Threading Model:
- SystemSetup Thread (config load + provisioning, off the startup path)
- Register worker threads (one per registration, bounded by timeout)
- Control Plane Thread (paho-mqtt internal for commands)
"""

from dynreg_processor.config import BusConfig, ItemConfig, PanelConfig, RoomConfig
from dynreg_processor.report import OutcomeStatus, PanelOutcome, ProvisioningReport
from dynreg_processor.registry import PanelRegistry, RegisteredPanel
from dynreg_processor.provisioning import (
    PanelProvisioner,
    RegistrationError,
    RegistrationTimeoutError,
)
from dynreg_processor.service import ControlSystemService

__all__ = [
    "BusConfig",
    "ItemConfig",
    "PanelConfig",
    "RoomConfig",
    "OutcomeStatus",
    "PanelOutcome",
    "ProvisioningReport",
    "PanelRegistry",
    "RegisteredPanel",
    "PanelProvisioner",
    "RegistrationError",
    "RegistrationTimeoutError",
    "ControlSystemService",
]
