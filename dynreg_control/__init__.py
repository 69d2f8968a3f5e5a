"""
dynreg_control - Control Plane for the room control processor

Bounded Context: MQTT-based command-and-control
Responsibilities:
  - MQTT connection management (Control Plane)
  - Command registration and validation
  - Command execution delegation

Commands registered by ControlSystemService:
  - provision: reload the room configuration and re-run provisioning
  - list_panels: publish the registered panels in the status message
  - get_report: publish the last provisioning report
"""

from .registry import CommandRegistry, CommandNotAvailableError
from .plane import MQTTControlPlane

__all__ = [
    "CommandRegistry",
    "CommandNotAvailableError",
    "MQTTControlPlane",
]
