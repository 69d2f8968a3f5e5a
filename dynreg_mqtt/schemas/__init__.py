"""
dynreg MQTT Schemas
===================

Immutable, typed message structures.

Public API
----------
    Timestamp: ISO 8601 timestamp wrapper
    ProvisioningReportMessage: Provisioning report envelope
"""

from .common import Timestamp
from .provisioning import ProvisioningReportMessage, SCHEMA_VERSION

__all__ = [
    'Timestamp',
    'ProvisioningReportMessage',
    'SCHEMA_VERSION',
]
