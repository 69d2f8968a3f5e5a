"""
dynreg MQTT Communication Package
=================================

Bounded Context: Observability and diagnostics messaging

Architecture:
- logging/: Structured JSON logging (the provisioning log sink)
- schemas/: Immutable message structures
- publishers/: Message producers (ReportPublisher)

Public API
----------
Schemas:
    Timestamp, ProvisioningReportMessage

Publishers:
    BasePublisher, ReportPublisher

Logging:
    LogEvent, StructuredLogger, create_logger
"""

__version__ = "1.0.0"

from .logging import (
    LogEvent,
    StructuredLogger,
    create_logger,
)

from .schemas import (
    Timestamp,
    ProvisioningReportMessage,
)

from .publishers import (
    BasePublisher,
    ReportPublisher,
)

__all__ = [
    '__version__',
    'LogEvent',
    'StructuredLogger',
    'create_logger',
    'Timestamp',
    'ProvisioningReportMessage',
    'BasePublisher',
    'ReportPublisher',
]
