"""
Structured Logging for dynreg
=============================

Bounded Context: Observability

JSON-structured logging used as the provisioning log sink.

Public API
----------
    LogEvent: Typed event names (enum)
    StructuredLogger: JSON logger implementation
    create_logger: Factory function
    JSONFormatter: JSON-lines formatter (structured and plain records)

Example:
    >>> from dynreg_mqtt.logging import StructuredLogger, LogEvent
    >>> logger = StructuredLogger(component="provisioner")
    >>> logger.info(
    ...     event=LogEvent.PANEL_POPULATED,
    ...     message="Populated 2 sources and 1 destinations",
    ...     metadata={'panel_id': 3, 'sources': 2, 'destinations': 1}
    ... )
"""

from .events import LogEvent
from .structured import JSONFormatter, StructuredLogger, create_logger

__all__ = [
    'LogEvent',
    'StructuredLogger',
    'JSONFormatter',
    'create_logger',
]
