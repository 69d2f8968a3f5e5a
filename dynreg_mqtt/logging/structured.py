"""
Structured JSON Logger
=====================

Bounded Context: Observability Infrastructure

The provisioning log sink. Every entry is a (severity, message) pair plus a
typed event and optional metadata, rendered as one JSON line.

The entry travels on the LogRecord (``record.structured``) and is rendered
by JSONFormatter, so the usual logging plumbing (levels, handlers, caplog)
applies unchanged. JSONFormatter also renders plain ``logging`` records,
which lets the entry point switch the whole process to JSON output.

Example:
    >>> logger = StructuredLogger(component="provisioner").bind(system_id="room_01")
    >>> logger.info(
    ...     event=LogEvent.PANEL_REGISTERED,
    ...     message="Panel 'Lectern' registered",
    ...     metadata={'panel_id': 3}
    ... )

Output:
    {"timestamp": "2025-10-24T15:30:45.123456+00:00", "level": "INFO",
     "component": "provisioner", "event": "panel.registered",
     "message": "Panel 'Lectern' registered",
     "metadata": {"system_id": "room_01", "panel_id": 3}}
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .events import LogEvent


class StructuredLogger:
    """
    Typed-event JSON logger for one component.

    Loggers made by bind() share the underlying ``logging.Logger`` and add
    their context to the metadata of every entry.
    """

    def __init__(
        self,
        component: str,
        level: int = logging.INFO,
        logger_name: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        """
        Args:
            component: Component identifier (e.g., "provisioner")
            level: Logging level (default: INFO)
            logger_name: Logger name (default: dynreg_mqtt.<component>)
            context: Metadata merged into every entry
        """
        self.component = component
        self.context: Dict[str, Any] = dict(context or {})
        self.logger = logging.getLogger(logger_name or f"dynreg_mqtt.{component}")
        self.logger.setLevel(level)

        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(JSONFormatter())
            self.logger.addHandler(handler)

    def bind(self, **context: Any) -> "StructuredLogger":
        """Child logger whose entries always carry ``context``."""
        return StructuredLogger(
            component=self.component,
            level=self.logger.level,
            logger_name=self.logger.name,
            context={**self.context, **context},
        )

    def entry(
        self,
        level: str,
        event: LogEvent,
        message: str,
        metadata: Optional[Dict[str, Any]] = None,
        exc_info: Optional[BaseException] = None,
    ) -> Dict[str, Any]:
        """Build the JSON-ready entry (without emitting it)."""
        entry: Dict[str, Any] = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': level,
            'component': self.component,
            'event': event.value,
            'message': message,
        }

        merged = {**self.context, **(metadata or {})}
        if merged:
            entry['metadata'] = merged

        if exc_info is not None:
            entry['exception'] = {
                'type': type(exc_info).__name__,
                'message': str(exc_info),
            }
        return entry

    def _emit(self, level: str, event, message, metadata=None, exc_info=None) -> None:
        levelno = getattr(logging, level)
        if not self.logger.isEnabledFor(levelno):
            return
        self.logger.log(
            levelno,
            message,
            extra={'structured': self.entry(level, event, message, metadata, exc_info)},
        )

    def info(self, event: LogEvent, message: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        self._emit('INFO', event, message, metadata)

    def warning(self, event: LogEvent, message: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        self._emit('WARNING', event, message, metadata)

    def error(
        self,
        event: LogEvent,
        message: str,
        metadata: Optional[Dict[str, Any]] = None,
        exc_info: Optional[BaseException] = None
    ) -> None:
        """
        Log at ERROR severity.

        Args:
            event: Typed log event
            message: Human-readable message (names the panel for per-panel failures)
            metadata: Additional context
            exc_info: Exception that caused the error; type and message are
                recorded in the entry's "exception" field

        Example:
            >>> logger.error(
            ...     event=LogEvent.PANEL_REGISTRATION_FAILED,
            ...     message="Panel 'Lectern' failed to register: no response after 10.0s",
            ...     metadata={'panel_id': 3}
            ... )
        """
        self._emit('ERROR', event, message, metadata, exc_info)

    def set_level(self, level: int) -> None:
        self.logger.setLevel(level)


class JSONFormatter(logging.Formatter):
    """
    One JSON object per line.

    Records from StructuredLogger are written as built; plain records get
    the same shape with the logger name as component and no event.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = getattr(record, 'structured', None)
        if entry is None:
            entry = {
                'timestamp': datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
                'level': record.levelname,
                'component': record.name,
                'event': None,
                'message': record.getMessage(),
            }
            if record.exc_info and record.exc_info[1] is not None:
                error = record.exc_info[1]
                entry['exception'] = {'type': type(error).__name__, 'message': str(error)}
        return json.dumps(entry, default=str)


def create_logger(component: str, level: int = logging.INFO) -> StructuredLogger:
    """
    Example:
        >>> logger = create_logger("provisioner", level=logging.DEBUG)
    """
    return StructuredLogger(component=component, level=level)
