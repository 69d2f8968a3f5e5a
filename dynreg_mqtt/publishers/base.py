"""
Base MQTT Publisher
===================

Bounded Context: MQTT Infrastructure

Publishers here carry *state*, not streams: each message replaces the
previous one on a retained topic, and only the latest value matters.

Delivery policy:
- connected: publish immediately (QoS 1, retained by default)
- disconnected or broker refused the message: keep the latest message and
  send it as soon as the session (re)connects; an older held message is
  overwritten by a newer one
- not JSON serializable: dropped and logged

Subclasses implement format_message(); see ReportPublisher.
"""

import json
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import paho.mqtt.client as mqtt

from ..logging import LogEvent, StructuredLogger


class BasePublisher(ABC):
    """
    Latest-value MQTT publisher.

    Attributes:
        topic: Topic every message is published to
        qos: Quality of Service for every message
        retain: Whether messages are retained by the broker
        logger: Structured log sink
    """

    def __init__(
        self,
        broker_host: str,
        broker_port: int,
        topic: str,
        client_id: str,
        logger: StructuredLogger,
        username: Optional[str] = None,
        password: Optional[str] = None,
        qos: int = 1,
        retain: bool = True,
    ):
        self.broker_host = broker_host
        self.broker_port = broker_port
        self.topic = topic
        self.client_id = client_id
        self.logger = logger
        self.qos = qos
        self.retain = retain

        self.client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=client_id)
        if username and password:
            self.client.username_pw_set(username, password)
        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect

        self._connected = threading.Event()
        self._lock = threading.Lock()
        self._send_lock = threading.Lock()
        self._pending: Optional[str] = None
        self._published = 0
        self._deferred = 0
        self._last_published: Optional[str] = None

    @property
    def broker(self) -> str:
        return f"{self.broker_host}:{self.broker_port}"

    # ===== Session =====

    def connect(self, timeout: float = 10.0) -> bool:
        """
        Open the session; a held message is flushed once connected.

        Returns:
            True if connected within timeout
        """
        try:
            self.client.connect(self.broker_host, self.broker_port)
        except Exception as e:
            self.logger.error(
                event=LogEvent.MQTT_CONNECTION_ERROR,
                message=f"Broker {self.broker} unreachable",
                metadata={'topic': self.topic},
                exc_info=e
            )
            return False

        self.client.loop_start()
        if self._connected.wait(timeout=timeout):
            return True

        self.logger.error(
            event=LogEvent.MQTT_CONNECTION_ERROR,
            message=f"No CONNACK from {self.broker} within {timeout}s",
            metadata={'topic': self.topic}
        )
        return False

    def disconnect(self) -> None:
        """Close the session. A held message is kept for a later connect()."""
        self.client.loop_stop()
        self.client.disconnect()
        self._connected.clear()

    def is_connected(self) -> bool:
        return self._connected.is_set()

    def _on_connect(self, client, userdata, flags, reason_code, properties) -> None:
        if reason_code.is_failure:
            self.logger.error(
                event=LogEvent.MQTT_CONNECTION_ERROR,
                message=f"Broker {self.broker} refused the session ({reason_code})",
                metadata={'topic': self.topic}
            )
            return

        self.logger.info(
            event=LogEvent.MQTT_CONNECTED,
            message=f"Connected to {self.broker}",
            metadata={'client_id': self.client_id, 'topic': self.topic}
        )

        # publish() blocks until the held message is out
        with self._send_lock:
            with self._lock:
                held, self._pending = self._pending, None
            if held is not None:
                self._send(held)
            self._connected.set()

    def _on_disconnect(self, client, userdata, disconnect_flags, reason_code, properties) -> None:
        self._connected.clear()
        self.logger.warning(
            event=LogEvent.MQTT_DISCONNECTED,
            message=f"Disconnected from {self.broker}",
            metadata={'reason_code': str(reason_code), 'published': self._published}
        )

    # ===== Publishing =====

    @abstractmethod
    def format_message(self, *args, **kwargs) -> Dict[str, Any]:
        """Return a dictionary ready for JSON serialization."""
        raise NotImplementedError("Subclasses must implement format_message()")

    def publish(self, message_data: Dict[str, Any]) -> bool:
        """
        Publish a formatted message, or hold it until the next connect.

        Returns:
            True if handed to the broker now, False if held or dropped
        """
        try:
            payload = json.dumps(message_data)
        except (TypeError, ValueError) as e:
            self.logger.error(
                event=LogEvent.SERIALIZATION_ERROR,
                message="Message dropped: not JSON serializable",
                metadata={'topic': self.topic},
                exc_info=e
            )
            return False

        with self._send_lock:
            if not self._connected.is_set():
                self._hold(payload, "not connected")
                return False
            return self._send(payload)

    def _send(self, payload: str) -> bool:
        try:
            result = self.client.publish(
                topic=self.topic,
                payload=payload,
                qos=self.qos,
                retain=self.retain
            )
        except Exception as e:
            self.logger.error(
                event=LogEvent.MQTT_PUBLISH_ERROR,
                message="Publish raised",
                metadata={'topic': self.topic},
                exc_info=e
            )
            self._hold(payload, "publish raised")
            return False

        if result.rc != mqtt.MQTT_ERR_SUCCESS:
            self._hold(payload, f"rc={result.rc}")
            return False

        with self._lock:
            self._published += 1
            self._last_published = datetime.now(timezone.utc).isoformat()
        self.logger.info(
            event=LogEvent.MQTT_PUBLISH_SUCCESS,
            message=f"Published to {self.topic}",
            metadata={'qos': self.qos, 'retain': self.retain, 'published': self._published}
        )
        return True

    def _hold(self, payload: str, reason: str) -> None:
        with self._lock:
            self._pending = payload
            self._deferred += 1
        self.logger.warning(
            event=LogEvent.MQTT_PUBLISH_DEFERRED,
            message=f"Holding latest message for {self.topic} until reconnect ({reason})",
            metadata={'topic': self.topic}
        )

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                'published': self._published,
                'deferred': self._deferred,
                'pending': self._pending is not None,
                'last_published': self._last_published,
                'connected': self._connected.is_set(),
                'topic': self.topic,
                'broker': self.broker,
            }
