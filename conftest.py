"""Shared fixtures for the dynreg test-suite."""

from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import paho.mqtt.client as mqtt
import pytest

from dynreg_panel.simulated import SimulatedBus
from dynreg_processor.config import ItemConfig, PanelConfig, RoomConfig


class RecordingLogger:
    """Log sink that keeps every (severity, event, message, metadata) entry."""

    def __init__(self):
        self.entries: List[Dict[str, Any]] = []

    def _record(self, level, event, message, metadata=None, exc_info=None):
        self.entries.append({
            'level': level,
            'event': event,
            'message': message,
            'metadata': metadata or {},
            'exc_info': exc_info,
        })

    def info(self, event, message, metadata=None):
        self._record('INFO', event, message, metadata)

    def warning(self, event, message, metadata=None):
        self._record('WARNING', event, message, metadata)

    def error(self, event, message, metadata=None, exc_info=None):
        self._record('ERROR', event, message, metadata, exc_info)

    def at(self, level: str) -> List[Dict[str, Any]]:
        return [e for e in self.entries if e['level'] == level]

    def events(self) -> List[Any]:
        return [e['event'] for e in self.entries]


class FakeMQTTClient:
    """
    Stand-in for paho's Client: connects instantly and records publishes.

    Tests reach the instance through the component's ``client`` attribute.
    """

    def __init__(self, *args, **kwargs):
        self.args = args
        self.kwargs = kwargs
        self.published: List[SimpleNamespace] = []
        self.subscriptions: List[str] = []
        self.publish_rc = mqtt.MQTT_ERR_SUCCESS
        self.connect_succeeds = True
        self.on_connect = None
        self.on_disconnect = None
        self.on_message = None
        self.on_publish = None
        self.credentials: Optional[tuple] = None
        self.will: Optional[SimpleNamespace] = None

    def username_pw_set(self, username, password):
        self.credentials = (username, password)

    def will_set(self, topic, payload=None, qos=0, retain=False):
        self.will = SimpleNamespace(topic=topic, payload=payload, qos=qos, retain=retain)

    def connect(self, host, port=1883, keepalive=60):
        if not self.connect_succeeds:
            raise ConnectionRefusedError("connection refused")
        self.host = host
        self.port = port

    def loop_start(self):
        if self.on_connect:
            self.on_connect(self, None, {}, SimpleNamespace(is_failure=False), None)

    def loop_stop(self):
        pass

    def disconnect(self):
        if self.on_disconnect:
            self.on_disconnect(self, None, {}, SimpleNamespace(is_failure=False), None)

    def subscribe(self, topic, qos=0):
        self.subscriptions.append(topic)

    def publish(self, topic, payload=None, qos=0, retain=False):
        self.published.append(SimpleNamespace(topic=topic, payload=payload, qos=qos, retain=retain))
        if self.on_publish:
            self.on_publish(topic, payload)
        return SimpleNamespace(rc=self.publish_rc, wait_for_publish=lambda timeout=None: None)

    def deliver(self, topic: str, payload: bytes):
        """Simulate an incoming message."""
        self.on_message(self, None, SimpleNamespace(topic=topic, payload=payload))

    def topics(self) -> List[str]:
        return [m.topic for m in self.published]


@pytest.fixture
def fake_mqtt(monkeypatch):
    """Replace paho's Client class for every dynreg module."""
    monkeypatch.setattr(mqtt, "Client", FakeMQTTClient)
    return FakeMQTTClient


@pytest.fixture
def recording_logger():
    return RecordingLogger()


@pytest.fixture
def bus():
    return SimulatedBus()


@pytest.fixture
def lectern_config():
    """One TSW-1070 with two sources and one destination."""
    return RoomConfig(
        panels=(PanelConfig(type="TSW-1070", id=1, label="Panel A"),),
        sources=(ItemConfig(icon=5, label="PC"), ItemConfig(icon=7, label="Laptop")),
        destinations=(ItemConfig(icon=9, label="Display"),),
    )


@pytest.fixture
def room_config():
    """Three panels sharing the same source and destination lists."""
    return RoomConfig(
        panels=(
            PanelConfig(type="TSW-1070", id=0x03, label="Lectern"),
            PanelConfig(type="TSW-770", id=0x04, label="Back Wall"),
            PanelConfig(type="XPanel", id=0x0A, label="Tech Desk"),
        ),
        sources=(
            ItemConfig(icon=5, label="PC"),
            ItemConfig(icon=7, label="Laptop"),
            ItemConfig(icon=12, label="Document Camera"),
        ),
        destinations=(
            ItemConfig(icon=9, label="Display"),
            ItemConfig(icon=11, label="Projector"),
        ),
    )
