"""Tests for the panel bus implementations (simulated and MQTT)."""

import json
import time

import pytest

from dynreg_panel import (
    ItemListSurface,
    MQTTPanelBus,
    SimulatedBus,
    TouchpanelEndpoint,
    check_uint16,
)


# ─── Protocol helpers ────────────────────────────────────────────────────────

@pytest.mark.parametrize("value", [0, 1, 0xFFFF])
def test_check_uint16_accepts_register_range(value):
    assert check_uint16(value, "count") == value


@pytest.mark.parametrize("value", [-1, 0x10000, True, 1.5, "3"])
def test_check_uint16_rejects(value):
    with pytest.raises(ValueError, match="count"):
        check_uint16(value, "count")


def test_endpoints_satisfy_protocol(fake_mqtt):
    sim = SimulatedBus().create_endpoint("TSW-770", 3, "Wall")
    mqtt_panel = MQTTPanelBus("localhost", 1883, "dynreg/panels", "test").create_endpoint("TSW-770", 3, "Wall")

    assert isinstance(sim, TouchpanelEndpoint)
    assert isinstance(mqtt_panel, TouchpanelEndpoint)
    sim.register()
    assert isinstance(sim.item_list(1), ItemListSurface)


# ─── SimulatedBus ────────────────────────────────────────────────────────────

class TestSimulatedBus:
    def test_register_then_populate(self):
        bus = SimulatedBus()
        panel = bus.create_endpoint("TSW-1070", 3, "Lectern")

        assert panel.register() is True
        assert panel.is_registered
        items = panel.item_list(1)
        items.set_count(2)
        items.set_icon(1, 5)
        items.set_text(1, "PC")

        assert items.count == 2
        assert items.icons == {1: 5}
        assert items.texts == {1: "PC"}
        assert bus.registered_ids() == [3]

    def test_item_list_requires_registration(self):
        panel = SimulatedBus().create_endpoint("TSW-1070", 3, "Lectern")
        with pytest.raises(RuntimeError, match="not registered"):
            panel.item_list(1)

    def test_duplicate_id_is_rejected(self):
        bus = SimulatedBus()
        first = bus.create_endpoint("TSW-1070", 3, "Lectern")
        second = bus.create_endpoint("TSW-770", 3, "Impostor")

        assert first.register() is True
        assert second.register() is False
        assert bus.registered_ids() == [3]

    def test_reregistering_same_endpoint_is_allowed(self):
        bus = SimulatedBus()
        panel = bus.create_endpoint("TSW-1070", 3, "Lectern")
        assert panel.register() is True
        assert panel.register() is True

    def test_unsupported_type_is_rejected(self):
        bus = SimulatedBus()
        assert bus.create_endpoint("TPMC-4SM", 3, "Old").register() is False

    def test_any_type_when_unrestricted(self):
        bus = SimulatedBus(supported_types=None)
        assert bus.create_endpoint("Custom-Panel", 3, "Custom").register() is True

    def test_fail_ids(self):
        bus = SimulatedBus(fail_ids={4})
        assert bus.create_endpoint("TSW-770", 4, "Wall").register() is False
        assert bus.create_endpoint("TSW-770", 5, "Wall").register() is True

    def test_unregister_frees_the_id(self):
        bus = SimulatedBus()
        first = bus.create_endpoint("TSW-1070", 3, "Lectern")
        first.register()
        first.unregister()

        assert not first.is_registered
        assert bus.registered_ids() == []
        assert bus.create_endpoint("TSW-1070", 3, "Lectern").register() is True

    @pytest.mark.parametrize("slot", [0, 0x10000])
    def test_slot_range(self, slot):
        panel = SimulatedBus().create_endpoint("TSW-1070", 3, "Lectern")
        panel.register()
        with pytest.raises(ValueError):
            panel.item_list(1).set_icon(slot, 5)

    def test_icon_range(self):
        panel = SimulatedBus().create_endpoint("TSW-1070", 3, "Lectern")
        panel.register()
        with pytest.raises(ValueError, match="icon"):
            panel.item_list(1).set_icon(1, 0x10000)

    def test_endpoints_for(self):
        bus = SimulatedBus()
        a = bus.create_endpoint("TSW-1070", 3, "A")
        bus.create_endpoint("TSW-1070", 4, "B")
        b = bus.create_endpoint("TSW-1070", 3, "A2")
        assert bus.endpoints_for(3) == [a, b]


# ─── MQTTPanelBus ────────────────────────────────────────────────────────────

def make_bus(fake_mqtt, **kwargs):
    kwargs.setdefault("register_timeout", 1.0)
    bus = MQTTPanelBus(
        broker_host="localhost",
        broker_port=1883,
        topic_prefix="dynreg/panels/",
        client_id="dynreg_test",
        **kwargs,
    )
    return bus


def auto_ack(bus, status="ok", reason=None):
    """Answer every registration request immediately."""
    def on_publish(topic, payload):
        if topic.endswith("/register"):
            ack = {"status": status}
            if reason:
                ack["reason"] = reason
            bus.client.deliver(f"{topic}/ack", json.dumps(ack).encode("utf-8"))
    bus.client.on_publish = on_publish


class TestMQTTPanelBus:
    def test_connect_subscribes_to_acks(self, fake_mqtt):
        bus = make_bus(fake_mqtt)

        assert bus.connect(timeout=0.1) is True
        assert bus.is_connected()
        assert bus.client.subscriptions == ["dynreg/panels/+/register/ack"]

    def test_connect_failure(self, fake_mqtt):
        bus = make_bus(fake_mqtt)
        bus.client.connect_succeeds = False

        assert bus.connect(timeout=0.1) is False
        assert not bus.is_connected()

    def test_credentials(self, fake_mqtt):
        bus = make_bus(fake_mqtt, username="user", password="secret")
        assert bus.client.credentials == ("user", "secret")

    def test_register_before_connect(self, fake_mqtt):
        bus = make_bus(fake_mqtt)
        panel = bus.create_endpoint("TSW-1070", 3, "Lectern")

        assert panel.register() is False
        assert bus.client.published == []

    def test_acknowledged_registration(self, fake_mqtt):
        bus = make_bus(fake_mqtt)
        bus.connect(timeout=0.1)
        auto_ack(bus)
        panel = bus.create_endpoint("TSW-1070", 0x0A, "Tech Desk")

        assert panel.register() is True
        assert panel.is_registered

        request = bus.client.published[0]
        assert request.topic == "dynreg/panels/0A/register"
        body = json.loads(request.payload)
        assert body["type"] == "TSW-1070"
        assert body["label"] == "Tech Desk"
        assert body["client_id"] == "dynreg_test"

    def test_rejected_registration(self, fake_mqtt):
        bus = make_bus(fake_mqtt)
        bus.connect(timeout=0.1)
        auto_ack(bus, status="rejected", reason="unknown panel")

        panel = bus.create_endpoint("TSW-1070", 3, "Lectern")
        assert panel.register() is False
        assert not panel.is_registered

    def test_registration_times_out(self, fake_mqtt):
        bus = make_bus(fake_mqtt, register_timeout=0.05)
        bus.connect(timeout=0.1)

        panel = bus.create_endpoint("TSW-1070", 3, "Lectern")
        assert panel.register() is False
        assert bus._pending == {}

    def test_publish_failure(self, fake_mqtt):
        bus = make_bus(fake_mqtt)
        bus.connect(timeout=0.1)
        bus.client.publish_rc = 4

        assert bus.create_endpoint("TSW-1070", 3, "Lectern").register() is False

    def test_duplicate_id_on_bus(self, fake_mqtt):
        bus = make_bus(fake_mqtt)
        bus.connect(timeout=0.1)
        auto_ack(bus)

        assert bus.create_endpoint("TSW-1070", 3, "Lectern").register() is True
        assert bus.create_endpoint("TSW-770", 3, "Impostor").register() is False
        assert len(bus.client.published) == 1

    def test_register_writes_are_retained(self, fake_mqtt):
        bus = make_bus(fake_mqtt)
        bus.connect(timeout=0.1)
        auto_ack(bus)
        panel = bus.create_endpoint("TSW-1070", 3, "Lectern")
        panel.register()

        items = panel.item_list(2)
        items.set_count(1)
        items.set_icon(1, 9)
        items.set_text(1, "Display")

        writes = bus.client.published[1:]
        assert [w.topic for w in writes] == [
            "dynreg/panels/03/lists/2/count",
            "dynreg/panels/03/lists/2/items/1/icon",
            "dynreg/panels/03/lists/2/items/1/text",
        ]
        assert [json.loads(w.payload)["value"] for w in writes] == [1, 9, "Display"]
        assert all(w.retain for w in writes)

    def test_register_write_failure_raises(self, fake_mqtt):
        bus = make_bus(fake_mqtt)
        bus.connect(timeout=0.1)
        auto_ack(bus)
        panel = bus.create_endpoint("TSW-1070", 3, "Lectern")
        panel.register()
        bus.client.publish_rc = 4

        with pytest.raises(ConnectionError):
            panel.item_list(1).set_count(3)

    def test_unregister(self, fake_mqtt):
        bus = make_bus(fake_mqtt)
        bus.connect(timeout=0.1)
        auto_ack(bus)
        panel = bus.create_endpoint("TSW-1070", 3, "Lectern")
        panel.register()

        panel.unregister()

        assert not panel.is_registered
        assert bus.client.topics()[-1] == "dynreg/panels/03/unregister"
        assert bus.create_endpoint("TSW-1070", 3, "Lectern").register() is True

    def test_malformed_and_unrelated_acks_are_ignored(self, fake_mqtt):
        bus = make_bus(fake_mqtt)
        bus.connect(timeout=0.1)

        bus.client.deliver("dynreg/panels/ZZ/register/ack", b'{"status": "ok"}')
        bus.client.deliver("dynreg/panels/03/register/ack", b"not json")
        bus.client.deliver("dynreg/panels/03/register/ack", b'{"status": "ok"}')
        bus.client.deliver("dynreg/panels/03/something", b"{}")

        assert bus._pending == {}

    @pytest.mark.parametrize("ack", [b'"ok"', b"[1]", b"not json", b"\xff\xfe"])
    def test_malformed_ack_rejects_pending_registration(self, fake_mqtt, ack):
        bus = make_bus(fake_mqtt, register_timeout=5.0)
        bus.connect(timeout=0.1)

        def on_publish(topic, payload):
            if topic.endswith("/register"):
                bus.client.deliver(f"{topic}/ack", ack)
        bus.client.on_publish = on_publish

        started = time.monotonic()
        assert bus.create_endpoint("TSW-1070", 3, "Lectern").register() is False
        assert time.monotonic() - started < 1.0
        assert bus._pending == {}

        auto_ack(bus)
        assert bus.create_endpoint("TSW-1070", 3, "Lectern").register() is True

    def test_disconnect(self, fake_mqtt):
        bus = make_bus(fake_mqtt)
        bus.connect(timeout=0.1)

        bus.disconnect()
        bus.disconnect()

        assert not bus.is_connected()
