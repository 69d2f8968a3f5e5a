"""
MQTTPanelBus - Touchpanel registration over MQTT

Bounded Context: Panel bus connection + registration handshake
Responsibilities:
  - MQTT connection lifecycle (connect, disconnect)
  - Registration handshake (request + acknowledgement with timeout)
  - Item list register writes (count, icon, text)

Topic layout (id rendered as two hex digits, e.g. "03"):
  {prefix}/{id}/register                      request   {type, label, client_id, timestamp}
  {prefix}/{id}/register/ack                  response  {status: "ok"|"rejected", reason}
  {prefix}/{id}/unregister                    request   {client_id, timestamp}
  {prefix}/{id}/lists/{list}/count            retained  {value}
  {prefix}/{id}/lists/{list}/items/{slot}/icon retained {value}
  {prefix}/{id}/lists/{list}/items/{slot}/text retained {value}

Threading:
  - MQTT client runs own background thread (loop_start/loop_stop)
  - register() blocks the calling thread on an Event until the ack
    arrives or register_timeout expires
  - _on_message runs in MQTT thread and only sets Events
"""

import json
import logging
import threading
from datetime import datetime
from typing import Dict, Optional

import paho.mqtt.client as mqtt

from .protocol import check_uint16

logger = logging.getLogger(__name__)


class _PendingAck:
    """Registration request waiting for its acknowledgement."""

    def __init__(self):
        self.event = threading.Event()
        self.status: Optional[str] = None
        self.reason: Optional[str] = None


class MQTTItemList:
    """Item list surface that writes registers as retained MQTT messages."""

    def __init__(self, panel: "MQTTTouchpanel", list_id: int):
        self.panel = panel
        self.list_id = list_id

    def _topic(self, suffix: str) -> str:
        return self.panel.bus.panel_topic(self.panel.panel_id, f"lists/{self.list_id}/{suffix}")

    def set_count(self, count: int) -> None:
        check_uint16(count, "count")
        self.panel.bus.write_register(self._topic("count"), count)

    def set_icon(self, slot: int, icon: int) -> None:
        check_uint16(slot, "slot")
        check_uint16(icon, "icon")
        self.panel.bus.write_register(self._topic(f"items/{slot}/icon"), icon)

    def set_text(self, slot: int, text: str) -> None:
        check_uint16(slot, "slot")
        self.panel.bus.write_register(self._topic(f"items/{slot}/text"), text)


class MQTTTouchpanel:
    """Touchpanel endpoint reachable through an MQTTPanelBus."""

    def __init__(self, bus: "MQTTPanelBus", panel_type: str, panel_id: int, label: str):
        self.bus = bus
        self.panel_type = panel_type
        self.panel_id = panel_id
        self.label = label
        self._lists: Dict[int, MQTTItemList] = {}
        self._registered = False

    @property
    def is_registered(self) -> bool:
        return self._registered

    def register(self) -> bool:
        self._registered = self.bus.request_registration(self)
        return self._registered

    def unregister(self) -> None:
        if self._registered:
            self.bus.request_unregistration(self)
            self._registered = False

    def item_list(self, list_id: int) -> MQTTItemList:
        if not self._registered:
            raise RuntimeError(
                f"Panel {self.panel_id:02X} is not registered, item lists unavailable"
            )
        if list_id not in self._lists:
            self._lists[list_id] = MQTTItemList(self, list_id)
        return self._lists[list_id]


class MQTTPanelBus:
    """
    Shared MQTT connection for every touchpanel of the processor.

    Example:
        bus = MQTTPanelBus(
            broker_host="localhost",
            broker_port=1883,
            topic_prefix="dynreg/panels",
            client_id="dynreg_room_01",
            register_timeout=10.0,
        )
        if bus.connect(timeout=5.0):
            provisioner = PanelProvisioner(bus.create_endpoint, logger)
    """

    def __init__(
        self,
        broker_host: str,
        broker_port: int,
        topic_prefix: str,
        client_id: str,
        register_timeout: float = 10.0,
        qos: int = 1,
        username: Optional[str] = None,
        password: Optional[str] = None,
    ):
        """
        Args:
            broker_host: MQTT broker hostname
            broker_port: MQTT broker port (typically 1883)
            topic_prefix: Root topic of the panel bus
            client_id: MQTT client identifier
            register_timeout: Seconds to wait for a registration ack
            qos: QoS for registration requests and register writes
            username: Optional MQTT authentication username
            password: Optional MQTT authentication password
        """
        self.broker_host = broker_host
        self.broker_port = broker_port
        self.topic_prefix = topic_prefix.rstrip("/")
        self.client_id = client_id
        self.register_timeout = register_timeout
        self.qos = qos

        self.client = mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            client_id=client_id,
            protocol=mqtt.MQTTv311,
        )
        self.client.on_connect = self._on_connect
        self.client.on_message = self._on_message
        self.client.on_disconnect = self._on_disconnect

        if username and password:
            self.client.username_pw_set(username, password)

        self._connected = threading.Event()
        self._running = False

        self._lock = threading.Lock()
        self._pending: Dict[int, _PendingAck] = {}
        self._registered: Dict[int, MQTTTouchpanel] = {}

    # ===== Topics =====

    def panel_topic(self, panel_id: int, suffix: str) -> str:
        return f"{self.topic_prefix}/{panel_id:02X}/{suffix}"

    @property
    def ack_subscription(self) -> str:
        return f"{self.topic_prefix}/+/register/ack"

    # ===== Lifecycle =====

    def connect(self, timeout: float = 5.0) -> bool:
        """
        Connect to MQTT broker with timeout.

        Returns:
            True if connected successfully, False otherwise
        """
        try:
            logger.info(f"🔌 Connecting panel bus to {self.broker_host}:{self.broker_port}")
            self.client.connect(self.broker_host, self.broker_port, keepalive=60)
            self.client.loop_start()
            self._running = True

            if self._connected.wait(timeout=timeout):
                logger.info("✅ Panel bus connected")
                return True
            logger.error(f"❌ Panel bus connection timeout after {timeout}s")
            return False

        except Exception as e:
            logger.error(f"❌ Error connecting panel bus: {e}")
            return False

    def disconnect(self) -> None:
        """Disconnect from MQTT broker. Safe to call multiple times."""
        if self._running:
            logger.info("🔌 Disconnecting panel bus")
            self.client.loop_stop()
            self.client.disconnect()
            self._running = False
            self._connected.clear()

    def is_connected(self) -> bool:
        return self._connected.is_set()

    def create_endpoint(self, panel_type: str, panel_id: int, label: str) -> MQTTTouchpanel:
        return MQTTTouchpanel(self, panel_type, panel_id, label)

    # ===== Registration handshake =====

    def request_registration(self, panel: MQTTTouchpanel) -> bool:
        """
        Publish a registration request and wait for the acknowledgement.

        Returns:
            True if the panel acknowledged with status "ok"
        """
        if not self._connected.is_set():
            logger.warning(f"⚠️ Panel bus not connected, cannot register {panel.panel_id:02X}")
            return False

        with self._lock:
            owner = self._registered.get(panel.panel_id)
            if owner is not None and owner is not panel:
                logger.warning(f"⚠️ Panel id {panel.panel_id:02X} already registered on this bus")
                return False
            if panel.panel_id in self._pending:
                logger.warning(f"⚠️ Registration for {panel.panel_id:02X} already in progress")
                return False
            waiter = _PendingAck()
            self._pending[panel.panel_id] = waiter

        try:
            request = {
                "type": panel.panel_type,
                "label": panel.label,
                "client_id": self.client_id,
                "timestamp": datetime.now().isoformat(),
            }
            result = self.client.publish(
                self.panel_topic(panel.panel_id, "register"),
                json.dumps(request),
                qos=self.qos,
            )
            if result.rc != mqtt.MQTT_ERR_SUCCESS:
                logger.error(f"❌ Registration request for {panel.panel_id:02X} not sent (rc={result.rc})")
                return False

            if not waiter.event.wait(timeout=self.register_timeout):
                logger.warning(
                    f"⚠️ No registration ack from {panel.panel_id:02X} after {self.register_timeout}s"
                )
                return False

            if waiter.status != "ok":
                logger.warning(
                    f"⚠️ Registration of {panel.panel_id:02X} rejected: {waiter.reason or waiter.status}"
                )
                return False

            with self._lock:
                self._registered[panel.panel_id] = panel
            return True

        finally:
            with self._lock:
                self._pending.pop(panel.panel_id, None)

    def request_unregistration(self, panel: MQTTTouchpanel) -> None:
        with self._lock:
            if self._registered.get(panel.panel_id) is panel:
                del self._registered[panel.panel_id]

        message = {"client_id": self.client_id, "timestamp": datetime.now().isoformat()}
        try:
            self.client.publish(
                self.panel_topic(panel.panel_id, "unregister"),
                json.dumps(message),
                qos=self.qos,
            )
        except Exception as e:
            logger.error(f"❌ Error publishing unregister for {panel.panel_id:02X}: {e}")

    def write_register(self, topic: str, value) -> None:
        """
        Publish a retained register value.

        Raises:
            ConnectionError: If the broker did not accept the message
        """
        result = self.client.publish(topic, json.dumps({"value": value}), qos=self.qos, retain=True)
        if result.rc != mqtt.MQTT_ERR_SUCCESS:
            raise ConnectionError(f"Register write to {topic} failed (rc={result.rc})")

    # ===== MQTT Callbacks (run in MQTT thread) =====

    def _on_connect(self, client, userdata, flags, reason_code, properties):
        if reason_code.is_failure:
            logger.error(f"❌ Panel bus connection failed ({reason_code})")
            self._connected.clear()
            return

        client.subscribe(self.ack_subscription, qos=1)
        logger.info(f"📥 Subscribed to: {self.ack_subscription} (QoS 1)")
        self._connected.set()

    def _on_disconnect(self, client, userdata, disconnect_flags, reason_code, properties):
        if reason_code.is_failure:
            logger.warning(f"⚠️ Unexpected panel bus disconnection ({reason_code})")
        else:
            logger.info("✅ Panel bus disconnected")
        self._connected.clear()

    def _on_message(self, client, userdata, msg):
        """Route registration acks to the waiting request."""
        relative = msg.topic[len(self.topic_prefix) + 1:]
        parts = relative.split("/")
        if len(parts) != 3 or parts[1:] != ["register", "ack"]:
            logger.debug(f"Ignoring message on {msg.topic}")
            return

        try:
            panel_id = int(parts[0], 16)
        except ValueError:
            logger.error(f"❌ Registration ack on {msg.topic} has no panel id")
            return

        with self._lock:
            waiter = self._pending.get(panel_id)
        if waiter is None:
            logger.debug(f"Unsolicited registration ack for {panel_id:02X}")
            return

        try:
            payload = json.loads(msg.payload.decode("utf-8"))
        except (ValueError, UnicodeDecodeError) as e:
            payload = e
        if not isinstance(payload, dict):
            # Fail the waiting register() now instead of letting it time out
            logger.error(f"❌ Malformed registration ack on {msg.topic}: {payload!r}")
            waiter.status = "malformed"
            waiter.reason = "ack is not a JSON object"
            waiter.event.set()
            return

        waiter.status = str(payload.get("status", "")).lower()
        waiter.reason = payload.get("reason")
        waiter.event.set()
