"""
MQTTControlPlane - runtime commands for the room control processor

Bounded Context: Command reception + status replies
Responsibilities:
  - One MQTT session for commands (subscribe) and status (publish, retained)
  - Decode JSON commands and hand them to the CommandRegistry
  - Correlate replies: a command carrying "request_id" gets that id echoed
    in every status published while its handler runs
  - Announce liveness ("connected", "disconnected", last-will "offline")

Status message:
    {"status": "running", "timestamp": "...", "client_id": "control_room_01",
     "request_id": "3f2c...", ...details}

Rejected commands (unknown name, bad JSON) are answered with
status "rejected" and an "error" field, so the CLI never waits in vain.

Threading:
  - paho network thread runs _on_connect / _on_message and every handler
  - request_id is kept in a threading.local, so statuses published from
    other threads (e.g. the Reprovision worker) are never mislabelled
"""

import json
import logging
import threading
from datetime import datetime
from typing import Any, Dict, Optional

import paho.mqtt.client as mqtt

from .registry import CommandRegistry, CommandNotAvailableError

logger = logging.getLogger(__name__)


class MQTTControlPlane:
    """
    Control plane of one room processor.

    Example:
        control_plane = MQTTControlPlane(
            broker_host="localhost",
            broker_port=1883,
            command_topic="dynreg/control/room_01/commands",
            status_topic="dynreg/control/room_01/status",
            client_id="control_room_01"
        )
        control_plane.command_registry.register('provision', handler, "Re-run provisioning")
        control_plane.connect(timeout=5.0)
    """

    def __init__(
        self,
        broker_host: str,
        broker_port: int,
        command_topic: str,
        status_topic: str,
        client_id: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
    ):
        self.broker_host = broker_host
        self.broker_port = broker_port
        self.command_topic = command_topic
        self.status_topic = status_topic
        self.client_id = client_id

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

        # Broker publishes this for us if the processor dies without disconnect()
        self.client.will_set(
            self.status_topic,
            json.dumps({"status": "offline", "client_id": client_id}),
            qos=1,
            retain=True,
        )

        self.command_registry = CommandRegistry()

        self._connected = threading.Event()
        self._running = False
        self._request = threading.local()

    # ===== Lifecycle =====

    def connect(self, timeout: float = 5.0) -> bool:
        """
        Open the session and wait for the broker's CONNACK.

        Returns:
            True if connected within timeout
        """
        logger.info(f"🔌 Control plane -> {self.broker_host}:{self.broker_port}")
        try:
            self.client.connect(self.broker_host, self.broker_port, keepalive=60)
        except Exception as e:
            logger.error(f"❌ Control plane cannot reach broker: {e}")
            return False

        self.client.loop_start()
        self._running = True

        if not self._connected.wait(timeout=timeout):
            logger.error(f"❌ No CONNACK within {timeout}s, commands disabled")
            return False
        return True

    def disconnect(self) -> None:
        """Announce "disconnected" and close the session. Idempotent."""
        if not self._running:
            return

        self.publish_status("disconnected")
        self.client.loop_stop()
        self.client.disconnect()
        self._running = False
        self._connected.clear()
        logger.info("🔌 Control plane closed")

    def is_connected(self) -> bool:
        return self._connected.is_set()

    # ===== Status =====

    def publish_status(self, status: str, details: Optional[Dict[str, Any]] = None) -> None:
        """
        Publish a retained status message.

        Args:
            status: "connected", "running", "provisioning", "provisioned",
                "rejected", "stopped", ...
            details: Extra fields merged into the message
        """
        message: Dict[str, Any] = {
            "status": status,
            "timestamp": datetime.now().isoformat(),
            "client_id": self.client_id,
        }
        request_id = getattr(self._request, "id", None)
        if request_id is not None:
            message["request_id"] = request_id
        if details:
            message.update(details)

        try:
            self.client.publish(
                self.status_topic,
                json.dumps(message, default=str),
                qos=1,
                retain=True,
            )
        except Exception as e:
            logger.error(f"❌ Status '{status}' not published: {e}")
            return
        logger.debug(f"📤 Status: {status}")

    # ===== MQTT callbacks (network thread) =====

    def _on_connect(self, client, userdata, flags, reason_code, properties):
        if reason_code.is_failure:
            logger.error(f"❌ Control plane refused by broker ({reason_code})")
            self._connected.clear()
            return

        client.subscribe(self.command_topic, qos=1)
        logger.info(f"📥 Listening for commands on {self.command_topic}")
        self.publish_status("connected")
        self._connected.set()

    def _on_disconnect(self, client, userdata, disconnect_flags, reason_code, properties):
        self._connected.clear()
        if reason_code.is_failure:
            logger.warning(f"⚠️ Control plane lost the broker ({reason_code})")

    def _on_message(self, client, userdata, msg):
        command_data = self._decode(msg.payload)
        if command_data is None:
            return

        command = str(command_data.get('command', '')).strip().lower()
        self._request.id = command_data.get('request_id')
        try:
            if not command:
                self.publish_status("rejected", {'error': "missing 'command' field"})
                return
            self._dispatch(command, command_data)
        finally:
            self._request.id = None

    def _decode(self, payload: bytes) -> Optional[Dict[str, Any]]:
        """Parse a command payload; rejects anything but a JSON object."""
        try:
            data = json.loads(payload.decode('utf-8'))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.error(f"❌ Undecodable command {payload!r}: {e}")
            self.publish_status("rejected", {'error': "command is not valid JSON"})
            return None

        if not isinstance(data, dict):
            logger.warning(f"⚠️ Command is not a JSON object: {data!r}")
            self.publish_status("rejected", {'error': "command must be a JSON object"})
            return None
        return data

    def _dispatch(self, command: str, command_data: Dict[str, Any]) -> None:
        logger.info(f"🎯 Command: {command}")
        try:
            self.command_registry.execute(command, command_data)
        except CommandNotAvailableError as e:
            logger.warning(f"⚠️ {e}")
            self.publish_status("rejected", {
                'error': str(e),
                'available_commands': sorted(self.command_registry.available_commands),
            })
        except Exception as e:
            logger.error(f"❌ Command '{command}' failed: {e}", exc_info=True)
            self.publish_status("error", {'command': command, 'error': str(e)})
