"""
One-shot MQTT client used by dynreg-cli.

Two modes:
- send_command(): publish and disconnect (fire-and-forget, QoS 1)
- request(): publish with a fresh request_id and wait for the control
  plane's status reply carrying the same id
"""

import json
import threading
import uuid
from typing import Any, Dict, Optional

import paho.mqtt.client as mqtt


class MQTTCommandClient:
    """Talks to a room processor's control topics."""

    def __init__(
        self,
        broker: str = "localhost",
        port: int = 1883,
        username: Optional[str] = None,
        password: Optional[str] = None
    ):
        self.broker = broker
        self.port = port

        self.client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2)
        if username and password:
            self.client.username_pw_set(username, password)

    def _open(self) -> None:
        try:
            self.client.connect(self.broker, self.port, keepalive=60)
        except OSError as e:
            raise ConnectionError(
                f"Unable to connect to MQTT broker at {self.broker}:{self.port} ({e}). "
                "Is mosquitto running?"
            )

    def _close(self) -> None:
        self.client.disconnect()
        self.client.loop_stop()

    def send_command(self, topic: str, command: Dict[str, Any], qos: int = 1) -> None:
        """
        Publish one command and disconnect.

        Raises:
            ConnectionError: If the broker is unreachable
            ValueError: If the command is not JSON serializable
        """
        payload = _encode(command)
        self._open()
        self.client.loop_start()
        try:
            self.client.publish(topic, payload, qos=qos).wait_for_publish(timeout=5.0)
        finally:
            self._close()

        print(f"✅ Command sent: {command.get('command', 'unknown')}")

    def request(
        self,
        command_topic: str,
        status_topic: str,
        command: Dict[str, Any],
        timeout: float = 5.0,
    ) -> Optional[Dict[str, Any]]:
        """
        Publish a command and wait for its status reply.

        Returns:
            The reply message, or None if none arrived within timeout

        Raises:
            ConnectionError: If the broker is unreachable
            ValueError: If the command is not JSON serializable
        """
        request_id = uuid.uuid4().hex
        payload = _encode({**command, 'request_id': request_id})

        replied = threading.Event()
        reply: Dict[str, Any] = {}

        def on_message(client, userdata, msg):
            # Retained status from earlier requests arrives first and is skipped
            try:
                data = json.loads(msg.payload.decode('utf-8'))
            except (UnicodeDecodeError, json.JSONDecodeError):
                return
            if isinstance(data, dict) and data.get('request_id') == request_id:
                reply.update(data)
                replied.set()

        self.client.on_message = on_message
        self._open()
        self.client.subscribe(status_topic, qos=1)
        self.client.loop_start()
        try:
            self.client.publish(command_topic, payload, qos=1)
            replied.wait(timeout=timeout)
        finally:
            self._close()

        return reply or None


def _encode(command: Dict[str, Any]) -> str:
    try:
        return json.dumps(command)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid command data: {e}")
