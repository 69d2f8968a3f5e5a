"""
Structured Log Event Types
==========================

Bounded Context: Observability Event Taxonomy

This module defines typed event names for structured logging.

Design:
- Enum-based (prevents typos, enables autocomplete)
- Hierarchical naming (area.action)
- Searchable in log aggregators (Elasticsearch, CloudWatch Insights)

Event Naming Convention:
    <area>.<action>

    area: provisioning, panel, list, config, mqtt, error
    action: started, registered, failed, overflow, ...

Example Log Query (CloudWatch Insights):
    fields @timestamp, event, message, metadata.panel_id
    | filter event = "panel.registration_failed"
    | stats count() by metadata.panel_id
"""

from enum import Enum


class LogEvent(str, Enum):
    """
    Typed log event names for structured logging.

    Categories:
    - provisioning.*: One provisioning run over a room configuration
    - panel.*: Per-panel registration and population
    - list.*: Item list (sources / destinations) population
    - config.*: Room configuration loading
    - mqtt.*: MQTT broker interactions
    - error.*: Error conditions
    """

    # ========== Provisioning Events ==========
    PROVISIONING_STARTED = "provisioning.started"
    """Provisioning run started."""

    PROVISIONING_SKIPPED = "provisioning.skipped"
    """No panels declared, nothing to provision."""

    PROVISIONING_COMPLETED = "provisioning.completed"
    """Provisioning run finished (all panels processed)."""

    # ========== Panel Events ==========
    PANEL_REGISTERED = "panel.registered"
    """Panel registration handshake succeeded."""

    PANEL_REUSED = "panel.reused"
    """Panel was already registered by a previous run."""

    PANEL_REGISTRATION_FAILED = "panel.registration_failed"
    """Panel registration handshake failed or timed out."""

    PANEL_POPULATED = "panel.populated"
    """Panel item lists populated."""

    PANEL_POPULATION_FAILED = "panel.population_failed"
    """Panel item list population raised an error."""

    PANEL_UNREGISTERED = "panel.unregistered"
    """Panel unregistered (shutdown or removed from configuration)."""

    # ========== Item List Events ==========
    LIST_COUNT_OVERFLOW = "list.count_overflow"
    """Item list longer than the count register can address."""

    # ========== Config Events ==========
    CONFIG_LOADED = "config.loaded"
    """Room configuration loaded and validated."""

    CONFIG_LOAD_FAILED = "config.load_failed"
    """Room configuration could not be read."""

    # ========== MQTT Events ==========
    MQTT_CONNECTED = "mqtt.connected"
    """MQTT broker connection established."""

    MQTT_DISCONNECTED = "mqtt.disconnected"
    """MQTT broker connection lost."""

    MQTT_PUBLISH_SUCCESS = "mqtt.publish.success"
    """Message successfully published to broker."""

    MQTT_PUBLISH_DEFERRED = "mqtt.publish.deferred"
    """Message held for delivery on reconnect."""

    # ========== Error Events ==========
    SERIALIZATION_ERROR = "error.serialization"
    """Failed to serialize message to JSON."""

    MQTT_CONNECTION_ERROR = "error.mqtt_connection"
    """Failed to connect to MQTT broker."""

    MQTT_PUBLISH_ERROR = "error.mqtt_publish"
    """Error during message publication."""


# Event categories for filtering
PROVISIONING_EVENTS = {
    LogEvent.PROVISIONING_STARTED,
    LogEvent.PROVISIONING_SKIPPED,
    LogEvent.PROVISIONING_COMPLETED,
}

PANEL_EVENTS = {
    LogEvent.PANEL_REGISTERED,
    LogEvent.PANEL_REUSED,
    LogEvent.PANEL_REGISTRATION_FAILED,
    LogEvent.PANEL_POPULATED,
    LogEvent.PANEL_POPULATION_FAILED,
    LogEvent.PANEL_UNREGISTERED,
    LogEvent.LIST_COUNT_OVERFLOW,
}

MQTT_EVENTS = {
    LogEvent.MQTT_CONNECTED,
    LogEvent.MQTT_DISCONNECTED,
    LogEvent.MQTT_PUBLISH_SUCCESS,
    LogEvent.MQTT_PUBLISH_DEFERRED,
}

ERROR_EVENTS = {
    LogEvent.CONFIG_LOAD_FAILED,
    LogEvent.PANEL_REGISTRATION_FAILED,
    LogEvent.PANEL_POPULATION_FAILED,
    LogEvent.LIST_COUNT_OVERFLOW,
    LogEvent.SERIALIZATION_ERROR,
    LogEvent.MQTT_CONNECTION_ERROR,
    LogEvent.MQTT_PUBLISH_ERROR,
}
