"""
Configuration schema for the room control processor.

This module defines the room configuration consumed by the provisioner:
the touchpanels to register, the global source and destination lists shown
on every panel, and the optional MQTT panel bus settings.

Both the YAML layout and the JSON room files (``config.json``) load through
``RoomConfig.from_yaml``; top-level and per-entry keys are case-insensitive.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple
import yaml

MAX_PANEL_ID = 0xFE


@dataclass(frozen=True)
class ItemConfig:
    """One source or destination. Position i is shown in slot i+1."""

    icon: int
    label: str = ""

    def __post_init__(self):
        """Validate item configuration."""
        if isinstance(self.icon, bool) or not isinstance(self.icon, int):
            raise ValueError(f"icon must be an integer, got {self.icon!r}")
        if not 0 <= self.icon <= 0xFFFF:
            raise ValueError(f"icon must be in [0, 65535], got {self.icon}")


@dataclass(frozen=True)
class PanelConfig:
    """Touchpanel declaration (bus address, model and display name)."""

    type: str
    id: int
    label: str = ""

    def __post_init__(self):
        """Validate panel configuration."""
        if not self.type:
            raise ValueError("Panel type cannot be empty")

        if isinstance(self.id, bool) or not isinstance(self.id, int):
            raise ValueError(f"Panel id must be an integer, got {self.id!r}")
        if not 1 <= self.id <= MAX_PANEL_ID:
            raise ValueError(
                f"Panel id must be in [0x01, 0x{MAX_PANEL_ID:02X}], got {self.id}"
            )

        if not self.label:
            # frozen dataclass: bypass __setattr__ for the derived default
            object.__setattr__(self, "label", f"Panel {self.id:02X}")


@dataclass(frozen=True)
class BusConfig:
    """MQTT panel bus configuration."""

    broker: str
    port: int = 1883
    username: Optional[str] = None
    password: Optional[str] = None
    topic_prefix: str = "dynreg/panels"
    register_timeout: float = 10.0
    qos: int = 1

    def __post_init__(self):
        """Validate bus configuration."""
        if not self.broker:
            raise ValueError("bus broker cannot be empty")

        if not 1 <= self.port <= 65535:
            raise ValueError(f"MQTT port must be in [1, 65535], got {self.port}")

        if self.qos not in {0, 1, 2}:
            raise ValueError(f"MQTT QoS must be 0, 1, or 2, got {self.qos}")

        if self.register_timeout <= 0:
            raise ValueError(
                f"register_timeout must be > 0, got {self.register_timeout}"
            )


@dataclass(frozen=True)
class RoomConfig:
    """
    Complete room configuration.

    ``panels`` may be None (section absent) or empty: provisioning is then a
    no-op. Source and destination lists are global and shared by every panel.
    Immutable after construction (frozen dataclass).
    """

    system_id: str = "room_01"
    panels: Optional[Tuple[PanelConfig, ...]] = None
    sources: Tuple[ItemConfig, ...] = ()
    destinations: Tuple[ItemConfig, ...] = ()
    bus_config: Optional[BusConfig] = None
    populate_labels: bool = False
    source_list_id: int = 1
    destination_list_id: int = 2

    def __post_init__(self):
        """Validate room configuration."""
        if not self.system_id:
            raise ValueError("system_id cannot be empty")

        if self.panels is not None:
            seen = set()
            for panel in self.panels:
                if panel.id in seen:
                    raise ValueError(f"Duplicate panel id: 0x{panel.id:02X}")
                seen.add(panel.id)

        if self.source_list_id == self.destination_list_id:
            raise ValueError(
                f"source_list_id and destination_list_id must differ, "
                f"both are {self.source_list_id}"
            )

    @property
    def has_panels(self) -> bool:
        return bool(self.panels)

    @property
    def panel_count(self) -> int:
        return len(self.panels) if self.panels else 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RoomConfig":
        """
        Build configuration from a parsed document.

        Raises:
            ValueError: If a required field is missing or invalid
        """
        if not isinstance(data, dict):
            raise ValueError(f"Room configuration must be a mapping, got {type(data).__name__}")

        data = _lower_keys(data)

        try:
            panels_data = data.get("touchpanels", data.get("panels"))
            panels = None
            if panels_data is not None:
                panels = tuple(
                    PanelConfig(
                        type=p["type"],
                        id=_parse_panel_id(p["id"]),
                        label=p.get("label") or "",
                    )
                    for p in map(_lower_keys, panels_data)
                )

            sources = tuple(_parse_item(s) for s in data.get("sources") or [])
            destinations = tuple(_parse_item(d) for d in data.get("destinations") or [])

            bus_data = data.get("bus")
            bus_config = BusConfig(**_lower_keys(bus_data)) if bus_data else None

        except KeyError as e:
            raise ValueError(f"Missing required field: {e}")
        except TypeError as e:
            raise ValueError(f"Invalid room configuration: {e}")

        return cls(
            system_id=str(data.get("system_id", "room_01")),
            panels=panels,
            sources=sources,
            destinations=destinations,
            bus_config=bus_config,
            populate_labels=bool(data.get("populate_labels", False)),
            source_list_id=int(data.get("source_list_id", 1)),
            destination_list_id=int(data.get("destination_list_id", 2)),
        )

    @classmethod
    def from_yaml(cls, yaml_path: Path) -> "RoomConfig":
        """
        Load configuration from a YAML (or JSON) file.

        Example YAML:
            system_id: "room_01"

            touchpanels:
              - type: "TSW-1070"
                id: 0x03
                label: "Lectern"

            sources:
              - icon: 5
                label: "PC"
              - icon: 7
                label: "Laptop"

            destinations:
              - icon: 9
                label: "Display"

            bus:
              broker: "localhost"
              port: 1883
              register_timeout: 10.0

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If the document is invalid
        """
        yaml_path = Path(yaml_path)
        if not yaml_path.exists():
            raise FileNotFoundError(f"Config file not found: {yaml_path}")

        try:
            with open(yaml_path) as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {yaml_path}: {e}")

        if data is None:
            raise ValueError(f"Config file is empty: {yaml_path}")

        return cls.from_dict(data)


def _lower_keys(data: Dict[str, Any]) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise TypeError(f"expected a mapping, got {type(data).__name__}")
    return {str(k).lower(): v for k, v in data.items()}


def _parse_panel_id(value: Any) -> int:
    """Accept 3, "3" and "0x03"."""
    if isinstance(value, str):
        for base in (0, 10):
            try:
                return int(value, base)
            except ValueError:
                continue
        raise ValueError(f"Invalid panel id: {value!r}")
    return value


def _parse_item(data: Dict[str, Any]) -> ItemConfig:
    data = _lower_keys(data)
    return ItemConfig(icon=data["icon"], label=str(data.get("label") or ""))
