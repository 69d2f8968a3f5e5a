"""
Panel Registry - Thread-safe registered panel management.

This module provides the PanelRegistry class which owns every touchpanel
endpoint that completed registration, keyed by panel id. Each entry is
created once per registration and never shared between panels.

Thread Safety:
- Uses threading.Lock for protecting the panel dict
- snapshot() returns a copy so callers iterate outside the lock
"""

import threading
from dataclasses import dataclass
from typing import Dict, List, Optional

from dynreg_panel.protocol import TouchpanelEndpoint
from dynreg_processor.config import PanelConfig


@dataclass
class RegisteredPanel:
    """Live endpoint for one panel plus the configuration it was registered with."""

    config: PanelConfig
    endpoint: TouchpanelEndpoint

    @property
    def panel_id(self) -> int:
        return self.config.id

    @property
    def label(self) -> str:
        return self.config.label


class PanelRegistry:
    """
    Thread-safe registry of registered touchpanels.

    Usage:
        registry = PanelRegistry()
        registry.add(RegisteredPanel(config=panel_config, endpoint=endpoint))

        entry = registry.get(0x03)
        for panel_id, entry in registry.snapshot().items():
            ...
    """

    def __init__(self):
        """Initialize empty registry."""
        self._panels: Dict[int, RegisteredPanel] = {}
        self._lock = threading.Lock()

    def add(self, panel: RegisteredPanel) -> None:
        """
        Add a registered panel.

        Raises:
            ValueError: If the panel id is already present
        """
        with self._lock:
            if panel.panel_id in self._panels:
                raise ValueError(f"Panel 0x{panel.panel_id:02X} already registered")
            self._panels[panel.panel_id] = panel

    def remove(self, panel_id: int) -> RegisteredPanel:
        """
        Remove and return a panel.

        Raises:
            KeyError: If panel_id does not exist
        """
        with self._lock:
            if panel_id not in self._panels:
                raise KeyError(f"Panel 0x{panel_id:02X} not found")
            return self._panels.pop(panel_id)

    def get(self, panel_id: int) -> Optional[RegisteredPanel]:
        with self._lock:
            return self._panels.get(panel_id)

    def ids(self) -> List[int]:
        with self._lock:
            return list(self._panels)

    def snapshot(self) -> Dict[int, RegisteredPanel]:
        """Copy of the registry contents."""
        with self._lock:
            return dict(self._panels)

    def clear(self) -> None:
        with self._lock:
            self._panels.clear()

    def count(self) -> int:
        with self._lock:
            return len(self._panels)
