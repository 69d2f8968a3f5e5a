"""
Simulated Panel Bus
===================

In-memory stand-in for the touchpanel bus. Used by the test-suite and by
dry runs (``dynreg-cli dry-run``, ``run_control_system.py --simulate``).

Registration rules mirror the real bus:
- an id already registered by another endpoint is rejected (duplicate id)
- an unsupported panel type is rejected
- ids listed in ``fail_ids`` are rejected (bus unavailable for that panel)

Every endpoint keeps the state of its item lists and a journal of calls
so collaborator traffic can be asserted exactly.

Thread Safety:
- SimulatedBus registration table is protected by a lock
- Item list state is written only by the provisioning thread
"""

import threading
import time
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .protocol import SUPPORTED_PANEL_TYPES, check_uint16


class SimulatedItemList:
    """Recorded state of one item list on a simulated panel."""

    def __init__(self, panel: "SimulatedTouchpanel", list_id: int):
        self.panel = panel
        self.list_id = list_id
        self.count: Optional[int] = None
        self.icons: Dict[int, int] = {}
        self.texts: Dict[int, str] = {}

    def _check_slot(self, slot: int) -> None:
        check_uint16(slot, "slot")
        if slot < 1:
            raise ValueError(f"Slots are 1-based, got {slot}")

    def set_count(self, count: int) -> None:
        check_uint16(count, "count")
        self.panel.calls.append(("set_count", (self.list_id, count)))
        self.count = count

    def set_icon(self, slot: int, icon: int) -> None:
        self._check_slot(slot)
        check_uint16(icon, "icon")
        self.panel.calls.append(("set_icon", (self.list_id, slot, icon)))
        self.icons[slot] = icon

    def set_text(self, slot: int, text: str) -> None:
        self._check_slot(slot)
        self.panel.calls.append(("set_text", (self.list_id, slot, text)))
        self.texts[slot] = text


class SimulatedTouchpanel:
    """Touchpanel endpoint living on a SimulatedBus."""

    def __init__(self, bus: "SimulatedBus", panel_type: str, panel_id: int, label: str):
        self.bus = bus
        self.panel_type = panel_type
        self.panel_id = panel_id
        self.label = label
        self.calls: List[Tuple[str, Tuple[Any, ...]]] = []
        self._lists: Dict[int, SimulatedItemList] = {}
        self._registered = False

    @property
    def is_registered(self) -> bool:
        return self._registered

    def register(self) -> bool:
        self.calls.append(("register", ()))
        self._registered = self.bus._register(self)
        return self._registered

    def unregister(self) -> None:
        self.calls.append(("unregister", ()))
        if self._registered:
            self.bus._unregister(self)
            self._registered = False

    def item_list(self, list_id: int) -> SimulatedItemList:
        if not self._registered:
            raise RuntimeError(
                f"Panel {self.panel_id:02X} is not registered, item lists unavailable"
            )
        if list_id not in self._lists:
            self._lists[list_id] = SimulatedItemList(self, list_id)
        return self._lists[list_id]

    def peek_list(self, list_id: int) -> Optional[SimulatedItemList]:
        """Inspect an item list without the registration check."""
        return self._lists.get(list_id)

    def __repr__(self) -> str:
        return (
            f"SimulatedTouchpanel(type={self.panel_type!r}, id=0x{self.panel_id:02X}, "
            f"label={self.label!r}, registered={self._registered})"
        )


class SimulatedBus:
    """
    In-memory panel bus.

    Usage:
        bus = SimulatedBus(fail_ids={0x05})
        provisioner = PanelProvisioner(endpoint_factory=bus.create_endpoint, logger=logger)
    """

    def __init__(
        self,
        supported_types: Optional[Iterable[str]] = SUPPORTED_PANEL_TYPES,
        fail_ids: Iterable[int] = (),
        latency: float = 0.0,
    ):
        """
        Args:
            supported_types: Accepted panel types (None accepts any type)
            fail_ids: Panel ids whose registration always fails
            latency: Seconds each registration blocks (simulated bus I/O)
        """
        self.supported_types = frozenset(supported_types) if supported_types is not None else None
        self.fail_ids = set(fail_ids)
        self.latency = latency
        self.endpoints: List[SimulatedTouchpanel] = []
        self._registered: Dict[int, SimulatedTouchpanel] = {}
        self._lock = threading.Lock()

    def create_endpoint(self, panel_type: str, panel_id: int, label: str) -> SimulatedTouchpanel:
        endpoint = SimulatedTouchpanel(self, panel_type, panel_id, label)
        self.endpoints.append(endpoint)
        return endpoint

    def _register(self, endpoint: SimulatedTouchpanel) -> bool:
        if self.latency:
            time.sleep(self.latency)

        if endpoint.panel_id in self.fail_ids:
            return False
        if self.supported_types is not None and endpoint.panel_type not in self.supported_types:
            return False

        with self._lock:
            owner = self._registered.get(endpoint.panel_id)
            if owner is not None and owner is not endpoint:
                return False
            self._registered[endpoint.panel_id] = endpoint
        return True

    def _unregister(self, endpoint: SimulatedTouchpanel) -> None:
        with self._lock:
            if self._registered.get(endpoint.panel_id) is endpoint:
                del self._registered[endpoint.panel_id]

    def registered_ids(self) -> List[int]:
        with self._lock:
            return sorted(self._registered)

    def endpoints_for(self, panel_id: int) -> List[SimulatedTouchpanel]:
        """All endpoints ever constructed for a panel id, oldest first."""
        return [e for e in self.endpoints if e.panel_id == panel_id]
