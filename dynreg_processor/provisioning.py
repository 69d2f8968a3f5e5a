"""
Panel Provisioner - configuration-driven touchpanel registration.

Turns the declarative panel list of a RoomConfig into registered, populated
touchpanel endpoints:

    for each panel (in order):
        construct endpoint -> register -> populate sources/destinations -> log

Failure isolation:
- A panel that fails to register (rejected, timed out, raised) is logged
  at error severity, recorded as FAILED, and the run continues
- A list longer than the 16-bit count register is logged and truncated
- provision() itself never raises for a per-panel problem

Re-runs:
- Panels still registered with an identical configuration are reused
  (no second handshake) and re-populated
- Panels whose configuration changed are unregistered and registered again
- Panels no longer configured are unregistered

Threading:
- Panels are processed sequentially in the calling thread
- Each register() runs in a daemon worker bounded by register_timeout
- Runs are serialized by _run_lock
"""

import threading
from itertools import islice
from typing import Dict, Optional, Sequence, Tuple

from dynreg_mqtt.logging import LogEvent, StructuredLogger
from dynreg_panel.protocol import MAX_ITEM_COUNT, EndpointFactory, TouchpanelEndpoint
from dynreg_processor.config import ItemConfig, PanelConfig, RoomConfig
from dynreg_processor.registry import PanelRegistry, RegisteredPanel
from dynreg_processor.report import OutcomeStatus, PanelOutcome, ProvisioningReport


class RegistrationError(Exception):
    """Raised when a panel registration handshake does not succeed"""
    pass


class RegistrationTimeoutError(RegistrationError):
    """Raised when register() did not return within register_timeout"""
    pass


class PanelProvisioner:
    """
    Registers and populates the touchpanels declared in a room configuration.

    Usage:
        bus = SimulatedBus()
        provisioner = PanelProvisioner(
            endpoint_factory=bus.create_endpoint,
            logger=create_logger("provisioner"),
            register_timeout=10.0,
        )
        report = provisioner.provision(config)
        for outcome in report.failed:
            print(outcome.label, outcome.reason)
    """

    def __init__(
        self,
        endpoint_factory: EndpointFactory,
        logger: StructuredLogger,
        register_timeout: Optional[float] = 10.0,
        populate_labels: bool = False,
    ):
        """
        Args:
            endpoint_factory: Construct(type, id, label) for touchpanel endpoints
            logger: Log sink for per-panel outcomes
            register_timeout: Seconds allowed per register() call (None waits forever)
            populate_labels: Also write item label texts (in addition to
                RoomConfig.populate_labels)
        """
        self.endpoint_factory = endpoint_factory
        self.logger = logger
        self.register_timeout = register_timeout
        self.populate_labels = populate_labels

        self.registry = PanelRegistry()
        self._run_lock = threading.Lock()

    def provision(self, config: RoomConfig) -> ProvisioningReport:
        """
        Run one provisioning pass over the configuration.

        Returns:
            ProvisioningReport with one outcome per configured panel,
            in configuration order (empty if no panels are configured)
        """
        if not config.panels:
            with self._run_lock:
                self.logger.info(
                    event=LogEvent.PROVISIONING_SKIPPED,
                    message="No touchpanels configured, nothing to provision",
                    metadata={'system_id': config.system_id}
                )
                self._release_unconfigured(config)
            return ProvisioningReport()

        with self._run_lock:
            self.logger.info(
                event=LogEvent.PROVISIONING_STARTED,
                message=f"Provisioning {len(config.panels)} touchpanels",
                metadata={
                    'system_id': config.system_id,
                    'panels': len(config.panels),
                    'sources': len(config.sources),
                    'destinations': len(config.destinations),
                }
            )

            self._release_unconfigured(config)

            outcomes = tuple(
                self._provision_panel(panel, config) for panel in config.panels
            )
            report = ProvisioningReport(outcomes=outcomes)

            self.logger.info(
                event=LogEvent.PROVISIONING_COMPLETED,
                message=(
                    f"Provisioning complete: {len(report.succeeded)} succeeded, "
                    f"{len(report.failed)} failed"
                ),
                metadata={
                    'system_id': config.system_id,
                    'succeeded': len(report.succeeded),
                    'failed': len(report.failed),
                }
            )
            return report

    def release(self) -> None:
        """Unregister every registered panel (shutdown)."""
        with self._run_lock:
            for panel_id in self.registry.ids():
                self._unregister(self.registry.remove(panel_id), "shutdown")

    def registered_panels(self) -> Dict[int, str]:
        """Snapshot of registered panels: {panel_id: label}."""
        return {
            panel_id: entry.label
            for panel_id, entry in self.registry.snapshot().items()
        }

    # ===== Per-panel pipeline =====

    def _provision_panel(self, panel: PanelConfig, config: RoomConfig) -> PanelOutcome:
        metadata = _panel_metadata(panel)

        try:
            endpoint = self._acquire_endpoint(panel)
        except RegistrationError as e:
            self.logger.error(
                event=LogEvent.PANEL_REGISTRATION_FAILED,
                message=f"Panel '{panel.label}' failed to register: {e}",
                metadata=metadata
            )
            return PanelOutcome(
                panel_id=panel.id,
                label=panel.label,
                panel_type=panel.type,
                status=OutcomeStatus.FAILED,
                reason=str(e),
            )

        with_labels = self.populate_labels or config.populate_labels
        try:
            sources, sources_overflow = self._populate_list(
                endpoint, panel, config.source_list_id, config.sources, "sources", with_labels
            )
            destinations, destinations_overflow = self._populate_list(
                endpoint, panel, config.destination_list_id, config.destinations, "destinations", with_labels
            )
        except Exception as e:
            self.logger.error(
                event=LogEvent.PANEL_POPULATION_FAILED,
                message=f"Panel '{panel.label}' item list population failed: {e}",
                metadata=metadata,
                exc_info=e
            )
            return PanelOutcome(
                panel_id=panel.id,
                label=panel.label,
                panel_type=panel.type,
                status=OutcomeStatus.FAILED,
                reason=f"population failed: {e}",
            )

        self.logger.info(
            event=LogEvent.PANEL_POPULATED,
            message=(
                f"Panel '{panel.label}': populated {sources} sources "
                f"and {destinations} destinations"
            ),
            metadata={**metadata, 'sources': sources, 'destinations': destinations}
        )
        return PanelOutcome(
            panel_id=panel.id,
            label=panel.label,
            panel_type=panel.type,
            status=OutcomeStatus.SUCCEEDED,
            sources_populated=sources,
            destinations_populated=destinations,
            overflow=sources_overflow or destinations_overflow,
        )

    def _acquire_endpoint(self, panel: PanelConfig) -> TouchpanelEndpoint:
        """
        Return a registered endpoint for the panel.

        Raises:
            RegistrationError: If the handshake fails or times out
        """
        existing = self.registry.get(panel.id)
        if existing is not None:
            if existing.config == panel and existing.endpoint.is_registered:
                self.logger.info(
                    event=LogEvent.PANEL_REUSED,
                    message=f"Panel '{panel.label}' already registered",
                    metadata=_panel_metadata(panel)
                )
                return existing.endpoint
            self._unregister(self.registry.remove(panel.id), "configuration changed")

        endpoint = self.endpoint_factory(panel.type, panel.id, panel.label)
        self._register(endpoint)
        self.registry.add(RegisteredPanel(config=panel, endpoint=endpoint))

        self.logger.info(
            event=LogEvent.PANEL_REGISTERED,
            message=f"Panel '{panel.label}' registered",
            metadata=_panel_metadata(panel)
        )
        return endpoint

    def _register(self, endpoint: TouchpanelEndpoint) -> None:
        """
        Run endpoint.register(), bounded by register_timeout.

        An attempt that times out is abandoned: if register() succeeds
        later, the endpoint is unregistered again so the panel id stays
        free for the next run.

        Raises:
            RegistrationTimeoutError: If register() did not return in time
            RegistrationError: If register() returned False or raised
        """
        result = {}
        lock = threading.Lock()

        def attempt():
            try:
                outcome = {'registered': bool(endpoint.register())}
            except Exception as e:
                outcome = {'error': e}
            with lock:
                abandoned = result.get('abandoned', False)
                if not abandoned:
                    result.update(outcome)
            if abandoned and outcome.get('registered'):
                self._release_late(endpoint)

        if self.register_timeout is None:
            attempt()
        else:
            worker = threading.Thread(
                target=attempt,
                name=f"Register-{endpoint.panel_id:02X}",
                daemon=True
            )
            worker.start()
            worker.join(timeout=self.register_timeout)
            with lock:
                if 'registered' not in result and 'error' not in result:
                    result['abandoned'] = True
            if result.get('abandoned'):
                raise RegistrationTimeoutError(
                    f"no response after {self.register_timeout}s"
                )

        if 'error' in result:
            error = result['error']
            raise RegistrationError(
                f"register() raised {type(error).__name__}: {error}"
            ) from error

        if not result.get('registered', False):
            raise RegistrationError("registration rejected by the bus")

    def _release_late(self, endpoint: TouchpanelEndpoint) -> None:
        """Undo a registration that completed after its attempt timed out."""
        metadata = {
            'panel_id': endpoint.panel_id,
            'panel_type': endpoint.panel_type,
            'label': endpoint.label,
            'reason': "registered after timeout",
        }
        try:
            endpoint.unregister()
        except Exception as e:
            self.logger.error(
                event=LogEvent.PANEL_UNREGISTERED,
                message=f"Panel '{endpoint.label}' late registration could not be undone: {e}",
                metadata=metadata,
                exc_info=e
            )
            return

        self.logger.warning(
            event=LogEvent.PANEL_UNREGISTERED,
            message=f"Panel '{endpoint.label}' registered after timeout, unregistered again",
            metadata=metadata
        )

    def _populate_list(
        self,
        endpoint: TouchpanelEndpoint,
        panel: PanelConfig,
        list_id: int,
        items: Sequence[ItemConfig],
        list_name: str,
        with_labels: bool,
    ) -> Tuple[int, bool]:
        """
        Write count and per-slot icons of one item list.

        Returns:
            (count written, whether the list was truncated)
        """
        count = len(items)
        overflow = count > MAX_ITEM_COUNT
        if overflow:
            self.logger.error(
                event=LogEvent.LIST_COUNT_OVERFLOW,
                message=(
                    f"Panel '{panel.label}': {count} {list_name} exceed the "
                    f"{MAX_ITEM_COUNT} item limit, truncating"
                ),
                metadata={**_panel_metadata(panel), 'list_id': list_id, 'count': count}
            )
            count = MAX_ITEM_COUNT

        surface = endpoint.item_list(list_id)
        surface.set_count(count)
        for slot, item in enumerate(islice(items, count), start=1):
            surface.set_icon(slot, item.icon)
            if with_labels:
                surface.set_text(slot, item.label)

        return count, overflow

    # ===== Unregistration =====

    def _release_unconfigured(self, config: RoomConfig) -> None:
        configured = {panel.id for panel in config.panels or ()}
        for panel_id in self.registry.ids():
            if panel_id not in configured:
                self._unregister(self.registry.remove(panel_id), "removed from configuration")

    def _unregister(self, entry: RegisteredPanel, reason: str) -> None:
        metadata = {**_panel_metadata(entry.config), 'reason': reason}
        try:
            entry.endpoint.unregister()
        except Exception as e:
            self.logger.error(
                event=LogEvent.PANEL_UNREGISTERED,
                message=f"Panel '{entry.label}' unregister failed: {e}",
                metadata=metadata,
                exc_info=e
            )
            return

        self.logger.info(
            event=LogEvent.PANEL_UNREGISTERED,
            message=f"Panel '{entry.label}' unregistered ({reason})",
            metadata=metadata
        )


def _panel_metadata(panel: PanelConfig) -> Dict[str, object]:
    return {'panel_id': panel.id, 'panel_type': panel.type, 'label': panel.label}
