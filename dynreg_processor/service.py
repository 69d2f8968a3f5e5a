"""
Control System Service - host bootstrap for panel provisioning.

This module provides the ControlSystemService class which takes provisioning
off the startup critical path: initialize_system() returns immediately and
a background SystemSetup thread loads the room configuration, connects the
panel bus and runs the PanelProvisioner.

Threading Model:
- Caller thread: initialize_system(), stop() (must return quickly)
- SystemSetup Thread (ours): config load + provisioning run
- Reprovision Thread (ours): provisioning re-runs triggered by commands
- Control Plane Thread (paho-mqtt internal, command handlers)

Thread Safety:
- Provisioning runs are serialized by _provision_lock
- last_report is replaced and published under _report_lock, so the
  retained report on the broker is always the latest run
"""

import logging
import threading
from pathlib import Path
from typing import Any, Dict, Optional

from dynreg_mqtt.logging import LogEvent, StructuredLogger
from dynreg_panel.protocol import EndpointFactory
from dynreg_processor.config import RoomConfig
from dynreg_processor.provisioning import PanelProvisioner
from dynreg_processor.report import ProvisioningReport

logger = logging.getLogger(__name__)


class ControlSystemService:
    """
    Room control processor service.

    Usage:
        bus = SimulatedBus()
        service = ControlSystemService(
            config_path=Path("config/room_config.yaml"),
            endpoint_factory=bus.create_endpoint,
            logger=create_logger("provisioner"),
        )

        service.initialize_system()          # returns immediately
        report = service.wait_until_provisioned(timeout=30.0)
        ...
        service.stop()
    """

    def __init__(
        self,
        config_path: Path,
        endpoint_factory: EndpointFactory,
        logger: StructuredLogger,
        control_plane=None,  # MQTTControlPlane
        report_publisher=None,  # ReportPublisher
        panel_bus=None,  # MQTTPanelBus
        register_timeout: Optional[float] = 10.0,
    ):
        """
        Args:
            config_path: Room configuration file (YAML or JSON)
            endpoint_factory: Construct(type, id, label) for touchpanels
            logger: Structured log sink
            control_plane: Optional MQTT control plane for runtime commands
            report_publisher: Optional publisher for provisioning reports
            panel_bus: Optional bus connected by the setup thread before provisioning
            register_timeout: Seconds allowed per panel registration
        """
        self.config_path = Path(config_path)
        self.logger = logger
        self.control_plane = control_plane
        self.report_publisher = report_publisher
        self.panel_bus = panel_bus

        self.provisioner = PanelProvisioner(
            endpoint_factory=endpoint_factory,
            logger=logger,
            register_timeout=register_timeout,
        )

        self.config: Optional[RoomConfig] = None
        self.last_report: Optional[ProvisioningReport] = None

        self._provision_lock = threading.Lock()
        self._report_lock = threading.Lock()
        self._provisioned = threading.Event()
        self._setup_thread: Optional[threading.Thread] = None
        self._handlers_registered = False
        self._running = False

    # ===== Lifecycle =====

    def initialize_system(self) -> None:
        """
        Start system setup in the background and return immediately.
        """
        if self._setup_thread is not None and self._setup_thread.is_alive():
            logger.warning("System setup already running")
            return

        if self.control_plane is not None and not self._handlers_registered:
            self._setup_control_handlers()

        self._provisioned.clear()
        self._setup_thread = threading.Thread(
            target=self._system_setup,
            name="SystemSetup",
            daemon=True
        )
        self._setup_thread.start()
        self._running = True
        logger.info("System setup dispatched")

    def wait_until_provisioned(self, timeout: Optional[float] = None) -> Optional[ProvisioningReport]:
        """
        Block until the initial setup finished.

        Returns:
            The provisioning report, or None if setup is still running after
            timeout or the configuration could not be read
        """
        if not self._provisioned.wait(timeout=timeout):
            return None
        return self.last_report

    def stop(self) -> None:
        """Unregister panels and disconnect MQTT components."""
        if not self._running:
            logger.warning("Service not running")
            return

        logger.info("Stopping control system service")
        self.provisioner.release()

        if self.report_publisher is not None:
            self.report_publisher.disconnect()

        if self.panel_bus is not None:
            self.panel_bus.disconnect()

        if self.control_plane is not None:
            self.control_plane.publish_status("stopped")
            self.control_plane.disconnect()

        self._running = False
        logger.info("✅ Control system service stopped")

    # ===== Provisioning =====

    def _system_setup(self) -> None:
        try:
            if self.panel_bus is not None and not self.panel_bus.is_connected():
                if not self.panel_bus.connect(timeout=5.0):
                    logger.error("❌ Panel bus unavailable, registrations will fail")
            self.reprovision()
        finally:
            self._provisioned.set()

    def reprovision(self) -> Optional[ProvisioningReport]:
        """
        Reload the configuration and run provisioning.

        Returns:
            The new report, or None if the configuration could not be read
        """
        with self._provision_lock:
            config = self._load_config()
            if config is None:
                return None

            self.config = config
            report = self.provisioner.provision(config)

            with self._report_lock:
                self.last_report = report
                self._publish_report(report)
                if self.control_plane is not None:
                    self.control_plane.publish_status("provisioned", {
                        'succeeded': len(report.succeeded),
                        'failed': len(report.failed),
                    })
        return report

    def _load_config(self) -> Optional[RoomConfig]:
        try:
            config = RoomConfig.from_yaml(self.config_path)
        except (FileNotFoundError, ValueError) as e:
            self.logger.error(
                event=LogEvent.CONFIG_LOAD_FAILED,
                message="Unable to read config!",
                metadata={'path': str(self.config_path)},
                exc_info=e
            )
            return None

        self.logger.info(
            event=LogEvent.CONFIG_LOADED,
            message=f"Configuration loaded (system_id={config.system_id})",
            metadata={
                'path': str(self.config_path),
                'panels': config.panel_count,
                'sources': len(config.sources),
                'destinations': len(config.destinations),
            }
        )
        return config

    def _publish_report(self, report: ProvisioningReport) -> None:
        if self.report_publisher is None or self.config is None:
            return
        self.report_publisher.publish_report(report, system_id=self.config.system_id)

    # ===== Control plane =====

    def _setup_control_handlers(self) -> None:
        registry = self.control_plane.command_registry

        registry.register(
            "provision",
            self._handle_provision,
            "Reload the room configuration and re-run panel provisioning"
        )
        registry.register(
            "list_panels",
            self._handle_list_panels,
            "Publish registered panels in the status message"
        )
        registry.register(
            "get_report",
            self._handle_get_report,
            "Publish the last provisioning report"
        )

        self._handlers_registered = True
        logger.info("Control handlers registered")

    def _handle_provision(self, command_data: Dict[str, Any]) -> None:
        # Runs in the MQTT thread: hand the blocking run to a worker
        self.control_plane.publish_status("provisioning")
        threading.Thread(target=self.reprovision, name="Reprovision", daemon=True).start()

    def _handle_list_panels(self, command_data: Dict[str, Any]) -> None:
        panels = {
            f"{panel_id:02X}": label
            for panel_id, label in sorted(self.provisioner.registered_panels().items())
        }
        self.control_plane.publish_status("running", {'panels': panels})

    def _handle_get_report(self, command_data: Dict[str, Any]) -> None:
        with self._report_lock:
            report = self.last_report
            if report is None:
                self.control_plane.publish_status("running", {'report': None})
            elif self.report_publisher is not None:
                self._publish_report(report)
            else:
                self.control_plane.publish_status("running", {'report': report.to_dict()})
