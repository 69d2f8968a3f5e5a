#!/usr/bin/env python3
"""
Room Control System - Entry Point
=================================

This script starts the dynreg control system, which:
- Loads the room configuration (YAML or JSON)
- Registers every configured touchpanel on the panel bus
- Populates each panel's source and destination lists
- Publishes the provisioning report and answers control commands via MQTT

Usage:
    python run_control_system.py --config config/room_config.yaml
    python run_control_system.py --config config/room_config.yaml --simulate

Lifecycle:
    1. Setup logging (console + file)
    2. Read the bus section of the configuration
    3. Create panel bus (MQTT or simulated), control plane and report publisher
    4. Create ControlSystemService
    5. initialize_system(): provisioning runs in the background
    6. Wait for stop signal (Ctrl+C or SIGTERM)
    7. Graceful shutdown (panels unregistered, MQTT disconnected)

Signals:
    - SIGTERM: Graceful shutdown
    - SIGINT (Ctrl+C): Graceful shutdown
"""

import argparse
import signal
import sys
import logging
import threading
from pathlib import Path
from typing import List, Optional

from dynreg_control import MQTTControlPlane
from dynreg_mqtt import ReportPublisher, create_logger
from dynreg_mqtt.logging import JSONFormatter
from dynreg_panel import MQTTPanelBus, SimulatedBus
from dynreg_processor import ControlSystemService, RoomConfig


# ─────────────────────────────────────────────────────────────────────────────
# Logging Setup
# ─────────────────────────────────────────────────────────────────────────────

def setup_logging(log_file: Optional[Path] = None, json_logs: bool = False) -> logging.Logger:
    """
    Setup console (and optional file) logging for the control system.

    Args:
        log_file: Also write to this file
        json_logs: Render every record as a JSON line (console and file)

    Returns:
        Logger instance for the entry point
    """
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    if json_logs:
        for handler in handlers:
            handler.setFormatter(JSONFormatter())

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers
    )

    return logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Main Service
# ─────────────────────────────────────────────────────────────────────────────

class ControlSystemApp:
    """
    Application wrapper for ControlSystemService.

    Handles:
    - Component initialization (panel bus, control plane, publisher)
    - Signal handling (SIGTERM, SIGINT)
    - Graceful shutdown
    """

    def __init__(
        self,
        config_path: Path,
        log_file: Optional[Path] = None,
        simulate: bool = False,
        json_logs: bool = False,
    ):
        self.config_path = config_path
        self.simulate = simulate
        self.logger = setup_logging(log_file, json_logs)

        self.control_plane: Optional[MQTTControlPlane] = None
        self.report_publisher: Optional[ReportPublisher] = None
        self.panel_bus: Optional[MQTTPanelBus] = None
        self.service: Optional[ControlSystemService] = None

        self._stop_event = threading.Event()
        self._shutdown_requested = False

    def setup(self):
        """
        Create all components.

        Only the bus section of the configuration is read here; the full
        configuration is (re)loaded by the service's setup thread.
        """
        self.logger.info("=" * 80)
        self.logger.info("🚀 dynreg Control System - Starting")
        self.logger.info("=" * 80)

        config = RoomConfig.from_yaml(self.config_path)
        bus_config = config.bus_config
        system_id = config.system_id
        provisioner_logger = create_logger(component="provisioner")

        if self.simulate or bus_config is None:
            self.logger.info("🧪 Using simulated panel bus")
            endpoint_factory = SimulatedBus().create_endpoint
            register_timeout = 10.0
        else:
            self.logger.info(f"🔌 Creating panel bus ({bus_config.broker}:{bus_config.port})")
            self.panel_bus = MQTTPanelBus(
                broker_host=bus_config.broker,
                broker_port=bus_config.port,
                topic_prefix=bus_config.topic_prefix,
                client_id=f"panels_{system_id}",
                register_timeout=bus_config.register_timeout,
                qos=bus_config.qos,
                username=bus_config.username,
                password=bus_config.password,
            )
            endpoint_factory = self.panel_bus.create_endpoint
            # Bus waits register_timeout for the ack; leave headroom for the publish
            register_timeout = bus_config.register_timeout + 5.0

            self.control_plane = MQTTControlPlane(
                broker_host=bus_config.broker,
                broker_port=bus_config.port,
                command_topic=f"dynreg/control/{system_id}/commands",
                status_topic=f"dynreg/control/{system_id}/status",
                client_id=f"control_{system_id}",
                username=bus_config.username,
                password=bus_config.password,
            )

            self.report_publisher = ReportPublisher(
                broker_host=bus_config.broker,
                broker_port=bus_config.port,
                topic=f"dynreg/data/{system_id}/report",
                client_id=f"report_{system_id}",
                logger=create_logger(component="report_publisher"),
                username=bus_config.username,
                password=bus_config.password,
            )

        self.service = ControlSystemService(
            config_path=self.config_path,
            endpoint_factory=endpoint_factory,
            logger=provisioner_logger,
            control_plane=self.control_plane,
            report_publisher=self.report_publisher,
            panel_bus=self.panel_bus,
            register_timeout=register_timeout,
        )
        self.logger.info("✅ Service created")

    def run(self):
        """Start the service and block until shutdown is requested."""
        if not self.service:
            raise RuntimeError("Service not initialized. Call setup() first.")

        signal.signal(signal.SIGTERM, self._signal_handler)
        signal.signal(signal.SIGINT, self._signal_handler)

        if self.control_plane and not self.control_plane.connect(timeout=5.0):
            self.logger.warning("⚠️  Control plane unavailable, runtime commands disabled")
        if self.report_publisher and not self.report_publisher.connect(timeout=5.0):
            self.logger.warning("⚠️  Report publisher unavailable")

        self.service.initialize_system()
        self.logger.info("✅ System initialized, provisioning in background")
        self.logger.info("Press Ctrl+C to stop")

        self._stop_event.wait()

    def shutdown(self):
        """Graceful shutdown of all components."""
        if self._shutdown_requested:
            self.logger.warning("⚠️  Shutdown already in progress")
            return
        self._shutdown_requested = True

        self.logger.info("🛑 Shutting down control system")
        if self.service:
            try:
                self.service.stop()
            except Exception as e:
                self.logger.error(f"❌ Error stopping service: {e}")

        self._stop_event.set()
        self.logger.info("✅ Shutdown complete")

    def _signal_handler(self, signum, frame):
        signal_name = signal.Signals(signum).name
        self.logger.info(f"⚠️  Received signal {signal_name} ({signum})")
        self.shutdown()


# ─────────────────────────────────────────────────────────────────────────────
# CLI
# ─────────────────────────────────────────────────────────────────────────────

def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="dynreg Control System - touchpanel registration and provisioning",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run_control_system.py --config config/room_config.yaml
  python run_control_system.py --config config/room_config.yaml --simulate --no-log-file
        """
    )

    parser.add_argument(
        '--config',
        type=Path,
        required=True,
        help='Path to room configuration (YAML or JSON)'
    )
    parser.add_argument(
        '--log-file',
        type=Path,
        default=Path('logs/control_system.log'),
        help='Path to log file (default: logs/control_system.log)'
    )
    parser.add_argument(
        '--no-log-file',
        action='store_true',
        help='Disable file logging (console only)'
    )
    parser.add_argument(
        '--simulate',
        action='store_true',
        help='Use the in-memory panel bus instead of MQTT'
    )
    parser.add_argument(
        '--json-logs',
        action='store_true',
        help='Write every log record as a JSON line'
    )

    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    log_file = None if args.no_log_file else args.log_file

    if not args.config.exists():
        print(f"❌ Error: Configuration file not found: {args.config}", file=sys.stderr)
        sys.exit(1)

    app = ControlSystemApp(
        config_path=args.config,
        log_file=log_file,
        simulate=args.simulate,
        json_logs=args.json_logs,
    )

    try:
        app.setup()
        app.run()
    except Exception as e:
        print(f"❌ Fatal error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == '__main__':
    main()
