"""
dynreg CLI - Main entry point.

Sends control commands to a running control system over MQTT, and checks
room configurations offline (validate, dry-run against the simulated bus).
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from dynreg_mqtt.logging import create_logger
from dynreg_panel.protocol import SUPPORTED_PANEL_TYPES
from dynreg_panel.simulated import SimulatedBus
from dynreg_processor.config import RoomConfig
from dynreg_processor.provisioning import PanelProvisioner

from .mqtt_client import MQTTCommandClient

REMOTE_COMMANDS = {
    'provision': 'provision',
    'list-panels': 'list_panels',
    'get-report': 'get_report',
}


def send_command(
    command: Dict[str, Any],
    system_id: str = "room_01",
    broker: str = "localhost",
    port: int = 1883,
    wait: float = 0.0
) -> int:
    """
    Send a command to the control system.

    With wait > 0 the reply published on the status topic is printed;
    exit code 1 when it is missing, "rejected" or "error".
    """
    command_topic = f"dynreg/control/{system_id}/commands"
    client = MQTTCommandClient(broker=broker, port=port)

    if wait <= 0:
        client.send_command(command_topic, command, qos=1)
        return 0

    status_topic = f"dynreg/control/{system_id}/status"
    reply = client.request(command_topic, status_topic, command, timeout=wait)
    if reply is None:
        print(f"⏱️  No reply from {system_id} within {wait}s", file=sys.stderr)
        return 1

    print(json.dumps(reply, indent=2))
    return 1 if reply.get('status') in ('rejected', 'error') else 0


def validate_config(config_path: str) -> int:
    """Load a room configuration and print a summary."""
    config = RoomConfig.from_yaml(Path(config_path))

    print(f"✅ {config_path} is valid (system_id={config.system_id})")
    print(f"  - Touchpanels: {config.panel_count}")
    for panel in config.panels or ():
        print(f"    - 0x{panel.id:02X} {panel.type} '{panel.label}'")
    print(f"  - Sources: {len(config.sources)}")
    print(f"  - Destinations: {len(config.destinations)}")
    print(f"  - Panel bus: {config.bus_config.broker if config.bus_config else 'not configured'}")
    return 0


def dry_run(config_path: str, fail_ids: List[int], populate_labels: bool, any_type: bool) -> int:
    """Provision against the simulated bus and print the report as JSON."""
    config = RoomConfig.from_yaml(Path(config_path))

    bus = SimulatedBus(
        supported_types=None if any_type else SUPPORTED_PANEL_TYPES,
        fail_ids=fail_ids,
    )
    provisioner = PanelProvisioner(
        endpoint_factory=bus.create_endpoint,
        logger=create_logger("dry_run", level=logging.WARNING).bind(config=config_path),
        register_timeout=None,
        populate_labels=populate_labels,
    )
    report = provisioner.provision(config)

    print(json.dumps(report.to_dict(), indent=2))
    return 1 if report.failed else 0


def _panel_id(value: str) -> int:
    return int(value, 0)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dynreg-cli",
        description="dynreg CLI - Control the room processor and check room configurations",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Re-run provisioning on a running processor
  dynreg-cli --system-id room_01 provision

  # Ask for registered panels / last report and print the reply
  dynreg-cli --wait 5 list-panels
  dynreg-cli --wait 5 get-report

  # Offline checks
  dynreg-cli validate config/room_config.yaml
  dynreg-cli dry-run config/room_config.yaml --fail-id 0x04
"""
    )

    parser.add_argument(
        "--system-id",
        default="room_01",
        help="Target system ID (default: room_01)"
    )
    parser.add_argument(
        "--broker",
        default="localhost",
        help="MQTT broker host (default: localhost)"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=1883,
        help="MQTT broker port (default: 1883)"
    )
    parser.add_argument(
        "--wait",
        type=float,
        default=0.0,
        metavar="SECONDS",
        help="Wait for the reply on the status topic and print it (default: fire-and-forget)"
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    subparsers.add_parser('provision', help='Reload config and re-run provisioning')
    subparsers.add_parser('list-panels', help='Publish registered panels on the status topic')
    subparsers.add_parser('get-report', help='Publish the last provisioning report')

    validate = subparsers.add_parser('validate', help='Validate a room configuration')
    validate.add_argument('config', help='Path to room config (YAML or JSON)')

    dry = subparsers.add_parser('dry-run', help='Provision against the simulated bus')
    dry.add_argument('config', help='Path to room config (YAML or JSON)')
    dry.add_argument(
        '--fail-id',
        type=_panel_id,
        action='append',
        default=[],
        help='Panel id whose registration fails (repeatable, e.g. 0x04)'
    )
    dry.add_argument(
        '--populate-labels',
        action='store_true',
        help='Also write item label texts'
    )
    dry.add_argument(
        '--any-type',
        action='store_true',
        help='Accept any panel type'
    )

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    try:
        if args.command in REMOTE_COMMANDS:
            command = {'command': REMOTE_COMMANDS[args.command]}
            return send_command(command, args.system_id, args.broker, args.port, args.wait)

        if args.command == 'validate':
            return validate_config(args.config)

        if args.command == 'dry-run':
            return dry_run(args.config, args.fail_id, args.populate_labels, args.any_type)

    except (FileNotFoundError, ValueError, ConnectionError) as e:
        print(f"❌ Error: {e}", file=sys.stderr)
        return 1

    parser.print_help()
    return 1


if __name__ == '__main__':
    sys.exit(main())
