"""Tests for the control system entry point wiring."""

from pathlib import Path

import pytest

from dynreg_panel import MQTTPanelBus
from run_control_system import ControlSystemApp, main, parse_args

CONFIG_DIR = Path(__file__).parent / "config"


def test_parse_args_defaults():
    args = parse_args(["--config", "room.yaml"])

    assert args.config == Path("room.yaml")
    assert args.log_file == Path("logs/control_system.log")
    assert not args.no_log_file
    assert not args.simulate
    assert not args.json_logs


def test_parse_args_json_logs():
    args = parse_args(["--config", "room.yaml", "--json-logs", "--no-log-file"])

    assert args.json_logs
    assert args.no_log_file


def test_missing_config_exits(tmp_path):
    with pytest.raises(SystemExit) as exc:
        main(["--config", str(tmp_path / "absent.yaml"), "--no-log-file"])
    assert exc.value.code == 1


def test_simulated_setup_has_no_mqtt_components():
    app = ControlSystemApp(CONFIG_DIR / "room_config.yaml", simulate=True)
    app.setup()

    assert app.panel_bus is None
    assert app.control_plane is None
    assert app.report_publisher is None

    app.service.initialize_system()
    report = app.service.wait_until_provisioned(timeout=5.0)
    assert [o.panel_id for o in report] == [0x03, 0x04, 0x0A]
    assert not report.failed

    app.shutdown()
    assert app.service.provisioner.registered_panels() == {}
    assert app._stop_event.is_set()


def test_mqtt_setup_wires_components(fake_mqtt):
    app = ControlSystemApp(CONFIG_DIR / "room_config.yaml")
    app.setup()

    assert isinstance(app.panel_bus, MQTTPanelBus)
    assert app.panel_bus.register_timeout == 10.0
    assert app.service.provisioner.register_timeout == 15.0
    assert app.control_plane.command_topic == "dynreg/control/room_01/commands"
    assert app.control_plane.status_topic == "dynreg/control/room_01/status"
    assert app.report_publisher.topic == "dynreg/data/room_01/report"


def test_shutdown_is_idempotent():
    app = ControlSystemApp(CONFIG_DIR / "room_config.yaml", simulate=True)
    app.setup()

    app.shutdown()
    app.shutdown()

    assert app._stop_event.is_set()
