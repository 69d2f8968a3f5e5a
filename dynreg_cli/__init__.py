"""
dynreg CLI - Command-line interface for the room control processor.

Usage:
    dynreg-cli provision
    dynreg-cli list-panels
    dynreg-cli get-report
    dynreg-cli validate config/room_config.yaml
    dynreg-cli dry-run config/room_config.yaml --fail-id 0x04
"""

__version__ = "1.0.0"
