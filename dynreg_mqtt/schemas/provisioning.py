"""
Provisioning Report Message
===========================

Bounded Context: Provisioning diagnostics

Envelope published after every provisioning run so hosts and UIs can show
which touchpanels are live.

Example JSON:
    {
        "schema_version": "1.0",
        "timestamp": "2025-10-24T15:30:45.123456+00:00",
        "system_id": "room_01",
        "report": {
            "panel_count": 1,
            "succeeded_count": 1,
            "failed_count": 0,
            "outcomes": [
                {"panel_id": 3, "label": "Lectern", "panel_type": "TSW-1070",
                 "status": "succeeded", "sources_populated": 2,
                 "destinations_populated": 1, "overflow": false, "reason": null}
            ]
        }
    }
"""

from dataclasses import dataclass
from typing import Any, Dict

from dynreg_processor.report import ProvisioningReport
from .common import Timestamp

SCHEMA_VERSION = "1.0"


@dataclass(frozen=True)
class ProvisioningReportMessage:
    """
    Provisioning report envelope.

    Invariants:
        - schema_version is non-empty
        - system_id is non-empty
    """
    schema_version: str
    timestamp: Timestamp
    system_id: str
    report: ProvisioningReport

    def __post_init__(self):
        if not self.schema_version:
            raise ValueError("schema_version cannot be empty")
        if not self.system_id:
            raise ValueError("system_id cannot be empty")

    @classmethod
    def create(cls, system_id: str, report: ProvisioningReport) -> 'ProvisioningReportMessage':
        return cls(
            schema_version=SCHEMA_VERSION,
            timestamp=Timestamp.now(),
            system_id=system_id,
            report=report,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'schema_version': self.schema_version,
            'timestamp': self.timestamp.to_dict(),
            'system_id': self.system_id,
            'report': self.report.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ProvisioningReportMessage':
        """
        Raises:
            ValueError: If required keys missing or invalid values
        """
        try:
            return cls(
                schema_version=str(data['schema_version']),
                timestamp=Timestamp(value=str(data['timestamp'])),
                system_id=str(data['system_id']),
                report=ProvisioningReport.from_dict(data['report']),
            )
        except KeyError as e:
            raise ValueError(f"Missing required message field: {e}")
