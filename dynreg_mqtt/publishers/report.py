"""
Provisioning Report Publisher
=============================

Publishes the report of each provisioning run as a retained message, so a
late subscriber (touchpanel UI, diagnostics dashboard) always sees the
latest state of the room. A report produced while the broker is away is
delivered on reconnect.
"""

from typing import Any, Dict

from dynreg_processor.report import ProvisioningReport
from ..schemas import ProvisioningReportMessage
from .base import BasePublisher


class ReportPublisher(BasePublisher):
    """
    Example:
        >>> publisher = ReportPublisher(
        ...     broker_host="localhost",
        ...     broker_port=1883,
        ...     topic="dynreg/data/room_01/report",
        ...     client_id="report_room_01",
        ...     logger=create_logger("report_publisher"),
        ... )
        >>> publisher.connect()
        >>> publisher.publish_report(report, system_id="room_01")
    """

    def format_message(self, report: ProvisioningReport, system_id: str) -> Dict[str, Any]:
        return ProvisioningReportMessage.create(system_id=system_id, report=report).to_dict()

    def publish_report(self, report: ProvisioningReport, system_id: str) -> bool:
        return self.publish(self.format_message(report, system_id))
