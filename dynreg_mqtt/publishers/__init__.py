"""
dynreg MQTT Publishers
======================

    BasePublisher (abstract)
        ↓
    ReportPublisher (provisioning reports, retained)
"""

from .base import BasePublisher
from .report import ReportPublisher

__all__ = [
    'BasePublisher',
    'ReportPublisher',
]
