"""
Alerting Domain Layer
=====================

Alert records, notification audit entries and alert rules.
"""

from sla_sentinel.alerting.domain.entities import (
    Alert,
    EmailLogEntry,
    Recipient,
    SyncReport,
    BroadcastResult,
)
from sla_sentinel.alerting.domain.value_objects import alert_type_for, build_alert_message

__all__ = [
    "Alert",
    "EmailLogEntry",
    "Recipient",
    "SyncReport",
    "BroadcastResult",
    "alert_type_for",
    "build_alert_message",
]
