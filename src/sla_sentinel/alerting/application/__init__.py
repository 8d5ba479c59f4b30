"""
Alerting Application Layer
==========================

Use cases for alert persistence and email notifications.
"""

from sla_sentinel.alerting.application.dto import (
    AlertResponse,
    SyncReportResponse,
    EmailLogResponse,
    BroadcastRequest,
    BroadcastResponse,
)
from sla_sentinel.alerting.application.services import (
    IAlertRepository,
    IEmailLogRepository,
    IRecipientDirectory,
    IMailTransport,
    AlertManager,
    NotificationService,
    AlertSyncService,
    SyncGuard,
    SUMMARY_LEVELS,
)

__all__ = [
    "AlertResponse",
    "SyncReportResponse",
    "EmailLogResponse",
    "BroadcastRequest",
    "BroadcastResponse",
    "IAlertRepository",
    "IEmailLogRepository",
    "IRecipientDirectory",
    "IMailTransport",
    "AlertManager",
    "NotificationService",
    "AlertSyncService",
    "SyncGuard",
    "SUMMARY_LEVELS",
]
