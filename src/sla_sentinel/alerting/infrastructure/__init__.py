"""
Alerting Infrastructure Layer
=============================

SQLAlchemy models and repositories, SMTP transport and the scheduler.
"""

from sla_sentinel.alerting.infrastructure.models import AlertModel, EmailLogModel
from sla_sentinel.alerting.infrastructure.repositories import (
    SQLAlchemyAlertRepository,
    SQLAlchemyEmailLogRepository,
    SQLAlchemyRecipientDirectory,
)
from sla_sentinel.alerting.infrastructure.external import (
    SmtpMailTransport,
    NotificationScheduler,
    SYNC_JOB_ID,
    SUMMARY_JOB_ID,
)

__all__ = [
    "AlertModel",
    "EmailLogModel",
    "SQLAlchemyAlertRepository",
    "SQLAlchemyEmailLogRepository",
    "SQLAlchemyRecipientDirectory",
    "SmtpMailTransport",
    "NotificationScheduler",
    "SYNC_JOB_ID",
    "SUMMARY_JOB_ID",
]
