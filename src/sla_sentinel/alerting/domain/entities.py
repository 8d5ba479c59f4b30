"""
Alerting Domain Entities
========================

Durable alert records and the notification audit trail.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from sla_sentinel.config import AlertState, EmailState, OPEN_ALERT_STATES


@dataclass
class Alert:
    """
    Alert raised for a (request, alert type) pair.

    At most one open alert (UNREAD or READ) exists per pair. The contact
    fields are not stored on the alert; repositories fill them from the
    request when listing.
    """

    id: Optional[int]
    request_id: int
    alert_type: str
    level: str
    message: str
    state: str = AlertState.UNREAD
    email_sent: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    read_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None

    # Context
    sla_code: Optional[str] = None
    role_name: Optional[str] = None
    contact_name: Optional[str] = None
    contact_email: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.state in OPEN_ALERT_STATES

    def refresh(self, level: str, message: str, timestamp: datetime) -> bool:
        """Update level/message in place. Returns True when anything changed."""
        if self.level == level and self.message == message:
            return False
        self.level = level
        self.message = message
        self.updated_at = timestamp
        return True

    def mark_read(self, timestamp: datetime) -> None:
        if self.state == AlertState.UNREAD:
            self.state = AlertState.READ
            self.read_at = timestamp
            self.updated_at = timestamp

    def resolve(self, timestamp: datetime) -> None:
        self.state = AlertState.RESOLVED
        self.resolved_at = timestamp
        self.updated_at = timestamp

    def dismiss(self, timestamp: datetime) -> None:
        self.state = AlertState.DISMISSED
        self.resolved_at = timestamp
        self.updated_at = timestamp

    def mark_email_sent(self, timestamp: datetime) -> None:
        self.email_sent = True
        self.updated_at = timestamp


@dataclass
class EmailLogEntry:
    """Audit record of one notification attempt. Append-only."""

    kind: str
    recipients: List[str]
    state: str
    subject: str = ""
    error_detail: Optional[str] = None
    sent_at: Optional[datetime] = None
    id: Optional[int] = None

    @property
    def succeeded(self) -> bool:
        return self.state == EmailState.OK


@dataclass
class Recipient:
    """Distinct notification target."""
    name: str
    email: str


@dataclass
class SyncReport:
    """Counts of one AlertManager.sync run."""

    created: int = 0
    updated: int = 0
    unchanged: int = 0
    resolved: int = 0
    failed: int = 0
    emails_sent: int = 0
    evaluated: int = 0
    skipped: int = 0
    created_alerts: List[Alert] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "created": self.created,
            "updated": self.updated,
            "unchanged": self.unchanged,
            "resolved": self.resolved,
            "failed": self.failed,
            "emails_sent": self.emails_sent,
            "evaluated": self.evaluated,
            "skipped": self.skipped
        }


@dataclass
class BroadcastResult:
    """Outcome of a broadcast send."""
    recipients: int
    sent: int
    failed: int
    state: str
