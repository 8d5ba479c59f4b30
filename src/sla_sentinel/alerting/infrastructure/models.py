"""
Alerting Infrastructure Models
==============================

SQLAlchemy ORM models for alerts and the email audit log.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean, CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Text, text
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sla_sentinel.config import AlertState
from sla_sentinel.infrastructure.database import Base
from sla_sentinel.prediction.infrastructure.models import RequestModel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AlertModel(Base):
    """
    Alert on a request.

    Maps to the 'alerts' table.
    """
    __tablename__ = "alerts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    request_id: Mapped[int] = mapped_column(ForeignKey("requests.id"), nullable=False, index=True)
    alert_type: Mapped[str] = mapped_column(String(30), nullable=False)
    level: Mapped[str] = mapped_column(String(20), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    state: Mapped[str] = mapped_column(String(20), nullable=False, default=AlertState.UNREAD, index=True)
    email_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    request: Mapped[RequestModel] = relationship(lazy="raise")

    __table_args__ = (
        CheckConstraint(
            "state IN ('UNREAD', 'READ', 'RESOLVED', 'DISMISSED')",
            name="ck_alerts_state"
        ),
        # One open alert per (request, type)
        Index(
            "uq_alerts_open_request_type", "request_id", "alert_type",
            unique=True,
            postgresql_where=text("state IN ('UNREAD', 'READ')"),
            sqlite_where=text("state IN ('UNREAD', 'READ')"),
        ),
    )

    def __repr__(self) -> str:
        return f"<Alert(id={self.id}, request_id={self.request_id}, type={self.alert_type}, state={self.state})>"


class EmailLogModel(Base):
    """
    One notification attempt. Append-only.

    Maps to the 'email_logs' table.
    """
    __tablename__ = "email_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sent_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    recipients: Mapped[str] = mapped_column(Text, nullable=False, default="")
    recipients_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    state: Mapped[str] = mapped_column(String(20), nullable=False)
    subject: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    error_detail: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
