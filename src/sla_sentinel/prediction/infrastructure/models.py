"""
Prediction Infrastructure Models
================================

SQLAlchemy ORM models for requests and their descriptive metadata.

These are the database representations of our domain entities.
They belong in the infrastructure layer, not the domain layer.
"""

from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean, CheckConstraint, Date, DateTime, ForeignKey, Index, Integer,
    String, Text, text
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sla_sentinel.infrastructure.database import Base
from sla_sentinel.config import RequestState


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SlaConfigModel(Base):
    """
    Named SLA window.

    Maps to the 'sla_configs' table.
    """
    __tablename__ = "sla_configs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    request_type: Mapped[str] = mapped_column(String(100), nullable=False)
    days_threshold: Mapped[int] = mapped_column(Integer, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        CheckConstraint("days_threshold > 0", name="ck_sla_configs_days_threshold_positive"),
        # Codes are unique among active configs only
        Index(
            "uq_sla_configs_active_code", "code",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
    )


class RoleModel(Base):
    """Maps to the 'roles' table."""
    __tablename__ = "roles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class PersonnelModel(Base):
    """Maps to the 'personnel' table."""
    __tablename__ = "personnel"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    first_names: Mapped[str] = mapped_column(String(120), nullable=False, default="")
    last_names: Mapped[str] = mapped_column(String(120), nullable=False, default="")
    corporate_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    state: Mapped[str] = mapped_column(String(30), nullable=False, default="ACTIVE")


class RequestModel(Base):
    """
    Database model for a tracked request.

    Maps to the 'requests' table.
    """
    __tablename__ = "requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # References
    sla_config_id: Mapped[Optional[int]] = mapped_column(ForeignKey("sla_configs.id"), nullable=True, index=True)
    role_id: Mapped[Optional[int]] = mapped_column(ForeignKey("roles.id"), nullable=True)
    personnel_id: Mapped[Optional[int]] = mapped_column(ForeignKey("personnel.id"), nullable=True)

    # Dates (civil dates, no time component)
    submission_date: Mapped[date] = mapped_column(Date, nullable=False)
    intake_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    # SLA tracking
    sla_days: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    sla_summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    state: Mapped[str] = mapped_column(String(30), nullable=False, default=RequestState.ACTIVE, index=True)
    compliance_tag: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    sla_config: Mapped[Optional[SlaConfigModel]] = relationship(lazy="raise")
    role: Mapped[Optional[RoleModel]] = relationship(lazy="raise")
    personnel: Mapped[Optional[PersonnelModel]] = relationship(lazy="raise")
