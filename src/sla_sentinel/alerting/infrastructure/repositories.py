"""
Alerting Infrastructure Repositories
====================================

Concrete implementations of repository interfaces using SQLAlchemy.
"""

from datetime import datetime
from typing import AsyncContextManager, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from sla_sentinel.alerting.application import (
    IAlertRepository,
    IEmailLogRepository,
    IRecipientDirectory,
)
from sla_sentinel.alerting.domain import Alert, EmailLogEntry, Recipient
from sla_sentinel.alerting.infrastructure.models import AlertModel, EmailLogModel
from sla_sentinel.config import ACTIVE_REQUEST_STATES, OPEN_ALERT_STATES
from sla_sentinel.core import DuplicateAlert, PersistenceFailure
from sla_sentinel.prediction.infrastructure.models import PersonnelModel, RequestModel


def _to_entity(model: AlertModel, request: Optional[RequestModel] = None) -> Alert:
    alert = Alert(
        id=model.id,
        request_id=model.request_id,
        alert_type=model.alert_type,
        level=model.level,
        message=model.message,
        state=model.state,
        email_sent=model.email_sent,
        created_at=model.created_at,
        updated_at=model.updated_at,
        read_at=model.read_at,
        resolved_at=model.resolved_at
    )
    if request is not None:
        personnel = request.personnel
        alert.sla_code = request.sla_config.code if request.sla_config else None
        alert.role_name = request.role.name if request.role else None
        if personnel is not None:
            alert.contact_name = f"{personnel.first_names or ''} {personnel.last_names or ''}".strip() or None
            alert.contact_email = personnel.corporate_email
    return alert


class SQLAlchemyAlertRepository(IAlertRepository):
    """SQLAlchemy implementation of the alert repository."""

    def __init__(self, session: AsyncSession):
        self._session = session

    def savepoint(self) -> AsyncContextManager:
        return self._session.begin_nested()

    def _with_context(self):
        return select(AlertModel).options(
            selectinload(AlertModel.request).selectinload(RequestModel.sla_config),
            selectinload(AlertModel.request).selectinload(RequestModel.role),
            selectinload(AlertModel.request).selectinload(RequestModel.personnel),
        )

    async def find_open_alert(self, request_id: int, alert_type: str) -> Optional[Alert]:
        stmt = self._with_context().where(
            AlertModel.request_id == request_id,
            AlertModel.alert_type == alert_type,
            AlertModel.state.in_(OPEN_ALERT_STATES)
        )
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise PersistenceFailure(
                "Failed to look up open alert",
                {"request_id": request_id, "alert_type": alert_type, "error": str(e)}
            ) from e
        model = result.scalars().first()
        return _to_entity(model, model.request) if model else None

    async def create_alert(self, alert: Alert) -> Alert:
        model = AlertModel(
            request_id=alert.request_id,
            alert_type=alert.alert_type,
            level=alert.level,
            message=alert.message,
            state=alert.state,
            email_sent=alert.email_sent,
            created_at=alert.created_at,
            updated_at=alert.updated_at
        )
        self._session.add(model)
        try:
            await self._session.flush()
        except IntegrityError as e:
            raise DuplicateAlert(
                "Open alert already exists",
                {"request_id": alert.request_id, "alert_type": alert.alert_type}
            ) from e
        except SQLAlchemyError as e:
            raise PersistenceFailure(
                "Failed to create alert",
                {"request_id": alert.request_id, "error": str(e)}
            ) from e

        alert.id = model.id
        return alert

    async def update_alert(self, alert: Alert) -> Alert:
        try:
            model = await self._session.get(AlertModel, alert.id)
            if model is None:
                raise PersistenceFailure(f"Alert {alert.id} no longer exists", {"alert_id": alert.id})

            model.level = alert.level
            model.message = alert.message
            model.state = alert.state
            model.email_sent = alert.email_sent
            model.updated_at = alert.updated_at
            model.read_at = alert.read_at
            model.resolved_at = alert.resolved_at
            await self._session.flush()
        except SQLAlchemyError as e:
            raise PersistenceFailure(
                f"Failed to update alert {alert.id}", {"error": str(e)}
            ) from e
        return alert

    async def list_open_alerts(self, levels: Optional[Sequence[str]] = None) -> List[Alert]:
        stmt = self._with_context().where(AlertModel.state.in_(OPEN_ALERT_STATES))
        if levels:
            stmt = stmt.where(AlertModel.level.in_(list(levels)))
        stmt = stmt.order_by(AlertModel.created_at.desc(), AlertModel.id.desc())
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise PersistenceFailure("Failed to list open alerts", {"error": str(e)}) from e
        return [_to_entity(m, m.request) for m in result.scalars().all()]

    async def get_by_id(self, alert_id: int) -> Optional[Alert]:
        stmt = self._with_context().where(AlertModel.id == alert_id)
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Failed to load alert {alert_id}", {"error": str(e)}) from e
        model = result.scalars().first()
        return _to_entity(model, model.request) if model else None


class SQLAlchemyEmailLogRepository(IEmailLogRepository):
    """SQLAlchemy implementation of the email audit log."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def append(self, entry: EmailLogEntry) -> EmailLogEntry:
        model = EmailLogModel(
            sent_at=entry.sent_at,
            kind=entry.kind,
            recipients=", ".join(entry.recipients),
            recipients_count=len(entry.recipients),
            state=entry.state,
            subject=entry.subject[:255],
            error_detail=entry.error_detail
        )
        try:
            async with self._session.begin_nested():
                self._session.add(model)
                await self._session.flush()
        except SQLAlchemyError as e:
            raise PersistenceFailure(
                "Failed to write email log entry", {"kind": entry.kind, "error": str(e)}
            ) from e

        entry.id = model.id
        return entry

    async def list_recent(self, limit: int = 50) -> List[EmailLogEntry]:
        stmt = (
            select(EmailLogModel)
            .order_by(EmailLogModel.sent_at.desc(), EmailLogModel.id.desc())
            .limit(limit)
        )
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise PersistenceFailure("Failed to list email log", {"error": str(e)}) from e

        return [
            EmailLogEntry(
                id=m.id,
                kind=m.kind,
                recipients=[r for r in m.recipients.split(", ") if r],
                state=m.state,
                subject=m.subject,
                error_detail=m.error_detail,
                sent_at=m.sent_at
            )
            for m in result.scalars().all()
        ]

    async def exists_between(
        self,
        kind: str,
        states: Sequence[str],
        start: datetime,
        end: datetime
    ) -> bool:
        stmt = (
            select(EmailLogModel.id)
            .where(
                EmailLogModel.kind == kind,
                EmailLogModel.state.in_(list(states)),
                EmailLogModel.sent_at >= start,
                EmailLogModel.sent_at < end
            )
            .limit(1)
        )
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise PersistenceFailure("Failed to query email log", {"kind": kind, "error": str(e)}) from e
        return result.scalar_one_or_none() is not None


class SQLAlchemyRecipientDirectory(IRecipientDirectory):
    """Personnel assigned to active requests."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def list_recipients(
        self,
        role_id: Optional[int] = None,
        sla_config_id: Optional[int] = None
    ) -> List[Recipient]:
        stmt = (
            select(PersonnelModel)
            .join(RequestModel, RequestModel.personnel_id == PersonnelModel.id)
            .where(
                RequestModel.state.in_(ACTIVE_REQUEST_STATES),
                RequestModel.intake_date.is_(None),
                PersonnelModel.corporate_email.is_not(None)
            )
            .order_by(PersonnelModel.id)
        )
        if role_id is not None:
            stmt = stmt.where(RequestModel.role_id == role_id)
        if sla_config_id is not None:
            stmt = stmt.where(RequestModel.sla_config_id == sla_config_id)

        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise PersistenceFailure("Failed to list recipients", {"error": str(e)}) from e

        seen = set()
        recipients = []
        for person in result.scalars().all():
            email = (person.corporate_email or "").strip()
            if not email or email.lower() in seen:
                continue
            seen.add(email.lower())
            name = f"{person.first_names or ''} {person.last_names or ''}".strip()
            recipients.append(Recipient(name=name, email=email))
        return recipients
