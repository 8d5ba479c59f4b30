"""
Prediction Infrastructure Repositories
======================================

Concrete implementations of repository interfaces using SQLAlchemy.

Rows are mapped to plain domain entities before leaving the repository, so
the evaluation fan-out never touches the session concurrently.
"""

from datetime import date
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from sla_sentinel.config import ACTIVE_REQUEST_STATES, CLOSED_REQUEST_STATES
from sla_sentinel.core import PersistenceFailure
from sla_sentinel.prediction.application import IRequestRepository
from sla_sentinel.prediction.domain import ServiceRequest, SlaConfig
from sla_sentinel.prediction.infrastructure.models import (
    PersonnelModel, RequestModel, SlaConfigModel
)


def _to_sla_config(model: Optional[SlaConfigModel]) -> Optional[SlaConfig]:
    if model is None:
        return None
    return SlaConfig(
        id=model.id,
        code=model.code,
        request_type=model.request_type,
        days_threshold=model.days_threshold,
        is_active=model.is_active,
        description=model.description
    )


def _display_name(personnel: Optional[PersonnelModel]) -> Optional[str]:
    if personnel is None:
        return None
    return f"{personnel.first_names or ''} {personnel.last_names or ''}".strip()


def _to_entity(model: RequestModel) -> ServiceRequest:
    return ServiceRequest(
        id=model.id,
        submission_date=model.submission_date,
        state=model.state,
        sla_config_id=model.sla_config_id,
        role_id=model.role_id,
        personnel_id=model.personnel_id,
        intake_date=model.intake_date,
        sla_days=model.sla_days,
        sla_summary=model.sla_summary,
        compliance_tag=model.compliance_tag,
        sla_config=_to_sla_config(model.sla_config),
        role_name=model.role.name if model.role else None,
        personnel_name=_display_name(model.personnel),
        personnel_email=model.personnel.corporate_email if model.personnel else None
    )


class SQLAlchemyRequestRepository(IRequestRepository):
    """
    SQLAlchemy implementation of the request repository.

    Read-only: the pipeline never mutates request rows.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    def _base_query(self):
        return select(RequestModel).options(
            selectinload(RequestModel.sla_config),
            selectinload(RequestModel.role),
            selectinload(RequestModel.personnel),
        )

    async def list_active_requests(self) -> List[ServiceRequest]:
        stmt = (
            self._base_query()
            .where(
                RequestModel.state.in_(ACTIVE_REQUEST_STATES),
                RequestModel.intake_date.is_(None)
            )
            .order_by(RequestModel.id)
        )
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise PersistenceFailure("Failed to list active requests", {"error": str(e)}) from e
        return [_to_entity(m) for m in result.scalars().all()]

    async def list_closed_requests_in_range(
        self,
        date_from: date,
        date_to: date
    ) -> List[ServiceRequest]:
        stmt = (
            self._base_query()
            .where(
                RequestModel.state.in_(CLOSED_REQUEST_STATES),
                RequestModel.submission_date >= date_from,
                RequestModel.submission_date <= date_to,
                RequestModel.compliance_tag.is_not(None),
                RequestModel.sla_days.is_not(None)
            )
            .order_by(RequestModel.submission_date, RequestModel.id)
        )
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise PersistenceFailure(
                "Failed to list closed requests",
                {"date_from": date_from.isoformat(), "date_to": date_to.isoformat(), "error": str(e)}
            ) from e
        return [_to_entity(m) for m in result.scalars().all()]

    async def get_sla_config(self, sla_config_id: int) -> Optional[SlaConfig]:
        try:
            model = await self._session.get(SlaConfigModel, sla_config_id)
        except SQLAlchemyError as e:
            raise PersistenceFailure(
                f"Failed to load SLA config {sla_config_id}", {"error": str(e)}
            ) from e
        return _to_sla_config(model)
