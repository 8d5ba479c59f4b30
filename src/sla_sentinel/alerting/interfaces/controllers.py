"""
Alerting Controllers (API Routes)
=================================

FastAPI routes for alerts, the email log and broadcasts.

Controllers are thin - they delegate to application services.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from sla_sentinel.alerting.application import (
    AlertManager,
    AlertResponse,
    AlertSyncService,
    BroadcastRequest,
    BroadcastResponse,
    EmailLogResponse,
    IMailTransport,
    NotificationService,
    SyncGuard,
    SyncReportResponse,
)
from sla_sentinel.alerting.domain import Alert, EmailLogEntry, SyncReport
from sla_sentinel.alerting.infrastructure import (
    SmtpMailTransport,
    SQLAlchemyAlertRepository,
    SQLAlchemyEmailLogRepository,
    SQLAlchemyRecipientDirectory,
)
from sla_sentinel.config import RISK_TIERS
from sla_sentinel.core import ValidationException
from sla_sentinel.infrastructure.database import get_session
from sla_sentinel.prediction.application import EvaluationOrchestrator, IPredictionGateway
from sla_sentinel.prediction.infrastructure import SQLAlchemyRequestRepository
from sla_sentinel.prediction.interfaces.controllers import get_clock, get_prediction_gateway
from sla_sentinel.shared.infrastructure.clock import TimeProvider

router = APIRouter(prefix="/alertas", tags=["SLA Alerts"])

DEFAULT_EMAIL_LOG_LIMIT = 50


# ========== Service factories (shared with the background scheduler) ==========

def build_notification_service(
    session: AsyncSession,
    mail_transport: IMailTransport,
    clock: TimeProvider
) -> NotificationService:
    return NotificationService(
        alert_repository=SQLAlchemyAlertRepository(session),
        email_log_repository=SQLAlchemyEmailLogRepository(session),
        mail_transport=mail_transport,
        clock=clock,
        recipient_directory=SQLAlchemyRecipientDirectory(session)
    )


def build_alert_sync_service(
    session: AsyncSession,
    gateway: IPredictionGateway,
    clock: TimeProvider,
    mail_transport: IMailTransport
) -> AlertSyncService:
    orchestrator = EvaluationOrchestrator(SQLAlchemyRequestRepository(session), gateway, clock)
    alert_manager = AlertManager(SQLAlchemyAlertRepository(session), clock)
    return AlertSyncService(
        orchestrator,
        alert_manager,
        build_notification_service(session, mail_transport, clock)
    )


# ========== Dependencies ==========

def get_mail_transport(request: Request) -> IMailTransport:
    transport = getattr(request.app.state, "mail_transport", None)
    if transport is None:
        transport = SmtpMailTransport()
        request.app.state.mail_transport = transport
    return transport


def get_sync_guard(request: Request) -> SyncGuard:
    guard = getattr(request.app.state, "sync_guard", None)
    if guard is None:
        guard = SyncGuard()
        request.app.state.sync_guard = guard
    return guard


async def get_alert_manager(
    session: AsyncSession = Depends(get_session),
    clock: TimeProvider = Depends(get_clock)
) -> AlertManager:
    return AlertManager(SQLAlchemyAlertRepository(session), clock)


async def get_notification_service(
    session: AsyncSession = Depends(get_session),
    mail_transport: IMailTransport = Depends(get_mail_transport),
    clock: TimeProvider = Depends(get_clock)
) -> NotificationService:
    return build_notification_service(session, mail_transport, clock)


async def get_alert_sync_service(
    session: AsyncSession = Depends(get_session),
    gateway: IPredictionGateway = Depends(get_prediction_gateway),
    clock: TimeProvider = Depends(get_clock),
    mail_transport: IMailTransport = Depends(get_mail_transport)
) -> AlertSyncService:
    return build_alert_sync_service(session, gateway, clock, mail_transport)


# ========== Mapping ==========

def to_alert_response(alert: Alert) -> AlertResponse:
    return AlertResponse(
        id=alert.id,
        request_id=alert.request_id,
        alert_type=alert.alert_type,
        level=alert.level,
        message=alert.message,
        state=alert.state,
        email_sent=alert.email_sent,
        created_at=alert.created_at,
        read_at=alert.read_at,
        sla_code=alert.sla_code,
        role_name=alert.role_name,
        contact_name=alert.contact_name,
        contact_email=alert.contact_email
    )


def to_sync_response(report: SyncReport) -> SyncReportResponse:
    return SyncReportResponse(
        created=report.created,
        updated=report.updated,
        unchanged=report.unchanged,
        resolved=report.resolved,
        failed=report.failed,
        emails_sent=report.emails_sent,
        evaluated=report.evaluated,
        skipped=report.skipped
    )


def to_email_log_response(entry: EmailLogEntry) -> EmailLogResponse:
    return EmailLogResponse(
        id=entry.id,
        kind=entry.kind,
        recipients=entry.recipients,
        recipients_count=len(entry.recipients),
        state=entry.state,
        subject=entry.subject,
        error_detail=entry.error_detail,
        sent_at=entry.sent_at
    )


# ========== Route Handlers ==========

@router.get(
    "",
    response_model=List[AlertResponse],
    summary="Open alerts",
    description="Unread and read alerts, newest first. Optionally filtered by `nivel`."
)
async def list_alerts(
    nivel: Optional[str] = Query(None, description="Risk tier filter (CRITICAL, HIGH, MEDIUM, LOW)"),
    alert_manager: AlertManager = Depends(get_alert_manager)
):
    levels = None
    if nivel:
        level = nivel.upper()
        if level not in RISK_TIERS:
            raise ValidationException(f"nivel must be one of {RISK_TIERS}", {"nivel": nivel})
        levels = [level]
    alerts = await alert_manager.list_open(levels)
    return [to_alert_response(a) for a in alerts]


@router.post(
    "/sincronizar",
    response_model=SyncReportResponse,
    summary="Run one alert sync now",
    description="""
    Evaluates every active request and synchronizes alerts with the result:
    new alerts are created, changed ones updated, stale ones resolved.
    Refused with 409 while a scheduled or manual sync is still running.
    """,
    responses={
        409: {"description": "Another alert sync is still running"},
        503: {"description": "Request store or cycle deadline unavailable"}
    }
)
async def sync_alerts(
    sync_service: AlertSyncService = Depends(get_alert_sync_service),
    sync_guard: SyncGuard = Depends(get_sync_guard)
):
    async with sync_guard.hold("manual"):
        report = await sync_service.run()
    return to_sync_response(report)


@router.patch(
    "/{alert_id}/leida",
    response_model=AlertResponse,
    summary="Mark an alert as read",
    responses={404: {"description": "Alert not found"}}
)
async def mark_alert_read(
    alert_id: int,
    alert_manager: AlertManager = Depends(get_alert_manager)
):
    alert = await alert_manager.mark_read(alert_id)
    return to_alert_response(alert)


@router.delete(
    "/{alert_id}",
    response_model=AlertResponse,
    summary="Dismiss an alert",
    responses={404: {"description": "Alert not found"}}
)
async def dismiss_alert(
    alert_id: int,
    alert_manager: AlertManager = Depends(get_alert_manager)
):
    alert = await alert_manager.dismiss(alert_id)
    return to_alert_response(alert)


@router.get(
    "/correos",
    response_model=List[EmailLogResponse],
    summary="Recent notification attempts"
)
async def list_email_log(
    limite: int = Query(DEFAULT_EMAIL_LOG_LIMIT, ge=1, le=500, description="Maximum number of entries"),
    notification_service: NotificationService = Depends(get_notification_service)
):
    entries = await notification_service.list_recent(limite)
    return [to_email_log_response(e) for e in entries]


@router.post(
    "/difusion",
    response_model=BroadcastResponse,
    summary="Broadcast an email",
    description="""
    Sends one HTML message to every distinct person assigned to an active
    request, optionally filtered by role (`idRol`) and SLA (`idSla`).
    """,
    responses={400: {"description": "Blank message or no matching recipients"}}
)
async def broadcast(
    body: BroadcastRequest,
    notification_service: NotificationService = Depends(get_notification_service)
):
    result = await notification_service.broadcast(
        body.subject, body.html_body, body.role_id, body.sla_config_id
    )
    return BroadcastResponse(
        recipients=result.recipients,
        sent=result.sent,
        failed=result.failed,
        state=result.state
    )


# Export router for inclusion in main app
alerting_router = router
