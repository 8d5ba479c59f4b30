"""
Alerting Application Services
=============================

Application services orchestrate business logic and coordinate between
domain entities, repositories and the mail transport.

- AlertManager: persists alerts from an evaluation cycle, idempotently
- NotificationService: individual alerts, daily summary and broadcasts
- AlertSyncService: one evaluation cycle followed by an alert sync
- SyncGuard: keeps scheduled and manual sync cycles from overlapping
"""

import asyncio
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import date, datetime, time, timedelta
from typing import AsyncContextManager, AsyncIterator, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from sla_sentinel.alerting.application.templates import (
    alert_subject,
    build_alert_html,
    build_daily_summary_html,
    daily_summary_subject,
)
from sla_sentinel.alerting.domain import (
    Alert,
    BroadcastResult,
    EmailLogEntry,
    Recipient,
    SyncReport,
    alert_type_for,
    build_alert_message,
)
from sla_sentinel.config import AlertState, EmailKind, EmailState, RiskTier, settings
from sla_sentinel.core import (
    DuplicateAlert,
    MailDeliveryException,
    RepositoryException,
    ResourceNotFoundException,
    SyncAlreadyRunning,
    ValidationException,
)
from sla_sentinel.prediction.application import EvaluationOrchestrator
from sla_sentinel.prediction.domain import PredictionResult, at_or_above
from sla_sentinel.shared.infrastructure.clock import TimeProvider
from sla_sentinel.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

SUMMARY_LEVELS = [RiskTier.CRITICAL, RiskTier.HIGH]

AlertKey = Tuple[int, str]


# ========== Repository / Transport Interfaces (Dependency Inversion) ==========

class IAlertRepository(ABC):
    """Persistence of alerts."""

    @abstractmethod
    async def find_open_alert(self, request_id: int, alert_type: str) -> Optional[Alert]:
        """The open (UNREAD or READ) alert for a pair, if any."""

    @abstractmethod
    async def create_alert(self, alert: Alert) -> Alert:
        """
        Insert a new alert.

        Raises:
            DuplicateAlert: If an open alert for the pair already exists
        """

    @abstractmethod
    async def update_alert(self, alert: Alert) -> Alert:
        """Write back state, level, message and timestamps."""

    @abstractmethod
    async def list_open_alerts(self, levels: Optional[Sequence[str]] = None) -> List[Alert]:
        """Open alerts with contact context, newest first."""

    @abstractmethod
    async def get_by_id(self, alert_id: int) -> Optional[Alert]:
        """Alert by id."""

    @abstractmethod
    def savepoint(self) -> AsyncContextManager:
        """Scope whose writes are rolled back alone on failure."""


class IEmailLogRepository(ABC):
    """Append-only notification audit log."""

    @abstractmethod
    async def append(self, entry: EmailLogEntry) -> EmailLogEntry:
        """Store one entry."""

    @abstractmethod
    async def list_recent(self, limit: int = 50) -> List[EmailLogEntry]:
        """Most recent entries first."""

    @abstractmethod
    async def exists_between(
        self,
        kind: str,
        states: Sequence[str],
        start: datetime,
        end: datetime
    ) -> bool:
        """Whether an entry of ``kind`` in one of ``states`` was logged in [start, end)."""


class IRecipientDirectory(ABC):
    """Who can be reached for broadcasts."""

    @abstractmethod
    async def list_recipients(
        self,
        role_id: Optional[int] = None,
        sla_config_id: Optional[int] = None
    ) -> List[Recipient]:
        """Distinct personnel with an email address on active requests."""


class IMailTransport(ABC):
    """Outbound email."""

    @abstractmethod
    async def send(self, to: Sequence[str], subject: str, html_body: str) -> None:
        """
        Send an HTML email.

        Raises:
            MailDeliveryException: If the message could not be delivered
        """

    @abstractmethod
    async def send_with_attachment(
        self,
        to: Sequence[str],
        subject: str,
        html_body: str,
        content: bytes,
        filename: str,
        content_type: str = "application/octet-stream"
    ) -> None:
        """Send an HTML email with one attachment."""


# ========== Application Services ==========

class AlertManager:
    """
    Turns prediction results into durable alerts.

    A sync is idempotent: replaying the same results creates nothing new.
    Every (request, alert type) write runs in its own savepoint so one bad
    item does not roll back the others.
    """

    def __init__(
        self,
        alert_repository: IAlertRepository,
        clock: TimeProvider,
        notify_tier: Optional[str] = None
    ):
        self._repo = alert_repository
        self._clock = clock
        self._notify_tier = notify_tier or settings.alert_notify_tier

    def is_notifiable(self, result: PredictionResult) -> bool:
        return at_or_above(result.risk_tier, self._notify_tier)

    async def sync(
        self,
        results: Sequence[PredictionResult],
        active_request_ids: Optional[Iterable[int]] = None
    ) -> SyncReport:
        """
        Create, update and resolve alerts for one cycle.

        Args:
            results: Successful predictions of the cycle
            active_request_ids: Every request that was active this cycle.
                When given, open alerts of requests outside it are resolved.
        """
        now = self._clock.now()
        report = SyncReport()

        evaluated_ids: Set[int] = set()
        notifiable: Dict[AlertKey, PredictionResult] = {}
        for result in results:
            evaluated_ids.add(result.request_id)
            if self.is_notifiable(result):
                notifiable[(result.request_id, alert_type_for(result))] = result

        for (request_id, alert_type), result in notifiable.items():
            try:
                outcome, alert = await self._upsert_in_savepoint(result, alert_type, now)
            except RepositoryException as e:
                report.failed += 1
                logger.error(
                    "Alert upsert failed",
                    extra={"request_id": request_id, "alert_type": alert_type, "error": e.message}
                )
                continue

            if outcome == "created":
                report.created += 1
                report.created_alerts.append(alert)
            elif outcome == "updated":
                report.updated += 1
            else:
                report.unchanged += 1

        active = set(active_request_ids) if active_request_ids is not None else None
        await self._resolve_stale(notifiable, evaluated_ids, active, now, report)

        logger.info("Alert sync finished", extra=report.as_dict())
        return report

    async def _upsert_in_savepoint(
        self,
        result: PredictionResult,
        alert_type: str,
        now: datetime
    ) -> Tuple[str, Alert]:
        try:
            async with self._repo.savepoint():
                return await self._upsert(result, alert_type, now)
        except DuplicateAlert:
            # Another writer opened the same pair first; update theirs.
            logger.info(
                "Concurrent alert insert detected, updating existing alert",
                extra={"request_id": result.request_id, "alert_type": alert_type}
            )
            async with self._repo.savepoint():
                return await self._upsert(result, alert_type, now)

    async def _upsert(
        self,
        result: PredictionResult,
        alert_type: str,
        now: datetime
    ) -> Tuple[str, Alert]:
        message = build_alert_message(result)
        existing = await self._repo.find_open_alert(result.request_id, alert_type)

        if existing is None:
            alert = Alert(
                id=None,
                request_id=result.request_id,
                alert_type=alert_type,
                level=result.risk_tier,
                message=message,
                state=AlertState.UNREAD,
                email_sent=False,
                created_at=now,
                updated_at=now,
                sla_code=result.sla_code,
                role_name=result.role_name,
                contact_name=result.personnel_name or None,
                contact_email=result.personnel_email or None
            )
            return "created", await self._repo.create_alert(alert)

        if existing.refresh(result.risk_tier, message, now):
            return "updated", await self._repo.update_alert(existing)
        return "unchanged", existing

    async def _resolve_stale(
        self,
        notifiable: Dict[AlertKey, PredictionResult],
        evaluated_ids: Set[int],
        active_ids: Optional[Set[int]],
        now: datetime,
        report: SyncReport
    ) -> None:
        try:
            open_alerts = await self._repo.list_open_alerts()
        except RepositoryException as e:
            logger.error("Could not list open alerts for resolution", extra={"error": e.message})
            return

        for alert in open_alerts:
            if (alert.request_id, alert.alert_type) in notifiable:
                continue
            left_active_set = active_ids is not None and alert.request_id not in active_ids
            no_longer_notifiable = alert.request_id in evaluated_ids
            if not (left_active_set or no_longer_notifiable):
                continue

            alert.resolve(now)
            try:
                async with self._repo.savepoint():
                    await self._repo.update_alert(alert)
            except RepositoryException as e:
                report.failed += 1
                logger.error(
                    "Alert resolution failed",
                    extra={"alert_id": alert.id, "error": e.message}
                )
                continue
            report.resolved += 1

    async def list_open(self, levels: Optional[Sequence[str]] = None) -> List[Alert]:
        return await self._repo.list_open_alerts(levels)

    async def mark_read(self, alert_id: int) -> Alert:
        alert = await self._get(alert_id)
        alert.mark_read(self._clock.now())
        return await self._repo.update_alert(alert)

    async def dismiss(self, alert_id: int) -> Alert:
        alert = await self._get(alert_id)
        alert.dismiss(self._clock.now())
        logger.info("Alert dismissed", extra={"alert_id": alert_id, "request_id": alert.request_id})
        return await self._repo.update_alert(alert)

    async def _get(self, alert_id: int) -> Alert:
        alert = await self._repo.get_by_id(alert_id)
        if alert is None:
            raise ResourceNotFoundException("Alert", alert_id)
        return alert


class NotificationService:
    """Sends alert emails and records every attempt in the email log."""

    def __init__(
        self,
        alert_repository: IAlertRepository,
        email_log_repository: IEmailLogRepository,
        mail_transport: IMailTransport,
        clock: TimeProvider,
        recipient_directory: Optional[IRecipientDirectory] = None,
        summary_recipient: Optional[str] = None
    ):
        self._alert_repo = alert_repository
        self._email_log = email_log_repository
        self._mail = mail_transport
        self._clock = clock
        self._directory = recipient_directory
        self._summary_recipient = summary_recipient or settings.daily_summary_recipient

    async def send_daily_summary(self, day: Optional[date] = None) -> int:
        """
        Email the open CRITICAL/HIGH alerts to the summary recipient.

        Returns:
            Number of alerts included; 0 means nothing was sent

        Raises:
            MailDeliveryException: If the summary could not be delivered
        """
        day = day or self._clock.today()
        alerts = await self._alert_repo.list_open_alerts(SUMMARY_LEVELS)
        if not alerts:
            # Recorded so a restart later today does not try again
            await self._record(
                EmailKind.DAILY_SUMMARY,
                [],
                EmailState.SKIPPED,
                daily_summary_subject(day, 0)
            )
            logger.info("No open critical alerts, daily summary skipped", extra={"day": day.isoformat()})
            return 0

        subject = daily_summary_subject(day, len(alerts))
        recipients = [self._summary_recipient]
        try:
            await self._mail.send(recipients, subject, build_daily_summary_html(alerts, day))
        except MailDeliveryException as e:
            await self._record(EmailKind.DAILY_SUMMARY, recipients, EmailState.FAILED, subject, e.message)
            raise

        await self._record(EmailKind.DAILY_SUMMARY, recipients, EmailState.OK, subject)
        logger.info("Daily summary sent", extra={"day": day.isoformat(), "alerts": len(alerts)})
        return len(alerts)

    async def daily_summary_done(self, day: date) -> bool:
        """Whether the email log shows the summary for local ``day`` was sent or skipped."""
        start = self._clock.to_utc(datetime.combine(day, time.min))
        return await self._email_log.exists_between(
            EmailKind.DAILY_SUMMARY,
            [EmailState.OK, EmailState.SKIPPED],
            start,
            start + timedelta(days=1)
        )

    async def notify_new_alerts(self, alerts: Sequence[Alert]) -> int:
        """
        Email each new alert to its contact, falling back to the summary recipient.

        Delivery failures are logged and recorded, never raised.
        """
        sent = 0
        for alert in alerts:
            to = alert.contact_email or self._summary_recipient
            subject = alert_subject(alert)
            try:
                await self._mail.send([to], subject, build_alert_html(alert))
            except MailDeliveryException as e:
                logger.warning(
                    "Alert email failed",
                    extra={"alert_id": alert.id, "request_id": alert.request_id, "error": e.message}
                )
                await self._record(EmailKind.INDIVIDUAL, [to], EmailState.FAILED, subject, e.message)
                continue

            alert.mark_email_sent(self._clock.now())
            try:
                async with self._alert_repo.savepoint():
                    await self._alert_repo.update_alert(alert)
            except RepositoryException as e:
                logger.error(
                    "Could not flag alert as emailed",
                    extra={"alert_id": alert.id, "error": e.message}
                )
            await self._record(EmailKind.INDIVIDUAL, [to], EmailState.OK, subject)
            sent += 1
        return sent

    async def broadcast(
        self,
        subject: str,
        html_body: str,
        role_id: Optional[int] = None,
        sla_config_id: Optional[int] = None
    ) -> BroadcastResult:
        """
        Send one message to every distinct recipient matching the filters.

        Raises:
            ValidationException: If subject or body is blank, or nobody matches
        """
        if not subject.strip() or not html_body.strip():
            raise ValidationException("asunto and mensajeHtml are required")
        if self._directory is None:
            raise ValidationException("No recipient directory configured")

        recipients = await self._directory.list_recipients(role_id, sla_config_id)
        if not recipients:
            raise ValidationException(
                "No recipients match the broadcast filters",
                {"idRol": role_id, "idSla": sla_config_id}
            )

        sent: List[str] = []
        errors: List[str] = []
        for recipient in recipients:
            try:
                await self._mail.send([recipient.email], subject, html_body)
                sent.append(recipient.email)
            except MailDeliveryException as e:
                errors.append(f"{recipient.email}: {e.message}")

        if not errors:
            state = EmailState.OK
        elif sent:
            state = EmailState.PARTIAL
        else:
            state = EmailState.FAILED

        await self._record(
            EmailKind.BROADCAST,
            [r.email for r in recipients],
            state,
            subject,
            "; ".join(errors) or None
        )
        logger.info(
            "Broadcast finished",
            extra={"recipients": len(recipients), "sent": len(sent), "failed": len(errors), "state": state}
        )
        return BroadcastResult(recipients=len(recipients), sent=len(sent), failed=len(errors), state=state)

    async def list_recent(self, limit: int = 50) -> List[EmailLogEntry]:
        return await self._email_log.list_recent(limit)

    async def _record(
        self,
        kind: str,
        recipients: List[str],
        state: str,
        subject: str,
        error_detail: Optional[str] = None
    ) -> None:
        entry = EmailLogEntry(
            kind=kind,
            recipients=recipients,
            state=state,
            subject=subject,
            error_detail=error_detail,
            sent_at=self._clock.now()
        )
        try:
            await self._email_log.append(entry)
        except RepositoryException as e:
            logger.error("Could not write email log entry", extra={"kind": kind, "error": e.message})


class AlertSyncService:
    """One full alert cycle: evaluate, sync alerts, email new ones."""

    def __init__(
        self,
        orchestrator: EvaluationOrchestrator,
        alert_manager: AlertManager,
        notification_service: Optional[NotificationService] = None,
        notify_on_create: Optional[bool] = None
    ):
        self._orchestrator = orchestrator
        self._alert_manager = alert_manager
        self._notifications = notification_service
        self._notify_on_create = (
            settings.notify_on_alert_created if notify_on_create is None else notify_on_create
        )

    async def run(self) -> SyncReport:
        """
        Raises:
            DependencyUnavailable: If active requests cannot be listed
            EvaluationTimeout: If the evaluation cycle exceeds its deadline
        """
        cycle = await self._orchestrator.evaluate()
        report = await self._alert_manager.sync(cycle.results, cycle.active_request_ids)
        report.evaluated = len(cycle.results)
        report.skipped = len(cycle.failures)

        if self._notify_on_create and self._notifications and report.created_alerts:
            report.emails_sent = await self._notifications.notify_new_alerts(report.created_alerts)

        return report


class SyncGuard:
    """
    Single-flight guard for alert sync cycles.

    One instance is shared by the scheduler and the manual sync endpoint,
    so a cycle never starts while another one is still running.
    """

    def __init__(self):
        self._lock = asyncio.Lock()
        self._holder: Optional[str] = None

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    @property
    def holder(self) -> Optional[str]:
        return self._holder

    @asynccontextmanager
    async def hold(self, source: str) -> AsyncIterator[None]:
        """
        Raises:
            SyncAlreadyRunning: If another cycle holds the guard
        """
        if self._lock.locked():
            logger.warning(
                "Alert sync skipped, previous cycle still running",
                extra={"source": source, "running": self._holder}
            )
            raise SyncAlreadyRunning(source)

        async with self._lock:
            self._holder = source
            try:
                yield
            finally:
                self._holder = None
