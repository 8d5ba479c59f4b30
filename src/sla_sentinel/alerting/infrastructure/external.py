"""
Alerting External Integrations
==============================

SMTP mail transport and the background notification scheduler.

The scheduler runs on the application's event loop (APScheduler's
AsyncIOScheduler) and owns two jobs:

- sla_alert_sync: periodic evaluation + alert sync
- daily_summary: once per local day at the configured time

Both jobs share one day marker, backed by the email log when a check is
given, so the summary goes out at most once a day across restarts
and no matter which job gets there first.
"""

import asyncio
import smtplib
from datetime import date, time
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Awaitable, Callable, Optional, Sequence

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from sla_sentinel.alerting.application import IMailTransport, SyncGuard
from sla_sentinel.config import parse_clock_time, settings
from sla_sentinel.core import MailDeliveryException, SyncAlreadyRunning
from sla_sentinel.shared.infrastructure.clock import TimeProvider
from sla_sentinel.shared.infrastructure.logging import get_logger, log_latency

logger = get_logger(__name__)

SYNC_JOB_ID = "sla_alert_sync"
SUMMARY_JOB_ID = "daily_summary"


class SmtpMailTransport(IMailTransport):
    """
    Sends HTML email over SMTP.

    smtplib is blocking, so delivery runs in a worker thread.
    """

    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: Optional[bool] = None,
        sender: Optional[str] = None,
        timeout: Optional[float] = None
    ):
        self.host = host if host is not None else settings.smtp_host
        self.port = port or settings.smtp_port
        self.user = user if user is not None else settings.smtp_user
        self.password = password if password is not None else settings.smtp_password
        self.use_tls = settings.smtp_use_tls if use_tls is None else use_tls
        self.sender = sender or settings.email_from
        self.timeout = timeout or settings.smtp_timeout_seconds

    async def send(self, to: Sequence[str], subject: str, html_body: str) -> None:
        msg = MIMEMultipart("alternative")
        self._address(msg, to, subject)
        msg.attach(MIMEText(html_body, "html", "utf-8"))
        await asyncio.to_thread(self._deliver, msg, list(to))

    async def send_with_attachment(
        self,
        to: Sequence[str],
        subject: str,
        html_body: str,
        content: bytes,
        filename: str,
        content_type: str = "application/octet-stream"
    ) -> None:
        msg = MIMEMultipart("mixed")
        self._address(msg, to, subject)
        msg.attach(MIMEText(html_body, "html", "utf-8"))

        subtype = content_type.split("/", 1)[1] if "/" in content_type else "octet-stream"
        attachment = MIMEApplication(content, _subtype=subtype)
        attachment.add_header("Content-Disposition", "attachment", filename=filename)
        msg.attach(attachment)

        await asyncio.to_thread(self._deliver, msg, list(to))

    def _address(self, msg: MIMEMultipart, to: Sequence[str], subject: str) -> None:
        msg["Subject"] = subject
        msg["From"] = self.sender
        msg["To"] = ", ".join(to)

    def _deliver(self, msg: MIMEMultipart, recipients: list) -> None:
        if not self.host:
            raise MailDeliveryException("SMTP host not configured")
        if not recipients:
            raise MailDeliveryException("No recipients given")

        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                if self.use_tls:
                    server.starttls()
                if self.user and self.password:
                    server.login(self.user, self.password)
                server.sendmail(self.sender, recipients, msg.as_string())
        except (smtplib.SMTPException, OSError) as e:
            raise MailDeliveryException(str(e), {"recipients": recipients}) from e

        logger.info("Email sent", extra={"recipients": len(recipients), "subject": msg["Subject"]})


class NotificationScheduler:
    """
    Wrapper for APScheduler driving alert sync and the daily summary.

    Manages the lifecycle of the scheduler and jobs.
    """

    def __init__(
        self,
        clock: TimeProvider,
        sync_job: Callable[[], Awaitable[Any]],
        summary_job: Callable[[date], Awaitable[Any]],
        sync_interval_hours: Optional[float] = None,
        enable_sync: Optional[bool] = None,
        run_sync_on_startup: Optional[bool] = None,
        daily_summary_time: Optional[str] = None,
        enable_daily_summary: Optional[bool] = None,
        sync_guard: Optional[SyncGuard] = None,
        summary_done: Optional[Callable[[date], Awaitable[bool]]] = None
    ):
        self._clock = clock
        self._sync_job = sync_job
        self._summary_job = summary_job
        self._sync_guard = sync_guard or SyncGuard()
        self._summary_done = summary_done
        self.sync_interval_hours = sync_interval_hours or settings.sync_interval_hours
        self.enable_sync = settings.enable_sync if enable_sync is None else enable_sync
        self.run_sync_on_startup = (
            settings.run_sync_on_startup if run_sync_on_startup is None else run_sync_on_startup
        )
        self.summary_time: time = parse_clock_time(daily_summary_time or settings.daily_summary_time)
        self.enable_daily_summary = (
            settings.enable_daily_summary if enable_daily_summary is None else enable_daily_summary
        )

        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False
        self._summary_lock = asyncio.Lock()
        self._summary_sent_on: Optional[date] = None
        self._last_sync_result: Any = None

    async def start(self) -> None:
        """Start the scheduler and register its jobs."""
        if self._running:
            logger.warning("Notification scheduler already running")
            return

        self._scheduler = AsyncIOScheduler(timezone=self._clock.tz)

        if self.enable_sync:
            job_kwargs = {}
            if self.run_sync_on_startup:
                job_kwargs["next_run_time"] = self._clock.now()
            self._scheduler.add_job(
                self.tick,
                "interval",
                hours=self.sync_interval_hours,
                id=SYNC_JOB_ID,
                name="SLA Alert Sync Job",
                misfire_grace_time=300,
                max_instances=1,
                coalesce=True,
                replace_existing=True,
                **job_kwargs
            )

        if self.enable_daily_summary:
            self._scheduler.add_job(
                self.run_daily_summary_if_due,
                "cron",
                hour=self.summary_time.hour,
                minute=self.summary_time.minute,
                timezone=self._clock.tz,
                id=SUMMARY_JOB_ID,
                name="Daily Summary Job",
                misfire_grace_time=3600,
                max_instances=1,
                coalesce=True,
                replace_existing=True
            )

        self._scheduler.start()
        self._running = True

        logger.info(
            "Notification scheduler started",
            extra={
                "sync_enabled": self.enable_sync,
                "sync_interval_hours": self.sync_interval_hours,
                "run_sync_on_startup": self.run_sync_on_startup,
                "daily_summary_enabled": self.enable_daily_summary,
                "daily_summary_time": self.summary_time.strftime("%H:%M")
            }
        )

    async def stop(self) -> None:
        """Stop the scheduler gracefully."""
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=False)

        self._running = False
        logger.info("Notification scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def summary_sent_on(self) -> Optional[date]:
        return self._summary_sent_on

    async def tick(self) -> bool:
        """
        One sync run followed by a daily summary check.

        Returns False when skipped because another sync cycle, scheduled or
        manual, is still running. Job failures are logged and never raised
        into the scheduler.
        """
        try:
            async with self._sync_guard.hold("scheduler"):
                try:
                    with log_latency(logger, "alert_sync_tick"):
                        self._last_sync_result = await self._sync_job()
                except Exception:
                    logger.exception("Alert sync tick failed")

                await self.run_daily_summary_if_due()
        except SyncAlreadyRunning:
            return False
        return True

    async def run_daily_summary_if_due(self) -> bool:
        """
        Send today's summary when its time has come and it has not gone out yet.

        The day is only marked done after the summary job succeeds, so a
        failure is retried at the next tick of the same day. A fresh process
        first asks ``summary_done`` whether an earlier one already covered
        today; if that check fails the summary waits for the next tick.
        """
        if not self.enable_daily_summary:
            return False

        local_now = self._clock.local_now()
        today = local_now.date()
        if self._summary_sent_on == today or local_now.time() < self.summary_time:
            return False
        if self._summary_lock.locked():
            return False

        async with self._summary_lock:
            if self._summary_sent_on == today:
                return False
            if self._summary_done is not None:
                try:
                    already_done = await self._summary_done(today)
                except Exception:
                    logger.exception("Daily summary check failed", extra={"day": today.isoformat()})
                    return False
                if already_done:
                    self._summary_sent_on = today
                    logger.info("Daily summary already recorded for today", extra={"day": today.isoformat()})
                    return False
            try:
                await self._summary_job(today)
            except Exception:
                logger.exception("Daily summary failed, will retry", extra={"day": today.isoformat()})
                return False

            self._summary_sent_on = today
            logger.info("Daily summary done", extra={"day": today.isoformat()})
            return True

    def state(self) -> dict:
        jobs = []
        if self._scheduler is not None and self._running:
            for job in self._scheduler.get_jobs():
                next_run = job.next_run_time.isoformat() if job.next_run_time else None
                jobs.append({"id": job.id, "next_run_time": next_run})
        return {
            "running": self._running,
            "sync_enabled": self.enable_sync,
            "daily_summary_enabled": self.enable_daily_summary,
            "sync_running": self._sync_guard.busy,
            "daily_summary_sent_on": self._summary_sent_on.isoformat() if self._summary_sent_on else None,
            "jobs": jobs
        }
