"""
SLA Sentinel - Main Application
===============================

SLA risk evaluation and alerting service.

Modules:
- Prediction: Score active requests for SLA breach risk, retrain the model
- Alerting: Persist alerts, email notifications, daily summary

Each module is split into interfaces (routes), application (services, DTOs),
domain (entities, classifier) and infrastructure (SQLAlchemy, predictor
client, SMTP, scheduler).
"""

from contextlib import asynccontextmanager
from datetime import date
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

# Configuration and Core
from sla_sentinel.config import settings
from sla_sentinel.core import ApplicationException

# Infrastructure
from sla_sentinel.infrastructure.database import (
    close_database,
    create_tables,
    get_session_context,
    init_database,
)
from sla_sentinel.prediction.infrastructure import PredictionGateway
from sla_sentinel.alerting.application import SyncGuard
from sla_sentinel.alerting.infrastructure import NotificationScheduler, SmtpMailTransport
from sla_sentinel.alerting.interfaces.controllers import (
    build_alert_sync_service,
    build_notification_service,
)

# Module Routers
from sla_sentinel.prediction.interfaces import prediction_router
from sla_sentinel.alerting.interfaces import alerting_router

# Shared
from sla_sentinel.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    application_exception_handler,
    global_exception_handler,
)
from sla_sentinel.shared.infrastructure import TimeProvider, get_logger, setup_logging

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Startup wires logging, the database, the shared clock, predictor client
    and mail transport, then starts the scheduler. Shutdown releases them in
    reverse order so no job runs against a closed client or pool.
    """
    setup_logging(settings.log_level, settings.environment)
    logger.info("Starting SLA Sentinel", extra={
        "version": settings.app_version,
        "environment": settings.environment
    })

    init_database()

    if settings.create_tables_on_startup:
        # Server still starts without a database; DB-backed endpoints will fail
        try:
            await create_tables()
        except Exception as e:
            logger.warning("Database not available - running in degraded mode", extra={"error": str(e)})

    clock = TimeProvider(settings.operating_utc_offset_hours, settings.operating_timezone_name)
    gateway = PredictionGateway()
    mail_transport = SmtpMailTransport()
    sync_guard = SyncGuard()

    app.state.clock = clock
    app.state.prediction_gateway = gateway
    app.state.mail_transport = mail_transport
    app.state.sync_guard = sync_guard

    async def alert_sync_job():
        """Background evaluation + alert sync."""
        async with get_session_context() as session:
            return await build_alert_sync_service(session, gateway, clock, mail_transport).run()

    async def daily_summary_job(day: date):
        async with get_session_context() as session:
            await build_notification_service(session, mail_transport, clock).send_daily_summary(day)

    async def daily_summary_done(day: date) -> bool:
        async with get_session_context() as session:
            return await build_notification_service(session, mail_transport, clock).daily_summary_done(day)

    scheduler = NotificationScheduler(
        clock,
        alert_sync_job,
        daily_summary_job,
        sync_guard=sync_guard,
        summary_done=daily_summary_done
    )
    await scheduler.start()
    app.state.scheduler = scheduler

    logger.info("SLA Sentinel started successfully")

    yield

    logger.info("Shutting down SLA Sentinel")

    await scheduler.stop()
    await gateway.close()
    await close_database()

    logger.info("SLA Sentinel shutdown complete")


app = FastAPI(
    title="SLA Sentinel API",
    description="""
    ## SLA Risk Evaluation & Alerting

    Scores every active service request for the risk of breaching its SLA
    window, keeps one durable alert per at-risk request and emails the
    people responsible.

    ---

    ### Predictions (`/predicciones`)

    - `GET /predicciones/actuales` - Ranked predictions for all active requests
    - `GET /predicciones/criticas` - Critical and high risk requests only
    - `GET /predicciones/resumen` - Aggregated risk summary
    - `GET /predicciones/salud` - Predictor health
    - `POST /predicciones/entrenar` - Retrain the predictor on closed requests

    ### Alerts (`/alertas`)

    - `GET /alertas` - Open alerts
    - `POST /alertas/sincronizar` - Run one evaluation + alert sync now
    - `PATCH /alertas/{id}/leida` - Mark an alert as read
    - `DELETE /alertas/{id}` - Dismiss an alert
    - `GET /alertas/correos` - Recent notification attempts
    - `POST /alertas/difusion` - Broadcast an email to assigned personnel

    ---

    ### Risk tiers

    | Tier | Condition |
    |------|-----------|
    | CRITICAL | p >= 0.8, or p >= 0.6 with at most 1 day left |
    | HIGH | p >= 0.6, or p >= 0.4 with at most 2 days left |
    | MEDIUM | p >= 0.4, or at most 3 days left |
    | LOW | everything else |
    """,
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
# The last middleware added runs first: correlation id wraps the access log
app.add_middleware(LoggingMiddleware)
app.add_middleware(CorrelationIDMiddleware)
app.add_exception_handler(ApplicationException, application_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)

app.include_router(prediction_router)
app.include_router(alerting_router)


@app.get("/health", tags=["Health"], responses={
    200: {
        "description": "Process is up; scheduler and predictor circuit state attached",
        "content": {
            "application/json": {
                "example": {
                    "status": "healthy",
                    "version": "1.0.0",
                    "environment": "development",
                    "checks": {
                        "scheduler": "running",
                        "predictor_circuit": "closed"
                    }
                }
            }
        }
    }
})
async def health_check(request: Request):
    """
    Liveness probe. Always 200 while the process serves requests; the
    checks show whether background jobs are scheduled and whether the
    predictor circuit is open.
    """
    scheduler = getattr(request.app.state, "scheduler", None)
    gateway = getattr(request.app.state, "prediction_gateway", None)

    checks = {
        "scheduler": "running" if scheduler and scheduler.is_running else "stopped",
        "predictor_circuit": gateway.circuit_state if gateway else "not_initialized"
    }
    if scheduler is not None:
        checks["scheduler_state"] = scheduler.state()

    return {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
        "checks": checks
    }


@app.get("/", tags=["Root"])
async def root():
    """Service index."""
    return {
        "service": "SLA Sentinel",
        "version": settings.app_version,
        "docs": "/docs",
        "health": "/health",
        "modules": {
            "prediction": {"prefix": "/predicciones"},
            "alerting": {"prefix": "/alertas"}
        }
    }


# Local run: python -m sla_sentinel.main

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "sla_sentinel.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level="info"
    )
