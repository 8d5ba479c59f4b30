"""
Test Configuration - Fixtures for async DB, test client, fake predictor and clock.

Each test gets its own in-memory SQLite database. SQLite needs explicit
BEGIN handling for SAVEPOINTs to work through aiosqlite.
"""

from datetime import date, datetime, timezone
from typing import Dict, List, Optional, Union

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import sla_sentinel.alerting.infrastructure.models  # noqa: F401
from sla_sentinel.alerting.application import IMailTransport
from sla_sentinel.alerting.interfaces.controllers import get_mail_transport
from sla_sentinel.config import RequestState
from sla_sentinel.core import InsufficientTrainingData, PredictorUnavailable
from sla_sentinel.infrastructure.database import Base, get_session
from sla_sentinel.main import app
from sla_sentinel.prediction.application import (
    IPredictionGateway,
    PredictorHealthPayload,
    TrainingPayload,
    TrainResponsePayload,
)
from sla_sentinel.prediction.domain import PredictorVerdict
from sla_sentinel.prediction.infrastructure.external import MIN_TRAINING_SAMPLES
from sla_sentinel.prediction.infrastructure.models import (
    PersonnelModel,
    RequestModel,
    RoleModel,
    SlaConfigModel,
)
from sla_sentinel.prediction.interfaces.controllers import get_clock, get_prediction_gateway
from sla_sentinel.shared.infrastructure.clock import TimeProvider

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# 2026-10-19 08:00 in Lima (UTC-5)
FIXED_NOW = datetime(2026, 10, 19, 13, 0, tzinfo=timezone.utc)
TODAY = date(2026, 10, 19)


class FakePredictionGateway(IPredictionGateway):
    """
    In-memory predictor.

    ``outcomes`` maps request id to a probability or to an exception to raise.
    """

    def __init__(self, outcomes: Optional[Dict[int, Union[float, Exception]]] = None, default: float = 0.1):
        self.outcomes = outcomes or {}
        self.default = default
        self.calls: List[dict] = []
        self.trained: List[TrainingPayload] = []
        self.health_error: Optional[Exception] = None

    async def predict(self, request_id, elapsed_days, threshold_days, role_id):
        self.calls.append({
            "request_id": request_id,
            "elapsed_days": elapsed_days,
            "threshold_days": threshold_days,
            "role_id": role_id
        })
        outcome = self.outcomes.get(request_id, self.default)
        if isinstance(outcome, Exception):
            raise outcome
        return PredictorVerdict(
            request_id=request_id,
            probability=outcome,
            classification=1 if outcome >= 0.5 else 0,
            model_version="Docker-v1",
            remaining_days=None,
            risk_level=None
        )

    async def train(self, payload: TrainingPayload) -> TrainResponsePayload:
        if len(payload.solicitudes) < MIN_TRAINING_SAMPLES:
            raise InsufficientTrainingData(len(payload.solicitudes), MIN_TRAINING_SAMPLES)
        self.trained.append(payload)
        return TrainResponsePayload(
            status="success",
            modelo_version="Docker-v2",
            registros_utilizados=len(payload.solicitudes),
            estrategia_balanceo="SMOTE",
            metricas={"accuracy": 0.9, "f1_score": 0.8, "roc_auc": 0.85, "precision": 0.8, "recall": 0.8}
        )

    async def health(self) -> PredictorHealthPayload:
        if self.health_error:
            raise self.health_error
        return PredictorHealthPayload(status="healthy", model_loaded=True, timestamp="2026-10-19T13:00:00Z", version="1.0.0")

    @property
    def circuit_state(self) -> str:
        return "closed"


class RecordingMailTransport(IMailTransport):
    """Collects outgoing mail; addresses in ``fail_for`` raise MailDeliveryException."""

    def __init__(self, fail_for=None):
        self.sent: List[dict] = []
        self.fail_for = set(fail_for or [])

    async def send(self, to, subject, html_body):
        from sla_sentinel.core import MailDeliveryException

        if self.fail_for.intersection(to):
            raise MailDeliveryException("mailbox unavailable", {"to": list(to)})
        self.sent.append({"to": list(to), "subject": subject, "html": html_body})

    async def send_with_attachment(self, to, subject, html_body, content, filename, content_type="application/octet-stream"):
        await self.send(to, subject, html_body)


@pytest.fixture
def clock():
    return TimeProvider(-5, "America/Lima", now_func=lambda: FIXED_NOW)


@pytest.fixture
def gateway():
    return FakePredictionGateway()


@pytest.fixture
def mail_transport():
    return RecordingMailTransport()


@pytest.fixture
async def test_engine():
    """Fresh in-memory database per test with SAVEPOINT support."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def test_db(test_engine):
    session_maker = async_sessionmaker(bind=test_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_maker() as session:
        yield session


@pytest.fixture
async def client(test_db, gateway, clock, mail_transport):
    """Async test client with DB, predictor, clock and mail overrides."""

    async def override_get_session():
        yield test_db
        await test_db.commit()

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_prediction_gateway] = lambda: gateway
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_mail_transport] = lambda: mail_transport

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


# ========== Seed helpers ==========

async def seed_request(
    session: AsyncSession,
    request_id: int,
    submitted: date,
    sla_config: Optional[SlaConfigModel] = None,
    role: Optional[RoleModel] = None,
    personnel: Optional[PersonnelModel] = None,
    state: str = RequestState.ACTIVE,
    intake_date: Optional[date] = None,
    sla_days: Optional[int] = None,
    compliance_tag: Optional[str] = None
) -> RequestModel:
    request = RequestModel(
        id=request_id,
        submission_date=submitted,
        state=state,
        sla_config_id=sla_config.id if sla_config else None,
        role_id=role.id if role else None,
        personnel_id=personnel.id if personnel else None,
        intake_date=intake_date,
        sla_days=sla_days,
        compliance_tag=compliance_tag
    )
    session.add(request)
    await session.flush()
    return request


@pytest.fixture
async def seeded_db(test_db):
    """Two SLA configs, one role, two people and three active requests."""
    sla_fast = SlaConfigModel(id=1, code="SLA-ALTA", request_type="ALTA_PERSONAL", days_threshold=5)
    sla_slow = SlaConfigModel(id=2, code="SLA-REEMPLAZO", request_type="REEMPLAZO", days_threshold=10)
    role = RoleModel(id=1, name="Analista")
    ana = PersonnelModel(id=1, first_names="Ana", last_names="Torres", corporate_email="ana.torres@example.com")
    luis = PersonnelModel(id=2, first_names="Luis", last_names="Vega", corporate_email="luis.vega@example.com")
    test_db.add_all([sla_fast, sla_slow, role, ana, luis])
    await test_db.flush()

    # elapsed 4 of 5 days, 1 day left
    await seed_request(test_db, 101, date(2026, 10, 15), sla_fast, role, ana)
    # elapsed 6 of 5 days, breached
    await seed_request(test_db, 102, date(2026, 10, 13), sla_fast, role, luis)
    # elapsed 1 of 10 days
    await seed_request(test_db, 103, date(2026, 10, 18), sla_slow, role, ana)
    await test_db.commit()

    return {
        "sla_fast": sla_fast,
        "sla_slow": sla_slow,
        "role": role,
        "ana": ana,
        "luis": luis,
    }
