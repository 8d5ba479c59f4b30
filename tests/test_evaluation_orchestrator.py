"""
Tests for EvaluationOrchestrator: fan-out, failure isolation and aggregation.
"""

import asyncio
from datetime import date, datetime, timedelta, timezone
from typing import List

import pytest

from sla_sentinel.config import RequestState, RiskTier
from sla_sentinel.core import (
    DependencyUnavailable,
    EvaluationTimeout,
    PersistenceFailure,
    PredictorRejected,
    PredictorUnavailable,
)
from sla_sentinel.prediction.application import EvaluationOrchestrator, IRequestRepository
from sla_sentinel.prediction.domain import ServiceRequest, SlaConfig
from sla_sentinel.prediction.infrastructure import SQLAlchemyRequestRepository
from sla_sentinel.shared.infrastructure.clock import TimeProvider

from conftest import FIXED_NOW, TODAY, FakePredictionGateway

FAST = SlaConfig(id=1, code="SLA-ALTA", request_type="ALTA_PERSONAL", days_threshold=5)


class InMemoryRequestRepository(IRequestRepository):

    def __init__(self, requests: List[ServiceRequest], error: Exception = None):
        self.requests = requests
        self.error = error

    async def list_active_requests(self):
        if self.error:
            raise self.error
        return list(self.requests)

    async def list_closed_requests_in_range(self, date_from, date_to):
        return []

    async def get_sla_config(self, sla_config_id):
        return FAST if sla_config_id == FAST.id else None


def active(request_id: int, days_ago: int, config=FAST, **kwargs) -> ServiceRequest:
    return ServiceRequest(
        id=request_id,
        submission_date=TODAY - timedelta(days=days_ago),
        state=RequestState.ACTIVE,
        sla_config_id=config.id if config else None,
        role_id=1,
        sla_config=config,
        **kwargs
    )


def orchestrator_for(requests, gateway, clock, **kwargs) -> EvaluationOrchestrator:
    return EvaluationOrchestrator(
        InMemoryRequestRepository(requests),
        gateway,
        clock,
        max_concurrency=4,
        cycle_timeout=5,
        default_threshold_days=5,
        default_model_version="Docker-v1",
        **kwargs
    )


async def test_failed_items_are_excluded_from_results_and_summary(clock):
    requests = [active(i, 2) for i in range(1, 8)]
    gateway = FakePredictionGateway({
        2: PredictorUnavailable("timeout calling /predecir"),
        5: PredictorRejected(500, "boom"),
        6: RuntimeError("unexpected"),
    }, default=0.3)

    report = await orchestrator_for(requests, gateway, clock).evaluate()

    assert len(report.results) == 4
    assert report.summary.total_analyzed == 4
    assert {f.request_id for f in report.failures} == {2, 5, 6}
    assert {f.error_type for f in report.failures} == {"PredictorUnavailable", "PredictorRejected", "RuntimeError"}
    assert report.active_request_ids == list(range(1, 8))


async def test_results_sorted_by_probability_descending(clock):
    requests = [active(1, 0), active(2, 0), active(3, 0), active(4, 0)]
    gateway = FakePredictionGateway({1: 0.2, 2: 0.9, 3: 0.5, 4: 0.9})

    report = await orchestrator_for(requests, gateway, clock).evaluate()

    assert [r.request_id for r in report.results] == [2, 4, 3, 1]


async def test_remaining_days_computed_from_threshold_and_elapsed(clock):
    gateway = FakePredictionGateway({1: 0.65})

    report = await orchestrator_for([active(1, 4)], gateway, clock).evaluate()
    result = report.results[0]

    assert result.elapsed_days == 4
    assert result.threshold_days == 5
    assert result.remaining_days == result.threshold_days - result.elapsed_days == 1
    assert result.risk_tier == RiskTier.CRITICAL
    assert "last day of SLA window" in result.risk_factors
    assert gateway.calls[0] == {"request_id": 1, "elapsed_days": 4, "threshold_days": 5, "role_id": 1}


async def test_today_is_taken_once_per_cycle():
    calls = []
    start = datetime(2026, 10, 20, 4, 59, 59, tzinfo=timezone.utc)

    def ticking_now():
        # Every read moves the clock forward an hour, across local midnight
        calls.append(1)
        return start + timedelta(hours=len(calls))

    clock = TimeProvider(-5, "America/Lima", now_func=ticking_now)
    requests = [active(i, 0) for i in range(1, 6)]
    for r in requests:
        r.submission_date = date(2026, 10, 15)

    report = await orchestrator_for(requests, FakePredictionGateway(), clock).evaluate()

    assert {r.elapsed_days for r in report.results} == {(report.today - date(2026, 10, 15)).days}


async def test_missing_config_defaults_threshold_and_metadata(clock, caplog):
    gateway = FakePredictionGateway({1: 0.1})
    request = active(1, 1, config=None)

    with caplog.at_level("WARNING"):
        report = await orchestrator_for([request], gateway, clock).evaluate()

    result = report.results[0]
    assert result.threshold_days == 5
    assert result.threshold_defaulted is True
    assert result.sla_code == "UNKNOWN"
    assert result.request_type == "UNKNOWN"
    assert result.role_name == "UNKNOWN"
    assert result.personnel_name == ""
    assert result.personnel_email == ""
    assert "SLA threshold defaulted" in caplog.text


async def test_duplicate_requests_are_evaluated_once(clock):
    gateway = FakePredictionGateway()

    report = await orchestrator_for([active(1, 1), active(1, 1)], gateway, clock).evaluate()

    assert len(report.results) == 1
    assert len(gateway.calls) == 1


async def test_summary_counts_and_mean(clock):
    requests = [active(1, 0), active(2, 0), active(3, 0), active(4, 4)]
    gateway = FakePredictionGateway({1: 0.9, 2: 0.65, 3: 0.1, 4: 0.45})

    report = await orchestrator_for(requests, gateway, clock).evaluate()
    summary = report.summary

    assert summary.total_critical == 1
    assert summary.total_high == 2
    assert summary.total_medium == 0
    assert summary.total_low == 1
    assert summary.mean_probability == pytest.approx(0.525)
    assert summary.evaluated_at == FIXED_NOW


async def test_critical_view_is_filtered_from_the_same_results(clock):
    requests = [active(1, 0), active(2, 0), active(3, 0)]
    gateway = FakePredictionGateway({1: 0.9, 2: 0.65, 3: 0.1})

    report = await orchestrator_for(requests, gateway, clock).evaluate()

    assert [r.request_id for r in report.critical_view(10)] == [1, 2]
    assert [r.request_id for r in report.critical_view(1)] == [1]


async def test_list_failure_surfaces_as_dependency_unavailable(clock):
    repo = InMemoryRequestRepository([], error=PersistenceFailure("db down"))
    orchestrator = EvaluationOrchestrator(repo, FakePredictionGateway(), clock, cycle_timeout=5)

    with pytest.raises(DependencyUnavailable):
        await orchestrator.evaluate()


async def test_cycle_deadline_raises_timeout(clock):

    class SlowGateway(FakePredictionGateway):
        async def predict(self, *args, **kwargs):
            await asyncio.sleep(1)
            return await super().predict(*args, **kwargs)

    orchestrator = orchestrator_for([active(1, 0)], SlowGateway(), clock)
    orchestrator._cycle_timeout = 0.05

    with pytest.raises(EvaluationTimeout):
        await orchestrator.evaluate()


async def test_concurrency_is_bounded(clock):
    in_flight = 0
    peak = 0

    class CountingGateway(FakePredictionGateway):
        async def predict(self, *args, **kwargs):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return await super().predict(*args, **kwargs)

    requests = [active(i, 0) for i in range(1, 13)]
    report = await orchestrator_for(requests, CountingGateway(), clock).evaluate()

    assert len(report.results) == 12
    assert peak <= 4


async def test_sqlalchemy_repository_feeds_the_cycle(seeded_db, test_db, clock):
    gateway = FakePredictionGateway({101: 0.65, 102: 0.2, 103: 0.05})
    orchestrator = EvaluationOrchestrator(SQLAlchemyRequestRepository(test_db), gateway, clock, cycle_timeout=5)

    report = await orchestrator.evaluate()
    by_id = {r.request_id: r for r in report.results}

    assert set(by_id) == {101, 102, 103}
    assert by_id[101].remaining_days == 1
    assert by_id[101].risk_tier == RiskTier.CRITICAL
    assert by_id[101].personnel_name == "Ana Torres"
    assert by_id[101].personnel_email == "ana.torres@example.com"
    assert by_id[102].remaining_days == -1
    assert by_id[102].is_breached
    assert by_id[103].sla_code == "SLA-REEMPLAZO"
    assert by_id[103].role_name == "Analista"
