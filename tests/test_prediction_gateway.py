"""
Tests for the predictor HTTP client using httpx.MockTransport.
"""

import asyncio
import json
from datetime import date

import httpx
import pytest

from sla_sentinel.core import InsufficientTrainingData, PredictorRejected, PredictorUnavailable
from sla_sentinel.prediction.application import TrainingPayload, TrainingSample
from sla_sentinel.prediction.infrastructure import CircuitBreaker, CircuitState, PredictionGateway

BASE_URL = "http://predictor.test"


def make_gateway(handler, **kwargs) -> PredictionGateway:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return PredictionGateway(base_url=BASE_URL, timeout=5, training_timeout=5, client=client, **kwargs)


def sample(i: int) -> TrainingSample:
    return TrainingSample(
        id_solicitud=i,
        fecha_solicitud=date(2026, 1, 1),
        fecha_ingreso=date(2026, 1, 4),
        num_dias_sla=3,
        codigo_sla="SLA-ALTA",
        tipo_solicitud="ALTA_PERSONAL",
        dias_umbral=5,
        id_rol_registro=1,
        nombre_rol="Analista",
        estado_cumplimiento_sla="CUMPLE_SLA",
        incumplio=0
    )


class TestPredict:

    async def test_sends_single_item_snake_case_payload(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "id_solicitud": 7, "probabilidad": 0.72, "clasificacion": 1,
                "dias_restantes": 2.0, "nivel_riesgo": "ALTO", "modelo_version": "Docker-v3"
            })

        gateway = make_gateway(handler)
        verdict = await gateway.predict(7, 3, 5, 2)

        assert seen["url"] == f"{BASE_URL}/predecir"
        assert seen["body"] == {"id_solicitud": 7, "dias_transcurridos": 3, "dias_umbral": 5, "id_rol": 2}
        assert verdict.probability == 0.72
        assert verdict.classification == 1
        assert verdict.remaining_days == 2
        assert verdict.model_version == "Docker-v3"

    async def test_reads_keys_case_insensitively(self):
        def handler(request):
            return httpx.Response(200, json={"ID_SOLICITUD": 7, "Probabilidad": 0.3, "Clasificacion": 0})

        verdict = await make_gateway(handler, default_model_version="Docker-v1").predict(7, 1, 5, None)

        assert verdict.probability == 0.3
        assert verdict.model_version == "Docker-v1"
        assert verdict.remaining_days is None

    async def test_missing_role_is_sent_as_zero(self):
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"id_solicitud": 1, "probabilidad": 0.1})

        await make_gateway(handler).predict(1, 0, 5, None)

        assert bodies[0]["id_rol"] == 0

    async def test_non_2xx_is_rejected_with_status_and_body(self):
        def handler(request):
            return httpx.Response(422, text="dias_umbral must be positive")

        with pytest.raises(PredictorRejected) as exc_info:
            await make_gateway(handler).predict(1, 0, 5, None)

        assert exc_info.value.status_code == 422
        assert "dias_umbral" in exc_info.value.body

    async def test_unreadable_body_is_rejected(self):
        def handler(request):
            return httpx.Response(200, text="<html>oops</html>")

        with pytest.raises(PredictorRejected):
            await make_gateway(handler).predict(1, 0, 5, None)

    async def test_network_error_is_unavailable(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(PredictorUnavailable):
            await make_gateway(handler).predict(1, 0, 5, None)

    async def test_timeout_is_unavailable(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(PredictorUnavailable):
            await make_gateway(handler).predict(1, 0, 5, None)


class TestCircuitBreaker:

    async def test_opens_after_repeated_server_errors_and_fails_fast(self):
        calls = []

        def handler(request):
            calls.append(1)
            return httpx.Response(503, text="busy")

        breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=60)
        gateway = make_gateway(handler, circuit_breaker=breaker)

        for _ in range(2):
            with pytest.raises(PredictorRejected):
                await gateway.predict(1, 0, 5, None)

        assert gateway.circuit_state == CircuitState.OPEN
        with pytest.raises(PredictorUnavailable):
            await gateway.predict(1, 0, 5, None)
        assert len(calls) == 2

    async def test_client_errors_do_not_trip_the_circuit(self):
        def handler(request):
            return httpx.Response(400, text="bad")

        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=60)
        gateway = make_gateway(handler, circuit_breaker=breaker)

        with pytest.raises(PredictorRejected):
            await gateway.predict(1, 0, 5, None)

        assert gateway.circuit_state == CircuitState.CLOSED

    def test_half_open_after_recovery_timeout(self):
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=0)
        breaker.record_failure()

        assert breaker.state == CircuitState.HALF_OPEN
        assert breaker.allow_request()

        breaker.record_success()
        assert breaker.state == CircuitState.CLOSED

    def test_failed_probe_reopens_the_circuit(self, monkeypatch):
        now = [100.0]
        monkeypatch.setattr("sla_sentinel.prediction.infrastructure.external.time.monotonic", lambda: now[0])
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=60)

        breaker.record_failure()
        now[0] = 161.0
        assert breaker.state == CircuitState.HALF_OPEN

        breaker.record_failure()
        assert breaker.state == CircuitState.OPEN
        assert not breaker.allow_request()

    def test_half_open_lets_a_single_probe_through(self, monkeypatch):
        now = [100.0]
        monkeypatch.setattr("sla_sentinel.prediction.infrastructure.external.time.monotonic", lambda: now[0])
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=60)
        breaker.record_failure()
        now[0] = 161.0

        assert breaker.allow_request()
        assert not breaker.allow_request()
        assert not breaker.allow_request()

        breaker.record_failure()
        now[0] = 200.0
        assert not breaker.allow_request()
        now[0] = 222.0
        assert breaker.allow_request()

    async def test_concurrent_calls_in_half_open_reach_the_predictor_once(self):
        calls = []

        async def handler(request):
            calls.append(request)
            await asyncio.sleep(0)
            return httpx.Response(200, json={"id_solicitud": 1, "probabilidad": 0.3, "clasificacion": 0})

        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=60)
        breaker.record_failure()
        # opened long enough ago to be half-open
        breaker._opened_at -= 61
        gateway = make_gateway(handler, circuit_breaker=breaker)

        outcomes = await asyncio.gather(
            *(gateway.predict(i, 0, 5, None) for i in range(1, 5)),
            return_exceptions=True
        )

        assert len(calls) == 1
        assert sum(isinstance(o, PredictorUnavailable) for o in outcomes) == 3
        assert breaker.state == CircuitState.CLOSED


class TestTrain:

    async def test_fewer_than_ten_samples_never_reach_the_predictor(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={"status": "success"})

        payload = TrainingPayload(
            solicitudes=[sample(i) for i in range(9)],
            fecha_desde=date(2026, 1, 1),
            fecha_hasta=date(2026, 3, 31)
        )

        with pytest.raises(InsufficientTrainingData) as exc_info:
            await make_gateway(handler).train(payload)

        assert exc_info.value.sample_count == 9
        assert exc_info.value.minimum == 10
        assert calls == []

    async def test_sends_payload_and_parses_metrics(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "status": "success",
                "modelo_version": "Docker-v2",
                "registros_utilizados": 10,
                "estrategia_balanceo": "SMOTE",
                "metricas": {"Accuracy": 0.91, "F1_Score": 0.8, "roc_auc": 0.88, "precision": 0.8, "recall": 0.79}
            })

        payload = TrainingPayload(
            solicitudes=[sample(i) for i in range(10)],
            fecha_desde=date(2026, 1, 1),
            fecha_hasta=date(2026, 3, 31)
        )
        response = await make_gateway(handler).train(payload)

        assert seen["url"] == f"{BASE_URL}/modelo/reentrenar"
        assert seen["body"]["fecha_desde"] == "2026-01-01"
        assert len(seen["body"]["solicitudes"]) == 10
        assert seen["body"]["solicitudes"][0]["fecha_solicitud"] == "2026-01-01"
        assert response.modelo_version == "Docker-v2"
        assert response.metricas.accuracy == 0.91
        assert response.metricas.f1_score == 0.8


class TestHealth:

    async def test_health(self):
        def handler(request):
            assert request.url.path == "/health"
            return httpx.Response(200, json={"status": "healthy", "model_loaded": True, "version": "1.2.0"})

        health = await make_gateway(handler).health()

        assert health.status == "healthy"
        assert health.model_loaded is True

    async def test_close_keeps_injected_client_open(self):
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200, json={})))
        gateway = PredictionGateway(base_url=BASE_URL, client=client)

        await gateway.close()

        assert not client.is_closed
        await client.aclose()
