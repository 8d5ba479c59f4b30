"""
Predictor Service Integration
=============================

HTTP client for the external breach-probability predictor:
- POST /predecir            single-request scoring
- POST /modelo/reentrenar   retraining on labeled history
- GET  /health              liveness and model state

Wraps calls in a circuit breaker so a dead predictor fails fast instead of
stalling every item of a cycle on its timeout.
"""

import time
from typing import Optional

import httpx
from pydantic import ValidationError

from sla_sentinel.config import settings
from sla_sentinel.core import (
    InsufficientTrainingData,
    PredictorRejected,
    PredictorUnavailable,
)
from sla_sentinel.prediction.application import IPredictionGateway
from sla_sentinel.prediction.application.dto import (
    PredictorHealthPayload,
    PredictRequestPayload,
    PredictResponsePayload,
    TrainingPayload,
    TrainResponsePayload,
)
from sla_sentinel.prediction.domain import PredictorVerdict
from sla_sentinel.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

MIN_TRAINING_SAMPLES = 10


class CircuitState:
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Fails predictor calls fast after repeated outages.

    ``failure_threshold`` consecutive failures open the circuit. Once
    ``recovery_timeout`` seconds have passed exactly one call is let through
    as a probe (half-open) and the timer restarts, so concurrent callers keep
    failing fast while it is in flight. Success closes the circuit; failure
    keeps it open. A probe that never reports back (cancelled, or answered
    with a 4xx) just leaves the circuit open until the next window.
    """

    def __init__(self, failure_threshold: int = 5, recovery_timeout: float = 60.0):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._consecutive_failures = 0
        self._opened_at: Optional[float] = None
        self._probing = False

    @property
    def state(self) -> str:
        if self._opened_at is None:
            return CircuitState.CLOSED
        if time.monotonic() - self._opened_at >= self.recovery_timeout:
            return CircuitState.HALF_OPEN
        return CircuitState.OPEN

    def allow_request(self) -> bool:
        state = self.state
        if state == CircuitState.CLOSED:
            return True
        if state == CircuitState.OPEN:
            return False
        self._opened_at = time.monotonic()
        self._probing = True
        return True

    def record_success(self) -> None:
        if self._opened_at is not None:
            logger.info("Predictor circuit closed")
        self._consecutive_failures = 0
        self._opened_at = None
        self._probing = False

    def record_failure(self) -> None:
        self._consecutive_failures += 1
        probe_failed = self._probing or self.state == CircuitState.HALF_OPEN
        if probe_failed or (self._opened_at is None and self._consecutive_failures >= self.failure_threshold):
            self._opened_at = time.monotonic()
            self._probing = False
            logger.warning(
                "Predictor circuit opened",
                extra={
                    "consecutive_failures": self._consecutive_failures,
                    "recovery_timeout": self.recovery_timeout,
                    "probe_failed": probe_failed
                }
            )


class PredictionGateway(IPredictionGateway):
    """
    Predictor client.

    Raises PredictorUnavailable for network errors, timeouts and an open
    circuit; PredictorRejected for non-2xx answers and unreadable bodies.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        training_timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        default_model_version: Optional[str] = None
    ):
        self._base_url = (base_url or settings.predictor_base_url).rstrip("/")
        self._timeout = timeout or settings.predictor_timeout_seconds
        self._training_timeout = training_timeout or settings.predictor_training_timeout_seconds
        self._http_client = client
        self._owns_client = client is None
        self._circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_threshold=settings.predictor_failure_threshold,
            recovery_timeout=settings.predictor_recovery_timeout
        )
        self._default_model_version = default_model_version or settings.predictor_model_version

    @property
    def circuit_state(self) -> str:
        return self._circuit_breaker.state

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    async def _send(
        self,
        method: str,
        path: str,
        timeout: float,
        json: Optional[dict] = None
    ) -> httpx.Response:
        url = f"{self._base_url}{path}"
        client = await self._get_client()
        try:
            response = await client.request(method, url, json=json, timeout=timeout)
        except httpx.TimeoutException as e:
            self._circuit_breaker.record_failure()
            raise PredictorUnavailable(f"timeout calling {path}", {"url": url}) from e
        except httpx.TransportError as e:
            self._circuit_breaker.record_failure()
            raise PredictorUnavailable(f"cannot reach {path}: {e}", {"url": url}) from e

        if response.status_code >= 500:
            self._circuit_breaker.record_failure()
        if not response.is_success:
            raise PredictorRejected(response.status_code, response.text)

        self._circuit_breaker.record_success()
        return response

    async def predict(
        self,
        request_id: int,
        elapsed_days: int,
        threshold_days: int,
        role_id: Optional[int]
    ) -> PredictorVerdict:
        if not self._circuit_breaker.allow_request():
            raise PredictorUnavailable("circuit open", {"request_id": request_id})

        body = PredictRequestPayload(
            id_solicitud=request_id,
            dias_transcurridos=elapsed_days,
            dias_umbral=threshold_days,
            id_rol=role_id or 0
        )
        response = await self._send("POST", "/predecir", self._timeout, json=body.model_dump())

        try:
            parsed = PredictResponsePayload.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise PredictorRejected(response.status_code, response.text) from e

        return PredictorVerdict(
            request_id=request_id,
            probability=parsed.probabilidad,
            classification=parsed.clasificacion,
            model_version=parsed.modelo_version or self._default_model_version,
            remaining_days=round(parsed.dias_restantes) if parsed.dias_restantes is not None else None,
            risk_level=parsed.nivel_riesgo
        )

    async def train(self, payload: TrainingPayload) -> TrainResponsePayload:
        sample_count = len(payload.solicitudes)
        if sample_count < MIN_TRAINING_SAMPLES:
            raise InsufficientTrainingData(sample_count, MIN_TRAINING_SAMPLES)

        logger.info(
            "Sending retraining request",
            extra={
                "samples": sample_count,
                "date_from": payload.fecha_desde.isoformat(),
                "date_to": payload.fecha_hasta.isoformat()
            }
        )
        response = await self._send(
            "POST", "/modelo/reentrenar", self._training_timeout,
            json=payload.model_dump(mode="json")
        )

        try:
            return TrainResponsePayload.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise PredictorRejected(response.status_code, response.text) from e

    async def health(self) -> PredictorHealthPayload:
        response = await self._send("GET", "/health", self._timeout)
        try:
            return PredictorHealthPayload.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise PredictorRejected(response.status_code, response.text) from e

    async def close(self) -> None:
        """Close the HTTP client if this gateway created it."""
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
        self._http_client = None
