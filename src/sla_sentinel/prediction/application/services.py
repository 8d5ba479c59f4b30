"""
Prediction Application Services
===============================

Application services orchestrate business logic and coordinate between
domain entities, repositories and the external predictor.

- EvaluationOrchestrator: one risk-evaluation cycle over all active requests
- TrainingDataExporter: maps closed requests to the predictor's training shape
- ModelTrainingService: validates a date range and triggers retraining
"""

import asyncio
from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import List, Optional, Sequence, Union

from sla_sentinel.config import settings
from sla_sentinel.core import (
    DependencyUnavailable,
    EvaluationTimeout,
    PredictorRejected,
    PredictorUnavailable,
    RepositoryException,
    ValidationException,
)
from sla_sentinel.prediction.application.dto import (
    PredictorHealthPayload,
    TrainingPayload,
    TrainingSample,
    TrainResponsePayload,
)
from sla_sentinel.prediction.domain import (
    CycleReport,
    ItemFailure,
    PredictionResult,
    PredictorVerdict,
    RiskClassifier,
    RiskSummary,
    ServiceRequest,
    SlaConfig,
    TrainingOutcome,
)
from sla_sentinel.shared.infrastructure.clock import TimeProvider
from sla_sentinel.shared.infrastructure.logging import get_logger, log_latency

logger = get_logger(__name__)

UNKNOWN = "UNKNOWN"
TRAINING_UNKNOWN = "DESCONOCIDO"


# ========== Repository / Gateway Interfaces (Dependency Inversion) ==========

class IRequestRepository(ABC):
    """Read access to requests and their SLA configuration."""

    @abstractmethod
    async def list_active_requests(self) -> List[ServiceRequest]:
        """Requests in an active state with no intake date."""

    @abstractmethod
    async def list_closed_requests_in_range(
        self,
        date_from: date,
        date_to: date
    ) -> List[ServiceRequest]:
        """Closed requests submitted within [date_from, date_to]."""

    @abstractmethod
    async def get_sla_config(self, sla_config_id: int) -> Optional[SlaConfig]:
        """SLA config by id."""


class IPredictionGateway(ABC):
    """Client of the external breach-probability predictor."""

    @abstractmethod
    async def predict(
        self,
        request_id: int,
        elapsed_days: int,
        threshold_days: int,
        role_id: Optional[int]
    ) -> PredictorVerdict:
        """Score one request."""

    @abstractmethod
    async def train(self, payload: TrainingPayload) -> TrainResponsePayload:
        """Retrain the model on labeled history."""

    @abstractmethod
    async def health(self) -> PredictorHealthPayload:
        """Predictor liveness and model state."""

    @property
    @abstractmethod
    def circuit_state(self) -> str:
        """State of the gateway's circuit breaker."""


# ========== Application Services ==========

ItemOutcome = Union[PredictionResult, ItemFailure]


class EvaluationOrchestrator:
    """
    Runs one evaluation cycle: FETCH -> EVALUATE_ITEM* -> AGGREGATE.

    Every item in a cycle is measured against the same ``today``. Items
    whose prediction fails are reported as ItemFailure and left out of the
    ranking and summary; they never fail the cycle.
    """

    def __init__(
        self,
        request_repository: IRequestRepository,
        gateway: IPredictionGateway,
        clock: TimeProvider,
        classifier: Optional[RiskClassifier] = None,
        max_concurrency: Optional[int] = None,
        cycle_timeout: Optional[float] = None,
        default_threshold_days: Optional[int] = None,
        default_model_version: Optional[str] = None
    ):
        self._request_repo = request_repository
        self._gateway = gateway
        self._clock = clock
        self._classifier = classifier or RiskClassifier()
        self._max_concurrency = max_concurrency or settings.predictor_max_concurrency
        self._cycle_timeout = cycle_timeout or settings.cycle_timeout_seconds
        self._default_threshold = default_threshold_days or settings.default_threshold_days
        self._default_model_version = default_model_version or settings.predictor_model_version

    async def evaluate(self) -> CycleReport:
        """
        Evaluate every active request.

        Raises:
            DependencyUnavailable: If active requests cannot be listed
            EvaluationTimeout: If the cycle exceeds its deadline
        """
        try:
            requests = await self._request_repo.list_active_requests()
        except RepositoryException as e:
            logger.error("Could not list active requests", extra={"error": e.message})
            raise DependencyUnavailable("Request store", e.message, e.details) from e

        requests = self._unique(requests)
        today = self._clock.today()
        evaluated_at = self._clock.now()

        with log_latency(logger, "evaluation_cycle", requests=len(requests), today=today.isoformat()):
            outcomes = await self._fan_out(requests, today, evaluated_at)

        results = [o for o in outcomes if isinstance(o, PredictionResult)]
        failures = [o for o in outcomes if isinstance(o, ItemFailure)]
        results.sort(key=lambda r: (-r.probability, r.request_id))

        summary = RiskSummary.from_results(results, self._default_model_version, evaluated_at)

        logger.info(
            "Evaluation cycle finished",
            extra={
                "active_requests": len(requests),
                "evaluated": len(results),
                "failed": len(failures),
                "critical": summary.total_critical,
                "high": summary.total_high
            }
        )

        return CycleReport(
            today=today,
            evaluated_at=evaluated_at,
            active_request_ids=[r.id for r in requests],
            results=results,
            failures=failures,
            summary=summary
        )

    async def _fan_out(
        self,
        requests: Sequence[ServiceRequest],
        today: date,
        evaluated_at: datetime
    ) -> List[ItemOutcome]:
        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def bounded(request: ServiceRequest) -> ItemOutcome:
            async with semaphore:
                return await self._evaluate_item(request, today, evaluated_at)

        try:
            return await asyncio.wait_for(
                asyncio.gather(*(bounded(r) for r in requests)),
                timeout=self._cycle_timeout
            )
        except asyncio.TimeoutError as e:
            logger.error(
                "Evaluation cycle timed out, discarding partial results",
                extra={"timeout_seconds": self._cycle_timeout, "requests": len(requests)}
            )
            raise EvaluationTimeout(
                f"Evaluation cycle exceeded {self._cycle_timeout}s",
                {"requests": len(requests)}
            ) from e

    async def _evaluate_item(
        self,
        request: ServiceRequest,
        today: date,
        evaluated_at: datetime
    ) -> ItemOutcome:
        threshold, defaulted = self._threshold_for(request)
        elapsed = request.elapsed_days(today)

        try:
            verdict = await self._gateway.predict(request.id, elapsed, threshold, request.role_id)
        except PredictorUnavailable as e:
            logger.warning(
                "Predictor unavailable, request skipped this cycle",
                extra={"request_id": request.id, "error": e.message}
            )
            return ItemFailure(request.id, e.message, type(e).__name__)
        except PredictorRejected as e:
            logger.warning(
                "Predictor rejected request, skipped this cycle",
                extra={"request_id": request.id, "status_code": e.status_code, "body": e.body[:500]}
            )
            return ItemFailure(request.id, e.message, type(e).__name__)
        except Exception as e:
            logger.exception("Unexpected error evaluating request", extra={"request_id": request.id})
            return ItemFailure(request.id, str(e), type(e).__name__)

        remaining = threshold - elapsed
        if verdict.remaining_days is not None and verdict.remaining_days != remaining:
            logger.warning(
                "Predictor remaining days disagree with local calendar",
                extra={
                    "request_id": request.id,
                    "predictor_remaining": verdict.remaining_days,
                    "local_remaining": remaining
                }
            )

        assessment = self._classifier.classify(verdict.probability, remaining, threshold)
        config = request.sla_config

        return PredictionResult(
            request_id=request.id,
            sla_code=config.code if config else UNKNOWN,
            request_type=config.request_type if config else UNKNOWN,
            role_name=request.role_name or UNKNOWN,
            threshold_days=threshold,
            elapsed_days=elapsed,
            remaining_days=remaining,
            probability=verdict.probability,
            classification=verdict.classification,
            risk_tier=assessment.tier,
            risk_factors=list(assessment.factors),
            model_version=verdict.model_version,
            submission_date=request.submission_date,
            evaluated_at=evaluated_at,
            personnel_name=(request.personnel_name or "").strip(),
            personnel_email=request.personnel_email or "",
            threshold_defaulted=defaulted
        )

    def _threshold_for(self, request: ServiceRequest) -> tuple[int, bool]:
        config = request.sla_config
        if config is not None and config.days_threshold > 0:
            return config.days_threshold, False

        logger.warning(
            "SLA threshold defaulted",
            extra={
                "request_id": request.id,
                "sla_config_id": request.sla_config_id,
                "default_threshold_days": self._default_threshold
            }
        )
        return self._default_threshold, True

    @staticmethod
    def _unique(requests: Sequence[ServiceRequest]) -> List[ServiceRequest]:
        seen = set()
        unique = []
        for request in requests:
            if request.id in seen:
                continue
            seen.add(request.id)
            unique.append(request)
        return unique


class TrainingDataExporter:
    """Maps closed, labeled requests to the predictor's training payload."""

    def __init__(self, default_threshold_days: int = 5):
        self._default_threshold = default_threshold_days

    def is_exportable(self, request: ServiceRequest) -> bool:
        return request.is_closed and request.has_compliance_label and request.sla_days is not None

    def to_sample(self, request: ServiceRequest) -> TrainingSample:
        config = request.sla_config
        return TrainingSample(
            id_solicitud=request.id,
            fecha_solicitud=request.submission_date,
            fecha_ingreso=request.intake_date,
            num_dias_sla=request.sla_days,
            codigo_sla=config.code if config else f"SLA{request.sla_config_id}",
            tipo_solicitud=config.request_type if config else TRAINING_UNKNOWN,
            dias_umbral=config.days_threshold if config else self._default_threshold,
            id_rol_registro=request.role_id,
            nombre_rol=request.role_name or TRAINING_UNKNOWN,
            estado_cumplimiento_sla=request.compliance_tag,
            incumplio=1 if request.breached else 0
        )

    def export(
        self,
        requests: Sequence[ServiceRequest],
        date_from: date,
        date_to: date
    ) -> TrainingPayload:
        samples = [self.to_sample(r) for r in requests if self.is_exportable(r)]
        logger.info(
            "Training data exported",
            extra={"candidates": len(requests), "samples": len(samples)}
        )
        return TrainingPayload(solicitudes=samples, fecha_desde=date_from, fecha_hasta=date_to)


class ModelTrainingService:
    """Retrains the predictor on closed requests from a date range."""

    def __init__(
        self,
        request_repository: IRequestRepository,
        gateway: IPredictionGateway,
        clock: TimeProvider,
        exporter: Optional[TrainingDataExporter] = None
    ):
        self._request_repo = request_repository
        self._gateway = gateway
        self._clock = clock
        self._exporter = exporter or TrainingDataExporter(settings.default_threshold_days)

    def validate_range(self, date_from: date, date_to: date) -> None:
        if date_to < date_from:
            raise ValidationException(
                "fechaHasta must be on or after fechaDesde",
                {"fechaDesde": date_from.isoformat(), "fechaHasta": date_to.isoformat()}
            )
        if date_to > self._clock.today():
            raise ValidationException(
                "fechaHasta cannot be in the future",
                {"fechaHasta": date_to.isoformat(), "today": self._clock.today().isoformat()}
            )

    async def train(self, date_from: date, date_to: date) -> TrainingOutcome:
        """
        Export closed requests in range and send them for retraining.

        Raises:
            ValidationException: If the date range is invalid
            InsufficientTrainingData: If fewer than 10 labeled samples exist
            PredictorUnavailable / PredictorRejected: If the predictor fails
        """
        self.validate_range(date_from, date_to)

        requests = await self._request_repo.list_closed_requests_in_range(date_from, date_to)
        payload = self._exporter.export(requests, date_from, date_to)
        response = await self._gateway.train(payload)

        metrics = response.metricas.model_dump() if response.metricas else {}
        success = response.status.lower() == "success"

        logger.info(
            "Model retraining finished",
            extra={
                "success": success,
                "model_version": response.modelo_version,
                "records_used": response.registros_utilizados
            }
        )

        return TrainingOutcome(
            success=success,
            message=response.mensaje or ("Model retrained" if success else f"Predictor status: {response.status}"),
            date_from=date_from,
            date_to=date_to,
            model_version=response.modelo_version,
            records_used=response.registros_utilizados,
            balancing_strategy=response.estrategia_balanceo,
            metrics=metrics,
            trained_at=self._clock.now()
        )
