"""
Prediction Controllers (API Routes)
===================================

FastAPI routes for SLA risk predictions.

Controllers are thin - they delegate to application services. Every view
(full list, critical-only, summary) is derived from one evaluation cycle.
"""

from typing import List

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from sla_sentinel.config import settings
from sla_sentinel.core import InsufficientTrainingData, PredictorRejected, PredictorUnavailable
from sla_sentinel.infrastructure.database import get_session
from sla_sentinel.prediction.application import (
    EvaluationOrchestrator,
    HealthResponse,
    IPredictionGateway,
    ModelTrainingService,
    PredictionItem,
    PredictionsResponse,
    SummaryResponse,
    TrainingMetrics,
    TrainingResultResponse,
    TrainRequest,
)
from sla_sentinel.prediction.domain import PredictionResult, RiskSummary, TrainingOutcome
from sla_sentinel.prediction.infrastructure import PredictionGateway, SQLAlchemyRequestRepository
from sla_sentinel.shared.infrastructure.clock import TimeProvider
from sla_sentinel.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/predicciones", tags=["SLA Predictions"])

DEFAULT_CRITICAL_LIMIT = 10
MAX_CRITICAL_LIMIT = 100


# ========== Example payloads for Swagger ==========

PREDICTION_ITEM_EXAMPLE = {
    "idSolicitud": 1042,
    "codigoSla": "SLA-ALTA",
    "tipoSolicitud": "ALTA_PERSONAL",
    "rolRegistro": "Analista",
    "diasUmbral": 5,
    "diasTranscurridos": 4,
    "diasRestantes": 1,
    "probabilidadIncumplimiento": 0.65,
    "prediccion": 1,
    "nivelRiesgo": "CRITICAL",
    "modeloVersion": "Docker-v1",
    "fechaSolicitud": "2026-10-15",
    "fechaPrediccion": "2026-10-19T13:00:00Z",
    "factoresRiesgo": [
        "last day of SLA window",
        "high breach probability per model",
        "80%+ of SLA window consumed (80%)"
    ],
    "nombrePersonal": "Ana Torres",
    "correoPersonal": "ana.torres@example.com"
}

SUMMARY_EXAMPLE = {
    "totalAnalizadas": 12,
    "totalCriticas": 2,
    "totalAltas": 3,
    "totalMedias": 4,
    "totalBajas": 3,
    "promedioRiesgo": 0.4812,
    "modeloVersion": "Docker-v1",
    "fechaAnalisis": "2026-10-19T13:00:00Z"
}


# ========== Dependencies ==========

def get_clock(request: Request) -> TimeProvider:
    """Operating clock shared by the app."""
    clock = getattr(request.app.state, "clock", None)
    if clock is None:
        clock = TimeProvider(settings.operating_utc_offset_hours, settings.operating_timezone_name)
        request.app.state.clock = clock
    return clock


def get_prediction_gateway(request: Request) -> IPredictionGateway:
    """Predictor client shared by the app (holds the connection pool)."""
    gateway = getattr(request.app.state, "prediction_gateway", None)
    if gateway is None:
        gateway = PredictionGateway()
        request.app.state.prediction_gateway = gateway
    return gateway


async def get_orchestrator(
    session: AsyncSession = Depends(get_session),
    gateway: IPredictionGateway = Depends(get_prediction_gateway),
    clock: TimeProvider = Depends(get_clock)
) -> EvaluationOrchestrator:
    return EvaluationOrchestrator(SQLAlchemyRequestRepository(session), gateway, clock)


async def get_training_service(
    session: AsyncSession = Depends(get_session),
    gateway: IPredictionGateway = Depends(get_prediction_gateway),
    clock: TimeProvider = Depends(get_clock)
) -> ModelTrainingService:
    return ModelTrainingService(SQLAlchemyRequestRepository(session), gateway, clock)


# ========== Mapping ==========

def to_prediction_item(result: PredictionResult) -> PredictionItem:
    return PredictionItem(
        request_id=result.request_id,
        sla_code=result.sla_code,
        request_type=result.request_type,
        role_name=result.role_name,
        threshold_days=result.threshold_days,
        elapsed_days=result.elapsed_days,
        remaining_days=result.remaining_days,
        probability=result.probability,
        classification=result.classification,
        risk_tier=result.risk_tier,
        model_version=result.model_version,
        submission_date=result.submission_date,
        evaluated_at=result.evaluated_at,
        risk_factors=result.risk_factors,
        personnel_name=result.personnel_name,
        personnel_email=result.personnel_email
    )


def to_summary_response(summary: RiskSummary) -> SummaryResponse:
    return SummaryResponse(
        total_analyzed=summary.total_analyzed,
        total_critical=summary.total_critical,
        total_high=summary.total_high,
        total_medium=summary.total_medium,
        total_low=summary.total_low,
        mean_probability=summary.mean_probability,
        model_version=summary.model_version,
        evaluated_at=summary.evaluated_at
    )


def to_training_response(outcome: TrainingOutcome) -> TrainingResultResponse:
    metrics = None
    if outcome.metrics:
        metrics = TrainingMetrics(
            accuracy=outcome.metrics.get("accuracy", 0.0),
            f1_score=outcome.metrics.get("f1_score", 0.0),
            roc_auc=outcome.metrics.get("roc_auc", 0.0),
            precision=outcome.metrics.get("precision", 0.0),
            recall=outcome.metrics.get("recall", 0.0)
        )
    return TrainingResultResponse(
        success=outcome.success,
        message=outcome.message,
        model_version=outcome.model_version,
        records_used=outcome.records_used,
        balancing_strategy=outcome.balancing_strategy,
        metrics=metrics,
        trained_at=outcome.trained_at,
        date_range=outcome.date_range
    )


def clamp_limit(limit: int) -> int:
    """Out-of-range limits fall back to the default instead of failing."""
    if limit < 1 or limit > MAX_CRITICAL_LIMIT:
        return DEFAULT_CRITICAL_LIMIT
    return limit


# ========== Route Handlers ==========

@router.get(
    "/actuales",
    response_model=PredictionsResponse,
    summary="Evaluate all active requests",
    description="""
    Runs one evaluation cycle over every active request and returns the
    ranked predictions (highest breach probability first) with the cycle
    summary.

    Requests the predictor could not score are left out and counted in
    `solicitudesOmitidas`.
    """,
    responses={
        200: {
            "description": "Current predictions",
            "content": {
                "application/json": {
                    "example": {
                        "resumen": SUMMARY_EXAMPLE,
                        "predicciones": [PREDICTION_ITEM_EXAMPLE],
                        "solicitudesOmitidas": 0
                    }
                }
            }
        },
        503: {"description": "Request store or cycle deadline unavailable"}
    }
)
async def get_current_predictions(
    orchestrator: EvaluationOrchestrator = Depends(get_orchestrator)
):
    report = await orchestrator.evaluate()
    return PredictionsResponse(
        summary=to_summary_response(report.summary),
        predictions=[to_prediction_item(r) for r in report.results],
        skipped=len(report.failures)
    )


@router.get(
    "/criticas",
    response_model=List[PredictionItem],
    summary="Critical and high risk requests",
    description="""
    CRITICAL and HIGH risk predictions, most probable first.

    `limite` must be between 1 and 100; other values fall back to 10.
    """,
    responses={
        200: {
            "description": "Critical predictions",
            "content": {"application/json": {"example": [PREDICTION_ITEM_EXAMPLE]}}
        }
    }
)
async def get_critical_predictions(
    limite: int = Query(DEFAULT_CRITICAL_LIMIT, description="Maximum number of items (1-100)"),
    orchestrator: EvaluationOrchestrator = Depends(get_orchestrator)
):
    report = await orchestrator.evaluate()
    return [to_prediction_item(r) for r in report.critical_view(clamp_limit(limite))]


@router.get(
    "/resumen",
    response_model=SummaryResponse,
    summary="Risk summary of the current cycle",
    responses={
        200: {
            "description": "Risk summary",
            "content": {"application/json": {"example": SUMMARY_EXAMPLE}}
        }
    }
)
async def get_summary(
    orchestrator: EvaluationOrchestrator = Depends(get_orchestrator)
):
    report = await orchestrator.evaluate()
    return to_summary_response(report.summary)


@router.get(
    "/salud",
    response_model=HealthResponse,
    summary="Predictor health",
    responses={
        200: {
            "description": "Predictor is reachable",
            "content": {
                "application/json": {
                    "example": {
                        "status": "healthy",
                        "modelLoaded": True,
                        "timestamp": "2026-10-19T13:00:00Z",
                        "version": "1.0.0",
                        "estadoCircuito": "closed"
                    }
                }
            }
        },
        503: {"description": "Predictor is unreachable"}
    }
)
async def get_predictor_health(
    gateway: IPredictionGateway = Depends(get_prediction_gateway),
    clock: TimeProvider = Depends(get_clock)
):
    try:
        health = await gateway.health()
    except (PredictorUnavailable, PredictorRejected) as e:
        logger.warning("Predictor health check failed", extra={"error": e.message})
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "unhealthy",
                "message": e.message,
                "timestamp": clock.now().isoformat()
            }
        )

    return HealthResponse(
        status=health.status,
        model_loaded=health.model_loaded,
        timestamp=health.timestamp,
        version=health.version,
        circuit_state=gateway.circuit_state
    )


@router.post(
    "/entrenar",
    response_model=TrainingResultResponse,
    summary="Retrain the predictor",
    description="""
    Exports closed requests submitted between `fechaDesde` and `fechaHasta`
    and sends them to the predictor for retraining.

    - `fechaHasta` must not be before `fechaDesde` nor in the future (400).
    - At least 10 labeled requests are required (400, `exitoso=false`).
    """,
    responses={
        400: {"description": "Invalid range or not enough training data"},
        503: {"description": "Predictor unavailable"}
    }
)
async def train_model(
    body: TrainRequest,
    training_service: ModelTrainingService = Depends(get_training_service)
):
    try:
        outcome = await training_service.train(body.date_from, body.date_to)
    except InsufficientTrainingData as e:
        failed = TrainingOutcome(
            success=False,
            message=e.message,
            date_from=body.date_from,
            date_to=body.date_to,
            records_used=e.sample_count
        )
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=to_training_response(failed).model_dump(by_alias=True, mode="json")
        )

    return to_training_response(outcome)


# Export router for inclusion in main app
prediction_router = router
