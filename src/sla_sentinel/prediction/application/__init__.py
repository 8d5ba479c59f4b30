"""
Prediction Application Layer
============================

Contains:
- Services: evaluation cycle, training export and retraining
- DTOs: predictor wire payloads and API responses
- Interfaces: request repository and prediction gateway abstractions

This layer depends on the domain layer and on abstractions, never on
concrete infrastructure.
"""

from sla_sentinel.prediction.application.dto import (
    PredictRequestPayload,
    PredictResponsePayload,
    TrainingSample,
    TrainingPayload,
    TrainResponsePayload,
    PredictorHealthPayload,
    PredictionItem,
    SummaryResponse,
    PredictionsResponse,
    HealthResponse,
    TrainRequest,
    TrainingMetrics,
    TrainingResultResponse,
)
from sla_sentinel.prediction.application.services import (
    IRequestRepository,
    IPredictionGateway,
    EvaluationOrchestrator,
    TrainingDataExporter,
    ModelTrainingService,
)

__all__ = [
    # DTOs
    "PredictRequestPayload",
    "PredictResponsePayload",
    "TrainingSample",
    "TrainingPayload",
    "TrainResponsePayload",
    "PredictorHealthPayload",
    "PredictionItem",
    "SummaryResponse",
    "PredictionsResponse",
    "HealthResponse",
    "TrainRequest",
    "TrainingMetrics",
    "TrainingResultResponse",
    # Services
    "EvaluationOrchestrator",
    "TrainingDataExporter",
    "ModelTrainingService",
    # Interfaces
    "IRequestRepository",
    "IPredictionGateway",
]
