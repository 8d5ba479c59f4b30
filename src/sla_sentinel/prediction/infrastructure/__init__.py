"""
Prediction Infrastructure Layer
===============================

- Models: SQLAlchemy ORM models
- Repositories: read access to requests and SLA configs
- External: predictor HTTP client with circuit breaker
"""

from sla_sentinel.prediction.infrastructure.models import (
    SlaConfigModel,
    RoleModel,
    PersonnelModel,
    RequestModel,
)
from sla_sentinel.prediction.infrastructure.repositories import SQLAlchemyRequestRepository
from sla_sentinel.prediction.infrastructure.external import (
    CircuitBreaker,
    CircuitState,
    PredictionGateway,
    MIN_TRAINING_SAMPLES,
)

__all__ = [
    "SlaConfigModel",
    "RoleModel",
    "PersonnelModel",
    "RequestModel",
    "SQLAlchemyRequestRepository",
    "CircuitBreaker",
    "CircuitState",
    "PredictionGateway",
    "MIN_TRAINING_SAMPLES",
]
