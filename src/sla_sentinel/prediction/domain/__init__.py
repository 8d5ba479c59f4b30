"""
Prediction Domain Layer
=======================

Entities and value objects for SLA risk evaluation.
No framework or infrastructure dependencies.
"""

from sla_sentinel.prediction.domain.entities import (
    SlaConfig,
    ServiceRequest,
    PredictorVerdict,
    PredictionResult,
    ItemFailure,
    RiskSummary,
    CycleReport,
    TrainingOutcome,
)
from sla_sentinel.prediction.domain.value_objects import (
    RiskPolicy,
    RiskAssessment,
    RiskClassifier,
    DEFAULT_POLICY,
    tier_rank,
    at_or_above,
)

__all__ = [
    "SlaConfig",
    "ServiceRequest",
    "PredictorVerdict",
    "PredictionResult",
    "ItemFailure",
    "RiskSummary",
    "CycleReport",
    "TrainingOutcome",
    "RiskPolicy",
    "RiskAssessment",
    "RiskClassifier",
    "DEFAULT_POLICY",
    "tier_rank",
    "at_or_above",
]
