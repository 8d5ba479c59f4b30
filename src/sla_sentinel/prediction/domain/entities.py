"""
Prediction Domain Entities
==========================

Pure Python domain entities for SLA risk evaluation.

Requests and SLA configs are read-only snapshots of persisted rows;
prediction results and summaries are transient, rebuilt every cycle.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Optional, Sequence

from sla_sentinel.config import (
    RiskTier, ComplianceTag,
    ACTIVE_REQUEST_STATES, CLOSED_REQUEST_STATES
)


@dataclass
class SlaConfig:
    """Named SLA window."""
    id: int
    code: str
    request_type: str
    days_threshold: int
    is_active: bool = True
    description: Optional[str] = None


@dataclass
class ServiceRequest:
    """
    A tracked unit of work, with the descriptive metadata the pipeline needs.

    Navigation data (SLA config, role, personnel) may be missing; callers
    fall back to placeholders rather than failing.
    """

    id: int
    submission_date: date
    state: str
    sla_config_id: Optional[int] = None
    role_id: Optional[int] = None
    personnel_id: Optional[int] = None
    intake_date: Optional[date] = None
    sla_days: Optional[int] = None
    sla_summary: Optional[str] = None
    compliance_tag: Optional[str] = None

    sla_config: Optional[SlaConfig] = None
    role_name: Optional[str] = None
    personnel_name: Optional[str] = None
    personnel_email: Optional[str] = None

    @property
    def is_active(self) -> bool:
        """Active state and not yet delivered."""
        return self.state in ACTIVE_REQUEST_STATES and self.intake_date is None

    @property
    def is_closed(self) -> bool:
        return self.state in CLOSED_REQUEST_STATES

    @property
    def has_compliance_label(self) -> bool:
        tag = self.compliance_tag or ""
        return tag.startswith(ComplianceTag.MET_PREFIX) or tag.startswith(ComplianceTag.BREACHED_PREFIX)

    @property
    def breached(self) -> bool:
        return (self.compliance_tag or "").startswith(ComplianceTag.BREACHED_PREFIX.rstrip("_"))

    def elapsed_days(self, today: date) -> int:
        """Civil days between submission and ``today``."""
        return (today - self.submission_date).days


@dataclass
class PredictorVerdict:
    """Raw answer of the predictor for one request."""
    request_id: int
    probability: float
    classification: int
    model_version: str
    remaining_days: Optional[int] = None
    risk_level: Optional[str] = None


@dataclass
class PredictionResult:
    """Enriched per-request output of one evaluation cycle."""

    request_id: int
    sla_code: str
    request_type: str
    role_name: str
    threshold_days: int
    elapsed_days: int
    remaining_days: int
    probability: float
    classification: int
    risk_tier: str
    risk_factors: List[str]
    model_version: str
    submission_date: date
    evaluated_at: datetime
    personnel_name: str = ""
    personnel_email: str = ""
    threshold_defaulted: bool = False

    @property
    def is_breached(self) -> bool:
        return self.remaining_days <= 0


@dataclass(frozen=True)
class ItemFailure:
    """A request that could not be evaluated this cycle."""
    request_id: int
    reason: str
    error_type: str


@dataclass
class RiskSummary:
    """Aggregate view over one cycle's successful results."""

    total_analyzed: int
    total_critical: int
    total_high: int
    total_medium: int
    total_low: int
    mean_probability: float
    model_version: str
    evaluated_at: datetime

    @classmethod
    def from_results(
        cls,
        results: Sequence[PredictionResult],
        model_version: str,
        evaluated_at: datetime
    ) -> "RiskSummary":
        counts = {tier: 0 for tier in (RiskTier.CRITICAL, RiskTier.HIGH, RiskTier.MEDIUM, RiskTier.LOW)}
        for result in results:
            counts[result.risk_tier] += 1

        mean = sum(r.probability for r in results) / len(results) if results else 0.0

        return cls(
            total_analyzed=len(results),
            total_critical=counts[RiskTier.CRITICAL],
            total_high=counts[RiskTier.HIGH],
            total_medium=counts[RiskTier.MEDIUM],
            total_low=counts[RiskTier.LOW],
            mean_probability=round(mean, 4),
            model_version=results[0].model_version if results else model_version,
            evaluated_at=evaluated_at
        )


@dataclass
class CycleReport:
    """Everything one evaluation cycle produced."""

    today: date
    evaluated_at: datetime
    active_request_ids: List[int]
    results: List[PredictionResult]
    failures: List[ItemFailure]
    summary: RiskSummary

    def critical_view(self, limit: int) -> List[PredictionResult]:
        """CRITICAL and HIGH results, most probable first."""
        selected = [r for r in self.results if r.risk_tier in (RiskTier.CRITICAL, RiskTier.HIGH)]
        return selected[:limit]


@dataclass
class TrainingOutcome:
    """Result of a retraining request, as reported to callers."""

    success: bool
    message: str
    date_from: date
    date_to: date
    model_version: Optional[str] = None
    records_used: int = 0
    balancing_strategy: Optional[str] = None
    metrics: dict = field(default_factory=dict)
    trained_at: Optional[datetime] = None

    @property
    def date_range(self) -> str:
        return f"{self.date_from:%Y-%m-%d} a {self.date_to:%Y-%m-%d}"
