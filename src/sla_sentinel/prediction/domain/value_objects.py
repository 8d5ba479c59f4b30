"""
Risk Value Objects
==================

Immutable value objects for risk classification.

The classifier is a pure function of (probability, remaining days,
threshold days): no I/O, no clock, no stored state.
"""

import math
from dataclasses import dataclass, field
from typing import List, Tuple

from sla_sentinel.config import RiskTier, RISK_TIERS


# ========== Tier ordering ==========

_SEVERITY = {tier: rank for rank, tier in enumerate(reversed(RISK_TIERS))}


def tier_rank(tier: str) -> int:
    """Severity rank of a tier: LOW=0 ... CRITICAL=3."""
    return _SEVERITY[tier]


def at_or_above(tier: str, floor: str) -> bool:
    """True when ``tier`` is at least as severe as ``floor``."""
    return tier_rank(tier) >= tier_rank(floor)


# ========== Policy ==========

@dataclass(frozen=True)
class RiskPolicy:
    """Thresholds driving tier and factor derivation."""
    critical_probability: float = 0.8
    high_probability: float = 0.6
    medium_probability: float = 0.4
    last_day: int = 1
    two_days: int = 2
    three_days: int = 3
    heavy_consumption_pct: float = 80.0
    moderate_consumption_pct: float = 60.0


DEFAULT_POLICY = RiskPolicy()


@dataclass(frozen=True)
class RiskAssessment:
    """Outcome of classifying one prediction."""
    tier: str
    factors: Tuple[str, ...] = field(default_factory=tuple)


class RiskClassifier:
    """
    Derives a risk tier and human-readable risk factors.

    Tier rules are evaluated in order, first match wins:
        CRITICAL  p >= 0.8, or p >= 0.6 with at most 1 day left
        HIGH      p >= 0.6, or p >= 0.4 with at most 2 days left
        MEDIUM    p >= 0.4, or at most 3 days left
        LOW       otherwise
    """

    def __init__(self, policy: RiskPolicy = DEFAULT_POLICY):
        self.policy = policy

    def classify(
        self,
        probability: float,
        remaining_days: int,
        threshold_days: int
    ) -> RiskAssessment:
        p = self._normalize(probability)
        return RiskAssessment(
            tier=self.tier_for(p, remaining_days),
            factors=tuple(self.factors_for(p, remaining_days, threshold_days))
        )

    def tier_for(self, probability: float, remaining_days: int) -> str:
        policy = self.policy
        if probability >= policy.critical_probability or (
            probability >= policy.high_probability and remaining_days <= policy.last_day
        ):
            return RiskTier.CRITICAL
        if probability >= policy.high_probability or (
            probability >= policy.medium_probability and remaining_days <= policy.two_days
        ):
            return RiskTier.HIGH
        if probability >= policy.medium_probability or remaining_days <= policy.three_days:
            return RiskTier.MEDIUM
        return RiskTier.LOW

    def factors_for(
        self,
        probability: float,
        remaining_days: int,
        threshold_days: int
    ) -> List[str]:
        policy = self.policy
        factors = []

        if remaining_days <= 0:
            factors.append("SLA breached — deadline exceeded")
        elif remaining_days == policy.last_day:
            factors.append("last day of SLA window")
        elif remaining_days <= policy.two_days:
            factors.append("less than 48 hours to deadline")

        if probability >= policy.critical_probability:
            factors.append("very high breach probability per model")
        elif probability >= policy.high_probability:
            factors.append("high breach probability per model")

        consumed = self.consumed_percentage(remaining_days, threshold_days)
        if consumed >= policy.heavy_consumption_pct:
            factors.append(f"80%+ of SLA window consumed ({consumed:.0f}%)")
        elif consumed >= policy.moderate_consumption_pct:
            factors.append(f"60%+ of SLA window consumed ({consumed:.0f}%)")

        return factors

    @staticmethod
    def consumed_percentage(remaining_days: int, threshold_days: int) -> float:
        """Share of the SLA window already used; 100 when the window is empty."""
        if threshold_days <= 0:
            return 100.0
        return (threshold_days - remaining_days) / threshold_days * 100

    @staticmethod
    def _normalize(probability: float) -> float:
        if probability is None or math.isnan(probability):
            return 0.0
        return min(1.0, max(0.0, float(probability)))
