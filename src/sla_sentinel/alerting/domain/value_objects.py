"""
Alerting Value Objects
======================

Pure rules mapping a prediction to an alert condition and message.
"""

from sla_sentinel.config import AlertType
from sla_sentinel.prediction.domain import PredictionResult


def alert_type_for(result: PredictionResult) -> str:
    """Breached requests get their own alert type, everything else is at-risk."""
    return AlertType.BREACHED if result.is_breached else AlertType.AT_RISK


def build_alert_message(result: PredictionResult) -> str:
    days = result.remaining_days
    unit = "day" if abs(days) == 1 else "days"
    message = (
        f"Request #{result.request_id} ({result.sla_code}): {result.risk_tier} risk, "
        f"p={result.probability:.2f}, {days} {unit} remaining."
    )
    if result.risk_factors:
        message += " " + "; ".join(result.risk_factors)
    return message
