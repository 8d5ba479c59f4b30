"""
Prediction Interfaces Layer
===========================

FastAPI route handlers for SLA risk predictions.
"""

from sla_sentinel.prediction.interfaces.controllers import prediction_router

__all__ = ["prediction_router"]
