"""
Alerting Interfaces Layer
=========================

FastAPI route handlers for alerts and notifications.
"""

from sla_sentinel.alerting.interfaces.controllers import alerting_router

__all__ = ["alerting_router"]
