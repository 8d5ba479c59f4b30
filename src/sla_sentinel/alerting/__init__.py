"""
SLA Alerting Module
===================

Bounded Context for alerts raised from risk evaluations.

Responsibilities:
- Persist one open alert per (request, alert type)
- Resolve alerts whose condition no longer holds
- Email new alerts, the daily summary and broadcasts
- Schedule the periodic sync and the daily summary
"""

__version__ = "1.0.0"
