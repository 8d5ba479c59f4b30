"""
SLA Sentinel
============

SLA risk evaluation and alerting service.
"""

__version__ = "1.0.0"
