"""
SLA Prediction Module
=====================

Bounded Context for SLA breach-risk evaluation.

Responsibilities:
- Select active requests and compute elapsed/remaining days
- Score each request with the external predictor
- Classify risk tiers and risk factors
- Aggregate per-cycle summaries
- Export closed requests for predictor retraining
"""

__version__ = "1.0.0"
