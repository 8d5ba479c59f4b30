"""
Shared Kernel Module
====================

Shared infrastructure used across all bounded contexts (prediction and
alerting).

Architecture Pattern: Modular Monolith
- Each module (prediction, alerting) is a bounded context
- Shared kernel contains only generic infrastructure

DO NOT add risk or alerting business logic to the shared kernel.
"""

__version__ = "1.0.0"
