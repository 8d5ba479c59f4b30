"""
Infrastructure Layer
=====================

Low-level technical concerns shared by every bounded context:
- Logging setup
- Operating calendar clock
"""

from sla_sentinel.shared.infrastructure.clock import TimeProvider
from sla_sentinel.shared.infrastructure.logging import get_logger, setup_logging, log_latency

__all__ = ["TimeProvider", "get_logger", "setup_logging", "log_latency"]
