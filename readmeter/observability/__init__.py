"""
Observability module - Logging, Metrics, and Tracing.
"""

from readmeter.observability.logging import get_logger, log_context, setup_logging
from readmeter.observability.metrics import metrics
from readmeter.observability.tracing import setup_tracing

__all__ = [
    "get_logger",
    "log_context",
    "setup_logging",
    "metrics",
    "setup_tracing",
]
