"""
Observability module: Metrics and structured logging.
"""

from committer.observability.metrics import MetricsCollector, Counter, Gauge, Histogram
from committer.observability.logging import StructuredLogger, LogLevel, setup_logging

__all__ = [
    "MetricsCollector",
    "Counter",
    "Gauge",
    "Histogram",
    "StructuredLogger",
    "LogLevel",
    "setup_logging",
]
