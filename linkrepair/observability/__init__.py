"""
Observability Module.

- Structured logging with JSON output and correlation IDs
- Repair counters with Prometheus export
"""

from linkrepair.observability.logging import (
    configure_logging,
    get_logger,
    LogContext,
    correlation_id_var,
)
from linkrepair.observability.correlation import (
    CorrelationMiddleware,
    get_correlation_id,
)
from linkrepair.observability.metrics import (
    MetricsRegistry,
    get_metrics_registry,
)

__all__ = [
    # Logging
    "configure_logging",
    "get_logger",
    "LogContext",
    "correlation_id_var",
    # Correlation
    "CorrelationMiddleware",
    "get_correlation_id",
    # Metrics
    "MetricsRegistry",
    "get_metrics_registry",
]
