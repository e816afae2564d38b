"""
Metrics Collection and Export.

Counters for link repair activity with Prometheus-compatible export.
"""

from collections import defaultdict
from datetime import datetime
from typing import Any

import structlog

logger = structlog.get_logger(__name__)


class MetricsRegistry:
    """Central registry for counters and gauges."""

    def __init__(self):
        self._counters: dict[str, int] = defaultdict(int)
        self._gauges: dict[str, float] = {}
        self._start_time = datetime.utcnow()

    def increment_counter(self, name: str, value: int = 1, labels: dict[str, str] | None = None) -> None:
        """Increment a counter."""
        key = self._make_key(name, labels)
        self._counters[key] += value

    def set_gauge(self, name: str, value: float, labels: dict[str, str] | None = None) -> None:
        """Set a gauge value."""
        key = self._make_key(name, labels)
        self._gauges[key] = value

    def get_counter(self, name: str, labels: dict[str, str] | None = None) -> int:
        return self._counters.get(self._make_key(name, labels), 0)

    def _make_key(self, name: str, labels: dict[str, str] | None) -> str:
        """Create a metric key with labels."""
        if not labels:
            return name
        label_str = ",".join(f'{k}="{v}"' for k, v in sorted(labels.items()))
        return f"{name}{{{label_str}}}"

    def get_all_metrics(self) -> dict[str, Any]:
        """Get all metrics as a dictionary."""
        uptime = (datetime.utcnow() - self._start_time).total_seconds()

        return {
            "uptime_seconds": round(uptime, 2),
            "counters": dict(self._counters),
            "gauges": dict(self._gauges),
        }

    def get_prometheus_output(self) -> str:
        """Get all metrics in Prometheus format."""
        lines = []

        uptime = (datetime.utcnow() - self._start_time).total_seconds()
        lines.append("# HELP linkrepair_uptime_seconds Time since service start")
        lines.append("# TYPE linkrepair_uptime_seconds gauge")
        lines.append(f"linkrepair_uptime_seconds {uptime}")
        lines.append("")

        for key, value in self._counters.items():
            lines.append(f"linkrepair_{key} {value}")

        for key, value in self._gauges.items():
            lines.append(f"linkrepair_{key} {value}")

        return "\n".join(lines)

    def reset(self) -> None:
        self._counters.clear()
        self._gauges.clear()
        logger.info("Metrics reset")


_metrics_registry: MetricsRegistry | None = None


def get_metrics_registry() -> MetricsRegistry:
    """Get the global metrics registry."""
    global _metrics_registry
    if _metrics_registry is None:
        _metrics_registry = MetricsRegistry()
    return _metrics_registry
