"""
OTP Metrics
===========
In-process counters and latency histograms for the OTP service.
"""

from typing import Dict, List, Optional, Tuple
import structlog

logger = structlog.get_logger(__name__)

LabelKey = Tuple[Tuple[str, str], ...]


class MetricNames:
    """Metric names emitted by the OTP service."""
    ISSUED = "otp_issued"
    VALIDATIONS = "otp_validations"
    STORE_ERRORS = "otp_store_errors"
    STORE_LATENCY = "otp_store_latency_seconds"


class OTPMetrics:
    """
    Simple in-memory metrics collector.

    Export with ``export_prometheus`` from a metrics endpoint owned by the
    embedding service.
    """

    def __init__(self, service: str = "otp-core"):
        self.service = service
        self._counters: Dict[str, Dict[LabelKey, int]] = {}
        # Running [count, sum] per label set
        self._histograms: Dict[str, Dict[LabelKey, List[float]]] = {}

    @staticmethod
    def _labels(labels: Optional[Dict[str, str]]) -> LabelKey:
        return tuple(sorted((labels or {}).items()))

    def increment(self, name: str, labels: Optional[Dict[str, str]] = None, value: int = 1) -> None:
        """Increment a counter."""
        series = self._counters.setdefault(name, {})
        key = self._labels(labels)
        series[key] = series.get(key, 0) + value

    def observe(self, name: str, value: float, labels: Optional[Dict[str, str]] = None) -> None:
        """Record a histogram observation."""
        series = self._histograms.setdefault(name, {})
        summary = series.setdefault(self._labels(labels), [0, 0.0])
        summary[0] += 1
        summary[1] += value

    def get_counter(self, name: str, labels: Optional[Dict[str, str]] = None) -> int:
        """Get counter value."""
        return self._counters.get(name, {}).get(self._labels(labels), 0)

    def get_observations(self, name: str, labels: Optional[Dict[str, str]] = None) -> Tuple[int, float]:
        """Get (count, sum) of a histogram."""
        count, total = self._histograms.get(name, {}).get(self._labels(labels), (0, 0.0))
        return int(count), total

    # Service hooks

    def record_issued(self, purpose: str) -> None:
        self.increment(MetricNames.ISSUED, {"purpose": purpose})

    def record_outcome(self, purpose: str, outcome: str) -> None:
        self.increment(MetricNames.VALIDATIONS, {"purpose": purpose, "outcome": outcome})

    def record_store_call(self, operation: str, seconds: float, error: Optional[str] = None) -> None:
        self.observe(MetricNames.STORE_LATENCY, seconds, {"operation": operation})
        if error:
            self.increment(MetricNames.STORE_ERRORS, {"operation": operation, "error": error})

    def export_prometheus(self) -> str:
        """Export metrics in Prometheus text format."""
        lines = []

        def fmt(labels: LabelKey) -> str:
            pairs = [("service", self.service)] + list(labels)
            return "{" + ",".join(f'{k}="{v}"' for k, v in pairs) + "}"

        for name, series in sorted(self._counters.items()):
            for labels, value in sorted(series.items()):
                lines.append(f"{name}_total{fmt(labels)} {value}")

        # Histograms exported as summaries
        for name, series in sorted(self._histograms.items()):
            for labels, (count, total) in sorted(series.items()):
                lines.append(f"{name}_count{fmt(labels)} {int(count)}")
                lines.append(f"{name}_sum{fmt(labels)} {total}")

        return "\n".join(lines)
