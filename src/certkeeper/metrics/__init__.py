"""In-process metrics for the reconciliation loop."""

from certkeeper.metrics.collector import MetricsCollector

__all__ = ["MetricsCollector"]
