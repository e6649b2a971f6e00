"""In-process metrics for acmegate."""

from acmegate.metrics.collector import MetricsCollector

__all__ = ["MetricsCollector"]
