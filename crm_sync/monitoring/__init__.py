"""Monitoring: Prometheus metrics."""

from .metrics import Metrics, get_metrics

__all__ = ["Metrics", "get_metrics"]
