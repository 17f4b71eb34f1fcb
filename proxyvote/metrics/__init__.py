"""
ProxyVote Metrics Module

Prometheus-compatible metrics for monitoring governance activity.
"""

from .collector import (
    Counter,
    Gauge,
    GovernanceMetrics,
    Histogram,
    MetricsRegistry,
)

__all__ = [
    "Counter",
    "Gauge",
    "GovernanceMetrics",
    "Histogram",
    "MetricsRegistry",
]
