"""
Metrics Module: Diagnostics, counters, histograms.

- Counters: readings_submitted, readings_accepted, sources_attached, etc.
- Histograms: candidate_age_s, accuracy_m
- Rejection reason codes (no silent drops)

Usage:
    from bestfix_core.metrics import get_metrics

    metrics = get_metrics()
    metrics.increment('readings_submitted')
    metrics.increment_drop('less_accurate')
    metrics.record_histogram('candidate_age_s', 1.23)
"""

from .counters import MetricsCollector

# Global singleton for easy access
_global_metrics = None


def get_metrics() -> MetricsCollector:
    """
    Get the global metrics collector singleton.

    Returns:
        MetricsCollector instance
    """
    global _global_metrics
    if _global_metrics is None:
        _global_metrics = MetricsCollector()
    return _global_metrics


def reset_metrics():
    """Reset global metrics (for testing)."""
    global _global_metrics
    _global_metrics = MetricsCollector()


__all__ = ['MetricsCollector', 'get_metrics', 'reset_metrics']
