"""
Metrics Module: Diagnostics, counters, histograms.

- Counters: accel_samples, beacon_fixes, steps_validated, etc.
- Histograms: innovation magnitude, step confidence, fix accuracy
- Drop reason codes (no silent failures)

Usage:
    from nav_core.metrics import get_metrics

    metrics = get_metrics()
    metrics.increment('accel_samples')
    metrics.increment_drop('invalid_sample')
    metrics.record_histogram('innovation_m', 0.42)
"""

from .counters import MetricsCollector, CounterSnapshot

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


__all__ = ['MetricsCollector', 'CounterSnapshot', 'get_metrics', 'reset_metrics']
