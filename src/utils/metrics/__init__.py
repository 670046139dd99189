"""
Prometheus metrics helpers

Provides safe metric registration and the HTTP publisher that exposes the
process registry on /metrics.

Usage:
    from utils.metrics import MetricsPublisher, get_or_create_metric

    publisher = MetricsPublisher(port=9091)
    publisher.start()
"""

import logging
from typing import Callable, TypeVar

from prometheus_client import REGISTRY, CollectorRegistry

from .publisher import MetricsPublisher

logger = logging.getLogger(__name__)

# Type variable for metric types
T = TypeVar("T")


def get_or_create_metric(
    metric_factory: Callable[[], T],
    metric_name: str,
    registry: CollectorRegistry = REGISTRY,
) -> T:
    """
    Create a metric or return the one already registered under its name.

    Module reloads (and test runners importing a module twice) would otherwise
    fail with a duplicate timeseries error.

    Args:
        metric_factory: Callable that creates the metric (e.g., lambda: Counter(...))
        metric_name: Registered name used for lookup; for counters this is the
            name without the ``_total`` suffix
        registry: Prometheus registry to use (default: global REGISTRY)

    Returns:
        The metric instance (either newly created or existing)

    Example:
        ARCHIVES = get_or_create_metric(
            lambda: Counter("car_archives_total", "CARs handled", ["status"]),
            "car_archives"
        )
    """
    try:
        return metric_factory()
    except ValueError:
        existing = registry._names_to_collectors.get(metric_name)
        if existing is not None:
            return existing
        raise


__all__ = [
    "MetricsPublisher",
    "get_or_create_metric",
]
