"""
Monitoring package for the CDC event sink.

This package provides:
- The injected Prometheus metrics registry
- Per-event instrumentation (counter, histogram, structured log)
- The HTTP monitoring service with metrics, health and readiness endpoints
"""

from .metrics import (
    PROCESSING_BUCKETS,
    MetricsRegistry,
)

from .instrumentation import Instrumentation

from .service import (
    HealthStatus,
    HealthChecker,
    MonitoringService,
)

__all__ = [
    # Metrics
    "PROCESSING_BUCKETS",
    "MetricsRegistry",

    # Instrumentation
    "Instrumentation",

    # Service classes
    "HealthStatus",
    "HealthChecker",
    "MonitoringService",
]
