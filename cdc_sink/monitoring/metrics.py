"""
Prometheus metrics registry for the CDC event sink.

One MetricsRegistry is created per process and passed to the components
that record into it. prometheus_client metrics are thread-safe, so the
registry needs no locking of its own.
"""

import time
from typing import Optional

import psutil
from prometheus_client import (
    Counter, Gauge, Histogram, CollectorRegistry,
    generate_latest, CONTENT_TYPE_LATEST,
)
from prometheus_client.gc_collector import GCCollector
from prometheus_client.platform_collector import PlatformCollector
from prometheus_client.process_collector import ProcessCollector

PROCESSING_BUCKETS = (0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0)


class MetricsRegistry:
    """Prometheus metrics collector."""

    content_type = CONTENT_TYPE_LATEST

    def __init__(
        self,
        registry: Optional[CollectorRegistry] = None,
        default_collectors: bool = True,
    ):
        self.registry = registry or CollectorRegistry()

        if default_collectors:
            # Process-level metrics, as the default REGISTRY would expose
            ProcessCollector(registry=self.registry)
            PlatformCollector(registry=self.registry)
            GCCollector(registry=self.registry)

        # CDC event metrics
        self.events_total = Counter(
            'cdc_events_total',
            'Total number of CDC events processed',
            ['table_name', 'operation'],
            registry=self.registry
        )

        self.processing_time = Histogram(
            'cdc_events_processing_seconds',
            'Time spent processing CDC events',
            ['table_name', 'operation'],
            buckets=PROCESSING_BUCKETS,
            registry=self.registry
        )

        self.messages_received = Counter(
            'kafka_messages_received_total',
            'Total number of Kafka messages received',
            registry=self.registry
        )

        # System metrics
        self.system_cpu_usage = Gauge(
            'cdc_system_cpu_usage_percent',
            'System CPU usage percentage',
            registry=self.registry
        )

        self.system_memory_usage = Gauge(
            'cdc_system_memory_usage_bytes',
            'System memory usage in bytes',
            registry=self.registry
        )

        self.app_uptime = Gauge(
            'cdc_app_uptime_seconds',
            'Application uptime in seconds',
            registry=self.registry
        )

        self.app_start_time = time.time()

    def record_message_received(self) -> None:
        """Record a message delivered by the broker."""
        self.messages_received.inc()

    def record_event(self, table: str, operation: str) -> None:
        """Record a processed CDC event."""
        self.events_total.labels(table_name=table, operation=operation).inc()

    def time_event(self, table: str, operation: str):
        """Scoped timer observing into the processing histogram on exit."""
        return self.processing_time.labels(table_name=table, operation=operation).time()

    def collect_system_metrics(self) -> None:
        """Collect current system metrics."""
        self.system_cpu_usage.set(psutil.cpu_percent(interval=None))
        self.system_memory_usage.set(psutil.virtual_memory().used)
        self.app_uptime.set(time.time() - self.app_start_time)

    def sample(self, name: str, **labels) -> float:
        """Current value of a sample, 0.0 if it has never been recorded."""
        value = self.registry.get_sample_value(name, labels)
        return value if value is not None else 0.0

    def get_metrics_text(self) -> str:
        """Get metrics in Prometheus text format."""
        return generate_latest(self.registry).decode('utf-8')
