"""Self-monitoring metrics exposed with prometheus_client."""
from prometheus_client import (
    Counter, Gauge, Histogram,
    CollectorRegistry, start_http_server
)
import logging

from heatscope.config import PrometheusExporterConfig

logger = logging.getLogger(__name__)


class SelfMetrics:
    """Self-monitoring metrics for the sampler and the request handlers."""

    def __init__(self, registry=None, prefix=""):
        if registry is None:
            registry = CollectorRegistry()
        self.registry = registry

        self.records_total = Counter(
            f"{prefix}records_ingested_total",
            "Total number of aggregation records ingested",
            ["aggregation"],
            registry=registry
        )

        self.evicted_total = Counter(
            f"{prefix}samples_evicted_total",
            "Total number of samples evicted from the window",
            registry=registry
        )

        self.source_errors_total = Counter(
            f"{prefix}source_errors_total",
            "Total number of failed source drains",
            registry=registry
        )

        self.tick_duration_seconds = Histogram(
            f"{prefix}tick_duration_seconds",
            "Duration of each ingest and evict cycle in seconds",
            buckets=[0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0],
            registry=registry
        )

        self.request_duration_seconds = Histogram(
            f"{prefix}request_duration_seconds",
            "Duration of heatmap and details requests in seconds",
            ["endpoint"],
            buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5],
            registry=registry
        )

        self.decomposition_keys = Gauge(
            f"{prefix}decomposition_keys",
            "Number of decomposition keys seen",
            registry=registry
        )

        self.retained_samples = Gauge(
            f"{prefix}retained_samples",
            "Number of samples retained in the total series",
            registry=registry
        )

    def record_ingest(self, aggregation: int, count: int = 1):
        """Record ingested records."""
        self.records_total.labels(aggregation=str(aggregation)).inc(count)

    def record_evicted(self, count: int):
        """Record evicted samples."""
        self.evicted_total.inc(count)

    def record_source_error(self):
        """Record a failed drain."""
        self.source_errors_total.inc()

    def record_tick_duration(self, duration: float):
        """Record tick duration."""
        self.tick_duration_seconds.observe(duration)

    def record_request_duration(self, endpoint: str, duration: float):
        """Record request duration."""
        self.request_duration_seconds.labels(endpoint=endpoint).observe(duration)

    def set_store_size(self, keys: int, samples: int):
        """Set store size gauges."""
        self.decomposition_keys.set(keys)
        self.retained_samples.set(samples)


def start_metrics_server(config: PrometheusExporterConfig, metrics: SelfMetrics):
    """Start Prometheus HTTP server for the self metrics."""
    try:
        start_http_server(
            config.port,
            addr=config.bind_address,
            registry=metrics.registry
        )
        logger.info(
            f"Prometheus exporter listening on "
            f"{config.bind_address}:{config.port}/metrics"
        )
    except Exception as e:
        logger.error(f"Failed to start Prometheus HTTP server: {e}")
        raise
