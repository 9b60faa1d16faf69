"""Self-monitoring metrics for the forwarder, exposed with prometheus_client."""
from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, start_http_server
import logging

from promdd.config import SelfMetricsConfig

logger = logging.getLogger(__name__)


class SelfMetrics:
    """Counters and timings for ticks, queries and submissions."""

    def __init__(self, registry=None, prefix=""):
        if registry is None:
            registry = CollectorRegistry()
        self.registry = registry

        self.ticks_total = Counter(
            f"{prefix}ticks_total",
            "Total number of ticks by outcome",
            ["outcome"],
            registry=registry
        )

        self.tick_duration_seconds = Histogram(
            f"{prefix}tick_duration_seconds",
            "Duration of each tick in seconds",
            buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0],
            registry=registry
        )

        self.series_submitted_total = Counter(
            f"{prefix}series_submitted_total",
            "Total number of series submitted to Datadog",
            ["kind"],
            registry=registry
        )

        self.queries_total = Counter(
            f"{prefix}queries_total",
            "Total number of Prometheus range queries issued",
            ["kind"],
            registry=registry
        )

        self.errors_total = Counter(
            f"{prefix}errors_total",
            "Total number of errors by stage",
            ["stage"],
            registry=registry
        )

        self.last_success_timestamp = Gauge(
            f"{prefix}last_success_timestamp_seconds",
            "Unix time of the last successful submission",
            registry=registry
        )

    def record_query(self, kind: str):
        self.queries_total.labels(kind=kind).inc()

    def record_tick(self, outcome: str, duration: float):
        """Record a finished tick."""
        self.ticks_total.labels(outcome=outcome).inc()
        self.tick_duration_seconds.observe(duration)

    def record_submitted(self, kind: str, count: int):
        self.series_submitted_total.labels(kind=kind).inc(count)

    def record_error(self, stage: str):
        self.errors_total.labels(stage=stage).inc()

    def record_success(self, timestamp: float):
        self.last_success_timestamp.set(timestamp)


def start_self_metrics_server(config: SelfMetricsConfig, metrics: SelfMetrics):
    """Start the Prometheus HTTP server for self-metrics."""
    try:
        start_http_server(
            config.port,
            addr=config.bind_address,
            registry=metrics.registry
        )
        logger.info(
            f"Self-metrics listening on "
            f"{config.bind_address}:{config.port}/metrics"
        )
    except Exception as e:
        logger.error(f"Failed to start self-metrics HTTP server: {e}")
        raise
