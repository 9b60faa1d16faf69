"""Tick executor: one discovery, query, translate and submit cycle."""
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional
import logging
import time

from promdd.config import WorkerConfig
from promdd.errors import DiscoveryError
from promdd.self_metrics import SelfMetrics
from promdd.series import QueryWindow, SeriesKind, TargetSeries
from promdd.translate import (
    count_query,
    count_to_count,
    count_to_rate,
    histogram_query,
    histogram_query_pairs,
    histogram_to_gauge,
    rate_query,
)
from promdd.window import calc_range

logger = logging.getLogger(__name__)


@dataclass
class TickReport:
    """Summary of a successful tick."""
    window: QueryWindow
    series_counts: Dict[str, int] = field(default_factory=dict)
    queries: int = 0
    duration_s: float = 0.0

    @property
    def total_series(self) -> int:
        return sum(self.series_counts.values())


class TickExecutor:
    """
    Runs exactly one forwarding cycle.

    The querier must provide ``list_metrics(prefix)`` and
    ``query_metrics(expression, window)``, the submitter
    ``submit_metrics(batch)``. The first error raised by either aborts the
    tick before anything is submitted.
    """

    def __init__(
        self,
        config: WorkerConfig,
        querier,
        submitter,
        clock: Callable[[], float] = time.time,
        self_metrics: Optional[SelfMetrics] = None,
    ):
        self.config = config
        self.querier = querier
        self.submitter = submitter
        self.clock = clock
        self.self_metrics = self_metrics

    def query_window(self) -> QueryWindow:
        return calc_range(self.clock(), self.config.query_interval_s, self.config.step_s)

    def _query(self, kind: str, expression: str, window: QueryWindow):
        if self.self_metrics:
            self.self_metrics.record_query(kind)
        return self.querier.query_metrics(expression, window)

    def execute(self) -> TickReport:
        """Execute one tick and return its report. Raises on the first error."""
        tick_start = time.monotonic()
        cfg = self.config
        window = self.query_window()

        try:
            catalog = self.querier.list_metrics(cfg.metric_prefix)
        except DiscoveryError:
            raise
        except Exception as e:
            raise DiscoveryError(f"Metric discovery failed: {e}") from e

        logger.info("Querying Prometheus")
        logger.info(
            f"Found {len(catalog.histogram_names)} histogram metrics: "
            f"{list(catalog.histogram_names)}"
        )
        logger.info(
            f"Found {len(catalog.counter_names)} counter metrics: "
            f"{list(catalog.counter_names)}"
        )

        queries = 0

        # histograms
        histogram_series: List[TargetSeries] = []
        for quantile, bucket_name in histogram_query_pairs(cfg.quantiles, catalog.histogram_names):
            promql = histogram_query(bucket_name, quantile, cfg.histogram_group_by)
            matrix = self._query("histogram", promql, window)
            queries += 1
            histogram_series.extend(
                histogram_to_gauge(bucket_name, quantile, matrix, prefix=cfg.target_prefix)
            )
        logger.info(f"Received {len(histogram_series)} histogram series")

        rate_series: List[TargetSeries] = []
        count_series: List[TargetSeries] = []
        for counter_name in catalog.counter_names:
            matrix = self._query("rate", rate_query(counter_name), window)
            queries += 1
            rates = count_to_rate(
                counter_name, matrix, prefix=cfg.target_prefix, interval=window.step
            )

            matrix = self._query("count", count_query(counter_name), window)
            queries += 1
            counts = count_to_count(
                counter_name, matrix, prefix=cfg.target_prefix, interval=window.step
            )

            rate_series.extend(rates)
            count_series.extend(counts)
        logger.info(f"Received {len(rate_series)} rate series")
        logger.info(f"Received {len(count_series)} count series")

        batch = histogram_series + rate_series + count_series
        logger.info("Submitting to Datadog")
        self.submitter.submit_metrics(batch)

        report = TickReport(
            window=window,
            series_counts={
                SeriesKind.GAUGE.value: len(histogram_series),
                SeriesKind.RATE.value: len(rate_series),
                SeriesKind.COUNT.value: len(count_series),
            },
            queries=queries,
            duration_s=time.monotonic() - tick_start,
        )

        if self.self_metrics:
            for kind, count in report.series_counts.items():
                self.self_metrics.record_submitted(kind, count)
            self.self_metrics.record_success(self.clock())

        logger.info(f"Submitted total of {report.total_series} series")
        return report
