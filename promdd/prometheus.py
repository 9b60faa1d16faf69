"""Prometheus HTTP API client for metric discovery and range queries."""
from typing import Any, Optional
import logging

import requests

from promdd.config import PrometheusConfig
from promdd.errors import DiscoveryError, QueryError
from promdd.series import MatrixSeries, MetricCatalog, QueryWindow, SampleMatrix

logger = logging.getLogger(__name__)

HISTOGRAM_SUFFIX = "_bucket"
COUNTER_SUFFIXES = ("_total", "_count")


class PrometheusAPIError(Exception):
    """The Prometheus API answered with ``status: error``."""


def classify_metrics(names, prefix: str) -> MetricCatalog:
    """
    Split metric names under a prefix into histogram buckets and counters.

    ``*_bucket`` names are histograms. ``*_total`` and ``*_count`` names are
    counters, except the ``_count`` series of a histogram family.
    """
    selected = sorted({n for n in names if n.startswith(prefix)})
    histograms = [n for n in selected if n.endswith(HISTOGRAM_SUFFIX)]
    families = {n[: -len(HISTOGRAM_SUFFIX)] for n in histograms}

    counters = []
    for name in selected:
        if name.endswith("_count") and name[: -len("_count")] in families:
            continue
        if name.endswith(COUNTER_SUFFIXES):
            counters.append(name)

    return MetricCatalog(histogram_names=tuple(histograms), counter_names=tuple(counters))


def parse_matrix(data: Any) -> SampleMatrix:
    """Convert a ``query_range`` result payload into a SampleMatrix."""
    if not data:
        return []
    result_type = data.get("resultType")
    if result_type != "matrix":
        raise PrometheusAPIError(f"Expected matrix result, got {result_type!r}")

    matrix = []
    for item in data.get("result") or []:
        points = [(int(float(ts)), float(value)) for ts, value in item.get("values", [])]
        matrix.append(MatrixSeries(labels=dict(item.get("metric", {})), points=points))
    return matrix


class PrometheusQuerier:
    """Issues discovery and range queries against the Prometheus HTTP API."""

    def __init__(self, config: PrometheusConfig, session: Optional[requests.Session] = None):
        self.base_url = config.url.rstrip("/")
        self.timeout = config.timeout_s
        self.retries = max(0, int(config.retries))
        self.session = session or requests.Session()

    def _get(self, path: str, params: dict) -> Any:
        last_err: Optional[Exception] = None
        for attempt in range(self.retries + 1):
            try:
                resp = self.session.get(
                    f"{self.base_url}{path}", params=params, timeout=self.timeout
                )
                if resp.status_code >= 500:
                    resp.raise_for_status()
                body = resp.json()
                if body.get("status") != "success":
                    raise PrometheusAPIError(
                        f"{body.get('errorType', 'error')}: {body.get('error', body)}"
                    )
                return body.get("data")
            except (requests.ConnectionError, requests.Timeout, requests.HTTPError) as e:
                last_err = e
                logger.debug(f"Prometheus request {path} failed (attempt {attempt + 1}): {e}")
        raise last_err

    def list_metrics(self, prefix: str) -> MetricCatalog:
        """Discover histogram bucket and counter names starting with ``prefix``."""
        try:
            names = self._get("/api/v1/label/__name__/values", {}) or []
        except (requests.RequestException, ValueError, PrometheusAPIError) as e:
            raise DiscoveryError(f"Failed to list metrics with prefix '{prefix}': {e}") from e
        return classify_metrics(names, prefix)

    def query_metrics(self, expression: str, window: QueryWindow) -> SampleMatrix:
        """Run a range query over ``window``."""
        params = {
            "query": expression,
            "start": window.start,
            "end": window.end,
            "step": window.step,
        }
        try:
            return parse_matrix(self._get("/api/v1/query_range", params))
        except (requests.RequestException, ValueError, PrometheusAPIError) as e:
            raise QueryError(f"Query failed: {expression}: {e}", expression=expression) from e
