"""Datadog v2 metrics submission."""
from typing import List, Optional
import logging
import math

import urllib3
from datadog_api_client import ApiClient, Configuration
from datadog_api_client.exceptions import OpenApiException
from datadog_api_client.v2.api.metrics_api import MetricsApi
from datadog_api_client.v2.model.metric_intake_type import MetricIntakeType
from datadog_api_client.v2.model.metric_payload import MetricPayload
from datadog_api_client.v2.model.metric_point import MetricPoint
from datadog_api_client.v2.model.metric_series import MetricSeries

from promdd.config import DatadogConfig
from promdd.errors import SubmissionError
from promdd.series import SeriesKind, TargetSeries

logger = logging.getLogger(__name__)

INTAKE_TYPES = {
    SeriesKind.GAUGE: MetricIntakeType.GAUGE,
    SeriesKind.RATE: MetricIntakeType.RATE,
    SeriesKind.COUNT: MetricIntakeType.COUNT,
}


def to_metric_series(series: TargetSeries) -> MetricSeries:
    """Convert a TargetSeries into the Datadog v2 model."""
    # The intake only accepts finite JSON numbers
    points = [
        MetricPoint(timestamp=int(ts), value=float(value))
        for ts, value in series.points
        if math.isfinite(value)
    ]
    kwargs = {}
    if series.interval is not None and series.kind != SeriesKind.GAUGE:
        kwargs["interval"] = int(series.interval)
    return MetricSeries(
        metric=series.metric_name,
        type=INTAKE_TYPES[series.kind],
        points=points,
        tags=series.tag_list(),
        **kwargs,
    )


def build_payloads(batch: List[TargetSeries], max_series: int) -> List[MetricPayload]:
    """Split a batch into payloads of at most ``max_series`` series each."""
    converted = [to_metric_series(s) for s in batch]
    converted = [s for s in converted if s.points]
    return [
        MetricPayload(series=converted[i:i + max_series])
        for i in range(0, len(converted), max_series)
    ]


class DatadogSubmitter:
    """Submits batches of series to the Datadog metrics intake."""

    def __init__(self, config: DatadogConfig, api: Optional[MetricsApi] = None):
        self.config = config
        self._client = None
        if api is None:
            configuration = Configuration()
            if config.api_key:
                configuration.api_key["apiKeyAuth"] = config.api_key
            configuration.server_variables["site"] = config.site
            self._client = ApiClient(configuration)
            api = MetricsApi(self._client)
        self.api = api

    def submit_metrics(self, batch: List[TargetSeries]):
        """
        Submit the whole batch; any failed request fails the submission.

        Batches larger than ``max_series_per_request`` go out as several
        requests. A failure in a later request leaves the earlier ones
        already accepted by Datadog, so the batch is only atomic when it
        fits in one request.
        """
        payloads = build_payloads(batch, self.config.max_series_per_request)
        if not payloads:
            logger.info("No series with data points to submit")
            return

        for payload in payloads:
            try:
                response = self.api.submit_metrics(body=payload)
            except OpenApiException as e:
                raise SubmissionError(f"Datadog rejected metrics submission: {e}") from e
            except urllib3.exceptions.HTTPError as e:
                raise SubmissionError(f"Could not reach Datadog: {e}") from e

            errors = getattr(response, "errors", None)
            if errors:
                raise SubmissionError(f"Datadog reported submission errors: {errors}")

        logger.debug(f"Submitted {len(batch)} series in {len(payloads)} request(s)")

    def close(self):
        if self._client is not None:
            self._client.close()
