"""Tests for Datadog payload building and submission."""
from types import SimpleNamespace

import pytest
import urllib3
from datadog_api_client.exceptions import ApiException
from datadog_api_client.v2.model.metric_intake_type import MetricIntakeType

from promdd.config import DatadogConfig
from promdd.datadog import DatadogSubmitter, build_payloads, to_metric_series
from promdd.errors import SubmissionError
from promdd.series import SeriesKind, TargetSeries


class FakeMetricsApi:
    def __init__(self, error=None, response_errors=None):
        self.error = error
        self.response_errors = response_errors or []
        self.payloads = []

    def submit_metrics(self, body):
        self.payloads.append(body)
        if self.error:
            raise self.error
        return SimpleNamespace(errors=self.response_errors)


def _series(kind=SeriesKind.GAUGE, name="latency_p99", points=None, interval=None):
    return TargetSeries(
        metric_name=name,
        kind=kind,
        tags={"operation": "Poll", "temporal_namespace": "ns1"},
        points=points if points is not None else [(1705320000, 1.5), (1705320015, 2.0)],
        interval=interval,
    )


def test_gauge_series_conversion():
    series = to_metric_series(_series())

    assert series.metric == "latency_p99"
    assert series.type == MetricIntakeType.GAUGE
    assert series.tags == ["operation:Poll", "temporal_namespace:ns1"]
    assert [(p.timestamp, p.value) for p in series.points] == [
        (1705320000, 1.5),
        (1705320015, 2.0),
    ]
    assert getattr(series, "interval", None) is None


@pytest.mark.parametrize("kind,intake", [
    (SeriesKind.RATE, MetricIntakeType.RATE),
    (SeriesKind.COUNT, MetricIntakeType.COUNT),
])
def test_rate_and_count_carry_interval(kind, intake):
    series = to_metric_series(_series(kind=kind, name="requests_total", interval=15))
    assert series.type == intake
    assert series.interval == 15


def test_non_finite_points_are_not_sent():
    series = to_metric_series(
        _series(points=[(1, float("nan")), (2, 3.0), (3, float("inf"))])
    )
    assert [(p.timestamp, p.value) for p in series.points] == [(2, 3.0)]


def test_build_payloads_splits_batches():
    batch = [_series(name=f"m{i}") for i in range(5)]
    payloads = build_payloads(batch, max_series=2)
    assert [len(p.series) for p in payloads] == [2, 2, 1]
    assert [s.metric for p in payloads for s in p.series] == ["m0", "m1", "m2", "m3", "m4"]


def test_build_payloads_drops_series_without_points():
    batch = [_series(points=[]), _series(points=[(1, float("nan"))]), _series(name="kept")]
    payloads = build_payloads(batch, max_series=10)
    assert [s.metric for s in payloads[0].series] == ["kept"]


def test_submit_metrics():
    api = FakeMetricsApi()
    submitter = DatadogSubmitter(DatadogConfig(max_series_per_request=1), api=api)

    submitter.submit_metrics([_series(), _series(kind=SeriesKind.RATE, interval=15)])

    assert len(api.payloads) == 2


def test_empty_batch_is_not_sent():
    api = FakeMetricsApi()
    DatadogSubmitter(DatadogConfig(), api=api).submit_metrics([])
    assert api.payloads == []


def test_api_exception_becomes_submission_error():
    api = FakeMetricsApi(error=ApiException(status=403, reason="Forbidden"))
    submitter = DatadogSubmitter(DatadogConfig(), api=api)

    with pytest.raises(SubmissionError):
        submitter.submit_metrics([_series()])


def test_response_errors_become_submission_error():
    api = FakeMetricsApi(response_errors=["Invalid metric"])
    submitter = DatadogSubmitter(DatadogConfig(), api=api)

    with pytest.raises(SubmissionError):
        submitter.submit_metrics([_series()])


def test_default_client_uses_configured_site():
    submitter = DatadogSubmitter(DatadogConfig(api_key="abc", site="datadoghq.eu"))
    try:
        configuration = submitter.api.api_client.configuration
        assert configuration.server_variables["site"] == "datadoghq.eu"
        assert configuration.api_key["apiKeyAuth"] == "abc"
    finally:
        submitter.close()


def test_unreachable_intake_becomes_submission_error():
    refused = urllib3.exceptions.MaxRetryError(
        None, "/api/v2/series", reason=urllib3.exceptions.ProtocolError("Connection refused")
    )
    api = FakeMetricsApi(error=refused)
    submitter = DatadogSubmitter(DatadogConfig(), api=api)

    with pytest.raises(SubmissionError) as exc_info:
        submitter.submit_metrics([_series()])

    assert exc_info.value.__cause__ is refused


def test_failed_request_stops_remaining_requests():
    api = FakeMetricsApi(error=urllib3.exceptions.ReadTimeoutError(None, "/api/v2/series", "timed out"))
    submitter = DatadogSubmitter(DatadogConfig(max_series_per_request=1), api=api)

    with pytest.raises(SubmissionError):
        submitter.submit_metrics([_series(), _series(name="other")])

    assert len(api.payloads) == 1
