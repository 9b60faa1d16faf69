"""Tests for the tick executor."""
import pytest

from promdd.errors import DiscoveryError, QueryError, SubmissionError
from promdd.self_metrics import SelfMetrics
from promdd.series import MetricCatalog, SeriesKind
from promdd.translate import count_query, histogram_query, rate_query
from promdd.worker import TickExecutor

from conftest import FakeQuerier, FakeSubmitter

NOW = 1705320047  # 2024-01-15 12:00:47 UTC

CATALOG = MetricCatalog(
    histogram_names=("latency_bucket",),
    counter_names=("requests_total",),
)


def _executor(config, querier, submitter, **kwargs):
    return TickExecutor(config, querier, submitter, clock=lambda: NOW, **kwargs)


def test_queries_issued_for_catalog(worker_config):
    querier = FakeQuerier(catalog=CATALOG)
    submitter = FakeSubmitter()

    report = _executor(worker_config, querier, submitter).execute()

    expressions = [expr for expr, _ in querier.queries]
    group_by = worker_config.histogram_group_by
    assert expressions == [
        histogram_query("latency_bucket", 0.5, group_by),
        histogram_query("latency_bucket", 0.99, group_by),
        rate_query("requests_total"),
        count_query("requests_total"),
    ]
    assert querier.listed == ["temporal_cloud_v0_"]
    assert report.queries == 4
    assert submitter.calls == 1
    assert submitter.batches == [[]]


def test_batch_contains_all_results_in_order(worker_config, sample_matrix):
    group_by = worker_config.histogram_group_by
    querier = FakeQuerier(catalog=CATALOG, matrices={
        histogram_query("latency_bucket", 0.5, group_by): sample_matrix,
        histogram_query("latency_bucket", 0.99, group_by): sample_matrix[:1],
        rate_query("requests_total"): sample_matrix,
        count_query("requests_total"): sample_matrix[:1],
    })
    submitter = FakeSubmitter()

    report = _executor(worker_config, querier, submitter).execute()

    batch = submitter.batches[0]
    assert len(batch) == 6
    assert [s.kind for s in batch] == [
        SeriesKind.GAUGE, SeriesKind.GAUGE, SeriesKind.GAUGE,
        SeriesKind.RATE, SeriesKind.RATE,
        SeriesKind.COUNT,
    ]
    assert [s.metric_name for s in batch[:3]] == ["latency_p50", "latency_p50", "latency_p99"]
    assert batch[3].interval == worker_config.step_s
    assert report.series_counts == {"gauge": 3, "rate": 2, "count": 1}
    assert report.total_series == 6


def test_all_queries_share_one_window(worker_config):
    querier = FakeQuerier(catalog=CATALOG)
    report = _executor(worker_config, querier, FakeSubmitter()).execute()

    windows = {window for _, window in querier.queries}
    assert windows == {report.window}
    assert report.window.step == 15


@pytest.mark.parametrize("failing", ["histogram_quantile", "rate(", "requests_total"])
def test_query_error_aborts_without_submitting(worker_config, failing):
    querier = FakeQuerier(catalog=CATALOG, fail_on=failing)
    submitter = FakeSubmitter()

    with pytest.raises(QueryError):
        _executor(worker_config, querier, submitter).execute()

    assert submitter.calls == 0


def test_first_query_error_stops_remaining_queries(worker_config):
    querier = FakeQuerier(catalog=CATALOG, fail_on="histogram_quantile")

    with pytest.raises(QueryError):
        _executor(worker_config, querier, FakeSubmitter()).execute()

    assert len(querier.queries) == 1


def test_submission_error_propagates(worker_config):
    submitter = FakeSubmitter(failures=1)
    with pytest.raises(SubmissionError):
        _executor(worker_config, FakeQuerier(catalog=CATALOG), submitter).execute()


def test_discovery_error_is_fatal(worker_config):
    querier = FakeQuerier(list_error=DiscoveryError("prometheus down"))
    submitter = FakeSubmitter()

    with pytest.raises(DiscoveryError):
        _executor(worker_config, querier, submitter).execute()

    assert querier.queries == []
    assert submitter.calls == 0


def test_unexpected_discovery_failure_is_wrapped(worker_config):
    querier = FakeQuerier(list_error=RuntimeError("bad payload"))
    with pytest.raises(DiscoveryError):
        _executor(worker_config, querier, FakeSubmitter()).execute()


def test_window_recomputed_each_tick(worker_config):
    now = [NOW]
    querier = FakeQuerier(catalog=CATALOG)
    executor = TickExecutor(worker_config, querier, FakeSubmitter(), clock=lambda: now[0])

    first = executor.execute()
    now[0] += 60
    second = executor.execute()

    assert second.window.end == first.window.end + 60
    assert second.window.start == first.window.start + 60


def test_self_metrics_recorded(worker_config, sample_matrix):
    metrics = SelfMetrics(prefix="t_")
    querier = FakeQuerier(catalog=CATALOG, matrices={rate_query("requests_total"): sample_matrix})

    _executor(worker_config, querier, FakeSubmitter(), self_metrics=metrics).execute()

    registry = metrics.registry
    assert registry.get_sample_value("t_queries_total", {"kind": "histogram"}) == 2
    assert registry.get_sample_value("t_queries_total", {"kind": "rate"}) == 1
    assert registry.get_sample_value("t_series_submitted_total", {"kind": "rate"}) == 2
    assert registry.get_sample_value("t_last_success_timestamp_seconds") == NOW
