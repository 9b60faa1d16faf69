"""Shared fakes for the forwarder tests."""
import pytest

from promdd.config import WorkerConfig
from promdd.errors import QueryError, SubmissionError
from promdd.series import MatrixSeries, MetricCatalog


class FakeQuerier:
    """Records queries and returns canned matrices keyed by expression."""

    def __init__(self, catalog=None, matrices=None, fail_on=None, list_error=None):
        self.catalog = catalog or MetricCatalog()
        self.matrices = matrices or {}
        self.fail_on = fail_on
        self.list_error = list_error
        self.listed = []
        self.queries = []

    def list_metrics(self, prefix):
        self.listed.append(prefix)
        if self.list_error:
            raise self.list_error
        return self.catalog

    def query_metrics(self, expression, window):
        self.queries.append((expression, window))
        if self.fail_on and self.fail_on in expression:
            raise QueryError(f"boom: {expression}", expression=expression)
        return self.matrices.get(expression, [])


class FakeSubmitter:
    """Records submitted batches; fails for the first ``failures`` calls."""

    def __init__(self, failures=0, on_submit=None):
        self.failures = failures
        self.on_submit = on_submit
        self.batches = []
        self.calls = 0

    def submit_metrics(self, batch):
        self.calls += 1
        if self.on_submit:
            self.on_submit(self.calls, batch)
        if self.calls <= self.failures:
            raise SubmissionError("intake unavailable")
        self.batches.append(list(batch))

    def close(self):
        pass


class FakeTicker:
    """Ticker that only fires when the test says so."""

    def __init__(self):
        self.callback = None
        self.stopped = False

    def start(self, callback):
        self.callback = callback

    def fire(self):
        self.callback()

    def stop(self):
        self.stopped = True


@pytest.fixture
def worker_config():
    return WorkerConfig(
        metric_prefix="temporal_cloud_v0_",
        quantiles=[0.5, 0.99],
        query_interval_s=60,
        step_s=15,
        sleep_s=60,
    )


@pytest.fixture
def sample_matrix():
    return [
        MatrixSeries(
            labels={"temporal_namespace": "ns1", "operation": "StartWorkflow"},
            points=[(1700000000, 1.5), (1700000015, 2.0), (1700000030, 2.5)],
        ),
        MatrixSeries(
            labels={"temporal_namespace": "ns2", "operation": "StartWorkflow"},
            points=[(1700000000, 0.25)],
        ),
    ]
