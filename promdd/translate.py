"""Translation of Prometheus range query results into Datadog series."""
from decimal import Decimal
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple

from promdd.series import SampleMatrix, SeriesKind, TargetSeries

HISTOGRAM_PROMQL = "histogram_quantile({quantile}, sum(rate({bucket}[1m])) by ({group_by}))"
RATE_PROMQL = "rate({counter}[1m])"

BUCKET_SUFFIX = "_bucket"

# Labels that never become Datadog tags
DROPPED_LABELS = frozenset({"__name__"})


def quantile_repr(quantile: float) -> str:
    """Shortest exact decimal string for a quantile, e.g. ``0.99``."""
    return repr(float(quantile))


def quantile_suffix(quantile: float) -> str:
    """
    Metric name suffix for a quantile, as a decimal percentage.

    0.5 -> ``50``, 0.99 -> ``99``, 0.999 -> ``99_9``, 1.0 -> ``100``.
    Distinct quantiles always map to distinct suffixes.
    """
    q = float(quantile)
    if not 0 < q <= 1:
        raise ValueError(f"quantile must be in (0, 1], got {quantile!r}")
    percent = (Decimal(repr(q)) * 100).normalize()
    return format(percent, "f").replace(".", "_")


def histogram_base_name(bucket_name: str) -> str:
    """Strip the ``_bucket`` suffix from a histogram bucket metric."""
    if bucket_name.endswith(BUCKET_SUFFIX):
        return bucket_name[: -len(BUCKET_SUFFIX)]
    return bucket_name


def histogram_metric_name(bucket_name: str, quantile: float, prefix: str = "") -> str:
    return f"{prefix}{histogram_base_name(bucket_name)}_p{quantile_suffix(quantile)}"


def histogram_query(bucket_name: str, quantile: float, group_by: Sequence[str] = ()) -> str:
    """Build the quantile-over-rate expression for a histogram bucket metric."""
    labels = [label for label in group_by if label != "le"] + ["le"]
    return HISTOGRAM_PROMQL.format(
        quantile=quantile_repr(quantile),
        bucket=bucket_name,
        group_by=",".join(labels),
    )


def rate_query(counter_name: str) -> str:
    return RATE_PROMQL.format(counter=counter_name)


def count_query(counter_name: str) -> str:
    return counter_name


def histogram_query_pairs(
    quantiles: Iterable[float],
    histogram_names: Iterable[str],
) -> Iterator[Tuple[float, str]]:
    """Yield every (quantile, bucket name) pair, quantile-major."""
    names = list(histogram_names)
    for quantile in quantiles:
        for bucket_name in names:
            yield quantile, bucket_name


def _tags(labels) -> dict:
    return {k: v for k, v in labels.items() if k not in DROPPED_LABELS}


def _translate(
    metric_name: str,
    kind: SeriesKind,
    matrix: SampleMatrix,
    extra_tags: Optional[dict] = None,
    interval: Optional[int] = None,
) -> List[TargetSeries]:
    result = []
    for series in matrix:
        tags = _tags(series.labels)
        if extra_tags:
            tags.update(extra_tags)
        result.append(
            TargetSeries(
                metric_name=metric_name,
                kind=kind,
                tags=tags,
                points=list(series.points),
                interval=interval,
            )
        )
    return result


def histogram_to_gauge(
    bucket_name: str,
    quantile: float,
    matrix: SampleMatrix,
    prefix: str = "",
) -> List[TargetSeries]:
    """
    Translate a histogram_quantile result into Datadog gauges.

    One gauge per label set, named after the bucket metric and the quantile,
    tagged with the original labels plus ``quantile``.
    """
    return _translate(
        histogram_metric_name(bucket_name, quantile, prefix),
        SeriesKind.GAUGE,
        matrix,
        extra_tags={"quantile": quantile_repr(quantile)},
    )


def count_to_rate(
    counter_name: str,
    matrix: SampleMatrix,
    prefix: str = "",
    interval: Optional[int] = None,
) -> List[TargetSeries]:
    """Translate a ``rate(counter[1m])`` result into Datadog rate series."""
    return _translate(f"{prefix}{counter_name}", SeriesKind.RATE, matrix, interval=interval)


def count_to_count(
    counter_name: str,
    matrix: SampleMatrix,
    prefix: str = "",
    interval: Optional[int] = None,
) -> List[TargetSeries]:
    """Translate a raw counter result into Datadog count series."""
    return _translate(f"{prefix}{counter_name}", SeriesKind.COUNT, matrix, interval=interval)
