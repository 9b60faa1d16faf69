"""Data structures for query windows, Prometheus matrices and Datadog series."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

# (unix timestamp seconds, value)
Point = Tuple[int, float]


class SeriesKind(str, Enum):
    """Datadog intake type of a translated series."""
    GAUGE = "gauge"
    RATE = "rate"
    COUNT = "count"


@dataclass(frozen=True)
class QueryWindow:
    """Time range of one range query, in unix seconds."""
    start: int
    end: int
    step: int

    @property
    def duration(self) -> int:
        return self.end - self.start


@dataclass(frozen=True)
class MetricCatalog:
    """Metric names discovered for one tick."""
    histogram_names: Tuple[str, ...] = ()
    counter_names: Tuple[str, ...] = ()


@dataclass
class MatrixSeries:
    """One label set of a range query result, with its samples in backend order."""
    labels: Dict[str, str]
    points: List[Point] = field(default_factory=list)

    def label_key(self) -> str:
        """Generate a stable key from sorted labels."""
        items = sorted(self.labels.items())
        return ",".join(f"{k}={v}" for k, v in items)


# Raw result of one range query
SampleMatrix = List[MatrixSeries]


@dataclass
class TargetSeries:
    """A single series ready to be submitted to Datadog."""
    metric_name: str
    kind: SeriesKind
    tags: Dict[str, str]
    points: List[Point]
    interval: Optional[int] = None

    def tag_list(self) -> List[str]:
        """Tags in Datadog ``key:value`` form, sorted for stable output."""
        return [f"{k}:{v}" for k, v in sorted(self.tags.items())]
