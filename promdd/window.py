"""Query window calculation for each tick."""
from datetime import datetime
from typing import Union

from promdd.errors import ConfigurationError
from promdd.series import QueryWindow

# Successive windows overlap by 20% of the query interval
WINDOW_OVERLAP = 1.2


def effective_window(query_interval_s: float) -> int:
    """Query interval widened by the overlap factor, truncated to whole seconds."""
    return int(query_interval_s * WINDOW_OVERLAP)


def calc_range(
    now: Union[int, float, datetime],
    query_interval_s: float,
    step_s: int,
) -> QueryWindow:
    """
    Compute the range query window for a tick.

    The end is pinned to the start of the current minute and the start lies
    ``effective_window`` seconds before it. Both are then aligned to ``step_s``
    with one extra step of padding on each side.

    Args:
        now: Wall-clock time, either unix seconds or an aware datetime
        query_interval_s: Configured query interval in seconds
        step_s: Query resolution in seconds, at least 1

    Returns:
        QueryWindow with step-aligned start and end
    """
    step = int(step_s)
    if step < 1:
        raise ConfigurationError(f"step must be at least 1 second, got {step_s!r}")
    if query_interval_s <= 0:
        raise ConfigurationError(
            f"query interval must be positive, got {query_interval_s!r}"
        )

    if isinstance(now, datetime):
        now = now.timestamp()

    end = int(now) // 60 * 60
    start = end - effective_window(query_interval_s)

    # add padding
    start = (start // step - 1) * step
    end = (end // step + 1) * step

    return QueryWindow(start=start, end=end, step=step)
