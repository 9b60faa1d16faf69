"""Fixed-interval scheduler driving the tick executor."""
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional
import logging
import queue
import threading
import time

from promdd.errors import DiscoveryError, QueryError, SubmissionError
from promdd.self_metrics import SelfMetrics
from promdd.worker import TickReport

logger = logging.getLogger(__name__)

RETRY_INTERVAL_S = 3.0

# Event kinds posted to the scheduler queue
_TICK_DONE = "tick_done"
_TIMER = "timer"
_STOP = "stop"


class SchedulerState(str, Enum):
    IDLE = "idle"
    TICKING = "ticking"
    WAITING = "waiting"
    STOPPED = "stopped"


@dataclass
class TickOutcome:
    """Result of one tick: a report on success, the first error otherwise."""
    tick_id: int
    report: Optional[TickReport] = None
    error: Optional[Exception] = None
    duration_s: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None


def error_stage(error: Exception) -> str:
    if isinstance(error, DiscoveryError):
        return "discovery"
    if isinstance(error, QueryError):
        return "query"
    if isinstance(error, SubmissionError):
        return "submission"
    return "unexpected"


class Interrupt:
    """Stop request shared between signal handlers and the scheduler."""

    def __init__(self):
        self._event = threading.Event()
        self._listeners: List[Callable[[str], None]] = []
        self.reason: Optional[str] = None

    def trigger(self, reason: str = "interrupt"):
        """Request a stop. Safe to call from a signal handler."""
        if self._event.is_set():
            return
        self.reason = reason
        self._event.set()
        for listener in list(self._listeners):
            listener(reason)

    def is_set(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._event.wait(timeout)

    def subscribe(self, listener: Callable[[str], None]):
        self._listeners.append(listener)
        if self._event.is_set():
            listener(self.reason)

    def unsubscribe(self, listener: Callable[[str], None]):
        if listener in self._listeners:
            self._listeners.remove(listener)


class Ticker:
    """Calls ``callback`` every ``period`` seconds from a daemon thread."""

    def __init__(self, period: float):
        self.period = period
        self._stopped = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self, callback: Callable[[], None]):
        def loop():
            while not self._stopped.wait(self.period):
                callback()

        self._stopped.clear()
        self._thread = threading.Thread(target=loop, name="promdd-ticker", daemon=True)
        self._thread.start()

    def stop(self):
        self._stopped.set()


class Scheduler:
    """
    Launches a tick, then waits for whichever comes first: the tick failing,
    the timer firing, or an interrupt.

    A failed tick is followed by a fixed backoff before the next launch. A
    timer firing launches the next tick without waiting for the previous one,
    unless ``skip_overlapping_ticks`` is set. A ``DiscoveryError`` stops the
    loop and is re-raised from ``run``.
    """

    def __init__(
        self,
        tick: Callable[[], TickReport],
        ticker,
        interrupt: Interrupt,
        retry_backoff_s: float = RETRY_INTERVAL_S,
        sleep: Callable[[float], None] = time.sleep,
        skip_overlapping_ticks: bool = False,
        self_metrics: Optional[SelfMetrics] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.tick = tick
        self.ticker = ticker
        self.interrupt = interrupt
        self.retry_backoff_s = retry_backoff_s
        self.sleep = sleep
        self.skip_overlapping_ticks = skip_overlapping_ticks
        self.self_metrics = self_metrics
        self.clock = clock

        self.state = SchedulerState.IDLE
        self.tick_count = 0
        self.failed_ticks = 0
        self.skipped_ticks = 0
        self.last_report: Optional[TickReport] = None
        self.last_error: Optional[Exception] = None
        self.last_success_time: Optional[float] = None

        self._lock = threading.Lock()
        self._running = 0
        self._timer_pending = False
        self._events: "queue.SimpleQueue" = queue.SimpleQueue()

    @property
    def running_ticks(self) -> int:
        with self._lock:
            return self._running

    def _on_timer(self):
        with self._lock:
            if self._timer_pending:
                return
            self._timer_pending = True
        self._events.put((_TIMER, None))

    def _on_interrupt(self, reason):
        self._events.put((_STOP, reason))

    def _run_tick(self, tick_id: int):
        start = time.monotonic()
        try:
            report = self.tick()
            outcome = TickOutcome(tick_id, report=report)
        except Exception as e:
            outcome = TickOutcome(tick_id, error=e)
        outcome.duration_s = time.monotonic() - start

        with self._lock:
            self._running -= 1
        self._events.put((_TICK_DONE, outcome))

    def _launch_tick(self):
        with self._lock:
            self.tick_count += 1
            self._running += 1
            tick_id = self.tick_count
        self.state = SchedulerState.TICKING
        threading.Thread(
            target=self._run_tick,
            args=(tick_id,),
            name=f"promdd-tick-{tick_id}",
            daemon=True,
        ).start()

    def _record(self, outcome: TickOutcome):
        if self.self_metrics:
            self.self_metrics.record_tick("success" if outcome.ok else "failure", outcome.duration_s)
            if not outcome.ok:
                self.self_metrics.record_error(error_stage(outcome.error))

        if outcome.ok:
            self.last_report = outcome.report
            self.last_success_time = self.clock()
        else:
            self.failed_ticks += 1
            self.last_error = outcome.error

    def _wait(self) -> bool:
        """Block until the next tick should start. Returns False once stopped."""
        self.state = SchedulerState.WAITING
        while True:
            kind, payload = self._events.get()

            if kind == _STOP:
                logger.info(f"Worker has been stopped. Signal: {payload}")
                return False

            if kind == _TIMER:
                with self._lock:
                    self._timer_pending = False
                    busy = self._running > 0
                if busy and self.skip_overlapping_ticks:
                    self.skipped_ticks += 1
                    logger.warning("Previous tick still running, skipping this tick")
                    continue
                return True

            outcome: TickOutcome = payload
            self._record(outcome)
            if outcome.ok:
                logger.debug(f"Tick {outcome.tick_id} completed in {outcome.duration_s:.3f}s")
                continue

            error = outcome.error
            if isinstance(error, DiscoveryError):
                logger.critical(f"Metric discovery failed, stopping worker: {error}")
                raise error

            if error_stage(error) == "unexpected":
                logger.error(f"Worker failed: {error}", exc_info=error)
            else:
                logger.error(f"Worker failed: {error}")
            logger.info(f"Retrying in {self.retry_backoff_s:.0f} seconds")
            self.sleep(self.retry_backoff_s)
            return True

    def run(self):
        """Run until interrupted. Re-raises a fatal discovery error."""
        self.interrupt.subscribe(self._on_interrupt)
        self.ticker.start(self._on_timer)
        logger.info("Starting worker")
        try:
            while not self.interrupt.is_set():
                self._launch_tick()
                if not self._wait():
                    break
                self.state = SchedulerState.IDLE
        finally:
            self.state = SchedulerState.STOPPED
            self.ticker.stop()
            self.interrupt.unsubscribe(self._on_interrupt)
