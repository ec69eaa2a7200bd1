"""Retry/debounce scheduler.

Turns a stream of sync triggers into single-flight sync attempts:

* **Debounce** -- the first automatic trigger opens a window
  (``debounce`` seconds); triggers arriving inside it join the same
  attempt.  The window is not extended by later triggers.
* **Immediate** -- manual triggers cancel any pending window or retry wait
  and attempt right away.
* **Single-flight** -- at most one attempt runs at a time.  Triggers that
  arrive mid-attempt queue up and cause one follow-up attempt.
* **Retry** -- a retryable failure bumps every task's ``retry_count``.
  Tasks that reached ``max_retries`` are dropped; the rest are retried
  after ``min(base_delay * multiplier ** (retry_count - 1), max_delay)``.
  Non-retryable failures drop the whole batch at once.
* **Interval** -- once started, a periodic timer fires an automatic
  trigger every ``interval`` seconds while the scheduler is enabled.

All timing goes through an injected ``Clock`` so tests can drive the
state machine with a fake.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from functools import partial
from typing import Protocol

from .identity import random_suffix
from .models import SyncOutcome, SyncTask
from .status import SyncStatusPublisher

logger = logging.getLogger(__name__)

AttemptFn = Callable[[list[SyncTask]], SyncOutcome]

INTERVAL_OPERATION = "interval_sync"


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------


class TimerHandle(Protocol):
    def cancel(self) -> None: ...  # pragma: no cover


class Clock(Protocol):
    """Time source and timer factory used by the scheduler."""

    def now(self) -> float:
        """Seconds on a monotonic scale."""
        ...  # pragma: no cover

    def call_later(
        self, delay: float, callback: Callable[[], None]
    ) -> TimerHandle:
        """Run *callback* after *delay* seconds; return a cancellable handle."""
        ...  # pragma: no cover


class ThreadingClock:
    """Production clock: ``time.monotonic`` plus daemon ``threading.Timer``s."""

    def now(self) -> float:
        return time.monotonic()

    def call_later(
        self, delay: float, callback: Callable[[], None]
    ) -> TimerHandle:
        timer = threading.Timer(delay, callback)
        timer.daemon = True
        timer.start()
        return timer


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------


class SyncScheduler:
    """Coalesce triggers into sync attempts with debounce and retry.

    Args:
        attempt: Runs one sync attempt for a batch of tasks and returns its
            outcome.  Exceptions are logged and treated as non-retryable.
        clock: Time source and timer factory.
        status: Publisher receiving syncing/success/error updates.
        debounce: Debounce window for automatic triggers (seconds).
        max_retries: Failed attempts after which a task is dropped.
        base_delay: First retry delay (seconds).
        multiplier: Backoff multiplier.
        max_delay: Upper bound for any retry delay (seconds).
        interval: Period of the automatic interval trigger (seconds);
            ``0`` turns it off.
        on_interval: Called on every interval tick.  Defaults to an
            automatic ``trigger("interval_sync")``.
    """

    def __init__(
        self,
        attempt: AttemptFn,
        clock: Clock,
        status: SyncStatusPublisher,
        *,
        debounce: float = 5.0,
        max_retries: int = 3,
        base_delay: float = 1.0,
        multiplier: float = 2.0,
        max_delay: float = 30.0,
        interval: float = 0.0,
        on_interval: Callable[[], object] | None = None,
    ) -> None:
        self._attempt = attempt
        self._clock = clock
        self._status = status
        self.debounce = debounce
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.multiplier = multiplier
        self.max_delay = max_delay
        self.interval = interval
        self._on_interval = on_interval or partial(
            self.trigger, INTERVAL_OPERATION
        )

        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._queue: list[SyncTask] = []
        self._timer: TimerHandle | None = None
        self._interval_timer: TimerHandle | None = None
        self._interval_started = False
        self._running = False
        self._enabled = True
        self._generation = 0
        self._last_outcome: SyncOutcome | None = None

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def pending_tasks(self) -> list[SyncTask]:
        with self._lock:
            return list(self._queue)

    def retry_delay(self, retry_count: int) -> float:
        """Backoff delay before the attempt following failure *retry_count*."""
        delay = self.base_delay * self.multiplier ** max(retry_count - 1, 0)
        return min(delay, self.max_delay)

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    def trigger(
        self, operation: str, immediate: bool = False
    ) -> SyncTask | None:
        """Queue a sync for *operation*.

        Returns:
            The queued task, or ``None`` while the scheduler is disabled.
        """
        with self._lock:
            if not self._enabled:
                logger.debug("Sync disabled; ignoring trigger %s", operation)
                return None
            task = self._new_task(operation, immediate)
            self._queue.append(task)

            if self._running:
                logger.debug("Attempt in flight; %s queued", task.id)
            elif immediate:
                self._schedule(0)
            elif self._timer is None:
                self._schedule(self.debounce)
        return task

    def run_now(self, operation: str = "manual_sync") -> SyncOutcome:
        """Attempt a sync in the calling thread and return its outcome.

        Waits for an in-flight attempt to finish first.  Pending tasks join
        this attempt.
        """
        with self._lock:
            if not self._enabled:
                return SyncOutcome(success=True, message="Sync is disabled")
            task = self._new_task(operation, immediate=True)
            self._queue.append(task)
            while self._running:
                self._idle.wait()
            if not self._enabled:
                return SyncOutcome(success=True, message="Sync is disabled")
            if task not in self._queue and self._last_outcome is not None:
                # A timer-driven attempt picked the task up while we waited.
                return self._last_outcome
            self._cancel_timer()
            batch = self._take_batch()
            generation = self._generation
        return self._execute(batch, generation)

    def start_interval(self) -> None:
        """Arm the periodic trigger.  A no-op when ``interval`` is 0."""
        with self._lock:
            self._interval_started = True
            if self._enabled:
                self._arm_interval()

    def disable(self) -> None:
        """Cancel timers and drop every pending task."""
        with self._lock:
            self._enabled = False
            self._generation += 1
            self._cancel_timer()
            self._cancel_interval()
            dropped = len(self._queue)
            self._queue.clear()
            self._idle.notify_all()
        logger.info("Sync disabled; dropped %d pending task(s)", dropped)
        self._status.set_idle("Sync disabled")

    def enable(self) -> None:
        with self._lock:
            self._enabled = True
            if self._interval_started:
                self._arm_interval()
        logger.info("Sync enabled")

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def _new_task(self, operation: str, immediate: bool) -> SyncTask:
        now = self._clock.now()
        return SyncTask(
            id=f"{operation}_{int(time.time() * 1000)}_{random_suffix()}",
            operation=operation,
            timestamp=now,
            immediate=immediate,
        )

    def _schedule(self, delay: float) -> None:
        """Arm the single timer.  Caller holds the lock."""
        self._cancel_timer()
        generation = self._generation
        self._timer = self._clock.call_later(
            delay, lambda: self._fire(generation)
        )

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _arm_interval(self) -> None:
        """(Re)arm the periodic timer.  Caller holds the lock."""
        self._cancel_interval()
        if self.interval <= 0:
            return
        generation = self._generation
        self._interval_timer = self._clock.call_later(
            self.interval, lambda: self._fire_interval(generation)
        )

    def _cancel_interval(self) -> None:
        if self._interval_timer is not None:
            self._interval_timer.cancel()
            self._interval_timer = None

    def _fire_interval(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation or not self._enabled:
                return
            self._arm_interval()
        logger.debug("Interval elapsed; triggering sync")
        self._on_interval()

    def _take_batch(self) -> list[SyncTask]:
        batch = self._queue
        self._queue = []
        self._running = True
        return batch

    def _fire(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation or not self._enabled:
                return
            self._timer = None
            if self._running or not self._queue:
                return
            batch = self._take_batch()
        self._execute(batch, generation)

    def _execute(
        self, batch: list[SyncTask], generation: int
    ) -> SyncOutcome:
        operation = batch[-1].operation
        logger.info(
            "Sync attempt for %d task(s), latest %s", len(batch), operation
        )
        self._status.set_syncing(operation)
        try:
            outcome = self._attempt(batch)
        except Exception as e:
            logger.exception("Sync attempt raised")
            outcome = SyncOutcome(success=False, message=str(e))
        self._finish(batch, outcome, generation)
        return outcome

    def _finish(
        self,
        batch: list[SyncTask],
        outcome: SyncOutcome,
        generation: int,
    ) -> None:
        publish: Callable[[], None] | None = None
        operation = batch[-1].operation

        with self._lock:
            self._running = False
            self._last_outcome = outcome
            if generation != self._generation:
                # Disabled mid-attempt: the outcome is discarded.
                self._idle.notify_all()
                return

            if outcome.success:
                logger.info("Sync succeeded: %s", outcome.message)
                publish = partial(
                    self._status.set_success, operation, outcome.message or None
                )
            elif outcome.retryable:
                publish = self._plan_retry(batch, outcome)
            else:
                logger.error(
                    "Sync failed permanently (%s): %s",
                    outcome.error_kind.value if outcome.error_kind else "error",
                    outcome.message,
                )
                publish = partial(
                    self._status.set_error, outcome.message, operation
                )

            if self._queue and self._timer is None and self._enabled:
                self._schedule(0)
            self._idle.notify_all()

        publish()

    def _plan_retry(
        self, batch: list[SyncTask], outcome: SyncOutcome
    ) -> Callable[[], None]:
        """Requeue retryable tasks and arm the backoff timer.  Lock held."""
        retained: list[SyncTask] = []
        for task in batch:
            task.retry_count += 1
            if task.retry_count >= self.max_retries:
                logger.warning(
                    "Dropping task %s after %d attempts",
                    task.id,
                    task.retry_count,
                )
            else:
                retained.append(task)

        operation = batch[-1].operation
        if not retained:
            message = (
                f"{outcome.message} (gave up after {self.max_retries} attempts)"
            )
            return partial(self._status.set_error, message, operation)

        self._queue = retained + self._queue
        attempts = max(task.retry_count for task in retained)
        delay = self.retry_delay(attempts)
        self._schedule(delay)
        logger.info(
            "Retrying sync in %.1fs (attempt %d of %d)",
            delay,
            attempts + 1,
            self.max_retries,
        )
        message = (
            f"Retrying in {delay:g}s (attempt {attempts + 1} of "
            f"{self.max_retries}): {outcome.message}"
        )
        return partial(self._status.set_syncing, operation, message)
