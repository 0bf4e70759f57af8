"""Deduplicating, delaying work queue with per-item serialization.

An item is handed to at most one worker at a time. Adding an item that is
being processed marks it dirty; it is queued again once the worker calls
:meth:`WorkQueue.done`.
"""

from __future__ import annotations

import heapq
import itertools
import threading
import time
from collections import deque
from collections.abc import Callable, Hashable
from dataclasses import dataclass, field
from typing import Final

DEFAULT_BASE_DELAY_SECONDS: Final[float] = 0.005
DEFAULT_MAX_DELAY_SECONDS: Final[float] = 1000.0
_MAX_EXPONENT: Final[int] = 62


@dataclass(slots=True)
class ItemBackoff:
    """Per-item exponential backoff: ``base * 2**failures`` capped at ``cap``."""

    base: float = DEFAULT_BASE_DELAY_SECONDS
    cap: float = DEFAULT_MAX_DELAY_SECONDS
    _failures: dict[Hashable, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.base <= 0 or self.cap < self.base:
            raise ValueError("Backoff requires 0 < base <= cap")

    def when(self, item: Hashable) -> float:
        failures = self._failures.get(item, 0)
        self._failures[item] = failures + 1
        return min(self.cap, self.base * 2 ** min(failures, _MAX_EXPONENT))

    def failures(self, item: Hashable) -> int:
        return self._failures.get(item, 0)

    def forget(self, item: Hashable) -> None:
        self._failures.pop(item, None)


class WorkQueue[T: Hashable]:
    def __init__(
        self,
        *,
        backoff: ItemBackoff | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._cond = threading.Condition()
        self._queue: deque[T] = deque()
        self._dirty: set[T] = set()
        self._processing: set[T] = set()
        self._waiting: list[tuple[float, int, T]] = []
        self._ready_at: dict[T, float] = {}
        self._sequence = itertools.count()
        self._shutting_down = False
        self._backoff = backoff or ItemBackoff()
        self._clock = clock

    def __len__(self) -> int:
        with self._cond:
            return len(self._queue)

    @property
    def shutting_down(self) -> bool:
        with self._cond:
            return self._shutting_down

    def add(self, item: T) -> None:
        with self._cond:
            self._add_locked(item)

    def add_after(self, item: T, delay: float) -> None:
        """Queue ``item`` once ``delay`` seconds have passed; the earliest request wins."""

        if delay <= 0:
            self.add(item)
            return
        with self._cond:
            if self._shutting_down:
                return
            ready_at = self._clock() + delay
            current = self._ready_at.get(item)
            if current is not None and current <= ready_at:
                return
            self._ready_at[item] = ready_at
            heapq.heappush(self._waiting, (ready_at, next(self._sequence), item))
            self._cond.notify()

    def add_rate_limited(self, item: T) -> None:
        with self._cond:
            delay = self._backoff.when(item)
        self.add_after(item, delay)

    def forget(self, item: T) -> None:
        with self._cond:
            self._backoff.forget(item)

    def requeues(self, item: T) -> int:
        with self._cond:
            return self._backoff.failures(item)

    def scheduled_at(self, item: T) -> float | None:
        """Return the clock time at which a delayed ``item`` becomes ready."""

        with self._cond:
            return self._ready_at.get(item)

    def get(self, timeout: float | None = None) -> T | None:
        """Block until an item is ready; ``None`` on timeout or shutdown."""

        deadline = None if timeout is None else self._clock() + timeout
        with self._cond:
            while True:
                self._promote_ready_locked()
                if self._queue:
                    item = self._queue.popleft()
                    self._dirty.discard(item)
                    self._processing.add(item)
                    return item
                if self._shutting_down:
                    return None

                wait: float | None = None
                if self._waiting:
                    wait = max(0.0, self._waiting[0][0] - self._clock())
                if deadline is not None:
                    remaining = deadline - self._clock()
                    if remaining <= 0:
                        return None
                    wait = remaining if wait is None else min(wait, remaining)
                self._cond.wait(wait)

    def done(self, item: T) -> None:
        with self._cond:
            self._processing.discard(item)
            if item in self._dirty:
                self._queue.append(item)
                self._cond.notify()

    def shut_down(self) -> None:
        with self._cond:
            self._shutting_down = True
            self._cond.notify_all()

    def _add_locked(self, item: T) -> None:
        if self._shutting_down or item in self._dirty:
            return
        self._dirty.add(item)
        if item in self._processing:
            return
        self._queue.append(item)
        self._cond.notify()

    def _promote_ready_locked(self) -> None:
        now = self._clock()
        while self._waiting and self._waiting[0][0] <= now:
            ready_at, _sequence, item = heapq.heappop(self._waiting)
            if self._ready_at.get(item) != ready_at:
                continue
            del self._ready_at[item]
            self._add_locked(item)
