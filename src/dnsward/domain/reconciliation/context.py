"""Per-pass deadline and cancellation signal."""

from __future__ import annotations

import asyncio
import threading
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Final

from dnsward.domain.errors import PassCancelledError
from dnsward.domain.model import ObjectKey

_POLL_INTERVAL_SECONDS: Final[float] = 0.05


@dataclass(slots=True)
class PassContext:
    """Carries the deadline and cancel signal of one reconciliation pass.

    Every blocking call made on behalf of the pass checks the context before
    starting; async I/O is wrapped in :meth:`guard` so it is interrupted promptly.
    """

    key: ObjectKey
    deadline: float | None = None
    cancel_event: threading.Event = field(default_factory=threading.Event)
    clock: Callable[[], float] = time.monotonic

    @classmethod
    def with_timeout(
        cls,
        key: ObjectKey,
        timeout: float | None,
        *,
        cancel_event: threading.Event | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> PassContext:
        deadline = clock() + timeout if timeout is not None else None
        return cls(
            key=key,
            deadline=deadline,
            cancel_event=cancel_event or threading.Event(),
            clock=clock,
        )

    def remaining(self) -> float | None:
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - self.clock())

    def cancel(self) -> None:
        self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    @property
    def expired(self) -> bool:
        return self.deadline is not None and self.clock() >= self.deadline

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise PassCancelledError(f"reconcile pass for {self.key} was cancelled")
        if self.expired:
            raise PassCancelledError(f"reconcile pass for {self.key} exceeded its deadline")

    async def guard[T](self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` but abort it once the pass is cancelled or expires."""

        self.raise_if_cancelled()
        task = asyncio.ensure_future(awaitable)
        try:
            while True:
                wait_for = _POLL_INTERVAL_SECONDS
                remaining = self.remaining()
                if remaining is not None:
                    wait_for = min(wait_for, remaining)
                done, _pending = await asyncio.wait({task}, timeout=wait_for)
                if done:
                    return task.result()
                self.raise_if_cancelled()
        finally:
            if not task.done():
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
