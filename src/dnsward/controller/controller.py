"""Thread-pool dispatcher that feeds Domain keys into the reconciliation engine.

Each key is processed by at most one worker at a time. A successful pass
schedules the next one after the interval chosen by the engine; a failed pass
is retried after the error's own delay or, failing that, with per-key
exponential backoff.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import timedelta
from logging import getLogger
from typing import TYPE_CHECKING

from dnsward.domain.errors import ReconcileError
from dnsward.domain.model import ObjectKey
from dnsward.domain.ownership import KindRegistry, default_registry
from dnsward.domain.reconciliation.context import PassContext

from .watch import keys_for_event
from .workqueue import WorkQueue

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from dnsward.domain.events import StoreEvent
    from dnsward.domain.reconciliation.engine import ReconciliationEngine

log = getLogger(__name__)

type KeySource = Callable[[], Iterable[ObjectKey]]


@dataclass(slots=True)
class Controller:
    engine: ReconciliationEngine
    queue: WorkQueue[ObjectKey] = field(default_factory=WorkQueue)
    registry: KindRegistry = field(default_factory=default_registry)
    workers: int = 2
    pass_timeout: timedelta | None = timedelta(seconds=30)
    resync_interval: timedelta | None = timedelta(minutes=10)
    stop_event: threading.Event = field(default_factory=threading.Event)

    def __post_init__(self) -> None:
        if self.workers < 1:
            raise ValueError("Controller requires at least one worker")

    def enqueue(self, key: ObjectKey) -> None:
        self.queue.add(key)

    def handle_event(self, event: StoreEvent) -> None:
        for key in keys_for_event(event, self.registry):
            log.debug("Queueing %s after %s %s", key, event.type, event.obj.key)
            self.queue.add(key)

    def resync(self, keys: Iterable[ObjectKey]) -> int:
        count = 0
        for key in keys:
            self.queue.add(key)
            count += 1
        log.debug("Resync queued %d domains", count)
        return count

    def process_next(self, timeout: float | None = None) -> bool:
        """Reconcile one ready key; ``False`` when none arrived or the queue shut down."""

        key = self.queue.get(timeout)
        if key is None:
            return False
        try:
            self._reconcile(key)
        finally:
            self.queue.done(key)
        return True

    def run(self, keys_source: KeySource | None = None) -> None:
        """Run workers until ``stop_event`` is set, resyncing every known key periodically."""

        threads = [
            threading.Thread(target=self._worker, name=f"dnsward-worker-{index}", daemon=True)
            for index in range(self.workers)
        ]
        for thread in threads:
            thread.start()
        log.info("Controller started with %d workers", self.workers)

        interval = self.resync_interval.total_seconds() if self.resync_interval else None
        try:
            while not self.stop_event.is_set():
                if keys_source is not None:
                    self._resync_from(keys_source)
                if self.stop_event.wait(interval):
                    break
        finally:
            self.queue.shut_down()
            for thread in threads:
                thread.join()
            log.info("Controller stopped")

    def stop(self) -> None:
        self.stop_event.set()
        self.queue.shut_down()

    def _worker(self) -> None:
        while self.process_next():
            pass

    def _resync_from(self, keys_source: KeySource) -> None:
        try:
            self.resync(keys_source())
        except Exception:
            log.exception("Failed to list domains for resync")

    def _reconcile(self, key: ObjectKey) -> None:
        timeout = self.pass_timeout.total_seconds() if self.pass_timeout else None
        ctx = PassContext.with_timeout(key, timeout, cancel_event=self.stop_event)
        try:
            result = self.engine.reconcile(key, ctx)
        except ReconcileError as exc:
            if exc.requeue_after is not None:
                log.warning("%s; retrying in %s", exc, exc.requeue_after)
                self.queue.add_after(key, exc.requeue_after.total_seconds())
            else:
                log.error("%s; backing off", exc)
                self.queue.add_rate_limited(key)
            return
        except Exception:
            log.exception("Unexpected error while reconciling %s", key)
            self.queue.add_rate_limited(key)
            return

        self.queue.forget(key)
        if result.requeue_after is not None:
            self.queue.add_after(key, result.requeue_after.total_seconds())
