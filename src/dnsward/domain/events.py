"""Change notifications published by resource stores."""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from logging import getLogger

from dnsward.domain.model import Domain, StatsIngress

log = getLogger(__name__)


class EventType(StrEnum):
    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"


@dataclass(frozen=True, slots=True)
class StoreEvent:
    type: EventType
    obj: Domain | StatsIngress


type ChangeListener = Callable[[StoreEvent], None]


@dataclass(slots=True)
class ChangeFeed:
    """Fan-out of committed store mutations to in-process listeners."""

    _listeners: list[ChangeListener] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Register ``listener``; the returned callable unsubscribes it."""

        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event: StoreEvent) -> None:
        with self._lock:
            listeners = tuple(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                log.exception("Change listener failed for %s %s", event.type, event.obj.key)
