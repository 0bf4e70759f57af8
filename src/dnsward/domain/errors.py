"""Error hierarchy shared by the engine, its ports and the adapters."""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import timedelta

    from dnsward.domain.model import ObjectKey


class DnswardError(RuntimeError):
    """Base class for controller errors."""


class NotFoundError(DnswardError):
    """Raised by stores when the addressed object does not exist."""

    def __init__(self, kind: str, key: ObjectKey) -> None:
        super().__init__(f"{kind} {key} not found")
        self.kind = kind
        self.key = key


class ConflictError(DnswardError):
    """Raised by stores on stale versions or when creating an existing object."""

    def __init__(self, kind: str, key: ObjectKey, reason: str = "conflict") -> None:
        super().__init__(f"{kind} {key}: {reason}")
        self.kind = kind
        self.key = key
        self.reason = reason


class ProbeError(DnswardError):
    """Raised when an external DNS lookup cannot be completed."""

    def __init__(self, message: str, *, check: str | None = None, name: str | None = None) -> None:
        super().__init__(message)
        self.check = check
        self.name = name


class PassCancelledError(DnswardError):
    """Raised when a pass exceeds its deadline or is cancelled."""


class InvariantViolationError(DnswardError):
    """Raised when stored state contradicts an invariant the controller relies on."""


class Stage(StrEnum):
    FETCH = "fetch"
    PROBE = "probe"
    CONVERGE = "converge"
    PERSIST = "persist"


class ReconcileError(DnswardError):
    """A failed reconciliation pass, tagged with the stage that aborted it.

    ``requeue_after`` is set when the engine asks for a fixed retry delay; otherwise
    the dispatcher applies its own backoff.
    """

    def __init__(
        self,
        stage: Stage,
        key: ObjectKey,
        cause: BaseException,
        *,
        requeue_after: timedelta | None = None,
    ) -> None:
        super().__init__(f"reconcile {key} failed during {stage}: {cause}")
        self.stage = stage
        self.key = key
        self.requeue_after = requeue_after
