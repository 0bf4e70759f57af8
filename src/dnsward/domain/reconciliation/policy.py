"""Re-trigger interval policy.

Two tiers only: converged Domains are re-checked rarely since DNS records seldom
change, everything else is retried promptly while records propagate.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING, Final, Protocol

if TYPE_CHECKING:
    from dnsward.domain.model import DnsStatus

CONVERGED_INTERVAL: Final[timedelta] = timedelta(hours=1)
PENDING_INTERVAL: Final[timedelta] = timedelta(minutes=1)


class NextInterval(Protocol):
    def __call__(self, status: DnsStatus) -> timedelta: ...


@dataclass(frozen=True, slots=True)
class IntervalPolicy:
    converged: timedelta = CONVERGED_INTERVAL
    pending: timedelta = PENDING_INTERVAL

    def __post_init__(self) -> None:
        if self.converged <= timedelta(0) or self.pending <= timedelta(0):
            raise ValueError("Reconcile intervals must be positive")

    def __call__(self, status: DnsStatus) -> timedelta:
        return self.converged if status.converged else self.pending


next_interval: NextInterval = IntervalPolicy()
