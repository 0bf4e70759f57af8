"""Port for the external DNS checks run on each pass."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from dnsward.domain.model import Domain
    from dnsward.domain.reconciliation.context import PassContext


@runtime_checkable
class StatusProbe(Protocol):
    """Independent, read-only checks scoped to a Domain's base name.

    Each check may raise ``ProbeError`` for lookup failures and
    ``PassCancelledError`` when the pass is aborted.
    """

    def check_signing(self, ctx: PassContext, domain: Domain) -> bool: ...

    def check_stats_dns(self, ctx: PassContext, domain: Domain) -> bool: ...

    def check_spf(self, ctx: PassContext, domain: Domain) -> bool: ...
