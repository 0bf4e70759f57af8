"""Ports for the resource store consumed by the engine."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from dnsward.domain.model import Domain, ObjectKey, StatsIngress
    from dnsward.domain.reconciliation.context import PassContext


@runtime_checkable
class DomainStore(Protocol):
    """Read Domains and write their status with optimistic concurrency."""

    def get(self, ctx: PassContext, key: ObjectKey) -> Domain | None: ...

    def update_status(self, ctx: PassContext, domain: Domain) -> Domain:
        """Replace the stored status; raise ``ConflictError`` on a stale version."""
        ...


@runtime_checkable
class StatsIngressStore(Protocol):
    """Create and delete the derived stats ingresses."""

    def get(self, ctx: PassContext, key: ObjectKey) -> StatsIngress | None: ...

    def create(self, ctx: PassContext, ingress: StatsIngress) -> StatsIngress: ...

    def delete(self, ctx: PassContext, ingress: StatsIngress) -> None:
        """Delete ``ingress``; raise ``NotFoundError`` when it is already gone."""
        ...
