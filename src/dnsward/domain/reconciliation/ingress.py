"""Derived stats-ingress management.

The ingress exists iff the current pass found the stats DNS record valid. Its
content is fully determined by the Domain, so only existence is reconciled.
"""

from __future__ import annotations

from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from dnsward.domain.errors import InvariantViolationError, NotFoundError
from dnsward.domain.model import ObjectKey, PathType, StatsIngress
from dnsward.domain.ownership import set_controller_reference

from .contracts import IngressAction

if TYPE_CHECKING:
    from dnsward.domain.model import DnsStatus, Domain, ServiceBackend
    from dnsward.domain.ownership import KindRegistry
    from dnsward.domain.ports.persistence import StatsIngressStore

    from .context import PassContext

log = getLogger(__name__)

STATS_SUFFIX = "-stats"


def stats_ingress_name(domain: Domain) -> str:
    return f"{domain.name}{STATS_SUFFIX}"


def stats_ingress_key(domain: Domain) -> ObjectKey:
    return ObjectKey(namespace=domain.namespace, name=stats_ingress_name(domain))


def build_stats_ingress(
    domain: Domain,
    backend: ServiceBackend,
    registry: KindRegistry,
) -> StatsIngress:
    """Build the canonical ingress routing the base domain to the stats backend."""

    ingress = StatsIngress(
        key=stats_ingress_key(domain),
        host=domain.spec.base_domain,
        backend=backend,
        path="/",
        path_type=PathType.PREFIX,
    )
    return set_controller_reference(domain, ingress, registry)


@dataclass(slots=True)
class StatsIngressManager:
    store: StatsIngressStore
    backend: ServiceBackend
    registry: KindRegistry

    def reconcile(self, ctx: PassContext, domain: Domain, status: DnsStatus) -> IngressAction:
        key = stats_ingress_key(domain)
        existing = self.store.get(ctx, key)

        if existing is not None:
            self._ensure_owned(domain, existing)
            return self._handle_existing(ctx, existing, status)

        if not status.stats:
            return IngressAction.UNCHANGED

        ingress = build_stats_ingress(domain, self.backend, self.registry)
        self.store.create(ctx, ingress)
        log.info("Created stats ingress %s for %s", key, domain.key)
        return IngressAction.CREATED

    def _handle_existing(
        self,
        ctx: PassContext,
        ingress: StatsIngress,
        status: DnsStatus,
    ) -> IngressAction:
        if status.stats:
            return IngressAction.UNCHANGED
        if ingress.deletion_requested_at is not None:
            return IngressAction.UNCHANGED

        try:
            self.store.delete(ctx, ingress)
        except NotFoundError:
            log.debug("Stats ingress %s already gone", ingress.key)
        else:
            log.info("Deleted stats ingress %s", ingress.key)
        return IngressAction.DELETED

    def _ensure_owned(self, domain: Domain, ingress: StatsIngress) -> None:
        owner = ingress.controller_owner
        if owner is None or owner.uid != domain.uid:
            raise InvariantViolationError(
                f"Stats ingress {ingress.key} exists but is not controlled by Domain {domain.key}"
            )
