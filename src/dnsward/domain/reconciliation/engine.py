"""Orchestrator for one reconciliation pass.

A pass runs fetch -> probe -> converge ingress -> persist status -> schedule,
strictly in order. Each stage consumes what the previous stage of the same pass
produced; a failure aborts everything downstream and is raised as a
``ReconcileError`` naming the stage. The engine never retries on its own, the
dispatcher decides when the key is handed back.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from logging import getLogger
from typing import TYPE_CHECKING, Final

from dnsward.domain.errors import ReconcileError, Stage
from dnsward.domain.model import ServiceBackend
from dnsward.domain.ownership import KindRegistry, default_registry

from .context import PassContext
from .contracts import ReconcileResult
from .ingress import StatsIngressManager
from .policy import next_interval
from .probing import check_domain_dns

if TYPE_CHECKING:
    from dnsward.domain.model import DnsStatus, Domain, ObjectKey
    from dnsward.domain.ports.persistence import DomainStore, StatsIngressStore
    from dnsward.domain.ports.probing import StatusProbe

    from .policy import NextInterval

log = getLogger(__name__)

ERROR_RETRY_INTERVAL: Final[timedelta] = timedelta(minutes=1)
DEFAULT_STATS_BACKEND: Final[ServiceBackend] = ServiceBackend(name="dnsward-stats", port=80)


@dataclass(slots=True)
class ReconciliationEngine:
    """Drive a Domain's derived ingress and status toward its DNS reality."""

    domains: DomainStore
    ingresses: StatsIngressStore
    probe: StatusProbe
    policy: NextInterval = next_interval
    error_retry: timedelta = ERROR_RETRY_INTERVAL
    backend: ServiceBackend = DEFAULT_STATS_BACKEND
    registry: KindRegistry = field(default_factory=default_registry)

    def reconcile(self, key: ObjectKey, ctx: PassContext | None = None) -> ReconcileResult:
        """Run one pass for ``key``."""

        ctx = ctx or PassContext(key=key)
        log.info("Reconciling domain %s", key)

        try:
            domain = self.domains.get(ctx, key)
        except Exception as exc:
            raise ReconcileError(Stage.FETCH, key, exc) from exc
        if domain is None:
            log.info("Domain %s not found; nothing to reconcile", key)
            return ReconcileResult(key=key, requeue_after=None)

        try:
            status = check_domain_dns(self.probe, ctx, domain)
        except Exception as exc:
            raise ReconcileError(
                Stage.PROBE, key, exc, requeue_after=self.error_retry
            ) from exc

        manager = StatsIngressManager(
            store=self.ingresses,
            backend=self.backend,
            registry=self.registry,
        )
        try:
            ctx.raise_if_cancelled()
            action = manager.reconcile(ctx, domain, status)
        except Exception as exc:
            log.error("Failed to reconcile stats ingress for %s: %s", key, exc)
            raise ReconcileError(Stage.CONVERGE, key, exc) from exc

        persisted = self._persist(ctx, domain, status)

        requeue_after = self.policy(persisted.status)
        log.info(
            "Reconciled domain %s: status=%s, ingress=%s, requeue_after=%s",
            key,
            persisted.status,
            action,
            requeue_after,
        )
        return ReconcileResult(
            key=key,
            requeue_after=requeue_after,
            status=persisted.status,
            ingress=action,
        )

    def _persist(self, ctx: PassContext, domain: Domain, status: DnsStatus) -> Domain:
        try:
            ctx.raise_if_cancelled()
            return self.domains.update_status(ctx, domain.with_status(status))
        except Exception as exc:
            raise ReconcileError(Stage.PERSIST, domain.key, exc) from exc
