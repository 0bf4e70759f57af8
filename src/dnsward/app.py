"""Application orchestration entry points."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

from dnsward.adapters.doh import DnsOverHttpsProbe
from dnsward.adapters.sqlalchemy.stores import SqlAlchemyDomainStore, SqlAlchemyStatsIngressStore
from dnsward.adapters.sqlalchemy.unit_of_work import is_started, startup
from dnsward.config import ControllerConfig, get_controller_config, get_dns_probe_config
from dnsward.controller import Controller
from dnsward.domain.events import ChangeFeed
from dnsward.domain.reconciliation import IntervalPolicy, PassContext, ReconciliationEngine

if TYPE_CHECKING:
    from dnsward.domain.model import Domain, DomainSpec, ObjectKey
    from dnsward.domain.ports.probing import StatusProbe
    from dnsward.domain.reconciliation import ReconcileResult

log = getLogger(__name__)


@dataclass(slots=True)
class Runtime:
    """Stores, engine and change feed sharing one database."""

    engine: ReconciliationEngine
    domains: SqlAlchemyDomainStore
    ingresses: SqlAlchemyStatsIngressStore
    config: ControllerConfig
    feed: ChangeFeed = field(default_factory=ChangeFeed)
    owned_probe: DnsOverHttpsProbe | None = None

    def close(self) -> None:
        """Release the DNS probe built for this runtime."""

        if self.owned_probe is not None:
            self.owned_probe.close()


def build_runtime(
    *,
    config: ControllerConfig | None = None,
    probe: StatusProbe | None = None,
    database_uri: str | None = None,
) -> Runtime:
    if not is_started():
        startup(database_uri=database_uri)
    effective_config = config or get_controller_config()
    owned_probe: DnsOverHttpsProbe | None = None
    if probe is None:
        probe = owned_probe = DnsOverHttpsProbe(config=get_dns_probe_config())
    feed = ChangeFeed()
    domains = SqlAlchemyDomainStore(feed=feed)
    ingresses = SqlAlchemyStatsIngressStore(feed=feed)
    engine = ReconciliationEngine(
        domains=domains,
        ingresses=ingresses,
        probe=probe,
        policy=IntervalPolicy(
            converged=effective_config.converged_interval,
            pending=effective_config.pending_interval,
        ),
        error_retry=effective_config.error_retry,
        backend=effective_config.stats_backend,
    )
    return Runtime(
        engine=engine,
        domains=domains,
        ingresses=ingresses,
        config=effective_config,
        feed=feed,
        owned_probe=owned_probe,
    )


def apply_domain(key: ObjectKey, spec: DomainSpec, *, runtime: Runtime | None = None) -> Domain:
    """Create or update a Domain's spec."""

    effective = runtime or build_runtime()
    domain = effective.domains.apply(key, spec)
    log.info(
        "Applied domain %s (base_domain=%s, version=%s)", key, spec.base_domain, domain.version
    )
    return domain


def delete_domain(key: ObjectKey, *, runtime: Runtime | None = None) -> bool:
    effective = runtime or build_runtime()
    deleted = effective.domains.delete(key)
    if deleted:
        log.info("Deleted domain %s", key)
    else:
        log.info("Domain %s not found", key)
    return deleted


def get_domain(key: ObjectKey, *, runtime: Runtime | None = None) -> Domain | None:
    effective = runtime or build_runtime()
    return effective.domains.get(PassContext(key=key), key)


def reconcile_domain(key: ObjectKey, *, runtime: Runtime | None = None) -> ReconcileResult:
    """Run a single reconciliation pass outside the controller loop."""

    effective = runtime or build_runtime()
    timeout = effective.config.pass_timeout.total_seconds()
    try:
        return effective.engine.reconcile(key, PassContext.with_timeout(key, timeout))
    finally:
        if runtime is None:
            effective.close()


def run_controller(
    *,
    runtime: Runtime | None = None,
    stop_event: threading.Event | None = None,
    workers: int | None = None,
) -> None:
    """Watch the stores and reconcile every Domain until ``stop_event`` is set."""

    effective = runtime or build_runtime()
    controller = Controller(
        engine=effective.engine,
        registry=effective.engine.registry,
        workers=workers or effective.config.workers,
        pass_timeout=effective.config.pass_timeout,
        resync_interval=effective.config.resync_interval,
        stop_event=stop_event or threading.Event(),
    )
    unsubscribe = effective.feed.subscribe(controller.handle_event)
    try:
        controller.run(keys_source=effective.domains.list_keys)
    finally:
        unsubscribe()
        if runtime is None:
            effective.close()
