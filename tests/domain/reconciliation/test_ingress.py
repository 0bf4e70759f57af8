from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from dnsward.domain.errors import NotFoundError
from dnsward.domain.model import DnsStatus, PathType
from dnsward.domain.ownership import default_registry
from dnsward.domain.reconciliation import (
    IngressAction,
    StatsIngressManager,
    build_stats_ingress,
    stats_ingress_key,
)
from tests.support.resources import BACKEND, make_owned_ingress

if TYPE_CHECKING:
    from dnsward.domain.model import Domain
    from dnsward.domain.reconciliation import PassContext
    from tests.support.store import FakeStatsIngressStore

VALID = DnsStatus(dkim=True, stats=True, spf=True)
NO_STATS = DnsStatus(dkim=True, stats=False, spf=True)


@pytest.fixture
def manager(ingress_store: FakeStatsIngressStore) -> StatsIngressManager:
    return StatsIngressManager(store=ingress_store, backend=BACKEND, registry=default_registry())


def test_build_stats_ingress_routes_base_domain_to_backend(acme: Domain) -> None:
    ingress = build_stats_ingress(acme, BACKEND, default_registry())

    assert ingress.name == "acme-stats"
    assert ingress.namespace == acme.namespace
    assert ingress.host == acme.spec.base_domain
    assert ingress.path == "/"
    assert ingress.path_type is PathType.PREFIX
    assert ingress.backend == BACKEND


def test_absent_ingress_without_stats_stays_absent(
    manager: StatsIngressManager,
    ingress_store: FakeStatsIngressStore,
    ctx: PassContext,
    acme: Domain,
) -> None:
    assert manager.reconcile(ctx, acme, NO_STATS) is IngressAction.UNCHANGED
    assert ingress_store.items == {}


def test_present_ingress_with_stats_is_left_untouched(
    manager: StatsIngressManager,
    ingress_store: FakeStatsIngressStore,
    ctx: PassContext,
    acme: Domain,
) -> None:
    existing = ingress_store.add(make_owned_ingress(acme))

    assert manager.reconcile(ctx, acme, VALID) is IngressAction.UNCHANGED
    assert ingress_store.items[stats_ingress_key(acme)] == existing


def test_delete_that_finds_nothing_counts_as_success(
    manager: StatsIngressManager,
    ingress_store: FakeStatsIngressStore,
    ctx: PassContext,
    acme: Domain,
) -> None:
    ingress_store.add(make_owned_ingress(acme))
    ingress_store.fail_delete = NotFoundError("StatsIngress", stats_ingress_key(acme))

    assert manager.reconcile(ctx, acme, NO_STATS) is IngressAction.DELETED
