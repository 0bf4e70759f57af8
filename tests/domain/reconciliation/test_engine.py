from __future__ import annotations

from dataclasses import replace
from datetime import timedelta
from typing import TYPE_CHECKING

import pytest
from sqlalchemy.exc import OperationalError

from dnsward.domain.errors import (
    ConflictError,
    InvariantViolationError,
    PassCancelledError,
    ProbeError,
    ReconcileError,
    Stage,
)
from dnsward.domain.model import DnsStatus, ObjectKey
from dnsward.domain.reconciliation import (
    IngressAction,
    IntervalPolicy,
    PassContext,
    ReconciliationEngine,
    stats_ingress_key,
)
from tests.support.probe import ScriptedProbe
from tests.support.resources import BACKEND, make_domain, make_owned_ingress

if TYPE_CHECKING:
    from dnsward.domain.model import Domain
    from tests.support.store import FakeDomainStore, FakeStatsIngressStore


def _engine(
    domain_store: FakeDomainStore,
    ingress_store: FakeStatsIngressStore,
    probe: ScriptedProbe,
) -> ReconciliationEngine:
    return ReconciliationEngine(
        domains=domain_store,
        ingresses=ingress_store,
        probe=probe,
        backend=BACKEND,
    )


def test_converged_domain_gets_ingress_status_and_slow_requeue(
    acme: Domain,
    domain_store: FakeDomainStore,
    ingress_store: FakeStatsIngressStore,
    probe: ScriptedProbe,
) -> None:
    domain_store.add(acme)
    engine = _engine(domain_store, ingress_store, probe)

    result = engine.reconcile(acme.key)

    assert result.ingress is IngressAction.CREATED
    assert result.status == DnsStatus(dkim=True, stats=True, spf=True)
    assert result.requeue_after == timedelta(hours=1)
    assert probe.calls == ["dkim", "stats", "spf"]

    stored = domain_store.domains[acme.key]
    assert stored.status.converged
    assert stored.version == 2

    ingress = ingress_store.items[stats_ingress_key(acme)]
    assert ingress.key == ObjectKey(namespace="mail", name="acme-stats")
    assert ingress.host == "acme.example"
    assert ingress.path == "/"
    assert ingress.backend == BACKEND
    assert ingress.controller_owner is not None
    assert ingress.controller_owner.uid == acme.uid


def test_second_pass_on_unchanged_dns_is_a_no_op(
    acme: Domain,
    domain_store: FakeDomainStore,
    ingress_store: FakeStatsIngressStore,
    probe: ScriptedProbe,
) -> None:
    domain_store.add(acme)
    engine = _engine(domain_store, ingress_store, probe)

    first = engine.reconcile(acme.key)
    version_after_first = domain_store.domains[acme.key].version
    second = engine.reconcile(acme.key)

    assert second.ingress is IngressAction.UNCHANGED
    assert second.status == first.status
    assert second.requeue_after == first.requeue_after
    assert domain_store.domains[acme.key].version == version_after_first
    assert len(ingress_store.created) == 1


def test_stats_failure_removes_existing_ingress_and_requeues_soon(
    acme: Domain,
    domain_store: FakeDomainStore,
    ingress_store: FakeStatsIngressStore,
) -> None:
    domain_store.add(acme)
    ingress_store.add(make_owned_ingress(acme))
    probe = ScriptedProbe(stats=False)

    result = _engine(domain_store, ingress_store, probe).reconcile(acme.key)

    assert result.ingress is IngressAction.DELETED
    assert result.requeue_after == timedelta(minutes=1)
    assert stats_ingress_key(acme) not in ingress_store.items
    assert domain_store.domains[acme.key].status == DnsStatus(dkim=True, stats=False, spf=True)


def test_ingress_being_deleted_is_left_alone(
    acme: Domain,
    domain_store: FakeDomainStore,
    ingress_store: FakeStatsIngressStore,
) -> None:
    domain_store.add(acme)
    ingress_store.add(make_owned_ingress(acme, deleting=True))

    result = _engine(domain_store, ingress_store, ScriptedProbe(stats=False)).reconcile(acme.key)

    assert result.ingress is IngressAction.UNCHANGED
    assert ingress_store.deleted == []
    assert stats_ingress_key(acme) in ingress_store.items


def test_status_is_replaced_not_merged(
    domain_store: FakeDomainStore,
    ingress_store: FakeStatsIngressStore,
) -> None:
    domain = domain_store.add(make_domain(status=DnsStatus(dkim=True, stats=True, spf=True)))
    probe = ScriptedProbe(dkim=False)

    result = _engine(domain_store, ingress_store, probe).reconcile(domain.key)

    assert result.status == DnsStatus(dkim=False, stats=True, spf=True)
    assert domain_store.domains[domain.key].status == DnsStatus(dkim=False, stats=True, spf=True)
    assert result.requeue_after == timedelta(minutes=1)


def test_missing_domain_finishes_without_side_effects(
    domain_store: FakeDomainStore,
    ingress_store: FakeStatsIngressStore,
    probe: ScriptedProbe,
) -> None:
    key = ObjectKey(namespace="mail", name="gone")

    result = _engine(domain_store, ingress_store, probe).reconcile(key)

    assert result.deleted
    assert result.requeue_after is None
    assert probe.calls == []
    assert domain_store.updates == []
    assert ingress_store.created == []


def test_probe_failure_aborts_remaining_checks_and_later_stages(
    acme: Domain,
    domain_store: FakeDomainStore,
    ingress_store: FakeStatsIngressStore,
) -> None:
    domain_store.add(acme)
    probe = ScriptedProbe(errors={"dkim": ProbeError("resolver unreachable")})

    with pytest.raises(ReconcileError) as exc:
        _engine(domain_store, ingress_store, probe).reconcile(acme.key)

    assert exc.value.stage is Stage.PROBE
    assert exc.value.requeue_after == timedelta(minutes=1)
    assert isinstance(exc.value.__cause__, ProbeError)
    assert probe.calls == ["dkim"]
    assert domain_store.updates == []
    assert ingress_store.created == []


def test_probe_failure_keeps_previous_status(
    domain_store: FakeDomainStore,
    ingress_store: FakeStatsIngressStore,
) -> None:
    domain = domain_store.add(make_domain(status=DnsStatus(dkim=True, stats=True, spf=True)))
    probe = ScriptedProbe(errors={"spf": ProbeError("timeout")})

    with pytest.raises(ReconcileError):
        _engine(domain_store, ingress_store, probe).reconcile(domain.key)

    assert domain_store.domains[domain.key].status.converged
    assert probe.calls == ["dkim", "stats", "spf"]


def test_fetch_failure_is_reported_with_fetch_stage(
    acme: Domain,
    domain_store: FakeDomainStore,
    ingress_store: FakeStatsIngressStore,
    probe: ScriptedProbe,
) -> None:
    domain_store.fail_get = ConflictError("Domain", acme.key, "store unavailable")

    with pytest.raises(ReconcileError) as exc:
        _engine(domain_store, ingress_store, probe).reconcile(acme.key)

    assert exc.value.stage is Stage.FETCH
    assert exc.value.requeue_after is None
    assert probe.calls == []


def test_ingress_failure_skips_status_persistence(
    acme: Domain,
    domain_store: FakeDomainStore,
    ingress_store: FakeStatsIngressStore,
    probe: ScriptedProbe,
) -> None:
    domain_store.add(acme)
    ingress_store.fail_create = ConflictError("StatsIngress", stats_ingress_key(acme))

    with pytest.raises(ReconcileError) as exc:
        _engine(domain_store, ingress_store, probe).reconcile(acme.key)

    assert exc.value.stage is Stage.CONVERGE
    assert domain_store.updates == []


def test_foreign_ingress_with_stats_name_is_an_invariant_violation(
    acme: Domain,
    domain_store: FakeDomainStore,
    ingress_store: FakeStatsIngressStore,
    probe: ScriptedProbe,
) -> None:
    domain_store.add(acme)
    impostor = make_domain(name="acme")
    ingress_store.add(make_owned_ingress(impostor))

    with pytest.raises(ReconcileError) as exc:
        _engine(domain_store, ingress_store, probe).reconcile(acme.key)

    assert exc.value.stage is Stage.CONVERGE
    assert isinstance(exc.value.__cause__, InvariantViolationError)


def test_stale_status_write_fails_after_ingress_converged(
    acme: Domain,
    domain_store: FakeDomainStore,
    ingress_store: FakeStatsIngressStore,
    probe: ScriptedProbe,
) -> None:
    domain_store.add(acme)
    domain_store.fail_update = ConflictError("Domain", acme.key, "stale version")

    with pytest.raises(ReconcileError) as exc:
        _engine(domain_store, ingress_store, probe).reconcile(acme.key)

    assert exc.value.stage is Stage.PERSIST
    assert exc.value.requeue_after is None
    assert stats_ingress_key(acme) in ingress_store.items


def test_store_errors_are_wrapped_with_stage_and_key(
    acme: Domain,
    domain_store: FakeDomainStore,
    ingress_store: FakeStatsIngressStore,
    probe: ScriptedProbe,
) -> None:
    locked = OperationalError("SELECT", {}, Exception("database is locked"))
    domain_store.fail_get = locked

    with pytest.raises(ReconcileError) as exc:
        _engine(domain_store, ingress_store, probe).reconcile(acme.key)

    assert exc.value.stage is Stage.FETCH
    assert exc.value.key == acme.key
    assert exc.value.__cause__ is locked


def test_status_write_errors_are_wrapped_with_persist_stage(
    acme: Domain,
    domain_store: FakeDomainStore,
    ingress_store: FakeStatsIngressStore,
    probe: ScriptedProbe,
) -> None:
    domain_store.add(acme)
    domain_store.fail_update = OperationalError("UPDATE", {}, Exception("database is locked"))

    with pytest.raises(ReconcileError) as exc:
        _engine(domain_store, ingress_store, probe).reconcile(acme.key)

    assert exc.value.stage is Stage.PERSIST
    assert exc.value.key == acme.key
    assert isinstance(exc.value.__cause__, OperationalError)


def test_unexpected_probe_errors_use_the_probe_retry_delay(
    acme: Domain,
    domain_store: FakeDomainStore,
    ingress_store: FakeStatsIngressStore,
) -> None:
    domain_store.add(acme)
    probe = ScriptedProbe(errors={"dkim": OSError("network unreachable")})

    with pytest.raises(ReconcileError) as exc:
        _engine(domain_store, ingress_store, probe).reconcile(acme.key)

    assert exc.value.stage is Stage.PROBE
    assert exc.value.requeue_after == timedelta(minutes=1)
    cause = exc.value.__cause__
    assert isinstance(cause, ProbeError)
    assert cause.check == "dkim"
    assert isinstance(cause.__cause__, OSError)
    assert probe.calls == ["dkim"]
    assert domain_store.updates == []


def test_ingress_is_recreated_identically_after_stats_recovers(
    acme: Domain,
    domain_store: FakeDomainStore,
    ingress_store: FakeStatsIngressStore,
    probe: ScriptedProbe,
) -> None:
    domain_store.add(acme)
    engine = _engine(domain_store, ingress_store, probe)
    key = stats_ingress_key(acme)

    first = engine.reconcile(acme.key)
    original = ingress_store.items[key]
    probe.set(stats=False)
    dropped = engine.reconcile(acme.key)
    probe.set(stats=True)
    recovered = engine.reconcile(acme.key)

    assert [first.ingress, dropped.ingress, recovered.ingress] == [
        IngressAction.CREATED,
        IngressAction.DELETED,
        IngressAction.CREATED,
    ]
    assert [first.requeue_after, dropped.requeue_after, recovered.requeue_after] == [
        timedelta(hours=1),
        timedelta(minutes=1),
        timedelta(hours=1),
    ]
    recreated = ingress_store.items[key]
    assert recreated.uid != original.uid
    assert replace(recreated, uid=original.uid) == original


def test_removed_domain_cascades_to_its_ingress(
    acme: Domain,
    domain_store: FakeDomainStore,
    ingress_store: FakeStatsIngressStore,
    probe: ScriptedProbe,
) -> None:
    domain_store.add(acme)
    engine = _engine(domain_store, ingress_store, probe)
    engine.reconcile(acme.key)
    assert stats_ingress_key(acme) in ingress_store.items

    domain_store.remove(acme.key)
    result = engine.reconcile(acme.key)

    assert result.deleted
    assert ingress_store.items == {}
    assert ingress_store.deleted == []



def test_cancelled_pass_does_not_start(
    acme: Domain,
    domain_store: FakeDomainStore,
    ingress_store: FakeStatsIngressStore,
    probe: ScriptedProbe,
) -> None:
    domain_store.add(acme)
    ctx = PassContext(key=acme.key)
    ctx.cancel()

    with pytest.raises(ReconcileError) as exc:
        _engine(domain_store, ingress_store, probe).reconcile(acme.key, ctx)

    assert exc.value.stage is Stage.FETCH
    assert isinstance(exc.value.__cause__, PassCancelledError)
    assert probe.calls == []


def test_custom_policy_drives_requeue(
    acme: Domain,
    domain_store: FakeDomainStore,
    ingress_store: FakeStatsIngressStore,
) -> None:
    domain_store.add(acme)
    engine = ReconciliationEngine(
        domains=domain_store,
        ingresses=ingress_store,
        probe=ScriptedProbe(spf=False),
        policy=IntervalPolicy(converged=timedelta(hours=6), pending=timedelta(seconds=15)),
    )

    result = engine.reconcile(acme.key)

    assert result.requeue_after == timedelta(seconds=15)
    assert result.ingress is IngressAction.CREATED
