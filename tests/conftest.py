from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine  # noqa: TC002
from sqlalchemy.pool import StaticPool

from dnsward.adapters.sqlalchemy.tables import create_all_tables
from dnsward.adapters.sqlalchemy.unit_of_work import SqlAlchemyUnitOfWork, shutdown, startup
from dnsward.domain.reconciliation.context import PassContext
from tests.support.probe import ScriptedProbe
from tests.support.resources import make_domain
from tests.support.store import FakeDomainStore, FakeStatsIngressStore

os.environ.setdefault("DATABASE_URI", "sqlite+pysqlite:///:memory:")

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from dnsward.domain.model import Domain


@pytest.fixture
def sqlite_engine() -> Iterator[Engine]:
    engine = create_engine(
        "sqlite+pysqlite://",
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    create_all_tables(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def sqlite_unit_of_work(
    sqlite_engine: Engine,
) -> Iterator[Callable[[], SqlAlchemyUnitOfWork]]:
    startup(engine=sqlite_engine, force=True)

    def factory() -> SqlAlchemyUnitOfWork:
        return SqlAlchemyUnitOfWork()

    try:
        yield factory
    finally:
        shutdown()


@pytest.fixture
def acme() -> Domain:
    return make_domain()


@pytest.fixture
def ingress_store() -> FakeStatsIngressStore:
    return FakeStatsIngressStore()


@pytest.fixture
def domain_store(ingress_store: FakeStatsIngressStore) -> FakeDomainStore:
    return FakeDomainStore(ingresses=ingress_store)


@pytest.fixture
def probe() -> ScriptedProbe:
    return ScriptedProbe()


@pytest.fixture
def ctx(acme: Domain) -> PassContext:
    return PassContext(key=acme.key)
