"""Resource stores backed by SQLAlchemy sessions.

Status writes use the ``version`` column as an optimistic-concurrency token.
Deleting a Domain cascades to every ingress whose owner reference points at it.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any

from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import IntegrityError

from dnsward.domain.errors import ConflictError, NotFoundError
from dnsward.domain.events import ChangeFeed, EventType, StoreEvent
from dnsward.domain.model import (
    DnsStatus,
    Domain,
    DomainSpec,
    ObjectKey,
    OwnerReference,
    ServiceBackend,
    StatsIngress,
)

from .tables import domain_table, stats_ingress_table
from .unit_of_work import SqlAlchemyUnitOfWork

if TYPE_CHECKING:
    from sqlalchemy import Row
    from sqlalchemy.orm import Session

    from dnsward.domain.reconciliation.context import PassContext

DOMAIN_KIND = "Domain"
INGRESS_KIND = "StatsIngress"

UnitOfWorkFactory = Callable[[], SqlAlchemyUnitOfWork]


def _domain_from_row(row: Row[Any]) -> Domain:
    return Domain(
        key=ObjectKey(namespace=row.namespace, name=row.name),
        spec=DomainSpec(
            base_domain=row.base_domain,
            dkim_selector=row.dkim_selector,
            dkim_public_key=row.dkim_public_key,
        ),
        status=DnsStatus(dkim=row.status_dkim, stats=row.status_stats, spf=row.status_spf),
        uid=row.uid,
        version=row.version,
    )


def _ingress_from_row(row: Row[Any]) -> StatsIngress:
    owner: OwnerReference | None = None
    if row.owner_uid is not None:
        owner = OwnerReference(
            api_version=row.owner_api_version,
            kind=row.owner_kind,
            name=row.owner_name,
            uid=row.owner_uid,
            controller=row.owner_controller,
            block_owner_deletion=row.owner_block_deletion,
        )
    return StatsIngress(
        key=ObjectKey(namespace=row.namespace, name=row.name),
        host=row.host,
        backend=ServiceBackend(name=row.service_name, port=row.service_port),
        path=row.path,
        path_type=row.path_type,
        owner=owner,
        uid=row.uid,
        version=row.version,
        deletion_requested_at=row.deletion_requested_at,
    )


def _ingress_values(ingress: StatsIngress) -> dict[str, object]:
    owner = ingress.owner
    return {
        "namespace": ingress.namespace,
        "name": ingress.name,
        "uid": ingress.uid,
        "host": ingress.host,
        "path": ingress.path,
        "path_type": ingress.path_type,
        "service_name": ingress.backend.name,
        "service_port": ingress.backend.port,
        "owner_api_version": owner.api_version if owner else None,
        "owner_kind": owner.kind if owner else None,
        "owner_name": owner.name if owner else None,
        "owner_uid": owner.uid if owner else None,
        "owner_controller": owner.controller if owner else False,
        "owner_block_deletion": owner.block_owner_deletion if owner else False,
        "version": 1,
        "deletion_requested_at": ingress.deletion_requested_at,
    }


def _select_domain(session: Session, key: ObjectKey) -> Row[Any] | None:
    stmt = (
        select(domain_table)
        .where(domain_table.c.namespace == key.namespace)
        .where(domain_table.c.name == key.name)
    )
    return session.execute(stmt).one_or_none()


def _select_ingress(session: Session, key: ObjectKey) -> Row[Any] | None:
    stmt = (
        select(stats_ingress_table)
        .where(stats_ingress_table.c.namespace == key.namespace)
        .where(stats_ingress_table.c.name == key.name)
    )
    return session.execute(stmt).one_or_none()


@dataclass(slots=True)
class SqlAlchemyDomainStore:
    feed: ChangeFeed = field(default_factory=ChangeFeed)
    uow_factory: UnitOfWorkFactory = SqlAlchemyUnitOfWork

    def get(self, ctx: PassContext, key: ObjectKey) -> Domain | None:
        ctx.raise_if_cancelled()
        with self.uow_factory() as uow:
            row = _select_domain(uow.session, key)
        return _domain_from_row(row) if row is not None else None

    def update_status(self, ctx: PassContext, domain: Domain) -> Domain:
        ctx.raise_if_cancelled()
        with self.uow_factory() as uow:
            row = _select_domain(uow.session, domain.key)
            if row is None:
                raise NotFoundError(DOMAIN_KIND, domain.key)
            if row.version != domain.version:
                raise ConflictError(
                    DOMAIN_KIND,
                    domain.key,
                    f"stale version {domain.version}, stored version is {row.version}",
                )
            current = _domain_from_row(row)
            if current.status == domain.status:
                return current

            stmt = (
                update(domain_table)
                .where(domain_table.c.namespace == domain.namespace)
                .where(domain_table.c.name == domain.name)
                .where(domain_table.c.version == domain.version)
                .values(
                    status_dkim=domain.status.dkim,
                    status_stats=domain.status.stats,
                    status_spf=domain.status.spf,
                    version=domain.version + 1,
                )
            )
            result = uow.session.execute(stmt)
            if result.rowcount != 1:
                raise ConflictError(DOMAIN_KIND, domain.key, "concurrent status update")
            uow.commit()

        updated = replace(current, status=domain.status, version=domain.version + 1)
        self.feed.publish(StoreEvent(EventType.MODIFIED, updated))
        return updated

    def apply(self, key: ObjectKey, spec: DomainSpec) -> Domain:
        """Create the Domain or replace its spec, keeping the status."""

        with self.uow_factory() as uow:
            row = _select_domain(uow.session, key)
            if row is None:
                created = Domain(key=key, spec=spec, version=1)
                uow.session.execute(
                    insert(domain_table).values(
                        namespace=key.namespace,
                        name=key.name,
                        uid=created.uid,
                        base_domain=spec.base_domain,
                        dkim_selector=spec.dkim_selector,
                        dkim_public_key=spec.dkim_public_key,
                        status_dkim=False,
                        status_stats=False,
                        status_spf=False,
                        version=created.version,
                    )
                )
                uow.commit()
                applied = created
                event_type = EventType.ADDED
            else:
                current = _domain_from_row(row)
                if current.spec == spec:
                    return current
                uow.session.execute(
                    update(domain_table)
                    .where(domain_table.c.namespace == key.namespace)
                    .where(domain_table.c.name == key.name)
                    .values(
                        base_domain=spec.base_domain,
                        dkim_selector=spec.dkim_selector,
                        dkim_public_key=spec.dkim_public_key,
                        version=current.version + 1,
                    )
                )
                uow.commit()
                applied = replace(current, spec=spec, version=current.version + 1)
                event_type = EventType.MODIFIED

        self.feed.publish(StoreEvent(event_type, applied))
        return applied

    def delete(self, key: ObjectKey) -> bool:
        """Delete the Domain and garbage-collect the ingresses it owns."""

        with self.uow_factory() as uow:
            row = _select_domain(uow.session, key)
            if row is None:
                return False
            domain = _domain_from_row(row)
            owned_rows = uow.session.execute(
                select(stats_ingress_table).where(stats_ingress_table.c.owner_uid == domain.uid)
            ).all()
            owned = [_ingress_from_row(owned_row) for owned_row in owned_rows]
            uow.session.execute(
                delete(stats_ingress_table).where(stats_ingress_table.c.owner_uid == domain.uid)
            )
            uow.session.execute(
                delete(domain_table)
                .where(domain_table.c.namespace == key.namespace)
                .where(domain_table.c.name == key.name)
            )
            uow.commit()

        for ingress in owned:
            self.feed.publish(StoreEvent(EventType.DELETED, ingress))
        self.feed.publish(StoreEvent(EventType.DELETED, domain))
        return True

    def list_keys(self) -> list[ObjectKey]:
        with self.uow_factory() as uow:
            rows = uow.session.execute(
                select(domain_table.c.namespace, domain_table.c.name).order_by(
                    domain_table.c.namespace, domain_table.c.name
                )
            ).all()
        return [ObjectKey(namespace=namespace, name=name) for namespace, name in rows]


@dataclass(slots=True)
class SqlAlchemyStatsIngressStore:
    feed: ChangeFeed = field(default_factory=ChangeFeed)
    uow_factory: UnitOfWorkFactory = SqlAlchemyUnitOfWork

    def get(self, ctx: PassContext, key: ObjectKey) -> StatsIngress | None:
        ctx.raise_if_cancelled()
        with self.uow_factory() as uow:
            row = _select_ingress(uow.session, key)
        return _ingress_from_row(row) if row is not None else None

    def create(self, ctx: PassContext, ingress: StatsIngress) -> StatsIngress:
        ctx.raise_if_cancelled()
        with self.uow_factory() as uow:
            if _select_ingress(uow.session, ingress.key) is not None:
                raise ConflictError(INGRESS_KIND, ingress.key, "already exists")
            try:
                uow.session.execute(insert(stats_ingress_table).values(**_ingress_values(ingress)))
                uow.commit()
            except IntegrityError as exc:
                raise ConflictError(INGRESS_KIND, ingress.key, "already exists") from exc

        created = replace(ingress, version=1)
        self.feed.publish(StoreEvent(EventType.ADDED, created))
        return created

    def delete(self, ctx: PassContext, ingress: StatsIngress) -> None:
        ctx.raise_if_cancelled()
        with self.uow_factory() as uow:
            result = uow.session.execute(
                delete(stats_ingress_table)
                .where(stats_ingress_table.c.namespace == ingress.namespace)
                .where(stats_ingress_table.c.name == ingress.name)
                .where(stats_ingress_table.c.uid == ingress.uid)
            )
            if result.rowcount == 0:
                raise NotFoundError(INGRESS_KIND, ingress.key)
            uow.commit()

        self.feed.publish(StoreEvent(EventType.DELETED, ingress))


if TYPE_CHECKING:
    from dnsward.domain.ports.persistence import DomainStore, StatsIngressStore

    _domain_store_check: DomainStore = SqlAlchemyDomainStore()
    _ingress_store_check: StatsIngressStore = SqlAlchemyStatsIngressStore()
