"""SQLAlchemy table metadata for Domains and their stats ingresses."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Dialect,
    Enum,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    TypeDecorator,
    Uuid,
)

from dnsward.domain.model import PathType

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine


class UTCDateTime(TypeDecorator[datetime]):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        return value if value.tzinfo else value.replace(tzinfo=UTC)


metadata = MetaData(
    naming_convention={
        "ix": "ix_%(column_0_label)s",
        "uq": "uq_%(table_name)s_%(column_0_label)s",
        "ck": "ck_%(table_name)s_%(constraint_name)s",
        "fk": "fk_%(table_name)s_%(column_0_label)s_%(referred_table_name)s",
        "pk": "pk_%(table_name)s",
    }
)

domain_table = Table(
    "domain",
    metadata,
    Column("namespace", String, primary_key=True),
    Column("name", String, primary_key=True),
    Column("uid", Uuid, nullable=False, unique=True),
    Column("base_domain", String, nullable=False),
    Column("dkim_selector", String, nullable=False),
    Column("dkim_public_key", String, nullable=True),
    Column("status_dkim", Boolean, nullable=False, default=False),
    Column("status_stats", Boolean, nullable=False, default=False),
    Column("status_spf", Boolean, nullable=False, default=False),
    Column("version", Integer, nullable=False),
)

stats_ingress_table = Table(
    "stats_ingress",
    metadata,
    Column("namespace", String, primary_key=True),
    Column("name", String, primary_key=True),
    Column("uid", Uuid, nullable=False, unique=True),
    Column("host", String, nullable=False),
    Column("path", String, nullable=False),
    Column("path_type", Enum(PathType, native_enum=False), nullable=False),
    Column("service_name", String, nullable=False),
    Column("service_port", Integer, nullable=False),
    Column("owner_api_version", String, nullable=True),
    Column("owner_kind", String, nullable=True),
    Column("owner_name", String, nullable=True),
    Column("owner_uid", Uuid, nullable=True),
    Column("owner_controller", Boolean, nullable=False, default=False),
    Column("owner_block_deletion", Boolean, nullable=False, default=False),
    Column("version", Integer, nullable=False),
    Column("deletion_requested_at", UTCDateTime, nullable=True),
    Index("ix_stats_ingress_owner_uid", "owner_uid"),
)


def create_all_tables(engine: Engine) -> None:
    metadata.create_all(engine, checkfirst=True)
