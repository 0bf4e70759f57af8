"""SQLAlchemy adapter package for dnsward."""

from __future__ import annotations

from .stores import SqlAlchemyDomainStore, SqlAlchemyStatsIngressStore
from .tables import create_all_tables, domain_table, metadata, stats_ingress_table
from .unit_of_work import (
    SqlAlchemyUnitOfWork,
    StartupError,
    configured_engine,
    is_started,
    shutdown,
    startup,
)

__all__ = [
    "SqlAlchemyDomainStore",
    "SqlAlchemyStatsIngressStore",
    "SqlAlchemyUnitOfWork",
    "StartupError",
    "configured_engine",
    "create_all_tables",
    "domain_table",
    "is_started",
    "metadata",
    "shutdown",
    "startup",
    "stats_ingress_table",
]
