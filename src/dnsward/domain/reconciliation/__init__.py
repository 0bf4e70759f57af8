"""Reconciliation core for Domain resources.

Layered flow of a single pass:
1) fetch the Domain by key (absent means deleted, nothing to do)
2) probe DNS for signing, stats and SPF records
3) converge the derived stats ingress on the fresh status
4) persist the fully replaced status
5) compute the re-trigger interval from the persisted status
"""

from __future__ import annotations

from .context import PassContext
from .contracts import IngressAction, ReconcileResult
from .engine import ReconciliationEngine
from .ingress import StatsIngressManager, build_stats_ingress, stats_ingress_key, stats_ingress_name
from .policy import IntervalPolicy, next_interval
from .probing import check_domain_dns

__all__ = [
    "IngressAction",
    "IntervalPolicy",
    "PassContext",
    "ReconcileResult",
    "ReconciliationEngine",
    "StatsIngressManager",
    "build_stats_ingress",
    "check_domain_dns",
    "next_interval",
    "stats_ingress_key",
    "stats_ingress_name",
]
