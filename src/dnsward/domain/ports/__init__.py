"""Domain port definitions for adapters."""

from __future__ import annotations

from .persistence import DomainStore, StatsIngressStore
from .probing import StatusProbe

__all__ = [
    "DomainStore",
    "StatsIngressStore",
    "StatusProbe",
]
