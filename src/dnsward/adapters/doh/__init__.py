"""Public interface for the DNS-over-HTTPS adapter."""

from __future__ import annotations

from .client import DohResolver
from .probe import DnsOverHttpsProbe, parse_tags
from .schema import DohAnswer, DohResponse, RecordType

__all__ = [
    "DnsOverHttpsProbe",
    "DohAnswer",
    "DohResolver",
    "DohResponse",
    "RecordType",
    "parse_tags",
]
