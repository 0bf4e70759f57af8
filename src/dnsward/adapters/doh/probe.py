"""DNS checks for mail domains, backed by a DNS-over-HTTPS resolver."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING, Protocol

from dnsward.config.dns import DnsProbeConfig
from dnsward.domain.errors import ProbeError

from .client import DohResolver
from .schema import DohAnswer, RecordType

if TYPE_CHECKING:
    from dnsward.domain.model import Domain
    from dnsward.domain.ports.probing import StatusProbe
    from dnsward.domain.reconciliation.context import PassContext

log = getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


class Resolver(Protocol):
    def resolve(self, ctx: PassContext, name: str, record_type: RecordType) -> list[DohAnswer]: ...

    def close(self) -> None: ...


def _resolver_for(config: DnsProbeConfig) -> Resolver:
    return DohResolver(config=config)


def _normalize_host(value: str) -> str:
    return value.strip().rstrip(".").lower()


def parse_tags(record: str) -> dict[str, str]:
    """Split a ``k=v; k=v`` record (DKIM style) into a tag mapping."""

    tags: dict[str, str] = {}
    for part in record.split(";"):
        name, sep, value = part.partition("=")
        if not sep:
            continue
        tags[name.strip().lower()] = _WHITESPACE.sub("", value)
    return tags


@dataclass(slots=True)
class DnsOverHttpsProbe:
    config: DnsProbeConfig = field(default_factory=DnsProbeConfig)
    resolver: Resolver | None = None

    def __post_init__(self) -> None:
        if self.resolver is None:
            self.resolver = _resolver_for(self.config)

    def close(self) -> None:
        """Release the resolver's event loop and HTTP connections."""

        assert self.resolver is not None
        self.resolver.close()

    def check_signing(self, ctx: PassContext, domain: Domain) -> bool:
        name = f"{domain.spec.dkim_selector}._domainkey.{domain.spec.base_domain}"
        expected_key = domain.spec.dkim_public_key
        if expected_key is not None:
            expected_key = _WHITESPACE.sub("", expected_key)

        for record in self._txt(ctx, name, check="dkim"):
            tags = parse_tags(record)
            if tags.get("v", "DKIM1").upper() != "DKIM1":
                continue
            public_key = tags.get("p")
            if not public_key:
                continue
            if expected_key is None or public_key == expected_key:
                return True
        log.debug("No matching DKIM record at %s", name)
        return False

    def check_stats_dns(self, ctx: PassContext, domain: Domain) -> bool:
        name = domain.spec.base_domain
        targets = {_normalize_host(target) for target in self.config.stats_targets}

        for record_type in (RecordType.CNAME, RecordType.A):
            answers = self._lookup(ctx, name, record_type, check="stats")
            if not answers:
                continue
            if not targets:
                return True
            if any(answer.hostname in targets for answer in answers):
                return True
        log.debug("No stats record for %s pointing at %s", name, sorted(targets))
        return False

    def check_spf(self, ctx: PassContext, domain: Domain) -> bool:
        name = domain.spec.base_domain
        include = self.config.spf_include
        for record in self._txt(ctx, name, check="spf"):
            terms = record.lower().split()
            if not terms or terms[0] != "v=spf1":
                continue
            if include is None or f"include:{include.lower()}" in terms:
                return True
        log.debug("No matching SPF record at %s", name)
        return False

    def _txt(self, ctx: PassContext, name: str, *, check: str) -> list[str]:
        return [answer.text for answer in self._lookup(ctx, name, RecordType.TXT, check=check)]

    def _lookup(
        self,
        ctx: PassContext,
        name: str,
        record_type: RecordType,
        *,
        check: str,
    ) -> list[DohAnswer]:
        assert self.resolver is not None
        try:
            return self.resolver.resolve(ctx, name, record_type)
        except ProbeError as exc:
            exc.check = check
            raise


if TYPE_CHECKING:
    _probe_check: StatusProbe = DnsOverHttpsProbe()
