"""Sequential evaluation of the DNS checks."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from dnsward.domain.errors import DnswardError, ProbeError
from dnsward.domain.model import DnsStatus

if TYPE_CHECKING:
    from dnsward.domain.model import Domain
    from dnsward.domain.ports.probing import StatusProbe

    from .context import PassContext

log = getLogger(__name__)


def check_domain_dns(probe: StatusProbe, ctx: PassContext, domain: Domain) -> DnsStatus:
    """Run signing, stats and SPF checks in order; the first failure aborts the rest."""

    log.info("Checking DNS for %s (%s)", domain.key, domain.spec.base_domain)
    checks = (
        ("dkim", probe.check_signing),
        ("stats", probe.check_stats_dns),
        ("spf", probe.check_spf),
    )
    results: dict[str, bool] = {}
    for name, check in checks:
        ctx.raise_if_cancelled()
        try:
            results[name] = check(ctx, domain)
        except DnswardError as exc:
            log.error("DNS check %s failed for %s: %s", name, domain.key, exc)
            raise
        except Exception as exc:
            log.error("DNS check %s failed for %s: %s", name, domain.key, exc)
            msg = f"DNS check {name} failed: {exc}"
            raise ProbeError(msg, check=name) from exc

    status = DnsStatus(**results)
    log.info("DNS checked for %s: %s", domain.key, status)
    return status
