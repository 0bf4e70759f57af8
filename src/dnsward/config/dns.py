"""DNS-over-HTTPS probe configuration."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Final, cast

from .env import env_float, env_int, env_list, optional_env_var
from .errors import ConfigurationError
from .http_resilience import CacheBackend, CacheConfig, RateLimit, ResilienceConfig

DEFAULT_DOH_URL: Final[str] = "https://cloudflare-dns.com/dns-query"
DOH_TIMEOUT_SECONDS: Final[float] = 5.0
DOH_MAX_CALLS_PER_SECOND: Final[int] = 20
CACHE_BACKENDS: Final[frozenset[str]] = frozenset({"memory", "sqlite"})


def cacheable_answer(payload: object) -> bool:
    """Cache only NOERROR answers."""

    return isinstance(payload, dict) and payload.get("Status") == 0


def doh_cache(ttl_seconds: float | None, backend: CacheBackend = "memory") -> CacheConfig | None:
    if ttl_seconds is None:
        return None
    return CacheConfig(
        backend=backend,
        default_ttl_seconds=ttl_seconds,
        refresh_ttl_on_access=False,
        should_cache=cacheable_answer,
    )


def _default_resilience(
    url: str = DEFAULT_DOH_URL,
    timeout: float = DOH_TIMEOUT_SECONDS,
    max_calls_per_second: int = DOH_MAX_CALLS_PER_SECOND,
    cache: CacheConfig | None = None,
) -> ResilienceConfig:
    return ResilienceConfig(
        name="doh",
        base_url=url,
        timeout_seconds=timeout,
        ratelimit=RateLimit(max_calls=max_calls_per_second, per_seconds=1.0),
        cache=cache,
        default_headers={"accept": "application/dns-json"},
    )


@dataclass(frozen=True, slots=True)
class DnsProbeConfig:
    """Where to resolve records and what the stats/SPF records must point at."""

    resolver_url: str = DEFAULT_DOH_URL
    stats_targets: tuple[str, ...] = ()
    spf_include: str | None = None
    resilience: ResilienceConfig = field(default_factory=_default_resilience)


def _cache_backend() -> CacheBackend:
    raw = (optional_env_var("DNSWARD_DOH_CACHE_BACKEND") or "memory").lower()
    if raw not in CACHE_BACKENDS:
        msg = f"DNSWARD_DOH_CACHE_BACKEND must be one of {sorted(CACHE_BACKENDS)}, got {raw!r}"
        raise ConfigurationError(msg)
    return cast("CacheBackend", raw)


def get_dns_probe_config() -> DnsProbeConfig:
    url = optional_env_var("DNSWARD_DOH_URL") or DEFAULT_DOH_URL
    timeout = env_float("DNSWARD_DOH_TIMEOUT", DOH_TIMEOUT_SECONDS)
    max_calls = env_int("DNSWARD_DOH_RATE_LIMIT", DOH_MAX_CALLS_PER_SECOND)
    ttl: float | None = None
    if optional_env_var("DNSWARD_DOH_CACHE_TTL") is not None:
        ttl = env_float("DNSWARD_DOH_CACHE_TTL", 0.0)
    return DnsProbeConfig(
        resolver_url=url,
        stats_targets=env_list("DNSWARD_STATS_TARGETS"),
        spf_include=optional_env_var("DNSWARD_SPF_INCLUDE"),
        resilience=_default_resilience(url, timeout, max_calls, doh_cache(ttl, _cache_backend())),
    )
