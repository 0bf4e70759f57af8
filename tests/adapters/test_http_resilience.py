from __future__ import annotations

import time
from dataclasses import replace
from typing import TYPE_CHECKING

import httpx
import pytest
from hishel import AsyncSqliteStorage, FilterPolicy
from hishel.httpx import AsyncCacheClient
from httpx_retries import Retry

from dnsward.adapters.doh import DohResolver, RecordType
from dnsward.adapters.http_resilience import (
    ResilientClient,
    _build_cache_components,
    build_retry,
)
from dnsward.config.dns import DnsProbeConfig, doh_cache
from dnsward.config.http_resilience import CacheConfig, RateLimit, ResilienceConfig, RetryPolicy
from dnsward.domain.model import ObjectKey
from dnsward.domain.reconciliation import PassContext

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

RESOLVER_URL = "https://doh.test/dns-query"


async def _spf_answer(request: httpx.Request) -> httpx.Response:
    payload = {
        "Status": 0,
        "Answer": [{"name": "acme.example.", "type": 16, "TTL": 60, "data": '"v=spf1 -all"'}],
    }
    return httpx.Response(200, json=payload, request=request)


def _mocked_factory(
    transport: httpx.AsyncBaseTransport,
    built: list[ResilientClient] | None = None,
) -> Callable[[ResilienceConfig], ResilientClient]:
    def factory(resilience: ResilienceConfig) -> ResilientClient:
        client = ResilientClient(resilience)
        client._client = httpx.AsyncClient(transport=transport)  # noqa: SLF001
        if built is not None:
            built.append(client)
        return client

    return factory


def test_cache_disabled_yields_no_components() -> None:
    assert _build_cache_components(None) == (None, None)
    assert _build_cache_components(CacheConfig(enabled=False)) == (None, None)


def test_memory_cache_with_predicate_builds_filter_policy() -> None:
    storage, policy = _build_cache_components(
        CacheConfig(backend="memory", should_cache=lambda payload: bool(payload))
    )

    assert isinstance(storage, AsyncSqliteStorage)
    assert isinstance(policy, FilterPolicy)


def test_sqlite_cache_uses_data_dir(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    data_dir = tmp_path / "data"
    monkeypatch.setenv("DNSWARD_DATA_DIR", str(data_dir))

    storage, policy = _build_cache_components(CacheConfig(backend="sqlite"))

    assert isinstance(storage, AsyncSqliteStorage)
    assert policy is None
    assert data_dir.is_dir()


def test_unsupported_cache_backend_is_rejected() -> None:
    with pytest.raises(ValueError, match="Unsupported cache backend"):
        _build_cache_components(CacheConfig(backend="redis"))  # type: ignore[arg-type]


def test_doh_cache_builds_caching_client() -> None:
    cache = doh_cache(30.0)
    assert cache is not None
    config = replace(DnsProbeConfig().resilience, cache=cache)

    client = ResilientClient(config)

    assert isinstance(client._client, AsyncCacheClient)  # noqa: SLF001


def test_doh_resilience_does_not_cache_by_default() -> None:
    client = ResilientClient(DnsProbeConfig().resilience)

    assert not isinstance(client._client, AsyncCacheClient)  # noqa: SLF001


def test_build_retry_returns_configured_retry() -> None:
    assert isinstance(build_retry(RetryPolicy(total=5, backoff_factor=0.5)), Retry)


def test_resolver_runs_through_resilient_client() -> None:
    seen: list[httpx.Request] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return await _spf_answer(request)

    config = DnsProbeConfig(resolver_url=RESOLVER_URL)
    resolver = DohResolver(
        config=config, client_factory=_mocked_factory(httpx.MockTransport(handler))
    )
    ctx = PassContext(key=ObjectKey(namespace="mail", name="acme"))

    try:
        answers = resolver.resolve(ctx, "acme.example", RecordType.TXT)
    finally:
        resolver.close()

    assert [answer.text for answer in answers] == ["v=spf1 -all"]
    assert seen[0].url.params["name"] == "acme.example"
    assert seen[0].url.params["type"] == "TXT"
    assert config.resilience.ratelimit is not None
    assert config.resilience.cache is None


def test_rate_limit_spans_every_lookup_of_a_resolver() -> None:
    built: list[ResilientClient] = []
    resilience = replace(
        DnsProbeConfig().resilience, ratelimit=RateLimit(max_calls=1, per_seconds=0.2)
    )
    config = DnsProbeConfig(resolver_url=RESOLVER_URL, resilience=resilience)
    resolver = DohResolver(
        config=config,
        client_factory=_mocked_factory(httpx.MockTransport(_spf_answer), built),
    )
    ctx = PassContext(key=ObjectKey(namespace="mail", name="acme"))

    started = time.monotonic()
    try:
        for _ in range(3):
            resolver.resolve(ctx, "acme.example", RecordType.TXT)
    finally:
        resolver.close()
    elapsed = time.monotonic() - started

    assert len(built) == 1
    assert elapsed >= 0.35
