"""Resolver querying a DNS-over-HTTPS JSON endpoint."""

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING, Protocol

import httpx
from pydantic import ValidationError

from dnsward.adapters.http_resilience import ResilientClient
from dnsward.config.dns import DnsProbeConfig
from dnsward.domain.errors import ProbeError

from .schema import DohAnswer, DohResponse, RecordType

if TYPE_CHECKING:
    from collections.abc import Callable

    from dnsward.config.http_resilience import ResilienceConfig
    from dnsward.domain.reconciliation.context import PassContext

log = getLogger(__name__)


class DohClient(Protocol):
    async def get(self, url: str, *, params: dict[str, str]) -> httpx.Response: ...

    async def aclose(self) -> None: ...


def _default_client_factory(config: ResilienceConfig) -> DohClient:
    return ResilientClient(config)


@dataclass(slots=True)
class DohResolver:
    """Resolve records for the DNS probe, one blocking call per lookup.

    Lookups from every worker thread run on a single background event loop and
    share one client, so its connection pool and rate limit apply to all of them.
    The loop starts on the first lookup and stops on :meth:`close`.
    """

    config: DnsProbeConfig = field(default_factory=DnsProbeConfig)
    client_factory: Callable[[ResilienceConfig], DohClient] = field(
        default=_default_client_factory
    )
    _loop: asyncio.AbstractEventLoop | None = field(default=None, init=False, repr=False)
    _thread: threading.Thread | None = field(default=None, init=False, repr=False)
    _client: DohClient | None = field(default=None, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def resolve(self, ctx: PassContext, name: str, record_type: RecordType) -> list[DohAnswer]:
        """Return the answers of ``record_type`` for ``name``; NXDOMAIN yields none."""

        ctx.raise_if_cancelled()
        future = asyncio.run_coroutine_threadsafe(
            ctx.guard(self._resolve_async(name, record_type)), self._running_loop()
        )
        return future.result()

    def close(self) -> None:
        with self._lock:
            loop, thread = self._loop, self._thread
            self._loop = None
            self._thread = None
        if loop is None or thread is None:
            return
        try:
            asyncio.run_coroutine_threadsafe(self._close_client(), loop).result()
        finally:
            loop.call_soon_threadsafe(loop.stop)
            thread.join()
            loop.close()

    def _running_loop(self) -> asyncio.AbstractEventLoop:
        with self._lock:
            if self._loop is None:
                loop = asyncio.new_event_loop()
                thread = threading.Thread(
                    target=loop.run_forever, name="dnsward-doh", daemon=True
                )
                thread.start()
                self._loop = loop
                self._thread = thread
            return self._loop

    async def _close_client(self) -> None:
        client, self._client = self._client, None
        if client is not None:
            await client.aclose()

    async def _resolve_async(self, name: str, record_type: RecordType) -> list[DohAnswer]:
        client = self._client
        if client is None:
            client = self._client = self.client_factory(self.config.resilience)
        params = {"name": name, "type": record_type.name}
        try:
            response = await client.get(self.config.resolver_url, params=params)
            response.raise_for_status()
            payload = DohResponse.model_validate(response.json())
        except httpx.HTTPError as exc:
            raise ProbeError(
                f"DNS lookup {record_type.name} {name} failed: {exc}", name=name
            ) from exc
        except (ValueError, ValidationError) as exc:
            raise ProbeError(
                f"DNS lookup {record_type.name} {name} returned an invalid payload", name=name
            ) from exc

        if not payload.is_success:
            raise ProbeError(
                f"DNS lookup {record_type.name} {name} failed with rcode {payload.status}",
                name=name,
            )
        if payload.is_nxdomain:
            log.debug("DNS lookup %s %s: NXDOMAIN", record_type.name, name)
            return []
        answers = payload.answers_of(record_type)
        log.debug("DNS lookup %s %s: %d answers", record_type.name, name, len(answers))
        return answers
