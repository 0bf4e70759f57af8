"""Controller runtime settings."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Final

from dnsward.domain.model import ServiceBackend

from .env import env_float, env_int, optional_env_var

DEFAULT_STATS_SERVICE: Final[str] = "dnsward-stats"
DEFAULT_STATS_PORT: Final[int] = 80
DEFAULT_WORKERS: Final[int] = 2
DEFAULT_PASS_TIMEOUT_SECONDS: Final[float] = 30.0
DEFAULT_RESYNC_SECONDS: Final[float] = 600.0
DEFAULT_CONVERGED_SECONDS: Final[float] = 3600.0
DEFAULT_PENDING_SECONDS: Final[float] = 60.0
DEFAULT_ERROR_RETRY_SECONDS: Final[float] = 60.0


@dataclass(frozen=True, slots=True)
class ControllerConfig:
    stats_backend: ServiceBackend = ServiceBackend(DEFAULT_STATS_SERVICE, DEFAULT_STATS_PORT)
    workers: int = DEFAULT_WORKERS
    pass_timeout: timedelta = timedelta(seconds=DEFAULT_PASS_TIMEOUT_SECONDS)
    resync_interval: timedelta = timedelta(seconds=DEFAULT_RESYNC_SECONDS)
    converged_interval: timedelta = timedelta(seconds=DEFAULT_CONVERGED_SECONDS)
    pending_interval: timedelta = timedelta(seconds=DEFAULT_PENDING_SECONDS)
    error_retry: timedelta = timedelta(seconds=DEFAULT_ERROR_RETRY_SECONDS)


def get_controller_config() -> ControllerConfig:
    """Build the controller settings from ``DNSWARD_*`` environment variables."""

    backend = ServiceBackend(
        name=optional_env_var("DNSWARD_STATS_SERVICE") or DEFAULT_STATS_SERVICE,
        port=env_int("DNSWARD_STATS_PORT", DEFAULT_STATS_PORT),
    )
    return ControllerConfig(
        stats_backend=backend,
        workers=env_int("DNSWARD_WORKERS", DEFAULT_WORKERS),
        pass_timeout=_seconds("DNSWARD_PASS_TIMEOUT", DEFAULT_PASS_TIMEOUT_SECONDS),
        resync_interval=_seconds("DNSWARD_RESYNC_INTERVAL", DEFAULT_RESYNC_SECONDS),
        converged_interval=_seconds("DNSWARD_CONVERGED_INTERVAL", DEFAULT_CONVERGED_SECONDS),
        pending_interval=_seconds("DNSWARD_PENDING_INTERVAL", DEFAULT_PENDING_SECONDS),
        error_retry=_seconds("DNSWARD_ERROR_RETRY", DEFAULT_ERROR_RETRY_SECONDS),
    )


def _seconds(name: str, default: float) -> timedelta:
    return timedelta(seconds=env_float(name, default))
