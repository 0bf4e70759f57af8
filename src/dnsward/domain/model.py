"""Resource types handled by the domain controller."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import TYPE_CHECKING, Final
from uuid import UUID, uuid4

if TYPE_CHECKING:
    from datetime import datetime

DEFAULT_NAMESPACE: Final[str] = "default"
DEFAULT_DKIM_SELECTOR: Final[str] = "dnsward"


@dataclass(frozen=True, slots=True, order=True)
class ObjectKey:
    """Namespace-scoped identity of a resource."""

    namespace: str
    name: str

    def __post_init__(self) -> None:
        if not self.namespace.strip() or not self.name.strip():
            raise ValueError(f"Invalid object key: {self.namespace!r}/{self.name!r}")

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"

    @classmethod
    def parse(cls, value: str) -> ObjectKey:
        """Parse ``namespace/name`` (or a bare ``name`` in the default namespace)."""

        namespace, sep, name = value.strip().partition("/")
        if not sep:
            return cls(namespace=DEFAULT_NAMESPACE, name=namespace)
        if "/" in name:
            raise ValueError(f"Invalid object key: {value!r}")
        return cls(namespace=namespace, name=name)


@dataclass(frozen=True, slots=True)
class DomainSpec:
    """Desired state of a mail domain; owned by whoever applies the Domain."""

    base_domain: str
    dkim_selector: str = DEFAULT_DKIM_SELECTOR
    dkim_public_key: str | None = None

    def __post_init__(self) -> None:
        normalized = self.base_domain.strip().rstrip(".").lower()
        if not normalized:
            raise ValueError("Domain spec requires a base domain")
        if not self.dkim_selector.strip():
            raise ValueError("Domain spec requires a DKIM selector")
        object.__setattr__(self, "base_domain", normalized)


@dataclass(frozen=True, slots=True)
class DnsStatus:
    """Outcome of the DNS checks of one reconciliation pass."""

    dkim: bool = False
    stats: bool = False
    spf: bool = False

    @property
    def converged(self) -> bool:
        return self.dkim and self.stats and self.spf


@dataclass(frozen=True, slots=True)
class Domain:
    key: ObjectKey
    spec: DomainSpec
    status: DnsStatus = field(default_factory=DnsStatus)
    uid: UUID = field(default_factory=uuid4)
    version: int = 0

    @property
    def name(self) -> str:
        return self.key.name

    @property
    def namespace(self) -> str:
        return self.key.namespace

    def with_status(self, status: DnsStatus) -> Domain:
        """Return a copy whose status is fully replaced by ``status``."""

        return replace(self, status=status)


class PathType(StrEnum):
    PREFIX = "Prefix"
    EXACT = "Exact"


@dataclass(frozen=True, slots=True)
class ServiceBackend:
    name: str
    port: int

    def __post_init__(self) -> None:
        if not self.name.strip():
            raise ValueError("Service backend requires a name")
        if not 0 < self.port < 65536:
            raise ValueError(f"Invalid service port: {self.port}")


@dataclass(frozen=True, slots=True)
class OwnerReference:
    """Back-reference from a child to the resource it is garbage-collected with."""

    api_version: str
    kind: str
    name: str
    uid: UUID
    controller: bool = True
    block_owner_deletion: bool = True


@dataclass(frozen=True, slots=True)
class StatsIngress:
    """Routing rule exposing the statistics endpoint of a Domain."""

    key: ObjectKey
    host: str
    backend: ServiceBackend
    path: str = "/"
    path_type: PathType = PathType.PREFIX
    owner: OwnerReference | None = None
    uid: UUID = field(default_factory=uuid4)
    version: int = 0
    deletion_requested_at: datetime | None = None

    @property
    def name(self) -> str:
        return self.key.name

    @property
    def namespace(self) -> str:
        return self.key.namespace

    @property
    def controller_owner(self) -> OwnerReference | None:
        if self.owner is not None and self.owner.controller:
            return self.owner
        return None
