"""Resource kinds and owner references."""

from __future__ import annotations

from dataclasses import dataclass, field, replace

from dnsward.domain.errors import InvariantViolationError
from dnsward.domain.model import Domain, OwnerReference, StatsIngress


@dataclass(frozen=True, slots=True)
class ResourceKind:
    group: str
    version: str
    kind: str

    @property
    def api_version(self) -> str:
        return f"{self.group}/{self.version}" if self.group else self.version


@dataclass(slots=True)
class KindRegistry:
    """Maps resource classes to the kind recorded in owner references."""

    _kinds: dict[type[object], ResourceKind] = field(default_factory=dict)

    def register(self, cls: type[object], kind: ResourceKind) -> None:
        self._kinds[cls] = kind

    def kind_for(self, obj: object) -> ResourceKind:
        cls = obj if isinstance(obj, type) else type(obj)
        try:
            return self._kinds[cls]
        except KeyError:
            msg = f"No resource kind registered for {cls.__name__}"
            raise InvariantViolationError(msg) from None

    def is_kind(self, reference: OwnerReference, cls: type[object]) -> bool:
        kind = self.kind_for(cls)
        return reference.kind == kind.kind and reference.api_version == kind.api_version


DOMAIN_KIND = ResourceKind(group="dnsward.io", version="v1alpha1", kind="Domain")
INGRESS_KIND = ResourceKind(group="networking.k8s.io", version="v1", kind="Ingress")


def default_registry() -> KindRegistry:
    registry = KindRegistry()
    registry.register(Domain, DOMAIN_KIND)
    registry.register(StatsIngress, INGRESS_KIND)
    return registry


def set_controller_reference(
    owner: Domain,
    child: StatsIngress,
    registry: KindRegistry,
) -> StatsIngress:
    """Return ``child`` with ``owner`` recorded as its controlling owner."""

    kind = registry.kind_for(owner)
    existing = child.controller_owner
    if existing is not None and existing.uid != owner.uid:
        raise InvariantViolationError(
            f"{child.key} is already controlled by {existing.kind} {existing.name}"
        )
    reference = OwnerReference(
        api_version=kind.api_version,
        kind=kind.kind,
        name=owner.name,
        uid=owner.uid,
        controller=True,
        block_owner_deletion=True,
    )
    return replace(child, owner=reference)
