"""Map store change events to the Domain keys they affect."""

from __future__ import annotations

from typing import TYPE_CHECKING

from dnsward.domain.model import Domain, ObjectKey, StatsIngress

if TYPE_CHECKING:
    from dnsward.domain.events import StoreEvent
    from dnsward.domain.ownership import KindRegistry


def keys_for_event(event: StoreEvent, registry: KindRegistry) -> tuple[ObjectKey, ...]:
    """A Domain maps to itself; an owned ingress maps to its controlling Domain."""

    obj = event.obj
    if isinstance(obj, Domain):
        return (obj.key,)
    if isinstance(obj, StatsIngress):
        owner = obj.controller_owner
        if owner is not None and registry.is_kind(owner, Domain):
            return (ObjectKey(namespace=obj.namespace, name=owner.name),)
    return ()
