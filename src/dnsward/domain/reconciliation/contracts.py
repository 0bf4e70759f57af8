"""Result types produced by a reconciliation pass."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datetime import timedelta

    from dnsward.domain.model import DnsStatus, ObjectKey


class IngressAction(StrEnum):
    """What the ingress manager did to the derived resource."""

    CREATED = "created"
    DELETED = "deleted"
    UNCHANGED = "unchanged"


@dataclass(frozen=True, slots=True, kw_only=True)
class ReconcileResult:
    """Successful pass outcome handed back to the dispatcher.

    ``status`` is ``None`` when the Domain no longer exists; in that case no
    re-trigger is requested.
    """

    key: ObjectKey
    requeue_after: timedelta | None
    status: DnsStatus | None = None
    ingress: IngressAction = IngressAction.UNCHANGED

    @property
    def deleted(self) -> bool:
        return self.status is None
