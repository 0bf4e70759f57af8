"""Work queue and worker pool driving reconciliation passes."""

from .controller import Controller
from .watch import keys_for_event
from .workqueue import ItemBackoff, WorkQueue

__all__ = ["Controller", "ItemBackoff", "WorkQueue", "keys_for_event"]
