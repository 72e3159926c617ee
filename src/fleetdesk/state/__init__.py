"""State/store layer.

This package is the single source of truth for how the initial fetch,
realtime change events and local mutation echoes are merged into one
deterministic per-collection record list.
"""

from fleetdesk.state.events import ChangeEvent, ChangeKind, ChangeSource
from fleetdesk.state.store import SyncedCollectionStore
from fleetdesk.state.views import FilterSpec, SortSpec, build_view

__all__ = [
    "ChangeEvent",
    "ChangeKind",
    "ChangeSource",
    "FilterSpec",
    "SortSpec",
    "SyncedCollectionStore",
    "build_view",
]
