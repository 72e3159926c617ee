"""Deterministic list merge policy.

This module contains *no* parsing or I/O.  The functions take the current
immutable record tuple and return the next one.  When a change is a no-op
the input tuple is returned unchanged, so callers can detect "nothing
happened" by identity.
"""

from __future__ import annotations

from typing import TypeVar

from fleetdesk.models._base import FleetBaseModel
from fleetdesk.state.events import ChangeKind

R = TypeVar("R", bound=FleetBaseModel)


def index_of(records: tuple[R, ...], record_id: str) -> int:
    for index, existing in enumerate(records):
        if existing.id == record_id:
            return index
    return -1


def upsert(records: tuple[R, ...], record: R) -> tuple[R, ...]:
    """Replace the row with the same id in place, or prepend it.

    New rows go to the front regardless of their ``created_at``; the
    list is only re-sorted by a full reload.
    """
    index = index_of(records, record.id)
    if index < 0:
        return (record, *records)
    if records[index] == record:
        return records
    return (*records[:index], record, *records[index + 1 :])


def remove(records: tuple[R, ...], record_id: str) -> tuple[R, ...]:
    """Drop the row with *record_id*; unknown ids are a no-op."""
    index = index_of(records, record_id)
    if index < 0:
        return records
    return (*records[:index], *records[index + 1 :])


def merge_change(records: tuple[R, ...], kind: ChangeKind, record_id: str, record: R | None) -> tuple[R, ...]:
    """Apply one change.

    - inserted: prepend, or replace in place when the id is already known
      (a local optimistic insert may race with the server echo).
    - updated: replace in place, or insert when absent (missed insert).
    - deleted: remove; absent ids are ignored.

    Applying the same change twice yields the same tuple.
    """
    if kind is ChangeKind.DELETED:
        return remove(records, record_id)
    if record is None:
        return records
    return upsert(records, record)
