"""Normalized change events.

Every path that changes a cached collection (realtime stream, local
mutation echo) is expressed as one of these events.  Only the state/store
layer is allowed to merge them.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class ChangeKind(StrEnum):
    INSERTED = "inserted"
    UPDATED = "updated"
    DELETED = "deleted"


class ChangeSource(StrEnum):
    STREAM = "stream"
    LOCAL = "local"


class ChangeEvent(BaseModel):
    """A single insert/update/delete scoped to one collection."""

    model_config = ConfigDict(frozen=True)

    collection: str
    kind: ChangeKind
    record_id: str = Field(..., description="Primary key of the affected row")
    record: dict[str, Any] | None = Field(default=None, description="Full row for inserted/updated")
    source: ChangeSource = ChangeSource.STREAM
    commit_timestamp: datetime | None = None
    observed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @field_validator("record_id", mode="before")
    @classmethod
    def _normalize_id(cls, value: Any) -> str:
        record_id = "" if value is None else str(value).strip()
        if not record_id:
            raise ValueError("record_id must be non-empty")
        return record_id

    @model_validator(mode="after")
    def _record_required(self) -> ChangeEvent:
        if self.kind is not ChangeKind.DELETED and self.record is None:
            raise ValueError(f"{self.kind} event requires a record")
        return self

    @classmethod
    def inserted(cls, collection: str, record: dict[str, Any], **kwargs: Any) -> ChangeEvent:
        return cls(collection=collection, kind=ChangeKind.INSERTED, record_id=record.get("id"), record=record, **kwargs)

    @classmethod
    def updated(cls, collection: str, record: dict[str, Any], **kwargs: Any) -> ChangeEvent:
        return cls(collection=collection, kind=ChangeKind.UPDATED, record_id=record.get("id"), record=record, **kwargs)

    @classmethod
    def deleted(cls, collection: str, record_id: Any, **kwargs: Any) -> ChangeEvent:
        return cls(collection=collection, kind=ChangeKind.DELETED, record_id=record_id, **kwargs)
