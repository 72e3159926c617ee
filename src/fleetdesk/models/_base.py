"""Base model for rows read from the remote store.

Every record model inherits from :class:`FleetBaseModel` which provides:

* ``extra="ignore"`` so new columns on the server do not break parsing.
* A ``model_validator(mode="before")`` that drops ``None`` values so the
  field default is used (PostgREST returns ``null`` for unset text
  columns; the dashboard treats those as empty strings).
* ``id`` coercion: numeric primary keys are normalized to ``str``.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated, Any, ClassVar

from pydantic import BaseModel, BeforeValidator, ConfigDict, model_validator


def _coerce_id(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


RecordId = Annotated[str, BeforeValidator(_coerce_id)]
"""Primary key, always handled as a string."""

OptionalRecordId = Annotated[str | None, BeforeValidator(lambda value: None if value is None else _coerce_id(value))]
"""Nullable foreign key."""


def utcnow() -> datetime:
    return datetime.now(UTC)


def isoformat(value: datetime) -> str:
    """Serialize a timestamp the way the remote store expects it."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.isoformat()


class FleetBaseModel(BaseModel):
    """Base for record models."""

    SEARCH_FIELDS: ClassVar[tuple[str, ...]] = ()
    """Text fields matched by the free-text search filter."""

    NULLABLE_FIELDS: ClassVar[frozenset[str]] = frozenset()
    """Fields whose ``None`` is meaningful and must not be dropped."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    id: RecordId = ""

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        keep = cls.NULLABLE_FIELDS
        return {key: value for key, value in values.items() if value is not None or key in keep}

    def text_value(self, field_name: str) -> str:
        """Return a field as text for search and sorting."""
        value = getattr(self, field_name, "")
        if value is None:
            return ""
        return str(value)
