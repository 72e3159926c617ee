"""Filter and sort specifications for read-only views over a cached list."""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, TypeVar

from fleetdesk.models._base import FleetBaseModel

R = TypeVar("R", bound=FleetBaseModel)

_CATEGORY_FIELDS: tuple[str, ...] = ("brand", "status", "service_type")


@dataclass(frozen=True)
class FilterSpec:
    """Predicates combined with logical AND.

    ``search`` is a case-insensitive substring matched against the record
    type's ``SEARCH_FIELDS``.  ``brand``, ``status`` and ``service_type``
    are exact matches.  ``price_min``/``price_max`` bound an inclusive range.
    ``None`` (or an empty search) disables a predicate.
    """

    search: str = ""
    brand: str | None = None
    status: str | None = None
    service_type: str | None = None
    price_min: float | None = None
    price_max: float | None = None

    def matches(self, record: FleetBaseModel) -> bool:
        query = self.search.strip().casefold()
        if query and not any(query in record.text_value(name).casefold() for name in record.SEARCH_FIELDS):
            return False

        for name in _CATEGORY_FIELDS:
            expected = getattr(self, name)
            if not expected:
                continue
            actual = getattr(record, name, None)
            if actual is None or str(actual) != str(expected):
                return False

        if self.price_min is not None or self.price_max is not None:
            price = getattr(record, "price", None)
            if price is None:
                return False
            low = self.price_min if self.price_min is not None else -math.inf
            high = self.price_max if self.price_max is not None else math.inf
            if not low <= float(price) <= high:
                return False
        return True


_SORT_OPTIONS: dict[str, tuple[str, bool]] = {
    "newest": ("created_at", True),
    "oldest": ("created_at", False),
    "price-low": ("price", False),
    "price-high": ("price", True),
    "brand": ("brand", False),
}


@dataclass(frozen=True)
class SortSpec:
    """Order a view by ``created_at``, ``price`` or a single text field.

    Text fields compare case-folded, independent of locale.  Records
    missing the sort value go last in either direction.
    """

    field: str = "created_at"
    descending: bool = True

    @classmethod
    def parse(cls, option: str) -> SortSpec:
        """Build a spec from the dashboard's sort option names."""
        try:
            field, descending = _SORT_OPTIONS[option]
        except KeyError:
            raise ValueError(f"unknown sort option {option!r}; expected one of {sorted(_SORT_OPTIONS)}") from None
        return cls(field=field, descending=descending)

    def _key(self, record: FleetBaseModel) -> Any:
        value = getattr(record, self.field, None)
        if value is None:
            return None
        if self.field in ("created_at", "updated_at", "replied_at"):
            return value
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
        return str(value).casefold()

    def apply(self, records: Iterable[R]) -> list[R]:
        keyed = [(self._key(record), record) for record in records]
        present = [pair for pair in keyed if pair[0] is not None]
        missing = [record for key, record in keyed if key is None]
        present.sort(key=lambda pair: pair[0], reverse=self.descending)
        return [record for _key, record in present] + missing


def build_view(records: Iterable[R], filter_spec: FilterSpec | None, sort_spec: SortSpec | None) -> tuple[R, ...]:
    """Filter then sort; never mutates *records*.  Without a sort the input order is kept."""
    selected: list[R] = [record for record in records if filter_spec is None or filter_spec.matches(record)]
    if sort_spec is not None:
        selected = sort_spec.apply(selected)
    return tuple(selected)
