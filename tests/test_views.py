from __future__ import annotations

from typing import Any

import pytest

from fleetdesk.models.inquiry import Inquiry
from fleetdesk.models.truck import Truck
from fleetdesk.state.views import FilterSpec, SortSpec, build_view


def _truck(record_id: int, **fields: Any) -> Truck:
    data: dict[str, Any] = {
        "id": record_id,
        "brand": "Volvo",
        "model": "FH16",
        "year": 2024,
        "price": 100000,
        "created_at": f"2026-02-{record_id:02d}T10:00:00Z",
    }
    data.update(fields)
    return Truck.model_validate(data)


FLEET = (
    _truck(1, brand="Volvo", model="FH16", price=120000, vin="YV2RT40A"),
    _truck(2, brand="Scania", model="R500", price=95000, status="sold"),
    _truck(3, brand="MAN", model="TGX", price=80000, status="reserved"),
    _truck(4, brand="volvo", model="FM", price=60000),
)


def _ids(records) -> list[str]:
    return [record.id for record in records]


def test_no_filter_no_sort_keeps_input_order() -> None:
    assert _ids(build_view(FLEET, None, None)) == ["1", "2", "3", "4"]


def test_search_is_case_insensitive_over_search_fields() -> None:
    assert _ids(build_view(FLEET, FilterSpec(search="VOLVO"), None)) == ["1", "4"]
    assert _ids(build_view(FLEET, FilterSpec(search="r50"), None)) == ["2"]
    assert _ids(build_view(FLEET, FilterSpec(search="yv2rt"), None)) == ["1"]


def test_blank_search_matches_everything() -> None:
    assert len(build_view(FLEET, FilterSpec(search="   "), None)) == 4


def test_category_filter_is_exact() -> None:
    assert _ids(build_view(FLEET, FilterSpec(brand="Volvo"), None)) == ["1"]
    assert _ids(build_view(FLEET, FilterSpec(status="sold"), None)) == ["2"]


def test_status_filter_with_unbounded_price_range_equals_status_filter() -> None:
    ranged = build_view(FLEET, FilterSpec(status="available", price_min=0, price_max=None), None)
    plain = build_view(FLEET, FilterSpec(status="available"), None)

    assert ranged == plain
    assert _ids(ranged) == ["1", "4"]


def test_filters_combine_with_and() -> None:
    spec = FilterSpec(search="volvo", status="available", price_min=70000)

    assert _ids(build_view(FLEET, spec, None)) == ["1"]


def test_price_range_is_inclusive() -> None:
    spec = FilterSpec(price_min=80000, price_max=95000)

    assert _ids(build_view(FLEET, spec, None)) == ["2", "3"]


@pytest.mark.parametrize(
    ("option", "expected"),
    [
        ("newest", ["4", "3", "2", "1"]),
        ("oldest", ["1", "2", "3", "4"]),
        ("price-low", ["4", "3", "2", "1"]),
        ("price-high", ["1", "2", "3", "4"]),
        ("brand", ["3", "2", "1", "4"]),
    ],
)
def test_sort_options(option: str, expected: list[str]) -> None:
    assert _ids(build_view(FLEET, None, SortSpec.parse(option))) == expected


def test_text_sort_is_case_folded_and_stable() -> None:
    records = (_truck(1, brand="volvo"), _truck(2, brand="DAF"), _truck(3, brand="Volvo"))

    assert _ids(build_view(records, None, SortSpec(field="brand", descending=False))) == ["2", "1", "3"]


def test_missing_sort_values_go_last_in_both_directions() -> None:
    records = (
        Inquiry.model_validate({"id": 1, "subject": "a", "replied_at": None}),
        Inquiry.model_validate({"id": 2, "subject": "b", "replied_at": "2026-03-01T00:00:00Z"}),
        Inquiry.model_validate({"id": 3, "subject": "c", "replied_at": "2026-03-02T00:00:00Z"}),
    )

    assert _ids(build_view(records, None, SortSpec(field="replied_at", descending=True))) == ["3", "2", "1"]
    assert _ids(build_view(records, None, SortSpec(field="replied_at", descending=False))) == ["2", "3", "1"]


def test_inquiry_filters_by_service_type_and_search() -> None:
    records = (
        Inquiry.model_validate(
            {"id": 1, "customer_name": "Ana Ortiz", "service_type": "parcel_delivery", "subject": "Pallets"}
        ),
        Inquiry.model_validate(
            {"id": 2, "customer_name": "Ben Ode", "service_type": "truck_purchase", "subject": "FH16 quote"}
        ),
    )

    assert _ids(build_view(records, FilterSpec(service_type="parcel_delivery"), None)) == ["1"]
    assert _ids(build_view(records, FilterSpec(search="fh16"), None)) == ["2"]


def test_build_view_does_not_mutate_input() -> None:
    records = list(FLEET)

    build_view(records, FilterSpec(status="available"), SortSpec.parse("price-low"))

    assert _ids(records) == ["1", "2", "3", "4"]


def test_unknown_sort_option_raises_value_error() -> None:
    with pytest.raises(ValueError, match="unknown sort option"):
        SortSpec.parse("cheapest")
