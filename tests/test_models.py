"""Tests for record parsing with FleetBaseModel and the write request models."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from fleetdesk._constants import IMAGE_SLOTS
from fleetdesk.exceptions import FleetValidationError
from fleetdesk.models.inquiry import Inquiry, InquiryStatus, ServiceType
from fleetdesk.models.requests import InquiryReplyWrite, TruckWrite, validated
from fleetdesk.models.truck import Truck, TruckStatus
from fleetdesk.session import Session
from fleetdesk.state.events import ChangeEvent, ChangeKind

# ------------------------------------------------------------------
# Truck
# ------------------------------------------------------------------


class TestTruck:
    def test_numeric_id_becomes_string(self) -> None:
        truck = Truck.model_validate({"id": 42, "brand": "Volvo"})
        assert truck.id == "42"

    def test_nulls_fall_back_to_defaults(self) -> None:
        truck = Truck.model_validate({"id": 1, "vin": None, "main_image": None, "fuel_type": None})
        assert truck.vin == ""
        assert truck.main_image == ""
        assert truck.fuel_type == "Diesel"

    def test_unknown_columns_are_ignored(self) -> None:
        truck = Truck.model_validate({"id": 1, "brand": "MAN", "dealer_notes": "x"})
        assert not hasattr(truck, "dealer_notes")

    def test_legacy_text_features_are_split(self) -> None:
        truck = Truck.model_validate({"id": 1, "features": "ABS, Radio, "})
        assert truck.features == ["ABS", "Radio"]

    def test_image_helpers(self) -> None:
        truck = Truck(main_image="https://x/a.jpg", image3="https://x/b.jpg")
        assert truck.populated_slots == ["main_image", "image3"]
        assert list(truck.image_urls()) == list(IMAGE_SLOTS)

    def test_status_enum(self) -> None:
        truck = Truck.model_validate({"id": 1, "status": "reserved"})
        assert truck.status is TruckStatus.RESERVED

    def test_created_at_parses_iso(self) -> None:
        truck = Truck.model_validate({"id": 1, "created_at": "2026-01-02T03:04:05+00:00"})
        assert truck.created_at == datetime(2026, 1, 2, 3, 4, 5, tzinfo=UTC)


# ------------------------------------------------------------------
# Inquiry
# ------------------------------------------------------------------


class TestInquiry:
    def test_nullable_reply_fields_are_kept(self) -> None:
        inquiry = Inquiry.model_validate({"id": 3, "admin_reply": None, "replied_at": None, "truck_id": 7})
        assert inquiry.admin_reply is None
        assert inquiry.replied_at is None
        assert inquiry.truck_id == "7"

    def test_has_email(self) -> None:
        assert Inquiry(customer_email="a@b.c").has_email
        assert not Inquiry(customer_email="  ").has_email

    def test_enums_and_labels(self) -> None:
        inquiry = Inquiry.model_validate({"id": 1, "service_type": "international_shipping", "status": "replied"})
        assert inquiry.status is InquiryStatus.REPLIED
        assert inquiry.service_type.label == "International Shipping"
        assert ServiceType("parcel_delivery") is ServiceType.PARCEL_DELIVERY


# ------------------------------------------------------------------
# Write requests
# ------------------------------------------------------------------


class TestTruckWrite:
    def _fields(self, **overrides):
        fields = {"tuuid": "abc", "brand": "Volvo", "model": "FH16", "year": 2024, "price": 1, "updated_at": "now"}
        fields.update(overrides)
        return fields

    def test_payload_has_full_field_set(self) -> None:
        payload = validated(TruckWrite, **self._fields()).to_payload()
        assert set(IMAGE_SLOTS) <= set(payload)
        assert payload["status"] == "available"

    @pytest.mark.parametrize(
        ("field", "value"),
        [("brand", "  "), ("model", ""), ("tuuid", ""), ("year", 0), ("price", -1), ("features", ["x"] * 21)],
    )
    def test_invalid_fields(self, field: str, value) -> None:
        with pytest.raises(FleetValidationError) as excinfo:
            validated(TruckWrite, **self._fields(**{field: value}))
        assert excinfo.value.field == field

    def test_unknown_field_is_rejected(self) -> None:
        with pytest.raises(FleetValidationError):
            validated(TruckWrite, **self._fields(wheels=6))


def test_reply_write_keeps_text_verbatim() -> None:
    write = validated(InquiryReplyWrite, admin_reply="  Hello\n", replied_at="2026-01-01T00:00:00+00:00")
    assert write.to_payload() == {
        "admin_reply": "  Hello\n",
        "status": "replied",
        "replied_at": "2026-01-01T00:00:00+00:00",
    }


# ------------------------------------------------------------------
# Events and sessions
# ------------------------------------------------------------------


def test_change_event_requires_record_for_upserts() -> None:
    with pytest.raises(ValueError):
        ChangeEvent(collection="trucks", kind=ChangeKind.UPDATED, record_id="1")


def test_change_event_normalizes_id() -> None:
    assert ChangeEvent.deleted("trucks", 12).record_id == "12"
    with pytest.raises(ValueError):
        ChangeEvent.deleted("trucks", "  ")


def test_session_from_token_response_computes_expiry() -> None:
    session = Session.from_token_response(
        {"access_token": "a", "refresh_token": "r", "expires_in": 3600, "user": {"id": "u", "email": "e@x"}}
    )
    assert not session.is_expired
    assert session.to_admin().full_name == "Admin"
