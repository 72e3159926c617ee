"""Pydantic request models for write operations.

These models provide a consistent "validate → normalize → execute" flow.
They are built right before a remote write so invalid input never leaves
the process.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from fleetdesk._constants import MAX_FEATURES
from fleetdesk.exceptions import FleetValidationError
from fleetdesk.models.inquiry import InquiryStatus
from fleetdesk.models.truck import TruckStatus


def _required_text(value: str, name: str) -> str:
    text = value.strip()
    if not text:
        raise ValueError(f"{name} must be non-empty")
    return text


class TruckWrite(BaseModel):
    """Full field set written on every truck insert or update."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        validate_default=True,
    )

    tuuid: str
    brand: str
    model: str
    year: int = Field(gt=0)
    price: float = Field(ge=0)
    mileage: int = Field(default=0, ge=0)
    fuel_type: str = ""
    transmission: str = ""
    engine_capacity: str = ""
    horsepower: int = Field(default=0, ge=0)
    color: str = ""
    vin: str = ""
    description: str = ""
    status: TruckStatus = TruckStatus.AVAILABLE
    main_image: str = ""
    image1: str = ""
    image2: str = ""
    image3: str = ""
    image4: str = ""
    image5: str = ""
    image6: str = ""
    image7: str = ""
    image8: str = ""
    image9: str = ""
    features: list[str] = Field(default_factory=list, max_length=MAX_FEATURES)
    updated_at: str

    @field_validator("tuuid")
    @classmethod
    def _tuuid_non_empty(cls, value: str) -> str:
        return _required_text(value, "tuuid")

    @field_validator("brand")
    @classmethod
    def _brand_non_empty(cls, value: str) -> str:
        return _required_text(value, "brand")

    @field_validator("model")
    @classmethod
    def _model_non_empty(cls, value: str) -> str:
        return _required_text(value, "model")

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class InquiryReplyWrite(BaseModel):
    """Fields persisted by phase one of the reply workflow."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    admin_reply: str
    status: InquiryStatus = InquiryStatus.REPLIED
    replied_at: str

    @field_validator("admin_reply")
    @classmethod
    def _reply_non_empty(cls, value: str) -> str:
        # Keep the text as typed; only reject blank replies.
        _required_text(value, "admin_reply")
        return value

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


def validated(model: type[BaseModel], /, **fields: Any) -> Any:
    """Construct *model*, converting pydantic errors into :class:`FleetValidationError`."""
    try:
        return model(**fields)
    except ValidationError as exc:
        first = exc.errors()[0] if exc.errors() else {}
        loc = first.get("loc") or ("",)
        field = str(loc[0])
        raise FleetValidationError(
            f"{model.__name__} invalid: {exc}",
            field=field,
            user_message=_FIELD_MESSAGES.get(field, FleetValidationError.user_message),
        ) from exc


_FIELD_MESSAGES: dict[str, str] = {
    "brand": "Please choose a brand or enter a custom brand.",
    "model": "Please enter the truck model.",
    "year": "Please enter a valid year.",
    "price": "Price cannot be negative.",
    "mileage": "Mileage cannot be negative.",
    "horsepower": "Horsepower cannot be negative.",
    "features": "A truck can list at most 20 features.",
    "admin_reply": "Please write a reply before sending.",
}
