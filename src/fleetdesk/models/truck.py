"""Truck inventory model."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any, ClassVar

from pydantic import Field, field_validator

from fleetdesk._constants import DEFAULT_FUEL_TYPE, DEFAULT_TRANSMISSION, IMAGE_SLOTS
from fleetdesk.models._base import FleetBaseModel


class TruckStatus(StrEnum):
    AVAILABLE = "available"
    SOLD = "sold"
    RESERVED = "reserved"


class Truck(FleetBaseModel):
    """A truck listed in the inventory.

    Fields mirror the ``trucks`` table.  ``tuuid`` namespaces the truck's
    images in object storage (``{tuuid}/{slot}.{ext}``) and never changes
    after creation.
    """

    SEARCH_FIELDS: ClassVar[tuple[str, ...]] = ("brand", "model", "vin")

    tuuid: str = ""
    brand: str = ""
    model: str = ""
    year: int = 0
    price: float = 0.0
    mileage: int = 0
    fuel_type: str = DEFAULT_FUEL_TYPE
    transmission: str = DEFAULT_TRANSMISSION
    engine_capacity: str = ""
    horsepower: int = 0
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
    features: list[str] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("tuuid")
    @classmethod
    def _strip_tuuid(cls, value: str) -> str:
        return value.strip().strip("/")

    @field_validator("features", mode="before")
    @classmethod
    def _features_list(cls, value: Any) -> Any:
        # Older rows stored features as a single text blob.
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return value

    def image_urls(self) -> dict[str, str]:
        """Map of slot name to URL for every slot (empty string when unset)."""
        return {slot: getattr(self, slot) for slot in IMAGE_SLOTS}

    @property
    def populated_slots(self) -> list[str]:
        return [slot for slot in IMAGE_SLOTS if getattr(self, slot)]

    @property
    def title(self) -> str:
        return f"{self.brand} {self.model}".strip()
