"""Customer inquiry model."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import ClassVar

from fleetdesk.models._base import FleetBaseModel, OptionalRecordId


class InquiryStatus(StrEnum):
    PENDING = "pending"
    REPLIED = "replied"
    RESOLVED = "resolved"


class ServiceType(StrEnum):
    TRUCK_PURCHASE = "truck_purchase"
    PARCEL_DELIVERY = "parcel_delivery"
    INTERNATIONAL_SHIPPING = "international_shipping"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").title()


class Inquiry(FleetBaseModel):
    """A customer inquiry submitted through the public intake form.

    Inquiries are created outside the dashboard.  Here they are only read,
    replied to, resolved or deleted.  A ``replied`` inquiry always carries
    ``admin_reply`` and ``replied_at`` because the reply workflow writes all
    three in a single update.
    """

    SEARCH_FIELDS: ClassVar[tuple[str, ...]] = ("customer_name", "customer_email", "subject")
    NULLABLE_FIELDS: ClassVar[frozenset[str]] = frozenset({"admin_reply", "replied_at", "truck_id"})

    customer_name: str = ""
    customer_email: str = ""
    customer_phone: str = ""
    service_type: ServiceType = ServiceType.TRUCK_PURCHASE
    subject: str = ""
    message: str = ""
    status: InquiryStatus = InquiryStatus.PENDING
    admin_reply: str | None = None
    replied_at: datetime | None = None
    truck_id: OptionalRecordId = None
    created_at: datetime | None = None

    @property
    def has_email(self) -> bool:
        return bool(self.customer_email.strip())
