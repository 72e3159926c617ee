"""Derived dashboard figures.

Pure functions over the cached record lists; nothing here performs I/O.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Sequence

from pydantic import BaseModel, ConfigDict, Field

from fleetdesk.models.inquiry import Inquiry, InquiryStatus, ServiceType
from fleetdesk.models.truck import Truck, TruckStatus

RECENT_LIMIT = 5


class DashboardStats(BaseModel):
    """Headline figures for the overview page."""

    model_config = ConfigDict(frozen=True)

    total_trucks: int = 0
    available_trucks: int = 0
    sold_trucks: int = 0
    total_revenue: float = 0.0
    total_inquiries: int = 0
    pending_inquiries: int = 0
    recent_trucks: list[Truck] = Field(default_factory=list)
    recent_inquiries: list[Inquiry] = Field(default_factory=list)


class InquiryStatusCounts(BaseModel):
    model_config = ConfigDict(frozen=True)

    total: int = 0
    pending: int = 0
    replied: int = 0
    resolved: int = 0


class FleetAnalytics(BaseModel):
    """Distributions and price figures for the analytics page.

    ``brand_counts`` is ordered by count, highest first.
    """

    model_config = ConfigDict(frozen=True)

    brand_counts: dict[str, int] = Field(default_factory=dict)
    status_counts: dict[str, int] = Field(default_factory=dict)
    service_counts: dict[str, int] = Field(default_factory=dict)
    average_price: float = 0.0
    min_price: float = 0.0
    max_price: float = 0.0
    total_value: float = 0.0
    revenue: float = 0.0
    total_trucks: int = 0
    total_inquiries: int = 0

    def brand_share(self, brand: str) -> float:
        """Percentage of the fleet carrying *brand*."""
        if not self.total_trucks:
            return 0.0
        return self.brand_counts.get(brand, 0) * 100.0 / self.total_trucks


def _revenue(trucks: Iterable[Truck]) -> float:
    return sum(float(truck.price) for truck in trucks if truck.status is TruckStatus.SOLD)


def dashboard_stats(trucks: Sequence[Truck], inquiries: Sequence[Inquiry]) -> DashboardStats:
    """Overview figures; "recent" are the first five rows of the newest-first lists."""
    return DashboardStats(
        total_trucks=len(trucks),
        available_trucks=sum(1 for truck in trucks if truck.status is TruckStatus.AVAILABLE),
        sold_trucks=sum(1 for truck in trucks if truck.status is TruckStatus.SOLD),
        total_revenue=_revenue(trucks),
        total_inquiries=len(inquiries),
        pending_inquiries=sum(1 for inquiry in inquiries if inquiry.status is InquiryStatus.PENDING),
        recent_trucks=list(trucks[:RECENT_LIMIT]),
        recent_inquiries=list(inquiries[:RECENT_LIMIT]),
    )


def inquiry_status_counts(inquiries: Sequence[Inquiry]) -> InquiryStatusCounts:
    counts = Counter(inquiry.status for inquiry in inquiries)
    return InquiryStatusCounts(
        total=len(inquiries),
        pending=counts[InquiryStatus.PENDING],
        replied=counts[InquiryStatus.REPLIED],
        resolved=counts[InquiryStatus.RESOLVED],
    )


def fleet_analytics(trucks: Sequence[Truck], inquiries: Sequence[Inquiry]) -> FleetAnalytics:
    brands = Counter(truck.brand for truck in trucks)
    statuses = Counter(truck.status for truck in trucks)
    services = Counter(inquiry.service_type for inquiry in inquiries)
    prices = [float(truck.price) for truck in trucks]
    total_value = sum(prices)
    return FleetAnalytics(
        brand_counts=dict(brands.most_common()),
        status_counts={status.value: statuses[status] for status in TruckStatus},
        service_counts={service.value: services[service] for service in ServiceType},
        average_price=total_value / len(prices) if prices else 0.0,
        min_price=min(prices, default=0.0),
        max_price=max(prices, default=0.0),
        total_value=total_value,
        revenue=_revenue(trucks),
        total_trucks=len(trucks),
        total_inquiries=len(inquiries),
    )


def unique_brands(trucks: Iterable[Truck]) -> list[str]:
    """Sorted distinct brands present in *trucks*, for the brand filter."""
    return sorted({truck.brand for truck in trucks if truck.brand})
