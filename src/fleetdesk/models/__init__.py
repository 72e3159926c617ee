"""Data models for dashboard records."""

from fleetdesk.models._base import FleetBaseModel, RecordId, isoformat, utcnow
from fleetdesk.models.admin import Admin
from fleetdesk.models.inquiry import Inquiry, InquiryStatus, ServiceType
from fleetdesk.models.requests import InquiryReplyWrite, TruckWrite
from fleetdesk.models.truck import Truck, TruckStatus

__all__ = [
    "Admin",
    "FleetBaseModel",
    "Inquiry",
    "InquiryReplyWrite",
    "InquiryStatus",
    "RecordId",
    "ServiceType",
    "Truck",
    "TruckStatus",
    "TruckWrite",
    "isoformat",
    "utcnow",
]
