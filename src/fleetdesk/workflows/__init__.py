"""User-facing workflows built on the collection, storage and mail wrappers."""

from fleetdesk.workflows.edit_session import (
    EditState,
    ImageFile,
    ImageSlot,
    RecordEditSession,
    SlotStatus,
    TruckDraft,
    normalize_features,
)
from fleetdesk.workflows.fleet import DeleteOutcome, collect_truck_image_paths, delete_truck
from fleetdesk.workflows.inquiries import InquiryReplyWorkflow, delete_inquiry, mark_resolved

__all__ = [
    "DeleteOutcome",
    "EditState",
    "ImageFile",
    "ImageSlot",
    "InquiryReplyWorkflow",
    "RecordEditSession",
    "SlotStatus",
    "TruckDraft",
    "collect_truck_image_paths",
    "delete_inquiry",
    "delete_truck",
    "mark_resolved",
    "normalize_features",
]
