"""fleetdesk - Async client for a truck-sales fleet dashboard backend."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("fleetdesk")
except PackageNotFoundError:
    __version__ = "0+local"
from fleetdesk.auth import AdminContext, AuthClient, LoginResult
from fleetdesk.change_stream import ChangeStream, Subscription
from fleetdesk.client import FleetDeskClient
from fleetdesk.collection import RemoteCollectionClient
from fleetdesk.config import FleetDeskConfig
from fleetdesk.exceptions import (
    FleetAuthenticationError,
    FleetConfigError,
    FleetDeskError,
    FleetSessionExpiredError,
    FleetTransportError,
    FleetValidationError,
    NotificationError,
    RemoteReadError,
    RemoteWriteError,
    StreamError,
    UploadError,
)
from fleetdesk.mail import MailClient
from fleetdesk.models import (
    Admin,
    Inquiry,
    InquiryStatus,
    ServiceType,
    Truck,
    TruckStatus,
)
from fleetdesk.object_store import FileEntry, ObjectStore
from fleetdesk.state import ChangeEvent, ChangeKind, FilterSpec, SortSpec, SyncedCollectionStore
from fleetdesk.stats import DashboardStats, FleetAnalytics, InquiryStatusCounts
from fleetdesk.workflows import (
    DeleteOutcome,
    EditState,
    ImageFile,
    InquiryReplyWorkflow,
    RecordEditSession,
    SlotStatus,
    normalize_features,
)

__all__ = [
    "__version__",
    "Admin",
    "AdminContext",
    "AuthClient",
    "ChangeEvent",
    "ChangeKind",
    "ChangeStream",
    "DashboardStats",
    "DeleteOutcome",
    "EditState",
    "FileEntry",
    "FilterSpec",
    "FleetAnalytics",
    "FleetAuthenticationError",
    "FleetConfigError",
    "FleetDeskClient",
    "FleetDeskConfig",
    "FleetDeskError",
    "FleetSessionExpiredError",
    "FleetTransportError",
    "FleetValidationError",
    "ImageFile",
    "Inquiry",
    "InquiryReplyWorkflow",
    "InquiryStatus",
    "InquiryStatusCounts",
    "LoginResult",
    "MailClient",
    "NotificationError",
    "ObjectStore",
    "RecordEditSession",
    "RemoteCollectionClient",
    "RemoteReadError",
    "RemoteWriteError",
    "ServiceType",
    "SlotStatus",
    "SortSpec",
    "StreamError",
    "Subscription",
    "SyncedCollectionStore",
    "Truck",
    "TruckStatus",
    "UploadError",
    "normalize_features",
]
