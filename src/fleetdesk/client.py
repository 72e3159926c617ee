"""High-level async client for the fleet dashboard backend."""

from __future__ import annotations

import logging
from typing import Any

import aiohttp

from fleetdesk._transport import HttpTransport, Transport
from fleetdesk.auth import AdminContext, AuthClient, LoginResult
from fleetdesk.change_stream import ChangeStream
from fleetdesk.collection import RemoteCollectionClient
from fleetdesk.config import FleetDeskConfig
from fleetdesk.exceptions import FleetDeskError
from fleetdesk.mail import MailClient
from fleetdesk.models.admin import Admin
from fleetdesk.models.inquiry import Inquiry
from fleetdesk.models.truck import Truck
from fleetdesk.object_store import ObjectStore
from fleetdesk.state.store import ChangeFeed, SyncedCollectionStore
from fleetdesk.stats import (
    DashboardStats,
    FleetAnalytics,
    InquiryStatusCounts,
    dashboard_stats,
    fleet_analytics,
    inquiry_status_counts,
    unique_brands,
)
from fleetdesk.workflows.edit_session import RecordEditSession
from fleetdesk.workflows.fleet import DeleteOutcome, delete_truck
from fleetdesk.workflows.inquiries import InquiryReplyWorkflow, delete_inquiry, mark_resolved

_logger = logging.getLogger(__name__)


class FleetDeskClient:
    """Async client wiring auth, tables, storage, realtime and mail together.

    Usage::

        async with FleetDeskClient(FleetDeskConfig.from_env()) as client:
            result = await client.login("admin@example.com", "secret")
            trucks = client.truck_store()
            await trucks.initialize()
            await trucks.subscribe()
    """

    def __init__(
        self,
        config: FleetDeskConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        transport: Transport | None = None,
        stream: ChangeFeed | None = None,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._transport = transport
        self._stream = stream
        self._auth: AuthClient | None = None
        self._admin: AdminContext | None = None
        self._trucks: RemoteCollectionClient[Truck] | None = None
        self._inquiries: RemoteCollectionClient[Inquiry] | None = None
        self._images: ObjectStore | None = None
        self._mail: MailClient | None = None
        self._truck_store: SyncedCollectionStore[Truck] | None = None
        self._inquiry_store: SyncedCollectionStore[Inquiry] | None = None

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> FleetDeskClient:
        self._config.validate()
        if self._transport is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            self._transport = HttpTransport(self._config, self._http_session)

        transport = self._transport
        self._auth = AuthClient(transport, self._config)
        if isinstance(transport, HttpTransport):
            transport.set_token_provider(self._auth.access_token)
        self._admin = AdminContext(self._auth)
        if self._stream is None:
            self._stream = ChangeStream(self._config, self._http_session, token_provider=self._auth.access_token)

        self._trucks = RemoteCollectionClient(transport, self._config, self._config.trucks_table, Truck)
        self._inquiries = RemoteCollectionClient(transport, self._config, self._config.inquiries_table, Inquiry)
        self._images = ObjectStore(transport, self._config)
        self._mail = MailClient(transport, self._config)
        return self

    async def __aexit__(self, *exc: Any) -> None:
        for store in (self._truck_store, self._inquiry_store):
            if store is not None:
                await store.teardown()
        if isinstance(self._stream, ChangeStream):
            await self._stream.close()
        if self._admin is not None:
            self._admin.close()
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        self._truck_store = None
        self._inquiry_store = None

    def _require_open(self) -> None:
        if self._auth is None:
            raise FleetDeskError("Client not initialized. Use 'async with FleetDeskClient(...) as client:'")

    # ------------------------------------------------------------------
    # Collaborators
    # ------------------------------------------------------------------

    @property
    def config(self) -> FleetDeskConfig:
        return self._config

    @property
    def auth(self) -> AuthClient:
        self._require_open()
        assert self._auth is not None  # noqa: S101
        return self._auth

    @property
    def admin_context(self) -> AdminContext:
        self._require_open()
        assert self._admin is not None  # noqa: S101
        return self._admin

    @property
    def trucks(self) -> RemoteCollectionClient[Truck]:
        self._require_open()
        assert self._trucks is not None  # noqa: S101
        return self._trucks

    @property
    def inquiries(self) -> RemoteCollectionClient[Inquiry]:
        self._require_open()
        assert self._inquiries is not None  # noqa: S101
        return self._inquiries

    @property
    def images(self) -> ObjectStore:
        self._require_open()
        assert self._images is not None  # noqa: S101
        return self._images

    @property
    def mail(self) -> MailClient:
        self._require_open()
        assert self._mail is not None  # noqa: S101
        return self._mail

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    async def login(self, email: str, password: str) -> LoginResult:
        return await self.admin_context.login(email, password)

    async def logout(self) -> None:
        """Sign out and stop live updates."""
        for store in (self._truck_store, self._inquiry_store):
            if store is not None:
                await store.teardown()
        await self.admin_context.logout()

    @property
    def admin(self) -> Admin | None:
        return self.admin_context.admin

    # ------------------------------------------------------------------
    # Stores
    # ------------------------------------------------------------------

    def truck_store(self) -> SyncedCollectionStore[Truck]:
        if self._truck_store is None:
            self._truck_store = SyncedCollectionStore(self.trucks, self._stream)
        return self._truck_store

    def inquiry_store(self) -> SyncedCollectionStore[Inquiry]:
        if self._inquiry_store is None:
            self._inquiry_store = SyncedCollectionStore(self.inquiries, self._stream)
        return self._inquiry_store

    # ------------------------------------------------------------------
    # Workflows
    # ------------------------------------------------------------------

    def edit_truck(self, truck: Truck | None = None) -> RecordEditSession:
        """Open an edit session: blank when *truck* is ``None``, seeded otherwise."""
        session = RecordEditSession(self.trucks, self.images, store=self.truck_store())
        if truck is None:
            session.begin_new()
        else:
            session.begin_edit(truck)
        return session

    async def delete_truck(self, truck: Truck) -> DeleteOutcome:
        return await delete_truck(self.trucks, self.images, truck, store=self.truck_store())

    def reply_workflow(self) -> InquiryReplyWorkflow:
        return InquiryReplyWorkflow(self.inquiries, self.mail, self._config, store=self.inquiry_store())

    async def mark_inquiry_resolved(self, inquiry: Inquiry) -> Inquiry:
        return await mark_resolved(self.inquiries, inquiry, store=self.inquiry_store())

    async def delete_inquiry(self, inquiry: Inquiry) -> None:
        await delete_inquiry(self.inquiries, inquiry, store=self.inquiry_store())

    # ------------------------------------------------------------------
    # Derived figures
    # ------------------------------------------------------------------

    def dashboard_stats(self) -> DashboardStats:
        return dashboard_stats(self.truck_store().records, self.inquiry_store().records)

    def fleet_analytics(self) -> FleetAnalytics:
        return fleet_analytics(self.truck_store().records, self.inquiry_store().records)

    def inquiry_counts(self) -> InquiryStatusCounts:
        return inquiry_status_counts(self.inquiry_store().records)

    def truck_brands(self) -> list[str]:
        return unique_brands(self.truck_store().records)
