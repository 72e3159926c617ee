"""Synced in-memory collection store.

This is the only component allowed to change a cached record list.  It
merges three inputs into one ordered view:

- the initial full fetch (wholesale replace),
- change events from the realtime stream,
- local mutation echoes (optimistic insert/delete after a successful write).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any, Generic, Protocol, TypeVar

from pydantic import ValidationError

from fleetdesk.exceptions import RemoteReadError, StreamError
from fleetdesk.models._base import FleetBaseModel
from fleetdesk.state.events import ChangeEvent, ChangeKind
from fleetdesk.state.policy import merge_change, remove, upsert
from fleetdesk.state.views import FilterSpec, SortSpec, build_view

_logger = logging.getLogger(__name__)

R = TypeVar("R", bound=FleetBaseModel)

ChangeHandler = Callable[[ChangeEvent], None]
Listener = Callable[[tuple[Any, ...]], None]


class RecordSource(Protocol[R]):
    """Read side of a remote collection (see :class:`fleetdesk.collection.RemoteCollectionClient`)."""

    @property
    def collection(self) -> str:
        ...

    @property
    def model(self) -> type[R]:
        ...

    async def list(self, *, order_by: str = "created_at", descending: bool = True) -> list[R]:
        ...


class ChangeFeed(Protocol):
    """Subscription side of the realtime stream (see :class:`fleetdesk.change_stream.ChangeStream`)."""

    async def subscribe(self, collection: str, handler: ChangeHandler) -> Any:
        ...

    async def unsubscribe(self, handle: Any) -> None:
        ...


class SyncedCollectionStore(Generic[R]):
    """Authoritative-cache list of one record type.

    The list is held as an immutable tuple and replaced on every change, so
    its identity changes exactly when its content does.  Views are memoized
    per ``(filter, sort)`` and dropped whenever the identity changes.
    """

    def __init__(
        self,
        source: RecordSource[R],
        stream: ChangeFeed | None = None,
        *,
        order_by: str = "created_at",
    ) -> None:
        self._source = source
        self._stream = stream
        self._order_by = order_by
        self._records: tuple[R, ...] = ()
        self._ready = False
        self._loading = False
        self._last_error: Exception | None = None
        self._subscription: Any = None
        self._pending_join: asyncio.Task[None] | None = None
        self._epoch = 0
        self._listeners: list[Listener] = []
        self._view_cache: dict[tuple[FilterSpec | None, SortSpec | None], tuple[R, ...]] = {}
        self._view_cache_owner: tuple[R, ...] | None = None

    @property
    def collection(self) -> str:
        return self._source.collection

    @property
    def records(self) -> tuple[R, ...]:
        return self._records

    @property
    def ready(self) -> bool:
        """True once a fetch has succeeded (an empty collection counts)."""
        return self._ready

    @property
    def is_loading(self) -> bool:
        return self._loading

    @property
    def last_error(self) -> Exception | None:
        return self._last_error

    @property
    def is_subscribed(self) -> bool:
        return self._subscription is not None and bool(getattr(self._subscription, "active", True))

    def get(self, record_id: str) -> R | None:
        for record in self._records:
            if record.id == record_id:
                return record
        return None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> tuple[R, ...]:
        """Fetch the whole collection, newest first, and replace the list.

        On failure the previous list is kept, the error is recorded on
        ``last_error`` and re-raised.
        """
        self._loading = True
        try:
            rows = await self._source.list(order_by=self._order_by, descending=True)
        except RemoteReadError as exc:
            self._last_error = exc
            _logger.warning(
                "Initial load of %s failed; keeping %d cached rows",
                self.collection,
                len(self._records),
                exc_info=True,
            )
            raise
        finally:
            self._loading = False

        self._last_error = None
        self._replace(tuple(rows))
        self._ready = True
        _logger.debug("Loaded %d rows from %s", len(self._records), self.collection)
        return self._records

    async def subscribe(self) -> None:
        """Start applying realtime changes.

        Subscribing while an active subscription exists is a no-op, and
        overlapping callers share one pending join.  After the stream
        dropped, calling this again opens a fresh subscription.
        """
        if self.is_subscribed:
            return
        if self._stream is None:
            raise StreamError(f"No change stream configured for {self.collection}")
        pending = self._pending_join
        if pending is None:
            pending = asyncio.ensure_future(self._join(self._stream, self._epoch))
            self._pending_join = pending
        await pending

    async def _join(self, stream: ChangeFeed, epoch: int) -> None:
        def handler(event: ChangeEvent) -> None:
            if epoch == self._epoch:
                self.apply(event)

        try:
            subscription = await stream.subscribe(self.collection, handler)
        finally:
            if epoch == self._epoch:
                self._pending_join = None

        if epoch != self._epoch:
            _logger.debug("Store for %s was torn down during join; leaving again", self.collection)
            await self._leave(stream, subscription)
            return
        self._subscription = subscription

    async def teardown(self) -> None:
        """Stop applying realtime changes.  Safe to call at any time, any number of times.

        A join still in flight is left as soon as it completes.
        """
        self._epoch += 1
        self._pending_join = None
        subscription = self._subscription
        self._subscription = None
        if subscription is None or self._stream is None:
            return
        await self._leave(self._stream, subscription)

    async def _leave(self, stream: ChangeFeed, subscription: Any) -> None:
        try:
            await stream.unsubscribe(subscription)
        except Exception:
            _logger.debug("Unsubscribe from %s failed", self.collection, exc_info=True)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def apply(self, event: ChangeEvent) -> None:
        """Apply a change event; replaying the same event is harmless."""
        if event.collection != self.collection:
            _logger.debug("Ignoring %s event for %s in %s store", event.kind, event.collection, self.collection)
            return

        record: R | None = None
        if event.kind is not ChangeKind.DELETED:
            try:
                record = self._source.model.model_validate(event.record)
            except ValidationError:
                _logger.warning(
                    "Dropping malformed %s event for %s id=%s",
                    event.kind,
                    self.collection,
                    event.record_id,
                    exc_info=True,
                )
                return

        self._replace(merge_change(self._records, event.kind, event.record_id, record))

    def upsert_local(self, record: R) -> None:
        """Echo a successful local insert/update before the stream does."""
        self._replace(upsert(self._records, record))

    def remove_local(self, record_id: str) -> None:
        """Echo a successful local delete; a later stream delete becomes a no-op."""
        self._replace(remove(self._records, record_id))

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Call *listener* with the new list after every change.  Returns a remover."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def _replace(self, records: tuple[R, ...]) -> None:
        if records is self._records:
            return
        self._records = records
        self._view_cache.clear()
        self._view_cache_owner = records
        for listener in list(self._listeners):
            try:
                listener(records)
            except Exception:
                _logger.debug("Store listener failed", exc_info=True)

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def view(self, filter_spec: FilterSpec | None = None, sort_spec: SortSpec | None = None) -> tuple[R, ...]:
        """Filtered and sorted snapshot of the current list."""
        if self._view_cache_owner is not self._records:
            self._view_cache.clear()
            self._view_cache_owner = self._records
        key = (filter_spec, sort_spec)
        cached = self._view_cache.get(key)
        if cached is None:
            cached = build_view(self._records, filter_spec, sort_spec)
            self._view_cache[key] = cached
        return cached
