"""Internal realtime websocket runtime and message parsing.

The realtime service speaks the Phoenix channel protocol (JSON text
frames, ``vsn=1.0.0``).  :class:`RealtimeSocket` owns the websocket, the
reader task and the heartbeat task; it hands every non-reply frame to a
callback on the running loop.
"""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import aiohttp
from pydantic import ValidationError

from fleetdesk._constants import REALTIME_PROTOCOL_VERSION
from fleetdesk._redact import redact_for_log
from fleetdesk.exceptions import StreamError
from fleetdesk.state.events import ChangeEvent, ChangeKind, ChangeSource

_logger = logging.getLogger(__name__)

PHX_JOIN = "phx_join"
PHX_LEAVE = "phx_leave"
PHX_REPLY = "phx_reply"
PHX_ERROR = "phx_error"
PHX_CLOSE = "phx_close"
HEARTBEAT_TOPIC = "phoenix"
POSTGRES_CHANGES = "postgres_changes"

_CHANGE_KINDS = {
    "INSERT": ChangeKind.INSERTED,
    "UPDATE": ChangeKind.UPDATED,
    "DELETE": ChangeKind.DELETED,
}


@dataclass(frozen=True)
class PhoenixMessage:
    """One decoded channel frame."""

    topic: str
    event: str
    payload: dict[str, Any] = field(default_factory=dict)
    ref: str | None = None
    join_ref: str | None = None

    @classmethod
    def from_text(cls, text: str) -> PhoenixMessage:
        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError(f"expected a JSON object frame, got {type(data).__name__}")
        payload = data.get("payload")
        ref = data.get("ref")
        join_ref = data.get("join_ref")
        return cls(
            topic=str(data.get("topic") or ""),
            event=str(data.get("event") or ""),
            payload=payload if isinstance(payload, dict) else {},
            ref=None if ref is None else str(ref),
            join_ref=None if join_ref is None else str(join_ref),
        )

    def to_text(self) -> str:
        return json.dumps(
            {
                "topic": self.topic,
                "event": self.event,
                "payload": self.payload,
                "ref": self.ref,
                "join_ref": self.join_ref,
            }
        )


def _parse_timestamp(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def parse_change_message(collection: str, payload: dict[str, Any]) -> ChangeEvent | None:
    """Translate a ``postgres_changes`` payload into a :class:`ChangeEvent`.

    Returns ``None`` for payloads that do not describe a row change (system
    notices, unknown types, rows without a primary key).  Deletes carry
    only ``old_record``; the id is taken from there.
    """
    data = payload.get("data") if isinstance(payload.get("data"), dict) else payload
    kind = _CHANGE_KINDS.get(str(data.get("type") or data.get("eventType") or "").upper())
    if kind is None:
        return None

    record = data.get("record") or data.get("new")
    old_record = data.get("old_record") or data.get("old")
    source_row = old_record if kind is ChangeKind.DELETED else record
    if not isinstance(source_row, dict) or source_row.get("id") in (None, ""):
        return None

    try:
        return ChangeEvent(
            collection=collection,
            kind=kind,
            record_id=source_row["id"],
            record=None if kind is ChangeKind.DELETED else record,
            source=ChangeSource.STREAM,
            commit_timestamp=_parse_timestamp(data.get("commit_timestamp")),
        )
    except ValidationError:
        _logger.debug("Discarding malformed change payload for %s", collection, exc_info=True)
        return None


class RealtimeSocket:
    """Websocket runtime that delivers decoded frames onto the running loop."""

    def __init__(
        self,
        *,
        http_session: aiohttp.ClientSession,
        url: str,
        api_key: str,
        on_message: Callable[[PhoenixMessage], None],
        on_disconnect: Callable[[], None] | None = None,
        heartbeat_interval: float = 25.0,
    ) -> None:
        self._http = http_session
        self._url = url
        self._api_key = api_key
        self._on_message = on_message
        self._on_disconnect = on_disconnect
        self._heartbeat_interval = heartbeat_interval
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._reader: asyncio.Task[None] | None = None
        self._heartbeat: asyncio.Task[None] | None = None
        self._refs = itertools.count(1)
        self._pending: dict[str, asyncio.Future[dict[str, Any]]] = {}
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def next_ref(self) -> str:
        return str(next(self._refs))

    async def start(self) -> None:
        """Open the websocket and start the reader and heartbeat tasks."""
        if self._running:
            return
        params = {"apikey": self._api_key, "vsn": REALTIME_PROTOCOL_VERSION}
        try:
            self._ws = await self._http.ws_connect(self._url, params=params, autoping=True)
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise StreamError(f"Realtime connect to {self._url} failed: {exc}") from exc
        self._running = True
        self._reader = asyncio.create_task(self._read_loop(), name="fleetdesk-realtime-reader")
        self._heartbeat = asyncio.create_task(self._heartbeat_loop(), name="fleetdesk-realtime-heartbeat")
        _logger.debug("Realtime socket connected url=%s", self._url)

    async def stop(self) -> None:
        """Close the websocket and cancel background tasks.  Safe to call repeatedly."""
        was_running = self._running
        self._running = False
        tasks = [task for task in (self._heartbeat, self._reader) if task is not None]
        self._heartbeat = None
        self._reader = None
        current = asyncio.current_task()
        for task in tasks:
            if task is not current:
                task.cancel()
        for task in tasks:
            if task is current:
                continue
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception:
                _logger.debug("Realtime task ended with error", exc_info=True)

        ws = self._ws
        self._ws = None
        if ws is not None and not ws.closed:
            await ws.close()
        self._fail_pending("Realtime socket closed")
        if was_running:
            _logger.debug("Realtime socket stopped")

    async def push(
        self,
        topic: str,
        event: str,
        payload: dict[str, Any],
        *,
        ref: str | None = None,
        join_ref: str | None = None,
    ) -> str:
        """Send one frame and return its ref."""
        ws = self._ws
        if ws is None or ws.closed:
            raise StreamError(f"Realtime socket is not connected (event={event} topic={topic})")
        ref = ref or self.next_ref()
        message = PhoenixMessage(topic=topic, event=event, payload=payload, ref=ref, join_ref=join_ref)
        _logger.debug("Realtime send topic=%s event=%s payload=%s", topic, event, redact_for_log(payload))
        try:
            await ws.send_str(message.to_text())
        except (aiohttp.ClientError, ConnectionError) as exc:
            raise StreamError(f"Realtime send failed: {exc}") from exc
        return ref

    async def request(self, topic: str, event: str, payload: dict[str, Any], *, timeout: float) -> dict[str, Any]:
        """Send a frame and wait for its ``phx_reply``.

        Returns the reply's ``response`` object.  An ``error`` status or no
        reply within *timeout* raises :class:`StreamError`.
        """
        ref = self.next_ref()
        future: asyncio.Future[dict[str, Any]] = asyncio.get_running_loop().create_future()
        self._pending[ref] = future
        try:
            await self.push(topic, event, payload, ref=ref, join_ref=ref if event == PHX_JOIN else None)
            reply = await asyncio.wait_for(future, timeout)
        except TimeoutError as exc:
            raise StreamError(f"No reply to {event} on {topic} within {timeout}s") from exc
        finally:
            self._pending.pop(ref, None)

        status = reply.get("status")
        response = reply.get("response") if isinstance(reply.get("response"), dict) else {}
        if status != "ok":
            raise StreamError(f"{event} on {topic} rejected: {response or status}")
        return response

    def _fail_pending(self, reason: str) -> None:
        pending = list(self._pending.values())
        self._pending.clear()
        for future in pending:
            if not future.done():
                future.set_exception(StreamError(reason))

    async def _heartbeat_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self._heartbeat_interval)
            try:
                await self.push(HEARTBEAT_TOPIC, "heartbeat", {})
            except StreamError:
                _logger.debug("Realtime heartbeat failed", exc_info=True)
                return

    async def _read_loop(self) -> None:
        ws = self._ws
        if ws is None:
            return
        try:
            async for frame in ws:
                if frame.type == aiohttp.WSMsgType.TEXT:
                    self._handle_text(frame.data)
                elif frame.type in (aiohttp.WSMsgType.ERROR, aiohttp.WSMsgType.CLOSE, aiohttp.WSMsgType.CLOSED):
                    break
        finally:
            if self._running:
                self._running = False
                _logger.warning("Realtime socket disconnected url=%s", self._url)
                self._fail_pending("Realtime socket disconnected")
                if self._on_disconnect is not None:
                    self._on_disconnect()

    def _handle_text(self, text: str) -> None:
        try:
            message = PhoenixMessage.from_text(text)
        except ValueError:
            _logger.debug("Realtime frame parse failure: %r", text[:200], exc_info=True)
            return

        if message.event == PHX_REPLY and message.ref is not None:
            future = self._pending.get(message.ref)
            if future is not None and not future.done():
                future.set_result(message.payload)
                return
            if message.topic == HEARTBEAT_TOPIC:
                return

        _logger.debug("Realtime received topic=%s event=%s", message.topic, message.event)
        self._on_message(message)
