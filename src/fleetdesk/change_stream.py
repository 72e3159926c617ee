"""Realtime change subscriptions.

Owns:
- opening the realtime socket on first use and closing it with the last
  subscription
- joining one channel per subscription
- translating ``postgres_changes`` frames into :class:`ChangeEvent` and
  handing them to the subscriber
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

import aiohttp

from fleetdesk._realtime import (
    PHX_CLOSE,
    PHX_ERROR,
    PHX_JOIN,
    PHX_LEAVE,
    POSTGRES_CHANGES,
    PhoenixMessage,
    RealtimeSocket,
    parse_change_message,
)
from fleetdesk._transport import TokenProvider
from fleetdesk.config import FleetDeskConfig
from fleetdesk.exceptions import StreamError
from fleetdesk.state.events import ChangeEvent

_logger = logging.getLogger(__name__)

ChangeHandler = Callable[[ChangeEvent], None]


class SocketLike(Protocol):
    """What :class:`ChangeStream` needs from a socket runtime."""

    @property
    def is_running(self) -> bool:
        ...

    async def start(self) -> None:
        ...

    async def stop(self) -> None:
        ...

    async def push(self, topic: str, event: str, payload: dict[str, Any]) -> str:
        ...

    async def request(self, topic: str, event: str, payload: dict[str, Any], *, timeout: float) -> dict[str, Any]:
        ...


SocketFactory = Callable[[Callable[[PhoenixMessage], None], Callable[[], None]], SocketLike]


@dataclass(eq=False)
class Subscription:
    """Handle returned by :meth:`ChangeStream.subscribe`.

    Pass it back to :meth:`ChangeStream.unsubscribe`; ``active`` turns
    ``False`` once unsubscribed or once the socket has gone away.
    """

    collection: str
    topic: str
    handler: ChangeHandler = field(repr=False)
    active: bool = True


class ChangeStream:
    """Push-based change feed for one or more tables."""

    def __init__(
        self,
        config: FleetDeskConfig,
        http_session: aiohttp.ClientSession | None = None,
        *,
        token_provider: TokenProvider | None = None,
        socket_factory: SocketFactory | None = None,
    ) -> None:
        self._config = config
        self._http = http_session
        self._token_provider = token_provider
        self._socket_factory = socket_factory or self._default_socket
        self._socket: SocketLike | None = None
        self._subscriptions: dict[str, Subscription] = {}
        self._counter = itertools.count(1)

    def _default_socket(
        self,
        on_message: Callable[[PhoenixMessage], None],
        on_disconnect: Callable[[], None],
    ) -> SocketLike:
        if self._http is None:
            raise StreamError("ChangeStream needs an aiohttp session to open the realtime socket")
        return RealtimeSocket(
            http_session=self._http,
            url=self._config.realtime_url,
            api_key=self._config.anon_key,
            on_message=on_message,
            on_disconnect=on_disconnect,
            heartbeat_interval=self._config.realtime_heartbeat_interval,
        )

    @property
    def subscriptions(self) -> list[Subscription]:
        return list(self._subscriptions.values())

    async def _ensure_socket(self) -> SocketLike:
        socket = self._socket
        if socket is not None and socket.is_running:
            return socket
        socket = self._socket_factory(self._on_message, self._on_disconnect)
        await socket.start()
        self._socket = socket
        return socket

    async def _join_payload(self, collection: str) -> dict[str, Any]:
        token: str | None = None
        if self._token_provider is not None:
            token = await self._token_provider()
        return {
            "config": {
                "broadcast": {"ack": False, "self": False},
                "presence": {"key": ""},
                "postgres_changes": [{"event": "*", "schema": self._config.schema, "table": collection}],
            },
            "access_token": token or self._config.anon_key,
        }

    async def subscribe(self, collection: str, handler: ChangeHandler) -> Subscription:
        """Join a channel for *collection* and call *handler* for every change.

        Raises :class:`StreamError` when the socket cannot be opened or the
        join is rejected or times out.
        """
        socket = await self._ensure_socket()
        topic = f"realtime:{self._config.schema}:{collection}:{next(self._counter)}"
        try:
            await socket.request(
                topic,
                PHX_JOIN,
                await self._join_payload(collection),
                timeout=self._config.realtime_join_timeout,
            )
        except StreamError:
            if not self._subscriptions:
                await self._close_socket()
            raise
        subscription = Subscription(collection=collection, topic=topic, handler=handler)
        self._subscriptions[topic] = subscription
        _logger.debug("Subscribed to %s changes topic=%s", collection, topic)
        return subscription

    async def unsubscribe(self, subscription: Subscription) -> None:
        """Leave the subscription's channel.  Unknown or inactive handles are ignored."""
        known = self._subscriptions.pop(subscription.topic, None)
        was_active = subscription.active
        subscription.active = False
        if known is None or not was_active:
            return

        socket = self._socket
        if socket is not None and socket.is_running:
            try:
                await socket.push(subscription.topic, PHX_LEAVE, {})
            except StreamError:
                _logger.debug("Leave of %s failed", subscription.topic, exc_info=True)
        _logger.debug("Unsubscribed from %s topic=%s", subscription.collection, subscription.topic)

        if not self._subscriptions:
            await self._close_socket()

    async def close(self) -> None:
        """Drop every subscription and close the socket."""
        for subscription in list(self._subscriptions.values()):
            subscription.active = False
        self._subscriptions.clear()
        await self._close_socket()

    async def _close_socket(self) -> None:
        socket = self._socket
        self._socket = None
        if socket is None:
            return
        try:
            await socket.stop()
        except Exception:
            _logger.debug("Realtime socket stop failed", exc_info=True)

    def _on_disconnect(self) -> None:
        # Not retried; owners re-subscribe (or reload) to recover.
        for subscription in self._subscriptions.values():
            subscription.active = False
        if self._subscriptions:
            _logger.warning(
                "Realtime stream lost; %d subscriptions are no longer receiving changes",
                len(self._subscriptions),
            )
        self._subscriptions.clear()

    def _on_message(self, message: PhoenixMessage) -> None:
        subscription = self._subscriptions.get(message.topic)
        if subscription is None or not subscription.active:
            return

        if message.event in (PHX_ERROR, PHX_CLOSE):
            _logger.warning("Channel %s closed by server (%s)", message.topic, message.event)
            subscription.active = False
            self._subscriptions.pop(message.topic, None)
            return

        if message.event != POSTGRES_CHANGES:
            return

        event = parse_change_message(subscription.collection, message.payload)
        if event is None:
            return
        try:
            subscription.handler(event)
        except Exception:
            _logger.warning(
                "Change handler for %s failed on %s id=%s",
                subscription.collection,
                event.kind,
                event.record_id,
                exc_info=True,
            )
