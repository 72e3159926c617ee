"""HTTP transport with Supabase key/bearer headers and error mapping."""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, Protocol

import aiohttp

from fleetdesk._constants import USER_AGENT
from fleetdesk._redact import redact_for_log
from fleetdesk.config import FleetDeskConfig
from fleetdesk.exceptions import FleetTransportError

_logger = logging.getLogger(__name__)

TokenProvider = Callable[[], Awaitable[str | None]]


class Transport(Protocol):
    """Structural transport interface used by the collaborator wrappers.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (`HttpTransport`) concrete.
    """

    async def request(
        self,
        method: str,
        url: str,
        *,
        params: Mapping[str, str] | None = None,
        json_body: Any = None,
        data: bytes | None = None,
        headers: Mapping[str, str] | None = None,
        supabase_auth: bool = True,
    ) -> Any:
        ...


def _error_details(text: str) -> tuple[str, str]:
    """Extract ``(code, message)`` from a Supabase/PostgREST error body."""
    try:
        body = json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return "", text[:200]
    if not isinstance(body, dict):
        return "", text[:200]
    code = body.get("code") or body.get("error_code") or body.get("statusCode") or ""
    message = (
        body.get("message")
        or body.get("msg")
        or body.get("error_description")
        or body.get("error")
        or text[:200]
    )
    return str(code), str(message)


class HttpTransport:
    """aiohttp transport that adds the project key and the session bearer token."""

    def __init__(
        self,
        config: FleetDeskConfig,
        http_session: aiohttp.ClientSession,
        *,
        token_provider: TokenProvider | None = None,
    ) -> None:
        self._config = config
        self._http = http_session
        self._token_provider = token_provider
        self._timeout = aiohttp.ClientTimeout(total=config.request_timeout)

    def set_token_provider(self, provider: TokenProvider | None) -> None:
        self._token_provider = provider

    async def _auth_headers(self) -> dict[str, str]:
        token: str | None = None
        if self._token_provider is not None:
            token = await self._token_provider()
        return {
            "apikey": self._config.anon_key,
            "authorization": f"Bearer {token or self._config.anon_key}",
        }

    async def request(
        self,
        method: str,
        url: str,
        *,
        params: Mapping[str, str] | None = None,
        json_body: Any = None,
        data: bytes | None = None,
        headers: Mapping[str, str] | None = None,
        supabase_auth: bool = True,
    ) -> Any:
        """Send one request and return the decoded body.

        JSON responses are decoded, empty bodies (``204``) return ``None``
        and anything else is returned as text.  Non-2xx statuses raise
        :class:`FleetTransportError` carrying the server's error code.
        """
        merged: dict[str, str] = {"user-agent": USER_AGENT}
        if supabase_auth:
            merged.update(await self._auth_headers())
        if headers:
            merged.update(headers)

        _logger.debug(
            "%s %s params=%s body=%s",
            method,
            url,
            dict(params or {}),
            redact_for_log(json_body) if data is None else redact_for_log(data),
        )

        kwargs: dict[str, Any] = {"params": params, "headers": merged, "timeout": self._timeout}
        if data is not None:
            kwargs["data"] = data
        elif json_body is not None:
            kwargs["json"] = json_body

        try:
            async with self._http.request(method, url, **kwargs) as resp:
                text = await resp.text()
                content_type = resp.headers.get("content-type", "")
                status = resp.status
        except aiohttp.ClientError as exc:
            raise FleetTransportError(f"Request to {url} failed: {exc}", endpoint=url) from exc
        except TimeoutError as exc:
            raise FleetTransportError(f"Request to {url} timed out", endpoint=url) from exc

        if status >= 400:
            code, message = _error_details(text)
            raise FleetTransportError(
                f"HTTP {status} from {url}: {message}",
                status_code=status,
                endpoint=url,
                code=code,
                detail=message,
            )

        if status == 204 or not text.strip():
            return None

        if "json" not in content_type:
            return text

        try:
            body = json.loads(text)
        except json.JSONDecodeError as exc:
            raise FleetTransportError(
                f"Invalid JSON from {url}: {text[:200]}",
                status_code=status,
                endpoint=url,
            ) from exc

        _logger.debug("Response %s %s -> %s", method, url, redact_for_log(body))
        return body
