"""Admin authentication against the auth service.

:class:`AuthClient` owns the token session and hands the current access
token to the HTTP transport.  :class:`AdminContext` is the
process-scoped view of "who is signed in" that the dashboard reads.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from fleetdesk._transport import Transport
from fleetdesk.config import FleetDeskConfig
from fleetdesk.exceptions import (
    FleetAuthenticationError,
    FleetDeskError,
    FleetSessionExpiredError,
    FleetTransportError,
)
from fleetdesk.models.admin import Admin
from fleetdesk.session import AuthUser, Session

_logger = logging.getLogger(__name__)

SessionListener = Callable[[Session | None], None]


class AuthClient:
    """Password sign-in, token refresh and sign-out."""

    def __init__(self, transport: Transport, config: FleetDeskConfig) -> None:
        self._transport = transport
        self._config = config
        self._session: Session | None = None
        self._listeners: list[SessionListener] = []
        self._refresh_lock = asyncio.Lock()

    @property
    def session(self) -> Session | None:
        return self._session

    def _key_headers(self, bearer: str | None = None) -> dict[str, str]:
        return {
            "apikey": self._config.anon_key,
            "authorization": f"Bearer {bearer or self._config.anon_key}",
        }

    def _set_session(self, session: Session | None) -> None:
        self._session = session
        for listener in list(self._listeners):
            try:
                listener(session)
            except Exception:
                _logger.debug("Session listener failed", exc_info=True)

    def on_session_change(self, listener: SessionListener) -> Callable[[], None]:
        """Call *listener* on every sign-in, refresh and sign-out.  Returns a remover."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def restore(self, session: Session) -> None:
        """Adopt a previously persisted session."""
        self._set_session(session)

    async def _token_request(self, grant_type: str, body: dict[str, Any]) -> Session:
        url = f"{self._config.auth_url}/token"
        response = await self._transport.request(
            "POST",
            url,
            params={"grant_type": grant_type},
            json_body=body,
            headers=self._key_headers(),
            supabase_auth=False,
        )
        if not isinstance(response, dict):
            raise FleetAuthenticationError(f"Unexpected token response from {url}")
        try:
            return Session.from_token_response(response)
        except ValidationError as exc:
            raise FleetAuthenticationError(f"Malformed token response: {exc}") from exc

    async def sign_in(self, email: str, password: str) -> Session:
        """Sign in with email and password.

        Raises
        ------
        FleetAuthenticationError
            The credentials were rejected.  ``user_message`` carries the
            server's explanation when it gave one.
        FleetTransportError
            The auth service could not be reached.
        """
        try:
            session = await self._token_request("password", {"email": email.strip(), "password": password})
        except FleetTransportError as exc:
            if exc.status_code is not None and 400 <= exc.status_code < 500:
                raise FleetAuthenticationError(
                    f"Sign-in rejected for {email}: {exc}",
                    user_message=exc.detail or None,
                ) from exc
            raise
        _logger.debug("Signed in user=%s", session.user.id)
        self._set_session(session)
        return session

    async def refresh(self) -> Session:
        """Exchange the refresh token for a new session."""
        async with self._refresh_lock:
            current = self._session
            if current is not None and not current.is_expired:
                return current
            if current is None or not current.refresh_token:
                self._set_session(None)
                raise FleetSessionExpiredError("No refresh token available")
            try:
                session = await self._token_request("refresh_token", {"refresh_token": current.refresh_token})
            except (FleetTransportError, FleetAuthenticationError) as exc:
                status = getattr(exc, "status_code", None)
                if status is None or status >= 500:
                    raise
                self._set_session(None)
                raise FleetSessionExpiredError(f"Refresh rejected: {exc}") from exc
            _logger.debug("Session refreshed user=%s", session.user.id)
            self._set_session(session)
            return session

    async def get_session(self) -> Session | None:
        """Current session, refreshed when expired.  ``None`` when signed out."""
        if self._session is None:
            return None
        if self._session.is_expired:
            return await self.refresh()
        return self._session

    async def access_token(self) -> str | None:
        """Token provider for the HTTP transport and the realtime join."""
        session = await self.get_session()
        return session.access_token if session is not None else None

    async def get_user(self) -> AuthUser:
        session = await self.get_session()
        if session is None:
            raise FleetAuthenticationError("Not signed in")
        body = await self._transport.request(
            "GET",
            f"{self._config.auth_url}/user",
            headers=self._key_headers(session.access_token),
            supabase_auth=False,
        )
        return AuthUser.model_validate(body)

    async def sign_out(self) -> None:
        """Revoke the session remotely (best effort) and forget it locally."""
        session = self._session
        if session is None:
            return
        try:
            await self._transport.request(
                "POST",
                f"{self._config.auth_url}/logout",
                headers=self._key_headers(session.access_token),
                supabase_auth=False,
            )
        except FleetDeskError:
            _logger.debug("Remote sign-out failed", exc_info=True)
        self._set_session(None)


@dataclass(frozen=True)
class LoginResult:
    success: bool
    error: str | None = None


class AdminContext:
    """Signed-in admin for one dashboard process.

    Mirrors the auth session: every session change updates :attr:`admin`.
    """

    def __init__(self, auth: AuthClient) -> None:
        self._auth = auth
        self._admin: Admin | None = None
        self._loading = True
        self._remove_listener = auth.on_session_change(self._on_session_change)

    @property
    def admin(self) -> Admin | None:
        return self._admin

    @property
    def is_authenticated(self) -> bool:
        return self._admin is not None

    @property
    def is_loading(self) -> bool:
        return self._loading

    async def start(self) -> Admin | None:
        """Resolve the admin from an existing session, if any."""
        self._loading = True
        try:
            session = await self._auth.get_session()
        except FleetSessionExpiredError:
            session = None
        finally:
            self._loading = False
        self._on_session_change(session)
        return self._admin

    async def login(self, email: str, password: str) -> LoginResult:
        try:
            await self._auth.sign_in(email, password)
        except FleetAuthenticationError as exc:
            return LoginResult(success=False, error=exc.user_message)
        except FleetDeskError:
            _logger.warning("Login failed", exc_info=True)
            return LoginResult(success=False, error="An error occurred during login")
        return LoginResult(success=True)

    async def logout(self) -> None:
        await self._auth.sign_out()
        self._admin = None

    def close(self) -> None:
        self._remove_listener()

    def _on_session_change(self, session: Session | None) -> None:
        self._admin = session.to_admin() if session is not None else None
