"""Session state returned by the auth provider."""

from __future__ import annotations

import time
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from fleetdesk.models.admin import Admin

#: Seconds before the real expiry at which a session is treated as expired,
#: so a request started just before expiry still carries a valid token.
EXPIRY_MARGIN_SECONDS: float = 60.0


class AuthUser(BaseModel):
    """Subset of the auth provider's user object used by the dashboard."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    email: str = ""
    user_metadata: dict[str, Any] = Field(default_factory=dict)


class Session(BaseModel):
    """Authenticated session.

    Parameters
    ----------
    access_token : str
        Bearer token sent with every data request.
    refresh_token : str
        Token exchanged for a new session when the access token expires.
    expires_at : float
        Epoch seconds after which the access token is no longer valid.
    user : AuthUser
        The signed-in user.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        str_strip_whitespace=True,
    )

    access_token: str
    refresh_token: str = ""
    token_type: str = "bearer"
    expires_at: float = 0.0
    user: AuthUser

    @classmethod
    def from_token_response(cls, body: dict[str, Any]) -> Session:
        """Build a session from a ``/token`` response body."""
        data = dict(body)
        if not data.get("expires_at"):
            expires_in = float(data.get("expires_in") or 3600)
            data["expires_at"] = time.time() + expires_in
        return cls.model_validate(data)

    @property
    def is_expired(self) -> bool:
        """Whether the access token is at (or within the margin of) expiry."""
        if self.expires_at <= 0:
            return False
        return time.time() >= self.expires_at - EXPIRY_MARGIN_SECONDS

    def to_admin(self) -> Admin:
        full_name = self.user.user_metadata.get("full_name") or "Admin"
        return Admin(id=self.user.id, email=self.user.email, full_name=str(full_name))
