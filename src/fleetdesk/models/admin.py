"""Signed-in administrator model."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from fleetdesk.models._base import utcnow


class Admin(BaseModel):
    """The administrator behind the current session.

    Derived from the auth user; there is no separate admin table.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    full_name: str = "Admin"
    role: str = "Administrator"
    last_login: datetime | None = Field(default_factory=utcnow)
