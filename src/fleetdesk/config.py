"""Client configuration for fleetdesk."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from fleetdesk._constants import EMAILJS_SEND_URL
from fleetdesk.exceptions import FleetConfigError


def _env_float(value: str | None, default: float) -> float:
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise FleetConfigError(f"expected a number, got {value!r}") from exc


@dataclasses.dataclass(frozen=True)
class FleetDeskConfig:
    """Client configuration.

    Parameters
    ----------
    supabase_url : str
        Project URL, e.g. ``https://abcd.supabase.co``.
    anon_key : str
        Public (anon) API key sent as ``apikey`` on every request.
    schema : str
        Database schema holding the tables.
    trucks_table : str
        Table name for the truck inventory.
    inquiries_table : str
        Table name for customer inquiries.
    image_bucket : str
        Storage bucket holding truck images.
    request_timeout : float
        Total timeout in seconds for a single HTTP request.
    realtime_heartbeat_interval : float
        Seconds between Phoenix heartbeats on the realtime socket.
    realtime_join_timeout : float
        Seconds to wait for a channel join reply.
    mail_service_id : str
        EmailJS service id.
    mail_template_id : str
        EmailJS template id used for inquiry replies.
    mail_public_key : str
        EmailJS public key.
    mail_endpoint : str
        EmailJS REST send endpoint.
    mail_from : str
        Sender address passed to the reply template.
    """

    supabase_url: str
    anon_key: str
    schema: str = "public"
    trucks_table: str = "trucks"
    inquiries_table: str = "inquiries"
    image_bucket: str = "truckimages"
    request_timeout: float = 30.0
    realtime_heartbeat_interval: float = 25.0
    realtime_join_timeout: float = 10.0
    mail_service_id: str = ""
    mail_template_id: str = ""
    mail_public_key: str = ""
    mail_endpoint: str = EMAILJS_SEND_URL
    mail_from: str = ""

    @property
    def base_url(self) -> str:
        return self.supabase_url.rstrip("/")

    @property
    def rest_url(self) -> str:
        return f"{self.base_url}/rest/v1"

    @property
    def auth_url(self) -> str:
        return f"{self.base_url}/auth/v1"

    @property
    def storage_url(self) -> str:
        return f"{self.base_url}/storage/v1"

    @property
    def realtime_url(self) -> str:
        """Websocket endpoint for the realtime service."""
        base = self.base_url
        if base.startswith("https://"):
            base = "wss://" + base[len("https://") :]
        elif base.startswith("http://"):
            base = "ws://" + base[len("http://") :]
        return f"{base}/realtime/v1/websocket"

    def validate(self) -> None:
        """Raise :class:`FleetConfigError` when required values are missing."""
        if not self.supabase_url.strip():
            raise FleetConfigError("supabase_url is required (set SUPABASE_URL)")
        if not self.supabase_url.startswith(("http://", "https://")):
            raise FleetConfigError(f"supabase_url must be an http(s) URL, got {self.supabase_url!r}")
        if not self.anon_key.strip():
            raise FleetConfigError("anon_key is required (set SUPABASE_ANON_KEY)")

    @classmethod
    def from_env(cls, **overrides: Any) -> FleetDeskConfig:
        """Create configuration from environment variables.

        Reads ``SUPABASE_URL``, ``SUPABASE_ANON_KEY`` and optional
        ``FLEETDESK_*`` variables. Explicit keyword arguments override
        environment values.
        """
        env = os.environ

        _ENV_CONFIG_MAP = {
            "SUPABASE_URL": "supabase_url",
            "SUPABASE_ANON_KEY": "anon_key",
            "FLEETDESK_SCHEMA": "schema",
            "FLEETDESK_TRUCKS_TABLE": "trucks_table",
            "FLEETDESK_INQUIRIES_TABLE": "inquiries_table",
            "FLEETDESK_IMAGE_BUCKET": "image_bucket",
            "FLEETDESK_MAIL_SERVICE_ID": "mail_service_id",
            "FLEETDESK_MAIL_TEMPLATE_ID": "mail_template_id",
            "FLEETDESK_MAIL_PUBLIC_KEY": "mail_public_key",
            "FLEETDESK_MAIL_ENDPOINT": "mail_endpoint",
            "FLEETDESK_MAIL_FROM": "mail_from",
        }
        config_kwargs: dict[str, Any] = {"supabase_url": "", "anon_key": ""}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        # numeric settings, handled separately
        _ENV_FLOAT_MAP = {
            "FLEETDESK_REQUEST_TIMEOUT": "request_timeout",
            "FLEETDESK_REALTIME_HEARTBEAT": "realtime_heartbeat_interval",
            "FLEETDESK_REALTIME_JOIN_TIMEOUT": "realtime_join_timeout",
        }
        for env_key, field_name in _ENV_FLOAT_MAP.items():
            if field_name in overrides:
                continue
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = _env_float(val, getattr(cls, field_name))

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
