"""Outbound email through the EmailJS REST API."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from fleetdesk._transport import Transport
from fleetdesk.config import FleetDeskConfig
from fleetdesk.exceptions import FleetDeskError, FleetTransportError, NotificationError

_logger = logging.getLogger(__name__)


class MailClient:
    """Send templated mail.

    Credentials default to the configured ``mail_*`` values; every call may
    override them.
    """

    def __init__(self, transport: Transport, config: FleetDeskConfig) -> None:
        self._transport = transport
        self._config = config

    async def send(
        self,
        service_id: str | None,
        template_id: str | None,
        params: Mapping[str, Any],
        public_key: str | None = None,
    ) -> None:
        """Send one message rendered from *template_id* with *params*.

        ``None`` for any credential falls back to the configured value.

        Raises
        ------
        NotificationError
            Missing credentials or the mail service rejected the request.
        """
        service = service_id or self._config.mail_service_id
        template = template_id or self._config.mail_template_id
        key = public_key or self._config.mail_public_key
        if not (service and template and key):
            raise NotificationError(
                "Mail service, template and public key must all be configured",
                user_message="Email is not configured for this dashboard.",
            )

        body = {
            "service_id": service,
            "template_id": template,
            "user_id": key,
            "template_params": dict(params),
        }
        try:
            await self._transport.request(
                "POST",
                self._config.mail_endpoint,
                json_body=body,
                headers={"origin": self._config.base_url},
                supabase_auth=False,
            )
        except FleetTransportError as exc:
            raise NotificationError(f"Mail send via {self._config.mail_endpoint} failed: {exc}") from exc
        except FleetDeskError as exc:
            raise NotificationError(f"Mail send failed: {exc}") from exc
        _logger.debug("Mail sent template=%s to=%s", template, params.get("to_email") or params.get("email"))
