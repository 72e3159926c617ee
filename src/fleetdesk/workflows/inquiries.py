"""Inquiry actions: two-phase reply, resolve and delete."""

from __future__ import annotations

import logging
from typing import Any

from fleetdesk.collection import RemoteCollectionClient
from fleetdesk.config import FleetDeskConfig
from fleetdesk.exceptions import FleetDeskError, FleetValidationError, NotificationError, RemoteWriteError
from fleetdesk.mail import MailClient
from fleetdesk.models._base import isoformat, utcnow
from fleetdesk.models.inquiry import Inquiry, InquiryStatus
from fleetdesk.models.requests import InquiryReplyWrite, validated
from fleetdesk.state.store import SyncedCollectionStore

_logger = logging.getLogger(__name__)

REPLY_SAVE_FAILED_MESSAGE = "Could not save your reply. Please try again."
NO_EMAIL_MESSAGE = "This customer does not have an email address."
REPLY_DELIVERY_FAILED_MESSAGE = "The reply was saved but the email could not be sent."
RESOLVE_FAILED_MESSAGE = "Could not update the inquiry status. Please try again."


def reply_template_params(inquiry: Inquiry, reply: str, *, from_email: str = "") -> dict[str, Any]:
    """Template variables for the reply email."""
    return {
        "name": inquiry.customer_name,
        "response": reply,
        "email": inquiry.customer_email,
        "to_email": inquiry.customer_email,
        "to_name": inquiry.customer_name,
        "reply_message": reply,
        "subject": inquiry.subject,
        "from_email": from_email,
    }


class InquiryReplyWorkflow:
    """Reply to one inquiry at a time.

    Phase one persists the reply on the inquiry.  Phase two, only after
    phase one succeeded, emails the customer.  A delivery failure does not
    undo phase one: the inquiry stays ``replied``.
    """

    def __init__(
        self,
        inquiries: RemoteCollectionClient[Inquiry],
        mail: MailClient,
        config: FleetDeskConfig,
        *,
        store: SyncedCollectionStore[Inquiry] | None = None,
    ) -> None:
        self._inquiries = inquiries
        self._mail = mail
        self._config = config
        self._store = store
        self._target: Inquiry | None = None
        self._reply_text = ""
        self._sending = False

    @property
    def target(self) -> Inquiry | None:
        return self._target

    @property
    def reply_text(self) -> str:
        return self._reply_text

    @reply_text.setter
    def reply_text(self, value: str) -> None:
        self._reply_text = value

    @property
    def is_sending(self) -> bool:
        return self._sending

    def open(self, inquiry: Inquiry) -> None:
        """Target *inquiry*; an earlier reply is pre-filled for editing."""
        self._target = inquiry
        self._reply_text = inquiry.admin_reply or ""

    def close(self) -> None:
        self._target = None
        self._reply_text = ""

    async def send(self, reply: str | None = None) -> Inquiry:
        """Persist the reply, then email it.

        Raises
        ------
        FleetValidationError
            No inquiry is open or the reply is blank.  Nothing is written.
        RemoteWriteError
            Phase one failed; mail was not attempted.
        NotificationError
            Phase one succeeded but the customer has no email address or
            delivery failed (``persisted`` is ``True``).
        """
        inquiry = self._target
        text = self._reply_text if reply is None else reply
        if inquiry is None:
            raise FleetValidationError("No inquiry selected", user_message="Please choose an inquiry to reply to.")
        if self._sending:
            raise FleetValidationError(
                f"A reply for inquiry id={inquiry.id} is already being sent",
                user_message="The reply is still being sent.",
            )
        write = validated(InquiryReplyWrite, admin_reply=text, replied_at=isoformat(utcnow()))

        self._sending = True
        try:
            try:
                updated = await self._inquiries.update_by_id(inquiry.id, write.to_payload())
            except RemoteWriteError as exc:
                _logger.warning("Persisting reply for inquiry id=%s failed", inquiry.id, exc_info=True)
                raise RemoteWriteError(
                    str(exc),
                    collection=exc.collection,
                    operation="update",
                    user_message=REPLY_SAVE_FAILED_MESSAGE,
                ) from exc
            if updated is None:
                raise RemoteWriteError(
                    f"Reply update for inquiry id={inquiry.id} matched no row",
                    collection=self._inquiries.collection,
                    operation="update",
                    user_message=REPLY_SAVE_FAILED_MESSAGE,
                )
            if self._store is not None:
                self._store.upsert_local(updated)

            if not inquiry.has_email:
                raise NotificationError(
                    f"Inquiry id={inquiry.id} has no customer email",
                    persisted=True,
                    user_message=NO_EMAIL_MESSAGE,
                )
            params = reply_template_params(inquiry, text, from_email=self._config.mail_from)
            try:
                await self._mail.send(
                    self._config.mail_service_id,
                    self._config.mail_template_id,
                    params,
                    self._config.mail_public_key,
                )
            except NotificationError as exc:
                _logger.warning("Reply for inquiry id=%s saved but not delivered", inquiry.id, exc_info=True)
                raise NotificationError(
                    str(exc),
                    persisted=True,
                    user_message=REPLY_DELIVERY_FAILED_MESSAGE,
                ) from exc
        finally:
            self._sending = False

        await _refresh(self._store)
        if self._target is not None and self._target.id == inquiry.id:
            self.close()
        _logger.debug("Reply for inquiry id=%s saved and delivered", inquiry.id)
        return updated


async def _refresh(store: SyncedCollectionStore[Inquiry] | None) -> None:
    if store is None:
        return
    try:
        await store.initialize()
    except FleetDeskError:
        # Kept list stays visible; the store records the error.
        _logger.debug("Inquiry refresh failed", exc_info=True)


async def mark_resolved(
    inquiries: RemoteCollectionClient[Inquiry],
    inquiry: Inquiry,
    *,
    store: SyncedCollectionStore[Inquiry] | None = None,
) -> Inquiry:
    """Set ``status = resolved`` and refresh the list.

    Raises :class:`RemoteWriteError` when the update fails or matches no row.
    """
    try:
        updated = await inquiries.update_by_id(inquiry.id, {"status": InquiryStatus.RESOLVED.value})
    except RemoteWriteError as exc:
        _logger.warning("Resolving inquiry id=%s failed", inquiry.id, exc_info=True)
        raise RemoteWriteError(
            str(exc),
            collection=exc.collection,
            operation="update",
            user_message=RESOLVE_FAILED_MESSAGE,
        ) from exc
    if updated is None:
        raise RemoteWriteError(
            f"Resolve for inquiry id={inquiry.id} matched no row",
            collection=inquiries.collection,
            operation="update",
            user_message=RESOLVE_FAILED_MESSAGE,
        )
    if store is not None:
        store.upsert_local(updated)
    await _refresh(store)
    return updated


async def delete_inquiry(
    inquiries: RemoteCollectionClient[Inquiry],
    inquiry: Inquiry,
    *,
    store: SyncedCollectionStore[Inquiry] | None = None,
) -> None:
    """Delete by id and splice it out of the local list."""
    try:
        await inquiries.delete_by_id(inquiry.id)
    except RemoteWriteError as exc:
        raise RemoteWriteError(
            str(exc),
            collection=exc.collection,
            operation="delete",
            user_message="Could not delete the inquiry. Please try again.",
        ) from exc
    if store is not None:
        store.remove_local(inquiry.id)
