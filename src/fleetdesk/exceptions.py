"""Custom exception hierarchy for fleetdesk.

Every exception carries a short ``user_message`` that is safe to show to
dashboard staff.  The exception text itself holds the diagnostic detail and
is meant for logs.
"""

from __future__ import annotations


class FleetDeskError(Exception):
    """Base exception for all fleetdesk errors."""

    user_message: str = "Something went wrong. Please try again."

    def __init__(self, message: str = "", *, user_message: str | None = None) -> None:
        if user_message is not None:
            self.user_message = user_message
        super().__init__(message or self.user_message)


class FleetConfigError(FleetDeskError):
    """Invalid or missing configuration."""

    user_message = "The dashboard is not configured correctly."


class FleetTransportError(FleetDeskError):
    """HTTP-level failure (network, non-2xx, invalid JSON)."""

    user_message = "Could not reach the server. Please check your connection."

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
        code: str = "",
        detail: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        self.code = code
        self.detail = detail
        super().__init__(message)


class FleetAuthenticationError(FleetDeskError):
    """Sign-in rejected or no usable session."""

    user_message = "Invalid email or password."


class FleetSessionExpiredError(FleetAuthenticationError):
    """Session expired and could not be refreshed.

    Raised when the stored access token is past its expiry and the refresh
    token is missing or rejected.  Callers should send the admin back to
    the sign-in form.
    """

    user_message = "Your session has expired. Please sign in again."


class FleetValidationError(FleetDeskError):
    """A required field is missing or invalid.

    Raised before any remote call is made.
    """

    user_message = "Please fill in all required fields."

    def __init__(self, message: str, *, field: str = "", user_message: str | None = None) -> None:
        self.field = field
        super().__init__(message, user_message=user_message)


class RemoteReadError(FleetDeskError):
    """Listing or fetching a collection failed."""

    user_message = "Could not load data. Please try again."

    def __init__(self, message: str, *, collection: str = "") -> None:
        self.collection = collection
        super().__init__(message)


class RemoteWriteError(FleetDeskError):
    """Insert, update or delete was rejected by the remote store."""

    user_message = "Could not save your changes. Please try again."

    def __init__(
        self,
        message: str,
        *,
        collection: str = "",
        operation: str = "",
        user_message: str | None = None,
    ) -> None:
        self.collection = collection
        self.operation = operation
        super().__init__(message, user_message=user_message)


class UploadError(FleetDeskError):
    """Object storage put, list or remove failed."""

    user_message = "Could not upload the image. Please try another one."

    def __init__(self, message: str, *, path: str = "", user_message: str | None = None) -> None:
        self.path = path
        super().__init__(message, user_message=user_message)


class NotificationError(FleetDeskError):
    """Outbound mail could not be sent.

    ``persisted`` is ``True`` when the reply had already been written to
    the inquiry before delivery failed.  That write is not rolled back.
    """

    user_message = "The reply was saved but the email could not be sent."

    def __init__(self, message: str, *, persisted: bool = False, user_message: str | None = None) -> None:
        self.persisted = persisted
        super().__init__(message, user_message=user_message)


class StreamError(FleetDeskError):
    """Realtime connection or channel join failed."""

    user_message = "Live updates are unavailable. Refresh to see the latest data."
