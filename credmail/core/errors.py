from typing import Optional


class DeliveryError(Exception):
    """Base class for credential delivery failures."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationError(DeliveryError):
    """Settings or the template for the requested kind are missing. Aborts the whole batch."""


class RecipientError(DeliveryError):
    """Recipient has no email address or no credential value."""


class RenderError(DeliveryError):
    """Subject or body rendered empty."""


class DispatchError(DeliveryError):
    """A channel failed to deliver one message."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AuthError(DispatchError):
    """Token request failed or the mail API rejected the token (401)."""


class PermissionDeniedError(DispatchError):
    """Mail API returned 403 for the sender mailbox."""


class RequestError(DispatchError):
    """Mail API rejected the request (400 or other non-success status)."""


class TransportError(DispatchError):
    """Network failure talking to the token endpoint or mail API."""


class DraftOpenError(DispatchError):
    """The OS refused to open a mail draft."""
