"""Error taxonomy for contact form submissions.

Each rejection carries the HTTP status and the operator-safe message that is
returned to the caller. Internal detail (mail server errors, file system
errors) is logged, never put into ``public_message``.
"""

from typing import List, Optional
from fastapi import status


class ContactError(Exception):
    """Base class for every terminal non-success outcome."""

    status_code = status.HTTP_400_BAD_REQUEST
    public_message = "Invalid submission."

    def __init__(self, public_message: Optional[str] = None, status_code: Optional[int] = None):
        if public_message is not None:
            self.public_message = public_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.public_message)


class TransportError(ContactError):
    """Request arrived with the wrong HTTP method."""

    status_code = status.HTTP_405_METHOD_NOT_ALLOWED
    public_message = "Invalid request method."


class AbuseRejected(ContactError):
    """Rate limit exceeded or honeypot filled in."""


class SecurityRejected(ContactError):
    """CSRF token missing or mismatched."""

    public_message = "Security validation failed. Please refresh the page and try again."


class ValidationFailed(ContactError):
    """One or more field or attachment rules were violated."""

    def __init__(self, reasons: List[str]):
        self.reasons = list(reasons)
        super().__init__(" ".join(self.reasons))


class DeliveryFailed(ContactError):
    """The mailer could not hand the message over."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    public_message = (
        "Failed to send message. Please try again later or contact us directly via email."
    )


class MailDeliveryError(Exception):
    """Raised by a mailer when the message could not be sent."""


class AttachmentRejected(Exception):
    """Raised by the attachment guard; the message is safe to show to the user."""
