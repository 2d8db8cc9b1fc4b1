"""Pydantic schemas for the contact API and the submission pipeline."""

from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class RawFile(BaseModel):
    """An uploaded file as received from the transport, before any checks."""
    filename: str = ""
    content_type: Optional[str] = None  # as declared by the client
    data: bytes = b""
    error: Optional[str] = None  # set when the upload itself failed

    @property
    def size(self) -> int:
        return len(self.data)


class AttachmentRecord(BaseModel):
    """Metadata of an inspected (and possibly stored) attachment."""
    original_name: str
    declared_mime_type: Optional[str] = None
    sniffed_mime_type: str
    size_bytes: int
    extension: str
    stored_path: Optional[Path] = None


class SubmissionRequest(BaseModel):
    """One inbound contact form request."""
    method: str
    client_identifier: str = "unknown"
    name: Optional[str] = None
    email: Optional[str] = None
    subject: Optional[str] = None
    message: Optional[str] = None
    csrf_token: Optional[str] = None
    session_csrf_token: Optional[str] = None  # token stored in the caller's session
    honeypot: Optional[str] = None  # "website" field
    attachment: Optional[RawFile] = None


class ValidatedMessage(BaseModel):
    """A message that passed every check; handed to the mailer once."""
    model_config = ConfigDict(frozen=True)

    name: str
    email: str
    subject: str
    body: str
    client_identifier: str
    submitted_at: datetime
    attachment: Optional[AttachmentRecord] = None


class SubmissionState(str, Enum):
    RECEIVED = "received"
    METHOD_CHECKED = "method_checked"
    RATE_CHECKED = "rate_checked"
    HONEYPOT_CHECKED = "honeypot_checked"
    CSRF_CHECKED = "csrf_checked"
    FIELDS_VALIDATED = "fields_validated"
    ATTACHMENT_CHECKED = "attachment_checked"
    DELIVERED = "delivered"
    REJECTED = "rejected"
    DELIVERY_FAILED = "delivery_failed"


class ContactResponse(BaseModel):
    """Schema for contact form response."""
    success: bool
    message: str


class SubmissionResult(ContactResponse):
    """Terminal outcome of a pipeline run. Only success/message are sent to the caller."""
    state: SubmissionState = Field(exclude=True)
    status_code: int = Field(default=200, exclude=True)

    def to_response(self) -> ContactResponse:
        return ContactResponse(success=self.success, message=self.message)


class CsrfTokenResponse(BaseModel):
    csrf_token: str
