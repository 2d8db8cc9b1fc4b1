"""
Contact form submission pipeline.

A request passes through an explicit, ordered list of admission checks
(method, rate limit, honeypot, CSRF). The first failing check rejects the
request. Admitted requests are sanitized and validated, the optional logo is
checked, and the message is handed to the mailer. A delivery failure is
recorded in full in the failure store so the message is not lost.
An unavailable rate-limit store admits the request rather than failing it.
"""

import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from fastapi import status
from sqlalchemy.exc import SQLAlchemyError

from src.shared.contact.attachments import AttachmentGuard
from src.shared.contact.audit import AuditLog, AuditStatus, FailureStore
from src.shared.contact.config import ContactSettings
from src.shared.contact.csrf import tokens_match
from src.shared.contact.email_utils import Mailer, compose_body, compose_subject
from src.shared.contact.errors import (
    AbuseRejected,
    AttachmentRejected,
    ContactError,
    DeliveryFailed,
    SecurityRejected,
    TransportError,
    ValidationFailed,
)
from src.shared.contact.input_validation import sanitize_input, sanitize_log_text, validate_form_data
from src.shared.contact.rate_limiting import RateLimiter
from src.shared.contact.schemas import (
    AttachmentRecord,
    SubmissionRequest,
    SubmissionResult,
    SubmissionState,
    ValidatedMessage,
)

SUCCESS_MESSAGE = "Thank you for your message! We will get back to you soon."


class AdmissionCheck:
    """One step of the admission sequence. ``check`` raises a ContactError to reject."""

    passed_state: SubmissionState

    def check(self, request: SubmissionRequest) -> None:
        raise NotImplementedError


class MethodCheck(AdmissionCheck):
    passed_state = SubmissionState.METHOD_CHECKED

    def check(self, request: SubmissionRequest) -> None:
        # Only accept POST requests
        if (request.method or "").upper() != "POST":
            raise TransportError()


class RateLimitCheck(AdmissionCheck):
    passed_state = SubmissionState.RATE_CHECKED

    def __init__(self, limiter: RateLimiter):
        self.limiter = limiter

    def check(self, request: SubmissionRequest) -> None:
        try:
            admitted = self.limiter.admit(request.client_identifier)
        except (SQLAlchemyError, OSError) as e:
            # Don't fail the request if the attempt store is unavailable
            logging.error(f"Rate limit check failed, admitting request: {str(e)}", exc_info=True)
            return
        if not admitted:
            raise AbuseRejected(
                "Too many attempts. Please try again later.",
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            )


class HoneypotCheck(AdmissionCheck):
    passed_state = SubmissionState.HONEYPOT_CHECKED

    def check(self, request: SubmissionRequest) -> None:
        # This field is hidden from humans and must stay empty
        if request.honeypot:
            logging.info(
                f"Honeypot triggered for {sanitize_log_text(request.client_identifier, 64)}"
            )
            raise AbuseRejected("Invalid submission.")


class CsrfCheck(AdmissionCheck):
    passed_state = SubmissionState.CSRF_CHECKED

    def __init__(self, require_session: bool = True):
        self.require_session = require_session

    def check(self, request: SubmissionRequest) -> None:
        if not request.csrf_token:
            raise SecurityRejected()
        if self.require_session or request.session_csrf_token:
            if not tokens_match(request.csrf_token, request.session_csrf_token):
                raise SecurityRejected()


class SubmissionPipeline:
    """Runs one contact form request to exactly one terminal outcome."""

    def __init__(
        self,
        settings: ContactSettings,
        checks: Sequence[AdmissionCheck],
        attachment_guard: AttachmentGuard,
        mailer: Mailer,
        audit_log: AuditLog,
        failure_store: FailureStore,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.settings = settings
        self.checks = list(checks)
        self.attachment_guard = attachment_guard
        self.mailer = mailer
        self.audit_log = audit_log
        self.failure_store = failure_store
        self.clock = clock

    @classmethod
    def build(
        cls,
        settings: ContactSettings,
        rate_limiter: RateLimiter,
        mailer: Mailer,
        clock: Callable[[], datetime] = datetime.now,
    ) -> "SubmissionPipeline":
        """Wire the standard check order and file-backed logs from settings."""
        checks = [
            MethodCheck(),
            RateLimitCheck(rate_limiter),
            HoneypotCheck(),
            CsrfCheck(require_session=settings.require_session_csrf),
        ]
        return cls(
            settings=settings,
            checks=checks,
            attachment_guard=AttachmentGuard(settings.upload_dir, settings.max_attachment_bytes),
            mailer=mailer,
            audit_log=AuditLog(settings.audit_log_path),
            failure_store=FailureStore(settings.failure_log_path),
            clock=clock,
        )

    def run(self, request: SubmissionRequest) -> SubmissionResult:
        state = SubmissionState.RECEIVED
        try:
            for admission_check in self.checks:
                admission_check.check(request)
                state = admission_check.passed_state

            fields, errors = self._validate_fields(request)
            if not errors:
                state = SubmissionState.FIELDS_VALIDATED

            message = self._check_attachment(request, fields, errors)
            state = SubmissionState.ATTACHMENT_CHECKED

            self._deliver(message)
        except DeliveryFailed as e:
            return SubmissionResult(
                success=False,
                message=e.public_message,
                state=SubmissionState.DELIVERY_FAILED,
                status_code=e.status_code,
            )
        except ContactError as e:
            logging.info(
                f"Contact submission rejected after {state.value}: {type(e).__name__}"
            )
            return SubmissionResult(
                success=False,
                message=e.public_message,
                state=SubmissionState.REJECTED,
                status_code=e.status_code,
            )

        return SubmissionResult(
            success=True,
            message=SUCCESS_MESSAGE,
            state=SubmissionState.DELIVERED,
            status_code=status.HTTP_200_OK,
        )

    def _validate_fields(self, request: SubmissionRequest) -> Tuple[Dict[str, str], List[str]]:
        """Sanitize the text fields and collect their rule violations."""
        fields = {
            "name": sanitize_input(request.name),
            "email": sanitize_input(request.email),
            "subject": sanitize_input(request.subject),
            "body": sanitize_input(request.message),
        }
        errors = validate_form_data(fields["name"], fields["email"], fields["subject"], fields["body"])
        return fields, errors

    def _check_attachment(
        self,
        request: SubmissionRequest,
        fields: Dict[str, str],
        errors: List[str],
    ) -> ValidatedMessage:
        """Inspect the optional logo and store it once everything passed. Raises ValidationFailed."""
        errors = list(errors)
        record: Optional[AttachmentRecord] = None
        if request.attachment is not None:
            try:
                record = self.attachment_guard.inspect(request.attachment)
            except AttachmentRejected as e:
                errors.append(str(e))

        if errors:
            raise ValidationFailed(errors)

        if record is not None:
            try:
                record = self.attachment_guard.store(record, request.attachment)
            except AttachmentRejected as e:
                raise ValidationFailed([str(e)])

        return ValidatedMessage(
            **fields,
            client_identifier=request.client_identifier,
            submitted_at=self.clock(),
            attachment=record,
        )

    def _deliver(self, message: ValidatedMessage) -> None:
        attachment_path = message.attachment.stored_path if message.attachment else None
        client = sanitize_log_text(message.client_identifier, max_length=64)
        try:
            self.mailer.send(
                to=self.settings.recipient_email,
                subject=compose_subject(self.settings.site_name, message.subject),
                body=compose_body(self.settings.site_name, message),
                reply_to=message.email,
                attachment=attachment_path,
            )
        except Exception as e:
            logging.error(
                f"Failed to relay contact form message from {client}: {sanitize_log_text(str(e), 500)}",
                exc_info=True,
            )
            self.audit_log.record(AuditStatus.FAILED, message.client_identifier)
            if self.failure_store.record(message):
                logging.warning(f"Undelivered contact message saved to {self.failure_store.path}")
            # The stored logo stays on disk; the failure record points to it
            raise DeliveryFailed() from e

        logging.info(f"Contact form message from {client} delivered")
        self.audit_log.record(AuditStatus.SUCCESS, message.client_identifier)
        self.attachment_guard.discard(message.attachment)
