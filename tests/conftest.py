import io

import pytest
from PIL import Image

from src.shared.contact.config import ContactSettings
from src.shared.contact.errors import MailDeliveryError
from src.shared.contact.pipeline import SubmissionPipeline
from src.shared.contact.rate_limiting import InMemoryRateLimitStore, RateLimiter
from src.shared.contact.schemas import SubmissionRequest

CSRF_TOKEN = "ab" * 32

SVG_LOGO = (
    b'<?xml version="1.0" encoding="UTF-8"?>\n'
    b'<svg xmlns="http://www.w3.org/2000/svg" width="10" height="10">'
    b'<rect width="10" height="10" fill="#0a0"/></svg>\n'
)


class FakeMailer:
    def __init__(self):
        self.sent = []

    def send(self, to, subject, body, reply_to, attachment=None):
        self.sent.append({
            "to": to,
            "subject": subject,
            "body": body,
            "reply_to": reply_to,
            "attachment": attachment,
            "attachment_bytes": attachment.read_bytes() if attachment else None,
        })


class FailingMailer:
    def __init__(self):
        self.calls = 0

    def send(self, to, subject, body, reply_to, attachment=None):
        self.calls += 1
        raise MailDeliveryError("535 5.7.8 authentication failed on smtp.internal:587")


def image_bytes(fmt: str) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (8, 8), (200, 30, 30)).save(buffer, fmt)
    return buffer.getvalue()


@pytest.fixture
def png_bytes():
    return image_bytes("PNG")


@pytest.fixture
def jpeg_bytes():
    return image_bytes("JPEG")


@pytest.fixture
def settings(tmp_path):
    return ContactSettings(
        recipient_email="team@example.com",
        site_name="Acme",
        max_attempts=5,
        rate_limit_period=3600,
        upload_dir=tmp_path / "uploads",
        audit_log_path=tmp_path / "contact_submissions.log",
        failure_log_path=tmp_path / "contact_failed_submissions.log",
        database_url=f"sqlite:///{tmp_path / 'rate_limit.db'}",
        session_secret_key="test-secret",
        allowed_origins=["http://localhost:3000"],
    )


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def rate_store():
    return InMemoryRateLimitStore()


@pytest.fixture
def make_pipeline(settings, rate_store):
    def _make(mailer, **overrides):
        active = settings.model_copy(update=overrides)
        limiter = RateLimiter(rate_store, active.max_attempts, active.rate_limit_period)
        return SubmissionPipeline.build(active, limiter, mailer)
    return _make


@pytest.fixture
def pipeline(make_pipeline, mailer):
    return make_pipeline(mailer)


def make_request(**overrides) -> SubmissionRequest:
    values = {
        "method": "POST",
        "client_identifier": "203.0.113.7",
        "name": "Jane Doe",
        "email": "jane@example.com",
        "subject": "Pricing question",
        "message": "I would like to know more about your plans.",
        "csrf_token": CSRF_TOKEN,
        "session_csrf_token": CSRF_TOKEN,
        "honeypot": "",
    }
    values.update(overrides)
    return SubmissionRequest(**values)
