import re

import pytest
from fastapi.testclient import TestClient

from conftest import FailingMailer
from src.app import create_app
from src.shared.contact.rate_limiting import InMemoryRateLimitStore

FORM = {
    "name": "Jane Doe",
    "email": "jane@example.com",
    "subject": "Pricing question",
    "message": "I would like to know more about your plans.",
    "website": "",
}


@pytest.fixture
def make_client(settings):
    def _make(mailer, **overrides):
        app = create_app(
            settings=settings.model_copy(update=overrides),
            mailer=mailer,
            rate_limit_store=InMemoryRateLimitStore(),
        )
        return TestClient(app)
    return _make


@pytest.fixture
def client(make_client, mailer):
    return make_client(mailer)


def fetch_token(client):
    response = client.get("/api/contact/csrf-token")
    assert response.status_code == 200
    return response.json()["csrf_token"]


def test_csrf_token_is_256_bit_and_stable_per_session(client):
    first = fetch_token(client)
    second = fetch_token(client)

    assert re.fullmatch(r"[0-9a-f]{64}", first)
    assert first == second


def test_csrf_token_differs_between_sessions(make_client, mailer):
    assert fetch_token(make_client(mailer)) != fetch_token(make_client(mailer))


def test_submit_delivers_message(client, mailer):
    token = fetch_token(client)
    response = client.post("/api/contact/submit", data={**FORM, "csrf_token": token})

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "message": "Thank you for your message! We will get back to you soon.",
    }
    assert len(mailer.sent) == 1
    assert mailer.sent[0]["reply_to"] == "jane@example.com"


def test_submit_without_session_token_is_rejected(client, mailer):
    response = client.post("/api/contact/submit", data={**FORM, "csrf_token": "ab" * 32})

    assert response.status_code == 400
    assert response.json()["success"] is False
    assert response.json()["message"].startswith("Security validation failed")
    assert mailer.sent == []


def test_wrong_method_returns_405_payload(client):
    response = client.get("/api/contact/submit")

    assert response.status_code == 405
    assert response.json() == {"success": False, "message": "Invalid request method."}


def test_validation_errors_are_returned_verbatim(client):
    token = fetch_token(client)
    response = client.post(
        "/api/contact/submit",
        data={**FORM, "name": "J", "message": "too short", "csrf_token": token},
    )

    assert response.status_code == 400
    assert response.json()["message"] == (
        "Name must be between 2 and 100 characters. Message must be at least 10 characters."
    )


def test_honeypot_gets_generic_rejection(client, mailer):
    token = fetch_token(client)
    response = client.post(
        "/api/contact/submit",
        data={**FORM, "website": "http://spam.example", "csrf_token": token},
    )

    assert response.status_code == 400
    assert response.json() == {"success": False, "message": "Invalid submission."}
    assert mailer.sent == []


def test_rate_limit_returns_429(make_client, mailer):
    client = make_client(mailer, max_attempts=2)
    token = fetch_token(client)
    for _ in range(2):
        assert client.post("/api/contact/submit", data={**FORM, "csrf_token": token}).status_code == 200

    response = client.post("/api/contact/submit", data={**FORM, "csrf_token": token})
    assert response.status_code == 429
    assert response.json()["message"] == "Too many attempts. Please try again later."


def test_delivery_failure_returns_500_and_persists(make_client, settings):
    client = make_client(FailingMailer())
    token = fetch_token(client)
    response = client.post("/api/contact/submit", data={**FORM, "csrf_token": token})

    assert response.status_code == 500
    assert "535" not in response.text
    assert "Pricing question" in settings.failure_log_path.read_text()


def test_logo_upload_is_attached(client, mailer, png_bytes):
    token = fetch_token(client)
    response = client.post(
        "/api/contact/submit",
        data={**FORM, "csrf_token": token},
        files={"logo": ("logo.png", png_bytes, "image/png")},
    )

    assert response.status_code == 200
    assert mailer.sent[0]["attachment_bytes"] == png_bytes
    assert mailer.sent[0]["attachment"].suffix == ".png"


def test_logo_with_mismatched_content_is_rejected(client, mailer, png_bytes):
    token = fetch_token(client)
    response = client.post(
        "/api/contact/submit",
        data={**FORM, "csrf_token": token},
        files={"logo": ("logo.svg", png_bytes, "image/svg+xml")},
    )

    assert response.status_code == 400
    assert response.json()["message"] == "Logo file type does not match its extension."
    assert mailer.sent == []


def test_forwarded_for_is_used_as_client_identifier(client, settings):
    token = fetch_token(client)
    client.post(
        "/api/contact/submit",
        data={**FORM, "csrf_token": token},
        headers={"X-Forwarded-For": "198.51.100.23, 10.0.0.1"},
    )

    assert "IP: 198.51.100.23" in settings.audit_log_path.read_text()


def test_security_headers_are_set(client):
    response = client.get("/")

    assert response.status_code == 200
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "DENY"
    assert response.headers["X-XSS-Protection"] == "1; mode=block"


def test_unknown_route_uses_json_payload(client):
    response = client.get("/api/contact/nope")

    assert response.status_code == 404
    assert response.json()["success"] is False


@pytest.mark.parametrize("method", ["PUT", "DELETE", "OPTIONS"])
def test_other_methods_get_pipeline_405_payload(client, method):
    response = client.request(method, "/api/contact/submit")

    assert response.status_code == 405
    assert response.json() == {"success": False, "message": "Invalid request method."}


def test_head_is_rejected_with_405(client):
    assert client.head("/api/contact/submit").status_code == 405


class ExplodingStore(InMemoryRateLimitStore):
    def entries(self):
        raise RuntimeError("unexpected store state")


def test_unhandled_error_keeps_cors_and_security_headers(settings, mailer):
    app = create_app(settings=settings, mailer=mailer, rate_limit_store=ExplodingStore())
    client = TestClient(app, raise_server_exceptions=False)
    token = fetch_token(client)

    response = client.post(
        "/api/contact/submit",
        data={**FORM, "csrf_token": token},
        headers={"Origin": "http://localhost:3000"},
    )

    assert response.status_code == 500
    assert response.json() == {"success": False, "message": "Internal server error"}
    assert response.headers["Access-Control-Allow-Origin"] == "http://localhost:3000"
    assert response.headers["Access-Control-Allow-Credentials"] == "true"
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "DENY"
    assert mailer.sent == []


def test_unhandled_error_omits_cors_for_unknown_origin(settings, mailer):
    app = create_app(settings=settings, mailer=mailer, rate_limit_store=ExplodingStore())
    client = TestClient(app, raise_server_exceptions=False)
    token = fetch_token(client)

    response = client.post(
        "/api/contact/submit",
        data={**FORM, "csrf_token": token},
        headers={"Origin": "https://evil.example"},
    )

    assert response.status_code == 500
    assert "Access-Control-Allow-Origin" not in response.headers
