"""Configuration for the contact form relay."""

import os
import secrets
import tempfile
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field

# Load environment variables from .env file (for local development)
try:
    from dotenv import load_dotenv
    load_dotenv()
except ImportError:
    pass  # python-dotenv not installed, skip (fine for production)


_TMP_DIR = Path(tempfile.gettempdir())


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class ContactSettings(BaseModel):
    """All tunables of the contact endpoint, passed into the pipeline at construction."""

    recipient_email: str = "team@example.com"
    site_name: str = "Website"
    max_attempts: int = Field(default=5, ge=1)
    rate_limit_period: int = Field(default=3600, ge=1)  # seconds
    max_attachment_bytes: int = 2 * 1024 * 1024
    require_session_csrf: bool = True

    upload_dir: Path = _TMP_DIR / "contact_uploads"
    audit_log_path: Path = _TMP_DIR / "contact_submissions.log"
    failure_log_path: Path = _TMP_DIR / "contact_failed_submissions.log"
    database_url: str = f"sqlite:///{_TMP_DIR / 'contact_rate_limit.db'}"

    smtp_host: str = "localhost"
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = Field(default=None, repr=False)
    smtp_timeout: float = 30.0
    mail_from: str = "noreply@example.com"

    session_secret_key: str = Field(default_factory=lambda: secrets.token_hex(32), repr=False)
    allowed_origins: List[str] = ["http://localhost:3000"]

    @classmethod
    def from_env(cls) -> "ContactSettings":
        """Build settings from environment variables, falling back to defaults."""
        values = {}

        string_vars = {
            "recipient_email": "CONTACT_RECIPIENT_EMAIL",
            "site_name": "CONTACT_SITE_NAME",
            "smtp_host": "SMTP_HOST",
            "smtp_user": "SMTP_USER",
            "smtp_password": "SMTP_PASSWORD",
            "mail_from": "CONTACT_MAIL_FROM",
            "session_secret_key": "SESSION_SECRET_KEY",
        }
        for field_name, env_name in string_vars.items():
            value = os.environ.get(env_name)
            if value:
                values[field_name] = value

        int_vars = {
            "max_attempts": "CONTACT_MAX_ATTEMPTS",
            "rate_limit_period": "CONTACT_RATE_LIMIT_PERIOD",
            "max_attachment_bytes": "CONTACT_MAX_ATTACHMENT_BYTES",
            "smtp_port": "SMTP_PORT",
        }
        for field_name, env_name in int_vars.items():
            value = os.environ.get(env_name)
            if value:
                values[field_name] = int(value)

        if os.environ.get("SMTP_TIMEOUT"):
            values["smtp_timeout"] = float(os.environ["SMTP_TIMEOUT"])

        path_vars = {
            "upload_dir": "CONTACT_UPLOAD_DIR",
            "audit_log_path": "CONTACT_AUDIT_LOG",
            "failure_log_path": "CONTACT_FAILURE_LOG",
        }
        for field_name, env_name in path_vars.items():
            value = os.environ.get(env_name)
            if value:
                values[field_name] = Path(value)

        database_url = os.environ.get("DATABASE_URL")
        if database_url:
            # Heroku uses postgres:// but SQLAlchemy 2.0+ requires postgresql://
            if database_url.startswith("postgres://"):
                database_url = database_url.replace("postgres://", "postgresql://", 1)
            values["database_url"] = database_url

        origins = os.environ.get("CONTACT_ALLOWED_ORIGINS")
        if origins:
            values["allowed_origins"] = [o.strip() for o in origins.split(",") if o.strip()]

        values["require_session_csrf"] = _env_bool("CONTACT_REQUIRE_SESSION_CSRF", True)

        return cls(**values)
