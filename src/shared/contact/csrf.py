"""Per-session CSRF tokens for the contact form."""

import hmac
import secrets
from typing import MutableMapping, Optional

CSRF_SESSION_KEY = "csrf_token"
CSRF_TOKEN_BYTES = 32  # 256 bits


def get_or_create_csrf_token(session: MutableMapping) -> str:
    """Return the session's token, generating it on first access."""
    token = session.get(CSRF_SESSION_KEY)
    if not token:
        token = secrets.token_hex(CSRF_TOKEN_BYTES)
        session[CSRF_SESSION_KEY] = token
    return token


def tokens_match(submitted: Optional[str], expected: Optional[str]) -> bool:
    """Constant-time comparison; missing values never match."""
    if not submitted or not expected:
        return False
    return hmac.compare_digest(submitted.encode("utf-8"), expected.encode("utf-8"))
