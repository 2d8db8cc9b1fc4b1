"""
Input validation and sanitization utilities for the contact form.
Protects against XSS in the relayed message and injection into log files.
"""

import re
import html
from typing import List, Optional

from email_validator import validate_email, EmailNotValidError


# Field limits
MIN_NAME_LENGTH = 2
MAX_NAME_LENGTH = 100
MAX_EMAIL_LENGTH = 100
MIN_SUBJECT_LENGTH = 3
MAX_SUBJECT_LENGTH = 200
MIN_MESSAGE_LENGTH = 10
MAX_MESSAGE_LENGTH = 5000

# Latin letters incl. German umlauts and sharp s, whitespace, apostrophe, hyphen.
# The apostrophe is also accepted in its escaped form because names are
# validated after sanitize_input() has run.
NAME_PATTERN = re.compile(r"^(?:[a-zA-ZäöüßÄÖÜ\s'-]|&#x27;)+$")

_BACKSLASH_ESCAPE = re.compile(r"\\(.?)", re.DOTALL)
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_CONTROL_CHARS_EXCEPT_NEWLINE = re.compile(r"[\x00-\x09\x0b-\x1f\x7f]")
_WHITESPACE_RUN = re.compile(r"\s+")


def sanitize_input(text: Optional[str]) -> str:
    """
    Sanitize a raw form field before validation.

    Trims surrounding whitespace, removes backslash escaping and
    HTML-escapes < > & " ' so the value is safe in any HTML context.
    Missing input becomes an empty string.
    """
    if not text:
        return ""

    text = str(text).strip()
    text = _BACKSLASH_ESCAPE.sub(r"\1", text)
    return html.escape(text, quote=True)


def sanitize_log_text(text: Optional[str], max_length: Optional[int] = None) -> str:
    """
    Make user-supplied text safe for a single log line.

    Control characters (CR/LF included) become spaces, whitespace runs are
    collapsed and the result is trimmed and optionally truncated.
    """
    if not text:
        return ""

    text = _CONTROL_CHARS.sub(" ", str(text))
    text = _WHITESPACE_RUN.sub(" ", text).strip()

    if max_length and len(text) > max_length:
        text = text[:max_length]

    return text


def sanitize_block_text(text: Optional[str]) -> str:
    """Like sanitize_log_text but keeps line breaks, for multi-line records."""
    if not text:
        return ""
    text = str(text).replace("\r\n", "\n").replace("\r", "\n")
    return _CONTROL_CHARS_EXCEPT_NEWLINE.sub(" ", text).strip()


def is_valid_email(email: str) -> bool:
    """Syntax-only check; no DNS lookups."""
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def validate_form_data(name: str, email: str, subject: str, message: str) -> List[str]:
    """
    Validate already-sanitized form fields.

    Returns the list of violations in field order. Only the first failing
    rule of each field is reported.
    """
    errors = []

    # Name validation
    if not name:
        errors.append("Name is required.")
    elif len(name) < MIN_NAME_LENGTH or len(name) > MAX_NAME_LENGTH:
        errors.append(f"Name must be between {MIN_NAME_LENGTH} and {MAX_NAME_LENGTH} characters.")
    elif not NAME_PATTERN.match(name):
        errors.append("Name contains invalid characters.")

    # Email validation
    if not email:
        errors.append("Email is required.")
    elif not is_valid_email(email):
        errors.append("Invalid email format.")
    elif len(email) > MAX_EMAIL_LENGTH:
        errors.append(f"Email must not exceed {MAX_EMAIL_LENGTH} characters.")

    # Subject validation
    if not subject:
        errors.append("Subject is required.")
    elif len(subject) < MIN_SUBJECT_LENGTH or len(subject) > MAX_SUBJECT_LENGTH:
        errors.append(
            f"Subject must be between {MIN_SUBJECT_LENGTH} and {MAX_SUBJECT_LENGTH} characters."
        )

    # Message validation
    if not message:
        errors.append("Message is required.")
    elif len(message) < MIN_MESSAGE_LENGTH:
        errors.append(f"Message must be at least {MIN_MESSAGE_LENGTH} characters.")
    elif len(message) > MAX_MESSAGE_LENGTH:
        errors.append(f"Message must not exceed {MAX_MESSAGE_LENGTH} characters.")

    return errors
