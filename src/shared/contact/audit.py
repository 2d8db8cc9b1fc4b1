"""
Append-only audit log and failed-submission store.

Both files contain personal data and are created with mode 0600. Every entry
is written with a single write under an exclusive lock so concurrent workers
never interleave partial lines. Write errors are logged and swallowed: a
broken log file must not fail the request.
"""

import fcntl
import logging
import os
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional

from src.shared.contact.input_validation import sanitize_block_text, sanitize_log_text
from src.shared.contact.schemas import ValidatedMessage

SEPARATOR = "=" * 60
BODY_INDENT = "  "


class AuditStatus(str, Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


def append_exclusive(path: Path, text: str) -> bool:
    """Append ``text`` to ``path`` atomically with respect to other writers."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(path, os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o600)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX)
            try:
                os.write(fd, text.encode("utf-8"))
            finally:
                fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)
        return True
    except OSError as e:
        logging.error(f"Failed to append to {path}: {str(e)}")
        return False


def quote_block(text: str) -> str:
    """Indent every line so message text can never start a separator or header line."""
    return "\n".join(BODY_INDENT + line for line in sanitize_block_text(text).split("\n"))


def _timestamp(when: Optional[datetime]) -> str:
    return (when or datetime.now()).strftime("%Y-%m-%d %H:%M:%S")


class AuditLog:
    """One line per delivery outcome: ``[time] [STATUS] IP: <client>``."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def record(
        self,
        status: AuditStatus,
        client_identifier: str,
        when: Optional[datetime] = None,
    ) -> bool:
        client = sanitize_log_text(client_identifier, max_length=64) or "unknown"
        line = f"[{_timestamp(when)}] [{AuditStatus(status).value}] IP: {client}\n"
        return append_exclusive(self.path, line)


class FailureStore:
    """Keeps the full content of messages that could not be delivered, for manual resend."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def format_record(self, message: ValidatedMessage) -> str:
        attachment = "none"
        if message.attachment is not None and message.attachment.stored_path is not None:
            attachment = sanitize_log_text(str(message.attachment.stored_path))

        lines = [
            SEPARATOR,
            f"[{_timestamp(message.submitted_at)}] FAILED SUBMISSION",
            f"IP: {sanitize_log_text(message.client_identifier, max_length=64)}",
            f"Name: {sanitize_log_text(message.name)}",
            f"Email: {sanitize_log_text(message.email)}",
            f"Subject: {sanitize_log_text(message.subject)}",
            f"Attachment: {attachment}",
            "Message:",
            quote_block(message.body),
            SEPARATOR,
        ]
        return "\n".join(lines) + "\n"

    def record(self, message: ValidatedMessage) -> bool:
        return append_exclusive(self.path, self.format_record(message))
