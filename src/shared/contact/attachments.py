"""Logo attachment validation and storage for contact form submissions."""

import io
import logging
import os
import re
import secrets
import time
from pathlib import Path
from typing import Optional

from PIL import Image, UnidentifiedImageError

from src.shared.contact.errors import AttachmentRejected
from src.shared.contact.input_validation import sanitize_log_text
from src.shared.contact.schemas import AttachmentRecord, RawFile

# Allowed sniffed MIME types and the extensions each may carry
ALLOWED_MIME_EXTENSIONS = {
    'image/png': {'png'},
    'image/jpeg': {'jpg', 'jpeg'},
    'image/svg+xml': {'svg'},
}
ALLOWED_EXTENSIONS = {'png', 'jpg', 'jpeg', 'svg'}

# Max file size: 2MB
MAX_ATTACHMENT_BYTES = 2 * 1024 * 1024

# How much of the file is looked at to recognize SVG markup
SVG_SNIFF_BYTES = 4096

_SVG_ROOT = re.compile(
    r"^\s*(?:<\?xml[^>]*\?>\s*)?"
    r"(?:<!--.*?-->\s*)*"
    r"(?:<!DOCTYPE\s+svg[^>]*>\s*)?"
    r"(?:<!--.*?-->\s*)*"
    r"<svg[\s>/]",
    re.IGNORECASE | re.DOTALL,
)


def file_extension(filename: str) -> str:
    """Lower-case extension of the base name, without the dot."""
    name = os.path.basename((filename or "").replace('\\', '/'))
    _, ext = os.path.splitext(name)
    return ext[1:].lower()


def sniff_mime_type(data: bytes) -> str:
    """
    Determine the content type from the file bytes, ignoring what the client declared.

    Raster formats are identified by Pillow; SVG by its root element.
    """
    if not data:
        return "application/x-empty"

    try:
        with Image.open(io.BytesIO(data)) as image:
            mime = Image.MIME.get(image.format)
            if mime:
                return mime
    except (UnidentifiedImageError, OSError, ValueError):
        pass

    head = data[:SVG_SNIFF_BYTES].decode("utf-8", errors="ignore").lstrip("\ufeff")
    if _SVG_ROOT.match(head):
        return "image/svg+xml"

    return "application/octet-stream"


class AttachmentGuard:
    """Validates an optional uploaded logo and moves it into a private directory."""

    def __init__(self, upload_dir: Path, max_bytes: int = MAX_ATTACHMENT_BYTES):
        self.upload_dir = Path(upload_dir)
        self.max_bytes = max_bytes

    def inspect(self, raw: RawFile) -> AttachmentRecord:
        """Check the upload without touching the file system. Raises AttachmentRejected."""
        # Check for upload errors
        if raw.error:
            logging.warning(f"Logo upload transport error: {sanitize_log_text(raw.error, 200)}")
            raise AttachmentRejected("Logo upload failed. Please try again.")

        # Validate file size
        if raw.size > self.max_bytes:
            raise AttachmentRejected("Logo file size must not exceed 2 MB.")

        # Validate content type by inspecting the bytes
        sniffed = sniff_mime_type(raw.data)
        if sniffed not in ALLOWED_MIME_EXTENSIONS:
            raise AttachmentRejected(
                "Invalid logo file type. Only PNG, JPG, JPEG, and SVG are allowed."
            )

        # Validate file extension
        extension = file_extension(raw.filename)
        if extension not in ALLOWED_EXTENSIONS:
            raise AttachmentRejected("Invalid logo file extension.")

        if extension not in ALLOWED_MIME_EXTENSIONS[sniffed]:
            raise AttachmentRejected("Logo file type does not match its extension.")

        return AttachmentRecord(
            original_name=os.path.basename(raw.filename.replace('\\', '/')),
            declared_mime_type=raw.content_type,
            sniffed_mime_type=sniffed,
            size_bytes=raw.size,
            extension=extension,
        )

    def _ensure_upload_dir(self) -> None:
        self.upload_dir.mkdir(mode=0o700, parents=True, exist_ok=True)

    def store(self, record: AttachmentRecord, raw: RawFile) -> AttachmentRecord:
        """Write an inspected upload under a collision-resistant name."""
        unique_filename = f"logo_{secrets.token_hex(8)}_{int(time.time())}.{record.extension}"
        upload_path = self.upload_dir / unique_filename

        try:
            self._ensure_upload_dir()
            fd = os.open(upload_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
            with os.fdopen(fd, "wb") as f:
                f.write(raw.data)
        except OSError as e:
            logging.error(f"Failed to save logo file to {self.upload_dir}: {str(e)}", exc_info=True)
            raise AttachmentRejected("Failed to save logo file.")

        return record.model_copy(update={"stored_path": upload_path})

    def accept(self, raw: RawFile) -> AttachmentRecord:
        """Inspect and store in one step."""
        return self.store(self.inspect(raw), raw)

    def discard(self, record: Optional[AttachmentRecord]) -> None:
        """Remove a stored attachment; missing files are ignored."""
        if record is None or record.stored_path is None:
            return
        try:
            Path(record.stored_path).unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logging.warning(f"Failed to remove logo file {record.stored_path}: {str(e)}")
