"""
records/files.py -- Attachment storage on the local file system.

Files live under <UPLOAD_DIR>/<entity_type>/<entity_id>/<random name><ext>.
The stored name is random, so a client-supplied filename never reaches the
file system; the original name is kept only as metadata in the attachments
table.

Validation happens before anything touches disk:
  - declared content type must be in the allow-list for the upload kind
  - size must not exceed max_bytes
  - the leading bytes must match the declared type (a renamed .exe does not
    pass as image/png)

Deletes and primary-photo flags are last-writer-wins; there is no locking.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger("tabitha.records")

IMAGE_TYPES: dict[str, str] = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
}

DOCUMENT_TYPES: dict[str, str] = {
    **IMAGE_TYPES,
    "application/pdf": ".pdf",
    "application/msword": ".doc",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": ".docx",
}

_SIGNATURES: dict[str, tuple[bytes, ...]] = {
    "image/jpeg": (b"\xff\xd8\xff",),
    "image/png": (b"\x89PNG\r\n\x1a\n",),
    "image/gif": (b"GIF87a", b"GIF89a"),
    "application/pdf": (b"%PDF",),
    "application/msword": (b"\xd0\xcf\x11\xe0",),
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": (b"PK\x03\x04",),
}


class AttachmentRejected(Exception):
    """Upload refused before it was written. status_code is 400 or 413."""

    def __init__(self, code: str, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code


@dataclass(frozen=True)
class StoredFile:
    filename: str
    path: str  # relative to the upload root, forward slashes
    size_bytes: int


def _matches_signature(content_type: str, data: bytes) -> bool:
    if content_type == "image/webp":
        return data[:4] == b"RIFF" and data[8:12] == b"WEBP"
    return any(data.startswith(sig) for sig in _SIGNATURES.get(content_type, ()))


class FileStore:
    """Validated save/delete of attachment files under a root directory."""

    def __init__(self, root: Path | str, max_bytes: int = 5 * 1024 * 1024) -> None:
        self.root = Path(root)
        self.max_bytes = max_bytes

    def validate(self, kind: str, content_type: str | None, data: bytes) -> str:
        """Return the file extension for an acceptable upload; raise AttachmentRejected otherwise."""
        allowed = IMAGE_TYPES if kind == "photo" else DOCUMENT_TYPES
        content_type = (content_type or "").split(";")[0].strip().lower()
        if content_type not in allowed:
            raise AttachmentRejected(
                "unsupported_type",
                f"Invalid file type. Allowed: {', '.join(sorted(allowed))}.",
            )
        if not data:
            raise AttachmentRejected("empty_file", "Uploaded file is empty.")
        if len(data) > self.max_bytes:
            raise AttachmentRejected(
                "file_too_large",
                f"File exceeds the {self.max_bytes // (1024 * 1024)} MB limit.",
                status_code=413,
            )
        if not _matches_signature(content_type, data):
            raise AttachmentRejected("content_mismatch", "File content does not match its declared type.")
        return allowed[content_type]

    def save(self, entity_type: str, entity_id: int, kind: str, content_type: str | None, data: bytes) -> StoredFile:
        extension = self.validate(kind, content_type, data)
        filename = f"{kind}-{secrets.token_hex(12)}{extension}"
        relative = f"{entity_type}/{entity_id}/{filename}"
        target = self.resolve(relative)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        logger.info("Stored %s for %s/%s (%d bytes)", kind, entity_type, entity_id, len(data))
        return StoredFile(filename=filename, path=relative, size_bytes=len(data))

    def delete(self, relative_path: str) -> bool:
        """Remove a stored file. Returns False if it was already gone."""
        target = self.resolve(relative_path)
        try:
            target.unlink()
        except FileNotFoundError:
            logger.warning("Attachment file already missing: %s", relative_path)
            return False
        return True

    def resolve(self, relative_path: str) -> Path:
        """Map a stored relative path to an absolute one, refusing anything outside root."""
        root = self.root.resolve()
        target = (root / relative_path).resolve()
        if not target.is_relative_to(root):
            raise ValueError(f"Path escapes upload root: {relative_path!r}")
        return target
