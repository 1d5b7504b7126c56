from __future__ import annotations

import logging
import random
import re
import time
from pathlib import Path
from typing import BinaryIO, Optional

from backend.app.lpj.errors import ValidationError
from backend.app.lpj.records import AttachmentRef

logger = logging.getLogger(__name__)

ALLOWED_TYPES = {
    "application/pdf": "PDF",
    "application/msword": "Word",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "Word",
    "application/vnd.ms-excel": "Excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": "Excel",
    "image/jpeg": "Image",
    "image/jpg": "Image",
    "image/png": "Image",
    "image/gif": "Image",
}

CHUNK_SIZE = 64 * 1024


class AttachmentRejected(ValidationError):
    def __init__(self, message: str):
        super().__init__(message, field="attachment")


def sanitize_filename(name: str) -> str:
    cleaned = re.sub(r"[^a-zA-Z0-9.-]", "_", Path(name or "").name)
    return cleaned or "attachment"


def unique_filename(original: str) -> str:
    suffix = f"{int(time.time() * 1000)}-{random.randint(0, 10**9)}"
    return f"{suffix}-{sanitize_filename(original)}"


class AttachmentStorage:
    """Stores one uploaded attachment per submission under `base_dir`."""

    def __init__(self, base_dir: Path, max_bytes: int):
        self.base_dir = Path(base_dir)
        self.max_bytes = max_bytes

    def save(self, original_name: str, content_type: Optional[str], stream: BinaryIO) -> AttachmentRef:
        kind = ALLOWED_TYPES.get((content_type or "").lower())
        if not kind:
            logger.warning("File type validation failed: filename=%s mimetype=%s", original_name, content_type)
            raise AttachmentRejected(
                "invalid file type, allowed: PDF, Word, Excel and images (JPEG, PNG, GIF)"
            )

        self.base_dir.mkdir(parents=True, exist_ok=True)
        filename = unique_filename(original_name)
        path = self.base_dir / filename
        written = 0
        try:
            with path.open("wb") as out:
                while True:
                    chunk = stream.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    written += len(chunk)
                    if written > self.max_bytes:
                        raise AttachmentRejected(
                            f"file too large, maximum is {self.max_bytes // (1024 * 1024)}MB"
                        )
                    out.write(chunk)
        except BaseException:
            path.unlink(missing_ok=True)
            raise

        logger.info(
            "Attachment stored: filename=%s mimetype=%s type=%s bytes=%s",
            filename, content_type, kind, written,
        )
        return AttachmentRef(filename=filename, path=str(path))


__all__ = [
    "ALLOWED_TYPES",
    "AttachmentRejected",
    "AttachmentStorage",
    "sanitize_filename",
    "unique_filename",
]
