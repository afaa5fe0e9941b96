"""
Upload validation performed before any decode is attempted.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Optional

from . import config
from .errors import FileTooLarge, UnsupportedFormat

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Upload:
    data: bytes
    mime_type: str

    @property
    def size(self) -> int:
        return len(self.data)


def normalize_mime_type(value: Optional[str]) -> str:
    """Lowercase the declared type and drop parameters such as `; charset=`."""
    if not value:
        return ""
    return value.split(";", 1)[0].strip().lower()


def validate_upload(
    data: bytes, mime_type: Optional[str], settings: Optional[config.Settings] = None
) -> Upload:
    """
    Check the declared mime type, then the byte size.

    Raises:
        UnsupportedFormat: the declared type is not an accepted image type.
        FileTooLarge: the payload exceeds `max_upload_bytes`.
    """
    settings = settings or config.get_settings()
    normalized = normalize_mime_type(mime_type)
    if normalized not in settings.accepted_mime_types:
        logger.info("intake: rejected mime type %r", mime_type)
        raise UnsupportedFormat(f"Unsupported image type: {mime_type or 'unknown'}")

    if len(data) > settings.max_upload_bytes:
        logger.info("intake: rejected %d byte upload (limit %d)", len(data), settings.max_upload_bytes)
        raise FileTooLarge(
            f"File is {len(data)} bytes; the limit is {settings.max_upload_bytes} bytes"
        )
    return Upload(data=bytes(data), mime_type=normalized)
