"""
Media encoding — turns an uploaded garment photo into an inline payload for Gemini.

Uploads arrive either as raw image bytes (multipart) or as a data URL
(``data:image/jpeg;base64,...``) read straight from the browser. Both end up
as bare base64 text plus a MIME type.
"""

import asyncio
import base64
import binascii
import logging
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..core.config import get_settings

logger = logging.getLogger(__name__)

_DATA_URL_PREFIX = b"data:"


class EncodingError(Exception):
    """The uploaded item could not be read or encoded."""


@dataclass(frozen=True)
class UploadedItem:
    """The garment photo the user picked. Holds bytes in memory or a path on disk."""

    filename: str
    content_type: Optional[str] = None
    content: Optional[bytes] = None
    path: Optional[Path] = None

    @classmethod
    def from_path(cls, path: str | Path, content_type: Optional[str] = None) -> "UploadedItem":
        path = Path(path)
        return cls(
            filename=path.name,
            content_type=content_type or mimetypes.guess_type(path.name)[0],
            path=path,
        )

    @property
    def size(self) -> Optional[int]:
        return len(self.content) if self.content is not None else None

    async def read(self) -> bytes:
        """Read the item. Disk reads run off the event loop."""
        if self.content is not None:
            return self.content
        if self.path is None:
            return b""
        return await asyncio.to_thread(self.path.read_bytes)


@dataclass(frozen=True)
class EncodedMedia:
    data: str  # bare base64, no data URL header
    mime_type: str


def split_data_url(raw: bytes) -> tuple[Optional[str], bytes]:
    """
    Strip a ``data:<mime>;base64,`` header.

    Returns (mime_type, payload). Input without a header comes back untouched
    with mime_type None.
    """
    if not raw.startswith(_DATA_URL_PREFIX) or b"," not in raw:
        return None, raw
    header, payload = raw.split(b",", 1)
    mime = header[len(_DATA_URL_PREFIX):].split(b";", 1)[0].decode("ascii", "ignore").strip()
    return (mime or None), payload.strip()


class MediaEncoder:
    """Encodes uploaded items into base64 payloads. Stateless."""

    def __init__(self, default_mime_type: Optional[str] = None):
        self.default_mime_type = default_mime_type or get_settings().default_image_mime_type

    async def encode(self, item: UploadedItem) -> EncodedMedia:
        try:
            raw = await item.read()
        except OSError as e:
            raise EncodingError(f"Could not read {item.filename}: {e}") from e

        if not raw:
            raise EncodingError(f"{item.filename} is empty")

        header_mime, payload = split_data_url(raw)
        if raw.startswith(_DATA_URL_PREFIX):
            if not payload:
                raise EncodingError(f"{item.filename} has an empty data URL")
            try:
                base64.b64decode(payload, validate=True)
            except (binascii.Error, ValueError) as e:
                raise EncodingError(f"{item.filename} is not valid base64: {e}") from e
            data = payload.decode("ascii")
        else:
            data = base64.b64encode(raw).decode("ascii")

        mime_type = header_mime or item.content_type or self.default_mime_type
        logger.debug("Encoded %s (%s, %d chars)", item.filename, mime_type, len(data))
        return EncodedMedia(data=data, mime_type=mime_type)
