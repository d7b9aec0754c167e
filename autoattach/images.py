"""Image type sniffing and animated GIF detection."""

from __future__ import annotations

import io
import logging
import re
from pathlib import Path
from typing import BinaryIO, Optional, Union

from filetype import guess

logger = logging.getLogger("autoattach")

HEADER_BYTES = 8192
GIF_WINDOW_BYTES = 16 * 1024
GIF_WINDOW_OVERLAP = 16
# Graphic control extension followed by an image descriptor or another extension.
GIF_FRAME_PATTERN = re.compile(rb"\x00\x21\xF9\x04.{4}\x00[\x2C\x21]", re.DOTALL)

MIME_EXTENSIONS = {
    "image/gif": "gif",
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/bmp": "bmp",
    "image/x-ms-bmp": "bmp",
}

ImageSource = Union[bytes, bytearray, str, Path, BinaryIO]


def _read_header(source: ImageSource) -> bytes:
    if isinstance(source, (bytes, bytearray)):
        return bytes(source[:HEADER_BYTES])
    if isinstance(source, (str, Path)):
        try:
            with open(source, "rb") as handle:
                return handle.read(HEADER_BYTES)
        except OSError as exc:
            logger.warning("Failed to read image header from %s: %s", source, exc)
            return b""
    position = source.tell()
    try:
        return source.read(HEADER_BYTES) or b""
    finally:
        source.seek(position)


def detect_image_mime(source: ImageSource) -> Optional[str]:
    """Detect the image MIME type from the file signature."""
    header = _read_header(source)
    if not header:
        return None
    kind = guess(header)
    if kind and kind.mime.startswith("image/"):
        return kind.mime
    return None


def guess_extension(source: ImageSource, default: str = "jpg") -> str:
    """Map the sniffed image type to one of gif/jpg/png/bmp, else ``default``."""
    mime = detect_image_mime(source)
    return MIME_EXTENSIONS.get(mime or "", default)


def _count_frames(stream: BinaryIO, limit: int = 2) -> int:
    count = 0
    carry = b""
    while count < limit:
        chunk = stream.read(GIF_WINDOW_BYTES - len(carry))
        if not chunk:
            break
        window = carry + chunk
        for match in GIF_FRAME_PATTERN.finditer(window):
            # Matches wholly inside the carried-over bytes were counted last time.
            if match.end() > len(carry):
                count += 1
        carry = window[-GIF_WINDOW_OVERLAP:]
    return count


def is_animated_gif(source: ImageSource) -> bool:
    """Return True when a GIF holds at least two frame control blocks."""
    if detect_image_mime(source) != "image/gif":
        return False

    if isinstance(source, (bytes, bytearray)):
        return _count_frames(io.BytesIO(bytes(source))) > 1
    if isinstance(source, (str, Path)):
        try:
            with open(source, "rb") as handle:
                return _count_frames(handle) > 1
        except OSError as exc:
            logger.warning("Failed to scan GIF %s: %s", source, exc)
            return False
    return _count_frames(source) > 1
