"""Utility helpers for string normalization and attachment naming."""

from __future__ import annotations

import re
import secrets
from typing import Optional
from urllib.parse import unquote

SLUG_PATTERN = re.compile(r"[^a-z0-9]+")
IMAGE_NAME_PATTERN = re.compile(r"[^\\/?=]+\.(?:gif|jpe?g|png|bmp|svg)\b", re.IGNORECASE)
TOKEN_NAME_PATTERN = re.compile(r"^[0-9a-f]{32}$")


def slugify(value: str, fallback: str = "image") -> str:
    """Generate a filesystem-friendly slug using ASCII characters only."""
    normalized = value.encode("ascii", "ignore").decode("ascii")
    normalized = normalized.lower()
    normalized = SLUG_PATTERN.sub("-", normalized).strip("-")
    return normalized or fallback


def clean_filename(url: str) -> str:
    """Pick an attachment name from an image URL.

    Returns the first ``name.ext`` segment with a known image extension, or a
    random 32-character hex token when the URL does not carry one.
    """
    match = IMAGE_NAME_PATTERN.search(unquote(url))
    if match:
        return match.group(0)
    return secrets.token_hex(16)


def needs_extension(name: str) -> bool:
    """True when ``name`` is a bare token produced by :func:`clean_filename`."""
    return bool(TOKEN_NAME_PATTERN.match(name))


def split_domains(value: Optional[str]) -> list[str]:
    """Turn a comma-separated domain list into cleaned entries."""
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]
