"""Configuration objects and constants for the attachment pipeline."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

DEFAULT_IMAGE_TIMEOUT = 4.0
DEFAULT_TOTAL_TIMEOUT = 20.0
DEFAULT_MAX_REDIRECTS = 2
DEFAULT_EXTENSION = "jpg"
DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; autoattach/0.1)"

_TRUE_VALUES = {"y", "yes", "true", "1", "on"}


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in _TRUE_VALUES


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


@dataclass
class AttachConfig:
    """Settings that control which images are fetched and how long we wait."""

    except_domains: str = ""
    site_url: Optional[str] = None
    image_timeout: float = DEFAULT_IMAGE_TIMEOUT
    total_timeout: float = DEFAULT_TOTAL_TIMEOUT
    retry_failed: bool = False
    apply_size_limits: bool = False
    allow_animated_gif: bool = True
    default_extension: str = DEFAULT_EXTENSION
    max_redirects: int = DEFAULT_MAX_REDIRECTS
    max_download_bytes: int = 0
    temp_dir: Optional[Path] = None
    user_agent: str = DEFAULT_USER_AGENT

    @property
    def effective_image_timeout(self) -> float:
        """Per-image timeout, ignoring unset or non-positive overrides."""
        return self.image_timeout if self.image_timeout and self.image_timeout > 0 else DEFAULT_IMAGE_TIMEOUT

    @property
    def effective_total_timeout(self) -> float:
        return self.total_timeout if self.total_timeout and self.total_timeout > 0 else DEFAULT_TOTAL_TIMEOUT

    @classmethod
    def from_env(cls) -> "AttachConfig":
        """Build a config from ``AUTOATTACH_*`` environment variables."""
        temp_dir = os.getenv("AUTOATTACH_TEMP_DIR")
        return cls(
            except_domains=os.getenv("AUTOATTACH_EXCEPT_DOMAINS", ""),
            site_url=os.getenv("AUTOATTACH_SITE_URL") or None,
            image_timeout=_env_float("AUTOATTACH_IMAGE_TIMEOUT", DEFAULT_IMAGE_TIMEOUT),
            total_timeout=_env_float("AUTOATTACH_TOTAL_TIMEOUT", DEFAULT_TOTAL_TIMEOUT),
            retry_failed=_env_flag("AUTOATTACH_RETRY_DOWNLOAD", False),
            apply_size_limits=_env_flag("AUTOATTACH_APPLY_MODULE_LIMIT", False),
            allow_animated_gif=_env_flag("AUTOATTACH_ALLOW_ANIMATED_GIF", True),
            default_extension=os.getenv("AUTOATTACH_DEFAULT_EXTENSION", DEFAULT_EXTENSION),
            max_redirects=_env_int("AUTOATTACH_MAX_REDIRECTS", DEFAULT_MAX_REDIRECTS),
            max_download_bytes=_env_int("AUTOATTACH_MAX_DOWNLOAD_BYTES", 0),
            temp_dir=Path(temp_dir).expanduser() if temp_dir else None,
            user_agent=os.getenv("AUTOATTACH_USER_AGENT", DEFAULT_USER_AGENT),
        )
