"""Data models used throughout the attachment pipeline."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import List, Optional, Tuple


class AutoAttachError(Exception):
    """Base exception for attachment pipeline errors."""


class RegistrationError(AutoAttachError):
    """Raised when a downloaded file cannot be stored as an attachment."""


class RecordUpdateError(AutoAttachError):
    """Raised when the owning record cannot be persisted."""


class OutcomeStatus(str, enum.Enum):
    """Per-image outcome; the value doubles as the ``data-autoattach`` token."""

    SUCCESS = "success"
    TIMEOUT = "download-timeout"
    FAILURE = "download-failure"
    SIZE_LIMIT_SINGLE = "size-limit-single"
    SIZE_LIMIT_TOTAL = "size-limit-total"
    ANIMATED_GIF = "animated-gif"
    INSERT_ERROR = "insert-error"

    @property
    def label(self) -> str:
        return _STATUS_LABELS[self]

    @property
    def retryable(self) -> bool:
        """Transient failures may be picked up again by a later pass."""
        return self in (OutcomeStatus.TIMEOUT, OutcomeStatus.FAILURE)


_STATUS_LABELS = {
    OutcomeStatus.SUCCESS: "Success",
    OutcomeStatus.TIMEOUT: "Download Timeout",
    OutcomeStatus.FAILURE: "Download Failure",
    OutcomeStatus.SIZE_LIMIT_SINGLE: "Single Attachment Size Limit Exceeded",
    OutcomeStatus.SIZE_LIMIT_TOTAL: "Total Attachment Size Limit Exceeded",
    OutcomeStatus.ANIMATED_GIF: "Animated GIF not allowed",
    OutcomeStatus.INSERT_ERROR: "Insert Error",
}


@dataclass(frozen=True)
class ImageReference:
    """One ``<img>`` tag occurrence discovered in content."""

    full_match: str
    raw_url_text: str
    resolved_url: str


@dataclass(frozen=True)
class DownloadOutcome:
    """Result of processing a single image reference."""

    status: OutcomeStatus
    stored_filename: Optional[str] = None
    byte_size: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.status is OutcomeStatus.SUCCESS

    @classmethod
    def success(cls, stored_filename: str, byte_size: Optional[int] = None) -> "DownloadOutcome":
        return cls(OutcomeStatus.SUCCESS, stored_filename, byte_size)

    @classmethod
    def failed(cls, status: OutcomeStatus) -> "DownloadOutcome":
        return cls(status)


@dataclass(frozen=True)
class SizePolicy:
    """Attachment size limits for a module; ``0`` or ``None`` means unlimited."""

    single_limit_bytes: Optional[int] = None
    total_limit_bytes: Optional[int] = None

    @property
    def unlimited(self) -> bool:
        return not self.single_limit_bytes and not self.total_limit_bytes


@dataclass
class BatchResult:
    """Outcomes of one downloader pass, in reference order."""

    count: int = 0
    outcomes: List[Tuple[ImageReference, DownloadOutcome]] = field(default_factory=list)


@dataclass
class PipelineResult:
    """Rewritten content plus operator-facing diagnostics."""

    content: str
    count: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.count or self.errors)


@dataclass
class StoredRecord:
    """A document or comment whose content may hold external images."""

    record_id: str
    module_id: str
    actor_id: Optional[str]
    content: str
    uploaded_count: int = 0
