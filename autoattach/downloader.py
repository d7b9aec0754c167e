"""Time-budgeted batch download of external images."""

from __future__ import annotations

import logging
import os
import tempfile
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional

from .fetch import Fetcher, fetch_remote_file
from .images import guess_extension, is_animated_gif
from .models import (
    BatchResult,
    DownloadOutcome,
    ImageReference,
    OutcomeStatus,
    RegistrationError,
)
from .registry import AttachmentRegistrar, SizeCheck
from .utils import clean_filename, needs_extension

logger = logging.getLogger("autoattach")

Clock = Callable[[], float]


class UrlCache:
    """Resolved URL to stored filename, shared by whoever holds the instance."""

    def __init__(self) -> None:
        self._entries: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, url: str) -> Optional[str]:
        with self._lock:
            return self._entries.get(url)

    def store(self, url: str, filename: str) -> None:
        with self._lock:
            self._entries[url] = filename

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, url: object) -> bool:
        with self._lock:
            return url in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


@dataclass
class BatchBudget:
    """Per-item and whole-batch time limits for one downloader pass."""

    per_item_timeout: float
    aggregate_timeout: float
    clock: Clock = time.monotonic
    started_at: float = field(default=0.0)

    def __post_init__(self) -> None:
        if not self.started_at:
            self.started_at = self.clock()

    def elapsed(self) -> float:
        return self.clock() - self.started_at

    def exhausted(self) -> bool:
        return self.elapsed() > self.aggregate_timeout


class BatchDownloader:
    """Fetch, vet and register each external image reference in order."""

    def __init__(
        self,
        registrar: AttachmentRegistrar,
        fetcher: Fetcher = fetch_remote_file,
        *,
        allow_animated_gif: bool = True,
        default_extension: str = "jpg",
        max_redirects: int = 2,
        temp_dir: Optional[Path] = None,
    ) -> None:
        self.registrar = registrar
        self.fetcher = fetcher
        self.allow_animated_gif = allow_animated_gif
        self.default_extension = default_extension
        self.max_redirects = max_redirects
        self.temp_dir = temp_dir

    def _temp_path(self) -> Path:
        if self.temp_dir is not None:
            self.temp_dir.mkdir(parents=True, exist_ok=True)
        fd, name = tempfile.mkstemp(prefix="autoattach-", dir=self.temp_dir)
        os.close(fd)
        return Path(name)

    def _suggested_name(self, url: str, temp_path: Path) -> str:
        name = clean_filename(url)
        if needs_extension(name):
            name = f"{name}.{guess_extension(temp_path, self.default_extension)}"
        return name

    def download(
        self,
        references: List[ImageReference],
        budget: BatchBudget,
        cache: UrlCache,
        *,
        module_id: str,
        target_id: str,
        actor_id: Optional[str],
        size_check: Optional[SizeCheck] = None,
    ) -> BatchResult:
        """Classify references until the list or the aggregate budget runs out."""
        result = BatchResult()
        total_limited = False

        for reference in references:
            url = reference.resolved_url
            cached = cache.get(url)
            if cached is not None:
                logger.debug("Reusing cached image %s -> %s (target: %s)", url, cached, target_id)
                result.outcomes.append((reference, DownloadOutcome.success(cached)))
                result.count += 1
                continue

            if total_limited or budget.exhausted():
                logger.debug("Leaving %s for a later pass (target: %s)", url, target_id)
                continue

            outcome = self._process(
                reference,
                budget,
                module_id=module_id,
                target_id=target_id,
                actor_id=actor_id,
                size_check=size_check,
            )
            result.outcomes.append((reference, outcome))
            if outcome.status is OutcomeStatus.SIZE_LIMIT_TOTAL:
                total_limited = True
            if not outcome.ok:
                continue

            cache.store(url, outcome.stored_filename)
            result.count += 1
            if budget.exhausted():
                logger.info(
                    "Batch time budget of %.1fs exceeded after %d image(s) (target: %s)",
                    budget.aggregate_timeout,
                    result.count,
                    target_id,
                )
                break

        return result

    def _process(
        self,
        reference: ImageReference,
        budget: BatchBudget,
        *,
        module_id: str,
        target_id: str,
        actor_id: Optional[str],
        size_check: Optional[SizeCheck],
    ) -> DownloadOutcome:
        url = reference.resolved_url
        temp_path = self._temp_path()
        try:
            started = budget.clock()
            status = self.fetcher(url, temp_path, budget.per_item_timeout, self.max_redirects)
            elapsed = budget.clock() - started
            size = temp_path.stat().st_size if temp_path.exists() else 0
            if not status or not size:
                if elapsed >= budget.per_item_timeout:
                    return DownloadOutcome.failed(OutcomeStatus.TIMEOUT)
                return DownloadOutcome.failed(OutcomeStatus.FAILURE)

            if size_check is not None:
                violation = size_check.evaluate(size)
                if violation is not None:
                    return DownloadOutcome.failed(violation)

            if not self.allow_animated_gif and is_animated_gif(temp_path):
                return DownloadOutcome.failed(OutcomeStatus.ANIMATED_GIF)

            name = self._suggested_name(url, temp_path)
            try:
                stored = self.registrar.register(temp_path, name, module_id, target_id, actor_id)
            except RegistrationError as exc:
                logger.warning("Failed to register %s as %s: %s", url, name, exc)
                return DownloadOutcome.failed(OutcomeStatus.INSERT_ERROR)
            if not stored:
                return DownloadOutcome.failed(OutcomeStatus.INSERT_ERROR)
            return DownloadOutcome.success(stored, size)
        finally:
            temp_path.unlink(missing_ok=True)


def iter_failures(result: BatchResult) -> Iterator[tuple[ImageReference, DownloadOutcome]]:
    """Yield the classified references that did not succeed."""
    for reference, outcome in result.outcomes:
        if not outcome.ok:
            yield reference, outcome
