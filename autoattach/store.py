"""Persistence boundary for records whose content gets rewritten."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import ContextManager, Dict, Iterator, List, Optional, Protocol, Tuple

from .models import RecordUpdateError, StoredRecord

logger = logging.getLogger("autoattach")


class RecordStore(Protocol):
    """Loads records and saves rewritten content atomically."""

    def load(self, record_id: str) -> Optional[StoredRecord]:
        ...

    def transaction(self) -> ContextManager[None]:
        ...

    def save(self, record_id: str, content: str, uploaded_count: int) -> None:
        """Persist content; raise RecordUpdateError on failure."""
        ...


def _stage(path: Path, text: str) -> Path:
    """Write ``text`` to a temp file beside ``path`` and return the temp path."""
    fd, name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
    except BaseException:
        Path(name).unlink(missing_ok=True)
        raise
    return Path(name)


class HtmlFileStore:
    """Treat HTML files on disk as records, one file per record.

    Upload counts live in a JSON sidecar keyed by resolved file path. Saves made
    inside :meth:`transaction` are staged and only written when it exits cleanly.
    """

    def __init__(self, counts_path: Path, module_id: str = "files", actor_id: Optional[str] = None) -> None:
        self.counts_path = counts_path
        self.module_id = module_id
        self.actor_id = actor_id
        self._pending: Optional[Dict[str, Tuple[str, int]]] = None

    def _read_counts(self) -> Dict[str, int]:
        if not self.counts_path.exists():
            return {}
        try:
            data = json.loads(self.counts_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable upload counts %s: %s", self.counts_path, exc)
            return {}
        return {str(key): int(value) for key, value in data.items()}

    def load(self, record_id: str) -> Optional[StoredRecord]:
        path = Path(record_id)
        if not path.is_file():
            return None
        key = str(path.resolve())
        return StoredRecord(
            record_id=key,
            module_id=self.module_id,
            actor_id=self.actor_id,
            content=path.read_text(encoding="utf-8"),
            uploaded_count=self._read_counts().get(key, 0),
        )

    @contextmanager
    def transaction(self) -> Iterator[None]:
        self._pending = {}
        try:
            yield
        except BaseException:
            logger.debug("Rolling back %d staged record(s)", len(self._pending or {}))
            self._pending = None
            raise
        pending, self._pending = self._pending, None
        self._commit(pending)

    def save(self, record_id: str, content: str, uploaded_count: int) -> None:
        if self._pending is not None:
            self._pending[record_id] = (content, uploaded_count)
            return
        self._commit({record_id: (content, uploaded_count)})

    def _commit(self, pending: Dict[str, Tuple[str, int]]) -> None:
        """Write every record and the counts sidecar, or none of them.

        All files are staged before the first rename. If a rename fails, records
        already replaced get their previous text back.
        """
        if not pending:
            return
        counts = self._read_counts()
        staged: List[Tuple[Path, Path]] = []
        previous: Dict[Path, Optional[str]] = {}
        replaced: List[Path] = []
        try:
            for record_id, (content, uploaded_count) in pending.items():
                path = Path(record_id)
                previous[path] = path.read_text(encoding="utf-8") if path.exists() else None
                staged.append((_stage(path, content), path))
                counts[record_id] = uploaded_count
            self.counts_path.parent.mkdir(parents=True, exist_ok=True)
            sidecar = json.dumps(counts, indent=2, sort_keys=True)
            staged.append((_stage(self.counts_path, sidecar), self.counts_path))
            for temp, path in staged:
                os.replace(temp, path)
                replaced.append(path)
        except OSError as exc:
            for temp, _ in staged:
                temp.unlink(missing_ok=True)
            self._restore(replaced, previous)
            raise RecordUpdateError(str(exc)) from exc

    def _restore(self, replaced: List[Path], previous: Dict[Path, Optional[str]]) -> None:
        for path in replaced:
            if path not in previous:
                continue
            try:
                if previous[path] is None:
                    path.unlink(missing_ok=True)
                else:
                    path.write_text(previous[path], encoding="utf-8")
            except OSError as exc:
                logger.error("Could not restore %s after a failed commit: %s", path, exc)
