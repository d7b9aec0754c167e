"""Single-attempt remote file download with a hard deadline."""

from __future__ import annotations

import logging
import threading
import time
from pathlib import Path
from typing import List, Optional, Protocol

import requests

from .config import DEFAULT_MAX_REDIRECTS, DEFAULT_USER_AGENT

logger = logging.getLogger("autoattach")

CHUNK_BYTES = 64 * 1024
ACCEPT_HEADER = "image/avif,image/webp,image/apng,image/*,*/*;q=0.8"


class Fetcher(Protocol):
    def __call__(self, url: str, destination: Path, timeout: float, max_redirects: int = ...) -> bool:
        ...


def build_session(max_redirects: int = DEFAULT_MAX_REDIRECTS, user_agent: str = DEFAULT_USER_AGENT) -> requests.Session:
    """Create a session that follows at most ``max_redirects`` redirects."""
    session = requests.Session()
    session.max_redirects = max_redirects
    session.headers.update({"User-Agent": user_agent, "Accept": ACCEPT_HEADER})
    return session


class _Transfer:
    """Body of one GET, read on a worker thread so the caller can stop waiting."""

    def __init__(self, session: requests.Session, url: str, timeout: float, max_bytes: int) -> None:
        self.session = session
        self.url = url
        self.timeout = timeout
        self.max_bytes = max_bytes
        self.chunks: List[bytes] = []
        self.error: Optional[str] = None
        self.complete = False
        self.done = threading.Event()
        self.cancelled = threading.Event()

    def run(self) -> None:
        received = 0
        try:
            with self.session.get(self.url, timeout=self.timeout, stream=True, allow_redirects=True) as resp:
                resp.raise_for_status()
                for chunk in resp.iter_content(chunk_size=CHUNK_BYTES):
                    if self.cancelled.is_set():
                        return
                    if not chunk:
                        continue
                    received += len(chunk)
                    if self.max_bytes and received > self.max_bytes:
                        self.error = f"response larger than {self.max_bytes} bytes"
                        return
                    self.chunks.append(chunk)
            self.complete = True
        except requests.RequestException as exc:
            self.error = str(exc)
        finally:
            self.done.set()


def fetch_remote_file(
    url: str,
    destination: Path,
    timeout: float,
    max_redirects: int = DEFAULT_MAX_REDIRECTS,
    session: Optional[requests.Session] = None,
    max_bytes: int = 0,
) -> bool:
    """Download ``url`` into ``destination``; return False on any failure.

    ``timeout`` bounds the whole transfer, not just each socket read: a server
    that drips bytes slower than the chunk size fills is abandoned once the
    deadline passes. The abandoned worker stops at its next chunk boundary and
    never touches ``destination``.
    """
    session = session or build_session(max_redirects)
    session.max_redirects = max_redirects
    transfer = _Transfer(session, url, timeout, max_bytes)
    worker = threading.Thread(target=transfer.run, name="autoattach-fetch", daemon=True)
    deadline = time.monotonic() + timeout
    worker.start()
    while not transfer.done.wait(deadline - time.monotonic()):
        if time.monotonic() >= deadline:
            transfer.cancelled.set()
            logger.warning("Timed out while downloading %s", url)
            return False
    if transfer.error is not None:
        logger.warning("Failed to fetch image %s: %s", url, transfer.error)
        return False
    if not transfer.complete or not transfer.chunks:
        return False
    try:
        with open(destination, "wb") as handle:
            handle.writelines(transfer.chunks)
    except OSError as exc:
        logger.warning("Failed to write image %s to %s: %s", url, destination, exc)
        return False
    return True
