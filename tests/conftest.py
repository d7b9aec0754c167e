"""Shared pytest fixtures for the autoattach tests."""

import os
import sys
from contextlib import contextmanager
from pathlib import Path
from unittest.mock import MagicMock

import pytest
import requests

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from autoattach.config import AttachConfig  # noqa: E402
from autoattach.models import RecordUpdateError, RegistrationError, SizePolicy, StoredRecord  # noqa: E402


PNG_BYTES = (
    b"\x89PNG\r\n\x1a\n"
    b"\x00\x00\x00\rIHDR\x00\x00\x00\x01\x00\x00\x00\x01\x08\x06\x00\x00\x00\x1f\x15\xc4\x89"
    b"\x00\x00\x00\x00IEND\xaeB`\x82"
)
JPEG_BYTES = b"\xff\xd8\xff\xe0\x00\x10JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00" + b"\x00" * 64
BMP_BYTES = b"BM" + b"\x00" * 64

GIF_HEADER = b"GIF89a\x01\x00\x01\x00\x00\x00\x00"
GIF_FRAME = b"\x00\x21\xF9\x04\x04\x0a\x00\x00\x00\x2C" + b"\x00" * 9 + b"\x02\x02\x44\x01"


def make_gif(frames: int) -> bytes:
    """Build a minimal GIF holding ``frames`` control-extension/descriptor pairs."""
    return GIF_HEADER + GIF_FRAME * frames + b"\x3B"


def fake_session(body: bytes):
    """A requests session whose every GET streams ``body``."""
    session = MagicMock(spec=requests.Session)
    response = MagicMock()
    response.__enter__.return_value = response
    response.__exit__.return_value = False
    response.iter_content.side_effect = lambda *args, **kwargs: iter([body])
    session.get.return_value = response
    return session


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeFetcher:
    """Serve canned responses and advance the clock by a per-URL duration."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.responses = {}
        self.calls = []

    def add(self, url: str, data: bytes | None, duration: float = 0.1) -> None:
        self.responses[url] = (data, duration)

    def __call__(self, url, destination, timeout, max_redirects=2):
        self.calls.append(url)
        data, duration = self.responses.get(url, (None, 0.1))
        self.clock.advance(duration)
        if data is None:
            return False
        Path(destination).write_bytes(data)
        return True


class FakeRegistrar:
    """In-memory attachment registrar."""

    def __init__(self, policy: SizePolicy | None = None):
        self.policy = policy or SizePolicy()
        self.stored = []
        self.fail = False
        self.preexisting = 0

    def register(self, path, suggested_name, module_id, target_id, actor_id):
        if self.fail:
            raise RegistrationError("disk full")
        data = Path(path).read_bytes()
        self.stored.append((target_id, suggested_name, len(data)))
        return f"files/attach/{target_id}/{suggested_name}"

    def attached_total_size(self, target_id):
        return self.preexisting + sum(size for target, _, size in self.stored if target == target_id)

    def size_policy(self, module_id):
        return self.policy


class FakeStore:
    """In-memory record store with a transaction log."""

    def __init__(self, records=None):
        self.records = {record.record_id: record for record in (records or [])}
        self.saved = []
        self.events = []
        self.fail_save = False

    def load(self, record_id):
        return self.records.get(record_id)

    @contextmanager
    def transaction(self):
        self.events.append("begin")
        try:
            yield
        except BaseException:
            self.events.append("rollback")
            raise
        self.events.append("commit")

    def save(self, record_id, content, uploaded_count):
        if self.fail_save:
            raise RecordUpdateError("update failed")
        self.saved.append((record_id, content, uploaded_count))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fetcher(clock):
    return FakeFetcher(clock)


@pytest.fixture
def registrar():
    return FakeRegistrar()


@pytest.fixture
def config(tmp_path):
    return AttachConfig(except_domains="mysite.com", temp_dir=tmp_path / "tmp")


@pytest.fixture
def make_record():
    def _make(content: str, record_id: str = "42", uploaded_count: int = 0) -> StoredRecord:
        return StoredRecord(
            record_id=record_id,
            module_id="board",
            actor_id="7",
            content=content,
            uploaded_count=uploaded_count,
        )

    return _make
