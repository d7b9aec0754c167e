"""Attachment registrar boundary and a filesystem-backed implementation."""

from __future__ import annotations

import hashlib
import logging
import shutil
from pathlib import Path
from typing import Dict, Mapping, Optional, Protocol

from .models import OutcomeStatus, RegistrationError, SizePolicy
from .utils import slugify

logger = logging.getLogger("autoattach")


class AttachmentRegistrar(Protocol):
    """Stores downloaded files as attachments of a target record."""

    def register(
        self,
        path: Path,
        suggested_name: str,
        module_id: str,
        target_id: str,
        actor_id: Optional[str],
    ) -> str:
        """Store ``path`` and return its public filename; raise RegistrationError."""
        ...

    def attached_total_size(self, target_id: str) -> int:
        ...

    def size_policy(self, module_id: str) -> SizePolicy:
        ...


class AccessPolicy(Protocol):
    """Membership lookups that decide whether size limits apply."""

    def is_privileged_actor(self, actor_id: Optional[str]) -> bool:
        ...

    def is_interactive_request(self) -> bool:
        ...

    def requester_is_privileged(self) -> bool:
        ...


class OpenAccessPolicy:
    """Nobody is privileged and every invocation runs in the background."""

    def is_privileged_actor(self, actor_id: Optional[str]) -> bool:
        return False

    def is_interactive_request(self) -> bool:
        return False

    def requester_is_privileged(self) -> bool:
        return False


def size_limits_apply(access: AccessPolicy, actor_id: Optional[str]) -> bool:
    """Limits are waived for privileged authors and for privileged interactive edits."""
    if access.is_privileged_actor(actor_id):
        return False
    if access.is_interactive_request() and access.requester_is_privileged():
        return False
    return True


class SizeCheck:
    """Evaluate a candidate file against the live attachment totals."""

    def __init__(self, policy: SizePolicy, registrar: AttachmentRegistrar, target_id: str) -> None:
        self.policy = policy
        self.registrar = registrar
        self.target_id = target_id

    def evaluate(self, byte_size: int) -> Optional[OutcomeStatus]:
        """Return the violated limit, or None when the file fits."""
        single = self.policy.single_limit_bytes
        if single and byte_size > single:
            return OutcomeStatus.SIZE_LIMIT_SINGLE
        total = self.policy.total_limit_bytes
        if total:
            attached = self.registrar.attached_total_size(self.target_id)
            if attached + byte_size > total:
                return OutcomeStatus.SIZE_LIMIT_TOTAL
        return None


class LocalAttachmentRegistry:
    """Keep attachments in ``<root>/<target-slug>-<digest>/`` on the local filesystem."""

    def __init__(
        self,
        root: Path,
        public_prefix: str = "files/attach",
        policies: Optional[Mapping[str, SizePolicy]] = None,
        default_policy: Optional[SizePolicy] = None,
    ) -> None:
        self.root = root
        self.public_prefix = public_prefix.rstrip("/")
        self.policies: Dict[str, SizePolicy] = dict(policies or {})
        self.default_policy = default_policy or SizePolicy()

    def _target_dir(self, target_id: str) -> Path:
        # The digest keeps ids that slug alike ("/a/b.html", "/a-b.html") apart.
        digest = hashlib.sha1(str(target_id).encode("utf-8")).hexdigest()[:10]
        return self.root / f"{slugify(str(target_id), fallback='target')}-{digest}"

    def _unique_path(self, directory: Path, name: str) -> Path:
        stem, dot, suffix = name.rpartition(".")
        if not dot:
            stem, suffix = name, ""
        base = slugify(stem)
        extension = f".{suffix.lower()}" if suffix else ""
        candidate = directory / f"{base}{extension}"
        index = 1
        while candidate.exists():
            candidate = directory / f"{base}-{index}{extension}"
            index += 1
        return candidate

    def register(
        self,
        path: Path,
        suggested_name: str,
        module_id: str,
        target_id: str,
        actor_id: Optional[str],
    ) -> str:
        """Copy ``path`` into the target directory and return its public name."""
        directory = self._target_dir(target_id)
        try:
            directory.mkdir(parents=True, exist_ok=True)
            destination = self._unique_path(directory, suggested_name)
            shutil.copyfile(path, destination)
        except OSError as exc:
            raise RegistrationError(f"Unable to store {suggested_name}: {exc}") from exc
        logger.debug(
            "Stored %s for target %s (module %s, actor %s)",
            destination,
            target_id,
            module_id,
            actor_id,
        )
        return f"{self.public_prefix}/{directory.name}/{destination.name}"

    def attached_total_size(self, target_id: str) -> int:
        directory = self._target_dir(target_id)
        if not directory.is_dir():
            return 0
        return sum(item.stat().st_size for item in directory.iterdir() if item.is_file())

    def size_policy(self, module_id: str) -> SizePolicy:
        return self.policies.get(str(module_id), self.default_policy)
