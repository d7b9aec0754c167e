"""High-level orchestration: scan, download, register and rewrite."""

from __future__ import annotations

import logging
import time
from functools import partial
from typing import List, Optional

from .config import AttachConfig
from .content import extract_image_references
from .domains import DomainClassifier
from .downloader import BatchBudget, BatchDownloader, Clock, UrlCache, iter_failures
from .fetch import Fetcher, build_session, fetch_remote_file
from .markup import apply_outcome
from .models import ImageReference, PipelineResult, RecordUpdateError
from .registry import (
    AccessPolicy,
    AttachmentRegistrar,
    OpenAccessPolicy,
    SizeCheck,
    size_limits_apply,
)
from .store import RecordStore

logger = logging.getLogger("autoattach")


def format_error(label: str, url: str, target_id: str) -> str:
    return f"{label}: {url} (target: {target_id})"


class AutoAttachPipeline:
    """Turn external images in a content body into local attachments."""

    def __init__(
        self,
        config: AttachConfig,
        registrar: AttachmentRegistrar,
        fetcher: Optional[Fetcher] = None,
        access: Optional[AccessPolicy] = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self.config = config
        self.registrar = registrar
        self.access = access or OpenAccessPolicy()
        self.clock = clock
        if fetcher is None:
            fetcher = partial(
                fetch_remote_file,
                session=build_session(config.max_redirects, config.user_agent),
                max_bytes=config.max_download_bytes,
            )
        self.downloader = BatchDownloader(
            registrar,
            fetcher,
            allow_animated_gif=config.allow_animated_gif,
            default_extension=config.default_extension,
            max_redirects=config.max_redirects,
            temp_dir=config.temp_dir,
        )

    def classifier(self, request_host: Optional[str] = None) -> DomainClassifier:
        return DomainClassifier.from_config(
            self.config.except_domains, self.config.site_url, request_host
        )

    def scan(self, content: str, request_host: Optional[str] = None) -> List[ImageReference]:
        """Return the image references a run over ``content`` would process."""
        return extract_image_references(
            content, self.classifier(request_host), retry_failed=self.config.retry_failed
        )

    def _size_check(self, module_id: str, target_id: str, actor_id: Optional[str]) -> Optional[SizeCheck]:
        if not self.config.apply_size_limits:
            return None
        if not size_limits_apply(self.access, actor_id):
            logger.debug("Size limits waived for actor %s (target: %s)", actor_id, target_id)
            return None
        policy = self.registrar.size_policy(module_id)
        if policy.unlimited:
            return None
        return SizeCheck(policy, self.registrar, target_id)

    def run(
        self,
        content: str,
        target_id: str,
        module_id: str,
        actor_id: Optional[str] = None,
        request_host: Optional[str] = None,
        url_cache: Optional[UrlCache] = None,
    ) -> PipelineResult:
        """Download external images in ``content`` and rewrite their tags.

        ``url_cache`` widens de-duplication beyond this call when the caller
        shares one instance across records; a fresh cache is used otherwise.
        Attachments registered here are never rolled back by this method.
        """
        references = self.scan(content, request_host)
        if not references:
            return PipelineResult(content=content)

        logger.info("Found %d external image(s) in target %s", len(references), target_id)
        budget = BatchBudget(
            per_item_timeout=self.config.effective_image_timeout,
            aggregate_timeout=self.config.effective_total_timeout,
            clock=self.clock,
        )
        batch = self.downloader.download(
            references,
            budget,
            url_cache if url_cache is not None else UrlCache(),
            module_id=module_id,
            target_id=target_id,
            actor_id=actor_id,
            size_check=self._size_check(module_id, target_id, actor_id),
        )

        for reference, outcome in batch.outcomes:
            content = apply_outcome(content, reference, outcome)

        errors: List[str] = []
        for reference, outcome in iter_failures(batch):
            message = format_error(outcome.status.label, reference.resolved_url, target_id)
            logger.warning("%s", message)
            errors.append(message)

        logger.info(
            "Attached %d of %d image(s) for target %s in %.2fs",
            batch.count,
            len(references),
            target_id,
            budget.elapsed(),
        )
        return PipelineResult(content=content, count=batch.count, errors=errors)


def process_record(
    pipeline: AutoAttachPipeline,
    store: RecordStore,
    record_id: str,
    *,
    request_host: Optional[str] = None,
    url_cache: Optional[UrlCache] = None,
) -> bool:
    """Run the pipeline over a stored record and persist the result.

    Returns True when the record was updated. Attachments registered before a
    failed update stay registered.
    """
    record = store.load(record_id)
    if record is None:
        logger.debug("Record %s not found", record_id)
        return False
    if not pipeline.scan(record.content, request_host):
        return False

    try:
        with store.transaction():
            result = pipeline.run(
                record.content,
                record.record_id,
                record.module_id,
                record.actor_id,
                request_host=request_host,
                url_cache=url_cache,
            )
            if not result.changed:
                return False
            store.save(record.record_id, result.content, record.uploaded_count + result.count)
    except RecordUpdateError as exc:
        logger.error("Failed to update record %s: %s", record_id, exc)
        return False
    return True
