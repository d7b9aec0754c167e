"""Extraction of image references from HTML content."""

from __future__ import annotations

import html
import logging
import re
from typing import List

from .domains import DomainClassifier
from .models import ImageReference, OutcomeStatus

logger = logging.getLogger("autoattach")

IMG_TAG_PATTERN = re.compile(
    r"""<img\s[^>]*?(?<![\w-])src=('[^']+'|"[^"]+"|[^'"\r\n\t\x20>]+)[^>]*?>""",
    re.IGNORECASE,
)
MARKER_ATTRIBUTE = "data-autoattach"
_MARKER_PREFIX = f'{MARKER_ATTRIBUTE}="'


def _is_retry_candidate(tag: str) -> bool:
    return any(
        f'{_MARKER_PREFIX}{status.value}"' in tag
        for status in OutcomeStatus
        if status.retryable
    )


def extract_image_references(
    content: str,
    classifier: DomainClassifier,
    retry_failed: bool = False,
) -> List[ImageReference]:
    """Return the external, not-yet-processed image references in ``content``."""
    if not content:
        return []

    references: List[ImageReference] = []
    for match in IMG_TAG_PATTERN.finditer(content):
        tag = match.group(0)
        if _MARKER_PREFIX in tag:
            if not (retry_failed and _is_retry_candidate(tag)):
                continue
        raw_url = match.group(1).strip("'\"")
        resolved = html.unescape(raw_url)
        if classifier.is_local(resolved):
            logger.debug("Skipping local image %s", resolved)
            continue
        references.append(ImageReference(tag, raw_url, resolved))
    return references
