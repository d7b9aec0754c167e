"""Rewrite image tags once their downloads have been classified."""

from __future__ import annotations

import html
import re

from .content import MARKER_ATTRIBUTE
from .models import DownloadOutcome, ImageReference, OutcomeStatus

EXISTING_MARKER_PATTERN = re.compile(rf'\s{MARKER_ATTRIBUTE}="[^"]+?"')
TAG_OPEN_PATTERN = re.compile(r"^<img\s+", re.IGNORECASE)


def add_status_attribute(tag: str, status: OutcomeStatus) -> str:
    """Replace any existing marker with ``status`` as the first attribute."""
    token = html.escape(status.value, quote=True)
    tag = EXISTING_MARKER_PATTERN.sub("", tag)
    return TAG_OPEN_PATTERN.sub(lambda _: f'<img {MARKER_ATTRIBUTE}="{token}" ', tag, count=1)


def apply_outcome(content: str, reference: ImageReference, outcome: DownloadOutcome) -> str:
    """Return ``content`` with the reference's tag rewritten for ``outcome``."""
    if outcome.ok and outcome.stored_filename:
        new_tag = reference.full_match.replace(
            reference.raw_url_text, html.escape(outcome.stored_filename, quote=True)
        )
        new_tag = add_status_attribute(new_tag, OutcomeStatus.SUCCESS)
    else:
        new_tag = add_status_attribute(reference.full_match, outcome.status)
    return content.replace(reference.full_match, new_tag)
