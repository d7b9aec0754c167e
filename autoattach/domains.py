"""Decide whether an image URL already points at this site."""

from __future__ import annotations

import logging
import re
from typing import Iterable, List, Optional, Pattern
from urllib.parse import urlparse

from .utils import split_domains

logger = logging.getLogger("autoattach")

REMOTE_URL_PATTERN = re.compile(r"^https?://", re.IGNORECASE)
_WILDCARD_PREFIX = re.escape("*.")


def _host_from_url(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    try:
        return urlparse(url).hostname or None
    except ValueError:
        logger.debug("Ignoring unparsable site URL %r", url)
        return None


def _compile_host(host: str) -> str:
    escaped = re.escape(host)
    if escaped.startswith(_WILDCARD_PREFIX):
        escaped = r"[a-z0-9-]+\." + escaped[len(_WILDCARD_PREFIX):]
    return escaped


class DomainClassifier:
    """Match URLs against the excluded (local) hostnames."""

    def __init__(self, hosts: Iterable[str]) -> None:
        unique: List[str] = []
        for host in hosts:
            host = (host or "").strip()
            if host and host not in unique:
                unique.append(host)
        self.hosts = unique
        self._pattern: Optional[Pattern[str]] = None
        if unique:
            alternatives = "|".join(_compile_host(host) for host in unique)
            self._pattern = re.compile(
                rf"^https?://(?:{alternatives})(?::\d+)?(?:[/?#]|$)", re.IGNORECASE
            )

    @classmethod
    def from_config(
        cls,
        except_domains: Optional[str],
        site_url: Optional[str] = None,
        request_host: Optional[str] = None,
    ) -> "DomainClassifier":
        """Combine configured exclusions with the site's own hosts."""
        hosts = split_domains(except_domains)
        site_host = _host_from_url(site_url)
        if site_host:
            hosts.append(site_host)
        if request_host:
            hosts.append(request_host)
        return cls(hosts)

    def is_local(self, url: str) -> bool:
        """Return True for relative/non-http URLs and excluded hosts."""
        if not url or not REMOTE_URL_PATTERN.match(url):
            return True
        if self._pattern is None:
            return False
        return bool(self._pattern.match(url))
