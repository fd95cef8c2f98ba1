"""
URL normalization and crawl-scope validation.
"""

import logging
import re
from typing import Optional
from urllib.parse import urlparse, urlunparse

from ..utils.config import CrawlerConfig
from .url_frontier import VisitedSet


CRAWLABLE_SCHEMES = ('http', 'https')

SKIP_EXTENSIONS = (
    '.jpg', '.jpeg', '.png', '.gif', '.bmp', '.svg', '.webp', '.ico',
    '.pdf', '.doc', '.docx', '.xls', '.xlsx', '.ppt', '.pptx',
    '.zip', '.rar', '.tar', '.gz', '.exe', '.dmg', '.iso',
    '.mp3', '.mp4', '.avi', '.mov', '.wmv', '.flv',
    '.css', '.js', '.woff', '.woff2', '.ttf', '.eot'
)

# Characters RFC 3986 never allows inside a host
INVALID_HOST_CHARS = re.compile(r'[\s<>"{}|\\^`\[\]/?#@]')

logger = logging.getLogger(__name__)


def extract_host(url: str) -> Optional[str]:
    """Return the lower-cased host of a URL without its port, or None."""
    try:
        return urlparse(url).hostname
    except ValueError:
        return None


def normalize_url(url: str) -> str:
    """Normalize URL by lower-casing scheme and host and removing the fragment."""
    try:
        parsed = urlparse(url.strip())
        netloc = parsed.netloc
        if parsed.hostname:
            # Keep userinfo and port, lower-case only the host part
            host_start = netloc.rfind('@') + 1
            netloc = netloc[:host_start] + netloc[host_start:].lower()
        return urlunparse((
            parsed.scheme.lower(),
            netloc,
            parsed.path or '/',
            parsed.params,
            parsed.query,
            ''
        ))
    except ValueError:
        return url


def is_valid_url(url: str) -> bool:
    """Check that a URL is a well-formed absolute http(s) address of a crawlable resource."""
    if not url:
        return False

    lowered = url.strip().lower()
    if lowered.startswith(('mailto:', 'javascript:', 'tel:', 'data:')):
        return False

    try:
        parsed = urlparse(url)
        # Accessing port validates it
        parsed.port
    except ValueError:
        return False

    if parsed.scheme.lower() not in CRAWLABLE_SCHEMES or not parsed.hostname:
        return False

    if INVALID_HOST_CHARS.search(parsed.hostname):
        return False

    path = parsed.path.lower()
    if path.endswith(SKIP_EXTENSIONS):
        return False

    return True


class UrlFilter:
    """
    Decides whether a discovered link should enter the frontier.

    A candidate is rejected when it is too deep, already seen, malformed,
    a non-crawlable resource, or (with same_domain_only) on another host.
    """

    def __init__(self, config: CrawlerConfig, visited: VisitedSet, seed_url: Optional[str] = None):
        self.config = config
        self.visited = visited
        self.seed_host = extract_host(seed_url or config.start_url)

    def accept(self, candidate: str, depth: int) -> bool:
        if depth > self.config.max_depth:
            logger.debug(f"Skipping {candidate}: depth {depth} exceeds max depth {self.config.max_depth}")
            return False

        if candidate in self.visited:
            return False

        if not is_valid_url(candidate):
            logger.debug(f"Skipping non-crawlable URL: {candidate}")
            return False

        if self.config.same_domain_only and not self.is_same_domain(candidate):
            logger.debug(f"Skipping off-domain URL: {candidate}")
            return False

        return True

    def is_same_domain(self, candidate: str) -> bool:
        host = extract_host(candidate)
        return host is not None and host == self.seed_host
