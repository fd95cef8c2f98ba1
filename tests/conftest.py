"""
Test configuration and fixtures for crawler tests
"""

import pytest
from unittest.mock import MagicMock, AsyncMock

from polite_crawler.crawler.events import CrawlObserver
from polite_crawler.utils.config import CrawlerConfig


def make_response(status=200, body="", content_type="text/html; charset=utf-8", charset="utf-8"):
    """Build a mock aiohttp response."""
    body_bytes = body.encode("utf-8") if isinstance(body, str) else body

    response = MagicMock()
    response.status = status
    response.headers = {"content-type": content_type} if content_type else {}
    response.charset = charset
    response.text = AsyncMock(return_value=body_bytes.decode("utf-8", errors="replace"))

    async def iter_chunked(size):
        for start in range(0, len(body_bytes), size):
            yield body_bytes[start:start + size]

    response.content.iter_chunked = iter_chunked
    return response


def as_context(response):
    """Wrap a response so it can be used with `async with session.get(...)`."""
    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=response)
    context.__aexit__ = AsyncMock(return_value=False)
    return context


def drain(frontier):
    """Pop every waiting entry off a frontier, oldest first."""
    entries = []
    entry = frontier.get_nowait()
    while entry is not None:
        entries.append(entry)
        entry = frontier.get_nowait()
    return entries


class FakeWeb:
    """
    In-memory web served through a mock aiohttp session.

    Each URL maps to a response spec (status, body, content_type), an
    exception to raise, or a list of those consumed one per request.
    Unknown URLs answer 404.
    """

    def __init__(self):
        self.pages = {}
        self.requests = []

    def add_page(self, url, html="", status=200, content_type="text/html; charset=utf-8"):
        self.pages[url] = (status, html, content_type)

    def add_sequence(self, url, specs):
        self.pages[url] = list(specs)

    def add_robots(self, origin, text):
        self.pages[f"{origin}/robots.txt"] = (200, text, "text/plain")

    def get(self, url, **kwargs):
        self.requests.append(url)
        spec = self.pages.get(url, (404, "", "text/html"))

        if isinstance(spec, list):
            spec = spec.pop(0) if len(spec) > 1 else spec[0]
        if isinstance(spec, BaseException):
            raise spec

        status, body, content_type = spec
        return as_context(make_response(status, body, content_type))

    @property
    def page_requests(self):
        return [url for url in self.requests if not url.endswith("/robots.txt")]

    @property
    def robots_requests(self):
        return [url for url in self.requests if url.endswith("/robots.txt")]


class RecordingObserver(CrawlObserver):
    """Collects crawl events for assertions."""

    def __init__(self):
        self.crawled_urls = []
        self.blocked_urls = []
        self.errors = []

    def crawled(self, url, depth):
        self.crawled_urls.append((url, depth))

    def blocked(self, url):
        self.blocked_urls.append(url)

    def fetch_error(self, url, status_or_message):
        self.errors.append((url, status_or_message))


@pytest.fixture
def fake_web():
    return FakeWeb()


@pytest.fixture
def mock_session(fake_web):
    """Mock aiohttp ClientSession backed by fake_web"""
    session = MagicMock()
    session.get.side_effect = fake_web.get
    session.close = AsyncMock()
    return session


@pytest.fixture
def observer():
    return RecordingObserver()


@pytest.fixture
def fast_config():
    """Crawler settings without delays, rooted at https://x.test/"""
    return CrawlerConfig(
        start_url="https://x.test/",
        user_agent="TestBot/1.0",
        max_depth=2,
        max_retries=3,
        retry_delay_millis=0,
        domain_delay_millis=0,
        respect_robots_txt=True,
        same_domain_only=True,
        stats_interval_seconds=60,
    )
