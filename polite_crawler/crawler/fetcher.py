"""
Web page fetcher with bounded retries and pluggable backoff.
"""

import asyncio
import aiohttp
import logging
import time
from typing import Optional, Dict
from dataclasses import dataclass
from aiohttp import ClientSession, ClientTimeout, ClientError


@dataclass
class FetchResult:
    """Result of a fetch operation."""
    url: str
    status_code: int
    content: Optional[str] = None
    headers: Optional[Dict[str, str]] = None
    error: Optional[str] = None
    fetch_time: float = 0.0
    content_type: Optional[str] = None
    encoding: Optional[str] = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.content is not None


class BackoffStrategy:
    """Decides how long to wait before the next attempt."""

    def delay(self, attempt: int) -> float:
        """Seconds to wait after the given (1-based) failed attempt."""
        raise NotImplementedError


class FixedBackoff(BackoffStrategy):
    """Waits the same amount after every failed attempt."""

    def __init__(self, delay_seconds: float):
        self.delay_seconds = delay_seconds

    def delay(self, attempt: int) -> float:
        return self.delay_seconds


class ExponentialBackoff(BackoffStrategy):
    """Doubles the wait after each failed attempt, up to max_delay."""

    def __init__(self, base_delay: float, factor: float = 2.0, max_delay: float = 60.0):
        self.base_delay = base_delay
        self.factor = factor
        self.max_delay = max_delay

    def delay(self, attempt: int) -> float:
        return min(self.base_delay * self.factor ** (attempt - 1), self.max_delay)


def build_backoff(name: str, base_delay: float) -> BackoffStrategy:
    """Create the backoff strategy named in the configuration."""
    if name == 'exponential':
        return ExponentialBackoff(base_delay)
    return FixedBackoff(base_delay)


def is_transient_status(status: int) -> bool:
    """Rate limiting and server errors are worth retrying."""
    return status == 429 or 500 <= status < 600


class WebFetcher:
    """
    Fetches web pages with retries on transient failures.

    HTTP 200 returns at once. 429, 5xx and network errors are retried up to
    max_retries attempts with the backoff delay between attempts. Any other
    status fails immediately.
    """

    def __init__(self, user_agent: str, request_timeout: float = 5.0, max_retries: int = 3,
                 backoff: Optional[BackoffStrategy] = None, max_concurrent_requests: int = 1,
                 max_content_bytes: int = 10 * 1024 * 1024,
                 session: Optional[ClientSession] = None):
        self.user_agent = user_agent
        self.request_timeout = request_timeout
        self.max_retries = max_retries
        self.backoff = backoff or FixedBackoff(2.0)
        self.max_concurrent_requests = max_concurrent_requests
        self.max_content_bytes = max_content_bytes

        self.logger = logging.getLogger(__name__)

        # Session management
        self.session: Optional[ClientSession] = session
        self._owns_session = session is None
        self.semaphore = asyncio.Semaphore(max_concurrent_requests)
        self._stop_event = asyncio.Event()

        # Statistics
        self.stats = {
            'total_requests': 0,
            'successful_requests': 0,
            'failed_requests': 0,
            'retries': 0,
            'total_bytes_downloaded': 0
        }

    async def __aenter__(self):
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def start(self):
        """Initialize the fetcher session."""
        if self.session is None:
            timeout = ClientTimeout(
                total=None,
                sock_connect=self.request_timeout,
                sock_read=self.request_timeout
            )
            headers = {'User-Agent': self.user_agent}

            self.session = aiohttp.ClientSession(
                timeout=timeout,
                headers=headers,
                connector=aiohttp.TCPConnector(
                    limit=self.max_concurrent_requests * 2,
                    limit_per_host=max(1, self.max_concurrent_requests),
                    ttl_dns_cache=300,
                    use_dns_cache=True
                )
            )
            self._owns_session = True
            self.logger.info("WebFetcher session started")

    async def close(self):
        """Close the fetcher session."""
        if self.session and self._owns_session:
            await self.session.close()
            self.session = None
            self.logger.info("WebFetcher session closed")

    def stop(self):
        """Abort pending retry waits; in-progress fetches return a failure."""
        self._stop_event.set()

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    async def fetch(self, url: str) -> FetchResult:
        """
        Fetch a single URL.

        Args:
            url: The URL to fetch

        Returns:
            FetchResult with content on success, or the last status/error on failure
        """
        start_time = time.time()
        status_code = 0
        error_msg = "Not attempted"
        attempt = 0

        async with self.semaphore:
            while attempt < self.max_retries:
                if self.stopped:
                    error_msg = "Fetcher stopped"
                    break

                attempt += 1
                self.stats['total_requests'] += 1

                try:
                    async with self.session.get(url) as response:
                        status_code = response.status

                        if status_code == 200:
                            return await self._build_result(url, response, attempt, start_time)

                        if not is_transient_status(status_code):
                            self.logger.warning(f"Non-retriable HTTP error {status_code} for {url}")
                            return self._failure(url, status_code, f"HTTP {status_code}", attempt, start_time)

                        error_msg = f"HTTP {status_code}"
                        self.logger.warning(
                            f"Received HTTP {status_code} for {url}, attempt {attempt}/{self.max_retries}"
                        )

                except asyncio.TimeoutError:
                    status_code = 0
                    error_msg = "Request timeout"
                    self.logger.warning(f"Timeout fetching {url}, attempt {attempt}/{self.max_retries}")

                except ClientError as e:
                    status_code = 0
                    error_msg = f"Client error: {e}"
                    self.logger.warning(
                        f"Network error fetching {url}: {e}, attempt {attempt}/{self.max_retries}"
                    )

                if attempt < self.max_retries and not await self._wait_before_retry(attempt):
                    error_msg = "Fetcher stopped"
                    break

        return self._failure(url, status_code, error_msg, attempt, start_time)

    async def _wait_before_retry(self, attempt: int) -> bool:
        """Sleep for the backoff delay. Returns False if stop() was called meanwhile."""
        if self.stopped:
            return False

        delay = self.backoff.delay(attempt)
        self.stats['retries'] += 1
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return True
        return False

    async def _build_result(self, url: str, response, attempt: int, start_time: float) -> FetchResult:
        headers = dict(response.headers)
        content_type = response.headers.get('content-type', '').lower()

        # Only download text content
        if not self._is_text_content(content_type):
            self.logger.debug(f"Skipping non-text content: {url} ({content_type})")
            return self._failure(url, response.status, "Non-text content type", attempt, start_time,
                                 content_type=content_type)

        content = await self._read_content_safely(response)
        if content is None:
            return self._failure(url, response.status, "Content too large", attempt, start_time,
                                 content_type=content_type)

        self.stats['successful_requests'] += 1
        self.stats['total_bytes_downloaded'] += len(content)
        self.logger.debug(f"Fetched {url}: {response.status} ({len(content)} chars)")

        return FetchResult(
            url=url,
            status_code=response.status,
            content=content,
            headers=headers,
            content_type=content_type,
            encoding=response.charset,
            fetch_time=time.time() - start_time,
            attempts=attempt
        )

    def _failure(self, url: str, status_code: int, error: str, attempt: int, start_time: float,
                 content_type: Optional[str] = None) -> FetchResult:
        self.stats['failed_requests'] += 1
        return FetchResult(
            url=url,
            status_code=status_code,
            error=error,
            content_type=content_type,
            fetch_time=time.time() - start_time,
            attempts=attempt
        )

    def _is_text_content(self, content_type: str) -> bool:
        """Check if content type is text-based."""
        if not content_type:
            # Servers that omit the header usually serve HTML
            return True

        text_types = [
            'text/html',
            'text/plain',
            'text/xml',
            'application/xml',
            'application/xhtml+xml'
        ]

        return any(text_type in content_type for text_type in text_types)

    async def _read_content_safely(self, response) -> Optional[str]:
        """
        Read response content with a size limit.

        Returns:
            Decoded content, or None if the body exceeds max_content_bytes
        """
        content_length = response.headers.get('content-length')
        if content_length and content_length.isdigit() and int(content_length) > self.max_content_bytes:
            self.logger.warning(f"Content too large ({content_length} bytes): {response.url}")
            return None

        content_bytes = b''
        async for chunk in response.content.iter_chunked(8192):
            content_bytes += chunk
            if len(content_bytes) > self.max_content_bytes:
                self.logger.warning(f"Content exceeded size limit during reading: {response.url}")
                return None

        encoding = response.charset or 'utf-8'
        try:
            return content_bytes.decode(encoding)
        except (UnicodeDecodeError, LookupError):
            try:
                return content_bytes.decode('utf-8')
            except UnicodeDecodeError:
                # latin-1 maps every byte
                return content_bytes.decode('latin-1')

    def get_stats(self) -> Dict[str, int]:
        """Get fetcher statistics."""
        return self.stats.copy()
