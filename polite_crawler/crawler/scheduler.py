"""
Crawler scheduler that drives the breadth-first crawl loop.
"""

import asyncio
import logging
import time
from typing import Dict, List, Optional
from dataclasses import dataclass

from .url_frontier import URLFrontier, FrontierEntry
from .url_filter import UrlFilter, extract_host, is_valid_url, normalize_url
from .fetcher import WebFetcher, build_backoff
from .parser import ContentParser, ParsedContent
from .politeness import PolitenessScheduler
from .robots import RobotsPolicyCache
from .events import CrawlObserver, LoggingObserver
from ..exceptions import InvalidSeedURLError
from ..utils.config import CrawlerConfig


@dataclass
class CrawlStats:
    """Statistics for crawl operations."""
    start_time: float
    urls_crawled: int = 0
    robots_blocked: int = 0
    fetch_errors: int = 0
    errors: int = 0
    links_enqueued: int = 0
    links_skipped: int = 0
    total_bytes_downloaded: int = 0
    average_response_time: float = 0.0
    fetches: int = 0
    urls_in_queue: int = 0

    @property
    def elapsed_time(self) -> float:
        return time.time() - self.start_time

    @property
    def pages_per_minute(self) -> float:
        elapsed_minutes = self.elapsed_time / 60
        return self.urls_crawled / elapsed_minutes if elapsed_minutes > 0 else 0


class CrawlerScheduler:
    """
    Coordinates the crawl components for one run.

    Each frontier entry goes through the politeness wait, the robots.txt
    gate, the fetch and link expansion before its worker takes the next
    one. With a single worker (the default) this is a strict breadth-first
    traversal.
    """

    def __init__(self, config: CrawlerConfig, observer: Optional[CrawlObserver] = None,
                 fetcher: Optional[WebFetcher] = None,
                 robots: Optional[RobotsPolicyCache] = None,
                 parser: Optional[ContentParser] = None,
                 politeness: Optional[PolitenessScheduler] = None,
                 monitor=None):
        self.config = config
        self.logger = logging.getLogger(__name__)
        self.observer = observer or LoggingObserver()
        self.monitor = monitor

        # Components
        self.fetcher = fetcher
        self.robots = robots
        self.parser = parser or ContentParser()
        self.politeness = politeness or PolitenessScheduler(config.domain_delay)
        self.frontier: Optional[URLFrontier] = None
        self.url_filter: Optional[UrlFilter] = None

        # Crawl state
        self.stats = CrawlStats(start_time=time.time())
        self.is_running = False
        self.workers: List[asyncio.Task] = []
        self.max_depth = config.max_depth
        self._stop_event = asyncio.Event()
        self._active_workers = 0
        self._initialized = False

    async def initialize(self):
        """Create the HTTP session and the components that depend on it."""
        if self.fetcher is None:
            self.fetcher = WebFetcher(
                user_agent=self.config.user_agent,
                request_timeout=self.config.request_timeout,
                max_retries=self.config.max_retries,
                backoff=build_backoff(self.config.retry_backoff, self.config.retry_delay),
                max_concurrent_requests=self.config.max_concurrent_requests,
                max_content_bytes=self.config.max_content_bytes
            )
        await self.fetcher.start()

        if self.robots is None and self.config.respect_robots_txt:
            self.robots = RobotsPolicyCache(
                self.fetcher.session,
                user_agent=self.config.user_agent,
                timeout=self.config.robots_timeout,
                failure_policy=self.config.robots_failure_policy
            )

        self._initialized = True
        self.logger.info("Crawler scheduler initialized")

    async def start_crawling(self, max_pages: Optional[int] = None,
                             max_duration: Optional[float] = None) -> CrawlStats:
        """
        Crawl from the configured start URL until the frontier is drained.

        Args:
            max_pages: Stop after this many pages were crawled (defaults to config.max_pages)
            max_duration: Stop after this many seconds (None for unlimited)

        Raises:
            InvalidSeedURLError: if the start URL is not a crawlable address
        """
        if self.is_running:
            self.logger.warning("Crawler is already running")
            return self.stats

        seed_url = normalize_url(self.config.start_url)
        if not is_valid_url(seed_url):
            raise InvalidSeedURLError(self.config.start_url)

        if not self._initialized:
            await self.initialize()

        self.is_running = True
        self._stop_event.clear()
        self.stats = CrawlStats(start_time=time.time())
        self.frontier = URLFrontier()
        self.url_filter = UrlFilter(self.config, self.frontier.visited, seed_url=seed_url)
        self.frontier.add(FrontierEntry(url=seed_url, depth=0))

        max_pages = max_pages or self.config.max_pages
        num_workers = self.config.max_concurrent_requests

        self.workers = [
            asyncio.create_task(self._worker(f"worker-{i}", max_pages))
            for i in range(num_workers)
        ]
        stats_task = asyncio.create_task(self._stats_reporter())
        drained_task = asyncio.create_task(self.frontier.join())
        stop_task = asyncio.create_task(self._stop_event.wait())

        self.logger.info(f"Started crawling {seed_url} with {num_workers} worker(s), max depth {self.max_depth}")

        try:
            done, _ = await asyncio.wait(
                [drained_task, stop_task],
                timeout=max_duration,
                return_when=asyncio.FIRST_COMPLETED
            )
            if not done:
                self.logger.info(f"Reached max duration: {max_duration} seconds")
            elif stop_task in done:
                self.logger.info("Crawl stopped before the frontier was drained")
            else:
                self.logger.info("Frontier drained")
        finally:
            self.is_running = False
            for task in (drained_task, stop_task, stats_task):
                task.cancel()
            await asyncio.gather(drained_task, stop_task, stats_task, return_exceptions=True)
            await self._cleanup_workers()

        self._log_final_stats()
        return self.stats

    async def _worker(self, worker_id: str, max_pages: Optional[int] = None):
        """Worker coroutine that processes entries from the frontier."""
        self.logger.debug(f"Worker {worker_id} started")

        try:
            while True:
                entry = await self.frontier.get()
                self._active_workers += 1
                try:
                    if self._stop_event.is_set():
                        continue

                    await self._process_entry(entry, worker_id)

                    if max_pages and self.stats.urls_crawled >= max_pages:
                        self.logger.info(f"Reached max pages limit: {max_pages}")
                        self._stop_event.set()

                except Exception as e:
                    self.logger.error(f"Worker {worker_id} error on {entry.url}: {e}", exc_info=True)
                    self.stats.errors += 1
                finally:
                    self._active_workers -= 1
                    self.frontier.task_done()

        except asyncio.CancelledError:
            self.logger.debug(f"Worker {worker_id} cancelled")
            raise

    async def _process_entry(self, entry: FrontierEntry, worker_id: str):
        """Process a single frontier entry."""
        if entry.depth > self.max_depth:
            self.logger.debug(f"Skipping URL beyond max depth: {entry.url}")
            return

        host = extract_host(entry.url)
        await self.politeness.wait_for_turn(host)

        if self.config.respect_robots_txt and self.robots is not None:
            if not await self.robots.is_allowed(entry.url):
                self.stats.robots_blocked += 1
                self.observer.blocked(entry.url)
                return

        result = await self.fetcher.fetch(entry.url)
        self._record_response_time(result.fetch_time)

        if not result.ok:
            if self.fetcher.stopped:
                return
            self.stats.fetch_errors += 1
            self.observer.fetch_error(entry.url, result.error or result.status_code)
            return

        self.stats.urls_crawled += 1
        self.stats.total_bytes_downloaded += len(result.content.encode('utf-8'))
        self.observer.crawled(entry.url, entry.depth)

        parsed_content = self.parser.parse(entry.url, result.content)
        self._queue_new_urls(parsed_content, entry.depth + 1)
        self.logger.debug(f"{worker_id} processed {entry.url}")

    def _queue_new_urls(self, parsed_content: ParsedContent, depth: int):
        """Queue links that pass the URL filter at the given depth."""
        if depth > self.max_depth:
            return

        added_count = 0
        for link in parsed_content.links:
            if self.url_filter.accept(link, depth):
                entry = FrontierEntry(url=link, depth=depth, parent_url=parsed_content.url)
                if self.frontier.add(entry):
                    added_count += 1
            else:
                self.stats.links_skipped += 1

        self.stats.links_enqueued += added_count
        if added_count:
            self.logger.debug(f"Queued {added_count} new URLs from {parsed_content.url}")

    def _record_response_time(self, response_time: float):
        self.stats.fetches += 1
        self.stats.average_response_time = (
            (self.stats.average_response_time * (self.stats.fetches - 1) + response_time)
            / self.stats.fetches
        )
        if self.monitor:
            self.monitor.observe_response_time(response_time)

    async def _stats_reporter(self):
        """Periodically log crawl statistics."""
        while self.is_running:
            await asyncio.sleep(self.config.stats_interval_seconds)
            self._log_current_stats()

    def _log_current_stats(self):
        """Log current crawl statistics."""
        self.stats.urls_in_queue = len(self.frontier) if self.frontier else 0

        if self.monitor:
            self.monitor.update_queue_size(self.stats.urls_in_queue)
            self.monitor.update_active_workers(self._active_workers)

        self.logger.info(
            f"Crawl Progress: "
            f"Crawled={self.stats.urls_crawled}, "
            f"Queued={self.stats.urls_in_queue}, "
            f"Blocked={self.stats.robots_blocked}, "
            f"FetchErrors={self.stats.fetch_errors}, "
            f"Rate={self.stats.pages_per_minute:.1f} pages/min, "
            f"AvgTime={self.stats.average_response_time:.2f}s"
        )

    def _log_final_stats(self):
        """Log final crawl statistics."""
        frontier_stats = self.frontier.get_stats() if self.frontier else {}

        self.logger.info("=== CRAWL COMPLETED ===")
        self.logger.info(f"Total URLs crawled: {self.stats.urls_crawled}")
        self.logger.info(f"Blocked by robots.txt: {self.stats.robots_blocked}")
        self.logger.info(f"Fetch errors: {self.stats.fetch_errors}")
        self.logger.info(f"Unexpected errors: {self.stats.errors}")
        self.logger.info(f"Total time: {self.stats.elapsed_time:.2f} seconds")
        self.logger.info(f"Average rate: {self.stats.pages_per_minute:.1f} pages/min")
        self.logger.info(f"Data downloaded: {self.stats.total_bytes_downloaded / 1024 / 1024:.1f} MB")
        self.logger.info(f"URLs remaining in queue: {frontier_stats.get('total_queued', 0)}")
        self.logger.info(f"Unique URLs seen: {frontier_stats.get('total_seen', 0)}")
        self.logger.info(f"Politeness wait: {self.politeness.total_wait_time:.1f} seconds")
        if self.fetcher:
            self.logger.info(f"Fetcher stats: {self.fetcher.get_stats()}")
        if self.robots:
            self.logger.info(f"Robots stats: {self.robots.get_stats()}")

    async def stop_crawling(self):
        """Stop the crawling process: abort retry waits and cancel the workers."""
        self.logger.info("Stopping crawler...")
        if self.fetcher:
            self.fetcher.stop()
        self._stop_event.set()
        await self._cleanup_workers()

    async def _cleanup_workers(self):
        """Cancel and cleanup worker tasks."""
        if self.workers:
            for worker in self.workers:
                if not worker.done():
                    worker.cancel()

            await asyncio.gather(*self.workers, return_exceptions=True)
            self.workers.clear()

    async def close(self):
        """Stop the crawl if needed and release the HTTP session."""
        if self.is_running:
            await self.stop_crawling()

        if self.fetcher:
            await self.fetcher.close()

        self.logger.info("Crawler scheduler closed")

    def get_stats(self) -> Dict:
        """Get current crawl statistics."""
        return {
            'urls_crawled': self.stats.urls_crawled,
            'robots_blocked': self.stats.robots_blocked,
            'fetch_errors': self.stats.fetch_errors,
            'errors': self.stats.errors,
            'links_enqueued': self.stats.links_enqueued,
            'links_skipped': self.stats.links_skipped,
            'elapsed_time': self.stats.elapsed_time,
            'pages_per_minute': self.stats.pages_per_minute,
            'average_response_time': self.stats.average_response_time,
            'total_bytes_downloaded': self.stats.total_bytes_downloaded,
            'urls_in_queue': len(self.frontier) if self.frontier else 0,
            'is_running': self.is_running
        }
