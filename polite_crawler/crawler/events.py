"""
Crawl event observers.

The engine reports what happens to each URL through an observer rather
than printing: crawled, blocked by robots.txt, or failed to fetch.
"""

import logging
from typing import Iterable, List, Union

from ..utils.logger import get_crawler_logger


class CrawlObserver:
    """Receives crawl events. Subclasses override the events they care about."""

    def crawled(self, url: str, depth: int):
        pass

    def blocked(self, url: str):
        pass

    def fetch_error(self, url: str, status_or_message: Union[int, str]):
        pass


class LoggingObserver(CrawlObserver):
    """Writes crawl events to the crawler log."""

    def __init__(self, name: str = 'polite_crawler.events'):
        self.logger = get_crawler_logger(name)

    def crawled(self, url: str, depth: int):
        self.logger.log_url_event(logging.INFO, url, 'crawled', f"Crawled ({depth}): {url}", depth=depth)

    def blocked(self, url: str):
        self.logger.log_url_event(logging.INFO, url, 'blocked', f"Blocked by robots.txt: {url}")

    def fetch_error(self, url: str, status_or_message: Union[int, str]):
        self.logger.log_url_event(
            logging.WARNING, url, 'fetch_error',
            f"Failed to fetch {url}: {status_or_message}",
            reason=str(status_or_message)
        )


class CompositeObserver(CrawlObserver):
    """
    Fans each event out to several observers.

    A failing observer is logged and skipped so it cannot stop the crawl.
    """

    def __init__(self, observers: Iterable[CrawlObserver] = ()):
        self.observers: List[CrawlObserver] = list(observers)
        self.logger = logging.getLogger(__name__)

    def add(self, observer: CrawlObserver):
        self.observers.append(observer)

    def _dispatch(self, event: str, *args):
        for observer in self.observers:
            try:
                getattr(observer, event)(*args)
            except Exception:
                self.logger.exception(f"Observer {type(observer).__name__} failed on '{event}' event")

    def crawled(self, url: str, depth: int):
        self._dispatch('crawled', url, depth)

    def blocked(self, url: str):
        self._dispatch('blocked', url)

    def fetch_error(self, url: str, status_or_message: Union[int, str]):
        self._dispatch('fetch_error', url, status_or_message)
