"""
URL Frontier implementation for managing URLs to crawl.
Breadth-first queue of (URL, depth) entries with enqueue-time deduplication.
"""

import asyncio
import logging
import time
from typing import Dict, Set, Optional, List
from dataclasses import dataclass, field


@dataclass
class FrontierEntry:
    """A URL waiting to be crawled and the depth it was discovered at."""
    url: str
    depth: int
    parent_url: Optional[str] = None
    discovered_time: float = field(default_factory=time.time)


class VisitedSet:
    """
    URLs already enqueued or visited during one crawl run.

    The set only grows. add_if_absent() has no await point, so check-and-insert
    is atomic with respect to other coroutines on the same event loop.
    """

    def __init__(self):
        self._urls: Set[str] = set()

    def add_if_absent(self, url: str) -> bool:
        """Add url and return True, or return False if it was already present."""
        if url in self._urls:
            return False
        self._urls.add(url)
        return True

    def __contains__(self, url: str) -> bool:
        return url in self._urls

    def __len__(self) -> int:
        return len(self._urls)


class URLFrontier:
    """
    FIFO work queue of frontier entries shared by the crawl workers.

    Every URL enters at most once per run: add() consults the visited set
    and marks the URL before queueing it.
    """

    def __init__(self, visited: Optional[VisitedSet] = None):
        self.visited = visited if visited is not None else VisitedSet()
        self.logger = logging.getLogger(__name__)
        self._queue: asyncio.Queue = asyncio.Queue()
        self._enqueued_by_depth: Dict[int, int] = {}

    def add(self, entry: FrontierEntry) -> bool:
        """
        Add an entry to the frontier.
        Returns True if it was queued, False if the URL was already seen.
        """
        if not self.visited.add_if_absent(entry.url):
            return False

        self._queue.put_nowait(entry)
        self._enqueued_by_depth[entry.depth] = self._enqueued_by_depth.get(entry.depth, 0) + 1
        self.logger.debug(f"Added URL to frontier (depth {entry.depth}): {entry.url}")
        return True

    def add_many(self, entries: List[FrontierEntry]) -> int:
        """Add multiple entries. Returns count of queued entries."""
        return sum(1 for entry in entries if self.add(entry))

    async def get(self) -> FrontierEntry:
        """Wait for and remove the oldest entry."""
        return await self._queue.get()

    def get_nowait(self) -> Optional[FrontierEntry]:
        """Remove the oldest entry, or return None if the frontier is empty."""
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None

    def task_done(self):
        """Mark a popped entry as fully processed."""
        self._queue.task_done()

    async def join(self):
        """Wait until every queued entry has been popped and processed."""
        await self._queue.join()

    def __len__(self) -> int:
        return self._queue.qsize()

    def get_stats(self) -> Dict[str, int]:
        """Get frontier statistics."""
        return {
            'total_queued': self._queue.qsize(),
            'total_seen': len(self.visited),
            'max_depth_reached': max(self._enqueued_by_depth, default=0),
        }
