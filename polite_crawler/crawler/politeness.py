"""
Per-domain politeness: a minimum delay between two fetches to the same host.
"""

import asyncio
import logging
import time
from typing import Callable, Dict, Optional


class DomainAccessLedger:
    """Maps each host to the monotonic time its last fetch started."""

    def __init__(self):
        self._last_access: Dict[str, float] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def lock_for(self, host: str) -> asyncio.Lock:
        return self._locks.setdefault(host, asyncio.Lock())

    def last_access(self, host: str) -> Optional[float]:
        return self._last_access.get(host)

    def record(self, host: str, timestamp: float):
        self._last_access[host] = timestamp

    def __len__(self) -> int:
        return len(self._last_access)


class PolitenessScheduler:
    """
    Holds each caller until domain_delay seconds have passed since the
    previous fetch to the same host.

    Reading the ledger, sleeping and recording the new access time happen
    under the host's lock, so concurrent workers targeting one host take
    turns.
    """

    def __init__(self, domain_delay: float, ledger: Optional[DomainAccessLedger] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.domain_delay = domain_delay
        self.ledger = ledger if ledger is not None else DomainAccessLedger()
        self.clock = clock
        self.logger = logging.getLogger(__name__)
        self.total_wait_time = 0.0

    async def wait_for_turn(self, host: str) -> float:
        """Wait for the host's turn and record the access. Returns seconds waited."""
        async with self.ledger.lock_for(host):
            waited = 0.0
            last_access = self.ledger.last_access(host)
            if last_access is not None:
                remaining = self.domain_delay - (self.clock() - last_access)
                if remaining > 0:
                    self.logger.debug(f"Politeness delay for {host}: sleeping {remaining:.3f}s")
                    await asyncio.sleep(remaining)
                    waited = remaining

            self.ledger.record(host, self.clock())
            self.total_wait_time += waited
            return waited
