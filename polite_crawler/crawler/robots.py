"""
robots.txt parsing and per-host policy cache.
"""

import asyncio
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Dict, Pattern, Tuple
from urllib.parse import urlparse

from aiohttp import ClientSession, ClientTimeout, ClientError

from .url_filter import extract_host


_USER_AGENT_LINE = re.compile(r'^User-agent:\s*(.*)$', re.IGNORECASE)
_DISALLOW_LINE = re.compile(r'^Disallow:\s*(.*)$', re.IGNORECASE)


@dataclass(frozen=True)
class RobotsRules:
    """Disallow rules collected from the '*' section of one host's robots.txt."""
    disallow_patterns: Tuple[Pattern, ...] = ()
    fetched_at: float = field(default_factory=time.time)

    @classmethod
    def allow_all(cls) -> 'RobotsRules':
        return cls()

    @classmethod
    def deny_all(cls) -> 'RobotsRules':
        return cls(disallow_patterns=(compile_rule('/'),))

    def is_allowed(self, path: str) -> bool:
        """Check a URL path (with query) against the disallow rules."""
        return not any(pattern.match(path) for pattern in self.disallow_patterns)


def compile_rule(path: str) -> Pattern:
    """
    Compile a Disallow value into an anchored prefix pattern.

    '*' matches any run of characters and a trailing '$' anchors the end.
    """
    anchored_end = path.endswith('$')
    if anchored_end:
        path = path[:-1]
    regex = '.*'.join(re.escape(part) for part in path.split('*'))
    return re.compile(regex + ('$' if anchored_end else ''))


def parse_robots_txt(text: str) -> RobotsRules:
    """
    Parse robots.txt text into the rules that apply to every user agent.

    Only directives inside a section whose User-agent value is exactly '*'
    are honored; every other section is ignored.
    """
    patterns = []
    applies = False

    for raw_line in text.splitlines():
        line = raw_line.split('#', 1)[0].strip()
        if not line:
            continue

        ua_match = _USER_AGENT_LINE.match(line)
        if ua_match:
            applies = ua_match.group(1).strip() == '*'
            continue

        if not applies:
            continue

        disallow_match = _DISALLOW_LINE.match(line)
        if disallow_match:
            path = disallow_match.group(1).strip()
            if path:
                patterns.append(compile_rule(path))

    return RobotsRules(disallow_patterns=tuple(patterns))


class RobotsPolicyCache:
    """
    Answers allow/deny for URLs from each host's robots.txt.

    The file is fetched once per host on first use and cached for the run.
    Concurrent first lookups for the same host wait on a single fetch.
    """

    def __init__(self, session: ClientSession, user_agent: str,
                 timeout: float = 3.0, failure_policy: str = 'allow'):
        self.session = session
        self.user_agent = user_agent
        self.timeout = timeout
        self.failure_policy = failure_policy
        self.logger = logging.getLogger(__name__)

        self._rules: Dict[str, RobotsRules] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

        self.stats = {
            'robots_fetched': 0,
            'robots_missing': 0,
            'robots_failures': 0,
            'urls_blocked': 0
        }

    async def is_allowed(self, url: str) -> bool:
        """Check if URL can be fetched according to its host's robots.txt."""
        parsed = urlparse(url)
        host = extract_host(url)
        if not host:
            return True

        rules = await self.get_rules(parsed.scheme or 'http', host)

        path = parsed.path or '/'
        if parsed.query:
            path = f"{path}?{parsed.query}"

        allowed = rules.is_allowed(path)
        if not allowed:
            self.stats['urls_blocked'] += 1
        return allowed

    async def get_rules(self, scheme: str, host: str) -> RobotsRules:
        """Return cached rules for host, fetching robots.txt on first use."""
        rules = self._rules.get(host)
        if rules is not None:
            return rules

        lock = self._locks.setdefault(host, asyncio.Lock())
        async with lock:
            rules = self._rules.get(host)
            if rules is None:
                rules = await self._load_rules(f"{scheme}://{host}/robots.txt", host)
                self._rules[host] = rules
        return rules

    async def _load_rules(self, robots_url: str, host: str) -> RobotsRules:
        try:
            async with self.session.get(
                robots_url,
                timeout=ClientTimeout(total=self.timeout),
                headers={'User-Agent': self.user_agent}
            ) as response:
                if response.status == 200:
                    text = await response.text(errors='replace')
                    rules = parse_robots_txt(text)
                    self.stats['robots_fetched'] += 1
                    self.logger.debug(
                        f"Loaded robots.txt for {host}: {len(rules.disallow_patterns)} disallow rules"
                    )
                    return rules

                if 400 <= response.status < 500:
                    # No robots.txt means no restrictions
                    self.stats['robots_missing'] += 1
                    self.logger.debug(f"No robots.txt for {host} (HTTP {response.status})")
                    return RobotsRules.allow_all()

                return self._on_failure(host, f"HTTP {response.status}")

        except (ClientError, asyncio.TimeoutError, UnicodeDecodeError, re.error) as e:
            return self._on_failure(host, str(e) or type(e).__name__)

    def _on_failure(self, host: str, reason: str) -> RobotsRules:
        self.stats['robots_failures'] += 1
        if self.failure_policy == 'deny':
            self.logger.warning(f"Could not fetch robots.txt for {host} ({reason}); denying host")
            return RobotsRules.deny_all()

        self.logger.warning(f"Could not fetch robots.txt for {host} ({reason}); allowing all")
        return RobotsRules.allow_all()

    def get_stats(self) -> Dict[str, int]:
        """Get robots cache statistics."""
        return {**self.stats, 'hosts_cached': len(self._rules)}
