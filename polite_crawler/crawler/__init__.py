"""
Web crawler core components.
"""

from .url_frontier import URLFrontier, FrontierEntry, VisitedSet
from .url_filter import UrlFilter, normalize_url, extract_host, is_valid_url
from .robots import RobotsPolicyCache, RobotsRules, parse_robots_txt
from .politeness import PolitenessScheduler, DomainAccessLedger
from .fetcher import WebFetcher, FetchResult, BackoffStrategy, FixedBackoff, ExponentialBackoff
from .parser import ContentParser, ParsedContent
from .events import CrawlObserver, LoggingObserver, CompositeObserver
from .scheduler import CrawlerScheduler, CrawlStats

__all__ = [
    'URLFrontier', 'FrontierEntry', 'VisitedSet',
    'UrlFilter', 'normalize_url', 'extract_host', 'is_valid_url',
    'RobotsPolicyCache', 'RobotsRules', 'parse_robots_txt',
    'PolitenessScheduler', 'DomainAccessLedger',
    'WebFetcher', 'FetchResult', 'BackoffStrategy', 'FixedBackoff', 'ExponentialBackoff',
    'ContentParser', 'ParsedContent',
    'CrawlObserver', 'LoggingObserver', 'CompositeObserver',
    'CrawlerScheduler', 'CrawlStats'
]
