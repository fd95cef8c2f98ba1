"""
Exception types raised by the crawler.
"""


class CrawlerError(Exception):
    """Base class for crawler errors."""
    pass


class ConfigError(CrawlerError, ValueError):
    """Raised when the configuration is missing or invalid."""
    pass


class InvalidSeedURLError(CrawlerError, ValueError):
    """Raised when the seed URL cannot be crawled."""

    def __init__(self, url: str):
        super().__init__(f"Invalid seed URL: {url!r}")
        self.url = url
