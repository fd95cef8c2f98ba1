"""
Polite Web Crawler

A breadth-first web crawler that respects robots.txt and per-domain politeness.
"""

__version__ = "1.0.0"
__description__ = "A polite, breadth-first web crawler with robots.txt and rate limiting support"
