"""
HTML parser for extracting links from fetched pages.
"""

import re
import logging
from typing import List, Optional
from urllib.parse import urljoin
from dataclasses import dataclass, field
from bs4 import BeautifulSoup

from .url_filter import normalize_url


@dataclass
class ParsedContent:
    """Links and title extracted from one page."""
    url: str
    title: Optional[str] = None
    links: List[str] = field(default_factory=list)
    base_url: Optional[str] = None


class ContentParser:
    """
    Parses HTML content into absolute, normalized links.

    Relative hrefs are resolved against the page URL, or against a
    <base href> element when the page declares one.
    """

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self.whitespace_pattern = re.compile(r'\s+')

    def parse(self, url: str, html_content: str) -> ParsedContent:
        """
        Parse HTML content and extract links.

        Args:
            url: The URL of the page
            html_content: Raw HTML content

        Returns:
            ParsedContent with the page's links in document order, without duplicates
        """
        soup = BeautifulSoup(html_content, 'lxml')
        parsed_content = ParsedContent(url=url)

        self._extract_title(soup, parsed_content)
        base_url = self._extract_base_url(soup, url)
        parsed_content.base_url = base_url
        parsed_content.links = self._extract_links(soup, base_url)

        self.logger.debug(f"Parsed {url}: {len(parsed_content.links)} links")
        return parsed_content

    def _extract_title(self, soup: BeautifulSoup, parsed_content: ParsedContent):
        title_tag = soup.find('title')
        if title_tag:
            parsed_content.title = self.whitespace_pattern.sub(' ', title_tag.get_text()).strip()

    def _extract_base_url(self, soup: BeautifulSoup, page_url: str) -> str:
        base_tag = soup.find('base', href=True)
        if base_tag and base_tag['href'].strip():
            return urljoin(page_url, base_tag['href'].strip())
        return page_url

    def _extract_links(self, soup: BeautifulSoup, base_url: str) -> List[str]:
        """Resolve every <a href> against the base URL."""
        links = []
        seen = set()

        for link in soup.find_all('a', href=True):
            href = link['href'].strip()
            if not href or href.startswith('#'):
                continue

            try:
                absolute_url = normalize_url(urljoin(base_url, href))
            except ValueError:
                self.logger.debug(f"Ignoring malformed href: {href!r}")
                continue

            if absolute_url not in seen:
                seen.add(absolute_url)
                links.append(absolute_url)

        return links
