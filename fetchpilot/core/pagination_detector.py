"""
Next-page Link Discovery

Finds "next page" links either with a selector supplied by the extraction
strategy or with generic heuristics (rel="next", pagination containers,
"Next"-style anchor text). Every href is resolved against the page URL and
the result is deduplicated in document order.
"""

import logging
import re
from typing import List, Optional
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup, Tag
from soupsieve import SelectorSyntaxError

logger = logging.getLogger(__name__)


class PaginationDetector:
    """Deterministic next-link discovery"""

    NEXT_SELECTORS = [
        'a[rel~="next"]',
        'link[rel~="next"]',
        '.pagination a.next',
        '[class*="pagination"] a[class*="next"]',
        '[class*="pager"] a[class*="next"]',
        'a[aria-label*="next" i]',
        'a.next',
        'a.pagination-next',
    ]

    NEXT_TEXT_RE = re.compile(r'\bnext\b|^\s*(?:›|»|→)\s*$', re.IGNORECASE)

    def find_next_links(self, html: str, base_url: str, selector: Optional[str] = None) -> List[str]:
        """
        Discover next-page URLs

        Args:
            html: Page HTML
            base_url: Page URL for resolving relative hrefs
            selector: Strategy-supplied selector; heuristics are used when absent or invalid

        Returns:
            Absolute, deduplicated URLs
        """
        if not html:
            return []
        soup = BeautifulSoup(html, 'lxml')

        hrefs = None
        if selector:
            try:
                hrefs = [self._href_of(el) for el in soup.select(selector)]
            except SelectorSyntaxError as e:
                logger.warning(f" Invalid pagination selector '{selector}': {e}; using heuristics")
        if hrefs is None:
            hrefs = self._heuristic_hrefs(soup)

        links = []
        seen = set()
        for href in hrefs:
            url = self._resolve(href, base_url)
            if url and url not in seen:
                seen.add(url)
                links.append(url)

        if links:
            logger.info(f" Pagination: {len(links)} next-page link(s) found")
        return links

    def _heuristic_hrefs(self, soup: BeautifulSoup) -> List[Optional[str]]:
        hrefs = []
        for css in self.NEXT_SELECTORS:
            hrefs.extend(self._href_of(el) for el in soup.select(css))
        for anchor in soup.find_all('a', href=True):
            if self.NEXT_TEXT_RE.search(anchor.get_text(' ', strip=True)):
                hrefs.append(anchor.get('href'))
        return hrefs

    @staticmethod
    def _href_of(element: Tag) -> Optional[str]:
        href = element.get('href')
        if href:
            return href
        # Selector matched a wrapper (e.g. li.next); use its first link
        anchor = element.find('a', href=True)
        return anchor.get('href') if anchor else None

    @staticmethod
    def _resolve(href: Optional[str], base_url: str) -> Optional[str]:
        if not href:
            return None
        href = href.strip()
        if not href or href.startswith(('#', 'javascript:', 'mailto:', 'tel:')):
            return None
        try:
            url = urljoin(base_url, href)
        except ValueError:
            return None
        parsed = urlparse(url)
        if parsed.scheme not in ('http', 'https') or not parsed.netloc:
            return None
        return url


def find_next_links(html: str, base_url: str, selector: Optional[str] = None) -> List[str]:
    return PaginationDetector().find_next_links(html, base_url, selector)
