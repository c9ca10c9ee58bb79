"""
HTML Cleaner for LLM prompts
Strips non-content markup and non-semantic attributes so a page fits the
model's context window, then truncates to a bounded size.
"""

import logging
import re
from typing import Any, Dict

from bs4 import BeautifulSoup, Comment

logger = logging.getLogger(__name__)

DEFAULT_MAX_CHARS = 80_000  # ~20k tokens


class HTMLCleaner:
    """
    Reduces HTML to the parts an extraction model needs

    - Remove noise tags: scripts, styles, embeds, head metadata
    - Keep only attributes that carry data (links, images, microdata)
    - Prefer the main content region when the page marks one
    - Minify whitespace, then truncate
    """

    REMOVE_TAGS = [
        'script',
        'style',
        'noscript',
        'iframe',
        'svg',
        'link',
        'meta',
        'head',
    ]

    KEEP_ATTRIBUTES = {
        'href',
        'src',
        'alt',
        'title',
        'data-price',
        'data-sku',
        'itemprop',
        'itemtype',
    }

    MAIN_CONTENT_SELECTOR = 'main, #main, .main, [role="main"]'

    def __init__(self, max_chars: int = DEFAULT_MAX_CHARS):
        self.max_chars = max_chars
        self.original_size = 0
        self.cleaned_size = 0

    def clean(self, html: str) -> Dict[str, Any]:
        """
        Clean HTML for extraction

        Args:
            html: Raw HTML content

        Returns:
            Dict with 'html', 'original_size', 'cleaned_size', 'truncated' keys
        """
        self.original_size = len(html or '')
        soup = BeautifulSoup(html or '', 'lxml')

        self._remove_noise_tags(soup)
        self._remove_comments(soup)
        self._strip_attributes(soup)

        main = soup.select_one(self.MAIN_CONTENT_SELECTOR)
        region = main or soup.body or soup
        cleaned = self._minify_html(region.decode_contents())

        truncated = len(cleaned) > self.max_chars
        if truncated:
            cleaned = cleaned[:self.max_chars]
        self.cleaned_size = len(cleaned)

        logger.debug(
            f"   Cleaned HTML: {self.original_size:,} -> {self.cleaned_size:,} chars"
            f"{' (truncated)' if truncated else ''}"
        )
        return {
            'html': cleaned,
            'original_size': self.original_size,
            'cleaned_size': self.cleaned_size,
            'truncated': truncated,
        }

    def _remove_noise_tags(self, soup: BeautifulSoup) -> None:
        for tag in soup.find_all(self.REMOVE_TAGS):
            tag.decompose()

    def _remove_comments(self, soup: BeautifulSoup) -> None:
        for comment in soup.find_all(string=lambda text: isinstance(text, Comment)):
            comment.extract()

    def _strip_attributes(self, soup: BeautifulSoup) -> None:
        for tag in soup.find_all(True):
            if tag.attrs:
                tag.attrs = {k: v for k, v in tag.attrs.items() if k in self.KEEP_ATTRIBUTES}

    def _minify_html(self, html: str) -> str:
        html = re.sub(r'>\s+<', '><', html)
        html = re.sub(r'\s+', ' ', html)
        return html.strip()

