"""
HTML Fetcher
Single-shot HTTP GET with a fixed browser user agent.

Returns a PageObservation with the post-redirect URL, status, body and cheap
DOM signals. Non-2xx responses are observations, not errors; only transport
failures raise FetchError. Retrying is left to the caller.
"""

import logging
import re
from typing import Optional
from urllib.parse import urlparse

import cloudscraper
from bs4 import BeautifulSoup

from .exceptions import FetchError
from .models import DomSignals, FetchMode, PageObservation

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    'Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 '
    '(KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36'
)

_JSON_LD_RE = re.compile(
    r'<script[^>]+type\s*=\s*["\']application/ld\+json["\']',
    re.IGNORECASE
)


def compute_dom_signals(html: str) -> DomSignals:
    """Link/image counts plus a JSON-LD presence hint (not a parse guarantee)"""
    if not html:
        return DomSignals(num_links=0, num_images=0, has_json_ld=False)
    soup = BeautifulSoup(html, 'lxml')
    return DomSignals(
        num_links=len(soup.find_all('a')),
        num_images=len(soup.find_all('img')),
        has_json_ld=bool(_JSON_LD_RE.search(html)),
    )


class HTMLFetcher:
    """Fetches pages over HTTP with a cloudscraper session"""

    def __init__(
        self,
        timeout: float = 30.0,
        user_agent: Optional[str] = None
    ):
        """
        Initialize HTML Fetcher

        Args:
            timeout: Request timeout in seconds (connect + read)
            user_agent: Override for the fixed user agent
        """
        self.timeout = timeout
        self.user_agent = user_agent or DEFAULT_USER_AGENT
        self.session = None
        self.request_count = 0

        self._create_session()

    def _create_session(self) -> None:
        """Create CloudScraper session with browser-like headers"""
        self.session = cloudscraper.create_scraper(
            browser={
                'browser': 'chrome',
                'platform': 'darwin',
                'mobile': False
            }
        )
        self.session.headers.update({
            'User-Agent': self.user_agent,
            'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8',
            'Accept-Language': 'en-US,en;q=0.5',
            'Accept-Encoding': 'gzip, deflate, br',
            'Connection': 'keep-alive',
            'Upgrade-Insecure-Requests': '1',
        })

    def fetch(self, url: str) -> PageObservation:
        """
        Fetch a URL, following redirects to completion

        Args:
            url: Target URL to fetch

        Returns:
            PageObservation (mode=HTTP); html may be empty

        Raises:
            FetchError: if the HTTP call itself fails
        """
        self.request_count += 1
        logger.info(f" Fetching: {url[:80]}..." if len(url) > 80 else f" Fetching: {url}")

        try:
            response = self.session.get(
                url,
                timeout=self.timeout,
                allow_redirects=True,
                headers={'Referer': _origin(url)}
            )
        except Exception as e:
            logger.error(f" Fetch failed for {url}: {str(e)[:100]}")
            raise FetchError(url, str(e)) from e

        html = response.text or ''
        if 200 <= response.status_code < 300:
            logger.info(f" Success: {response.status_code} ({len(html)} bytes)")
        else:
            logger.warning(f" Response: {response.status_code} ({len(html)} bytes)")

        return PageObservation(
            url=response.url or url,
            status=response.status_code,
            html=html,
            dom_signals=compute_dom_signals(html),
            mode=FetchMode.HTTP,
        )

    def close(self) -> None:
        """Close the session"""
        if self.session:
            self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def _origin(url: str) -> str:
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}" if parsed.netloc else url
