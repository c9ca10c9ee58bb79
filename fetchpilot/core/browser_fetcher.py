"""
Renderer clients
JS-rendering fallback used only when an extraction strategy asks for BROWSER mode.

Two implementations share the BrowserClient interface:
- RemoteBrowserClient posts to a browser worker service and reads back JSON
- PlaywrightBrowserClient drives a local headless Chromium (optional extra)
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Protocol

import requests

from .exceptions import ConfigurationError, RenderError
from .html_fetcher import DEFAULT_USER_AGENT, compute_dom_signals
from .models import DomSignals, FetchMode, PageObservation

logger = logging.getLogger(__name__)

try:
    from playwright.async_api import async_playwright
    PLAYWRIGHT_AVAILABLE = True
except ImportError:
    PLAYWRIGHT_AVAILABLE = False


class BrowserClient(Protocol):
    async def open_page(
        self,
        url: str,
        scroll_times: int = 0,
        scroll_wait_ms: int = 0,
        wait_ms: int = 0
    ) -> PageObservation:
        """Render a page and return its HTML plus DOM counts"""
        ...


class RemoteBrowserClient:
    """Browser worker reachable over HTTP"""

    def __init__(self, worker_url: str, timeout: float = 60.0, session: Optional[requests.Session] = None):
        """
        Initialize Remote Browser Client

        Args:
            worker_url: Endpoint accepting POST {url, scroll, waitMs}
            timeout: Request timeout in seconds (covers navigation and scrolling)
            session: Optional pre-built requests session
        """
        if not worker_url:
            raise ConfigurationError("Remote browser client needs a worker URL")
        self.worker_url = worker_url
        self.timeout = timeout
        self.session = session or requests.Session()

    async def open_page(
        self,
        url: str,
        scroll_times: int = 0,
        scroll_wait_ms: int = 0,
        wait_ms: int = 0
    ) -> PageObservation:
        payload: Dict[str, Any] = {'url': url, 'waitMs': wait_ms}
        if scroll_times > 0:
            payload['scroll'] = {'times': scroll_times, 'waitMs': scroll_wait_ms}

        logger.info(f" Remote render: {url}")
        try:
            response = await asyncio.to_thread(
                self.session.post,
                self.worker_url,
                json=payload,
                timeout=self.timeout
            )
        except requests.RequestException as e:
            raise RenderError(f"Browser worker request failed: {e}") from e

        if not response.ok:
            raise RenderError(f"Browser worker returned HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise RenderError("Browser worker returned invalid JSON") from e
        if not isinstance(data, dict):
            raise RenderError("Browser worker returned a non-object payload")

        observation = PageObservation.from_dict(data, mode=FetchMode.BROWSER)
        if not observation.url:
            observation.url = url
        return observation

    def close(self) -> None:
        self.session.close()


class PlaywrightBrowserClient:
    """
    Local headless Chromium via Playwright

    The browser is launched lazily on first use and reused across pages;
    use as an async context manager or call close() when done.
    """

    def __init__(self, headless: bool = True, navigation_timeout_ms: int = 45000, user_agent: Optional[str] = None):
        if not PLAYWRIGHT_AVAILABLE:
            raise ConfigurationError(
                "Playwright is not installed. Install with: pip install 'fetchpilot[browser]' && playwright install chromium"
            )
        self.headless = headless
        self.navigation_timeout_ms = navigation_timeout_ms
        self.user_agent = user_agent or DEFAULT_USER_AGENT
        self.playwright = None
        self.browser = None
        self.context = None

    async def __aenter__(self):
        await self._launch_browser()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _launch_browser(self) -> None:
        if self.browser:
            return
        logger.info(" Launching Chromium...")
        self.playwright = await async_playwright().start()
        self.browser = await self.playwright.chromium.launch(
            headless=self.headless,
            args=['--disable-blink-features=AutomationControlled', '--disable-dev-shm-usage', '--no-sandbox']
        )
        self.context = await self.browser.new_context(
            ignore_https_errors=True,
            user_agent=self.user_agent,
            viewport={'width': 1366, 'height': 900}
        )

    async def open_page(
        self,
        url: str,
        scroll_times: int = 0,
        scroll_wait_ms: int = 0,
        wait_ms: int = 0
    ) -> PageObservation:
        try:
            await self._launch_browser()
            page = await self.context.new_page()
        except Exception as e:
            raise RenderError(f"Could not start browser: {e}") from e

        try:
            logger.info(f" Navigating to: {url}")
            response = await page.goto(url, timeout=self.navigation_timeout_ms, wait_until='domcontentloaded')

            if wait_ms > 0:
                await asyncio.sleep(wait_ms / 1000)

            for _ in range(scroll_times):
                await page.evaluate('window.scrollTo(0, document.body.scrollHeight)')
                await asyncio.sleep(scroll_wait_ms / 1000)

            html = await page.content()
            scroll_height = await page.evaluate('document.body ? document.body.scrollHeight : 0')
            signals = compute_dom_signals(html)
            signals.scroll_height = scroll_height

            logger.info(f" Rendered {len(html):,} bytes after {scroll_times} scroll(s)")
            return PageObservation(
                url=page.url,
                status=response.status if response else None,
                html=html,
                dom_signals=signals,
                mode=FetchMode.BROWSER,
            )
        except Exception as e:
            raise RenderError(f"Browser render failed for {url}: {e}") from e
        finally:
            await page.close()

    async def close(self) -> None:
        """Clean up browser resources"""
        for resource, method in ((self.context, 'close'), (self.browser, 'close'), (self.playwright, 'stop')):
            if resource is None:
                continue
            try:
                await getattr(resource, method)()
            except Exception as e:
                logger.debug(f"Browser cleanup: {e}")
        self.context = self.browser = self.playwright = None
        logger.info(" Browser closed")


def build_observation(html: str, url: str, status: Optional[int] = 200) -> PageObservation:
    """Wrap already-rendered HTML (e.g. from a custom renderer) as a BROWSER observation"""
    signals = compute_dom_signals(html) if html else DomSignals()
    return PageObservation(url=url, status=status, html=html, dom_signals=signals, mode=FetchMode.BROWSER)
