"""
Agent Scraper - crawl loop orchestration
Owns the page queue, visited set, product accumulator and failure counters,
and composes fetcher, decision engine, extraction chain and pagination
discovery into one bounded, sequential run.

Architecture Flow (per page):
1. Pop URL (skip visited), fetch over HTTP
2. Ask the decision engine for a strategy (fallback built in)
3. Per action: optional browser re-render, then the extraction chain
4. Merge on (url, title), enqueue next-page links
5. Stop on min products, drained queue, page budget or cancellation

Only ConfigurationError escapes run(), and only before the first page.
"""

import asyncio
import logging
import random
import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Iterable, List, Optional, Set, Tuple

from .config import RunOptions, validate_start_url
from .decision_engine import DecisionEngine
from .direct_llm_extractor import DirectLLMExtractor
from .events import (
    DecisionMade,
    ExtractionCompleted,
    PageFailed,
    PageFetched,
    PaginationFound,
    RunCompleted,
    RunStarted,
    emit_safely,
)
from .exceptions import FetchError
from .extraction_chain import ChainResult, ExtractionChain, ExtractionContext, Extractor, default_extractors
from .html_fetcher import HTMLFetcher
from .models import (
    AgentAction,
    FailureCounters,
    FetchMode,
    PageObservation,
    Product,
    RetryStrategy,
    RunSummary,
    StopCriteria,
    StopReason,
)
from .pagination_detector import PaginationDetector

logger = logging.getLogger(__name__)


class ProductAccumulator:
    """Run-wide product list, unique on the exact (url, title) pair"""

    def __init__(self):
        self._products: List[Product] = []
        self._seen: Set[Tuple[str, str]] = set()

    def merge(self, products: Iterable[Product]) -> int:
        """Add unseen products in order; returns how many were new"""
        added = 0
        for product in products:
            if product.identity in self._seen:
                continue
            self._seen.add(product.identity)
            self._products.append(product)
            added += 1
        return added

    @property
    def products(self) -> List[Product]:
        return list(self._products)

    def __len__(self) -> int:
        return len(self._products)


def retry_delay(strategy: RetryStrategy, base_delay: float, attempt: int) -> float:
    """BACKOFF: base * 2^attempt; JITTER: uniform in [0, base * 2^attempt]"""
    ceiling = base_delay * (2 ** attempt)
    if strategy == RetryStrategy.BACKOFF:
        return ceiling
    return random.uniform(0, ceiling)


@dataclass
class _RunState:
    run_id: str
    start_url: str
    goal: str
    options: RunOptions
    queue: Deque[str] = field(default_factory=deque)
    visited: Set[str] = field(default_factory=set)
    counters: FailureCounters = field(default_factory=FailureCounters)
    accumulator: ProductAccumulator = field(default_factory=ProductAccumulator)
    pages_processed: int = 0

    def emit(self, event) -> None:
        emit_safely(self.options.event_sink, event)

    def has_unvisited(self) -> bool:
        return any(url not in self.visited for url in self.queue)


class AgentScraper:
    """
    Autonomous product extraction engine

    Collaborators default to the real implementations and are built per run
    from RunOptions; pass fakes to drive the loop in tests.
    """

    def __init__(
        self,
        fetcher: Optional[Any] = None,
        decision_engine: Optional[DecisionEngine] = None,
        direct_extractor: Optional[DirectLLMExtractor] = None,
        extractors: Optional[List[Extractor]] = None,
        pagination_detector: Optional[PaginationDetector] = None,
        request_timeout: float = 30.0,
        sleep=asyncio.sleep
    ):
        """
        Initialize Agent Scraper

        Args:
            fetcher: Object with fetch(url) -> PageObservation (sync); HTMLFetcher by default
            decision_engine: Strategy source; DecisionEngine(options.llm) by default
            direct_extractor: Last-resort LLM extractor; built from options.llm by default
            extractors: Full extractor chain override
            pagination_detector: Next-link discovery
            request_timeout: Timeout for the default HTTP fetcher in seconds
            sleep: Awaitable used between renderer retries
        """
        self.fetcher = fetcher
        self.decision_engine = decision_engine
        self.direct_extractor = direct_extractor
        self.extractors = extractors
        self.pagination_detector = pagination_detector or PaginationDetector()
        self.request_timeout = request_timeout
        self._sleep = sleep

    async def run(
        self,
        start_url: str,
        goal: str,
        options: Optional[RunOptions] = None
    ) -> Tuple[List[Product], RunSummary]:
        """
        Crawl from start_url until a stop condition holds

        Args:
            start_url: Absolute http(s) URL of the first listing page
            goal: Natural-language extraction goal
            options: Run options (credentials, budget, renderer, sink, ...)

        Returns:
            (products, summary); the summary is produced on every exit path

        Raises:
            ConfigurationError: invalid options or missing LLM prerequisites
        """
        options = options or RunOptions()
        validate_start_url(start_url)
        options.validate()

        state = _RunState(
            run_id=options.run_id or str(uuid.uuid4()),
            start_url=start_url,
            goal=goal,
            options=options,
        )
        state.queue.append(start_url)

        decision_engine = self.decision_engine or DecisionEngine(options.llm)
        if self.extractors is not None:
            chain = ExtractionChain(self.extractors)
        else:
            chain = ExtractionChain(default_extractors(self.direct_extractor or DirectLLMExtractor(options.llm)))

        owns_fetcher = self.fetcher is None
        fetcher = self.fetcher or HTMLFetcher(timeout=self.request_timeout)

        logger.info(f" Run {state.run_id[:8]} started: {start_url}")
        logger.info(f"   Goal: {goal}")
        logger.info(f"   Page budget: {options.max_total_pages}, LLM: {options.llm.describe()}")
        state.emit(RunStarted(
            run_id=state.run_id,
            start_url=start_url,
            goal=goal,
            max_total_pages=options.max_total_pages,
            provider=options.llm.provider,
        ))

        started = time.monotonic()
        stop_reason = None
        try:
            while state.queue and state.pages_processed < options.max_total_pages:
                if options.cancel_event is not None and options.cancel_event.is_set():
                    logger.info(" Cancellation requested, stopping")
                    stop_reason = StopReason.CANCELLED
                    break

                url = state.queue.popleft()
                if url in state.visited:
                    continue
                state.visited.add(url)
                state.pages_processed += 1
                state.counters.total_pages += 1
                logger.info(f" Page {state.pages_processed}/{options.max_total_pages}: {url}")

                try:
                    reached = await self._process_page(url, state, fetcher, decision_engine, chain)
                except Exception as e:
                    # Nothing from a single page may end the run
                    state.counters.parsing_errors += 1
                    logger.error(f" Unexpected failure on {url}: {e}", exc_info=True)
                    state.emit(PageFailed(run_id=state.run_id, url=url, reason='unexpected_error', error=str(e)))
                    continue

                if reached:
                    stop_reason = StopReason.MIN_PRODUCTS_REACHED
                    break

            if stop_reason is None:
                stop_reason = StopReason.MAX_PAGES_REACHED if state.has_unvisited() else StopReason.NO_MORE_PAGES
        finally:
            if owns_fetcher:
                fetcher.close()

        duration_ms = int((time.monotonic() - started) * 1000)
        return self._finalize(state, stop_reason, duration_ms)

    async def _process_page(
        self,
        url: str,
        state: _RunState,
        fetcher: Any,
        decision_engine: DecisionEngine,
        chain: ExtractionChain
    ) -> bool:
        """Handle one URL; True when the stop criterion was met"""
        counters = state.counters

        try:
            observation = await asyncio.to_thread(fetcher.fetch, url)
        except FetchError as e:
            counters.http_errors += 1
            logger.warning(f" Fetch failed, skipping: {e}")
            state.emit(PageFailed(run_id=state.run_id, url=url, reason='http_error', error=str(e)))
            return False

        state.emit(self._fetched_event(state, url, observation))
        if not observation.has_html:
            counters.no_html += 1
            logger.warning(f" No HTML returned for {url} (status {observation.status})")
            state.emit(PageFailed(run_id=state.run_id, url=url, reason='no_html'))
            return False

        started = time.monotonic()
        try:
            decision = await decision_engine.decide(observation, state.goal)
        except Exception as e:
            counters.llm_errors += 1
            logger.error(f" Decision engine failed on {url}: {e}")
            state.emit(PageFailed(run_id=state.run_id, url=url, reason='decision_failed', error=str(e)))
            return await self._custom_selector_pass(observation, state, chain)

        state.emit(DecisionMade(
            run_id=state.run_id,
            url=url,
            rationale=decision.rationale,
            action_count=len(decision.actions),
            fallback=decision.is_fallback,
            duration_ms=int((time.monotonic() - started) * 1000),
        ))
        if decision.is_fallback:
            logger.warning(f" Using fallback strategy for {url}")

        for action in decision.actions:
            page = observation
            if action.mode == FetchMode.BROWSER and state.options.browser is not None:
                page = await self._render(url, action, state)
                if page is None:
                    continue

            ctx = ExtractionContext(
                base_url=page.url or url,
                goal=state.goal,
                action=action,
                custom_selectors=state.options.custom_selectors,
            )
            self._merge(await chain.run(page.html, ctx), page, state)
            self._enqueue_next(page, action.pagination.selector, state)

            if len(state.accumulator) >= action.stop_criteria.min_products:
                logger.info(
                    f" Stop criterion met: {len(state.accumulator)} >= {action.stop_criteria.min_products}"
                )
                return True

        return False

    async def _custom_selector_pass(self, observation: PageObservation, state: _RunState, chain: ExtractionChain) -> bool:
        """One extraction attempt with caller selectors when no strategy is available"""
        custom = state.options.custom_selectors
        if custom is None or not custom.is_usable():
            return False

        logger.info("   Trying custom selectors without a strategy")
        ctx = ExtractionContext(
            base_url=observation.url,
            goal=state.goal,
            action=None,
            custom_selectors=custom,
        )
        self._merge(await chain.run(observation.html, ctx), observation, state)
        self._enqueue_next(observation, None, state)
        return len(state.accumulator) >= StopCriteria().min_products

    async def _render(self, url: str, action: AgentAction, state: _RunState) -> Optional[PageObservation]:
        """Re-fetch through the renderer, retrying per the action's retry policy"""
        browser = state.options.browser
        anti_lazy = action.anti_lazy
        attempts = action.retry.max_attempts

        page = None
        for attempt in range(attempts):
            try:
                logger.info(f" Browser mode for {url} (attempt {attempt + 1}/{attempts})")
                page = await asyncio.wait_for(
                    browser.open_page(
                        url,
                        scroll_times=anti_lazy.max_scrolls if anti_lazy.scroll else 0,
                        scroll_wait_ms=anti_lazy.wait_ms,
                        wait_ms=anti_lazy.wait_ms,
                    ),
                    timeout=state.options.render_timeout,
                )
            except asyncio.TimeoutError:
                error = f"renderer timed out after {state.options.render_timeout}s"
            except Exception as e:
                error = str(e)
            else:
                break

            if attempt + 1 >= attempts:
                state.counters.http_errors += 1
                logger.error(f" Render failed for {url}: {error}")
                state.emit(PageFailed(run_id=state.run_id, url=url, reason='render_failed', error=error))
                return None
            delay = retry_delay(action.retry.strategy, state.options.retry_base_delay, attempt)
            logger.warning(f" Render attempt {attempt + 1} failed ({error}); retrying in {delay:.2f}s")
            await self._sleep(delay)

        state.emit(self._fetched_event(state, url, page))
        if not page.has_html:
            state.counters.no_html += 1
            logger.warning(f" Renderer returned no HTML for {url}")
            state.emit(PageFailed(run_id=state.run_id, url=url, reason='no_html'))
            return None
        if not page.url:
            page.url = url
        return page

    def _merge(self, result: ChainResult, page: PageObservation, state: _RunState) -> None:
        state.counters.parsing_errors += result.errors
        added = state.accumulator.merge(result.products)
        if added == 0:
            state.counters.empty_results += 1
        logger.info(f" Parsed +{added} items (total {len(state.accumulator)})")
        state.emit(ExtractionCompleted(
            run_id=state.run_id,
            url=page.url,
            method=result.method,
            found=len(result.products),
            added=added,
            total=len(state.accumulator),
            errors=result.errors,
        ))

    def _enqueue_next(self, page: PageObservation, selector: Optional[str], state: _RunState) -> None:
        try:
            links = self.pagination_detector.find_next_links(page.html, page.url, selector)
        except Exception as e:
            state.counters.parsing_errors += 1
            logger.warning(f" Pagination discovery failed on {page.url}: {e}")
            return

        enqueued = 0
        for link in links:
            if link not in state.visited and link not in state.queue:
                state.queue.append(link)
                enqueued += 1
        if links:
            state.emit(PaginationFound(run_id=state.run_id, url=page.url, links=tuple(links), enqueued=enqueued))

    @staticmethod
    def _fetched_event(state: _RunState, url: str, observation: PageObservation) -> PageFetched:
        return PageFetched(
            run_id=state.run_id,
            url=url,
            final_url=observation.url,
            status=observation.status,
            html_length=len(observation.html or ''),
            mode=observation.mode.value,
        )

    def _finalize(self, state: _RunState, stop_reason: StopReason, duration_ms: int) -> Tuple[List[Product], RunSummary]:
        products = state.accumulator.products
        self._apply_cached_classifications(products, state)

        summary = RunSummary(
            run_id=state.run_id,
            duration_ms=duration_ms,
            total_products=len(products),
            pages_processed=state.pages_processed,
            stop_reason=stop_reason,
            failure_counters=state.counters,
            success_rate=state.counters.success_rate(),
            start_url=state.start_url,
            goal=state.goal,
        )

        logger.info(f" Run {state.run_id[:8]} complete: {summary.total_products} products")
        logger.info(f"   Stop reason: {stop_reason.value}")
        logger.info(f"   Pages: {summary.pages_processed}, success rate: {summary.success_rate}%")
        logger.info(f"   Failures: {state.counters.to_dict()}")
        state.emit(RunCompleted(run_id=state.run_id, summary=summary.to_dict()))
        return products, summary

    @staticmethod
    def _apply_cached_classifications(products: List[Product], state: _RunState) -> None:
        cache = state.options.classification_cache
        if cache is None:
            return
        hits = 0
        for product in products:
            if product.category_id:
                continue
            cached = cache.get(product, state.goal)
            if isinstance(cached, dict) and cached.get('categoryId'):
                product.category_id = str(cached['categoryId'])
                hits += 1
        if hits:
            logger.info(f"   Category ids from classification cache: {hits}")


def scrape_products(
    start_url: str,
    goal: str,
    options: Optional[RunOptions] = None,
    **kwargs
) -> Tuple[List[Product], RunSummary]:
    """
    Convenience function for a single blocking run

    Args:
        start_url: First listing page
        goal: Extraction goal
        options: Run options
        **kwargs: Passed to AgentScraper

    Returns:
        (products, summary)
    """
    return asyncio.run(AgentScraper(**kwargs).run(start_url, goal, options))
