"""Shared fakes for the engine tests (no network, no real LLM)."""

import os
from types import SimpleNamespace
from typing import Dict, List, Optional, Union

import pytest

# Tests run offline: make litellm use its bundled model cost map instead of
# fetching it at import time (the failed fetch deadlocks its import).
os.environ.setdefault("LITELLM_LOCAL_MODEL_COST_MAP", "True")

from fetchpilot.core.exceptions import FetchError
from fetchpilot.core.html_fetcher import compute_dom_signals
from fetchpilot.core.llm_client import LLMConfig
from fetchpilot.core.models import (
    AgentAction,
    AgentDecision,
    FetchMode,
    PageObservation,
    Pagination,
    PaginationType,
    ParseStrategy,
    Selectors,
    StopCriteria,
)


def listing_html(start: int, count: int, next_href: Optional[str] = None) -> str:
    """A product grid with `count` cards numbered from `start` and an optional next link."""
    cards = "\n".join(
        f"""
        <div class="product-card">
          <a href="/p/{i}"><h2 class="title">Product {i}</h2></a>
          <span class="price">${i}.99</span>
          <img data-src="/img/{i}.jpg">
        </div>"""
        for i in range(start, start + count)
    )
    pager = f'<nav class="pagination"><a rel="next" href="{next_href}">Next</a></nav>' if next_href else ""
    return f"<html><body><main>{cards}</main>{pager}</body></html>"


def observation(url: str, html: Optional[str], status: int = 200) -> PageObservation:
    return PageObservation(
        url=url,
        status=status,
        html=html,
        dom_signals=compute_dom_signals(html or ""),
        mode=FetchMode.HTTP,
    )


CARD_SELECTORS = Selectors(item=".product-card", link="a", title=".title", price=".price", image="img")


def css_decision(min_products: int = 100, selectors: Selectors = CARD_SELECTORS, **action_fields) -> AgentDecision:
    action = AgentAction(
        mode=action_fields.pop("mode", FetchMode.HTTP),
        parse_strategy=action_fields.pop("parse_strategy", ParseStrategy.CSS),
        selectors=selectors,
        pagination=Pagination(type=PaginationType.LINK),
        stop_criteria=StopCriteria(min_products=min_products),
        **action_fields,
    )
    return AgentDecision(rationale="test strategy", actions=[action])


class FakeFetcher:
    """Serves canned observations; records every URL requested."""

    def __init__(self, pages: Dict[str, Union[PageObservation, Exception]]):
        self.pages = pages
        self.calls: List[str] = []
        self.closed = False

    def fetch(self, url: str) -> PageObservation:
        self.calls.append(url)
        page = self.pages.get(url)
        if page is None:
            raise FetchError(url, "connection refused")
        if isinstance(page, Exception):
            raise page
        return page

    def close(self) -> None:
        self.closed = True


class FakeDecisionEngine:
    """Returns the same decision for every page, or raises the given error."""

    def __init__(self, decision: Optional[AgentDecision] = None, error: Optional[Exception] = None):
        self.decision = decision
        self.error = error
        self.calls: List[str] = []

    async def decide(self, observation: PageObservation, goal: str) -> AgentDecision:
        self.calls.append(observation.url)
        if self.error is not None:
            raise self.error
        return self.decision


class FakeBrowser:
    """Renderer returning queued results (observations or exceptions) in order."""

    def __init__(self, results: List[Union[PageObservation, Exception]]):
        self.results = list(results)
        self.calls: List[dict] = []

    async def open_page(self, url, scroll_times=0, scroll_wait_ms=0, wait_ms=0):
        self.calls.append({"url": url, "scroll_times": scroll_times, "wait_ms": wait_ms})
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


def llm_response(text: str) -> SimpleNamespace:
    """Minimal object shaped like a litellm ModelResponse."""
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=text))])


@pytest.fixture
def anthropic_config() -> LLMConfig:
    return LLMConfig(provider="anthropic", api_key="test-key")


@pytest.fixture
def fake_litellm(monkeypatch):
    """Patch litellm.acompletion; set .reply (str or Exception) and read .calls."""
    state = SimpleNamespace(reply="[]", calls=[])

    async def _acompletion(**kwargs):
        state.calls.append(kwargs)
        if isinstance(state.reply, Exception):
            raise state.reply
        return llm_response(state.reply)

    monkeypatch.setattr("litellm.acompletion", _acompletion)
    return state
