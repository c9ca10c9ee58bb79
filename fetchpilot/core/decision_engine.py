"""
Decision Engine
Asks the LLM for a per-page extraction strategy and degrades to a generic
heuristic strategy whenever the model cannot be reached or misbehaves.

Pipeline per page:
    prompt -> LLM text -> JSON candidate + repair -> AgentDecision schema
Any failure along the way yields build_fallback_decision(observation).
"""

import json
import logging
import time
from typing import Any, Dict, Optional

from pydantic import ValidationError

from .exceptions import LLMError, ResponseParseError
from .html_cleaner import HTMLCleaner
from .llm_client import LLMClient, LLMConfig
from .models import (
    AgentAction,
    AgentDecision,
    AntiLazy,
    FetchMode,
    PageObservation,
    Pagination,
    PaginationType,
    ParseStrategy,
    RetryPolicy,
    RetryStrategy,
    Selectors,
    StopCriteria,
)
from .response_parser import parse_llm_json

logger = logging.getLogger(__name__)

OBSERVATION_HTML_CHARS = 12_000

SYSTEM_PROMPT = """ROLE: Scraping Strategist
Return STRICT JSON conforming to the AgentDecision schema. Choose mode (HTTP/BROWSER), parseStrategy (CSS/XPATH/JSONLD/HYBRID), selectors, pagination plan, anti-lazy, retry, stop criteria.
Prefer HTTP when content appears server-rendered or JSON-LD is present; otherwise BROWSER.
Selectors must match the HTML sample you are given. Every selector except "item" is relative to the item element.
Always propose at least one action."""

USER_PROMPT = """Goal: {goal}
Observation: {observation}
Schema keys: AgentDecision {{ rationale?, actions[] {{ mode, parseStrategy, selectors{{item,link,title,price,image,description?,brand?,rating?,sku?}}, pagination{{type,selector?,paramKey?,maxPages}}, antiLazy{{scroll,waitMs,maxScrolls}}, retry{{maxAttempts,strategy}}, stopCriteria{{minProducts}} }} }}
Return JSON only."""

# Generic product-listing markup: class names first, then schema.org microdata
FALLBACK_SELECTORS = Selectors(
    item=(
        "[data-product], .product-card, li.product, .product, .product-item, "
        ".item, [itemtype*='schema.org/Product']"
    ),
    link="a[href]",
    title="h2, h3, .title, .product-title, .product-name, [itemprop='name']",
    price=".price, [class*='price'], [itemprop='price'], [data-price]",
    image="img",
    description="[itemprop='description'], .description",
    brand="[itemprop='brand'], .brand",
    rating="[itemprop='ratingValue'], .rating",
    sku="[itemprop='sku'], [data-sku]",
)


def build_fallback_decision(observation: Optional[PageObservation], reason: str = "LLM unavailable") -> AgentDecision:
    """
    Deterministic strategy used when the model cannot provide one

    JSON-LD first when the page advertised structured data, hybrid otherwise;
    item and price selectors are always present.
    """
    has_json_ld = bool(observation and observation.dom_signals.has_json_ld)
    action = AgentAction(
        mode=FetchMode.HTTP,
        parse_strategy=ParseStrategy.JSONLD if has_json_ld else ParseStrategy.HYBRID,
        selectors=FALLBACK_SELECTORS.model_copy(),
        pagination=Pagination(type=PaginationType.LINK, selector=None, max_pages=5),
        anti_lazy=AntiLazy(scroll=False, wait_ms=600, max_scrolls=0),
        retry=RetryPolicy(max_attempts=3, strategy=RetryStrategy.JITTER),
        stop_criteria=StopCriteria(min_products=10),
    )
    return AgentDecision(
        rationale=f"Fallback ({reason}): HTTP + {action.parse_strategy.value} with generic selectors",
        actions=[action],
        is_fallback=True,
    )


def normalize_decision_payload(payload: Any) -> Dict[str, Any]:
    """Accept a full decision, a bare action object or a bare action list"""
    if isinstance(payload, list):
        return {'actions': payload}
    if isinstance(payload, dict):
        if 'actions' in payload:
            return payload
        if 'mode' in payload or 'parseStrategy' in payload or 'parse_strategy' in payload:
            return {'actions': [payload]}
        for key in ('decision', 'agentDecision', 'AgentDecision'):
            if isinstance(payload.get(key), dict):
                return normalize_decision_payload(payload[key])
    raise ResponseParseError(f"Decision payload has unexpected shape: {type(payload).__name__}")


class DecisionEngine:
    """Per-page strategy selection with deterministic fallback"""

    def __init__(
        self,
        llm_config: LLMConfig,
        client: Optional[LLMClient] = None,
        max_tokens: int = 1200,
        observation_chars: int = OBSERVATION_HTML_CHARS
    ):
        """
        Initialize Decision Engine

        Args:
            llm_config: Provider + credentials
            client: Pre-built client (tests)
            max_tokens: Completion budget for one decision
            observation_chars: Size of the cleaned HTML sample included in the prompt
        """
        self.llm_config = llm_config
        self.max_tokens = max_tokens
        self.cleaner = HTMLCleaner(max_chars=observation_chars)
        self._client = client

    @property
    def client(self) -> LLMClient:
        if self._client is None:
            self._client = LLMClient(self.llm_config)
        return self._client

    def build_prompt(self, observation: PageObservation, goal: str) -> str:
        sample = self.cleaner.clean(observation.html or '')['html'] if observation.has_html else ''
        summary = {
            'url': observation.url,
            'status': observation.status,
            'mode': observation.mode.value,
            'domSignals': observation.dom_signals.to_dict(),
            'htmlSample': sample,
        }
        return USER_PROMPT.format(goal=goal, observation=json.dumps(summary, ensure_ascii=False))

    async def decide(self, observation: PageObservation, goal: str) -> AgentDecision:
        """
        Propose an extraction strategy for one page

        Raises:
            ConfigurationError: only when the LLM call's hard prerequisites are
                missing (e.g. no API key for a key-requiring provider)
        """
        # Misconfiguration propagates; everything past this point falls back
        self.llm_config.validate()

        started = time.monotonic()
        try:
            text = await self.client.complete(SYSTEM_PROMPT, self.build_prompt(observation, goal), max_tokens=self.max_tokens)
        except LLMError as e:
            logger.warning(f" Decision LLM call failed, using fallback strategy: {e}")
            return build_fallback_decision(observation, "LLM call failed")
        except Exception as e:
            logger.error(f" Unexpected decision failure, using fallback strategy: {e}")
            return build_fallback_decision(observation, "unexpected error")

        try:
            payload = normalize_decision_payload(parse_llm_json(text))
            decision = AgentDecision.model_validate(payload)
        except ResponseParseError as e:
            logger.warning(f" Decision response not parseable, using fallback strategy: {e}")
            logger.debug(f"   Raw decision text: {text[:500]}")
            return build_fallback_decision(observation, "unparseable response")
        except ValidationError as e:
            logger.warning(f" Decision failed schema validation ({e.error_count()} errors), using fallback strategy")
            return build_fallback_decision(observation, "schema validation failed")

        elapsed = int((time.monotonic() - started) * 1000)
        logger.info(
            f" Decision in {elapsed}ms: {len(decision.actions)} action(s), "
            f"{decision.actions[0].mode.value}/{decision.actions[0].parse_strategy.value}"
        )
        return decision
