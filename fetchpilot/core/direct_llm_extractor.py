"""
Direct LLM Extractor
Last-resort extraction: send simplified page HTML plus the user's goal to the
LLM and read back a JSON array of products.

The extractor never raises on model misbehaviour. Transport failures,
non-JSON replies and wrong shapes all log and return an empty list; each
returned item is validated on its own so one bad item never sinks the batch.
"""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin

from .exceptions import LLMError, ResponseParseError
from .html_cleaner import DEFAULT_MAX_CHARS, HTMLCleaner
from .llm_client import LLMClient, LLMConfig
from .models import Product, validate_candidates
from .response_parser import parse_llm_json

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are a precise data extraction assistant. Extract product information from HTML.

CRITICAL RULES:
1. Do NOT fabricate or invent data - only extract what is clearly present
2. Return ONLY the JSON array, no explanations or markdown
3. If no products found, return empty array: []
4. Each product MUST have at least a title and url
5. Be conservative - skip unclear items rather than guess

Return format: Array of products matching this schema:
{
  "url": "full product URL",
  "title": "product name",
  "price": "price as string (optional)",
  "image": "image URL (optional)",
  "inStock": true/false (optional),
  "currency": "USD/EUR/etc (optional)",
  "sku": "product SKU (optional)",
  "brand": "brand name (optional)",
  "description": "short description (optional)",
  "rating": "average rating (optional)",
  "reviewCount": "number of reviews (optional)"
}"""

USER_PROMPT = """**BASE URL:** {url}

**EXTRACTION GOAL:** {goal}

**HTML CONTENT:**
```html
{html}
```

**TASK:**
Extract all products from this HTML. Return a JSON array of products. Each product must have at minimum a title and URL.

Return ONLY the JSON array, nothing else."""


class DirectLLMExtractor:
    """Extracts products straight from HTML with one LLM call per page"""

    def __init__(
        self,
        llm_config: LLMConfig,
        max_html_chars: int = DEFAULT_MAX_CHARS,
        max_tokens: int = 4000,
        client: Optional[LLMClient] = None
    ):
        """
        Initialize Direct LLM Extractor

        Args:
            llm_config: Provider + credentials
            max_html_chars: Upper bound on simplified HTML sent to the model
            max_tokens: Completion token budget
            client: Pre-built client (tests)
        """
        self.llm_config = llm_config
        self.max_tokens = max_tokens
        self.cleaner = HTMLCleaner(max_chars=max_html_chars)
        self.client = client or LLMClient(llm_config)

    async def extract(self, html: str, base_url: str, goal: str) -> List[Product]:
        """
        Extract products with the LLM

        Args:
            html: Raw page HTML
            base_url: Page URL; relative URLs in the reply are resolved against it
            goal: Natural-language extraction goal

        Returns:
            Validated products (possibly empty, never raises on bad model output)
        """
        simplified = self.cleaner.clean(html)['html']
        if not simplified:
            logger.info("   Direct LLM: nothing left after cleaning, skipping")
            return []

        logger.info(f" Direct LLM extraction from {len(simplified):,} chars ({self.llm_config.describe()})")
        prompt = USER_PROMPT.format(url=base_url, goal=goal, html=simplified)

        try:
            text = await self.client.complete(
                SYSTEM_PROMPT,
                prompt,
                max_tokens=self.max_tokens,
                temperature=0.1
            )
        except LLMError as e:
            logger.error(f" Direct LLM extraction failed: {e}")
            return []

        try:
            payload = parse_llm_json(text, expect_array=True)
        except ResponseParseError as e:
            logger.warning(f" Direct LLM returned unparseable output: {e}")
            return []

        items = self._unwrap_items(payload)
        if items is None:
            logger.warning(f" Direct LLM returned {type(payload).__name__} instead of a product array")
            return []

        products = validate_candidates(self._resolve_urls(item, base_url) for item in items)
        logger.info(f"   Direct LLM: {len(products)}/{len(items)} items passed validation")
        return products

    @staticmethod
    def _unwrap_items(payload: Any) -> Optional[List[Any]]:
        if isinstance(payload, list):
            return payload
        if isinstance(payload, dict):
            for key in ('products', 'items', 'data', 'results'):
                if isinstance(payload.get(key), list):
                    return payload[key]
        return None

    @staticmethod
    def _resolve_urls(item: Any, base_url: str) -> Any:
        # URLs from the model are never trusted verbatim
        if not isinstance(item, dict):
            return item
        resolved: Dict[str, Any] = dict(item)
        for key in ('url', 'image'):
            value = resolved.get(key)
            if isinstance(value, str) and value.strip():
                try:
                    resolved[key] = urljoin(base_url, value.strip())
                except ValueError:
                    pass
        return resolved
