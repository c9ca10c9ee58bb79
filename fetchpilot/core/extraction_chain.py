"""
Extraction Chain
Ordered list of extractors tried until one yields at least one product:

    custom selectors -> JSON-LD -> CSS selectors -> XPath -> direct LLM

Each extractor decides whether it applies to the current page strategy.
An extractor that raises is logged, counted and skipped; the chain moves on.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from .direct_llm_extractor import DirectLLMExtractor
from .jsonld_extractor import parse_jsonld
from .models import AgentAction, ParseStrategy, Product, Selectors, validate_candidates
from .selector_extractor import extract_by_selectors, extract_by_xpath

logger = logging.getLogger(__name__)


@dataclass
class ExtractionContext:
    """What an extractor may look at besides the HTML"""

    base_url: str
    goal: str
    action: Optional[AgentAction] = None
    custom_selectors: Optional[Selectors] = None

    @property
    def parse_strategy(self) -> Optional[ParseStrategy]:
        return self.action.parse_strategy if self.action else None

    @property
    def selectors(self) -> Optional[Selectors]:
        return self.action.selectors if self.action else None


@dataclass
class ChainResult:
    products: List[Product] = field(default_factory=list)
    method: Optional[str] = None
    errors: int = 0


class Extractor(ABC):
    """One step of the chain"""

    name: str = ""

    @abstractmethod
    def applies(self, ctx: ExtractionContext) -> bool:
        ...

    @abstractmethod
    async def try_extract(self, html: str, ctx: ExtractionContext) -> List[Product]:
        ...


class CustomSelectorExtractor(Extractor):
    """Caller-supplied selectors for the whole run"""

    name = "custom_selectors"

    def applies(self, ctx: ExtractionContext) -> bool:
        return ctx.custom_selectors is not None and ctx.custom_selectors.is_usable()

    async def try_extract(self, html: str, ctx: ExtractionContext) -> List[Product]:
        return validate_candidates(extract_by_selectors(html, ctx.base_url, ctx.custom_selectors))


class JsonLdExtractor(Extractor):
    name = "jsonld"

    def applies(self, ctx: ExtractionContext) -> bool:
        return ctx.parse_strategy in (ParseStrategy.JSONLD, ParseStrategy.HYBRID)

    async def try_extract(self, html: str, ctx: ExtractionContext) -> List[Product]:
        return parse_jsonld(html, base_url=ctx.base_url)


class CssSelectorExtractor(Extractor):
    name = "css"

    def applies(self, ctx: ExtractionContext) -> bool:
        return (
            ctx.parse_strategy in (ParseStrategy.CSS, ParseStrategy.HYBRID)
            and ctx.selectors is not None
            and ctx.selectors.is_usable()
        )

    async def try_extract(self, html: str, ctx: ExtractionContext) -> List[Product]:
        return validate_candidates(extract_by_selectors(html, ctx.base_url, ctx.selectors))


class XPathSelectorExtractor(Extractor):
    """Strategy selectors read as XPath expressions"""

    name = "xpath"

    def applies(self, ctx: ExtractionContext) -> bool:
        return (
            ctx.parse_strategy == ParseStrategy.XPATH
            and ctx.selectors is not None
            and ctx.selectors.is_usable()
        )

    async def try_extract(self, html: str, ctx: ExtractionContext) -> List[Product]:
        return validate_candidates(extract_by_xpath(html, ctx.base_url, ctx.selectors))


class DirectLLMStep(Extractor):
    """Last resort; only when a strategy exists and the LLM can be called"""

    name = "direct_llm"

    def __init__(self, extractor: DirectLLMExtractor):
        self.extractor = extractor

    def applies(self, ctx: ExtractionContext) -> bool:
        return ctx.action is not None and self.extractor.llm_config.has_credentials()

    async def try_extract(self, html: str, ctx: ExtractionContext) -> List[Product]:
        return await self.extractor.extract(html, ctx.base_url, ctx.goal)


def default_extractors(direct_extractor: Optional[DirectLLMExtractor] = None) -> List[Extractor]:
    extractors: List[Extractor] = [
        CustomSelectorExtractor(),
        JsonLdExtractor(),
        CssSelectorExtractor(),
        XPathSelectorExtractor(),
    ]
    if direct_extractor is not None:
        extractors.append(DirectLLMStep(direct_extractor))
    return extractors


class ExtractionChain:
    """Runs extractors in order and stops at the first non-empty result"""

    def __init__(self, extractors: Sequence[Extractor]):
        self.extractors = list(extractors)

    async def run(self, html: str, ctx: ExtractionContext) -> ChainResult:
        result = ChainResult()
        for extractor in self.extractors:
            if not extractor.applies(ctx):
                continue
            try:
                products = await extractor.try_extract(html, ctx)
            except Exception as e:
                result.errors += 1
                logger.warning(f" Extractor '{extractor.name}' failed on {ctx.base_url}: {e}")
                continue

            logger.debug(f"   {extractor.name}: {len(products)} products")
            if products:
                result.products = products
                result.method = extractor.name
                logger.info(f" Extracted {len(products)} products via {extractor.name}")
                break

        return result
