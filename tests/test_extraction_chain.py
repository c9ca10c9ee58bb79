"""Tests for the ordered extraction chain."""

from fetchpilot.core.extraction_chain import (
    DirectLLMStep,
    ExtractionChain,
    ExtractionContext,
    Extractor,
    default_extractors,
)
from fetchpilot.core.llm_client import LLMConfig
from fetchpilot.core.models import ParseStrategy, Product, Selectors

from conftest import CARD_SELECTORS, css_decision, listing_html

BASE = "https://shop.test/catalog"
LD_PRODUCT = """
<script type="application/ld+json">
{"@type": "Product", "name": "Structured Lamp", "url": "/p/lamp", "offers": {"price": "19.99"}}
</script>
"""


class StubExtractor(Extractor):
    def __init__(self, name, products=None, error=None):
        self.name = name
        self.products = products or []
        self.error = error
        self.calls = 0

    def applies(self, ctx):
        return True

    async def try_extract(self, html, ctx):
        self.calls += 1
        if self.error:
            raise self.error
        return self.products


class StubDirectExtractor:
    def __init__(self, llm_config, products):
        self.llm_config = llm_config
        self.products = products
        self.calls = 0

    async def extract(self, html, base_url, goal):
        self.calls += 1
        return self.products


def action(strategy, selectors=CARD_SELECTORS):
    return css_decision(parse_strategy=strategy, selectors=selectors).actions[0]


async def test_stops_at_first_non_empty_result():
    first = StubExtractor("a")
    second = StubExtractor("b", products=[Product(url="https://shop.test/1", title="One")])
    third = StubExtractor("c", products=[Product(url="https://shop.test/2", title="Two")])

    result = await ExtractionChain([first, second, third]).run("<html/>", ExtractionContext(BASE, "goal"))

    assert result.method == "b"
    assert [p.title for p in result.products] == ["One"]
    assert third.calls == 0


async def test_failing_extractor_is_counted_and_skipped():
    broken = StubExtractor("broken", error=ValueError("bad markup"))
    working = StubExtractor("ok", products=[Product(url="https://shop.test/1", title="One")])

    result = await ExtractionChain([broken, working]).run("<html/>", ExtractionContext(BASE, "goal"))

    assert result.errors == 1
    assert result.method == "ok"


async def test_custom_selectors_win_over_strategy():
    ctx = ExtractionContext(
        BASE, "goal",
        action=action(ParseStrategy.JSONLD),
        custom_selectors=CARD_SELECTORS,
    )
    result = await ExtractionChain(default_extractors()).run(LD_PRODUCT + listing_html(1, 2), ctx)
    assert result.method == "custom_selectors"
    assert len(result.products) == 2


async def test_hybrid_prefers_jsonld_then_css():
    html = LD_PRODUCT + listing_html(1, 3)
    result = await ExtractionChain(default_extractors()).run(html, ExtractionContext(BASE, "g", action(ParseStrategy.HYBRID)))
    assert result.method == "jsonld"
    assert [p.title for p in result.products] == ["Structured Lamp"]

    result = await ExtractionChain(default_extractors()).run(listing_html(1, 3), ExtractionContext(BASE, "g", action(ParseStrategy.HYBRID)))
    assert result.method == "css"
    assert len(result.products) == 3


async def test_xpath_strategy():
    selectors = Selectors(item="//div[@class='product-card']", link=".//a", title=".//h2")
    ctx = ExtractionContext(BASE, "g", action(ParseStrategy.XPATH, selectors))
    result = await ExtractionChain(default_extractors()).run(listing_html(1, 2), ctx)
    assert result.method == "xpath"
    assert len(result.products) == 2


async def test_invalid_css_counts_as_error():
    ctx = ExtractionContext(BASE, "g", action(ParseStrategy.CSS, Selectors(item="div[[", title="h2")))
    result = await ExtractionChain(default_extractors()).run(listing_html(1, 1), ctx)
    assert result.errors == 1
    assert result.products == []


async def test_direct_llm_is_last_resort():
    direct = StubDirectExtractor(LLMConfig(api_key="k"), [Product(url="https://shop.test/x", title="From LLM")])
    chain = ExtractionChain(default_extractors(direct))

    result = await chain.run("<p>no cards</p>", ExtractionContext(BASE, "g", action(ParseStrategy.CSS)))

    assert result.method == "direct_llm"
    assert direct.calls == 1


async def test_direct_llm_skipped_without_strategy_or_credentials():
    with_key = StubDirectExtractor(LLMConfig(api_key="k"), [Product(url="https://shop.test/x", title="X")])
    result = await ExtractionChain([DirectLLMStep(with_key)]).run("<p/>", ExtractionContext(BASE, "g"))
    assert result.products == []
    assert with_key.calls == 0

    no_key = StubDirectExtractor(LLMConfig(provider="anthropic"), [Product(url="https://shop.test/x", title="X")])
    ctx = ExtractionContext(BASE, "g", action(ParseStrategy.CSS))
    result = await ExtractionChain([DirectLLMStep(no_key)]).run("<p/>", ctx)
    assert result.products == []
    assert no_key.calls == 0
