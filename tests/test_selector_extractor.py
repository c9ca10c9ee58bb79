"""Tests for CSS and XPath selector extraction."""

import pytest
from soupsieve import SelectorSyntaxError

from fetchpilot.core.models import Selectors
from fetchpilot.core.selector_extractor import (
    extract_by_selectors,
    extract_by_xpath,
    first_srcset_url,
    to_absolute,
)

from conftest import CARD_SELECTORS, listing_html

BASE = "https://shop.test/catalog/"


class TestHelpers:
    def test_to_absolute_resolves_relative(self):
        assert to_absolute("../p/1", BASE) == "https://shop.test/p/1"

    def test_to_absolute_keeps_raw_href_when_resolution_fails(self):
        assert to_absolute("http://[broken", BASE) == "http://[broken"

    def test_first_srcset_url(self):
        assert first_srcset_url("/a.jpg 1x, /b.jpg 2x") == "/a.jpg"
        assert first_srcset_url("") is None


class TestExtractBySelectors:
    def test_extracts_cards(self):
        candidates = extract_by_selectors(listing_html(1, 3), BASE, CARD_SELECTORS)
        assert len(candidates) == 3
        assert candidates[0] == {
            "url": "https://shop.test/p/1",
            "title": "Product 1",
            "price": "$1.99",
            "image": "https://shop.test/img/1.jpg",
        }

    def test_image_preference_src_then_data_src_then_srcset(self):
        html = """
        <div class="c"><a href="/1"><h2>One</h2></a><img src="/src.jpg" data-src="/lazy.jpg"></div>
        <div class="c"><a href="/2"><h2>Two</h2></a><img data-src="/lazy.jpg" srcset="/s1.jpg 1x"></div>
        <div class="c"><a href="/3"><h2>Three</h2></a><img srcset="/s1.jpg 1x, /s2.jpg 2x"></div>
        """
        selectors = Selectors(item=".c", title="h2", image="img")
        images = [c["image"] for c in extract_by_selectors(html, BASE, selectors)]
        assert images == ["https://shop.test/src.jpg", "https://shop.test/lazy.jpg", "https://shop.test/s1.jpg"]

    def test_items_without_url_or_title_are_skipped(self):
        html = """
        <div class="c"><h2>No link</h2></div>
        <div class="c"><a href="/x"></a></div>
        <a class="c" href="/y"><h2>Anchor item</h2></a>
        """
        selectors = Selectors(item=".c", title="h2")
        candidates = extract_by_selectors(html, BASE, selectors)
        assert candidates == [{"url": "https://shop.test/y", "title": "Anchor item"}]

    def test_enrichment_selectors(self):
        html = """
        <div class="c"><a href="/1">x</a><h2>Desk</h2>
          <p class="brand">Acme</p><span class="stars">4.8</span><span class="sku">D-1</span>
        </div>
        """
        selectors = Selectors(item=".c", title="h2", brand=".brand", rating=".stars", sku=".sku")
        [candidate] = extract_by_selectors(html, BASE, selectors)
        assert candidate["brand"] == "Acme"
        assert candidate["rating"] == "4.8"
        assert candidate["sku"] == "D-1"

    def test_no_item_selector_yields_nothing(self):
        assert extract_by_selectors(listing_html(1, 2), BASE, Selectors(title="h2")) == []

    def test_invalid_css_raises(self):
        with pytest.raises(SelectorSyntaxError):
            extract_by_selectors(listing_html(1, 1), BASE, Selectors(item="div[[", title="h2"))


class TestExtractByXPath:
    def test_extracts_with_relative_expressions(self):
        selectors = Selectors(
            item="//div[@class='product-card']",
            link=".//a",
            title=".//h2",
            price=".//span[@class='price']",
            image=".//img",
        )
        candidates = extract_by_xpath(listing_html(1, 2), BASE, selectors)
        assert [c["title"] for c in candidates] == ["Product 1", "Product 2"]
        assert candidates[1]["url"] == "https://shop.test/p/2"
        assert candidates[1]["price"] == "$2.99"
        assert candidates[1]["image"] == "https://shop.test/img/2.jpg"

    def test_empty_html(self):
        assert extract_by_xpath("", BASE, Selectors(item="//div")) == []
