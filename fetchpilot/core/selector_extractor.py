"""
Selector-based Product Extractor

Applies an item selector to the page and, inside each matched element, the
link / title / price / image (and optional enrichment) sub-selectors.
CSS selectors go through BeautifulSoup (soupsieve); the XPath variant uses lxml.

Both return raw candidate dicts; schema validation happens downstream.
"""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag
from lxml import html as lxml_html

from .models import Selectors

logger = logging.getLogger(__name__)

ENRICHMENT_FIELDS = ('description', 'brand', 'rating', 'sku')


def to_absolute(href: Optional[str], base_url: str) -> str:
    """Resolve href against base_url; keep the raw href if resolution fails"""
    if not href:
        return ''
    href = href.strip()
    try:
        return urljoin(base_url, href)
    except ValueError:
        return href


def first_srcset_url(srcset: Optional[str]) -> Optional[str]:
    if not srcset:
        return None
    first = srcset.split(',')[0].strip()
    return first.split()[0] if first else None


def _clean_text(text: Optional[str]) -> str:
    return ' '.join((text or '').split())


# ---------------------------------------------------------------------------
# CSS
# ---------------------------------------------------------------------------

def _css_image(element: Tag, selector: str) -> Optional[str]:
    img = element.select_one(selector)
    if img is None:
        return None
    # Lazy-load tolerant: src, then data-src, then first srcset entry
    return (
        img.get('src')
        or img.get('data-src')
        or first_srcset_url(img.get('srcset'))
        or first_srcset_url(img.get('data-srcset'))
    )


def _css_link(element: Tag, selector: Optional[str]) -> Optional[str]:
    if selector:
        link = element.select_one(selector)
        return link.get('href') if link is not None else None
    if element.name == 'a':
        return element.get('href')
    link = element.select_one('a[href]')
    return link.get('href') if link is not None else None


def extract_by_selectors(html: str, base_url: str, selectors: Selectors) -> List[Dict[str, Any]]:
    """
    Extract raw product candidates with CSS selectors

    Args:
        html: Page HTML
        base_url: URL used to resolve relative links and images
        selectors: Selector set; item is required

    Returns:
        List of candidate dicts, each with a non-empty url and title

    Raises:
        soupsieve.SelectorSyntaxError: if a selector is not valid CSS
    """
    if not selectors.item:
        return []

    soup = BeautifulSoup(html, 'lxml')
    elements = soup.select(selectors.item)
    logger.debug(f"   CSS item selector '{selectors.item}' matched {len(elements)} elements")

    candidates = []
    for element in elements:
        url = _css_link(element, selectors.link)
        title = ''
        if selectors.title:
            title_el = element.select_one(selectors.title)
            title = _clean_text(title_el.get_text(' ')) if title_el is not None else ''
        if not url or not title:
            continue

        candidate = {'url': to_absolute(url, base_url), 'title': title}

        if selectors.price:
            price_el = element.select_one(selectors.price)
            if price_el is not None:
                candidate['price'] = _clean_text(price_el.get_text(' ')) or None

        if selectors.image:
            image = _css_image(element, selectors.image)
            if image:
                candidate['image'] = to_absolute(image, base_url)

        for field in ENRICHMENT_FIELDS:
            selector = getattr(selectors, field)
            if selector:
                found = element.select_one(selector)
                if found is not None:
                    candidate[field] = _clean_text(found.get_text(' ')) or None

        candidates.append({k: v for k, v in candidate.items() if v is not None})

    return candidates


# ---------------------------------------------------------------------------
# XPath
# ---------------------------------------------------------------------------

def _xpath_first(element, expression: str) -> Any:
    result = element.xpath(expression)
    if isinstance(result, list):
        return result[0] if result else None
    return result


def _xpath_text(element, expression: str) -> str:
    found = _xpath_first(element, expression)
    if found is None:
        return ''
    if isinstance(found, str):
        return _clean_text(found)
    return _clean_text(found.text_content())


def _xpath_attr(element, expression: str, *attributes: str) -> Optional[str]:
    found = _xpath_first(element, expression)
    if found is None:
        return None
    if isinstance(found, str):
        return found
    for attribute in attributes:
        value = found.get(attribute)
        if attribute.endswith('srcset'):
            value = first_srcset_url(value)
        if value:
            return value
    return None


def extract_by_xpath(html: str, base_url: str, selectors: Selectors) -> List[Dict[str, Any]]:
    """
    XPath counterpart of extract_by_selectors

    Sub-expressions are evaluated relative to each item (e.g. './/a', './/h2').

    Raises:
        lxml.etree.XPathError: if an expression is invalid
    """
    if not selectors.item or not (html or '').strip():
        return []

    tree = lxml_html.fromstring(html)
    elements = tree.xpath(selectors.item)
    logger.debug(f"   XPath item expression '{selectors.item}' matched {len(elements)} elements")

    candidates = []
    for element in elements:
        if isinstance(element, str):
            continue
        url = _xpath_attr(element, selectors.link, 'href') if selectors.link else element.get('href')
        title = _xpath_text(element, selectors.title) if selectors.title else ''
        if not url or not title:
            continue

        candidate = {'url': to_absolute(url, base_url), 'title': title}
        if selectors.price:
            candidate['price'] = _xpath_text(element, selectors.price) or None
        if selectors.image:
            image = _xpath_attr(element, selectors.image, 'src', 'data-src', 'srcset')
            if image:
                candidate['image'] = to_absolute(image, base_url)
        for field in ENRICHMENT_FIELDS:
            expression = getattr(selectors, field)
            if expression:
                candidate[field] = _xpath_text(element, expression) or None

        candidates.append({k: v for k, v in candidate.items() if v is not None})

    return candidates
