"""
JSON-LD Product Extractor

Scans raw HTML for application/ld+json blocks with a regex rather than a full
parse, so malformed documents still yield their structured data. Every block,
and every node inside a block, is isolated: one bad script never prevents the
others from being read.
"""

import json
import logging
import re
from typing import Any, Dict, Iterator, List, Optional
from urllib.parse import urljoin

from .models import Product, validate_candidates

logger = logging.getLogger(__name__)

_LD_BLOCK_RE = re.compile(
    r'<script[^>]+type\s*=\s*["\']application/ld\+json["\'][^>]*>([\s\S]*?)</script>',
    re.IGNORECASE
)


def iter_jsonld_blocks(html: str) -> Iterator[Any]:
    """Yield every LD+JSON block that parses; malformed blocks are skipped"""
    for index, match in enumerate(_LD_BLOCK_RE.finditer(html or '')):
        raw = match.group(1).strip()
        if not raw:
            continue
        # Some CMSes wrap the payload in HTML comments or CDATA
        raw = re.sub(r'^\s*(<!--|<!\[CDATA\[)|(-->|\]\]>)\s*$', '', raw)
        try:
            yield json.loads(raw, strict=False)
        except json.JSONDecodeError as e:
            logger.debug(f"   Skipping malformed JSON-LD block #{index}: {e}")


def iter_product_nodes(data: Any) -> Iterator[Dict[str, Any]]:
    """Walk lists, @graph arrays and ItemList entries, yielding Product nodes"""
    if isinstance(data, list):
        for item in data:
            yield from iter_product_nodes(item)
        return
    if not isinstance(data, dict):
        return

    if isinstance(data.get('@graph'), list):
        yield from iter_product_nodes(data['@graph'])

    if _has_type(data, 'ItemList'):
        for element in data.get('itemListElement') or []:
            if isinstance(element, dict) and isinstance(element.get('item'), dict):
                yield from iter_product_nodes(element['item'])
            else:
                yield from iter_product_nodes(element)

    if _has_type(data, 'Product') and data.get('name'):
        yield data


def _has_type(node: Dict[str, Any], type_name: str) -> bool:
    node_type = node.get('@type')
    types = node_type if isinstance(node_type, list) else [node_type]
    return any(isinstance(t, str) and t.split('/')[-1] == type_name for t in types)


def _first(value: Any) -> Any:
    if isinstance(value, list):
        return value[0] if value else None
    return value


def _text(value: Any) -> Optional[str]:
    value = _first(value)
    if isinstance(value, dict):
        value = value.get('name') or value.get('@id')
    if value is None:
        return None
    return str(value)


def _image(value: Any) -> Optional[str]:
    value = _first(value)
    if isinstance(value, dict):
        value = value.get('url') or value.get('contentUrl')
    return value if isinstance(value, str) else None


def _availability(value: Any) -> Optional[bool]:
    if not isinstance(value, str):
        return None
    lowered = value.lower()
    if 'outofstock' in lowered or 'soldout' in lowered or 'discontinued' in lowered:
        return False
    if 'instock' in lowered or 'limitedavailability' in lowered or 'onlineonly' in lowered:
        return True
    return None


def node_to_candidate(node: Dict[str, Any], base_url: Optional[str] = None) -> Dict[str, Any]:
    """Map a schema.org Product node onto Product fields"""
    offer = _first(node.get('offers'))
    offer = offer if isinstance(offer, dict) else {}

    price = offer.get('price')
    if price is None:
        price = offer.get('lowPrice')

    url = offer.get('url') or node.get('url') or ''
    image = _image(node.get('image'))
    if base_url:
        url = urljoin(base_url, url) if url else ''
        image = urljoin(base_url, image) if image else None

    rating = node.get('aggregateRating')
    rating = rating if isinstance(rating, dict) else {}

    candidate = {
        'url': url,
        'title': node.get('name'),
        'price': str(price) if price is not None else None,
        'image': image,
        'currency': offer.get('priceCurrency'),
        'inStock': _availability(offer.get('availability')),
        'sku': _text(node.get('sku')),
        'brand': _text(node.get('brand')),
        'description': node.get('description') if isinstance(node.get('description'), str) else None,
        'rating': rating.get('ratingValue'),
        'reviewCount': rating.get('reviewCount') or rating.get('ratingCount'),
    }
    return {k: v for k, v in candidate.items() if v is not None}


def parse_jsonld(html: str, base_url: Optional[str] = None) -> List[Product]:
    """
    Extract Product records from embedded JSON-LD

    Args:
        html: Raw page HTML
        base_url: Optional page URL used to resolve relative product/image URLs

    Returns:
        Validated products; candidates without a url or title are dropped
    """
    candidates = []
    for block in iter_jsonld_blocks(html):
        for node in iter_product_nodes(block):
            try:
                candidate = node_to_candidate(node, base_url)
            except Exception as e:
                logger.debug(f"   Skipping JSON-LD product node: {e}")
                continue
            if candidate.get('url') and candidate.get('title'):
                candidates.append(candidate)

    products = validate_candidates(candidates)
    if products:
        logger.info(f"   JSON-LD: {len(products)} products")
    return products
