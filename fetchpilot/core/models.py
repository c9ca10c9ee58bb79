"""
Data model for the extraction engine

Pydantic models cover everything that crosses the LLM boundary (products and
extraction strategies), so model output is validated before use. Aliases
follow the camelCase wire names used in prompts and run summaries.
Run-internal bookkeeping (observations, counters, summaries) uses dataclasses.
"""

import logging
import math
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

_NUMBER_RE = re.compile(r'-?\d+(?:[.,]\d+)?')

# Upper bounds for model-chosen lazy-loading parameters
MAX_WAIT_MS = 15000
MAX_SCROLLS = 30


def _finite(value: float) -> float:
    if not math.isfinite(value):
        raise ValueError(f"expected a finite number, got {value!r}")
    return float(value)


class _CaseInsensitiveEnum(str, Enum):
    """String enum that accepts any casing from model output"""

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            return cls.__members__.get(value.strip().upper().replace('-', ''))
        return None


class FetchMode(_CaseInsensitiveEnum):
    HTTP = "HTTP"
    BROWSER = "BROWSER"


class ParseStrategy(_CaseInsensitiveEnum):
    CSS = "CSS"
    XPATH = "XPATH"
    JSONLD = "JSONLD"
    HYBRID = "HYBRID"


class PaginationType(_CaseInsensitiveEnum):
    LINK = "LINK"
    BUTTON = "BUTTON"
    SCROLL = "SCROLL"
    PARAMS = "PARAMS"
    NONE = "NONE"


class RetryStrategy(_CaseInsensitiveEnum):
    BACKOFF = "BACKOFF"
    JITTER = "JITTER"


class StopReason(str, Enum):
    MIN_PRODUCTS_REACHED = "min_products_reached"
    NO_MORE_PAGES = "no_more_pages"
    MAX_PAGES_REACHED = "max_pages_reached"
    CANCELLED = "cancelled"


def is_absolute_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in ('http', 'https') and bool(parsed.netloc)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------------

class Product(_CamelModel):
    """
    One extracted product record.

    Identity for deduplication is the exact (url, title) pair.
    """

    url: str
    title: str
    price: Optional[str] = None
    image: Optional[str] = None
    in_stock: Optional[bool] = None
    sku: Optional[str] = None
    currency: Optional[str] = None
    breadcrumbs: Optional[List[str]] = None
    extra: Optional[Dict[str, Any]] = None

    # Enrichment fields
    description: Optional[str] = None
    brand: Optional[str] = None
    rating: Optional[float] = None
    review_count: Optional[int] = None
    category_id: Optional[str] = None

    @field_validator('url', mode='before')
    @classmethod
    def _check_url(cls, value: Any) -> str:
        if not isinstance(value, str) or not is_absolute_url(value.strip()):
            raise ValueError(f"url must be an absolute http(s) URL, got {value!r}")
        return value.strip()

    @field_validator('title', mode='before')
    @classmethod
    def _check_title(cls, value: Any) -> str:
        if not isinstance(value, str) or not value.strip():
            raise ValueError("title must be a non-empty string")
        return ' '.join(value.split())

    @field_validator('image', mode='before')
    @classmethod
    def _drop_relative_image(cls, value: Any) -> Optional[str]:
        # A bad image never invalidates the whole product
        if isinstance(value, str) and is_absolute_url(value.strip()):
            return value.strip()
        return None

    @field_validator('price', 'sku', 'currency', 'brand', 'description', 'category_id', mode='before')
    @classmethod
    def _coerce_text(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        if isinstance(value, bool):
            return str(value).lower()
        if isinstance(value, (int, float)):
            return str(value)
        if isinstance(value, str):
            return value.strip() or None
        raise ValueError(f"expected text, got {type(value).__name__}")

    @field_validator('in_stock', mode='before')
    @classmethod
    def _coerce_in_stock(cls, value: Any) -> Optional[bool]:
        if value is None or isinstance(value, bool):
            return value
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in ('true', 'yes', 'instock', 'in stock', 'in_stock', 'available'):
                return True
            if lowered in ('false', 'no', 'outofstock', 'out of stock', 'out_of_stock', 'soldout', 'sold out'):
                return False
        return None

    @field_validator('rating', mode='before')
    @classmethod
    def _coerce_rating(cls, value: Any) -> Optional[float]:
        if isinstance(value, bool) or value is None:
            return None
        if isinstance(value, (int, float)):
            return _finite(value)
        match = _NUMBER_RE.search(str(value))
        return float(match.group(0).replace(',', '.')) if match else None

    @field_validator('review_count', mode='before')
    @classmethod
    def _coerce_review_count(cls, value: Any) -> Optional[int]:
        if isinstance(value, bool) or value is None:
            return None
        if isinstance(value, (int, float)):
            return int(_finite(value))
        digits = re.sub(r'[^\d]', '', str(value))
        return int(digits) if digits else None

    @field_validator('breadcrumbs', mode='before')
    @classmethod
    def _coerce_breadcrumbs(cls, value: Any) -> Optional[List[str]]:
        if value is None:
            return None
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, list):
            return None
        return [str(item).strip() for item in value if str(item).strip()] or None

    @property
    def identity(self) -> Tuple[str, str]:
        return (self.url, self.title)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


def validate_candidates(candidates: Iterable[Dict[str, Any]]) -> List[Product]:
    """
    Validate raw candidate dicts against the Product schema.

    Invalid items are dropped one by one; a bad item never fails the batch.
    """
    products = []
    dropped = 0
    for candidate in candidates:
        if isinstance(candidate, Product):
            products.append(candidate)
            continue
        if not isinstance(candidate, dict):
            dropped += 1
            continue
        try:
            products.append(Product.model_validate(candidate))
        except ValidationError as e:
            dropped += 1
            logger.debug(f"   Dropped invalid candidate {str(candidate)[:120]}: {e.error_count()} errors")
        except (ValueError, TypeError, OverflowError) as e:
            dropped += 1
            logger.debug(f"   Dropped invalid candidate {str(candidate)[:120]}: {e}")
    if dropped:
        logger.debug(f"   Dropped {dropped} candidates that failed validation")
    return products


# ---------------------------------------------------------------------------
# Extraction strategy ("AgentAction")
# ---------------------------------------------------------------------------

class Selectors(_CamelModel):
    """Named CSS (or XPath) selectors; every field except item is relative to the item element"""

    item: Optional[str] = None
    link: Optional[str] = None
    title: Optional[str] = None
    price: Optional[str] = None
    image: Optional[str] = None
    description: Optional[str] = None
    brand: Optional[str] = None
    rating: Optional[str] = None
    sku: Optional[str] = None

    @field_validator('*', mode='before')
    @classmethod
    def _blank_to_none(cls, value: Any) -> Optional[str]:
        if isinstance(value, str):
            return value.strip() or None
        return value

    def is_usable(self) -> bool:
        return bool(self.item)


class Pagination(_CamelModel):
    type: PaginationType = PaginationType.NONE
    selector: Optional[str] = None
    param_key: Optional[str] = None
    max_pages: int = Field(default=10, ge=1)


class AntiLazy(_CamelModel):
    scroll: bool = False
    wait_ms: int = Field(default=800, ge=0, le=MAX_WAIT_MS)
    max_scrolls: int = Field(default=6, ge=0, le=MAX_SCROLLS)


class RetryPolicy(_CamelModel):
    max_attempts: int = Field(default=3, ge=1)
    strategy: RetryStrategy = RetryStrategy.JITTER


class StopCriteria(_CamelModel):
    min_products: int = Field(default=10, ge=1)


class AgentAction(_CamelModel):
    """One extraction strategy proposed for a page"""

    mode: FetchMode
    parse_strategy: ParseStrategy
    selectors: Optional[Selectors] = None
    pagination: Pagination = Field(default_factory=Pagination)
    anti_lazy: AntiLazy = Field(default_factory=AntiLazy)
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    stop_criteria: StopCriteria = Field(default_factory=StopCriteria)


class AgentDecision(_CamelModel):
    rationale: Optional[str] = None
    actions: List[AgentAction] = Field(min_length=1)
    is_fallback: bool = Field(default=False, exclude=True)


# ---------------------------------------------------------------------------
# Run bookkeeping
# ---------------------------------------------------------------------------

@dataclass
class DomSignals:
    num_links: Optional[int] = None
    num_images: Optional[int] = None
    has_json_ld: Optional[bool] = None
    scroll_height: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'numLinks': self.num_links,
            'numImages': self.num_images,
            'hasJsonLd': self.has_json_ld,
            'scrollHeight': self.scroll_height,
        }
        return {k: v for k, v in data.items() if v is not None}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "DomSignals":
        data = data or {}
        return cls(
            num_links=data.get('numLinks'),
            num_images=data.get('numImages'),
            has_json_ld=data.get('hasJsonLd'),
            scroll_height=data.get('scrollHeight'),
        )


@dataclass
class PageObservation:
    """Result of fetching one URL (HTTP or rendered)"""

    url: str
    status: Optional[int] = None
    html: Optional[str] = None
    dom_signals: DomSignals = field(default_factory=DomSignals)
    mode: FetchMode = FetchMode.HTTP

    @property
    def has_html(self) -> bool:
        return bool(self.html and self.html.strip())

    @classmethod
    def from_dict(cls, data: Dict[str, Any], mode: FetchMode = FetchMode.BROWSER) -> "PageObservation":
        return cls(
            url=data.get('url') or '',
            status=data.get('status'),
            html=data.get('html'),
            dom_signals=DomSignals.from_dict(data.get('domSignals')),
            mode=mode,
        )


@dataclass
class FailureCounters:
    http_errors: int = 0
    no_html: int = 0
    llm_errors: int = 0
    parsing_errors: int = 0
    empty_results: int = 0
    total_pages: int = 0

    def success_rate(self) -> float:
        """Percentage of attempted pages that were not transport, empty-body or LLM failures"""
        if self.total_pages == 0:
            return 0.0
        failed = self.http_errors + self.no_html + self.llm_errors
        succeeded = max(self.total_pages - failed, 0)
        return round(succeeded / self.total_pages * 100, 1)

    def to_dict(self) -> Dict[str, int]:
        return {
            'httpErrors': self.http_errors,
            'noHtml': self.no_html,
            'llmErrors': self.llm_errors,
            'parsingErrors': self.parsing_errors,
            'emptyResults': self.empty_results,
            'totalPages': self.total_pages,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "FailureCounters":
        data = data or {}
        return cls(
            http_errors=int(data.get('httpErrors', 0)),
            no_html=int(data.get('noHtml', 0)),
            llm_errors=int(data.get('llmErrors', 0)),
            parsing_errors=int(data.get('parsingErrors', 0)),
            empty_results=int(data.get('emptyResults', 0)),
            total_pages=int(data.get('totalPages', 0)),
        )


@dataclass
class RunSummary:
    run_id: str
    duration_ms: int
    total_products: int
    pages_processed: int
    stop_reason: StopReason
    failure_counters: FailureCounters
    success_rate: float
    start_url: Optional[str] = None
    goal: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'runId': self.run_id,
            'durationMs': self.duration_ms,
            'totalProducts': self.total_products,
            'pagesProcessed': self.pages_processed,
            'stopReason': self.stop_reason.value,
            'failureCounters': self.failure_counters.to_dict(),
            'successRate': self.success_rate,
            'startUrl': self.start_url,
            'goal': self.goal,
        }
