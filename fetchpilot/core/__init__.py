"""Core extraction engine modules"""

from .scraper import AgentScraper, ProductAccumulator, scrape_products
from .config import RunOptions, Settings
from .llm_client import LLMConfig, LLMClient
from .html_fetcher import HTMLFetcher
from .browser_fetcher import BrowserClient, PlaywrightBrowserClient, RemoteBrowserClient
from .decision_engine import DecisionEngine, build_fallback_decision
from .direct_llm_extractor import DirectLLMExtractor
from .extraction_chain import ExtractionChain, ExtractionContext, Extractor
from .classification_cache import ClassificationCache
from .metrics import RunRecord, build_overview, bucket_runs_by_day
from .models import AgentAction, AgentDecision, FailureCounters, PageObservation, Product, RunSummary, Selectors, StopReason
from .exceptions import ConfigurationError, FetchError, FetchPilotError, LLMError, RenderError, ResponseParseError

__all__ = [
    "AgentScraper",
    "ProductAccumulator",
    "scrape_products",
    "RunOptions",
    "Settings",
    "LLMConfig",
    "LLMClient",
    "HTMLFetcher",
    "BrowserClient",
    "PlaywrightBrowserClient",
    "RemoteBrowserClient",
    "DecisionEngine",
    "build_fallback_decision",
    "DirectLLMExtractor",
    "ExtractionChain",
    "ExtractionContext",
    "Extractor",
    "ClassificationCache",
    "RunRecord",
    "build_overview",
    "bucket_runs_by_day",
    "AgentAction",
    "AgentDecision",
    "FailureCounters",
    "PageObservation",
    "Product",
    "RunSummary",
    "Selectors",
    "StopReason",
    "ConfigurationError",
    "FetchError",
    "FetchPilotError",
    "LLMError",
    "RenderError",
    "ResponseParseError",
]
