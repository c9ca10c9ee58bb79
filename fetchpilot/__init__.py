"""
FetchPilot
LLM-guided product extraction: crawl listing pages, pick a strategy per page,
extract through a layered fallback chain and stop on well-defined conditions.
"""

__version__ = "1.0.0"

from .core.scraper import AgentScraper, scrape_products
from .core.config import RunOptions, Settings
from .core.llm_client import LLMConfig
from .core.models import Product, RunSummary, Selectors

__all__ = ["AgentScraper", "scrape_products", "RunOptions", "Settings", "LLMConfig", "Product", "RunSummary", "Selectors"]
