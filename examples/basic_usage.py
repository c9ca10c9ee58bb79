"""
Basic Usage Example
Single listing crawl with FetchPilot
"""

import asyncio

from fetchpilot import AgentScraper, Settings
from fetchpilot.core.events import LoggingEventSink


async def main():
    # Provider, keys and page budget come from the environment
    # (LLM_PROVIDER, ANTHROPIC_API_KEY / OPENAI_API_KEY, FETCHPILOT_MAX_PAGES, ...)
    settings = Settings.from_env()
    options = settings.run_options(max_total_pages=5, event_sink=LoggingEventSink())

    products, summary = await AgentScraper().run(
        'https://books.toscrape.com/',
        'All books with title, price and availability',
        options
    )

    print(f"\n✅ Extracted {summary.total_products} products from {summary.pages_processed} pages")
    print(f"⏱️  Time: {summary.duration_ms / 1000:.2f}s")
    print(f"🛑 Stop reason: {summary.stop_reason.value}")

    for i, product in enumerate(products[:5], 1):
        print(f"\nProduct {i}:")
        for field, value in product.to_dict().items():
            print(f"  {field}: {value}")


if __name__ == '__main__':
    asyncio.run(main())
