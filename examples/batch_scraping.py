"""
Batch Scraping Example
Several category pages, one shared classification cache and a run overview
"""

import json

from fetchpilot import Settings, scrape_products
from fetchpilot.core.classification_cache import ClassificationCache
from fetchpilot.core.metrics import build_overview


def main():
    urls = [
        'https://books.toscrape.com/catalogue/category/books/mystery_3/index.html',
        'https://books.toscrape.com/catalogue/category/books/science-fiction_16/index.html',
        'https://books.toscrape.com/catalogue/category/books/fantasy_19/index.html',
    ]
    goal = 'Books with title, price, rating and availability'

    settings = Settings.from_env()
    browser = settings.browser_client()
    summaries = []
    results = {}

    with ClassificationCache(directory='.fetchpilot-cache') as cache:
        for url in urls:
            options = settings.run_options(max_total_pages=3, browser=browser, classification_cache=cache)
            products, summary = scrape_products(url, goal, options)
            summaries.append(summary)
            results[url] = {
                'products': [p.to_dict() for p in products],
                'summary': summary.to_dict(),
            }

    if browser is not None:
        browser.close()

    overview = build_overview(summaries).to_dict()
    print(f"\n📊 Batch Scraping Results:")
    print(f"   Runs: {overview['totalRuns']} (success rate {overview['successRate']}%)")
    print(f"   Total products: {overview['totalProducts']}")
    print(f"   Avg duration: {overview['averageDurationMs']} ms")
    print(f"   Failures: {overview['failureBuckets']}")

    with open('batch_results.json', 'w') as f:
        json.dump(results, f, indent=2)

    print(f"\n💾 Results saved to batch_results.json")


if __name__ == '__main__':
    main()
