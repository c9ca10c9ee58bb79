"""
Command Line Interface for FetchPilot
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List

from .core.config import Settings
from .core.events import LoggingEventSink
from .core.exceptions import ConfigurationError
from .core.metrics import build_overview
from .core.models import Selectors
from .core.scraper import AgentScraper


def main():
    parser = argparse.ArgumentParser(
        description='FetchPilot - LLM-guided product extraction from listing pages'
    )

    # Input
    parser.add_argument(
        '--url',
        type=str,
        help='Start URL for a single run'
    )
    parser.add_argument(
        '--goal',
        type=str,
        default='Extract all products with name, price, image and link',
        help='Natural-language extraction goal'
    )
    parser.add_argument(
        '--config',
        type=str,
        help='JSON file with {"runs": [{"url", "goal", "minProducts", "maxPages"}]} for a batch'
    )

    # Run bounds
    parser.add_argument(
        '--max-pages',
        type=int,
        help='Page budget per run (1-50, default from FETCHPILOT_MAX_PAGES or 12)'
    )
    parser.add_argument(
        '--min-products',
        type=int,
        default=0,
        help='Exit with status 1 if fewer products are found'
    )

    # LLM
    parser.add_argument(
        '--provider',
        type=str,
        help='LLM provider: anthropic, openai or ollama (default from LLM_PROVIDER)'
    )
    parser.add_argument(
        '--model',
        type=str,
        help='Model name (provider default if omitted)'
    )
    parser.add_argument(
        '--api-key',
        type=str,
        help='API key for the provider (or set via environment variable)'
    )

    # Selectors
    parser.add_argument(
        '--selectors',
        type=str,
        help='JSON object of custom selectors, e.g. \'{"item": ".card", "title": "h2", "link": "a"}\''
    )

    # Output
    parser.add_argument(
        '--output',
        type=str,
        help='Write products as JSON to this file instead of stdout'
    )
    parser.add_argument(
        '--verbose',
        action='store_true',
        help='Enable verbose logging'
    )

    args = parser.parse_args()

    try:
        settings = Settings.from_env()
    except ConfigurationError as e:
        print(f"❌ {e}")
        sys.exit(1)

    # Setup logging
    log_level = logging.DEBUG if args.verbose else getattr(logging, settings.log_level, logging.INFO)
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    if not args.url and not args.config:
        parser.error('Either --url or --config is required')

    if args.config:
        with open(args.config, 'r') as f:
            batch = json.load(f)
        runs = batch.get('runs', []) if isinstance(batch, dict) else batch
    else:
        runs = [{'url': args.url, 'goal': args.goal, 'minProducts': args.min_products, 'maxPages': args.max_pages}]

    custom_selectors = None
    if args.selectors:
        try:
            custom_selectors = Selectors.model_validate(json.loads(args.selectors))
        except ValueError as e:
            parser.error(f'Invalid --selectors: {e}')

    try:
        exit_code = asyncio.run(run_batch(runs, settings, args, custom_selectors))
    except KeyboardInterrupt:
        print("\n⚠️ Interrupted by user")
        sys.exit(1)
    sys.exit(exit_code)


async def run_batch(runs: List[Dict[str, Any]], settings: Settings, args, custom_selectors) -> int:
    """Execute runs sequentially; returns the process exit code"""
    # One renderer for the whole batch
    browser = settings.browser_client()
    try:
        return await _execute_runs(runs, settings, args, custom_selectors, browser)
    finally:
        if browser is not None:
            browser.close()


async def _execute_runs(runs: List[Dict[str, Any]], settings: Settings, args, custom_selectors, browser) -> int:
    scraper = AgentScraper(request_timeout=settings.request_timeout)
    llm = settings.llm_config(provider=args.provider, model=args.model)
    if args.api_key:
        llm.api_key = args.api_key

    summaries = []
    all_products = []
    shortfall = False

    for i, run in enumerate(runs, 1):
        url = run.get('url')
        goal = run.get('goal') or args.goal
        min_products = int(run.get('minProducts') or args.min_products or 0)
        max_pages = run.get('maxPages') or args.max_pages or settings.max_total_pages

        options = settings.run_options(
            llm=llm,
            max_total_pages=int(max_pages),
            custom_selectors=custom_selectors,
            browser=browser,
            event_sink=LoggingEventSink(),
        )

        print(f"\n🔎 Run {i}/{len(runs)}: {url}")
        try:
            products, summary = await scraper.run(url, goal, options)
        except ConfigurationError as e:
            print(f"❌ Configuration error: {e}")
            return 1

        summaries.append(summary)
        all_products.extend(p.to_dict() for p in products)

        status = '✅' if len(products) >= min_products else '⚠️'
        print(f"{status} {len(products)} products, {summary.pages_processed} pages, stop: {summary.stop_reason.value}")
        print(f"   Failures: {json.dumps(summary.failure_counters.to_dict())}")
        if len(products) < min_products:
            print(f"   Expected at least {min_products} products")
            shortfall = True

    if args.output:
        save_results(all_products, args.output)
    else:
        print(json.dumps(all_products, indent=2, ensure_ascii=False))

    if len(summaries) > 1:
        print("\n📊 Overview")
        print(json.dumps(build_overview(summaries).to_dict(), indent=2))

    return 1 if shortfall else 0


def save_results(products: List[Dict[str, Any]], output_path: str):
    """Save products to a JSON file"""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, 'w') as f:
        json.dump(products, f, indent=2, ensure_ascii=False)
    print(f"💾 Saved to {output_path} (JSON)")


if __name__ == '__main__':
    main()
