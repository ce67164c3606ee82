"""
Print a catalog report.

This script:
1) Loads subjects from data/subjects.jsonl (or CATALOG_DATA_PATH)
2) Builds an in-memory store and search engine
3) Prints the analytics overview
4) Prints trending subjects and a sample search

Usage:
    poetry run python -m scripts.catalog_report [query]
"""

import sys  # optional query argument
import time  # measure step timings
from pathlib import Path  # filesystem-safe paths

from loguru import logger  # console logging

from catalog_search.analytics import CatalogAnalytics  # aggregate views
from catalog_search.config import Settings  # environment-driven settings
from catalog_search.logging_setup import configure_logging  # loguru sink setup
from catalog_search.search_engine import SearchEngine  # search orchestration
from catalog_search.store import InMemoryCatalogStore  # in-memory catalog


def main():
	settings = Settings()
	configure_logging(settings.log_level)

	# Headline banner for visibility in console
	logger.info("=" * 60)
	logger.info("Catalog Report")
	logger.info("=" * 60)

	# Resolve the catalog path relative to the project root when not absolute
	root = Path(__file__).resolve().parents[1]  # project root
	data_path = Path(settings.data_path)
	if not data_path.is_absolute():
		data_path = root / data_path

	# 1) Load data
	logger.info("[1/4] Loading subjects...")
	t0 = time.time()  # start timer
	store = InMemoryCatalogStore.from_jsonl(str(data_path))  # read dataset
	engine = SearchEngine(store, settings=settings)
	logger.info(f"[OK] Loaded {store.size()} subjects in {time.time() - t0:.2f}s")  # confirm count

	# 2) Overview
	logger.info("\n[2/4] Overview")
	report = CatalogAnalytics(engine.store).overview()
	for key, value in report["overview"].items():
		logger.info(f"  {key}: {value}")
	for row in report["category_breakdown"]:
		logger.info(f"  - {row['category']}: {row['count']} subjects, avg rating {row['avg_rating']}")

	# 3) Trending
	logger.info("\n[3/4] Trending this month")
	trending = engine.trending(period="month", limit=5)
	if not trending:
		logger.info("  (no subject updated in the last 30 days)")
	for i, item in enumerate(trending, 1):
		logger.info(f"  {i}. [{item.trending_score:.1f}] {item.entity.name} ({item.entity.category})")

	# 4) Sample search
	query = " ".join(sys.argv[1:]) or None
	logger.info(f"\n[4/4] Search: {query or '(all active subjects)'}")
	page = engine.search({"query": query, "limit": 5})
	for i, r in enumerate(page.items, 1):
		logger.info(f"  {i}. {r.entity.name} | popularity={r.entity.popularity} rating={r.entity.rating.average}")
	logger.info(f"  facets: categories={page.facets.categories} series={page.facets.series}")

	# Footer
	logger.info("=" * 60)


if __name__ == '__main__':
	main()  # invoke report
