"""
Search engine module.
Composes filter building, store access, ranking, and facet extraction into one
request/response cycle, and exposes trending, comparison, suggestions and lookups.
"""

import math  # page count
import threading  # guards the result cache
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

# TTL cache for optional result caching
from cachetools import TTLCache

# Import loguru for console logging
from loguru import logger  # simple structured logger

# Import project modules for data structures and components
from .comparison import ComparisonEngine  # multi-entity comparison
from .config import Settings  # limits, thresholds, cache and timeout settings
from .errors import EntityNotFound, ValidationError
from .facets import FacetExtractor  # facet summary of the matched set
from .filters import FilterBuilder  # raw parameters -> Predicate
from .models import (
	Comparison,
	Entity,
	PageRequest,
	Pagination,
	Predicate,
	SearchPage,
	SortMode,
	SortOrder,
	SortSpec,
	Suggestion,
	TrendingItem,
)
from .ranking import Ranker  # sort modes and composite scores
from .store import CatalogStore, GuardedStore  # storage collaborator
from .trending import TrendingCalculator  # time-decayed popularity


class SearchEngine:
	"""
	High-level search API over a CatalogStore.
	Every dependency is injected; the engine holds no per-request state beyond the optional
	result cache, whose entries expire after `cache_ttl_seconds`.
	"""

	def __init__(
		self,
		store: CatalogStore,  # storage collaborator
		settings: Optional[Settings] = None,
		filter_builder: Optional[FilterBuilder] = None,
		ranker: Optional[Ranker] = None,
		facet_extractor: Optional[FacetExtractor] = None,
		trending_calculator: Optional[TrendingCalculator] = None,
		comparison_engine: Optional[ComparisonEngine] = None,
		on_view: Optional[Callable[[str], None]] = None,  # called after a direct lookup (popularity increment)
	):
		self.settings = settings or Settings()
		# Wrap the store so that timeouts and failures surface as StoreUnavailable
		self.store = GuardedStore(store, timeout_seconds=self.settings.store_timeout_seconds)
		self.filter_builder = filter_builder or FilterBuilder(self.settings)
		self.ranker = ranker or Ranker()
		self.facet_extractor = facet_extractor or FacetExtractor(tags_size=self.settings.tags_facet_size)
		self.trending_calculator = trending_calculator or TrendingCalculator(
			default_limit=self.settings.trending_default_limit
		)
		self.comparison_engine = comparison_engine or ComparisonEngine()
		self.on_view = on_view if on_view is not None else self.store.increment_popularity

		# Optional result cache keyed on the normalized (predicate, page request) pair
		self._cache: Optional[TTLCache] = None
		self._cache_lock = threading.Lock()
		if self.settings.cache_ttl_seconds > 0:
			self._cache = TTLCache(maxsize=self.settings.cache_max_entries, ttl=self.settings.cache_ttl_seconds)
			logger.info(
				f"[Engine] Result cache enabled | ttl={self.settings.cache_ttl_seconds}s max={self.settings.cache_max_entries}"
			)

	def search(self, params: Mapping[str, Any], deadline: Optional[float] = None) -> SearchPage:
		"""
		Filter, rank, facet and paginate in a single pass.
		`deadline` is an absolute time.monotonic() value; without one the configured store timeout applies.
		"""
		try:
			predicate = self.filter_builder.build(params)  # typed filters
			page_request = self.filter_builder.build_page_request(params)  # page/limit/sort
		except ValidationError as e:
			logger.warning(f"[Engine] Rejected search parameters: {e}")
			raise
		return self.execute(predicate, page_request, deadline=deadline)

	def execute(self, predicate: Predicate, page_request: PageRequest, deadline: Optional[float] = None) -> SearchPage:
		"""Run an already-validated search."""
		cache_key = (predicate, page_request)
		cached = self._cache_get(cache_key)
		if cached is not None:
			logger.debug("[Engine] Result cache hit")
			return cached

		records, total = self.store.query(predicate, deadline=deadline)  # full matched set, needed for facets
		logger.debug(f"[Engine] Store matched {total} records | sort={page_request.sort.mode.value}")

		if total == 0 or not records:
			# EMPTY_RESULT: facets computed over the empty set resolve to zeros
			page = SearchPage(
				items=[],
				pagination=Pagination(current=page_request.page, pages=0, total=0, limit=page_request.limit),
				facets=self.facet_extractor.extract([]),
				predicate=predicate,
				sort=page_request.sort,
			)
			self._cache_put(cache_key, page)
			return page

		ranked = self.ranker.rank(records, page_request.sort, predicate.query)  # ordering
		facets = self.facet_extractor.extract(records)  # summary of the full matched set
		window = ranked[page_request.skip:page_request.skip + page_request.limit]  # page slice

		page = SearchPage(
			items=window,
			pagination=Pagination(
				current=page_request.page,
				pages=math.ceil(total / page_request.limit),
				total=total,
				limit=page_request.limit,
			),
			facets=facets,
			predicate=predicate,
			sort=page_request.sort,
		)
		logger.info(f"[Engine] Returning {len(window)} of {total} results (page {page_request.page})")
		self._cache_put(cache_key, page)
		return page

	def trending(
		self,
		period: str = "week",
		limit: Optional[int] = None,
		now: Optional[datetime] = None,
		deadline: Optional[float] = None,
	) -> List[TrendingItem]:
		items = self.trending_calculator.trending(self.store, period=period, limit=limit, now=now, deadline=deadline)
		logger.debug(f"[Engine] Trending ({period}) -> {len(items)} items")
		return items

	def compare(self, ids: Sequence[str], deadline: Optional[float] = None) -> Comparison:
		return self.comparison_engine.compare(self.store, ids, deadline=deadline)

	def get_entity(self, entity_id: str) -> Entity:
		"""Direct lookup by id (inactive entities included); counts as a view."""
		found = self.store.get_by_ids([entity_id])
		if not found:
			raise EntityNotFound([entity_id])
		try:
			self.on_view(entity_id)
		except Exception as e:  # the view counter is best-effort and must not fail the read
			logger.warning(f"[Engine] View callback failed for {entity_id}: {e}")
		return found[0]

	def related(self, entity_id: str, limit: Optional[int] = None) -> List[Entity]:
		"""Active entities sharing a category, a series, a tag, or the difficulty; most popular first."""
		limit = self.settings.related_default_limit if limit is None else limit
		found = self.store.get_by_ids([entity_id])
		if not found:
			return []
		subject = found[0]

		candidates, _ = self.store.query(
			Predicate(is_active=True, exclude_ids=frozenset([entity_id])),
			sort=SortSpec(SortMode.POPULARITY, SortOrder.DESC),
		)
		series = set(subject.series)
		tags = set(subject.tags)
		related = [
			e for e in candidates
			if e.category == subject.category
			or series.intersection(e.series)
			or tags.intersection(e.tags)
			or e.difficulty == subject.difficulty
		]
		return related[:limit]

	def suggest(self, query: str, limit: int = 10) -> List[Suggestion]:
		"""Entity-name suggestions followed by matching tags with their usage counts."""
		needle = (query or "").strip().lower()
		if len(needle) < self.settings.suggestion_min_chars:
			return []

		active, _ = self.store.query(
			Predicate(is_active=True),
			sort=SortSpec(SortMode.POPULARITY, SortOrder.DESC),
		)

		def contains(e: Entity) -> bool:
			return (
				needle in e.name.lower()
				or any(needle in t.lower() for t in e.tags)
				or any(needle in k.lower() for k in e.keywords)
			)

		subjects = [
			Suggestion(type="subject", name=e.name, id=e.id, category=e.category, series=e.series, popularity=e.popularity)
			for e in active if contains(e)
		][:limit]

		tag_counts = self.facet_extractor.tag_counts(active)
		tags = sorted(((t, c) for t, c in tag_counts.items() if needle in t), key=lambda tc: tc[1], reverse=True)
		tag_suggestions = [
			Suggestion(type="tag", name=t, count=c) for t, c in tags[:self.settings.tag_suggestion_limit]
		]
		return subjects + tag_suggestions

	def trending_searches(self, limit: int = 10) -> List[Dict[str, Any]]:
		"""Most popular active entity names, offered as search shortcuts."""
		top, _ = self.store.query(
			Predicate(is_active=True),
			sort=SortSpec(SortMode.POPULARITY, SortOrder.DESC),
			limit=limit,
		)
		return [{"query": e.name, "category": e.category, "popularity": e.popularity} for e in top]

	def clear_cache(self) -> None:
		if self._cache is not None:
			with self._cache_lock:
				self._cache.clear()
			logger.info("[Engine] Result cache cleared")

	def _cache_get(self, key) -> Optional[SearchPage]:
		if self._cache is None:
			return None
		with self._cache_lock:
			return self._cache.get(key)

	def _cache_put(self, key, page: SearchPage) -> None:
		if self._cache is None:
			return
		with self._cache_lock:
			self._cache[key] = page
