"""
End-to-end tests for SearchEngine over the in-memory store:
filter -> store -> rank -> facets -> paginate, plus lookups, suggestions and store failures.
Run: python tests/test_search_engine.py
"""

import time
from dataclasses import replace
from datetime import datetime, timezone

from catalog_fixtures import NOW, make_entity, math_and_physics, sample_catalog, sample_store

from catalog_search.config import Settings
from catalog_search.errors import EntityNotFound, LimitExceeded, StoreTimeout, StoreUnavailable
from catalog_search.models import Difficulty, Predicate
from catalog_search.search_engine import SearchEngine
from catalog_search.store import InMemoryCatalogStore


class CountingStore(InMemoryCatalogStore):
	"""In-memory store that records every query call and the deadline it received."""

	def __init__(self, entities=None):
		super().__init__(entities)
		self.calls = 0
		self.deadlines = []

	def query(self, predicate, sort=None, skip=0, limit=None, deadline=None):
		self.calls += 1
		self.deadlines.append(deadline)
		return super().query(predicate, sort=sort, skip=skip, limit=limit, deadline=deadline)

	def get_by_ids(self, ids, deadline=None):
		self.deadlines.append(deadline)
		return super().get_by_ids(ids, deadline=deadline)


class BrokenStore(InMemoryCatalogStore):
	def query(self, predicate, sort=None, skip=0, limit=None, deadline=None):
		raise OSError("connection reset")


def ids(page):
	return [item.entity.id for item in page.items]


def test_sort_by_popularity_scenario():
	engine = SearchEngine(sample_store(math_and_physics()))
	page = engine.search({"sortBy": "popularity", "sortOrder": "desc"})
	assert [item.entity.name for item in page.items] == ["Math", "Phys"]


def test_min_rating_scenario():
	engine = SearchEngine(sample_store(math_and_physics()))
	page = engine.search({"minRating": "4.3"})
	assert ids(page) == ["math"]
	assert page.pagination.total == 1


def test_pagination_windows():
	engine = SearchEngine(sample_store())  # five active entities
	page = engine.search({"limit": 2, "page": 3, "sortBy": "popularity"})
	assert page.pagination.total == 5
	assert page.pagination.pages == 3
	assert page.pagination.current == 3
	assert len(page.items) == 1
	assert ids(page) == ["arts"]  # least popular comes last

	past_end = engine.search({"limit": 2, "page": 9})
	assert past_end.items == []
	assert past_end.pagination.total == 5


def test_pages_concatenate_to_full_ordering():
	engine = SearchEngine(sample_store())
	full = ids(engine.search({"sortBy": "name", "limit": 10}))
	paged = []
	for page in (1, 2, 3):
		paged += ids(engine.search({"sortBy": "name", "limit": 2, "page": page}))
	assert paged == full


def test_inactive_entities_are_hidden_by_default():
	engine = SearchEngine(sample_store())
	assert "latin" not in ids(engine.search({"limit": 10}))
	assert ids(engine.search({"isActive": "false"})) == ["latin"]


def test_facets_cover_the_full_matched_set():
	engine = SearchEngine(sample_store())
	page = engine.search({"limit": 1})
	assert len(page.items) == 1
	assert set(page.facets.categories) == {"mathematiques", "sciences", "langues", "arts"}
	assert "traduction" not in page.facets.tags  # only on the inactive entity


def test_empty_result():
	engine = SearchEngine(sample_store())
	page = engine.search({"category": "technologie"})
	assert page.items == []
	assert page.pagination.total == 0 and page.pagination.pages == 0
	assert page.facets.avg_rating == 0 and page.facets.avg_estimated_hours == 0
	assert page.facets.categories == []


def test_relevance_with_query():
	engine = SearchEngine(sample_store())
	page = engine.search({"query": "analyse"})
	assert set(ids(page)) == {"math", "phys"}
	assert all(item.text_score is not None for item in page.items)


def filter_catalog():
	"""Entities sitting on the popularity, exam-count and hours boundaries."""
	return [
		replace(
			make_entity("p100", popularity=100, exams=0, hours=10, tags=("algebre",)),
			subcategory="analyse",
		),
		make_entity("p101", popularity=101, exams=3, hours=50, difficulty=Difficulty.HARD, tags=("geometrie",)),
		make_entity("nohours", popularity=5, exams=1, difficulty=Difficulty.EASY, tags=("algebre", "geometrie")),
	]


def matched(params):
	page = SearchEngine(sample_store(filter_catalog())).search(params)
	return set(ids(page))


def test_is_popular_is_strictly_above_threshold():
	assert matched({"isPopular": "true"}) == {"p101"}
	assert matched({"isPopular": "false"}) == {"p100", "p101", "nohours"}


def test_has_exams():
	assert matched({"hasExams": "true"}) == {"p101", "nohours"}
	assert matched({"hasExams": "false"}) == {"p100"}


def test_hours_range_is_inclusive_and_skips_absent_hours():
	assert matched({"minEstimatedHours": 10, "maxEstimatedHours": 50}) == {"p100", "p101"}
	assert matched({"minEstimatedHours": 11}) == {"p101"}
	assert matched({"maxEstimatedHours": 49}) == {"p100"}
	assert matched({"minEstimatedHours": 0}) == {"p100", "p101"}


def test_tags_match_on_any_overlap():
	assert matched({"tags": "geometrie,chimie"}) == {"p101", "nohours"}
	assert matched({"tags": "ALGEBRE"}) == {"p100", "nohours"}
	assert matched({"tags": "chimie"}) == set()


def test_difficulty_and_subcategory():
	assert matched({"difficulty": "hard,easy"}) == {"p101", "nohours"}
	assert matched({"difficulty": "moyen"}) == {"p100"}
	assert matched({"subcategory": "analyse"}) == {"p100"}
	assert matched({"subcategory": "analyse", "hasExams": "true"}) == set()


def test_created_at_sort_with_naive_timestamps():
	entities = [
		make_entity("aware", created_at=datetime(2024, 1, 1, tzinfo=timezone.utc)),
		make_entity("naive", created_at=datetime(2024, 2, 1)),
	]
	page = SearchEngine(sample_store(entities)).search({"sortBy": "createdAt"})
	assert ids(page) == ["aware", "naive"]


def test_caller_deadline_is_forwarded():
	store = CountingStore(sample_catalog())
	engine = SearchEngine(store, settings=Settings(store_timeout_seconds=0))
	deadline = time.monotonic() + 30

	engine.search({}, deadline=deadline)
	engine.trending("month", now=NOW, deadline=deadline)
	engine.compare(["math", "phys"], deadline=deadline)
	assert len(store.deadlines) == 3
	assert all(d == deadline for d in store.deadlines)

	engine.search({"page": 2})  # no caller deadline and no configured timeout
	assert store.deadlines[-1] is None


def test_limit_above_maximum():
	engine = SearchEngine(sample_store(), settings=Settings(max_limit=10))
	try:
		engine.search({"limit": 11})
	except LimitExceeded:
		return
	raise AssertionError("limit above maximum should fail")


def test_store_failure_surfaces_as_unavailable():
	engine = SearchEngine(BrokenStore(sample_catalog()))
	try:
		engine.search({})
	except StoreUnavailable as e:
		assert e.operation == "query"
		assert isinstance(e.__cause__, OSError)
		return
	raise AssertionError("broken store should surface StoreUnavailable")


def test_store_receives_a_deadline():
	store = CountingStore(sample_catalog())
	SearchEngine(store, settings=Settings(store_timeout_seconds=2.0)).search({})
	assert store.deadlines and store.deadlines[0] is not None
	assert store.deadlines[0] > time.monotonic() - 1


def test_expired_deadline_aborts_the_query():
	store = sample_store()
	try:
		store.query(Predicate(), deadline=time.monotonic() - 1)
	except StoreTimeout:
		pass
	else:
		raise AssertionError("expired deadline should abort")

	# through the engine the timeout is reported as the store being unavailable
	engine = SearchEngine(store)
	try:
		engine.store.query(Predicate(), deadline=time.monotonic() - 1)
	except StoreUnavailable:
		return
	raise AssertionError("timeout should surface as StoreUnavailable")


def test_result_cache():
	store = CountingStore(sample_catalog())
	engine = SearchEngine(store, settings=Settings(cache_ttl_seconds=60))
	first = engine.search({"sortBy": "rating"})
	second = engine.search({"sortBy": "rating"})
	assert store.calls == 1
	assert ids(first) == ids(second)

	engine.search({"sortBy": "rating", "page": 2})  # different key
	assert store.calls == 2

	engine.clear_cache()
	engine.search({"sortBy": "rating"})
	assert store.calls == 3


def test_no_cache_by_default():
	store = CountingStore(sample_catalog())
	engine = SearchEngine(store, settings=Settings(cache_ttl_seconds=0))
	engine.search({})
	engine.search({})
	assert store.calls == 2


def test_get_entity_counts_a_view():
	store = sample_store()
	engine = SearchEngine(store)
	entity = engine.get_entity("latin")  # inactive entities are reachable directly
	assert entity.id == "latin"
	assert entity.popularity == 500  # snapshot taken before the view
	assert store.get_by_id("latin").popularity == 501


def test_get_entity_unknown_id():
	try:
		SearchEngine(sample_store()).get_entity("nope")
	except EntityNotFound as e:
		assert e.ids == ["nope"]
		return
	raise AssertionError("unknown id should fail")


def test_failing_view_callback_does_not_fail_the_read():
	def boom(entity_id):
		raise RuntimeError("counter offline")

	engine = SearchEngine(sample_store(), on_view=boom)
	assert engine.get_entity("math").name == "Math"


def test_related():
	engine = SearchEngine(sample_store())
	related = engine.related("math")
	assert [e.id for e in related] == ["anglais", "phys"]
	assert engine.related("math", limit=1)[0].id == "anglais"
	assert engine.related("nope") == []


def test_suggest():
	engine = SearchEngine(sample_store())
	assert engine.suggest("a") == []  # below the minimum length
	suggestions = engine.suggest("an")
	subjects = [s.id for s in suggestions if s.type == "subject"]
	tags = [(s.name, s.count) for s in suggestions if s.type == "tag"]
	assert subjects == ["anglais", "math", "phys"]
	assert tags == [("analyse", 2), ("mecanique", 1)]
	assert engine.suggest("an", limit=1)[0].id == "anglais"


def test_trending_searches():
	engine = SearchEngine(sample_store())
	top = engine.trending_searches(limit=2)
	assert [t["query"] for t in top] == ["Anglais", "Sciences de la Vie"]


def test_trending_and_compare_delegate():
	engine = SearchEngine(sample_store([
		make_entity("fresh", popularity=5, updated_days_ago=0.2),
		make_entity("stale", popularity=900, updated_days_ago=12),
	]))
	assert [i.entity.id for i in engine.trending("day", now=NOW)] == ["fresh"]
	assert [c.entity.id for c in engine.compare(["stale", "fresh"]).subjects] == ["stale", "fresh"]


def main():
	print("Running SearchEngine tests...")
	for name, fn in list(globals().items()):
		if name.startswith("test_") and callable(fn):
			fn()
			print(f" - {name} ok")
	print("All SearchEngine tests passed!")


if __name__ == '__main__':
	main()
