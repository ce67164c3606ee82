"""
HTTP tests for the FastAPI app, served over an in-memory sample catalog.
Run: python tests/test_api.py
"""

from dataclasses import replace
from datetime import datetime, timedelta, timezone

from catalog_fixtures import make_entity, sample_catalog, sample_store

from fastapi.testclient import TestClient

import api
from catalog_search.config import Settings
from catalog_search.store import InMemoryCatalogStore


def make_client(store=None) -> TestClient:
	# the engine is set up directly; the startup hook skips loading when one exists
	api.init_engine(store or sample_store(), Settings(cache_ttl_seconds=0))
	return TestClient(api.app)


def test_health():
	body = make_client().get("/health").json()
	assert body["status"] == "ok"
	assert body["engine_ready"] is True


def test_search():
	response = make_client().get("/search", params={"sortBy": "popularity", "limit": 2})
	assert response.status_code == 200
	body = response.json()
	assert [item["id"] for item in body["items"]] == ["anglais", "svt"]
	assert body["pagination"] == {"current": 1, "pages": 3, "total": 5, "limit": 2}
	assert set(body["facets"]["categories"]) == {"mathematiques", "sciences", "langues", "arts"}
	assert "avgRating" in body["facets"]


def test_search_repeated_keys():
	client = make_client()
	body = client.get("/search?series=B&series=D").json()
	assert {item["id"] for item in body["items"]} == {"arts", "svt", "anglais"}


def test_search_validation_errors():
	client = make_client()
	response = client.get("/search", params={"limit": 1000})
	assert response.status_code == 400
	assert response.json()["error"] == "limit_exceeded"

	response = client.get("/search", params={"sortBy": "random"})
	assert response.status_code == 400
	assert "relevance" in response.json()["details"]["allowed"]

	assert client.get("/search", params={"minRating": "abc"}).status_code == 400


def test_subject_lookup():
	client = make_client()
	response = client.get("/subjects/math")
	assert response.status_code == 200
	assert response.json()["name"] == "Math"
	assert response.json()["examCount"] == 0

	missing = client.get("/subjects/nope")
	assert missing.status_code == 404
	assert missing.json()["details"]["ids"] == ["nope"]


def test_compare():
	client = make_client()
	body = client.get("/subjects/compare", params={"ids": "math,phys"}).json()
	assert [s["id"] for s in body["subjects"]] == ["math", "phys"]
	assert body["summary"]["commonSeries"] == ["C"]
	assert body["subjects"][0]["metrics"]["popularityRank"] == 1

	assert client.get("/subjects/compare", params={"ids": "math"}).status_code == 400
	assert client.get("/subjects/compare", params={"ids": "math,ghost"}).status_code == 404


def test_trending():
	now = datetime.now(timezone.utc)
	fresh = replace(make_entity("fresh", popularity=10), updated_at=now - timedelta(hours=2))
	stale = replace(make_entity("stale", popularity=900), updated_at=now - timedelta(days=10))
	client = make_client(InMemoryCatalogStore([fresh, stale]))

	body = client.get("/subjects/trending", params={"period": "day"}).json()
	assert [item["id"] for item in body] == ["fresh"]
	assert client.get("/subjects/trending", params={"period": "year"}).status_code == 400


def test_related_and_suggestions():
	client = make_client()
	assert [s["id"] for s in client.get("/subjects/math/related").json()] == ["anglais", "phys"]
	suggestions = client.get("/search/suggestions", params={"q": "an"}).json()["suggestions"]
	assert suggestions[0] == {
		"type": "subject", "name": "Anglais", "id": "anglais", "category": "langues",
		"series": ["A", "C", "D"], "popularity": 230,
	}
	trending = client.get("/search/trending-queries", params={"limit": 1}).json()["trending"]
	assert trending == [{"query": "Anglais", "category": "langues", "popularity": 230}]


def test_analytics_and_performance():
	client = make_client()
	report = client.get("/analytics").json()
	assert report["overview"]["total_subjects"] == 5
	assert client.get("/analytics", params={"category": "arts"}).json()["overview"]["total_subjects"] == 1

	performance = client.get("/subjects/phys/performance").json()
	assert performance["category_rank"] == 1
	assert client.get("/subjects/nope/performance").status_code == 404


def test_store_failure_is_503():
	class BrokenStore(InMemoryCatalogStore):
		def query(self, predicate, sort=None, skip=0, limit=None, deadline=None):
			raise ConnectionError("database down")

	client = make_client(BrokenStore(sample_catalog()))
	response = client.get("/search")
	assert response.status_code == 503
	assert response.json()["error"] == "store_unavailable"


def main():
	print("Running API tests...")
	for name, fn in list(globals().items()):
		if name.startswith("test_") and callable(fn):
			fn()
			print(f" - {name} ok")
	print("All API tests passed!")


if __name__ == '__main__':
	main()
