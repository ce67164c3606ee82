"""
Unit tests for CatalogAnalytics: overview sections and per-entity performance.
Run: python tests/test_analytics.py
"""

from catalog_fixtures import make_entity, sample_store

from catalog_search.analytics import CatalogAnalytics
from catalog_search.errors import EntityNotFound, InvalidFilterValue


def test_overview_totals():
	report = CatalogAnalytics(sample_store()).overview()
	overview = report["overview"]
	assert overview["total_subjects"] == 5  # the inactive entity is left out
	assert overview["total_exams"] == 15
	assert overview["total_students"] == 939
	assert overview["avg_popularity"] == 135.4


def test_breakdowns():
	report = CatalogAnalytics(sample_store()).overview()
	assert report["category_breakdown"][0]["category"] == "sciences"
	assert report["category_breakdown"][0]["count"] == 2
	difficulties = [(row["difficulty"], row["count"]) for row in report["difficulty_breakdown"]]
	assert difficulties == [("easy", 2), ("medium", 2), ("hard", 1)]
	series = {row["series"]: row["count"] for row in report["series_breakdown"]}
	assert series == {"A": 2, "C": 3, "D": 2, "B": 1}
	assert report["series_breakdown"][0]["series"] == "C"


def test_monthly_trends():
	report = CatalogAnalytics(sample_store()).overview()
	assert report["monthly_trends"] == [{"year": 2025, "month": 3, "count": 5, "avg_rating": 3.4}]


def test_top_performing():
	report = CatalogAnalytics(sample_store()).overview()
	top = [row["id"] for row in report["top_performing"]]
	assert top[:2] == ["anglais", "math"]
	assert report["top_performing"][0]["performance_score"] == 123.0
	assert len(CatalogAnalytics(sample_store(), top_size=2).overview()["top_performing"]) == 2


def test_distributions():
	report = CatalogAnalytics(sample_store()).overview()
	ratings = [(row["bucket"], row["count"]) for row in report["rating_distribution"]]
	assert ratings == [("0-1", 1), ("4-5", 4)]
	popularity = [(row["bucket"], row["count"]) for row in report["popularity_distribution"]]
	assert popularity == [("10-50", 1), ("50-100", 1), ("100-500", 3)]


def test_perfect_rating_and_very_popular_buckets():
	report = CatalogAnalytics(sample_store([make_entity("top", rating=5.0, popularity=4000)])).overview()
	assert report["rating_distribution"][0]["bucket"] == "4-5"
	assert report["popularity_distribution"][0]["bucket"] == "very-high"


def test_overview_filters():
	analytics = CatalogAnalytics(sample_store())
	assert analytics.overview({"category": "sciences"})["overview"]["total_subjects"] == 2
	assert analytics.overview({"series": "B"})["overview"]["total_subjects"] == 1
	# every sample entity was created in March 2025
	assert analytics.overview({"startDate": "2025-04-01"})["overview"]["total_subjects"] == 0
	assert analytics.overview({"endDate": "2025-04-01"})["overview"]["total_subjects"] == 5
	try:
		analytics.overview({"startDate": "last tuesday"})
	except InvalidFilterValue:
		return
	raise AssertionError("malformed startDate should fail")


def test_empty_overview():
	report = CatalogAnalytics(sample_store([])).overview()
	assert report["overview"]["total_subjects"] == 0
	assert report["overview"]["avg_rating"] == 0
	assert report["category_breakdown"] == []
	assert report["top_performing"] == []


def test_performance_rank_among_peers():
	entities = [
		make_entity("low", popularity=10, series=("A",)),
		make_entity("mid", popularity=20, series=("A", "B"), students=40, rating=4.0),
		make_entity("high", popularity=30, series=("A",)),
		make_entity("other-series", popularity=99, series=("Z",)),
		make_entity("other-category", category="arts", popularity=99, series=("A",)),
	]
	result = CatalogAnalytics(sample_store(entities)).performance("mid")
	assert result["category_rank"] == 2
	assert result["category_total"] == 3
	assert abs(result["percentile_rank"] - 100.0 / 3) < 1e-9
	assert result["performance"]["rating_score"] == 80.0
	assert result["performance"]["engagement_score"] == 4.0


def test_performance_unknown_id():
	try:
		CatalogAnalytics(sample_store()).performance("nope")
	except EntityNotFound:
		return
	raise AssertionError("unknown id should fail")


def main():
	print("Running CatalogAnalytics tests...")
	for name, fn in list(globals().items()):
		if name.startswith("test_") and callable(fn):
			fn()
			print(f" - {name} ok")
	print("All CatalogAnalytics tests passed!")


if __name__ == '__main__':
	main()
