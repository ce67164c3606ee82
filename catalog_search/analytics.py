"""
Catalog analytics module.
Aggregate views over active entities (overview, breakdowns, distributions) and
per-entity performance relative to comparable entities.
"""

from collections import OrderedDict
from dataclasses import replace
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from loguru import logger

from .errors import EntityNotFound
from .facets import round_half_up, safe_mean
from .filters import FilterBuilder
from .models import Difficulty, Entity, Predicate
from .store import CatalogStore

RATING_BUCKETS: Tuple[float, ...] = (0, 1, 2, 3, 4, 5)
POPULARITY_BUCKETS: Tuple[float, ...] = (0, 10, 50, 100, 500, 1000)


def _group(entities: Iterable[Entity], key: Callable[[Entity], Any]) -> "OrderedDict[Any, List[Entity]]":
	groups: "OrderedDict[Any, List[Entity]]" = OrderedDict()
	for e in entities:
		groups.setdefault(key(e), []).append(e)
	return groups


def _bucket_label(value: float, boundaries: Sequence[float], last_inclusive: bool) -> Optional[str]:
	for lower, upper in zip(boundaries, boundaries[1:]):
		if lower <= value < upper or (last_inclusive and upper == boundaries[-1] and value == upper):
			return f"{lower}-{upper}"
	return None


class CatalogAnalytics:
	"""
	Read-only analytics over a CatalogStore.
	performance_score = rating.average * 20 + popularity * 0.1 + totalStudents * 0.05
	"""

	def __init__(
		self,
		store: CatalogStore,
		filter_builder: Optional[FilterBuilder] = None,
		rating_weight: float = 20.0,
		popularity_weight: float = 0.1,
		students_weight: float = 0.05,
		top_size: int = 10,
	):
		self.store = store
		self.filter_builder = filter_builder or FilterBuilder()
		self.rating_weight = rating_weight
		self.popularity_weight = popularity_weight
		self.students_weight = students_weight
		self.top_size = top_size

	def performance_score(self, e: Entity) -> float:
		return (
			e.rating.average * self.rating_weight +
			e.popularity * self.popularity_weight +
			e.statistics.total_students * self.students_weight
		)

	def overview(self, filters: Optional[Mapping[str, Any]] = None, deadline: Optional[float] = None) -> Dict[str, Any]:
		"""Catalog overview with optional startDate/endDate (creation bounds), category and series filters."""
		filters = dict(filters or {})
		base = self.filter_builder.build({k: filters.get(k) for k in ("category", "series")})
		predicate = replace(
			base,
			created_from=self.filter_builder.parse_datetime(filters, "startDate"),
			created_to=self.filter_builder.parse_datetime(filters, "endDate"),
		)
		entities, total = self.store.query(predicate, deadline=deadline)
		logger.debug(f"[Analytics] Overview over {total} entities")

		return {
			"overview": self._overview(entities),
			"category_breakdown": self._category_breakdown(entities),
			"difficulty_breakdown": self._difficulty_breakdown(entities),
			"series_breakdown": self._series_breakdown(entities),
			"monthly_trends": self._monthly_trends(entities),
			"top_performing": self._top_performing(entities),
			"rating_distribution": self._rating_distribution(entities),
			"popularity_distribution": self._popularity_distribution(entities),
		}

	def performance(self, entity_id: str, deadline: Optional[float] = None) -> Dict[str, Any]:
		"""Rank of one entity among active entities of its category that share a series with it."""
		found = self.store.get_by_ids([entity_id], deadline=deadline)
		if not found:
			raise EntityNotFound([entity_id])
		entity = found[0]

		peers, _ = self.store.query(
			Predicate(categories=frozenset([entity.category]), series=frozenset(entity.series), is_active=True),
			deadline=deadline,
		)
		more_popular = sum(1 for p in peers if p.popularity > entity.popularity)
		less_popular = sum(1 for p in peers if p.popularity < entity.popularity)

		return {
			"id": entity.id,
			"name": entity.name,
			"category": entity.category,
			"series": entity.series,
			"popularity": entity.popularity,
			"rating": {"average": entity.rating.average, "count": entity.rating.count},
			"category_rank": more_popular + 1,
			"category_total": len(peers),
			"percentile_rank": 100.0 * less_popular / len(peers) if peers else 0.0,
			"performance": {
				"popularity_score": entity.popularity,
				"rating_score": entity.rating.average * 20,
				"engagement_score": entity.statistics.total_students * 0.1,
				"completion_score": entity.statistics.completion_rate * 100,
			},
		}

	# --- sections ---------------------------------------------------------

	def _overview(self, entities: List[Entity]) -> Dict[str, Any]:
		hours = [e.estimated_hours for e in entities if e.estimated_hours is not None]
		return {
			"total_subjects": len(entities),
			"total_exams": sum(e.statistics.total_exams for e in entities),
			"total_students": sum(e.statistics.total_students for e in entities),
			"avg_rating": round_half_up(safe_mean([e.rating.average for e in entities]), 2),
			"avg_popularity": round_half_up(safe_mean([e.popularity for e in entities]), 2),
			"avg_estimated_hours": round_half_up(safe_mean(hours), 2),
		}

	def _category_breakdown(self, entities: List[Entity]) -> List[Dict[str, Any]]:
		rows = [
			{
				"category": category,
				"count": len(group),
				"avg_rating": round_half_up(safe_mean([e.rating.average for e in group]), 2),
				"avg_popularity": round_half_up(safe_mean([e.popularity for e in group]), 2),
				"total_exams": sum(e.statistics.total_exams for e in group),
				"total_students": sum(e.statistics.total_students for e in group),
			}
			for category, group in _group(entities, lambda e: e.category).items()
		]
		rows.sort(key=lambda r: r["count"], reverse=True)
		return rows

	def _difficulty_breakdown(self, entities: List[Entity]) -> List[Dict[str, Any]]:
		groups = _group(entities, lambda e: e.difficulty)
		return [
			{
				"difficulty": difficulty.value,
				"count": len(groups[difficulty]),
				"avg_rating": round_half_up(safe_mean([e.rating.average for e in groups[difficulty]]), 2),
				"avg_estimated_hours": round_half_up(
					safe_mean([e.estimated_hours for e in groups[difficulty] if e.estimated_hours is not None]), 2
				),
			}
			for difficulty in Difficulty
			if difficulty in groups
		]

	def _series_breakdown(self, entities: List[Entity]) -> List[Dict[str, Any]]:
		groups: "OrderedDict[str, List[Entity]]" = OrderedDict()
		for e in entities:
			for s in dict.fromkeys(e.series):
				groups.setdefault(s, []).append(e)
		rows = [
			{
				"series": series,
				"count": len(group),
				"avg_rating": round_half_up(safe_mean([e.rating.average for e in group]), 2),
				"total_exams": sum(e.statistics.total_exams for e in group),
			}
			for series, group in groups.items()
		]
		rows.sort(key=lambda r: r["count"], reverse=True)
		return rows

	def _monthly_trends(self, entities: List[Entity]) -> List[Dict[str, Any]]:
		dated = [e for e in entities if e.created_at is not None]
		groups = _group(dated, lambda e: (e.created_at.year, e.created_at.month))
		return [
			{
				"year": year,
				"month": month,
				"count": len(groups[(year, month)]),
				"avg_rating": round_half_up(safe_mean([e.rating.average for e in groups[(year, month)]]), 2),
			}
			for year, month in sorted(groups)
		]

	def _top_performing(self, entities: List[Entity]) -> List[Dict[str, Any]]:
		scored = sorted(entities, key=self.performance_score, reverse=True)[:self.top_size]
		return [
			{
				"id": e.id,
				"name": e.name,
				"category": e.category,
				"series": e.series,
				"rating": {"average": e.rating.average, "count": e.rating.count},
				"popularity": e.popularity,
				"total_students": e.statistics.total_students,
				"performance_score": round_half_up(self.performance_score(e), 2),
			}
			for e in scored
		]

	def _rating_distribution(self, entities: List[Entity]) -> List[Dict[str, Any]]:
		# the top bucket includes a perfect 5.0
		groups = _group(
			entities,
			lambda e: _bucket_label(e.rating.average, RATING_BUCKETS, last_inclusive=True) or "unrated",
		)
		return [
			{"bucket": label, "count": len(group), "subjects": [e.name for e in group]}
			for label, group in sorted(groups.items(), key=lambda kv: _bucket_order(kv[0], RATING_BUCKETS))
		]

	def _popularity_distribution(self, entities: List[Entity]) -> List[Dict[str, Any]]:
		groups = _group(
			entities,
			lambda e: _bucket_label(e.popularity, POPULARITY_BUCKETS, last_inclusive=False) or "very-high",
		)
		return [
			{
				"bucket": label,
				"count": len(group),
				"avg_rating": round_half_up(safe_mean([e.rating.average for e in group]), 2),
			}
			for label, group in sorted(groups.items(), key=lambda kv: _bucket_order(kv[0], POPULARITY_BUCKETS))
		]


def _bucket_order(label: str, boundaries: Sequence[float]) -> int:
	labels = [f"{lower}-{upper}" for lower, upper in zip(boundaries, boundaries[1:])]
	return labels.index(label) if label in labels else len(labels)
