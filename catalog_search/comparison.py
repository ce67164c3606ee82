"""
Comparison module.
Side-by-side comparison of two or more entities with comparison-local ranks.
"""

from typing import Dict, List, Optional, Sequence

from loguru import logger

from .errors import EntityNotFound, InsufficientIds
from .facets import safe_mean
from .models import ComparedEntity, Comparison, ComparisonMetrics, ComparisonSummary, Entity
from .store import CatalogStore


class ComparisonEngine:
	"""
	Builds a Comparison for the requested ids:
	- engagement_score = totalStudents * students_weight + popularity * popularity_weight
	- popularity_rank / rating_rank: 1..N descending, ties keep request order
	- output keeps the caller's id order
	Inactive entities may be compared; only missing ids are an error.
	"""

	MIN_IDS = 2

	def __init__(self, students_weight: float = 0.1, popularity_weight: float = 0.01):
		self.students_weight = students_weight
		self.popularity_weight = popularity_weight

	def compare(self, store: CatalogStore, ids: Sequence[str], deadline: Optional[float] = None) -> Comparison:
		ids = [str(i) for i in ids]
		if len(ids) < self.MIN_IDS:
			raise InsufficientIds(len(ids), self.MIN_IDS)

		records = store.get_by_ids(ids, deadline=deadline)
		by_id: Dict[str, Entity] = {e.id: e for e in records}
		missing = [i for i in dict.fromkeys(ids) if i not in by_id]
		if missing:
			raise EntityNotFound(missing)

		compared = [
			ComparedEntity(
				entity=by_id[i],
				metrics=ComparisonMetrics(
					difficulty_level=by_id[i].difficulty_level,
					engagement_score=(
						by_id[i].statistics.total_students * self.students_weight +
						by_id[i].popularity * self.popularity_weight
					),
				),
			)
			for i in ids
		]

		# sorted() is stable: equal values keep the request order
		for rank, item in enumerate(sorted(compared, key=lambda c: c.entity.popularity, reverse=True), 1):
			item.metrics.popularity_rank = rank
		for rank, item in enumerate(sorted(compared, key=lambda c: c.entity.rating.average, reverse=True), 1):
			item.metrics.rating_rank = rank

		entities = [c.entity for c in compared]
		summary = ComparisonSummary(
			total=len(entities),
			avg_rating=safe_mean([e.rating.average for e in entities]),
			avg_popularity=safe_mean([e.popularity for e in entities]),
			avg_estimated_hours=safe_mean([e.estimated_hours or 0 for e in entities]),
			common_series=self._common_series(entities),
			categories=list(dict.fromkeys(e.category for e in entities)),
			difficulties=list(dict.fromkeys(e.difficulty.value for e in entities)),
		)
		logger.debug(f"[Compare] Compared {len(entities)} entities | common series={summary.common_series}")
		return Comparison(subjects=compared, summary=summary)

	def _common_series(self, entities: List[Entity]) -> List[str]:
		common = list(dict.fromkeys(entities[0].series))
		for e in entities[1:]:
			other = set(e.series)
			common = [s for s in common if s in other]
		return common
