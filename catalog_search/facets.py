"""
Facet extraction module.
Summarizes a filtered (pre-pagination) candidate set for search-refinement UIs.
"""

from collections import Counter
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np

from .models import Entity, Facets

# (label, inclusive lower bound) checked top-down; anything lower is "unrated"
RATING_RANGES = (
	("excellent", 4.5),
	("good", 3.5),
	("average", 2.5),
	("poor", 1.5),
)


def safe_mean(values: Sequence[float]) -> float:
	"""Arithmetic mean that resolves to 0 for an empty sequence (never NaN)."""
	if len(values) == 0:
		return 0.0
	return float(np.mean(np.asarray(values, dtype=float)))


def round_half_up(value: float, digits: int = 0) -> float:
	# half-up rounding; the builtin round() rounds halves to even
	factor = 10 ** digits
	return float(np.floor(value * factor + 0.5) / factor)


def rating_range(average: float) -> str:
	for label, lower in RATING_RANGES:
		if average >= lower:
			return label
	return "unrated"


class FacetExtractor:
	"""
	Distinct values per dimension plus aggregate statistics.
	- categories/difficulties/series: first-encountered order
	- tags: top `tags_size` by occurrence count, ties broken by first encounter
	- avg_rating rounded to 2 decimals; avg_estimated_hours rounded to 0 over entities that have hours
	"""

	def __init__(self, tags_size: int = 50):
		self.tags_size = tags_size

	def extract(self, entities: Iterable[Entity]) -> Facets:
		entities = list(entities)
		if not entities:
			return Facets()

		categories = Counter()
		difficulties = Counter()
		series = Counter()
		tags = Counter()
		for e in entities:
			categories[e.category] += 1
			difficulties[e.difficulty.value] += 1
			series.update(dict.fromkeys(e.series, 1))
			tags.update(dict.fromkeys(e.tags, 1))

		hours = [e.estimated_hours for e in entities if e.estimated_hours is not None]
		ratings = [e.rating.average for e in entities]

		return Facets(
			categories=list(categories),
			difficulties=list(difficulties),
			series=list(series),
			tags=self._top_tags(tags),
			avg_rating=round_half_up(safe_mean(ratings), 2),
			avg_estimated_hours=round_half_up(safe_mean(hours), 0),
			counts={
				"categories": dict(categories),
				"difficulties": dict(difficulties),
				"series": dict(series),
			},
			rating_distribution=dict(Counter(rating_range(r) for r in ratings)),
		)

	def _top_tags(self, tags: Counter, size: Optional[int] = None) -> List[str]:
		size = self.tags_size if size is None else size
		# Counter preserves insertion order, and sorted() is stable, so ties keep first encounter
		ordered = sorted(tags.items(), key=lambda kv: kv[1], reverse=True)
		return [tag for tag, _ in ordered[:size]]

	def tag_counts(self, entities: Iterable[Entity]) -> Dict[str, int]:
		counts = Counter()
		for e in entities:
			counts.update(dict.fromkeys(e.tags, 1))
		return dict(counts)
