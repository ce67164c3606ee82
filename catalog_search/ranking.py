"""
Ranking module.
Scores free-text matches and orders candidate entities for every supported sort mode.
"""

import re
from typing import Callable, List, Optional, Sequence, Tuple

from rapidfuzz import fuzz

from .models import Entity, RankedEntity, SortMode, SortSpec, as_utc


def tokenize(text: str) -> List[str]:
	return re.findall(r"[\w'-]+", (text or "").lower())


class TextScorer:
	"""
	Case-insensitive relevance of an entity for a free-text query.
	Signals:
	- name hits (query tokens appearing in the name), weighted highest
	- tag hits, then keyword hits
	- a whole-phrase bonus when the full query appears in the name
	- a small fuzzy similarity term between the query and the name
	An entity without any hit does not match (score None).
	"""

	def __init__(
		self,
		name_weight: float = 3.0,
		tag_weight: float = 2.0,
		keyword_weight: float = 1.5,
		phrase_bonus: float = 2.0,
		fuzzy_weight: float = 1.0,
	):
		self.name_weight = name_weight
		self.tag_weight = tag_weight
		self.keyword_weight = keyword_weight
		self.phrase_bonus = phrase_bonus
		self.fuzzy_weight = fuzzy_weight

	def score(self, entity: Entity, query: str) -> Optional[float]:
		phrase = (query or "").strip().lower()
		tokens = tokenize(phrase)
		if not tokens:
			return None

		name = (entity.name or "").lower()
		tags = [t.lower() for t in entity.tags]
		keywords = [k.lower() for k in entity.keywords]

		hits = 0.0
		if phrase in name:
			hits += self.phrase_bonus
		for token in tokens:
			if token in name:
				hits += self.name_weight
			if any(token in tag for tag in tags):
				hits += self.tag_weight
			if any(token in kw for kw in keywords):
				hits += self.keyword_weight
		if hits == 0.0:
			return None

		similarity = fuzz.partial_ratio(phrase, name) / 100.0
		return round(hits + self.fuzzy_weight * similarity, 4)

	def matches(self, entity: Entity, query: str) -> bool:
		return self.score(entity, query) is not None


class Ranker:
	"""
	Orders candidates by the requested sort mode.
	The composite popularity score is:
		popularity * popularity_weight + rating.average * rating_weight + totalStudents * students_weight
	Sorting is stable, so equal keys keep the order the store returned.
	"""

	def __init__(
		self,
		popularity_weight: float = 1.0,
		rating_weight: float = 10.0,
		students_weight: float = 0.1,
		text_scorer: Optional[TextScorer] = None,
	):
		self.popularity_weight = popularity_weight
		self.rating_weight = rating_weight
		self.students_weight = students_weight
		self.text_scorer = text_scorer or TextScorer()

	def popularity_score(self, entity: Entity) -> float:
		return (
			entity.popularity * self.popularity_weight +
			entity.rating.average * self.rating_weight +
			entity.statistics.total_students * self.students_weight
		)

	def rank(self, entities: Sequence[Entity], sort: SortSpec, query: Optional[str] = None) -> List[RankedEntity]:
		ranked: List[RankedEntity] = []
		for entity in entities:
			text_score = self.text_scorer.score(entity, query) if query else None
			ranked.append(RankedEntity(entity=entity, text_score=text_score))

		key = self._key_for(sort.mode, bool(query))
		if sort.mode in (SortMode.RELEVANCE, SortMode.POPULARITY_SCORE):
			for item in ranked:
				item.score = key(item)[1]

		# list.sort is stable in both directions
		ranked.sort(key=key, reverse=sort.descending)
		return ranked

	def _key_for(self, mode: SortMode, has_query: bool) -> Callable[[RankedEntity], Tuple]:
		"""
		Return a sort key of the form (present, value).
		Missing values sort as the lowest value: first ascending, last descending.
		"""
		def present(value) -> Tuple:
			return (0, 0) if value is None else (1, value)

		if mode is SortMode.RELEVANCE:
			if has_query:
				return lambda r: (1, r.text_score or 0.0)
			return lambda r: (1, self.popularity_score(r.entity))
		if mode is SortMode.POPULARITY_SCORE:
			return lambda r: (1, self.popularity_score(r.entity))
		if mode is SortMode.NAME:
			return lambda r: present(r.entity.name.casefold() if r.entity.name else None)
		if mode is SortMode.POPULARITY:
			return lambda r: (1, r.entity.popularity)
		if mode is SortMode.RATING:
			return lambda r: (1, r.entity.rating.average)
		if mode is SortMode.DIFFICULTY:
			return lambda r: (1, r.entity.difficulty_level)
		if mode is SortMode.ESTIMATED_HOURS:
			return lambda r: present(r.entity.estimated_hours)
		if mode is SortMode.EXAM_COUNT:
			return lambda r: (1, r.entity.exam_count)
		if mode is SortMode.CREATED_AT:
			return lambda r: present(as_utc(r.entity.created_at) if r.entity.created_at else None)
		raise ValueError(f"Unsupported sort mode: {mode}")
