"""
Catalog store module.
Defines the storage interface the engine depends on, plus an in-memory implementation
used by the demo API, the scripts and the tests.
"""

import threading  # guards the entity map against concurrent popularity updates
import time  # monotonic deadlines
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from loguru import logger

from .errors import CatalogSearchError, StoreTimeout, StoreUnavailable
from .models import Entity, Predicate, SortSpec, as_utc
from .ranking import Ranker, TextScorer


class CatalogStore(ABC):
	"""
	Storage collaborator consumed by the engine.
	Implementations translate the storage-agnostic Predicate/SortSpec into their own query
	language. `deadline` is an absolute time.monotonic() value; past it a call should abort.
	"""

	@abstractmethod
	def query(
		self,
		predicate: Predicate,
		sort: Optional[SortSpec] = None,
		skip: int = 0,
		limit: Optional[int] = None,
		deadline: Optional[float] = None,
	) -> Tuple[List[Entity], int]:
		"""Return (records for the requested window, total matching count)."""

	@abstractmethod
	def get_by_ids(self, ids: Sequence[str], deadline: Optional[float] = None) -> List[Entity]:
		"""Return the records that exist for `ids` (inactive included); missing ids are omitted."""

	def increment_popularity(self, entity_id: str, amount: int = 1) -> None:
		"""Optional write path used after direct lookups. Stores without one ignore it."""
		return None


class InMemoryCatalogStore(CatalogStore):
	"""
	Keeps entities in insertion order in a dict keyed by id.
	Reads return snapshots (copies), so callers never observe later popularity updates.
	"""

	CHECK_EVERY = 256  # entities scanned between two deadline checks

	def __init__(self, entities: Optional[Iterable[Entity]] = None, text_scorer: Optional[TextScorer] = None):
		self._lock = threading.RLock()
		self._entities: Dict[str, Entity] = {}
		self.text_scorer = text_scorer or TextScorer()
		self._ranker = Ranker(text_scorer=self.text_scorer)
		if entities:
			self.add_entities(entities)

	@classmethod
	def from_jsonl(cls, filepath: str) -> "InMemoryCatalogStore":
		"""Load a store from a JSON Lines catalog export."""
		from .data_loader import CatalogLoader  # local import: the loader depends on models only

		entities = CatalogLoader().load_entities_from_jsonl(filepath)
		return cls(entities)

	def add_entities(self, entities: Iterable[Entity]) -> None:
		"""Insert or replace entities by id."""
		count = 0
		with self._lock:
			for entity in entities:
				self._entities[entity.id] = entity
				count += 1
		logger.info(f"[Store] Added {count} entities | total in store: {self.size()}")

	def size(self) -> int:
		return len(self._entities)

	def get_by_id(self, entity_id: str) -> Optional[Entity]:
		with self._lock:
			entity = self._entities.get(entity_id)
			return self._snapshot(entity) if entity else None

	def get_by_ids(self, ids: Sequence[str], deadline: Optional[float] = None) -> List[Entity]:
		self._check_deadline(deadline)
		with self._lock:
			return [self._snapshot(self._entities[i]) for i in dict.fromkeys(ids) if i in self._entities]

	def increment_popularity(self, entity_id: str, amount: int = 1) -> None:
		with self._lock:
			entity = self._entities.get(entity_id)
			if entity is None:
				logger.debug(f"[Store] Popularity increment ignored for unknown id {entity_id}")
				return
			self._entities[entity_id] = replace(entity, popularity=entity.popularity + amount)

	def query(
		self,
		predicate: Predicate,
		sort: Optional[SortSpec] = None,
		skip: int = 0,
		limit: Optional[int] = None,
		deadline: Optional[float] = None,
	) -> Tuple[List[Entity], int]:
		with self._lock:
			candidates = list(self._entities.values())

		matched: List[Entity] = []
		for position, entity in enumerate(candidates):
			if position % self.CHECK_EVERY == 0:
				self._check_deadline(deadline)
			if self.matches(entity, predicate):
				matched.append(entity)

		if sort is not None:
			matched = [r.entity for r in self._ranker.rank(matched, sort, predicate.query)]

		total = len(matched)
		window = matched[skip:] if limit is None else matched[skip:skip + limit]
		logger.debug(f"[Store] Query matched {total} of {len(candidates)} | returning {len(window)}")
		return [self._snapshot(e) for e in window], total

	def matches(self, entity: Entity, predicate: Predicate) -> bool:
		"""Evaluate every criterion of the predicate against one entity (AND across criteria)."""
		p = predicate
		if p.is_active is not None and entity.is_active != p.is_active:
			return False
		if p.exclude_ids is not None and entity.id in p.exclude_ids:
			return False
		if p.categories is not None and entity.category not in p.categories:
			return False
		if p.subcategories is not None and entity.subcategory not in p.subcategories:
			return False
		if p.difficulties is not None and entity.difficulty not in p.difficulties:
			return False
		if p.series is not None and not p.series.intersection(entity.series):
			return False
		if p.tags is not None and not p.tags.intersection(t.lower() for t in entity.tags):
			return False
		if p.min_rating is not None and entity.rating.average < p.min_rating:
			return False
		if p.min_estimated_hours is not None or p.max_estimated_hours is not None:
			hours = entity.estimated_hours
			if hours is None:
				return False
			if p.min_estimated_hours is not None and hours < p.min_estimated_hours:
				return False
			if p.max_estimated_hours is not None and hours > p.max_estimated_hours:
				return False
		if p.has_exams is True and entity.statistics.total_exams <= 0:
			return False
		if p.has_exams is False and entity.statistics.total_exams != 0:
			return False
		if p.popular_above is not None and entity.popularity <= p.popular_above:
			return False
		if p.updated_since is not None and not _on_or_after(entity.updated_at, p.updated_since):
			return False
		if p.created_from is not None and not _on_or_after(entity.created_at, p.created_from):
			return False
		if p.created_to is not None and (entity.created_at is None or as_utc(entity.created_at) > as_utc(p.created_to)):
			return False
		if p.query and not self.text_scorer.matches(entity, p.query):
			return False
		return True

	def _check_deadline(self, deadline: Optional[float]) -> None:
		if deadline is not None and time.monotonic() > deadline:
			raise StoreTimeout("catalog store deadline exceeded")

	def _snapshot(self, entity: Entity) -> Entity:
		return replace(
			entity,
			series=list(entity.series),
			tags=list(entity.tags),
			keywords=list(entity.keywords),
			exam_ids=list(entity.exam_ids),
			rating=replace(entity.rating),
			statistics=replace(entity.statistics),
		)


class GuardedStore(CatalogStore):
	"""
	Wraps the collaborator store for the engine:
	- applies a default deadline of `timeout_seconds` when the caller gives none
	- surfaces any store failure as StoreUnavailable (no retry)
	"""

	def __init__(self, inner: CatalogStore, timeout_seconds: float = 0.0):
		self.inner = inner
		self.timeout_seconds = timeout_seconds

	def query(
		self,
		predicate: Predicate,
		sort: Optional[SortSpec] = None,
		skip: int = 0,
		limit: Optional[int] = None,
		deadline: Optional[float] = None,
	) -> Tuple[List[Entity], int]:
		return self._call("query", self.inner.query, predicate, sort=sort, skip=skip, limit=limit,
			deadline=self._deadline(deadline))

	def get_by_ids(self, ids: Sequence[str], deadline: Optional[float] = None) -> List[Entity]:
		return self._call("get_by_ids", self.inner.get_by_ids, ids, deadline=self._deadline(deadline))

	def increment_popularity(self, entity_id: str, amount: int = 1) -> None:
		return self._call("increment_popularity", self.inner.increment_popularity, entity_id, amount)

	def _deadline(self, deadline: Optional[float]) -> Optional[float]:
		if deadline is None and self.timeout_seconds > 0:
			return time.monotonic() + self.timeout_seconds
		return deadline

	def _call(self, operation: str, fn, *args, **kwargs):
		try:
			return fn(*args, **kwargs)
		except CatalogSearchError:
			raise
		except Exception as e:
			logger.error(f"[Store] {operation} failed: {type(e).__name__}: {e}")
			raise StoreUnavailable(operation, e) from e


def _on_or_after(value: Optional[datetime], boundary: datetime) -> bool:
	return value is not None and as_utc(value) >= as_utc(boundary)
