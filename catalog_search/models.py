"""
Data models for the Catalog Search Engine.
Defines the core data structures used throughout the system.
"""

# Import dataclass to define simple "record-like" classes without boilerplate
from dataclasses import dataclass, field  # auto-generates __init__, __repr__, etc.
from datetime import datetime, timezone  # creation/update timestamps
from enum import Enum  # closed vocabularies (difficulty, sort modes)
# Import typing helpers for precise and self-documenting types
from typing import Any, Dict, FrozenSet, List, Optional, Tuple


# Closed set of categories a subject may belong to
CATEGORIES: Tuple[str, ...] = (
	"sciences",
	"litterature",
	"langues",
	"mathematiques",
	"sciences-sociales",
	"arts",
	"technologie",
)


def as_utc(value: datetime) -> datetime:
	# naive timestamps are treated as UTC
	return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


class Difficulty(str, Enum):
	"""Ordinal difficulty of an entity: easy < medium < hard."""
	EASY = "easy"
	MEDIUM = "medium"
	HARD = "hard"

	@property
	def level(self) -> int:
		return _DIFFICULTY_LEVELS[self]

	@classmethod
	def parse(cls, value: str) -> "Difficulty":
		"""Accept canonical names and the legacy French labels (facile/moyen/difficile)."""
		key = (value or "").strip().lower()
		if key in DIFFICULTY_ALIASES:
			key = DIFFICULTY_ALIASES[key]
		return cls(key)  # raises ValueError for unknown labels


_DIFFICULTY_LEVELS = {Difficulty.EASY: 1, Difficulty.MEDIUM: 2, Difficulty.HARD: 3}

# Legacy labels used by the original catalog data
DIFFICULTY_ALIASES: Dict[str, str] = {
	"facile": "easy",
	"moyen": "medium",
	"difficile": "hard",
}


class SortMode(str, Enum):
	"""Sort keys understood by the ranking engine."""
	RELEVANCE = "relevance"
	NAME = "name"
	POPULARITY = "popularity"
	RATING = "rating"
	DIFFICULTY = "difficulty"
	ESTIMATED_HOURS = "estimatedHours"
	EXAM_COUNT = "examCount"
	CREATED_AT = "createdAt"
	POPULARITY_SCORE = "popularityScore"


class SortOrder(str, Enum):
	ASC = "asc"
	DESC = "desc"


# Modes that read best highest-first when the caller gives no direction
DESC_BY_DEFAULT = frozenset({SortMode.RELEVANCE, SortMode.POPULARITY, SortMode.POPULARITY_SCORE})


@dataclass
class Rating:
	average: float = 0.0  # mean rating on a 0..5 scale
	count: int = 0  # number of ratings received

	def __post_init__(self):
		# An unrated entity reports a zero average
		if self.count <= 0:
			self.count = 0
			self.average = 0.0


@dataclass
class Statistics:
	total_exams: int = 0
	total_students: int = 0
	completion_rate: float = 0.0  # fraction in [0, 1]
	average_score: float = 0.0


@dataclass
class Entity:
	"""
	Represents a single catalog item (a subject) and everything the engine knows about it.
	These fields are used both for filtering/ranking and for showing data in results.
	"""
	id: str  # opaque unique identifier
	name: str  # display name, primary text-search field
	category: str  # one of CATEGORIES
	series: List[str]  # exam tracks the subject belongs to (e.g. ["A", "C"])
	difficulty: Difficulty = Difficulty.MEDIUM
	subcategory: Optional[str] = None
	tags: List[str] = field(default_factory=list)  # lowercase, de-duplicated
	keywords: List[str] = field(default_factory=list)  # secondary search terms
	rating: Rating = field(default_factory=Rating)
	popularity: int = 0  # view counter, incremented by the store on lookups
	statistics: Statistics = field(default_factory=Statistics)
	estimated_hours: Optional[int] = None
	is_active: bool = True
	created_at: Optional[datetime] = None
	updated_at: Optional[datetime] = None
	exam_ids: List[str] = field(default_factory=list)
	description: Optional[str] = None
	slug: Optional[str] = None

	@property
	def exam_count(self) -> int:
		return len(self.exam_ids)

	@property
	def difficulty_level(self) -> int:
		return self.difficulty.level


@dataclass(frozen=True)
class Predicate:
	"""
	Validated, storage-agnostic filter criteria for one search.
	Set-valued fields use None for "no constraint"; an empty set matches nothing.
	"""
	query: Optional[str] = None
	categories: Optional[FrozenSet[str]] = None
	subcategories: Optional[FrozenSet[str]] = None
	difficulties: Optional[FrozenSet[Difficulty]] = None
	series: Optional[FrozenSet[str]] = None  # any-overlap
	tags: Optional[FrozenSet[str]] = None  # any-overlap, lowercase
	min_rating: Optional[float] = None
	min_estimated_hours: Optional[int] = None
	max_estimated_hours: Optional[int] = None
	has_exams: Optional[bool] = None
	popular_above: Optional[int] = None  # popularity strictly greater than this
	is_active: Optional[bool] = True  # None disables the activity filter
	# engine-internal criteria (not reachable from request parameters)
	updated_since: Optional[datetime] = None
	created_from: Optional[datetime] = None
	created_to: Optional[datetime] = None
	exclude_ids: Optional[FrozenSet[str]] = None


@dataclass(frozen=True)
class SortSpec:
	mode: SortMode = SortMode.RELEVANCE
	order: SortOrder = SortOrder.DESC

	@property
	def descending(self) -> bool:
		return self.order is SortOrder.DESC


@dataclass(frozen=True)
class PageRequest:
	page: int = 1
	limit: int = 20
	sort: SortSpec = field(default_factory=SortSpec)

	@property
	def skip(self) -> int:
		return (self.page - 1) * self.limit


@dataclass
class RankedEntity:
	entity: Entity  # matched entity
	score: Optional[float] = None  # score of the sort mode, when it is computed (text/popularity score)
	text_score: Optional[float] = None  # present only for free-text searches


@dataclass
class Pagination:
	current: int
	pages: int
	total: int
	limit: int


@dataclass
class Facets:
	categories: List[str] = field(default_factory=list)
	difficulties: List[str] = field(default_factory=list)
	series: List[str] = field(default_factory=list)
	tags: List[str] = field(default_factory=list)
	avg_rating: float = 0.0
	avg_estimated_hours: float = 0.0
	counts: Dict[str, Dict[str, int]] = field(default_factory=dict)
	rating_distribution: Dict[str, int] = field(default_factory=dict)


@dataclass
class SearchPage:
	items: List[RankedEntity]
	pagination: Pagination
	facets: Facets
	predicate: Predicate
	sort: SortSpec


@dataclass
class TrendingItem:
	entity: Entity
	trending_score: float
	age_days: float


@dataclass
class ComparisonMetrics:
	difficulty_level: int
	engagement_score: float
	popularity_rank: int = 0
	rating_rank: int = 0


@dataclass
class ComparedEntity:
	entity: Entity
	metrics: ComparisonMetrics


@dataclass
class ComparisonSummary:
	total: int
	avg_rating: float
	avg_popularity: float
	avg_estimated_hours: float
	common_series: List[str]
	categories: List[str]
	difficulties: List[str]


@dataclass
class Comparison:
	subjects: List[ComparedEntity]
	summary: ComparisonSummary


@dataclass
class Suggestion:
	"""A search-box suggestion: either an entity name or a tag with its usage count."""
	type: str  # "subject" or "tag"
	name: str
	id: Optional[str] = None
	category: Optional[str] = None
	series: Optional[List[str]] = None
	popularity: Optional[int] = None
	count: Optional[int] = None

	def to_dict(self) -> Dict[str, Any]:
		return {k: v for k, v in self.__dict__.items() if v is not None}
