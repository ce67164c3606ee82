"""
Trending module.
Time-decayed popularity restricted to a recency window of entity updates.
"""

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from loguru import logger

from .errors import InvalidEnumValue
from .models import Entity, Predicate, TrendingItem, as_utc
from .store import CatalogStore

SECONDS_PER_DAY = 86400.0

# period -> window length
TRENDING_WINDOWS: Dict[str, timedelta] = {
	"day": timedelta(days=1),
	"week": timedelta(days=7),
	"month": timedelta(days=30),
}


class TrendingCalculator:
	"""
	trendingScore = popularity * popularity_weight
		+ rating.average * rating_weight
		+ totalStudents * students_weight
		- ageInDays
	Only active entities updated inside the window are scored; older ones are excluded outright.
	"""

	def __init__(
		self,
		popularity_weight: float = 0.4,
		rating_weight: float = 20.0,
		students_weight: float = 0.1,
		default_limit: int = 10,
	):
		self.popularity_weight = popularity_weight
		self.rating_weight = rating_weight
		self.students_weight = students_weight
		self.default_limit = default_limit

	def window_start(self, period: str, now: datetime) -> datetime:
		if period not in TRENDING_WINDOWS:
			raise InvalidEnumValue("period", period, list(TRENDING_WINDOWS))
		return now - TRENDING_WINDOWS[period]

	def score(self, entity: Entity, now: datetime) -> TrendingItem:
		age_days = (now - as_utc(entity.updated_at)).total_seconds() / SECONDS_PER_DAY
		trending_score = (
			entity.popularity * self.popularity_weight +
			entity.rating.average * self.rating_weight +
			entity.statistics.total_students * self.students_weight -
			age_days
		)
		return TrendingItem(entity=entity, trending_score=trending_score, age_days=age_days)

	def trending(
		self,
		store: CatalogStore,
		period: str = "week",
		limit: Optional[int] = None,
		now: Optional[datetime] = None,
		deadline: Optional[float] = None,
	) -> List[TrendingItem]:
		now = as_utc(now or datetime.now(timezone.utc))
		limit = self.default_limit if limit is None else limit
		since = self.window_start(period, now)

		candidates, total = store.query(Predicate(is_active=True, updated_since=since), deadline=deadline)
		logger.debug(f"[Trending] period={period} since={since.isoformat()} candidates={total}")

		# a store may be looser than the predicate; the window is enforced here as well
		items = [
			self.score(e, now) for e in candidates
			if e.updated_at is not None and as_utc(e.updated_at) >= since
		]
		items.sort(key=lambda i: i.trending_score, reverse=True)
		return items[:max(0, limit)]
