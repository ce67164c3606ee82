"""
Filter building module.
Turns raw request parameters (strings, lists or scalars) into a typed, validated Predicate
and page request. Malformed values are rejected instead of silently defaulted.
"""

import math  # finite-number checks
import re  # integer/float/boolean token validation
from datetime import datetime, timezone  # analytics date bounds
from typing import Any, FrozenSet, Iterable, List, Mapping, Optional

from loguru import logger  # console logging

from .config import Settings  # limits and business thresholds
from .errors import InvalidEnumValue, InvalidFilterValue, LimitExceeded
from .models import (
	CATEGORIES,
	DESC_BY_DEFAULT,
	DIFFICULTY_ALIASES,
	Difficulty,
	PageRequest,
	Predicate,
	SortMode,
	SortOrder,
	SortSpec,
)


class FilterBuilder:
	"""
	Builds a Predicate from request parameters.
	Keys are accepted in the wire (camelCase) spelling and in snake_case.
	"""

	RE_INT = re.compile(r"^[+-]?\d+$")
	RE_FLOAT = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")

	TRUE_TOKENS = {"true", "1", "yes", "on"}
	FALSE_TOKENS = {"false", "0", "no", "off"}

	# wire name -> snake_case alias
	ALIASES = {
		"minRating": "min_rating",
		"minEstimatedHours": "min_estimated_hours",
		"maxEstimatedHours": "max_estimated_hours",
		"hasExams": "has_exams",
		"isPopular": "is_popular",
		"isActive": "is_active",
		"sortBy": "sort_by",
		"sortOrder": "sort_order",
	}

	def __init__(self, settings: Optional[Settings] = None):
		self.settings = settings or Settings()

	def build(self, raw: Mapping[str, Any]) -> Predicate:
		"""Main entry: produce a Predicate from raw filter parameters."""
		logger.debug(f"[Filters] Building predicate from {dict(raw)}")

		query = self._get(raw, "query")
		if query is not None:
			query = str(query).strip() or None

		min_hours = self._parse_int(raw, "minEstimatedHours", minimum=0)
		max_hours = self._parse_int(raw, "maxEstimatedHours", minimum=0)
		if min_hours is not None and max_hours is not None and min_hours > max_hours:
			raise InvalidFilterValue("maxEstimatedHours", self._get(raw, "maxEstimatedHours"), "below minEstimatedHours")

		is_popular = self._parse_bool(raw, "isPopular")
		is_active = self._parse_bool(raw, "isActive")

		predicate = Predicate(
			query=query,
			categories=self._parse_categories(raw),
			subcategories=self._parse_set(raw, "subcategory"),
			difficulties=self._parse_difficulties(raw),
			series=self._parse_set(raw, "series"),
			tags=self._parse_set(raw, "tags", lowercase=True),
			min_rating=self._parse_float(raw, "minRating", minimum=0.0, maximum=5.0),
			min_estimated_hours=min_hours,
			max_estimated_hours=max_hours,
			has_exams=self._parse_bool(raw, "hasExams"),
			popular_above=self.settings.popular_threshold if is_popular else None,
			is_active=True if is_active is None else is_active,
		)
		logger.debug(f"[Filters] Predicate built: {predicate}")
		return predicate

	def build_page_request(self, raw: Mapping[str, Any]) -> PageRequest:
		"""Parse page/limit/sortBy/sortOrder; a limit above the configured maximum is an error."""
		page = self._parse_int(raw, "page", minimum=1)
		limit = self._parse_int(raw, "limit", minimum=1)
		if limit is None:
			limit = self.settings.default_limit
		if limit > self.settings.max_limit:
			raise LimitExceeded(limit, self.settings.max_limit)

		sort_by = self._get(raw, "sortBy")
		mode = SortMode.RELEVANCE
		if sort_by is not None:
			try:
				mode = SortMode(str(sort_by).strip())
			except ValueError:
				raise InvalidEnumValue("sortBy", sort_by, [m.value for m in SortMode]) from None

		sort_order = self._get(raw, "sortOrder")
		if sort_order is None:
			order = SortOrder.DESC if mode in DESC_BY_DEFAULT else SortOrder.ASC
		else:
			try:
				order = SortOrder(str(sort_order).strip().lower())
			except ValueError:
				raise InvalidEnumValue("sortOrder", sort_order, [o.value for o in SortOrder]) from None

		return PageRequest(page=page or 1, limit=limit, sort=SortSpec(mode=mode, order=order))

	def parse_datetime(self, raw: Mapping[str, Any], key: str) -> Optional[datetime]:
		"""ISO-8601 date or datetime; naive values are taken as UTC."""
		value = self._get(raw, key)
		if value is None:
			return None
		if isinstance(value, datetime):
			parsed = value
		else:
			try:
				parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
			except ValueError:
				raise InvalidFilterValue(key, value, "expected an ISO-8601 date") from None
		return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)

	# --- raw value access -------------------------------------------------

	def _get(self, raw: Mapping[str, Any], key: str) -> Any:
		value = raw.get(key)
		if value is None and key in self.ALIASES:
			value = raw.get(self.ALIASES[key])
		# Empty strings/lists mean "not supplied"
		if isinstance(value, str) and not value.strip():
			return None
		if isinstance(value, (list, tuple, set, frozenset)) and not value:
			return None
		return value

	def split_values(self, value: Any) -> List[str]:
		"""Normalize a scalar, a list, or a comma-separated string into a list of clean strings."""
		if isinstance(value, (list, tuple, set, frozenset)):
			items: Iterable[Any] = value
		else:
			items = [value]
		out: List[str] = []
		for item in items:
			if item is None:
				continue
			out.extend(part.strip() for part in str(item).split(",") if part.strip())
		return out

	# --- typed parsers ----------------------------------------------------

	def _parse_set(self, raw: Mapping[str, Any], key: str, lowercase: bool = False) -> Optional[FrozenSet[str]]:
		value = self._get(raw, key)
		if value is None:
			return None
		values = self.split_values(value)
		if lowercase:
			values = [v.lower() for v in values]
		return frozenset(values)

	def _parse_categories(self, raw: Mapping[str, Any]) -> Optional[FrozenSet[str]]:
		values = self._parse_set(raw, "category", lowercase=True)
		if values is None:
			return None
		for value in values:
			if value not in CATEGORIES:
				raise InvalidEnumValue("category", value, CATEGORIES)
		return values

	def _parse_difficulties(self, raw: Mapping[str, Any]) -> Optional[FrozenSet[Difficulty]]:
		value = self._get(raw, "difficulty")
		if value is None:
			return None
		allowed = [d.value for d in Difficulty] + list(DIFFICULTY_ALIASES)
		parsed = set()
		for item in self.split_values(value):
			try:
				parsed.add(Difficulty.parse(item))
			except ValueError:
				raise InvalidEnumValue("difficulty", item, allowed) from None
		return frozenset(parsed)

	def _parse_int(self, raw: Mapping[str, Any], key: str, minimum: Optional[int] = None) -> Optional[int]:
		value = self._get(raw, key)
		if value is None:
			return None
		if isinstance(value, bool):
			raise InvalidFilterValue(key, value, "expected an integer")
		if isinstance(value, int):
			number = value
		elif isinstance(value, float) and value.is_integer():
			number = int(value)
		elif isinstance(value, str) and self.RE_INT.match(value.strip()):
			number = int(value.strip())
		else:
			raise InvalidFilterValue(key, value, "expected an integer")
		if minimum is not None and number < minimum:
			raise InvalidFilterValue(key, value, f"must be >= {minimum}")
		return number

	def _parse_float(
		self,
		raw: Mapping[str, Any],
		key: str,
		minimum: Optional[float] = None,
		maximum: Optional[float] = None,
	) -> Optional[float]:
		value = self._get(raw, key)
		if value is None:
			return None
		if isinstance(value, bool):
			raise InvalidFilterValue(key, value, "expected a number")
		if isinstance(value, (int, float)):
			number = float(value)
		elif isinstance(value, str) and self.RE_FLOAT.match(value.strip()):
			number = float(value.strip())
		else:
			raise InvalidFilterValue(key, value, "expected a number")
		if not math.isfinite(number):
			raise InvalidFilterValue(key, value, "expected a finite number")
		if minimum is not None and number < minimum:
			raise InvalidFilterValue(key, value, f"must be >= {minimum}")
		if maximum is not None and number > maximum:
			raise InvalidFilterValue(key, value, f"must be <= {maximum}")
		return number

	def _parse_bool(self, raw: Mapping[str, Any], key: str) -> Optional[bool]:
		value = self._get(raw, key)
		if value is None:
			return None
		if isinstance(value, bool):
			return value
		token = str(value).strip().lower()
		if token in self.TRUE_TOKENS:
			return True
		if token in self.FALSE_TOKENS:
			return False
		raise InvalidFilterValue(key, value, "expected a boolean")
