"""
Error taxonomy for the Catalog Search Engine.
Validation errors are caller-fixable and never retried; store errors are surfaced as-is
so that retry policy stays with the caller.
"""

from typing import Any, Dict, Iterable, List, Optional


class CatalogSearchError(Exception):
	"""Base class for every error raised by the engine."""
	code = "catalog_error"

	def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
		super().__init__(message)
		self.message = message
		self.details = details or {}

	def to_dict(self) -> Dict[str, Any]:
		return {"error": self.code, "message": self.message, "details": self.details}


class ValidationError(CatalogSearchError):
	code = "validation_error"


class InvalidFilterValue(ValidationError):
	code = "invalid_filter_value"

	def __init__(self, field: str, raw_value: Any, reason: Optional[str] = None):
		message = f"Invalid value for '{field}': {raw_value!r}"
		if reason:
			message = f"{message} ({reason})"
		super().__init__(message, {"field": field, "rawValue": raw_value})
		self.field = field
		self.raw_value = raw_value


class InvalidEnumValue(ValidationError):
	code = "invalid_enum_value"

	def __init__(self, field: str, raw_value: Any, allowed: Iterable[str]):
		self.allowed: List[str] = list(allowed)
		super().__init__(
			f"Unknown value for '{field}': {raw_value!r} (allowed: {', '.join(self.allowed)})",
			{"field": field, "rawValue": raw_value, "allowed": self.allowed},
		)
		self.field = field
		self.raw_value = raw_value


class LimitExceeded(ValidationError):
	code = "limit_exceeded"

	def __init__(self, limit: int, maximum: int):
		super().__init__(f"limit {limit} exceeds the maximum of {maximum}", {"limit": limit, "maximum": maximum})
		self.limit = limit
		self.maximum = maximum


class InsufficientIds(ValidationError):
	code = "insufficient_ids"

	def __init__(self, count: int, minimum: int = 2):
		super().__init__(
			f"At least {minimum} ids are required for comparison, got {count}",
			{"count": count, "minimum": minimum},
		)


class NotFoundError(CatalogSearchError):
	code = "not_found"


class EntityNotFound(NotFoundError):
	code = "entity_not_found"

	def __init__(self, ids: Iterable[str]):
		self.ids: List[str] = list(ids)
		super().__init__(f"Entities not found: {', '.join(self.ids)}", {"ids": self.ids})


class StoreUnavailable(CatalogSearchError):
	"""The catalog store failed (I/O error, timeout). The engine does not retry."""
	code = "store_unavailable"

	def __init__(self, operation: str, cause: Optional[BaseException] = None):
		reason = f"{type(cause).__name__}: {cause}" if cause is not None else "unknown error"
		super().__init__(f"Catalog store unavailable during {operation}: {reason}", {"operation": operation})
		self.operation = operation


class StoreTimeout(TimeoutError):
	"""Raised by stores when a call runs past its deadline."""
