"""Centralized configuration for the Catalog Search Engine."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
	"""Engine configuration loaded from CATALOG_* environment variables."""

	# Pagination
	default_limit: int = 20
	max_limit: int = 100

	# Business tuning values
	popular_threshold: int = 100  # isPopular means popularity strictly above this
	tags_facet_size: int = 50
	trending_default_limit: int = 10
	related_default_limit: int = 5
	suggestion_min_chars: int = 2
	tag_suggestion_limit: int = 5

	# Store access
	store_timeout_seconds: float = 5.0  # 0 disables the deadline

	# Result cache (0 disables it)
	cache_ttl_seconds: float = 0.0
	cache_max_entries: int = 256

	# Data and logging
	data_path: str = "data/subjects.jsonl"
	log_level: str = "INFO"

	model_config = {"env_prefix": "CATALOG_", "env_file": ".env", "extra": "ignore"}
