"""Loguru sink configuration shared by the API and the scripts."""

import sys

from loguru import logger


def configure_logging(level: str = "INFO") -> None:
	"""Replace loguru's default sink with a single stderr sink at the given level."""
	logger.remove()
	logger.add(
		sys.stderr,
		level=level.upper(),
		format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
	)
	logger.debug(f"[Logging] Configured stderr sink at level {level.upper()}")
