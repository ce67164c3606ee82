"""
Data loading and preprocessing module.
Handles loading catalog entities from JSONL exports and cleaning/normalizing the data.
"""

# Standard libs for JSON parsing, regex, dates, typing, and paths
import json  # read JSON lines
import re  # slug generation
import unicodedata  # accent folding for slugs
from datetime import datetime, timezone  # timestamp parsing
from pathlib import Path  # filesystem-safe paths
from typing import Any, Dict, List, Optional

# Import our Entity data class used across the project
from .models import CATEGORIES, Difficulty, Entity, Rating, Statistics, as_utc  # structured records

# Console logging
from loguru import logger  # console logger


class CatalogLoader:
	"""
	Handles loading and preprocessing of catalog entities.
	Accepts the camelCase documents exported by the original backend (`_id`, `rating.average`,
	`statistics.totalStudents`, ISO timestamps ...).
	"""

	def load_entities_from_jsonl(self, filepath: str) -> List[Entity]:
		"""
		Load entities from a JSON Lines (JSONL) file where each line is one JSON object.
		Returns a list of Entity objects.
		"""
		entities = []  # accumulator for parsed Entity objects
		filepath = Path(filepath)  # normalize path

		# Validate the file presence early to give clear error messages
		if not filepath.exists():
			raise FileNotFoundError(f"Catalog data file not found: {filepath}")

		logger.info(f"[DataLoader] Loading entities from {filepath}...")  # log action

		# Open the file and read line-by-line to handle large exports efficiently
		with open(filepath, 'r', encoding='utf-8') as f:
			for line_num, line in enumerate(f, 1):  # keep track of line number for diagnostics
				if not line.strip():  # tolerate blank lines
					continue
				try:
					data = json.loads(line.strip())  # parse JSON object per line
					entity = self.parse_entity(data)  # convert dict -> Entity
					entities.append(entity)  # collect
				except json.JSONDecodeError as e:
					logger.warning(f"[DataLoader] Skipping invalid JSON at line {line_num}: {e}")  # malformed line
					continue  # move on
				except (AttributeError, KeyError, TypeError, ValueError) as e:
					logger.warning(f"[DataLoader] Error parsing entity at line {line_num}: {e}")  # bad field
					continue  # move on

		logger.info(f"[DataLoader] Successfully loaded {len(entities)} entities.")  # summary
		return entities  # return list

	def parse_entity(self, data: Dict[str, Any]) -> Entity:
		"""
		Convert a raw dictionary (from file) into a strongly-typed Entity object.
		Performs normalization and safe defaults.
		"""
		if not isinstance(data, dict):
			raise TypeError(f"expected a JSON object, got {type(data).__name__}")
		entity_id = str(data.get('id') or data.get('_id') or '').strip()
		if not entity_id:
			raise ValueError("entity has no id")
		name = str(data.get('name') or '').strip()
		if not name:
			raise ValueError(f"entity {entity_id} has no name")

		category = str(data.get('category') or '').strip().lower()
		if category not in CATEGORIES:
			raise ValueError(f"entity {entity_id} has unknown category {category!r}")

		# Lists may arrive as comma-separated strings; keep first occurrence order when de-duplicating
		series = self._dedupe(self._parse_comma_separated(data.get('series')))
		tags = self._dedupe([t.lower() for t in self._parse_comma_separated(data.get('tags'))])
		keywords = self._parse_comma_separated(data.get('keywords'))
		exam_ids = [str(e) for e in self._parse_comma_separated(data.get('examIds'))]

		rating_raw = self._parse_object(data, 'rating')
		rating = Rating(
			average=float(rating_raw.get('average') or 0.0),
			count=int(rating_raw.get('count') or 0),
		)

		stats_raw = self._parse_object(data, 'statistics')
		statistics = Statistics(
			total_exams=int(stats_raw.get('totalExams') or 0),
			total_students=int(stats_raw.get('totalStudents') or 0),
			completion_rate=float(stats_raw.get('completionRate') or 0.0),
			average_score=float(stats_raw.get('averageScore') or 0.0),
		)

		hours = data.get('estimatedHours')
		is_active = data.get('isActive', True)

		return Entity(
			id=entity_id,
			name=name,
			category=category,
			series=series,
			difficulty=Difficulty.parse(str(data.get('difficulty') or 'medium')),
			subcategory=(data.get('subcategory') or None),
			tags=tags,
			keywords=keywords,
			rating=rating,
			popularity=max(0, int(data.get('popularity') or 0)),
			statistics=statistics,
			estimated_hours=int(hours) if hours else None,
			is_active=bool(is_active),
			created_at=self._parse_datetime(data.get('createdAt')),
			updated_at=self._parse_datetime(data.get('updatedAt')),
			exam_ids=exam_ids,
			description=data.get('description'),
			slug=data.get('slug') or self.slugify(name),
		)

	def _parse_comma_separated(self, value) -> List[str]:
		"""
		Normalize a value that may be None, a list, or a comma-separated string
		into a list of clean strings.
		"""
		if value is None:  # missing field
			return []  # treat as empty list
		if isinstance(value, list):  # already a list
			return [str(item).strip() for item in value if item]  # clean each
		if isinstance(value, str):  # comma-separated string
			return [item.strip() for item in value.split(',') if item.strip()]  # split/trim
		return []  # any other type becomes empty

	def _parse_object(self, data: Dict[str, Any], key: str) -> Dict[str, Any]:
		"""Nested documents (rating, statistics) must be JSON objects when present."""
		value = data.get(key) or {}
		if not isinstance(value, dict):
			raise TypeError(f"{key} must be an object, got {type(value).__name__}")
		return value

	def _dedupe(self, values: List[str]) -> List[str]:
		return list(dict.fromkeys(values))

	def _parse_datetime(self, value) -> Optional[datetime]:
		"""Parse ISO-8601 strings (a trailing 'Z' included) or epoch milliseconds into aware UTC datetimes."""
		if value is None or value == '':
			return None
		if isinstance(value, dict) and '$date' in value:  # extended JSON export
			value = value['$date']
		if isinstance(value, (int, float)):
			return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
		parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
		return as_utc(parsed)

	@staticmethod
	def slugify(name: str) -> str:
		folded = unicodedata.normalize("NFKD", name).encode("ascii", "ignore").decode("ascii")
		return re.sub(r"(^-|-$)", "", re.sub(r"[^a-z0-9]+", "-", folded.lower()))
