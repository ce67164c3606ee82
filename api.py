"""
FastAPI server exposing the catalog search API.
Endpoints:
- GET /health: basic health check
- GET /search?query=...&category=...&page=1&limit=20&sortBy=relevance: faceted search
- GET /search/suggestions?q=...: search-box suggestions
- GET /search/trending-queries: popular names offered as search shortcuts
- GET /subjects/trending?period=week&limit=10: time-decayed trending subjects
- GET /subjects/compare?ids=a,b: side-by-side comparison
- GET /subjects/{id}: direct lookup (counts as a view)
- GET /subjects/{id}/related: similar subjects
- GET /subjects/{id}/performance: rank among comparable subjects
- GET /analytics: catalog overview

Startup loads the JSONL catalog from CATALOG_DATA_PATH into an in-memory store.
"""

# Import standard libraries for timing and typing
import time  # measure startup and request latencies
from datetime import datetime  # timestamps in responses
from pathlib import Path  # path-safe filesystem handling
from typing import Any, Dict, List, Optional  # precise typing for clarity

# Import FastAPI for building the web API and Pydantic for response models
from fastapi import FastAPI, Query, Request  # FastAPI primitives
from fastapi.responses import JSONResponse  # error payloads
from pydantic import BaseModel  # response schema definitions

# Import our internal modules for settings, storage and search
from catalog_search.analytics import CatalogAnalytics  # aggregate views
from catalog_search.config import Settings  # environment-driven settings
from catalog_search.errors import CatalogSearchError, NotFoundError, StoreUnavailable, ValidationError
from catalog_search.logging_setup import configure_logging  # loguru sink setup
from catalog_search.models import ComparedEntity, Entity, RankedEntity, TrendingItem
from catalog_search.search_engine import SearchEngine  # core search engine
from catalog_search.store import CatalogStore, InMemoryCatalogStore  # storage collaborator

# Import loguru for simple, structured console logging
from loguru import logger  # convenient console logger

# Instantiate the FastAPI application with metadata
app = FastAPI(title="Catalog Search API", version="1.0.0")  # web app

# Globals that hold the engine instances and measured startup time
ENGINE: Optional[SearchEngine] = None  # will point to the initialized engine
ANALYTICS: Optional[CatalogAnalytics] = None  # analytics over the same guarded store
STARTUP_TIME_S: float = 0.0  # measures how long startup took


# Pydantic models that describe the shape of a subject in responses
class RatingOut(BaseModel):
	average: float
	count: int


class StatisticsOut(BaseModel):
	totalExams: int
	totalStudents: int
	completionRate: float


class SubjectOut(BaseModel):
	id: str  # unique id
	name: str  # display name
	category: str
	subcategory: Optional[str] = None
	series: List[str]
	difficulty: str
	tags: List[str]
	rating: RatingOut
	popularity: int
	statistics: StatisticsOut
	estimatedHours: Optional[int] = None
	examCount: int
	isActive: bool
	createdAt: Optional[datetime] = None
	updatedAt: Optional[datetime] = None


class SearchItemOut(SubjectOut):
	score: Optional[float] = None  # composite/text score when the sort mode computes one
	textScore: Optional[float] = None  # present for free-text searches


class PaginationOut(BaseModel):
	current: int
	pages: int
	total: int
	limit: int


class FacetsOut(BaseModel):
	categories: List[str]
	difficulties: List[str]
	series: List[str]
	tags: List[str]
	avgRating: float
	avgEstimatedHours: float
	counts: Dict[str, Dict[str, int]]
	ratingDistribution: Dict[str, int]


class SearchResponse(BaseModel):
	items: List[SearchItemOut]
	pagination: PaginationOut
	facets: FacetsOut
	elapsed_ms: float  # server-side search time in ms


class TrendingItemOut(SubjectOut):
	trendingScore: float


class ComparisonMetricsOut(BaseModel):
	popularityRank: int
	ratingRank: int
	difficultyLevel: int
	engagementScore: float


class ComparedSubjectOut(SubjectOut):
	metrics: ComparisonMetricsOut


class ComparisonSummaryOut(BaseModel):
	totalSubjects: int
	avgRating: float
	avgPopularity: float
	avgEstimatedHours: float
	commonSeries: List[str]
	categories: List[str]
	difficulties: List[str]


class ComparisonResponse(BaseModel):
	subjects: List[ComparedSubjectOut]
	summary: ComparisonSummaryOut


def subject_fields(e: Entity) -> Dict[str, Any]:
	"""Convert an Entity into the camelCase fields shared by every subject payload."""
	return dict(
		id=e.id,
		name=e.name,
		category=e.category,
		subcategory=e.subcategory,
		series=e.series,
		difficulty=e.difficulty.value,
		tags=e.tags,
		rating=RatingOut(average=e.rating.average, count=e.rating.count),
		popularity=e.popularity,
		statistics=StatisticsOut(
			totalExams=e.statistics.total_exams,
			totalStudents=e.statistics.total_students,
			completionRate=e.statistics.completion_rate,
		),
		estimatedHours=e.estimated_hours,
		examCount=e.exam_count,
		isActive=e.is_active,
		createdAt=e.created_at,
		updatedAt=e.updated_at,
	)


def search_item_out(r: RankedEntity) -> SearchItemOut:
	return SearchItemOut(**subject_fields(r.entity), score=r.score, textScore=r.text_score)


def trending_item_out(t: TrendingItem) -> TrendingItemOut:
	return TrendingItemOut(**subject_fields(t.entity), trendingScore=round(t.trending_score, 3))


def compared_subject_out(c: ComparedEntity) -> ComparedSubjectOut:
	return ComparedSubjectOut(
		**subject_fields(c.entity),
		metrics=ComparisonMetricsOut(
			popularityRank=c.metrics.popularity_rank,
			ratingRank=c.metrics.rating_rank,
			difficultyLevel=c.metrics.difficulty_level,
			engagementScore=c.metrics.engagement_score,
		),
	)


def init_engine(store: CatalogStore, settings: Optional[Settings] = None) -> SearchEngine:
	"""Create the module-level engine and analytics around a store (also used by tests)."""
	global ENGINE, ANALYTICS  # refer to module-level globals
	ENGINE = SearchEngine(store, settings=settings)
	ANALYTICS = CatalogAnalytics(ENGINE.store, filter_builder=ENGINE.filter_builder)
	return ENGINE


def require_engine() -> SearchEngine:
	if ENGINE is None:  # engine must be ready to serve
		raise StoreUnavailable("startup")
	return ENGINE


def query_params(request: Request) -> Dict[str, Any]:
	"""Collect query parameters, turning repeated keys (?series=A&series=C) into lists."""
	params: Dict[str, Any] = {}
	for key, value in request.query_params.multi_items():
		if key in params:
			existing = params[key]
			params[key] = (existing if isinstance(existing, list) else [existing]) + [value]
		else:
			params[key] = value
	return params


# Map engine errors to HTTP status codes
@app.exception_handler(CatalogSearchError)
async def catalog_error_handler(request: Request, exc: CatalogSearchError):
	if isinstance(exc, ValidationError):
		status = 400
	elif isinstance(exc, NotFoundError):
		status = 404
	elif isinstance(exc, StoreUnavailable):
		status = 503
	else:
		status = 500
	logger.warning(f"[API] {request.url.path} -> {status} {exc.code}: {exc.message}")
	return JSONResponse(status_code=status, content=exc.to_dict())


# FastAPI startup hook to initialize the search engine once
@app.on_event("startup")
async def startup_event():
	"""Load the catalog and initialize the search engine."""
	global STARTUP_TIME_S  # refer to module-level global
	if ENGINE is not None:  # already initialized (e.g. by tests)
		return
	start = time.time()  # start timer for startup latency

	settings = Settings()
	configure_logging(settings.log_level)
	logger.info("[API] Startup: loading catalog and initializing engine...")  # log intent

	data_path = Path(settings.data_path)
	if data_path.exists():
		store = InMemoryCatalogStore.from_jsonl(str(data_path))
	else:
		logger.warning(f"[API] Catalog file {data_path} not found; starting with an empty store")
		store = InMemoryCatalogStore()
	init_engine(store, settings)

	STARTUP_TIME_S = time.time() - start  # elapsed seconds
	logger.info(f"[API] Startup complete in {STARTUP_TIME_S:.2f}s with {store.size()} subjects.")  # summary log


# Simple health endpoint for readiness checks
@app.get("/health")
async def health():
	"""Return minimal health info for liveness/readiness probes."""
	return {
		"status": "ok",  # constant indicator
		"engine_ready": ENGINE is not None,  # True if engine initialized
		"startup_seconds": round(STARTUP_TIME_S, 2)  # startup latency
	}


# Main search endpoint; filters are validated by the engine's FilterBuilder
@app.get("/search", response_model=SearchResponse)
def search(request: Request):
	"""Execute a faceted search and return ranked, paginated results."""
	engine = require_engine()
	start = time.time()  # start timer
	params = query_params(request)
	logger.debug(f"[API] /search params={params}")  # debug log of input

	page = engine.search(params)  # run search
	elapsed_ms = (time.time() - start) * 1000  # compute ms
	logger.info(f"[API] /search served {len(page.items)} of {page.pagination.total} results in {elapsed_ms:.2f} ms")

	f = page.facets
	return SearchResponse(
		items=[search_item_out(r) for r in page.items],
		pagination=PaginationOut(**page.pagination.__dict__),
		facets=FacetsOut(
			categories=f.categories,
			difficulties=f.difficulties,
			series=f.series,
			tags=f.tags,
			avgRating=f.avg_rating,
			avgEstimatedHours=f.avg_estimated_hours,
			counts=f.counts,
			ratingDistribution=f.rating_distribution,
		),
		elapsed_ms=round(elapsed_ms, 2),
	)


@app.get("/search/suggestions")
def suggestions(q: str = Query("", description="Partial query"), limit: int = 10):
	return {"suggestions": [s.to_dict() for s in require_engine().suggest(q, limit=limit)]}


@app.get("/search/trending-queries")
def trending_queries(limit: int = 10):
	return {"trending": require_engine().trending_searches(limit=limit)}


@app.get("/subjects/trending", response_model=List[TrendingItemOut])
def trending(period: str = "week", limit: Optional[int] = None):
	return [trending_item_out(t) for t in require_engine().trending(period=period, limit=limit)]


@app.get("/subjects/compare", response_model=ComparisonResponse)
def compare(request: Request):
	raw = query_params(request).get("ids", [])
	ids = require_engine().filter_builder.split_values(raw)
	comparison = require_engine().compare(ids)
	s = comparison.summary
	return ComparisonResponse(
		subjects=[compared_subject_out(c) for c in comparison.subjects],
		summary=ComparisonSummaryOut(
			totalSubjects=s.total,
			avgRating=s.avg_rating,
			avgPopularity=s.avg_popularity,
			avgEstimatedHours=s.avg_estimated_hours,
			commonSeries=s.common_series,
			categories=s.categories,
			difficulties=s.difficulties,
		),
	)


@app.get("/analytics")
def analytics(request: Request):
	require_engine()
	return ANALYTICS.overview(query_params(request))


@app.get("/subjects/{subject_id}", response_model=SubjectOut)
def get_subject(subject_id: str):
	return SubjectOut(**subject_fields(require_engine().get_entity(subject_id)))


@app.get("/subjects/{subject_id}/related", response_model=List[SubjectOut])
def related(subject_id: str, limit: Optional[int] = None):
	return [SubjectOut(**subject_fields(e)) for e in require_engine().related(subject_id, limit=limit)]


@app.get("/subjects/{subject_id}/performance")
def performance(subject_id: str):
	require_engine()
	return ANALYTICS.performance(subject_id)
