"""
Report Service - Report Insight Platform
app/services/report_service.py

Read API over the catalogs and derived artifacts, plus the entry points the
routers use to trigger sync and evaluation runs. Absent artifacts come back
as explicit NO_DATA responses; only an unknown report key is an error.
"""
import logging
import math
import threading
from typing import Callable, List, Optional, Sequence, Tuple, Type, TypeVar

import redis
from pydantic import BaseModel

from app.config import settings
from app.core.exceptions import EntityNotFoundException, RunInProgressException
from app.models.enumerations import DataStatus, ReportCategory, Sentiment
from app.models.evaluation import EvaluationArtifact, IndustryEvaluation, IndustryEvaluationResponse
from app.models.keyword import KeywordSummaryResponse
from app.models.report import (
    MarketSummaryResponse,
    ReportContentResponse,
    ReportListResponse,
    ReportRecord,
    SyncResult,
)
from app.pipelines.evaluation_state import EvaluationRun
from app.pipelines.keywords import KeywordExtractor
from app.pipelines.runner import PipelineOrchestrator
from app.pipelines.summarizer import ReportSummarizer, to_summary
from app.repositories.catalog_repository import CatalogRepository
from app.repositories.derived_text_repository import DerivedTextRepository
from app.repositories.evaluation_repository import EvaluationRepository
from app.services import cache as response_cache
from app.services.redis_cache import RedisCache

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def filter_evaluations(
    evaluations: Sequence[IndustryEvaluation],
    min_confidence: float,
) -> Tuple[List[IndustryEvaluation], int]:
    """Drop NEUTRAL and low-confidence records; returns (kept, dropped count)."""
    kept = [
        e for e in evaluations
        if e.sentiment != Sentiment.NEUTRAL and e.confidence >= min_confidence
    ]
    return kept, len(evaluations) - len(kept)


class ReportService:

    def __init__(
        self,
        catalog_for: Callable[[ReportCategory], CatalogRepository],
        texts: DerivedTextRepository,
        evaluations: EvaluationRepository,
        orchestrator: PipelineOrchestrator,
        keywords: KeywordExtractor,
        summarizer: ReportSummarizer,
        cache_factory: Callable[[], Optional[RedisCache]] = response_cache.get_cache,
    ):
        self.catalog_for = catalog_for
        self.texts = texts
        self.evaluations = evaluations
        self.orchestrator = orchestrator
        self.keywords = keywords
        self.summarizer = summarizer
        self.cache_factory = cache_factory
        self._first_evaluation_lock = threading.Lock()

    # ── Response cache helpers ────────────────────────────────

    def _cached(self, key: str, model: Type[M]) -> Optional[M]:
        cache = self.cache_factory()
        if cache is None:
            return None
        try:
            return cache.get(key, model)
        except redis.RedisError as e:
            logger.warning(f"⚠️  Cache read failed for {key}: {e}")
            return None

    def _store(self, key: str, value: BaseModel, ttl: int) -> None:
        cache = self.cache_factory()
        if cache is None:
            return
        try:
            cache.set(key, value, ttl)
        except redis.RedisError as e:
            logger.warning(f"⚠️  Cache write failed for {key}: {e}")

    def _invalidate(self, key: Optional[str] = None, pattern: Optional[str] = None) -> None:
        cache = self.cache_factory()
        if cache is None:
            return
        try:
            if key is not None:
                cache.delete(key)
            if pattern is not None:
                cache.delete_pattern(pattern)
        except redis.RedisError as e:
            logger.warning(f"⚠️  Cache invalidation failed: {e}")

    # ── Reports ───────────────────────────────────────────────

    def list_reports(self, category: ReportCategory, page: int = 1, page_size: int = 20) -> ReportListResponse:
        """Paged listing, most recent report date first."""
        key = response_cache.report_page_key(category, page, page_size)
        cached = self._cached(key, ReportListResponse)
        if cached is not None:
            return cached

        records = self.catalog_for(category).most_recent()
        total = len(records)
        start = (page - 1) * page_size
        response = ReportListResponse(
            category=category,
            items=[to_summary(r) for r in records[start:start + page_size]],
            total=total,
            page=page,
            page_size=page_size,
            total_pages=math.ceil(total / page_size) if total else 0,
        )
        self._store(key, response, response_cache.TTL_REPORTS)
        return response

    def _lookup(self, key: str, category: Optional[ReportCategory]) -> ReportRecord:
        categories = [category] if category is not None else list(ReportCategory)
        for cat in categories:
            record = self.catalog_for(cat).find_by_title_or_id(key)
            if record is not None:
                return record
        raise EntityNotFoundException("Report", key)

    def get_report_content(self, key: str, category: Optional[ReportCategory] = None) -> ReportContentResponse:
        """
        Derived text for a report looked up by exact title or by id.

        Raises:
            EntityNotFoundException: No report matches the key
        """
        record = self._lookup(key, category)
        base = dict(id=record.id, title=record.title, date=record.date, author=record.author)

        if not self.texts.exists(record.derived_text_ref):
            reason = record.last_error or "conversion pending"
            return ReportContentResponse(status=DataStatus.NO_DATA, message=f"No derived text yet ({reason})", **base)

        return ReportContentResponse(
            status=DataStatus.OK,
            content=self.texts.read(record.derived_text_ref),
            message="ok",
            **base,
        )

    def get_keyword_summary(self, limit: Optional[int] = None) -> KeywordSummaryResponse:
        return self.keywords.generate(limit)

    def get_market_summary(self, limit: Optional[int] = None) -> MarketSummaryResponse:
        return self.summarizer.summarize_recent(limit)

    def is_syncing(self, category: ReportCategory) -> bool:
        return self.orchestrator.is_syncing(category)

    def sync(self, category: ReportCategory, force: bool = False) -> SyncResult:
        result = self.orchestrator.run_sync(category, force=force)
        self._invalidate(pattern=response_cache.report_pages_pattern(category))
        return result

    # ── Industry evaluation ───────────────────────────────────

    def refresh_evaluation(self, sample_size: Optional[int] = None) -> EvaluationRun:
        run = self.orchestrator.evaluate_industries(sample_size)
        if run.succeeded:
            self._invalidate(key=response_cache.EVALUATION_KEY)
        return run

    def get_industry_evaluation(self) -> IndustryEvaluationResponse:
        """
        Filtered view of the persisted evaluation.

        When no artifact exists yet one is computed on first read from the
        most recent EVALUATION_SAMPLE_SIZE converted reports.
        """
        cached = self._cached(response_cache.EVALUATION_KEY, IndustryEvaluationResponse)
        if cached is not None:
            return cached

        artifact = self.evaluations.load()
        if artifact is None:
            # Concurrent first reads wait here and reuse the artifact the first one persisted
            with self._first_evaluation_lock:
                artifact = self.evaluations.load()
                if artifact is None:
                    logger.info("📊 No evaluation artifact yet, computing one now")
                    try:
                        run = self.refresh_evaluation(settings.EVALUATION_SAMPLE_SIZE)
                    except RunInProgressException:
                        return IndustryEvaluationResponse(
                            status=DataStatus.NO_DATA,
                            message="Industry evaluation is being computed, try again shortly",
                        )
                    if not run.succeeded:
                        return IndustryEvaluationResponse(
                            status=DataStatus.NO_DATA,
                            message=f"Industry evaluation unavailable: {run.error}",
                        )
                    artifact = run.artifact

        response = self._to_response(artifact)
        self._store(response_cache.EVALUATION_KEY, response, response_cache.TTL_EVALUATION)
        return response

    @staticmethod
    def _to_response(artifact: EvaluationArtifact) -> IndustryEvaluationResponse:
        kept, dropped = filter_evaluations(artifact.evaluations, settings.EVALUATION_MIN_CONFIDENCE)
        return IndustryEvaluationResponse(
            status=DataStatus.OK,
            evaluated_at=artifact.evaluated_at,
            evaluated_report_count=artifact.evaluated_report_count,
            evaluations=kept,
            filtered_out=dropped,
            message=f"{len(kept)} industr{'y' if len(kept) == 1 else 'ies'} after filtering",
        )
