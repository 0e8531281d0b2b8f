"""
Pipeline Orchestrator
---------------------
Sync run per category:

    IDLE -> CHECK_FRESHNESS -> (DISCOVER) -> DEDUP_APPEND -> CONVERT_PENDING -> DONE

Discovery is skipped while the catalog was discovered less than
DISCOVERY_FRESHNESS_HOURS ago (unless forced). Pending reports are converted
one at a time; a failed report never stops the loop. Cancellation is checked
between reports only, so no half-converted report is ever marked converted.

The evaluation refresh (classify -> group -> evaluate -> score -> persist)
is a separate run, see evaluation_state.EvaluationPipeline.
"""
from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

import structlog

from app.config import settings
from app.core.exceptions import PipelineException, RepositoryException, RunInProgressException
from app.models.enumerations import ReportCategory, SyncStage
from app.models.report import ConversionResult, ReportRecord, SyncResult
from app.pipelines.converter import ChunkedConverter
from app.pipelines.discovery import ReportDiscovery
from app.pipelines.evaluation_state import EvaluationPipeline, EvaluationRun
from app.repositories.catalog_repository import CatalogRepository
from app.shutdown import is_shutting_down

logger = structlog.get_logger(__name__)


def is_fresh(last_discovered_at: Optional[datetime], freshness: timedelta, now: Optional[datetime] = None) -> bool:
    """True when the last discovery happened less than `freshness` ago."""
    if last_discovered_at is None:
        return False
    if last_discovered_at.tzinfo is None:
        last_discovered_at = last_discovered_at.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return now - last_discovered_at < freshness


class PipelineOrchestrator:
    """Drives discovery, conversion and evaluation refresh."""

    def __init__(
        self,
        catalog_for: Callable[[ReportCategory], CatalogRepository],
        converter: ChunkedConverter,
        discovery: ReportDiscovery,
        evaluation: Optional[EvaluationPipeline] = None,
        freshness_hours: Optional[float] = None,
    ):
        self.catalog_for = catalog_for
        self.converter = converter
        self.discovery = discovery
        self.evaluation = evaluation
        hours = freshness_hours if freshness_hours is not None else settings.DISCOVERY_FRESHNESS_HOURS
        self.freshness = timedelta(hours=hours)
        self._sync_locks: Dict[ReportCategory, threading.Lock] = {c: threading.Lock() for c in ReportCategory}
        self._evaluation_lock = threading.Lock()

    def is_syncing(self, category: ReportCategory) -> bool:
        return self._sync_locks[category].locked()

    def run_sync(
        self,
        category: ReportCategory,
        force: bool = False,
        should_stop: Optional[Callable[[], bool]] = None,
    ) -> SyncResult:
        """
        Bring one category's catalog up to date and convert pending reports.

        Args:
            category: Catalog to sync
            force: Discover even if the catalog is still fresh
            should_stop: Polled between reports; defaults to the process shutdown flag

        Raises:
            RunInProgressException: A sync of the same category is already running
        """
        lock = self._sync_locks[category]
        if not lock.acquire(blocking=False):
            logger.warning("sync_already_running", category=category.value)
            raise RunInProgressException(f"sync of {category.value}")
        try:
            return self._run_sync(category, force, should_stop or is_shutting_down)
        finally:
            lock.release()

    def _run_sync(self, category: ReportCategory, force: bool, should_stop: Callable[[], bool]) -> SyncResult:
        catalog = self.catalog_for(category)
        log = logger.bind(category=category.value)
        result = SyncResult(category=category, discovery_skipped=False)

        result.stage = SyncStage.CHECK_FRESHNESS
        fresh = is_fresh(catalog.last_discovered_at, self.freshness)
        log.info("sync_stage", stage=result.stage.value, fresh=fresh, force=force)

        if fresh and not force:
            result.discovery_skipped = True
        else:
            result.stage = SyncStage.DISCOVER
            log.info("sync_stage", stage=result.stage.value)
            candidates = self._discover(category)
            if candidates is not None:
                result.discovered = len(candidates)
                result.stage = SyncStage.DEDUP_APPEND
                log.info("sync_stage", stage=result.stage.value, candidates=len(candidates))
                result.added = catalog.upsert_if_new(candidates)
                catalog.touch_discovered()

        result.stage = SyncStage.CONVERT_PENDING
        pending = self._convertible(catalog.pending_conversion())
        log.info("sync_stage", stage=result.stage.value, pending=len(pending))

        for record in pending:
            if should_stop():
                result.cancelled = True
                log.warning("sync_cancelled", remaining=len(pending) - result.attempted)
                break
            outcome = self._convert_one(record, catalog)
            result.attempted += 1
            result.results.append(outcome)
            if outcome.success:
                result.converted += 1
            else:
                result.failed += 1

        result.stage = SyncStage.DONE
        log.info(
            "sync_complete",
            discovered=result.discovered,
            added=result.added,
            converted=result.converted,
            failed=result.failed,
            cancelled=result.cancelled,
        )
        return result

    def evaluate_industries(self, sample_size: Optional[int] = None) -> EvaluationRun:
        """
        Recompute and persist the industry evaluation artifact.

        Raises:
            RunInProgressException: Another evaluation run has not finished
        """
        if self.evaluation is None:
            raise PipelineException("evaluation pipeline is not configured")
        if not self._evaluation_lock.acquire(blocking=False):
            logger.warning("evaluation_already_running")
            raise RunInProgressException("industry evaluation")
        try:
            return self.evaluation.run(sample_size=sample_size)
        finally:
            self._evaluation_lock.release()

    # ── Helpers ───────────────────────────────────────────────

    def _discover(self, category: ReportCategory) -> Optional[List[ReportRecord]]:
        """Candidates, or None when discovery failed (conversion still runs)."""
        try:
            return self.discovery.discover(category)
        except PipelineException as e:
            logger.error("discovery_failed", category=category.value, error=str(e))
            return None

    @staticmethod
    def _convertible(pending: List[ReportRecord]) -> List[ReportRecord]:
        skipped = [r.id for r in pending if r.unconvertible]
        if skipped:
            logger.info("unconvertible_skipped", report_ids=skipped)
        return [r for r in pending if not r.unconvertible]

    def _convert_one(self, record: ReportRecord, catalog: CatalogRepository) -> ConversionResult:
        try:
            return self.converter.convert(record, catalog)
        except (RepositoryException, OSError) as e:
            logger.error("conversion_storage_failed", report_id=record.id, error=str(e))
            return ConversionResult(report_id=record.id, success=False, error=str(e))
