"""
Reports Router - Report Insight Platform
app/routers/reports.py

Endpoints:
  GET   /api/v1/reports                        - Paged catalog listing (most recent first)
  GET   /api/v1/reports/content                - Derived text by title or id
  GET   /api/v1/reports/keywords               - Market keywords (cache-aware)
  GET   /api/v1/reports/market-summary         - Summary of the latest strategy reports
  POST  /api/v1/reports/sync                   - Discover + convert a category (background)
  GET   /api/v1/reports/sync/tasks/{task_id}   - Sync task progress

Only one sync per category may be queued or running; a second request gets 409.
"""

import logging
import threading
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Dict, Optional
from uuid import uuid4

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from fastapi.exceptions import HTTPException
from pydantic import BaseModel, Field

from app.core.dependencies import get_report_service
from app.core.exceptions import EntityNotFoundException, RepositoryException
from app.models.enumerations import ReportCategory
from app.models.keyword import KeywordSummaryResponse
from app.models.report import (
    MarketSummaryResponse,
    ReportContentResponse,
    ReportListResponse,
    SyncResult,
)
from app.services.report_service import ReportService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["reports"])


#  Schemas


class ErrorResponse(BaseModel):
    error_code: str
    message: str
    details: Optional[dict] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class SyncTaskStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class SyncTask(BaseModel):
    task_id: str
    category: ReportCategory
    force: bool
    status: SyncTaskStatus
    result: Optional[SyncResult] = None
    error: Optional[str] = None
    started_at: datetime
    completed_at: Optional[datetime] = None


class SyncAccepted(BaseModel):
    task_id: str
    status: SyncTaskStatus
    message: str


# In-memory task store; sync runs are short-lived and per process
_sync_task_store: Dict[str, SyncTask] = {}
_sync_task_lock = threading.Lock()

# Finished tasks stay queryable this long
SYNC_TASK_RETENTION = timedelta(hours=1)

_ACTIVE_STATUSES = (SyncTaskStatus.QUEUED, SyncTaskStatus.RUNNING)


#  Exception Helpers


def raise_error(status_code: int, error_code: str, message: str):
    raise HTTPException(
        status_code=status_code,
        detail=ErrorResponse(error_code=error_code, message=message).model_dump(mode="json"),
    )


def raise_report_not_found(key: str):
    raise_error(status.HTTP_404_NOT_FOUND, "REPORT_NOT_FOUND", f"No report with title or id '{key}'")


def raise_storage_error(e: RepositoryException):
    raise_error(status.HTTP_500_INTERNAL_SERVER_ERROR, "STORAGE_ERROR", str(e))


def raise_sync_in_progress(category: ReportCategory, task_id: Optional[str] = None):
    message = f"A sync of {category.value} is already running"
    if task_id:
        message += f" (task {task_id})"
    raise_error(status.HTTP_409_CONFLICT, "SYNC_IN_PROGRESS", message)


#  Read endpoints


@router.get(
    "/reports",
    response_model=ReportListResponse,
    summary="List reports",
    description="Paged listing of one catalog, most recent report date first.",
)
def list_reports(
    category: ReportCategory = Query(default=ReportCategory.INVESTMENT_STRATEGY),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
    service: ReportService = Depends(get_report_service),
) -> ReportListResponse:
    try:
        return service.list_reports(category, page, page_size)
    except RepositoryException as e:
        raise_storage_error(e)


@router.get(
    "/reports/content",
    response_model=ReportContentResponse,
    responses={404: {"model": ErrorResponse, "description": "Report not found"}},
    summary="Get derived text",
    description="Look a report up by exact title or by id. Searches both catalogs unless a category is given.",
)
def get_report_content(
    key: str = Query(..., min_length=1, description="Report title or id"),
    category: Optional[ReportCategory] = Query(default=None),
    service: ReportService = Depends(get_report_service),
) -> ReportContentResponse:
    try:
        return service.get_report_content(key, category)
    except EntityNotFoundException:
        raise_report_not_found(key)
    except RepositoryException as e:
        raise_storage_error(e)


@router.get(
    "/reports/keywords",
    response_model=KeywordSummaryResponse,
    summary="Market keywords",
    description="Keywords from the most recent converted strategy reports; served from cache when it covers them.",
)
def get_keywords(
    limit: int = Query(default=5, ge=1, le=20),
    service: ReportService = Depends(get_report_service),
) -> KeywordSummaryResponse:
    try:
        return service.get_keyword_summary(limit)
    except RepositoryException as e:
        raise_storage_error(e)


@router.get(
    "/reports/market-summary",
    response_model=MarketSummaryResponse,
    summary="Recent market summary",
)
def get_market_summary(
    limit: int = Query(default=5, ge=1, le=20),
    service: ReportService = Depends(get_report_service),
) -> MarketSummaryResponse:
    try:
        return service.get_market_summary(limit)
    except RepositoryException as e:
        raise_storage_error(e)


#  Sync


def run_sync_task(task_id: str, service: ReportService) -> None:
    task = _sync_task_store[task_id]
    task.status = SyncTaskStatus.RUNNING
    try:
        task.result = service.sync(task.category, force=task.force)
        task.status = SyncTaskStatus.COMPLETED
    except Exception as e:
        logger.exception(f"❌ Sync task {task_id} failed: {e}")
        task.error = str(e)
        task.status = SyncTaskStatus.FAILED
    finally:
        task.completed_at = datetime.now(timezone.utc)


def prune_finished_tasks(now: Optional[datetime] = None) -> int:
    """Drop finished tasks older than SYNC_TASK_RETENTION; returns how many were removed."""
    cutoff = (now or datetime.now(timezone.utc)) - SYNC_TASK_RETENTION
    expired = [
        task_id for task_id, task in _sync_task_store.items()
        if task.status not in _ACTIVE_STATUSES and task.completed_at is not None and task.completed_at < cutoff
    ]
    for task_id in expired:
        del _sync_task_store[task_id]
    return len(expired)


@router.post(
    "/reports/sync",
    response_model=SyncAccepted,
    status_code=status.HTTP_202_ACCEPTED,
    responses={409: {"model": ErrorResponse, "description": "A sync of this category is already queued or running"}},
    summary="Sync a catalog",
    description=(
        "Discover new reports (unless the catalog was discovered recently) and convert "
        "every pending report, one at a time. Returns a task_id immediately.\n\n"
        "Use GET /api/v1/reports/sync/tasks/{task_id} to check progress."
    ),
)
def trigger_sync(
    background_tasks: BackgroundTasks,
    category: ReportCategory = Query(...),
    force: bool = Query(default=False, description="Discover even if the catalog is still fresh"),
    service: ReportService = Depends(get_report_service),
) -> SyncAccepted:
    with _sync_task_lock:
        prune_finished_tasks()
        active = next(
            (t for t in _sync_task_store.values() if t.category == category and t.status in _ACTIVE_STATUSES),
            None,
        )
        if active is not None or service.is_syncing(category):
            raise_sync_in_progress(category, active.task_id if active else None)

        task_id = str(uuid4())
        _sync_task_store[task_id] = SyncTask(
            task_id=task_id,
            category=category,
            force=force,
            status=SyncTaskStatus.QUEUED,
            started_at=datetime.now(timezone.utc),
        )
    background_tasks.add_task(run_sync_task, task_id, service)
    logger.info(f"Sync queued: task_id={task_id}, category={category.value}, force={force}")
    return SyncAccepted(
        task_id=task_id,
        status=SyncTaskStatus.QUEUED,
        message=f"Sync started for {category.value}. Poll /api/v1/reports/sync/tasks/{task_id} for progress.",
    )


@router.get(
    "/reports/sync/tasks/{task_id}",
    response_model=SyncTask,
    responses={404: {"model": ErrorResponse}},
    summary="Check sync task progress",
)
def get_sync_task(task_id: str) -> SyncTask:
    task = _sync_task_store.get(task_id)
    if task is None:
        raise_error(status.HTTP_404_NOT_FOUND, "TASK_NOT_FOUND", f"Sync task not found: {task_id}")
    return task
