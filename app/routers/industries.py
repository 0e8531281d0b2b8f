"""
Industry Router - Report Insight Platform
app/routers/industries.py

Industry evaluation endpoints. The read path filters out NEUTRAL and
low-confidence industries; the persisted artifact keeps everything.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from app.core.dependencies import get_report_service
from app.core.exceptions import RepositoryException, RunInProgressException
from app.models.enumerations import EvaluationStage
from app.models.evaluation import IndustryEvaluationResponse
from app.routers.reports import ErrorResponse, raise_error, raise_storage_error
from app.services.report_service import ReportService

router = APIRouter(prefix="/api/v1", tags=["industries"])


#  Schemas


class EvaluationRefreshResponse(BaseModel):
    succeeded: bool
    stage: EvaluationStage
    failed_stage: Optional[EvaluationStage] = None
    error: Optional[str] = None
    evaluated_report_count: int = 0
    industries: List[str] = Field(default_factory=list)
    skipped_industries: List[str] = Field(default_factory=list)


@router.get(
    "/industries/evaluation",
    response_model=IndustryEvaluationResponse,
    summary="Industry evaluation",
    description=(
        "Latest industry sentiment evaluation, excluding NEUTRAL industries and those "
        "scored below the confidence threshold. Computed on first read when none exists."
    ),
)
def get_industry_evaluation(
    service: ReportService = Depends(get_report_service),
) -> IndustryEvaluationResponse:
    try:
        return service.get_industry_evaluation()
    except RepositoryException as e:
        raise_storage_error(e)


@router.post(
    "/industries/evaluation/refresh",
    response_model=EvaluationRefreshResponse,
    responses={409: {"model": ErrorResponse, "description": "Run failed or another run is in progress; previous evaluation kept"}},
    summary="Recompute industry evaluation",
)
def refresh_industry_evaluation(
    sample_size: int = Query(default=10, ge=1, le=50, description="Most recent converted reports to evaluate"),
    service: ReportService = Depends(get_report_service),
) -> EvaluationRefreshResponse:
    try:
        run = service.refresh_evaluation(sample_size)
    except RunInProgressException as e:
        raise_error(status.HTTP_409_CONFLICT, "EVALUATION_IN_PROGRESS", str(e))
    if not run.succeeded:
        raise_error(
            status.HTTP_409_CONFLICT,
            "EVALUATION_FAILED",
            f"Evaluation failed at stage '{run.failed_stage.value}': {run.error}",
        )
    return EvaluationRefreshResponse(
        succeeded=True,
        stage=run.stage,
        evaluated_report_count=len(run.reports),
        industries=sorted(run.scored),
        skipped_industries=run.skipped_industries,
    )
