from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime

from app.models.enumerations import Sentiment, DataStatus


class ClassificationInput(BaseModel):
    """Document handed to the classifier."""
    id: str
    title: str
    excerpt: str = ""


class ClassifiedReport(BaseModel):
    id: str
    industries: List[str] = Field(default_factory=list)


class IndustryGroup(BaseModel):
    """Derived texts and report ids that share an industry label."""
    industry_name: str
    texts: List[str] = Field(default_factory=list)
    referenced_report_ids: List[str] = Field(default_factory=list)


class _EvaluationBody(BaseModel):
    industry_name: str
    sentiment: Sentiment
    summary: str
    key_drivers: List[str] = Field(default_factory=list)
    key_risks: List[str] = Field(default_factory=list)
    referenced_report_ids: List[str] = Field(default_factory=list)


class UnscoredEvaluation(_EvaluationBody):
    """
    Pass-1 result. Carries no confidence and cannot be stored in an
    EvaluationArtifact until it has been scored.
    """

    def with_confidence(self, confidence: float) -> "IndustryEvaluation":
        return IndustryEvaluation(**self.model_dump(), confidence=confidence)


class IndustryEvaluation(_EvaluationBody):
    """Scored evaluation for one industry."""
    confidence: float = Field(..., ge=0.0, le=1.0)


class EvaluationArtifact(BaseModel):
    """One evaluation run. Replaces the previous artifact wholesale."""
    evaluated_at: datetime
    evaluated_report_count: int = Field(..., ge=0)
    evaluations: List[IndustryEvaluation] = Field(default_factory=list)


class IndustryEvaluationResponse(BaseModel):
    """Consumer-facing view of the evaluation artifact (filtered)."""
    status: DataStatus
    evaluated_at: Optional[datetime] = None
    evaluated_report_count: int = 0
    evaluations: List[IndustryEvaluation] = Field(default_factory=list)
    filtered_out: int = 0
    message: str
