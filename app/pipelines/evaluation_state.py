"""
Industry evaluation run as an explicit stage machine.

    CLASSIFY -> GROUP -> EVALUATE -> SCORE -> PERSIST -> DONE
                      (any stage may end in FAILED)

An EvaluationRun keeps every intermediate result, so a FAILED run can be
resumed from the stage that failed without repeating completed work. Only
scored evaluations reach the artifact; a failed run never replaces the
previously persisted artifact.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

import structlog

from app.config import settings
from app.core.exceptions import PipelineException, RepositoryException
from app.models.enumerations import EvaluationStage
from app.models.evaluation import (
    ClassificationInput,
    ClassifiedReport,
    EvaluationArtifact,
    IndustryEvaluation,
    IndustryGroup,
    UnscoredEvaluation,
)
from app.models.report import ReportRecord
from app.pipelines.classifier import IndustryClassifier, group_by_industry
from app.pipelines.evaluator import IndustryEvaluator
from app.repositories.catalog_repository import CatalogRepository
from app.repositories.derived_text_repository import DerivedTextRepository
from app.repositories.evaluation_repository import EvaluationRepository

logger = structlog.get_logger(__name__)

_NEXT_STAGE = {
    EvaluationStage.CLASSIFY: EvaluationStage.GROUP,
    EvaluationStage.GROUP: EvaluationStage.EVALUATE,
    EvaluationStage.EVALUATE: EvaluationStage.SCORE,
    EvaluationStage.SCORE: EvaluationStage.PERSIST,
    EvaluationStage.PERSIST: EvaluationStage.DONE,
}


@dataclass
class EvaluationRun:
    """
    Tracks state across evaluation stages.
    Held in memory by the caller; pass it back to EvaluationPipeline.run to resume.
    """

    sample_size: int
    reports: List[ReportRecord] = field(default_factory=list)
    texts_by_id: Dict[str, str] = field(default_factory=dict)

    # Artifacts from each stage
    classified: List[ClassifiedReport] = field(default_factory=list)
    groups: Dict[str, IndustryGroup] = field(default_factory=dict)
    unscored: Dict[str, UnscoredEvaluation] = field(default_factory=dict)
    scored: Dict[str, IndustryEvaluation] = field(default_factory=dict)
    skipped_industries: List[str] = field(default_factory=list)
    artifact: Optional[EvaluationArtifact] = None

    stage: EvaluationStage = EvaluationStage.CLASSIFY
    failed_stage: Optional[EvaluationStage] = None
    error: Optional[str] = None
    steps_completed: Dict[str, bool] = field(
        default_factory=lambda: {s.value: False for s in _NEXT_STAGE}
    )
    last_updated: str = ""

    @property
    def finished(self) -> bool:
        return self.stage in (EvaluationStage.DONE, EvaluationStage.FAILED)

    @property
    def succeeded(self) -> bool:
        return self.stage == EvaluationStage.DONE

    def mark_step_complete(self, stage: EvaluationStage) -> None:
        self.steps_completed[stage.value] = True
        self.stage = _NEXT_STAGE[stage]
        self.last_updated = datetime.now(timezone.utc).isoformat()

    def fail(self, stage: EvaluationStage, error: str) -> None:
        self.failed_stage = stage
        self.error = error
        self.stage = EvaluationStage.FAILED
        self.last_updated = datetime.now(timezone.utc).isoformat()

    def prepare_resume(self) -> None:
        """Move a FAILED run back to the stage that failed."""
        if self.stage == EvaluationStage.FAILED and self.failed_stage is not None:
            self.stage = self.failed_stage
            self.failed_stage = None
            self.error = None


class EvaluationPipeline:
    """Drive an EvaluationRun through its stages."""

    def __init__(
        self,
        catalog: CatalogRepository,
        texts: DerivedTextRepository,
        classifier: IndustryClassifier,
        evaluator: IndustryEvaluator,
        repository: EvaluationRepository,
        excerpt_chars: Optional[int] = None,
    ):
        self.catalog = catalog
        self.texts = texts
        self.classifier = classifier
        self.evaluator = evaluator
        self.repository = repository
        self.excerpt_chars = excerpt_chars if excerpt_chars is not None else settings.CLASSIFY_EXCERPT_CHARS
        self._handlers: Dict[EvaluationStage, Callable[[EvaluationRun], None]] = {
            EvaluationStage.CLASSIFY: self._classify,
            EvaluationStage.GROUP: self._group,
            EvaluationStage.EVALUATE: self._evaluate,
            EvaluationStage.SCORE: self._score,
            EvaluationStage.PERSIST: self._persist,
        }

    def start(self, sample_size: Optional[int] = None) -> EvaluationRun:
        """Select the most recent converted reports and load their derived text."""
        size = sample_size if sample_size is not None else settings.EVALUATION_SAMPLE_SIZE
        run = EvaluationRun(sample_size=size)
        for record in self.catalog.with_derived_text()[:size]:
            if not self.texts.exists(record.derived_text_ref):
                logger.warning("derived_text_missing", report_id=record.id, ref=record.derived_text_ref)
                continue
            run.reports.append(record)
            run.texts_by_id[record.id] = self.texts.read(record.derived_text_ref)
        logger.info("evaluation_run_started", sample_size=size, reports=len(run.reports))
        return run

    def run(self, run: Optional[EvaluationRun] = None, sample_size: Optional[int] = None) -> EvaluationRun:
        """Execute (or resume) a run until it is DONE or FAILED."""
        if run is None:
            run = self.start(sample_size)
        else:
            run.prepare_resume()

        if not run.reports:
            run.fail(run.stage, "no converted reports available for evaluation")
            logger.warning("evaluation_run_failed", stage=run.failed_stage.value, error=run.error)
            return run

        while not run.finished:
            stage = run.stage
            try:
                self._handlers[stage](run)
            except (PipelineException, RepositoryException) as e:
                run.fail(stage, str(e))
                logger.error("evaluation_run_failed", stage=stage.value, error=str(e))
                return run
            run.mark_step_complete(stage)
            logger.info("evaluation_stage_complete", stage=stage.value, next_stage=run.stage.value)
        return run

    # ── Stages ────────────────────────────────────────────────

    def _classify(self, run: EvaluationRun) -> None:
        documents = [
            ClassificationInput(id=r.id, title=r.title, excerpt=run.texts_by_id[r.id][: self.excerpt_chars])
            for r in run.reports
        ]
        run.classified = self.classifier.classify(documents)

    def _group(self, run: EvaluationRun) -> None:
        run.groups = group_by_industry(run.classified, run.texts_by_id)
        logger.info("industries_grouped", industries=sorted(run.groups))

    def _evaluate(self, run: EvaluationRun) -> None:
        for name, group in run.groups.items():
            if name in run.unscored:
                continue
            try:
                run.unscored[name] = self.evaluator.evaluate(group)
            except PipelineException as e:
                if name not in run.skipped_industries:
                    run.skipped_industries.append(name)
                logger.warning("industry_skipped", industry=name, error=str(e))
            else:
                if name in run.skipped_industries:
                    run.skipped_industries.remove(name)

        # Never persist an empty artifact over the previous one
        if run.groups and not run.unscored:
            raise PipelineException(f"all {len(run.groups)} industries failed evaluation")

    def _score(self, run: EvaluationRun) -> None:
        for name, unscored in run.unscored.items():
            if name in run.scored:
                continue
            run.scored[name] = self.evaluator.score(unscored, run.groups[name].texts)

    def _persist(self, run: EvaluationRun) -> None:
        artifact = EvaluationArtifact(
            evaluated_at=datetime.now(timezone.utc),
            evaluated_report_count=len(run.reports),
            evaluations=list(run.scored.values()),
        )
        self.repository.save(artifact)
        run.artifact = artifact
