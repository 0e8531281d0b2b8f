"""
Evaluation Repository - Report Insight Platform
app/repositories/evaluation_repository.py

Persists the latest industry evaluation artifact. Each run replaces the
previous artifact wholesale; nothing is merged.
"""

import logging
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from app.config import settings
from app.core.exceptions import StoreCorruptedException
from app.models.evaluation import EvaluationArtifact
from app.repositories.base import atomic_write_text

logger = logging.getLogger(__name__)


class EvaluationRepository:

    def __init__(self, summary_dir: Optional[Path] = None):
        directory = Path(summary_dir) if summary_dir is not None else settings.summary_dir
        self.path = directory / "industry_evaluation.json"

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> Optional[EvaluationArtifact]:
        """Return the persisted artifact, or None when no run has completed."""
        if not self.path.exists():
            return None
        try:
            return EvaluationArtifact.model_validate_json(self.path.read_text(encoding="utf-8"))
        except ValidationError as e:
            raise StoreCorruptedException(str(self.path), str(e)) from e

    def save(self, artifact: EvaluationArtifact) -> None:
        atomic_write_text(self.path, artifact.model_dump_json(indent=2))
        logger.info(
            f"📊 Evaluation artifact saved: {len(artifact.evaluations)} industries "
            f"from {artifact.evaluated_report_count} report(s)"
        )
