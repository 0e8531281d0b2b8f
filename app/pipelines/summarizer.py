"""
Recent market summary built from the latest investment-strategy reports.
"""
from __future__ import annotations

import logging
from typing import Optional

from app.config import settings
from app.core.exceptions import PipelineException
from app.models.enumerations import DataStatus
from app.models.report import MarketSummaryResponse, ReportRecord, ReportSummary
from app.pipelines.prompts import build_market_summary_prompt
from app.repositories.catalog_repository import CatalogRepository
from app.repositories.derived_text_repository import DerivedTextRepository
from app.services.text_generation import TextGenerator

logger = logging.getLogger(__name__)


def to_summary(record: ReportRecord) -> ReportSummary:
    return ReportSummary(
        id=record.id,
        title=record.title,
        date=record.date,
        author=record.author,
        download_url=record.download_url,
        has_content=record.has_derived_text,
    )


class ReportSummarizer:

    def __init__(
        self,
        catalog: CatalogRepository,
        texts: DerivedTextRepository,
        generator: Optional[TextGenerator],
    ):
        self.catalog = catalog
        self.texts = texts
        self.generator = generator

    def summarize_recent(self, limit: Optional[int] = None) -> MarketSummaryResponse:
        """Summarize the `limit` most recent converted reports."""
        limit = limit if limit is not None else settings.KEYWORD_SAMPLE_SIZE
        records = [r for r in self.catalog.with_derived_text() if self.texts.exists(r.derived_text_ref)][:limit]
        if not records:
            return MarketSummaryResponse(status=DataStatus.NO_DATA, message="No converted reports available")
        if self.generator is None:
            return MarketSummaryResponse(status=DataStatus.NO_DATA, message="Text generation is not configured")

        items = [(r.title, self.texts.read(r.derived_text_ref, settings.KEYWORD_CONTENT_CHARS)) for r in records]
        try:
            summary = self.generator.generate(build_market_summary_prompt(items, settings.KEYWORD_CONTENT_CHARS))
        except PipelineException as e:
            logger.error(f"❌ Market summary failed: {e}")
            return MarketSummaryResponse(
                status=DataStatus.NO_DATA,
                referenced_reports=[to_summary(r) for r in records],
                message=f"Market summary failed: {e}",
            )

        logger.info(f"📰 Market summary generated from {len(records)} report(s)")
        return MarketSummaryResponse(
            status=DataStatus.OK,
            summary=summary.strip(),
            referenced_reports=[to_summary(r) for r in records],
            message=f"Summary of {len(records)} most recent report(s)",
        )
