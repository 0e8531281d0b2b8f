"""
Market keyword extraction
app/pipelines/keywords.py

Keywords are derived from the most recent converted investment-strategy
reports and cached by covering file set (see KeywordCacheRepository).
"""
from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from pydantic import ValidationError

from app.config import settings
from app.core.exceptions import PipelineException
from app.models.enumerations import DataStatus
from app.models.keyword import CoveredFile, Keyword, KeywordSummaryResponse
from app.models.report import ReportRecord
from app.pipelines.prompts import build_keyword_prompt
from app.repositories.catalog_repository import CatalogRepository
from app.repositories.derived_text_repository import DerivedTextRepository
from app.repositories.keyword_cache_repository import KeywordCacheRepository
from app.services.text_generation import TextGenerator, parse_json_response

logger = logging.getLogger(__name__)


def parse_keywords(payload: object) -> List[Keyword]:
    """Validate keyword items one by one; invalid items are dropped."""
    if isinstance(payload, dict):
        payload = payload.get("keywords", [])
    if not isinstance(payload, list):
        return []

    keywords: List[Keyword] = []
    for item in payload:
        if isinstance(item, dict) and isinstance(item.get("impact"), str):
            item = {**item, "impact": item["impact"].strip().lower()}
        try:
            keywords.append(Keyword.model_validate(item))
        except ValidationError:
            logger.warning(f"⚠️  Dropping invalid keyword item: {item!r}")
    return keywords


def _referenced(records: List[ReportRecord]) -> List[CoveredFile]:
    return [CoveredFile(id=r.id, title=r.title, date=r.date) for r in records]


class KeywordExtractor:
    """Generate (or serve cached) market keywords."""

    def __init__(
        self,
        catalog: CatalogRepository,
        texts: DerivedTextRepository,
        cache: KeywordCacheRepository,
        generator: Optional[TextGenerator],
    ):
        self.catalog = catalog
        self.texts = texts
        self.cache = cache
        self.generator = generator

    def _recent(self, limit: int) -> List[Tuple[ReportRecord, str]]:
        items = []
        for record in self.catalog.with_derived_text():
            if len(items) >= limit:
                break
            if not self.texts.exists(record.derived_text_ref):
                continue
            items.append((record, self.texts.read(record.derived_text_ref, settings.KEYWORD_CONTENT_CHARS)))
        return items

    def generate(self, limit: Optional[int] = None) -> KeywordSummaryResponse:
        limit = limit if limit is not None else settings.KEYWORD_SAMPLE_SIZE
        items = self._recent(limit)
        if not items:
            return KeywordSummaryResponse(status=DataStatus.NO_DATA, message="No converted reports available")

        records = [record for record, _ in items]
        lookup = self.cache.get(records)
        if lookup.hit:
            return KeywordSummaryResponse(
                status=DataStatus.OK,
                cached=True,
                keywords=lookup.keywords,
                referenced_files=_referenced(records),
                message="Served from keyword cache",
            )

        try:
            if self.generator is None:
                raise PipelineException("text generation is not configured")
            raw = self.generator.generate(
                build_keyword_prompt([(r.title, text) for r, text in items], settings.KEYWORD_PROMPT_CHARS)
            )
            keywords = parse_keywords(parse_json_response(raw))
            if not keywords:
                raise PipelineException("keyword response contained no valid items")
        except PipelineException as e:
            logger.error(f"❌ Keyword generation failed: {e}")
            return self._fallback(str(e))

        self.cache.save(keywords, records)
        logger.info(f"🔑 Generated {len(keywords)} keyword(s) from {len(records)} report(s)")
        return KeywordSummaryResponse(
            status=DataStatus.OK,
            cached=False,
            keywords=keywords,
            referenced_files=_referenced(records),
            message="Generated from latest reports",
        )

    def _fallback(self, error: str) -> KeywordSummaryResponse:
        entry = self.cache.entry()
        if entry is None or not entry.keywords:
            return KeywordSummaryResponse(status=DataStatus.NO_DATA, message=f"Keyword generation failed: {error}")
        return KeywordSummaryResponse(
            status=DataStatus.STALE,
            cached=True,
            keywords=entry.keywords,
            referenced_files=entry.covered_files,
            message=f"Serving keywords from {entry.updated_at.isoformat()}; regeneration failed",
        )
