"""
Keyword Cache Repository - Report Insight Platform
app/repositories/keyword_cache_repository.py

Keyword summaries keyed by the set of reports they were computed from.
A cached entry answers a request only when every requested report is in
its covering file set; partial overlap is a miss.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Iterable, List, Optional

from app.config import settings
from app.models.keyword import CoveredFile, Keyword, KeywordCacheEntry
from app.models.report import ReportRecord
from app.repositories.base import JsonDocumentStore

logger = logging.getLogger(__name__)


@dataclass
class CacheLookup:
    hit: bool
    keywords: List[Keyword] = field(default_factory=list)


def _covered(record: ReportRecord) -> CoveredFile:
    return CoveredFile(id=record.id, title=record.title, date=record.date)


class KeywordCacheRepository:
    """Single keyword cache entry persisted as JSON."""

    def __init__(self, summary_dir: Optional[Path] = None):
        directory = Path(summary_dir) if summary_dir is not None else settings.summary_dir
        self.store = JsonDocumentStore(
            directory / "keyword_cache.json",
            KeywordCacheEntry,
            lambda: KeywordCacheEntry(updated_at=date.today()),
        )

    def entry(self) -> Optional[KeywordCacheEntry]:
        """The persisted entry, or None if nothing was cached yet."""
        if not self.store.exists():
            return None
        return self.store.load()

    def get(self, requested_files: Iterable[ReportRecord]) -> CacheLookup:
        requested_ids = {f.id for f in requested_files}
        entry = self.entry()
        if entry is None:
            return CacheLookup(hit=False)

        missing = requested_ids - entry.covered_file_ids
        if missing:
            logger.info(f"🔑 Keyword cache MISS: {len(missing)} report(s) not covered")
            return CacheLookup(hit=False)

        logger.info(f"🔑 Keyword cache HIT: {len(requested_ids)} report(s) covered")
        return CacheLookup(hit=True, keywords=list(entry.keywords))

    def save(self, keywords: List[Keyword], files: Iterable[ReportRecord]) -> KeywordCacheEntry:
        """
        Merge files into the covering set and overwrite the keywords.

        The covering set only grows; keywords always reflect the latest
        computation.
        """
        with self.store.transaction() as entry:
            known_ids = entry.covered_file_ids
            for record in files:
                if record.id not in known_ids:
                    entry.covered_files.append(_covered(record))
                    known_ids.add(record.id)
            entry.keywords = list(keywords)
            entry.updated_at = date.today()
        saved = self.store.load()
        logger.info(f"🔑 Keyword cache saved: {len(saved.keywords)} keywords, {len(saved.covered_files)} file(s) covered")
        return saved
