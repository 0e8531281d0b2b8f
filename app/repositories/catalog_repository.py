"""
Catalog Repository - Report Insight Platform
app/repositories/catalog_repository.py

Append-only catalog of report metadata plus conversion status, one JSON
document per report category.
"""

import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Tuple

from app.config import settings
from app.models.enumerations import ReportCategory
from app.models.report import CatalogDocument, ReportRecord
from app.repositories.base import JsonDocumentStore

logger = logging.getLogger(__name__)

_DATE_SEPARATORS = re.compile(r"[./]")


def report_date_key(record: ReportRecord) -> Tuple[int, str]:
    """
    Sort key for report dates.

    Source dates arrive as ISO strings or as "2025.07.15" style strings;
    both normalize to ISO. Unparseable dates sort after every parseable one
    when sorting most-recent-first.
    """
    normalized = _DATE_SEPARATORS.sub("-", record.date.strip())
    try:
        return (1, datetime.fromisoformat(normalized).date().isoformat())
    except ValueError:
        return (0, record.date)


class CatalogRepository:
    """Repository for one report catalog."""

    def __init__(self, category: ReportCategory, catalog_dir: Optional[Path] = None):
        self.category = category
        directory = Path(catalog_dir) if catalog_dir is not None else settings.catalog_dir
        self.store = JsonDocumentStore(
            directory / f"reports_{category.value}.json",
            CatalogDocument,
            lambda: CatalogDocument(category=category),
        )

    # ── Queries ────────────────────────────────────────────────

    @property
    def records(self) -> List[ReportRecord]:
        """All records in insertion order."""
        return list(self.store.load().records)

    @property
    def last_discovered_at(self) -> Optional[datetime]:
        return self.store.load().last_discovered_at

    @property
    def last_converted_at(self) -> Optional[datetime]:
        return self.store.load().last_converted_at

    def find_by_id(self, report_id: str) -> Optional[ReportRecord]:
        for record in self.store.load().records:
            if record.id == report_id:
                return record
        return None

    def find_by_title(self, title: str) -> Optional[ReportRecord]:
        """Exact-title lookup; the first inserted record wins on duplicates."""
        for record in self.store.load().records:
            if record.title == title:
                return record
        return None

    def find_by_title_or_id(self, key: str) -> Optional[ReportRecord]:
        return self.find_by_title(key) or self.find_by_id(key)

    def pending_conversion(self) -> List[ReportRecord]:
        """All records with no derived text yet."""
        return [r for r in self.store.load().records if r.derived_text_ref is None]

    def with_derived_text(self) -> List[ReportRecord]:
        """Converted records, most recent report date first."""
        converted = [r for r in self.store.load().records if r.derived_text_ref is not None]
        return sorted(converted, key=report_date_key, reverse=True)

    def most_recent(self) -> List[ReportRecord]:
        """All records, most recent report date first."""
        return sorted(self.store.load().records, key=report_date_key, reverse=True)

    def count(self) -> int:
        return len(self.store.load().records)

    # ── Mutations ──────────────────────────────────────────────

    def upsert_if_new(self, candidates: Iterable[ReportRecord]) -> int:
        """
        Append candidates whose id is not in the catalog yet.

        Repeated or overlapping candidate lists are safe: records are keyed
        by id and existing records are never modified here.

        Returns:
            Number of records appended
        """
        added = 0
        with self.store.transaction() as doc:
            known_ids = {r.id for r in doc.records}
            for candidate in candidates:
                if candidate.id in known_ids:
                    continue
                doc.records.append(candidate.model_copy(update={
                    "derived_text_ref": None,
                    "last_error": None,
                    "unconvertible": False,
                }))
                known_ids.add(candidate.id)
                added += 1
        logger.info(f"📚 [{self.category.value}] {added} new report(s) appended, {len(known_ids)} total")
        return added

    def mark_converted(self, report_id: str, derived_text_ref: str) -> bool:
        """
        Record the derived text for a report.

        An unknown id or a record that already has derived text is a
        consistency warning, not an error.

        Returns:
            True if the record was updated
        """
        with self.store.transaction() as doc:
            record = next((r for r in doc.records if r.id == report_id), None)
            if record is None:
                logger.warning(f"⚠️  [{self.category.value}] mark_converted: report id {report_id} not in catalog")
                return False
            if record.derived_text_ref is not None:
                logger.warning(
                    f"⚠️  [{self.category.value}] mark_converted: report {report_id} "
                    f"already converted as {record.derived_text_ref}, keeping it"
                )
                return False
            record.derived_text_ref = derived_text_ref
            record.last_error = None
            doc.last_converted_at = datetime.now(timezone.utc)
        return True

    def commit_conversion(self, report_id: str, write_text: Callable[[], str]) -> Tuple[Optional[str], bool]:
        """
        Write derived text and mark the report converted, unless it already is.

        The check, the write and the catalog update happen under the store
        lock, so derived text that is already recorded is never overwritten.
        If write_text raises, the catalog is left unchanged.

        Returns:
            (derived text ref, True if this call wrote it). The ref is None
            when the id is not in the catalog.
        """
        with self.store.transaction() as doc:
            record = next((r for r in doc.records if r.id == report_id), None)
            if record is None:
                logger.warning(f"⚠️  [{self.category.value}] commit_conversion: report id {report_id} not in catalog")
                return None, False
            if record.derived_text_ref is not None:
                logger.warning(
                    f"⚠️  [{self.category.value}] report {report_id} already converted "
                    f"as {record.derived_text_ref}, not rewriting it"
                )
                return record.derived_text_ref, False
            record.derived_text_ref = write_text()
            record.last_error = None
            doc.last_converted_at = datetime.now(timezone.utc)
        return record.derived_text_ref, True

    def mark_failed(self, report_id: str, error: str, permanent: bool = False) -> bool:
        """Record a conversion failure; permanent failures are not retried automatically."""
        with self.store.transaction() as doc:
            record = next((r for r in doc.records if r.id == report_id), None)
            if record is None:
                logger.warning(f"⚠️  [{self.category.value}] mark_failed: report id {report_id} not in catalog")
                return False
            record.last_error = error
            record.unconvertible = record.unconvertible or permanent
        return True

    def touch_discovered(self, when: Optional[datetime] = None) -> None:
        with self.store.transaction() as doc:
            doc.last_discovered_at = when or datetime.now(timezone.utc)
