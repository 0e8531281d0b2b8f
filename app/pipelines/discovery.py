"""
Report discovery
app/pipelines/discovery.py

Discovery produces candidate ReportRecords for a category. Parsing the
brokerage listing page is done outside this service; here we only consume
a JSON feed of report metadata:

    [{"id": "...", "title": "...", "date": "2025.07.15", "author": "...",
      "download_url": "https://..."}]
"""
from __future__ import annotations

import logging
from typing import List, Optional, Protocol

import httpx
from pydantic import ValidationError

from app.config import settings
from app.core.exceptions import DocumentFetchException
from app.models.enumerations import ReportCategory
from app.models.report import ReportRecord

logger = logging.getLogger(__name__)


class ReportDiscovery(Protocol):
    def discover(self, category: ReportCategory) -> List[ReportRecord]:
        ...


class NullDiscovery:
    """Used when no feed is configured; the catalog is filled externally."""

    def discover(self, category: ReportCategory) -> List[ReportRecord]:
        logger.info(f"🔎 [{category.value}] No report feed configured, discovery returns nothing")
        return []


class HttpFeedDiscovery:
    """Reads candidates from a JSON feed; `{category}` in the URL is substituted."""

    def __init__(self, url_template: str, timeout: Optional[float] = None):
        self.url_template = url_template
        self.timeout = timeout if timeout is not None else settings.FETCH_TIMEOUT_SECONDS

    def discover(self, category: ReportCategory) -> List[ReportRecord]:
        """
        Raises:
            DocumentFetchException: Feed unreachable or not a JSON array
        """
        url = self.url_template.format(category=category.value)
        logger.info(f"🔎 [{category.value}] Discovering reports from {url}")
        try:
            resp = httpx.get(url, timeout=self.timeout, headers={"User-Agent": settings.FETCH_USER_AGENT})
            resp.raise_for_status()
            payload = resp.json()
        except httpx.HTTPError as e:
            raise DocumentFetchException(url, str(e) or e.__class__.__name__) from e
        except ValueError as e:
            raise DocumentFetchException(url, f"feed is not JSON ({e})") from e

        if not isinstance(payload, list):
            raise DocumentFetchException(url, "feed is not a JSON array")

        candidates: List[ReportRecord] = []
        for item in payload:
            try:
                candidates.append(ReportRecord.model_validate(item))
            except ValidationError as e:
                logger.warning(f"⚠️  Skipping malformed feed item {item!r}: {e.error_count()} error(s)")
        logger.info(f"🔎 [{category.value}] {len(candidates)} candidate(s) discovered")
        return candidates


def create_discovery() -> ReportDiscovery:
    if settings.REPORT_FEED_URL:
        return HttpFeedDiscovery(settings.REPORT_FEED_URL)
    return NullDiscovery()
