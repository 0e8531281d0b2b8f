"""
Document Fetcher - Report Insight Platform
app/services/document_fetcher.py

Downloads source PDFs and cuts page-range sub-documents with PyMuPDF.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Protocol

import fitz  # PyMuPDF
import httpx

from app.config import settings
from app.core.exceptions import DocumentFetchException

logger = logging.getLogger(__name__)


@dataclass
class FetchedDocument:
    url: str
    content: bytes
    page_count: int


class DocumentSource(Protocol):
    def fetch(self, url: str) -> FetchedDocument:
        ...

    def slice(self, content: bytes, start_page: int, end_page: int) -> bytes:
        ...


def count_pages(content: bytes) -> int:
    with fitz.open(stream=content, filetype="pdf") as doc:
        return doc.page_count


def slice_pages(content: bytes, start_page: int, end_page: int) -> bytes:
    """
    Copy pages [start_page, end_page) into a standalone PDF.

    Page numbers are zero-based; end_page is exclusive.
    """
    if start_page < 0 or end_page <= start_page:
        raise ValueError(f"Invalid page range [{start_page}, {end_page})")
    with fitz.open(stream=content, filetype="pdf") as src:
        if end_page > src.page_count:
            raise ValueError(f"Page range [{start_page}, {end_page}) exceeds {src.page_count} pages")
        with fitz.open() as out:
            out.insert_pdf(src, from_page=start_page, to_page=end_page - 1)
            return out.tobytes(garbage=3, deflate=True)


class DocumentFetcher:
    """HTTP download plus PDF page handling."""

    def __init__(self, timeout: Optional[float] = None, user_agent: Optional[str] = None):
        self.timeout = timeout if timeout is not None else settings.FETCH_TIMEOUT_SECONDS
        self.headers = {"User-Agent": user_agent or settings.FETCH_USER_AGENT}

    def fetch(self, url: str) -> FetchedDocument:
        """
        Download a PDF and count its pages.

        Raises:
            DocumentFetchException: On network errors, non-2xx responses or
                content that is not a readable PDF
        """
        logger.info(f"  📥 Downloading: {url}")
        try:
            resp = httpx.get(url, headers=self.headers, timeout=self.timeout, follow_redirects=True)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise DocumentFetchException(url, f"HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise DocumentFetchException(url, str(e) or e.__class__.__name__) from e

        content = resp.content
        try:
            page_count = count_pages(content)
        except (fitz.FileDataError, RuntimeError, ValueError) as e:
            raise DocumentFetchException(url, f"not a readable PDF ({e})") from e

        logger.info(f"  ✅ Downloaded {len(content):,} bytes, {page_count} page(s)")
        return FetchedDocument(url=url, content=content, page_count=page_count)

    def slice(self, content: bytes, start_page: int, end_page: int) -> bytes:
        return slice_pages(content, start_page, end_page)


@lru_cache
def get_document_fetcher() -> DocumentFetcher:
    return DocumentFetcher()
