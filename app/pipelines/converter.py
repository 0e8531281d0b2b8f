"""
Chunked report converter.

Turns one source PDF into one Markdown document even when the PDF is too
large for a single generation call:

    fetch -> plan page chunks -> summarize each chunk (map) -> merge (reduce)

Chunks of one document are independent, so the map phase may run on a small
bounded thread pool; partial summaries are re-ordered by chunk index before
the reduce step. Any failure aborts the whole document and nothing is
persisted for it.
"""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import List, Optional

from app.config import settings
from app.core.exceptions import DocumentFetchException, EmptyDocumentException, PipelineException
from app.models.report import ConversionResult, ReportRecord
from app.pipelines.chunking import PageChunker, PageRange, create_chunker
from app.pipelines.prompts import build_chunk_prompt, build_reduce_prompt
from app.repositories.catalog_repository import CatalogRepository
from app.repositories.derived_text_repository import DerivedTextRepository
from app.services.document_fetcher import DocumentSource, FetchedDocument
from app.services.text_generation import Attachment, TextGenerator

logger = logging.getLogger(__name__)


@dataclass
class ChunkSummary:
    chunk: PageRange
    text: str


class ChunkedConverter:
    """Convert catalog entries into derived Markdown text."""

    def __init__(
        self,
        fetcher: DocumentSource,
        generator: TextGenerator,
        texts: DerivedTextRepository,
        chunker: Optional[PageChunker] = None,
        map_workers: Optional[int] = None,
    ):
        self.fetcher = fetcher
        self.generator = generator
        self.texts = texts
        self.chunker = chunker or create_chunker()
        self.map_workers = map_workers if map_workers is not None else settings.CHUNK_MAP_WORKERS

    # ── Public API ─────────────────────────────────────────────

    def convert(self, record: ReportRecord, catalog: CatalogRepository) -> ConversionResult:
        """
        Convert one report and mark it converted in the catalog.

        Never raises for per-document problems; they come back as a failed
        ConversionResult and the catalog entry stays pending.
        """
        current = catalog.find_by_id(record.id)
        if current is not None and current.derived_text_ref is not None:
            return self._already_converted(record.id, current.derived_text_ref)

        logger.info(f"📄 Converting: {record.title} ({record.id})")
        try:
            text, chunk_count, page_count = self.convert_document(record.download_url)
        except EmptyDocumentException as e:
            logger.error(f"  ❌ {record.id}: {e}")
            catalog.mark_failed(record.id, str(e), permanent=True)
            return ConversionResult(report_id=record.id, success=False, error=str(e), permanent=True)
        except PipelineException as e:
            logger.error(f"  ❌ {record.id}: {e}")
            catalog.mark_failed(record.id, str(e))
            return ConversionResult(report_id=record.id, success=False, error=str(e))

        ref, written = catalog.commit_conversion(record.id, lambda: self.texts.save(record.id, text))
        if ref is None:
            return ConversionResult(report_id=record.id, success=False, error="report is no longer in the catalog")
        if not written:
            return self._already_converted(record.id, ref)
        logger.info(f"  ✅ {record.id}: {chunk_count} chunk(s), {page_count} page(s) -> {ref}")
        return ConversionResult(
            report_id=record.id,
            success=True,
            derived_text_ref=ref,
            text=text,
            chunk_count=chunk_count,
            page_count=page_count,
        )

    @staticmethod
    def _already_converted(report_id: str, ref: str) -> ConversionResult:
        logger.warning(f"  ⏭️  {report_id}: already converted as {ref}, skipped")
        return ConversionResult(
            report_id=report_id,
            success=False,
            derived_text_ref=ref,
            error=f"already converted as {ref}",
        )

    def convert_document(self, url: str) -> tuple[str, int, int]:
        """
        Fetch, map and reduce a single document.

        Returns:
            (final text, number of chunks, total pages)

        Raises:
            EmptyDocumentException: Document has zero pages
            PipelineException: Fetch or generation failure
        """
        document = self.fetcher.fetch(url)
        if document.page_count == 0:
            raise EmptyDocumentException(url)

        chunks = self.chunker.plan(document.page_count)
        partials = self._map(document, chunks)
        return self._reduce(partials), len(chunks), document.page_count

    # ── Map / reduce ──────────────────────────────────────────

    def _summarize_chunk(self, document: FetchedDocument, chunk: PageRange) -> ChunkSummary:
        if chunk.start_page == 0 and chunk.end_page == document.page_count:
            data = document.content
        else:
            try:
                data = self.fetcher.slice(document.content, chunk.start_page, chunk.end_page)
            except (ValueError, RuntimeError) as e:
                raise DocumentFetchException(document.url, f"cannot extract {chunk.describe(document.page_count)}: {e}") from e
        position = chunk.describe(document.page_count)
        logger.info(f"  🧩 Chunk {chunk.chunk_index + 1}: {position}")
        text = self.generator.generate(build_chunk_prompt(position), Attachment(data=data))
        return ChunkSummary(chunk=chunk, text=text)

    def _map(self, document: FetchedDocument, chunks: List[PageRange]) -> List[ChunkSummary]:
        if len(chunks) == 1 or self.map_workers <= 1:
            return [self._summarize_chunk(document, c) for c in chunks]

        with ThreadPoolExecutor(max_workers=min(self.map_workers, len(chunks))) as pool:
            futures = [pool.submit(self._summarize_chunk, document, c) for c in chunks]
            try:
                summaries = [f.result() for f in futures]
            except BaseException:
                for f in futures:
                    f.cancel()
                raise
        return sorted(summaries, key=lambda s: s.chunk.chunk_index)

    def _reduce(self, partials: List[ChunkSummary]) -> str:
        if len(partials) == 1:
            return partials[0].text
        logger.info(f"  🔗 Merging {len(partials)} partial summaries")
        return self.generator.generate(build_reduce_prompt([p.text for p in partials]))
