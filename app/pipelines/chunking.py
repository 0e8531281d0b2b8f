import logging
from typing import List, Optional
from dataclasses import dataclass

from app.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PageRange:
    """A contiguous page slice of a document, zero-based and end-exclusive."""
    chunk_index: int
    start_page: int
    end_page: int

    @property
    def page_count(self) -> int:
        return self.end_page - self.start_page

    def describe(self, total_pages: int) -> str:
        """Human-readable position, 1-based: 'pages 21-45 of 45 total'."""
        return f"pages {self.start_page + 1}-{self.end_page} of {total_pages} total"


class PageChunker:
    """Split a document's pages into ranges for the map phase"""

    def __init__(
        self,
        chunk_size: Optional[int] = None,        # Pages per chunk
        tail_merge_pages: Optional[int] = None,  # Slack absorbed into the last chunk
    ):
        self.chunk_size = chunk_size if chunk_size is not None else settings.CHUNK_PAGE_SIZE
        self.tail_merge_pages = tail_merge_pages if tail_merge_pages is not None else settings.CHUNK_TAIL_MERGE_PAGES
        if self.chunk_size < 1:
            raise ValueError("chunk_size must be at least 1")
        if self.tail_merge_pages < 0:
            raise ValueError("tail_merge_pages must not be negative")

    def plan(self, total_pages: int) -> List[PageRange]:
        """
        Partition [0, total_pages) into chunks of chunk_size pages.

        At each chunk start i, when the remaining pages satisfy
        total_pages - i <= chunk_size + tail_merge_pages, the current chunk
        takes every remaining page and chunking stops. With the defaults
        (20, 5): 45 pages -> [0,20) [20,45); 50 pages -> [0,20) [20,40) [40,50).
        """
        if total_pages < 1:
            raise ValueError("total_pages must be at least 1")

        ranges: List[PageRange] = []
        start = 0
        while start < total_pages:
            remaining = total_pages - start
            if remaining <= self.chunk_size + self.tail_merge_pages:
                end = total_pages
            else:
                end = start + self.chunk_size
            ranges.append(PageRange(chunk_index=len(ranges), start_page=start, end_page=end))
            start = end

        logger.info(f"  📑 {total_pages} page(s) -> {len(ranges)} chunk(s): "
                    + ", ".join(f"[{r.start_page},{r.end_page})" for r in ranges))
        return ranges


# Factory function to create chunker with custom settings
def create_chunker(chunk_size: Optional[int] = None, tail_merge_pages: Optional[int] = None) -> PageChunker:
    return PageChunker(chunk_size, tail_merge_pages)
