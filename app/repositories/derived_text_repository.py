"""
Derived Text Repository - Report Insight Platform
app/repositories/derived_text_repository.py

Stores the Markdown produced by the converter, one file per report.
"""

import logging
import re
from pathlib import Path
from typing import Optional

from app.config import settings
from app.core.exceptions import EntityNotFoundException
from app.repositories.base import atomic_write_text

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^\w.-]")


class DerivedTextRepository:
    """Markdown files keyed by report id; the file name is the derived-text ref."""

    def __init__(self, markdown_dir: Optional[Path] = None):
        self.markdown_dir = Path(markdown_dir) if markdown_dir is not None else settings.markdown_dir

    @staticmethod
    def ref_for(report_id: str) -> str:
        return f"{_UNSAFE_CHARS.sub('_', report_id)}.md"

    def save(self, report_id: str, text: str) -> str:
        """Write the derived text and return its ref."""
        ref = self.ref_for(report_id)
        atomic_write_text(self.markdown_dir / ref, text)
        logger.info(f"  💾 Derived text saved: {ref} ({len(text):,} chars)")
        return ref

    def exists(self, ref: Optional[str]) -> bool:
        return bool(ref) and (self.markdown_dir / ref).is_file()

    def read(self, ref: str, max_chars: Optional[int] = None) -> str:
        path = self.markdown_dir / ref
        if not path.is_file():
            raise EntityNotFoundException("DerivedText", ref)
        content = path.read_text(encoding="utf-8")
        return content[:max_chars] if max_chars is not None else content
