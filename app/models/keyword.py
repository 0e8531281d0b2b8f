from pydantic import BaseModel, Field
from typing import List, Set
from datetime import date

from app.models.enumerations import KeywordImpact, DataStatus


class Keyword(BaseModel):
    icon: str
    label: str = Field(..., min_length=1)
    description: str
    impact: KeywordImpact


class CoveredFile(BaseModel):
    """Metadata of a report a keyword set was computed from."""
    id: str
    title: str = ""
    date: str = ""


class KeywordCacheEntry(BaseModel):
    keywords: List[Keyword] = Field(default_factory=list)
    covered_files: List[CoveredFile] = Field(default_factory=list)
    updated_at: date

    @property
    def covered_file_ids(self) -> Set[str]:
        return {f.id for f in self.covered_files}


class KeywordSummaryResponse(BaseModel):
    status: DataStatus
    cached: bool = False
    keywords: List[Keyword] = Field(default_factory=list)
    referenced_files: List[CoveredFile] = Field(default_factory=list)
    message: str
