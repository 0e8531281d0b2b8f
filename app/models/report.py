from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime

from app.models.enumerations import ReportCategory, DataStatus, SyncStage


class ReportRecord(BaseModel):
    """Catalog entry for one source report."""
    id: str = Field(..., min_length=1, description="Stable identifier extracted from the source")
    title: str
    date: str = Field(..., description="ISO or source-native date string")
    author: str = ""
    download_url: str
    derived_text_ref: Optional[str] = None   # Set exactly once when conversion succeeds
    last_error: Optional[str] = None
    unconvertible: bool = False              # Zero-page document, skipped by the orchestrator

    @property
    def has_derived_text(self) -> bool:
        return self.derived_text_ref is not None


class CatalogDocument(BaseModel):
    """Persisted shape of one report catalog."""
    category: ReportCategory
    last_discovered_at: Optional[datetime] = None
    last_converted_at: Optional[datetime] = None
    records: List[ReportRecord] = Field(default_factory=list)


class ConversionResult(BaseModel):
    """Outcome of converting one report into derived text."""
    report_id: str
    success: bool
    derived_text_ref: Optional[str] = None
    text: str = ""
    chunk_count: int = 0
    page_count: int = 0
    error: Optional[str] = None
    permanent: bool = False   # True when the input itself is unusable (zero pages)


class SyncResult(BaseModel):
    category: ReportCategory
    stage: SyncStage = SyncStage.IDLE
    discovery_skipped: bool
    discovered: int = 0
    added: int = 0
    attempted: int = 0
    converted: int = 0
    failed: int = 0
    cancelled: bool = False
    results: List[ConversionResult] = Field(default_factory=list)


# READ API MODELS


class ReportSummary(BaseModel):
    id: str
    title: str
    date: str
    author: str
    download_url: str
    has_content: bool


class ReportListResponse(BaseModel):
    category: ReportCategory
    items: List[ReportSummary]
    total: int
    page: int
    page_size: int
    total_pages: int


class ReportContentResponse(BaseModel):
    status: DataStatus
    id: Optional[str] = None
    title: Optional[str] = None
    date: Optional[str] = None
    author: Optional[str] = None
    content: str = ""
    message: str


class MarketSummaryResponse(BaseModel):
    status: DataStatus
    summary: str = ""
    referenced_reports: List[ReportSummary] = Field(default_factory=list)
    message: str
