# tests/conftest.py

"""
Pytest Fixtures - Shared test configuration for the report pipeline and API

Everything runs against a temporary DATA_DIR with in-memory fakes for the
Text Generation Service and the Document Fetcher; no network, no Redis.
"""

import json
import threading
from typing import Callable, Dict, List, Optional, Tuple, Union

import pytest
from fastapi.testclient import TestClient

from app.core.dependencies import get_report_service
from app.core.exceptions import DocumentFetchException
from app.main import app
from app.models.enumerations import ReportCategory
from app.models.report import ReportRecord
from app.pipelines.classifier import IndustryClassifier
from app.pipelines.converter import ChunkedConverter
from app.pipelines.discovery import NullDiscovery
from app.pipelines.evaluation_state import EvaluationPipeline
from app.pipelines.evaluator import IndustryEvaluator
from app.pipelines.keywords import KeywordExtractor
from app.pipelines.runner import PipelineOrchestrator
from app.pipelines.summarizer import ReportSummarizer
from app.repositories.catalog_repository import CatalogRepository
from app.repositories.derived_text_repository import DerivedTextRepository
from app.repositories.evaluation_repository import EvaluationRepository
from app.repositories.keyword_cache_repository import KeywordCacheRepository
from app.services.document_fetcher import FetchedDocument
from app.services.report_service import ReportService
from app.shutdown import clear_shutdown


# =============================================================================
# FAKE COLLABORATORS
# =============================================================================

Reply = Union[str, Exception]


class FakeTextGenerator:
    """
    Scripted stand-in for TextGenerationService.

    Either a responder callable (prompt, attachment) -> reply, or a queue of
    replies consumed in order. A reply that is an exception is raised.
    """

    def __init__(self, responder: Optional[Callable] = None, responses: Optional[List[Reply]] = None):
        self.responder = responder
        self.responses = list(responses or [])
        self.calls: List[Tuple[str, object]] = []
        self._lock = threading.Lock()

    def generate(self, prompt, attachment=None):
        with self._lock:
            self.calls.append((prompt, attachment))
            reply = self.responder(prompt, attachment) if self.responder else self.responses.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    def prompts_containing(self, marker: str) -> List[str]:
        return [p for p, _ in self.calls if marker in p]


class FakeFetcher:
    """Documents keyed by URL: page count, or an exception to raise."""

    def __init__(self, documents: Optional[Dict[str, Union[int, Exception]]] = None):
        self.documents = dict(documents or {})
        self.fetched: List[str] = []
        self.slices: List[Tuple[int, int]] = []

    def fetch(self, url):
        self.fetched.append(url)
        doc = self.documents.get(url)
        if doc is None:
            raise DocumentFetchException(url, "HTTP 404")
        if isinstance(doc, Exception):
            raise doc
        return FetchedDocument(url=url, content=f"PDF:{url}".encode(), page_count=doc)

    def slice(self, content, start_page, end_page):
        self.slices.append((start_page, end_page))
        return f"{content.decode()}[{start_page}:{end_page}]".encode()


# Prompt markers, one per prompt template
CHUNK_MARKER = "The attached PDF"
REDUCE_MARKER = "partial summaries"
CLASSIFY_MARKER = "Allowed industry labels"
EVALUATE_MARKER = "professional equity analyst"
SCORE_MARKER = "how faithfully"
KEYWORD_MARKER = "Extract the key themes"
MARKET_MARKER = "Summarize the current stock market"


def make_record(report_id: str, title: Optional[str] = None, date: str = "2025-07-01", **kwargs) -> ReportRecord:
    return ReportRecord(
        id=report_id,
        title=title or f"Report {report_id}",
        date=date,
        author=kwargs.pop("author", "Analyst"),
        download_url=kwargs.pop("download_url", f"https://reports.example/{report_id}.pdf"),
        **kwargs,
    )


def evaluation_json(sentiment: str = "POSITIVE", summary: str = "Demand is recovering.") -> str:
    return json.dumps({
        "sentiment": sentiment,
        "summary": summary,
        "keyDrivers": ["Export growth"],
        "keyRisks": ["Foreign competition"],
    })


# =============================================================================
# STORAGE FIXTURES
# =============================================================================

@pytest.fixture(autouse=True)
def _reset_shutdown_flag():
    clear_shutdown()
    yield
    clear_shutdown()


@pytest.fixture
def data_dirs(tmp_path):
    dirs = {
        "catalog": tmp_path / "catalog",
        "markdown": tmp_path / "markdown",
        "summary": tmp_path / "summary",
    }
    return dirs


@pytest.fixture
def catalogs(data_dirs):
    repos = {c: CatalogRepository(c, catalog_dir=data_dirs["catalog"]) for c in ReportCategory}
    return repos


@pytest.fixture
def strategy_catalog(catalogs):
    return catalogs[ReportCategory.INVESTMENT_STRATEGY]


@pytest.fixture
def industry_catalog(catalogs):
    return catalogs[ReportCategory.INDUSTRY_ANALYSIS]


@pytest.fixture
def texts(data_dirs):
    return DerivedTextRepository(markdown_dir=data_dirs["markdown"])


@pytest.fixture
def keyword_cache(data_dirs):
    return KeywordCacheRepository(summary_dir=data_dirs["summary"])


@pytest.fixture
def evaluation_repo(data_dirs):
    return EvaluationRepository(summary_dir=data_dirs["summary"])


def add_converted(catalog: CatalogRepository, texts: DerivedTextRepository, record: ReportRecord, text: str) -> None:
    """Append a record and give it derived text."""
    catalog.upsert_if_new([record])
    catalog.mark_converted(record.id, texts.save(record.id, text))


# =============================================================================
# PIPELINE FIXTURES
# =============================================================================

@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def generator():
    """Generator that answers every prompt type with something valid."""

    def respond(prompt, attachment):
        if CHUNK_MARKER in prompt:
            return f"summary of {attachment.data.decode()}"
        if REDUCE_MARKER in prompt:
            return "merged summary"
        if CLASSIFY_MARKER in prompt:
            return "[]"
        if EVALUATE_MARKER in prompt:
            return evaluation_json()
        if SCORE_MARKER in prompt:
            return "0.8"
        if KEYWORD_MARKER in prompt:
            return json.dumps([{"icon": "📈", "label": "Rate cuts", "description": "Easing ahead", "impact": "positive"}])
        if MARKET_MARKER in prompt:
            return "- Markets are calm"
        raise AssertionError(f"unexpected prompt: {prompt[:60]}")

    return FakeTextGenerator(responder=respond)


@pytest.fixture
def converter(fetcher, generator, texts):
    return ChunkedConverter(fetcher=fetcher, generator=generator, texts=texts, map_workers=1)


@pytest.fixture
def evaluation_pipeline(industry_catalog, texts, generator, evaluation_repo):
    return EvaluationPipeline(
        catalog=industry_catalog,
        texts=texts,
        classifier=IndustryClassifier(generator),
        evaluator=IndustryEvaluator(generator),
        repository=evaluation_repo,
    )


@pytest.fixture
def orchestrator(catalogs, converter, evaluation_pipeline):
    return PipelineOrchestrator(
        catalog_for=catalogs.__getitem__,
        converter=converter,
        discovery=NullDiscovery(),
        evaluation=evaluation_pipeline,
    )


@pytest.fixture
def report_service(catalogs, texts, evaluation_repo, orchestrator, keyword_cache, generator, strategy_catalog):
    return ReportService(
        catalog_for=catalogs.__getitem__,
        texts=texts,
        evaluations=evaluation_repo,
        orchestrator=orchestrator,
        keywords=KeywordExtractor(strategy_catalog, texts, keyword_cache, generator),
        summarizer=ReportSummarizer(strategy_catalog, texts, generator),
        cache_factory=lambda: None,
    )


# =============================================================================
# FASTAPI TEST CLIENT FIXTURE
# =============================================================================

@pytest.fixture
def client(report_service):
    """TestClient wired to the fake-backed ReportService (startup hooks not run)."""
    app.dependency_overrides[get_report_service] = lambda: report_service
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
