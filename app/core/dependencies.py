"""
Dependencies - Report Insight Platform
app/core/dependencies.py

FastAPI dependency injection for repositories and pipeline services.
Every getter is cached so one process shares one instance (and therefore
one store lock) per durable document.
"""

from functools import lru_cache

from app.models.enumerations import ReportCategory
from app.pipelines.classifier import IndustryClassifier
from app.pipelines.converter import ChunkedConverter
from app.pipelines.discovery import create_discovery
from app.pipelines.evaluation_state import EvaluationPipeline
from app.pipelines.evaluator import IndustryEvaluator
from app.pipelines.keywords import KeywordExtractor
from app.pipelines.runner import PipelineOrchestrator
from app.pipelines.summarizer import ReportSummarizer
from app.repositories.catalog_repository import CatalogRepository
from app.repositories.derived_text_repository import DerivedTextRepository
from app.repositories.evaluation_repository import EvaluationRepository
from app.repositories.keyword_cache_repository import KeywordCacheRepository
from app.services.document_fetcher import get_document_fetcher
from app.services.report_service import ReportService
from app.services.text_generation import get_text_generation_service


@lru_cache()
def get_catalog_repository(category: ReportCategory) -> CatalogRepository:
    """Get cached CatalogRepository instance for a category."""
    return CatalogRepository(category)


@lru_cache()
def get_derived_text_repository() -> DerivedTextRepository:
    """Get cached DerivedTextRepository instance."""
    return DerivedTextRepository()


@lru_cache()
def get_keyword_cache_repository() -> KeywordCacheRepository:
    """Get cached KeywordCacheRepository instance."""
    return KeywordCacheRepository()


@lru_cache()
def get_evaluation_repository() -> EvaluationRepository:
    """Get cached EvaluationRepository instance."""
    return EvaluationRepository()


@lru_cache()
def get_pipeline_orchestrator() -> PipelineOrchestrator:
    """Get cached PipelineOrchestrator wired to the configured services."""
    generator = get_text_generation_service()
    converter = ChunkedConverter(
        fetcher=get_document_fetcher(),
        generator=generator,
        texts=get_derived_text_repository(),
    )
    evaluation = EvaluationPipeline(
        catalog=get_catalog_repository(ReportCategory.INDUSTRY_ANALYSIS),
        texts=get_derived_text_repository(),
        classifier=IndustryClassifier(generator),
        evaluator=IndustryEvaluator(generator),
        repository=get_evaluation_repository(),
    )
    return PipelineOrchestrator(
        catalog_for=get_catalog_repository,
        converter=converter,
        discovery=create_discovery(),
        evaluation=evaluation,
    )


@lru_cache()
def get_report_service() -> ReportService:
    """Get cached ReportService instance."""
    generator = get_text_generation_service()
    strategy = get_catalog_repository(ReportCategory.INVESTMENT_STRATEGY)
    return ReportService(
        catalog_for=get_catalog_repository,
        texts=get_derived_text_repository(),
        evaluations=get_evaluation_repository(),
        orchestrator=get_pipeline_orchestrator(),
        keywords=KeywordExtractor(
            catalog=strategy,
            texts=get_derived_text_repository(),
            cache=get_keyword_cache_repository(),
            generator=generator,
        ),
        summarizer=ReportSummarizer(strategy, get_derived_text_repository(), generator),
    )
