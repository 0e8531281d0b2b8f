"""
Services module for the Report Insight Platform.
"""

from app.services.cache import get_cache, reset_cache
from app.services.document_fetcher import DocumentFetcher, get_document_fetcher
from app.services.redis_cache import RedisCache
from app.services.text_generation import TextGenerationService, get_text_generation_service


def get_report_service():
    """Lazy import to avoid circular dependency."""
    from app.core.dependencies import get_report_service as _get
    return _get()


__all__ = [
    # Core services
    "get_cache",
    "reset_cache",
    "RedisCache",

    # Pipeline collaborators
    "DocumentFetcher",
    "get_document_fetcher",
    "TextGenerationService",
    "get_text_generation_service",

    # Read API
    "get_report_service",
]
