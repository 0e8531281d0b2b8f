"""
Repositories Package - Report Insight Platform
app/repositories/__init__.py

File-backed stores for the catalog, derived texts, keyword cache and the
industry evaluation artifact.
"""

from app.repositories.base import JsonDocumentStore, atomic_write_text
from app.repositories.catalog_repository import CatalogRepository
from app.repositories.derived_text_repository import DerivedTextRepository
from app.repositories.evaluation_repository import EvaluationRepository
from app.repositories.keyword_cache_repository import CacheLookup, KeywordCacheRepository

__all__ = [
    "JsonDocumentStore",
    "atomic_write_text",
    "CatalogRepository",
    "DerivedTextRepository",
    "EvaluationRepository",
    "CacheLookup",
    "KeywordCacheRepository",
]
