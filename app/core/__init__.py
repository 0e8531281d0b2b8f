"""
Core Package - Report Insight Platform
app/core/__init__.py

Core infrastructure: exceptions, logging setup.
Dependency getters live in app.core.dependencies and are imported from there
directly, since they pull in the whole pipeline.
"""

from app.core.exceptions import (
    ConfigurationException,
    DocumentFetchException,
    EmptyDocumentException,
    EntityNotFoundException,
    PipelineException,
    RepositoryException,
    ResponseParseException,
    RunInProgressException,
    StoreCorruptedException,
    TextGenerationException,
)
from app.core.logging_config import configure_logging

__all__ = [
    # Exceptions
    "ConfigurationException",
    "DocumentFetchException",
    "EmptyDocumentException",
    "EntityNotFoundException",
    "PipelineException",
    "RepositoryException",
    "ResponseParseException",
    "RunInProgressException",
    "StoreCorruptedException",
    "TextGenerationException",
    # Logging
    "configure_logging",
]
