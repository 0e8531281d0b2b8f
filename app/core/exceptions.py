"""
Custom Exceptions - Report Insight Platform
app/core/exceptions.py

Exception taxonomy for the durable store and the ingestion/analysis pipeline.
"""


class RepositoryException(Exception):
    """Base exception for durable-store operations."""

    pass


class EntityNotFoundException(RepositoryException):
    """Entity not found in a store."""

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} with ID {entity_id} not found")


class StoreCorruptedException(RepositoryException):
    """A persisted document exists but cannot be decoded."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Store file {path} is unreadable: {reason}")


class ConfigurationException(Exception):
    """Missing or invalid configuration. Fatal at startup, never retried."""

    def __init__(self, message: str = "Invalid configuration"):
        self.message = message
        super().__init__(message)


class PipelineException(Exception):
    """Base exception for a single unit of pipeline work."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class DocumentFetchException(PipelineException):
    """Source document could not be downloaded or opened."""

    def __init__(self, url: str, reason: str):
        self.url = url
        super().__init__(f"Failed to fetch {url}: {reason}")


class EmptyDocumentException(PipelineException):
    """Source document has no pages. Not retried automatically."""

    def __init__(self, url: str):
        self.url = url
        super().__init__(f"Document at {url} has no pages")


class TextGenerationException(PipelineException):
    """Text generation call failed or timed out."""

    def __init__(self, message: str, model: str = ""):
        self.model = model
        super().__init__(message)


class ResponseParseException(PipelineException):
    """Structured response from the text generation service was malformed."""

    def __init__(self, message: str, raw_text: str = ""):
        self.raw_text = raw_text
        super().__init__(message)


class RunInProgressException(PipelineException):
    """Another sync or evaluation run for the same target is still running."""

    def __init__(self, run_name: str):
        self.run_name = run_name
        super().__init__(f"{run_name} is already running")
