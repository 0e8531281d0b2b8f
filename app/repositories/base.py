"""
Base Repository - Report Insight Platform
app/repositories/base.py

File-backed JSON document store shared by the catalog, keyword cache and
evaluation repositories.

Every document is loaded lazily on first access and rewritten in full after
each mutation using write-temp-then-rename, so a reader never observes a
half-written file. A per-store lock serializes read-modify-write cycles
inside one process; the pipeline itself is designed to run as a single
sequential worker per invocation.
"""

import json
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Generic, Generator, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from app.core.exceptions import StoreCorruptedException

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


def atomic_write_text(path: Path, content: str) -> None:
    """Write text to path via a temp file in the same directory and os.replace."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(content)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


class JsonDocumentStore(Generic[T]):
    """
    One pydantic document persisted as a JSON file.

    Args:
        path: Location of the JSON file
        model: Pydantic model the file decodes to
        default_factory: Builds the document when the file does not exist yet
    """

    def __init__(self, path: Path, model: Type[T], default_factory: Callable[[], T]):
        self.path = Path(path)
        self.model = model
        self._default_factory = default_factory
        self._lock = threading.RLock()
        self._document: Optional[T] = None

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> T:
        """Return the document, reading it from disk on first access."""
        with self._lock:
            if self._document is None:
                self._document = self._read()
            return self._document

    def save(self, document: T) -> None:
        """Replace the persisted document wholesale."""
        with self._lock:
            atomic_write_text(self.path, document.model_dump_json(indent=2))
            self._document = document
            logger.debug(f"Saved {self.path}")

    @contextmanager
    def transaction(self) -> Generator[T, None, None]:
        """
        Context manager for a read-modify-write cycle.

        The yielded document is a copy; it is persisted only if the block
        exits without raising, otherwise the stored document is untouched.
        """
        with self._lock:
            working = self.load().model_copy(deep=True)
            yield working
            self.save(working)

    def reload(self) -> T:
        """Drop the in-memory copy and read the file again."""
        with self._lock:
            self._document = None
            return self.load()

    def _read(self) -> T:
        if not self.path.exists():
            return self._default_factory()
        try:
            raw = self.path.read_text(encoding="utf-8")
            return self.model.model_validate(json.loads(raw))
        except (json.JSONDecodeError, ValidationError, UnicodeDecodeError) as e:
            raise StoreCorruptedException(str(self.path), str(e)) from e
