from __future__ import annotations

import logging
from pathlib import Path

from filelock import FileLock

from adapters.filesystem.json_utils import write_json_atomic
from domain.models import Document
from domain.ports.storage import DocumentStore
from domain.services.document_codec import parse_document_bytes, serialize_document

logger = logging.getLogger(__name__)


class FileSystemDocumentStore(DocumentStore):
    """Single JSON document on disk, written atomically under a file lock."""

    def __init__(self, path: Path) -> None:
        self.path = path

    @property
    def lock_path(self) -> Path:
        return self.path.with_suffix(f"{self.path.suffix}.lock")

    def save(self, document: Document) -> None:
        with FileLock(str(self.lock_path)):
            write_json_atomic(self.path, serialize_document(document))
        logger.debug("Saved document to %s", self.path)

    def load(self) -> Document | None:
        if not self.path.exists():
            return None
        with FileLock(str(self.lock_path)):
            raw = self.path.read_bytes()
        return parse_document_bytes(raw)

    def clear(self) -> bool:
        if not self.path.exists():
            return False
        with FileLock(str(self.lock_path)):
            self.path.unlink()
        return True
