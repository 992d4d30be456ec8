from __future__ import annotations

from typing import Protocol

from domain.models import Document


class DocumentStore(Protocol):
    def save(self, document: Document) -> None: ...

    def load(self) -> Document | None: ...
