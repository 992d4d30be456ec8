from __future__ import annotations

from collections import deque
from dataclasses import dataclass

from domain.models import Document, Image, Node

DEFAULT_HISTORY_LIMIT = 50


@dataclass(frozen=True)
class Snapshot:
    root: Node
    images: list[Image]
    column_labels: dict[int, str]

    @classmethod
    def capture(cls, document: Document) -> Snapshot:
        return cls(
            root=document.root.model_copy(deep=True),
            images=[image.model_copy(deep=True) for image in document.images],
            column_labels=dict(document.column_labels),
        )

    def restore(self, document: Document) -> None:
        document.root = self.root
        document.images = self.images
        document.column_labels = self.column_labels


class HistoryManager:
    """Bounded undo/redo over document snapshots.

    Pan and scale are view state and never enter a snapshot. When the undo
    stack is full the oldest entry is dropped.
    """

    def __init__(self, limit: int = DEFAULT_HISTORY_LIMIT) -> None:
        self.limit = limit
        self._undo: deque[Snapshot] = deque(maxlen=limit)
        self._redo: list[Snapshot] = []

    @property
    def can_undo(self) -> bool:
        return bool(self._undo)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo)

    @property
    def undo_depth(self) -> int:
        return len(self._undo)

    @property
    def redo_depth(self) -> int:
        return len(self._redo)

    def record(self, document: Document) -> None:
        self._undo.append(Snapshot.capture(document))
        self._redo.clear()

    def undo(self, document: Document) -> bool:
        if not self._undo:
            return False
        self._redo.append(Snapshot.capture(document))
        self._undo.pop().restore(document)
        return True

    def redo(self, document: Document) -> bool:
        if not self._redo:
            return False
        self._undo.append(Snapshot.capture(document))
        self._redo.pop().restore(document)
        return True

    def clear(self) -> None:
        self._undo.clear()
        self._redo.clear()
