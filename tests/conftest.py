from __future__ import annotations

import os
from collections.abc import Callable, Generator
from pathlib import Path

import pytest

from adapters.layout.column_tree import ColumnTreeLayoutEngine
from app.config import AppSettings, StorageSettings
from domain.models import Document, fresh_document
from domain.services.editor_context import EditorContext
from domain.services.editor_session import EditorSession
from domain.services.history import HistoryManager
from domain.services.tree_mutations import TreeMutations
from tests.helpers.mindmap_fixtures import InMemoryDocumentStore, RecordingListener


def _clear_mindmap_env() -> None:
    for key in list(os.environ):
        if key.startswith("MINDMAP_"):
            os.environ.pop(key, None)


_clear_mindmap_env()


@pytest.fixture(autouse=True)
def clear_mindmap_env() -> Generator[None, None, None]:
    _clear_mindmap_env()
    yield
    _clear_mindmap_env()


@pytest.fixture
def context_factory() -> Callable[..., EditorContext]:
    def _factory(document: Document | None = None, limit: int = 50) -> EditorContext:
        return EditorContext(
            document=document or fresh_document(),
            history=HistoryManager(limit),
        )

    return _factory


@pytest.fixture
def mutations_factory(
    context_factory: Callable[..., EditorContext],
) -> Callable[..., TreeMutations]:
    def _factory(document: Document | None = None) -> TreeMutations:
        return TreeMutations(context_factory(document))

    return _factory


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def listener() -> RecordingListener:
    return RecordingListener()


@pytest.fixture
def session_factory(
    store: InMemoryDocumentStore,
    listener: RecordingListener,
) -> Callable[..., EditorSession]:
    def _factory(document: Document | None = None, **overrides: object) -> EditorSession:
        options: dict[str, object] = {"store": store, "listener": listener}
        options.update(overrides)
        return EditorSession(ColumnTreeLayoutEngine(), document=document, **options)  # type: ignore[arg-type]

    return _factory


@pytest.fixture
def session(session_factory: Callable[..., EditorSession]) -> EditorSession:
    return session_factory()


@pytest.fixture
def app_settings(tmp_path: Path) -> AppSettings:
    return AppSettings(storage=StorageSettings(document_path=tmp_path / "mindmap.json"))


@pytest.fixture
def app_settings_factory(tmp_path: Path) -> Callable[..., AppSettings]:
    def _factory(**overrides: object) -> AppSettings:
        settings = AppSettings(storage=StorageSettings(document_path=tmp_path / "mindmap.json"))
        return settings.model_copy(update=overrides)

    return _factory
