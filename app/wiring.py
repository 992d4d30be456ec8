from __future__ import annotations

from adapters.filesystem.document_store import FileSystemDocumentStore
from adapters.layout.column_tree import ColumnTreeLayoutEngine
from adapters.measure.text_metrics import ApproximateTextMeasurer, TextMetricsConfig
from app.config import AppSettings
from domain.ports.render import RenderListener
from domain.ports.storage import DocumentStore
from domain.services.connection_router import ConnectionRouter
from domain.services.editor_session import EditorSession


def build_document_store(settings: AppSettings) -> DocumentStore:
    return FileSystemDocumentStore(settings.storage.document_path)


def build_session(
    settings: AppSettings,
    *,
    store: DocumentStore | None = None,
    listener: RenderListener | None = None,
    restore: bool | None = None,
) -> EditorSession:
    node_size = settings.layout.node_size
    interaction = settings.interaction
    session = EditorSession(
        ColumnTreeLayoutEngine(settings.layout.to_layout_config()),
        router=ConnectionRouter(settings.routing.to_router_config(node_size)),
        measurer=ApproximateTextMeasurer(TextMetricsConfig(min_size=node_size)),
        store=store if store is not None else build_document_store(settings),
        listener=listener,
        interaction_config=interaction.to_interaction_config(node_size),
        hit_test_config=interaction.to_hit_test_config(node_size),
        history_limit=settings.history.limit,
        viewport=settings.viewport.size,
        zoom_bounds=(interaction.min_zoom, interaction.max_zoom),
    )
    should_restore = settings.storage.restore_on_start if restore is None else restore
    if should_restore:
        session.restore()
    return session
