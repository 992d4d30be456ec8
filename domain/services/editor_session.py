from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, TypeVar

from domain.errors import InvalidOperationError, MalformedDocumentError
from domain.models import Document, Point, Size, TreeLayoutPlan, ViewPan, fresh_document
from domain.ports.layout import LayoutEngine
from domain.ports.measure import TextMeasurer
from domain.ports.render import NullRenderListener, RenderListener
from domain.ports.storage import DocumentStore
from domain.services.connection_router import BezierCurve, ConnectionRouter
from domain.services.document_codec import (
    parse_document_bytes,
    serialize_document,
    serialize_document_bytes,
)
from domain.services.editor_context import ConnectionDragging, EditorContext, Notice, Selection
from domain.services.history import DEFAULT_HISTORY_LIMIT, HistoryManager
from domain.services.interaction import (
    InteractionConfig,
    InteractionController,
    KeyEvent,
    PointerEvent,
)
from domain.services.scene import HitTestConfig, Scene, build_scene
from domain.services.tree_mutations import TreeMutations

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_VIEWPORT = Size(1200, 800)
DEFAULT_ZOOM_BOUNDS = (0.1, 5.0)


class EditorSession:
    """One open mind map: document, history, gestures and collaborators.

    Every discrete change runs mutate -> measure -> layout -> route -> notify
    -> persist synchronously before the next event is processed.
    """

    def __init__(
        self,
        layout_engine: LayoutEngine,
        *,
        router: ConnectionRouter | None = None,
        measurer: TextMeasurer | None = None,
        store: DocumentStore | None = None,
        listener: RenderListener | None = None,
        interaction_config: InteractionConfig | None = None,
        hit_test_config: HitTestConfig | None = None,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        viewport: Size = DEFAULT_VIEWPORT,
        zoom_bounds: tuple[float, float] = DEFAULT_ZOOM_BOUNDS,
        document: Document | None = None,
    ) -> None:
        self.layout_engine = layout_engine
        self.router = router or ConnectionRouter()
        self.measurer = measurer
        self.store = store
        self.listener = listener or NullRenderListener()
        self.hit_test_config = hit_test_config or HitTestConfig()
        self.viewport = viewport
        self.zoom_bounds = zoom_bounds
        if document is None:
            document = fresh_document(pan=ViewPan(x=viewport.width / 2, y=viewport.height / 2))
        self.context = EditorContext(document=document, history=HistoryManager(history_limit))
        self.mutations = TreeMutations(self.context, commit=self.commit)
        self.controller = InteractionController(self, interaction_config)
        self._plan: TreeLayoutPlan | None = None
        self.relayout()

    @property
    def document(self) -> Document:
        return self.context.document

    @property
    def selection(self) -> Selection:
        return self.context.selection

    @property
    def plan(self) -> TreeLayoutPlan | None:
        return self._plan

    # Pipeline

    def relayout(self) -> TreeLayoutPlan:
        document = self.context.document
        if self.measurer is not None:
            for node in document.iter_nodes():
                size = self.measurer.measure(node)
                node.measured_width = size.width
                node.measured_height = size.height
        plan = self.layout_engine.build_plan(document)
        plan.apply(document)
        self._plan = plan
        return plan

    def commit(self) -> None:
        self.refresh_model(persist=True)

    def refresh_model(self, *, persist: bool = True) -> None:
        self.relayout()
        self.listener.on_model_changed()
        if persist:
            self.persist()

    def refresh_view(self) -> None:
        self.listener.on_view_changed()

    def persist(self) -> None:
        if self.store is None:
            return
        try:
            self.store.save(self.context.document)
        except OSError:
            logger.exception("Failed to persist document")

    def scene(self) -> Scene:
        return build_scene(
            self.context.document,
            self._plan,
            self.router.route_document(self.context.document),
            self.context.selection,
            editing_node_id=self.context.editing_node_id,
            drag_preview=self._drag_preview(),
            config=self.hit_test_config,
        )

    def _drag_preview(self) -> BezierCurve | None:
        mode = self.context.mode
        if not isinstance(mode, ConnectionDragging):
            return None
        source = self.context.document.find_node(mode.source_id)
        if source is None:
            return None
        return self.router.preview(source, mode.handle, mode.pointer)

    def render_state(self) -> dict[str, Any]:
        document = self.context.document
        state = self.scene().to_dict()
        state["pan"] = {"x": document.pan.x, "y": document.pan.y}
        state["scale"] = document.scale
        state["canUndo"] = self.context.history.can_undo
        state["canRedo"] = self.context.history.can_redo
        return state

    # Operations

    def perform(self, operation: Callable[..., T], *args: Any, **kwargs: Any) -> T | None:
        """Run a mutation, turning a rejected edit into an error notice."""
        try:
            return operation(*args, **kwargs)
        except InvalidOperationError as exc:
            logger.info("Rejected %s: %s", getattr(operation, "__name__", operation), exc)
            self.context.notify(str(exc), "error")
            return None

    def undo(self) -> bool:
        if not self.context.history.undo(self.context.document):
            return False
        self.context.editing_node_id = None
        self.context.notify("Undo")
        self.commit()
        return True

    def redo(self) -> bool:
        if not self.context.history.redo(self.context.document):
            return False
        self.context.editing_node_id = None
        self.context.notify("Redo")
        self.commit()
        return True

    def begin_editing(self, node_id: str) -> bool:
        if self.context.document.find_node(node_id) is None:
            return False
        self.context.selection.node_id = node_id
        self.context.editing_node_id = node_id
        self.refresh_view()
        return True

    def finish_editing(self, text: str) -> bool:
        node_id = self.context.editing_node_id
        if node_id is None:
            return False
        self.context.editing_node_id = None
        if not self.mutations.update_node_text(node_id, text):
            self.refresh_view()
        return True

    # View

    def to_world(self, screen: Point) -> Point:
        document = self.context.document
        return Point(
            (screen.x - document.pan.x) / document.scale,
            (screen.y - document.pan.y) / document.scale,
        )

    def zoom(self, factor: float) -> bool:
        document = self.context.document
        new_scale = document.scale * factor
        low, high = self.zoom_bounds
        if not low < new_scale < high:
            return False
        document.scale = new_scale
        self.refresh_view()
        self.persist()
        return True

    def center_view(self) -> None:
        document = self.context.document
        document.pan = ViewPan(x=self.viewport.width / 4, y=self.viewport.height / 2)
        document.scale = 1.0
        self.refresh_view()
        self.persist()

    # Events

    def handle_pointer(self, event: PointerEvent) -> None:
        self.controller.handle_pointer(event)

    def handle_key(self, event: KeyEvent) -> bool:
        return self.controller.handle_key(event)

    def handle_wheel(self, delta_y: float) -> bool:
        return self.controller.handle_wheel(delta_y)

    def drain_notices(self) -> list[Notice]:
        return self.context.drain_notices()

    # Load / save

    def restore(self, *, strict: bool = False) -> bool:
        """Replace the document with the stored one, if any.

        A malformed stored document is logged and skipped unless ``strict``.
        """
        if self.store is None:
            return False
        try:
            document = self.store.load()
        except MalformedDocumentError as exc:
            if strict:
                raise
            logger.warning("Stored document ignored: %s", exc)
            return False
        if document is None:
            return False
        self._replace_document(document)
        self.relayout()
        self.listener.on_model_changed()
        logger.info("Restored document with %d nodes", len(document.node_ids()))
        return True

    def import_document(self, raw: bytes | str) -> bool:
        current = self.context.document
        try:
            document = parse_document_bytes(
                raw, current_pan=current.pan.model_copy(), current_scale=current.scale
            )
        except MalformedDocumentError as exc:
            logger.warning("Import failed: %s", exc)
            self.context.notify(f"Error loading file: {exc}", "error")
            return False
        self._replace_document(document)
        self.context.notify("Map loaded.")
        self.commit()
        return True

    def export_document(self) -> bytes:
        return serialize_document_bytes(self.context.document)

    def export_payload(self) -> dict[str, Any]:
        return serialize_document(self.context.document)

    def _replace_document(self, document: Document) -> None:
        self.context.document = document
        self.context.history.clear()
        self.context.selection = Selection()
        self.context.editing_node_id = None
        self.context.reset_mode()
