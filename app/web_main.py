from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, cast

from fastapi import Depends, FastAPI, File, HTTPException, Request, UploadFile
from fastapi.responses import ORJSONResponse, Response
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.config import AppSettings, load_settings
from app.wiring import build_session
from domain.errors import InvalidOperationError
from domain.models import DEFAULT_NODE_TEXT, ArchPreference, Point
from domain.ports.storage import DocumentStore
from domain.services.editor_session import EditorSession
from domain.services.interaction import KeyEvent, PointerEvent, PointerKind

logger = logging.getLogger(__name__)


class _ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PointPayload(_ApiModel):
    x: float
    y: float

    def to_point(self) -> Point:
        return Point(self.x, self.y)


class AddNodeRequest(_ApiModel):
    parent_id: str
    text: str = DEFAULT_NODE_TEXT


class UpdateNodeRequest(_ApiModel):
    text: str | None = None
    color: str | None = None
    clear_color: bool = False


class MoveNodeRequest(_ApiModel):
    parent_id: str


class ReorderNodeRequest(_ApiModel):
    index: int = Field(..., ge=0)


class RelationRequest(_ApiModel):
    source_id: str
    target_id: str
    arch: ArchPreference = "auto"


class ConnectionRequest(_ApiModel):
    source_id: str
    target_id: str
    is_relation: bool


class ConnectionStyleRequest(ConnectionRequest):
    label: str | None = None
    color: str | None = None
    width: float | None = Field(None, gt=0)
    dash_array: str | None = None


class ColumnRequest(_ApiModel):
    column: int = Field(..., ge=0)


class ColumnLabelRequest(_ApiModel):
    label: str


class ImageRequest(_ApiModel):
    x: float
    y: float


class ImageSourceRequest(_ApiModel):
    src: str | None


class ZoomRequest(_ApiModel):
    factor: float = Field(..., gt=0)


class PointerEventRequest(_ApiModel):
    kind: PointerKind
    screen: PointPayload
    world: PointPayload | None = None
    shift: bool = False
    button: int = 0


class KeyEventRequest(_ApiModel):
    key: str
    alt: bool = False
    ctrl: bool = False
    meta: bool = False


class WheelEventRequest(_ApiModel):
    delta_y: float


@dataclass(frozen=True)
class EditorWebContext:
    settings: AppSettings
    session: EditorSession


def create_app(
    settings: AppSettings | None = None,
    *,
    store: DocumentStore | None = None,
) -> FastAPI:
    settings = settings or load_settings()
    app = FastAPI(title=settings.title)
    session = build_session(settings, store=store)
    app.state.context = EditorWebContext(settings=settings, session=session)

    # Handlers are ``async`` so every edit runs on the event loop, one at a time.

    @app.get("/api/document")
    async def api_document(context: EditorWebContext = Depends(get_context)) -> ORJSONResponse:
        return ORJSONResponse(context.session.export_payload())

    @app.get("/api/document/export")
    async def api_export(context: EditorWebContext = Depends(get_context)) -> Response:
        headers = {"Content-Disposition": 'attachment; filename="mindmap.json"'}
        return Response(
            content=context.session.export_document(),
            media_type="application/json",
            headers=headers,
        )

    @app.put("/api/document")
    async def api_replace_document(
        request: Request, context: EditorWebContext = Depends(get_context)
    ) -> ORJSONResponse:
        return import_or_400(context.session, await request.body())

    @app.post("/api/document/import")
    async def api_import_document(
        file: UploadFile = File(...),
        context: EditorWebContext = Depends(get_context),
    ) -> ORJSONResponse:
        raw_bytes = await file.read()
        if not raw_bytes:
            raise HTTPException(status_code=400, detail="Empty upload")
        return import_or_400(context.session, raw_bytes)

    @app.post("/api/document/clear")
    async def api_clear(context: EditorWebContext = Depends(get_context)) -> ORJSONResponse:
        context.session.mutations.clear_all()
        return result(context.session, rootId=context.session.document.root.id)

    @app.get("/api/scene")
    async def api_scene(context: EditorWebContext = Depends(get_context)) -> ORJSONResponse:
        return ORJSONResponse(context.session.render_state())

    @app.get("/api/notices")
    async def api_notices(context: EditorWebContext = Depends(get_context)) -> ORJSONResponse:
        return result(context.session)

    # Nodes

    @app.post("/api/nodes", status_code=201)
    async def api_add_node(
        payload: AddNodeRequest, context: EditorWebContext = Depends(get_context)
    ) -> ORJSONResponse:
        session = context.session
        node = session.mutations.add_node(payload.parent_id, payload.text)
        if node is None:
            raise HTTPException(status_code=404, detail="Parent node not found")
        return result(session, status_code=201, id=node.id, column=node.column)

    @app.post("/api/nodes/{node_id}/sibling", status_code=201)
    async def api_add_sibling(
        node_id: str, context: EditorWebContext = Depends(get_context)
    ) -> ORJSONResponse:
        session = context.session
        require_node(session, node_id)
        if node_id == session.document.root.id:
            raise HTTPException(status_code=409, detail="Root cannot have siblings")
        node = session.mutations.add_sibling(node_id)
        if node is None:
            raise HTTPException(status_code=404, detail="Node not found")
        return result(session, status_code=201, id=node.id, column=node.column)

    @app.patch("/api/nodes/{node_id}")
    async def api_update_node(
        node_id: str,
        payload: UpdateNodeRequest,
        context: EditorWebContext = Depends(get_context),
    ) -> ORJSONResponse:
        session = context.session
        require_node(session, node_id)
        mutations = session.mutations
        with mutations.batch():
            if payload.text is not None:
                mutations.update_node_text(node_id, payload.text)
            if payload.color is not None or payload.clear_color:
                mutations.set_node_color(node_id, None if payload.clear_color else payload.color)
        return result(session, id=node_id)

    @app.delete("/api/nodes/{node_id}")
    async def api_delete_node(
        node_id: str, context: EditorWebContext = Depends(get_context)
    ) -> ORJSONResponse:
        session = context.session
        try:
            deleted = session.mutations.delete_node(node_id)
        except InvalidOperationError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        if not deleted:
            raise HTTPException(status_code=404, detail="Node not found")
        return result(session)

    @app.post("/api/nodes/{node_id}/move")
    async def api_move_node(
        node_id: str,
        payload: MoveNodeRequest,
        context: EditorWebContext = Depends(get_context),
    ) -> ORJSONResponse:
        session = context.session
        try:
            moved = session.mutations.move_node_to(node_id, payload.parent_id)
        except InvalidOperationError as exc:
            logger.info("Rejected move of %s: %s", node_id, exc)
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        if not moved:
            raise HTTPException(status_code=404, detail="Node not found")
        return result(session, id=node_id)

    @app.post("/api/nodes/{node_id}/reorder")
    async def api_reorder_node(
        node_id: str,
        payload: ReorderNodeRequest,
        context: EditorWebContext = Depends(get_context),
    ) -> ORJSONResponse:
        session = context.session
        require_node(session, node_id)
        changed = session.mutations.reorder_sibling(node_id, payload.index)
        return result(session, changed=changed)

    @app.post("/api/nodes/{node_id}/up")
    async def api_move_up(
        node_id: str, context: EditorWebContext = Depends(get_context)
    ) -> ORJSONResponse:
        session = context.session
        require_node(session, node_id)
        return result(session, changed=session.mutations.move_node_up(node_id))

    @app.post("/api/nodes/{node_id}/down")
    async def api_move_down(
        node_id: str, context: EditorWebContext = Depends(get_context)
    ) -> ORJSONResponse:
        session = context.session
        require_node(session, node_id)
        return result(session, changed=session.mutations.move_node_down(node_id))

    # Relations and connections

    @app.post("/api/relations/toggle")
    async def api_toggle_relation(
        payload: RelationRequest, context: EditorWebContext = Depends(get_context)
    ) -> ORJSONResponse:
        session = context.session
        require_node(session, payload.source_id)
        require_node(session, payload.target_id)
        added = session.mutations.toggle_relation(
            payload.source_id, payload.target_id, payload.arch
        )
        return result(session, added=added)

    @app.delete("/api/relations/{source_id}/{target_id}")
    async def api_delete_relation(
        source_id: str,
        target_id: str,
        context: EditorWebContext = Depends(get_context),
    ) -> ORJSONResponse:
        session = context.session
        if not session.mutations.delete_connection(source_id, target_id):
            raise HTTPException(status_code=404, detail="Relation not found")
        return result(session)

    @app.patch("/api/connections")
    async def api_style_connection(
        payload: ConnectionStyleRequest, context: EditorWebContext = Depends(get_context)
    ) -> ORJSONResponse:
        session = context.session
        require_connection(session, payload)
        mutations = session.mutations
        key = (payload.source_id, payload.target_id, payload.is_relation)
        fields = payload.model_fields_set
        with mutations.batch():
            if "label" in fields:
                mutations.update_connection_label(*key, payload.label or "")
            if "color" in fields:
                mutations.update_connection_color(*key, payload.color)
            if "width" in fields:
                mutations.update_connection_width(*key, payload.width)
            if "dash_array" in fields:
                mutations.update_connection_style(*key, payload.dash_array)
        return result(session)

    @app.post("/api/connections/split", status_code=201)
    async def api_split_connection(
        payload: ConnectionRequest, context: EditorWebContext = Depends(get_context)
    ) -> ORJSONResponse:
        session = context.session
        require_connection(session, payload)
        node = session.mutations.insert_intermediate_node(
            payload.source_id, payload.target_id, payload.is_relation
        )
        if node is None:
            raise HTTPException(status_code=404, detail="Connection not found")
        return result(session, status_code=201, id=node.id, column=node.column)

    # Generations

    @app.post("/api/columns/insert")
    async def api_insert_generation(
        payload: ColumnRequest, context: EditorWebContext = Depends(get_context)
    ) -> ORJSONResponse:
        context.session.mutations.insert_generation(payload.column)
        return result(context.session)

    @app.put("/api/columns/{column}/label")
    async def api_column_label(
        column: int,
        payload: ColumnLabelRequest,
        context: EditorWebContext = Depends(get_context),
    ) -> ORJSONResponse:
        if column < 0:
            raise HTTPException(status_code=400, detail="Column must be non-negative")
        context.session.mutations.set_column_label(column, payload.label)
        return result(context.session, label=context.session.document.column_label(column))

    # Images

    @app.post("/api/images", status_code=201)
    async def api_add_image(
        payload: ImageRequest, context: EditorWebContext = Depends(get_context)
    ) -> ORJSONResponse:
        image = context.session.mutations.add_image(payload.x, payload.y)
        return result(context.session, status_code=201, id=image.id)

    @app.put("/api/images/{image_id}/src")
    async def api_image_source(
        image_id: str,
        payload: ImageSourceRequest,
        context: EditorWebContext = Depends(get_context),
    ) -> ORJSONResponse:
        if not context.session.mutations.set_image_source(image_id, payload.src):
            raise HTTPException(status_code=404, detail="Image not found")
        return result(context.session)

    @app.delete("/api/images/{image_id}")
    async def api_delete_image(
        image_id: str, context: EditorWebContext = Depends(get_context)
    ) -> ORJSONResponse:
        if not context.session.mutations.delete_image(image_id):
            raise HTTPException(status_code=404, detail="Image not found")
        return result(context.session)

    # History and view

    @app.post("/api/history/undo")
    async def api_undo(context: EditorWebContext = Depends(get_context)) -> ORJSONResponse:
        return result(context.session, changed=context.session.undo())

    @app.post("/api/history/redo")
    async def api_redo(context: EditorWebContext = Depends(get_context)) -> ORJSONResponse:
        return result(context.session, changed=context.session.redo())

    @app.post("/api/view/zoom")
    async def api_zoom(
        payload: ZoomRequest, context: EditorWebContext = Depends(get_context)
    ) -> ORJSONResponse:
        session = context.session
        changed = session.zoom(payload.factor)
        return result(session, changed=changed, scale=session.document.scale)

    @app.post("/api/view/center")
    async def api_center(context: EditorWebContext = Depends(get_context)) -> ORJSONResponse:
        session = context.session
        session.center_view()
        pan = session.document.pan
        return result(session, pan={"x": pan.x, "y": pan.y}, scale=session.document.scale)

    # Raw input

    @app.post("/api/events/pointer")
    async def api_pointer_event(
        payload: PointerEventRequest, context: EditorWebContext = Depends(get_context)
    ) -> ORJSONResponse:
        session = context.session
        screen = payload.screen.to_point()
        world = payload.world.to_point() if payload.world else session.to_world(screen)
        session.handle_pointer(
            PointerEvent(
                kind=payload.kind,
                screen=screen,
                world=world,
                shift=payload.shift,
                button=payload.button,
            )
        )
        return result(session, mode=type(session.context.mode).__name__)

    @app.post("/api/events/key")
    async def api_key_event(
        payload: KeyEventRequest, context: EditorWebContext = Depends(get_context)
    ) -> ORJSONResponse:
        session = context.session
        handled = session.handle_key(
            KeyEvent(key=payload.key, alt=payload.alt, ctrl=payload.ctrl, meta=payload.meta)
        )
        return result(session, handled=handled)

    @app.post("/api/events/wheel")
    async def api_wheel_event(
        payload: WheelEventRequest, context: EditorWebContext = Depends(get_context)
    ) -> ORJSONResponse:
        session = context.session
        changed = session.handle_wheel(payload.delta_y)
        return result(session, changed=changed, scale=session.document.scale)

    return app


def get_context(request: Request) -> EditorWebContext:
    return cast(EditorWebContext, request.app.state.context)


def require_node(session: EditorSession, node_id: str) -> None:
    if session.document.find_node(node_id) is None:
        raise HTTPException(status_code=404, detail="Node not found")


def require_connection(session: EditorSession, payload: ConnectionRequest) -> None:
    routed = session.router.route_between(
        session.document, payload.source_id, payload.target_id, payload.is_relation
    )
    if routed is None:
        raise HTTPException(status_code=404, detail="Connection not found")


def import_or_400(session: EditorSession, raw_bytes: bytes) -> ORJSONResponse:
    if not session.import_document(raw_bytes):
        notices = session.drain_notices()
        detail = notices[-1].message if notices else "Invalid document"
        raise HTTPException(status_code=400, detail=detail)
    return result(session, rootId=session.document.root.id)


def result(session: EditorSession, *, status_code: int = 200, **extra: Any) -> ORJSONResponse:
    history = session.context.history
    payload: dict[str, Any] = {
        "status": "ok",
        "notices": [
            {"message": notice.message, "level": notice.level}
            for notice in session.drain_notices()
        ],
        "canUndo": history.can_undo,
        "canRedo": history.can_redo,
    }
    payload.update(extra)
    return ORJSONResponse(payload, status_code=status_code)


def create_default_app() -> FastAPI:
    return create_app(load_settings())
