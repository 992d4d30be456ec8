from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Literal

from domain.models import Document, Node, Point, Size, TreeLayoutPlan
from domain.services.connection_router import BezierCurve, RoutedConnection
from domain.services.editor_context import ConnectionRef, HandleType, ResizeAxis, Selection

HitKind = Literal[
    "background",
    "node",
    "node_handle",
    "node_resize",
    "connection_handle",
    "image",
    "image_resize",
]

COLUMN_LABEL_RISE = 60.0


@dataclass(frozen=True)
class HitTestConfig:
    default_node_size: Size = Size(150, 40)
    handle_radius: float = 8.0
    handle_offset: float = 6.0
    resize_grip_radius: float = 6.0
    image_grip_radius: float = 8.0


@dataclass(frozen=True)
class Hit:
    kind: HitKind
    node_id: str | None = None
    handle: HandleType | None = None
    axis: ResizeAxis | None = None
    connection: ConnectionRef | None = None
    image_id: str | None = None


@dataclass(frozen=True)
class NodeBox:
    node_id: str
    text: str
    column: int
    x: float
    y: float
    width: float
    height: float
    parent_id: str | None
    color: str | None = None

    @property
    def is_root(self) -> bool:
        return self.parent_id is None

    def contains(self, point: Point) -> bool:
        return (
            self.x <= point.x <= self.x + self.width
            and self.y - self.height / 2 <= point.y <= self.y + self.height / 2
        )


@dataclass(frozen=True)
class ImageBox:
    image_id: str
    x: float
    y: float
    width: float
    height: float
    has_source: bool

    def contains(self, point: Point) -> bool:
        return self.x <= point.x <= self.x + self.width and self.y <= point.y <= self.y + self.height


@dataclass(frozen=True)
class ColumnGuide:
    column: int
    x: float
    label: str
    label_y: float


def _within(point: Point, center: Point, radius: float) -> bool:
    return math.hypot(point.x - center.x, point.y - center.y) <= radius


@dataclass(frozen=True)
class Scene:
    """Laid-out, routed view of a document in paint order (bottom first)."""

    images: list[ImageBox]
    connections: list[RoutedConnection]
    nodes: list[NodeBox]
    column_guides: list[ColumnGuide]
    selection: Selection
    editing_node_id: str | None = None
    drag_preview: BezierCurve | None = None
    config: HitTestConfig = field(default_factory=HitTestConfig)

    def node_box(self, node_id: str | None) -> NodeBox | None:
        for box in self.nodes:
            if box.node_id == node_id:
                return box
        return None

    def connection(self, ref: ConnectionRef) -> RoutedConnection | None:
        for routed in self.connections:
            if (
                routed.source_id == ref.source_id
                and routed.target_id == ref.target_id
                and routed.is_relation == ref.is_relation
            ):
                return routed
        return None

    def _is_selected(self, routed: RoutedConnection) -> bool:
        return _matches(self.selection, routed)

    def handle_points(self, box: NodeBox) -> dict[HandleType, Point]:
        offset = self.config.handle_offset
        points: dict[HandleType, Point] = {"out": Point(box.x + box.width + offset, box.y)}
        if not box.is_root:
            points["in"] = Point(box.x - offset, box.y)
        return points

    def resize_grips(self, box: NodeBox) -> dict[ResizeAxis, Point]:
        bottom = box.y + box.height / 2
        return {
            "v": Point(box.x + box.width / 2, bottom),
            "h": Point(box.x + box.width, bottom),
        }

    def node_at(self, point: Point, exclude: str | None = None) -> NodeBox | None:
        for box in reversed(self.nodes):
            if box.node_id != exclude and box.contains(point):
                return box
        return None

    def hit(self, point: Point) -> Hit:
        cfg = self.config
        foreground = [routed for routed in self.connections if self._is_selected(routed)]
        background = [routed for routed in self.connections if not self._is_selected(routed)]

        for routed in reversed(foreground):
            if _within(point, routed.handle, cfg.handle_radius):
                return self._connection_hit(routed)

        for box in reversed(self.nodes):
            if box.node_id == self.editing_node_id:
                for axis, grip in self.resize_grips(box).items():
                    if _within(point, grip, cfg.resize_grip_radius):
                        return Hit(kind="node_resize", node_id=box.node_id, axis=axis)
            for handle, center in self.handle_points(box).items():
                if _within(point, center, cfg.handle_radius):
                    return Hit(kind="node_handle", node_id=box.node_id, handle=handle)
            if box.contains(point):
                return Hit(kind="node", node_id=box.node_id)

        for routed in reversed(background):
            if _within(point, routed.handle, cfg.handle_radius):
                return self._connection_hit(routed)

        for image in reversed(self.images):
            if image.image_id == self.selection.image_id:
                corner = Point(image.x + image.width, image.y + image.height)
                if _within(point, corner, cfg.image_grip_radius):
                    return Hit(kind="image_resize", image_id=image.image_id)
            if image.contains(point):
                return Hit(kind="image", image_id=image.image_id)

        return Hit(kind="background")

    def _connection_hit(self, routed: RoutedConnection) -> Hit:
        return Hit(
            kind="connection_handle",
            connection=ConnectionRef(routed.source_id, routed.target_id, routed.is_relation),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "images": [
                {
                    "id": image.image_id,
                    "x": image.x,
                    "y": image.y,
                    "width": image.width,
                    "height": image.height,
                    "hasSource": image.has_source,
                    "selected": image.image_id == self.selection.image_id,
                }
                for image in self.images
            ],
            "connections": [
                {
                    "source": routed.source_id,
                    "target": routed.target_id,
                    "isRelation": routed.is_relation,
                    "kind": routed.kind,
                    "path": routed.path,
                    "handle": {"x": routed.handle.x, "y": routed.handle.y},
                    "label": routed.style.label,
                    "color": routed.style.color,
                    "width": routed.style.width,
                    "dashArray": routed.style.dash_array,
                    "selected": self._is_selected(routed),
                }
                for routed in self.connections
            ],
            "nodes": [
                {
                    "id": box.node_id,
                    "text": box.text,
                    "column": box.column,
                    "x": box.x,
                    "y": box.y,
                    "width": box.width,
                    "height": box.height,
                    "color": box.color,
                    "root": box.is_root,
                    "selected": box.node_id == self.selection.node_id,
                    "editing": box.node_id == self.editing_node_id,
                }
                for box in self.nodes
            ],
            "columns": [
                {"column": guide.column, "x": guide.x, "label": guide.label, "labelY": guide.label_y}
                for guide in self.column_guides
            ],
            "dragPreview": self.drag_preview.svg_path() if self.drag_preview else None,
        }


def build_scene(
    document: Document,
    plan: TreeLayoutPlan | None,
    connections: list[RoutedConnection],
    selection: Selection,
    *,
    editing_node_id: str | None = None,
    drag_preview: BezierCurve | None = None,
    config: HitTestConfig | None = None,
) -> Scene:
    config = config or HitTestConfig()
    default = config.default_node_size

    nodes: list[NodeBox] = []
    stack: list[tuple[Node, str | None]] = [(document.root, None)]
    while stack:
        node, parent_id = stack.pop()
        nodes.append(
            NodeBox(
                node_id=node.id,
                text=node.text,
                column=node.column,
                x=node.x,
                y=node.y,
                width=node.effective_width(default.width),
                height=node.effective_height(default.height),
                parent_id=parent_id,
                color=node.color,
            )
        )
        stack.extend((child, node.id) for child in reversed(node.children))

    background = [routed for routed in connections if not _matches(selection, routed)]
    foreground = [routed for routed in connections if _matches(selection, routed)]

    images = [
        ImageBox(
            image_id=image.id,
            x=image.x,
            y=image.y,
            width=image.width,
            height=image.height,
            has_source=image.src is not None,
        )
        for image in document.images
    ]

    return Scene(
        images=images,
        connections=background + foreground,
        nodes=nodes,
        column_guides=_column_guides(document, plan),
        selection=selection,
        editing_node_id=editing_node_id,
        drag_preview=drag_preview,
        config=config,
    )


def _matches(selection: Selection, routed: RoutedConnection) -> bool:
    selected = selection.connection
    return (
        selected is not None
        and selected.source_id == routed.source_id
        and selected.target_id == routed.target_id
        and selected.is_relation == routed.is_relation
    )


def _column_guides(document: Document, plan: TreeLayoutPlan | None) -> list[ColumnGuide]:
    if plan is None:
        return []
    label_y = -document.root.subtree_height / 2 - COLUMN_LABEL_RISE
    columns = sorted(plan.column_offsets)
    return [
        ColumnGuide(
            column=column,
            x=plan.column_offsets[column] - plan.column_gap / 2,
            label=document.column_label(column),
            label_y=label_y,
        )
        for column in columns[1:]
    ]
