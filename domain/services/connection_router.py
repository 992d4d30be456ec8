from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Literal

from domain.models import ArchPreference, Document, Node, Point, Size

RouteKind = Literal["self_loop", "backward", "forward_arch", "s_curve"]


@dataclass(frozen=True)
class RouterConfig:
    default_node_size: Size = Size(150, 40)
    target_inset: float = 4.0
    relation_anchor_offset: float = 6.0
    relation_anchor_step: float = 6.0
    self_loop_spread: float = 0.4
    self_loop_width: float = 120.0
    self_loop_height: float = 90.0
    backward_width: float = 70.0
    backward_height: float = 60.0
    forward_arch_width: float = 60.0
    forward_arch_base: float = 80.0
    forward_arch_step: float = 30.0
    handle_t: float = 0.5
    preview_handle_offset: float = 6.0
    preview_column_pitch: float = 280.0
    preview_vertical_window: float = 50.0


@dataclass(frozen=True)
class CurveParams:
    width: float
    height: float
    side: int  # -1 bulges up, +1 bulges down


@dataclass(frozen=True)
class BezierCurve:
    start: Point
    control1: Point
    control2: Point
    end: Point

    def point_at(self, t: float) -> Point:
        u = 1 - t
        a, b, c, d = u**3, 3 * u * u * t, 3 * u * t * t, t**3
        return Point(
            a * self.start.x + b * self.control1.x + c * self.control2.x + d * self.end.x,
            a * self.start.y + b * self.control1.y + c * self.control2.y + d * self.end.y,
        )

    def svg_path(self) -> str:
        return (
            f"M {self.start.x:g} {self.start.y:g} "
            f"C {self.control1.x:g} {self.control1.y:g}, "
            f"{self.control2.x:g} {self.control2.y:g}, "
            f"{self.end.x:g} {self.end.y:g}"
        )


@dataclass(frozen=True)
class EdgeStyle:
    label: str = ""
    color: str | None = None
    width: float | None = None
    dash_array: str | None = None


@dataclass(frozen=True)
class RoutedConnection:
    source_id: str
    target_id: str
    is_relation: bool
    index: int
    kind: RouteKind
    curve: BezierCurve
    handle: Point
    params: CurveParams
    style: EdgeStyle

    @property
    def path(self) -> str:
        return self.curve.svg_path()


@dataclass(frozen=True)
class EdgeOverrides:
    preference: ArchPreference = "auto"
    width: float | None = None
    height: float | None = None

    @property
    def arch_requested(self) -> bool:
        return self.width is not None or self.height is not None


class ConnectionRouter:
    """Cubic curves for tree edges and relations.

    The same formulas serve the static drawing and the live reshape, so an
    edge dragged to some width/height/side is redrawn identically once the
    values are stored on the edge.
    """

    def __init__(self, config: RouterConfig | None = None) -> None:
        self.config = config or RouterConfig()

    # Anchors

    def anchors(
        self, source: Node, target: Node, is_relation: bool, index: int = 0
    ) -> tuple[Point, Point]:
        cfg = self.config
        width = source.effective_width(cfg.default_node_size.width)
        start_x = source.x + width
        start_y = source.y
        end_x = target.x - cfg.target_inset
        end_y = target.y
        if source.id == target.id:
            spread = source.effective_height(cfg.default_node_size.height) * cfg.self_loop_spread
            return Point(start_x, source.y - spread), Point(end_x, source.y + spread)
        if is_relation:
            start_y += cfg.relation_anchor_offset + index * cfg.relation_anchor_step
            end_y += cfg.relation_anchor_offset
        return Point(start_x, start_y), Point(end_x, end_y)

    # Routing policy

    def classify(self, source: Node, target: Node, overrides: EdgeOverrides) -> RouteKind:
        if source.id == target.id:
            return "self_loop"
        step = target.column - source.column
        if step <= 0:
            return "backward"
        if step != 1 or overrides.arch_requested:
            return "forward_arch"
        return "s_curve"

    def resolve_params(
        self,
        kind: RouteKind,
        source: Node,
        target: Node,
        start: Point,
        end: Point,
        overrides: EdgeOverrides,
    ) -> CurveParams:
        cfg = self.config
        preference = overrides.preference
        if kind == "self_loop":
            default_w, default_h = cfg.self_loop_width, cfg.self_loop_height
            side = 1 if preference == "down" else -1
        elif kind == "backward":
            default_w, default_h = cfg.backward_width, cfg.backward_height
            side = 1 if preference == "down" else -1
        else:
            default_w = cfg.forward_arch_width
            default_h = self.forward_arch_height(abs(target.column - source.column))
            use_up = preference == "up" or (preference == "auto" and end.y <= start.y)
            side = -1 if use_up else 1
        return CurveParams(
            width=overrides.width if overrides.width is not None else default_w,
            height=overrides.height if overrides.height is not None else default_h,
            side=side,
        )

    def forward_arch_height(self, column_step: int) -> float:
        extra = max(0, column_step - 1)
        return self.config.forward_arch_base + extra * self.config.forward_arch_step

    def curve(self, kind: RouteKind, start: Point, end: Point, params: CurveParams) -> BezierCurve:
        if kind == "s_curve":
            mid = (end.x - start.x) / 2
            return BezierCurve(
                start=start,
                control1=Point(start.x + mid, start.y),
                control2=Point(end.x - mid, end.y),
                end=end,
            )
        offset = params.height * params.side
        return BezierCurve(
            start=start,
            control1=Point(start.x + params.width, start.y + offset),
            control2=Point(end.x - params.width, end.y + offset),
            end=end,
        )

    def route(
        self,
        source: Node,
        target: Node,
        *,
        is_relation: bool,
        index: int = 0,
        overrides: EdgeOverrides | None = None,
        style: EdgeStyle | None = None,
    ) -> RoutedConnection:
        overrides = overrides or EdgeOverrides()
        start, end = self.anchors(source, target, is_relation, index)
        kind = self.classify(source, target, overrides)
        params = self.resolve_params(kind, source, target, start, end, overrides)
        curve = self.curve(kind, start, end, params)
        return RoutedConnection(
            source_id=source.id,
            target_id=target.id,
            is_relation=is_relation,
            index=index,
            kind=kind,
            curve=curve,
            handle=curve.point_at(self.config.handle_t),
            params=params,
            style=style or EdgeStyle(),
        )

    def route_tree_edge(self, parent: Node, child: Node) -> RoutedConnection:
        return self.route(
            parent,
            child,
            is_relation=False,
            overrides=EdgeOverrides(
                preference=child.arch_preference or "auto",
                width=child.custom_arch_width,
                height=child.custom_arch_height,
            ),
            style=EdgeStyle(
                label=child.connection_label or "",
                color=child.connection_color,
                width=child.connection_width,
                dash_array=child.connection_dash_array,
            ),
        )

    def route_relation(self, source: Node, target: Node, index: int) -> RoutedConnection:
        relation = source.relations[index]
        return self.route(
            source,
            target,
            is_relation=True,
            index=index,
            overrides=EdgeOverrides(
                preference=relation.arch,
                width=relation.arch_width,
                height=relation.arch_height,
            ),
            style=EdgeStyle(
                label=relation.label,
                color=relation.color,
                width=relation.width,
                dash_array=relation.dash_array,
            ),
        )

    def route_document(self, document: Document) -> list[RoutedConnection]:
        """Tree edges first, then relations, both in pre-order.

        Relations whose target no longer exists are skipped.
        """
        routes = [self.route_tree_edge(parent, child) for parent, child in document.iter_edges()]
        nodes = {node.id: node for node in document.iter_nodes()}
        for source in document.iter_nodes():
            for index, relation in enumerate(source.relations):
                target = nodes.get(relation.target_id)
                if target is None:
                    continue
                routes.append(self.route_relation(source, target, index))
        return routes

    def route_between(
        self, document: Document, source_id: str, target_id: str, is_relation: bool
    ) -> RoutedConnection | None:
        source = document.find_node(source_id)
        target = document.find_node(target_id)
        if source is None or target is None:
            return None
        if is_relation:
            index = source.relation_index(target_id)
            if index == -1:
                return None
            return self.route_relation(source, target, index)
        if source.child_index(target_id) == -1:
            return None
        return self.route_tree_edge(source, target)

    # Live reshape

    def reshape(
        self, routed: RoutedConnection, start_width: float, delta_x: float, pointer_y: float
    ) -> CurveParams:
        """Curve parameters that put the handle at ``pointer_y``.

        Horizontal pointer travel widens the bulge; the vertical position is
        mapped straight through the handle formula, so crossing the line
        between the endpoints flips the arch side.
        """
        t = self.config.handle_t
        weight = 3 * t * (1 - t)
        start, end = routed.curve.start, routed.curve.end
        baseline = start.y * ((1 - t) ** 3 + 3 * (1 - t) ** 2 * t) + end.y * (
            3 * (1 - t) * t * t + t**3
        )
        signed = (pointer_y - baseline) / weight
        return CurveParams(
            width=start_width + delta_x,
            height=abs(signed),
            side=-1 if signed < 0 else 1,
        )

    def apply_reshape(
        self, document: Document, routed: RoutedConnection, params: CurveParams
    ) -> RoutedConnection | None:
        """Store reshaped parameters on the edge and re-route it."""
        source = document.find_node(routed.source_id)
        target = document.find_node(routed.target_id)
        if source is None or target is None:
            return None
        preference: ArchPreference = "up" if params.side < 0 else "down"
        if routed.is_relation:
            relation = source.find_relation(routed.target_id)
            if relation is None:
                return None
            relation.arch = preference
            relation.arch_width = params.width
            relation.arch_height = params.height
        else:
            target.arch_preference = preference
            target.custom_arch_width = params.width
            target.custom_arch_height = params.height
        return self.route_between(document, routed.source_id, routed.target_id, routed.is_relation)

    # Drag preview

    def preview(self, source: Node, handle: str, pointer: Point) -> BezierCurve:
        """Curve from a node handle to the pointer during a connection drag."""
        cfg = self.config
        width = source.effective_width(cfg.default_node_size.width)
        if handle == "out":
            start = Point(source.x + width + cfg.preview_handle_offset, source.y)
        else:
            start = Point(source.x - cfg.preview_handle_offset, source.y)

        relative_x = pointer.x - start.x
        pitch = cfg.preview_column_pitch
        in_window = (
            pitch * 0.6 < relative_x < pitch * 1.4
            and abs(pointer.y - start.y) < cfg.preview_vertical_window
        )
        if in_window:
            return BezierCurve(
                start=start,
                control1=Point(start.x + relative_x / 2, start.y),
                control2=Point(pointer.x - relative_x / 2, pointer.y),
                end=pointer,
            )

        column_step = _round_half_up(relative_x / pitch)
        if column_step <= 0:
            loop = cfg.backward_width
            return BezierCurve(
                start=start,
                control1=Point(start.x + loop, start.y),
                control2=Point(pointer.x + loop, pointer.y),
                end=pointer,
            )

        arch = self.forward_arch_height(max(1, column_step))
        if pointer.y <= start.y:
            control_y = min(start.y, pointer.y) - arch
        else:
            control_y = max(start.y, pointer.y) + arch
        sign = 1 if pointer.x > start.x else -1
        return BezierCurve(
            start=start,
            control1=Point(start.x + cfg.forward_arch_width * sign, control_y),
            control2=Point(pointer.x - cfg.forward_arch_width * sign, control_y),
            end=pointer,
        )


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)
