from __future__ import annotations

from dataclasses import dataclass
from typing import Dict

from domain.models import Document, Node, NodePlacement, Point, Size, TreeLayoutPlan
from domain.ports.layout import LayoutEngine


@dataclass(frozen=True)
class LayoutConfig:
    node_size: Size = Size(150, 40)
    column_gap: float = 100.0
    gap_y: float = 10.0


class ColumnTreeLayoutEngine(LayoutEngine):
    """Generation columns left to right, subtrees stacked and centred vertically.

    Columns are as wide as their widest node so labels never overlap
    horizontally. Each subtree reserves the height of its children stack,
    and a parent sits at the centre of its own span. The root is centred
    on y=0.
    """

    def __init__(self, config: LayoutConfig | None = None) -> None:
        self.config = config or LayoutConfig()

    def build_plan(self, document: Document) -> TreeLayoutPlan:
        column_widths = self._column_widths(document)
        column_offsets = self._column_offsets(column_widths)

        subtree_heights: Dict[str, float] = {}
        self._measure_subtree(document.root, subtree_heights)

        placements: Dict[str, NodePlacement] = {}
        root_span = subtree_heights[document.root.id]
        self._place(document.root, -root_span / 2, column_offsets, subtree_heights, placements)
        return TreeLayoutPlan(
            column_offsets=column_offsets,
            column_widths=column_widths,
            placements=placements,
            column_gap=self.config.column_gap,
        )

    def _width(self, node: Node) -> float:
        return node.effective_width(self.config.node_size.width)

    def _height(self, node: Node) -> float:
        return node.effective_height(self.config.node_size.height)

    def _column_widths(self, document: Document) -> Dict[int, float]:
        widths: Dict[int, float] = {}
        for node in document.iter_nodes():
            widths[node.column] = max(widths.get(node.column, 0.0), self._width(node))
        return widths

    def _column_offsets(self, column_widths: Dict[int, float]) -> Dict[int, float]:
        offsets: Dict[int, float] = {}
        cursor = 0.0
        for column in sorted(column_widths):
            offsets[column] = cursor
            cursor += column_widths[column] + self.config.column_gap
        return offsets

    def _children_span(self, node: Node, subtree_heights: Dict[str, float]) -> float:
        total = sum(subtree_heights[child.id] for child in node.children)
        return total + (len(node.children) - 1) * self.config.gap_y

    def _measure_subtree(self, node: Node, subtree_heights: Dict[str, float]) -> float:
        own = self._height(node)
        if not node.children:
            subtree_heights[node.id] = own
            return own
        for child in node.children:
            self._measure_subtree(child, subtree_heights)
        height = max(own, self._children_span(node, subtree_heights))
        subtree_heights[node.id] = height
        return height

    def _place(
        self,
        node: Node,
        start_y: float,
        column_offsets: Dict[int, float],
        subtree_heights: Dict[str, float],
        placements: Dict[str, NodePlacement],
    ) -> None:
        span = subtree_heights[node.id]
        placements[node.id] = NodePlacement(
            node_id=node.id,
            column=node.column,
            position=Point(column_offsets[node.column], start_y + span / 2),
            size=Size(self._width(node), self._height(node)),
            subtree_height=span,
        )
        if not node.children:
            return
        cursor = start_y + (span - self._children_span(node, subtree_heights)) / 2
        for child in node.children:
            self._place(child, cursor, column_offsets, subtree_heights, placements)
            cursor += subtree_heights[child.id] + self.config.gap_y
