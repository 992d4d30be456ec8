from __future__ import annotations

import pytest

from domain.models import Node, Point, Relation
from domain.services.connection_router import (
    ConnectionRouter,
    EdgeOverrides,
    RouterConfig,
)
from tests.helpers.mindmap_fixtures import make_document, make_node


def _node(node_id: str, column: int, x: float, y: float, **fields: object) -> Node:
    return Node(id=node_id, text=node_id, column=column, x=x, y=y, **fields)


def test_adjacent_forward_edge_is_an_s_curve() -> None:
    router = ConnectionRouter()
    source = _node("s", 0, 0, 0)
    target = _node("t", 1, 250, 100)

    routed = router.route(source, target, is_relation=False)

    assert routed.kind == "s_curve"
    assert routed.curve.start == Point(150, 0)
    assert routed.curve.end == Point(246, 100)
    assert routed.curve.control1 == Point(198, 0)
    assert routed.curve.control2 == Point(198, 100)
    assert routed.handle == Point(198, 50)
    assert routed.path == "M 150 0 C 198 0, 198 100, 246 100"


def test_skip_edge_arches_higher_per_column() -> None:
    router = ConnectionRouter()
    source = _node("s", 0, 0, 0)
    target = _node("t", 2, 500, 0)

    routed = router.route(source, target, is_relation=False)

    assert routed.kind == "forward_arch"
    assert routed.params.height == 110
    assert routed.params.side == -1
    assert routed.curve.control1 == Point(210, -110)
    assert routed.curve.control2 == Point(436, -110)
    assert routed.handle == Point(323, -82.5)


def test_skip_edge_to_lower_target_arches_down() -> None:
    router = ConnectionRouter()

    routed = router.route(_node("s", 0, 0, 0), _node("t", 3, 700, 50), is_relation=False)

    assert routed.params.height == 140
    assert routed.params.side == 1


@pytest.mark.parametrize("column", [0, 1])
def test_backward_and_same_column_edges_arch_up(column: int) -> None:
    router = ConnectionRouter()
    source = _node("s", 1, 250, 0)
    target = _node("t", column, 0, 100)

    routed = router.route(source, target, is_relation=True)

    assert routed.kind == "backward"
    assert (routed.params.width, routed.params.height, routed.params.side) == (70, 60, -1)


def test_backward_edge_honours_down_preference() -> None:
    router = ConnectionRouter()

    routed = router.route(
        _node("s", 1, 250, 0),
        _node("t", 0, 0, 0),
        is_relation=True,
        overrides=EdgeOverrides(preference="down"),
    )

    assert routed.params.side == 1


def test_self_loop_anchors_and_defaults() -> None:
    router = ConnectionRouter()
    node = _node("s", 0, 0, 0)

    routed = router.route(node, node, is_relation=True)

    assert routed.kind == "self_loop"
    assert routed.curve.start == Point(150, -16)
    assert routed.curve.end == Point(-4, 16)
    assert routed.curve.control1 == Point(270, -106)
    assert routed.curve.control2 == Point(-124, -74)


def test_relation_anchors_are_stacked_by_index() -> None:
    router = ConnectionRouter()
    source = _node("s", 0, 0, 0)
    target = _node("t", 2, 500, 0)

    start, end = router.anchors(source, target, is_relation=True, index=1)

    assert start == Point(150, 12)
    assert end == Point(496, 6)


def test_custom_width_turns_adjacent_edge_into_arch() -> None:
    router = ConnectionRouter()

    routed = router.route(
        _node("s", 0, 0, 0),
        _node("t", 1, 250, 0),
        is_relation=False,
        overrides=EdgeOverrides(width=90, height=40),
    )

    assert routed.kind == "forward_arch"
    assert (routed.params.width, routed.params.height) == (90, 40)


@pytest.mark.parametrize("arch", ["up", "down"])
def test_arch_preference_alone_keeps_adjacent_relation_an_s_curve(arch: str) -> None:
    router = ConnectionRouter()
    source = _node("s", 1, 250, 0, relations=[Relation(target_id="t", arch=arch)])
    target = _node("t", 2, 500, 80)

    routed = router.route_relation(source, target, 0)

    assert routed.kind == "s_curve"
    assert routed.curve.control1 == Point(448, 6)
    assert routed.curve.control2 == Point(448, 86)


def test_route_document_skips_dangling_relations() -> None:
    document = make_document(
        make_node("R", make_node("A", relations=[{"id": "gone"}, {"id": "B"}]), make_node("B"))
    )

    routes = ConnectionRouter().route_document(document)

    assert [(r.source_id, r.target_id, r.is_relation) for r in routes] == [
        ("R", "A", False),
        ("R", "B", False),
        ("A", "B", True),
    ]
    assert routes[-1].index == 1


@pytest.mark.parametrize("handle_t", [0.5, 0.75])
@pytest.mark.parametrize("pointer_y", [-200.0, -20.0, 40.0, 180.0])
def test_reshape_puts_handle_under_pointer(handle_t: float, pointer_y: float) -> None:
    router = ConnectionRouter(RouterConfig(handle_t=handle_t))
    target = _node("t", 2, 500, 30)
    source = _node("s", 0, 0, 0, relations=[Relation(target_id="t")])
    document = make_document(make_node("R", source, target))
    routed = router.route_between(document, "s", "t", True)
    assert routed is not None

    params = router.reshape(routed, routed.params.width, 25, pointer_y)
    rerouted = router.apply_reshape(document, routed, params)

    assert rerouted is not None
    assert rerouted.params.width == routed.params.width + 25
    assert rerouted.handle.y == pytest.approx(pointer_y)
    relation = source.find_relation("t")
    assert relation is not None
    assert relation.arch == ("up" if params.side < 0 else "down")
    assert relation.arch_height == pytest.approx(params.height)


def test_reshape_on_tree_edge_is_stored_on_child() -> None:
    router = ConnectionRouter()
    document = make_document(make_node("R", make_node("A")))
    child = document.find_node("A")
    assert child is not None
    child.x, child.y = 250, 0
    routed = router.route_between(document, "R", "A", False)
    assert routed is not None
    assert routed.kind == "s_curve"

    params = router.reshape(routed, 60, 0, 75)
    rerouted = router.apply_reshape(document, routed, params)

    assert rerouted is not None
    assert rerouted.kind == "forward_arch"
    assert child.arch_preference == "down"
    assert child.custom_arch_width == 60
    assert rerouted.handle.y == pytest.approx(75)


def test_route_between_unknown_connection() -> None:
    document = make_document(make_node("R", make_node("A")))
    router = ConnectionRouter()

    assert router.route_between(document, "A", "R", False) is None
    assert router.route_between(document, "R", "A", True) is None
    assert router.route_between(document, "R", "missing", False) is None


def test_preview_inside_bezier_window_is_s_curve() -> None:
    curve = ConnectionRouter().preview(_node("s", 0, 0, 0), "out", Point(436, 10))

    assert curve.start == Point(156, 0)
    assert curve.control1 == Point(296, 0)
    assert curve.control2 == Point(296, 10)


def test_preview_behind_the_handle_loops_back() -> None:
    curve = ConnectionRouter().preview(_node("s", 0, 0, 0), "out", Point(100, 0))

    assert curve.control1 == Point(226, 0)
    assert curve.control2 == Point(170, 0)


def test_preview_far_ahead_arches_by_estimated_columns() -> None:
    curve = ConnectionRouter().preview(_node("s", 0, 0, 0), "out", Point(756, 200))

    assert curve.control1 == Point(216, 310)
    assert curve.control2 == Point(696, 310)


def test_preview_from_in_handle_starts_left_of_node() -> None:
    curve = ConnectionRouter().preview(_node("s", 1, 300, 0), "in", Point(0, 0))

    assert curve.start == Point(294, 0)
