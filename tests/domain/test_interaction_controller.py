from __future__ import annotations

from collections.abc import Callable

import pytest

from domain.models import Point
from domain.services.editor_context import (
    ConnectionDragging,
    ConnectionRef,
    CurveReshaping,
    Idle,
    NodeDragging,
    Panning,
    PotentialNodeDrag,
)
from domain.services.editor_session import EditorSession
from domain.services.interaction import KeyEvent, PointerEvent, PointerKind
from tests.helpers.mindmap_fixtures import (
    InMemoryDocumentStore,
    edit_fields,
    sample_document,
    tree_shape,
)

SessionFactory = Callable[..., EditorSession]


@pytest.fixture
def editor(session_factory: SessionFactory) -> EditorSession:
    # Pan (0, 0) and scale 1, so screen and world coordinates coincide.
    return session_factory(sample_document())


def _pointer(
    session: EditorSession, kind: PointerKind, x: float, y: float, *, shift: bool = False
) -> None:
    point = Point(x, y)
    session.handle_pointer(PointerEvent(kind=kind, screen=point, world=point, shift=shift))


def _drag(
    session: EditorSession,
    start: tuple[float, float],
    end: tuple[float, float],
    *,
    shift: bool = False,
) -> None:
    _pointer(session, "down", *start)
    _pointer(session, "move", *end, shift=shift)
    _pointer(session, "up", *end, shift=shift)


def _messages(session: EditorSession) -> list[str]:
    return [notice.message for notice in session.drain_notices()]


def test_background_drag_pans_by_screen_delta(
    editor: EditorSession, store: InMemoryDocumentStore
) -> None:
    _pointer(editor, "down", 1000, 1000)
    assert isinstance(editor.context.mode, Panning)
    _pointer(editor, "move", 1010, 1020)
    _pointer(editor, "move", 1015, 1020)
    saves = store.save_count
    _pointer(editor, "up", 1015, 1020)

    assert (editor.document.pan.x, editor.document.pan.y) == (15, 20)
    assert isinstance(editor.context.mode, Idle)
    assert store.save_count == saves + 1
    assert not editor.context.history.can_undo


def test_click_on_node_selects_it(editor: EditorSession) -> None:
    _pointer(editor, "down", 320, -25)
    assert isinstance(editor.context.mode, PotentialNodeDrag)
    _pointer(editor, "move", 323, -22)
    assert isinstance(editor.context.mode, PotentialNodeDrag)
    _pointer(editor, "up", 323, -22)

    assert editor.selection.node_id == "A"
    assert isinstance(editor.context.mode, Idle)


def test_root_cannot_be_dragged(editor: EditorSession) -> None:
    before = edit_fields(editor.document)

    _pointer(editor, "down", 75, 0)
    _pointer(editor, "move", 300, 50)
    assert isinstance(editor.context.mode, Idle)
    _pointer(editor, "up", 300, 50)

    assert edit_fields(editor.document) == before


def test_drop_on_other_branch_reparents(editor: EditorSession) -> None:
    _pointer(editor, "down", 575, 0)
    _pointer(editor, "move", 300, 50)
    mode = editor.context.mode
    assert isinstance(mode, NodeDragging)
    assert (mode.drop_target_id, mode.drop_kind) == ("B", "parent")
    _pointer(editor, "up", 300, 50)

    assert tree_shape(editor.document)["B"] == ["A2"]
    assert editor.document.find_node("A2").column == 2  # type: ignore[union-attr]
    assert "Node moved successfully." in _messages(editor)


def test_shift_drop_creates_relation(editor: EditorSession) -> None:
    _drag(editor, (575, 0), (300, 50), shift=True)

    a2 = editor.document.find_node("A2")
    assert a2 is not None
    assert [relation.target_id for relation in a2.relations] == ["B"]
    assert tree_shape(editor.document)["A"] == ["A1", "A2"]


def test_drop_on_sibling_reorders(editor: EditorSession) -> None:
    _pointer(editor, "down", 575, -50)
    _pointer(editor, "move", 575, 10)
    mode = editor.context.mode
    assert isinstance(mode, NodeDragging)
    assert (mode.drop_target_id, mode.drop_kind, mode.drop_index) == ("A2", "sibling", 2)
    _pointer(editor, "up", 575, 10)

    assert tree_shape(editor.document)["A"] == ["A2", "A1"]


def test_drop_into_own_subtree_reports_error(editor: EditorSession) -> None:
    before = edit_fields(editor.document)

    _drag(editor, (325, -25), (575, -50))

    assert edit_fields(editor.document) == before
    notices = editor.drain_notices()
    assert [(notice.message, notice.level) for notice in notices] == [
        ("Cannot move a node into its own child.", "error")
    ]
    assert isinstance(editor.context.mode, Idle)


def test_drop_on_nothing_changes_nothing(editor: EditorSession) -> None:
    before = edit_fields(editor.document)

    _drag(editor, (575, 0), (900, 400))

    assert edit_fields(editor.document) == before


def test_out_handle_drop_creates_relation_with_arch_hint(editor: EditorSession) -> None:
    _pointer(editor, "down", 656, 0)
    assert isinstance(editor.context.mode, ConnectionDragging)
    _pointer(editor, "move", 300, 50)
    assert editor.scene().drag_preview is not None
    _pointer(editor, "up", 300, 50)

    a2 = editor.document.find_node("A2")
    assert a2 is not None
    assert [(relation.target_id, relation.arch) for relation in a2.relations] == [("B", "down")]
    assert editor.scene().drag_preview is None


def test_out_handle_drop_on_self_creates_self_loop(editor: EditorSession) -> None:
    _drag(editor, (656, 0), (575, 5))

    a2 = editor.document.find_node("A2")
    assert a2 is not None
    assert [(relation.target_id, relation.arch) for relation in a2.relations] == [("A2", "auto")]


def test_out_handle_drop_on_empty_space_adds_child(editor: EditorSession) -> None:
    _drag(editor, (656, 0), (900, 300))

    a2 = editor.document.find_node("A2")
    assert a2 is not None
    assert len(a2.children) == 1
    assert editor.context.editing_node_id == a2.children[0].id
    assert "New node created." in _messages(editor)


def test_in_handle_drop_reparents_source(editor: EditorSession) -> None:
    _drag(editor, (494, 0), (300, 50))

    assert tree_shape(editor.document)["B"] == ["A2"]


def test_curve_reshape_writes_arch_and_is_undoable(
    editor: EditorSession, store: InMemoryDocumentStore
) -> None:
    _pointer(editor, "down", 198, -12.5)
    mode = editor.context.mode
    assert isinstance(mode, CurveReshaping)
    assert editor.selection.connection == ConnectionRef("R", "A", False)
    _pointer(editor, "move", 218, 60)
    saves = store.save_count
    _pointer(editor, "up", 218, 60)

    child = editor.document.find_node("A")
    assert child is not None
    assert child.arch_preference == "down"
    assert child.custom_arch_width == 80
    routed = editor.scene().connection(ConnectionRef("R", "A", False))
    assert routed is not None
    assert routed.handle.y == pytest.approx(60)
    assert store.save_count == saves + 1
    assert editor.context.history.undo_depth == 1

    editor.undo()
    assert editor.document.find_node("A").custom_arch_width is None  # type: ignore[union-attr]


def test_click_on_connection_handle_splits_edge(editor: EditorSession) -> None:
    _pointer(editor, "down", 198, -12.5)
    _pointer(editor, "move", 200, -11)
    _pointer(editor, "up", 200, -11)

    new_id = tree_shape(editor.document)["R"][0]
    assert new_id != "A"
    assert editor.document.find_node(new_id).text == "..."  # type: ignore[union-attr]
    assert tree_shape(editor.document)[new_id] == ["A"]


def test_node_resize_while_editing(editor: EditorSession) -> None:
    editor.begin_editing("A")

    _pointer(editor, "down", 325, -5)
    _pointer(editor, "move", 325, 45)
    _pointer(editor, "move", 330, 20)
    _pointer(editor, "up", 330, 20)

    node = editor.document.find_node("A")
    assert node is not None
    assert node.custom_height == 65
    assert editor.context.history.undo_depth == 1


def test_node_resize_is_floored_at_default(editor: EditorSession) -> None:
    editor.begin_editing("A")

    _drag(editor, (400, -5), (200, -5))

    assert editor.document.find_node("A").custom_width == 150  # type: ignore[union-attr]


def test_resize_divides_by_zoom(editor: EditorSession) -> None:
    editor.document.scale = 2.0
    editor.begin_editing("A")
    grip = Point(325, -5)
    editor.handle_pointer(PointerEvent("down", screen=Point(0, 0), world=grip))
    editor.handle_pointer(PointerEvent("move", screen=Point(0, 100), world=grip))
    editor.handle_pointer(PointerEvent("up", screen=Point(0, 100), world=grip))

    assert editor.document.find_node("A").custom_height == 90  # type: ignore[union-attr]


def test_image_drag_and_resize(editor: EditorSession) -> None:
    image = editor.mutations.add_image(1000, 1000)

    _drag(editor, (1100, 1050), (1110, 1070))
    assert (image.x, image.y) == (1010, 1020)

    _drag(editor, (1210, 1170), (900, 900))
    assert (image.width, image.height) == (50, 50)
    assert editor.context.history.undo_depth == 3


def test_background_press_clears_connection_selection(editor: EditorSession) -> None:
    editor.selection.connection = ConnectionRef("R", "A", False)

    _pointer(editor, "down", 1000, 1000)
    _pointer(editor, "up", 1000, 1000)

    assert editor.selection.connection is None


def test_second_press_during_gesture_is_ignored(editor: EditorSession) -> None:
    _pointer(editor, "down", 1000, 1000)
    _pointer(editor, "down", 75, 0)

    assert isinstance(editor.context.mode, Panning)


def test_non_primary_button_is_ignored(editor: EditorSession) -> None:
    point = Point(1000, 1000)
    editor.handle_pointer(PointerEvent("down", screen=point, world=point, button=2))

    assert isinstance(editor.context.mode, Idle)


def test_keyboard_shortcuts(editor: EditorSession) -> None:
    editor.selection.node_id = "R"
    assert editor.handle_key(KeyEvent("Tab"))
    assert len(editor.document.root.children) == 3

    editor.selection.node_id = "R"
    editor.handle_key(KeyEvent("Enter"))
    assert len(editor.document.root.children) == 4
    assert "Root cannot have siblings. Added child instead." in _messages(editor)

    editor.selection.node_id = "R"
    editor.handle_key(KeyEvent("Delete"))
    assert [n.level for n in editor.drain_notices()] == ["error"]

    editor.selection.node_id = "B"
    editor.handle_key(KeyEvent("ArrowUp", alt=True))
    assert tree_shape(editor.document)["R"][-2] == "B"

    editor.handle_key(KeyEvent("Backspace"))
    assert editor.document.find_node("B") is None
    assert editor.selection.node_id == "R"

    assert editor.handle_key(KeyEvent("z", ctrl=True))
    assert editor.document.find_node("B") is not None
    assert editor.handle_key(KeyEvent("y", meta=True))
    assert editor.document.find_node("B") is None

    assert not editor.handle_key(KeyEvent("x"))


def test_delete_key_removes_selected_image(editor: EditorSession) -> None:
    image = editor.mutations.add_image(0, 500)
    editor.selection.node_id = None

    editor.handle_key(KeyEvent("Delete"))

    assert editor.document.find_image(image.id) is None


def test_wheel_zoom_is_bounded(editor: EditorSession) -> None:
    assert editor.handle_wheel(1)
    assert editor.document.scale == pytest.approx(0.9)
    editor.document.scale = 4.8

    assert not editor.handle_wheel(-1)
    assert editor.document.scale == 4.8
