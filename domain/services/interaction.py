from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Literal, Protocol

from domain.errors import InvalidOperationError
from domain.models import Point, Size
from domain.services.connection_router import ConnectionRouter
from domain.services.editor_context import (
    ConnectionDragging,
    CurveReshaping,
    EditorContext,
    Idle,
    ImageDragging,
    ImageResizing,
    NodeDragging,
    NodeResizing,
    Panning,
    PotentialNodeDrag,
    arch_hint,
)
from domain.services.scene import Hit, Scene
from domain.services.tree_mutations import TreeMutations

logger = logging.getLogger(__name__)

PointerKind = Literal["down", "move", "up"]


@dataclass(frozen=True)
class InteractionConfig:
    drag_threshold: float = 5.0
    arch_dead_zone: float = 30.0
    min_image_size: float = 50.0
    default_node_size: Size = Size(150, 40)
    wheel_zoom_in: float = 1.1
    wheel_zoom_out: float = 0.9


@dataclass(frozen=True)
class PointerEvent:
    kind: PointerKind
    screen: Point
    world: Point
    shift: bool = False
    button: int = 0


@dataclass(frozen=True)
class KeyEvent:
    key: str
    alt: bool = False
    ctrl: bool = False
    meta: bool = False


class InteractionHost(Protocol):
    context: EditorContext
    mutations: TreeMutations
    router: ConnectionRouter

    def scene(self) -> Scene: ...

    def refresh_model(self, *, persist: bool = True) -> None: ...

    def refresh_view(self) -> None: ...

    def persist(self) -> None: ...

    def undo(self) -> bool: ...

    def redo(self) -> bool: ...

    def zoom(self, factor: float) -> bool: ...


def _distance(a: Point, b: Point) -> float:
    return math.hypot(a.x - b.x, a.y - b.y)


class InteractionController:
    """Turns raw pointer and key events into gestures.

    Exactly one mode is active at a time. A pointer-down is only honoured
    from ``Idle``; every pointer-up returns to ``Idle`` whatever happened.
    """

    def __init__(self, host: InteractionHost, config: InteractionConfig | None = None) -> None:
        self.host = host
        self.config = config or InteractionConfig()

    @property
    def context(self) -> EditorContext:
        return self.host.context

    def handle_pointer(self, event: PointerEvent) -> None:
        if event.kind == "down":
            self._pointer_down(event)
        elif event.kind == "move":
            self._pointer_move(event)
        else:
            try:
                self._pointer_up(event)
            finally:
                self.context.reset_mode()

    # Pointer down

    def _pointer_down(self, event: PointerEvent) -> None:
        if event.button != 0 or not isinstance(self.context.mode, Idle):
            return
        scene = self.host.scene()
        hit = scene.hit(event.world)
        selection = self.context.selection
        if hit.kind not in ("node", "node_handle", "node_resize", "connection_handle"):
            if selection.connection is not None:
                selection.connection = None
                self.host.refresh_view()

        if hit.kind == "background":
            self.context.mode = Panning(last_screen=event.screen)
        elif hit.kind == "node" and hit.node_id:
            self.context.mode = PotentialNodeDrag(node_id=hit.node_id, start_screen=event.screen)
        elif hit.kind == "node_handle" and hit.node_id and hit.handle:
            self.context.mode = ConnectionDragging(
                source_id=hit.node_id, handle=hit.handle, pointer=event.world
            )
            self.host.refresh_view()
        elif hit.kind == "connection_handle" and hit.connection:
            self._start_reshape(scene, hit, event)
        elif hit.kind == "node_resize" and hit.node_id and hit.axis:
            self._start_node_resize(hit, event)
        elif hit.kind == "image" and hit.image_id:
            self._select_image(hit.image_id)
            self.context.mode = ImageDragging(image_id=hit.image_id, last_screen=event.screen)
        elif hit.kind == "image_resize" and hit.image_id:
            image = self.context.document.find_image(hit.image_id)
            if image is not None:
                self.context.mode = ImageResizing(
                    image_id=image.id,
                    start_screen=event.screen,
                    start_width=image.width,
                    start_height=image.height,
                )

    def _start_reshape(self, scene: Scene, hit: Hit, event: PointerEvent) -> None:
        assert hit.connection is not None
        routed = scene.connection(hit.connection)
        if routed is None:
            return
        self.context.selection.connection = hit.connection
        self.context.mode = CurveReshaping(
            connection=hit.connection,
            start_screen=event.screen,
            start_world=event.world,
            start_width=routed.params.width,
        )
        self.host.refresh_view()

    def _start_node_resize(self, hit: Hit, event: PointerEvent) -> None:
        node = self.context.document.find_node(hit.node_id)
        if node is None:
            return
        default = self.config.default_node_size
        if hit.axis == "v":
            start_size = node.effective_height(default.height)
        else:
            start_size = node.effective_width(default.width)
        self.context.mode = NodeResizing(
            node_id=node.id,
            axis="v" if hit.axis == "v" else "h",
            start_screen=event.screen,
            start_size=start_size,
        )

    def _select_image(self, image_id: str) -> None:
        selection = self.context.selection
        if selection.image_id != image_id:
            selection.image_id = image_id
            selection.node_id = None
            self.host.refresh_view()

    # Pointer move

    def _pointer_move(self, event: PointerEvent) -> None:
        mode = self.context.mode
        if isinstance(mode, Panning):
            pan = self.context.document.pan
            pan.x += event.screen.x - mode.last_screen.x
            pan.y += event.screen.y - mode.last_screen.y
            mode.last_screen = event.screen
            self.host.refresh_view()
        elif isinstance(mode, PotentialNodeDrag):
            self._maybe_start_node_drag(mode, event)
        elif isinstance(mode, NodeDragging):
            if self._update_node_drop(mode, event.world):
                self.host.refresh_view()
        elif isinstance(mode, ConnectionDragging):
            mode.pointer = event.world
            target = self.host.scene().node_at(event.world)
            mode.drop_target_id = target.node_id if target else None
            self.host.refresh_view()
        elif isinstance(mode, CurveReshaping):
            self._reshape(mode, event)
        elif isinstance(mode, NodeResizing):
            self._resize_node(mode, event)
        elif isinstance(mode, ImageDragging):
            self._drag_image(mode, event)
        elif isinstance(mode, ImageResizing):
            self._resize_image(mode, event)

    def _maybe_start_node_drag(self, mode: PotentialNodeDrag, event: PointerEvent) -> None:
        if _distance(event.screen, mode.start_screen) <= self.config.drag_threshold:
            return
        if mode.node_id == self.context.document.root.id:
            # The root never moves; the press is dropped.
            self.context.reset_mode()
            return
        self.context.mode = NodeDragging(node_id=mode.node_id)
        self.host.refresh_view()

    def _update_node_drop(self, mode: NodeDragging, world: Point) -> bool:
        document = self.context.document
        target = self.host.scene().node_at(world, exclude=mode.node_id)
        target_id = target.node_id if target else None
        kind = "parent"
        index = -1
        if target is not None:
            dragged_parent = document.find_parent(mode.node_id)
            target_parent = document.find_parent(target.node_id)
            if (
                dragged_parent is not None
                and target_parent is not None
                and dragged_parent.id == target_parent.id
            ):
                kind = "sibling"
                target_index = dragged_parent.child_index(target.node_id)
                index = target_index if world.y < target.y else target_index + 1
        changed = (mode.drop_target_id, mode.drop_kind, mode.drop_index) != (
            target_id,
            kind,
            index,
        )
        mode.drop_target_id = target_id
        mode.drop_kind = "sibling" if kind == "sibling" else "parent"
        mode.drop_index = index
        return changed

    def _reshape(self, mode: CurveReshaping, event: PointerEvent) -> None:
        if not mode.dragged:
            if _distance(event.screen, mode.start_screen) <= self.config.drag_threshold:
                return
            mode.dragged = True
        ref = mode.connection
        document = self.context.document
        router = self.host.router
        routed = router.route_between(document, ref.source_id, ref.target_id, ref.is_relation)
        if routed is None:
            return
        if not mode.recorded:
            self.context.history.record(document)
            mode.recorded = True
        params = router.reshape(
            routed, mode.start_width, event.world.x - mode.start_world.x, event.world.y
        )
        router.apply_reshape(document, routed, params)
        self.host.refresh_view()

    def _resize_node(self, mode: NodeResizing, event: PointerEvent) -> None:
        document = self.context.document
        node = document.find_node(mode.node_id)
        if node is None:
            return
        if not mode.recorded:
            self.context.history.record(document)
            mode.recorded = True
        default = self.config.default_node_size
        if mode.axis == "v":
            delta = (event.screen.y - mode.start_screen.y) / document.scale
            node.custom_height = max(default.height, mode.start_size + delta)
        else:
            delta = (event.screen.x - mode.start_screen.x) / document.scale
            node.custom_width = max(default.width, mode.start_size + delta)
        self.host.refresh_model(persist=False)

    def _drag_image(self, mode: ImageDragging, event: PointerEvent) -> None:
        document = self.context.document
        image = document.find_image(mode.image_id)
        if image is None:
            return
        if not mode.recorded:
            self.context.history.record(document)
            mode.recorded = True
        image.x += (event.screen.x - mode.last_screen.x) / document.scale
        image.y += (event.screen.y - mode.last_screen.y) / document.scale
        mode.last_screen = event.screen
        self.host.refresh_view()

    def _resize_image(self, mode: ImageResizing, event: PointerEvent) -> None:
        document = self.context.document
        image = document.find_image(mode.image_id)
        if image is None:
            return
        if not mode.recorded:
            self.context.history.record(document)
            mode.recorded = True
        minimum = self.config.min_image_size
        dx = (event.screen.x - mode.start_screen.x) / document.scale
        dy = (event.screen.y - mode.start_screen.y) / document.scale
        image.width = max(minimum, mode.start_width + dx)
        image.height = max(minimum, mode.start_height + dy)
        self.host.refresh_view()

    # Pointer up

    def _pointer_up(self, event: PointerEvent) -> None:
        mode = self.context.mode
        if isinstance(mode, Panning):
            self.host.persist()
        elif isinstance(mode, PotentialNodeDrag):
            selection = self.context.selection
            selection.node_id = mode.node_id
            selection.image_id = None
            self.host.refresh_view()
        elif isinstance(mode, NodeDragging):
            self._update_node_drop(mode, event.world)
            self._drop_node(mode, event)
        elif isinstance(mode, ConnectionDragging):
            target = self.host.scene().node_at(event.world)
            mode.drop_target_id = target.node_id if target else None
            self._drop_connection(mode, event)
        elif isinstance(mode, CurveReshaping):
            if mode.dragged:
                self.host.persist()
            else:
                ref = mode.connection
                self.host.mutations.insert_intermediate_node(
                    ref.source_id, ref.target_id, ref.is_relation
                )
        elif isinstance(mode, NodeResizing | ImageDragging | ImageResizing):
            if mode.recorded:
                self.host.persist()

    def _drop_node(self, mode: NodeDragging, event: PointerEvent) -> None:
        target_id = mode.drop_target_id
        if target_id is None:
            self.host.refresh_view()
            return
        mutations = self.host.mutations
        if mode.drop_kind == "sibling":
            mutations.reorder_sibling(mode.node_id, mode.drop_index)
        elif event.shift:
            mutations.toggle_relation(mode.node_id, target_id)
        else:
            self._move(mode.node_id, target_id)

    def _drop_connection(self, mode: ConnectionDragging, event: PointerEvent) -> None:
        mutations = self.host.mutations
        source_id = mode.source_id
        target_id = mode.drop_target_id
        if target_id is not None:
            if mode.handle == "out":
                source = self.context.document.find_node(source_id)
                hint = "auto"
                if source is not None:
                    hint = arch_hint(event.world.y - source.y, self.config.arch_dead_zone)
                mutations.toggle_relation(source_id, target_id, hint, allow_self=True)
            elif source_id != target_id:
                self._move(source_id, target_id)
            else:
                self.host.refresh_view()
        elif mode.handle == "out":
            if mutations.add_node(source_id) is not None:
                self.context.notify("New node created.")
        else:
            self.host.refresh_view()

    def _move(self, node_id: str, new_parent_id: str) -> None:
        try:
            moved = self.host.mutations.move_node_to(node_id, new_parent_id)
        except InvalidOperationError as exc:
            logger.info("Rejected move of %s under %s: %s", node_id, new_parent_id, exc)
            self.context.notify(str(exc), "error")
            self.host.refresh_view()
            return
        if moved:
            self.context.notify("Node moved successfully.")

    # Keyboard and wheel

    def handle_key(self, event: KeyEvent) -> bool:
        """Apply a shortcut; returns False for keys without a binding."""
        command = event.ctrl or event.meta
        key = event.key
        if command and key.lower() == "z":
            self.host.undo()
            return True
        if command and key.lower() == "y":
            self.host.redo()
            return True

        mutations = self.host.mutations
        selection = self.context.selection
        root_id = self.context.document.root.id
        selected = selection.node_id

        if key == "Tab":
            if selected:
                mutations.add_node(selected)
            else:
                self.context.notify("Select a node.", "error")
            return True
        if key == "Enter":
            if not selected:
                self.context.notify("Select a node.", "error")
            elif selected == root_id:
                mutations.add_node(selected)
                self.context.notify("Root cannot have siblings. Added child instead.")
            else:
                mutations.add_sibling(selected)
            return True
        if key in ("Delete", "Backspace"):
            if selected:
                try:
                    mutations.delete_node(selected)
                except InvalidOperationError as exc:
                    self.context.notify(str(exc), "error")
            elif selection.image_id:
                mutations.delete_image(selection.image_id)
            else:
                self.context.notify("Select a node or image.", "error")
            return True
        if key == "ArrowUp" and event.alt and selected:
            mutations.move_node_up(selected)
            return True
        if key == "ArrowDown" and event.alt and selected:
            mutations.move_node_down(selected)
            return True
        return False

    def handle_wheel(self, delta_y: float) -> bool:
        factor = self.config.wheel_zoom_out if delta_y > 0 else self.config.wheel_zoom_in
        return self.host.zoom(factor)
