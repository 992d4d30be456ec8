from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from domain.errors import InvalidOperationError
from domain.models import (
    CLEARED_ROOT_TEXT,
    DEFAULT_NODE_TEXT,
    INTERMEDIATE_NODE_TEXT,
    ArchPreference,
    Document,
    Image,
    Node,
    Relation,
    fresh_document,
)
from domain.services.editor_context import EditorContext

logger = logging.getLogger(__name__)

BLANK_TEXT_REPLACEMENT = "Node"


class TreeMutations:
    """Structural edits on the document held by an :class:`EditorContext`.

    Every edit resolves its references first, then records a history
    snapshot, mutates in place and finally calls ``commit`` (layout, redraw,
    persist). Unknown ids are silent no-ops; edits that would break the tree
    raise :class:`InvalidOperationError` before anything is touched.
    """

    def __init__(self, context: EditorContext, commit: Callable[[], None] | None = None) -> None:
        self.context = context
        self._on_commit = commit or (lambda: None)
        self._batching = False
        self._batch_recorded = False
        self._batch_changed = False

    @property
    def document(self) -> Document:
        return self.context.document

    def _record(self) -> None:
        if self._batching:
            if self._batch_recorded:
                return
            self._batch_recorded = True
        self.context.history.record(self.context.document)

    def _commit(self) -> None:
        if self._batching:
            self._batch_changed = True
            return
        self._on_commit()

    @contextmanager
    def batch(self) -> Iterator[None]:
        """Group the edits made inside the block into one undo step and one commit."""
        if self._batching:
            yield
            return
        self._batching = True
        self._batch_recorded = False
        self._batch_changed = False
        try:
            yield
        finally:
            self._batching = False
            if self._batch_changed:
                self._on_commit()

    # Nodes

    def add_node(self, parent_id: str, text: str = DEFAULT_NODE_TEXT) -> Node | None:
        parent = self.document.find_node(parent_id)
        if parent is None:
            return None
        self._record()
        node = Node(text=text, column=parent.column + 1)
        # Middle insertion keeps the subtree balanced around the parent.
        parent.children.insert(len(parent.children) // 2, node)
        self.context.selection.node_id = node.id
        self.context.selection.image_id = None
        self.context.editing_node_id = node.id
        self._commit()
        return node

    def add_sibling(self, node_id: str) -> Node | None:
        if node_id == self.document.root.id:
            return None
        parent = self.document.find_parent(node_id)
        if parent is None:
            return None
        return self.add_node(parent.id)

    def delete_node(self, node_id: str) -> bool:
        if node_id == self.document.root.id:
            raise InvalidOperationError("Cannot delete the root node.")
        parent = self.document.find_parent(node_id)
        if parent is None:
            return False
        index = parent.child_index(node_id)
        self._record()
        del parent.children[index]
        self.context.selection.node_id = parent.id
        editing = self.context.editing_node_id
        if editing is not None and self.document.find_node(editing) is None:
            self.context.editing_node_id = None
        self._commit()
        return True

    def update_node_text(self, node_id: str, text: str) -> bool:
        node = self.document.find_node(node_id)
        if node is None:
            return False
        if not text.strip():
            text = BLANK_TEXT_REPLACEMENT
        if node.text == text:
            return False
        self._record()
        node.text = text
        self._commit()
        return True

    def set_node_color(self, node_id: str, color: str | None) -> bool:
        node = self.document.find_node(node_id)
        if node is None:
            return False
        self._record()
        node.color = color
        self._commit()
        return True

    def move_node_up(self, node_id: str) -> bool:
        return self._swap_with_sibling(node_id, -1)

    def move_node_down(self, node_id: str) -> bool:
        return self._swap_with_sibling(node_id, 1)

    def _swap_with_sibling(self, node_id: str, step: int) -> bool:
        if node_id == self.document.root.id:
            return False
        parent = self.document.find_parent(node_id)
        if parent is None:
            return False
        index = parent.child_index(node_id)
        other = index + step
        if other < 0 or other >= len(parent.children):
            return False
        self._record()
        children = parent.children
        children[index], children[other] = children[other], children[index]
        self._commit()
        return True

    def reorder_sibling(self, node_id: str, drop_index: int) -> bool:
        """Splice a node to ``drop_index`` among its own siblings.

        ``drop_index`` is expressed against the order before removal.
        """
        parent = self.document.find_parent(node_id)
        if parent is None:
            return False
        old_index = parent.child_index(node_id)
        new_index = drop_index
        if old_index < new_index:
            new_index -= 1
        new_index = max(0, min(new_index, len(parent.children) - 1))
        if new_index == old_index:
            return False
        self._record()
        node = parent.children.pop(old_index)
        parent.children.insert(new_index, node)
        self._commit()
        return True

    def move_node_to(self, node_id: str, new_parent_id: str) -> bool:
        if node_id == new_parent_id:
            raise InvalidOperationError("Cannot move a node onto itself.")
        if self.document.is_descendant(node_id, new_parent_id):
            raise InvalidOperationError("Cannot move a node into its own child.")
        node = self.document.find_node(node_id)
        old_parent = self.document.find_parent(node_id)
        new_parent = self.document.find_node(new_parent_id)
        if node is None or old_parent is None or new_parent is None:
            return False
        self._record()
        del old_parent.children[old_parent.child_index(node_id)]
        new_parent.children.append(node)
        _assign_columns(node, new_parent.column + 1)
        self._commit()
        return True

    # Generations

    def insert_generation(self, threshold: int) -> None:
        self._record()
        self._shift_columns(threshold)
        self._commit()

    def _shift_columns(self, threshold: int) -> None:
        # Collect first, then apply, so a failed walk never leaves a half-shifted tree.
        shifted = [node for node in self.document.iter_nodes() if node.column >= threshold]
        for node in shifted:
            node.column += 1

    def set_column_label(self, column: int, label: str) -> None:
        self._record()
        self.document.column_labels[column] = label
        self._commit()

    # Relations and connections

    def toggle_relation(
        self,
        source_id: str,
        target_id: str,
        arch: ArchPreference = "auto",
        *,
        allow_self: bool = False,
    ) -> bool | None:
        """Add the relation if absent, remove it if present.

        Returns True when added, False when removed, None on a no-op. A
        relation from a node to itself is only created with ``allow_self``
        (the connection-handle gesture); plain toggles ignore it.
        """
        if source_id == target_id and not allow_self:
            return None
        source = self.document.find_node(source_id)
        target = self.document.find_node(target_id)
        if source is None or target is None:
            return None
        self._record()
        index = source.relation_index(target_id)
        if index != -1:
            del source.relations[index]
            self.context.notify("Connection removed.")
            added = False
        else:
            source.relations.append(Relation(target_id=target_id, arch=arch, label=""))
            self.context.notify("Connection added.")
            added = True
        self._commit()
        return added

    def delete_connection(self, source_id: str, target_id: str) -> bool:
        source = self.document.find_node(source_id)
        if source is None or source.relation_index(target_id) == -1:
            return False
        self._record()
        source.relations = [rel for rel in source.relations if rel.target_id != target_id]
        if self._is_selected_connection(source_id, target_id):
            self.context.selection.connection = None
        self._commit()
        return True

    def _is_selected_connection(self, source_id: str, target_id: str) -> bool:
        selected = self.context.selection.connection
        return (
            selected is not None
            and selected.source_id == source_id
            and selected.target_id == target_id
        )

    def update_connection_label(
        self, source_id: str, target_id: str, is_relation: bool, label: str
    ) -> bool:
        return self._update_connection(source_id, target_id, is_relation, "label", label)

    def update_connection_color(
        self, source_id: str, target_id: str, is_relation: bool, color: str | None
    ) -> bool:
        return self._update_connection(source_id, target_id, is_relation, "color", color)

    def update_connection_width(
        self, source_id: str, target_id: str, is_relation: bool, width: float | None
    ) -> bool:
        return self._update_connection(source_id, target_id, is_relation, "width", width)

    def update_connection_style(
        self, source_id: str, target_id: str, is_relation: bool, dash_array: str | None
    ) -> bool:
        return self._update_connection(source_id, target_id, is_relation, "dash_array", dash_array)

    def _update_connection(
        self,
        source_id: str,
        target_id: str,
        is_relation: bool,
        attribute: str,
        value: object,
    ) -> bool:
        if is_relation:
            source = self.document.find_node(source_id)
            relation = source.find_relation(target_id) if source else None
            if relation is None:
                return False
            self._record()
            setattr(relation, attribute, value)
        else:
            # Tree-edge styling lives on the child end of the edge.
            child = self.document.find_node(target_id)
            if child is None:
                return False
            self._record()
            setattr(child, f"connection_{attribute}", value)
        self._commit()
        return True

    def insert_intermediate_node(
        self, source_id: str, target_id: str, is_relation: bool
    ) -> Node | None:
        """Split an edge with a placeholder node.

        Relation edges become ``source -> new child -> (relation) target``.
        Tree edges become ``source -> new -> target`` with the new node taking
        the target's slot among its siblings.
        """
        source = self.document.find_node(source_id)
        target = self.document.find_node(target_id)
        if source is None or target is None:
            return None
        if is_relation:
            relation_index = source.relation_index(target_id)
            if relation_index == -1:
                return None
        else:
            child_index = source.child_index(target_id)
            if child_index == -1:
                return None

        self._record()
        intermediate = Node(text=INTERMEDIATE_NODE_TEXT, column=source.column + 1)
        if target.column == source.column + 1:
            self._shift_columns(intermediate.column)
            self.context.notify("Generation added.")
        else:
            self.context.notify("Step inserted in existing gap.")

        if is_relation:
            old_relation = source.relations.pop(relation_index)
            mid_y = (source.y + target.y) / 2
            insert_at = len(source.children)
            for idx, child in enumerate(source.children):
                if child.y > mid_y:
                    insert_at = idx
                    break
            source.children.insert(insert_at, intermediate)
            intermediate.relations.append(
                Relation(target_id=target_id, arch=old_relation.arch, label="")
            )
        else:
            child = source.children[child_index]
            source.children[child_index] = intermediate
            intermediate.children.append(child)

        self.context.selection.node_id = intermediate.id
        self.context.editing_node_id = intermediate.id
        self._commit()
        return intermediate

    # Images

    def add_image(self, x: float, y: float) -> Image:
        self._record()
        image = Image(x=x, y=y)
        self.document.images.append(image)
        self.context.selection.image_id = image.id
        self._commit()
        return image

    def delete_image(self, image_id: str) -> bool:
        index = next(
            (idx for idx, image in enumerate(self.document.images) if image.id == image_id),
            -1,
        )
        if index == -1:
            return False
        self._record()
        del self.document.images[index]
        if self.context.selection.image_id == image_id:
            self.context.selection.image_id = None
        self._commit()
        return True

    def set_image_source(self, image_id: str, src: str | None) -> bool:
        image = self.document.find_image(image_id)
        if image is None:
            return False
        self._record()
        image.src = src
        self._commit()
        return True

    # Whole document

    def clear_all(self) -> None:
        current = self.context.document
        self.context.document = fresh_document(
            CLEARED_ROOT_TEXT, pan=current.pan, scale=current.scale
        )
        self.context.history.clear()
        self.context.selection.node_id = self.context.document.root.id
        self.context.selection.image_id = None
        self.context.selection.connection = None
        self.context.editing_node_id = None
        logger.info("Document cleared")
        self._commit()


def _assign_columns(node: Node, column: int) -> None:
    stack = [(node, column)]
    while stack:
        current, value = stack.pop()
        current.column = value
        stack.extend((child, value + 1) for child in current.children)
