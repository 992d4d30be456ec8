from __future__ import annotations

import uuid
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

DOCUMENT_FORMAT_VERSION = 1
DEFAULT_NODE_TEXT = "New Node"
DEFAULT_ROOT_TEXT = "Central Idea"
CLEARED_ROOT_TEXT = "Root Problem"
INTERMEDIATE_NODE_TEXT = "..."
DEFAULT_IMAGE_SIZE = (200.0, 150.0)

ArchPreference = Literal["auto", "up", "down"]
ARCH_PREFERENCES: tuple[str, ...] = ("auto", "up", "down")


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class Point:
    x: float
    y: float


@dataclass(frozen=True)
class Size:
    width: float
    height: float


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_assignment=False,
    )


class Relation(_CamelModel):
    target_id: str = Field(..., alias="id", min_length=1)
    arch: ArchPreference = "auto"
    label: str = ""
    color: str | None = None
    width: float | None = None
    dash_array: str | None = None
    arch_width: float | None = None
    arch_height: float | None = None

    @field_validator("arch", mode="before")
    @classmethod
    def default_arch(cls, value: object) -> object:
        return value or "auto"

    @field_validator("label", mode="before")
    @classmethod
    def default_label(cls, value: object) -> object:
        return "" if value is None else value


def _normalize_relation(raw: object) -> object:
    # Legacy documents store a bare target id.
    if isinstance(raw, str):
        return {"id": raw, "arch": "auto", "label": ""}
    return raw


class Node(_CamelModel):
    id: str = Field(default_factory=new_id, min_length=1)
    text: str = DEFAULT_NODE_TEXT
    column: int = Field(0, ge=0)
    children: list[Node] = Field(default_factory=list)
    relations: list[Relation] = Field(default_factory=list)
    color: str | None = None
    custom_width: float | None = None
    custom_height: float | None = None
    measured_width: float | None = None
    measured_height: float | None = None
    x: float = 0.0
    y: float = 0.0
    subtree_height: float = 0.0
    connection_label: str | None = None
    connection_color: str | None = None
    connection_width: float | None = None
    connection_dash_array: str | None = None
    custom_arch_width: float | None = None
    custom_arch_height: float | None = None
    arch_preference: ArchPreference | None = None

    @field_validator("children", mode="before")
    @classmethod
    def default_children(cls, value: object) -> object:
        return [] if value is None else value

    @field_validator("relations", mode="before")
    @classmethod
    def normalize_relations(cls, value: object) -> object:
        if value is None:
            return []
        if isinstance(value, list):
            return [_normalize_relation(item) for item in value]
        return value

    @field_validator("column", mode="before")
    @classmethod
    def default_column(cls, value: object) -> object:
        return 0 if value is None else value

    def effective_width(self, default: float) -> float:
        return self.custom_width or self.measured_width or default

    def effective_height(self, default: float) -> float:
        return self.custom_height or self.measured_height or default

    def find_relation(self, target_id: str) -> Relation | None:
        for relation in self.relations:
            if relation.target_id == target_id:
                return relation
        return None

    def relation_index(self, target_id: str) -> int:
        for idx, relation in enumerate(self.relations):
            if relation.target_id == target_id:
                return idx
        return -1

    def child_index(self, child_id: str) -> int:
        for idx, child in enumerate(self.children):
            if child.id == child_id:
                return idx
        return -1


class Image(_CamelModel):
    id: str = Field(default_factory=new_id, min_length=1)
    x: float = 0.0
    y: float = 0.0
    width: float = DEFAULT_IMAGE_SIZE[0]
    height: float = DEFAULT_IMAGE_SIZE[1]
    src: str | None = None


class ViewPan(_CamelModel):
    x: float = 0.0
    y: float = 0.0


class Document(_CamelModel):
    version: int = DOCUMENT_FORMAT_VERSION
    root: Node = Field(default_factory=lambda: Node(text=DEFAULT_ROOT_TEXT))
    images: list[Image] = Field(default_factory=list)
    column_labels: dict[int, str] = Field(default_factory=dict)
    pan: ViewPan = Field(default_factory=ViewPan)
    scale: float = Field(1.0, gt=0)

    @field_validator("images", mode="before")
    @classmethod
    def default_images(cls, value: object) -> object:
        return [] if value is None else value

    @field_validator("column_labels", mode="before")
    @classmethod
    def default_column_labels(cls, value: object) -> object:
        return {} if value is None else value

    @model_validator(mode="after")
    def check_tree(self) -> Document:
        _fill_missing_columns(self.root)
        seen: set[str] = set()
        for node in self.iter_nodes():
            if node.id in seen:
                msg = f"Duplicate node id found: {node.id}"
                raise ValueError(msg)
            seen.add(node.id)
        return self

    def iter_nodes(self) -> Iterator[Node]:
        """Pre-order walk, children in display order."""
        stack = [self.root]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def iter_edges(self) -> Iterator[tuple[Node, Node]]:
        for node in self.iter_nodes():
            for child in node.children:
                yield node, child

    def find_node(self, node_id: str | None) -> Node | None:
        if node_id is None:
            return None
        for node in self.iter_nodes():
            if node.id == node_id:
                return node
        return None

    def find_parent(self, node_id: str | None) -> Node | None:
        if node_id is None:
            return None
        for node in self.iter_nodes():
            for child in node.children:
                if child.id == node_id:
                    return node
        return None

    def is_descendant(self, ancestor_id: str, node_id: str) -> bool:
        """True when ``node_id`` sits strictly below ``ancestor_id``."""
        if ancestor_id == node_id:
            return False
        ancestor = self.find_node(ancestor_id)
        if ancestor is None:
            return False
        stack = list(ancestor.children)
        while stack:
            node = stack.pop()
            if node.id == node_id:
                return True
            stack.extend(node.children)
        return False

    def find_image(self, image_id: str | None) -> Image | None:
        for image in self.images:
            if image.id == image_id:
                return image
        return None

    def column_label(self, column: int) -> str:
        return self.column_labels.get(column) or f"GEN {column}"

    def node_ids(self) -> set[str]:
        return {node.id for node in self.iter_nodes()}


def _fill_missing_columns(root: Node) -> None:
    stack: list[tuple[Node, int]] = [(root, 0)]
    while stack:
        node, fallback = stack.pop()
        if "column" not in node.model_fields_set:
            node.column = fallback
        for child in node.children:
            stack.append((child, node.column + 1))


def fresh_document(text: str = DEFAULT_ROOT_TEXT, **view: Any) -> Document:
    return Document(root=Node(text=text, column=0), **view)


@dataclass(frozen=True)
class NodePlacement:
    node_id: str
    column: int
    position: Point  # x is the left edge, y is the vertical centre
    size: Size
    subtree_height: float

    @property
    def top(self) -> float:
        return self.position.y - self.size.height / 2

    @property
    def bottom(self) -> float:
        return self.position.y + self.size.height / 2

    @property
    def right(self) -> float:
        return self.position.x + self.size.width


@dataclass(frozen=True)
class TreeLayoutPlan:
    column_offsets: dict[int, float]
    column_widths: dict[int, float]
    placements: dict[str, NodePlacement]
    column_gap: float

    def apply(self, document: Document) -> None:
        for node in document.iter_nodes():
            placement = self.placements.get(node.id)
            if placement is None:
                continue
            node.x = placement.position.x
            node.y = placement.position.y
            node.subtree_height = placement.subtree_height
