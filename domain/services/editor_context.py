from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from domain.models import ArchPreference, Document, Point
from domain.services.history import HistoryManager

NoticeLevel = Literal["info", "error"]
HandleType = Literal["in", "out"]
ResizeAxis = Literal["v", "h"]
DropKind = Literal["parent", "sibling"]


@dataclass(frozen=True)
class ConnectionRef:
    source_id: str
    target_id: str
    is_relation: bool


@dataclass(frozen=True)
class Notice:
    message: str
    level: NoticeLevel = "info"


@dataclass
class Selection:
    node_id: str | None = None
    image_id: str | None = None
    connection: ConnectionRef | None = None


@dataclass
class Idle:
    pass


@dataclass
class Panning:
    last_screen: Point


@dataclass
class PotentialNodeDrag:
    node_id: str
    start_screen: Point


@dataclass
class NodeDragging:
    node_id: str
    drop_target_id: str | None = None
    drop_kind: DropKind = "parent"
    drop_index: int = -1


@dataclass
class ConnectionDragging:
    source_id: str
    handle: HandleType
    pointer: Point
    drop_target_id: str | None = None


@dataclass
class CurveReshaping:
    connection: ConnectionRef
    start_screen: Point
    start_world: Point
    start_width: float
    dragged: bool = False
    recorded: bool = False


@dataclass
class NodeResizing:
    node_id: str
    axis: ResizeAxis
    start_screen: Point
    start_size: float
    recorded: bool = False


@dataclass
class ImageDragging:
    image_id: str
    last_screen: Point
    recorded: bool = False


@dataclass
class ImageResizing:
    image_id: str
    start_screen: Point
    start_width: float
    start_height: float
    recorded: bool = False


InteractionMode = (
    Idle
    | Panning
    | PotentialNodeDrag
    | NodeDragging
    | ConnectionDragging
    | CurveReshaping
    | NodeResizing
    | ImageDragging
    | ImageResizing
)


@dataclass
class EditorContext:
    """Everything one editor instance owns.

    ``document`` is long-lived and persisted. ``mode`` lives for a single
    gesture and goes back to ``Idle`` on every pointer-up.
    """

    document: Document
    history: HistoryManager
    selection: Selection = field(default_factory=Selection)
    mode: InteractionMode = field(default_factory=Idle)
    editing_node_id: str | None = None
    notices: list[Notice] = field(default_factory=list)

    def notify(self, message: str, level: NoticeLevel = "info") -> None:
        self.notices.append(Notice(message=message, level=level))

    def drain_notices(self) -> list[Notice]:
        notices, self.notices = self.notices, []
        return notices

    def reset_mode(self) -> None:
        self.mode = Idle()


def arch_hint(dy: float, dead_zone: float) -> ArchPreference:
    if dy < -dead_zone:
        return "up"
    if dy > dead_zone:
        return "down"
    return "auto"
