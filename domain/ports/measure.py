from __future__ import annotations

from typing import Protocol

from domain.models import Node, Size


class TextMeasurer(Protocol):
    def measure(self, node: Node) -> Size:
        """Rendered width/height of the node's label in layout units."""
        ...
