from __future__ import annotations

import math
import textwrap
from dataclasses import dataclass

from domain.models import Node, Size
from domain.ports.measure import TextMeasurer


@dataclass(frozen=True)
class TextMetricsConfig:
    char_width: float = 8.0
    line_height: float = 20.0
    padding: Size = Size(24, 20)
    min_size: Size = Size(150, 40)
    max_width: float = 300.0


class ApproximateTextMeasurer(TextMeasurer):
    """Monospace estimate of a node label's box, for headless use.

    Lines wrap at ``max_width``; the box never shrinks below ``min_size``.
    """

    def __init__(self, config: TextMetricsConfig | None = None) -> None:
        self.config = config or TextMetricsConfig()

    def measure(self, node: Node) -> Size:
        cfg = self.config
        max_chars = max(1, math.floor((cfg.max_width - cfg.padding.width) / cfg.char_width))
        lines: list[str] = []
        for raw_line in (node.text or "").splitlines() or [""]:
            lines.extend(textwrap.wrap(raw_line, max_chars) or [""])
        longest = max(len(line) for line in lines)
        width = longest * cfg.char_width + cfg.padding.width
        height = len(lines) * cfg.line_height + cfg.padding.height
        return Size(
            width=max(cfg.min_size.width, min(cfg.max_width, width)),
            height=max(cfg.min_size.height, height),
        )
