from __future__ import annotations

from typing import Protocol

from domain.models import Document, TreeLayoutPlan


class LayoutEngine(Protocol):
    def build_plan(self, document: Document) -> TreeLayoutPlan:
        ...
