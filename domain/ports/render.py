from __future__ import annotations

from typing import Protocol


class RenderListener(Protocol):
    def on_model_changed(self) -> None:
        """Full re-layout and redraw."""
        ...

    def on_view_changed(self) -> None:
        """Pan/zoom or transient drag feedback only."""
        ...


class NullRenderListener:
    def on_model_changed(self) -> None:
        return None

    def on_view_changed(self) -> None:
        return None
