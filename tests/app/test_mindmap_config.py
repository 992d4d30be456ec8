from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from app.config import (
    AppSettings,
    InteractionSettings,
    LayoutSettings,
    RoutingSettings,
    load_settings,
)
from app.wiring import build_session
from domain.models import Size
from tests.helpers.mindmap_fixtures import InMemoryDocumentStore, sample_document


def _write_yaml(path: Path, body: str) -> Path:
    path.write_text(body, encoding="utf-8")
    return path


def test_defaults_without_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)

    settings = load_settings()

    assert settings.title == "Mind Map Editor"
    assert settings.layout.node_size == Size(150, 40)
    assert settings.history.limit == 50
    assert settings.storage.document_path == Path("data/mindmap.json")
    assert (settings.interaction.min_zoom, settings.interaction.max_zoom) == (0.1, 5.0)


def test_yaml_file_is_loaded(tmp_path: Path) -> None:
    config = _write_yaml(
        tmp_path / "mindmap.yaml",
        "layout:\n  column_gap: 80\n"
        "history:\n  limit: 10\n"
        "storage:\n  document_path: maps/a.json\n",
    )

    settings = load_settings(config)

    assert settings.layout.column_gap == 80
    assert settings.history.limit == 10
    assert settings.storage.document_path == Path("maps/a.json")


def test_env_overrides_yaml(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config = _write_yaml(tmp_path / "mindmap.yaml", "history:\n  limit: 10\n")
    monkeypatch.setenv("MINDMAP_HISTORY__LIMIT", "7")

    settings = load_settings(config)

    assert settings.history.limit == 7


def test_config_path_from_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config = _write_yaml(tmp_path / "other.yaml", "title: Team map\n")
    monkeypatch.setenv("MINDMAP_CONFIG_PATH", str(config))

    assert load_settings().title == "Team map"


def test_missing_config_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_settings(tmp_path / "absent.yaml")


def test_yaml_source_does_not_leak_between_loads(tmp_path: Path) -> None:
    config = _write_yaml(tmp_path / "mindmap.yaml", "title: Scoped\n")

    load_settings(config)

    assert AppSettings().title == "Mind Map Editor"


def test_zoom_bounds_are_validated() -> None:
    with pytest.raises(ValidationError):
        InteractionSettings(min_zoom=2.0, max_zoom=1.0)


def test_sections_feed_domain_configs() -> None:
    settings = AppSettings(
        layout=LayoutSettings(node_width=120, node_height=30),
        routing=RoutingSettings(handle_t=0.75),
    )
    node_size = settings.layout.node_size

    router = settings.routing.to_router_config(node_size)
    interaction = settings.interaction.to_interaction_config(node_size)
    hit_test = settings.interaction.to_hit_test_config(node_size)

    assert router.handle_t == 0.75
    assert router.default_node_size == Size(120, 30)
    assert interaction.default_node_size == Size(120, 30)
    assert hit_test.default_node_size == Size(120, 30)
    assert settings.layout.to_layout_config().node_size == Size(120, 30)


def test_build_session_uses_settings(app_settings: AppSettings) -> None:
    app_settings.history.limit = 2
    app_settings.layout.column_gap = 50

    session = build_session(app_settings, store=InMemoryDocumentStore(sample_document()))

    assert session.document.root.id == "R"
    assert session.document.find_node("A").x == 200  # type: ignore[union-attr]
    assert session.context.history.limit == 2
    assert session.zoom_bounds == (0.1, 5.0)


def test_build_session_can_skip_restore(app_settings: AppSettings) -> None:
    session = build_session(
        app_settings, store=InMemoryDocumentStore(sample_document()), restore=False
    )

    assert session.document.root.text == "Central Idea"
