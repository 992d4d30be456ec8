from __future__ import annotations

import os
from pathlib import Path
from typing import ClassVar

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic_settings.sources import PydanticBaseSettingsSource, YamlConfigSettingsSource

from adapters.layout.column_tree import LayoutConfig
from domain.models import Size
from domain.services.connection_router import RouterConfig
from domain.services.history import DEFAULT_HISTORY_LIMIT
from domain.services.interaction import InteractionConfig
from domain.services.scene import HitTestConfig

DEFAULT_CONFIG_PATH = Path("config/mindmap.yaml")


class LayoutSettings(BaseModel):
    node_width: float = Field(150.0, gt=0)
    node_height: float = Field(40.0, gt=0)
    column_gap: float = Field(100.0, ge=0)
    gap_y: float = Field(10.0, ge=0)

    @property
    def node_size(self) -> Size:
        return Size(self.node_width, self.node_height)

    def to_layout_config(self) -> LayoutConfig:
        return LayoutConfig(node_size=self.node_size, column_gap=self.column_gap, gap_y=self.gap_y)


class RoutingSettings(BaseModel):
    self_loop_width: float = 120.0
    self_loop_height: float = 90.0
    backward_width: float = 70.0
    backward_height: float = 60.0
    forward_arch_width: float = 60.0
    forward_arch_base: float = 80.0
    forward_arch_step: float = 30.0
    target_inset: float = 4.0
    relation_anchor_offset: float = 6.0
    relation_anchor_step: float = 6.0
    self_loop_spread: float = 0.4
    handle_t: float = Field(0.5, gt=0, lt=1)
    preview_column_pitch: float = Field(280.0, gt=0)

    def to_router_config(self, node_size: Size) -> RouterConfig:
        return RouterConfig(
            default_node_size=node_size,
            target_inset=self.target_inset,
            relation_anchor_offset=self.relation_anchor_offset,
            relation_anchor_step=self.relation_anchor_step,
            self_loop_spread=self.self_loop_spread,
            self_loop_width=self.self_loop_width,
            self_loop_height=self.self_loop_height,
            backward_width=self.backward_width,
            backward_height=self.backward_height,
            forward_arch_width=self.forward_arch_width,
            forward_arch_base=self.forward_arch_base,
            forward_arch_step=self.forward_arch_step,
            handle_t=self.handle_t,
            preview_column_pitch=self.preview_column_pitch,
        )


class InteractionSettings(BaseModel):
    drag_threshold: float = Field(5.0, ge=0)
    arch_dead_zone: float = Field(30.0, ge=0)
    min_image_size: float = Field(50.0, gt=0)
    min_zoom: float = Field(0.1, gt=0)
    max_zoom: float = Field(5.0, gt=0)
    handle_radius: float = Field(8.0, gt=0)
    resize_grip_radius: float = Field(6.0, gt=0)

    @model_validator(mode="after")
    def check_zoom_bounds(self) -> InteractionSettings:
        if self.min_zoom >= self.max_zoom:
            msg = "interaction.min_zoom must be lower than interaction.max_zoom"
            raise ValueError(msg)
        return self

    def to_interaction_config(self, node_size: Size) -> InteractionConfig:
        return InteractionConfig(
            drag_threshold=self.drag_threshold,
            arch_dead_zone=self.arch_dead_zone,
            min_image_size=self.min_image_size,
            default_node_size=node_size,
        )

    def to_hit_test_config(self, node_size: Size) -> HitTestConfig:
        return HitTestConfig(
            default_node_size=node_size,
            handle_radius=self.handle_radius,
            resize_grip_radius=self.resize_grip_radius,
        )


class HistorySettings(BaseModel):
    limit: int = Field(DEFAULT_HISTORY_LIMIT, ge=1)


class StorageSettings(BaseModel):
    document_path: Path = Path("data/mindmap.json")
    restore_on_start: bool = True


class ViewportSettings(BaseModel):
    width: float = Field(1200.0, gt=0)
    height: float = Field(800.0, gt=0)

    @property
    def size(self) -> Size:
        return Size(self.width, self.height)


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="MINDMAP_", env_nested_delimiter="__")

    title: str = "Mind Map Editor"
    layout: LayoutSettings = Field(default_factory=LayoutSettings)
    routing: RoutingSettings = Field(default_factory=RoutingSettings)
    interaction: InteractionSettings = Field(default_factory=InteractionSettings)
    history: HistorySettings = Field(default_factory=HistorySettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    viewport: ViewportSettings = Field(default_factory=ViewportSettings)

    _yaml_path: ClassVar[Path | None] = None

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        sources: list[PydanticBaseSettingsSource] = [
            init_settings,
            env_settings,
            dotenv_settings,
            file_secret_settings,
        ]
        if cls._yaml_path:
            sources.append(YamlConfigSettingsSource(settings_cls, yaml_file=cls._yaml_path))
        return tuple(sources)


def load_settings(config_path: Path | None = None) -> AppSettings:
    env_path = os.getenv("MINDMAP_CONFIG_PATH")
    resolved_path: Path | None = None

    if config_path is not None:
        resolved_path = config_path
    elif env_path:
        resolved_path = Path(env_path)
    elif DEFAULT_CONFIG_PATH.exists():
        resolved_path = DEFAULT_CONFIG_PATH

    previous = AppSettings._yaml_path
    try:
        if resolved_path is not None:
            if not resolved_path.exists():
                msg = f"Config file not found: {resolved_path}"
                raise FileNotFoundError(msg)
            AppSettings._yaml_path = resolved_path
        return AppSettings()
    finally:
        AppSettings._yaml_path = previous
