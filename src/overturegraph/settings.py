from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field


def project_root() -> Path:
    return Path(__file__).resolve().parents[2]


def _resolve_path(root: Path, value: str | Path) -> Path:
    path = Path(value)
    return path if path.is_absolute() else (root / path)


class AppSection(BaseModel):
    name: str = "overturegraph"


class PathsSection(BaseModel):
    input_dir: Path = Path("data/overture")
    output_dir: Path = Path("data/valhalla")


class IngestionSection(BaseModel):
    segment_file: str = "segment.parquet"
    connector_file: str = "connector.parquet"
    on_invalid_row: str = "fail"  # fail | skip


class GraphSection(BaseModel):
    # ~11 cm at the equator.
    coordinate_tolerance_deg: float = 1e-6
    intersection_flags: str = "all"  # all | connectors


class ClassificationSection(BaseModel):
    pedestrian_denied_classes: list[str] = Field(
        default_factory=lambda: ["motorway", "trunk", "cycleway", "rail"]
    )
    auto_denied_classes: list[str] = Field(
        default_factory=lambda: [
            "steps",
            "path",
            "living_street",
            "pedestrian",
            "footway",
            "cycleway",
            "rail",
        ]
    )
    deny_auto_without_class: bool = True


class PermissionsSection(BaseModel):
    strategy: str = "classification"  # classification | access_rules | layered
    classification: ClassificationSection = Field(default_factory=ClassificationSection)


class OutputSection(BaseModel):
    ways_file: str = "ways.bin"
    way_nodes_file: str = "way_nodes.bin"
    names_file: str = "way_names.csv"
    write_names: bool = True
    node_access_mask: int = 2047
    drive_on_right: bool = True


class AppConfig(BaseModel):
    app: AppSection = Field(default_factory=AppSection)
    paths: PathsSection = Field(default_factory=PathsSection)
    ingestion: IngestionSection = Field(default_factory=IngestionSection)
    graph: GraphSection = Field(default_factory=GraphSection)
    permissions: PermissionsSection = Field(default_factory=PermissionsSection)
    output: OutputSection = Field(default_factory=OutputSection)

    def resolve_paths(self, root: Optional[Path] = None) -> "AppConfig":
        repo_root = project_root() if root is None else root
        updated_paths = self.paths.model_copy(
            update={
                "input_dir": _resolve_path(repo_root, self.paths.input_dir),
                "output_dir": _resolve_path(repo_root, self.paths.output_dir),
            }
        )
        return self.model_copy(update={"paths": updated_paths})


def _maybe_load_dotenv() -> None:
    try:
        from dotenv import load_dotenv  # type: ignore
    except ImportError:
        return

    load_dotenv()


def load_config(config_path: str | Path | None = None) -> AppConfig:
    _maybe_load_dotenv()

    root = project_root()
    candidate = config_path or os.getenv("OVERTUREGRAPH_CONFIG", "configs/config.yaml")
    path = _resolve_path(root, candidate)
    if not path.exists():
        path = root / "configs/config.example.yaml"

    data: dict[str, Any] = {}
    if path.exists():
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    return AppConfig.model_validate(data).resolve_paths(root)


_CONFIG: AppConfig | None = None


def get_config() -> AppConfig:
    global _CONFIG
    if _CONFIG is None:
        _CONFIG = load_config()
    return _CONFIG
