from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Optional

import pandas as pd
import pytest
from shapely import wkb
from shapely.geometry import LineString, Point


def point_wkb(lon: float, lat: float) -> bytes:
    return wkb.dumps(Point(lon, lat))


def line_wkb(*lon_lat: tuple[float, float]) -> bytes:
    return wkb.dumps(LineString(lon_lat))


def connector_row(connector_id: str, lon: float, lat: float) -> dict[str, Any]:
    return {"id": connector_id, "geometry": point_wkb(lon, lat)}


def segment_row(
    segment_id: str,
    points: list[tuple[float, float]],
    connector_ids: Optional[list[str]],
    *,
    road_class: Optional[str] = "residential",
    name: str = "",
    subtype: str = "road",
) -> dict[str, Any]:
    connectors = None
    if connector_ids is not None:
        connectors = [{"connector_id": cid, "at": 0.0} for cid in connector_ids]
    return {
        "id": segment_id,
        "geometry": line_wkb(*points),
        "connectors": connectors,
        "names": {"primary": name},
        "class": road_class,
        "subtype": subtype,
    }


WriteOverture = Callable[[list[dict[str, Any]], list[dict[str, Any]]], Path]


@pytest.fixture
def write_overture(tmp_path: Path) -> WriteOverture:
    """Write segment.parquet / connector.parquet under `tmp_path/overture` and return that dir."""

    def _write(segments: list[dict[str, Any]], connectors: list[dict[str, Any]]) -> Path:
        input_dir = tmp_path / "overture"
        input_dir.mkdir(parents=True, exist_ok=True)
        pd.DataFrame(connectors, columns=["id", "geometry"]).to_parquet(
            input_dir / "connector.parquet", index=False
        )
        pd.DataFrame(segments).to_parquet(input_dir / "segment.parquet", index=False)
        return input_dir

    return _write
