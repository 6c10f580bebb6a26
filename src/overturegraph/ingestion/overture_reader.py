"""Overture transportation GeoParquet reader.

Materializes the two input tables into typed entities:
- `connector`: one `Connector` per row (id + point geometry), kept in file order because the
  position of a connector in this list is its graph node index.
- `segment`: one `Segment` per row (id, primary name, class, line geometry, connector refs and the
  optional attributes used for permissions and edge attributes).

Row-level failures follow a single policy for the whole run (`on_invalid_row`):
- `fail`: the first invalid row aborts the import with the error (file + id attached).
- `skip`: invalid rows are dropped, logged, and counted in `ImportStats`.
"""

from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import Any, Callable, Optional, TypeVar

import numpy as np
import pandas as pd
import pyarrow as pa

from overturegraph.geometry import decode_line, decode_point
from overturegraph.ingestion.errors import ConversionError, IoFailure, MissingRequiredField
from overturegraph.ingestion.schemas import (
    OPTIONAL_SEGMENT_COLUMNS,
    REQUIRED_COLUMNS,
    AccessRestriction,
    Connector,
    ConnectorRef,
    ImportStats,
    OvertureData,
    Segment,
    SpeedLimit,
)
from overturegraph.storage.datasets import load_parquet, parquet_columns

logger = logging.getLogger(__name__)

ROW_POLICIES = ("fail", "skip")

# Overture `when.mode` values and legacy boolean flags mapped onto access-type mode tokens.
_WHEN_FLAG_MODES = {
    "pedestrian": "foot",
    "bicycle": "bicycle",
    "vehicle": "motor_vehicle",
}

T = TypeVar("T")


def _is_missing(value: Any) -> bool:
    if value is None or value is pd.NA:
        return True
    return isinstance(value, float) and math.isnan(value)


def _as_list(value: Any) -> Optional[list[Any]]:
    if _is_missing(value):
        return None
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, (list, tuple)):
        return list(value)
    return None


def _as_mapping(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _optional_str(value: Any) -> Optional[str]:
    if _is_missing(value):
        return None
    text = str(value)
    return text if text else None


def _check_policy(on_invalid_row: str) -> None:
    if on_invalid_row not in ROW_POLICIES:
        raise ValueError(f"on_invalid_row must be one of {ROW_POLICIES}, got {on_invalid_row!r}")


def _read_table(path: Path, table: str, optional: tuple[str, ...] = ()) -> pd.DataFrame:
    if not path.exists():
        raise IoFailure(f"Input table '{table}' not found", source=str(path))
    try:
        available = parquet_columns(path)
        required = REQUIRED_COLUMNS[table]
        for column in required:
            if column not in available:
                raise MissingRequiredField(column, reason="missing from table", source=str(path))
        columns = list(required) + [c for c in optional if c in available]
        return load_parquet(path, columns=columns)
    except (OSError, pa.ArrowException) as exc:
        raise IoFailure(f"Could not read '{table}' table: {exc}", source=str(path)) from exc


def _collect(
    df: pd.DataFrame,
    path: Path,
    parse: Callable[[dict[str, Any]], T],
    on_invalid_row: str,
) -> tuple[list[T], int]:
    items: list[T] = []
    skipped = 0
    for row in df.to_dict(orient="records"):
        try:
            items.append(parse(row))
        except ConversionError as exc:
            exc.with_context(source=str(path), record_id=_optional_str(row.get("id")))
            if on_invalid_row == "fail":
                raise
            skipped += 1
            logger.warning("Skipping invalid row: %s", exc)
    return items, skipped


def _parse_connector(row: dict[str, Any]) -> Connector:
    connector_id = _optional_str(row.get("id"))
    if connector_id is None:
        raise MissingRequiredField("id")
    return Connector(id=connector_id, coordinate=decode_point(row.get("geometry")))


def _parse_connector_refs(value: Any) -> tuple[ConnectorRef, ...]:
    entries = _as_list(value)
    if entries is None:
        raise MissingRequiredField("connectors")
    refs: list[ConnectorRef] = []
    for entry in entries:
        item = _as_mapping(entry)
        connector_id = _optional_str(item.get("connector_id"))
        if connector_id is None:
            continue
        at = item.get("at")
        refs.append(ConnectorRef(connector_id=connector_id, at=0.0 if _is_missing(at) else float(at)))
    return tuple(refs)


def _restriction_modes(when: dict[str, Any]) -> tuple[str, ...]:
    modes = [str(m) for m in (_as_list(when.get("mode")) or []) if not _is_missing(m)]
    for flag, mode in _WHEN_FLAG_MODES.items():
        if when.get(flag) is True and mode not in modes:
            modes.append(mode)
    return tuple(modes)


def _parse_access_restrictions(value: Any) -> tuple[AccessRestriction, ...]:
    restrictions: list[AccessRestriction] = []
    for entry in _as_list(value) or []:
        item = _as_mapping(entry)
        access_type = _optional_str(item.get("access_type"))
        if access_type is None:
            continue
        modes = _restriction_modes(_as_mapping(item.get("when")))
        restrictions.append(AccessRestriction(access_type=access_type, modes=modes))
    return tuple(restrictions)


def _parse_speed_limits(value: Any) -> tuple[SpeedLimit, ...]:
    limits: list[SpeedLimit] = []
    for entry in _as_list(value) or []:
        max_speed = _as_mapping(_as_mapping(entry).get("max_speed"))
        speed = max_speed.get("value")
        unit = _optional_str(max_speed.get("unit")) or "km/h"
        limits.append(SpeedLimit(max_speed=None if _is_missing(speed) else float(speed), unit=unit))
    return tuple(limits)


def _parse_surface(row: dict[str, Any]) -> Optional[str]:
    surface = row.get("surface")
    if isinstance(surface, str) and surface:
        return surface
    for entry in _as_list(row.get("road_surface")) or []:
        value = _optional_str(_as_mapping(entry).get("value"))
        if value is not None:
            return value
    return None


def _parse_segment(row: dict[str, Any]) -> Segment:
    segment_id = _optional_str(row.get("id"))
    if segment_id is None:
        raise MissingRequiredField("id")
    names = _as_mapping(row.get("names"))
    return Segment(
        id=segment_id,
        name=_optional_str(names.get("primary")) or "",
        road_class=_optional_str(row.get("class")),
        points=decode_line(row.get("geometry")),
        connector_refs=_parse_connector_refs(row.get("connectors")),
        subtype=_optional_str(row.get("subtype")),
        surface=_parse_surface(row),
        access_restrictions=_parse_access_restrictions(row.get("access_restrictions")),
        speed_limits=_parse_speed_limits(row.get("speed_limits")),
    )


def read_connectors(path: Path, *, on_invalid_row: str = "fail") -> tuple[list[Connector], int]:
    _check_policy(on_invalid_row)
    df = _read_table(path, "connector")
    return _collect(df, path, _parse_connector, on_invalid_row)


def read_segments(path: Path, *, on_invalid_row: str = "fail") -> tuple[list[Segment], int]:
    _check_policy(on_invalid_row)
    df = _read_table(path, "segment", OPTIONAL_SEGMENT_COLUMNS)
    return _collect(df, path, _parse_segment, on_invalid_row)


def import_overture_data(
    segment_path: Path,
    connector_path: Path,
    *,
    on_invalid_row: str = "fail",
) -> OvertureData:
    """Load the full connector table, then the full segment table."""

    connectors, skipped_connectors = read_connectors(connector_path, on_invalid_row=on_invalid_row)
    logger.info("Loaded %s connectors from %s", f"{len(connectors):,}", connector_path)

    segments, skipped_segments = read_segments(segment_path, on_invalid_row=on_invalid_row)
    logger.info("Loaded %s segments from %s", f"{len(segments):,}", segment_path)

    if skipped_connectors or skipped_segments:
        logger.warning(
            "Skipped invalid rows: %d connectors, %d segments", skipped_connectors, skipped_segments
        )

    stats = ImportStats(
        connector_rows=len(connectors) + skipped_connectors,
        segment_rows=len(segments) + skipped_segments,
        skipped_connectors=skipped_connectors,
        skipped_segments=skipped_segments,
    )
    return OvertureData(connectors=connectors, segments=segments, stats=stats)
