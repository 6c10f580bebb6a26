from __future__ import annotations

from pathlib import Path

import pandas as pd
import pytest

from conftest import connector_row, line_wkb, point_wkb, segment_row
from overturegraph.geometry import Coordinate
from overturegraph.ingestion.errors import GeometryTypeMismatch, IoFailure, MissingRequiredField
from overturegraph.ingestion.overture_reader import import_overture_data, read_connectors, read_segments
from overturegraph.ingestion.schemas import AccessRestriction, ConnectorRef, SpeedLimit


def test_read_connectors_keeps_table_order(write_overture) -> None:
    input_dir = write_overture(
        [segment_row("s1", [(0, 0), (1, 0)], ["b"])],
        [connector_row("b", 1.0, 0.0), connector_row("a", 0.0, 0.0)],
    )
    connectors, skipped = read_connectors(input_dir / "connector.parquet")
    assert skipped == 0
    assert [c.id for c in connectors] == ["b", "a"]
    assert connectors[0].coordinate == Coordinate(lat=0.0, lon=1.0)


def test_read_segments_parses_core_fields(write_overture) -> None:
    input_dir = write_overture(
        [segment_row("s1", [(0, 0), (1, 0.5)], ["a", "b"], name="Main St", road_class="primary")],
        [connector_row("a", 0, 0), connector_row("b", 1, 0.5)],
    )
    segments, skipped = read_segments(input_dir / "segment.parquet")
    assert skipped == 0
    (segment,) = segments
    assert segment.id == "s1"
    assert segment.name == "Main St"
    assert segment.road_class == "primary"
    assert segment.subtype == "road"
    assert segment.points == (Coordinate(lat=0.0, lon=0.0), Coordinate(lat=0.5, lon=1.0))
    assert segment.connector_refs == (ConnectorRef("a", 0.0), ConnectorRef("b", 0.0))


def test_missing_connectors_field_fails_by_default(write_overture) -> None:
    input_dir = write_overture(
        [
            segment_row("ok", [(0, 0), (1, 0)], ["a"]),
            segment_row("bad", [(0, 0), (1, 0)], None),
        ],
        [connector_row("a", 0, 0)],
    )
    with pytest.raises(MissingRequiredField) as excinfo:
        read_segments(input_dir / "segment.parquet")
    assert excinfo.value.field == "connectors"
    assert excinfo.value.record_id == "bad"
    assert excinfo.value.source == str(input_dir / "segment.parquet")


def test_skip_policy_drops_and_counts_invalid_rows(write_overture) -> None:
    input_dir = write_overture(
        [
            segment_row("ok", [(0, 0), (1, 0)], ["a"]),
            segment_row("bad", [(0, 0), (1, 0)], None),
        ],
        [connector_row("a", 0, 0)],
    )
    segments, skipped = read_segments(input_dir / "segment.parquet", on_invalid_row="skip")
    assert [s.id for s in segments] == ["ok"]
    assert skipped == 1


def test_point_geometry_in_segment_table_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "segment.parquet"
    pd.DataFrame(
        [{"id": "s1", "geometry": point_wkb(0, 0), "connectors": [{"connector_id": "a", "at": 0.0}]}]
    ).to_parquet(path, index=False)
    with pytest.raises(GeometryTypeMismatch):
        read_segments(path)


def test_missing_input_file_is_io_failure(tmp_path: Path) -> None:
    with pytest.raises(IoFailure) as excinfo:
        read_connectors(tmp_path / "connector.parquet")
    assert excinfo.value.source == str(tmp_path / "connector.parquet")


def test_missing_required_column(tmp_path: Path) -> None:
    path = tmp_path / "segment.parquet"
    pd.DataFrame([{"id": "s1", "geometry": line_wkb((0, 0), (1, 0))}]).to_parquet(path, index=False)
    with pytest.raises(MissingRequiredField) as excinfo:
        read_segments(path)
    assert excinfo.value.field == "connectors"


def test_unknown_row_policy_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        read_segments(tmp_path / "segment.parquet", on_invalid_row="ignore")


def test_optional_attributes(tmp_path: Path) -> None:
    path = tmp_path / "segment.parquet"
    row = {
        "id": "s1",
        "geometry": line_wkb((0, 0), (1, 0)),
        "connectors": [{"connector_id": "a", "at": 0.0}],
        "road_surface": [{"value": "gravel"}],
        "access_restrictions": [
            {"access_type": "denied", "when": {"mode": ["hgv"], "vehicle": None}},
            {"access_type": "designated", "when": {"mode": None, "vehicle": True}},
        ],
        "speed_limits": [{"max_speed": {"value": 30.0, "unit": "mph"}}],
    }
    pd.DataFrame([row]).to_parquet(path, index=False)

    (segment,), _ = read_segments(path)
    assert segment.surface == "gravel"
    assert segment.access_restrictions == (
        AccessRestriction("denied", ("hgv",)),
        AccessRestriction("designated", ("motor_vehicle",)),
    )
    assert segment.speed_limits == (SpeedLimit(30.0, "mph"),)
    assert segment.name == ""
    assert segment.road_class is None


def test_import_overture_data_collects_stats(write_overture) -> None:
    input_dir = write_overture(
        [
            segment_row("s1", [(0, 0), (1, 0)], ["a"]),
            segment_row("s2", [(0, 0), (1, 0)], None),
        ],
        [connector_row("a", 0, 0)],
    )
    data = import_overture_data(
        input_dir / "segment.parquet", input_dir / "connector.parquet", on_invalid_row="skip"
    )
    assert len(data.connectors) == 1
    assert [s.id for s in data.segments] == ["s1"]
    assert data.stats.segment_rows == 2
    assert data.stats.skipped_segments == 1
    assert data.stats.skipped_connectors == 0
