from __future__ import annotations

from pathlib import Path

import pandas as pd
import pytest

from overturegraph.geometry import Coordinate
from overturegraph.graph.edges import EdgeIdAllocator, NameTable, build_directed_edges
from overturegraph.graph.node_index import ResolvedVertex
from overturegraph.graph.permissions import Permissions
from overturegraph.ingestion.errors import IoFailure
from overturegraph.ingestion.schemas import Segment
from overturegraph.settings import OutputSection
from overturegraph.valhalla.records import decode_way_nodes, decode_ways
from overturegraph.valhalla.writer import TileWriter


def _edges(names: NameTable):
    segment = Segment(
        id="s",
        name="Main St",
        road_class="primary",
        points=(Coordinate(0.0, 0.0), Coordinate(0.0, 1.0), Coordinate(0.0, 2.0)),
        connector_refs=(),
    )
    vertices = [
        ResolvedVertex(0, segment.points[0], "A"),
        ResolvedVertex(2, segment.points[1]),
        ResolvedVertex(1, segment.points[2], "B"),
    ]
    return build_directed_edges(
        segment, vertices, Permissions(True, True), edge_ids=EdgeIdAllocator(), names=names
    )


def test_writes_ways_and_way_nodes_in_edge_order(tmp_path: Path) -> None:
    names = NameTable()
    result = TileWriter(tmp_path).write(_edges(names), names)

    assert result.ways_written == 2
    assert result.way_nodes_written == 6
    ways = decode_ways((tmp_path / "ways.bin").read_bytes())
    assert [w.way_id for w in ways] == [1, 2]
    assert [w.node_count for w in ways] == [3, 3]
    assert ways[0].name_index == 1

    nodes = decode_way_nodes((tmp_path / "way_nodes.bin").read_bytes())
    assert [(n.way_index, n.shape_index, n.node_id) for n in nodes] == [
        (0, 0, 0),
        (0, 1, 2),
        (0, 2, 1),
        (1, 0, 1),
        (1, 1, 2),
        (1, 2, 0),
    ]
    assert all(n.intersection for n in nodes)
    assert not list(tmp_path.glob("*.tmp"))


def test_connector_intersection_policy(tmp_path: Path) -> None:
    names = NameTable()
    TileWriter(tmp_path, intersection_flags="connectors", write_names=False).write(_edges(names), names)
    nodes = decode_way_nodes((tmp_path / "way_nodes.bin").read_bytes())
    assert [n.intersection for n in nodes[:3]] == [True, False, True]
    assert not (tmp_path / "way_names.csv").exists()


def test_names_table_is_written(tmp_path: Path) -> None:
    names = NameTable()
    result = TileWriter(tmp_path).write(_edges(names), names)
    df = pd.read_csv(result.names_path, keep_default_na=False)
    assert df.to_dict(orient="records") == [
        {"name_index": 0, "name": ""},
        {"name_index": 1, "name": "Main St"},
    ]


def test_from_section_uses_configured_names(tmp_path: Path) -> None:
    section = OutputSection(ways_file="w.bin", way_nodes_file="wn.bin", node_access_mask=1, drive_on_right=False)
    writer = TileWriter.from_section(tmp_path, section)
    names = NameTable()
    writer.write(_edges(names), names)

    (way, _) = decode_ways((tmp_path / "w.bin").read_bytes())
    assert way.drive_on_right is False
    nodes = decode_way_nodes((tmp_path / "wn.bin").read_bytes())
    assert {n.access for n in nodes} == {1}


def test_unknown_intersection_policy_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        TileWriter(tmp_path, intersection_flags="some")


def _fail_rename_of(monkeypatch, name: str) -> None:
    original = Path.replace

    def _replace(self, target):
        if self.name == name:
            raise PermissionError(13, "Permission denied", str(self))
        return original(self, target)

    monkeypatch.setattr(Path, "replace", _replace)


def test_failed_rename_restores_previous_outputs(tmp_path: Path, monkeypatch) -> None:
    for name in ("ways.bin", "way_nodes.bin", "way_names.csv"):
        (tmp_path / name).write_bytes(b"old " + name.encode())
    _fail_rename_of(monkeypatch, "way_nodes.bin.tmp")

    names = NameTable()
    with pytest.raises(IoFailure):
        TileWriter(tmp_path).write(_edges(names), names)

    for name in ("ways.bin", "way_nodes.bin", "way_names.csv"):
        assert (tmp_path / name).read_bytes() == b"old " + name.encode()
    assert sorted(p.name for p in tmp_path.iterdir()) == ["way_names.csv", "way_nodes.bin", "ways.bin"]


def test_failed_rename_of_names_leaves_no_outputs(tmp_path: Path, monkeypatch) -> None:
    _fail_rename_of(monkeypatch, "way_names.csv.tmp")

    names = NameTable()
    with pytest.raises(IoFailure):
        TileWriter(tmp_path).write(_edges(names), names)

    assert list(tmp_path.iterdir()) == []
