from __future__ import annotations

import _bootstrap  # noqa: F401

import argparse
import json
from collections import Counter
from dataclasses import asdict, dataclass
from pathlib import Path

from overturegraph.settings import get_config
from overturegraph.storage.datasets import way_nodes_bin_path, ways_bin_path
from overturegraph.valhalla.records import decode_way_nodes, decode_ways


@dataclass(frozen=True)
class DatasetReport:
    name: str
    path: str
    records: int
    unique_nodes: int | None = None
    shared_nodes: int | None = None
    pedestrian_ways: int | None = None
    auto_ways: int | None = None
    road_classes: dict[str, int] | None = None
    lat_min: float | None = None
    lat_max: float | None = None
    lon_min: float | None = None
    lon_max: float | None = None


def report_ways(path: Path) -> DatasetReport:
    ways = decode_ways(path.read_bytes())
    classes = Counter(str(way.road_class) for way in ways)
    return DatasetReport(
        name="ways",
        path=str(path),
        records=len(ways),
        pedestrian_ways=sum(1 for way in ways if way.pedestrian),
        auto_ways=sum(1 for way in ways if way.auto),
        road_classes=dict(sorted(classes.items())),
    )


def report_way_nodes(path: Path) -> DatasetReport:
    nodes = decode_way_nodes(path.read_bytes())
    if not nodes:
        return DatasetReport(name="way_nodes", path=str(path), records=0)

    # A node index used by more than one way is a junction.
    ways_per_node: dict[int, set[int]] = {}
    for node in nodes:
        ways_per_node.setdefault(node.node_id, set()).add(node.way_index)
    coords = [node.lat_lon for node in nodes]
    lats = [lat for lat, _ in coords]
    lons = [lon for _, lon in coords]
    return DatasetReport(
        name="way_nodes",
        path=str(path),
        records=len(nodes),
        unique_nodes=len(ways_per_node),
        shared_nodes=sum(1 for ways in ways_per_node.values() if len(ways) > 1),
        lat_min=min(lats),
        lat_max=max(lats),
        lon_min=min(lons),
        lon_max=max(lons),
    )


def main() -> None:
    parser = argparse.ArgumentParser(description="Decode ways.bin / way_nodes.bin and print basic sanity checks.")
    parser.add_argument("--output-dir", default=None, help="Override output dir (default: config.paths.output_dir).")
    parser.add_argument("--json", dest="json_path", default=None, help="Write JSON report to this path.")
    args = parser.parse_args()

    config = get_config()
    output_dir = Path(args.output_dir) if args.output_dir else config.paths.output_dir

    reports: list[DatasetReport] = []
    ways = ways_bin_path(output_dir, config.output.ways_file)
    if ways.exists():
        reports.append(report_ways(ways))
    else:
        reports.append(DatasetReport(name="ways", path=str(ways), records=0))

    way_nodes = way_nodes_bin_path(output_dir, config.output.way_nodes_file)
    if way_nodes.exists():
        reports.append(report_way_nodes(way_nodes))
    else:
        reports.append(DatasetReport(name="way_nodes", path=str(way_nodes), records=0))

    for rep in reports:
        print(f"[{rep.name}] {rep.path}")
        print(f"  records={rep.records:,}")
        if rep.unique_nodes is not None:
            print(f"  unique_nodes={rep.unique_nodes:,} shared_nodes={rep.shared_nodes:,}")
        if rep.pedestrian_ways is not None:
            print(f"  pedestrian_ways={rep.pedestrian_ways:,} auto_ways={rep.auto_ways:,}")
        if rep.road_classes:
            print(f"  road_classes={rep.road_classes}")
        if rep.lat_min is not None:
            print(f"  lat=[{rep.lat_min:.7f}, {rep.lat_max:.7f}] lon=[{rep.lon_min:.7f}, {rep.lon_max:.7f}]")

    if args.json_path:
        out = Path(args.json_path)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(json.dumps([asdict(r) for r in reports], ensure_ascii=False, indent=2), encoding="utf-8")
        print(f"Saved JSON report: {out}")


if __name__ == "__main__":
    main()
