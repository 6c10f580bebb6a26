from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

import pandas as pd

from overturegraph.graph.edges import DirectedEdge, NameTable
from overturegraph.ingestion.errors import ConversionError, IoFailure
from overturegraph.settings import OutputSection
from overturegraph.storage.datasets import (
    save_csv,
    staged_outputs,
    way_names_csv_path,
    way_nodes_bin_path,
    ways_bin_path,
)
from overturegraph.valhalla.records import DEFAULT_NODE_ACCESS, WayNodeRecord, WayRecord

logger = logging.getLogger(__name__)

INTERSECTION_POLICIES = ("all", "connectors")


@dataclass(frozen=True)
class WriteResult:
    ways_path: Path
    way_nodes_path: Path
    names_path: Optional[Path]
    ways_written: int
    way_nodes_written: int


def way_record(edge: DirectedEdge, *, drive_on_right: bool = True) -> WayRecord:
    permissions = edge.permissions
    return WayRecord(
        way_id=edge.edge_id,
        name_index=edge.name_ref,
        node_count=len(edge.vertices),
        surface=int(edge.surface),
        road_class=int(edge.road_class),
        use=int(edge.use),
        speed=edge.speed,
        speed_limit=edge.speed_limit,
        drive_on_right=drive_on_right,
        pedestrian=permissions.pedestrian_allowed,
        auto=permissions.auto_allowed,
        bicycle=permissions.bicycle_allowed,
        bus=permissions.bus_allowed,
        truck=permissions.truck_allowed,
    )


def way_node_records(
    edge: DirectedEdge,
    way_index: int,
    *,
    intersection_flags: str = "all",
    access: int = DEFAULT_NODE_ACCESS,
) -> list[WayNodeRecord]:
    records = []
    for shape_index, vertex in enumerate(edge.vertices):
        intersection = True if intersection_flags == "all" else vertex.is_connector
        records.append(
            WayNodeRecord.at(
                way_index,
                shape_index,
                vertex.node_index,
                vertex.coordinate.lat,
                vertex.coordinate.lon,
                intersection=intersection,
                access=access,
            )
        )
    return records


def names_frame(names: NameTable) -> pd.DataFrame:
    return pd.DataFrame(names.items(), columns=["name_index", "name"])


class TileWriter:
    """Writes `ways.bin`, `way_nodes.bin` and `way_names.csv` in edge production order.

    All outputs are written to temporaries and renamed into place together only after every record
    encoded and flushed, so a failed run never leaves partial or mismatched output behind.
    """

    def __init__(
        self,
        output_dir: Path,
        *,
        ways_file: str = "ways.bin",
        way_nodes_file: str = "way_nodes.bin",
        names_file: str = "way_names.csv",
        write_names: bool = True,
        intersection_flags: str = "all",
        node_access_mask: int = DEFAULT_NODE_ACCESS,
        drive_on_right: bool = True,
    ):
        if intersection_flags not in INTERSECTION_POLICIES:
            raise ValueError(
                f"intersection_flags must be one of {INTERSECTION_POLICIES}, got {intersection_flags!r}"
            )
        self.ways_path = ways_bin_path(output_dir, ways_file)
        self.way_nodes_path = way_nodes_bin_path(output_dir, way_nodes_file)
        self.names_path = way_names_csv_path(output_dir, names_file) if write_names else None
        self.intersection_flags = intersection_flags
        self.node_access_mask = node_access_mask
        self.drive_on_right = drive_on_right

    @classmethod
    def from_section(
        cls, output_dir: Path, section: OutputSection, *, intersection_flags: str = "all"
    ) -> "TileWriter":
        return cls(
            output_dir,
            ways_file=section.ways_file,
            way_nodes_file=section.way_nodes_file,
            names_file=section.names_file,
            write_names=section.write_names,
            intersection_flags=intersection_flags,
            node_access_mask=section.node_access_mask,
            drive_on_right=section.drive_on_right,
        )

    def write(self, edges: Iterable[DirectedEdge], names: Optional[NameTable] = None) -> WriteResult:
        targets = [self.ways_path, self.way_nodes_path]
        names_path = self.names_path if names is not None else None
        if names_path is not None:
            targets.append(names_path)

        ways_written = 0
        way_nodes_written = 0
        try:
            with staged_outputs(*targets) as staged:
                with staged[0].open("wb") as ways_out, staged[1].open("wb") as nodes_out:
                    for edge in edges:
                        try:
                            ways_out.write(way_record(edge, drive_on_right=self.drive_on_right).encode())
                            for record in way_node_records(
                                edge,
                                ways_written,
                                intersection_flags=self.intersection_flags,
                                access=self.node_access_mask,
                            ):
                                nodes_out.write(record.encode())
                                way_nodes_written += 1
                        except ConversionError as exc:
                            raise exc.with_context(source=str(self.ways_path), record_id=edge.segment_id)
                        ways_written += 1
                if names_path is not None:
                    save_csv(names_frame(names), staged[2])
        except OSError as exc:
            raise IoFailure(f"Could not write output: {exc}", source=str(exc.filename or self.ways_path)) from exc

        logger.info(
            "Wrote %s ways to %s and %s way nodes to %s",
            f"{ways_written:,}",
            self.ways_path,
            f"{way_nodes_written:,}",
            self.way_nodes_path,
        )
        return WriteResult(
            ways_path=self.ways_path,
            way_nodes_path=self.way_nodes_path,
            names_path=names_path,
            ways_written=ways_written,
            way_nodes_written=way_nodes_written,
        )
