"""Overture → Valhalla conversion pipeline.

Stages, in order:
1. Import: the full connector table, then the full segment table.
2. Per segment, in input order:
   - derive permissions and drop segments neither pedestrians nor cars may use,
   - reject polylines with fewer than 2 vertices,
   - resolve node indices (connector matches reuse the connector index, other vertices mint),
   - build the forward/backward edge pair.
3. Write `ways.bin` / `way_nodes.bin` (and the way-name table).

Everything runs on one thread with one `NodeIndexAllocator`, so the same input always produces
byte-identical output.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from overturegraph.graph.edges import (
    DirectedEdge,
    EdgeIdAllocator,
    NameTable,
    build_directed_edges,
    ensure_routable,
)
from overturegraph.graph.node_index import ConnectorTable, NodeIndexResolver
from overturegraph.graph.permissions import PermissionResolver, resolver_from_config
from overturegraph.ingestion.errors import DegenerateEdge
from overturegraph.ingestion.overture_reader import import_overture_data
from overturegraph.ingestion.schemas import Segment
from overturegraph.settings import AppConfig, get_config
from overturegraph.storage.datasets import connector_parquet_path, segment_parquet_path
from overturegraph.valhalla.writer import TileWriter, WriteResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConversionResult:
    connectors: int
    segments_read: int
    segments_skipped: int
    segments_dropped_no_access: int
    segments_degenerate: int
    segments_converted: int
    edges_written: int
    way_nodes_written: int
    unresolved_connector_refs: int
    next_node_index: int
    output: WriteResult


@dataclass(frozen=True)
class GraphBuild:
    edges: list[DirectedEdge]
    names: NameTable
    dropped_no_access: int
    degenerate: int
    converted: int
    unresolved_connector_refs: int
    next_node_index: int


def build_graph(
    segments: Sequence[Segment],
    node_resolver: NodeIndexResolver,
    permission_resolver: PermissionResolver,
    *,
    segment_source: Optional[str] = None,
) -> GraphBuild:
    edge_ids = EdgeIdAllocator()
    names = NameTable()
    edges: list[DirectedEdge] = []
    dropped = 0
    degenerate = 0
    converted = 0

    total = len(segments)
    for position, segment in enumerate(segments, start=1):
        logger.debug("Processing segment %d / %d: %s (%s)", position, total, segment.id, segment.name)

        permissions = permission_resolver.resolve_permissions(segment)
        if not permissions.is_routable:
            dropped += 1
            continue

        try:
            ensure_routable(segment)
        except DegenerateEdge as exc:
            exc.with_context(source=segment_source)
            logger.warning("Dropping segment: %s", exc)
            degenerate += 1
            continue

        vertices = node_resolver.resolve(segment)
        edges.extend(build_directed_edges(segment, vertices, permissions, edge_ids=edge_ids, names=names))
        converted += 1

    if node_resolver.unresolved:
        logger.warning(
            "%d connector references did not match any connector; their vertices got new node indices",
            len(node_resolver.unresolved),
        )

    return GraphBuild(
        edges=edges,
        names=names,
        dropped_no_access=dropped,
        degenerate=degenerate,
        converted=converted,
        unresolved_connector_refs=len(node_resolver.unresolved),
        next_node_index=node_resolver.allocator.next_index,
    )


def convert_overture_to_valhalla(
    input_dir: Optional[Path] = None,
    output_dir: Optional[Path] = None,
    *,
    config: Optional[AppConfig] = None,
    permission_resolver: Optional[PermissionResolver] = None,
) -> ConversionResult:
    resolved = config or get_config()
    input_dir = Path(input_dir) if input_dir is not None else resolved.paths.input_dir
    output_dir = Path(output_dir) if output_dir is not None else resolved.paths.output_dir

    segment_path = segment_parquet_path(input_dir, resolved.ingestion.segment_file)
    connector_path = connector_parquet_path(input_dir, resolved.ingestion.connector_file)
    writer = TileWriter.from_section(
        output_dir,
        resolved.output,
        intersection_flags=resolved.graph.intersection_flags,
    )
    permission_resolver = permission_resolver or resolver_from_config(resolved)

    data = import_overture_data(
        segment_path,
        connector_path,
        on_invalid_row=resolved.ingestion.on_invalid_row,
    )

    node_resolver = NodeIndexResolver(
        ConnectorTable(data.connectors),
        tolerance=resolved.graph.coordinate_tolerance_deg,
    )
    graph = build_graph(
        data.segments,
        node_resolver,
        permission_resolver,
        segment_source=str(segment_path),
    )
    logger.info(
        "Converted %s segments (%s dropped without pedestrian/auto access, %s degenerate)",
        f"{graph.converted:,}",
        f"{graph.dropped_no_access:,}",
        f"{graph.degenerate:,}",
    )

    output = writer.write(graph.edges, graph.names)

    return ConversionResult(
        connectors=len(data.connectors),
        segments_read=len(data.segments),
        segments_skipped=data.stats.skipped_segments,
        segments_dropped_no_access=graph.dropped_no_access,
        segments_degenerate=graph.degenerate,
        segments_converted=graph.converted,
        edges_written=output.ways_written,
        way_nodes_written=output.way_nodes_written,
        unresolved_connector_refs=graph.unresolved_connector_refs,
        next_node_index=graph.next_node_index,
        output=output,
    )
