"""Directed edges ("ways") built from resolved, permissioned segments.

Each kept segment becomes two edges: the forward vertex order and its mirror. Valhalla rejects
some single-direction micro-edges, so every segment is emitted as a forward/backward pair instead
of one bidirectional way. `mirror_edge` is the step that does this and can be dropped on its own
if the downstream constraint goes away.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Sequence

from overturegraph.graph.mapping import (
    RoadClass,
    Surface,
    Use,
    map_road_class,
    map_surface,
    map_use,
    speed_kph,
    speed_limit_kph,
)
from overturegraph.graph.node_index import ResolvedVertex
from overturegraph.graph.permissions import Permissions
from overturegraph.ingestion.errors import DegenerateEdge
from overturegraph.ingestion.schemas import Segment

MIN_EDGE_VERTICES = 2


@dataclass(frozen=True)
class DirectedEdge:
    edge_id: int
    segment_id: str
    vertices: tuple[ResolvedVertex, ...]
    permissions: Permissions
    road_class: RoadClass
    surface: Surface
    use: Use
    speed: int
    speed_limit: int
    name_ref: int
    forward: bool = True

    @property
    def node_sequence(self) -> list[int]:
        return [vertex.node_index for vertex in self.vertices]


class EdgeIdAllocator:
    def __init__(self, first_id: int = 1):
        self._next = int(first_id)

    @property
    def next_id(self) -> int:
        return self._next

    def mint(self) -> int:
        edge_id = self._next
        self._next += 1
        return edge_id


class NameTable:
    """Unique way names; ref 0 is the empty name."""

    def __init__(self) -> None:
        self._names: list[str] = [""]
        self._refs: dict[str, int] = {"": 0}

    def __len__(self) -> int:
        return len(self._names)

    def ref(self, name: str) -> int:
        existing = self._refs.get(name)
        if existing is not None:
            return existing
        self._refs[name] = len(self._names)
        self._names.append(name)
        return self._refs[name]

    def items(self) -> list[tuple[int, str]]:
        return list(enumerate(self._names))


def ensure_routable(segment: Segment) -> None:
    if len(segment.points) < MIN_EDGE_VERTICES:
        raise DegenerateEdge(len(segment.points), record_id=segment.id)


def mirror_edge(edge: DirectedEdge, edge_id: int) -> DirectedEdge:
    return replace(edge, edge_id=edge_id, vertices=tuple(reversed(edge.vertices)), forward=False)


def build_directed_edges(
    segment: Segment,
    vertices: Sequence[ResolvedVertex],
    permissions: Permissions,
    *,
    edge_ids: EdgeIdAllocator,
    names: NameTable,
) -> list[DirectedEdge]:
    if len(vertices) < MIN_EDGE_VERTICES:
        raise DegenerateEdge(len(vertices), record_id=segment.id)

    forward = DirectedEdge(
        edge_id=edge_ids.mint(),
        segment_id=segment.id,
        vertices=tuple(vertices),
        permissions=permissions,
        road_class=map_road_class(segment.road_class),
        surface=map_surface(segment.surface),
        use=map_use(segment.road_class),
        speed=speed_kph(segment),
        speed_limit=speed_limit_kph(segment),
        name_ref=names.ref(segment.name),
    )
    return [forward, mirror_edge(forward, edge_ids.mint())]
