"""Graph node numbering for segment vertices.

Every vertex of every kept segment needs a node index the downstream graph builder can use to
join edges together:
- Indices `[0, C)` belong to the `C` connectors, in connector-table order.
- A vertex that sits on one of its segment's referenced connectors (within the coordinate
  tolerance) reuses that connector's index, which is what turns connectors into shared junctions.
- Any other vertex gets a freshly minted index `>= C` from a single `NodeIndexAllocator`.

Only connector-declared sharing is honored: two unresolved vertices at identical coordinates still
get distinct indices. Minting is a sequential counter, so segments must be resolved in a stable
order (input order) for indices to be reproducible across runs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from overturegraph.geometry import Coordinate
from overturegraph.ingestion.errors import UnresolvedConnectorReference
from overturegraph.ingestion.schemas import Connector, ConnectorRef, Segment

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE_DEG = 1e-6


@dataclass(frozen=True)
class ResolvedVertex:
    node_index: int
    coordinate: Coordinate
    # Set when the vertex was matched to a connector.
    connector_id: Optional[str] = None

    @property
    def is_connector(self) -> bool:
        return self.connector_id is not None


class ConnectorTable:
    """Connectors in table order, addressable by id."""

    def __init__(self, connectors: Iterable[Connector]):
        self._connectors: list[Connector] = list(connectors)
        self._position_by_id: dict[str, int] = {}
        for position, connector in enumerate(self._connectors):
            # Duplicate ids: the first row keeps the id.
            self._position_by_id.setdefault(connector.id, position)

    def __len__(self) -> int:
        return len(self._connectors)

    def lookup(self, connector_id: str) -> Optional[tuple[int, Connector]]:
        position = self._position_by_id.get(connector_id)
        if position is None:
            return None
        return position, self._connectors[position]


class NodeIndexAllocator:
    def __init__(self, first_index: int):
        if first_index < 0:
            raise ValueError("first_index must be non-negative")
        self._next = int(first_index)

    @property
    def next_index(self) -> int:
        return self._next

    def mint(self) -> int:
        index = self._next
        self._next += 1
        return index


# Offsets are compared in integer nano-degrees.
TOLERANCE_SCALE = 10**9


def _fixed(degrees: float) -> int:
    return round(degrees * TOLERANCE_SCALE)


def within_tolerance(a: Coordinate, b: Coordinate, tolerance: float) -> bool:
    limit = _fixed(tolerance)
    return abs(_fixed(a.lat) - _fixed(b.lat)) < limit and abs(_fixed(a.lon) - _fixed(b.lon)) < limit


class NodeIndexResolver:
    def __init__(
        self,
        connectors: ConnectorTable,
        *,
        tolerance: float = DEFAULT_TOLERANCE_DEG,
        allocator: Optional[NodeIndexAllocator] = None,
    ):
        if tolerance <= 0:
            raise ValueError("tolerance must be positive")
        self.connectors = connectors
        self.tolerance = float(tolerance)
        self.allocator = allocator or NodeIndexAllocator(len(connectors))
        if self.allocator.next_index < len(connectors):
            raise ValueError("allocator would mint indices reserved for connectors")
        self.unresolved: list[UnresolvedConnectorReference] = []

    def _match(self, segment: Segment, vertex: Coordinate) -> Optional[tuple[int, str]]:
        # First matching ref in list order wins.
        for ref in segment.connector_refs:
            found = self.connectors.lookup(ref.connector_id)
            if found is None:
                continue
            position, connector = found
            if within_tolerance(vertex, connector.coordinate, self.tolerance):
                return position, connector.id
        return None

    def _record_unresolved(self, segment: Segment, refs: Iterable[ConnectorRef]) -> None:
        for ref in refs:
            if self.connectors.lookup(ref.connector_id) is None:
                self.unresolved.append(
                    UnresolvedConnectorReference(ref.connector_id, record_id=segment.id)
                )
                logger.debug("Segment %s references unknown connector %s", segment.id, ref.connector_id)

    def resolve(self, segment: Segment) -> list[ResolvedVertex]:
        self._record_unresolved(segment, segment.connector_refs)
        vertices: list[ResolvedVertex] = []
        for point in segment.points:
            match = self._match(segment, point)
            if match is not None:
                position, connector_id = match
                vertices.append(ResolvedVertex(position, point, connector_id))
            else:
                vertices.append(ResolvedVertex(self.allocator.mint(), point))
        return vertices
