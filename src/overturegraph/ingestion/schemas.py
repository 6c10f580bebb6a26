from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from overturegraph.geometry import Coordinate

# Minimum column contract for the two Overture transportation tables.
REQUIRED_COLUMNS: dict[str, tuple[str, ...]] = {
    "connector": ("id", "geometry"),
    "segment": ("id", "geometry", "connectors"),
}

# Columns read when present; everything else in the table is ignored.
OPTIONAL_SEGMENT_COLUMNS: tuple[str, ...] = (
    "names",
    "class",
    "subtype",
    "surface",
    "road_surface",
    "access_restrictions",
    "speed_limits",
)


@dataclass(frozen=True)
class Connector:
    id: str
    coordinate: Coordinate


@dataclass(frozen=True)
class ConnectorRef:
    connector_id: str
    at: float


@dataclass(frozen=True)
class AccessRestriction:
    access_type: str
    modes: tuple[str, ...] = ()


@dataclass(frozen=True)
class SpeedLimit:
    max_speed: Optional[float]
    unit: str = "km/h"


@dataclass(frozen=True)
class Segment:
    id: str
    name: str
    road_class: Optional[str]
    points: tuple[Coordinate, ...]
    connector_refs: tuple[ConnectorRef, ...]
    subtype: Optional[str] = None
    surface: Optional[str] = None
    access_restrictions: tuple[AccessRestriction, ...] = field(default=())
    speed_limits: tuple[SpeedLimit, ...] = field(default=())


@dataclass(frozen=True)
class ImportStats:
    connector_rows: int
    segment_rows: int
    skipped_connectors: int
    skipped_segments: int


@dataclass(frozen=True)
class OvertureData:
    connectors: list[Connector]
    segments: list[Segment]
    stats: ImportStats
