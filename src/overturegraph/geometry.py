"""WKB decoding for Overture segment and connector geometry.

Overture stores geometry as WKB in EPSG:4326 with x = longitude and y = latitude. Connectors are
points and segments are line strings; any other kind is rejected so a bad column mapping fails
loudly instead of producing a graph with nonsense vertices.

Line strings with fewer than 2 vertices are not a decoding error: GEOS refuses to build them, so
their vertices are read straight from the WKB and returned as-is. Whether such a segment is usable
is decided later (`graph.edges.ensure_routable`).
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Optional, Union

from shapely import wkb as shapely_wkb
from shapely.errors import ShapelyError

from overturegraph.ingestion.errors import GeometryTypeMismatch, MissingRequiredField

POINT = "Point"
LINE_STRING = "LineString"

_WKB_LINE_STRING = 2
# EWKB flag bits on the geometry type word.
_EWKB_Z = 0x80000000
_EWKB_M = 0x40000000
_EWKB_SRID = 0x20000000


@dataclass(frozen=True)
class Coordinate:
    lat: float
    lon: float


def _as_bytes(data: object) -> bytes:
    if data is None:
        raise MissingRequiredField("geometry")
    if isinstance(data, memoryview):
        data = data.tobytes()
    if isinstance(data, bytearray):
        data = bytes(data)
    if not isinstance(data, bytes):
        raise MissingRequiredField("geometry", reason=f"not WKB bytes ({type(data).__name__})")
    if not data:
        raise MissingRequiredField("geometry", reason="empty")
    return data


def _load(data: bytes):
    try:
        return shapely_wkb.loads(data)
    except (ShapelyError, ValueError, TypeError) as exc:
        raise MissingRequiredField("geometry", reason=f"undecodable ({exc})") from exc


def _coordinate(xy: tuple) -> Coordinate:
    return Coordinate(lat=float(xy[1]), lon=float(xy[0]))


def _short_line(data: bytes) -> Optional[tuple[Coordinate, ...]]:
    """Vertices of a WKB line string with fewer than 2 points; None for anything else."""

    try:
        order = "<" if data[0] == 1 else ">"
        (type_word,) = struct.unpack_from(f"{order}I", data, 1)
        offset = 5
        if type_word & _EWKB_SRID:
            offset += 4
        code = type_word & 0x0FFFFFFF
        if code % 1000 != _WKB_LINE_STRING:
            return None
        # ISO 1000/2000/3000 and EWKB flags both mark Z/M.
        has_z = bool(type_word & _EWKB_Z) or code // 1000 in (1, 3)
        has_m = bool(type_word & _EWKB_M) or code // 1000 in (2, 3)
        (count,) = struct.unpack_from(f"{order}I", data, offset)
        if count >= 2:
            return None
        offset += 4
        dims = 2 + int(has_z) + int(has_m)
        points = []
        for _ in range(count):
            values = struct.unpack_from(f"{order}{dims}d", data, offset)
            points.append(_coordinate(values))
            offset += 8 * dims
        return tuple(points)
    except (IndexError, struct.error):
        return None


def decode_point(data: object) -> Coordinate:
    geom = _load(_as_bytes(data))
    if geom.geom_type != POINT:
        raise GeometryTypeMismatch(POINT, geom.geom_type)
    if geom.is_empty:
        raise MissingRequiredField("geometry", reason="empty")
    return _coordinate(geom.coords[0])


def decode_line(data: object) -> tuple[Coordinate, ...]:
    raw = _as_bytes(data)
    short = _short_line(raw)
    if short is not None:
        return short
    geom = _load(raw)
    if geom.geom_type != LINE_STRING:
        raise GeometryTypeMismatch(LINE_STRING, geom.geom_type)
    return tuple(_coordinate(xy) for xy in geom.coords)


def decode_geometry(
    data: object, expected: str
) -> Union[Coordinate, tuple[Coordinate, ...]]:
    if expected == POINT:
        return decode_point(data)
    if expected == LINE_STRING:
        return decode_line(data)
    raise ValueError(f"Unsupported geometry kind: {expected}")
