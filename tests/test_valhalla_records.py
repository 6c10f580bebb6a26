from __future__ import annotations

import struct

import pytest

from overturegraph.ingestion.errors import FieldOverflow
from overturegraph.valhalla.records import (
    WAY_NODE_RECORD_SIZE,
    WAY_RECORD_SIZE,
    WayNodeRecord,
    WayRecord,
    decode_lat_lon,
    decode_way_nodes,
    decode_ways,
    encode_lat_lon,
)


def _way(**kwargs) -> WayRecord:
    values = dict(way_id=7, name_index=3, node_count=4, surface=3, road_class=6, use=0, speed=30)
    values.update(kwargs)
    return WayRecord(**values)


def test_record_sizes() -> None:
    assert WAY_RECORD_SIZE == 320
    assert WAY_NODE_RECORD_SIZE == 56
    assert len(_way().encode()) == 320
    assert len(WayNodeRecord.at(0, 0, 0, 0.0, 0.0).encode()) == 56


def test_way_record_layout() -> None:
    data = _way(pedestrian=True, auto=True, bicycle=True, bus=False, truck=True, speed_limit=50, speed=50).encode()

    assert struct.unpack_from("<Q", data, 0)[0] == 7
    assert struct.unpack_from("<I", data, 56)[0] == 3
    attributes = struct.unpack_from("<I", data, 292)[0]
    assert (attributes >> 7) & 0b111 == 3
    assert attributes & (1 << 14)
    assert attributes & (1 << 20)
    classification = struct.unpack_from("<I", data, 296)[0]
    assert classification & 0b111 == 6
    assert (classification >> 4) & 0x3F == 0
    assert classification >> 30 == 0b11
    assert struct.unpack_from("<H", data, 300)[0] == (1 << 0) | (1 << 8) | (1 << 3) | (1 << 11)
    assert struct.unpack_from("<H", data, 302)[0] == (1 << 10) | (1 << 11)
    assert struct.unpack_from("<H", data, 304)[0] == 4
    assert data[306] == 50
    assert data[307] == 50
    assert data[8:56].count(0) == 48


def test_untagged_speed_leaves_flag_clear() -> None:
    attributes = struct.unpack_from("<I", _way(speed_limit=0).encode(), 292)[0]
    assert not attributes & (1 << 20)


def test_way_record_decodes_what_it_encodes() -> None:
    way = _way(use=25, pedestrian=True, drive_on_right=False)
    assert WayRecord.decode(way.encode()) == way


def test_way_node_layout() -> None:
    record = WayNodeRecord.at(5, 2, 123456, 25.0, 121.5, intersection=True)
    data = record.encode()
    assert struct.unpack_from("<Q", data, 0)[0] == 123456
    flags = struct.unpack_from("<I", data, 24)[0]
    assert flags & 0xFFF == 2047
    assert flags & (1 << 16)
    assert struct.unpack_from("<I", data, 36)[0] == 3_015_000_000
    assert struct.unpack_from("<I", data, 40)[0] == 1_150_000_000
    assert struct.unpack_from("<II", data, 48) == (5, 2)

    not_intersection = WayNodeRecord.at(0, 0, 1, 0.0, 0.0, intersection=False).encode()
    assert not struct.unpack_from("<I", not_intersection, 24)[0] & (1 << 16)


def test_lat_lon_fixed_point() -> None:
    assert encode_lat_lon(0.0, 0.0) == (900_000_000, 1_800_000_000)
    assert encode_lat_lon(-90.0, -180.0) == (0, 0)
    lat, lon = decode_lat_lon(*encode_lat_lon(25.0339639, 121.5644722))
    assert lat == pytest.approx(25.0339639, abs=1e-7)
    assert lon == pytest.approx(121.5644722, abs=1e-7)


@pytest.mark.parametrize(("lat", "lon"), [(-90.5, 0.0), (0.0, -181.0), (0.0, 250.0)])
def test_out_of_range_coordinates_overflow(lat: float, lon: float) -> None:
    with pytest.raises(FieldOverflow):
        encode_lat_lon(lat, lon)


def test_field_overflow_names_the_field() -> None:
    with pytest.raises(FieldOverflow) as excinfo:
        _way(speed=256).encode()
    assert excinfo.value.field == "speed_"
    assert excinfo.value.bits == 8

    with pytest.raises(FieldOverflow):
        _way(node_count=1 << 16).encode()


def test_decode_streams() -> None:
    ways = [_way(way_id=1), _way(way_id=2)]
    assert decode_ways(b"".join(w.encode() for w in ways)) == ways
    nodes = [WayNodeRecord.at(0, i, i, 0.0, float(i)) for i in range(3)]
    assert decode_way_nodes(b"".join(n.encode() for n in nodes)) == nodes
    with pytest.raises(ValueError):
        decode_ways(b"\x00" * 10)
