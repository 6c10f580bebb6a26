"""Field-by-field codec for Valhalla's `OSMWay` and `OSMWayNode` binary records.

`valhalla_build_tiles` reads `ways.bin` and `way_nodes.bin` as flat arrays of its in-memory
structs (x86-64, little-endian, GCC bit-field packing: LSB first within each declared storage
unit). The offsets below are that layout written out explicitly; fields this converter does not
populate stay zero.

OSMWay (320 bytes, 8-byte aligned):
- u64 osmwayid_ @0, 71 x u32 string indexes @8..291 (name_index_ @56)
- u32 attribute bits @292, u32 classification bits @296
- u16 access bits @300, u16 bike bits @302, u16 nodecount_ @304
- u8 speed_limit_ @306, speed_ @307 (then 6 more u8/i8 fields and padding)

OSMWayNode (56 bytes) = OSMNode (48 bytes) + u32 way_index @48 + u32 way_shape_node_index @52.
OSMNode: u64 osmid_ @0, two u64 bit words @8/@16, u32 flag bits @24 (access_ 0-11,
intersection_ bit 16), u32 bss_info_ @28, u32 linguistic index @32, u32 lng7_ @36, u32 lat7_ @40.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Iterable

from overturegraph.ingestion.errors import FieldOverflow

WAY_RECORD_SIZE = 320
NODE_RECORD_SIZE = 48
WAY_NODE_RECORD_SIZE = NODE_RECORD_SIZE + 8

COORDINATE_SCALE = 10**7
LAT_OFFSET = 90.0
LON_OFFSET = 180.0

# Valhalla kAllAccess without the wheelchair bit.
DEFAULT_NODE_ACCESS = 2047


@dataclass(frozen=True)
class BitField:
    name: str
    shift: int
    width: int


def _check_uint(name: str, value: int, bits: int) -> int:
    value = int(value)
    if value < 0 or value >= (1 << bits):
        raise FieldOverflow(name, value, bits)
    return value


def pack_bits(fields: Iterable[tuple[BitField, int]]) -> int:
    word = 0
    for field, value in fields:
        word |= _check_uint(field.name, value, field.width) << field.shift
    return word


def unpack_bits(word: int, field: BitField) -> int:
    return (word >> field.shift) & ((1 << field.width) - 1)


def encode_lat_lon(lat: float, lon: float) -> tuple[int, int]:
    lat7 = round((lat + LAT_OFFSET) * COORDINATE_SCALE)
    lon7 = round((lon + LON_OFFSET) * COORDINATE_SCALE)
    return _check_uint("lat7_", lat7, 32), _check_uint("lng7_", lon7, 32)


def decode_lat_lon(lat7: int, lon7: int) -> tuple[float, float]:
    return lat7 / COORDINATE_SCALE - LAT_OFFSET, lon7 / COORDINATE_SCALE - LON_OFFSET


# OSMWay
WAY_ID_OFFSET = 0
WAY_NAME_INDEX_OFFSET = 56
WAY_ATTRIBUTES_OFFSET = 292
WAY_CLASSIFICATION_OFFSET = 296
WAY_ACCESS_OFFSET = 300
WAY_BIKE_OFFSET = 302
WAY_NODECOUNT_OFFSET = 304
WAY_SPEED_LIMIT_OFFSET = 306
WAY_SPEED_OFFSET = 307

SURFACE = BitField("surface_", 7, 3)
DRIVE_ON_RIGHT = BitField("drive_on_right_", 14, 1)
TAGGED_SPEED = BitField("tagged_speed_", 20, 1)

ROAD_CLASS = BitField("road_class_", 0, 3)
USE = BitField("use_", 4, 6)
PEDESTRIAN_FORWARD = BitField("pedestrian_forward_", 30, 1)
PEDESTRIAN_BACKWARD = BitField("pedestrian_backward_", 31, 1)

AUTO_FORWARD = BitField("auto_forward_", 0, 1)
BUS_FORWARD = BitField("bus_forward_", 1, 1)
TRUCK_FORWARD = BitField("truck_forward_", 3, 1)
AUTO_BACKWARD = BitField("auto_backward_", 8, 1)
BUS_BACKWARD = BitField("bus_backward_", 9, 1)
TRUCK_BACKWARD = BitField("truck_backward_", 11, 1)

BIKE_FORWARD = BitField("bike_forward_", 10, 1)
BIKE_BACKWARD = BitField("bike_backward_", 11, 1)

# OSMNode / OSMWayNode
NODE_ID_OFFSET = 0
NODE_FLAGS_OFFSET = 24
NODE_LNG7_OFFSET = 36
NODE_LAT7_OFFSET = 40
WAY_INDEX_OFFSET = 48
WAY_SHAPE_INDEX_OFFSET = 52

NODE_ACCESS = BitField("access_", 0, 12)
NODE_INTERSECTION = BitField("intersection_", 16, 1)


@dataclass(frozen=True)
class WayRecord:
    way_id: int
    name_index: int
    node_count: int
    surface: int
    road_class: int
    use: int
    speed: int
    speed_limit: int = 0
    drive_on_right: bool = True
    pedestrian: bool = False
    auto: bool = False
    bicycle: bool = False
    bus: bool = False
    truck: bool = False

    def encode(self) -> bytes:
        buf = bytearray(WAY_RECORD_SIZE)
        struct.pack_into("<Q", buf, WAY_ID_OFFSET, _check_uint("osmwayid_", self.way_id, 64))
        struct.pack_into("<I", buf, WAY_NAME_INDEX_OFFSET, _check_uint("name_index_", self.name_index, 32))

        attributes = pack_bits(
            [
                (SURFACE, self.surface),
                (DRIVE_ON_RIGHT, int(self.drive_on_right)),
                (TAGGED_SPEED, int(self.speed_limit > 0)),
            ]
        )
        classification = pack_bits(
            [
                (ROAD_CLASS, self.road_class),
                (USE, self.use),
                (PEDESTRIAN_FORWARD, int(self.pedestrian)),
                (PEDESTRIAN_BACKWARD, int(self.pedestrian)),
            ]
        )
        access = pack_bits(
            [
                (AUTO_FORWARD, int(self.auto)),
                (AUTO_BACKWARD, int(self.auto)),
                (BUS_FORWARD, int(self.bus)),
                (BUS_BACKWARD, int(self.bus)),
                (TRUCK_FORWARD, int(self.truck)),
                (TRUCK_BACKWARD, int(self.truck)),
            ]
        )
        bike = pack_bits([(BIKE_FORWARD, int(self.bicycle)), (BIKE_BACKWARD, int(self.bicycle))])

        struct.pack_into("<I", buf, WAY_ATTRIBUTES_OFFSET, attributes)
        struct.pack_into("<I", buf, WAY_CLASSIFICATION_OFFSET, classification)
        struct.pack_into("<H", buf, WAY_ACCESS_OFFSET, access)
        struct.pack_into("<H", buf, WAY_BIKE_OFFSET, bike)
        struct.pack_into("<H", buf, WAY_NODECOUNT_OFFSET, _check_uint("nodecount_", self.node_count, 16))
        struct.pack_into("<B", buf, WAY_SPEED_LIMIT_OFFSET, _check_uint("speed_limit_", self.speed_limit, 8))
        struct.pack_into("<B", buf, WAY_SPEED_OFFSET, _check_uint("speed_", self.speed, 8))
        return bytes(buf)

    @classmethod
    def decode(cls, data: bytes) -> "WayRecord":
        if len(data) != WAY_RECORD_SIZE:
            raise ValueError(f"OSMWay record must be {WAY_RECORD_SIZE} bytes, got {len(data)}")
        (attributes,) = struct.unpack_from("<I", data, WAY_ATTRIBUTES_OFFSET)
        (classification,) = struct.unpack_from("<I", data, WAY_CLASSIFICATION_OFFSET)
        (access,) = struct.unpack_from("<H", data, WAY_ACCESS_OFFSET)
        (bike,) = struct.unpack_from("<H", data, WAY_BIKE_OFFSET)
        return cls(
            way_id=struct.unpack_from("<Q", data, WAY_ID_OFFSET)[0],
            name_index=struct.unpack_from("<I", data, WAY_NAME_INDEX_OFFSET)[0],
            node_count=struct.unpack_from("<H", data, WAY_NODECOUNT_OFFSET)[0],
            surface=unpack_bits(attributes, SURFACE),
            road_class=unpack_bits(classification, ROAD_CLASS),
            use=unpack_bits(classification, USE),
            speed=data[WAY_SPEED_OFFSET],
            speed_limit=data[WAY_SPEED_LIMIT_OFFSET],
            drive_on_right=bool(unpack_bits(attributes, DRIVE_ON_RIGHT)),
            pedestrian=bool(unpack_bits(classification, PEDESTRIAN_FORWARD)),
            auto=bool(unpack_bits(access, AUTO_FORWARD)),
            bicycle=bool(unpack_bits(bike, BIKE_FORWARD)),
            bus=bool(unpack_bits(access, BUS_FORWARD)),
            truck=bool(unpack_bits(access, TRUCK_FORWARD)),
        )


@dataclass(frozen=True)
class WayNodeRecord:
    way_index: int
    shape_index: int
    node_id: int
    lat7: int
    lon7: int
    intersection: bool = True
    access: int = DEFAULT_NODE_ACCESS

    @classmethod
    def at(
        cls,
        way_index: int,
        shape_index: int,
        node_id: int,
        lat: float,
        lon: float,
        *,
        intersection: bool = True,
        access: int = DEFAULT_NODE_ACCESS,
    ) -> "WayNodeRecord":
        lat7, lon7 = encode_lat_lon(lat, lon)
        return cls(way_index, shape_index, node_id, lat7, lon7, intersection, access)

    @property
    def lat_lon(self) -> tuple[float, float]:
        return decode_lat_lon(self.lat7, self.lon7)

    def encode(self) -> bytes:
        buf = bytearray(WAY_NODE_RECORD_SIZE)
        flags = pack_bits([(NODE_ACCESS, self.access), (NODE_INTERSECTION, int(self.intersection))])
        struct.pack_into("<Q", buf, NODE_ID_OFFSET, _check_uint("osmid_", self.node_id, 64))
        struct.pack_into("<I", buf, NODE_FLAGS_OFFSET, flags)
        struct.pack_into("<I", buf, NODE_LNG7_OFFSET, _check_uint("lng7_", self.lon7, 32))
        struct.pack_into("<I", buf, NODE_LAT7_OFFSET, _check_uint("lat7_", self.lat7, 32))
        struct.pack_into("<I", buf, WAY_INDEX_OFFSET, _check_uint("way_index", self.way_index, 32))
        struct.pack_into(
            "<I", buf, WAY_SHAPE_INDEX_OFFSET, _check_uint("way_shape_node_index", self.shape_index, 32)
        )
        return bytes(buf)

    @classmethod
    def decode(cls, data: bytes) -> "WayNodeRecord":
        if len(data) != WAY_NODE_RECORD_SIZE:
            raise ValueError(f"OSMWayNode record must be {WAY_NODE_RECORD_SIZE} bytes, got {len(data)}")
        (flags,) = struct.unpack_from("<I", data, NODE_FLAGS_OFFSET)
        return cls(
            way_index=struct.unpack_from("<I", data, WAY_INDEX_OFFSET)[0],
            shape_index=struct.unpack_from("<I", data, WAY_SHAPE_INDEX_OFFSET)[0],
            node_id=struct.unpack_from("<Q", data, NODE_ID_OFFSET)[0],
            lat7=struct.unpack_from("<I", data, NODE_LAT7_OFFSET)[0],
            lon7=struct.unpack_from("<I", data, NODE_LNG7_OFFSET)[0],
            intersection=bool(unpack_bits(flags, NODE_INTERSECTION)),
            access=unpack_bits(flags, NODE_ACCESS),
        )


def iter_records(data: bytes, size: int) -> Iterable[bytes]:
    if len(data) % size:
        raise ValueError(f"Buffer of {len(data)} bytes is not a multiple of the {size}-byte record size")
    for start in range(0, len(data), size):
        yield data[start : start + size]


def decode_ways(data: bytes) -> list[WayRecord]:
    return [WayRecord.decode(chunk) for chunk in iter_records(data, WAY_RECORD_SIZE)]


def decode_way_nodes(data: bytes) -> list[WayNodeRecord]:
    return [WayNodeRecord.decode(chunk) for chunk in iter_records(data, WAY_NODE_RECORD_SIZE)]
