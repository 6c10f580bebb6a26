from __future__ import annotations

from enum import IntEnum
from typing import Iterable, Optional

from overturegraph.ingestion.schemas import Segment, SpeedLimit


class RoadClass(IntEnum):
    MOTORWAY = 0
    TRUNK = 1
    PRIMARY = 2
    SECONDARY = 3
    TERTIARY = 4
    UNCLASSIFIED = 5
    RESIDENTIAL = 6
    SERVICE_OTHER = 7


class Surface(IntEnum):
    PAVED_SMOOTH = 0
    PAVED = 1
    PAVED_ROUGH = 2
    COMPACTED = 3
    DIRT = 4
    GRAVEL = 5
    PATH = 6
    IMPASSABLE = 7


class Use(IntEnum):
    ROAD = 0
    TRACK = 3
    DRIVEWAY = 4
    ALLEY = 5
    PARKING_AISLE = 6
    LIVING_STREET = 10
    SERVICE_ROAD = 11
    CYCLEWAY = 20
    SIDEWALK = 24
    FOOTWAY = 25
    STEPS = 27
    PATH = 29
    PEDESTRIAN = 30
    PEDESTRIAN_CROSSING = 32


_ROAD_CLASSES = {
    "motorway": RoadClass.MOTORWAY,
    "trunk": RoadClass.TRUNK,
    "primary": RoadClass.PRIMARY,
    "secondary": RoadClass.SECONDARY,
    "tertiary": RoadClass.TERTIARY,
    "residential": RoadClass.RESIDENTIAL,
    "unclassified": RoadClass.UNCLASSIFIED,
}

_SURFACES = {
    "metal": Surface.PAVED_SMOOTH,
    "rubber": Surface.PAVED_SMOOTH,
    "paved": Surface.PAVED,
    "asphalt": Surface.PAVED,
    "bricks": Surface.PAVED_ROUGH,
    "wood": Surface.PAVED_ROUGH,
    "paving_stones": Surface.COMPACTED,
    "cobblestone": Surface.COMPACTED,
    "tiles": Surface.COMPACTED,
    "dirt": Surface.DIRT,
    "unpaved": Surface.DIRT,
    "gravel": Surface.GRAVEL,
    "shells": Surface.GRAVEL,
    "rock": Surface.GRAVEL,
    "service": Surface.IMPASSABLE,
}

_USES = {
    "track": Use.TRACK,
    "driveway": Use.DRIVEWAY,
    "alley": Use.ALLEY,
    "parking_aisle": Use.PARKING_AISLE,
    "living_street": Use.LIVING_STREET,
    "service": Use.SERVICE_ROAD,
    "cycleway": Use.CYCLEWAY,
    "sidewalk": Use.SIDEWALK,
    "footway": Use.FOOTWAY,
    "steps": Use.STEPS,
    "path": Use.PATH,
    "pedestrian": Use.PEDESTRIAN,
    "crosswalk": Use.PEDESTRIAN_CROSSING,
}

# km/h when no speed limit is posted.
_DEFAULT_SPEEDS = {
    RoadClass.MOTORWAY: 120,
    RoadClass.TRUNK: 100,
    RoadClass.PRIMARY: 80,
    RoadClass.SECONDARY: 60,
    RoadClass.TERTIARY: 50,
    RoadClass.UNCLASSIFIED: 50,
    RoadClass.RESIDENTIAL: 30,
    RoadClass.SERVICE_OTHER: 20,
}

KPH_PER_MPH = 1.609344
MAX_SPEED_KPH = 255


def map_road_class(road_class: Optional[str]) -> RoadClass:
    if road_class is None:
        return RoadClass.SERVICE_OTHER
    return _ROAD_CLASSES.get(road_class, RoadClass.SERVICE_OTHER)


def map_surface(surface: Optional[str]) -> Surface:
    if surface is None:
        return Surface.COMPACTED
    return _SURFACES.get(surface, Surface.PATH)


def map_use(road_class: Optional[str]) -> Use:
    if road_class is None:
        return Use.FOOTWAY
    if road_class in _ROAD_CLASSES:
        return Use.ROAD
    return _USES.get(road_class, Use.FOOTWAY)


def default_speed_kph(road_class: RoadClass) -> int:
    return _DEFAULT_SPEEDS[road_class]


def posted_speed_kph(speed_limits: Iterable[SpeedLimit]) -> Optional[int]:
    for limit in speed_limits:
        if limit.max_speed is None:
            continue
        value = limit.max_speed
        if limit.unit.strip().lower() == "mph":
            value *= KPH_PER_MPH
        return int(round(value))
    return None


def _clamp_speed(speed: int) -> int:
    return max(0, min(MAX_SPEED_KPH, speed))


def speed_kph(segment: Segment) -> int:
    posted = posted_speed_kph(segment.speed_limits)
    if posted is not None:
        return _clamp_speed(posted)
    return default_speed_kph(map_road_class(segment.road_class))


def speed_limit_kph(segment: Segment) -> int:
    """Posted limit for the way record; 0 means untagged."""

    posted = posted_speed_kph(segment.speed_limits)
    return 0 if posted is None else _clamp_speed(posted)
