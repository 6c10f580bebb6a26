"""Per-segment travel-mode permissions.

Several policies exist and none is authoritative yet, so they sit behind one interface
(`PermissionResolver.resolve_permissions`) and configuration picks one:
- classification: coarse allow/deny from the road class alone.
- access_rules: Overture access restrictions with qualifier precedence
  (designated > denied > allowed; equal precedence, last rule wins), resolved per mode.
- layered: access rules when a segment carries any, classification otherwise.

A segment is routable when pedestrians or cars may use it; other segments produce no output.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Iterable, Optional, Protocol

from overturegraph.ingestion.schemas import AccessRestriction, Segment
from overturegraph.settings import AppConfig, ClassificationSection, get_config

PEDESTRIAN = "pedestrian"
BICYCLE = "bicycle"
BUS = "bus"
TRUCK = "truck"
AUTO = "auto"

MODES = (PEDESTRIAN, BICYCLE, BUS, TRUCK, AUTO)

# Checked in order, first hit wins: foot > bicycle > bus > hgv/truck > car/motor_vehicle.
_MODE_TOKENS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("foot", "pedestrian"), PEDESTRIAN),
    (("bicycle",), BICYCLE),
    (("bus",), BUS),
    (("hgv", "heavy_goods_vehicle", "truck"), TRUCK),
    (("car", "motor_vehicle", "vehicle"), AUTO),
)

# Subtypes that are never roads; they override whatever class the segment carries.
_NON_ROAD_SUBTYPES = {"rail": "rail", "water": "rail"}

STRATEGIES = ("classification", "access_rules", "layered")


@dataclass(frozen=True)
class Permissions:
    pedestrian_allowed: bool
    auto_allowed: bool
    bicycle_allowed: bool = False
    bus_allowed: bool = False
    truck_allowed: bool = False

    @property
    def is_routable(self) -> bool:
        return self.pedestrian_allowed or self.auto_allowed


class PermissionResolver(Protocol):
    def resolve_permissions(self, segment: Segment) -> Permissions: ...


class AccessPrecedence(IntEnum):
    ALLOWED = 1
    DENIED = 2
    DESIGNATED = 3


def parse_qualifier(access_type: str) -> tuple[AccessPrecedence, bool]:
    """Return (precedence, allow) for an access type; unknown qualifiers count as allowed."""

    if access_type.startswith("designated"):
        return AccessPrecedence.DESIGNATED, True
    if access_type.startswith("denied"):
        return AccessPrecedence.DENIED, False
    return AccessPrecedence.ALLOWED, True


def mode_for_token(token: str) -> Optional[str]:
    for needles, mode in _MODE_TOKENS:
        if any(needle in token for needle in needles):
            return mode
    return None


def restriction_modes(restriction: AccessRestriction) -> list[str]:
    """Modes a restriction applies to: from its combined token, else from its `when.mode` list."""

    mode = mode_for_token(restriction.access_type)
    if mode is not None:
        return [mode]
    modes: list[str] = []
    for token in restriction.modes:
        resolved = mode_for_token(token)
        if resolved is not None and resolved not in modes:
            modes.append(resolved)
    return modes


class ModeAccess:
    """Allow/deny state per travel mode plus the precedence that last set it."""

    def __init__(self) -> None:
        self.allowed: dict[str, bool] = {mode: True for mode in MODES}
        self.set_by: dict[str, Optional[AccessPrecedence]] = {mode: None for mode in MODES}

    def apply(self, mode: str, precedence: AccessPrecedence, allow: bool) -> bool:
        current = self.set_by[mode]
        if current is not None and precedence < current:
            return False
        self.allowed[mode] = allow
        self.set_by[mode] = precedence
        return True

    def to_permissions(self) -> Permissions:
        return Permissions(
            pedestrian_allowed=self.allowed[PEDESTRIAN],
            auto_allowed=self.allowed[AUTO],
            bicycle_allowed=self.allowed[BICYCLE],
            bus_allowed=self.allowed[BUS],
            truck_allowed=self.allowed[TRUCK],
        )


def map_access_restrictions(restrictions: Iterable[AccessRestriction]) -> Permissions:
    access = ModeAccess()
    for restriction in restrictions:
        precedence, allow = parse_qualifier(restriction.access_type)
        for mode in restriction_modes(restriction):
            access.apply(mode, precedence, allow)
    return access.to_permissions()


def effective_class(segment: Segment) -> Optional[str]:
    if segment.subtype in _NON_ROAD_SUBTYPES:
        return _NON_ROAD_SUBTYPES[segment.subtype]
    return segment.road_class or None


class ClassificationPermissionResolver:
    def __init__(
        self,
        *,
        pedestrian_denied_classes: Iterable[str],
        auto_denied_classes: Iterable[str],
        deny_auto_without_class: bool = True,
    ):
        self.pedestrian_denied_classes = frozenset(pedestrian_denied_classes)
        self.auto_denied_classes = frozenset(auto_denied_classes)
        self.deny_auto_without_class = deny_auto_without_class

    @classmethod
    def from_section(cls, section: ClassificationSection) -> "ClassificationPermissionResolver":
        return cls(
            pedestrian_denied_classes=section.pedestrian_denied_classes,
            auto_denied_classes=section.auto_denied_classes,
            deny_auto_without_class=section.deny_auto_without_class,
        )

    def resolve_permissions(self, segment: Segment) -> Permissions:
        road_class = effective_class(segment)
        pedestrian = road_class not in self.pedestrian_denied_classes
        if road_class is None:
            auto = not self.deny_auto_without_class
        else:
            auto = road_class not in self.auto_denied_classes
        # Bus and truck follow cars, bicycles follow pedestrians.
        return Permissions(
            pedestrian_allowed=pedestrian,
            auto_allowed=auto,
            bicycle_allowed=pedestrian,
            bus_allowed=auto,
            truck_allowed=auto,
        )


class AccessRulePermissionResolver:
    def resolve_permissions(self, segment: Segment) -> Permissions:
        return map_access_restrictions(segment.access_restrictions)


class LayeredPermissionResolver:
    def __init__(self, classification: ClassificationPermissionResolver):
        self.classification = classification
        self.access_rules = AccessRulePermissionResolver()

    def resolve_permissions(self, segment: Segment) -> Permissions:
        if segment.access_restrictions:
            return self.access_rules.resolve_permissions(segment)
        return self.classification.resolve_permissions(segment)


def resolver_from_config(
    config: Optional[AppConfig] = None, *, strategy: Optional[str] = None
) -> PermissionResolver:
    resolved = config or get_config()
    section = resolved.permissions
    name = strategy or section.strategy
    if name not in STRATEGIES:
        raise ValueError(f"Unknown permission strategy {name!r}; expected one of {STRATEGIES}")

    classification = ClassificationPermissionResolver.from_section(section.classification)
    if name == "classification":
        return classification
    if name == "access_rules":
        return AccessRulePermissionResolver()
    return LayeredPermissionResolver(classification)
