"""Soft zone-affinity bonus used when scoring crew candidates."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ...models.domain import CrewZoneAffinity, ServiceZone
from ..geospatial import point_in_zone


@dataclass(frozen=True, slots=True)
class ZoneMatch:
    bonus: float
    zone: Optional[ServiceZone]
    is_primary: bool


NO_MATCH = ZoneMatch(bonus=0.0, zone=None, is_primary=False)


def zone_match(
    lat: float,
    lng: float,
    affinity: CrewZoneAffinity | None,
    *,
    primary_bonus: float,
    backup_bonus: float,
) -> ZoneMatch:
    """Primary zones are checked first, each group by descending priority."""

    if affinity is None or not affinity.zones:
        return NO_MATCH

    primary = sorted((z for z in affinity.zones if z.is_primary), key=lambda z: -z.priority)
    for entry in primary:
        if point_in_zone(lat, lng, entry.zone):
            return ZoneMatch(bonus=primary_bonus, zone=entry.zone, is_primary=True)

    backup = sorted((z for z in affinity.zones if not z.is_primary), key=lambda z: -z.priority)
    for entry in backup:
        if point_in_zone(lat, lng, entry.zone):
            return ZoneMatch(bonus=backup_bonus, zone=entry.zone, is_primary=False)

    return NO_MATCH
