"""Geospatial helper functions."""

from __future__ import annotations

import math

from shapely.geometry import Point, box

from ..config import settings
from ..models.domain import ServiceZone

Coordinate = tuple[float, float]


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves rounded away from zero."""

    return int(math.floor(value + 0.5)) if value >= 0 else -int(math.floor(-value + 0.5))


def haversine_miles(a: Coordinate, b: Coordinate, *, radius: float | None = None) -> float:
    """Great-circle distance in miles between two (lat, lng) points."""

    lat1, lon1 = a
    lat2, lon2 = b
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    h = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))
    return (radius or settings.earth_radius_miles) * c


def estimate_drive_minutes(distance_miles: float, *, speed_mph: float | None = None) -> int:
    """Drive minutes for a route leg at the assumed local average speed."""

    speed = speed_mph or settings.route_leg_speed_mph
    return round_half_up(distance_miles / speed * 60)


def estimate_travel_minutes(distance_miles: float, *, speed_mph: float | None = None) -> int:
    """Point-to-point travel estimate used outside route building."""

    if distance_miles <= 0:
        return 0
    speed = speed_mph or settings.travel_estimate_speed_mph
    return round_half_up(distance_miles / speed * 60)


def point_in_zone(lat: float, lng: float, zone: ServiceZone) -> bool:
    """Return True if the point falls inside an active zone.

    Bounding boxes take precedence over circles; boundaries count as inside.
    """

    if not zone.is_active:
        return False
    if zone.has_bounding_box:
        area = box(zone.min_lng, zone.min_lat, zone.max_lng, zone.max_lat)
        return area.covers(Point(lng, lat))
    if zone.has_circle:
        distance = haversine_miles((lat, lng), (zone.center_lat, zone.center_lng))
        return distance <= zone.radius_miles
    return False
