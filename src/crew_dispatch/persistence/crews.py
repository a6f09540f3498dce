"""Crew roster and zone-affinity lookups."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional, Protocol

from ..config import parse_time_of_day
from ..db.supabase import get_supabase_client
from ..models.domain import Crew, CrewZoneAffinity, ServiceZone, ZoneAffinity

logger = logging.getLogger(__name__)

CREWS_TABLE = "crew_roster"
ZONES_TABLE = "service_zones"
CREW_ZONES_TABLE = "crew_zone_assignments"


class CrewRoster(Protocol):
    def get_active_crews(self, business_id: int) -> list[Crew]: ...

    def get_crew(self, crew_id: str) -> Optional[Crew]: ...

    def get_zone_affinities(self, business_id: int) -> dict[str, CrewZoneAffinity]: ...

    def get_active_business_ids(self) -> list[int]: ...


class InMemoryCrewRoster:
    """Roster held in memory; used by tests and the preview endpoint."""

    def __init__(
        self,
        crews: Iterable[Crew] = (),
        zone_affinities: Optional[dict[str, CrewZoneAffinity]] = None,
    ) -> None:
        self._crews: dict[str, Crew] = {crew.id: crew for crew in crews}
        self._affinities = dict(zone_affinities or {})

    def add_crew(self, crew: Crew) -> None:
        self._crews[crew.id] = crew

    def set_zone_affinity(self, affinity: CrewZoneAffinity) -> None:
        self._affinities[affinity.crew_id] = affinity

    def get_active_crews(self, business_id: int) -> list[Crew]:
        return [
            crew
            for crew in self._crews.values()
            if crew.is_active and crew.business_id in (None, business_id)
        ]

    def get_crew(self, crew_id: str) -> Optional[Crew]:
        return self._crews.get(crew_id)

    def get_zone_affinities(self, business_id: int) -> dict[str, CrewZoneAffinity]:
        crew_ids = {crew.id for crew in self.get_active_crews(business_id)}
        return {crew_id: aff for crew_id, aff in self._affinities.items() if crew_id in crew_ids}

    def get_active_business_ids(self) -> list[int]:
        return sorted(
            {crew.business_id for crew in self._crews.values() if crew.is_active and crew.business_id is not None}
        )


def _optional_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    return float(value)


def _str_tuple(value: Any) -> tuple[str, ...]:
    if not value:
        return ()
    if isinstance(value, str):
        return tuple(item.strip() for item in value.split(",") if item.strip())
    return tuple(str(item) for item in value)


def _time_of_day(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    text = str(value)
    parse_time_of_day(text)
    return text


def row_to_crew(row: dict[str, Any]) -> Crew:
    """Map a ``crew_roster`` row to a :class:`Crew`; raises on malformed rows."""

    if row.get("id") is None:
        raise ValueError("Crew row has no id")
    return Crew(
        id=str(row["id"]),
        name=row.get("name") or f"Crew {row['id']}",
        is_active=bool(row.get("is_active", True)),
        home_base_lat=_optional_float(row.get("home_base_lat")),
        home_base_lng=_optional_float(row.get("home_base_lng")),
        availability_start=_time_of_day(row.get("availability_start")),
        availability_end=_time_of_day(row.get("availability_end")),
        capacity=int(row["capacity"]) if row.get("capacity") else None,
        equipment_capabilities=_str_tuple(row.get("equipment_capabilities")),
        external_crew_id=str(row["external_crew_id"]) if row.get("external_crew_id") else None,
        business_id=int(row["business_id"]) if row.get("business_id") is not None else None,
        skills=_str_tuple(row.get("skills")),
        service_radius_miles=float(row.get("service_radius_miles") or 20.0),
        daily_capacity_minutes=(
            int(row["daily_capacity_minutes"]) if row.get("daily_capacity_minutes") is not None else None
        ),
    )


def row_to_zone(row: dict[str, Any]) -> ServiceZone:
    return ServiceZone(
        id=str(row["id"]),
        name=row.get("name") or str(row["id"]),
        is_active=bool(row.get("is_active", True)),
        min_lat=_optional_float(row.get("min_lat")),
        max_lat=_optional_float(row.get("max_lat")),
        min_lng=_optional_float(row.get("min_lng")),
        max_lng=_optional_float(row.get("max_lng")),
        center_lat=_optional_float(row.get("center_lat")),
        center_lng=_optional_float(row.get("center_lng")),
        radius_miles=_optional_float(row.get("radius_miles")),
    )


class SupabaseCrewRoster:
    """Roster backed by the ``crew_roster`` and zone tables."""

    def __init__(self, client=None) -> None:
        self._client = client or get_supabase_client()
        if self._client is None:
            raise ValueError("Supabase is not configured; set DISPATCH_SUPABASE_URL and DISPATCH_SUPABASE_KEY.")

    def _rows_to_crews(self, rows: Iterable[dict[str, Any]]) -> list[Crew]:
        crews: list[Crew] = []
        for row in rows:
            try:
                crews.append(row_to_crew(row))
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping invalid crew row %s: %s", row.get("id"), exc)
        return crews

    def get_active_crews(self, business_id: int) -> list[Crew]:
        response = (
            self._client.table(CREWS_TABLE)
            .select("*")
            .eq("business_id", business_id)
            .eq("is_active", True)
            .order("id")
            .execute()
        )
        return self._rows_to_crews(response.data or [])

    def get_crew(self, crew_id: str) -> Optional[Crew]:
        response = self._client.table(CREWS_TABLE).select("*").eq("id", crew_id).limit(1).execute()
        crews = self._rows_to_crews(response.data or [])
        return crews[0] if crews else None

    def get_zone_affinities(self, business_id: int) -> dict[str, CrewZoneAffinity]:
        crew_ids = [crew.id for crew in self.get_active_crews(business_id)]
        if not crew_ids:
            return {}

        assignments = (
            self._client.table(CREW_ZONES_TABLE)
            .select("crew_id, zone_id, is_primary, priority")
            .in_("crew_id", crew_ids)
            .execute()
        ).data or []
        zone_ids = sorted({str(row["zone_id"]) for row in assignments if row.get("zone_id") is not None})
        if not zone_ids:
            return {}

        zone_rows = self._client.table(ZONES_TABLE).select("*").in_("id", zone_ids).execute().data or []
        zones = {str(row["id"]): row_to_zone(row) for row in zone_rows}

        affinities: dict[str, CrewZoneAffinity] = {}
        for row in assignments:
            zone = zones.get(str(row.get("zone_id")))
            if zone is None:
                logger.warning("Crew %s references unknown zone %s", row.get("crew_id"), row.get("zone_id"))
                continue
            crew_id = str(row["crew_id"])
            affinity = affinities.setdefault(crew_id, CrewZoneAffinity(crew_id=crew_id))
            affinity.zones.append(
                ZoneAffinity(zone=zone, is_primary=bool(row.get("is_primary")), priority=int(row.get("priority") or 0))
            )
        return affinities

    def get_active_business_ids(self) -> list[int]:
        response = self._client.table(CREWS_TABLE).select("business_id").eq("is_active", True).execute()
        return sorted({int(row["business_id"]) for row in (response.data or []) if row.get("business_id") is not None})
