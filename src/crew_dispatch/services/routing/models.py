"""Routing domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, List


@dataclass(slots=True)
class RouteStop:
    job_id: str
    external_job_id: str
    order: int
    property_address: str
    lat: float
    lng: float
    arrive_by: datetime
    depart_by: datetime
    drive_mins_from_prev: int
    service_type: str
    estimated_duration_mins: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "external_job_id": self.external_job_id,
            "order": self.order,
            "property_address": self.property_address,
            "lat": self.lat,
            "lng": self.lng,
            "arrive_by": self.arrive_by.isoformat(),
            "depart_by": self.depart_by.isoformat(),
            "drive_mins_from_prev": self.drive_mins_from_prev,
            "service_type": self.service_type,
            "estimated_duration_mins": self.estimated_duration_mins,
        }


@dataclass(slots=True)
class CrewAssignment:
    crew_id: str
    crew_name: str
    stops: List[RouteStop]
    total_drive_mins: int
    total_service_mins: int
    utilization_percent: int


@dataclass(slots=True)
class PlanResult:
    plan_date: date
    assignments: List[CrewAssignment]
    unassigned_jobs: List[str]
    total_drive_mins: int
    overall_utilization: int
    warnings: List[str]
    unassigned_reasons: dict[str, str] = field(default_factory=dict)
    compute_time_ms: int = 0
    metadata: dict = field(default_factory=dict)

    def crew_job_ids(self) -> dict[str, list[str]]:
        return {a.crew_id: [stop.job_id for stop in a.stops] for a in self.assignments}

    def crew_route_stops(self) -> dict[str, list[dict[str, Any]]]:
        return {a.crew_id: [stop.to_dict() for stop in a.stops] for a in self.assignments}
