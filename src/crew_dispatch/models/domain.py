"""Domain models for jobs, crews, zones and dispatch plans."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Literal, NamedTuple, Optional

DispatchMode = Literal["nightly", "event"]
PlanStatus = Literal["draft", "pending_apply", "applied", "failed", "rejected"]
PlanEventType = Literal["computed", "applied", "failed"]


@dataclass(frozen=True, slots=True)
class JobForDispatch:
    """Snapshot of a scheduled job fetched from the field-service system."""

    id: str
    service_type: str
    property_address: str
    lat: Optional[float]
    lng: Optional[float]
    scheduled_at: datetime
    estimated_duration_mins: int
    title: str = "Untitled Job"
    property_id: str = ""
    client_id: str = ""
    client_name: str = "Unknown"
    assigned_crew_id: Optional[str] = None
    custom_fields: dict[str, str] = field(default_factory=dict)

    @property
    def has_coordinates(self) -> bool:
        return self.lat is not None and self.lng is not None


@dataclass(slots=True)
class Crew:
    """Schedulable crew on a business roster."""

    id: str
    name: str
    is_active: bool = True
    home_base_lat: Optional[float] = None
    home_base_lng: Optional[float] = None
    availability_start: Optional[str] = None
    availability_end: Optional[str] = None
    capacity: Optional[int] = None
    equipment_capabilities: tuple[str, ...] = ()
    external_crew_id: Optional[str] = None
    business_id: Optional[int] = None
    skills: tuple[str, ...] = ()
    service_radius_miles: float = 20.0
    daily_capacity_minutes: Optional[int] = None

    @property
    def has_home_base(self) -> bool:
        return self.home_base_lat is not None and self.home_base_lng is not None


@dataclass(frozen=True, slots=True)
class ServiceZone:
    """Geographic service area described by a bounding box or a circle."""

    id: str
    name: str
    is_active: bool = True
    min_lat: Optional[float] = None
    max_lat: Optional[float] = None
    min_lng: Optional[float] = None
    max_lng: Optional[float] = None
    center_lat: Optional[float] = None
    center_lng: Optional[float] = None
    radius_miles: Optional[float] = None

    @property
    def has_bounding_box(self) -> bool:
        return None not in (self.min_lat, self.max_lat, self.min_lng, self.max_lng)

    @property
    def has_circle(self) -> bool:
        return None not in (self.center_lat, self.center_lng, self.radius_miles)


@dataclass(frozen=True, slots=True)
class ZoneAffinity:
    zone: ServiceZone
    is_primary: bool
    priority: int = 0


@dataclass(slots=True)
class CrewZoneAffinity:
    crew_id: str
    zones: list[ZoneAffinity] = field(default_factory=list)


class PlanKey(NamedTuple):
    business_id: int
    plan_date: date
    mode: str

    def label(self) -> str:
        return f"{self.business_id}_{self.plan_date.isoformat()}_{self.mode}"


@dataclass(frozen=True, slots=True)
class DispatchRequest:
    """Trigger for computing the plan of one business, day and mode."""

    business_id: int
    account_id: str
    plan_date: date
    mode: DispatchMode = "event"
    trigger_event_id: Optional[str] = None

    @property
    def key(self) -> PlanKey:
        return PlanKey(self.business_id, self.plan_date, self.mode)


@dataclass(slots=True)
class DispatchPlan:
    """Persisted dispatch plan, unique per plan key."""

    business_id: int
    account_id: str
    plan_date: date
    mode: str
    status: PlanStatus = "draft"
    id: Optional[int] = None
    trigger_event_id: Optional[str] = None
    total_jobs: int = 0
    total_crews: int = 0
    crew_assignments: dict[str, list[str]] = field(default_factory=dict)
    route_stops: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    unassigned_jobs: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    total_drive_minutes: int = 0
    utilization_percent: int = 0
    algorithm_version: str = "v1-greedy"
    compute_time_ms: int = 0
    input_snapshot: dict[str, Any] = field(default_factory=dict)
    applied_at: Optional[datetime] = None
    apply_error: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def key(self) -> PlanKey:
        return PlanKey(self.business_id, self.plan_date, self.mode)


@dataclass(frozen=True, slots=True)
class DispatchPlanEvent:
    """Append-only audit record for a dispatch plan."""

    plan_id: int
    event_type: PlanEventType
    actor: str
    details: dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None
