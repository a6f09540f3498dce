"""Pydantic request/response models for dispatch endpoints."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Literal, Optional, Sequence

from pydantic import BaseModel, Field, field_validator

from ..config import parse_time_of_day
from ..models.domain import Crew, CrewZoneAffinity, DispatchPlan, DispatchPlanEvent, JobForDispatch, ServiceZone, ZoneAffinity
from ..services.routing.models import PlanResult


class DispatchTriggerRequest(BaseModel):
    business_id: int = Field(..., ge=1)
    account_id: str = Field(..., min_length=1, description="Connected field-service account.")
    plan_date: date
    mode: Literal["nightly", "event"] = "event"
    trigger_event_id: Optional[str] = Field(default=None, description="Webhook event that caused the trigger.")


class DispatchTriggerResponse(BaseModel):
    queued: bool
    key: str
    debounce_seconds: float


class JobModel(BaseModel):
    id: str
    service_type: str = "general"
    property_address: str = ""
    lat: Optional[float] = Field(default=None, ge=-90, le=90)
    lng: Optional[float] = Field(default=None, ge=-180, le=180)
    scheduled_at: datetime
    estimated_duration_mins: int = Field(default=60, ge=0)
    title: str = "Untitled Job"

    def to_domain(self) -> JobForDispatch:
        return JobForDispatch(
            id=self.id,
            service_type=self.service_type,
            property_address=self.property_address,
            lat=self.lat,
            lng=self.lng,
            scheduled_at=self.scheduled_at,
            estimated_duration_mins=self.estimated_duration_mins,
            title=self.title,
        )


class CrewModel(BaseModel):
    id: str
    name: str
    is_active: bool = True
    home_base_lat: Optional[float] = None
    home_base_lng: Optional[float] = None
    availability_start: Optional[str] = None
    availability_end: Optional[str] = None
    capacity: Optional[int] = Field(default=None, ge=0)
    equipment_capabilities: Sequence[str] = ()
    external_crew_id: Optional[str] = None

    @field_validator("availability_start", "availability_end")
    @classmethod
    def validate_time(cls, value: Optional[str]) -> Optional[str]:
        if value is not None:
            parse_time_of_day(value)
        return value

    def to_domain(self) -> Crew:
        return Crew(
            id=self.id,
            name=self.name,
            is_active=self.is_active,
            home_base_lat=self.home_base_lat,
            home_base_lng=self.home_base_lng,
            availability_start=self.availability_start,
            availability_end=self.availability_end,
            capacity=self.capacity,
            equipment_capabilities=tuple(self.equipment_capabilities),
            external_crew_id=self.external_crew_id,
        )


class ZoneModel(BaseModel):
    id: str
    name: str
    is_active: bool = True
    min_lat: Optional[float] = None
    max_lat: Optional[float] = None
    min_lng: Optional[float] = None
    max_lng: Optional[float] = None
    center_lat: Optional[float] = None
    center_lng: Optional[float] = None
    radius_miles: Optional[float] = Field(default=None, ge=0)


class ZoneAffinityModel(BaseModel):
    crew_id: str
    zone: ZoneModel
    is_primary: bool = True
    priority: int = 0


class DispatchPreviewRequest(BaseModel):
    plan_date: date
    jobs: Sequence[JobModel]
    crews: Sequence[CrewModel]
    zone_affinities: Sequence[ZoneAffinityModel] = ()

    def affinity_map(self) -> dict[str, CrewZoneAffinity]:
        affinities: dict[str, CrewZoneAffinity] = {}
        for item in self.zone_affinities:
            affinity = affinities.setdefault(item.crew_id, CrewZoneAffinity(crew_id=item.crew_id))
            affinity.zones.append(
                ZoneAffinity(
                    zone=ServiceZone(**item.zone.model_dump()),
                    is_primary=item.is_primary,
                    priority=item.priority,
                )
            )
        return affinities


class RouteStopModel(BaseModel):
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


class CrewAssignmentModel(BaseModel):
    crew_id: str
    crew_name: str
    stops: list[RouteStopModel]
    total_drive_mins: int
    total_service_mins: int
    utilization_percent: int


class DispatchPreviewResponse(BaseModel):
    plan_date: date
    assignments: list[CrewAssignmentModel]
    unassigned_jobs: list[str]
    unassigned_reasons: dict[str, str]
    total_drive_mins: int
    overall_utilization: int
    warnings: list[str]
    compute_time_ms: int
    metadata: dict[str, Any]

    @classmethod
    def from_result(cls, result: PlanResult) -> "DispatchPreviewResponse":
        return cls(
            plan_date=result.plan_date,
            assignments=[
                CrewAssignmentModel(
                    crew_id=a.crew_id,
                    crew_name=a.crew_name,
                    stops=[RouteStopModel(**stop.to_dict()) for stop in a.stops],
                    total_drive_mins=a.total_drive_mins,
                    total_service_mins=a.total_service_mins,
                    utilization_percent=a.utilization_percent,
                )
                for a in result.assignments
            ],
            unassigned_jobs=list(result.unassigned_jobs),
            unassigned_reasons=dict(result.unassigned_reasons),
            total_drive_mins=result.total_drive_mins,
            overall_utilization=result.overall_utilization,
            warnings=list(result.warnings),
            compute_time_ms=result.compute_time_ms,
            metadata=dict(result.metadata),
        )


class DispatchPlanModel(BaseModel):
    id: int
    business_id: int
    account_id: str
    plan_date: date
    mode: str
    status: str
    trigger_event_id: Optional[str] = None
    total_jobs: int
    total_crews: int
    crew_assignments: dict[str, list[str]]
    route_stops: dict[str, list[dict[str, Any]]]
    unassigned_jobs: list[str]
    warnings: list[str]
    total_drive_minutes: int
    utilization_percent: int
    algorithm_version: str
    compute_time_ms: int
    applied_at: Optional[datetime] = None
    apply_error: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_plan(cls, plan: DispatchPlan) -> "DispatchPlanModel":
        return cls(
            id=plan.id,
            business_id=plan.business_id,
            account_id=plan.account_id,
            plan_date=plan.plan_date,
            mode=plan.mode,
            status=plan.status,
            trigger_event_id=plan.trigger_event_id,
            total_jobs=plan.total_jobs,
            total_crews=plan.total_crews,
            crew_assignments=plan.crew_assignments,
            route_stops=plan.route_stops,
            unassigned_jobs=plan.unassigned_jobs,
            warnings=plan.warnings,
            total_drive_minutes=plan.total_drive_minutes,
            utilization_percent=plan.utilization_percent,
            algorithm_version=plan.algorithm_version,
            compute_time_ms=plan.compute_time_ms,
            applied_at=plan.applied_at,
            apply_error=plan.apply_error,
            created_at=plan.created_at,
            updated_at=plan.updated_at,
        )


class DispatchPlanEventModel(BaseModel):
    plan_id: int
    event_type: str
    actor: str
    details: dict[str, Any]
    created_at: Optional[datetime] = None

    @classmethod
    def from_event(cls, event: DispatchPlanEvent) -> "DispatchPlanEventModel":
        return cls(
            plan_id=event.plan_id,
            event_type=event.event_type,
            actor=event.actor,
            details=event.details,
            created_at=event.created_at,
        )


class ApplyPlanRequest(BaseModel):
    account_id: Optional[str] = Field(default=None, description="Defaults to the plan's own account.")


class ApplyPlanResponse(BaseModel):
    success: bool
    plan_id: int
    status: Optional[str]
    errors: list[str]
    jobs_updated: int
    skipped_crews: list[str]


class CrewRouteResponse(BaseModel):
    plan_id: int
    crew_id: str
    plan_date: date
    route_url: str
    stops: list[dict[str, Any]]
