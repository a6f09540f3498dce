"""Greedy crew assignment and route building for one business day."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import date, datetime, time as dt_time, timedelta, tzinfo
from typing import Mapping, Optional, Sequence

from ...config import parse_time_of_day, resolve_timezone, settings
from ...models.domain import Crew, CrewZoneAffinity, JobForDispatch
from ..geospatial import round_half_up
from ..zoning.affinity import zone_match
from .distance import DistanceMatrix, build_distance_matrix, crew_node, job_node
from .equipment import DEFAULT_EQUIPMENT_TABLE, EquipmentTable
from .models import CrewAssignment, PlanResult, RouteStop

logger = logging.getLogger(__name__)

NO_ACTIVE_CREWS_WARNING = "No active crews available"
NO_JOBS_WARNING = "No jobs to dispatch"


@dataclass(slots=True)
class PlannerWeights:
    drive_weight: float = settings.score_drive_weight
    utilization_weight: float = settings.score_utilization_weight
    primary_zone_bonus: float = settings.primary_zone_bonus
    backup_zone_bonus: float = settings.backup_zone_bonus
    unroutable_fallback_minutes: int = settings.unroutable_drive_fallback_minutes
    default_capacity: int = settings.default_crew_capacity


@dataclass(slots=True)
class _CrewState:
    crew: Crew
    current_location: str
    start_minute: int
    available_minutes: int
    capacity: int
    assigned_jobs: list[JobForDispatch] = field(default_factory=list)
    used_minutes: int = 0


def _default_window() -> tuple[int, int]:
    return (
        parse_time_of_day(settings.default_availability_start),
        parse_time_of_day(settings.default_availability_end),
    )


def availability_window(crew: Crew) -> tuple[int, int]:
    """Crew start and end as minutes after midnight; raises ``ValueError`` on bad values."""

    default_start, default_end = _default_window()
    start = parse_time_of_day(crew.availability_start) if crew.availability_start else default_start
    end = parse_time_of_day(crew.availability_end) if crew.availability_end else default_end
    return start, end


def _safe_window(crew: Crew, warnings: list[str] | None = None) -> tuple[int, int]:
    try:
        return availability_window(crew)
    except ValueError as exc:
        logger.warning("Crew %s has an invalid availability window, using defaults: %s", crew.id, exc)
        if warnings is not None:
            warnings.append(f"Crew {crew.id} has an invalid availability window; default hours used")
        return _default_window()


def crew_available_minutes(crew: Crew) -> int:
    start, end = _safe_window(crew)
    return max(0, end - start)


def _day_start(plan_date: date, start_minute: int, tz: tzinfo) -> datetime:
    return datetime.combine(plan_date, dt_time(), tzinfo=tz) + timedelta(minutes=start_minute)


def _sort_time(job: JobForDispatch, tz: tzinfo) -> datetime:
    # Naive times are read in the business zone so mixed inputs stay comparable.
    scheduled = job.scheduled_at
    if scheduled.tzinfo is None:
        return scheduled.replace(tzinfo=tz)
    return scheduled


def _percent(part: float, whole: float) -> int:
    if whole <= 0:
        return 0
    return round_half_up(part / whole * 100)


def _rejection_reason(compatible: int, with_capacity: int) -> str:
    if compatible == 0:
        return "equipment_incompatible"
    if with_capacity == 0:
        return "capacity_reached"
    return "insufficient_time"


def compute_dispatch_plan(
    jobs: Sequence[JobForDispatch],
    crews: Sequence[Crew],
    plan_date: date,
    zone_affinities: Optional[Mapping[str, CrewZoneAffinity]] = None,
    *,
    weights: PlannerWeights | None = None,
    equipment: EquipmentTable | None = None,
    distance_matrix: DistanceMatrix | None = None,
    tz: tzinfo | None = None,
) -> PlanResult:
    """Assign jobs to crews greedily and lay out each crew's route.

    Jobs are taken in ascending ``scheduled_at`` order so earlier jobs get
    first pick of crew capacity. For each job every active crew that has the
    required equipment, a free stop and enough time left is scored as
    ``drive * drive_weight + utilization * utilization_weight - zone_bonus``
    and the lowest score wins (first crew on ties).

    Stop times are timezone-aware, anchored at each crew's availability
    start in ``tz`` (``settings.business_timezone`` by default). A crew with
    an unparseable availability window works the default hours and the plan
    carries a warning.
    """

    started = time.perf_counter()
    weights = weights or PlannerWeights()
    equipment = equipment or DEFAULT_EQUIPMENT_TABLE
    tz = tz or resolve_timezone(settings.business_timezone)
    warnings: list[str] = []
    unassigned_reasons: dict[str, str] = {}

    active_crews = [crew for crew in crews if crew.is_active]
    if not active_crews:
        for job in jobs:
            unassigned_reasons[job.id] = "no_active_crews"
        return PlanResult(
            plan_date=plan_date,
            assignments=[],
            unassigned_jobs=[job.id for job in jobs],
            total_drive_mins=0,
            overall_utilization=0,
            warnings=[NO_ACTIVE_CREWS_WARNING],
            unassigned_reasons=unassigned_reasons,
            compute_time_ms=int((time.perf_counter() - started) * 1000),
            metadata={"algorithm_version": settings.algorithm_version, "active_crews": 0},
        )

    if not jobs:
        warnings.append(NO_JOBS_WARNING)

    routable = [job for job in jobs if job.has_coordinates]
    unroutable = [job for job in jobs if not job.has_coordinates]
    if unroutable:
        warnings.append(f"{len(unroutable)} jobs have no coordinates and cannot be routed")

    matrix = distance_matrix or build_distance_matrix(routable, active_crews)

    states: dict[str, _CrewState] = {}
    for crew in active_crews:
        start, end = _safe_window(crew, warnings)
        states[crew.id] = _CrewState(
            crew=crew,
            current_location=crew_node(crew.id),
            start_minute=start,
            available_minutes=max(0, end - start),
            capacity=crew.capacity or weights.default_capacity,
        )

    def drive_minutes(origin: str, job: JobForDispatch) -> int:
        return matrix.minutes_or(origin, job_node(job.id), weights.unroutable_fallback_minutes)

    unassigned_jobs: list[str] = []
    zone_matched = 0
    primary_zone_matched = 0

    for job in sorted(routable, key=lambda j: _sort_time(j, tz)):
        best_state: _CrewState | None = None
        best_score = float("inf")
        best_match = None
        compatible = 0
        with_capacity = 0

        for crew_id, state in states.items():
            if not equipment.is_compatible(job.service_type, state.crew.equipment_capabilities):
                continue
            compatible += 1

            if len(state.assigned_jobs) >= state.capacity:
                continue
            with_capacity += 1

            drive = drive_minutes(state.current_location, job)
            if state.used_minutes + drive + job.estimated_duration_mins > state.available_minutes:
                continue

            utilization_factor = (
                state.used_minutes / state.available_minutes if state.available_minutes else 1.0
            )
            match = zone_match(
                job.lat,
                job.lng,
                zone_affinities.get(crew_id) if zone_affinities else None,
                primary_bonus=weights.primary_zone_bonus,
                backup_bonus=weights.backup_zone_bonus,
            )
            score = (
                drive * weights.drive_weight
                + utilization_factor * weights.utilization_weight
                - match.bonus
            )
            if score < best_score:
                best_score = score
                best_state = state
                best_match = match

        if best_state is None:
            unassigned_jobs.append(job.id)
            unassigned_reasons[job.id] = _rejection_reason(compatible, with_capacity)
            continue

        drive = drive_minutes(best_state.current_location, job)
        best_state.assigned_jobs.append(job)
        best_state.current_location = job_node(job.id)
        best_state.used_minutes += drive + job.estimated_duration_mins
        if best_match is not None and best_match.zone is not None:
            zone_matched += 1
            if best_match.is_primary:
                primary_zone_matched += 1

    for job in unroutable:
        unassigned_jobs.append(job.id)
        unassigned_reasons[job.id] = "missing_coordinates"

    assignments: list[CrewAssignment] = []
    total_drive = 0
    total_service = 0
    total_available = 0

    for crew_id, state in states.items():
        if not state.assigned_jobs:
            continue

        stops: list[RouteStop] = []
        previous = crew_node(crew_id)
        clock = _day_start(plan_date, state.start_minute, tz)
        crew_drive = 0
        crew_service = 0

        for order, job in enumerate(state.assigned_jobs, start=1):
            drive = drive_minutes(previous, job)
            arrive_by = clock + timedelta(minutes=drive)
            depart_by = arrive_by + timedelta(minutes=job.estimated_duration_mins)
            stops.append(
                RouteStop(
                    job_id=job.id,
                    external_job_id=job.id,
                    order=order,
                    property_address=job.property_address,
                    lat=job.lat,
                    lng=job.lng,
                    arrive_by=arrive_by,
                    depart_by=depart_by,
                    drive_mins_from_prev=drive,
                    service_type=job.service_type,
                    estimated_duration_mins=job.estimated_duration_mins,
                )
            )
            clock = depart_by
            crew_drive += drive
            crew_service += job.estimated_duration_mins
            previous = job_node(job.id)

        assignments.append(
            CrewAssignment(
                crew_id=crew_id,
                crew_name=state.crew.name,
                stops=stops,
                total_drive_mins=crew_drive,
                total_service_mins=crew_service,
                utilization_percent=_percent(crew_drive + crew_service, state.available_minutes),
            )
        )
        total_drive += crew_drive
        total_service += crew_service
        total_available += state.available_minutes

    if unassigned_jobs:
        warnings.append(f"{len(unassigned_jobs)} jobs could not be assigned to any crew")

    compute_time_ms = int((time.perf_counter() - started) * 1000)
    assigned_count = len(jobs) - len(unassigned_jobs)
    logger.info(
        "Computed dispatch plan for %s in %sms: %s crews, %s assigned, %s unassigned",
        plan_date.isoformat(),
        compute_time_ms,
        len(assignments),
        assigned_count,
        len(unassigned_jobs),
    )

    return PlanResult(
        plan_date=plan_date,
        assignments=assignments,
        unassigned_jobs=unassigned_jobs,
        total_drive_mins=total_drive,
        overall_utilization=_percent(total_drive + total_service, total_available),
        warnings=warnings,
        unassigned_reasons=unassigned_reasons,
        compute_time_ms=compute_time_ms,
        metadata={
            "algorithm_version": settings.algorithm_version,
            "active_crews": len(active_crews),
            "zone_matched_jobs": zone_matched,
            "primary_zone_matched_jobs": primary_zone_matched,
        },
    )


def generate_route_url(plan_id: int, crew_id: str, *, base_url: str | None = None) -> str:
    """Deep link to one crew's route within a plan."""

    root = (base_url or settings.route_base_url).rstrip("/")
    return f"{root}/dispatch/route/{plan_id}/{crew_id}"
