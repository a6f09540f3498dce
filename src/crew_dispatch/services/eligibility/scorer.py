"""Crew eligibility scoring against a job's requirements."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Iterable, Optional, Sequence

from ...config import settings
from ...models.domain import Crew
from ..geospatial import haversine_miles, round_half_up

OUTSIDE_SERVICE_RADIUS = "outside_service_radius"
NO_AVAILABLE_CAPACITY = "no_available_capacity"
INSUFFICIENT_CREW_SIZE = "insufficient_crew_size"
PARTIAL_SKILL_MATCH = "partial_skill_match"
PARTIAL_EQUIPMENT_MATCH = "partial_equipment_match"
MISSING_COORDINATES = "missing_coordinates"

CRITICAL_FLAGS = frozenset({OUTSIDE_SERVICE_RADIUS, NO_AVAILABLE_CAPACITY, INSUFFICIENT_CREW_SIZE})
BLOCKING_FLAGS = CRITICAL_FLAGS | {PARTIAL_SKILL_MATCH, PARTIAL_EQUIPMENT_MATCH}

DEFAULT_LABOR_MINUTES = 60


@dataclass(frozen=True, slots=True)
class CapacityByDay:
    date: date
    minutes: int


@dataclass(slots=True)
class EligibleCrew:
    crew_id: str
    name: str
    skills_match_pct: int
    equipment_match_pct: int
    capacity_remaining_by_day: list[CapacityByDay] = field(default_factory=list)
    distance_from_home_estimate: Optional[float] = None
    member_count: int = 1
    flags: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class EligibilityThresholds:
    skill_match_min_pct: int = 100
    equipment_match_min_pct: int = 100


DEFAULT_THRESHOLDS = EligibilityThresholds()


@dataclass(frozen=True, slots=True)
class JobRequirement:
    """What a requested job needs from a crew."""

    required_skills: tuple[str, ...] = ()
    required_equipment: tuple[str, ...] = ()
    lat: Optional[float] = None
    lng: Optional[float] = None
    crew_size_min: int = 1
    labor_high_minutes: Optional[int] = None


def _match_pct(required: Optional[Sequence[str]], available: Optional[Iterable[str]]) -> int:
    if not required:
        return 100
    have = {item.lower() for item in (available or ())}
    matches = sum(1 for item in required if item.lower() in have)
    return round_half_up(matches / len(required) * 100)


def skill_match_pct(required: Optional[Sequence[str]], available: Optional[Iterable[str]]) -> int:
    return _match_pct(required, available)


def equipment_match_pct(required: Optional[Sequence[str]], available: Optional[Iterable[str]]) -> int:
    return _match_pct(required, available)


def is_fully_eligible(crew: EligibleCrew) -> bool:
    return not any(flag in BLOCKING_FLAGS for flag in crew.flags)


def is_eligible_with_thresholds(
    crew: EligibleCrew, thresholds: EligibilityThresholds = DEFAULT_THRESHOLDS
) -> bool:
    if any(flag in CRITICAL_FLAGS for flag in crew.flags):
        return False
    return (
        crew.skills_match_pct >= thresholds.skill_match_min_pct
        and crew.equipment_match_pct >= thresholds.equipment_match_min_pct
    )


def filter_fully_eligible(crews: Iterable[EligibleCrew]) -> list[EligibleCrew]:
    return [crew for crew in crews if is_fully_eligible(crew)]


def filter_eligible_with_thresholds(
    crews: Iterable[EligibleCrew], thresholds: EligibilityThresholds = DEFAULT_THRESHOLDS
) -> list[EligibleCrew]:
    return [crew for crew in crews if is_eligible_with_thresholds(crew, thresholds)]


def business_days(start: date, count: int) -> list[date]:
    """The first ``count`` weekdays on or after ``start``."""

    days: list[date] = []
    current = start
    while len(days) < count:
        if current.weekday() < 5:
            days.append(current)
        current += timedelta(days=1)
    return days


def evaluate_crew_eligibility(
    crew: Crew,
    requirement: JobRequirement,
    *,
    member_count: int,
    scheduled_minutes_by_day: dict[date, int],
) -> EligibleCrew:
    """Score one crew and flag every reason it may not fit the job.

    ``scheduled_minutes_by_day`` holds the minutes already booked for each
    candidate day; remaining capacity is clamped at zero.
    """

    flags: list[str] = []

    skills = skill_match_pct(requirement.required_skills, crew.skills)
    equipment = equipment_match_pct(requirement.required_equipment, crew.equipment_capabilities)
    if skills < 100:
        flags.append(PARTIAL_SKILL_MATCH)
    if equipment < 100:
        flags.append(PARTIAL_EQUIPMENT_MATCH)

    distance: Optional[float] = None
    if crew.has_home_base and requirement.lat is not None and requirement.lng is not None:
        distance = haversine_miles(
            (crew.home_base_lat, crew.home_base_lng), (requirement.lat, requirement.lng)
        )
        if distance > crew.service_radius_miles:
            flags.append(OUTSIDE_SERVICE_RADIUS)
    else:
        flags.append(MISSING_COORDINATES)

    if member_count < requirement.crew_size_min:
        flags.append(INSUFFICIENT_CREW_SIZE)

    daily_capacity = (
        crew.daily_capacity_minutes
        if crew.daily_capacity_minutes is not None
        else settings.default_daily_capacity_minutes
    )
    capacity = [
        CapacityByDay(date=day, minutes=max(0, daily_capacity - booked))
        for day, booked in sorted(scheduled_minutes_by_day.items())
    ]
    labor = requirement.labor_high_minutes or DEFAULT_LABOR_MINUTES
    if not any(day.minutes >= labor for day in capacity):
        flags.append(NO_AVAILABLE_CAPACITY)

    return EligibleCrew(
        crew_id=crew.id,
        name=crew.name,
        skills_match_pct=skills,
        equipment_match_pct=equipment,
        capacity_remaining_by_day=capacity,
        distance_from_home_estimate=round(distance, 1) if distance is not None else None,
        member_count=member_count,
        flags=flags,
    )


def rank_eligible_crews(crews: Iterable[EligibleCrew]) -> list[EligibleCrew]:
    """Fewest critical flags, then fewest flags, best matches, then nearest."""

    def sort_key(crew: EligibleCrew) -> tuple:
        critical = sum(1 for flag in crew.flags if flag in CRITICAL_FLAGS)
        distance = crew.distance_from_home_estimate
        return (
            critical,
            len(crew.flags),
            -crew.skills_match_pct,
            -crew.equipment_match_pct,
            distance is None,
            distance or 0.0,
        )

    return sorted(crews, key=sort_key)
