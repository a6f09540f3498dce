"""Feasibility checks and risk scoring for a job/crew pairing."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Optional, Sequence

from ...models.domain import Crew
from .scorer import JobRequirement, equipment_match_pct, skill_match_pct

SKILL_EQUIPMENT_THRESHOLD_PCT = 90
LABOR_BUFFER_PCT = 0.15
LARGE_LOT_SQFT = 43560
HIGH_VARIANCE_SERVICES = ("cleanup", "mulch", "shrub_trim")

# reason-code prefix -> risk points
RISK_WEIGHTS: tuple[tuple[str, int], ...] = (
    ("skill_match_below", 30),
    ("equipment_match_below", 30),
    ("insufficient_crew_size", 40),
    ("capacity_exceeded", 50),
    ("low_lot_confidence", 20),
    ("large_lot_monthly", 15),
    ("missing_coordinates", 25),
)

BLOCKING_REASON_PREFIXES = (
    "skill_match_below",
    "equipment_match_below",
    "insufficient_crew_size",
    "capacity_exceeded",
)


@dataclass(slots=True)
class FeasibilityResult:
    feasible: bool
    needs_review: bool
    reasons: list[str] = field(default_factory=list)
    risk_score: int = 0


def calculate_risk_score(reasons: Sequence[str]) -> int:
    points = 0
    for reason in reasons:
        for prefix, weight in RISK_WEIGHTS:
            if reason.startswith(prefix):
                points += weight
                break
    return max(0, min(100, points))


def assess_feasibility(
    requirement: JobRequirement,
    crew: Crew,
    *,
    member_count: int,
    available_capacity_minutes: int,
    services: Sequence[str] = (),
    lot_confidence: str = "high",
    frequency: Optional[str] = None,
    lot_area_sqft: Optional[float] = None,
) -> FeasibilityResult:
    reasons: list[str] = []
    needs_review = False

    skills = skill_match_pct(requirement.required_skills, crew.skills)
    if skills < SKILL_EQUIPMENT_THRESHOLD_PCT:
        reasons.append(f"skill_match_below_threshold:{skills}%")

    equipment = equipment_match_pct(requirement.required_equipment, crew.equipment_capabilities)
    if equipment < SKILL_EQUIPMENT_THRESHOLD_PCT:
        reasons.append(f"equipment_match_below_threshold:{equipment}%")

    if member_count < requirement.crew_size_min:
        reasons.append(
            f"insufficient_crew_size:need_{requirement.crew_size_min}_have_{member_count}"
        )

    labor_with_buffer = (requirement.labor_high_minutes or 60) * (1 + LABOR_BUFFER_PCT)
    if available_capacity_minutes < labor_with_buffer:
        reasons.append(
            f"capacity_exceeded:need_{math.ceil(labor_with_buffer)}min"
            f"_have_{max(0, available_capacity_minutes)}min"
        )

    lowered = [service.lower() for service in services]
    high_variance = any(hv in service for hv in HIGH_VARIANCE_SERVICES for service in lowered)
    if lot_confidence == "low" and high_variance:
        reasons.append(f"low_lot_confidence_high_variance_service:{','.join(services)}")
        needs_review = True

    if (frequency or "once").lower() == "monthly" and (lot_area_sqft or 0) > LARGE_LOT_SQFT:
        reasons.append(f"large_lot_monthly_service:{lot_area_sqft:g}sqft")
        needs_review = True

    if requirement.lat is None or requirement.lng is None:
        reasons.append("missing_coordinates")
        needs_review = True

    feasible = not any(reason.startswith(BLOCKING_REASON_PREFIXES) for reason in reasons)
    return FeasibilityResult(
        feasible=feasible,
        needs_review=needs_review,
        reasons=reasons,
        risk_score=calculate_risk_score(reasons),
    )
