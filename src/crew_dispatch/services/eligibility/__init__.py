"""Crew eligibility scoring and feasibility checks."""

from .feasibility import FeasibilityResult, assess_feasibility, calculate_risk_score
from .scorer import (
    EligibilityThresholds,
    EligibleCrew,
    JobRequirement,
    equipment_match_pct,
    evaluate_crew_eligibility,
    filter_eligible_with_thresholds,
    filter_fully_eligible,
    is_eligible_with_thresholds,
    is_fully_eligible,
    rank_eligible_crews,
    skill_match_pct,
)

__all__ = [
    "EligibilityThresholds",
    "EligibleCrew",
    "FeasibilityResult",
    "JobRequirement",
    "assess_feasibility",
    "calculate_risk_score",
    "equipment_match_pct",
    "evaluate_crew_eligibility",
    "filter_eligible_with_thresholds",
    "filter_fully_eligible",
    "is_eligible_with_thresholds",
    "is_fully_eligible",
    "rank_eligible_crews",
    "skill_match_pct",
]
