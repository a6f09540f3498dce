from datetime import date

from crew_dispatch.models.domain import Crew
from crew_dispatch.services.eligibility.scorer import (
    INSUFFICIENT_CREW_SIZE,
    MISSING_COORDINATES,
    NO_AVAILABLE_CAPACITY,
    OUTSIDE_SERVICE_RADIUS,
    PARTIAL_EQUIPMENT_MATCH,
    PARTIAL_SKILL_MATCH,
    EligibilityThresholds,
    EligibleCrew,
    JobRequirement,
    business_days,
    equipment_match_pct,
    evaluate_crew_eligibility,
    filter_eligible_with_thresholds,
    filter_fully_eligible,
    is_eligible_with_thresholds,
    is_fully_eligible,
    rank_eligible_crews,
    skill_match_pct,
)


def _eligible(crew_id: str, *, skills: int = 100, equipment: int = 100, flags=(), distance=None) -> EligibleCrew:
    return EligibleCrew(
        crew_id=crew_id,
        name=f"Crew {crew_id}",
        skills_match_pct=skills,
        equipment_match_pct=equipment,
        distance_from_home_estimate=distance,
        flags=list(flags),
    )


def _crew(**overrides) -> Crew:
    values = dict(
        id="C1",
        name="Crew One",
        home_base_lat=40.0,
        home_base_lng=-75.0,
        skills=("mowing", "edging"),
        equipment_capabilities=("mower", "trailer"),
    )
    values.update(overrides)
    return Crew(**values)


def test_empty_requirements_match_fully():
    assert skill_match_pct(None, []) == 100
    assert skill_match_pct([], ["mowing"]) == 100
    assert equipment_match_pct(None, None) == 100


def test_match_pct_is_case_insensitive_and_rounded():
    assert skill_match_pct(["Mowing", "EDGING"], ["mowing", "edging"]) == 100
    assert skill_match_pct(["mowing", "edging", "pruning"], ["MOWING"]) == 33
    assert equipment_match_pct(["mower", "aerator", "trailer"], ["mower", "trailer"]) == 67
    assert equipment_match_pct(["mower", "aerator"], []) == 0


def test_missing_coordinates_alone_is_not_blocking():
    crew = _eligible("A", flags=[MISSING_COORDINATES])

    assert is_fully_eligible(crew)
    assert is_eligible_with_thresholds(crew)


def test_partial_match_blocks_full_eligibility_but_thresholds_can_admit():
    crew = _eligible("A", skills=80, flags=[PARTIAL_SKILL_MATCH])

    assert not is_fully_eligible(crew)
    assert not is_eligible_with_thresholds(crew)
    assert is_eligible_with_thresholds(crew, EligibilityThresholds(skill_match_min_pct=75))


def test_hard_block_flags_dominate_thresholds():
    lenient = EligibilityThresholds(skill_match_min_pct=0, equipment_match_min_pct=0)
    for flag in (OUTSIDE_SERVICE_RADIUS, NO_AVAILABLE_CAPACITY, INSUFFICIENT_CREW_SIZE):
        assert not is_eligible_with_thresholds(_eligible("A", flags=[flag]), lenient)


def test_filters_preserve_order():
    crews = [
        _eligible("A"),
        _eligible("B", equipment=50, flags=[PARTIAL_EQUIPMENT_MATCH]),
        _eligible("C", flags=[MISSING_COORDINATES]),
        _eligible("D", flags=[OUTSIDE_SERVICE_RADIUS]),
    ]

    assert [c.crew_id for c in filter_fully_eligible(crews)] == ["A", "C"]
    assert [c.crew_id for c in filter_eligible_with_thresholds(crews, EligibilityThresholds(100, 50))] == [
        "A",
        "B",
        "C",
    ]


def test_evaluate_flags_crew_outside_service_radius():
    requirement = JobRequirement(required_skills=("mowing",), lat=40.5, lng=-75.0)

    result = evaluate_crew_eligibility(
        _crew(), requirement, member_count=2, scheduled_minutes_by_day={date(2024, 6, 3): 0}
    )

    assert result.flags == [OUTSIDE_SERVICE_RADIUS]
    assert result.distance_from_home_estimate == 34.5
    assert result.skills_match_pct == 100


def test_evaluate_flags_capacity_size_and_coordinates():
    requirement = JobRequirement(
        required_skills=("mowing", "pruning"),
        required_equipment=("aerator",),
        crew_size_min=3,
        labor_high_minutes=90,
    )

    result = evaluate_crew_eligibility(
        _crew(daily_capacity_minutes=480),
        requirement,
        member_count=2,
        scheduled_minutes_by_day={date(2024, 6, 3): 400, date(2024, 6, 4): 500},
    )

    assert result.flags == [
        PARTIAL_SKILL_MATCH,
        PARTIAL_EQUIPMENT_MATCH,
        MISSING_COORDINATES,
        INSUFFICIENT_CREW_SIZE,
        NO_AVAILABLE_CAPACITY,
    ]
    assert [day.minutes for day in result.capacity_remaining_by_day] == [80, 0]
    assert result.distance_from_home_estimate is None


def test_rank_prefers_fewer_flags_then_matches_then_distance():
    crews = [
        _eligible("far", distance=12.0),
        _eligible("blocked", flags=[OUTSIDE_SERVICE_RADIUS], distance=1.0),
        _eligible("unknown"),
        _eligible("near", distance=3.0),
        _eligible("partial", skills=50, flags=[PARTIAL_SKILL_MATCH], distance=0.5),
    ]

    ranked = [crew.crew_id for crew in rank_eligible_crews(crews)]

    assert ranked == ["near", "far", "unknown", "partial", "blocked"]


def test_business_days_skip_weekends():
    days = business_days(date(2024, 6, 7), 3)  # a Friday

    assert days == [date(2024, 6, 7), date(2024, 6, 10), date(2024, 6, 11)]
