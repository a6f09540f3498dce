from datetime import datetime

import pytest

from crew_dispatch.models.domain import (
    Crew,
    CrewZoneAffinity,
    JobForDispatch,
    ServiceZone,
    ZoneAffinity,
)
from crew_dispatch.services.routing.distance import build_distance_matrix, crew_node, job_node
from crew_dispatch.services.routing.equipment import (
    DEFAULT_EQUIPMENT_TABLE,
    EquipmentTable,
    normalize_tag,
)
from crew_dispatch.services.zoning.affinity import NO_MATCH, zone_match


def _job(job_id: str, lat, lng) -> JobForDispatch:
    return JobForDispatch(
        id=job_id,
        service_type="mowing",
        property_address=f"{job_id} Main St",
        lat=lat,
        lng=lng,
        scheduled_at=datetime(2024, 6, 3, 9, 0),
        estimated_duration_mins=60,
    )


def test_matrix_is_symmetric_with_zero_diagonal():
    crews = [Crew(id="A", name="Alpha", home_base_lat=40.0, home_base_lng=-75.0)]
    jobs = [_job("J1", 40.1, -75.0), _job("J2", 40.0, -75.1)]

    matrix = build_distance_matrix(jobs, crews)

    assert len(matrix) == 3
    assert matrix.minutes(crew_node("A"), crew_node("A")) == 0
    assert matrix.minutes(crew_node("A"), job_node("J1")) == 17
    for a in matrix.nodes:
        for b in matrix.nodes:
            assert matrix.minutes(a, b) == matrix.minutes(b, a)


def test_points_without_coordinates_are_absent():
    crews = [Crew(id="A", name="Alpha"), Crew(id="B", name="Bravo", home_base_lat=40.0, home_base_lng=-75.0)]
    jobs = [_job("J1", None, None), _job("J2", 40.0, -75.0)]

    matrix = build_distance_matrix(jobs, crews)

    assert crew_node("A") not in matrix
    assert job_node("J1") not in matrix
    assert matrix.minutes(crew_node("A"), job_node("J2")) is None
    assert matrix.minutes_or(crew_node("A"), job_node("J2"), 30) == 30
    assert matrix.minutes_or(crew_node("B"), job_node("J2"), 30) == 0


def test_normalize_tag():
    assert normalize_tag("Tree Removal") == "tree_removal"
    assert normalize_tag("  stump-grinding ") == "stump_grinding"


def test_default_equipment_requirements():
    assert DEFAULT_EQUIPMENT_TABLE.required_for("Mulching") == {"trailer"}
    assert DEFAULT_EQUIPMENT_TABLE.required_for("Hardscape Install") == {"trailer", "skid_steer"}
    assert DEFAULT_EQUIPMENT_TABLE.required_for("Weekly Mowing") == frozenset()
    assert DEFAULT_EQUIPMENT_TABLE.is_compatible("Tree Removal", ["Chainsaw", "trailer"])
    assert not DEFAULT_EQUIPMENT_TABLE.is_compatible("Tree Removal", ["chainsaw"])


@pytest.mark.parametrize(
    "requirements",
    [
        {"": ["trailer"]},
        {"mulch": "trailer"},
        {"mulch": []},
    ],
)
def test_invalid_equipment_table_rejected(requirements):
    with pytest.raises(ValueError):
        EquipmentTable(requirements)


def _zone(zone_id: str, min_lat: float, max_lat: float) -> ServiceZone:
    return ServiceZone(id=zone_id, name=zone_id, min_lat=min_lat, max_lat=max_lat, min_lng=-76.0, max_lng=-74.0)


def test_zone_match_checks_primary_first_then_priority():
    wide = _zone("wide", 39.0, 41.0)
    narrow = _zone("narrow", 39.9, 40.1)
    affinity = CrewZoneAffinity(
        crew_id="A",
        zones=[
            ZoneAffinity(zone=narrow, is_primary=False, priority=9),
            ZoneAffinity(zone=wide, is_primary=True, priority=1),
        ],
    )

    match = zone_match(40.0, -75.0, affinity, primary_bonus=20, backup_bonus=10)

    assert match.zone == wide
    assert match.is_primary
    assert match.bonus == 20


def test_zone_match_backup_and_no_match():
    backup_low = _zone("low", 39.0, 41.0)
    backup_high = _zone("high", 39.5, 40.5)
    affinity = CrewZoneAffinity(
        crew_id="A",
        zones=[
            ZoneAffinity(zone=backup_low, is_primary=False, priority=1),
            ZoneAffinity(zone=backup_high, is_primary=False, priority=5),
        ],
    )

    match = zone_match(40.0, -75.0, affinity, primary_bonus=20, backup_bonus=10)

    assert match.zone == backup_high
    assert match.bonus == 10
    assert zone_match(45.0, -75.0, affinity, primary_bonus=20, backup_bonus=10) == NO_MATCH
    assert zone_match(40.0, -75.0, None, primary_bonus=20, backup_bonus=10) == NO_MATCH
