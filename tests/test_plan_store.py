import logging
from datetime import date, datetime, timezone
from types import SimpleNamespace

import pytest

from crew_dispatch.config import settings
from crew_dispatch.db.supabase import get_supabase_client
from crew_dispatch.models.domain import Crew, CrewZoneAffinity, DispatchPlan, DispatchPlanEvent, PlanKey
from crew_dispatch.persistence.crews import InMemoryCrewRoster, SupabaseCrewRoster, row_to_crew, row_to_zone
from crew_dispatch.persistence.plan_store import InMemoryPlanStore, plan_to_row, row_to_plan


def _plan(mode: str = "event", **overrides) -> DispatchPlan:
    values = dict(
        business_id=1,
        account_id="acct-1",
        plan_date=date(2024, 6, 3),
        mode=mode,
        total_jobs=2,
        crew_assignments={"A": ["J1", "J2"]},
    )
    values.update(overrides)
    return DispatchPlan(**values)


def test_upsert_inserts_then_replaces_by_key():
    store = InMemoryPlanStore()

    first = store.upsert_plan(_plan())
    second = store.upsert_plan(_plan(total_jobs=5, crew_assignments={"B": ["J9"]}, warnings=["w"]))

    assert first.id == second.id == 1
    assert second.created_at == first.created_at
    assert second.total_jobs == 5
    assert second.crew_assignments == {"B": ["J9"]}
    assert store.get_plan(1).warnings == ["w"]


def test_plan_key_includes_mode():
    store = InMemoryPlanStore()

    event_plan = store.upsert_plan(_plan("event"))
    nightly_plan = store.upsert_plan(_plan("nightly"))

    assert event_plan.id != nightly_plan.id
    assert store.get_plan_by_key(PlanKey(1, date(2024, 6, 3), "nightly")).id == nightly_plan.id
    assert store.get_plan_by_key(PlanKey(2, date(2024, 6, 3), "nightly")) is None


def test_update_plan_changes_fields_only():
    store = InMemoryPlanStore()
    plan = store.upsert_plan(_plan())

    updated = store.update_plan(plan.id, status="failed", apply_error="Job J1: boom")

    assert updated.status == "failed"
    assert updated.apply_error == "Job J1: boom"
    assert updated.crew_assignments == {"A": ["J1", "J2"]}
    assert store.update_plan(99, status="applied") is None
    with pytest.raises(ValueError):
        store.update_plan(plan.id, not_a_field=1)


def test_returned_plans_are_copies():
    store = InMemoryPlanStore()
    plan = store.upsert_plan(_plan())

    plan.status = "applied"

    assert store.get_plan(plan.id).status == "draft"


def test_events_are_appended_per_plan():
    store = InMemoryPlanStore()
    store.append_event(DispatchPlanEvent(plan_id=1, event_type="computed", actor="webhook"))
    store.append_event(DispatchPlanEvent(plan_id=2, event_type="computed", actor="scheduler"))
    store.append_event(DispatchPlanEvent(plan_id=1, event_type="applied", actor="system", details={"jobs_updated": 2}))

    events = store.list_events(1)

    assert [event.event_type for event in events] == ["computed", "applied"]
    assert all(event.created_at is not None for event in events)


def test_plan_rows_use_iso_strings():
    applied = datetime(2024, 6, 3, 18, 0, tzinfo=timezone.utc)
    row = plan_to_row(_plan(applied_at=applied))

    assert "id" not in row
    assert row["plan_date"] == "2024-06-03"
    assert row["applied_at"] == applied.isoformat()

    plan = row_to_plan({**row, "id": 4, "applied_at": "2024-06-03T18:00:00Z"})
    assert plan.id == 4
    assert plan.plan_date == date(2024, 6, 3)
    assert plan.applied_at == applied


def test_row_to_crew_parses_database_values():
    crew = row_to_crew(
        {
            "id": 12,
            "name": "North Crew",
            "business_id": "3",
            "home_base_lat": "40.1",
            "home_base_lng": -75.2,
            "capacity": 0,
            "equipment_capabilities": "trailer, mower",
            "external_crew_id": 998,
        }
    )

    assert crew.id == "12"
    assert crew.business_id == 3
    assert crew.home_base_lat == 40.1
    assert crew.capacity is None
    assert crew.equipment_capabilities == ("trailer", "mower")
    assert crew.external_crew_id == "998"
    with pytest.raises(ValueError):
        row_to_crew({"name": "No id"})


def test_row_to_zone():
    zone = row_to_zone({"id": 5, "name": "East", "center_lat": 40, "center_lng": -75, "radius_miles": "3"})

    assert zone.has_circle
    assert not zone.has_bounding_box
    assert zone.radius_miles == 3.0


def test_in_memory_roster_filters_by_business_and_activity():
    roster = InMemoryCrewRoster(
        [
            Crew(id="A", name="Alpha", business_id=1),
            Crew(id="B", name="Bravo", business_id=1, is_active=False),
            Crew(id="C", name="Charlie", business_id=2),
        ],
        {"A": CrewZoneAffinity(crew_id="A"), "C": CrewZoneAffinity(crew_id="C")},
    )

    assert [crew.id for crew in roster.get_active_crews(1)] == ["A"]
    assert list(roster.get_zone_affinities(1)) == ["A"]
    assert roster.get_crew("B").name == "Bravo"
    assert roster.get_active_business_ids() == [1, 2]


class _FakeQuery:
    def __init__(self, rows):
        self._rows = rows

    def __getattr__(self, name):
        return lambda *args, **kwargs: self

    def execute(self):
        return SimpleNamespace(data=self._rows)


class _FakeSupabase:
    def __init__(self, rows):
        self._rows = rows

    def table(self, name):
        return _FakeQuery(self._rows)


def test_row_to_crew_validates_availability():
    with pytest.raises(ValueError):
        row_to_crew({"id": 1, "availability_start": "8am"})

    crew = row_to_crew({"id": 2, "availability_start": "08:00:00", "availability_end": ""})

    assert crew.availability_start == "08:00:00"
    assert crew.availability_end is None


def test_supabase_roster_skips_crews_with_bad_availability():
    roster = SupabaseCrewRoster(
        client=_FakeSupabase(
            [
                {"id": 1, "name": "Early", "business_id": 1, "availability_start": "8am"},
                {"id": 2, "name": "Valid", "business_id": 1, "availability_start": "07:30"},
            ]
        )
    )

    assert [crew.id for crew in roster.get_active_crews(1)] == ["2"]


def test_supabase_client_requires_credentials(monkeypatch, caplog):
    monkeypatch.setattr(settings, "supabase_url", None)
    get_supabase_client.cache_clear()

    with caplog.at_level(logging.WARNING, logger="crew_dispatch.db.supabase"):
        assert get_supabase_client() is None
    get_supabase_client.cache_clear()

    assert "Supabase credentials not configured" in caplog.text
