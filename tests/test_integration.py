from datetime import date, datetime

import pytest
from fastapi.testclient import TestClient

from crew_dispatch.api.routes import health
from crew_dispatch.api.routes.dispatch import get_dispatcher
from crew_dispatch.main import create_app
from crew_dispatch.models.domain import Crew, JobForDispatch
from crew_dispatch.persistence.crews import InMemoryCrewRoster
from crew_dispatch.persistence.plan_store import InMemoryPlanStore
from crew_dispatch.services.dispatch.dispatcher import Dispatcher


class StubClient:
    def __init__(self, jobs):
        self.jobs = jobs
        self.updated = []

    def get_scheduled_jobs_for_date(self, plan_date):
        return list(self.jobs)

    def check_auto_dispatch_enabled(self):
        return False

    def update_job_assignment(self, job_id, crew_user_id, arrive_by=None):
        self.updated.append(job_id)
        return {"id": job_id}

    def set_route_plan_url(self, job_id, route_url):
        return None


def _job(job_id: str, lat=40.0, lng=-75.0, hour=9) -> JobForDispatch:
    return JobForDispatch(
        id=job_id,
        service_type="Mowing",
        property_address=f"{job_id} Main St",
        lat=lat,
        lng=lng,
        scheduled_at=datetime(2024, 6, 3, hour, 0),
        estimated_duration_mins=60,
    )


@pytest.fixture()
def stub_client():
    return StubClient([_job("J1"), _job("J2", 40.1, -75.0, hour=10)])


@pytest.fixture()
def dispatcher(stub_client):
    roster = InMemoryCrewRoster(
        [
            Crew(id="A", name="Alpha", business_id=1, home_base_lat=40.0, home_base_lng=-75.0, external_crew_id="U1"),
            Crew(id="B", name="Bravo", business_id=1, home_base_lat=40.1, home_base_lng=-75.0, external_crew_id="U2"),
        ]
    )
    instance = Dispatcher(InMemoryPlanStore(), roster, lambda account_id: stub_client, debounce_seconds=0)
    yield instance
    instance.shutdown()


@pytest.fixture()
def client(dispatcher):
    app = create_app()
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    return TestClient(app)


def test_health(client, monkeypatch):
    assert client.get("/api/health").json() == {"status": "ok"}

    monkeypatch.setattr(health, "get_supabase_client", lambda: None)
    assert client.get("/api/health/database").json()["configured"] is False


def test_trigger_then_read_plan_and_apply(client, dispatcher, stub_client):
    response = client.post(
        "/api/dispatch/trigger",
        json={"business_id": 1, "account_id": "acct-1", "plan_date": "2024-06-03", "trigger_event_id": "evt-1"},
    )
    assert response.status_code == 202
    assert response.json()["key"] == "1_2024-06-03_event"
    assert dispatcher.wait_until_idle(timeout=5)

    plan = client.get("/api/dispatch/plans/1").json()
    assert plan["status"] == "draft"
    assert plan["trigger_event_id"] == "evt-1"
    assert plan["crew_assignments"] == {"A": ["J1"], "B": ["J2"]}

    route = client.get("/api/dispatch/route/1/B").json()
    assert route["route_url"].endswith("/dispatch/route/1/B")
    assert [stop["job_id"] for stop in route["stops"]] == ["J2"]

    applied = client.post("/api/dispatch/plans/1/apply", json={}).json()
    assert applied["success"] is True
    assert applied["status"] == "applied"
    assert sorted(stub_client.updated) == ["J1", "J2"]

    events = client.get("/api/dispatch/plans/1/events").json()
    assert [event["event_type"] for event in events] == ["computed", "applied"]


def test_unknown_plan_and_route_return_404(client):
    assert client.get("/api/dispatch/plans/99").status_code == 404
    assert client.post("/api/dispatch/plans/99/apply").status_code == 404
    assert client.get("/api/dispatch/route/99/A").status_code == 404


def test_trigger_validates_payload(client):
    response = client.post("/api/dispatch/trigger", json={"business_id": 1, "plan_date": "2024-06-03"})

    assert response.status_code == 422


def test_preview_computes_without_persisting(client, dispatcher):
    payload = {
        "plan_date": "2024-06-03",
        "jobs": [
            {"id": "J1", "service_type": "Mulching", "lat": 40.0, "lng": -75.0, "scheduled_at": "2024-06-03T09:00:00"},
            {"id": "J2", "lat": None, "lng": None, "scheduled_at": "2024-06-03T10:00:00"},
        ],
        "crews": [
            {"id": "A", "name": "Alpha", "home_base_lat": 40.0, "home_base_lng": -75.0},
            {
                "id": "B",
                "name": "Bravo",
                "home_base_lat": 40.2,
                "home_base_lng": -75.0,
                "equipment_capabilities": ["trailer"],
            },
        ],
    }

    response = client.post("/api/dispatch/preview", json=payload)

    assert response.status_code == 200
    body = response.json()
    assert [a["crew_id"] for a in body["assignments"]] == ["B"]
    assert body["assignments"][0]["stops"][0]["job_id"] == "J1"
    assert body["unassigned_reasons"] == {"J2": "missing_coordinates"}
    assert dispatcher.store.get_plan(1) is None


def test_preview_rejects_bad_availability(client):
    payload = {
        "plan_date": "2024-06-03",
        "jobs": [],
        "crews": [{"id": "A", "name": "Alpha", "availability_start": "25:99"}],
    }

    assert client.post("/api/dispatch/preview", json=payload).status_code == 422


def test_preview_with_zone_affinity(client):
    payload = {
        "plan_date": date(2024, 6, 3).isoformat(),
        "jobs": [{"id": "J1", "lat": 40.0, "lng": -75.0, "scheduled_at": "2024-06-03T09:00:00"}],
        "crews": [
            {"id": "A", "name": "Alpha", "home_base_lat": 40.0, "home_base_lng": -75.05},
            {"id": "B", "name": "Bravo", "home_base_lat": 40.0, "home_base_lng": -74.95},
        ],
        "zone_affinities": [
            {
                "crew_id": "B",
                "zone": {"id": "Z1", "name": "Downtown", "center_lat": 40.0, "center_lng": -75.0, "radius_miles": 2},
                "is_primary": True,
            }
        ],
    }

    body = client.post("/api/dispatch/preview", json=payload).json()

    assert [a["crew_id"] for a in body["assignments"]] == ["B"]
    assert body["metadata"]["primary_zone_matched_jobs"] == 1


def test_preview_accepts_mixed_timezone_styles(client):
    payload = {
        "plan_date": "2024-06-03",
        "jobs": [
            {"id": "J1", "lat": 40.0, "lng": -75.0, "scheduled_at": "2024-06-03T10:00:00"},
            {"id": "J2", "lat": 40.0, "lng": -75.0, "scheduled_at": "2024-06-03T09:00:00Z"},
        ],
        "crews": [{"id": "A", "name": "Alpha", "home_base_lat": 40.0, "home_base_lng": -75.0}],
    }

    response = client.post("/api/dispatch/preview", json=payload)

    assert response.status_code == 200
    stops = response.json()["assignments"][0]["stops"]
    assert [stop["job_id"] for stop in stops] == ["J2", "J1"]
    assert stops[0]["arrive_by"].endswith(("Z", "+00:00"))
