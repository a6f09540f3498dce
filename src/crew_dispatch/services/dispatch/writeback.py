"""Propagate a plan's route stops to the field-service system."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Sequence

from ...connectors.jobber_client import FieldServiceClient
from ..routing.planner import generate_route_url

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CrewWriteback:
    crew_id: str
    external_crew_id: str
    stops: list[dict[str, Any]]


@dataclass(slots=True)
class WritebackOutcome:
    successes: int = 0
    failures: list[str] = field(default_factory=list)

    def merge(self, other: "WritebackOutcome") -> "WritebackOutcome":
        return WritebackOutcome(
            successes=self.successes + other.successes,
            failures=self.failures + other.failures,
        )


def write_back_crew(
    client: FieldServiceClient,
    plan_id: int,
    crew: CrewWriteback,
    *,
    route_base_url: str | None = None,
) -> WritebackOutcome:
    """Update every stop of one crew in route order, collecting failures."""

    outcome = WritebackOutcome()
    route_url = generate_route_url(plan_id, crew.crew_id, base_url=route_base_url)
    for stop in crew.stops:
        job_id = stop.get("external_job_id") or stop.get("job_id")
        try:
            client.update_job_assignment(job_id, crew.external_crew_id, stop.get("arrive_by"))
            client.set_route_plan_url(job_id, route_url)
        except Exception as exc:
            logger.error("Writeback failed for job %s (crew %s): %s", job_id, crew.crew_id, exc)
            outcome.failures.append(f"Job {job_id}: {exc}")
        else:
            outcome.successes += 1
    return outcome


def write_back_plan(
    client: FieldServiceClient,
    plan_id: int,
    crews: Sequence[CrewWriteback],
    *,
    max_parallel_crews: int = 1,
    route_base_url: str | None = None,
) -> WritebackOutcome:
    """Write back all crews; failures are reported in roster order."""

    if max_parallel_crews <= 1 or len(crews) <= 1:
        outcomes = [
            write_back_crew(client, plan_id, crew, route_base_url=route_base_url) for crew in crews
        ]
    else:
        with ThreadPoolExecutor(max_workers=min(max_parallel_crews, len(crews))) as executor:
            futures = [
                executor.submit(write_back_crew, client, plan_id, crew, route_base_url=route_base_url)
                for crew in crews
            ]
            outcomes = [future.result() for future in futures]

    total = WritebackOutcome()
    for outcome in outcomes:
        total = total.merge(outcome)
    return total
