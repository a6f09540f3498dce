"""Pairwise drive-time matrix over crew home bases and job locations."""

from __future__ import annotations

from typing import Iterable, Optional, Sequence

from ...models.domain import Crew, JobForDispatch
from ..geospatial import estimate_drive_minutes, haversine_miles


def crew_node(crew_id: str) -> str:
    return f"crew:{crew_id}"


def job_node(job_id: str) -> str:
    return f"job:{job_id}"


class DistanceMatrix:
    """Symmetric minute matrix keyed by node id.

    Points without coordinates are never added, so a missing entry means the
    leg cannot be estimated and callers must fall back to a conservative value.
    """

    def __init__(self, minutes: dict[str, dict[str, int]]) -> None:
        self._minutes = minutes

    def __contains__(self, node: str) -> bool:
        return node in self._minutes

    def __len__(self) -> int:
        return len(self._minutes)

    @property
    def nodes(self) -> list[str]:
        return list(self._minutes)

    def minutes(self, origin: str, destination: str) -> Optional[int]:
        row = self._minutes.get(origin)
        if row is None:
            return None
        return row.get(destination)

    def minutes_or(self, origin: str, destination: str, fallback: int) -> int:
        value = self.minutes(origin, destination)
        return fallback if value is None else value


def _collect_points(
    jobs: Iterable[JobForDispatch], crews: Iterable[Crew]
) -> list[tuple[str, float, float]]:
    points: list[tuple[str, float, float]] = []
    for crew in crews:
        if crew.has_home_base:
            points.append((crew_node(crew.id), crew.home_base_lat, crew.home_base_lng))
    for job in jobs:
        if job.has_coordinates:
            points.append((job_node(job.id), job.lat, job.lng))
    return points


def build_distance_matrix(
    jobs: Sequence[JobForDispatch],
    crews: Sequence[Crew],
    *,
    speed_mph: float | None = None,
) -> DistanceMatrix:
    points = _collect_points(jobs, crews)
    minutes: dict[str, dict[str, int]] = {node: {node: 0} for node, _, _ in points}

    for i, (node_a, lat_a, lng_a) in enumerate(points):
        for node_b, lat_b, lng_b in points[i + 1:]:
            distance = haversine_miles((lat_a, lng_a), (lat_b, lng_b))
            value = estimate_drive_minutes(distance, speed_mph=speed_mph)
            minutes[node_a][node_b] = value
            minutes[node_b][node_a] = value

    return DistanceMatrix(minutes)
