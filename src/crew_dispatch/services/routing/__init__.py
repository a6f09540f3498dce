"""Distance estimation and the greedy planning engine."""

from .planner import PlannerWeights, compute_dispatch_plan, generate_route_url

__all__ = ["PlannerWeights", "compute_dispatch_plan", "generate_route_url"]
