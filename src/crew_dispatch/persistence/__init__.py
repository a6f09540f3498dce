"""Plan store and crew roster persistence."""

from .crews import CrewRoster, InMemoryCrewRoster, SupabaseCrewRoster
from .plan_store import InMemoryPlanStore, PlanStore, SupabasePlanStore

__all__ = [
    "CrewRoster",
    "InMemoryCrewRoster",
    "SupabaseCrewRoster",
    "PlanStore",
    "InMemoryPlanStore",
    "SupabasePlanStore",
]
