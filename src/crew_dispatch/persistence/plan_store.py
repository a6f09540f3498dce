"""Dispatch plan persistence and the append-only plan event log."""

from __future__ import annotations

import logging
import threading
from copy import deepcopy
from dataclasses import fields, replace
from datetime import date, datetime, timezone
from typing import Any, Optional, Protocol

from ..db.supabase import get_supabase_client
from ..models.domain import DispatchPlan, DispatchPlanEvent, PlanKey

logger = logging.getLogger(__name__)

PLANS_TABLE = "dispatch_plans"
EVENTS_TABLE = "dispatch_plan_events"

_PLAN_FIELDS = {f.name for f in fields(DispatchPlan)}
_DATETIME_FIELDS = ("applied_at", "created_at", "updated_at")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PlanStore(Protocol):
    def get_plan(self, plan_id: int) -> Optional[DispatchPlan]: ...

    def get_plan_by_key(self, key: PlanKey) -> Optional[DispatchPlan]: ...

    def upsert_plan(self, plan: DispatchPlan) -> DispatchPlan: ...

    def update_plan(self, plan_id: int, **changes: Any) -> Optional[DispatchPlan]: ...

    def append_event(self, event: DispatchPlanEvent) -> DispatchPlanEvent: ...

    def list_events(self, plan_id: int) -> list[DispatchPlanEvent]: ...


def _check_changes(changes: dict[str, Any]) -> None:
    unknown = set(changes) - _PLAN_FIELDS
    if unknown:
        raise ValueError(f"Unknown dispatch plan fields: {', '.join(sorted(unknown))}")
    if "id" in changes:
        raise ValueError("Dispatch plan id cannot be changed.")


class InMemoryPlanStore:
    """Process-local store with the same semantics as the database tables."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._plans: dict[int, DispatchPlan] = {}
        self._by_key: dict[PlanKey, int] = {}
        self._events: list[DispatchPlanEvent] = []
        self._next_id = 1

    def get_plan(self, plan_id: int) -> Optional[DispatchPlan]:
        with self._lock:
            plan = self._plans.get(plan_id)
            return deepcopy(plan) if plan else None

    def get_plan_by_key(self, key: PlanKey) -> Optional[DispatchPlan]:
        with self._lock:
            plan_id = self._by_key.get(key)
            return deepcopy(self._plans[plan_id]) if plan_id is not None else None

    def upsert_plan(self, plan: DispatchPlan) -> DispatchPlan:
        now = _utcnow()
        with self._lock:
            existing_id = self._by_key.get(plan.key)
            if existing_id is None:
                stored = replace(deepcopy(plan), id=self._next_id, created_at=now, updated_at=now)
                self._next_id += 1
            else:
                previous = self._plans[existing_id]
                stored = replace(deepcopy(plan), id=existing_id, created_at=previous.created_at, updated_at=now)
            self._plans[stored.id] = stored
            self._by_key[stored.key] = stored.id
            return deepcopy(stored)

    def update_plan(self, plan_id: int, **changes: Any) -> Optional[DispatchPlan]:
        _check_changes(changes)
        with self._lock:
            plan = self._plans.get(plan_id)
            if plan is None:
                return None
            updated = replace(plan, **changes, updated_at=_utcnow())
            self._plans[plan_id] = updated
            return deepcopy(updated)

    def append_event(self, event: DispatchPlanEvent) -> DispatchPlanEvent:
        stored = event if event.created_at else replace(event, created_at=_utcnow())
        with self._lock:
            self._events.append(stored)
        return stored

    def list_events(self, plan_id: int) -> list[DispatchPlanEvent]:
        with self._lock:
            return [event for event in self._events if event.plan_id == plan_id]


def plan_to_row(plan: DispatchPlan) -> dict[str, Any]:
    row: dict[str, Any] = {name: getattr(plan, name) for name in _PLAN_FIELDS if name != "id"}
    row["plan_date"] = plan.plan_date.isoformat()
    for name in _DATETIME_FIELDS:
        value = row.get(name)
        row[name] = value.isoformat() if isinstance(value, datetime) else value
    return row


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def row_to_plan(row: dict[str, Any]) -> DispatchPlan:
    values = {name: row[name] for name in _PLAN_FIELDS if name in row}
    plan_date = values.get("plan_date")
    if isinstance(plan_date, str):
        values["plan_date"] = date.fromisoformat(plan_date[:10])
    for name in _DATETIME_FIELDS:
        if name in values:
            values[name] = _parse_datetime(values[name])
    values["crew_assignments"] = {str(k): v for k, v in (values.get("crew_assignments") or {}).items()}
    values["route_stops"] = {str(k): v for k, v in (values.get("route_stops") or {}).items()}
    return DispatchPlan(**values)


def _row_to_event(row: dict[str, Any]) -> DispatchPlanEvent:
    return DispatchPlanEvent(
        plan_id=int(row["plan_id"]),
        event_type=row["event_type"],
        actor=row.get("actor") or "system",
        details=row.get("details") or {},
        created_at=_parse_datetime(row.get("created_at")),
    )


class SupabasePlanStore:
    """Plans and events stored in Supabase tables.

    ``dispatch_plans`` carries a unique constraint on
    ``(business_id, plan_date, mode)``; upserts look the key up first and
    then either insert or replace the whole row.
    """

    def __init__(self, client=None) -> None:
        self._client = client or get_supabase_client()
        if self._client is None:
            raise ValueError("Supabase is not configured; set DISPATCH_SUPABASE_URL and DISPATCH_SUPABASE_KEY.")

    def _table(self, name: str):
        return self._client.table(name)

    def get_plan(self, plan_id: int) -> Optional[DispatchPlan]:
        response = self._table(PLANS_TABLE).select("*").eq("id", plan_id).limit(1).execute()
        rows = response.data or []
        return row_to_plan(rows[0]) if rows else None

    def get_plan_by_key(self, key: PlanKey) -> Optional[DispatchPlan]:
        response = (
            self._table(PLANS_TABLE)
            .select("*")
            .eq("business_id", key.business_id)
            .eq("plan_date", key.plan_date.isoformat())
            .eq("mode", key.mode)
            .limit(1)
            .execute()
        )
        rows = response.data or []
        return row_to_plan(rows[0]) if rows else None

    def upsert_plan(self, plan: DispatchPlan) -> DispatchPlan:
        now = _utcnow()
        existing = self.get_plan_by_key(plan.key)
        if existing is None:
            row = plan_to_row(replace(plan, created_at=now, updated_at=now))
            response = self._table(PLANS_TABLE).insert(row).execute()
        else:
            row = plan_to_row(replace(plan, created_at=existing.created_at, updated_at=now))
            row.pop("created_at", None)
            response = self._table(PLANS_TABLE).update(row).eq("id", existing.id).execute()
        rows = response.data or []
        if not rows:
            raise RuntimeError(f"Failed to persist dispatch plan for {plan.key.label()}")
        stored = row_to_plan(rows[0])
        logger.debug("Persisted dispatch plan %s for %s", stored.id, plan.key.label())
        return stored

    def update_plan(self, plan_id: int, **changes: Any) -> Optional[DispatchPlan]:
        _check_changes(changes)
        payload: dict[str, Any] = {}
        for name, value in {**changes, "updated_at": _utcnow()}.items():
            payload[name] = value.isoformat() if isinstance(value, (datetime, date)) else value
        response = self._table(PLANS_TABLE).update(payload).eq("id", plan_id).execute()
        rows = response.data or []
        return row_to_plan(rows[0]) if rows else None

    def append_event(self, event: DispatchPlanEvent) -> DispatchPlanEvent:
        row = {
            "plan_id": event.plan_id,
            "event_type": event.event_type,
            "actor": event.actor,
            "details": event.details,
        }
        response = self._table(EVENTS_TABLE).insert(row).execute()
        rows = response.data or []
        return _row_to_event(rows[0]) if rows else event

    def list_events(self, plan_id: int) -> list[DispatchPlanEvent]:
        response = (
            self._table(EVENTS_TABLE)
            .select("*")
            .eq("plan_id", plan_id)
            .order("created_at")
            .execute()
        )
        return [_row_to_event(row) for row in (response.data or [])]
