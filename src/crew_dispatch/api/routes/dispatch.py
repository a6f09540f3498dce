"""Dispatch endpoints."""

from __future__ import annotations

import logging
from functools import lru_cache

from fastapi import APIRouter, Depends, HTTPException, status

from ...config import settings
from ...connectors.jobber_client import JobberDispatchClient
from ...db.supabase import get_supabase_client
from ...models.domain import DispatchRequest
from ...persistence.crews import InMemoryCrewRoster, SupabaseCrewRoster
from ...persistence.plan_store import InMemoryPlanStore, SupabasePlanStore
from ...schemas.dispatch import (
    ApplyPlanRequest,
    ApplyPlanResponse,
    CrewRouteResponse,
    DispatchPlanEventModel,
    DispatchPlanModel,
    DispatchPreviewRequest,
    DispatchPreviewResponse,
    DispatchTriggerRequest,
    DispatchTriggerResponse,
)
from ...services.dispatch.dispatcher import Dispatcher
from ...services.routing.planner import compute_dispatch_plan, generate_route_url

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/dispatch", tags=["dispatch"])


@lru_cache()
def get_dispatcher() -> Dispatcher:
    """Process-wide dispatcher; falls back to in-memory storage without Supabase."""

    client = get_supabase_client()
    if client is None:
        logger.warning("Supabase not configured - dispatch plans are kept in memory only")
        store, roster = InMemoryPlanStore(), InMemoryCrewRoster()
    else:
        store, roster = SupabasePlanStore(client), SupabaseCrewRoster(client)
    return Dispatcher(store, roster, JobberDispatchClient)


@router.post("/trigger", response_model=DispatchTriggerResponse, status_code=status.HTTP_202_ACCEPTED)
def trigger_dispatch(
    payload: DispatchTriggerRequest, dispatcher: Dispatcher = Depends(get_dispatcher)
) -> DispatchTriggerResponse:
    request = DispatchRequest(
        business_id=payload.business_id,
        account_id=payload.account_id,
        plan_date=payload.plan_date,
        mode=payload.mode,
        trigger_event_id=payload.trigger_event_id,
    )
    dispatcher.enqueue_dispatch(request)
    return DispatchTriggerResponse(
        queued=True, key=request.key.label(), debounce_seconds=dispatcher.debounce_seconds
    )


@router.post("/preview", response_model=DispatchPreviewResponse, status_code=status.HTTP_200_OK)
def preview_dispatch(payload: DispatchPreviewRequest) -> DispatchPreviewResponse:
    """Compute a plan from posted jobs and crews without persisting it."""
    try:
        result = compute_dispatch_plan(
            [job.to_domain() for job in payload.jobs],
            [crew.to_domain() for crew in payload.crews],
            payload.plan_date,
            payload.affinity_map(),
        )
        return DispatchPreviewResponse.from_result(result)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception("Error computing dispatch preview: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to compute dispatch plan: {exc}",
        ) from exc


def _plan_or_404(dispatcher: Dispatcher, plan_id: int):
    plan = dispatcher.store.get_plan(plan_id)
    if plan is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Plan {plan_id} not found")
    return plan


@router.get("/plans/{plan_id}", response_model=DispatchPlanModel)
def get_plan(plan_id: int, dispatcher: Dispatcher = Depends(get_dispatcher)) -> DispatchPlanModel:
    return DispatchPlanModel.from_plan(_plan_or_404(dispatcher, plan_id))


@router.get("/plans/{plan_id}/events", response_model=list[DispatchPlanEventModel])
def get_plan_events(
    plan_id: int, dispatcher: Dispatcher = Depends(get_dispatcher)
) -> list[DispatchPlanEventModel]:
    _plan_or_404(dispatcher, plan_id)
    return [DispatchPlanEventModel.from_event(event) for event in dispatcher.store.list_events(plan_id)]


@router.post("/plans/{plan_id}/apply", response_model=ApplyPlanResponse)
def apply_plan(
    plan_id: int,
    payload: ApplyPlanRequest | None = None,
    dispatcher: Dispatcher = Depends(get_dispatcher),
) -> ApplyPlanResponse:
    plan = _plan_or_404(dispatcher, plan_id)
    account_id = (payload.account_id if payload else None) or plan.account_id
    result = dispatcher.apply_dispatch_plan(plan_id, account_id)
    return ApplyPlanResponse(
        success=result.success,
        plan_id=result.plan_id,
        status=result.status,
        errors=result.errors,
        jobs_updated=result.jobs_updated,
        skipped_crews=result.skipped_crews,
    )


@router.get("/route/{plan_id}/{crew_id}", response_model=CrewRouteResponse)
def get_crew_route(
    plan_id: int, crew_id: str, dispatcher: Dispatcher = Depends(get_dispatcher)
) -> CrewRouteResponse:
    plan = _plan_or_404(dispatcher, plan_id)
    if crew_id not in plan.route_stops:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Crew {crew_id} has no route in plan {plan_id}",
        )
    return CrewRouteResponse(
        plan_id=plan_id,
        crew_id=crew_id,
        plan_date=plan.plan_date,
        route_url=generate_route_url(plan_id, crew_id, base_url=settings.route_base_url),
        stops=plan.route_stops[crew_id],
    )
