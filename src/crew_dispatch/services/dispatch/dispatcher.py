"""Dispatch orchestration: debounced triggers, plan lifecycle and apply."""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Mapping, Optional

from ...config import settings
from ...connectors.jobber_client import FieldServiceClient
from ...models.domain import DispatchPlan, DispatchPlanEvent, DispatchRequest, PlanKey
from ...persistence.crews import CrewRoster
from ...persistence.plan_store import PlanStore
from ..routing.equipment import EquipmentTable
from ..routing.planner import PlannerWeights, compute_dispatch_plan
from .writeback import CrewWriteback, WritebackOutcome, write_back_plan

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str], FieldServiceClient]


@dataclass(slots=True)
class ApplyResult:
    success: bool
    plan_id: int
    status: Optional[str] = None
    errors: list[str] = field(default_factory=list)
    jobs_updated: int = 0
    skipped_crews: list[str] = field(default_factory=list)


def _actor_for(mode: str) -> str:
    return "scheduler" if mode == "nightly" else "webhook"


class Dispatcher:
    """Owns the debounce timers, the FIFO queue and the single worker.

    Compute and apply both hold one re-entrant lock, so a trigger that
    arrives while a plan is being applied is computed once apply finishes.
    """

    def __init__(
        self,
        store: PlanStore,
        roster: CrewRoster,
        client_factory: ClientFactory,
        *,
        debounce_seconds: float | None = None,
        max_parallel_crews: int | None = None,
        route_base_url: str | None = None,
        weights: PlannerWeights | None = None,
        equipment: EquipmentTable | None = None,
    ) -> None:
        self.store = store
        self.roster = roster
        self.client_factory = client_factory
        self.debounce_seconds = (
            debounce_seconds if debounce_seconds is not None else settings.debounce_seconds
        )
        self.max_parallel_crews = max_parallel_crews or settings.writeback_max_parallel_crews
        self.route_base_url = route_base_url
        self.weights = weights
        self.equipment = equipment

        self._state_lock = threading.Lock()
        self._idle = threading.Condition(self._state_lock)
        self._work_lock = threading.RLock()
        self._timers: dict[PlanKey, threading.Timer] = {}
        self._queue: deque[DispatchRequest] = deque()
        self._is_processing = False
        self._worker: Optional[threading.Thread] = None
        self._closed = False

    # Queue -----------------------------------------------------------------

    def enqueue_dispatch(self, request: DispatchRequest) -> None:
        """Schedule a dispatch, restarting the debounce window for its key."""

        key = request.key
        with self._state_lock:
            if self._closed:
                logger.warning("Dispatcher is shut down; dropping trigger for %s", key.label())
                return
            previous = self._timers.pop(key, None)
            if previous is not None:
                previous.cancel()
                logger.debug("Debounce restarted for %s", key.label())

            if self.debounce_seconds <= 0:
                self._queue_locked(request)
                return

            timer = threading.Timer(self.debounce_seconds, self._on_timer, args=(request,))
            timer.daemon = True
            self._timers[key] = timer
            timer.start()
        logger.info("Dispatch queued for %s (debounce %.1fs)", key.label(), self.debounce_seconds)

    def _on_timer(self, request: DispatchRequest) -> None:
        with self._state_lock:
            # A timer cancelled after it started firing is no longer registered.
            if self._timers.get(request.key) is not threading.current_thread():
                return
            del self._timers[request.key]
            if self._closed:
                self._idle.notify_all()
                return
            self._queue_locked(request)

    def _queue_locked(self, request: DispatchRequest) -> None:
        self._queue.append(request)
        if self._is_processing:
            return
        self._is_processing = True
        self._worker = threading.Thread(target=self._drain, name="dispatch-worker", daemon=True)
        self._worker.start()

    def _drain(self) -> None:
        while True:
            with self._state_lock:
                if not self._queue or self._closed:
                    self._is_processing = False
                    self._idle.notify_all()
                    return
                request = self._queue.popleft()
            try:
                self.process_dispatch(request)
            except Exception:
                logger.exception("Dispatch failed for %s", request.key.label())

    @property
    def pending_keys(self) -> list[PlanKey]:
        with self._state_lock:
            return list(self._timers) + [request.key for request in self._queue]

    def wait_until_idle(self, timeout: float | None = None) -> bool:
        """Block until no timers, queued requests or running work remain."""

        with self._idle:
            return self._idle.wait_for(
                lambda: not self._timers and not self._queue and not self._is_processing,
                timeout=timeout,
            )

    def shutdown(self, wait: bool = True, timeout: float | None = None) -> None:
        with self._state_lock:
            self._closed = True
            for timer in self._timers.values():
                timer.cancel()
            self._timers.clear()
            dropped = len(self._queue)
            self._queue.clear()
            worker = self._worker
            self._idle.notify_all()
        if dropped:
            logger.info("Dropped %s queued dispatch requests on shutdown", dropped)
        if wait and worker is not None and worker is not threading.current_thread():
            worker.join(timeout)

    def schedule_nightly_dispatch(
        self, accounts: Mapping[int, str], *, today: date | None = None
    ) -> list[DispatchRequest]:
        """Queue tomorrow's nightly plan for every business with active crews."""

        plan_date = (today or date.today()) + timedelta(days=1)
        business_ids = self.roster.get_active_business_ids()
        logger.info("Nightly dispatch: %s businesses with active crews", len(business_ids))

        requests: list[DispatchRequest] = []
        for business_id in business_ids:
            account_id = accounts.get(business_id)
            if not account_id:
                logger.warning("Business %s has no connected account; skipping nightly dispatch", business_id)
                continue
            request = DispatchRequest(
                business_id=business_id, account_id=account_id, plan_date=plan_date, mode="nightly"
            )
            self.enqueue_dispatch(request)
            requests.append(request)
        return requests

    # Plan lifecycle --------------------------------------------------------

    def process_dispatch(self, request: DispatchRequest) -> Optional[DispatchPlan]:
        """Compute, persist and optionally apply the plan for one key."""

        key = request.key
        with self._work_lock:
            existing = self.store.get_plan_by_key(key)
            if existing is not None and existing.status == "applied":
                logger.info("Plan %s for %s already applied, skipping", existing.id, key.label())
                return existing

            crews = self.roster.get_active_crews(request.business_id)
            if not crews:
                logger.info("No active crews found for business %s", request.business_id)
                return None

            client = self.client_factory(request.account_id)
            jobs = client.get_scheduled_jobs_for_date(request.plan_date)
            if not jobs:
                logger.info("No jobs scheduled for %s", key.label())
                return None

            affinities = self.roster.get_zone_affinities(request.business_id)
            result = compute_dispatch_plan(
                jobs,
                crews,
                request.plan_date,
                affinities,
                weights=self.weights,
                equipment=self.equipment,
            )

            plan = self.store.upsert_plan(
                DispatchPlan(
                    business_id=request.business_id,
                    account_id=request.account_id,
                    plan_date=request.plan_date,
                    mode=request.mode,
                    status="draft",
                    trigger_event_id=request.trigger_event_id,
                    total_jobs=len(jobs),
                    total_crews=len(crews),
                    crew_assignments=result.crew_job_ids(),
                    route_stops=result.crew_route_stops(),
                    unassigned_jobs=list(result.unassigned_jobs),
                    warnings=list(result.warnings),
                    total_drive_minutes=result.total_drive_mins,
                    utilization_percent=result.overall_utilization,
                    algorithm_version=result.metadata.get("algorithm_version", settings.algorithm_version),
                    compute_time_ms=result.compute_time_ms,
                    input_snapshot={"job_count": len(jobs), "crew_count": len(crews)},
                )
            )

            assigned = len(jobs) - len(result.unassigned_jobs)
            self.store.append_event(
                DispatchPlanEvent(
                    plan_id=plan.id,
                    event_type="computed",
                    actor=_actor_for(request.mode),
                    details={
                        "total_jobs": len(jobs),
                        "assigned_jobs": assigned,
                        "unassigned_jobs": len(result.unassigned_jobs),
                        "unassigned_reasons": dict(result.unassigned_reasons),
                        "warnings": list(result.warnings),
                    },
                )
            )
            logger.info(
                "Created plan %s: %s crews, %s/%s jobs assigned",
                plan.id,
                len(result.assignments),
                assigned,
                len(jobs),
            )

            if client.check_auto_dispatch_enabled():
                self.apply_dispatch_plan(plan.id, request.account_id, client=client)
                return self.store.get_plan(plan.id) or plan
            return plan

    def _crews_to_write(self, plan: DispatchPlan) -> tuple[list[CrewWriteback], list[str]]:
        crews: list[CrewWriteback] = []
        skipped: list[str] = []
        for crew_id, stops in plan.route_stops.items():
            crew = self.roster.get_crew(crew_id)
            if crew is None or not crew.external_crew_id:
                logger.warning("Crew %s has no external crew id, skipping updates", crew_id)
                skipped.append(crew_id)
                continue
            crews.append(CrewWriteback(crew_id=crew_id, external_crew_id=crew.external_crew_id, stops=list(stops)))
        return crews, skipped

    def apply_dispatch_plan(
        self,
        plan_id: int,
        account_id: str,
        *,
        client: FieldServiceClient | None = None,
    ) -> ApplyResult:
        """Write a plan back to the field-service system. Never raises.

        Writeback errors mark the plan ``failed``. Errors from the plan store
        itself are logged and reported in the result.
        """

        with self._work_lock:
            try:
                return self._apply_locked(plan_id, account_id, client)
            except Exception as exc:
                logger.exception("Applying plan %s failed", plan_id)
                return ApplyResult(success=False, plan_id=plan_id, errors=[f"Apply failed: {exc}"])

    def _apply_locked(
        self, plan_id: int, account_id: str, client: FieldServiceClient | None
    ) -> ApplyResult:
        logger.info("Applying plan %s", plan_id)
        plan = self.store.get_plan(plan_id)
        if plan is None:
            logger.error("Plan %s not found", plan_id)
            return ApplyResult(success=False, plan_id=plan_id, errors=[f"Plan {plan_id} not found"])
        if plan.status == "applied":
            logger.info("Plan %s already applied", plan_id)
            return ApplyResult(success=True, plan_id=plan_id, status="applied")

        self.store.update_plan(plan_id, status="pending_apply")

        skipped: list[str] = []
        try:
            crews, skipped = self._crews_to_write(plan)
            client = client or self.client_factory(account_id)
            outcome = write_back_plan(
                client,
                plan_id,
                crews,
                max_parallel_crews=self.max_parallel_crews,
                route_base_url=self.route_base_url,
            )
        except Exception as exc:
            logger.exception("Writeback setup failed for plan %s", plan_id)
            outcome = WritebackOutcome(failures=[f"Writeback setup failed: {exc}"])

        if outcome.failures:
            self.store.update_plan(plan_id, status="failed", apply_error="; ".join(outcome.failures))
            self.store.append_event(
                DispatchPlanEvent(
                    plan_id=plan_id,
                    event_type="failed",
                    actor="system",
                    details={"errors": list(outcome.failures)},
                )
            )
            logger.warning("Plan %s failed to apply: %s errors", plan_id, len(outcome.failures))
            return ApplyResult(
                success=False,
                plan_id=plan_id,
                status="failed",
                errors=list(outcome.failures),
                jobs_updated=outcome.successes,
                skipped_crews=skipped,
            )

        jobs_updated = sum(len(stops) for stops in plan.route_stops.values())
        self.store.update_plan(
            plan_id, status="applied", applied_at=datetime.now(timezone.utc), apply_error=None
        )
        self.store.append_event(
            DispatchPlanEvent(
                plan_id=plan_id,
                event_type="applied",
                actor="system",
                details={"jobs_updated": jobs_updated},
            )
        )
        logger.info("Successfully applied plan %s", plan_id)
        return ApplyResult(
            success=True,
            plan_id=plan_id,
            status="applied",
            jobs_updated=jobs_updated,
            skipped_crews=skipped,
        )
