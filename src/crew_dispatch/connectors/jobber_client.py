"""GraphQL client for the Jobber field-service API used by dispatch."""

from __future__ import annotations

import logging
import re
from datetime import date, datetime, time
from typing import Any, Optional, Protocol

import httpx

from ..config import resolve_timezone, settings
from ..models.domain import JobForDispatch

logger = logging.getLogger(__name__)

DEFAULT_DURATION_MINS = 60
MIN_DURATION_MINS = 15

_MAP_ADDRESS_PATTERN = re.compile(r"(-?\d+\.?\d*),\s*(-?\d+\.?\d*)")

JOBS_QUERY = """
query GetScheduledJobs($after: String, $first: Int!, $filter: JobFilterAttributes) {
  jobs(after: $after, first: $first, filter: $filter) {
    nodes {
      id
      title
      startAt
      endAt
      property { id street city province postalCode mapAddress }
      client { id name }
      jobType { name }
      assignedUsers { nodes { id name } }
      customFields { nodes { label value } }
    }
    pageInfo { hasNextPage endCursor }
  }
}
"""

JOB_EDIT_MUTATION = """
mutation JobEdit($input: JobEditInput!) {
  jobEdit(input: $input) {
    job { id startAt assignedUsers { nodes { id name } } }
    userErrors { message path }
  }
}
"""

CUSTOM_FIELD_SET_MUTATION = """
mutation CustomFieldValueSet($input: CustomFieldValueSetInput!) {
  customFieldValueSet(input: $input) {
    customFieldValue { value }
    userErrors { message path }
  }
}
"""

CUSTOM_FIELD_CONFIGS_QUERY = """
query GetCustomFieldConfigs {
  customFieldConfigurations(first: 100) { nodes { id label type } }
}
"""

ACCOUNT_QUERY = """
query GetAccount { account { id } }
"""


class JobberAPIError(RuntimeError):
    """Raised when the Jobber API returns GraphQL or user errors."""


class FieldServiceClient(Protocol):
    def get_scheduled_jobs_for_date(self, plan_date: date) -> list[JobForDispatch]: ...

    def check_auto_dispatch_enabled(self) -> bool: ...

    def update_job_assignment(self, job_id: str, crew_user_id: str, arrive_by: Optional[str] = None) -> dict: ...

    def set_route_plan_url(self, job_id: str, route_url: str) -> None: ...


def parse_map_address(map_address: Optional[str]) -> tuple[Optional[float], Optional[float]]:
    """Extract ``(lat, lng)`` from a ``"lat, lng"`` map address."""

    if not map_address:
        return None, None
    match = _MAP_ADDRESS_PATTERN.search(map_address)
    if not match:
        return None, None
    return float(match.group(1)), float(match.group(2))


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def calculate_duration_mins(start_at: Optional[str], end_at: Optional[str]) -> int:
    start = _parse_timestamp(start_at)
    end = _parse_timestamp(end_at)
    if start is None or end is None:
        return DEFAULT_DURATION_MINS
    minutes = round((end - start).total_seconds() / 60)
    return max(MIN_DURATION_MINS, minutes)


def node_to_job(node: dict[str, Any], plan_date: date) -> JobForDispatch:
    prop = node.get("property") or {}
    address = ", ".join(
        str(part) for part in (prop.get("street"), prop.get("city"), prop.get("province"), prop.get("postalCode")) if part
    )
    lat, lng = parse_map_address(prop.get("mapAddress"))
    custom_fields = {
        cf["label"]: cf.get("value")
        for cf in ((node.get("customFields") or {}).get("nodes") or [])
        if cf.get("label")
    }
    assigned = ((node.get("assignedUsers") or {}).get("nodes") or [])
    scheduled_at = _parse_timestamp(node.get("startAt")) or datetime.combine(
        plan_date, time(), tzinfo=resolve_timezone(settings.business_timezone)
    )
    return JobForDispatch(
        id=str(node["id"]),
        title=node.get("title") or "Untitled Job",
        service_type=(node.get("jobType") or {}).get("name") or "general",
        property_address=address,
        lat=lat,
        lng=lng,
        scheduled_at=scheduled_at,
        estimated_duration_mins=calculate_duration_mins(node.get("startAt"), node.get("endAt")),
        property_id=prop.get("id") or "",
        client_id=(node.get("client") or {}).get("id") or "",
        client_name=(node.get("client") or {}).get("name") or "Unknown",
        assigned_crew_id=assigned[0].get("id") if assigned else None,
        custom_fields=custom_fields,
    )


class JobberDispatchClient:
    """Job source and writeback target for one connected Jobber account."""

    def __init__(
        self,
        account_id: str,
        *,
        access_token: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.account_id = account_id
        self.base_url = base_url or settings.jobber_api_url
        self.access_token = access_token or settings.jobber_access_token
        self.timeout = timeout if timeout is not None else settings.external_call_timeout_seconds
        self._transport = transport
        self._route_plan_field_id: Optional[str] = None

    def _get_client(self) -> httpx.Client:
        headers = {
            "Content-Type": "application/json",
            "X-JOBBER-GRAPHQL-VERSION": settings.jobber_api_version,
        }
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return httpx.Client(
            timeout=httpx.Timeout(self.timeout),
            headers=headers,
            transport=self._transport,
        )

    def query(self, document: str, variables: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        """POST a GraphQL document and return its ``data`` payload."""

        with self._get_client() as client:
            response = client.post(self.base_url, json={"query": document, "variables": variables or {}})
            response.raise_for_status()
            payload = response.json()
        errors = payload.get("errors")
        if errors:
            messages = "; ".join(str(err.get("message", err)) for err in errors)
            raise JobberAPIError(f"Jobber GraphQL error: {messages}")
        data = payload.get("data")
        if data is None:
            raise JobberAPIError("Jobber response missing data.")
        return data

    def get_scheduled_jobs_for_date(self, plan_date: date) -> list[JobForDispatch]:
        zone = resolve_timezone(settings.business_timezone)
        start_of_day = datetime.combine(plan_date, time.min, tzinfo=zone)
        end_of_day = datetime.combine(plan_date, time.max, tzinfo=zone)
        jobs: list[JobForDispatch] = []
        cursor: Optional[str] = None

        while True:
            variables: dict[str, Any] = {
                "first": settings.jobber_page_size,
                "filter": {
                    "startAt": {"gte": start_of_day.isoformat(), "lte": end_of_day.isoformat()},
                    "status": list(settings.jobber_job_statuses),
                },
            }
            if cursor:
                variables["after"] = cursor

            page = self.query(JOBS_QUERY, variables)["jobs"]
            for node in page.get("nodes") or []:
                jobs.append(node_to_job(node, plan_date))

            if len(jobs) >= settings.jobber_max_jobs:
                logger.info("Reached %s job limit, stopping pagination", settings.jobber_max_jobs)
                jobs = jobs[: settings.jobber_max_jobs]
                break
            page_info = page.get("pageInfo") or {}
            if not page_info.get("hasNextPage"):
                break
            cursor = page_info.get("endCursor")

        logger.info("Fetched %s jobs for %s (account %s)", len(jobs), plan_date.isoformat(), self.account_id)
        return jobs

    def update_job_assignment(self, job_id: str, crew_user_id: str, arrive_by: Optional[str] = None) -> dict:
        job_input: dict[str, Any] = {"id": job_id}
        if crew_user_id:
            job_input["assignedUserIds"] = [crew_user_id]
        if arrive_by:
            job_input["startAt"] = arrive_by

        result = self.query(JOB_EDIT_MUTATION, {"input": job_input})["jobEdit"]
        user_errors = result.get("userErrors") or []
        if user_errors:
            messages = "; ".join(err.get("message", "") for err in user_errors)
            raise JobberAPIError(f"Failed to update job: {messages}")
        return result.get("job") or {}

    def _route_plan_field(self) -> str:
        if self._route_plan_field_id:
            return self._route_plan_field_id
        try:
            nodes = self.query(CUSTOM_FIELD_CONFIGS_QUERY)["customFieldConfigurations"]["nodes"]
        except (httpx.HTTPError, JobberAPIError, KeyError) as exc:
            logger.error("Error fetching custom field configurations: %s", exc)
            return ""
        for node in nodes or []:
            if node.get("label") == settings.jobber_route_plan_field_label:
                self._route_plan_field_id = node["id"]
                return self._route_plan_field_id
        logger.warning(
            "%s custom field not found; create it in Jobber to store route links.",
            settings.jobber_route_plan_field_label,
        )
        return ""

    def set_route_plan_url(self, job_id: str, route_url: str) -> None:
        field_input = {
            "linkedObjectId": job_id,
            "customFieldConfigurationId": self._route_plan_field(),
            "valueLink": route_url,
        }
        result = self.query(CUSTOM_FIELD_SET_MUTATION, {"input": field_input})["customFieldValueSet"]
        user_errors = result.get("userErrors") or []
        if user_errors:
            logger.warning("Route URL not stored on job %s: %s", job_id, user_errors)

    def check_auto_dispatch_enabled(self) -> bool:
        try:
            self.query(ACCOUNT_QUERY)
        except (httpx.HTTPError, JobberAPIError) as exc:
            logger.warning("Auto-dispatch check failed for account %s: %s", self.account_id, exc)
            return False
        return settings.auto_apply_default
