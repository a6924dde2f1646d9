"""Project lifecycle: creation from paid orders, timelines and progress."""

import json
import logging
import math
import re
from datetime import datetime, timedelta
from typing import Any

from postgrest.exceptions import APIError as PostgrestAPIError

from portal.api.middleware.error_handler import NotFoundError, ValidationError
from portal.core.supabase import get_supabase_client, is_unique_violation
from portal.core.timestamps import parse_timestamp, to_iso, utcnow
from portal.models.project import PROJECT_TRANSITIONS

logger = logging.getLogger(__name__)

DEFAULT_TIMELINE_DAYS = 28

UNIT_DAYS = {"day": 1, "week": 7, "month": 30}

_RANGE_PATTERN = re.compile(r"(\d+)\s*(?:-|–|to)\s*(\d+)\s*(day|week|month)s?", re.IGNORECASE)
_SINGLE_PATTERN = re.compile(r"(\d+)\s*(day|week|month)s?", re.IGNORECASE)

# Order statuses that should have a project
PROJECT_ORDER_STATUSES = ["paid", "in_progress", "complete"]


def parse_timeline_days(text: str | None) -> int | None:
    """Parse a free-text duration such as "2-3 weeks" or "10 days".

    Ranges resolve to their midpoint, rounded up to whole days.

    Args:
        text: Free-text duration.

    Returns:
        int | None: Length in days, or None if nothing parseable was found.
    """
    if not text:
        return None

    match = _RANGE_PATTERN.search(text)
    if match:
        low, high, unit = int(match.group(1)), int(match.group(2)), match.group(3).lower()
        days = math.ceil((low + high) / 2 * UNIT_DAYS[unit])
        return days if days > 0 else None

    match = _SINGLE_PATTERN.search(text)
    if match:
        days = int(match.group(1)) * UNIT_DAYS[match.group(2).lower()]
        return days if days > 0 else None

    return None


def derive_timeline_days(service: dict[str, Any] | None, requested_timeline: str | None = None) -> int:
    """Work out a project length for an order.

    Prefers the service's structured ``duration_days``, then its duration
    text, then the timeline requested at checkout, then four weeks.
    """
    if service:
        structured = service.get("duration_days")
        if isinstance(structured, int) and structured > 0:
            return structured
        parsed = parse_timeline_days(service.get("duration"))
        if parsed:
            return parsed

    return parse_timeline_days(requested_timeline) or DEFAULT_TIMELINE_DAYS


def compute_progress(project: dict[str, Any], now: datetime | None = None) -> int:
    """Elapsed share of a project's start-to-due interval, clamped to 0-100."""
    if project.get("status") == "completed":
        return 100

    start = parse_timestamp(project.get("start_date"))
    due = parse_timestamp(project.get("due_date"))
    if not start or not due:
        return int(project.get("progress_percentage") or 0)

    now = now or utcnow()
    total = (due - start).total_seconds()
    if total <= 0:
        return 100 if now >= due else 0
    elapsed = (now - start).total_seconds()
    return max(0, min(100, int(elapsed / total * 100)))


def decode_custom_request(order: dict[str, Any]) -> dict[str, Any]:
    """Decode an order's JSON ``custom_request`` column."""
    raw = order.get("custom_request")
    if isinstance(raw, dict):
        return raw
    if not raw:
        return {}
    try:
        decoded = json.loads(raw)
    except ValueError:
        return {}
    return decoded if isinstance(decoded, dict) else {}


class ProjectService:
    """Service for project records derived from paid orders."""

    def __init__(self) -> None:
        """Initialize project service with Supabase client."""
        self.client = get_supabase_client()

    async def get_project(self, project_id: str) -> dict[str, Any] | None:
        """Get a project by ID."""
        response = (
            self.client.table("projects")
            .select("*")
            .eq("id", str(project_id))
            .maybe_single()
            .execute()
        )
        return response.data if response and response.data else None

    async def get_project_by_order(self, order_id: str) -> dict[str, Any] | None:
        """Get the project created for an order, if any."""
        response = (
            self.client.table("projects")
            .select("*")
            .eq("order_id", str(order_id))
            .maybe_single()
            .execute()
        )
        return response.data if response and response.data else None

    async def get_project_for_user(self, project_id: str, user: dict[str, Any]) -> dict[str, Any]:
        """Get a project the user may see (owner, admin or project manager).

        Raises:
            NotFoundError: If the project is missing or belongs to someone else.
        """
        project = await self.get_project(project_id)
        if not project:
            raise NotFoundError("Project not found")
        if str(project["user_id"]) != str(user["id"]) and user.get("role") not in ("admin", "pm"):
            raise NotFoundError("Project not found")
        return project

    def _project_name(self, order: dict[str, Any], service: dict[str, Any] | None) -> str:
        if service and service.get("name"):
            return service["name"]
        details = decode_custom_request(order).get("project_details") or {}
        name = details.get("title") or details.get("name")
        return str(name)[:200] if name else "Custom Project"

    def _timeline_days_for(self, order: dict[str, Any], service: dict[str, Any] | None) -> int:
        if order.get("timeline_days"):
            return int(order["timeline_days"])
        requested = decode_custom_request(order).get("timeline")
        return derive_timeline_days(service, requested)

    def _schedule(self, timeline_days: int) -> dict[str, Any]:
        start = utcnow()
        return {
            "start_date": to_iso(start),
            "due_date": to_iso(start + timedelta(days=timeline_days)),
            "timeline_days": timeline_days,
            "timeline_weeks": math.ceil(timeline_days / 7),
            "progress_percentage": 0,
        }

    async def create_or_activate_project(
        self,
        order: dict[str, Any],
        service: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Create the project for a paid order, or activate an existing one.

        The unique constraint on ``projects.order_id`` guarantees a single
        project even when two reconciliations race.

        Args:
            order: The paid orders row.
            service: The ordered service, if any.

        Returns:
            dict: The project for the order.
        """
        existing = await self.get_project_by_order(order["id"])
        if existing:
            if existing.get("status") == "not_started":
                return await self._activate(existing, order, service)
            return existing

        timeline_days = self._timeline_days_for(order, service)
        row = {
            "order_id": str(order["id"]),
            "user_id": str(order["user_id"]),
            "project_name": self._project_name(order, service),
            "current_stage": "Discovery",
            "notes": f"Project created from order {order['id']}",
            "status": "active",
            "created_at": to_iso(utcnow()),
            **self._schedule(timeline_days),
        }

        try:
            response = self.client.table("projects").insert(row).execute()
        except PostgrestAPIError as e:
            if is_unique_violation(e):
                logger.info("Project for order %s already created concurrently", order["id"])
                project = await self.get_project_by_order(order["id"])
                if project:
                    return project
            raise

        project = response.data[0]
        logger.info("Created project %s for order %s (%d days)", project["id"], order["id"], timeline_days)
        return project

    async def _activate(
        self,
        project: dict[str, Any],
        order: dict[str, Any],
        service: dict[str, Any] | None,
    ) -> dict[str, Any]:
        update = {"status": "active", **self._schedule(self._timeline_days_for(order, service))}
        response = (
            self.client.table("projects")
            .update(update)
            .eq("id", project["id"])
            .eq("status", "not_started")
            .execute()
        )
        if response.data:
            logger.info("Activated project %s", project["id"])
            return response.data[0]
        return await self.get_project(project["id"]) or project

    async def ensure_projects_for_paid_orders(self, user_id: str) -> int:
        """Create projects for a user's paid orders that lack one.

        Returns:
            int: Number of projects created.
        """
        orders = (
            self.client.table("orders")
            .select("*")
            .eq("user_id", str(user_id))
            .in_("status", PROJECT_ORDER_STATUSES)
            .execute()
        ).data or []
        if not orders:
            return 0

        projects = (
            self.client.table("projects")
            .select("order_id")
            .eq("user_id", str(user_id))
            .execute()
        ).data or []
        existing_order_ids = {str(p["order_id"]) for p in projects}

        created = 0
        for order in orders:
            if str(order["id"]) in existing_order_ids:
                continue
            service = None
            if order.get("service_id"):
                service = (
                    self.client.table("services")
                    .select("*")
                    .eq("id", str(order["service_id"]))
                    .maybe_single()
                    .execute()
                )
                service = service.data if service and service.data else None
            await self.create_or_activate_project(order, service)
            created += 1

        if created:
            logger.info("Backfilled %d projects for user %s", created, user_id)
        return created

    def with_progress(self, project: dict[str, Any]) -> dict[str, Any]:
        """Return a copy of a project with its current progress percentage."""
        return {**project, "progress_percentage": compute_progress(project)}

    async def list_projects_for_user(self, user_id: str) -> list[dict[str, Any]]:
        """List a user's projects, backfilling any missing ones first."""
        await self.ensure_projects_for_paid_orders(user_id)
        response = (
            self.client.table("projects")
            .select("*")
            .eq("user_id", str(user_id))
            .order("created_at", desc=True)
            .execute()
        )
        return [self.with_progress(p) for p in response.data or []]

    async def list_all_projects(self) -> list[dict[str, Any]]:
        """List every project (staff view)."""
        response = (
            self.client.table("projects")
            .select("*")
            .order("created_at", desc=True)
            .execute()
        )
        return [self.with_progress(p) for p in response.data or []]

    async def update_project(self, project_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        """Apply a staff update to a project.

        Status changes must follow not_started -> active, active <-> paused
        and active/paused -> completed.

        Args:
            project_id: The project's ID.
            changes: Any of current_stage, notes, status, due_date.

        Returns:
            dict: The updated project with current progress.

        Raises:
            NotFoundError: If the project does not exist.
            ValidationError: If the status transition is not allowed.
        """
        project = await self.get_project(project_id)
        if not project:
            raise NotFoundError("Project not found")

        update = {k: v for k, v in changes.items() if v is not None}
        new_status = update.get("status")
        if new_status and new_status != project["status"]:
            if new_status not in PROJECT_TRANSITIONS.get(project["status"], ()):
                raise ValidationError(f"Cannot move project from {project['status']} to {new_status}")
            if new_status == "completed":
                update["progress_percentage"] = 100

        if isinstance(update.get("due_date"), datetime):
            update["due_date"] = to_iso(update["due_date"])

        if not update:
            return self.with_progress(project)

        response = (
            self.client.table("projects")
            .update(update)
            .eq("id", str(project_id))
            .execute()
        )
        if not response.data:
            raise NotFoundError("Project not found")
        return self.with_progress(response.data[0])
