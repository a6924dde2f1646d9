"""Unit tests for project timelines, progress and lifecycle."""

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from portal.api.middleware.error_handler import NotFoundError, ValidationError
from portal.services.project_service import (
    DEFAULT_TIMELINE_DAYS,
    ProjectService,
    compute_progress,
    decode_custom_request,
    derive_timeline_days,
    parse_timeline_days,
)

START = datetime(2026, 1, 1, tzinfo=timezone.utc)


def paid_order(fake_db, user_id: str = "user-1", **columns) -> dict:
    return fake_db.seed("orders", {
        "user_id": user_id,
        "service_id": None,
        "custom_request": json.dumps({"project_details": {"title": "Bakery site"}, "timeline": "10 days"}),
        "total_price": 150000,
        "status": "paid",
        "timeline_days": None,
        **columns,
    })


class TestParseTimelineDays:
    """Tests for parse_timeline_days."""

    @pytest.mark.parametrize(
        ("text", "days"),
        [
            ("10 days", 10),
            ("1 day", 1),
            ("3 weeks", 21),
            ("2-3 weeks", 18),
            ("2 - 4 days", 3),
            ("1 to 2 months", 45),
            ("About 6 Weeks", 42),
            ("1 month", 30),
        ],
    )
    def test_parses_durations(self, text: str, days: int) -> None:
        """Test singles and ranges (ranges use the midpoint, rounded up)."""
        assert parse_timeline_days(text) == days

    @pytest.mark.parametrize("text", [None, "", "asap", "0 days"])
    def test_unparseable(self, text) -> None:
        """Test that vague or empty text yields None."""
        assert parse_timeline_days(text) is None


class TestDeriveTimelineDays:
    """Tests for derive_timeline_days precedence."""

    def test_structured_duration_wins(self) -> None:
        """Test that duration_days beats everything else."""
        assert derive_timeline_days({"duration_days": 14, "duration": "2-3 weeks"}, "1 month") == 14

    def test_service_text_before_requested(self) -> None:
        """Test that the service text beats the requested timeline."""
        assert derive_timeline_days({"duration_days": None, "duration": "2-3 weeks"}, "1 month") == 18

    def test_requested_timeline(self) -> None:
        """Test that the requested timeline is used for custom orders."""
        assert derive_timeline_days(None, "3 weeks") == 21

    def test_default(self) -> None:
        """Test the four week fallback."""
        assert derive_timeline_days({"duration": "flexible"}, None) == DEFAULT_TIMELINE_DAYS == 28


class TestComputeProgress:
    """Tests for compute_progress."""

    def _project(self, **overrides) -> dict:
        return {
            "status": "active",
            "start_date": START.isoformat(),
            "due_date": (START + timedelta(days=10)).isoformat(),
            "progress_percentage": 0,
            **overrides,
        }

    def test_halfway(self) -> None:
        """Test the elapsed share of the timeline."""
        assert compute_progress(self._project(), now=START + timedelta(days=5)) == 50

    def test_clamped_before_start_and_after_due(self) -> None:
        """Test that progress stays within 0-100."""
        assert compute_progress(self._project(), now=START - timedelta(days=3)) == 0
        assert compute_progress(self._project(), now=START + timedelta(days=30)) == 100

    def test_completed_is_full(self) -> None:
        """Test that completed projects always report 100."""
        assert compute_progress(self._project(status="completed"), now=START) == 100

    def test_without_dates_uses_stored_value(self) -> None:
        """Test that undated projects keep their stored percentage."""
        assert compute_progress({"status": "active", "progress_percentage": 40}) == 40

    def test_zero_length_timeline(self) -> None:
        """Test that a due date equal to the start does not divide by zero."""
        project = self._project(due_date=START.isoformat())

        assert compute_progress(project, now=START - timedelta(hours=1)) == 0
        assert compute_progress(project, now=START) == 100


class TestDecodeCustomRequest:
    """Tests for decode_custom_request."""

    def test_decodes_json_text(self) -> None:
        assert decode_custom_request({"custom_request": '{"timeline": "1 week"}'}) == {"timeline": "1 week"}

    def test_passes_dicts_through(self) -> None:
        assert decode_custom_request({"custom_request": {"a": 1}}) == {"a": 1}

    @pytest.mark.parametrize("raw", [None, "", "{broken", "[1, 2]"])
    def test_bad_values_decode_empty(self, raw) -> None:
        assert decode_custom_request({"custom_request": raw}) == {}


class TestCreateOrActivateProject:
    """Tests for create_or_activate_project."""

    @pytest.mark.asyncio
    async def test_creates_project_from_service(self, fake_db) -> None:
        """Test the initial project fields for a catalog order."""
        order = paid_order(fake_db, service_id="svc-1", timeline_days=18)
        service = {"id": "svc-1", "name": "Business Website", "duration": "2-3 weeks"}

        project = await ProjectService().create_or_activate_project(order, service)

        assert project["order_id"] == order["id"]
        assert project["user_id"] == "user-1"
        assert project["project_name"] == "Business Website"
        assert project["current_stage"] == "Discovery"
        assert project["status"] == "active"
        assert project["timeline_days"] == 18
        assert project["timeline_weeks"] == 3
        assert project["progress_percentage"] == 0
        assert project["notes"] == f"Project created from order {order['id']}"

    @pytest.mark.asyncio
    async def test_custom_order_uses_brief(self, fake_db) -> None:
        """Test that custom orders take their name and timeline from the brief."""
        order = paid_order(fake_db)

        project = await ProjectService().create_or_activate_project(order)

        assert project["project_name"] == "Bakery site"
        assert project["timeline_days"] == 10

    @pytest.mark.asyncio
    async def test_fallback_name(self, fake_db) -> None:
        """Test the generic name when nothing better is known."""
        order = paid_order(fake_db, custom_request=None)

        project = await ProjectService().create_or_activate_project(order)

        assert project["project_name"] == "Custom Project"
        assert project["timeline_days"] == DEFAULT_TIMELINE_DAYS

    @pytest.mark.asyncio
    async def test_is_idempotent(self, fake_db) -> None:
        """Test that a second call returns the same project."""
        order = paid_order(fake_db)
        service = ProjectService()

        first = await service.create_or_activate_project(order)
        second = await service.create_or_activate_project(order)

        assert first["id"] == second["id"]
        assert len(fake_db.rows("projects")) == 1

    @pytest.mark.asyncio
    async def test_activates_not_started_project(self, fake_db) -> None:
        """Test that a placeholder project is activated and scheduled."""
        order = paid_order(fake_db, timeline_days=14)
        placeholder = fake_db.seed("projects", {
            "order_id": order["id"],
            "user_id": "user-1",
            "project_name": "Placeholder",
            "current_stage": "Discovery",
            "status": "not_started",
        })

        project = await ProjectService().create_or_activate_project(order)

        assert project["id"] == placeholder["id"]
        assert project["status"] == "active"
        assert project["timeline_days"] == 14
        assert project["due_date"] is not None

    @pytest.mark.asyncio
    async def test_concurrent_insert_returns_winner(self, fake_db) -> None:
        """Test that losing the unique-constraint race returns the existing project."""
        order = paid_order(fake_db)
        winner = fake_db.seed("projects", {"order_id": order["id"], "user_id": "user-1", "status": "active"})
        service = ProjectService()
        service.get_project_by_order = AsyncMock(side_effect=[None, winner])

        project = await service.create_or_activate_project(order)

        assert project["id"] == winner["id"]
        assert len(fake_db.rows("projects")) == 1


class TestProjectQueries:
    """Tests for listing, access and backfill."""

    @pytest.mark.asyncio
    async def test_backfills_missing_projects(self, fake_db) -> None:
        """Test that paid orders without a project get one when listing."""
        paid_order(fake_db)
        paid_order(fake_db, status="pending")
        service = ProjectService()

        projects = await service.list_projects_for_user("user-1")

        assert len(projects) == 1
        assert await service.ensure_projects_for_paid_orders("user-1") == 0

    @pytest.mark.asyncio
    async def test_owner_and_staff_can_read(self, fake_db) -> None:
        """Test project visibility rules."""
        project = fake_db.seed("projects", {"order_id": "o-1", "user_id": "user-1", "status": "active"})
        service = ProjectService()

        assert (await service.get_project_for_user(project["id"], {"id": "user-1", "role": "client"}))["id"]
        assert (await service.get_project_for_user(project["id"], {"id": "pm-1", "role": "pm"}))["id"]
        with pytest.raises(NotFoundError):
            await service.get_project_for_user(project["id"], {"id": "user-2", "role": "client"})


class TestUpdateProject:
    """Tests for staff project updates."""

    @pytest.mark.asyncio
    async def test_completing_sets_full_progress(self, fake_db) -> None:
        """Test that completion pins progress to 100."""
        project = fake_db.seed("projects", {"order_id": "o-1", "user_id": "u", "status": "active", "current_stage": "Testing"})

        updated = await ProjectService().update_project(project["id"], {"status": "completed", "current_stage": "Launch"})

        assert updated["status"] == "completed"
        assert updated["current_stage"] == "Launch"
        assert updated["progress_percentage"] == 100

    @pytest.mark.asyncio
    async def test_rejects_invalid_transition(self, fake_db) -> None:
        """Test that completed projects cannot be reopened."""
        project = fake_db.seed("projects", {"order_id": "o-1", "user_id": "u", "status": "completed"})

        with pytest.raises(ValidationError, match="Cannot move project"):
            await ProjectService().update_project(project["id"], {"status": "active"})

    @pytest.mark.asyncio
    async def test_pause_and_resume(self, fake_db) -> None:
        """Test the active/paused round trip."""
        project = fake_db.seed("projects", {"order_id": "o-1", "user_id": "u", "status": "active"})
        service = ProjectService()

        await service.update_project(project["id"], {"status": "paused"})
        resumed = await service.update_project(project["id"], {"status": "active"})

        assert resumed["status"] == "active"

    @pytest.mark.asyncio
    async def test_missing_project(self, fake_db) -> None:
        with pytest.raises(NotFoundError):
            await ProjectService().update_project("nope", {"notes": "x"})
