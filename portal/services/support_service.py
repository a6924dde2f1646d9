"""Project messages and support requests."""

import logging
from typing import Any

from portal.api.middleware.error_handler import NotFoundError, ValidationError
from portal.core.audit import audit_log
from portal.core.security import sanitize_input
from portal.core.supabase import get_supabase_client
from portal.core.timestamps import to_iso, utcnow
from portal.services.project_service import ProjectService

logger = logging.getLogger(__name__)

STAFF_ROLES = ("admin", "pm")


class SupportService:
    """Service for client/staff communication."""

    def __init__(self) -> None:
        """Initialize support service with Supabase client."""
        self.client = get_supabase_client()
        self.projects = ProjectService()

    async def list_messages(self, project_id: str, user: dict[str, Any]) -> list[dict[str, Any]]:
        """List a project's messages, oldest first.

        Raises:
            NotFoundError: If the project is not visible to the user.
        """
        await self.projects.get_project_for_user(project_id, user)
        response = (
            self.client.table("messages")
            .select("*")
            .eq("project_id", str(project_id))
            .order("sent_at")
            .execute()
        )
        return response.data or []

    async def post_message(self, project_id: str, user: dict[str, Any], content: str) -> dict[str, Any]:
        """Post a message on a project.

        Raises:
            NotFoundError: If the project is not visible to the user.
        """
        body = sanitize_input(content)
        if not body:
            raise ValidationError("Message cannot be empty")
        await self.projects.get_project_for_user(project_id, user)
        response = self.client.table("messages").insert({
            "project_id": str(project_id),
            "sender_id": str(user["id"]),
            "content": body,
            "is_admin": user.get("role") in STAFF_ROLES,
            "sent_at": to_iso(utcnow()),
        }).execute()
        return response.data[0]

    async def list_support_requests(self, user: dict[str, Any]) -> list[dict[str, Any]]:
        """List support requests: the user's own, or all of them for staff."""
        query = self.client.table("support_requests").select("*")
        if user.get("role") not in STAFF_ROLES:
            query = query.eq("user_id", str(user["id"]))
        response = query.order("created_at", desc=True).execute()
        return response.data or []

    async def create_support_request(
        self,
        user: dict[str, Any],
        subject: str,
        description: str,
        project_id: str | None = None,
    ) -> dict[str, Any]:
        """Open a support request, optionally about one of the user's projects.

        Raises:
            NotFoundError: If the project is not visible to the user.
        """
        subject = sanitize_input(subject)
        description = sanitize_input(description)
        if not subject or not description:
            raise ValidationError("Subject and description are required")

        if project_id:
            await self.projects.get_project_for_user(project_id, user)

        response = self.client.table("support_requests").insert({
            "user_id": str(user["id"]),
            "project_id": str(project_id) if project_id else None,
            "subject": subject,
            "description": description,
            "status": "open",
            "created_at": to_iso(utcnow()),
        }).execute()
        request = response.data[0]
        logger.info("Support request %s opened by %s", request["id"], user["id"])
        return request

    async def update_status(self, request_id: str, status: str, actor: str | None = None) -> dict[str, Any]:
        """Change a support request's status (staff only).

        Raises:
            NotFoundError: If the request does not exist.
        """
        response = (
            self.client.table("support_requests")
            .update({"status": status})
            .eq("id", str(request_id))
            .execute()
        )
        if not response.data:
            raise NotFoundError("Support request not found")
        audit_log("support_request_updated", actor, request_id=str(request_id), status=status)
        return response.data[0]
