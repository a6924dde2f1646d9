"""Unit tests for OrderService."""

import json

import pytest

from portal.api.middleware.error_handler import NotFoundError, ValidationError
from portal.schemas.order import OrderCreateRequest
from portal.services.order_service import OrderService

CLIENT = {"id": "user-1", "email": "ada@example.com", "role": "client"}
OTHER = {"id": "user-2", "email": "bob@example.com", "role": "client"}


def order_request(**overrides) -> OrderCreateRequest:
    data = {
        "serviceId": None,
        "contactInfo": {"fullName": "Ada Lovelace", "email": "Ada@Example.com"},
        "projectDetails": {"title": "Bakery site"},
        "totalAmount": 250000,
        "timeline": "3 weeks",
        **overrides,
    }
    return OrderCreateRequest.model_validate(data)


def seed_order(fake_db, user_id: str = "user-1", status: str = "pending") -> dict:
    return fake_db.seed("orders", {"user_id": user_id, "total_price": 5000, "status": status})


class TestCreateOrder:
    """Tests for create_order."""

    @pytest.mark.asyncio
    async def test_creates_pending_order(self, fake_db, service_row) -> None:
        """Test that a catalog order is stored pending with its timeline."""
        order = await OrderService().create_order(CLIENT, order_request(serviceId=service_row["id"]))

        assert order["status"] == "pending"
        assert order["user_id"] == "user-1"
        assert order["service_id"] == service_row["id"]
        assert order["total_price"] == 250000
        assert order["timeline_days"] == 18
        custom = json.loads(order["custom_request"])
        assert custom["contact_info"]["email"] == "ada@example.com"
        assert custom["project_details"] == {"title": "Bakery site"}
        assert custom["payment_method"] == "paystack"

    @pytest.mark.asyncio
    async def test_custom_request_uses_requested_timeline(self, fake_db) -> None:
        """Test that orders without a service take the requested timeline."""
        order = await OrderService().create_order(CLIENT, order_request())

        assert order["service_id"] is None
        assert order["timeline_days"] == 21

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [0, 99, 10_000_001])
    async def test_rejects_out_of_range_amount(self, fake_db, amount: int) -> None:
        """Test the order amount bounds."""
        with pytest.raises(ValidationError, match="between"):
            await OrderService().create_order(CLIENT, order_request(totalAmount=amount))

        assert fake_db.rows("orders") == []

    @pytest.mark.asyncio
    async def test_rejects_bad_contact_email(self, fake_db) -> None:
        """Test that the contact email is validated."""
        request = order_request(contactInfo={"fullName": "Ada", "email": "nope"})

        with pytest.raises(ValidationError, match="contact email"):
            await OrderService().create_order(CLIENT, request)

    @pytest.mark.asyncio
    async def test_unknown_service(self, fake_db) -> None:
        """Test that a missing service is a 404."""
        with pytest.raises(NotFoundError):
            await OrderService().create_order(CLIENT, order_request(serviceId="missing"))

    @pytest.mark.asyncio
    async def test_inactive_service(self, fake_db) -> None:
        """Test that retired services cannot be ordered."""
        retired = fake_db.seed("services", {"name": "Old", "price": 1000, "is_active": False})

        with pytest.raises(ValidationError, match="no longer available"):
            await OrderService().create_order(CLIENT, order_request(serviceId=retired["id"]))


class TestOrderAccess:
    """Tests for reading orders."""

    @pytest.mark.asyncio
    async def test_owner_can_read(self, fake_db) -> None:
        order = seed_order(fake_db)

        assert (await OrderService().get_order_for_user(order["id"], CLIENT))["id"] == order["id"]

    @pytest.mark.asyncio
    async def test_other_client_gets_not_found(self, fake_db) -> None:
        """Test that foreign orders look missing."""
        order = seed_order(fake_db)

        with pytest.raises(NotFoundError):
            await OrderService().get_order_for_user(order["id"], OTHER)

    @pytest.mark.asyncio
    async def test_staff_can_read_any(self, fake_db) -> None:
        order = seed_order(fake_db)

        fetched = await OrderService().get_order_for_user(order["id"], {"id": "admin-1", "role": "admin"})

        assert fetched["id"] == order["id"]

    @pytest.mark.asyncio
    async def test_lists_only_own_orders(self, fake_db) -> None:
        seed_order(fake_db)
        seed_order(fake_db, user_id="user-2")

        orders = await OrderService().list_orders_for_user("user-1")

        assert [o["user_id"] for o in orders] == ["user-1"]


class TestCancelOrder:
    """Tests for cancel_order."""

    @pytest.mark.asyncio
    async def test_cancels_pending_order(self, fake_db) -> None:
        order = seed_order(fake_db)

        cancelled = await OrderService().cancel_order(order["id"], CLIENT)

        assert cancelled["status"] == "cancelled"

    @pytest.mark.asyncio
    async def test_non_owner_gets_not_found(self, fake_db) -> None:
        """Test that another user cannot cancel (or detect) the order."""
        order = seed_order(fake_db)

        with pytest.raises(NotFoundError):
            await OrderService().cancel_order(order["id"], OTHER)

        assert fake_db.rows("orders")[0]["status"] == "pending"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", ["paid", "in_progress", "complete", "cancelled"])
    async def test_only_pending_can_be_cancelled(self, fake_db, status: str) -> None:
        order = seed_order(fake_db, status=status)

        with pytest.raises(ValidationError, match="Only pending"):
            await OrderService().cancel_order(order["id"], CLIENT)


class TestStatusChanges:
    """Tests for mark_paid and update_status."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", ["pending", "cancelled"])
    async def test_mark_paid_from_payable_states(self, fake_db, status: str) -> None:
        """Test that pending and cancelled orders can still be paid."""
        order = seed_order(fake_db, status=status)

        updated = await OrderService().mark_paid(order["id"])

        assert updated["status"] == "paid"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", ["paid", "in_progress", "complete"])
    async def test_mark_paid_leaves_later_states(self, fake_db, status: str) -> None:
        """Test that a payment never moves an order backwards."""
        order = seed_order(fake_db, status=status)

        assert await OrderService().mark_paid(order["id"]) is None
        assert fake_db.rows("orders")[0]["status"] == status

    @pytest.mark.asyncio
    async def test_update_status_rejects_unknown(self, fake_db) -> None:
        order = seed_order(fake_db)

        with pytest.raises(ValidationError):
            await OrderService().update_status(order["id"], "shipped")

    @pytest.mark.asyncio
    async def test_update_status_missing_order(self, fake_db) -> None:
        with pytest.raises(NotFoundError):
            await OrderService().update_status("missing", "paid")

    def test_contact_email_falls_back(self, fake_db) -> None:
        """Test that the checkout email is preferred over the account email."""
        service = OrderService()

        assert service.contact_email({"custom_request": '{"contact_info": {"email": "c@x.io"}}'}, "a@x.io") == "c@x.io"
        assert service.contact_email({"custom_request": None}, "a@x.io") == "a@x.io"
