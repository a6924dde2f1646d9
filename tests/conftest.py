"""Pytest configuration and fixtures."""

import copy
import hashlib
import hmac
import os
import uuid
from collections.abc import Callable, Generator
from datetime import datetime, timedelta, timezone
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient
from postgrest.exceptions import APIError as PostgrestAPIError

# Set test environment variables before importing application modules
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_SECRET_KEY", "test-secret-key")
os.environ.setdefault("SESSION_SECRET", "test-session-secret")
os.environ.setdefault("SESSION_COOKIE_SECURE", "false")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("PROGRESSIVE_DELAY_ENABLED", "false")
os.environ.setdefault("PAYSTACK_SECRET_KEY", "sk_test_paystack_secret")
os.environ.setdefault("PAYSTACK_CALLBACK_BASE_URL", "http://testserver")
os.environ.setdefault("FRONTEND_URL", "http://frontend.test")

SERVICE_MODULES = (
    "portal.services.user_service",
    "portal.services.session_service",
    "portal.services.auth_service",
    "portal.services.order_service",
    "portal.services.project_service",
    "portal.services.support_service",
    "portal.services.checkout_session_service",
    "portal.services.payment_service",
    "portal.services.referral_service",
    "portal.services.catalog_service",
    "portal.core.supabase",
)

# Columns backed by a unique constraint in supabase/schema.sql
UNIQUE_COLUMNS: dict[str, tuple[str, ...]] = {
    "users": ("email", "referral_code"),
    "user_sessions": ("session_token",),
    "password_reset_tokens": ("token_hash",),
    "payments": ("provider_reference",),
    "projects": ("order_id",),
    "referrals": ("order_id",),
    "referral_earnings": ("order_id",),
    "checkout_sessions": ("session_token",),
}

STRONG_PASSWORD = "Str0ng!Pass"


def _normalize(value: Any) -> Any:
    if isinstance(value, bool) or value is None:
        return value
    return str(value)


def _comparable(value: Any) -> Any:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return value


class FakeResponse:
    """Stand-in for a PostgREST APIResponse."""

    def __init__(self, data: Any) -> None:
        self.data = data
        self.count = len(data) if isinstance(data, list) else None


class FakeQuery:
    """Chainable query builder over one in-memory table."""

    def __init__(self, db: "FakeSupabase", table: str) -> None:
        self.db = db
        self.table = table
        self.operation = "select"
        self.payload: Any = None
        self.filters: list[tuple[str, str, Any]] = []
        self.ordering: tuple[str, bool] | None = None
        self.row_limit: int | None = None
        self.single = False

    def select(self, *columns: str, **kwargs: Any) -> "FakeQuery":
        self.operation = "select"
        return self

    def insert(self, payload: dict | list) -> "FakeQuery":
        self.operation = "insert"
        self.payload = payload
        return self

    def update(self, payload: dict) -> "FakeQuery":
        self.operation = "update"
        self.payload = payload
        return self

    def delete(self) -> "FakeQuery":
        self.operation = "delete"
        return self

    def _filter(self, op: str, column: str, value: Any) -> "FakeQuery":
        self.filters.append((op, column, value))
        return self

    def eq(self, column: str, value: Any) -> "FakeQuery":
        return self._filter("eq", column, value)

    def neq(self, column: str, value: Any) -> "FakeQuery":
        return self._filter("neq", column, value)

    def in_(self, column: str, values: list) -> "FakeQuery":
        return self._filter("in", column, values)

    def lt(self, column: str, value: Any) -> "FakeQuery":
        return self._filter("lt", column, value)

    def lte(self, column: str, value: Any) -> "FakeQuery":
        return self._filter("lte", column, value)

    def gt(self, column: str, value: Any) -> "FakeQuery":
        return self._filter("gt", column, value)

    def gte(self, column: str, value: Any) -> "FakeQuery":
        return self._filter("gte", column, value)

    def is_(self, column: str, value: Any) -> "FakeQuery":
        return self._filter("is", column, None if value in (None, "null") else value)

    def order(self, column: str, desc: bool = False, **kwargs: Any) -> "FakeQuery":
        self.ordering = (column, desc)
        return self

    def limit(self, count: int) -> "FakeQuery":
        self.row_limit = count
        return self

    def maybe_single(self) -> "FakeQuery":
        self.single = True
        return self

    def _matches(self, row: dict[str, Any]) -> bool:
        for op, column, value in self.filters:
            current = row.get(column)
            if op == "eq" and _normalize(current) != _normalize(value):
                return False
            if op == "neq" and _normalize(current) == _normalize(value):
                return False
            if op == "in" and _normalize(current) not in {_normalize(v) for v in value}:
                return False
            if op == "is" and current is not value:
                return False
            if op in ("lt", "lte", "gt", "gte"):
                if current is None:
                    return False
                left, right = _comparable(current), _comparable(value)
                if op == "lt" and not left < right:
                    return False
                if op == "lte" and not left <= right:
                    return False
                if op == "gt" and not left > right:
                    return False
                if op == "gte" and not left >= right:
                    return False
        return True

    def _check_unique(self, candidate: dict[str, Any], ignore: dict[str, Any] | None = None) -> None:
        for column in UNIQUE_COLUMNS.get(self.table, ()):
            value = candidate.get(column)
            if value is None:
                continue
            for row in self.db.tables[self.table]:
                if row is ignore:
                    continue
                if _normalize(row.get(column)) == _normalize(value):
                    raise PostgrestAPIError({
                        "code": "23505",
                        "message": f'duplicate key value violates unique constraint "{self.table}_{column}_key"',
                        "details": None,
                        "hint": None,
                    })

    def execute(self) -> FakeResponse:
        if self.db.fail_tables.get(self.table):
            raise self.db.fail_tables[self.table]

        rows = self.db.tables[self.table]

        if self.operation == "insert":
            payload = self.payload if isinstance(self.payload, list) else [self.payload]
            inserted = []
            for item in payload:
                row = copy.deepcopy(item)
                row.setdefault("id", str(uuid.uuid4()))
                row.setdefault("created_at", datetime.now(timezone.utc).isoformat())
                self._check_unique(row)
                rows.append(row)
                inserted.append(copy.deepcopy(row))
            return FakeResponse(inserted)

        matched = [row for row in rows if self._matches(row)]

        if self.operation == "update":
            for row in matched:
                self._check_unique({**row, **self.payload}, ignore=row)
                row.update(copy.deepcopy(self.payload))
            return FakeResponse([copy.deepcopy(r) for r in matched])

        if self.operation == "delete":
            self.db.tables[self.table] = [row for row in rows if row not in matched]
            return FakeResponse([copy.deepcopy(r) for r in matched])

        if self.ordering:
            column, desc = self.ordering
            matched = sorted(matched, key=lambda r: _comparable(r.get(column)) or "", reverse=desc)
        if self.row_limit is not None:
            matched = matched[: self.row_limit]

        result = [copy.deepcopy(r) for r in matched]
        if self.single:
            return FakeResponse(result[0] if result else None)
        return FakeResponse(result)


class FakeSupabase:
    """In-memory replacement for the Supabase client's table API."""

    def __init__(self) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {}
        self.fail_tables: dict[str, Exception] = {}

    def table(self, name: str) -> FakeQuery:
        self.tables.setdefault(name, [])
        return FakeQuery(self, name)

    def rows(self, name: str) -> list[dict[str, Any]]:
        """Current rows of a table."""
        return self.tables.setdefault(name, [])

    def seed(self, name: str, row: dict[str, Any]) -> dict[str, Any]:
        """Insert a row directly, bypassing unique checks."""
        row = dict(row)
        row.setdefault("id", str(uuid.uuid4()))
        row.setdefault("created_at", datetime.now(timezone.utc).isoformat())
        self.rows(name).append(row)
        return row


@pytest.fixture(scope="session")
def test_settings() -> Generator[Any, None, None]:
    """Provide test settings with cleared cache.

    Yields:
        Settings: Test configuration settings.
    """
    from portal.core.config import get_settings

    get_settings.cache_clear()
    settings = get_settings()
    yield settings
    get_settings.cache_clear()


@pytest.fixture
def fake_db() -> Generator[FakeSupabase, None, None]:
    """Patch every service's Supabase client with a fresh in-memory database.

    Yields:
        FakeSupabase: The database shared by all services for this test.
    """
    import portal.core.cache as cache_module

    db = FakeSupabase()
    cache_module._cache = None

    patchers = [patch(f"{module}.get_supabase_client", return_value=db) for module in SERVICE_MODULES]
    for patcher in patchers:
        patcher.start()
    try:
        yield db
    finally:
        for patcher in patchers:
            patcher.stop()
        cache_module._cache = None


@pytest.fixture
def mock_paystack() -> Generator[dict[str, MagicMock], None, None]:
    """Replace the Paystack HTTP calls. Signature checks stay real.

    Yields:
        dict: ``initialize`` and ``verify`` mocks.
    """
    from portal.core.paystack import PaystackClient

    with (
        patch.object(
            PaystackClient,
            "initialize_transaction",
            return_value={
                "authorization_url": "https://checkout.paystack.com/test_access",
                "access_code": "test_access",
                "reference": "ignored",
            },
        ) as initialize,
        patch.object(PaystackClient, "verify_transaction") as verify,
    ):
        yield {"initialize": initialize, "verify": verify}


@pytest.fixture
def client(fake_db: FakeSupabase) -> Generator[TestClient, None, None]:
    """Provide a test client for the FastAPI application.

    Each client gets a fresh rate limiter through the app lifespan.

    Yields:
        TestClient: FastAPI test client.
    """
    from portal.main import app

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def service_row(fake_db: FakeSupabase) -> dict[str, Any]:
    """An active service package."""
    return fake_db.seed("services", {
        "name": "Business Website",
        "description": "Five-page marketing site",
        "price": 250000,
        "category": "web",
        "duration": "2-3 weeks",
        "duration_days": None,
        "is_active": True,
    })


@pytest.fixture
def make_user(fake_db: FakeSupabase) -> Callable[..., dict[str, Any]]:
    """Factory seeding users rows directly.

    Returns:
        Callable: ``make_user(email, role="client", password=..., **columns)``.
    """
    from portal.core.security import hash_password_sync

    def _make_user(
        email: str = "client@example.com",
        role: str = "client",
        password: str | None = STRONG_PASSWORD,
        **columns: Any,
    ) -> dict[str, Any]:
        return fake_db.seed("users", {
            "email": email,
            "password_hash": hash_password_sync(password, rounds=4) if password else None,
            "first_name": "Test",
            "role": role,
            "provider": "local" if password else "google",
            "referral_code": f"REF{uuid.uuid4().hex[:8].upper()}",
            "referred_by": None,
            **columns,
        })

    return _make_user


@pytest.fixture
def login_as(fake_db: FakeSupabase) -> Callable[[TestClient, dict[str, Any]], str]:
    """Factory giving a client a valid session for a seeded user.

    Returns:
        Callable: ``login_as(client, user)`` returning the session token.
    """
    from portal.core.config import get_settings

    def _login_as(test_client: TestClient, user: dict[str, Any]) -> str:
        token = uuid.uuid4().hex + uuid.uuid4().hex
        now = datetime.now(timezone.utc)
        fake_db.seed("user_sessions", {
            "session_token": token,
            "user_id": user["id"],
            "auth_method": "local",
            "login_at": now.isoformat(),
            "last_activity_at": now.isoformat(),
            "expires_at": (now + timedelta(days=7)).isoformat(),
        })
        test_client.cookies.clear()
        test_client.cookies.set(get_settings().session_cookie_name, token)
        return token

    return _login_as


def sign_webhook(body: bytes) -> str:
    """HMAC-SHA512 signature Paystack would send for ``body``."""
    from portal.core.config import get_settings

    secret = get_settings().paystack_secret_key.encode("utf-8")
    return hmac.new(secret, body, hashlib.sha512).hexdigest()


@pytest.fixture
def webhook_signer() -> Callable[[bytes], str]:
    """Sign webhook bodies with the configured Paystack secret."""
    return sign_webhook


@pytest.fixture
def logged_in_client(client: TestClient) -> tuple[TestClient, dict[str, Any]]:
    """A client with a freshly registered, logged-in user."""
    response = client.post(
        "/api/auth/register",
        json={"email": "client@example.com", "password": STRONG_PASSWORD, "firstName": "Ada"},
    )
    assert response.status_code == 201, response.text
    return client, response.json()["user"]
