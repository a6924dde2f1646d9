"""Integration tests for health, catalog and cross-cutting middleware."""

from fastapi.testclient import TestClient


class TestHealthEndpoints:
    """Tests for /health, /health/ready and /health/stats."""

    def test_health_returns_healthy(self, client: TestClient) -> None:
        """Test that /health endpoint returns healthy status."""
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["version"] == "0.1.0"
        assert data["timestamp"] is not None

    def test_readiness_includes_database_check(self, client: TestClient) -> None:
        """Test that /health/ready includes database connectivity check."""
        response = client.get("/health/ready")

        assert response.status_code == 200
        db_check = next(c for c in response.json()["checks"] if c["name"] == "database")
        assert db_check["healthy"] is True
        assert db_check["latency_ms"] is not None

    def test_readiness_returns_503_when_database_unhealthy(self, client: TestClient, fake_db) -> None:
        """Test that /health/ready returns 503 when the database is unreachable."""
        fake_db.fail_tables["users"] = ConnectionError("connection refused")

        response = client.get("/health/ready")

        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "unhealthy"
        assert "connection refused" in data["checks"][0]["error"]

    def test_stats(self, client: TestClient) -> None:
        """Test that runtime statistics are reported."""
        client.get("/health")

        data = client.get("/health/stats").json()

        assert data["cache"]["backend"] == "memory"
        assert data["rate_limiter"] is not None
        assert "latency" in data


class TestCatalog:
    """Tests for /api/services."""

    def test_lists_active_services(self, client: TestClient, service_row, fake_db) -> None:
        fake_db.seed("services", {"name": "Retired", "price": 1, "is_active": False})

        items = client.get("/api/services").json()["items"]

        assert [s["name"] for s in items] == ["Business Website"]
        assert items[0]["price"] == 250000

    def test_get_service(self, client: TestClient, service_row) -> None:
        response = client.get(f"/api/services/{service_row['id']}")

        assert response.status_code == 200
        assert response.json()["duration"] == "2-3 weeks"

    def test_inactive_service_is_not_found(self, client: TestClient, fake_db) -> None:
        retired = fake_db.seed("services", {"name": "Retired", "price": 1, "is_active": False})

        response = client.get(f"/api/services/{retired['id']}")

        assert response.status_code == 404
        body = response.json()
        assert body["error"] == "not_found"
        assert body["message"] == "Service not found"


class TestMiddleware:
    """Tests for headers and error envelopes added by middleware."""

    def test_security_headers(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"
        assert "Strict-Transport-Security" not in response.headers

    def test_auth_responses_are_not_cached(self, client: TestClient) -> None:
        response = client.get("/api/auth/user")

        assert response.headers["Cache-Control"] == "no-cache, no-store, must-revalidate"

    def test_error_envelope_echoes_request_id(self, client: TestClient) -> None:
        response = client.get("/api/orders", headers={"X-Request-ID": "req-123"})

        body = response.json()
        assert response.status_code == 401
        assert body["request_id"] == "req-123"
        assert set(body) >= {"error", "message", "timestamp"}

    def test_oversized_body_is_rejected(self, client: TestClient) -> None:
        response = client.post(
            "/api/auth/login",
            content=b"x" * (11 * 1024 * 1024),
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 413
