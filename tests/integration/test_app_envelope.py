"""Integration tests for health probes, tenant header handling and the error envelope."""

from uuid import UUID, uuid4

import httpx
import pytest

from src.core.security import create_access_token, create_refresh_token


@pytest.mark.integration
class TestHealth:
    """Probes that need no tenant or database."""

    async def test_health(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/api/v1/health")
        assert response.status_code == 200
        assert response.json() == {"message": "Healthy"}

    async def test_correlation_id_is_echoed(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/api/v1/health", headers={"X-Correlation-ID": "corr-123"})
        assert response.headers["X-Correlation-ID"] == "corr-123"

    async def test_correlation_id_is_generated(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/api/v1/health")
        assert UUID(response.headers["X-Correlation-ID"])

    async def test_tenant_echo(self, client: httpx.AsyncClient, tenant_id: UUID) -> None:
        response = await client.get("/api/v1/health/tenant", headers={"X-Tenant-ID": str(tenant_id)})
        assert response.status_code == 200
        assert response.json() == {"tenant_id": str(tenant_id)}

    async def test_websocket_info(self, client: httpx.AsyncClient) -> None:
        body = (await client.get("/api/v1/websocket-info")).json()
        assert [e["path"] for e in body["endpoints"]] == ["/ws/machines", "/ws/orders"]
        assert body["security"]["close_codes"] == {"4401": "missing or invalid token", "4403": "tenant mismatch"}


@pytest.mark.integration
class TestErrorEnvelope:
    """Every error is returned in the same JSON envelope."""

    async def test_missing_tenant_header(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/api/v1/machines")
        assert response.status_code == 400
        body = response.json()
        assert body["status"] == 400
        assert body["error"] == {"type": "http_error", "message": "X-Tenant-ID header is required.", "details": None}
        assert body["path"] == "/api/v1/machines"
        assert body["method"] == "GET"
        assert body["correlation_id"]

    async def test_invalid_tenant_header(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/api/v1/health/tenant", headers={"X-Tenant-ID": "not-a-uuid"})
        assert response.status_code == 400
        assert response.json()["error"]["message"] == "X-Tenant-ID header must be a valid UUID string."

    async def test_unknown_route(self, client: httpx.AsyncClient) -> None:
        response = await client.get("/api/v1/does-not-exist")
        assert response.status_code == 404
        assert response.json()["error"]["type"] == "http_error"

    async def test_missing_token(self, client: httpx.AsyncClient, tenant_id: UUID) -> None:
        response = await client.get("/api/v1/machines", headers={"X-Tenant-ID": str(tenant_id)})
        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"
        assert response.json()["tenant_id"] == str(tenant_id)

    async def test_invalid_token(self, client: httpx.AsyncClient, tenant_id: UUID) -> None:
        headers = {"X-Tenant-ID": str(tenant_id), "Authorization": "Bearer garbage"}
        response = await client.get("/api/v1/machines", headers=headers)
        assert response.status_code == 401
        assert response.json()["error"]["message"] == "Invalid token"

    async def test_refresh_token_is_not_an_access_token(self, client: httpx.AsyncClient, tenant_id: UUID) -> None:
        token = create_refresh_token(str(uuid4()), str(tenant_id))
        headers = {"X-Tenant-ID": str(tenant_id), "Authorization": f"Bearer {token}"}
        response = await client.get("/api/v1/machines", headers=headers)
        assert response.status_code == 401
        assert response.json()["error"]["message"] == "Invalid token type"

    async def test_token_for_another_tenant(self, client: httpx.AsyncClient, tenant_id: UUID) -> None:
        token = create_access_token(str(uuid4()), str(uuid4()))
        headers = {"X-Tenant-ID": str(tenant_id), "Authorization": f"Bearer {token}"}
        response = await client.get("/api/v1/machines", headers=headers)
        assert response.status_code == 403
        assert response.json()["error"]["message"] == "Tenant mismatch"

    async def test_validation_error(self, client: httpx.AsyncClient, tenant_id: UUID) -> None:
        """Body validation failures are 422 with the field errors as details."""
        response = await client.post(f"/api/v1/payments/webhooks/{tenant_id}/payme", json={"params": {}})
        assert response.status_code == 422
        body = response.json()
        assert body["error"]["type"] == "validation_error"
        assert any(err["loc"][-1] == "method" for err in body["error"]["details"])
        assert body["tenant_id"] == str(tenant_id)
