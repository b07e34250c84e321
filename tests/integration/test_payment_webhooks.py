"""Integration tests for provider callbacks: authentication and protocol-level errors."""

import base64
from uuid import UUID

import httpx
import pytest

from src.integrations.payment_signatures import click_sign, uzum_webhook_signature


def payme_auth(key: str = "payme-key") -> dict:
    token = base64.b64encode(f"payme-merchant:{key}".encode()).decode()
    return {"Authorization": f"Basic {token}"}


@pytest.mark.integration
class TestPaymeWebhook:
    """JSON-RPC endpoint guarded by Basic merchant credentials."""

    async def test_bad_credentials(self, client: httpx.AsyncClient, tenant_id: UUID) -> None:
        response = await client.post(
            f"/api/v1/payments/webhooks/{tenant_id}/payme",
            json={"method": "CheckTransaction", "params": {}, "id": 1},
            headers=payme_auth("wrong"),
        )
        assert response.status_code == 401
        body = response.json()
        assert body["error"]["message"] == "Invalid Payme webhook signature"
        assert body["tenant_id"] == str(tenant_id)

    async def test_missing_credentials(self, client: httpx.AsyncClient, tenant_id: UUID) -> None:
        response = await client.post(
            f"/api/v1/payments/webhooks/{tenant_id}/payme", json={"method": "CheckTransaction", "id": 1}
        )
        assert response.status_code == 401

    async def test_unknown_method(self, client: httpx.AsyncClient, tenant_id: UUID, mock_session) -> None:
        response = await client.post(
            f"/api/v1/payments/webhooks/{tenant_id}/payme",
            json={"method": "GetStatement", "params": {}, "id": 5},
            headers=payme_auth(),
        )
        assert response.status_code == 200
        assert response.json() == {
            "error": {
                "code": -32601,
                "message": {"ru": "Метод не найден", "uz": "Metod topilmadi", "en": "Method not found"},
            },
            "id": 5,
        }
        # The tenant GUC was set for the webhook's session.
        first_call = mock_session.execute.await_args_list[0]
        assert first_call.args[1] == {"tenant_id": str(tenant_id)}


CLICK_FORM = {
    "click_trans_id": "5551",
    "service_id": "click-service",
    "merchant_trans_id": "ORD-2025-00001",
    "amount": "15000",
    "action": "0",
    "sign_time": "2025-06-01 10:00:00",
}


@pytest.mark.integration
class TestClickWebhook:
    """Click always answers 200 with error/error_note."""

    async def test_invalid_signature(self, client: httpx.AsyncClient, tenant_id: UUID) -> None:
        response = await client.post(
            f"/api/v1/payments/webhooks/{tenant_id}/click", data={**CLICK_FORM, "sign_string": "deadbeef"}
        )
        assert response.status_code == 200
        assert response.json() == {"error": -1, "error_note": "Invalid signature"}

    async def test_signed_but_malformed(self, client: httpx.AsyncClient, tenant_id: UUID) -> None:
        """Signature checks run on the raw fields before the request is parsed."""
        form = {k: v for k, v in CLICK_FORM.items() if k != "service_id"}
        form["sign_string"] = click_sign(form, "click-secret")
        response = await client.post(f"/api/v1/payments/webhooks/{tenant_id}/click", data=form)
        assert response.json() == {"error": -8, "error_note": "Error in request from click"}

    async def test_json_body(self, client: httpx.AsyncClient, tenant_id: UUID) -> None:
        response = await client.post(
            f"/api/v1/payments/webhooks/{tenant_id}/click", json={**CLICK_FORM, "sign_string": "nope"}
        )
        assert response.json()["error"] == -1


@pytest.mark.integration
class TestUzumWebhook:
    """Uzum answers 200 with success/error."""

    async def test_invalid_signature(self, client: httpx.AsyncClient, tenant_id: UUID) -> None:
        payload = {"transactionId": "tx-1", "orderId": "ORD-1", "amount": 15000, "status": "COMPLETED", "signature": "x"}
        response = await client.post(f"/api/v1/payments/webhooks/{tenant_id}/uzum", json=payload)
        assert response.status_code == 200
        assert response.json() == {"success": False, "error": "Invalid signature"}

    async def test_unknown_transaction_id(self, client: httpx.AsyncClient, tenant_id: UUID) -> None:
        payload = {"transactionId": "not-ours", "orderId": "ORD-1", "amount": 15000, "status": "COMPLETED"}
        payload["signature"] = uzum_webhook_signature("uzum-secret", payload)
        response = await client.post(f"/api/v1/payments/webhooks/{tenant_id}/uzum", json=payload)
        assert response.json() == {"success": False, "error": "Transaction not found"}
