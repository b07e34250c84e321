"""Unit tests for PaymentService webhook protocols and refunds; the repository is mocked."""

import base64
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Any, Dict
from uuid import uuid4

import pytest
from fastapi import HTTPException
from pytest_mock import MockerFixture

from src.core.settings import get_app_settings
from src.integrations.payment_signatures import click_sign, uzum_webhook_signature
from src.schemas.payments import PaymeRequest, RefundCreate
from src.services.payments import PaymentService

PAYME_AUTH = "Basic " + base64.b64encode(b"payme-merchant:payme-key").decode()
CREATED = datetime(2025, 6, 1, 10, 0, tzinfo=timezone.utc)


def transaction(**overrides) -> SimpleNamespace:
    fields = {
        "id": uuid4(),
        "provider": "payme",
        "provider_tx_id": None,
        "amount": 15000,
        "status": "pending",
        "order_id": "ORD-2025-00001",
        "created_at": CREATED,
        "updated_at": CREATED,
        "processed_at": None,
        "raw_request": None,
        "raw_response": None,
        "error_message": None,
        "details": {},
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


@pytest.fixture
def service(mock_session, mocker: MockerFixture, saved) -> PaymentService:
    payments = PaymentService(mock_session, settings=get_app_settings())
    mocker.patch.object(payments.repo, "save", saved)
    return payments


async def payme(service: PaymentService, method: str, **params) -> Dict[str, Any]:
    return await service.handle_payme_webhook(PaymeRequest(method=method, params=params, id=7), PAYME_AUTH)


@pytest.mark.unit
class TestPaymeProtocol:
    """Merchant API methods, states and error codes."""

    async def test_wrong_key(self, service: PaymentService) -> None:
        bad = "Basic " + base64.b64encode(b"payme-merchant:nope").decode()
        with pytest.raises(HTTPException) as exc_info:
            await service.handle_payme_webhook(PaymeRequest(method="CheckTransaction", id=1), bad)
        assert exc_info.value.status_code == 401

    async def test_check_perform_allows_matching_amount(self, service: PaymentService, mocker: MockerFixture) -> None:
        latest = mocker.patch.object(service.repo, "get_latest_for_order", mocker.AsyncMock(return_value=transaction()))

        response = await payme(service, "CheckPerformTransaction", amount=1500000, account={"order_id": "ORD-2025-00001"})

        assert response == {"result": {"allow": True}, "id": 7}
        latest.assert_awaited_once_with("ORD-2025-00001", provider="payme")

    async def test_check_perform_wrong_amount(self, service: PaymentService, mocker: MockerFixture) -> None:
        mocker.patch.object(service.repo, "get_latest_for_order", mocker.AsyncMock(return_value=transaction()))

        response = await payme(service, "CheckPerformTransaction", amount=100, account={"order_id": "ORD-2025-00001"})

        assert response["error"]["code"] == -31001
        assert response["error"]["message"]["en"] == "Invalid amount"

    async def test_check_perform_unknown_order(self, service: PaymentService, mocker: MockerFixture) -> None:
        mocker.patch.object(service.repo, "get_latest_for_order", mocker.AsyncMock(return_value=None))

        response = await payme(service, "CheckPerformTransaction", amount=100, account={"order_id": "ORD-X"})
        assert response["error"]["code"] == -31050

        response = await payme(service, "CheckPerformTransaction", amount=100)
        assert response["error"]["code"] == -31050

    async def test_create_attaches_to_pending_checkout(self, service: PaymentService, mocker: MockerFixture) -> None:
        pending = transaction()
        mocker.patch.object(service.repo, "get_by_provider_tx_id", mocker.AsyncMock(return_value=None))
        latest = mocker.patch.object(service.repo, "get_latest_for_order", mocker.AsyncMock(return_value=pending))

        response = await payme(service, "CreateTransaction", id="pm-1", amount=1500000, account={"order_id": "ORD-2025-00001"})

        latest.assert_awaited_once_with("ORD-2025-00001", provider="payme", status="pending")
        assert response["result"]["transaction"] == str(pending.id)
        assert response["result"]["state"] == 1
        assert pending.provider_tx_id == "pm-1"
        assert pending.status == "processing"

    async def test_create_is_idempotent(self, service: PaymentService, mocker: MockerFixture) -> None:
        known = transaction(provider_tx_id="pm-1", status="processing")
        mocker.patch.object(service.repo, "get_by_provider_tx_id", mocker.AsyncMock(return_value=known))

        response = await payme(service, "CreateTransaction", id="pm-1", account={"order_id": "ORD-2025-00001"})

        assert response["result"] == {"create_time": int(CREATED.timestamp() * 1000), "transaction": str(known.id), "state": 1}
        service.repo.save.assert_not_awaited()

    async def test_create_without_ids(self, service: PaymentService) -> None:
        response = await payme(service, "CreateTransaction", account={"order_id": "ORD-2025-00001"})
        assert response["error"]["code"] == -31050
        assert response["error"]["message"]["en"] == "Invalid parameters"

    async def test_perform_completes(self, service: PaymentService, mocker: MockerFixture) -> None:
        tx = transaction(provider_tx_id="pm-1", status="processing")
        mocker.patch.object(service.repo, "get_by_provider_tx_id", mocker.AsyncMock(return_value=tx))

        response = await payme(service, "PerformTransaction", id="pm-1")

        assert response["result"]["state"] == 2
        assert tx.status == "completed"
        assert response["result"]["perform_time"] == int(tx.processed_at.timestamp() * 1000)

    async def test_perform_unknown_transaction(self, service: PaymentService, mocker: MockerFixture) -> None:
        mocker.patch.object(service.repo, "get_by_provider_tx_id", mocker.AsyncMock(return_value=None))

        response = await payme(service, "PerformTransaction", id="pm-404")

        assert response["error"]["code"] == -31003
        assert response["id"] == 7

    @pytest.mark.parametrize(("status", "state"), [("completed", -2), ("processing", -1)])
    async def test_cancel(self, service: PaymentService, mocker: MockerFixture, status: str, state: int) -> None:
        tx = transaction(provider_tx_id="pm-1", status=status)
        mocker.patch.object(service.repo, "get_by_provider_tx_id", mocker.AsyncMock(return_value=tx))

        response = await payme(service, "CancelTransaction", id="pm-1", reason=5)

        assert response["result"]["state"] == state
        assert tx.status == "cancelled"
        assert tx.details == {"cancel_reason": 5}
        assert tx.error_message == "Cancelled by Payme, reason: 5"

    async def test_check_cancelled(self, service: PaymentService, mocker: MockerFixture) -> None:
        tx = transaction(provider_tx_id="pm-1", status="cancelled", details={"cancel_reason": 3})
        mocker.patch.object(service.repo, "get_by_provider_tx_id", mocker.AsyncMock(return_value=tx))

        result = (await payme(service, "CheckTransaction", id="pm-1"))["result"]

        assert result["state"] == -1
        assert result["reason"] == 3
        assert result["perform_time"] is None
        assert result["cancel_time"] == int(CREATED.timestamp() * 1000)


def click_form(action: int, **overrides) -> Dict[str, Any]:
    form = {
        "click_trans_id": "5551",
        "service_id": "click-service",
        "merchant_trans_id": "ORD-2025-00001",
        "amount": "15000",
        "action": str(action),
        "error": "0",
        "sign_time": "2025-06-01 10:00:00",
    }
    form.update(overrides)
    form["sign_string"] = click_sign(form, "click-secret")
    return form


@pytest.mark.unit
class TestClickProtocol:
    """Prepare (action 0) and complete (action 1)."""

    async def test_prepare_creates_pending(self, service: PaymentService, mocker: MockerFixture) -> None:
        mocker.patch.object(service.repo, "get_latest_for_order", mocker.AsyncMock(return_value=None))
        new_id = uuid4()

        def save(entity):
            entity.id = new_id
            return entity

        save_mock = mocker.patch.object(service.repo, "save", mocker.AsyncMock(side_effect=save))

        response = await service.handle_click_webhook(click_form(0))

        assert response == {
            "click_trans_id": "5551",
            "merchant_trans_id": "ORD-2025-00001",
            "merchant_prepare_id": str(new_id),
            "error": 0,
            "error_note": "Success",
        }
        stored = save_mock.await_args.args[0]
        assert (stored.provider, stored.status, stored.provider_tx_id) == ("click", "pending", "5551")

    async def test_prepare_amount_mismatch(self, service: PaymentService, mocker: MockerFixture) -> None:
        mocker.patch.object(
            service.repo, "get_latest_for_order", mocker.AsyncMock(return_value=transaction(provider="click", amount=9000))
        )

        response = await service.handle_click_webhook(click_form(0))

        assert response["error"] == -2
        assert response["error_note"] == "Incorrect amount"

    async def test_complete(self, service: PaymentService, mocker: MockerFixture) -> None:
        tx = transaction(provider="click", provider_tx_id="5551")
        mocker.patch.object(service.repo, "get_by_provider_tx_id", mocker.AsyncMock(return_value=tx))

        response = await service.handle_click_webhook(click_form(1, merchant_prepare_id=str(tx.id)))

        assert response["error"] == 0
        assert response["merchant_confirm_id"] == str(tx.id)
        assert tx.status == "completed"
        assert tx.processed_at is not None

    async def test_complete_cancelled_by_click(self, service: PaymentService, mocker: MockerFixture) -> None:
        tx = transaction(provider="click", provider_tx_id="5551")
        mocker.patch.object(service.repo, "get_by_provider_tx_id", mocker.AsyncMock(return_value=tx))

        response = await service.handle_click_webhook(click_form(1, error="-5017", error_note="Insufficient funds"))

        assert response["error"] == -4
        assert tx.status == "failed"
        assert tx.error_message == "Insufficient funds"

    async def test_complete_unknown_transaction(self, service: PaymentService, mocker: MockerFixture) -> None:
        mocker.patch.object(service.repo, "get_by_provider_tx_id", mocker.AsyncMock(return_value=None))

        response = await service.handle_click_webhook(click_form(1))

        assert response["error"] == -6

    async def test_unknown_action(self, service: PaymentService) -> None:
        response = await service.handle_click_webhook(click_form(7))
        assert response == {"error": -3, "error_note": "Unknown action"}


def uzum_callback(tx_id, status: str) -> Dict[str, Any]:
    payload = {"transactionId": str(tx_id), "orderId": "ORD-2025-00001", "amount": 15000, "status": status}
    payload["signature"] = uzum_webhook_signature("uzum-secret", payload)
    return payload


@pytest.mark.unit
class TestUzumProtocol:
    """Provider statuses are mapped onto the transaction."""

    @pytest.mark.parametrize(
        ("provider_status", "status", "error"),
        [
            ("SUCCESS", "completed", None),
            ("ERROR", "failed", "Uzum payment failed: ERROR"),
            ("CANCELLED", "cancelled", "Payment cancelled by user"),
            ("PENDING", "processing", None),
        ],
    )
    async def test_status_mapping(
        self, service: PaymentService, mocker: MockerFixture, provider_status: str, status: str, error
    ) -> None:
        tx = transaction(provider="uzum")
        mocker.patch.object(service.repo, "get", mocker.AsyncMock(return_value=tx))

        response = await service.handle_uzum_webhook(uzum_callback(tx.id, provider_status))

        assert response == {"success": True, "transactionId": str(tx.id), "status": status}
        assert tx.error_message == error

    async def test_other_provider_transaction(self, service: PaymentService, mocker: MockerFixture) -> None:
        tx = transaction(provider="payme")
        mocker.patch.object(service.repo, "get", mocker.AsyncMock(return_value=tx))

        response = await service.handle_uzum_webhook(uzum_callback(tx.id, "COMPLETED"))

        assert response == {"success": False, "error": "Transaction not found"}
        assert tx.status == "pending"


@pytest.mark.unit
class TestRefunds:
    """Refunds never exceed what was paid; a fully refunded transaction becomes refunded."""

    def wire(self, service: PaymentService, mocker: MockerFixture, tx, refunded_totals) -> None:
        mocker.patch.object(service.repo, "get", mocker.AsyncMock(return_value=tx))
        mocker.patch.object(service.repo, "refunded_total", mocker.AsyncMock(side_effect=refunded_totals))
        mocker.patch.object(service.repo, "reload", mocker.AsyncMock(side_effect=lambda entity: entity))

    async def test_full_refund(self, service: PaymentService, mocker: MockerFixture) -> None:
        tx = transaction(status="completed")
        self.wire(service, mocker, tx, [0.0, 15000.0])

        refund = await service.initiate_refund(RefundCreate(payment_transaction_id=tx.id))

        assert float(refund.amount) == 15000
        assert refund.status == "completed"
        assert refund.processed_at is not None
        assert tx.status == "refunded"

    async def test_partial_refund(self, service: PaymentService, mocker: MockerFixture) -> None:
        tx = transaction(status="completed")
        self.wire(service, mocker, tx, [0.0, 5000.0])

        refund = await service.initiate_refund(RefundCreate(payment_transaction_id=tx.id, amount=5000))

        assert refund.status == "completed"
        assert tx.status == "completed"

    async def test_exceeds_remaining(self, service: PaymentService, mocker: MockerFixture) -> None:
        tx = transaction(status="completed")
        self.wire(service, mocker, tx, [10000.0])

        with pytest.raises(HTTPException) as exc_info:
            await service.initiate_refund(RefundCreate(payment_transaction_id=tx.id, amount=6000))

        assert exc_info.value.detail == "Refund amount (6000.0) exceeds remaining refundable amount (5000.0)"
        service.repo.save.assert_not_awaited()

    async def test_only_completed_transactions(self, service: PaymentService, mocker: MockerFixture) -> None:
        tx = transaction(status="pending")
        self.wire(service, mocker, tx, [])

        with pytest.raises(HTTPException) as exc_info:
            await service.initiate_refund(RefundCreate(payment_transaction_id=tx.id))

        assert exc_info.value.detail == "Only completed transactions can be refunded"

    async def test_unsupported_provider_fails(self, service: PaymentService, mocker: MockerFixture) -> None:
        tx = transaction(status="completed", provider="apelsin")
        self.wire(service, mocker, tx, [0.0])

        refund = await service.initiate_refund(RefundCreate(payment_transaction_id=tx.id))

        assert refund.status == "failed"
        assert refund.error_message == "Unsupported provider for refund: apelsin"
        assert tx.status == "completed"

    async def test_completed_refund_not_reprocessed(self, service: PaymentService, mocker: MockerFixture) -> None:
        done = SimpleNamespace(id=uuid4(), status="completed", payment_transaction_id=uuid4())
        mocker.patch.object(service.repo, "get_refund", mocker.AsyncMock(return_value=done))
        get_tx = mocker.patch.object(service.repo, "get", mocker.AsyncMock())

        with pytest.raises(HTTPException) as exc_info:
            await service.process_refund(done.id)

        assert exc_info.value.status_code == 400
        assert exc_info.value.detail == "Refund is already completed"
        get_tx.assert_not_awaited()

    async def test_failed_refund_retried(self, service: PaymentService, mocker: MockerFixture) -> None:
        tx = transaction(status="completed")
        failed = SimpleNamespace(id=uuid4(), status="failed", payment_transaction_id=tx.id, amount=15000, processed_at=None)
        mocker.patch.object(service.repo, "get_refund", mocker.AsyncMock(return_value=failed))
        self.wire(service, mocker, tx, [15000.0])

        refund = await service.process_refund(failed.id)

        assert refund.status == "completed"
        assert tx.status == "refunded"
