"""Unit tests for FiscalService receipts and the retry queue; repositories are mocked."""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import List
from uuid import uuid4

import httpx
import pytest
from fastapi import HTTPException
from pytest_mock import MockerFixture

from src.db.models.fiscal import FiscalQueueItem, FiscalReceipt
from src.integrations.multikassa import FiscalProviderError, MultiKassaClient
from src.schemas.fiscal import ReceiptCreate
from src.services.fiscal import FiscalService


def make_device(**overrides) -> SimpleNamespace:
    fields = {
        "id": uuid4(),
        "name": "Lobby kassa",
        "provider": "multikassa",
        "credentials": {"login": "kassa", "password": "pw"},
        "config": {"base_url": "https://mk.test/api/v1"},
        "sandbox_mode": True,
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


def receipt_payload(device_id) -> ReceiptCreate:
    return ReceiptCreate(
        device_id=device_id,
        items=[{"name": "Cappuccino", "price": 11200, "quantity": 1, "vat_rate": 12}],
        payment={"card": 11200},
        order_id="ORD-2025-00001",
    )


@pytest.fixture
def stored() -> List:
    """Entities passed to repo.save, in order."""
    return []


def wire(service: FiscalService, mocker: MockerFixture, device, stored: List, shift=None) -> None:
    def save(entity):
        if getattr(entity, "id", None) is None:
            entity.id = uuid4()
        stored.append(entity)
        return entity

    mocker.patch.object(service, "get_device", mocker.AsyncMock(return_value=device))
    mocker.patch.object(service.repo, "get_open_shift", mocker.AsyncMock(return_value=shift))
    mocker.patch.object(service.repo, "save", mocker.AsyncMock(side_effect=save))
    mocker.patch.object(service.repo, "reload", mocker.AsyncMock(side_effect=lambda entity: entity))


def http_client(handler) -> MultiKassaClient:
    return MultiKassaClient(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)), timeout=5)


@pytest.mark.unit
class TestCreateReceipt:
    """Receipts are stored first; provider failures leave them failed and queued."""

    async def test_fiscalized(self, mocker: MockerFixture, mock_session, stored: List) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/v1/receipt/sale"
            return httpx.Response(
                200,
                json={"receipt_id": "r-1", "fiscal_number": "FN-77", "timestamp": "2025-06-01T09:00:00Z"},
            )

        device = make_device()
        service = FiscalService(mock_session, client=http_client(handler))
        wire(service, mocker, device, stored, shift=SimpleNamespace(id=uuid4()))

        receipt = await service.create_receipt(receipt_payload(device.id))

        assert receipt.status == "success"
        assert receipt.fiscal_number == "FN-77"
        assert receipt.fiscalized_at == datetime(2025, 6, 1, 9, 0, tzinfo=timezone.utc)
        assert float(receipt.vat_total) == 1200
        assert not any(isinstance(e, FiscalQueueItem) for e in stored)

    async def test_unregistered_device_is_queued(self, mocker: MockerFixture, mock_session, stored: List) -> None:
        """A device without credentials never registers; the receipt still lands in the queue."""
        device = make_device(credentials={})
        service = FiscalService(mock_session, client=http_client(lambda r: httpx.Response(200, json={})))
        wire(service, mocker, device, stored, shift=SimpleNamespace(id=uuid4()))

        receipt = await service.create_receipt(receipt_payload(device.id))

        assert receipt.status == "failed"
        assert receipt.last_error == f"MultiKassa device not configured: {device.id}"
        assert receipt.retry_count == 1
        queued = [e for e in stored if isinstance(e, FiscalQueueItem)]
        assert len(queued) == 1
        assert queued[0].operation == "receipt_sale"
        assert queued[0].payload == {"receipt_id": str(receipt.id)}
        assert queued[0].status == "pending"

    async def test_non_json_response_is_queued(self, mocker: MockerFixture, mock_session, stored: List) -> None:
        device = make_device()
        service = FiscalService(
            mock_session, client=http_client(lambda r: httpx.Response(200, text="<html>gateway</html>"))
        )
        wire(service, mocker, device, stored, shift=SimpleNamespace(id=uuid4()))

        receipt = await service.create_receipt(receipt_payload(device.id))

        assert receipt.status == "failed"
        assert receipt.last_error == "MultiKassa returned an invalid response"
        assert [e.operation for e in stored if isinstance(e, FiscalQueueItem)] == ["receipt_sale"]

    async def test_no_open_shift(self, mocker: MockerFixture, mock_session, stored: List) -> None:
        device = make_device()
        service = FiscalService(mock_session, client=http_client(lambda r: httpx.Response(200, json={})))
        wire(service, mocker, device, stored)

        with pytest.raises(HTTPException) as exc_info:
            await service.create_receipt(receipt_payload(device.id))

        assert exc_info.value.status_code == 400
        assert exc_info.value.detail == "No open shift. Please open shift first."
        assert stored == []

    async def test_auto_open_shift(self, mocker: MockerFixture, mock_session, stored: List) -> None:
        device = make_device(config={"auto_open_shift": True})
        service = FiscalService(mock_session, client=http_client(lambda r: httpx.Response(200, json={})))
        wire(service, mocker, device, stored)
        shift = SimpleNamespace(id=uuid4())
        open_shift = mocker.patch.object(service, "open_shift", mocker.AsyncMock(return_value=shift))
        mocker.patch.object(service, "fiscalize_receipt", mocker.AsyncMock(side_effect=lambda receipt, dev: receipt))

        receipt = await service.create_receipt(receipt_payload(device.id))

        open_shift.assert_awaited_once_with(device.id, "VendHub Auto")
        assert isinstance(receipt, FiscalReceipt)
        assert receipt.shift_id == shift.id


def queue_item(**overrides) -> SimpleNamespace:
    fields = {
        "id": uuid4(),
        "device_id": uuid4(),
        "operation": "shift_open",
        "payload": {"cashier_name": "Night shift"},
        "status": "pending",
        "retry_count": 0,
        "max_retries": 5,
        "next_retry_at": None,
        "last_error": None,
        "result": None,
        "processed_at": None,
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


@pytest.mark.unit
class TestQueueProcessing:
    """Failed deliveries back off as 2^n * 5s until max_retries, then fail."""

    def service_for(self, mocker: MockerFixture, mock_session, item, run) -> FiscalService:
        service = FiscalService(mock_session, client=http_client(lambda r: httpx.Response(200, json={})))
        mocker.patch.object(service.repo, "get_queue_item", mocker.AsyncMock(return_value=item))
        mocker.patch.object(service.repo, "reload", mocker.AsyncMock(side_effect=lambda entity: entity))
        mocker.patch.object(service, "_run_operation", run)
        return service

    async def test_retry_with_backoff(self, mocker: MockerFixture, mock_session) -> None:
        item = queue_item(retry_count=1)
        run = mocker.AsyncMock(side_effect=FiscalProviderError("Service Unavailable", status=503))
        service = self.service_for(mocker, mock_session, item, run)
        before = datetime.now(timezone.utc)

        result = await service.process_queue_item(item.id)

        assert result.status == "retry"
        assert result.retry_count == 2
        assert result.last_error == "Service Unavailable"
        assert before + timedelta(seconds=20) <= result.next_retry_at <= datetime.now(timezone.utc) + timedelta(seconds=20)

    async def test_fails_after_max_retries(self, mocker: MockerFixture, mock_session) -> None:
        item = queue_item(retry_count=4)
        run = mocker.AsyncMock(side_effect=LookupError("Device not found"))
        service = self.service_for(mocker, mock_session, item, run)

        result = await service.process_queue_item(item.id)

        assert result.status == "failed"
        assert result.retry_count == 5
        assert result.last_error == "Device not found"

    async def test_success(self, mocker: MockerFixture, mock_session) -> None:
        item = queue_item()
        run = mocker.AsyncMock(return_value={"shift_id": "s-9"})
        service = self.service_for(mocker, mock_session, item, run)

        result = await service.process_queue_item(item.id)

        assert result.status == "success"
        assert result.result == {"shift_id": "s-9"}
        assert result.processed_at is not None

    async def test_delivered_item_untouched(self, mocker: MockerFixture, mock_session) -> None:
        item = queue_item(status="success")
        run = mocker.AsyncMock()
        service = self.service_for(mocker, mock_session, item, run)

        assert await service.process_queue_item(item.id) is item
        run.assert_not_awaited()
