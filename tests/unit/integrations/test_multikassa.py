"""Unit tests for the MultiKassa client against a mocked HTTP transport."""

import base64
import json
from typing import Callable, List

import httpx
import pytest
from fastapi import HTTPException

from src.integrations.multikassa import (
    FiscalProviderError,
    MultiKassaClient,
    MultiKassaConfig,
    MultiKassaCredentials,
    ReceiptItem,
    ReceiptRequest,
    calculate_vat,
    from_tiyin,
    to_tiyin,
    validate_ikpu_code,
)

DEVICE = "device-1"
CONFIG = MultiKassaConfig(
    base_url="https://mk.test/api/v1/",
    sandbox_mode=True,
    credentials=MultiKassaCredentials(login="kassa", password="pw", default_cashier="Night shift"),
)


@pytest.mark.unit
class TestAmounts:
    """Amount helpers round half up like the provider."""

    def test_vat_is_included_in_gross(self) -> None:
        assert calculate_vat(11200, 1, 12) == 1200
        assert calculate_vat(10000, 1, 12) == 1071
        assert calculate_vat(10000, 1, 0) == 0

    def test_tiyin(self) -> None:
        assert to_tiyin(15000.5) == 1500050
        assert to_tiyin(0.005) == 1
        assert from_tiyin(1500050) == 15000.5

    @pytest.mark.parametrize(
        ("code", "valid"),
        [
            ("10202001001000000", True),
            ("10202001001000000123", True),
            ("1020200100100000", False),
            ("102020010010000001234", False),
            ("1020200100100000A", False),
            ("", False),
        ],
    )
    def test_ikpu_code(self, code: str, valid: bool) -> None:
        assert validate_ikpu_code(code) is valid


def make_client(handler: Callable[[httpx.Request], httpx.Response]) -> MultiKassaClient:
    client = MultiKassaClient(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)), timeout=5)
    client.register_device(DEVICE, CONFIG)
    return client


@pytest.mark.unit
class TestMultiKassaClient:
    """Requests go to the device's base URL with its Basic credentials."""

    async def test_open_shift(self) -> None:
        seen: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"shift_id": "s-1", "shift_number": 12, "opened_at": "2025-06-01T08:00:00Z"})

        client = make_client(handler)
        shift = await client.open_shift(DEVICE)
        await client.aclose()

        assert shift == {"shift_id": "s-1", "shift_number": 12, "opened_at": "2025-06-01T08:00:00Z"}
        request = seen[0]
        assert request.method == "POST"
        assert str(request.url) == "https://mk.test/api/v1/shift/open"
        assert request.headers["authorization"] == "Basic " + base64.b64encode(b"kassa:pw").decode()
        assert json.loads(request.content) == {"cashier_name": "Night shift"}

    async def test_sale_receipt(self) -> None:
        seen: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"receipt_id": "r-1", "fiscal_sign": "FS", "qr_code_url": "https://qr"})

        client = make_client(handler)
        receipt = ReceiptRequest(
            type="refund",
            items=[ReceiptItem(name="Latte", ikpu_code="10202001001000000", quantity=1, price=14000)],
            card=14000,
            total=14000,
            order_id="ORD-2025-00003",
        )
        result = await client.create_sale_receipt(DEVICE, receipt)

        assert result["receipt_id"] == "r-1"
        assert result["fiscal_number"] is None
        assert seen[0].url.path == "/api/v1/receipt/sale"
        body = json.loads(seen[0].content)
        assert body["type"] == "sale"
        assert body["payment"] == {"cash": 0, "card": 14000}
        assert body["external_id"] == "ORD-2025-00003"
        assert body["items"][0]["vat_rate"] == 12

    async def test_provider_error_message(self) -> None:
        client = make_client(lambda request: httpx.Response(422, json={"message": "Invalid IKPU"}))

        with pytest.raises(FiscalProviderError) as exc_info:
            await client.close_shift(DEVICE)

        assert exc_info.value.status == 422
        assert exc_info.value.message == "Invalid IKPU"

    async def test_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler)
        with pytest.raises(FiscalProviderError) as exc_info:
            await client.get_x_report(DEVICE)
        assert exc_info.value.status == 500

    async def test_non_json_body(self) -> None:
        client = make_client(lambda request: httpx.Response(200, text="<html>maintenance</html>"))
        with pytest.raises(FiscalProviderError) as exc_info:
            await client.get_x_report(DEVICE)
        assert exc_info.value.status == 502
        assert exc_info.value.message == "MultiKassa returned an invalid response"

    async def test_shift_status_failure_counts_as_closed(self) -> None:
        client = make_client(lambda request: httpx.Response(503))
        assert await client.is_shift_open(DEVICE) is False

    async def test_ensure_shift_open_reuses_open_shift(self) -> None:
        paths: List[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            paths.append(request.url.path)
            return httpx.Response(200, json={"shift_id": "s-2", "status": "open"})

        client = make_client(handler)
        shift = await client.ensure_shift_open(DEVICE)

        assert shift["status"] == "open"
        assert "/api/v1/shift/open" not in paths

    async def test_unregistered_device(self) -> None:
        client = MultiKassaClient(client=httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200))), timeout=5)
        assert not client.is_registered("nope")
        with pytest.raises(HTTPException) as exc_info:
            await client.open_shift("nope")
        assert exc_info.value.status_code == 404
