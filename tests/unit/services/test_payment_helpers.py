"""Unit tests for provider status mapping and QR payloads."""

import base64
import json
from datetime import datetime, timezone
from uuid import uuid4

import pytest

from src.services.payments import (
    PAYME_ORDER_NOT_FOUND,
    encode_qr_payload,
    map_uzum_status,
    payme_error,
    payme_state,
)


@pytest.mark.unit
class TestPaymeHelpers:
    """Payme JSON-RPC responses."""

    def test_error_envelope(self) -> None:
        body = payme_error(PAYME_ORDER_NOT_FOUND, "order_not_found", 7)
        assert body["id"] == 7
        assert body["error"]["code"] == -31050
        assert body["error"]["message"]["en"] == "Order not found"
        assert set(body["error"]["message"]) == {"ru", "uz", "en"}

    @pytest.mark.parametrize(
        ("status", "state"),
        [("pending", 1), ("processing", 1), ("completed", 2), ("cancelled", -1), ("failed", 1)],
    )
    def test_state(self, status: str, state: int) -> None:
        assert payme_state(status) == state


@pytest.mark.unit
class TestUzumStatus:
    @pytest.mark.parametrize(
        ("provider", "internal"),
        [("COMPLETED", "completed"), ("SUCCESS", "completed"), ("ERROR", "failed"), ("CANCELLED", "cancelled"), ("PENDING", "processing")],
    )
    def test_mapping(self, provider: str, internal: str) -> None:
        assert map_uzum_status(provider) == internal


@pytest.mark.unit
class TestQrPayload:
    def test_payload_fields(self) -> None:
        """The QR string is base64 of compact JSON."""
        machine_id = uuid4()
        expires = datetime(2025, 6, 1, 10, 5, tzinfo=timezone.utc)
        encoded = encode_qr_payload("QR-123", 15000, machine_id, expires)
        decoded = json.loads(base64.b64decode(encoded))
        assert decoded == {"v": 1, "id": "QR-123", "a": 15000, "m": str(machine_id), "exp": expires.isoformat()}
