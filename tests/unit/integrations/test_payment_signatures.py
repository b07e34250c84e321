"""Unit tests for provider signature checks and checkout links."""

import base64
import hashlib
import hmac
import json
from urllib.parse import parse_qs, urlparse

import pytest

from src.integrations.payment_signatures import (
    click_checkout_url,
    click_sign,
    payme_checkout_url,
    uzum_checkout_url,
    uzum_refund_signature,
    uzum_webhook_signature,
    verify_click_signature,
    verify_payme_auth,
    verify_uzum_signature,
)


def basic(user: str, password: str) -> str:
    return "Basic " + base64.b64encode(f"{user}:{password}".encode()).decode()


@pytest.mark.unit
class TestPaymeAuth:
    """Payme callbacks carry Basic merchant credentials."""

    def test_valid(self) -> None:
        assert verify_payme_auth(basic("m-1", "key"), "m-1", "key")

    def test_wrong_key(self) -> None:
        assert not verify_payme_auth(basic("m-1", "other"), "m-1", "key")

    def test_missing_header_or_key(self) -> None:
        assert not verify_payme_auth(None, "m-1", "key")
        assert not verify_payme_auth(basic("m-1", "key"), "m-1", None)

    def test_not_basic(self) -> None:
        token = base64.b64encode(b"m-1:key").decode()
        assert not verify_payme_auth(f"Bearer {token}", "m-1", "key")

    def test_checkout_url(self) -> None:
        url = payme_checkout_url("https://checkout.paycom.uz/", "m-1", "ORD-2025-00001", 1500000)
        prefix = "https://checkout.paycom.uz/"
        assert url.startswith(prefix)
        params = json.loads(base64.b64decode(url[len(prefix):]))
        assert params == {"m": "m-1", "ac": {"order_id": "ORD-2025-00001"}, "a": 1500000}


CLICK_DATA = {
    "click_trans_id": "5551",
    "service_id": "77",
    "merchant_trans_id": "ORD-2025-00001",
    "amount": 15000.0,
    "action": 1,
    "sign_time": "2025-06-01 10:00:00",
}


@pytest.mark.unit
class TestClickSignature:
    """Click signs callbacks with MD5 over the fields and the shared secret."""

    def test_sign_layout(self) -> None:
        expected = hashlib.md5(b"555177secretORD-2025-00001150001" + b"2025-06-01 10:00:00").hexdigest()
        assert click_sign(CLICK_DATA, "secret") == expected

    def test_amount_text_and_number_sign_alike(self) -> None:
        assert click_sign({**CLICK_DATA, "amount": "15000"}, "secret") == click_sign(CLICK_DATA, "secret")

    def test_verify(self) -> None:
        signed = {**CLICK_DATA, "sign_string": click_sign(CLICK_DATA, "secret")}
        assert verify_click_signature(signed, "secret")
        assert not verify_click_signature({**signed, "amount": 1.0}, "secret")
        assert not verify_click_signature(signed, "other-secret")
        assert not verify_click_signature(CLICK_DATA, "secret")
        assert not verify_click_signature(signed, None)

    def test_checkout_url(self) -> None:
        url = click_checkout_url("https://my.click.uz/services/pay", "77", "m-2", 15000.0, "ORD-1", "https://shop/return")
        query = parse_qs(urlparse(url).query)
        assert query == {
            "service_id": ["77"],
            "merchant_id": ["m-2"],
            "amount": ["15000"],
            "transaction_param": ["ORD-1"],
            "return_url": ["https://shop/return"],
        }


UZUM_DATA = {"transactionId": "tx-1", "orderId": "ORD-1", "amount": 15000, "status": "COMPLETED"}


@pytest.mark.unit
class TestUzumSignature:
    """Uzum signs with hex HMAC-SHA256."""

    def test_webhook_message(self) -> None:
        expected = hmac.new(b"secret", b"tx-1:ORD-1:15000:COMPLETED", hashlib.sha256).hexdigest()
        assert uzum_webhook_signature("secret", UZUM_DATA) == expected

    def test_verify(self) -> None:
        signed = {**UZUM_DATA, "signature": uzum_webhook_signature("secret", UZUM_DATA)}
        assert verify_uzum_signature(signed, "secret")
        assert not verify_uzum_signature({**signed, "status": "FAILED"}, "secret")
        assert not verify_uzum_signature(signed, "")

    def test_refund_signature(self) -> None:
        expected = hmac.new(b"secret", b"tx-1:2500.5", hashlib.sha256).hexdigest()
        assert uzum_refund_signature("secret", "tx-1", 2500.5) == expected

    def test_checkout_url(self) -> None:
        url = uzum_checkout_url("https://api.uzumbank.uz/", "m-3", "tx-1", 15000, "abc")
        parsed = urlparse(url)
        assert parsed.path == "/checkout"
        assert parse_qs(parsed.query)["signature"] == ["abc"]
        assert "return_url" not in parse_qs(parsed.query)
