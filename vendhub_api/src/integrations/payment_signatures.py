"""
Signature and checkout-link helpers for the Uzbek payment providers.

Payme authenticates callbacks with HTTP Basic credentials, Click signs them
with an MD5 digest and Uzum with a hex HMAC-SHA256. Every comparison runs in
constant time.
"""
from __future__ import annotations

import base64
import hashlib
import hmac
import json
from typing import Any, Mapping, Optional
from urllib.parse import urlencode


def _equal(expected: str, provided: Optional[str]) -> bool:
    if not provided:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), provided.encode("utf-8"))


def _amount_str(amount: Any) -> str:
    """Render an amount the way providers sign it: text as received, integral numbers without decimals."""
    if isinstance(amount, str):
        return amount
    value = float(amount)
    return str(int(value)) if value.is_integer() else str(value)


# PUBLIC_INTERFACE
def verify_payme_auth(auth_header: Optional[str], merchant_id: Optional[str], merchant_key: Optional[str]) -> bool:
    """Check a Payme `Authorization: Basic base64(merchant_id:key)` header."""
    if not auth_header or not merchant_key or not auth_header.startswith("Basic "):
        return False
    expected = base64.b64encode(f"{merchant_id}:{merchant_key}".encode("utf-8")).decode("ascii")
    return _equal(expected, auth_header[len("Basic "):])


# PUBLIC_INTERFACE
def payme_checkout_url(base_url: str, merchant_id: str, order_id: str, amount_tiyin: int) -> str:
    """Checkout link whose path is base64(JSON{m, ac:{order_id}, a})."""
    params = json.dumps({"m": merchant_id, "ac": {"order_id": order_id}, "a": amount_tiyin}, separators=(",", ":"))
    encoded = base64.b64encode(params.encode("utf-8")).decode("ascii")
    return f"{base_url.rstrip('/')}/{encoded}"


# PUBLIC_INTERFACE
def click_sign(data: Mapping[str, Any], secret_key: str) -> str:
    """MD5 of click_trans_id + service_id + secret + merchant_trans_id + amount + action + sign_time."""
    parts = [
        str(data.get("click_trans_id", "")),
        str(data.get("service_id", "")),
        secret_key,
        str(data.get("merchant_trans_id", "")),
        _amount_str(data.get("amount", 0)),
        str(data.get("action", "")),
        str(data.get("sign_time", "")),
    ]
    return hashlib.md5("".join(parts).encode("utf-8")).hexdigest()


# PUBLIC_INTERFACE
def verify_click_signature(data: Mapping[str, Any], secret_key: Optional[str]) -> bool:
    if not secret_key:
        return False
    return _equal(click_sign(data, secret_key), data.get("sign_string"))


# PUBLIC_INTERFACE
def click_checkout_url(
    base_url: str, service_id: str, merchant_id: str, amount: float, order_id: str, return_url: Optional[str] = None
) -> str:
    query = {
        "service_id": service_id,
        "merchant_id": merchant_id,
        "amount": _amount_str(amount),
        "transaction_param": order_id,
    }
    if return_url:
        query["return_url"] = return_url
    return f"{base_url}?{urlencode(query)}"


# PUBLIC_INTERFACE
def hmac_sha256_hex(secret_key: str, message: str) -> str:
    return hmac.new(secret_key.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest()


# PUBLIC_INTERFACE
def uzum_checkout_signature(secret_key: str, merchant_id: str, transaction_id: str, amount: float) -> str:
    return hmac_sha256_hex(secret_key, f"{merchant_id}:{transaction_id}:{_amount_str(amount)}")


# PUBLIC_INTERFACE
def uzum_webhook_signature(secret_key: str, data: Mapping[str, Any]) -> str:
    message = "{}:{}:{}:{}".format(
        data.get("transactionId", ""),
        data.get("orderId", ""),
        _amount_str(data.get("amount", 0)),
        data.get("status", ""),
    )
    return hmac_sha256_hex(secret_key, message)


# PUBLIC_INTERFACE
def verify_uzum_signature(data: Mapping[str, Any], secret_key: Optional[str]) -> bool:
    if not secret_key:
        return False
    return _equal(uzum_webhook_signature(secret_key, data), data.get("signature"))


# PUBLIC_INTERFACE
def uzum_refund_signature(secret_key: str, transaction_id: str, amount: float) -> str:
    return hmac_sha256_hex(secret_key, f"{transaction_id}:{_amount_str(amount)}")


# PUBLIC_INTERFACE
def uzum_checkout_url(
    api_url: str,
    merchant_id: str,
    transaction_id: str,
    amount: float,
    signature: str,
    return_url: Optional[str] = None,
) -> str:
    query = {
        "merchant_id": merchant_id,
        "transaction_id": transaction_id,
        "amount": _amount_str(amount),
        "signature": signature,
    }
    if return_url:
        query["return_url"] = return_url
    return f"{api_url.rstrip('/')}/checkout?{urlencode(query)}"
