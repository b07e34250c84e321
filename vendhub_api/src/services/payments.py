from __future__ import annotations

import base64
import json
import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional, Tuple
from uuid import UUID

from fastapi import HTTPException, status
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.settings import AppSettings, get_app_settings
from src.db.models.payments import PaymentRefund, PaymentTransaction
from src.integrations.multikassa import to_tiyin
from src.integrations.payment_signatures import (
    click_checkout_url,
    payme_checkout_url,
    uzum_checkout_signature,
    uzum_checkout_url,
    uzum_refund_signature,
    verify_click_signature,
    verify_payme_auth,
    verify_uzum_signature,
)
from src.repositories.payments import PaymentRepository
from src.schemas.payments import (
    CheckoutRequest,
    ClickRequest,
    PaymeRequest,
    PaymentResult,
    QrPaymentResult,
    RefundCreate,
    TransactionStats,
    UzumRequest,
)
from src.services.base import BaseService, bad_request, not_found, utcnow

logger = logging.getLogger(__name__)

QR_PAYMENT_TTL = timedelta(minutes=5)

# Payme JSON-RPC error codes and their localized messages.
PAYME_METHOD_NOT_FOUND = -32601
PAYME_INVALID_AMOUNT = -31001
PAYME_TRANSACTION_NOT_FOUND = -31003
PAYME_ORDER_NOT_FOUND = -31050

PAYME_MESSAGES = {
    "method_not_found": {"ru": "Метод не найден", "uz": "Metod topilmadi", "en": "Method not found"},
    "order_not_found": {"ru": "Заказ не найден", "uz": "Buyurtma topilmadi", "en": "Order not found"},
    "invalid_amount": {"ru": "Неверная сумма", "uz": "Noto'g'ri summa", "en": "Invalid amount"},
    "invalid_params": {"ru": "Неверные параметры", "uz": "Noto'g'ri parametrlar", "en": "Invalid parameters"},
    "transaction_not_found": {
        "ru": "Транзакция не найдена",
        "uz": "Tranzaksiya topilmadi",
        "en": "Transaction not found",
    },
}

# Internal transaction status -> Payme transaction state.
PAYME_STATES = {"pending": 1, "processing": 1, "completed": 2, "cancelled": -1}

UZUM_STATUS_MAP = {
    "COMPLETED": "completed",
    "SUCCESS": "completed",
    "FAILED": "failed",
    "ERROR": "failed",
    "CANCELLED": "cancelled",
}

REFUNDABLE_PROVIDERS = {"payme", "click", "uzum", "cash", "wallet", "telegram_stars"}


def _ms(value: Optional[datetime]) -> Optional[int]:
    return int(value.timestamp() * 1000) if value else None


# PUBLIC_INTERFACE
def payme_error(code: int, message_key: str, request_id: Any) -> Dict[str, Any]:
    return {"error": {"code": code, "message": PAYME_MESSAGES[message_key]}, "id": request_id}


# PUBLIC_INTERFACE
def payme_state(transaction_status: str) -> int:
    return PAYME_STATES.get(transaction_status, 1)


# PUBLIC_INTERFACE
def map_uzum_status(provider_status: str) -> str:
    return UZUM_STATUS_MAP.get(provider_status, "processing")


# PUBLIC_INTERFACE
def encode_qr_payload(payment_id: str, amount: float, machine_id: UUID, expires_at: datetime) -> str:
    payload = {"v": 1, "id": payment_id, "a": amount, "m": str(machine_id), "exp": expires_at.isoformat()}
    return base64.b64encode(json.dumps(payload, separators=(",", ":")).encode("utf-8")).decode("ascii")


class PaymentService(BaseService):
    """
    Checkout links, provider webhooks, QR payments and refunds.

    Webhook handlers answer in each provider's own protocol and never raise for
    business failures; only a bad Payme Basic auth header is an HTTP error.
    """

    def __init__(self, session: AsyncSession, settings: Optional[AppSettings] = None) -> None:
        super().__init__(session)
        self.repo = PaymentRepository(session)
        self.settings = settings or get_app_settings()

    # Checkout
    # PUBLIC_INTERFACE
    async def create_payme(self, payload: CheckoutRequest) -> PaymentResult:
        s = self.settings
        if not s.PAYME_MERCHANT_ID:
            raise bad_request("Payme integration not configured")
        tx = await self._store_pending("payme", payload)
        url = payme_checkout_url(s.PAYME_CHECKOUT_URL, s.PAYME_MERCHANT_ID, payload.order_id, to_tiyin(payload.amount))
        return PaymentResult(
            provider="payme", status="pending", amount=payload.amount, order_id=payload.order_id,
            transaction_id=tx.id, checkout_url=url,
        )

    # PUBLIC_INTERFACE
    async def create_click(self, payload: CheckoutRequest) -> PaymentResult:
        s = self.settings
        if not s.CLICK_MERCHANT_ID or not s.CLICK_SERVICE_ID:
            raise bad_request("Click integration not configured")
        tx = await self._store_pending("click", payload)
        url = click_checkout_url(
            s.CLICK_CHECKOUT_URL, s.CLICK_SERVICE_ID, s.CLICK_MERCHANT_ID, payload.amount, payload.order_id,
            s.CLICK_RETURN_URL,
        )
        return PaymentResult(
            provider="click", status="pending", amount=payload.amount, order_id=payload.order_id,
            transaction_id=tx.id, checkout_url=url,
        )

    # PUBLIC_INTERFACE
    async def create_uzum(self, payload: CheckoutRequest) -> PaymentResult:
        s = self.settings
        if not s.UZUM_MERCHANT_ID or not s.UZUM_SECRET_KEY:
            raise bad_request("Uzum Bank integration not configured")
        tx = await self._store_pending("uzum", payload)
        signature = uzum_checkout_signature(s.UZUM_SECRET_KEY, s.UZUM_MERCHANT_ID, str(tx.id), payload.amount)
        url = uzum_checkout_url(
            s.UZUM_API_URL, s.UZUM_MERCHANT_ID, str(tx.id), payload.amount, signature,
            payload.return_url or s.UZUM_RETURN_URL,
        )
        return PaymentResult(
            provider="uzum", status="pending", amount=payload.amount, order_id=payload.order_id,
            transaction_id=tx.id, checkout_url=url,
        )

    async def _store_pending(self, provider: str, payload: CheckoutRequest) -> PaymentTransaction:
        tx = PaymentTransaction(
            provider=provider,
            amount=payload.amount,
            currency="UZS",
            status="pending",
            order_id=payload.order_id,
            machine_id=payload.machine_id,
            client_user_id=payload.client_user_id,
            raw_request=payload.model_dump(mode="json"),
            details={},
        )
        tx = await self.repo.save(tx)
        logger.info("%s checkout created for order %s (tx=%s)", provider, payload.order_id, tx.id)
        return tx

    # Payme
    # PUBLIC_INTERFACE
    async def handle_payme_webhook(self, request: PaymeRequest, auth_header: Optional[str]) -> Dict[str, Any]:
        if not verify_payme_auth(auth_header, self.settings.PAYME_MERCHANT_ID, self.settings.PAYME_MERCHANT_KEY):
            logger.warning("Payme webhook: invalid authorization")
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid Payme webhook signature")

        logger.info("Payme webhook: %s", request.method)
        handlers = {
            "CheckPerformTransaction": self._payme_check_perform,
            "CreateTransaction": self._payme_create,
            "PerformTransaction": self._payme_perform,
            "CancelTransaction": self._payme_cancel,
            "CheckTransaction": self._payme_check,
        }
        handler = handlers.get(request.method)
        if handler is None:
            return payme_error(PAYME_METHOD_NOT_FOUND, "method_not_found", request.id)
        return await handler(request)

    async def _payme_check_perform(self, request: PaymeRequest) -> Dict[str, Any]:
        order_id = (request.params.get("account") or {}).get("order_id")
        if not order_id:
            return payme_error(PAYME_ORDER_NOT_FOUND, "order_not_found", request.id)
        existing = await self.repo.get_latest_for_order(str(order_id), provider="payme")
        if not existing:
            return payme_error(PAYME_ORDER_NOT_FOUND, "order_not_found", request.id)
        amount = request.params.get("amount")
        if amount and amount != to_tiyin(existing.amount):
            return payme_error(PAYME_INVALID_AMOUNT, "invalid_amount", request.id)
        return {"result": {"allow": True}, "id": request.id}

    async def _payme_create(self, request: PaymeRequest) -> Dict[str, Any]:
        order_id = (request.params.get("account") or {}).get("order_id")
        payme_id = request.params.get("id")
        if not order_id or not payme_id:
            return payme_error(PAYME_ORDER_NOT_FOUND, "invalid_params", request.id)

        existing = await self.repo.get_by_provider_tx_id("payme", payme_id)
        if existing:
            return {
                "result": {"create_time": _ms(existing.created_at), "transaction": str(existing.id), "state": 1},
                "id": request.id,
            }

        raw = request.model_dump(mode="json")
        tx = await self.repo.get_latest_for_order(str(order_id), provider="payme", status="pending")
        if tx:
            tx.provider_tx_id = payme_id
            tx.status = "processing"
            tx.raw_request = raw
        else:
            amount = request.params.get("amount")
            tx = PaymentTransaction(
                provider="payme",
                provider_tx_id=payme_id,
                amount=amount / 100 if amount else 0,
                currency="UZS",
                status="processing",
                order_id=str(order_id),
                raw_request=raw,
                details={},
            )
        create_time = utcnow()
        tx = await self.repo.save(tx)
        return {"result": {"create_time": _ms(create_time), "transaction": str(tx.id), "state": 1}, "id": request.id}

    async def _payme_transaction(self, request: PaymeRequest) -> Optional[PaymentTransaction]:
        payme_id = request.params.get("id")
        if not payme_id:
            return None
        return await self.repo.get_by_provider_tx_id("payme", payme_id)

    async def _payme_perform(self, request: PaymeRequest) -> Dict[str, Any]:
        tx = await self._payme_transaction(request)
        if not tx:
            return payme_error(PAYME_TRANSACTION_NOT_FOUND, "transaction_not_found", request.id)
        if tx.status == "completed":
            perform_time = _ms(tx.processed_at) or _ms(utcnow())
            return {"result": {"transaction": str(tx.id), "perform_time": perform_time, "state": 2}, "id": request.id}
        now = utcnow()
        tx.status = "completed"
        tx.processed_at = now
        tx.raw_response = request.model_dump(mode="json")
        await self.repo.save(tx)
        logger.info("Payme transaction %s completed", tx.id)
        return {"result": {"transaction": str(tx.id), "perform_time": _ms(now), "state": 2}, "id": request.id}

    async def _payme_cancel(self, request: PaymeRequest) -> Dict[str, Any]:
        tx = await self._payme_transaction(request)
        if not tx:
            return payme_error(PAYME_TRANSACTION_NOT_FOUND, "transaction_not_found", request.id)
        was_completed = tx.status == "completed"
        reason = request.params.get("reason")
        now = utcnow()
        tx.status = "cancelled"
        tx.raw_response = request.model_dump(mode="json")
        tx.error_message = f"Cancelled by Payme, reason: {reason}"
        tx.details = {**(tx.details or {}), "cancel_reason": reason}
        await self.repo.save(tx)
        return {
            "result": {"transaction": str(tx.id), "cancel_time": _ms(now), "state": -2 if was_completed else -1},
            "id": request.id,
        }

    async def _payme_check(self, request: PaymeRequest) -> Dict[str, Any]:
        tx = await self._payme_transaction(request)
        if not tx:
            return payme_error(PAYME_TRANSACTION_NOT_FOUND, "transaction_not_found", request.id)
        cancelled = tx.status == "cancelled"
        return {
            "result": {
                "create_time": _ms(tx.created_at),
                "perform_time": _ms(tx.processed_at),
                "cancel_time": _ms(tx.updated_at) if cancelled else None,
                "transaction": str(tx.id),
                "state": payme_state(tx.status),
                "reason": (tx.details or {}).get("cancel_reason") if cancelled else None,
            },
            "id": request.id,
        }

    # Click
    # PUBLIC_INTERFACE
    async def handle_click_webhook(self, raw: Mapping[str, Any]) -> Dict[str, Any]:
        """Click prepare (action=0) and complete (action=1); the signature is checked on the raw fields."""
        if not verify_click_signature(raw, self.settings.CLICK_SECRET_KEY):
            logger.warning("Click webhook: invalid signature")
            return {"error": -1, "error_note": "Invalid signature"}
        try:
            data = ClickRequest.model_validate(dict(raw))
        except ValidationError:
            logger.warning("Click webhook: malformed request")
            return {"error": -8, "error_note": "Error in request from click"}

        logger.info("Click webhook: action=%s trans_id=%s", data.action, data.click_trans_id)
        if data.action == 0:
            return await self._click_prepare(data)
        if data.action == 1:
            return await self._click_complete(data)
        return {"error": -3, "error_note": "Unknown action"}

    async def _click_prepare(self, data: ClickRequest) -> Dict[str, Any]:
        ids = {"click_trans_id": data.click_trans_id, "merchant_trans_id": data.merchant_trans_id}
        existing = await self.repo.get_latest_for_order(data.merchant_trans_id, provider="click")
        if not existing:
            tx = await self.repo.save(
                PaymentTransaction(
                    provider="click",
                    provider_tx_id=data.click_trans_id,
                    amount=data.amount,
                    currency="UZS",
                    status="pending",
                    order_id=data.merchant_trans_id,
                    raw_request=data.model_dump(mode="json"),
                    details={},
                )
            )
            return {**ids, "merchant_prepare_id": str(tx.id), "error": 0, "error_note": "Success"}

        if float(existing.amount) != float(data.amount):
            return {**ids, "error": -2, "error_note": "Incorrect amount"}

        existing.provider_tx_id = data.click_trans_id
        existing.raw_request = data.model_dump(mode="json")
        await self.repo.save(existing)
        return {**ids, "merchant_prepare_id": str(existing.id), "error": 0, "error_note": "Success"}

    async def _click_complete(self, data: ClickRequest) -> Dict[str, Any]:
        ids = {"click_trans_id": data.click_trans_id, "merchant_trans_id": data.merchant_trans_id}
        tx = await self.repo.get_by_provider_tx_id("click", data.click_trans_id)
        if data.error < 0:
            if tx:
                tx.status = "failed"
                tx.error_message = data.error_note
                tx.raw_response = data.model_dump(mode="json")
                await self.repo.save(tx)
            return {**ids, "error": -4, "error_note": "Transaction cancelled"}
        if not tx:
            return {**ids, "error": -6, "error_note": "Transaction not found"}

        tx.status = "completed"
        tx.processed_at = utcnow()
        tx.raw_response = data.model_dump(mode="json")
        await self.repo.save(tx)
        logger.info("Click transaction %s completed", tx.id)
        return {**ids, "merchant_confirm_id": str(tx.id), "error": 0, "error_note": "Success"}

    # Uzum
    # PUBLIC_INTERFACE
    async def handle_uzum_webhook(self, raw: Mapping[str, Any]) -> Dict[str, Any]:
        if not verify_uzum_signature(raw, self.settings.UZUM_SECRET_KEY):
            logger.warning("Uzum webhook: invalid signature")
            return {"success": False, "error": "Invalid signature"}
        try:
            data = UzumRequest.model_validate(dict(raw))
            tx_id = UUID(data.transactionId)
        except (ValidationError, ValueError):
            return {"success": False, "error": "Transaction not found"}

        logger.info("Uzum webhook: transactionId=%s status=%s", data.transactionId, data.status)
        tx = await self.repo.get(tx_id)
        if not tx or tx.provider != "uzum":
            logger.warning("Uzum webhook: transaction not found: %s", data.transactionId)
            return {"success": False, "error": "Transaction not found"}

        new_status = map_uzum_status(data.status)
        tx.status = new_status
        if new_status == "completed":
            tx.processed_at = utcnow()
            tx.provider_tx_id = data.transactionId
        elif new_status == "failed":
            tx.error_message = f"Uzum payment failed: {data.status}"
        elif new_status == "cancelled":
            tx.error_message = "Payment cancelled by user"
        tx.raw_response = data.model_dump(mode="json")
        tx = await self.repo.save(tx)
        return {"success": True, "transactionId": str(tx.id), "status": tx.status}

    # QR
    # PUBLIC_INTERFACE
    async def generate_qr_payment(self, amount: float, machine_id: UUID) -> QrPaymentResult:
        """Pending transaction plus a QR payload and provider deep links, valid for five minutes."""
        payment_id = str(uuid.uuid4())
        expires_at = utcnow() + QR_PAYMENT_TTL
        await self.repo.save(
            PaymentTransaction(
                provider="cash",
                amount=amount,
                currency="UZS",
                status="pending",
                order_id=payment_id,
                machine_id=machine_id,
                details={"type": "qr_payment", "expires_at": expires_at.isoformat()},
            )
        )

        s = self.settings
        urls: Dict[str, str] = {}
        if s.PAYME_MERCHANT_ID:
            urls["payme"] = payme_checkout_url(s.PAYME_CHECKOUT_URL, s.PAYME_MERCHANT_ID, payment_id, to_tiyin(amount))
        if s.CLICK_SERVICE_ID and s.CLICK_MERCHANT_ID:
            urls["click"] = click_checkout_url(
                s.CLICK_CHECKOUT_URL, s.CLICK_SERVICE_ID, s.CLICK_MERCHANT_ID, amount, payment_id
            )
        return QrPaymentResult(
            qr_code=encode_qr_payload(payment_id, amount, machine_id, expires_at),
            payment_id=payment_id,
            amount=amount,
            machine_id=machine_id,
            expires_at=expires_at,
            checkout_urls=urls,
        )

    # Refunds
    # PUBLIC_INTERFACE
    async def initiate_refund(self, payload: RefundCreate, user_id: Optional[UUID] = None) -> PaymentRefund:
        tx = await self.repo.get(payload.payment_transaction_id)
        if not tx:
            raise not_found("Payment transaction not found")
        if tx.status != "completed":
            raise bad_request("Only completed transactions can be refunded")

        amount = payload.amount or float(tx.amount)
        remaining = float(tx.amount) - await self.repo.refunded_total(tx.id)
        if amount > remaining:
            raise bad_request(f"Refund amount ({amount}) exceeds remaining refundable amount ({remaining})")

        refund = PaymentRefund(
            payment_transaction_id=tx.id,
            amount=amount,
            reason=payload.reason.value,
            reason_note=payload.reason_note,
            status="pending",
            processed_by_user_id=user_id,
        )
        refund = await self.repo.save(refund)
        return await self._process(refund, tx)

    # PUBLIC_INTERFACE
    async def process_refund(self, refund_id: UUID) -> PaymentRefund:
        refund = await self.repo.get_refund(refund_id)
        if not refund:
            raise not_found("Refund not found")
        if refund.status not in ("pending", "failed"):
            raise bad_request(f"Refund is already {refund.status}")
        tx = await self.repo.get(refund.payment_transaction_id)
        return await self._process(refund, tx)

    async def _process(self, refund: PaymentRefund, tx: PaymentTransaction) -> PaymentRefund:
        refund.status = "processing"
        await self.repo.commit()
        try:
            self._provider_refund(refund, tx)
            refund.status = "completed"
            refund.processed_at = utcnow()
            await self.repo.flush()
            if await self.repo.refunded_total(tx.id) >= float(tx.amount):
                tx.status = "refunded"
        except (ValueError, RuntimeError) as exc:
            refund.status = "failed"
            refund.error_message = str(exc)
            logger.exception("Refund processing failed for refund %s", refund.id)
        await self.repo.commit()
        return await self.repo.reload(refund)

    def _provider_refund(self, refund: PaymentRefund, tx: PaymentTransaction) -> None:
        if tx.provider not in REFUNDABLE_PROVIDERS:
            raise ValueError(f"Unsupported provider for refund: {tx.provider}")
        if tx.provider == "uzum":
            if not self.settings.UZUM_SECRET_KEY:
                raise RuntimeError("UZUM_SECRET_KEY not configured")
            signature = uzum_refund_signature(self.settings.UZUM_SECRET_KEY, str(tx.id), float(refund.amount))
            refund.provider_refund_id = signature
        logger.info("%s refund initiated for transaction %s", tx.provider, tx.provider_tx_id or tx.id)

    # Queries
    # PUBLIC_INTERFACE
    async def list_transactions(self, *, limit: int = 20, offset: int = 0, **filters) -> Tuple[List[PaymentTransaction], int]:
        return await self.repo.list_transactions(limit=limit, offset=offset, **filters)

    # PUBLIC_INTERFACE
    async def get_transaction(self, transaction_id: UUID) -> PaymentTransaction:
        tx = await self.repo.get(transaction_id)
        if not tx:
            raise not_found("Payment transaction not found")
        return tx

    # PUBLIC_INTERFACE
    async def transaction_stats(
        self, date_from: Optional[datetime] = None, date_to: Optional[datetime] = None
    ) -> TransactionStats:
        stats = TransactionStats()
        for provider, tx_status, count, amount in await self.repo.provider_status_totals(date_from, date_to):
            stats.by_status[tx_status] = stats.by_status.get(tx_status, 0) + count
            if tx_status != "completed":
                continue
            stats.total_transactions += count
            stats.total_revenue += amount
            bucket = stats.by_provider.setdefault(provider, {"count": 0, "amount": 0.0})
            bucket["count"] += count
            bucket["amount"] += amount
        stats.total_revenue = round(stats.total_revenue, 2)
        return stats
