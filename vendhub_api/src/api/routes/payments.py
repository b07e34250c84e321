from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, Path, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.deps import get_path_tenant_session, get_tenant_session, require_roles
from src.schemas.common import Page
from src.schemas.payments import (
    CheckoutRequest,
    PaymentProvider,
    PaymentResult,
    PaymeRequest,
    QrPaymentRequest,
    QrPaymentResult,
    RefundCreate,
    RefundRead,
    TransactionRead,
    TransactionStatus,
    TransactionStats,
)
from src.services.payments import PaymentService

router = APIRouter(prefix="/payments", tags=["Payments"])

_view = [Depends(require_roles("admin", "manager", "accountant", "payments:view", "payments:manage"))]
_checkout = [Depends(require_roles("admin", "manager", "operator", "payments:manage"))]


async def _callback_body(request: Request) -> Dict[str, Any]:
    """Providers post either form-encoded fields or JSON."""
    if request.headers.get("content-type", "").startswith("application/json"):
        body = await request.json()
        return body if isinstance(body, dict) else {}
    return dict(await request.form())


# PUBLIC_INTERFACE
@router.post("/payme", response_model=PaymentResult, summary="Start Payme checkout", dependencies=_checkout)
async def create_payme(payload: CheckoutRequest, session: AsyncSession = Depends(get_tenant_session)) -> PaymentResult:
    return await PaymentService(session).create_payme(payload)


# PUBLIC_INTERFACE
@router.post("/click", response_model=PaymentResult, summary="Start Click checkout", dependencies=_checkout)
async def create_click(payload: CheckoutRequest, session: AsyncSession = Depends(get_tenant_session)) -> PaymentResult:
    return await PaymentService(session).create_click(payload)


# PUBLIC_INTERFACE
@router.post("/uzum", response_model=PaymentResult, summary="Start Uzum checkout", dependencies=_checkout)
async def create_uzum(payload: CheckoutRequest, session: AsyncSession = Depends(get_tenant_session)) -> PaymentResult:
    return await PaymentService(session).create_uzum(payload)


# PUBLIC_INTERFACE
@router.post(
    "/qr",
    response_model=QrPaymentResult,
    summary="Generate QR payment",
    description="Pending payment valid for 5 minutes, encoded for a machine display with provider checkout links.",
    dependencies=_checkout,
)
async def generate_qr(payload: QrPaymentRequest, session: AsyncSession = Depends(get_tenant_session)) -> QrPaymentResult:
    return await PaymentService(session).generate_qr_payment(payload.amount, payload.machine_id)


# PUBLIC_INTERFACE
@router.get("/transactions", response_model=Page[TransactionRead], summary="List transactions", dependencies=_view)
async def list_transactions(
    session: AsyncSession = Depends(get_tenant_session),
    provider: Optional[PaymentProvider] = Query(None),
    status_: Optional[TransactionStatus] = Query(None, alias="status"),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    order_id: Optional[str] = Query(None),
    machine_id: Optional[UUID] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
) -> Page[TransactionRead]:
    items, total = await PaymentService(session).list_transactions(
        provider=provider.value if provider else None,
        status=status_.value if status_ else None,
        date_from=date_from,
        date_to=date_to,
        order_id=order_id,
        machine_id=machine_id,
        limit=limit,
        offset=offset,
    )
    return Page[TransactionRead](
        items=[TransactionRead.model_validate(t) for t in items], total=total, limit=limit, offset=offset
    )


# PUBLIC_INTERFACE
@router.get("/transactions/stats", response_model=TransactionStats, summary="Transaction statistics", dependencies=_view)
async def transaction_stats(
    session: AsyncSession = Depends(get_tenant_session),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
) -> TransactionStats:
    return await PaymentService(session).transaction_stats(date_from, date_to)


# PUBLIC_INTERFACE
@router.get("/transactions/{transaction_id}", response_model=TransactionRead, summary="Get transaction", dependencies=_view)
async def get_transaction(
    transaction_id: UUID = Path(...), session: AsyncSession = Depends(get_tenant_session)
) -> TransactionRead:
    return TransactionRead.model_validate(await PaymentService(session).get_transaction(transaction_id))


# PUBLIC_INTERFACE
@router.post(
    "/refunds",
    response_model=RefundRead,
    status_code=status.HTTP_201_CREATED,
    summary="Refund a transaction",
    description="Refund all or part of a completed transaction. The refund is processed immediately.",
)
async def initiate_refund(
    payload: RefundCreate,
    session: AsyncSession = Depends(get_tenant_session),
    user=Depends(require_roles("admin", "manager", "payments:manage")),
) -> RefundRead:
    return RefundRead.model_validate(await PaymentService(session).initiate_refund(payload, user.id))


# PUBLIC_INTERFACE
@router.post(
    "/refunds/{refund_id}/process",
    response_model=RefundRead,
    summary="Retry a refund",
    dependencies=[Depends(require_roles("admin", "payments:manage"))],
)
async def process_refund(refund_id: UUID = Path(...), session: AsyncSession = Depends(get_tenant_session)) -> RefundRead:
    return RefundRead.model_validate(await PaymentService(session).process_refund(refund_id))


# Provider callbacks. Providers cannot send X-Tenant-ID, so the tenant is part of the registered URL.
# PUBLIC_INTERFACE
@router.post(
    "/webhooks/{tenant_id}/payme",
    summary="Payme merchant API",
    description="JSON-RPC endpoint called by Payme; authenticated with HTTP Basic merchant credentials.",
)
async def payme_webhook(
    payload: PaymeRequest,
    authorization: Optional[str] = Header(default=None),
    session: AsyncSession = Depends(get_path_tenant_session),
) -> Dict[str, Any]:
    return await PaymentService(session).handle_payme_webhook(payload, authorization)


# PUBLIC_INTERFACE
@router.post(
    "/webhooks/{tenant_id}/click",
    summary="Click prepare/complete callback",
    description="Signed with MD5 over the callback fields; answers in Click's error/error_note format.",
)
async def click_webhook(request: Request, session: AsyncSession = Depends(get_path_tenant_session)) -> Dict[str, Any]:
    return await PaymentService(session).handle_click_webhook(await _callback_body(request))


# PUBLIC_INTERFACE
@router.post(
    "/webhooks/{tenant_id}/uzum",
    summary="Uzum status callback",
    description="Signed with HMAC-SHA256; answers with {success, error?}.",
)
async def uzum_webhook(request: Request, session: AsyncSession = Depends(get_path_tenant_session)) -> Dict[str, Any]:
    return await PaymentService(session).handle_uzum_webhook(await _callback_body(request))
