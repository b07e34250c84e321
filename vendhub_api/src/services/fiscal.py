from __future__ import annotations

import logging
from datetime import datetime, time, timedelta
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.settings import get_app_settings
from src.db.models.fiscal import FiscalDevice, FiscalQueueItem, FiscalReceipt, FiscalShift
from src.integrations.multikassa import (
    FiscalProviderError,
    MultiKassaClient,
    MultiKassaConfig,
    MultiKassaCredentials,
    ReceiptItem,
    ReceiptRequest,
    calculate_vat,
    multikassa_client,
)
from src.repositories.fiscal import FiscalRepository
from src.schemas.fiscal import DeviceCreate, DeviceStatistics, DeviceUpdate, ReceiptCreate, XReport
from src.services.base import BaseService, bad_request, not_found, utcnow

logger = logging.getLogger(__name__)

RETRY_BASE_SECONDS = 5
DEFAULT_AUTO_CASHIER = "VendHub Auto"


# PUBLIC_INTERFACE
def next_retry_delay(retry_count: int) -> timedelta:
    """Backoff before the next delivery attempt: 2^retry_count * 5 seconds."""
    return timedelta(seconds=(2 ** retry_count) * RETRY_BASE_SECONDS)


# PUBLIC_INTERFACE
def price_receipt_items(items: List[Dict[str, Any]]) -> Tuple[List[Dict[str, Any]], float, int]:
    """Attach total and VAT to each line; return the lines, receipt total and VAT total."""
    priced = []
    for item in items:
        total = float(item["price"]) * float(item["quantity"])
        priced.append({**item, "total": total, "vat_amount": calculate_vat(item["price"], item["quantity"], item["vat_rate"])})
    return priced, sum(i["total"] for i in priced), sum(i["vat_amount"] for i in priced)


# PUBLIC_INTERFACE
def summarize_receipts(receipts: List[FiscalReceipt]) -> XReport:
    """Local X-report: sales feed sales and payment totals, refunds feed refunds."""
    report = XReport()
    for receipt in receipts:
        total = float(receipt.total or 0)
        if receipt.type == "sale":
            report.total_sales += total
            report.total_cash += float((receipt.payment or {}).get("cash") or 0)
            report.total_card += float((receipt.payment or {}).get("card") or 0)
        else:
            report.total_refunds += total
        report.receipts_count += 1
    return report


def _parse_time(value: Any) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


class FiscalService(BaseService):
    """
    Fiscal devices, shifts and receipts backed by MultiKassa.

    Provider failures never lose an operation: it is written to the fiscal queue
    and retried with exponential backoff by process_due_queue.
    """

    def __init__(self, session: AsyncSession, client: Optional[MultiKassaClient] = None) -> None:
        super().__init__(session)
        self.repo = FiscalRepository(session)
        self.client = client or multikassa_client

    # Devices
    def _register(self, device: FiscalDevice) -> None:
        creds = device.credentials or {}
        config = device.config or {}
        if not creds.get("login") or not creds.get("password"):
            logger.warning("Fiscal device %s has no credentials; not registered", device.id)
            return
        self.client.register_device(
            str(device.id),
            MultiKassaConfig(
                base_url=config.get("base_url") or get_app_settings().MULTIKASSA_DEFAULT_BASE_URL,
                sandbox_mode=device.sandbox_mode,
                credentials=MultiKassaCredentials(
                    login=creds["login"],
                    password=creds["password"],
                    company_tin=creds.get("company_tin"),
                    default_cashier=config.get("default_cashier"),
                ),
            ),
        )

    def _ensure_registered(self, device: FiscalDevice) -> None:
        # The client registry is in-process; devices created before a restart load on first use.
        if not self.client.is_registered(str(device.id)):
            self._register(device)

    # PUBLIC_INTERFACE
    async def create_device(self, payload: DeviceCreate) -> FiscalDevice:
        device = FiscalDevice(
            name=payload.name,
            provider=payload.provider,
            serial_number=payload.serial_number,
            terminal_id=payload.terminal_id,
            credentials=payload.credentials.model_dump(),
            config=payload.config.model_dump(),
            sandbox_mode=payload.sandbox_mode,
            status="inactive",
            machine_id=payload.machine_id,
        )
        device = await self.repo.save(device)
        if device.provider == "multikassa":
            self._register(device)
        logger.info("Fiscal device created: %s (%s)", device.name, device.id)
        return device

    # PUBLIC_INTERFACE
    async def update_device(self, device_id: UUID, payload: DeviceUpdate) -> FiscalDevice:
        device = await self.get_device(device_id)
        data = payload.model_dump(exclude_unset=True)
        if "credentials" in data:
            device.credentials = {**(device.credentials or {}), **(data.pop("credentials") or {})}
        if "config" in data:
            device.config = {**(device.config or {}), **(data.pop("config") or {})}
        for key, value in data.items():
            setattr(device, key, value)
        device = await self.repo.save(device)
        if device.provider == "multikassa":
            self._register(device)
        return device

    # PUBLIC_INTERFACE
    async def get_device(self, device_id: UUID) -> FiscalDevice:
        device = await self.repo.get(device_id)
        if not device:
            raise not_found("Fiscal device not found")
        return device

    # PUBLIC_INTERFACE
    async def list_devices(self) -> List[FiscalDevice]:
        return await self.repo.list_devices()

    async def _set_device_status(self, device_id: UUID, new_status: str) -> FiscalDevice:
        device = await self.get_device(device_id)
        device.status = new_status
        return await self.repo.save(device)

    # PUBLIC_INTERFACE
    async def activate_device(self, device_id: UUID) -> FiscalDevice:
        return await self._set_device_status(device_id, "active")

    # PUBLIC_INTERFACE
    async def deactivate_device(self, device_id: UUID) -> FiscalDevice:
        return await self._set_device_status(device_id, "inactive")

    # Shifts
    # PUBLIC_INTERFACE
    async def open_shift(self, device_id: UUID, cashier_name: str) -> FiscalShift:
        device = await self.get_device(device_id)
        if await self.repo.get_open_shift(device_id):
            raise bad_request("Shift is already open")

        external: Dict[str, Any] = {}
        if device.provider == "multikassa":
            self._ensure_registered(device)
            try:
                external = await self.client.open_shift(str(device_id), cashier_name)
            except FiscalProviderError as exc:
                logger.warning("Provider shift open failed for device %s, queued: %s", device_id, exc.message)
                await self._enqueue(device_id, "shift_open", {"cashier_name": cashier_name})

        shift = FiscalShift(
            device_id=device_id,
            external_shift_id=str(external["shift_id"]) if external.get("shift_id") else None,
            shift_number=await self.repo.last_shift_number(device_id) + 1,
            status="open",
            cashier_name=cashier_name,
            opened_at=_parse_time(external.get("opened_at")) or utcnow(),
            vat_summary=[],
        )
        shift = await self.repo.save(shift)
        logger.info("Shift %s opened on device %s", shift.shift_number, device_id)
        return shift

    # PUBLIC_INTERFACE
    async def close_shift(self, device_id: UUID) -> FiscalShift:
        device = await self.get_device(device_id)
        shift = await self.repo.get_open_shift(device_id)
        if not shift:
            raise bad_request("No open shift found")

        z_report: Dict[str, Any] = {}
        if device.provider == "multikassa":
            self._ensure_registered(device)
            try:
                z_report = await self.client.close_shift(str(device_id))
            except FiscalProviderError as exc:
                logger.warning("Provider shift close failed for device %s, queued: %s", device_id, exc.message)
                await self._enqueue(device_id, "shift_close", {"shift_id": str(shift.id)})

        shift.status = "closed"
        shift.closed_at = utcnow()
        if z_report:
            shift.z_report_number = z_report.get("z_report_number")
            shift.z_report_url = z_report.get("z_report_url")
            shift.total_sales = z_report["total_sales"]
            shift.total_refunds = z_report["total_refunds"]
            shift.total_cash = z_report["total_cash"]
            shift.total_card = z_report["total_card"]
            shift.receipts_count = z_report["receipts_count"]
            shift.vat_summary = z_report["vat_summary"]
        shift = await self.repo.save(shift)
        logger.info("Shift %s closed on device %s", shift.shift_number, device_id)
        return shift

    # PUBLIC_INTERFACE
    async def current_shift(self, device_id: UUID) -> Optional[FiscalShift]:
        await self.get_device(device_id)
        return await self.repo.get_open_shift(device_id)

    # PUBLIC_INTERFACE
    async def shift_history(self, device_id: UUID, limit: int = 30) -> List[FiscalShift]:
        await self.get_device(device_id)
        return await self.repo.shift_history(device_id, limit)

    # PUBLIC_INTERFACE
    async def x_report(self, device_id: UUID) -> XReport:
        device = await self.get_device(device_id)
        shift = await self.repo.get_open_shift(device_id)
        if not shift:
            raise bad_request("No open shift found")
        if device.provider == "multikassa":
            self._ensure_registered(device)
            return XReport(**await self.client.get_x_report(str(device_id)))
        return summarize_receipts(await self.repo.shift_receipts(shift.id))

    # Receipts
    # PUBLIC_INTERFACE
    async def create_receipt(self, payload: ReceiptCreate) -> FiscalReceipt:
        device = await self.get_device(payload.device_id)
        shift = await self.repo.get_open_shift(device.id)
        if not shift:
            config = device.config or {}
            if not config.get("auto_open_shift"):
                raise bad_request("No open shift. Please open shift first.")
            shift = await self.open_shift(device.id, config.get("default_cashier") or DEFAULT_AUTO_CASHIER)

        items, total, vat_total = price_receipt_items([i.model_dump() for i in payload.items])
        receipt = FiscalReceipt(
            device_id=device.id,
            shift_id=shift.id,
            order_id=payload.order_id,
            transaction_id=payload.transaction_id,
            type=payload.type.value,
            status="pending",
            items=items,
            payment=payload.payment.model_dump(),
            total=total,
            vat_total=vat_total,
            details={"operator_name": payload.operator_name} if payload.operator_name else {},
        )
        receipt = await self.repo.save(receipt)

        try:
            receipt = await self.fiscalize_receipt(receipt, device)
        except FiscalProviderError as exc:
            logger.warning("Fiscalization failed for receipt %s, queued: %s", receipt.id, exc.message)
            operation = "receipt_sale" if receipt.type == "sale" else "receipt_refund"
            await self._enqueue(device.id, operation, {"receipt_id": str(receipt.id)})
            receipt = await self.repo.reload(receipt)
        return receipt

    # PUBLIC_INTERFACE
    async def fiscalize_receipt(self, receipt: FiscalReceipt, device: FiscalDevice) -> FiscalReceipt:
        """Send a stored receipt to the provider; on failure record it and re-raise."""
        receipt.status = "processing"
        await self.repo.commit()
        try:
            if device.provider != "multikassa":
                raise FiscalProviderError(f"Unsupported fiscal provider: {device.provider}", status=400)
            self._ensure_registered(device)
            payment = receipt.payment or {}
            request = ReceiptRequest(
                type=receipt.type,
                items=[ReceiptItem(**{k: v for k, v in i.items() if k in ReceiptItem.model_fields}) for i in receipt.items],
                cash=payment.get("cash") or 0,
                card=payment.get("card") or 0,
                total=float(receipt.total),
                order_id=receipt.order_id,
                operator_name=(receipt.details or {}).get("operator_name"),
            )
            if receipt.type == "refund":
                result = await self.client.create_refund_receipt(str(device.id), request)
            else:
                result = await self.client.create_sale_receipt(str(device.id), request)
        except FiscalProviderError as exc:
            await self._mark_failed(receipt, exc.message)
            raise
        except HTTPException as exc:
            # Unregistered device; retried once its credentials are fixed
            await self._mark_failed(receipt, str(exc.detail))
            raise FiscalProviderError(str(exc.detail), status=exc.status_code) from exc

        receipt.status = "success"
        receipt.external_receipt_id = result.get("receipt_id")
        receipt.fiscal_number = result.get("fiscal_number")
        receipt.fiscal_sign = result.get("fiscal_sign")
        receipt.qr_code_url = result.get("qr_code_url")
        receipt.receipt_url = result.get("receipt_url")
        receipt.fiscalized_at = _parse_time(result.get("timestamp")) or utcnow()
        receipt.last_error = None
        await self.repo.commit()
        logger.info("Receipt %s fiscalized: %s", receipt.id, receipt.fiscal_number)
        return await self.repo.reload(receipt)

    async def _mark_failed(self, receipt: FiscalReceipt, message: str) -> None:
        receipt.status = "failed"
        receipt.last_error = message
        receipt.retry_count = (receipt.retry_count or 0) + 1
        await self.repo.commit()

    # PUBLIC_INTERFACE
    async def get_receipt(self, receipt_id: UUID) -> FiscalReceipt:
        receipt = await self.repo.get_receipt(receipt_id)
        if not receipt:
            raise not_found("Receipt not found")
        return receipt

    # PUBLIC_INTERFACE
    async def list_receipts(self, **filters) -> Tuple[List[FiscalReceipt], int]:
        return await self.repo.list_receipts(**filters)

    # Queue
    async def _enqueue(self, device_id: UUID, operation: str, payload: Dict[str, Any], priority: int = 0) -> FiscalQueueItem:
        return await self.add_to_queue(device_id, operation, payload, priority)

    # PUBLIC_INTERFACE
    async def add_to_queue(
        self, device_id: UUID, operation: str, payload: Dict[str, Any], priority: int = 0
    ) -> FiscalQueueItem:
        item = FiscalQueueItem(
            device_id=device_id,
            operation=operation,
            payload=payload,
            status="pending",
            priority=priority,
            retry_count=0,
            max_retries=5,
        )
        return await self.repo.save(item)

    # PUBLIC_INTERFACE
    async def list_queue(self, device_id: Optional[UUID] = None, status: Optional[str] = None) -> List[FiscalQueueItem]:
        return await self.repo.list_queue(device_id=device_id, status=status)

    # PUBLIC_INTERFACE
    async def process_queue_item(self, item_id: UUID) -> Optional[FiscalQueueItem]:
        item = await self.repo.get_queue_item(item_id)
        if not item or item.status == "success":
            return item

        item.status = "processing"
        await self.repo.commit()
        try:
            result = await self._run_operation(item)
        except (FiscalProviderError, LookupError, HTTPException) as exc:
            item.last_error = getattr(exc, "message", None) or getattr(exc, "detail", None) or str(exc)
            item.retry_count = (item.retry_count or 0) + 1
            if item.retry_count < item.max_retries:
                item.status = "retry"
                item.next_retry_at = utcnow() + next_retry_delay(item.retry_count)
            else:
                item.status = "failed"
            logger.warning("Fiscal queue item %s failed (%s/%s): %s", item.id, item.retry_count, item.max_retries, item.last_error)
        else:
            item.status = "success"
            item.result = result
            item.processed_at = utcnow()
        await self.repo.commit()
        return await self.repo.reload(item)

    async def _run_operation(self, item: FiscalQueueItem) -> Optional[Dict[str, Any]]:
        device = await self.repo.get(item.device_id)
        if not device:
            raise LookupError("Device not found")
        self._ensure_registered(device)
        device_key = str(device.id)
        if item.operation in ("receipt_sale", "receipt_refund"):
            receipt = await self.repo.get_receipt(UUID(item.payload["receipt_id"]))
            if receipt and receipt.status != "success":
                receipt = await self.fiscalize_receipt(receipt, device)
            return {"receipt_id": str(receipt.id), "fiscal_number": receipt.fiscal_number} if receipt else None
        if device.provider != "multikassa":
            return None
        if item.operation == "shift_open":
            return await self.client.open_shift(device_key, (item.payload or {}).get("cashier_name"))
        if item.operation == "shift_close":
            return await self.client.close_shift(device_key)
        if item.operation == "x_report":
            return await self.client.get_x_report(device_key)
        raise LookupError(f"Unknown fiscal operation: {item.operation}")

    # PUBLIC_INTERFACE
    async def process_due_queue(self) -> int:
        """Scheduled job: deliver pending items and retries whose backoff has elapsed."""
        processed = 0
        for item in await self.repo.list_due_queue(utcnow()):
            await self.process_queue_item(item.id)
            processed += 1
        return processed

    # PUBLIC_INTERFACE
    async def device_statistics(self, device_id: UUID) -> DeviceStatistics:
        device = await self.get_device(device_id)
        shift = await self.repo.get_open_shift(device_id)
        midnight = datetime.combine(utcnow().date(), time.min, tzinfo=utcnow().tzinfo)
        today = summarize_receipts(await self.repo.device_receipts_since(device_id, midnight))
        counts = await self.repo.queue_counts(device_id)

        current = None
        if shift:
            current = {
                "shift_id": str(shift.id),
                "shift_number": shift.shift_number,
                "status": shift.status,
                "opened_at": shift.opened_at.isoformat() if shift.opened_at else None,
                "cashier_name": shift.cashier_name,
                "total_sales": float(shift.total_sales or 0),
                "total_refunds": float(shift.total_refunds or 0),
                "total_cash": float(shift.total_cash or 0),
                "total_card": float(shift.total_card or 0),
                "receipts_count": shift.receipts_count,
                "net_total": float(shift.total_sales or 0) - float(shift.total_refunds or 0),
            }
        return DeviceStatistics(
            device_name=device.name,
            device_status=device.status,
            current_shift=current,
            today={
                "total_sales": today.total_sales,
                "total_refunds": today.total_refunds,
                "receipts_count": today.receipts_count,
            },
            queue={"pending": counts.get("pending", 0) + counts.get("retry", 0), "failed": counts.get("failed", 0)},
        )
