from __future__ import annotations

import logging
import re
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional

import httpx
from fastapi import HTTPException, status
from pydantic import BaseModel, Field

from src.core.settings import get_app_settings

logger = logging.getLogger(__name__)

IKPU_PATTERN = re.compile(r"^\d{17,20}$")


class FiscalProviderError(Exception):
    """Failure reported by (or while reaching) the fiscal provider."""

    def __init__(self, message: str, status: int = 500) -> None:
        super().__init__(message)
        self.message = message
        self.status = status


class MultiKassaCredentials(BaseModel):
    login: str = Field(..., description="API login")
    password: str = Field(..., description="API password")
    company_tin: Optional[str] = Field(None, description="Company taxpayer id (INN)")
    default_cashier: Optional[str] = Field(None, description="Cashier name used when none is given")


class MultiKassaConfig(BaseModel):
    """Connection details for one registered fiscal device."""
    base_url: str = Field(..., description="API root, e.g. https://api.multikassa.uz/api/v1")
    sandbox_mode: bool = Field(True, description="Provider sandbox")
    credentials: MultiKassaCredentials


class ReceiptItem(BaseModel):
    name: str
    ikpu_code: Optional[str] = None
    package_code: Optional[str] = None
    quantity: float
    price: float
    vat_rate: float = 12
    unit: Optional[str] = None


class ReceiptRequest(BaseModel):
    """Receipt to fiscalize; amounts in UZS."""
    type: str = "sale"
    items: List[ReceiptItem]
    cash: float = 0
    card: float = 0
    total: float
    order_id: Optional[str] = None
    operator_name: Optional[str] = None


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up, as the provider does."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


# PUBLIC_INTERFACE
def calculate_vat(price: float, quantity: float, vat_rate: float) -> int:
    """VAT included in a gross amount: total * rate / (100 + rate), rounded."""
    total = price * quantity
    return round_half_up(total * vat_rate / (100 + vat_rate))


# PUBLIC_INTERFACE
def to_tiyin(amount: float) -> int:
    """Convert UZS to tiyin (1/100)."""
    return round_half_up(amount * 100)


# PUBLIC_INTERFACE
def from_tiyin(tiyin: int) -> float:
    return tiyin / 100


# PUBLIC_INTERFACE
def validate_ikpu_code(code: str) -> bool:
    """IKPU product classification codes are 17 to 20 digits."""
    return bool(IKPU_PATTERN.match(code or ""))


class MultiKassaClient:
    """
    Async HTTP client for the MultiKassa online cash register API.

    Devices are registered with their own base URL and Basic credentials; every
    call names the device it targets.
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None, timeout: Optional[float] = None) -> None:
        self._configs: Dict[str, MultiKassaConfig] = {}
        self._timeout = timeout if timeout is not None else get_app_settings().MULTIKASSA_TIMEOUT_SECONDS
        self._http = client

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self._timeout)
        return self._http

    # PUBLIC_INTERFACE
    def register_device(self, device_id: str, config: MultiKassaConfig) -> None:
        """Store (or replace) a device's connection configuration."""
        self._configs[str(device_id)] = config
        logger.info("MultiKassa device registered: %s (sandbox=%s)", device_id, config.sandbox_mode)

    # PUBLIC_INTERFACE
    def is_registered(self, device_id: str) -> bool:
        return str(device_id) in self._configs

    # PUBLIC_INTERFACE
    def get_config(self, device_id: str) -> MultiKassaConfig:
        config = self._configs.get(str(device_id))
        if config is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"MultiKassa device not configured: {device_id}",
            )
        return config

    async def _request(self, device_id: str, method: str, path: str, json: Optional[dict] = None) -> Dict[str, Any]:
        config = self.get_config(device_id)
        url = f"{config.base_url.rstrip('/')}{path}"
        try:
            response = await self._client().request(
                method,
                url,
                json=json,
                auth=(config.credentials.login, config.credentials.password),
                headers={"Content-Type": "application/json", "Accept": "application/json"},
                timeout=self._timeout,
            )
        except httpx.HTTPError as exc:
            logger.error("MultiKassa API error: %s %s: %s", method, path, exc)
            raise FiscalProviderError(f"MultiKassa API error: {exc}", status=500) from exc

        if response.is_error:
            message = response.reason_phrase or "MultiKassa API error"
            try:
                body = response.json()
            except ValueError:
                body = None
            if isinstance(body, dict) and body.get("message"):
                message = str(body["message"])
            logger.error("MultiKassa API error: %s %s -> %s %s", method, path, response.status_code, message)
            raise FiscalProviderError(message, status=response.status_code or 500)

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            logger.error("MultiKassa returned a non-JSON body: %s %s", method, path)
            raise FiscalProviderError("MultiKassa returned an invalid response", status=502) from exc

    # Shift operations
    # PUBLIC_INTERFACE
    async def open_shift(self, device_id: str, cashier_name: Optional[str] = None) -> Dict[str, Any]:
        config = self.get_config(device_id)
        cashier = cashier_name or config.credentials.default_cashier or "VendHub"
        logger.info("Opening shift for device %s", device_id)
        data = await self._request(device_id, "POST", "/shift/open", {"cashier_name": cashier})
        return {
            "shift_id": data.get("shift_id"),
            "shift_number": data.get("shift_number"),
            "opened_at": data.get("opened_at"),
        }

    # PUBLIC_INTERFACE
    async def close_shift(self, device_id: str) -> Dict[str, Any]:
        """Close the shift and return its Z-report."""
        logger.info("Closing shift for device %s", device_id)
        data = await self._request(device_id, "POST", "/shift/close", {})
        return {
            "z_report_number": data.get("z_report_number"),
            "z_report_url": data.get("z_report_url"),
            "total_sales": data.get("total_sales") or 0,
            "total_refunds": data.get("total_refunds") or 0,
            "total_cash": data.get("total_cash") or 0,
            "total_card": data.get("total_card") or 0,
            "receipts_count": data.get("receipts_count") or 0,
            "vat_summary": data.get("vat_summary") or [],
        }

    # PUBLIC_INTERFACE
    async def get_shift_status(self, device_id: str) -> Dict[str, Any]:
        data = await self._request(device_id, "GET", "/shift/status")
        return {
            "shift_id": data.get("shift_id"),
            "shift_number": data.get("shift_number"),
            "status": data.get("status"),
            "opened_at": data.get("opened_at"),
            "closed_at": data.get("closed_at"),
            "cashier_name": data.get("cashier_name"),
            "total_sales": data.get("total_sales") or 0,
            "total_refunds": data.get("total_refunds") or 0,
            "total_cash": data.get("total_cash") or 0,
            "total_card": data.get("total_card") or 0,
            "receipts_count": data.get("receipts_count") or 0,
        }

    # PUBLIC_INTERFACE
    async def get_x_report(self, device_id: str) -> Dict[str, Any]:
        """Intermediate report for the open shift."""
        data = await self._request(device_id, "GET", "/shift/x-report")
        return {
            "total_sales": data.get("total_sales") or 0,
            "total_refunds": data.get("total_refunds") or 0,
            "total_cash": data.get("total_cash") or 0,
            "total_card": data.get("total_card") or 0,
            "receipts_count": data.get("receipts_count") or 0,
            "vat_summary": data.get("vat_summary") or [],
        }

    # PUBLIC_INTERFACE
    async def is_shift_open(self, device_id: str) -> bool:
        """True when the provider reports an open shift; any provider failure counts as closed."""
        try:
            shift = await self.get_shift_status(device_id)
        except FiscalProviderError as exc:
            logger.warning("Shift status unavailable for device %s: %s", device_id, exc.message)
            return False
        return shift.get("status") == "open"

    # PUBLIC_INTERFACE
    async def ensure_shift_open(self, device_id: str, cashier_name: Optional[str] = None) -> Dict[str, Any]:
        if await self.is_shift_open(device_id):
            return await self.get_shift_status(device_id)
        config = self.get_config(device_id)
        return await self.open_shift(
            device_id, cashier_name or config.credentials.default_cashier or "VendHub Auto"
        )

    # Receipt operations
    @staticmethod
    def build_receipt_payload(request: ReceiptRequest) -> Dict[str, Any]:
        return {
            "type": request.type,
            "items": [
                {
                    "name": item.name,
                    "ikpu_code": item.ikpu_code,
                    "package_code": item.package_code,
                    "quantity": item.quantity,
                    "price": item.price,
                    "vat_rate": item.vat_rate,
                    "unit": item.unit,
                }
                for item in request.items
            ],
            "payment": {"cash": request.cash, "card": request.card},
            "total": request.total,
            "external_id": request.order_id,
            "operator_name": request.operator_name,
        }

    async def _receipt(self, device_id: str, path: str, request: ReceiptRequest) -> Dict[str, Any]:
        data = await self._request(device_id, "POST", path, self.build_receipt_payload(request))
        return {
            "receipt_id": data.get("receipt_id"),
            "fiscal_number": data.get("fiscal_number"),
            "fiscal_sign": data.get("fiscal_sign"),
            "qr_code_url": data.get("qr_code_url"),
            "receipt_url": data.get("receipt_url"),
            "timestamp": data.get("timestamp"),
        }

    # PUBLIC_INTERFACE
    async def create_sale_receipt(self, device_id: str, request: ReceiptRequest) -> Dict[str, Any]:
        logger.info("Creating sale receipt for device %s", device_id)
        return await self._receipt(device_id, "/receipt/sale", request.model_copy(update={"type": "sale"}))

    # PUBLIC_INTERFACE
    async def create_refund_receipt(self, device_id: str, request: ReceiptRequest) -> Dict[str, Any]:
        logger.info("Creating refund receipt for device %s", device_id)
        return await self._receipt(device_id, "/receipt/refund", request.model_copy(update={"type": "refund"}))

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None


# Singleton instance
multikassa_client = MultiKassaClient()
