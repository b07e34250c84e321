from __future__ import annotations

import io
from datetime import date, datetime, time, timezone
from typing import List, Optional, Sequence, Tuple

import pandas as pd
from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.platypus import Paragraph, SimpleDocTemplate, Table, TableStyle
from sqlalchemy import Select, and_, case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.deps import get_tenant_session, require_roles
from src.db.models.contracts import CommissionCalculation, Contract
from src.db.models.fiscal import FiscalReceipt
from src.db.models.inventory import WarehouseInventory
from src.db.models.machines import Machine, MachineSlot
from src.db.models.orders import Order
from src.db.models.products import Product

# PUBLIC_INTERFACE
router = APIRouter(prefix="/reports", tags=["Reports"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

_FORMAT = Query("csv", description="Export format: csv | xlsx | pdf")


def _attachment(filename: str) -> dict:
    return {"Content-Disposition": f'attachment; filename="{filename}"'}


def _render_pdf(df: pd.DataFrame, title: str) -> io.BytesIO:
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer, pagesize=landscape(A4), leftMargin=18, rightMargin=18, topMargin=18, bottomMargin=18
    )
    stamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
    heading = Paragraph(f"{title} ({stamp})", getSampleStyleSheet()["Title"])

    table = Table([list(df.columns)] + df.astype(str).values.tolist(), repeatRows=1)
    table.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (-1, 0), colors.lightgrey),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("FONTSIZE", (0, 0), (-1, -1), 7),
                ("ALIGN", (0, 0), (-1, -1), "LEFT"),
                ("GRID", (0, 0), (-1, -1), 0.25, colors.grey),
            ]
        )
    )
    doc.build([heading, table])
    buffer.seek(0)
    return buffer


def _export_dataframe(df: pd.DataFrame, filename_base: str, export_format: str) -> StreamingResponse:
    """
    Stream a DataFrame as an attachment.

    csv is the fallback for unknown formats; xlsx is written with openpyxl and
    pdf rendered as a single reportlab table.
    """
    export_format = (export_format or "csv").lower()
    if export_format in ("xlsx", "excel"):
        buffer = io.BytesIO()
        with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
            df.to_excel(writer, index=False, sheet_name="Report")
        buffer.seek(0)
        return StreamingResponse(buffer, media_type=XLSX_MEDIA_TYPE, headers=_attachment(f"{filename_base}.xlsx"))

    if export_format == "pdf":
        title = filename_base.replace("_", " ").title()
        return StreamingResponse(
            _render_pdf(df, title), media_type="application/pdf", headers=_attachment(f"{filename_base}.pdf")
        )

    text = io.StringIO()
    df.to_csv(text, index=False)
    text.seek(0)
    return StreamingResponse(text, media_type="text/csv", headers=_attachment(f"{filename_base}.csv"))


def _day_bounds(date_from: Optional[date], date_to: Optional[date]) -> Tuple[Optional[datetime], Optional[datetime]]:
    """Inclusive UTC bounds for a date range filter."""
    start = datetime.combine(date_from, time.min, tzinfo=timezone.utc) if date_from else None
    end = datetime.combine(date_to, time.max, tzinfo=timezone.utc) if date_to else None
    return start, end


async def _fetch_all(session: AsyncSession, stmt: Select) -> Sequence:
    return list((await session.execute(stmt)).all())


def _frame(rows: Sequence, columns: List[str]) -> pd.DataFrame:
    return pd.DataFrame([tuple(r) for r in rows], columns=columns)


# PUBLIC_INTERFACE
@router.get(
    "/sales",
    summary="Sales report",
    description="Paid orders in the date range.",
    response_description="File stream (CSV/XLSX/PDF)",
    dependencies=[Depends(require_roles("admin", "manager", "accountant", "reports:view"))],
)
async def sales_report(
    session: AsyncSession = Depends(get_tenant_session),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    format: str = _FORMAT,
):
    start, end = _day_bounds(date_from, date_to)
    stmt = (
        select(
            Order.order_number,
            Machine.machine_number,
            Order.status,
            Order.payment_method,
            Order.subtotal_amount,
            Order.discount_amount,
            Order.total_amount,
            Order.created_at,
        )
        .outerjoin(Machine, Machine.id == Order.machine_id)
        .where(Order.payment_status == "paid")
        .order_by(Order.created_at)
    )
    if start:
        stmt = stmt.where(Order.created_at >= start)
    if end:
        stmt = stmt.where(Order.created_at <= end)

    df = _frame(
        await _fetch_all(session, stmt),
        ["order_number", "machine", "status", "payment_method", "subtotal", "discount", "total", "created_at"],
    )
    for column in ("subtotal", "discount", "total"):
        df[column] = df[column].astype(float)
    return _export_dataframe(df, "sales", format)


# PUBLIC_INTERFACE
@router.get(
    "/inventory",
    summary="Warehouse inventory report",
    description="Warehouse stock with available quantity, weighted average cost and valuation (available x average).",
    response_description="File stream (CSV/XLSX/PDF)",
    dependencies=[Depends(require_roles("admin", "manager", "accountant", "reports:view", "inventory:view"))],
)
async def inventory_report(session: AsyncSession = Depends(get_tenant_session), format: str = _FORMAT):
    stmt = (
        select(
            Product.sku,
            Product.name,
            WarehouseInventory.current_quantity,
            WarehouseInventory.reserved_quantity,
            WarehouseInventory.avg_purchase_price,
        )
        .join(Product, Product.id == WarehouseInventory.product_id)
        .order_by(Product.sku)
    )
    df = _frame(await _fetch_all(session, stmt), ["sku", "product", "current", "reserved", "avg_price"])
    df[["current", "reserved", "avg_price"]] = df[["current", "reserved", "avg_price"]].astype(float)
    df.insert(4, "available", df["current"] - df["reserved"])
    df["valuation"] = (df["available"] * df["avg_price"]).round(2)
    return _export_dataframe(df, "inventory", format)


# PUBLIC_INTERFACE
@router.get(
    "/machines",
    summary="Machine fleet report",
    description="Machines with status, connection status, slot count and slots needing refill.",
    response_description="File stream (CSV/XLSX/PDF)",
    dependencies=[Depends(require_roles("admin", "manager", "reports:view", "machines:view"))],
)
async def machines_report(session: AsyncSession = Depends(get_tenant_session), format: str = _FORMAT):
    needs_refill = and_(MachineSlot.capacity > 0, MachineSlot.current_quantity <= MachineSlot.min_quantity)
    stmt = (
        select(
            Machine.machine_number,
            Machine.name,
            Machine.type,
            Machine.status,
            Machine.connection_status,
            Machine.address,
            func.count(MachineSlot.id),
            func.coalesce(func.sum(case((needs_refill, 1), else_=0)), 0),
            Machine.last_ping_at,
        )
        .outerjoin(MachineSlot, MachineSlot.machine_id == Machine.id)
        .group_by(Machine.id)
        .order_by(Machine.machine_number)
    )
    df = _frame(
        await _fetch_all(session, stmt),
        [
            "machine_number",
            "name",
            "type",
            "status",
            "connection_status",
            "address",
            "slots",
            "slots_needing_refill",
            "last_ping_at",
        ],
    )
    return _export_dataframe(df, "machines", format)


# PUBLIC_INTERFACE
@router.get(
    "/commissions",
    summary="Commission report",
    description="Commission calculations with contract number, period, revenue, amount and payment status.",
    response_description="File stream (CSV/XLSX/PDF)",
    dependencies=[Depends(require_roles("admin", "manager", "accountant", "reports:view", "contracts:view"))],
)
async def commissions_report(
    session: AsyncSession = Depends(get_tenant_session),
    payment_status: Optional[str] = Query(None),
    format: str = _FORMAT,
):
    stmt = (
        select(
            Contract.contract_number,
            CommissionCalculation.period_start,
            CommissionCalculation.period_end,
            CommissionCalculation.total_revenue,
            CommissionCalculation.transaction_count,
            CommissionCalculation.commission_type,
            CommissionCalculation.commission_amount,
            CommissionCalculation.payment_status,
            CommissionCalculation.payment_due_date,
            CommissionCalculation.paid_at,
        )
        .join(Contract, Contract.id == CommissionCalculation.contract_id)
        .order_by(CommissionCalculation.period_start.desc(), Contract.contract_number)
    )
    if payment_status:
        stmt = stmt.where(CommissionCalculation.payment_status == payment_status)
    df = _frame(
        await _fetch_all(session, stmt),
        [
            "contract_number",
            "period_start",
            "period_end",
            "revenue",
            "transactions",
            "commission_type",
            "amount",
            "payment_status",
            "due_date",
            "paid_at",
        ],
    )
    df[["revenue", "amount"]] = df[["revenue", "amount"]].astype(float)
    return _export_dataframe(df, "commissions", format)


# PUBLIC_INTERFACE
@router.get(
    "/fiscal-receipts",
    summary="Fiscal receipts report",
    description="Fiscal receipts created in the date range.",
    response_description="File stream (CSV/XLSX/PDF)",
    dependencies=[Depends(require_roles("admin", "accountant", "reports:view", "fiscal:view"))],
)
async def fiscal_receipts_report(
    session: AsyncSession = Depends(get_tenant_session),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    format: str = _FORMAT,
):
    start, end = _day_bounds(date_from, date_to)
    stmt = select(
        FiscalReceipt.created_at,
        FiscalReceipt.type,
        FiscalReceipt.status,
        FiscalReceipt.order_id,
        FiscalReceipt.total,
        FiscalReceipt.vat_total,
        FiscalReceipt.fiscal_number,
        FiscalReceipt.fiscalized_at,
    ).order_by(FiscalReceipt.created_at)
    if start:
        stmt = stmt.where(FiscalReceipt.created_at >= start)
    if end:
        stmt = stmt.where(FiscalReceipt.created_at <= end)
    df = _frame(
        await _fetch_all(session, stmt),
        ["created_at", "type", "status", "order_id", "total", "vat_total", "fiscal_number", "fiscalized_at"],
    )
    df[["total", "vat_total"]] = df[["total", "vat_total"]].astype(float)
    return _export_dataframe(df, "fiscal_receipts", format)
