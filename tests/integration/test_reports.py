"""Integration tests for report exports; rows come from the mocked session."""

import io
from decimal import Decimal
from types import SimpleNamespace
from uuid import UUID, uuid4

import httpx
import pandas as pd
import pytest
from fastapi import FastAPI

from src.core.deps import get_current_active_user

INVENTORY_ROWS = [
    ("SKU-001", "Water 0.5L", Decimal("10"), Decimal("2"), Decimal("1500.50")),
    ("SKU-002", "Snickers", Decimal("4"), Decimal("0"), Decimal("7000")),
]


@pytest.fixture
def as_superadmin(app: FastAPI) -> None:
    app.dependency_overrides[get_current_active_user] = lambda: SimpleNamespace(
        id=uuid4(), is_active=True, is_superadmin=True
    )


@pytest.fixture
def headers(tenant_id: UUID) -> dict:
    return {"X-Tenant-ID": str(tenant_id), "Authorization": "Bearer unused"}


@pytest.mark.integration
@pytest.mark.usefixtures("as_superadmin")
class TestInventoryReport:
    """Available stock and valuation are derived from the stored quantities."""

    async def test_csv(self, client: httpx.AsyncClient, headers: dict, mock_session) -> None:
        mock_session.execute.return_value.all.return_value = INVENTORY_ROWS

        response = await client.get("/api/v1/reports/inventory", headers=headers)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert response.headers["content-disposition"] == 'attachment; filename="inventory.csv"'
        df = pd.read_csv(io.StringIO(response.text))
        assert list(df.columns) == ["sku", "product", "current", "reserved", "available", "avg_price", "valuation"]
        assert df["available"].tolist() == [8.0, 4.0]
        assert df["valuation"].tolist() == [12004.0, 28000.0]

    async def test_xlsx(self, client: httpx.AsyncClient, headers: dict, mock_session) -> None:
        mock_session.execute.return_value.all.return_value = INVENTORY_ROWS

        response = await client.get("/api/v1/reports/inventory", params={"format": "xlsx"}, headers=headers)

        assert response.headers["content-disposition"] == 'attachment; filename="inventory.xlsx"'
        df = pd.read_excel(io.BytesIO(response.content), sheet_name="Report", engine="openpyxl")
        assert df["sku"].tolist() == ["SKU-001", "SKU-002"]

    async def test_pdf(self, client: httpx.AsyncClient, headers: dict, mock_session) -> None:
        mock_session.execute.return_value.all.return_value = INVENTORY_ROWS

        response = await client.get("/api/v1/reports/inventory", params={"format": "pdf"}, headers=headers)

        assert response.headers["content-type"] == "application/pdf"
        assert response.content.startswith(b"%PDF")

    async def test_unknown_format_falls_back_to_csv(self, client: httpx.AsyncClient, headers: dict, mock_session) -> None:
        mock_session.execute.return_value.all.return_value = []

        response = await client.get("/api/v1/reports/inventory", params={"format": "docx"}, headers=headers)

        assert response.headers["content-disposition"].endswith('inventory.csv"')
        assert response.text.strip() == "sku,product,current,reserved,available,avg_price,valuation"
