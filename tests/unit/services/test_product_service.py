"""Unit tests for product pricing; the repository is mocked."""

from types import SimpleNamespace
from typing import List
from uuid import uuid4

import pytest
from fastapi import HTTPException
from pytest_mock import MockerFixture

from src.db.models.products import ProductPriceHistory
from src.schemas.products import PriceUpdate
from src.services.products import ProductService


@pytest.fixture
def added() -> List:
    return []


@pytest.fixture
def service(mock_session, mocker: MockerFixture, added: List, saved) -> ProductService:
    products = ProductService(mock_session)
    mocker.patch.object(products.repo, "add", mocker.AsyncMock(side_effect=added.append))
    mocker.patch.object(products.repo, "reload", saved)
    return products


@pytest.mark.unit
class TestUpdatePrice:
    """Exactly one price-history row stays open after every change."""

    async def test_closes_open_row(self, service: ProductService, mocker: MockerFixture, added: List, mock_session) -> None:
        product = SimpleNamespace(id=uuid4(), purchase_price=8000, selling_price=12000)
        open_row = SimpleNamespace(effective_to=None)
        mocker.patch.object(service.repo, "get", mocker.AsyncMock(return_value=product))
        mocker.patch.object(service.repo, "get_open_price", mocker.AsyncMock(return_value=open_row))
        user_id = uuid4()

        await service.update_price(product.id, PriceUpdate(selling_price=13500, change_reason="Supplier price"), user_id)

        assert product.selling_price == 13500
        assert product.purchase_price == 8000
        (row,) = added
        assert isinstance(row, ProductPriceHistory)
        assert (row.purchase_price, row.selling_price, row.effective_to) == (8000, 13500, None)
        assert open_row.effective_to == row.effective_from
        assert (row.change_reason, row.changed_by_user_id) == ("Supplier price", user_id)
        mock_session.commit.assert_awaited_once()

    async def test_first_price(self, service: ProductService, mocker: MockerFixture, added: List) -> None:
        product = SimpleNamespace(id=uuid4(), purchase_price=None, selling_price=None)
        mocker.patch.object(service.repo, "get", mocker.AsyncMock(return_value=product))
        mocker.patch.object(service.repo, "get_open_price", mocker.AsyncMock(return_value=None))

        await service.update_price(product.id, PriceUpdate(purchase_price=5000))

        assert [(r.purchase_price, r.selling_price) for r in added] == [(5000, None)]

    async def test_needs_a_price(self, service: ProductService, mock_session) -> None:
        with pytest.raises(HTTPException) as exc_info:
            await service.update_price(uuid4(), PriceUpdate(change_reason="typo"))

        assert exc_info.value.detail == "At least one of purchase_price or selling_price must be provided"
        mock_session.commit.assert_not_awaited()

    async def test_unknown_product(self, service: ProductService, mocker: MockerFixture) -> None:
        mocker.patch.object(service.repo, "get", mocker.AsyncMock(return_value=None))

        with pytest.raises(HTTPException) as exc_info:
            await service.update_price(uuid4(), PriceUpdate(selling_price=1))

        assert exc_info.value.status_code == 404
