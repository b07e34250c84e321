"""Unit tests for PromoService validation and redemption; the repository is mocked."""

from datetime import timedelta
from types import SimpleNamespace
from typing import List
from uuid import uuid4

import pytest
from fastapi import HTTPException
from pytest_mock import MockerFixture

from src.db.models.promo import PromoCodeRedemption
from src.schemas.promo import PromoRedeemRequest
from src.services.base import utcnow
from src.services.promo import PromoService

CLIENT = uuid4()


def promo(**overrides) -> SimpleNamespace:
    now = utcnow()
    fields = {
        "id": uuid4(),
        "code": "SUMMER10",
        "status": "active",
        "type": "percentage",
        "value": 10,
        "max_discount_amount": 5000,
        "min_order_amount": None,
        "valid_from": now - timedelta(days=1),
        "valid_until": now + timedelta(days=1),
        "max_total_uses": 100,
        "current_total_uses": 3,
        "max_uses_per_user": 1,
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


@pytest.fixture
def added() -> List:
    return []


@pytest.fixture
def service(mock_session, mocker: MockerFixture, added: List, saved) -> PromoService:
    promos = PromoService(mock_session)
    mocker.patch.object(promos.repo, "add", mocker.AsyncMock(side_effect=added.append))
    mocker.patch.object(promos.repo, "reload", saved)
    mocker.patch.object(promos.repo, "count_user_redemptions", mocker.AsyncMock(return_value=0))
    return promos


def redeem_request(amount: float = 80000) -> PromoRedeemRequest:
    return PromoRedeemRequest(code="SUMMER10", client_user_id=CLIENT, order_id=uuid4(), order_amount=amount)


@pytest.mark.unit
class TestValidate:
    async def test_unknown_code(self, service: PromoService, mocker: MockerFixture) -> None:
        mocker.patch.object(service.repo, "get_by_code", mocker.AsyncMock(return_value=None))

        result = await service.validate("NOPE")

        assert result.valid is False
        assert result.reason == "Promo code not found"

    async def test_discount_is_capped(self, service: PromoService, mocker: MockerFixture) -> None:
        code = promo()
        mocker.patch.object(service.repo, "get_by_code", mocker.AsyncMock(return_value=code))

        result = await service.validate("SUMMER10", CLIENT, 80000)

        assert result.valid is True
        assert result.discount_amount == 5000
        assert result.promo_code_id == code.id
        service.repo.count_user_redemptions.assert_awaited_once_with(code.id, CLIENT)


@pytest.mark.unit
class TestRedeem:
    """Limits are checked against the row locked for the redemption."""

    async def test_reads_locked_row_only(
        self, service: PromoService, mocker: MockerFixture, added: List, mock_session
    ) -> None:
        code = promo()
        get_by_code = mocker.patch.object(service.repo, "get_by_code", mocker.AsyncMock(return_value=code))

        redemption = await service.redeem(redeem_request())

        get_by_code.assert_awaited_once_with("SUMMER10", for_update=True)
        assert code.current_total_uses == 4
        assert isinstance(redemption, PromoCodeRedemption)
        assert added == [redemption]
        assert redemption.discount_applied == 5000
        assert redemption.client_user_id == CLIENT
        mock_session.commit.assert_awaited_once()

    async def test_total_limit_reached_on_locked_row(
        self, service: PromoService, mocker: MockerFixture, added: List, mock_session
    ) -> None:
        code = promo(max_total_uses=4, current_total_uses=4)
        mocker.patch.object(service.repo, "get_by_code", mocker.AsyncMock(return_value=code))

        with pytest.raises(HTTPException) as exc_info:
            await service.redeem(redeem_request())

        assert exc_info.value.status_code == 400
        assert exc_info.value.detail == "Promo code has reached its maximum usage limit"
        assert code.current_total_uses == 4
        assert added == []
        mock_session.commit.assert_not_awaited()

    async def test_per_user_limit(self, service: PromoService, mocker: MockerFixture) -> None:
        mocker.patch.object(service.repo, "get_by_code", mocker.AsyncMock(return_value=promo()))
        service.repo.count_user_redemptions.return_value = 1

        with pytest.raises(HTTPException) as exc_info:
            await service.redeem(redeem_request())

        assert exc_info.value.detail == "You have already used this promo code the maximum number of times"

    async def test_unknown_code(self, service: PromoService, mocker: MockerFixture) -> None:
        mocker.patch.object(service.repo, "get_by_code", mocker.AsyncMock(return_value=None))

        with pytest.raises(HTTPException) as exc_info:
            await service.redeem(redeem_request())

        assert exc_info.value.status_code == 400
        assert exc_info.value.detail == "Promo code not found"

    async def test_loyalty_bonus_awards_points(self, service: PromoService, mocker: MockerFixture) -> None:
        code = promo(type="loyalty_bonus", value=250.7)
        mocker.patch.object(service.repo, "get_by_code", mocker.AsyncMock(return_value=code))

        redemption = await service.redeem(redeem_request())

        assert redemption.loyalty_points_awarded == 250
        assert redemption.discount_applied == 0
