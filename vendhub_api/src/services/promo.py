from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from src.db.models.promo import PromoCode, PromoCodeRedemption
from src.repositories.promo import PromoCodeRepository
from src.schemas.promo import (
    PromoCodeCreate,
    PromoCodeUpdate,
    PromoRedeemRequest,
    PromoStats,
    PromoValidationResult,
)
from src.services.base import BaseService, bad_request, conflict, not_found, utcnow

logger = logging.getLogger(__name__)


def _amount(value: float) -> str:
    value = float(value)
    return str(int(value)) if value.is_integer() else f"{value:.2f}"


# PUBLIC_INTERFACE
def rejection_reason(
    promo: PromoCode,
    now: datetime,
    user_redemptions: Optional[int] = None,
    order_amount: Optional[float] = None,
) -> Optional[str]:
    """
    Return why `promo` cannot be applied, or None when it can.

    Checks run in a fixed order; the first failing one wins. `user_redemptions`
    is None when the caller is anonymous, which skips the per-user limit.
    """
    if promo.status != "active":
        return f"Promo code is {promo.status}"
    if now < promo.valid_from:
        return "Promo code is not yet active"
    if promo.valid_until is not None and now > promo.valid_until:
        return "Promo code has expired"
    if promo.max_total_uses is not None and promo.current_total_uses >= promo.max_total_uses:
        return "Promo code has reached its maximum usage limit"
    if user_redemptions is not None and user_redemptions >= promo.max_uses_per_user:
        return "You have already used this promo code the maximum number of times"
    if (
        order_amount is not None
        and promo.min_order_amount is not None
        and order_amount < float(promo.min_order_amount)
    ):
        return f"Minimum order amount is {_amount(promo.min_order_amount)} UZS"
    return None


# PUBLIC_INTERFACE
def calculate_discount(promo: PromoCode, order_amount: Optional[float]) -> float:
    """Discount granted by `promo` on an order of `order_amount` UZS."""
    if promo.type == "percentage":
        if order_amount is None:
            return 0.0
        discount = order_amount * float(promo.value) / 100
        if promo.max_discount_amount is not None:
            discount = min(discount, float(promo.max_discount_amount))
        return round(discount, 2)
    if promo.type == "fixed_amount":
        return float(promo.value)
    return 0.0


# PUBLIC_INTERFACE
def loyalty_points(promo: PromoCode) -> int:
    return math.floor(float(promo.value)) if promo.type == "loyalty_bonus" else 0


class PromoService(BaseService):
    """Promo code lifecycle, validation and redemption."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.repo = PromoCodeRepository(session)

    # PUBLIC_INTERFACE
    async def create(self, payload: PromoCodeCreate, user_id: Optional[UUID] = None) -> PromoCode:
        if await self.repo.get_by_code(payload.code):
            raise conflict(f'Promo code "{payload.code}" already exists')
        promo = PromoCode(**payload.model_dump(mode="json"), status="draft", created_by_user_id=user_id)
        promo.valid_from = payload.valid_from
        promo.valid_until = payload.valid_until
        promo = await self.repo.save(promo)
        logger.info("Promo code created: %s", promo.code)
        return promo

    # PUBLIC_INTERFACE
    async def list_codes(
        self, *, status: Optional[str] = None, search: Optional[str] = None, limit: int = 20, offset: int = 0
    ) -> Tuple[List[PromoCode], int]:
        return await self.repo.list_codes(status=status, search=search, limit=limit, offset=offset)

    # PUBLIC_INTERFACE
    async def get_by_id(self, promo_id: UUID) -> PromoCode:
        promo = await self.repo.get(promo_id)
        if not promo:
            raise not_found(f"Promo code with ID {promo_id} not found")
        return promo

    # PUBLIC_INTERFACE
    async def get_by_code(self, code: str) -> PromoCode:
        promo = await self.repo.get_by_code(code)
        if not promo:
            raise not_found(f'Promo code "{code.upper()}" not found')
        return promo

    # PUBLIC_INTERFACE
    async def update(self, promo_id: UUID, payload: PromoCodeUpdate) -> PromoCode:
        promo = await self.get_by_id(promo_id)
        data = payload.model_dump(exclude_unset=True)
        new_code = data.get("code")
        if new_code and new_code != promo.code and await self.repo.get_by_code(new_code):
            raise conflict(f'Promo code "{new_code}" already exists')
        for key, value in data.items():
            setattr(promo, key, value.value if hasattr(value, "value") else value)
        return await self.repo.save(promo)

    # PUBLIC_INTERFACE
    async def validate(
        self, code: str, client_user_id: Optional[UUID] = None, order_amount: Optional[float] = None
    ) -> PromoValidationResult:
        promo = await self.repo.get_by_code(code)
        if not promo:
            return PromoValidationResult(valid=False, reason="Promo code not found")
        return await self._evaluate(promo, client_user_id, order_amount)

    async def _evaluate(
        self, promo: PromoCode, client_user_id: Optional[UUID], order_amount: Optional[float]
    ) -> PromoValidationResult:
        used = None
        if client_user_id is not None:
            used = await self.repo.count_user_redemptions(promo.id, client_user_id)
        reason = rejection_reason(promo, utcnow(), used, order_amount)
        if reason:
            return PromoValidationResult(valid=False, reason=reason, promo_code_id=promo.id, type=promo.type)
        return PromoValidationResult(
            valid=True,
            discount_amount=calculate_discount(promo, order_amount),
            promo_code_id=promo.id,
            type=promo.type,
        )

    # PUBLIC_INTERFACE
    async def calculate_discount(self, code: str, order_amount: Optional[float]) -> float:
        return calculate_discount(await self.get_by_code(code), order_amount)

    # PUBLIC_INTERFACE
    async def redeem(self, payload: PromoRedeemRequest) -> PromoCodeRedemption:
        # Usage limits are read from the locked row
        promo = await self.repo.get_by_code(payload.code, for_update=True)
        if not promo:
            raise bad_request("Promo code not found")
        result = await self._evaluate(promo, payload.client_user_id, payload.order_amount)
        if not result.valid:
            raise bad_request(result.reason or "Invalid promo code")

        redemption = PromoCodeRedemption(
            promo_code_id=promo.id,
            client_user_id=payload.client_user_id,
            order_id=payload.order_id,
            discount_applied=result.discount_amount or 0,
            loyalty_points_awarded=loyalty_points(promo),
            order_amount=payload.order_amount,
        )
        await self.repo.add(redemption)
        promo.current_total_uses = (promo.current_total_uses or 0) + 1
        await self.repo.commit()
        logger.info("Promo code %s redeemed by %s", promo.code, payload.client_user_id)
        return await self.repo.reload(redemption)

    # PUBLIC_INTERFACE
    async def deactivate(self, promo_id: UUID) -> PromoCode:
        promo = await self.get_by_id(promo_id)
        if promo.status == "expired":
            raise bad_request("Cannot deactivate an expired promo code")
        promo.status = "paused"
        return await self.repo.save(promo)

    # PUBLIC_INTERFACE
    async def stats(self, promo_id: UUID) -> PromoStats:
        await self.get_by_id(promo_id)
        totals = await self.repo.redemption_totals(promo_id)
        uses = totals["uses"]
        return PromoStats(
            total_uses=uses,
            total_discount_given=totals["discount"],
            total_loyalty_points_awarded=totals["points"],
            average_discount=round(totals["discount"] / uses, 2) if uses else 0,
        )

    # PUBLIC_INTERFACE
    async def redemptions(self, promo_id: UUID, limit: int = 20, offset: int = 0) -> Tuple[List[PromoCodeRedemption], int]:
        await self.get_by_id(promo_id)
        return await self.repo.list_redemptions(promo_id, limit=limit, offset=offset)

    # PUBLIC_INTERFACE
    async def expire_codes(self) -> int:
        """Scheduled job: active codes past valid_until become expired."""
        count = await self.repo.expire_before(utcnow())
        if count:
            logger.info("Expired %d promo codes", count)
        return count
