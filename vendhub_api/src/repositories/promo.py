from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, or_, select, update

from src.db.models.promo import PromoCode, PromoCodeRedemption
from .base import CrudRepository


class PromoCodeRepository(CrudRepository[PromoCode]):
    model = PromoCode

    async def get_by_code(self, code: str, *, for_update: bool = False) -> Optional[PromoCode]:
        stmt = select(PromoCode).where(PromoCode.code == code.upper())
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return await self.scalar_one_or_none(stmt)

    async def list_codes(
        self, *, status: Optional[str] = None, search: Optional[str] = None, limit: int = 20, offset: int = 0
    ) -> Tuple[List[PromoCode], int]:
        stmt = select(PromoCode)
        if status:
            stmt = stmt.where(PromoCode.status == status)
        if search:
            like = f"%{search}%"
            stmt = stmt.where(or_(PromoCode.code.ilike(like), PromoCode.name.ilike(like)))
        return await self.paginate(stmt.order_by(PromoCode.created_at.desc()), limit, offset)

    async def count_user_redemptions(self, promo_code_id: UUID, client_user_id: UUID) -> int:
        stmt = select(func.count(PromoCodeRedemption.id)).where(
            PromoCodeRedemption.promo_code_id == promo_code_id,
            PromoCodeRedemption.client_user_id == client_user_id,
        )
        return int((await self.execute(stmt)).scalar_one())

    async def list_redemptions(
        self, promo_code_id: UUID, *, limit: int = 20, offset: int = 0
    ) -> Tuple[List[PromoCodeRedemption], int]:
        stmt = (
            select(PromoCodeRedemption)
            .where(PromoCodeRedemption.promo_code_id == promo_code_id)
            .order_by(PromoCodeRedemption.redeemed_at.desc())
        )
        return await self.paginate(stmt, limit, offset)

    async def redemption_totals(self, promo_code_id: UUID) -> Dict[str, float]:
        stmt = select(
            func.count(PromoCodeRedemption.id),
            func.coalesce(func.sum(PromoCodeRedemption.discount_applied), 0),
            func.coalesce(func.sum(PromoCodeRedemption.loyalty_points_awarded), 0),
        ).where(PromoCodeRedemption.promo_code_id == promo_code_id)
        uses, discount, points = (await self.execute(stmt)).one()
        return {"uses": int(uses), "discount": float(discount), "points": int(points)}

    async def expire_before(self, now: datetime) -> int:
        stmt = (
            update(PromoCode)
            .where(PromoCode.status == "active", PromoCode.valid_until.is_not(None), PromoCode.valid_until < now)
            .values(status="expired")
            .execution_options(synchronize_session=False)
        )
        result = await self.execute(stmt)
        await self.commit()
        return int(result.rowcount or 0)
