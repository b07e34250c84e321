from __future__ import annotations

from typing import Iterable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import or_, select

from src.db.models.products import Product, ProductPriceHistory
from .base import CrudRepository


class ProductRepository(CrudRepository[Product]):
    """Product catalog and price history."""

    model = Product

    async def get_by_sku(self, sku: str) -> Optional[Product]:
        return await self.scalar_one_or_none(select(Product).where(Product.sku == sku))

    async def get_by_barcode(self, barcode: str) -> Optional[Product]:
        return await self.scalar_one_or_none(select(Product).where(Product.barcode == barcode).limit(1))

    async def get_many(self, product_ids: Iterable[UUID]) -> List[Product]:
        ids = list(set(product_ids))
        if not ids:
            return []
        return list(await self.scalars(select(Product).where(Product.id.in_(ids))))

    async def list_products(
        self,
        *,
        category: Optional[str] = None,
        status: Optional[str] = None,
        search: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[Product], int]:
        stmt = select(Product)
        if category:
            stmt = stmt.where(Product.category == category)
        if status:
            stmt = stmt.where(Product.status == status)
        if search:
            like = f"%{search}%"
            stmt = stmt.where(or_(Product.name.ilike(like), Product.sku.ilike(like), Product.barcode.ilike(like)))
        return await self.paginate(stmt.order_by(Product.name), limit, offset)

    async def get_open_price(self, product_id: UUID) -> Optional[ProductPriceHistory]:
        stmt = select(ProductPriceHistory).where(
            ProductPriceHistory.product_id == product_id,
            ProductPriceHistory.effective_to.is_(None),
        )
        return await self.scalar_one_or_none(stmt.limit(1))

    async def price_history(self, product_id: UUID) -> List[ProductPriceHistory]:
        stmt = (
            select(ProductPriceHistory)
            .where(ProductPriceHistory.product_id == product_id)
            .order_by(ProductPriceHistory.effective_from.desc())
        )
        return list(await self.scalars(stmt))
