from __future__ import annotations

import logging
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from src.db.models.products import Product, ProductPriceHistory
from src.repositories.products import ProductRepository
from src.schemas.products import PriceUpdate, ProductCreate, ProductUpdate
from src.services.base import BaseService, bad_request, conflict, not_found, utcnow

logger = logging.getLogger(__name__)


class ProductService(BaseService):
    """Product catalog with price history."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.repo = ProductRepository(session)

    # PUBLIC_INTERFACE
    async def create(self, payload: ProductCreate, user_id: Optional[UUID] = None) -> Product:
        if await self.repo.get_by_sku(payload.sku):
            raise conflict(f"Product with SKU {payload.sku} already exists")
        product = Product(**payload.model_dump(mode="json"))
        await self.repo.add(product)
        await self.repo.flush()
        if payload.purchase_price is not None or payload.selling_price is not None:
            await self.repo.add(
                ProductPriceHistory(
                    product_id=product.id,
                    purchase_price=payload.purchase_price,
                    selling_price=payload.selling_price,
                    effective_from=utcnow(),
                    change_reason="Initial price",
                    changed_by_user_id=user_id,
                )
            )
        await self.repo.commit()
        logger.info("Product created: %s (%s)", product.sku, product.id)
        return await self.repo.reload(product)

    # PUBLIC_INTERFACE
    async def list_products(
        self,
        *,
        category: Optional[str] = None,
        status: Optional[str] = None,
        search: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[List[Product], int]:
        return await self.repo.list_products(category=category, status=status, search=search, limit=limit, offset=offset)

    # PUBLIC_INTERFACE
    async def get(self, product_id: UUID) -> Product:
        product = await self.repo.get(product_id)
        if not product:
            raise not_found(f"Product with ID {product_id} not found")
        return product

    # PUBLIC_INTERFACE
    async def get_by_barcode(self, barcode: str) -> Product:
        product = await self.repo.get_by_barcode(barcode)
        if not product:
            raise not_found(f"Product with barcode {barcode} not found")
        return product

    # PUBLIC_INTERFACE
    async def update(self, product_id: UUID, payload: ProductUpdate) -> Product:
        product = await self.get(product_id)
        data = payload.model_dump(exclude_unset=True, mode="json")
        new_sku = data.get("sku")
        if new_sku and new_sku != product.sku and await self.repo.get_by_sku(new_sku):
            raise conflict(f"Product with SKU {new_sku} already exists")
        for key, value in data.items():
            setattr(product, key, value)
        return await self.repo.save(product)

    # PUBLIC_INTERFACE
    async def delete(self, product_id: UUID) -> None:
        await self.repo.remove(await self.get(product_id))

    # PUBLIC_INTERFACE
    async def update_price(self, product_id: UUID, payload: PriceUpdate, user_id: Optional[UUID] = None) -> Product:
        """
        Change purchase and/or selling price.

        The open price-history row is closed and a new one opened, so the
        history always has exactly one row with effective_to = NULL.
        """
        if payload.purchase_price is None and payload.selling_price is None:
            raise bad_request("At least one of purchase_price or selling_price must be provided")
        product = await self.get(product_id)
        now = utcnow()
        current = await self.repo.get_open_price(product_id)
        if current:
            current.effective_to = now

        if payload.purchase_price is not None:
            product.purchase_price = payload.purchase_price
        if payload.selling_price is not None:
            product.selling_price = payload.selling_price

        await self.repo.add(
            ProductPriceHistory(
                product_id=product_id,
                purchase_price=product.purchase_price,
                selling_price=product.selling_price,
                effective_from=now,
                change_reason=payload.change_reason,
                changed_by_user_id=user_id,
            )
        )
        await self.repo.commit()
        logger.info("Price updated for product %s", product_id)
        return await self.repo.reload(product)

    # PUBLIC_INTERFACE
    async def price_history(self, product_id: UUID) -> List[ProductPriceHistory]:
        await self.get(product_id)
        return await self.repo.price_history(product_id)
