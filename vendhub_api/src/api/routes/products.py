from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.deps import get_tenant_session, require_roles
from src.schemas.common import Page
from src.schemas.products import (
    PriceHistoryRead,
    PriceUpdate,
    ProductCategory,
    ProductCreate,
    ProductRead,
    ProductStatus,
    ProductUpdate,
)
from src.services.products import ProductService

router = APIRouter(prefix="/products", tags=["Products"])

_view = [Depends(require_roles("admin", "manager", "operator", "accountant", "products:view", "products:manage"))]
_manage = [Depends(require_roles("admin", "manager", "products:manage"))]


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=Page[ProductRead],
    summary="List products",
    description="Catalog products filtered by category, status and a search term on name, SKU or barcode.",
    dependencies=_view,
)
async def list_products(
    session: AsyncSession = Depends(get_tenant_session),
    category: Optional[ProductCategory] = Query(None),
    status_: Optional[ProductStatus] = Query(None, alias="status"),
    search: Optional[str] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
) -> Page[ProductRead]:
    items, total = await ProductService(session).list_products(
        category=category.value if category else None,
        status=status_.value if status_ else None,
        search=search,
        limit=limit,
        offset=offset,
    )
    return Page[ProductRead](items=[ProductRead.model_validate(p) for p in items], total=total, limit=limit, offset=offset)


# PUBLIC_INTERFACE
@router.post("", response_model=ProductRead, status_code=status.HTTP_201_CREATED, summary="Create product")
async def create_product(
    payload: ProductCreate,
    session: AsyncSession = Depends(get_tenant_session),
    user=Depends(require_roles("admin", "manager", "products:manage")),
) -> ProductRead:
    return ProductRead.model_validate(await ProductService(session).create(payload, user.id))


# PUBLIC_INTERFACE
@router.get("/barcode/{barcode}", response_model=ProductRead, summary="Find product by barcode", dependencies=_view)
async def get_by_barcode(barcode: str, session: AsyncSession = Depends(get_tenant_session)) -> ProductRead:
    return ProductRead.model_validate(await ProductService(session).get_by_barcode(barcode))


# PUBLIC_INTERFACE
@router.get("/{product_id}", response_model=ProductRead, summary="Get product", dependencies=_view)
async def get_product(product_id: UUID = Path(...), session: AsyncSession = Depends(get_tenant_session)) -> ProductRead:
    return ProductRead.model_validate(await ProductService(session).get(product_id))


# PUBLIC_INTERFACE
@router.patch("/{product_id}", response_model=ProductRead, summary="Update product", dependencies=_manage)
async def update_product(
    payload: ProductUpdate,
    product_id: UUID = Path(...),
    session: AsyncSession = Depends(get_tenant_session),
) -> ProductRead:
    return ProductRead.model_validate(await ProductService(session).update(product_id, payload))


# PUBLIC_INTERFACE
@router.delete("/{product_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete product", dependencies=_manage)
async def delete_product(product_id: UUID = Path(...), session: AsyncSession = Depends(get_tenant_session)) -> None:
    await ProductService(session).delete(product_id)


# PUBLIC_INTERFACE
@router.put(
    "/{product_id}/price",
    response_model=ProductRead,
    summary="Change prices",
    description="Close the current price-history row and open a new one with the given prices.",
)
async def update_price(
    payload: PriceUpdate,
    product_id: UUID = Path(...),
    session: AsyncSession = Depends(get_tenant_session),
    user=Depends(require_roles("admin", "manager", "products:manage")),
) -> ProductRead:
    return ProductRead.model_validate(await ProductService(session).update_price(product_id, payload, user.id))


# PUBLIC_INTERFACE
@router.get("/{product_id}/price-history", response_model=List[PriceHistoryRead], summary="Price history", dependencies=_view)
async def price_history(
    product_id: UUID = Path(...), session: AsyncSession = Depends(get_tenant_session)
) -> List[PriceHistoryRead]:
    return [PriceHistoryRead.model_validate(h) for h in await ProductService(session).price_history(product_id)]
