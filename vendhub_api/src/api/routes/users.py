from __future__ import annotations

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.deps import get_tenant_session, require_roles
from src.schemas.auth import UserCreate, UserRead, UserUpdate
from src.services.auth import UserService, user_to_read

router = APIRouter(prefix="/admin/users", tags=["Users"])

_manage = [Depends(require_roles("admin", "users:manage"))]


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=List[UserRead],
    summary="List users",
    description="List users of the current tenant, newest first.",
    dependencies=[Depends(require_roles("admin", "users:view", "users:manage"))],
)
async def list_users(
    session: AsyncSession = Depends(get_tenant_session),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
) -> List[UserRead]:
    return [user_to_read(u) for u in await UserService(session).list_users(limit=limit, offset=offset)]


# PUBLIC_INTERFACE
@router.post("", response_model=UserRead, status_code=status.HTTP_201_CREATED, summary="Create user", dependencies=_manage)
async def create_user(payload: UserCreate, session: AsyncSession = Depends(get_tenant_session)) -> UserRead:
    return user_to_read(await UserService(session).create(payload))


# PUBLIC_INTERFACE
@router.get(
    "/{user_id}",
    response_model=UserRead,
    summary="Get user",
    dependencies=[Depends(require_roles("admin", "users:view", "users:manage"))],
)
async def get_user(user_id: UUID = Path(...), session: AsyncSession = Depends(get_tenant_session)) -> UserRead:
    return user_to_read(await UserService(session).get(user_id))


# PUBLIC_INTERFACE
@router.patch("/{user_id}", response_model=UserRead, summary="Update user", dependencies=_manage)
async def update_user(
    payload: UserUpdate,
    user_id: UUID = Path(...),
    session: AsyncSession = Depends(get_tenant_session),
) -> UserRead:
    return user_to_read(await UserService(session).update(user_id, payload))


# PUBLIC_INTERFACE
@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete user", dependencies=_manage)
async def delete_user(user_id: UUID = Path(...), session: AsyncSession = Depends(get_tenant_session)) -> None:
    await UserService(session).delete(user_id)


# PUBLIC_INTERFACE
@router.post("/{user_id}/roles/{role_id}", response_model=UserRead, summary="Assign role to user", dependencies=_manage)
async def assign_role(user_id: UUID, role_id: UUID, session: AsyncSession = Depends(get_tenant_session)) -> UserRead:
    return user_to_read(await UserService(session).assign_role(user_id, role_id))


# PUBLIC_INTERFACE
@router.delete("/{user_id}/roles/{role_id}", response_model=UserRead, summary="Remove role from user", dependencies=_manage)
async def remove_role(user_id: UUID, role_id: UUID, session: AsyncSession = Depends(get_tenant_session)) -> UserRead:
    return user_to_read(await UserService(session).remove_role(user_id, role_id))
