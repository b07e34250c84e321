from __future__ import annotations

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.deps import get_tenant_session, require_roles
from src.schemas.auth import PermissionCodes, PermissionRead, RoleCreate, RoleRead, RoleUpdate
from src.services.auth import RoleService, role_to_read

router = APIRouter(prefix="/admin/roles", tags=["Roles"])

_manage = [Depends(require_roles("admin", "roles:manage"))]


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=List[RoleRead],
    summary="List roles",
    description="Roles of the current tenant with the permission codes each grants.",
    dependencies=[Depends(require_roles("admin", "roles:view", "roles:manage"))],
)
async def list_roles(
    session: AsyncSession = Depends(get_tenant_session),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
) -> List[RoleRead]:
    return [role_to_read(r) for r in await RoleService(session).list_roles(limit=limit, offset=offset)]


# PUBLIC_INTERFACE
@router.get(
    "/permissions",
    response_model=List[PermissionRead],
    summary="List permission codes",
    dependencies=[Depends(require_roles("admin", "roles:view", "roles:manage"))],
)
async def list_permissions(session: AsyncSession = Depends(get_tenant_session)) -> List[PermissionRead]:
    return [PermissionRead.model_validate(p) for p in await RoleService(session).list_permissions()]


# PUBLIC_INTERFACE
@router.post("", response_model=RoleRead, status_code=status.HTTP_201_CREATED, summary="Create role", dependencies=_manage)
async def create_role(payload: RoleCreate, session: AsyncSession = Depends(get_tenant_session)) -> RoleRead:
    return role_to_read(await RoleService(session).create(payload.name, payload.description))


# PUBLIC_INTERFACE
@router.get(
    "/{role_id}",
    response_model=RoleRead,
    summary="Get role",
    dependencies=[Depends(require_roles("admin", "roles:view", "roles:manage"))],
)
async def get_role(role_id: UUID = Path(...), session: AsyncSession = Depends(get_tenant_session)) -> RoleRead:
    return role_to_read(await RoleService(session).get(role_id))


# PUBLIC_INTERFACE
@router.patch("/{role_id}", response_model=RoleRead, summary="Update role", dependencies=_manage)
async def update_role(
    payload: RoleUpdate,
    role_id: UUID = Path(...),
    session: AsyncSession = Depends(get_tenant_session),
) -> RoleRead:
    return role_to_read(await RoleService(session).update(role_id, payload.name, payload.description))


# PUBLIC_INTERFACE
@router.delete("/{role_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete role", dependencies=_manage)
async def delete_role(role_id: UUID = Path(...), session: AsyncSession = Depends(get_tenant_session)) -> None:
    await RoleService(session).delete(role_id)


# PUBLIC_INTERFACE
@router.post(
    "/{role_id}/permissions",
    response_model=RoleRead,
    summary="Grant permissions",
    description="Grant permission codes such as 'machines:manage' to the role.",
    dependencies=_manage,
)
async def grant_permissions(
    payload: PermissionCodes,
    role_id: UUID = Path(...),
    session: AsyncSession = Depends(get_tenant_session),
) -> RoleRead:
    return role_to_read(await RoleService(session).grant(role_id, payload.codes))


# PUBLIC_INTERFACE
@router.delete("/{role_id}/permissions", response_model=RoleRead, summary="Revoke permissions", dependencies=_manage)
async def revoke_permissions(
    payload: PermissionCodes,
    role_id: UUID = Path(...),
    session: AsyncSession = Depends(get_tenant_session),
) -> RoleRead:
    return role_to_read(await RoleService(session).revoke(role_id, payload.codes))
