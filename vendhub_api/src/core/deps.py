from __future__ import annotations

import logging
from typing import AsyncGenerator
from uuid import UUID

from fastapi import Depends, Header, HTTPException, Path, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.logging import tenant_id_var
from src.core.security import ACCESS_TOKEN_TYPE, decode_token
from src.db.session import get_async_session, tenant_context
from src.repositories.security import SecurityRepository

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")


# PUBLIC_INTERFACE
async def get_tenant_id(x_tenant_id: str | None = Header(default=None, alias="X-Tenant-ID")) -> UUID:
    """
    Extract and validate the tenant id from the X-Tenant-ID header.

    Raises:
        HTTPException: 400 Bad Request if header missing or invalid UUID.
    """
    if not x_tenant_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Tenant-ID header is required.",
        )
    try:
        return UUID(x_tenant_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Tenant-ID header must be a valid UUID string.",
        )


# PUBLIC_INTERFACE
async def get_tenant_session(
    tenant_id: UUID = Depends(get_tenant_id),
    session: AsyncSession = Depends(get_async_session),
) -> AsyncGenerator[AsyncSession, None]:
    """
    Yield an AsyncSession with the `app.tenant_id` GUC set for Row-Level Security,
    resetting it when the request completes.
    """
    async with tenant_context(session, tenant_id):
        yield session


# PUBLIC_INTERFACE
async def get_path_tenant_session(
    tenant_id: UUID = Path(..., description="Tenant that owns the merchant account"),
    session: AsyncSession = Depends(get_async_session),
) -> AsyncGenerator[AsyncSession, None]:
    """
    Tenant-scoped session for provider webhooks.

    Payment providers cannot send custom headers, so the tenant is part of the
    callback URL registered with the provider.
    """
    token = tenant_id_var.set(str(tenant_id))
    try:
        async with tenant_context(session, tenant_id):
            yield session
    finally:
        tenant_id_var.reset(token)


# PUBLIC_INTERFACE
async def get_session_no_tenant(
    session: AsyncSession = Depends(get_async_session),
) -> AsyncGenerator[AsyncSession, None]:
    """Yield an AsyncSession without tenant context (system-level operations)."""
    yield session


# PUBLIC_INTERFACE
async def get_current_user(
    tenant_id: UUID = Depends(get_tenant_id),
    token: str = Depends(oauth2_scheme),
    session: AsyncSession = Depends(get_tenant_session),
):
    """
    Resolve the current user from the bearer token.

    The token's tenant claim must match the X-Tenant-ID header; the user is then
    loaded through the RLS-scoped session.
    """
    try:
        payload = decode_token(token)
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    if payload.get("type", ACCESS_TOKEN_TYPE) != ACCESS_TOKEN_TYPE:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token type")

    tok_tenant = payload.get("tenant_id")
    if not tok_tenant or str(tok_tenant) != str(tenant_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Tenant mismatch")

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    repo = SecurityRepository(session)
    user = await repo.get_user_by_id(UUID(user_id))
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return user


# PUBLIC_INTERFACE
async def get_current_active_user(user=Depends(get_current_user)):
    """Ensure user is active."""
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Inactive user")
    return user


# PUBLIC_INTERFACE
def require_roles(*required: str):
    """
    Dependency factory: the current user must hold at least one of the given names.

    A name matches either a role the user holds (``admin``, ``operator``) or a
    permission code granted through one of those roles (``machines:manage``).
    Superadmins always pass.
    """

    async def _dep(user=Depends(get_current_active_user), session: AsyncSession = Depends(get_tenant_session)):
        if user.is_superadmin:
            return user
        repo = SecurityRepository(session)
        roles = await repo.list_roles_for_user(user.id)
        granted = {r.name for r in roles} | {p.code for r in roles for p in r.permissions}
        if granted.isdisjoint(required):
            logger.info("Access denied for user=%s; required one of %s", user.id, sorted(required))
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role")
        return user

    return _dep
