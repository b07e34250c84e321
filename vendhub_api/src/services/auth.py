from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import HTTPException, status
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.security import (
    REFRESH_TOKEN_TYPE,
    create_access_token,
    create_refresh_token,
    decode_token,
    get_password_hash,
    verify_password,
)
from src.db.models.security import Role, User
from src.repositories.security import SecurityRepository
from src.schemas.auth import RegisterRequest, RoleRead, TokenPair, UserCreate, UserRead, UserUpdate
from src.services.base import BaseService, bad_request, conflict, not_found

logger = logging.getLogger(__name__)

FIRST_USER_ROLE = "admin"


# PUBLIC_INTERFACE
def user_to_read(user: User) -> UserRead:
    """UserRead with role names flattened from the eagerly loaded roles."""
    return UserRead(
        id=user.id,
        email=user.email,
        full_name=user.full_name,
        phone=user.phone,
        is_active=user.is_active,
        is_superadmin=user.is_superadmin,
        points_balance=user.points_balance or 0,
        created_at=user.created_at,
        updated_at=user.updated_at,
        roles=sorted(r.name for r in user.roles),
    )


# PUBLIC_INTERFACE
def role_to_read(role: Role) -> RoleRead:
    return RoleRead(
        id=role.id,
        name=role.name,
        description=role.description,
        permissions=sorted(p.code for p in role.permissions),
        created_at=role.created_at,
        updated_at=role.updated_at,
    )


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


class AuthService(BaseService):
    """Registration and JWT issuance for one tenant."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.repo = SecurityRepository(session)

    def _issue(self, user: User, tenant_id: UUID) -> TokenPair:
        roles = sorted(r.name for r in user.roles)
        return TokenPair(
            access_token=create_access_token(subject=str(user.id), tenant_id=str(tenant_id), roles=roles),
            refresh_token=create_refresh_token(subject=str(user.id), tenant_id=str(tenant_id)),
        )

    # PUBLIC_INTERFACE
    async def register(self, payload: RegisterRequest) -> User:
        """Create a user; the tenant's first user becomes admin."""
        if await self.repo.get_user_by_email(payload.email):
            raise bad_request("User with this email already exists")
        user = await self.repo.create_user(
            email=payload.email,
            full_name=payload.full_name,
            phone=payload.phone,
            hashed_password=get_password_hash(payload.password),
        )
        if await self.repo.count_users() == 1:
            role = await self.repo.get_role_by_name(FIRST_USER_ROLE)
            if not role:
                role = await self.repo.create_role(FIRST_USER_ROLE, "Administrator")
            await self.repo.assign_role_to_user(user.id, role.id)
            logger.info("First user %s granted %s", user.id, FIRST_USER_ROLE)
        return await self.repo.reload(user)

    # PUBLIC_INTERFACE
    async def login(self, email: str, password: str, tenant_id: UUID) -> TokenPair:
        user = await self.repo.get_user_by_email(email)
        if not user or not verify_password(password, user.hashed_password):
            raise _unauthorized("Invalid credentials")
        if not user.is_active:
            raise bad_request("User is inactive")
        return self._issue(user, tenant_id)

    # PUBLIC_INTERFACE
    async def refresh(self, refresh_token: str, tenant_id: UUID) -> TokenPair:
        try:
            claims: Dict[str, Any] = decode_token(refresh_token)
        except JWTError:
            raise _unauthorized("Invalid refresh token")
        if claims.get("type") != REFRESH_TOKEN_TYPE:
            raise _unauthorized("Invalid token type")
        if str(tenant_id) != str(claims.get("tenant_id")):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Tenant mismatch")
        user = await self.repo.get_user_by_id(UUID(claims["sub"])) if claims.get("sub") else None
        if not user or not user.is_active:
            raise _unauthorized("User not found or inactive")
        return self._issue(user, tenant_id)


class UserService(BaseService):
    """Tenant user administration."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.repo = SecurityRepository(session)

    # PUBLIC_INTERFACE
    async def list_users(self, limit: int = 100, offset: int = 0) -> List[User]:
        return await self.repo.list_users(limit=limit, offset=offset)

    # PUBLIC_INTERFACE
    async def get(self, user_id: UUID) -> User:
        user = await self.repo.get_user_by_id(user_id)
        if not user:
            raise not_found("User not found")
        return user

    # PUBLIC_INTERFACE
    async def create(self, payload: UserCreate) -> User:
        if await self.repo.get_user_by_email(payload.email):
            raise bad_request("User with this email already exists")
        return await self.repo.create_user(
            email=payload.email,
            full_name=payload.full_name,
            phone=payload.phone,
            hashed_password=get_password_hash(payload.password),
            is_active=payload.is_active if payload.is_active is not None else True,
            is_superadmin=bool(payload.is_superadmin),
        )

    # PUBLIC_INTERFACE
    async def update(self, user_id: UUID, payload: UserUpdate) -> User:
        fields = payload.model_dump(exclude_unset=True, exclude={"password"})
        if payload.password:
            fields["hashed_password"] = get_password_hash(payload.password)
        user = await self.repo.update_user(user_id, **fields)
        if not user:
            raise not_found("User not found")
        return user

    # PUBLIC_INTERFACE
    async def delete(self, user_id: UUID) -> None:
        await self.get(user_id)
        await self.repo.delete_user(user_id)

    # PUBLIC_INTERFACE
    async def assign_role(self, user_id: UUID, role_id: UUID) -> User:
        user = await self.repo.get_user_by_id(user_id)
        role = await self.repo.get_role_by_id(role_id)
        if not user or not role:
            raise not_found("User or role not found")
        await self.repo.assign_role_to_user(user_id, role_id)
        return await self.repo.reload(user)

    # PUBLIC_INTERFACE
    async def remove_role(self, user_id: UUID, role_id: UUID) -> User:
        user = await self.repo.get_user_by_id(user_id)
        role = await self.repo.get_role_by_id(role_id)
        if not user or not role:
            raise not_found("User or role not found")
        await self.repo.remove_role_from_user(user_id, role_id)
        return await self.repo.reload(user)


class RoleService(BaseService):
    """Roles and the permission codes they grant."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.repo = SecurityRepository(session)

    # PUBLIC_INTERFACE
    async def list_roles(self, limit: int = 100, offset: int = 0) -> List[Role]:
        return await self.repo.list_roles(limit=limit, offset=offset)

    # PUBLIC_INTERFACE
    async def get(self, role_id: UUID) -> Role:
        role = await self.repo.get_role_by_id(role_id)
        if not role:
            raise not_found("Role not found")
        return role

    # PUBLIC_INTERFACE
    async def create(self, name: str, description: Optional[str] = None) -> Role:
        if await self.repo.get_role_by_name(name):
            raise conflict(f"Role {name} already exists")
        return await self.repo.create_role(name, description)

    # PUBLIC_INTERFACE
    async def update(self, role_id: UUID, name: Optional[str] = None, description: Optional[str] = None) -> Role:
        role = await self.get(role_id)
        if name and name != role.name and await self.repo.get_role_by_name(name):
            raise conflict(f"Role {name} already exists")
        return await self.repo.update_role(role, name=name, description=description)

    # PUBLIC_INTERFACE
    async def delete(self, role_id: UUID) -> None:
        await self.get(role_id)
        await self.repo.delete_role(role_id)

    # PUBLIC_INTERFACE
    async def grant(self, role_id: UUID, codes: List[str]) -> Role:
        """Grant permission codes, creating unknown codes on the fly."""
        role = await self.get(role_id)
        for code in codes:
            permission = await self.repo.ensure_permission(code)
            await self.repo.add_permission_to_role(role.id, permission.id)
        return await self.repo.reload(role)

    # PUBLIC_INTERFACE
    async def revoke(self, role_id: UUID, codes: List[str]) -> Role:
        role = await self.get(role_id)
        for code in codes:
            permission = await self.repo.get_permission_by_code(code)
            if permission:
                await self.repo.remove_permission_from_role(role.id, permission.id)
        return await self.repo.reload(role)

    # PUBLIC_INTERFACE
    async def list_permissions(self):
        return await self.repo.list_permissions()
