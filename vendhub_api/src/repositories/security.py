from __future__ import annotations

from typing import Any, List, Optional
from uuid import UUID

from sqlalchemy import delete, func, select, update

from src.db.models.security import Permission, Role, RolePermission, User, UserRole
from .base import BaseRepository


class SecurityRepository(BaseRepository):
    """Repository for user/role/permission management within a tenant."""

    # Users
    async def get_user_by_email(self, email: str) -> Optional[User]:
        stmt = select(User).where(func.lower(User.email) == email.lower())
        return await self.scalar_one_or_none(stmt)

    async def get_user_by_id(self, user_id: UUID, *, for_update: bool = False) -> Optional[User]:
        stmt = select(User).where(User.id == user_id)
        if for_update:
            stmt = stmt.with_for_update()
        return await self.scalar_one_or_none(stmt)

    async def count_users(self) -> int:
        result = await self.execute(select(func.count(User.id)))
        return int(result.scalar_one())

    async def list_users(self, limit: int = 100, offset: int = 0) -> List[User]:
        stmt = select(User).order_by(User.created_at.desc()).offset(offset).limit(limit)
        return list(await self.scalars(stmt))

    async def create_user(
        self,
        *,
        email: str,
        full_name: Optional[str],
        hashed_password: str,
        phone: Optional[str] = None,
        is_active: bool = True,
        is_superadmin: bool = False,
    ) -> User:
        user = User(
            email=email,
            full_name=full_name,
            phone=phone,
            hashed_password=hashed_password,
            is_active=is_active,
            is_superadmin=is_superadmin,
        )
        return await self.save(user)

    async def update_user(self, user_id: UUID, **fields: Any) -> Optional[User]:
        """Apply the non-None fields; returns None when the user does not exist."""
        values = {k: v for k, v in fields.items() if v is not None}
        if values:
            stmt = (
                update(User)
                .where(User.id == user_id)
                .values(**values)
                .execution_options(synchronize_session="fetch")
            )
            await self.execute(stmt)
            await self.commit()
        user = await self.get_user_by_id(user_id)
        return await self.reload(user) if user else None

    async def delete_user(self, user_id: UUID) -> None:
        await self.execute(delete(User).where(User.id == user_id))
        await self.commit()

    async def list_roles_for_user(self, user_id: UUID) -> List[Role]:
        stmt = (
            select(Role)
            .join(UserRole, Role.id == UserRole.role_id)
            .where(UserRole.user_id == user_id)
            .order_by(Role.name)
        )
        return list(await self.scalars(stmt))

    # Roles
    async def list_roles(self, limit: int = 100, offset: int = 0) -> List[Role]:
        stmt = select(Role).order_by(Role.name).offset(offset).limit(limit)
        return list(await self.scalars(stmt))

    async def get_role_by_id(self, role_id: UUID) -> Optional[Role]:
        return await self.scalar_one_or_none(select(Role).where(Role.id == role_id))

    async def get_role_by_name(self, name: str) -> Optional[Role]:
        return await self.scalar_one_or_none(select(Role).where(Role.name == name))

    async def create_role(self, name: str, description: Optional[str] = None) -> Role:
        return await self.save(Role(name=name, description=description))

    async def update_role(self, role: Role, *, name: Optional[str] = None, description: Optional[str] = None) -> Role:
        if name is not None:
            role.name = name
        if description is not None:
            role.description = description
        return await self.save(role)

    async def delete_role(self, role_id: UUID) -> None:
        await self.execute(delete(Role).where(Role.id == role_id))
        await self.commit()

    # Permissions
    async def list_permissions(self) -> List[Permission]:
        return list(await self.scalars(select(Permission).order_by(Permission.code)))

    async def get_permission_by_code(self, code: str) -> Optional[Permission]:
        return await self.scalar_one_or_none(select(Permission).where(Permission.code == code))

    async def ensure_permission(self, code: str, description: Optional[str] = None) -> Permission:
        perm = await self.get_permission_by_code(code)
        if perm:
            return perm
        return await self.save(Permission(code=code, description=description or code))

    # Associations
    async def assign_role_to_user(self, user_id: UUID, role_id: UUID) -> None:
        exists = await self.scalar_one_or_none(
            select(UserRole.id).where(UserRole.user_id == user_id, UserRole.role_id == role_id)
        )
        if exists:
            return
        await self.add(UserRole(user_id=user_id, role_id=role_id))
        await self.commit()

    async def remove_role_from_user(self, user_id: UUID, role_id: UUID) -> None:
        stmt = delete(UserRole).where(UserRole.user_id == user_id, UserRole.role_id == role_id)
        await self.execute(stmt)
        await self.commit()

    async def add_permission_to_role(self, role_id: UUID, permission_id: UUID) -> None:
        exists = await self.scalar_one_or_none(
            select(RolePermission.id).where(
                RolePermission.role_id == role_id,
                RolePermission.permission_id == permission_id,
            )
        )
        if exists:
            return
        await self.add(RolePermission(role_id=role_id, permission_id=permission_id))
        await self.commit()

    async def remove_permission_from_role(self, role_id: UUID, permission_id: UUID) -> None:
        stmt = delete(RolePermission).where(
            RolePermission.role_id == role_id,
            RolePermission.permission_id == permission_id,
        )
        await self.execute(stmt)
        await self.commit()
