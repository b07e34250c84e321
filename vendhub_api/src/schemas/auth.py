from __future__ import annotations

import re
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator

_PHONE = re.compile(r"^\+?\d{9,15}$")
_PERMISSION_CODE = re.compile(r"^[a-z_]+:[a-z_]+$")


def _clean_phone(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    compact = re.sub(r"[\s()-]", "", value)
    if not _PHONE.match(compact):
        raise ValueError("Phone must contain 9 to 15 digits, optionally prefixed with '+'")
    return compact


class TokenPair(BaseModel):
    """Bearer tokens issued on login, registration and refresh."""
    token_type: str = Field("bearer", description="Always 'bearer'")
    access_token: str = Field(..., description="Short-lived JWT with sub, tenant_id and roles claims")
    refresh_token: str = Field(..., description="Long-lived JWT accepted only by /auth/refresh")


class RefreshRequest(BaseModel):
    refresh_token: str = Field(..., description="Refresh token from a previous TokenPair")


class RegisterRequest(BaseModel):
    """Self-registration in the tenant named by X-Tenant-ID."""
    email: EmailStr = Field(..., description="Login email, unique per tenant")
    password: str = Field(..., min_length=6, description="At least 6 characters")
    full_name: Optional[str] = Field(None, description="Display name shown to operators")
    phone: Optional[str] = Field(None, description="Phone number, e.g. +998901234567")

    @field_validator("phone")
    @classmethod
    def _phone(cls, v: Optional[str]) -> Optional[str]:
        return _clean_phone(v)


class Message(BaseModel):
    message: str = Field(...)


class UserRead(BaseModel):
    """A tenant user with role names flattened."""
    id: UUID = Field(..., description="User ID")
    email: EmailStr = Field(..., description="Login email")
    full_name: Optional[str] = Field(None)
    phone: Optional[str] = Field(None)
    is_active: bool = Field(..., description="Inactive users cannot log in")
    is_superadmin: bool = Field(..., description="Bypasses role and permission checks")
    points_balance: int = Field(0, description="Loyalty points available for order discounts")
    roles: List[str] = Field(default_factory=list, description="Role names, e.g. operator, technician")
    created_at: datetime = Field(...)
    updated_at: datetime = Field(...)

    class Config:
        from_attributes = True


class UserCreate(BaseModel):
    """User created by an administrator (operators, technicians, accountants)."""
    email: EmailStr = Field(...)
    password: str = Field(..., min_length=6)
    full_name: Optional[str] = Field(None)
    phone: Optional[str] = Field(None)
    is_active: Optional[bool] = Field(default=True)
    is_superadmin: Optional[bool] = Field(default=False)

    @field_validator("phone")
    @classmethod
    def _phone(cls, v: Optional[str]) -> Optional[str]:
        return _clean_phone(v)


class UserUpdate(BaseModel):
    """Partial update; a new password is re-hashed, points_balance corrects loyalty balances."""
    email: Optional[EmailStr] = Field(None)
    password: Optional[str] = Field(None, min_length=6)
    full_name: Optional[str] = Field(None)
    phone: Optional[str] = Field(None)
    is_active: Optional[bool] = Field(None)
    is_superadmin: Optional[bool] = Field(None)
    points_balance: Optional[int] = Field(None, ge=0)

    @field_validator("phone")
    @classmethod
    def _phone(cls, v: Optional[str]) -> Optional[str]:
        return _clean_phone(v)


class RoleRead(BaseModel):
    id: UUID = Field(..., description="Role ID")
    name: str = Field(..., description="Role name, e.g. manager")
    description: Optional[str] = Field(None)
    permissions: List[str] = Field(default_factory=list, description="Permission codes granted by the role")
    created_at: datetime = Field(...)
    updated_at: datetime = Field(...)


class RoleCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=64, description="Unique within the tenant")
    description: Optional[str] = Field(None)


class RoleUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=64)
    description: Optional[str] = Field(None)


class PermissionRead(BaseModel):
    id: UUID = Field(..., description="Permission ID")
    code: str = Field(..., description="Permission code, '<area>:<action>'")
    description: Optional[str] = Field(None)

    class Config:
        from_attributes = True


class PermissionCodes(BaseModel):
    """Permission codes to grant to or revoke from a role."""
    codes: List[str] = Field(..., min_length=1, description="Codes such as 'machines:view'")

    @field_validator("codes")
    @classmethod
    def _codes_format(cls, v: List[str]) -> List[str]:
        bad = [c for c in v if not _PERMISSION_CODE.match(c)]
        if bad:
            raise ValueError(f"Invalid permission code(s): {', '.join(bad)}")
        return v
