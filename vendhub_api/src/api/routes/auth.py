from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.deps import get_current_active_user, get_tenant_id, get_tenant_session
from src.schemas.auth import Message, RefreshRequest, RegisterRequest, TokenPair, UserRead
from src.services.auth import AuthService, user_to_read

router = APIRouter(prefix="/auth", tags=["Auth"])


# PUBLIC_INTERFACE
@router.post(
    "/register",
    response_model=UserRead,
    summary="Register user",
    description="Create a user in the current tenant. The tenant's first user is given the 'admin' role.",
)
async def register_user(
    payload: RegisterRequest,
    session: AsyncSession = Depends(get_tenant_session),
) -> UserRead:
    """Register a new user under the tenant."""
    return user_to_read(await AuthService(session).register(payload))


# PUBLIC_INTERFACE
@router.post(
    "/login",
    response_model=TokenPair,
    summary="Login",
    description="Authenticate with the OAuth2 password form (username = email) and receive access/refresh tokens.",
)
async def login_for_tokens(
    form_data: OAuth2PasswordRequestForm = Depends(),
    tenant_id: UUID = Depends(get_tenant_id),
    session: AsyncSession = Depends(get_tenant_session),
) -> TokenPair:
    return await AuthService(session).login(form_data.username, form_data.password, tenant_id)


# PUBLIC_INTERFACE
@router.post(
    "/refresh",
    response_model=TokenPair,
    summary="Refresh access token",
    description="Issue a new token pair from a valid refresh token of the same tenant.",
)
async def refresh_token(
    payload: RefreshRequest,
    tenant_id: UUID = Depends(get_tenant_id),
    session: AsyncSession = Depends(get_tenant_session),
) -> TokenPair:
    return await AuthService(session).refresh(payload.refresh_token, tenant_id)


# PUBLIC_INTERFACE
@router.post(
    "/logout",
    response_model=Message,
    summary="Logout",
    description="Stateless logout. Clients discard their tokens; no server state is kept.",
)
async def logout() -> Message:
    return Message(message="Logged out")


# PUBLIC_INTERFACE
@router.get(
    "/me",
    response_model=UserRead,
    summary="Read current user",
    description="Return the authenticated user with role names and loyalty balance.",
)
async def read_current_user(user=Depends(get_current_active_user)) -> UserRead:
    return user_to_read(user)
