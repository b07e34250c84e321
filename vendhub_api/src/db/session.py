from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Union
from uuid import UUID

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import Session

from .config import get_settings


_ENGINE: AsyncEngine | None = None
_SESSION_MAKER: async_sessionmaker[AsyncSession] | None = None

TENANT_INFO_KEY = "tenant_id"


def _ensure_engine_initialized() -> None:
    """Lazily create the AsyncEngine and session factory on first use."""
    global _ENGINE, _SESSION_MAKER
    if _ENGINE is None:
        settings = get_settings()
        _ENGINE = create_async_engine(
            settings.async_database_url,
            echo=settings.SQL_ECHO,
            pool_size=settings.DB_POOL_SIZE,
            pool_pre_ping=True,
        )
    if _SESSION_MAKER is None:
        _SESSION_MAKER = async_sessionmaker(
            bind=_ENGINE, expire_on_commit=False, autoflush=False, autocommit=False
        )


# PUBLIC_INTERFACE
def get_engine() -> AsyncEngine:
    """Return the global AsyncEngine instance."""
    _ensure_engine_initialized()
    assert _ENGINE is not None
    return _ENGINE


# PUBLIC_INTERFACE
def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """Return the global session factory."""
    _ensure_engine_initialized()
    assert _SESSION_MAKER is not None
    return _SESSION_MAKER


# PUBLIC_INTERFACE
async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an AsyncSession suitable for FastAPI dependency injection."""
    async with get_session_maker()() as session:
        yield session


# PUBLIC_INTERFACE
async def set_current_tenant(
    session: AsyncSession, tenant_id: Union[str, UUID]
) -> None:
    """
    Set the `app.tenant_id` GUC used by the Row-Level Security policies:
      current_setting('app.tenant_id', true)
    """
    session.info[TENANT_INFO_KEY] = str(tenant_id)
    await session.execute(
        text("SELECT set_config('app.tenant_id', :tenant_id, false);"),
        {"tenant_id": str(tenant_id)},
    )


@event.listens_for(Session, "after_begin")
def _apply_tenant_on_begin(session: Session, transaction, connection) -> None:
    """
    Re-apply the tenant GUC whenever a session begins a transaction.

    A commit releases the pooled connection, so the next transaction may run on
    a connection that never saw set_current_tenant.
    """
    tenant_id = session.info.get(TENANT_INFO_KEY)
    if tenant_id:
        connection.execute(
            text("SELECT set_config('app.tenant_id', :tenant_id, false);"),
            {"tenant_id": tenant_id},
        )


# PUBLIC_INTERFACE
@asynccontextmanager
async def tenant_context(
    session: AsyncSession, tenant_id: Union[str, UUID]
) -> AsyncGenerator[AsyncSession, None]:
    """
    Set the tenant GUC for the duration of the block and clear it afterwards.

    Usage:
        async with tenant_context(session, tenant_id):
            ...  # queries are filtered by RLS
    """
    await set_current_tenant(session, tenant_id)
    try:
        yield session
    finally:
        session.info.pop(TENANT_INFO_KEY, None)
        # Uncommitted work is discarded; an empty GUC matches no policy, so the
        # connection returns to the pool locked down.
        await session.rollback()
        await session.execute(
            text("SELECT set_config('app.tenant_id', '', false);")
        )
        await session.commit()


# PUBLIC_INTERFACE
@asynccontextmanager
async def tenant_session(tenant_id: Union[str, UUID]) -> AsyncGenerator[AsyncSession, None]:
    """Open a standalone tenant-scoped session (WebSocket snapshots, background jobs)."""
    async with get_session_maker()() as session:
        async with tenant_context(session, tenant_id):
            yield session
