"""
Database package: declarative base, configuration, engine/session management
and tenant context helpers.
"""

from .base import Base
from .config import get_settings, Settings
from .session import (
    get_engine,
    get_async_session,
    get_session_maker,
    set_current_tenant,
    tenant_context,
    tenant_session,
)

# Register all mapped classes with Base.metadata.
from . import models as models  # noqa: F401

__all__ = [
    "Base",
    "Settings",
    "get_settings",
    "get_engine",
    "get_async_session",
    "get_session_maker",
    "set_current_tenant",
    "tenant_context",
    "tenant_session",
    "models",
]
