"""Fixtures that drive the ASGI app in-process with the database session mocked out."""

from collections.abc import AsyncIterator, Iterator

import httpx
import pytest
from fastapi import FastAPI
from starlette.testclient import TestClient

from src.api.main import app as vendhub_app
from src.db.session import get_async_session


@pytest.fixture
def app(mock_session) -> Iterator[FastAPI]:
    """The application with every request sharing `mock_session`; startup hooks never run."""

    async def _session():
        yield mock_session

    vendhub_app.dependency_overrides[get_async_session] = _session
    yield vendhub_app
    vendhub_app.dependency_overrides.clear()


@pytest.fixture
async def client(app: FastAPI) -> AsyncIterator[httpx.AsyncClient]:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def ws_client(app: FastAPI) -> TestClient:
    """Sync client for WebSocket routes, used without a context manager so lifespan is skipped."""
    return TestClient(app)
