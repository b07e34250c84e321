"""Unit tests for registration, login and token refresh; the repository is mocked."""

from types import SimpleNamespace
from uuid import uuid4

import pytest
from fastapi import HTTPException
from pytest_mock import MockerFixture

from src.core.security import create_access_token, create_refresh_token, decode_token, get_password_hash
from src.schemas.auth import RegisterRequest
from src.services.auth import AuthService

PASSWORD = "s3cret-pass"
PASSWORD_HASH = get_password_hash(PASSWORD)


def user(**overrides) -> SimpleNamespace:
    fields = {
        "id": uuid4(),
        "email": "operator@vendhub.uz",
        "hashed_password": PASSWORD_HASH,
        "is_active": True,
        "roles": [SimpleNamespace(name="operator")],
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


@pytest.fixture
def service(mock_session, mocker: MockerFixture, saved) -> AuthService:
    auth = AuthService(mock_session)
    mocker.patch.object(auth.repo, "reload", saved)
    return auth


@pytest.mark.unit
class TestRegister:
    async def test_first_user_becomes_admin(self, service: AuthService, mocker: MockerFixture) -> None:
        created = user(roles=[])
        mocker.patch.object(service.repo, "get_user_by_email", mocker.AsyncMock(return_value=None))
        create_user = mocker.patch.object(service.repo, "create_user", mocker.AsyncMock(return_value=created))
        mocker.patch.object(service.repo, "count_users", mocker.AsyncMock(return_value=1))
        mocker.patch.object(service.repo, "get_role_by_name", mocker.AsyncMock(return_value=None))
        admin = SimpleNamespace(id=uuid4(), name="admin")
        create_role = mocker.patch.object(service.repo, "create_role", mocker.AsyncMock(return_value=admin))
        assign = mocker.patch.object(service.repo, "assign_role_to_user", mocker.AsyncMock())

        await service.register(RegisterRequest(email="owner@vendhub.uz", password=PASSWORD))

        assert create_user.await_args.kwargs["hashed_password"] != PASSWORD
        create_role.assert_awaited_once_with("admin", "Administrator")
        assign.assert_awaited_once_with(created.id, admin.id)

    async def test_later_users_get_no_role(self, service: AuthService, mocker: MockerFixture) -> None:
        mocker.patch.object(service.repo, "get_user_by_email", mocker.AsyncMock(return_value=None))
        mocker.patch.object(service.repo, "create_user", mocker.AsyncMock(return_value=user(roles=[])))
        mocker.patch.object(service.repo, "count_users", mocker.AsyncMock(return_value=3))
        assign = mocker.patch.object(service.repo, "assign_role_to_user", mocker.AsyncMock())

        await service.register(RegisterRequest(email="second@vendhub.uz", password=PASSWORD))

        assign.assert_not_awaited()

    async def test_duplicate_email(self, service: AuthService, mocker: MockerFixture) -> None:
        mocker.patch.object(service.repo, "get_user_by_email", mocker.AsyncMock(return_value=user()))

        with pytest.raises(HTTPException) as exc_info:
            await service.register(RegisterRequest(email="operator@vendhub.uz", password=PASSWORD))

        assert exc_info.value.detail == "User with this email already exists"


@pytest.mark.unit
class TestLogin:
    async def test_issues_token_pair(self, service: AuthService, mocker: MockerFixture, tenant_id) -> None:
        account = user()
        mocker.patch.object(service.repo, "get_user_by_email", mocker.AsyncMock(return_value=account))

        tokens = await service.login(account.email, PASSWORD, tenant_id)

        access = decode_token(tokens.access_token)
        assert access["sub"] == str(account.id)
        assert access["tenant_id"] == str(tenant_id)
        assert access["roles"] == ["operator"]
        assert decode_token(tokens.refresh_token)["type"] == "refresh"

    @pytest.mark.parametrize("password", ["wrong-pass", ""])
    async def test_bad_password(self, service: AuthService, mocker: MockerFixture, tenant_id, password: str) -> None:
        mocker.patch.object(service.repo, "get_user_by_email", mocker.AsyncMock(return_value=user()))

        with pytest.raises(HTTPException) as exc_info:
            await service.login("operator@vendhub.uz", password, tenant_id)

        assert (exc_info.value.status_code, exc_info.value.detail) == (401, "Invalid credentials")

    async def test_inactive_user(self, service: AuthService, mocker: MockerFixture, tenant_id) -> None:
        mocker.patch.object(service.repo, "get_user_by_email", mocker.AsyncMock(return_value=user(is_active=False)))

        with pytest.raises(HTTPException) as exc_info:
            await service.login("operator@vendhub.uz", PASSWORD, tenant_id)

        assert exc_info.value.detail == "User is inactive"


@pytest.mark.unit
class TestRefresh:
    """A refresh token buys a fresh pair for the same tenant only."""

    async def test_rotates_pair(self, service: AuthService, mocker: MockerFixture, tenant_id) -> None:
        account = user()
        get_user = mocker.patch.object(service.repo, "get_user_by_id", mocker.AsyncMock(return_value=account))

        tokens = await service.refresh(create_refresh_token(str(account.id), str(tenant_id)), tenant_id)

        get_user.assert_awaited_once_with(account.id)
        assert decode_token(tokens.access_token)["sub"] == str(account.id)
        assert decode_token(tokens.refresh_token)["type"] == "refresh"

    async def test_access_token_rejected(self, service: AuthService, tenant_id) -> None:
        with pytest.raises(HTTPException) as exc_info:
            await service.refresh(create_access_token(str(uuid4()), str(tenant_id)), tenant_id)
        assert exc_info.value.detail == "Invalid token type"

    async def test_other_tenant(self, service: AuthService) -> None:
        token = create_refresh_token(str(uuid4()), str(uuid4()))
        with pytest.raises(HTTPException) as exc_info:
            await service.refresh(token, uuid4())
        assert exc_info.value.status_code == 403

    async def test_garbage_token(self, service: AuthService, tenant_id) -> None:
        with pytest.raises(HTTPException) as exc_info:
            await service.refresh("not-a-jwt", tenant_id)
        assert (exc_info.value.status_code, exc_info.value.detail) == (401, "Invalid refresh token")

    async def test_inactive_user(self, service: AuthService, mocker: MockerFixture, tenant_id) -> None:
        account = user(is_active=False)
        mocker.patch.object(service.repo, "get_user_by_id", mocker.AsyncMock(return_value=account))

        with pytest.raises(HTTPException) as exc_info:
            await service.refresh(create_refresh_token(str(account.id), str(tenant_id)), tenant_id)

        assert exc_info.value.detail == "User not found or inactive"
