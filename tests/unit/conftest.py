"""Fixtures for unit tests: repositories are mocked, no database is touched."""

import pytest
from pytest_mock import MockerFixture


@pytest.fixture
def saved(mocker: MockerFixture):
    """AsyncMock for repo.save/reload that hands back the entity it was given."""
    return mocker.AsyncMock(side_effect=lambda entity: entity)
