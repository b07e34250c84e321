"""Unit tests for the scheduled jobs runner."""

from contextlib import asynccontextmanager
from uuid import uuid4

import pytest
from pytest_mock import MockerFixture
from sqlalchemy.exc import OperationalError

from src import jobs


@pytest.fixture
def sessions(mocker: MockerFixture, mock_session):
    """Replace tenant_session with one that records the tenant of every session opened."""
    opened = []

    @asynccontextmanager
    async def fake_tenant_session(tenant_id):
        opened.append(tenant_id)
        yield mock_session

    mocker.patch.object(jobs, "tenant_session", fake_tenant_session)
    return opened


@pytest.mark.unit
class TestRunForTenant:
    """Each job gets its own tenant session and failures stay isolated."""

    async def test_runs_each_job_in_its_own_session(self, mocker: MockerFixture, sessions) -> None:
        tenant = uuid4()
        mocker.patch.dict(
            jobs.JOBS,
            {"promo-expire": mocker.AsyncMock(return_value=3), "sla": mocker.AsyncMock(return_value=0)},
        )

        results = await jobs.run_for_tenant(tenant, ["promo-expire", "sla"])

        assert results == {"promo-expire": 3, "sla": 0}
        assert sessions == [tenant, tenant]

    async def test_failing_job_is_recorded(self, mocker: MockerFixture, sessions) -> None:
        broken = mocker.AsyncMock(side_effect=OperationalError("UPDATE", {}, Exception("db down")))
        healthy = mocker.AsyncMock(return_value=2)
        mocker.patch.dict(jobs.JOBS, {"sla": broken, "fiscal-queue": healthy})

        results = await jobs.run_for_tenant(uuid4(), ["sla", "fiscal-queue"])

        assert results == {"sla": -1, "fiscal-queue": 2}
        healthy.assert_awaited_once()


@pytest.mark.unit
class TestRunJobs:
    async def test_defaults_to_all_jobs_and_active_tenants(self, mocker: MockerFixture) -> None:
        tenants = [uuid4(), uuid4()]
        mocker.patch.object(jobs, "list_tenant_ids", mocker.AsyncMock(return_value=tenants))
        run = mocker.patch.object(jobs, "run_for_tenant", mocker.AsyncMock(return_value={}))

        summary = await jobs.run_jobs()

        assert set(summary) == {str(t) for t in tenants}
        assert run.await_args_list[0].args == (tenants[0], list(jobs.JOBS))

    async def test_explicit_tenants_skip_lookup(self, mocker: MockerFixture) -> None:
        lookup = mocker.patch.object(jobs, "list_tenant_ids", mocker.AsyncMock())
        mocker.patch.object(jobs, "run_for_tenant", mocker.AsyncMock(return_value={"sla": 1}))

        summary = await jobs.run_jobs(["sla"], [uuid4()])

        lookup.assert_not_awaited()
        assert list(summary.values()) == [{"sla": 1}]


@pytest.mark.unit
class TestCli:
    def test_parser(self) -> None:
        tenant = uuid4()
        args = jobs.build_parser().parse_args(["sla", "fiscal-queue", "--tenant", str(tenant)])
        assert args.jobs == ["sla", "fiscal-queue"]
        assert args.tenants == [tenant]

    def test_unknown_job(self, mocker: MockerFixture) -> None:
        run = mocker.patch.object(jobs, "run_jobs")
        with pytest.raises(SystemExit) as exc_info:
            jobs.main(["defrost"])
        assert exc_info.value.code == 2
        run.assert_not_called()
