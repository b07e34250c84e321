"""Unit tests for the maintenance workflow and scheduling helpers."""

from datetime import date, datetime, timedelta, timezone
from types import SimpleNamespace
from uuid import uuid4

import pytest
from fastapi import HTTPException
from pytest_mock import MockerFixture

from src.schemas.maintenance import CompleteWork, MaintenanceRequestUpdate, WorkLogCreate
from src.services.maintenance import (
    MaintenanceService,
    format_request_number,
    minutes_between,
    next_due_date,
    sla_due_date,
    validate_transition,
)

CREATED = datetime(2025, 5, 10, 8, 0, tzinfo=timezone.utc)


@pytest.mark.unit
class TestValidateTransition:
    """The request workflow graph."""

    @pytest.mark.parametrize(
        ("current", "new"),
        [
            ("draft", "submitted"),
            ("submitted", "approved"),
            ("submitted", "rejected"),
            ("rejected", "draft"),
            ("approved", "in_progress"),
            ("in_progress", "awaiting_parts"),
            ("awaiting_parts", "in_progress"),
            ("in_progress", "completed"),
            ("completed", "in_progress"),
            ("completed", "verified"),
        ],
    )
    def test_allowed(self, current: str, new: str) -> None:
        validate_transition(current, new)

    @pytest.mark.parametrize(
        ("current", "new"),
        [("draft", "approved"), ("verified", "in_progress"), ("cancelled", "draft"), ("completed", "cancelled")],
    )
    def test_rejected(self, current: str, new: str) -> None:
        with pytest.raises(HTTPException) as exc_info:
            validate_transition(current, new)
        assert exc_info.value.status_code == 400
        assert exc_info.value.detail == f"Invalid status transition from {current} to {new}"


@pytest.mark.unit
class TestSchedulingHelpers:
    """SLA deadlines, request numbers and recurring due dates."""

    @pytest.mark.parametrize(
        ("priority", "hours"),
        [("critical", 4), ("high", 24), ("normal", 72), ("low", 168), ("unheard-of", 72)],
    )
    def test_sla_due_date(self, priority: str, hours: int) -> None:
        assert sla_due_date(priority, CREATED) == CREATED + timedelta(hours=hours)

    def test_request_number(self) -> None:
        assert format_request_number(2025, 42) == "MNT-2025-000042"

    def test_minutes_between(self) -> None:
        assert minutes_between("09:00", "10:30") == 90
        assert minutes_between("10:00", "09:00") == -60

    @pytest.mark.parametrize(
        ("frequency", "value", "base", "expected"),
        [
            ("daily", 3, date(2025, 1, 30), date(2025, 2, 2)),
            ("weekly", 2, date(2025, 1, 1), date(2025, 1, 15)),
            ("monthly", 1, date(2025, 1, 31), date(2025, 2, 28)),
            ("quarterly", 1, date(2025, 1, 15), date(2025, 4, 15)),
            ("yearly", 1, date(2024, 2, 29), date(2025, 2, 28)),
            ("fortnightly", 1, date(2025, 1, 1), date(2025, 1, 31)),
        ],
    )
    def test_next_due_date(self, frequency: str, value: int, base: date, expected: date) -> None:
        """Month arithmetic clamps to the last day of shorter months."""
        assert next_due_date(frequency, value, base) == expected

    def test_zero_frequency_counts_as_one(self) -> None:
        assert next_due_date("daily", 0, date(2025, 1, 1)) == date(2025, 1, 2)


def request(**overrides) -> SimpleNamespace:
    fields = {"id": uuid4(), "request_number": "MNT-2025-000001", "status": "draft", "priority": "normal", "created_at": CREATED}
    fields.update(overrides)
    return SimpleNamespace(**fields)


@pytest.mark.unit
class TestMaintenanceService:
    """Guards enforced by MaintenanceService before anything is written."""

    async def test_update_only_drafts(self, mocker: MockerFixture, mock_session) -> None:
        service = MaintenanceService(mock_session)
        mocker.patch.object(service, "get", mocker.AsyncMock(return_value=request(status="submitted")))

        with pytest.raises(HTTPException) as exc_info:
            await service.update(uuid4(), MaintenanceRequestUpdate(title="New title"))

        assert exc_info.value.detail == "Can only update draft requests"

    async def test_update_recomputes_sla(self, mocker: MockerFixture, mock_session, saved) -> None:
        service = MaintenanceService(mock_session)
        mocker.patch.object(service, "get", mocker.AsyncMock(return_value=request()))
        mocker.patch.object(service.repo, "save", saved)

        updated = await service.update(uuid4(), MaintenanceRequestUpdate(priority="critical"))

        assert updated.priority == "critical"
        assert updated.sla_due_date == CREATED + timedelta(hours=4)

    async def test_work_log_end_before_start(self, mocker: MockerFixture, mock_session) -> None:
        service = MaintenanceService(mock_session)
        mocker.patch.object(service, "get", mocker.AsyncMock(return_value=request(status="in_progress")))
        add = mocker.patch.object(service.repo, "add", mocker.AsyncMock())
        payload = WorkLogCreate(work_date=date(2025, 5, 10), start_time="14:00", end_time="13:30", description="Swap board")

        with pytest.raises(HTTPException) as exc_info:
            await service.add_work_log(uuid4(), payload)

        assert exc_info.value.detail == "End time must be after start time"
        add.assert_not_awaited()

    def test_work_log_time_format(self) -> None:
        with pytest.raises(ValueError):
            WorkLogCreate(work_date=date(2025, 5, 10), start_time="9am", end_time="10:00", description="x")


def schedule(**overrides) -> SimpleNamespace:
    fields = {
        "id": uuid4(),
        "machine_id": uuid4(),
        "name": "Monthly descaling",
        "description": None,
        "maintenance_type": "preventive",
        "frequency_type": "monthly",
        "frequency_value": 1,
        "estimated_duration": 60,
        "estimated_cost": 50000.0,
        "times_executed": 0,
        "last_executed_date": None,
        "next_due_date": date(2025, 1, 1),
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


@pytest.mark.unit
class TestScheduledMaintenanceJob:
    """Auto-created requests from overdue schedules."""

    async def test_failing_schedule_is_skipped(self, mocker: MockerFixture, mock_session, saved) -> None:
        service = MaintenanceService(mock_session)
        broken, healthy = schedule(name="Broken machine"), schedule(times_executed=2)
        by_id = {broken.id: broken, healthy.id: healthy}
        mocker.patch.object(service.repo, "list_due_schedules", mocker.AsyncMock(return_value=[broken, healthy]))
        get_schedule = mocker.patch.object(
            service.repo, "get_schedule", mocker.AsyncMock(side_effect=lambda schedule_id: by_id[schedule_id])
        )
        create = mocker.patch.object(
            service,
            "create",
            mocker.AsyncMock(
                side_effect=[HTTPException(status_code=404, detail="Machine not found"), request(request_number="MNT-2025-000007")]
            ),
        )
        mocker.patch.object(service.repo, "save", saved)

        created = await service.check_scheduled_maintenance()

        assert created == 1
        assert create.await_count == 2
        assert [c.args[0] for c in get_schedule.await_args_list] == [broken.id, healthy.id]
        mock_session.rollback.assert_awaited_once()
        assert broken.times_executed == 0
        assert healthy.times_executed == 3
        assert healthy.last_executed_date is not None
        assert healthy.next_due_date > healthy.last_executed_date

    async def test_request_carries_schedule_details(self, mocker: MockerFixture, mock_session, saved) -> None:
        service = MaintenanceService(mock_session)
        due = schedule(estimated_duration=45)
        mocker.patch.object(service.repo, "list_due_schedules", mocker.AsyncMock(return_value=[due]))
        mocker.patch.object(service.repo, "get_schedule", mocker.AsyncMock(return_value=due))
        create = mocker.patch.object(service, "create", mocker.AsyncMock(return_value=request()))
        mocker.patch.object(service.repo, "save", saved)

        await service.check_scheduled_maintenance()

        payload = create.await_args.args[0]
        assert payload.title == "Scheduled: Monthly descaling"
        assert payload.machine_id == due.machine_id
        assert payload.maintenance_type.value == "preventive"
        assert payload.estimated_duration == 45
        assert create.await_args.kwargs["schedule_id"] == due.id

    async def test_sla_breaches_flagged(self, mocker: MockerFixture, mock_session) -> None:
        service = MaintenanceService(mock_session)
        late = [request(status="submitted", sla_breached=False), request(status="in_progress", sla_breached=False)]
        mocker.patch.object(service.repo, "list_sla_candidates", mocker.AsyncMock(return_value=late))

        assert await service.check_sla_breaches() == 2

        assert all(r.sla_breached for r in late)
        mock_session.commit.assert_awaited_once()

    async def test_no_sla_breaches_no_commit(self, mocker: MockerFixture, mock_session) -> None:
        service = MaintenanceService(mock_session)
        mocker.patch.object(service.repo, "list_sla_candidates", mocker.AsyncMock(return_value=[]))

        assert await service.check_sla_breaches() == 0
        mock_session.commit.assert_not_awaited()


@pytest.mark.unit
class TestMaintenanceWork:
    """Start and complete move the machine and roll up costs."""

    async def test_start_puts_machine_in_maintenance(self, mocker: MockerFixture, mock_session, saved) -> None:
        service = MaintenanceService(mock_session)
        current = request(status="approved", machine_id=uuid4())
        mocker.patch.object(service, "get", mocker.AsyncMock(return_value=current))
        mocker.patch.object(service.repo, "save", saved)
        update_status = mocker.patch.object(service.machines, "update_status", mocker.AsyncMock())

        started = await service.start(current.id)

        assert started.status == "in_progress"
        assert started.started_at is not None
        update_status.assert_awaited_once_with(current.machine_id, "maintenance")

    async def test_complete_rolls_up_costs(self, mocker: MockerFixture, mock_session, saved) -> None:
        service = MaintenanceService(mock_session)
        now = datetime.now(timezone.utc)
        current = request(
            status="in_progress",
            machine_id=uuid4(),
            started_at=now - timedelta(minutes=90),
            downtime_start=now - timedelta(minutes=120),
            sla_due_date=CREATED,
        )
        machine = SimpleNamespace(status="maintenance", last_maintenance_date=None)
        mocker.patch.object(service, "get", mocker.AsyncMock(return_value=current))
        mocker.patch.object(service.repo, "save", saved)
        mocker.patch.object(service.repo, "list_parts", mocker.AsyncMock(return_value=[SimpleNamespace(total_price=150000)]))
        mocker.patch.object(
            service.repo,
            "list_work_logs",
            mocker.AsyncMock(
                return_value=[
                    SimpleNamespace(labor_cost=50000, is_billable=True),
                    SimpleNamespace(labor_cost=9999, is_billable=False),
                ]
            ),
        )
        update_status = mocker.patch.object(service.machines, "update_status", mocker.AsyncMock(return_value=machine))
        machine_save = mocker.patch.object(service.machines.repo, "save", mocker.AsyncMock())

        done = await service.complete(current.id, CompleteWork(root_cause="Scale build-up"))

        assert done.status == "completed"
        assert done.root_cause == "Scale build-up"
        assert done.actual_duration == 90
        assert done.downtime_minutes == 120
        assert (done.parts_cost, done.labor_cost, done.total_cost) == (150000.0, 50000.0, 200000.0)
        assert done.sla_breached is True
        update_status.assert_awaited_once_with(current.machine_id, "active")
        assert machine.last_maintenance_date == done.completed_at
        machine_save.assert_awaited_once_with(machine)

    async def test_verify_failed_reopens(self, mocker: MockerFixture, mock_session, saved) -> None:
        service = MaintenanceService(mock_session)
        mocker.patch.object(service, "get", mocker.AsyncMock(return_value=request(status="completed")))
        mocker.patch.object(service.repo, "save", saved)

        reopened = await service.verify(uuid4(), uuid4(), passed=False)

        assert reopened.status == "in_progress"
