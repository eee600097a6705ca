"""Tests für die ReportScheduler-Fassade (Store ↔ Engine-Kopplung, End-to-End)."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from reportd.config import CronConfig, MailConfig, ReportdConfig
from reportd.core.errors import InvalidScheduleError, NotFoundError, ValidationError
from reportd.models import Schedule
from reportd.scheduler import ReportScheduler


@pytest.fixture
def scheduler(initialized_config: ReportdConfig) -> ReportScheduler:
    return ReportScheduler(initialized_config)


def _daily(**overrides: object) -> dict:
    data: dict = {
        "name": "Daily",
        "cron_expression": "0 9 * * *",
        "report_config": {"title": "Daily"},
        "active": True,
    }
    data.update(overrides)
    return data


class TestSchedules:
    def test_create_registers_active(self, scheduler: ReportScheduler) -> None:
        schedule_id = scheduler.create_schedule(_daily())
        assert scheduler.engine.has_timer(schedule_id)
        assert scheduler.get_schedule(schedule_id).name == "Daily"

    def test_create_inactive_not_registered(self, scheduler: ReportScheduler) -> None:
        schedule_id = scheduler.create_schedule(_daily(active=False))
        assert not scheduler.engine.has_timer(schedule_id)

    def test_invalid_cron_not_persisted(self, scheduler: ReportScheduler) -> None:
        with pytest.raises(InvalidScheduleError):
            scheduler.create_schedule(_daily(cron_expression="every morning"))
        assert scheduler.list_schedules() == []

    def test_update_reregisters(self, scheduler: ReportScheduler) -> None:
        schedule_id = scheduler.create_schedule(_daily())
        scheduler.update_schedule(schedule_id, {"cron_expression": "15 7 * * 1-5"})

        assert scheduler.engine.timer_count == 1
        assert scheduler.get_schedule(schedule_id).cron_expression == "15 7 * * 1-5"

    def test_update_deactivate_unregisters(self, scheduler: ReportScheduler) -> None:
        schedule_id = scheduler.create_schedule(_daily())
        scheduler.update_schedule(schedule_id, {"active": False})
        assert not scheduler.engine.has_timer(schedule_id)

        scheduler.update_schedule(schedule_id, {"active": True})
        assert scheduler.engine.has_timer(schedule_id)

    def test_update_invalid_cron_keeps_old(self, scheduler: ReportScheduler) -> None:
        schedule_id = scheduler.create_schedule(_daily())
        with pytest.raises(InvalidScheduleError):
            scheduler.update_schedule(schedule_id, {"cron_expression": "0 0 0 0 0 0 0"})
        assert scheduler.get_schedule(schedule_id).cron_expression == "0 9 * * *"

    def test_update_unknown(self, scheduler: ReportScheduler) -> None:
        with pytest.raises(NotFoundError):
            scheduler.update_schedule("ghost", {"name": "x"})

    def test_delete_unregisters(self, scheduler: ReportScheduler) -> None:
        schedule_id = scheduler.create_schedule(_daily())
        assert scheduler.delete_schedule(schedule_id) is True
        assert not scheduler.engine.has_timer(schedule_id)
        assert scheduler.get_schedule(schedule_id) is None
        assert scheduler.delete_schedule(schedule_id) is False

    def test_list_sorted_and_filtered(self, scheduler: ReportScheduler) -> None:
        scheduler.create_schedule(_daily(name="beta"))
        scheduler.create_schedule(_daily(name="Alpha"))
        scheduler.create_schedule(_daily(name="gamma", active=False))

        assert [s.name for s in scheduler.list_schedules()] == ["Alpha", "beta", "gamma"]
        assert [s.name for s in scheduler.list_schedules(active_only=True)] == ["Alpha", "beta"]

    def test_default_timezone_from_config(self, initialized_config: ReportdConfig) -> None:
        initialized_config.cron = CronConfig(default_timezone="Europe/Berlin")
        scheduler = ReportScheduler(initialized_config)

        implicit = scheduler.create_schedule(_daily(name="implicit"))
        explicit = scheduler.create_schedule(_daily(name="explicit", timezone="America/New_York"))
        from_model = scheduler.create_schedule(Schedule(
            id="model", name="model", cron_expression="0 9 * * *",
            report_config={"title": "Model"},
        ))

        assert scheduler.get_schedule(implicit).timezone == "Europe/Berlin"
        assert scheduler.get_schedule(explicit).timezone == "America/New_York"
        assert scheduler.get_schedule(from_model).timezone == "Europe/Berlin"

    def test_default_timezone_utc(self, scheduler: ReportScheduler) -> None:
        schedule_id = scheduler.create_schedule(_daily())
        assert scheduler.get_schedule(schedule_id).timezone == "UTC"


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_registers_persisted(self, initialized_config: ReportdConfig) -> None:
        first = ReportScheduler(initialized_config)
        schedule_id = first.create_schedule(_daily())

        second = ReportScheduler(initialized_config)
        await second.start()
        try:
            assert second.engine.timer_ids == [schedule_id]
        finally:
            await second.stop()

    def test_configure_email(self, scheduler: ReportScheduler) -> None:
        assert scheduler.dispatcher.configured is False
        scheduler.configure_email(MailConfig(enabled=True, sender="r@example.com"))
        assert scheduler.dispatcher.configured is True
        scheduler.configure_email(None)
        assert scheduler.dispatcher.configured is False


class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_create_run_query_cleanup_delete(self, scheduler: ReportScheduler) -> None:
        schedule_id = scheduler.create_schedule(_daily())

        record = await scheduler.run_now(schedule_id)

        page = scheduler.list_reports(schedule_id=schedule_id)
        assert page.total == 1
        assert page.reports[0].title == "Daily"
        assert page.reports[0].tags == ["scheduled", "manual-run"]

        artifact = scheduler.config.reports_dir / record.path
        assert (artifact / "index.html").is_file()

        assert scheduler.cleanup(0) == 0
        assert scheduler.get_report(record.id) is not None

        assert scheduler.delete_report(record.id, delete_artifact=True) is True
        assert scheduler.list_reports().total == 0
        assert not artifact.exists()

    @pytest.mark.asyncio
    async def test_run_now_unknown(self, scheduler: ReportScheduler) -> None:
        with pytest.raises(NotFoundError):
            await scheduler.run_now("ghost")

    @pytest.mark.asyncio
    async def test_run_with_recipients_uses_transport(self, initialized_config: ReportdConfig) -> None:
        transport = MagicMock()
        transport.send_mail = AsyncMock(return_value="delivery-1")
        initialized_config.mail = MailConfig(enabled=True, sender="r@example.com")
        scheduler = ReportScheduler(initialized_config, transport=transport)

        schedule_id = scheduler.create_schedule(_daily(recipients=["team@example.com"]))
        await scheduler.run_now(schedule_id)

        message = transport.send_mail.await_args.args[0]
        assert message["to"] == ["team@example.com"]
        assert message["subject"] == "Scheduled Report: Daily"

    @pytest.mark.asyncio
    async def test_tagging_and_statistics(self, scheduler: ReportScheduler) -> None:
        schedule_id = scheduler.create_schedule(_daily())
        record = await scheduler.run_now(schedule_id)

        assert scheduler.tag_report(record.id, ["archive"]) is True
        assert scheduler.untag_report(record.id, ["manual-run"]) is True
        assert scheduler.get_report(record.id).tags == ["scheduled", "archive"]

        stats = scheduler.statistics()
        assert stats.total_reports == 1
        assert stats.schedule_stats[schedule_id].name == "Daily"


class TestReportQueries:
    def test_invalid_filter_raises_validation_error(self, scheduler: ReportScheduler) -> None:
        with pytest.raises(ValidationError):
            scheduler.list_reports(limit=-1)
        with pytest.raises(ValidationError):
            scheduler.list_reports(offset=-5)
