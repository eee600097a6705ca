"""ReportScheduler -- Fassade über Store, Engine, Pipeline und Historie.

Das ist das eine Objekt, das ein Host (CLI, API-Server) aus einer
ReportdConfig baut. Die Kopplung zwischen ScheduleStore und CronEngine
passiert ausschließlich hier: wer über die Fassade einen Schedule
anlegt, ändert oder löscht, bekommt den passenden Timer-Zustand.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from reportd.core.errors import NotFoundError
from reportd.cron.engine import CronEngine, validate_cron_expression
from reportd.cron.store import ScheduleStore
from reportd.data import FileDataProvider
from reportd.history.index import HistoryIndex
from reportd.models import Schedule
from reportd.notify.dispatcher import NotificationDispatcher
from reportd.pipeline.executor import ExecutionPipeline
from reportd.render import HtmlReportRenderer

if TYPE_CHECKING:
    from collections.abc import Iterable

    from reportd.config import MailConfig, ReportdConfig
    from reportd.models import HistoryPage, HistoryQuery, HistoryStatistics, ReportRecord
    from reportd.pipeline.protocols import (
        DataProvider,
        MailTransport,
        PdfRenderer,
        ReportRenderer,
    )


class ReportScheduler:
    """Verdrahtet alle Komponenten und bietet die Host-Schnittstelle."""

    def __init__(
        self,
        config: ReportdConfig,
        *,
        data_provider: DataProvider | None = None,
        renderer: ReportRenderer | None = None,
        transport: MailTransport | None = None,
        pdf_renderer: PdfRenderer | None = None,
    ) -> None:
        self.config = config
        self.store = ScheduleStore(config.schedules_dir)
        self.history = HistoryIndex(
            config.history_dir,
            config.reports_dir,
            max_age_days=config.history.max_age_days,
        )
        self.dispatcher = NotificationDispatcher(
            config.reports_dir,
            config=config.mail,
            transport=transport,
            pdf_renderer=pdf_renderer,
        )
        self.pipeline = ExecutionPipeline(
            data_provider or FileDataProvider(config.data_dir),
            renderer or HtmlReportRenderer(config.reports_dir),
            self.history,
            dispatcher=self.dispatcher,
        )
        self.engine = CronEngine(
            self.store,
            self.pipeline,
            default_timezone=config.cron.default_timezone,
            misfire_grace_seconds=config.cron.misfire_grace_seconds,
        )

    # ── Lifecycle ────────────────────────────────────────────────

    async def start(self) -> None:
        await self.engine.start()

    async def stop(self) -> None:
        await self.engine.stop()

    def configure_email(self, config: MailConfig | None) -> None:
        self.dispatcher.configure(config)

    # ── Schedules ────────────────────────────────────────────────

    def _sync_timer(self, schedule: Schedule) -> None:
        if schedule.active:
            self.engine.register(schedule)
        else:
            self.engine.unregister(schedule.id)

    def create_schedule(self, schedule: Schedule | dict[str, Any]) -> str:
        """Validiert, speichert und (falls aktiv) registriert einen Schedule.

        Ohne explizite Zeitzone gilt ``config.cron.default_timezone``.

        Raises:
            ValidationError / InvalidScheduleError: Ungültige Eingabe.
            StorageError: Schreiben fehlgeschlagen.
        """
        default_tz = self.config.cron.default_timezone
        if isinstance(schedule, Schedule):
            if "timezone" not in schedule.model_fields_set:
                schedule = schedule.model_copy(update={"timezone": default_tz})
            validate_cron_expression(schedule.cron_expression, schedule.timezone)
        else:
            schedule = {**schedule}
            schedule.setdefault("timezone", default_tz)
            validate_cron_expression(
                str(schedule.get("cron_expression", "")),
                str(schedule["timezone"]),
            )
        schedule_id = self.store.create(schedule)
        stored = self.store.get(schedule_id)
        if stored is not None:
            self._sync_timer(stored)
        return schedule_id

    def update_schedule(self, schedule_id: str, patch: dict[str, Any]) -> Schedule:
        """Aktualisiert einen Schedule und gleicht seinen Timer an.

        Raises:
            NotFoundError: Unbekannte ID.
            ValidationError / InvalidScheduleError: Ungültiger Patch.
        """
        current = self.store.get(schedule_id)
        if current is None:
            raise NotFoundError(
                f"Schedule nicht gefunden: {schedule_id}",
                details={"schedule_id": schedule_id},
            )
        validate_cron_expression(
            patch.get("cron_expression", current.cron_expression),
            patch.get("timezone", current.timezone),
        )
        updated = self.store.update(schedule_id, patch)
        self._sync_timer(updated)
        return updated

    def delete_schedule(self, schedule_id: str) -> bool:
        """Meldet den Timer ab und löscht den Schedule."""
        self.engine.unregister(schedule_id)
        return self.store.delete(schedule_id)

    def get_schedule(self, schedule_id: str) -> Schedule | None:
        return self.store.get(schedule_id)

    def list_schedules(self, *, active_only: bool = False) -> list[Schedule]:
        schedules = self.store.list_active() if active_only else self.store.list()
        return sorted(schedules, key=lambda s: s.name.lower())

    async def run_now(self, schedule_id: str) -> ReportRecord:
        return await self.engine.run_now(schedule_id)

    # ── Historie ─────────────────────────────────────────────────

    def list_reports(self, query: HistoryQuery | None = None, **filters: Any) -> HistoryPage:
        return self.history.query(query, **filters)

    def get_report(self, report_id: str) -> ReportRecord | None:
        return self.history.get(report_id)

    def delete_report(self, report_id: str, *, delete_artifact: bool = False) -> bool:
        return self.history.delete(report_id, delete_artifact)

    def tag_report(self, report_id: str, tags: Iterable[str]) -> bool:
        return self.history.add_tags(report_id, tags)

    def untag_report(self, report_id: str, tags: Iterable[str]) -> bool:
        return self.history.remove_tags(report_id, tags)

    def cleanup(self, max_age_days: int, *, delete_artifacts: bool = True) -> int:
        return self.history.cleanup_old_reports(max_age_days, delete_artifacts=delete_artifacts)

    def statistics(self) -> HistoryStatistics:
        return self.history.statistics()
