"""ExecutionPipeline: ein vollständiger Report-Lauf.

Ablauf:
  1. Datenquelle laden            (DataSourceError bricht ab)
  2. Charts formen                (unbekannte Typen: Warnung)
  3. Report rendern               (RenderError bricht ab)
  4. Post-Checks                  (nur Warnungen)
  5. HistoryIndex-Eintrag         (StorageError bricht ab)
  6. Benachrichtigung             (best-effort)

Entweder erreicht ein Lauf Schritt 5 und es existiert genau ein
ReportRecord, oder er bricht vorher ab und es existiert keiner.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from reportd.core.errors import DataSourceError, RenderError
from reportd.models import ReportRecord
from reportd.pipeline.charts import build_charts
from reportd.utils.logging import bound_context, get_logger

if TYPE_CHECKING:
    from reportd.history.index import HistoryIndex
    from reportd.models import DataSourceSpec, Schedule
    from reportd.notify.dispatcher import NotificationDispatcher
    from reportd.pipeline.protocols import DataProvider, ReportRenderer

log = get_logger(__name__)

DEFAULT_TAGS = ("scheduled",)

# Post-Check: bekommt den Artefakt-Pfad, Fehler werden nur geloggt
PostCheck = tuple[str, Callable[[Path], Awaitable[Any]]]


def default_post_checks(renderer: ReportRenderer) -> list[PostCheck]:
    """Accessibility- und Responsiveness-Prüfung des Renderers."""
    return [
        ("accessibility", renderer.test_report_accessibility),
        ("responsiveness", renderer.test_report_responsiveness),
    ]


def report_name_for(schedule: Schedule, now: datetime | None = None) -> str:
    """``<schedule_id>-<UTC-Zeitstempel>``, dateisystemtauglich."""
    ts = (now or datetime.now(UTC)).strftime("%Y-%m-%dT%H-%M-%S-%fZ")
    return f"{schedule.id}-{ts}"


class ExecutionPipeline:
    """Orchestriert einen Report-Lauf für einen Schedule."""

    def __init__(
        self,
        data_provider: DataProvider,
        renderer: ReportRenderer,
        history: HistoryIndex,
        *,
        dispatcher: NotificationDispatcher | None = None,
        post_checks: Sequence[PostCheck] | None = None,
    ) -> None:
        self._data_provider = data_provider
        self._renderer = renderer
        self._history = history
        self._dispatcher = dispatcher
        self._post_checks = list(
            default_post_checks(renderer) if post_checks is None else post_checks,
        )

    async def execute(
        self,
        schedule: Schedule,
        tags: Sequence[str] | None = None,
    ) -> ReportRecord:
        """Führt alle Schritte für ``schedule`` aus.

        Args:
            schedule: Der auszuführende Schedule (Stand zum Zeitpunkt des Aufrufs).
            tags: Tags für den ReportRecord. Default: ``["scheduled"]``.

        Returns:
            Der erzeugte ReportRecord.

        Raises:
            DataSourceError: Datenquelle fehlt, ist unlesbar oder nicht unterstützt.
            RenderError: Renderer konnte kein Artefakt erzeugen.
            StorageError: History-Eintrag konnte nicht geschrieben werden.
        """
        with bound_context(schedule_id=schedule.id):
            return await self._run(schedule, tags)

    async def _run(self, schedule: Schedule, tags: Sequence[str] | None) -> ReportRecord:
        log.info("pipeline_started", schedule_name=schedule.name)

        rows = await self._load_rows(schedule.report_config.data_source)
        charts = build_charts(rows, schedule.report_config.charts)

        report_name = report_name_for(schedule)
        try:
            artifact = Path(await self._renderer.generate_report(charts, report_name))
        except Exception as exc:
            raise RenderError(
                f"Report konnte nicht gerendert werden: {exc}",
                details={"schedule_id": schedule.id, "report_name": report_name},
            ) from exc
        log.info("report_rendered", artifact=str(artifact), charts=len(charts))

        await self._run_post_checks(artifact)

        record = ReportRecord(
            title=schedule.report_config.title,
            path=self._relative_path(artifact),
            schedule_id=schedule.id,
            schedule_name=schedule.name,
            tags=list(DEFAULT_TAGS if tags is None else tags),
        )
        self._history.add(record)

        if schedule.recipients:
            await self._notify(record, schedule)

        log.info("pipeline_finished", report_id=record.id)
        return record

    # ── Schritte ─────────────────────────────────────────────────

    async def _load_rows(self, source: DataSourceSpec | None) -> list[dict[str, Any]]:
        if source is None:
            log.debug("pipeline_no_data_source")
            return []

        if source.type != "file":
            raise DataSourceError(
                f"Nicht unterstützter Datenquellen-Typ: {source.type}",
                details={"type": source.type},
            )
        if source.file_type == "json":
            loader = self._data_provider.load_from_json
        elif source.file_type == "csv":
            loader = self._data_provider.load_from_csv
        else:
            raise DataSourceError(
                f"Nicht unterstützter Dateityp: {source.file_type}",
                details={"file_type": source.file_type},
            )

        try:
            rows = await asyncio.to_thread(loader, source.file_name)
        except DataSourceError:
            raise
        except Exception as exc:
            raise DataSourceError(
                f"Datenquelle konnte nicht geladen werden: {source.file_name}",
                details={"file_name": source.file_name, "error": str(exc)},
            ) from exc

        if not isinstance(rows, list):
            raise DataSourceError(
                f"Datenquelle liefert keine Zeilenliste: {source.file_name}",
                details={"file_name": source.file_name},
            )
        log.info("data_loaded", file_name=source.file_name, rows=len(rows))
        return rows

    async def _run_post_checks(self, artifact: Path) -> None:
        for name, check in self._post_checks:
            try:
                await check(artifact)
            except Exception as exc:
                log.warning("post_check_failed", check=name, artifact=str(artifact), error=str(exc))

    async def _notify(self, record: ReportRecord, schedule: Schedule) -> None:
        if self._dispatcher is None:
            return
        try:
            await self._dispatcher.send(record, schedule)
        except Exception:
            log.exception("notification_failed", report_id=record.id)

    def _relative_path(self, artifact: Path) -> str:
        """Pfad relativ zur Reports-Wurzel des HistoryIndex (falls möglich)."""
        try:
            return artifact.resolve().relative_to(self._history.reports_dir.resolve()).as_posix()
        except ValueError:
            return artifact.as_posix()
