"""Cron-Engine: Zeitgesteuerte Report-Erzeugung.

Nutzt APScheduler 3.x (AsyncIOScheduler) um Schedules periodisch
auszuführen. Jeder Trigger startet einen unabhängigen asyncio-Task, der
die ExecutionPipeline für den Schedule durchläuft. Fehler eines Laufs
werden geloggt und verschluckt: ein fehlschlagender Lauf meldet den
Schedule nie ab.

Überlappung: Läuft für eine Schedule-ID noch ein Cron-Lauf, wird der
nächste Cron-Trigger dieser ID übersprungen. ``run_now`` umgeht diese
Sperre.
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING, Any, Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from reportd.core.errors import InvalidScheduleError, NotFoundError
from reportd.utils.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime

    from apscheduler.job import Job

    from reportd.cron.store import ScheduleStore
    from reportd.models import ReportRecord, Schedule

log = get_logger(__name__)

MANUAL_RUN_TAGS = ("scheduled", "manual-run")


class Pipeline(Protocol):
    """Was die Engine von der ExecutionPipeline braucht."""

    async def execute(
        self, schedule: Schedule, tags: Sequence[str] | None = None,
    ) -> ReportRecord: ...


_FIELDS_5 = ("minute", "hour", "day", "month", "day_of_week")
_FIELDS_6 = ("second", *_FIELDS_5)


def parse_cron_expression(expression: str) -> dict[str, str]:
    """Parst einen Cron-Ausdruck in APScheduler-kompatible Felder.

    Unterstützt:
      - 5 Felder: minute hour day month day_of_week
      - 6 Felder: second minute hour day month day_of_week

    Args:
        expression: Cron-Ausdruck (z.B. "0 9 * * 1-5").

    Returns:
        Dict mit APScheduler CronTrigger-Feldern.

    Raises:
        InvalidScheduleError: Bei falscher Feldanzahl.
    """
    parts = expression.strip().split()
    if len(parts) == 5:
        names = _FIELDS_5
    elif len(parts) == 6:
        names = _FIELDS_6
    else:
        raise InvalidScheduleError(
            f"Cron-Ausdruck muss 5 oder 6 Felder haben, hat {len(parts)}: '{expression}'",
            details={"cron_expression": expression},
        )
    return dict(zip(names, parts, strict=True))


def build_trigger(expression: str, timezone: str = "UTC") -> CronTrigger:
    """Validiert Ausdruck und Zeitzone und baut den CronTrigger.

    Raises:
        InvalidScheduleError: Ausdruck oder Zeitzone ungültig.
    """
    fields = parse_cron_expression(expression)
    try:
        tz = ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise InvalidScheduleError(
            f"Unbekannte Zeitzone: '{timezone}'",
            details={"timezone": timezone},
        ) from exc
    try:
        return CronTrigger(**fields, timezone=tz)
    except ValueError as exc:
        raise InvalidScheduleError(
            f"Ungültiger Cron-Ausdruck '{expression}': {exc}",
            details={"cron_expression": expression},
        ) from exc


def validate_cron_expression(expression: str, timezone: str = "UTC") -> None:
    """Wirft InvalidScheduleError wenn der Ausdruck nicht planbar ist."""
    build_trigger(expression, timezone)


class CronEngine:
    """Async Cron-Engine mit APScheduler-Backend.

    Verwaltet höchstens einen Timer pro Schedule-ID. Die Engine ist ein
    explizit konstruiertes Objekt; mehrere Instanzen können parallel
    existieren (z.B. in Tests).

    Attributes:
        store: ScheduleStore, aus dem ``start()`` und ``run_now()`` lesen.
        running: Ob der Scheduler läuft.
    """

    def __init__(
        self,
        store: ScheduleStore,
        pipeline: Pipeline,
        *,
        default_timezone: str = "UTC",
        misfire_grace_seconds: int = 60,
    ) -> None:
        self.store = store
        self._pipeline = pipeline
        self._default_timezone = default_timezone
        self._misfire_grace = misfire_grace_seconds
        self._scheduler = AsyncIOScheduler(timezone=default_timezone)
        self._timers: dict[str, Job] = {}
        self._in_flight: set[str] = set()
        self._tasks: set[asyncio.Task[Any]] = set()
        self.running = False

    # ── Introspektion ────────────────────────────────────────────

    @property
    def timer_ids(self) -> list[str]:
        """IDs aller Schedules mit aktivem Timer."""
        return list(self._timers)

    @property
    def timer_count(self) -> int:
        return len(self._timers)

    def has_timer(self, schedule_id: str) -> bool:
        return schedule_id in self._timers

    def is_executing(self, schedule_id: str) -> bool:
        """True solange ein Cron-Lauf dieser ID noch nicht beendet ist."""
        return schedule_id in self._in_flight

    def get_next_run_times(self) -> dict[str, datetime | None]:
        """Gibt die nächsten Ausführungszeiten aller Timer zurück.

        Returns:
            Dict: Schedule-ID → nächste Ausführungszeit (oder None).
        """
        result: dict[str, datetime | None] = {}
        for schedule_id, job in self._timers.items():
            result[schedule_id] = getattr(job, "next_run_time", None)
        return result

    # ── Lifecycle ────────────────────────────────────────────────

    async def start(self) -> None:
        """Startet den Scheduler und gleicht Timer mit dem Store ab.

        Ein ungültiger Schedule wird mit Warnung übersprungen; der Start
        bricht nie wegen eines einzelnen Schedules ab.
        """
        if self.running:
            log.warning("cron_engine_already_running")
            return

        self._scheduler.start()
        self.running = True
        self.reconcile()
        log.info("cron_engine_started", timers=self.timer_count)

    def reconcile(self) -> None:
        """Bringt die Timer-Registry in Einklang mit dem persistierten Zustand.

        Entfernt Timer, deren Schedule gelöscht oder inaktiv ist, und
        registriert jeden aktiven Schedule mit gültigem Ausdruck neu.
        """
        schedules = {s.id: s for s in self.store.list()}

        for schedule_id in list(self._timers):
            schedule = schedules.get(schedule_id)
            if schedule is None or not schedule.active:
                self.unregister(schedule_id)

        for schedule in schedules.values():
            if not schedule.active:
                continue
            try:
                self.register(schedule)
            except InvalidScheduleError as exc:
                log.warning(
                    "schedule_skipped_invalid",
                    schedule_id=schedule.id,
                    cron_expression=schedule.cron_expression,
                    error=str(exc),
                )

    async def stop(self) -> None:
        """Stoppt den Scheduler. Laufende Ausführungen werden nicht abgebrochen."""
        if not self.running:
            return
        self._scheduler.shutdown(wait=False)
        self._timers.clear()
        self._scheduler = AsyncIOScheduler(timezone=self._default_timezone)
        self.running = False
        log.info("cron_engine_stopped")

    async def wait_idle(self) -> None:
        """Wartet bis alle gerade laufenden Trigger-Tasks beendet sind."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ── Registrierung ────────────────────────────────────────────

    def register(self, schedule: Schedule) -> None:
        """Installiert den Timer für einen Schedule.

        Ein bestehender Timer derselben ID wird vorher entfernt, damit
        pro ID nie mehr als ein Timer existiert. Der Timer arbeitet mit
        dem hier übergebenen Stand des Schedules.

        Raises:
            InvalidScheduleError: Cron-Ausdruck oder Zeitzone ungültig.
        """
        trigger = build_trigger(schedule.cron_expression, schedule.timezone)

        self.unregister(schedule.id)

        job = self._scheduler.add_job(
            self._on_trigger,
            trigger=trigger,
            args=[schedule],
            id=f"reportd-{schedule.id}",
            name=schedule.name,
            replace_existing=True,
            coalesce=True,
            misfire_grace_time=self._misfire_grace,
        )
        self._timers[schedule.id] = job
        log.info(
            "schedule_registered",
            schedule_id=schedule.id,
            cron_expression=schedule.cron_expression,
            timezone=schedule.timezone,
        )

    def unregister(self, schedule_id: str) -> bool:
        """Entfernt den Timer einer ID. Idempotent.

        Laufende Ausführungen laufen zu Ende.

        Returns:
            True wenn ein Timer existierte.
        """
        job = self._timers.pop(schedule_id, None)
        if job is None:
            return False
        with contextlib.suppress(JobLookupError):
            self._scheduler.remove_job(job.id)
        log.info("schedule_unregistered", schedule_id=schedule_id)
        return True

    # ── Ausführung ───────────────────────────────────────────────

    async def _on_trigger(self, schedule: Schedule) -> None:
        """Scheduler-Callback: startet den Lauf als eigenen Task und kehrt sofort zurück.

        Muss eine Coroutine sein: der AsyncIOExecutor würde eine normale
        Funktion im Thread-Pool ausführen.
        """
        if schedule.id in self._in_flight:
            log.warning("schedule_trigger_skipped_overlap", schedule_id=schedule.id)
            return
        self._in_flight.add(schedule.id)
        task = asyncio.get_running_loop().create_task(self._execute(schedule))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _execute(self, schedule: Schedule) -> None:
        """Führt einen Cron-Lauf aus. Fehler werden geloggt, nie propagiert."""
        log.info("schedule_triggered", schedule_id=schedule.id)
        try:
            record = await self._pipeline.execute(schedule)
            log.info("schedule_run_succeeded", schedule_id=schedule.id, report_id=record.id)
        except Exception:
            log.exception("schedule_run_failed", schedule_id=schedule.id)
        finally:
            self._in_flight.discard(schedule.id)

    async def run_now(self, schedule_id: str) -> ReportRecord:
        """Führt einen Schedule sofort aus, unabhängig vom Cron-Takt.

        Im Gegensatz zu Cron-Läufen werden Fehler an den Aufrufer
        weitergereicht.

        Raises:
            NotFoundError: Unbekannte Schedule-ID.
            PipelineError / StorageError: Aus der Pipeline.
        """
        schedule = self.store.get(schedule_id)
        if schedule is None:
            raise NotFoundError(
                f"Schedule nicht gefunden: {schedule_id}",
                details={"schedule_id": schedule_id},
            )
        log.info("schedule_run_now", schedule_id=schedule_id)
        return await self._pipeline.execute(schedule, tags=list(MANUAL_RUN_TAGS))
