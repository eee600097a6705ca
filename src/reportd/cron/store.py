"""Schedule-Verwaltung: Laden, Speichern, Validieren.

Jeder Schedule liegt als eigenes JSON-Dokument ``<schedules_dir>/<id>.json``
und wird bei jeder Änderung komplett und atomar ersetzt.

Der ScheduleStore kennt keine Timer. Wer einen Schedule ändert oder
löscht, muss ihn selbst bei der CronEngine neu registrieren bzw.
abmelden (siehe ``reportd.scheduler.ReportScheduler``).
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from reportd.core.errors import NotFoundError, StorageError, ValidationError
from reportd.models import Schedule, is_safe_id
from reportd.utils.fileio import atomic_write_text
from reportd.utils.logging import get_logger

log = get_logger(__name__)


def _validation_message(exc: PydanticValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err["loc"]) or "schedule"
        parts.append(f"{loc}: {err['msg']}")
    return "; ".join(parts)


class ScheduleStore:
    """Lädt und verwaltet Schedule-Definitionen aus einem Verzeichnis.

    Attributes:
        directory: Verzeichnis mit einer JSON-Datei pro Schedule.
    """

    def __init__(self, directory: Path | str) -> None:
        self.directory = Path(directory)

    # ── Pfade ────────────────────────────────────────────────────

    def _path(self, schedule_id: str) -> Path:
        if not is_safe_id(schedule_id):
            raise ValidationError(
                f"Ungültige Schedule-ID: {schedule_id!r}",
                details={"schedule_id": schedule_id},
            )
        return self.directory / f"{schedule_id}.json"

    # ── Lesen ────────────────────────────────────────────────────

    def _read(self, path: Path) -> Schedule:
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
            return Schedule.model_validate(raw)
        except (OSError, json.JSONDecodeError, PydanticValidationError) as exc:
            raise StorageError(
                f"Schedule-Datei nicht lesbar: {path.name}",
                details={"path": str(path), "error": str(exc)},
            ) from exc

    def get(self, schedule_id: str) -> Schedule | None:
        """Gibt den Schedule zurück oder None wenn er nicht existiert.

        Raises:
            StorageError: Datei existiert, ist aber nicht lesbar/valide.
        """
        path = self._path(schedule_id)
        if not path.exists():
            return None
        return self._read(path)

    def list(self) -> list[Schedule]:
        """Alle lesbaren Schedules (ungeordnet).

        Defekte Dateien werden mit Warnung übersprungen, damit ein
        einzelner kaputter Schedule nie den Engine-Start verhindert.
        """
        if not self.directory.exists():
            return []
        schedules: list[Schedule] = []
        for path in self.directory.glob("*.json"):
            try:
                schedules.append(self._read(path))
            except StorageError as exc:
                log.warning("schedule_load_skipped", file=path.name, error=exc.details.get("error"))
        return schedules

    def list_active(self) -> list[Schedule]:
        """Nur aktive Schedules."""
        return [s for s in self.list() if s.active]

    # ── Schreiben ────────────────────────────────────────────────

    def _write(self, schedule: Schedule) -> None:
        path = self._path(schedule.id)
        try:
            atomic_write_text(path, schedule.model_dump_json(indent=2))
        except OSError as exc:
            raise StorageError(
                f"Schedule konnte nicht gespeichert werden: {schedule.id}",
                details={"path": str(path), "error": str(exc)},
            ) from exc
        log.debug("schedule_saved", schedule_id=schedule.id, path=str(path))

    def create(self, schedule: Schedule | dict[str, Any]) -> str:
        """Legt einen neuen Schedule an.

        Args:
            schedule: Schedule-Modell oder Mapping mit mindestens
                ``name``, ``cron_expression`` und ``report_config``.

        Returns:
            Die (ggf. generierte) Schedule-ID.

        Raises:
            ValidationError: Pflichtfelder fehlen oder die ID existiert bereits.
            StorageError: Schreiben fehlgeschlagen.
        """
        if not isinstance(schedule, Schedule):
            try:
                schedule = Schedule.model_validate(schedule)
            except PydanticValidationError as exc:
                raise ValidationError(
                    f"Ungültiger Schedule: {_validation_message(exc)}",
                    details={"errors": exc.errors(include_url=False)},
                ) from exc

        if self._path(schedule.id).exists():
            raise ValidationError(
                f"Schedule existiert bereits: {schedule.id}",
                error_code="SCHEDULE_EXISTS",
                details={"schedule_id": schedule.id},
            )

        self._write(schedule)
        log.info("schedule_created", schedule_id=schedule.id, name=schedule.name)
        return schedule.id

    def update(self, schedule_id: str, patch: dict[str, Any]) -> Schedule:
        """Merged ``patch`` flach in den bestehenden Schedule.

        Raises:
            NotFoundError: Unbekannte ID.
            ValidationError: Patch ändert die ID oder ergibt einen ungültigen Schedule.
        """
        current = self.get(schedule_id)
        if current is None:
            raise NotFoundError(
                f"Schedule nicht gefunden: {schedule_id}",
                details={"schedule_id": schedule_id},
            )
        if "id" in patch and patch["id"] != schedule_id:
            raise ValidationError(
                "Die ID eines Schedules kann nicht geändert werden",
                details={"schedule_id": schedule_id},
            )

        merged = {**current.model_dump(), **patch}
        try:
            updated = Schedule.model_validate(merged)
        except PydanticValidationError as exc:
            raise ValidationError(
                f"Ungültiges Update: {_validation_message(exc)}",
                details={"errors": exc.errors(include_url=False)},
            ) from exc

        self._write(updated)
        log.info("schedule_updated", schedule_id=schedule_id, fields=sorted(patch))
        return updated

    def delete(self, schedule_id: str) -> bool:
        """Löscht die Schedule-Datei. Laufende Timer bleiben unberührt.

        Returns:
            True wenn der Schedule existierte und gelöscht wurde.
        """
        path = self._path(schedule_id)
        if not path.exists():
            return False
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise StorageError(
                f"Schedule konnte nicht gelöscht werden: {schedule_id}",
                details={"path": str(path), "error": str(exc)},
            ) from exc
        log.info("schedule_deleted", schedule_id=schedule_id)
        return True
