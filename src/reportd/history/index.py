"""Report-Historie: durchsuchbarer Katalog aller abgeschlossenen Läufe.

Der Katalog ist ein einzelnes JSON-Dokument ``<history_dir>/index.json``
der Form ``{"reports": [...]}``, neueste Einträge zuerst. Jede Änderung
ersetzt das Dokument komplett und atomar.
"""

from __future__ import annotations

import json
import shutil
from collections.abc import Iterable
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from reportd.core.errors import StorageError, ValidationError
from reportd.models import (
    HistoryPage,
    HistoryQuery,
    HistoryStatistics,
    ReportRecord,
    ScheduleStats,
)
from reportd.utils.fileio import atomic_write_text
from reportd.utils.logging import get_logger

log = get_logger(__name__)

INDEX_FILE = "index.json"


class HistoryIndex:
    """Verwaltet ReportRecords und ihre Artefakte.

    Attributes:
        history_dir: Verzeichnis mit index.json.
        reports_dir: Wurzel, relativ zu der ``ReportRecord.path`` aufgelöst wird.
        max_age_days: Automatische Bereinigung nach ``add`` (0 = aus).
    """

    def __init__(
        self,
        history_dir: Path | str,
        reports_dir: Path | str,
        *,
        max_age_days: int = 0,
    ) -> None:
        self.history_dir = Path(history_dir)
        self.reports_dir = Path(reports_dir)
        self.max_age_days = max_age_days
        self._reports: list[ReportRecord] = self._load()

    @property
    def index_path(self) -> Path:
        return self.history_dir / INDEX_FILE

    def __len__(self) -> int:
        return len(self._reports)

    # ── Persistenz ───────────────────────────────────────────────

    def _load(self) -> list[ReportRecord]:
        if not self.index_path.exists():
            return []
        try:
            raw = json.loads(self.index_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            log.error("history_index_load_failed", path=str(self.index_path), error=str(exc))
            return []

        reports: list[ReportRecord] = []
        for entry in raw.get("reports", []) if isinstance(raw, dict) else []:
            try:
                reports.append(ReportRecord.model_validate(entry))
            except PydanticValidationError as exc:
                log.warning("history_entry_skipped", entry_id=entry.get("id"), error=str(exc))
        reports.sort(key=lambda r: r.timestamp, reverse=True)
        return reports

    def _save(self, reports: list[ReportRecord]) -> None:
        """Schreibt den Katalog und übernimmt ihn erst danach in den Speicher."""
        payload = {"reports": [r.model_dump(mode="json") for r in reports]}
        try:
            atomic_write_text(self.index_path, json.dumps(payload, indent=2, ensure_ascii=False))
        except OSError as exc:
            raise StorageError(
                "History-Index konnte nicht gespeichert werden",
                error_code="HISTORY_WRITE_FAILED",
                details={"path": str(self.index_path), "error": str(exc)},
            ) from exc
        self._reports = reports

    def _find(self, report_id: str) -> int:
        for i, report in enumerate(self._reports):
            if report.id == report_id:
                return i
        return -1

    # ── Schreiben ────────────────────────────────────────────────

    def add(self, record: ReportRecord | dict[str, Any]) -> str:
        """Fügt einen Eintrag hinzu (ID/Zeitstempel werden bei Bedarf erzeugt).

        Die automatische Bereinigung danach ist best-effort und entfernt
        nie den gerade hinzugefügten Eintrag.

        Returns:
            Die Report-ID.

        Raises:
            ValidationError: Ungültiger Eintrag oder ID existiert bereits.
            StorageError: Der Katalog konnte nicht geschrieben werden.
        """
        if not isinstance(record, ReportRecord):
            try:
                record = ReportRecord.model_validate(record)
            except PydanticValidationError as exc:
                raise ValidationError(f"Ungültiger Report-Eintrag: {exc}") from exc

        if self._find(record.id) >= 0:
            raise ValidationError(
                f"Report existiert bereits: {record.id}",
                error_code="REPORT_EXISTS",
                details={"report_id": record.id},
            )

        reports = [*self._reports, record]
        reports.sort(key=lambda r: r.timestamp, reverse=True)
        self._save(reports)
        log.info("report_added", report_id=record.id, schedule_id=record.schedule_id)

        if self.max_age_days > 0:
            try:
                self.cleanup_old_reports(self.max_age_days, keep={record.id})
            except StorageError as exc:
                log.warning("history_retention_failed", report_id=record.id, error=str(exc))
        return record.id

    def delete(self, report_id: str, also_delete_artifact: bool = False) -> bool:
        """Entfernt einen Eintrag, optional inklusive Artefakt.

        Der Katalog wird zuerst geschrieben, danach wird das Artefakt
        best-effort gelöscht. Schlägt das Speichern fehl, bleibt das
        Artefakt unangetastet.

        Returns:
            True wenn der Eintrag existierte.

        Raises:
            StorageError: Der Katalog konnte nicht geschrieben werden.
        """
        idx = self._find(report_id)
        if idx < 0:
            return False
        report = self._reports[idx]

        self._save(self._reports[:idx] + self._reports[idx + 1:])
        if also_delete_artifact:
            self._delete_artifact(report)
        log.info("report_deleted", report_id=report_id, artifact=also_delete_artifact)
        return True

    def _delete_artifact(self, report: ReportRecord) -> None:
        if not report.path:
            return
        target = self.reports_dir / report.path
        try:
            if target.is_dir():
                shutil.rmtree(target)
            elif target.exists():
                target.unlink()
        except OSError as exc:
            log.warning("report_artifact_delete_failed", report_id=report.id, path=str(target), error=str(exc))

    def _replace_tags(self, report_id: str, tags: list[str]) -> bool:
        idx = self._find(report_id)
        if idx < 0:
            return False
        current = self._reports[idx]
        if current.tags == tags:
            return True
        updated = current.model_copy(update={"tags": tags})
        self._save([*self._reports[:idx], updated, *self._reports[idx + 1:]])
        return True

    def add_tags(self, report_id: str, tags: Iterable[str]) -> bool:
        """Vereinigungsmenge mit den bestehenden Tags. False nur bei unbekannter ID."""
        idx = self._find(report_id)
        if idx < 0:
            return False
        merged = list(dict.fromkeys([*self._reports[idx].tags, *tags]))
        ok = self._replace_tags(report_id, merged)
        log.info("report_tags_added", report_id=report_id, tags=merged)
        return ok

    def remove_tags(self, report_id: str, tags: Iterable[str]) -> bool:
        """Differenzmenge. Nicht vorhandene Tags sind kein Fehler."""
        idx = self._find(report_id)
        if idx < 0:
            return False
        drop = set(tags)
        remaining = [t for t in self._reports[idx].tags if t not in drop]
        ok = self._replace_tags(report_id, remaining)
        log.info("report_tags_removed", report_id=report_id, tags=sorted(drop))
        return ok

    def cleanup_old_reports(
        self,
        max_age_days: int,
        *,
        delete_artifacts: bool = True,
        now: datetime | None = None,
        keep: Iterable[str] = (),
    ) -> int:
        """Löscht alle Einträge mit ``timestamp < now - max_age_days``.

        ``max_age_days <= 0`` deaktiviert die Bereinigung vollständig.
        IDs in ``keep`` werden nie entfernt. Artefakte werden erst nach
        erfolgreichem Speichern des Katalogs gelöscht.

        Returns:
            Anzahl gelöschter Einträge.

        Raises:
            StorageError: Der Katalog konnte nicht geschrieben werden.
        """
        if max_age_days <= 0:
            return 0

        protected = set(keep)
        cutoff = (now or datetime.now(UTC)) - timedelta(days=max_age_days)
        expired = [r for r in self._reports if r.timestamp < cutoff and r.id not in protected]
        if not expired:
            return 0

        expired_ids = {r.id for r in expired}
        self._save([r for r in self._reports if r.id not in expired_ids])

        if delete_artifacts:
            for report in expired:
                self._delete_artifact(report)
        log.info("history_cleanup", removed=len(expired), max_age_days=max_age_days)
        return len(expired)

    # ── Lesen ────────────────────────────────────────────────────

    def get(self, report_id: str) -> ReportRecord | None:
        """Kopie des Eintrags; Änderungen daran erreichen den Katalog nicht."""
        idx = self._find(report_id)
        return self._reports[idx].model_copy(deep=True) if idx >= 0 else None

    def query(self, query: HistoryQuery | None = None, **filters: Any) -> HistoryPage:
        """Filtert den Katalog (konjunktiv) und liefert eine Seite.

        Kann mit einem HistoryQuery oder mit Keyword-Argumenten
        aufgerufen werden: ``query(schedule_id="S1", limit=10)``.

        ``total`` ist die Anzahl aller Treffer vor dem Paging, damit
        "keine weiteren Ergebnisse" von "keine Treffer" unterscheidbar ist.

        Raises:
            ValidationError: Ungültige Filter (z.B. negatives ``limit``).
        """
        if query is None:
            try:
                query = HistoryQuery(**filters)
            except PydanticValidationError as exc:
                raise ValidationError(f"Ungültige Suchanfrage: {exc}") from exc
        q = query
        reports = self._reports

        if q.schedule_id:
            reports = [r for r in reports if r.schedule_id == q.schedule_id]

        if q.search:
            term = q.search.lower()
            reports = [
                r for r in reports
                if term in r.title.lower() or term in (r.schedule_name or "").lower()
            ]

        if q.start_date is not None:
            reports = [r for r in reports if r.timestamp >= q.start_date]

        if q.end_date is not None:
            reports = [r for r in reports if r.timestamp <= q.end_date]

        if q.tags:
            wanted = set(q.tags)
            reports = [r for r in reports if wanted.intersection(r.tags)]

        total = len(reports)
        page = reports[q.offset:]
        if q.limit is not None:
            page = page[:q.limit]

        return HistoryPage(
            reports=[r.model_copy(deep=True) for r in page],
            total=total,
            offset=q.offset,
            limit=q.limit if q.limit is not None else total,
        )

    def all_tags(self) -> list[str]:
        """Alle verwendeten Tags, sortiert."""
        return sorted({tag for r in self._reports for tag in r.tags})

    def statistics(self) -> HistoryStatistics:
        """Zählt Reports pro Schedule und Monat. Ohne Seiteneffekte."""
        schedule_stats: dict[str, ScheduleStats] = {}
        month_stats: dict[str, int] = {}

        for report in self._reports:
            key = report.schedule_id or "unknown"
            stats = schedule_stats.setdefault(
                key, ScheduleStats(name=report.schedule_name or "Unknown"),
            )
            stats.count += 1

            month = report.timestamp.strftime("%Y-%m")
            month_stats[month] = month_stats.get(month, 0) + 1

        return HistoryStatistics(
            total_reports=len(self._reports),
            schedule_stats=schedule_stats,
            month_stats=month_stats,
            oldest_report=self._reports[-1].timestamp if self._reports else None,
            newest_report=self._reports[0].timestamp if self._reports else None,
        )
