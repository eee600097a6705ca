"""
reportd · Central data models.

All Pydantic models shared by store, engine, pipeline and history.

Design principles:
  - Immutable (frozen) where the lifecycle demands it (ReportRecord)
  - Strict validation: unknown schedule fields are rejected
  - JSON-serializable (schedule files, history index)
"""

from __future__ import annotations

import re
import secrets
import time
import uuid
from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

# ============================================================================
# Hilfsfunktionen
# ============================================================================

_SAFE_ID = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")


def _utc_now() -> datetime:
    """Aktuelle Zeit in UTC. Einheitlich im gesamten System."""
    return datetime.now(UTC)


def new_schedule_id() -> str:
    return f"schedule-{uuid.uuid4().hex[:12]}"


def new_report_id() -> str:
    return f"report-{int(time.time() * 1000)}-{secrets.token_hex(3)}"


def is_safe_id(value: str) -> bool:
    """True wenn die ID als Dateiname taugt (kein Pfad, kein Punkt vorne)."""
    return bool(_SAFE_ID.match(value))


def _dedupe(values: list[str]) -> list[str]:
    seen: dict[str, None] = {}
    for v in values:
        seen.setdefault(v, None)
    return list(seen)


# ============================================================================
# Report-Konfiguration
# ============================================================================


class DataSourceSpec(BaseModel):
    """Beschreibt woher die Zeilen eines Reports kommen."""

    type: str = "file"
    file_type: str = "json"
    file_name: str


class ChartSpec(BaseModel):
    """Eine Chart-Definition innerhalb einer ReportConfig.

    ``type`` ist absichtlich ein freier String: unbekannte Typen werden
    von der Pipeline mit einer Warnung übersprungen statt beim Laden
    des Schedules abgelehnt zu werden.
    """

    type: str
    title: str = ""
    # bar / line
    x_axis: str | None = None
    y_axis: str | list[str] | None = None
    # pie
    labels: str | None = None
    values: str | None = None
    # table
    columns: list[str] | None = None
    filter: dict[str, Any] | None = None
    limit: int | None = None

    dimensions: dict[str, Any] = Field(default_factory=dict)


class ReportConfig(BaseModel):
    """Titel, Charts und Datenquelle eines Reports."""

    title: str = Field(min_length=1)
    charts: list[ChartSpec] = Field(default_factory=list)
    data_source: DataSourceSpec | None = None


class ChartDefinition(BaseModel):
    """Render-fertige Chart-Beschreibung (Eingabe des ReportRenderers)."""

    type: Literal["bar", "line", "pie", "table"]
    title: str = ""
    config: dict[str, Any] = Field(default_factory=dict)
    data: list[dict[str, Any]] = Field(default_factory=list)
    options: dict[str, Any] = Field(default_factory=dict)
    dimensions: dict[str, Any] = Field(default_factory=dict)


# ============================================================================
# Schedule
# ============================================================================


class Schedule(BaseModel):
    """Persistierte Definition eines wiederkehrenden Report-Jobs.

    Ein Schedule bekommt nur dann einen Timer, wenn ``active`` gesetzt
    und ``cron_expression`` gültig ist. Alle anderen bleiben gespeichert,
    aber inaktiv.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=new_schedule_id)
    name: str = Field(min_length=1)
    cron_expression: str
    timezone: str = "UTC"
    report_config: ReportConfig
    recipients: list[str] = Field(default_factory=list)
    active: bool = True
    base_url: str | None = None

    @field_validator("id")
    @classmethod
    def _check_id(cls, value: str) -> str:
        if not is_safe_id(value):
            msg = f"Schedule-ID ist kein gültiger Dateiname: {value!r}"
            raise ValueError(msg)
        return value


# ============================================================================
# Report-Historie
# ============================================================================


class ReportRecord(BaseModel, frozen=True):
    """Katalogeintrag für einen abgeschlossenen Report-Lauf.

    Alle Felder außer ``tags`` sind nach der Erzeugung unveränderlich.
    Tag-Änderungen ersetzen den Eintrag durch eine Kopie.
    """

    id: str = Field(default_factory=new_report_id)
    title: str
    path: str
    schedule_id: str | None = None
    schedule_name: str | None = None
    timestamp: datetime = Field(default_factory=_utc_now)
    tags: list[str] = Field(default_factory=list)

    @field_validator("tags")
    @classmethod
    def _unique_tags(cls, value: list[str]) -> list[str]:
        return _dedupe(value)

    @field_validator("timestamp")
    @classmethod
    def _aware_timestamp(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value


class HistoryQuery(BaseModel):
    """Filter für HistoryIndex.query(). Alle Kriterien sind konjunktiv."""

    schedule_id: str | None = None
    search: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    tags: list[str] = Field(default_factory=list)
    limit: int | None = Field(default=None, ge=0)
    offset: int = Field(default=0, ge=0)

    @field_validator("start_date", "end_date")
    @classmethod
    def _aware_bounds(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value


class HistoryPage(BaseModel):
    """Eine Seite Query-Ergebnisse plus Gesamtanzahl der Treffer."""

    reports: list[ReportRecord]
    total: int
    offset: int = 0
    limit: int


class ScheduleStats(BaseModel):
    count: int = 0
    name: str = "Unknown"


class HistoryStatistics(BaseModel):
    """Aggregierte Kennzahlen über den gesamten Katalog."""

    total_reports: int = 0
    schedule_stats: dict[str, ScheduleStats] = Field(default_factory=dict)
    month_stats: dict[str, int] = Field(default_factory=dict)
    oldest_report: datetime | None = None
    newest_report: datetime | None = None
