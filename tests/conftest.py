"""
reportd · Shared Test-Fixtures.

Alle Tests nutzen ein temporäres Verzeichnis statt ~/.reportd/.
So sind Tests isoliert und reproduzierbar.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import pytest

from reportd.config import ReportdConfig, ensure_directory_structure
from reportd.cron.store import ScheduleStore
from reportd.history.index import HistoryIndex
from reportd.models import ReportRecord, Schedule

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture
def tmp_reportd_home(tmp_path: Path) -> Path:
    """Temporäres reportd-Home-Verzeichnis."""
    return tmp_path / ".reportd"


@pytest.fixture
def config(tmp_reportd_home: Path) -> ReportdConfig:
    """ReportdConfig mit temporärem Home-Verzeichnis."""
    return ReportdConfig(home=tmp_reportd_home)


@pytest.fixture
def initialized_config(config: ReportdConfig) -> ReportdConfig:
    """ReportdConfig mit erstellter Verzeichnisstruktur."""
    ensure_directory_structure(config)
    return config


@pytest.fixture
def store(initialized_config: ReportdConfig) -> ScheduleStore:
    return ScheduleStore(initialized_config.schedules_dir)


@pytest.fixture
def history(initialized_config: ReportdConfig) -> HistoryIndex:
    return HistoryIndex(initialized_config.history_dir, initialized_config.reports_dir)


@pytest.fixture
def sales_rows() -> list[dict[str, Any]]:
    return [
        {"month": "Jan", "revenue": 100, "cost": 60, "region": "north"},
        {"month": "Feb", "revenue": 120, "cost": 70, "region": "south"},
        {"month": "Mar", "revenue": 90, "cost": 65, "region": "north"},
    ]


@pytest.fixture
def sales_json(initialized_config: ReportdConfig, sales_rows: list[dict[str, Any]]) -> str:
    """Schreibt ``data/json/sales.json`` und gibt den Quellnamen zurück."""
    path = initialized_config.data_dir / "json" / "sales.json"
    path.write_text(json.dumps(sales_rows), encoding="utf-8")
    return "sales"


def make_schedule(**overrides: Any) -> Schedule:
    """Schedule mit sinnvollen Defaults."""
    data: dict[str, Any] = {
        "id": "daily",
        "name": "Daily Sales",
        "cron_expression": "0 9 * * *",
        "report_config": {"title": "Daily"},
    }
    data.update(overrides)
    return Schedule.model_validate(data)


def make_record(
    report_id: str,
    *,
    day: int = 1,
    month: int = 1,
    schedule_id: str | None = "daily",
    **overrides: Any,
) -> ReportRecord:
    """ReportRecord mit festem Zeitstempel (2024-<month>-<day> 12:00 UTC)."""
    data: dict[str, Any] = {
        "id": report_id,
        "title": f"Report {report_id}",
        "path": report_id,
        "schedule_id": schedule_id,
        "schedule_name": "Daily Sales" if schedule_id else None,
        "timestamp": datetime(2024, month, day, 12, 0, tzinfo=UTC),
    }
    data.update(overrides)
    return ReportRecord.model_validate(data)


@pytest.fixture(name="make_schedule")
def make_schedule_fixture() -> Any:
    return make_schedule


@pytest.fixture(name="make_record")
def make_record_fixture() -> Any:
    return make_record
