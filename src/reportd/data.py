"""Dateibasierte Datenquellen für Reports.

Layout unterhalb von ``data_dir``::

    json/<name>.json   -- Liste von Objekten
    csv/<name>.csv     -- Kopfzeile + Datenzeilen
"""

from __future__ import annotations

import csv
import json
from pathlib import Path
from typing import Any

from reportd.core.errors import DataSourceError
from reportd.utils.logging import get_logger

log = get_logger(__name__)


def _coerce(value: str) -> Any:
    """CSV-Werte: Zahlen werden zu int/float, alles andere bleibt String."""
    text = value.strip()
    if not text:
        return text
    try:
        return int(text)
    except ValueError:
        pass
    try:
        return float(text)
    except ValueError:
        return value


class FileDataProvider:
    """Lädt Report-Daten aus JSON- und CSV-Dateien."""

    def __init__(self, data_dir: Path | str) -> None:
        self.data_dir = Path(data_dir)

    def _resolve(self, subdir: str, name: str, suffix: str) -> Path:
        base = (self.data_dir / subdir).resolve()
        path = (base / f"{name}{suffix}").resolve()
        if not path.is_relative_to(base):
            raise DataSourceError(
                f"Datenquelle außerhalb von {subdir}/: {name}",
                details={"file_name": name},
            )
        if not path.is_file():
            raise DataSourceError(
                f"Datei nicht gefunden: {path}",
                error_code="DATA_SOURCE_MISSING",
                details={"file_name": name, "path": str(path)},
            )
        return path

    def load_from_json(self, name: str) -> list[dict[str, Any]]:
        path = self._resolve("json", name, ".json")
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise DataSourceError(
                f"JSON-Datei nicht lesbar: {path.name}",
                details={"path": str(path), "error": str(exc)},
            ) from exc
        if not isinstance(data, list) or not all(isinstance(row, dict) for row in data):
            raise DataSourceError(
                f"JSON-Datei enthält keine Liste von Objekten: {path.name}",
                details={"path": str(path)},
            )
        log.debug("json_loaded", path=str(path), rows=len(data))
        return data

    def load_from_csv(self, name: str) -> list[dict[str, Any]]:
        path = self._resolve("csv", name, ".csv")
        try:
            with open(path, encoding="utf-8", newline="") as f:
                rows = [
                    {key: _coerce(value or "") for key, value in row.items() if key is not None}
                    for row in csv.DictReader(f)
                ]
        except (OSError, csv.Error, UnicodeDecodeError) as exc:
            raise DataSourceError(
                f"CSV-Datei nicht lesbar: {path.name}",
                details={"path": str(path), "error": str(exc)},
            ) from exc
        log.debug("csv_loaded", path=str(path), rows=len(rows))
        return rows
