"""
reportd · Configuration system.

Loads configuration from:
  1. Defaults (defined here)
  2. ~/.reportd/config.yaml (overrides defaults)
  3. Environment variables REPORTD_* (overrides everything)

Verzeichnisse (schedules, history, reports, data, logs) liegen standardmäßig
unterhalb von ``home`` und können einzeln überschrieben werden.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field

log = logging.getLogger(__name__)

# ============================================================================
# Konfigurationsmodelle
# ============================================================================


class MailConfig(BaseModel):
    """Mail-Versand für Report-Benachrichtigungen.

    ``transport="smtp"`` nutzt host/port/username/password,
    ``transport="http"`` postet JSON an ``api_url`` (Resend-kompatibel).
    """

    enabled: bool = False
    transport: Literal["smtp", "http"] = "smtp"
    sender: str = ""
    # SMTP
    host: str = "localhost"
    port: int = Field(default=587, ge=1, le=65535)
    username: str = ""
    password: str = ""
    use_tls: bool = True
    timeout_seconds: int = Field(default=30, ge=1, le=300)
    # HTTP-API
    api_url: str = "https://api.resend.com/emails"
    api_key: str = ""
    attach_pdf: bool = True


class HistoryConfig(BaseModel):
    """Aufbewahrung der Report-Historie."""

    # 0 = keine automatische Bereinigung
    max_age_days: int = Field(default=0, ge=0)


class CronConfig(BaseModel):
    """Scheduler-Einstellungen."""

    default_timezone: str = "UTC"
    misfire_grace_seconds: int = Field(default=60, ge=1)


class LoggingConfig(BaseModel):
    """Logging-Konfiguration."""

    level: str = "INFO"
    json_logs: bool = False
    console: bool = True


class ReportdConfig(BaseModel):
    """Vollständige reportd-Konfiguration.

    Wird einmal beim Start geladen und an den ReportScheduler übergeben.
    """

    home: Path = Field(default_factory=lambda: Path.home() / ".reportd")

    schedules_path: Path | None = None
    history_path: Path | None = None
    reports_path: Path | None = None
    data_path: Path | None = None

    mail: MailConfig = Field(default_factory=MailConfig)
    history: HistoryConfig = Field(default_factory=HistoryConfig)
    cron: CronConfig = Field(default_factory=CronConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    # ---- Abgeleitete Pfade ----

    @property
    def config_file(self) -> Path:
        """Pfad zur Konfigurationsdatei."""
        return self.home / "config.yaml"

    @property
    def schedules_dir(self) -> Path:
        """Ein JSON-Dokument pro Schedule."""
        return self.schedules_path or self.home / "schedules"

    @property
    def history_dir(self) -> Path:
        """Enthält index.json."""
        return self.history_path or self.home / "history"

    @property
    def reports_dir(self) -> Path:
        """Wurzel aller erzeugten Report-Artefakte."""
        return self.reports_path or self.home / "reports"

    @property
    def data_dir(self) -> Path:
        """Datenquellen (json/, csv/)."""
        return self.data_path or self.home / "data"

    @property
    def logs_dir(self) -> Path:
        return self.home / "logs"

    @property
    def log_level(self) -> str:
        """Shortcut für logging.level."""
        return self.logging.level


# ============================================================================
# Config-Laden
# ============================================================================


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Tiefes Mergen von zwei Dicts. Override gewinnt bei Konflikten."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


_SECTIONS = ("mail", "history", "cron", "logging")


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Wendet REPORTD_* Umgebungsvariablen an.

    Konvention: REPORTD_KEY → data["key"] wenn ``key`` ein Top-Level-Feld
    ist, sonst REPORTD_SECTION_KEY → data["section"]["key"].
    Beispiel: REPORTD_MAIL_HOST → data["mail"]["host"],
              REPORTD_REPORTS_PATH → data["reports_path"]
    """
    prefix = "REPORTD_"
    overrides: dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue
        name = key[len(prefix):].lower()
        if not name:
            continue
        section, _, leaf = name.partition("_")
        if name in ReportdConfig.model_fields:
            overrides[name] = value
        elif section in _SECTIONS and leaf:
            overrides.setdefault(section, {})[leaf] = value
        else:
            overrides[name] = value
    return _deep_merge(data, overrides)


def load_config(config_path: Path | None = None) -> ReportdConfig:
    """Lädt die Konfiguration.

    Reihenfolge (spätere überschreiben frühere):
      1. Defaults (in den Pydantic-Modellen)
      2. config.yaml (wenn vorhanden)
      3. REPORTD_* Umgebungsvariablen

    Args:
        config_path: Expliziter Pfad zur config.yaml. Wenn None: ~/.reportd/config.yaml

    Returns:
        Vollständig validierte ReportdConfig.
    """
    data: dict[str, Any] = {}

    if config_path is None:
        config_path = Path.home() / ".reportd" / "config.yaml"

    if config_path.exists():
        try:
            with open(config_path, encoding="utf-8") as f:
                file_data = yaml.safe_load(f) or {}
            if isinstance(file_data, dict):
                data = file_data
        except yaml.YAMLError as exc:
            log.warning("Fehlerhafte config.yaml wird ignoriert: %s", exc)

    data = _apply_env_overrides(data)
    return ReportdConfig(**data)


def ensure_directory_structure(config: ReportdConfig) -> list[str]:
    """Erstellt die reportd-Verzeichnisstruktur.

    Idempotent -- erstellt nur was fehlt.

    Returns:
        Liste der neu erstellten Pfade (für Logging).
    """
    created: list[str] = []
    dirs = [
        config.home,
        config.schedules_dir,
        config.history_dir,
        config.reports_dir,
        config.data_dir / "json",
        config.data_dir / "csv",
        config.logs_dir,
    ]
    for d in dirs:
        if not d.exists():
            d.mkdir(parents=True, exist_ok=True)
            created.append(str(d))
    return created
