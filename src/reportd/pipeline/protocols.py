"""Schnittstellen der externen Kollaborateure der Pipeline."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from pathlib import Path

    from reportd.models import ChartDefinition


class DataProvider(Protocol):
    """Lädt Zeilen aus benannten Datenquellen. Wirft bei fehlender/defekter Quelle."""

    def load_from_json(self, name: str) -> list[dict[str, Any]]: ...

    def load_from_csv(self, name: str) -> list[dict[str, Any]]: ...


class ReportRenderer(Protocol):
    """Erzeugt ein Report-Artefakt aus Chart-Definitionen."""

    async def generate_report(self, charts: list[ChartDefinition], report_name: str) -> Path: ...

    async def test_report_accessibility(self, artifact: Path) -> None: ...

    async def test_report_responsiveness(self, artifact: Path) -> None: ...


class MailTransport(Protocol):
    """Versendet ``{from, to, subject, html, attachments}`` und gibt eine Delivery-ID zurück."""

    async def send_mail(self, message: dict[str, Any]) -> str: ...


class PdfRenderer(Protocol):
    """Rendert eine HTML-Datei als PDF."""

    async def generate_pdf(self, html_path: Path, output_path: Path, title: str) -> Path: ...
