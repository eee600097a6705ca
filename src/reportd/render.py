"""Minimaler HTML-Renderer für Report-Artefakte.

Jeder Report ist ein Verzeichnis ``<reports_dir>/<report_name>/`` mit
``index.html`` (lesbare Tabellen pro Chart) und ``charts.json`` (die
vollständigen Chart-Definitionen für clientseitiges Rendering).
"""

from __future__ import annotations

import asyncio
import html
import json
import re
from pathlib import Path
from typing import TYPE_CHECKING, Any

from reportd.core.errors import RenderError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from reportd.models import ChartDefinition

INDEX_FILE = "index.html"
CHARTS_FILE = "charts.json"

_PAGE = """<!DOCTYPE html>
<html lang="{lang}">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>{title}</title>
<style>
body {{ font-family: sans-serif; margin: 1rem; }}
table {{ border-collapse: collapse; max-width: 100%; overflow-x: auto; display: block; }}
th, td {{ border: 1px solid #ccc; padding: .25rem .5rem; }}
</style>
</head>
<body>
<main>
<h1>{title}</h1>
{sections}
</main>
<script type="application/json" id="charts">{charts_json}</script>
</body>
</html>
"""


def _cell(value: Any) -> str:
    return html.escape("" if value is None else str(value))


def _table(headers: Sequence[str], rows: Sequence[Sequence[Any]], caption: str) -> str:
    head = "".join(f'<th scope="col">{_cell(h)}</th>' for h in headers)
    body = "".join(
        "<tr>" + "".join(f"<td>{_cell(v)}</td>" for v in row) + "</tr>"
        for row in rows
    )
    return (
        f"<table><caption>{_cell(caption)}</caption>"
        f"<thead><tr>{head}</tr></thead><tbody>{body}</tbody></table>"
    )


def _render_chart(chart: ChartDefinition) -> str:
    if chart.type == "table":
        columns = chart.options.get("columns") or sorted({k for row in chart.data for k in row})
        rows = [[row.get(c) for c in columns] for row in chart.data]
        body = _table(columns, rows, chart.title)
    elif chart.type == "pie":
        labels = chart.config.get("labels", [])
        values = chart.config.get("data", [])
        body = _table(["Label", "Value"], list(zip(labels, values, strict=False)), chart.title)
    else:
        labels = chart.config.get("labels", [])
        datasets = chart.config.get("datasets", [])
        headers = ["Label", *(d.get("label", "") for d in datasets)]
        rows = [
            [label, *(d["data"][i] if i < len(d.get("data", [])) else None for d in datasets)]
            for i, label in enumerate(labels)
        ]
        body = _table(headers, rows, chart.title)
    return (
        f'<section class="chart chart-{chart.type}">'
        f"<h2>{_cell(chart.title)}</h2>{body}</section>"
    )


class HtmlReportRenderer:
    """Schreibt Reports als statische HTML-Verzeichnisse."""

    def __init__(self, reports_dir: Path | str, *, lang: str = "en") -> None:
        self.reports_dir = Path(reports_dir)
        self.lang = lang

    def _write(self, charts: list[ChartDefinition], report_name: str) -> Path:
        target = self.reports_dir / report_name
        target.mkdir(parents=True, exist_ok=False)
        charts_json = json.dumps([c.model_dump(mode="json") for c in charts], ensure_ascii=False)
        page = _PAGE.format(
            lang=self.lang,
            title=_cell(report_name),
            sections="\n".join(_render_chart(c) for c in charts),
            charts_json=charts_json.replace("</", "<\\/"),
        )
        (target / CHARTS_FILE).write_text(charts_json, encoding="utf-8")
        (target / INDEX_FILE).write_text(page, encoding="utf-8")
        return target

    async def generate_report(self, charts: list[ChartDefinition], report_name: str) -> Path:
        """Erzeugt das Report-Verzeichnis und gibt dessen Pfad zurück."""
        try:
            return await asyncio.to_thread(self._write, charts, report_name)
        except OSError as exc:
            raise RenderError(
                f"Report-Verzeichnis konnte nicht geschrieben werden: {report_name}",
                details={"report_name": report_name, "error": str(exc)},
            ) from exc

    @staticmethod
    def _read_index(artifact: Path) -> str:
        index = artifact / INDEX_FILE if artifact.is_dir() else artifact
        return index.read_text(encoding="utf-8")

    async def test_report_accessibility(self, artifact: Path) -> None:
        """Statische Prüfung: lang-Attribut, Titel, Tabellenköpfe.

        Raises:
            RenderError: Mindestens eine Prüfung schlägt fehl.
        """
        page = await asyncio.to_thread(self._read_index, artifact)
        problems: list[str] = []
        if not re.search(r"<html[^>]*\blang=\"[^\"]+\"", page):
            problems.append("html ohne lang-Attribut")
        if not re.search(r"<title>\s*\S.*?</title>", page, re.DOTALL):
            problems.append("leerer oder fehlender Titel")
        if page.count("<table") != page.count("<thead>"):
            problems.append("Tabelle ohne Kopfzeile")
        if problems:
            raise RenderError(
                "Accessibility-Prüfung fehlgeschlagen: " + ", ".join(problems),
                error_code="ACCESSIBILITY_CHECK_FAILED",
                details={"artifact": str(artifact), "problems": problems},
            )

    async def test_report_responsiveness(self, artifact: Path) -> None:
        """Statische Prüfung auf ein viewport-Meta-Tag.

        Raises:
            RenderError: viewport fehlt.
        """
        page = await asyncio.to_thread(self._read_index, artifact)
        if 'name="viewport"' not in page:
            raise RenderError(
                "Responsiveness-Prüfung fehlgeschlagen: kein viewport-Meta-Tag",
                error_code="RESPONSIVENESS_CHECK_FAILED",
                details={"artifact": str(artifact)},
            )
