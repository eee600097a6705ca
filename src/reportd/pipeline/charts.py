"""Formt geladene Zeilen in render-fertige Chart-Definitionen.

bar/line: ein Label pro Zeile, ein Dataset pro y-Spalte
pie:      Labels + Werte + eine Farbe pro Segment
table:    gefilterte, begrenzte Zeilen + Spaltenliste
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from reportd.models import ChartDefinition
from reportd.utils.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Sequence

    from reportd.models import ChartSpec

log = get_logger(__name__)

PALETTE = (
    "#FF6384", "#36A2EB", "#FFCE56", "#4BC0C0", "#9966FF",
    "#FF9F40", "#8AC249", "#EA526F", "#23B5D3", "#279AF1",
)

SUPPORTED_CHART_TYPES = frozenset({"bar", "line", "pie", "table"})


def color_for(index: int) -> str:
    return PALETTE[index % len(PALETTE)]


def extract_column(rows: Sequence[dict[str, Any]], column: str | None) -> list[Any]:
    """Werte einer Spalte; fehlende Werte werden zu None."""
    if not column:
        return [None] * len(rows)
    return [row.get(column) for row in rows]


def _as_list(value: str | list[str] | None) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return list(value)


def prepare_series(rows: Sequence[dict[str, Any]], spec: ChartSpec) -> dict[str, Any]:
    labels = extract_column(rows, spec.x_axis)
    datasets = []
    for i, column in enumerate(_as_list(spec.y_axis)):
        color = color_for(i)
        datasets.append({
            "label": column,
            "data": extract_column(rows, column),
            "background_color": color,
            "border_color": color,
            "border_width": 1,
        })
    return {"title": spec.title, "labels": labels, "datasets": datasets}


def prepare_pie(rows: Sequence[dict[str, Any]], spec: ChartSpec) -> dict[str, Any]:
    return {
        "title": spec.title,
        "labels": extract_column(rows, spec.labels),
        "data": extract_column(rows, spec.values),
        "background_color": [color_for(i) for i in range(len(rows))],
    }


def prepare_table(rows: Sequence[dict[str, Any]], spec: ChartSpec) -> list[dict[str, Any]]:
    table = list(rows)
    if spec.filter:
        table = [
            row for row in table
            if all(row.get(k) == v for k, v in spec.filter.items())
        ]
    if spec.limit and spec.limit > 0:
        table = table[:spec.limit]
    if spec.columns:
        table = [{c: row.get(c) for c in spec.columns} for row in table]
    return table


def build_chart(rows: Sequence[dict[str, Any]], spec: ChartSpec) -> ChartDefinition | None:
    """Baut eine ChartDefinition. Unbekannte Typen ergeben None."""
    if spec.type in ("bar", "line"):
        return ChartDefinition(
            type=spec.type,
            title=spec.title,
            config=prepare_series(rows, spec),
            dimensions=spec.dimensions,
        )
    if spec.type == "pie":
        return ChartDefinition(
            type="pie",
            title=spec.title,
            config=prepare_pie(rows, spec),
            dimensions=spec.dimensions,
        )
    if spec.type == "table":
        return ChartDefinition(
            type="table",
            title=spec.title,
            data=prepare_table(rows, spec),
            options={"title": spec.title, "columns": spec.columns},
            dimensions=spec.dimensions,
        )
    return None


def build_charts(
    rows: Sequence[dict[str, Any]], specs: Sequence[ChartSpec],
) -> list[ChartDefinition]:
    """Baut alle Charts; unbekannte Typen werden mit Warnung übersprungen."""
    charts: list[ChartDefinition] = []
    for spec in specs:
        chart = build_chart(rows, spec)
        if chart is None:
            log.warning("chart_type_unsupported", chart_type=spec.type, title=spec.title)
            continue
        charts.append(chart)
    return charts
