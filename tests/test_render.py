"""Tests für den HtmlReportRenderer und seine statischen Prüfungen."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest

from reportd.core.errors import RenderError
from reportd.models import ChartDefinition
from reportd.render import CHARTS_FILE, INDEX_FILE, HtmlReportRenderer

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture
def charts() -> list[ChartDefinition]:
    return [
        ChartDefinition(
            type="bar",
            title="Revenue",
            config={"labels": ["Jan", "Feb"], "datasets": [{"label": "revenue", "data": [1, 2]}]},
        ),
        ChartDefinition(type="pie", title="Share", config={"labels": ["a"], "data": [3]}),
        ChartDefinition(type="table", title="Rows <raw>", data=[{"month": "Jan", "revenue": 1}]),
    ]


class TestGenerate:
    @pytest.mark.asyncio
    async def test_writes_index_and_charts(self, tmp_path: Path, charts) -> None:
        renderer = HtmlReportRenderer(tmp_path)
        artifact = await renderer.generate_report(charts, "daily-1")

        assert artifact == tmp_path / "daily-1"
        page = (artifact / INDEX_FILE).read_text(encoding="utf-8")
        assert '<html lang="en">' in page
        assert page.count("<table") == 3
        assert "Rows &lt;raw&gt;" in page
        stored = json.loads((artifact / CHARTS_FILE).read_text(encoding="utf-8"))
        assert [c["type"] for c in stored] == ["bar", "pie", "table"]

    @pytest.mark.asyncio
    async def test_existing_directory_is_render_error(self, tmp_path: Path, charts) -> None:
        (tmp_path / "daily-1").mkdir()
        with pytest.raises(RenderError):
            await HtmlReportRenderer(tmp_path).generate_report(charts, "daily-1")


class TestChecks:
    @pytest.mark.asyncio
    async def test_generated_report_passes(self, tmp_path: Path, charts) -> None:
        renderer = HtmlReportRenderer(tmp_path)
        artifact = await renderer.generate_report(charts, "ok")
        await renderer.test_report_accessibility(artifact)
        await renderer.test_report_responsiveness(artifact)

    @pytest.mark.asyncio
    async def test_accessibility_failure(self, tmp_path: Path) -> None:
        page = tmp_path / "bad.html"
        page.write_text("<html><head><title></title></head><table></table></html>", encoding="utf-8")
        with pytest.raises(RenderError) as excinfo:
            await HtmlReportRenderer(tmp_path).test_report_accessibility(page)
        assert excinfo.value.error_code == "ACCESSIBILITY_CHECK_FAILED"
        assert len(excinfo.value.details["problems"]) == 3

    @pytest.mark.asyncio
    async def test_responsiveness_failure(self, tmp_path: Path) -> None:
        page = tmp_path / "bad.html"
        page.write_text('<html lang="en"><title>x</title></html>', encoding="utf-8")
        with pytest.raises(RenderError) as excinfo:
            await HtmlReportRenderer(tmp_path).test_report_responsiveness(page)
        assert excinfo.value.error_code == "RESPONSIVENESS_CHECK_FAILED"
