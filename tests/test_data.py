"""Tests für FileDataProvider."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest

from reportd.core.errors import DataSourceError
from reportd.data import FileDataProvider

if TYPE_CHECKING:
    from reportd.config import ReportdConfig


@pytest.fixture
def provider(initialized_config: ReportdConfig) -> FileDataProvider:
    return FileDataProvider(initialized_config.data_dir)


class TestJson:
    def test_loads_rows(self, provider: FileDataProvider, sales_json: str, sales_rows) -> None:
        assert provider.load_from_json(sales_json) == sales_rows

    def test_missing_file(self, provider: FileDataProvider) -> None:
        with pytest.raises(DataSourceError) as excinfo:
            provider.load_from_json("ghost")
        assert excinfo.value.error_code == "DATA_SOURCE_MISSING"

    def test_malformed_json(self, provider: FileDataProvider) -> None:
        (provider.data_dir / "json" / "bad.json").write_text("[{", encoding="utf-8")
        with pytest.raises(DataSourceError):
            provider.load_from_json("bad")

    def test_not_a_list_of_objects(self, provider: FileDataProvider) -> None:
        (provider.data_dir / "json" / "obj.json").write_text(json.dumps({"a": 1}), encoding="utf-8")
        with pytest.raises(DataSourceError):
            provider.load_from_json("obj")

    def test_path_traversal_rejected(self, provider: FileDataProvider) -> None:
        (provider.data_dir / "secret.json").write_text("[]", encoding="utf-8")
        with pytest.raises(DataSourceError):
            provider.load_from_json("../secret")


class TestCsv:
    def test_numbers_coerced(self, provider: FileDataProvider) -> None:
        (provider.data_dir / "csv" / "kpi.csv").write_text(
            "month,revenue,ratio,note\nJan,100,0.5,ok\nFeb,,1.25,\n", encoding="utf-8",
        )
        rows = provider.load_from_csv("kpi")
        assert rows == [
            {"month": "Jan", "revenue": 100, "ratio": 0.5, "note": "ok"},
            {"month": "Feb", "revenue": "", "ratio": 1.25, "note": ""},
        ]

    def test_missing_file(self, provider: FileDataProvider) -> None:
        with pytest.raises(DataSourceError):
            provider.load_from_csv("ghost")
