"""Tests für den ScheduleStore (eine JSON-Datei pro Schedule)."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest

from reportd.core.errors import NotFoundError, StorageError, ValidationError
from reportd.cron.store import ScheduleStore

if TYPE_CHECKING:
    from pathlib import Path


def _payload(**overrides: object) -> dict:
    data: dict = {
        "name": "Weekly KPIs",
        "cron_expression": "0 8 * * 1",
        "report_config": {"title": "KPIs"},
    }
    data.update(overrides)
    return data


# ============================================================================
# create / get
# ============================================================================


class TestCreate:
    def test_generates_id(self, store: ScheduleStore) -> None:
        schedule_id = store.create(_payload())
        assert schedule_id.startswith("schedule-")
        assert (store.directory / f"{schedule_id}.json").exists()

    def test_keeps_given_id(self, store: ScheduleStore) -> None:
        assert store.create(_payload(id="kpis")) == "kpis"

    def test_round_trip(self, store: ScheduleStore) -> None:
        schedule_id = store.create(_payload(recipients=["a@example.com"], timezone="Europe/Berlin"))
        loaded = store.get(schedule_id)

        assert loaded is not None
        assert loaded.name == "Weekly KPIs"
        assert loaded.cron_expression == "0 8 * * 1"
        assert loaded.timezone == "Europe/Berlin"
        assert loaded.recipients == ["a@example.com"]
        assert loaded.report_config.title == "KPIs"
        assert loaded.active is True

    def test_accepts_model(self, store: ScheduleStore, make_schedule) -> None:
        schedule = make_schedule(id="from-model")
        assert store.create(schedule) == "from-model"
        assert store.get("from-model") == schedule

    def test_missing_name_rejected(self, store: ScheduleStore) -> None:
        data = _payload()
        del data["name"]
        with pytest.raises(ValidationError, match="name"):
            store.create(data)

    def test_missing_report_config_rejected(self, store: ScheduleStore) -> None:
        data = _payload()
        del data["report_config"]
        with pytest.raises(ValidationError, match="report_config"):
            store.create(data)

    def test_unknown_field_rejected(self, store: ScheduleStore) -> None:
        with pytest.raises(ValidationError):
            store.create(_payload(colour="blue"))

    def test_unsafe_id_rejected(self, store: ScheduleStore) -> None:
        with pytest.raises(ValidationError):
            store.create(_payload(id="../escape"))
        assert list(store.directory.parent.glob("escape*")) == []

    def test_duplicate_id_rejected(self, store: ScheduleStore) -> None:
        store.create(_payload(id="dup"))
        with pytest.raises(ValidationError) as excinfo:
            store.create(_payload(id="dup", name="Other"))
        assert excinfo.value.error_code == "SCHEDULE_EXISTS"
        assert store.get("dup").name == "Weekly KPIs"

    def test_no_temp_files_left(self, store: ScheduleStore) -> None:
        store.create(_payload(id="clean"))
        assert [p.name for p in store.directory.iterdir()] == ["clean.json"]


class TestGet:
    def test_unknown_returns_none(self, store: ScheduleStore) -> None:
        assert store.get("nope") is None

    def test_corrupt_file_raises_storage_error(self, store: ScheduleStore) -> None:
        (store.directory / "broken.json").write_text("{not json", encoding="utf-8")
        with pytest.raises(StorageError):
            store.get("broken")

    def test_path_traversal_rejected(self, store: ScheduleStore) -> None:
        with pytest.raises(ValidationError):
            store.get("../../etc/passwd")


# ============================================================================
# list
# ============================================================================


class TestList:
    def test_empty_directory(self, tmp_path: Path) -> None:
        assert ScheduleStore(tmp_path / "missing").list() == []

    def test_lists_all(self, store: ScheduleStore) -> None:
        store.create(_payload(id="a"))
        store.create(_payload(id="b", active=False))
        assert sorted(s.id for s in store.list()) == ["a", "b"]

    def test_list_active(self, store: ScheduleStore) -> None:
        store.create(_payload(id="a"))
        store.create(_payload(id="b", active=False))
        assert [s.id for s in store.list_active()] == ["a"]

    def test_corrupt_files_skipped(self, store: ScheduleStore) -> None:
        store.create(_payload(id="good"))
        (store.directory / "bad.json").write_text("[]", encoding="utf-8")
        (store.directory / "worse.json").write_text("{{{", encoding="utf-8")
        assert [s.id for s in store.list()] == ["good"]


# ============================================================================
# update / delete
# ============================================================================


class TestUpdate:
    def test_patch_only_changes_given_fields(self, store: ScheduleStore) -> None:
        store.create(_payload(id="u", recipients=["x@example.com"]))
        before = store.get("u")

        updated = store.update("u", {"cron_expression": "30 6 * * *"})

        assert updated.cron_expression == "30 6 * * *"
        assert updated.model_dump(exclude={"cron_expression"}) == before.model_dump(
            exclude={"cron_expression"},
        )
        assert store.get("u") == updated

    def test_nested_report_config_replaced(self, store: ScheduleStore) -> None:
        store.create(_payload(id="u"))
        updated = store.update("u", {"report_config": {"title": "New"}})
        assert updated.report_config.title == "New"

    def test_unknown_id(self, store: ScheduleStore) -> None:
        with pytest.raises(NotFoundError):
            store.update("ghost", {"name": "x"})

    def test_id_change_rejected(self, store: ScheduleStore) -> None:
        store.create(_payload(id="u"))
        with pytest.raises(ValidationError):
            store.update("u", {"id": "other"})

    def test_same_id_in_patch_allowed(self, store: ScheduleStore) -> None:
        store.create(_payload(id="u"))
        assert store.update("u", {"id": "u", "active": False}).active is False

    def test_invalid_patch_keeps_file(self, store: ScheduleStore) -> None:
        store.create(_payload(id="u"))
        with pytest.raises(ValidationError):
            store.update("u", {"name": ""})
        assert store.get("u").name == "Weekly KPIs"

    def test_persisted_as_snake_case_json(self, store: ScheduleStore) -> None:
        store.create(_payload(id="u"))
        store.update("u", {"active": False})
        raw = json.loads((store.directory / "u.json").read_text(encoding="utf-8"))
        assert raw["active"] is False
        assert raw["cron_expression"] == "0 8 * * 1"


class TestDelete:
    def test_delete_existing(self, store: ScheduleStore) -> None:
        store.create(_payload(id="d"))
        assert store.delete("d") is True
        assert store.get("d") is None

    def test_delete_unknown(self, store: ScheduleStore) -> None:
        assert store.delete("d") is False
