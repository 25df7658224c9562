import os
import sys
import datetime
import json
import pytest
from unittest.mock import AsyncMock

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from daily_service import DailyService
from db import LocalStore, StoreError
from export_service import ExportService, backup_filename
from protocol_service import ProtocolService
from routine_service import RoutineService
from settings_service import SettingsService

NOW = datetime.datetime(2024, 2, 5, 9, 30)


async def _populate(store):
    protocols = ProtocolService(store, clock=lambda: NOW)
    protocol = await protocols.create_protocol("Neck", schedule_days=["mon"])
    routines = RoutineService(store)
    await routines.create_routine(protocol.id, "Holds", ["mon", "fri"], 1)
    await SettingsService(store).load_settings()
    daily = DailyService(store, clock=lambda: NOW)
    await daily.complete_protocol(protocol.id)
    return protocol


def test_backup_filename():
    assert backup_filename(datetime.date(2024, 2, 5)) == "protocol-backup-2024-02-05.json"


@pytest.mark.asyncio
async def test_table_stats_and_clear(tmp_path):
    store = LocalStore(str(tmp_path / "a.db"))
    await _populate(store)
    service = ExportService(store)

    assert "daily_completions" in service.table_names()
    stats = await service.get_table_stats("routines")
    assert stats["count"] == 1
    assert stats["sample"][0]["frequency"] == ["mon", "fri"]
    assert await service.get_table_stats("nope") == {"count": 0, "sample": []}

    assert await service.clear_table("routines")
    assert await store.routines.count() == 0
    assert not await service.clear_table("nope")

    assert await service.clear_all_data()
    for name in service.table_names():
        assert await store.table(name).count() == 0


@pytest.mark.asyncio
async def test_export_and_replace_import(tmp_path):
    source = LocalStore(str(tmp_path / "source.db"))
    await _populate(source)
    exporter = ExportService(source, clock=lambda: NOW)
    data = await exporter.export_data()
    assert data.version == 1
    assert data.exported_at == NOW
    text = ExportService.to_json(data)
    assert json.loads(text)["data"]["settings"][0]["user_id"] == "default"

    target = LocalStore(str(tmp_path / "target.db"))
    await ProtocolService(target).create_protocol("Stale")
    ok, parsed = ExportService.validate_import(text)
    assert ok
    ok, error = await ExportService(target).import_data(parsed, "replace")
    assert ok and error is None

    for name in exporter.table_names():
        assert await target.table(name).to_list() == await source.table(name).to_list()


@pytest.mark.asyncio
async def test_merge_import_keeps_other_records(tmp_path):
    source = LocalStore(str(tmp_path / "source.db"))
    protocol = await _populate(source)
    data = await ExportService(source, clock=lambda: NOW).export_data()

    target = LocalStore(str(tmp_path / "target.db"))
    other = await ProtocolService(target).create_protocol("Other")
    ok, _ = await ExportService(target).import_data(data, "merge")
    assert ok
    ids = {p.id for p in await target.protocols.to_list()}
    assert ids == {protocol.id, other.id}

    ok, _ = await ExportService(target).import_data(data, "merge")
    assert ok
    assert await target.protocols.count() == 2


@pytest.mark.asyncio
async def test_import_rejects_unknown_mode(tmp_path):
    store = LocalStore(str(tmp_path / "a.db"))
    data = await ExportService(store).export_data()
    assert await ExportService(store).import_data(data, "append") == (
        False,
        "Unknown import mode: append",
    )


@pytest.mark.asyncio
async def test_import_failure_is_reported(tmp_path):
    store = LocalStore(str(tmp_path / "a.db"))
    data = await ExportService(store).export_data()
    store.replace_all = AsyncMock(side_effect=StoreError("disk full"))
    assert await ExportService(store).import_data(data) == (False, "disk full")


def test_validate_import_reports_issues():
    ok, issues = ExportService.validate_import({"version": 2, "data": {}})
    assert not ok
    assert "version" in issues
    assert "exported_at" in issues

    ok, issues = ExportService.validate_import("{not json")
    assert not ok
    assert issues.startswith("invalid JSON")


def test_validate_import_checks_records():
    payload = {
        "version": 1,
        "exported_at": NOW.isoformat(),
        "data": {
            "protocols": [],
            "routines": [
                {"id": "r1", "protocol_id": "p1", "name": "R", "order": -1, "frequency": "daily"}
            ],
            "exercises": [],
            "tracking_logs": [],
            "settings": [],
            "daily_completions": [],
        },
    }
    ok, issues = ExportService.validate_import(payload)
    assert not ok
    assert "data.routines.0.order" in issues
