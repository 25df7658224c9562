import os
import sys
import asyncio
import pytest
from unittest.mock import AsyncMock

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import LocalStore, StoreError
from schemas import RecordValidationError
from settings_service import DEFAULT_USER_ID, SettingsService, default_settings


@pytest.fixture
def store(tmp_path):
    return LocalStore(str(tmp_path / "settings.db"))


@pytest.mark.asyncio
async def test_first_load_creates_defaults_once(store):
    service = SettingsService(store)
    await service.load_settings()

    assert service.settings == default_settings()
    assert service.settings.theme == "auto"
    assert service.settings.notifications_enabled is False
    assert service.settings.reminder_time == "09:00"
    assert service.settings.reminder_days == ["mon", "tue", "wed", "thu", "fri", "sat", "sun"]
    assert await store.settings.count() == 1

    store.settings.add = AsyncMock()
    again = SettingsService(store)
    await again.load_settings()
    assert again.settings == service.settings
    store.settings.add.assert_not_awaited()


@pytest.mark.asyncio
async def test_load_keeps_stored_values(store):
    await store.settings.put(
        default_settings().model_copy(update={"theme": "dark", "reminder_time": "07:30"})
    )
    service = SettingsService(store)
    await service.load_settings()
    assert service.settings.theme == "dark"
    assert service.settings.reminder_time == "07:30"


@pytest.mark.asyncio
async def test_load_storage_error_is_recorded(store):
    store.settings.get = AsyncMock(side_effect=StoreError("unreadable"))
    service = SettingsService(store)
    await service.load_settings()
    assert service.settings is None
    assert service.error == "Failed to load settings: unreadable"
    assert service.loading is False


@pytest.mark.asyncio
async def test_update_merges_and_persists(store):
    service = SettingsService(store)
    await service.load_settings()
    updated = await service.update_settings({"notifications_enabled": True, "reminder_days": ["sat"]})

    assert updated.notifications_enabled is True
    assert updated.reminder_days == ["sat"]
    assert updated.reminder_time == "09:00"
    stored = await store.settings.get(DEFAULT_USER_ID)
    assert stored == updated
    assert service.settings == updated


@pytest.mark.asyncio
async def test_update_before_load_uses_minimal_shell(store):
    service = SettingsService(store)
    updated = await service.update_settings({"theme": "light"})
    assert updated.user_id == DEFAULT_USER_ID
    assert updated.notifications_enabled is False
    assert updated.reminder_time is None
    assert await store.settings.get(DEFAULT_USER_ID) == updated


@pytest.mark.asyncio
async def test_invalid_update_is_rejected(store):
    service = SettingsService(store)
    await service.load_settings()
    with pytest.raises(RecordValidationError):
        await service.update_settings({"reminder_time": "25:00"})
    with pytest.raises(RecordValidationError):
        await service.update_settings({"theme": "blue"})
    assert service.error.startswith("Failed to update settings")
    assert (await store.settings.get(DEFAULT_USER_ID)).reminder_time == "09:00"


@pytest.mark.asyncio
async def test_concurrent_first_loads_create_one_record(store):
    first = SettingsService(store)
    second = SettingsService(store)
    await asyncio.gather(first.load_settings(), second.load_settings())
    assert first.error is None
    assert second.error is None
    assert first.settings == second.settings == default_settings()
    assert await store.settings.count() == 1


@pytest.mark.asyncio
async def test_duplicate_on_create_reads_existing_record(store):
    existing = default_settings().model_copy(update={"theme": "dark"})
    get = AsyncMock(side_effect=[None, existing])
    store.settings.get = get
    store.settings.add = AsyncMock(
        side_effect=StoreError("Key already exists in settings: default")
    )
    service = SettingsService(store)
    await service.load_settings()
    assert service.error is None
    assert service.settings.theme == "dark"
