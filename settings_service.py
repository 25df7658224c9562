from typing import Dict, Optional

from base_service import BaseService
from db import StoreError
from schemas import WEEKDAYS, Settings, validate_settings

DEFAULT_USER_ID = "default"


def default_settings(user_id: str = DEFAULT_USER_ID) -> Settings:
    """Return the settings record created on first access."""
    return Settings(
        user_id=user_id,
        theme="auto",
        notifications_enabled=False,
        reminder_time="09:00",
        reminder_days=list(WEEKDAYS),
    )


class SettingsService(BaseService):
    """The single settings record of the local user."""

    def __init__(self, store, user_id: str = DEFAULT_USER_ID, **kwargs) -> None:
        super().__init__(store, **kwargs)
        self.user_id = user_id
        self._settings: Optional[Settings] = None

    @property
    def settings(self) -> Optional[Settings]:
        return self._settings

    async def load_settings(self) -> None:
        """Publish the stored settings, creating the defaults when absent."""
        self._loading = True
        self._error = None
        try:
            stored = await self.store.settings.get(self.user_id)
            if stored is None:
                stored = await self._create_defaults()
            self._settings = stored
        except Exception as e:
            self._record_error("load settings", e)
        finally:
            self._loading = False
            self._publish()

    async def _create_defaults(self) -> Settings:
        defaults = default_settings(self.user_id)
        try:
            await self.store.settings.add(defaults)
        except StoreError:
            # another load created the record first
            stored = await self.store.settings.get(self.user_id)
            if stored is None:
                raise
            return stored
        return defaults

    async def update_settings(self, updates: Dict[str, object]) -> Settings:
        self._error = None
        try:
            if self._settings is not None:
                current = self._settings.model_dump()
            else:
                current = {
                    "user_id": self.user_id,
                    "theme": "auto",
                    "notifications_enabled": False,
                }
            updated = validate_settings({**current, **updates})
            await self.store.settings.put(updated)
            self._settings = updated
            self._publish()
            return updated
        except Exception as e:
            self._record_error("update settings", e)
            raise
