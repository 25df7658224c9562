import asyncio
import datetime
import json
import logging
from typing import Dict, List, Optional, Tuple, Union

from pydantic import ValidationError

from db import LocalStore, StoreError
from schemas import ExportData, ExportTables

logger = logging.getLogger(__name__)

EXPORT_VERSION = 1


def backup_filename(day: datetime.date) -> str:
    return f"protocol-backup-{day.isoformat()}.json"


class ExportService:
    """Inspection, backup and restore of the whole local store."""

    def __init__(self, store: LocalStore, clock=datetime.datetime.now) -> None:
        self.store = store
        self.clock = clock

    def table_names(self) -> List[str]:
        return list(self.store.tables)

    async def get_table_stats(self, name: str) -> Dict[str, object]:
        """Return the row count and one sample record of table ``name``."""
        try:
            table = self.store.table(name)
            count = await table.count()
            rows = await table.to_list()
            sample = [r.model_dump(mode="json") for r in rows[:1]]
            return {"count": count, "sample": sample}
        except Exception as e:
            logger.error("Failed to get stats for %s: %s", name, e)
            return {"count": 0, "sample": []}

    async def clear_table(self, name: str) -> bool:
        try:
            await self.store.table(name).clear()
            return True
        except StoreError as e:
            logger.error("Failed to clear %s: %s", name, e)
            return False

    async def clear_all_data(self) -> bool:
        try:
            await asyncio.gather(*(t.clear() for t in self.store.tables.values()))
            return True
        except StoreError as e:
            logger.error("Failed to clear all data: %s", e)
            return False

    async def export_data(self) -> Optional[ExportData]:
        try:
            tables = {
                name: await table.to_list() for name, table in self.store.tables.items()
            }
            return ExportData(
                version=EXPORT_VERSION,
                exported_at=self.clock(),
                data=ExportTables(**tables),
            )
        except Exception as e:
            logger.error("Failed to export data: %s", e)
            return None

    @staticmethod
    def to_json(data: ExportData) -> str:
        return data.model_dump_json(indent=2)

    @staticmethod
    def validate_import(payload: Union[str, dict]) -> Tuple[bool, Union[ExportData, str]]:
        """Check a backup document; return ``(True, data)`` or ``(False, issues)``."""
        try:
            if isinstance(payload, str):
                payload = json.loads(payload)
            return True, ExportData.model_validate(payload)
        except ValidationError as e:
            issues = ", ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                for err in e.errors()
            )
            return False, issues
        except json.JSONDecodeError as e:
            return False, f"invalid JSON: {e}"

    async def import_data(
        self, data: ExportData, mode: str = "merge"
    ) -> Tuple[bool, Optional[str]]:
        """Write a backup into the store.

        ``merge`` upserts every record by key; ``replace`` empties every
        table first. Either way the whole import is one transaction.
        """
        if mode not in ("merge", "replace"):
            return False, f"Unknown import mode: {mode}"
        records = {
            name: list(getattr(data.data, name)) for name in self.store.tables
        }
        try:
            await self.store.replace_all(records, replace=mode == "replace")
        except StoreError as e:
            logger.error("Failed to import data: %s", e)
            return False, str(e)
        return True, None
