import sqlite3
import aiosqlite
import datetime
import json
from contextlib import contextmanager, asynccontextmanager
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Type

from schemas import (
    RecordSchema,
    Protocol,
    Routine,
    Exercise,
    TrackingLog,
    Settings,
    DailyCompletion,
)


class StoreError(RuntimeError):
    """Raised when the local store cannot be opened, read or written."""


def _q(name: str) -> str:
    return f'"{name}"'


_V1_TABLES = {
    "protocols": (
        """CREATE TABLE protocols (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                description TEXT,
                category TEXT NOT NULL DEFAULT 'general',
                duration TEXT NOT NULL,
                status TEXT NOT NULL,
                target_metric TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );""",
        [
            "id",
            "name",
            "description",
            "category",
            "duration",
            "status",
            "target_metric",
            "created_at",
            "updated_at",
        ],
    ),
    "routines": (
        """CREATE TABLE routines (
                id TEXT PRIMARY KEY,
                protocol_id TEXT NOT NULL,
                name TEXT NOT NULL,
                "order" INTEGER NOT NULL DEFAULT 0,
                frequency TEXT NOT NULL,
                time_of_day TEXT,
                notes TEXT
            );""",
        ["id", "protocol_id", "name", "order", "frequency", "time_of_day", "notes"],
    ),
    "exercises": (
        """CREATE TABLE exercises (
                id TEXT PRIMARY KEY,
                routine_id TEXT NOT NULL,
                name TEXT NOT NULL,
                sets INTEGER,
                reps INTEGER,
                weight REAL,
                equipment_type TEXT,
                notes TEXT
            );""",
        [
            "id",
            "routine_id",
            "name",
            "sets",
            "reps",
            "weight",
            "equipment_type",
            "notes",
        ],
    ),
    "tracking_logs": (
        """CREATE TABLE tracking_logs (
                id TEXT PRIMARY KEY,
                exercise_id TEXT NOT NULL,
                date TEXT NOT NULL,
                completed INTEGER NOT NULL DEFAULT 0,
                sets_done INTEGER,
                reps_done INTEGER,
                weight_used REAL,
                duration_taken REAL,
                energy_level INTEGER,
                difficulty_felt INTEGER,
                notes TEXT
            );""",
        [
            "id",
            "exercise_id",
            "date",
            "completed",
            "sets_done",
            "reps_done",
            "weight_used",
            "duration_taken",
            "energy_level",
            "difficulty_felt",
            "notes",
        ],
    ),
    "settings": (
        """CREATE TABLE settings (
                user_id TEXT PRIMARY KEY,
                theme TEXT NOT NULL DEFAULT 'auto',
                notifications_enabled INTEGER NOT NULL DEFAULT 0,
                rest_day_schedule TEXT
            );""",
        ["user_id", "theme", "notifications_enabled", "rest_day_schedule"],
    ),
}

_V1_INDEXES = {
    "idx_protocols_status": "CREATE INDEX IF NOT EXISTS idx_protocols_status ON protocols(status);",
    "idx_protocols_created_at": "CREATE INDEX IF NOT EXISTS idx_protocols_created_at ON protocols(created_at);",
    "idx_routines_protocol_id": "CREATE INDEX IF NOT EXISTS idx_routines_protocol_id ON routines(protocol_id);",
    "idx_routines_order": 'CREATE INDEX IF NOT EXISTS idx_routines_order ON routines("order");',
    "idx_exercises_routine_id": "CREATE INDEX IF NOT EXISTS idx_exercises_routine_id ON exercises(routine_id);",
    "idx_tracking_logs_exercise_id": "CREATE INDEX IF NOT EXISTS idx_tracking_logs_exercise_id ON tracking_logs(exercise_id);",
    "idx_tracking_logs_exercise_date": "CREATE INDEX IF NOT EXISTS idx_tracking_logs_exercise_date ON tracking_logs(exercise_id, date);",
}

_V2_TABLES = {
    **_V1_TABLES,
    "settings": (
        """CREATE TABLE settings (
                user_id TEXT PRIMARY KEY,
                theme TEXT NOT NULL DEFAULT 'auto',
                notifications_enabled INTEGER NOT NULL DEFAULT 0,
                rest_day_schedule TEXT,
                reminder_time TEXT,
                reminder_days TEXT
            );""",
        [
            "user_id",
            "theme",
            "notifications_enabled",
            "rest_day_schedule",
            "reminder_time",
            "reminder_days",
        ],
    ),
    "daily_completions": (
        """CREATE TABLE daily_completions (
                id TEXT PRIMARY KEY,
                protocol_id TEXT NOT NULL,
                date TEXT NOT NULL,
                completed_at TEXT NOT NULL,
                notes TEXT
            );""",
        ["id", "protocol_id", "date", "completed_at", "notes"],
    ),
}

_V2_INDEXES = {
    **_V1_INDEXES,
    "idx_daily_completions_protocol_id": "CREATE INDEX IF NOT EXISTS idx_daily_completions_protocol_id ON daily_completions(protocol_id);",
    "idx_daily_completions_date": "CREATE INDEX IF NOT EXISTS idx_daily_completions_date ON daily_completions(date);",
    "idx_daily_completions_protocol_date": "CREATE INDEX IF NOT EXISTS idx_daily_completions_protocol_date ON daily_completions(protocol_id, date);",
}

_V3_TABLES = {
    **_V2_TABLES,
    "protocols": (
        """CREATE TABLE protocols (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                description TEXT,
                category TEXT NOT NULL DEFAULT 'general',
                duration TEXT NOT NULL,
                status TEXT NOT NULL,
                target_metric TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                schedule_days TEXT
            );""",
        [
            "id",
            "name",
            "description",
            "category",
            "duration",
            "status",
            "target_metric",
            "created_at",
            "updated_at",
            "schedule_days",
        ],
    ),
    "app_state": (
        """CREATE TABLE app_state (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            );""",
        ["key", "value"],
    ),
}

_V3_INDEXES = dict(_V2_INDEXES)


class Database:
    """Provides SQLite connection management and versioned schema initialization.

    Every entry of ``_SCHEMA_VERSIONS`` declares the complete set of tables
    and indexes for that version. Opening a database applies each version
    newer than the stored ``user_version`` in turn.
    """

    _SCHEMA_VERSIONS = {
        1: (_V1_TABLES, _V1_INDEXES),
        2: (_V2_TABLES, _V2_INDEXES),
        3: (_V3_TABLES, _V3_INDEXES),
    }
    LATEST_VERSION = max(_SCHEMA_VERSIONS)

    def __init__(self, db_path: str = "protocols.db") -> None:
        self._db_path = db_path
        self._ensure_schema()

    @property
    def db_path(self) -> str:
        return self._db_path

    @contextmanager
    def _connection(self):
        try:
            connection = sqlite3.connect(self._db_path)
        except sqlite3.Error as e:
            raise StoreError(f"Failed to open {self._db_path}: {e}") from e
        try:
            yield connection
            connection.commit()
        except sqlite3.Error as e:
            raise StoreError(str(e)) from e
        finally:
            connection.close()

    def schema_version(self) -> int:
        with self._connection() as conn:
            return conn.execute("PRAGMA user_version;").fetchone()[0]

    def _ensure_schema(self) -> None:
        with self._connection() as conn:
            current = conn.execute("PRAGMA user_version;").fetchone()[0]
            if current > self.LATEST_VERSION:
                raise StoreError(
                    f"Database version {current} is newer than supported version {self.LATEST_VERSION}"
                )
            for version in sorted(self._SCHEMA_VERSIONS):
                if version <= current:
                    continue
                tables, indexes = self._SCHEMA_VERSIONS[version]
                for table, (sql, columns) in tables.items():
                    self._ensure_table(conn, table, sql, columns)
                for sql in indexes.values():
                    conn.execute(sql)
                conn.execute(f"PRAGMA user_version = {int(version)};")

    def _ensure_table(
        self, conn: sqlite3.Connection, table: str, sql: str, columns: List[str]
    ) -> None:
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?;", (table,)
        )
        if cur.fetchone() is None:
            conn.execute(sql)
            return

        cur = conn.execute(f"PRAGMA table_info({table});")
        existing_cols = [row[1] for row in cur.fetchall()]
        if existing_cols == columns:
            return

        conn.execute(f"DROP TABLE IF EXISTS {table}_old;")
        conn.execute(f"ALTER TABLE {table} RENAME TO {table}_old;")
        conn.execute(sql)

        common = [c for c in existing_cols if c in columns]
        if common:
            cols = ", ".join(_q(c) for c in common)
            conn.execute(
                f"INSERT INTO {table} ({cols}) SELECT {cols} FROM {table}_old;"
            )
        conn.execute(f"DROP TABLE {table}_old;")


class AsyncDatabase(Database):
    """Provides asynchronous connection management."""

    @asynccontextmanager
    async def _async_connection(self):
        try:
            conn = await aiosqlite.connect(self._db_path)
        except sqlite3.Error as e:
            raise StoreError(f"Failed to open {self._db_path}: {e}") from e
        try:
            yield conn
            await conn.commit()
        except sqlite3.Error as e:
            await conn.rollback()
            raise StoreError(str(e)) from e
        except BaseException:
            await conn.rollback()
            raise
        finally:
            await conn.close()

    def transaction(self):
        """Return a context manager yielding one connection committed on success."""
        return self._async_connection()

    async def execute(
        self, query: str, params: Tuple = (), conn: Optional[aiosqlite.Connection] = None
    ) -> int:
        """Run ``query`` and return the number of affected rows."""
        if conn is not None:
            try:
                cursor = await conn.execute(query, params)
            except sqlite3.Error as e:
                raise StoreError(str(e)) from e
            return cursor.rowcount
        async with self._async_connection() as own:
            cursor = await own.execute(query, params)
            return cursor.rowcount

    async def fetch_all(
        self, query: str, params: Tuple = (), conn: Optional[aiosqlite.Connection] = None
    ) -> List[Tuple]:
        if conn is not None:
            try:
                cursor = await conn.execute(query, params)
                return list(await cursor.fetchall())
            except sqlite3.Error as e:
                raise StoreError(str(e)) from e
        async with self._async_connection() as own:
            cursor = await own.execute(query, params)
            return list(await cursor.fetchall())


class RecordTable:
    """Record-level access to one table of the local store.

    Records go in and come out as validated schema models. List-valued
    fields are stored as JSON text and booleans as integers.
    """

    def __init__(
        self,
        store: AsyncDatabase,
        name: str,
        model: Type[RecordSchema],
        key: str = "id",
        json_columns: Iterable[str] = (),
        bool_columns: Iterable[str] = (),
    ) -> None:
        self.store = store
        self.name = name
        self.model = model
        self.key = key
        self.columns: List[str] = list(model.model_fields)
        self.json_columns = set(json_columns)
        self.bool_columns = set(bool_columns)

    def _to_value(self, column: str, value):
        if value is None:
            return None
        if column in self.json_columns:
            return json.dumps(value)
        if isinstance(value, bool):
            return int(value)
        if isinstance(value, datetime.datetime):
            return value.isoformat()
        return value

    def _to_row(self, record: RecordSchema) -> Dict[str, object]:
        values = record.model_dump()
        return {col: self._to_value(col, values[col]) for col in self.columns}

    def _from_row(self, row: Sequence) -> RecordSchema:
        data = dict(zip(self.columns, row))
        for col in self.json_columns:
            if data.get(col) is not None:
                data[col] = json.loads(data[col])
        for col in self.bool_columns:
            if data.get(col) is not None:
                data[col] = bool(data[col])
        return self.model.model_validate(data)

    def _select(self) -> str:
        return f"SELECT {', '.join(_q(c) for c in self.columns)} FROM {self.name}"

    def _check_fields(self, fields: Iterable[str]) -> None:
        unknown = [f for f in fields if f not in self.columns]
        if unknown:
            raise StoreError(f"Unknown field(s) for {self.name}: {', '.join(unknown)}")

    async def get(self, key, conn=None) -> Optional[RecordSchema]:
        rows = await self.store.fetch_all(
            f"{self._select()} WHERE {_q(self.key)} = ?;", (key,), conn
        )
        return self._from_row(rows[0]) if rows else None

    async def to_list(self, conn=None) -> List[RecordSchema]:
        rows = await self.store.fetch_all(f"{self._select()} ORDER BY rowid;", (), conn)
        return [self._from_row(r) for r in rows]

    async def where(self, conn=None, **fields) -> List[RecordSchema]:
        """Return records whose ``fields`` all equal the given values."""
        if not fields:
            return await self.to_list(conn)
        self._check_fields(fields)
        clause = " AND ".join(f"{_q(f)} = ?" for f in fields)
        params = tuple(self._to_value(f, v) for f, v in fields.items())
        rows = await self.store.fetch_all(
            f"{self._select()} WHERE {clause} ORDER BY rowid;", params, conn
        )
        return [self._from_row(r) for r in rows]

    async def where_in(self, field: str, values: Sequence, conn=None) -> List[RecordSchema]:
        self._check_fields([field])
        if not values:
            return []
        marks = ", ".join("?" for _ in values)
        rows = await self.store.fetch_all(
            f"{self._select()} WHERE {_q(field)} IN ({marks}) ORDER BY rowid;",
            tuple(self._to_value(field, v) for v in values),
            conn,
        )
        return [self._from_row(r) for r in rows]

    async def add(self, record: RecordSchema, conn=None) -> str:
        row = self._to_row(record)
        cols = ", ".join(_q(c) for c in row)
        marks = ", ".join("?" for _ in row)
        try:
            await self.store.execute(
                f"INSERT INTO {self.name} ({cols}) VALUES ({marks});",
                tuple(row.values()),
                conn,
            )
        except StoreError as e:
            if isinstance(e.__cause__, sqlite3.IntegrityError):
                raise StoreError(
                    f"Key already exists in {self.name}: {row[self.key]}"
                ) from e
            raise
        return row[self.key]

    async def put(self, record: RecordSchema, conn=None) -> str:
        row = self._to_row(record)
        cols = ", ".join(_q(c) for c in row)
        marks = ", ".join("?" for _ in row)
        updates = ", ".join(
            f"{_q(c)}=excluded.{_q(c)}" for c in row if c != self.key
        )
        await self.store.execute(
            f"INSERT INTO {self.name} ({cols}) VALUES ({marks}) "
            f"ON CONFLICT({_q(self.key)}) DO UPDATE SET {updates};",
            tuple(row.values()),
            conn,
        )
        return row[self.key]

    async def bulk_put(self, records: Iterable[RecordSchema], conn=None) -> None:
        if conn is None:
            async with self.store.transaction() as own:
                for record in records:
                    await self.put(record, own)
            return
        for record in records:
            await self.put(record, conn)

    async def update(self, key, changes: Dict[str, object], conn=None) -> int:
        """Merge ``changes`` into the stored record; return rows changed (0 or 1)."""
        changes = {k: v for k, v in changes.items() if k != self.key}
        if not changes:
            return 0
        self._check_fields(changes)
        assignments = ", ".join(f"{_q(c)} = ?" for c in changes)
        params = tuple(self._to_value(c, v) for c, v in changes.items())
        return await self.store.execute(
            f"UPDATE {self.name} SET {assignments} WHERE {_q(self.key)} = ?;",
            params + (key,),
            conn,
        )

    async def delete(self, key, conn=None) -> None:
        await self.store.execute(
            f"DELETE FROM {self.name} WHERE {_q(self.key)} = ?;", (key,), conn
        )

    async def delete_where_in(self, field: str, values: Sequence, conn=None) -> None:
        self._check_fields([field])
        if not values:
            return
        marks = ", ".join("?" for _ in values)
        await self.store.execute(
            f"DELETE FROM {self.name} WHERE {_q(field)} IN ({marks});",
            tuple(self._to_value(field, v) for v in values),
            conn,
        )

    async def clear(self, conn=None) -> None:
        await self.store.execute(f"DELETE FROM {self.name};", (), conn)

    async def count(self, conn=None) -> int:
        rows = await self.store.fetch_all(f"SELECT COUNT(*) FROM {self.name};", (), conn)
        return rows[0][0] if rows else 0


class AppStateRepository:
    """Small key/value table for device-local bookkeeping."""

    def __init__(self, store: AsyncDatabase) -> None:
        self.store = store

    async def get_text(self, key: str, default: Optional[str] = None) -> Optional[str]:
        rows = await self.store.fetch_all(
            "SELECT value FROM app_state WHERE key = ?;", (key,)
        )
        return rows[0][0] if rows else default

    async def set_text(self, key: str, value: str) -> None:
        await self.store.execute(
            "INSERT INTO app_state (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value=excluded.value;",
            (key, value),
        )


class LocalStore(AsyncDatabase):
    """The single handle to the protocol tracker's local database."""

    def __init__(self, db_path: str = "protocols.db") -> None:
        super().__init__(db_path)
        self.protocols = RecordTable(
            self, "protocols", Protocol, json_columns={"schedule_days"}
        )
        self.routines = RecordTable(
            self, "routines", Routine, json_columns={"frequency"}
        )
        self.exercises = RecordTable(self, "exercises", Exercise)
        self.tracking_logs = RecordTable(
            self, "tracking_logs", TrackingLog, bool_columns={"completed"}
        )
        self.settings = RecordTable(
            self,
            "settings",
            Settings,
            key="user_id",
            json_columns={"reminder_days", "rest_day_schedule"},
            bool_columns={"notifications_enabled"},
        )
        self.daily_completions = RecordTable(
            self, "daily_completions", DailyCompletion
        )
        self.app_state = AppStateRepository(self)
        self.tables: Dict[str, RecordTable] = {
            t.name: t
            for t in (
                self.protocols,
                self.routines,
                self.exercises,
                self.tracking_logs,
                self.settings,
                self.daily_completions,
            )
        }

    def table(self, name: str) -> RecordTable:
        try:
            return self.tables[name]
        except KeyError:
            raise StoreError(f"Table {name} not found") from None

    async def replace_all(
        self, records: Dict[str, Sequence[RecordSchema]], replace: bool = False
    ) -> None:
        """Write ``records`` for several tables in one transaction.

        With ``replace`` every table is emptied first and records are
        inserted; otherwise records are upserted by key.
        """
        tables = {name: self.table(name) for name in records}
        async with self.transaction() as conn:
            if replace:
                for table in self.tables.values():
                    await table.clear(conn)
            for name, items in records.items():
                table = tables[name]
                for record in items:
                    if replace:
                        await table.add(record, conn)
                    else:
                        await table.put(record, conn)
