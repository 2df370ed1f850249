import sqlite3
import aiosqlite
import datetime
import json
from contextlib import contextmanager, asynccontextmanager
from typing import Iterable, List, Optional, Tuple

from models import WorkoutDraft, WorkoutRecord, parse_timestamp


def sort_key(date: datetime.datetime) -> str:
    """Fixed-width UTC timestamp so text ordering matches time ordering."""
    return parse_timestamp(date).astimezone(datetime.timezone.utc).strftime(
        "%Y-%m-%dT%H:%M:%S.%fZ"
    )


class Database:
    """Provides SQLite connection management and schema initialization."""

    _TABLE_DEFINITIONS = {
        "drafts": (
            """CREATE TABLE drafts (
                    key TEXT PRIMARY KEY,
                    data TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );""",
            ["key", "data", "updated_at"],
        ),
        "workout_documents": (
            """CREATE TABLE workout_documents (
                    user_id TEXT NOT NULL,
                    id TEXT NOT NULL,
                    date TEXT NOT NULL,
                    data TEXT NOT NULL,
                    PRIMARY KEY (user_id, id)
                );""",
            ["user_id", "id", "date", "data"],
        ),
    }

    _PRIMARY_KEYS = {
        "drafts": ["key"],
        "workout_documents": ["user_id", "id"],
    }

    def __init__(self, db_path: str = "ledger.db") -> None:
        self._db_path = db_path
        self._ensure_schema()

    @contextmanager
    def _connection(self):
        connection = sqlite3.connect(self._db_path)
        try:
            yield connection
            connection.commit()
        finally:
            connection.close()

    def _ensure_schema(self) -> None:
        with self._connection() as conn:
            for table, (sql, columns) in self._TABLE_DEFINITIONS.items():
                self._ensure_table(conn, table, sql, columns)

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

        keys = self._PRIMARY_KEYS.get(table, [])
        common = [c for c in columns if c in existing_cols]
        if common and all(k in existing_cols for k in keys):
            missing = [c for c in columns if c not in existing_cols]

            def default_val(col: str) -> str:
                if col == "data":
                    return "'{}'"
                if col == "updated_at":
                    return "strftime('%Y-%m-%dT%H:%M:%fZ', 'now')"
                return "''"

            cols = ", ".join(common + missing)
            values = ", ".join(
                [f"COALESCE({c}, {default_val(c)})" for c in common]
                + [default_val(c) for c in missing]
            )
            conn.execute(
                f"INSERT OR IGNORE INTO {table} ({cols}) SELECT {values} FROM {table}_old;"
            )
        conn.execute(f"DROP TABLE {table}_old;")


class BaseRepository(Database):
    """Base repository providing helper methods."""

    def execute(self, query: str, params: Tuple = ()) -> int:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.lastrowid

    def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.fetchall()


class AsyncDatabase(Database):
    """Provides asynchronous connection management."""

    @asynccontextmanager
    async def _async_connection(self):
        conn = await aiosqlite.connect(self._db_path)
        try:
            yield conn
            await conn.commit()
        finally:
            await conn.close()


class AsyncBaseRepository(AsyncDatabase):
    """Asynchronous variant of BaseRepository using aiosqlite."""

    async def execute(self, query: str, params: Tuple = ()) -> int:
        async with self._async_connection() as conn:
            cursor = await conn.execute(query, params)
            await conn.commit()
            return cursor.lastrowid

    async def executemany(self, query: str, rows: List[Tuple]) -> None:
        async with self._async_connection() as conn:
            await conn.executemany(query, rows)
            await conn.commit()

    async def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        async with self._async_connection() as conn:
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()
            return rows


class DraftRepository(BaseRepository):
    """Autosave slot for the single in-progress workout."""

    KEY = "current"

    def save(self, draft: WorkoutDraft) -> None:
        draft.last_modified = datetime.datetime.now(datetime.timezone.utc)
        self.execute(
            "INSERT OR REPLACE INTO drafts (key, data, updated_at) VALUES (?, ?, ?);",
            (self.KEY, json.dumps(draft.to_dict()), draft.last_modified.isoformat()),
        )

    def load(self) -> Optional[WorkoutDraft]:
        rows = self.fetch_all("SELECT data FROM drafts WHERE key = ?;", (self.KEY,))
        if not rows:
            return None
        try:
            return WorkoutDraft.from_dict(json.loads(rows[0][0]))
        except ValueError:
            self.clear()
            return None

    def has_draft(self) -> bool:
        return bool(
            self.fetch_all("SELECT 1 FROM drafts WHERE key = ?;", (self.KEY,))
        )

    def clear(self) -> None:
        self.execute("DELETE FROM drafts WHERE key = ?;", (self.KEY,))


class AsyncWorkoutDocumentRepository(AsyncBaseRepository):
    """Async repository for per-user workout documents."""

    async def upsert(self, user_id: str, record: WorkoutRecord) -> None:
        await self.execute(
            "INSERT OR REPLACE INTO workout_documents (user_id, id, date, data) VALUES (?, ?, ?, ?);",
            (user_id, record.id, sort_key(record.date), json.dumps(record.to_dict())),
        )

    async def upsert_many(self, user_id: str, records: Iterable[WorkoutRecord]) -> int:
        rows = [
            (user_id, r.id, sort_key(r.date), json.dumps(r.to_dict())) for r in records
        ]
        if rows:
            await self.executemany(
                "INSERT OR REPLACE INTO workout_documents (user_id, id, date, data) VALUES (?, ?, ?, ?);",
                rows,
            )
        return len(rows)

    async def delete(self, user_id: str, workout_id: str) -> None:
        await self.execute(
            "DELETE FROM workout_documents WHERE user_id = ? AND id = ?;",
            (user_id, workout_id),
        )

    async def fetch_documents(self, user_id: str) -> List[dict]:
        rows = await self.fetch_all(
            "SELECT data FROM workout_documents WHERE user_id = ? ORDER BY date DESC, id;",
            (user_id,),
        )
        return [json.loads(r[0]) for r in rows]

    async def fetch_records(self, user_id: str) -> List[WorkoutRecord]:
        return [WorkoutRecord.from_dict(d) for d in await self.fetch_documents(user_id)]
