"""
SQLite-backed prompt cache.

One connection is shared by all operations; calls run in worker threads via
asyncio.to_thread and are serialized by an asyncio lock so that reads never
observe a half-applied transaction.
"""

import asyncio
import logging
import sqlite3
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Dict, Iterable, List, Optional, Union

from ..models.records import PromptRecord, normalize_tag
from ..vault.errors import CacheError
from .base import CacheTransaction, PromptCache

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS prompts (
    id TEXT PRIMARY KEY,
    created TEXT,
    title TEXT,
    description TEXT,
    text TEXT NOT NULL DEFAULT '',
    file_path TEXT NOT NULL,
    previous_file_path TEXT,
    file_hash TEXT
);

CREATE INDEX IF NOT EXISTS idx_prompts_file_path ON prompts(file_path);

CREATE TABLE IF NOT EXISTS tags (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE COLLATE NOCASE
);

CREATE TABLE IF NOT EXISTS prompt_tags (
    prompt_id TEXT NOT NULL REFERENCES prompts(id) ON DELETE CASCADE,
    tag_id INTEGER NOT NULL REFERENCES tags(id) ON DELETE CASCADE,
    PRIMARY KEY (prompt_id, tag_id)
);
"""

PROMPT_COLUMNS = "id, created, title, description, text, file_path, previous_file_path, file_hash"


def _upsert_tags_sync(conn: sqlite3.Connection, names: Iterable[str]) -> None:
    for name in names:
        normalized = normalize_tag(name)
        if normalized:
            conn.execute("INSERT OR IGNORE INTO tags (name) VALUES (?)", (normalized,))


def _put_sync(conn: sqlite3.Connection, record: PromptRecord) -> None:
    conn.execute(
        f"INSERT OR REPLACE INTO prompts ({PROMPT_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
        (
            record.id, record.created, record.title, record.description,
            record.text, record.file_path, record.previous_file_path, record.file_hash,
        )
    )
    conn.execute("DELETE FROM prompt_tags WHERE prompt_id = ?", (record.id,))
    _upsert_tags_sync(conn, record.tags)
    for tag in record.tags:
        conn.execute(
            "INSERT OR IGNORE INTO prompt_tags (prompt_id, tag_id) "
            "SELECT ?, id FROM tags WHERE name = ?",
            (record.id, tag)
        )


def _delete_sync(conn: sqlite3.Connection, record_id: str) -> bool:
    cursor = conn.execute("DELETE FROM prompts WHERE id = ?", (record_id,))
    return cursor.rowcount > 0


def _delete_tags_sync(conn: sqlite3.Connection, names: Iterable[str]) -> None:
    for name in names:
        conn.execute("DELETE FROM tags WHERE name = ?", (name,))


def _load_records_sync(conn: sqlite3.Connection, record_id: Optional[str] = None) -> List[PromptRecord]:
    where = " WHERE id = ?" if record_id is not None else ""
    params = (record_id,) if record_id is not None else ()

    rows = conn.execute(
        f"SELECT {PROMPT_COLUMNS} FROM prompts{where} ORDER BY id", params
    ).fetchall()

    tag_where = " WHERE pt.prompt_id = ?" if record_id is not None else ""
    tags_by_prompt: Dict[str, List[str]] = {}
    for prompt_id, name in conn.execute(
        "SELECT pt.prompt_id, t.name FROM prompt_tags pt "
        f"JOIN tags t ON t.id = pt.tag_id{tag_where}", params
    ):
        tags_by_prompt.setdefault(prompt_id, []).append(name)

    return [
        PromptRecord(
            id=row["id"],
            created=row["created"],
            title=row["title"],
            description=row["description"],
            text=row["text"],
            file_path=row["file_path"],
            previous_file_path=row["previous_file_path"],
            file_hash=row["file_hash"],
            tags=tags_by_prompt.get(row["id"], [])
        )
        for row in rows
    ]


class _SqliteTransaction(CacheTransaction):

    def __init__(self, cache: 'SqlitePromptCache'):
        self._cache = cache

    async def put(self, record: PromptRecord) -> None:
        await self._cache._run(_put_sync, record)

    async def delete(self, record_id: str) -> bool:
        return await self._cache._run(_delete_sync, record_id)

    async def upsert_tags(self, names: Iterable[str]) -> None:
        await self._cache._run(_upsert_tags_sync, list(names))

    async def delete_tags(self, names: Iterable[str]) -> None:
        await self._cache._run(_delete_tags_sync, list(names))


class SqlitePromptCache(PromptCache):
    """
    Persistent cache stored in a SQLite database file.

    Args:
        db_path: Database file, or ":memory:"
    """

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = asyncio.Lock()

    def _connect(self) -> sqlite3.Connection:
        if str(self.db_path) != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(str(self.db_path), check_same_thread=False, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys=ON")
        conn.executescript(SCHEMA)
        return conn

    async def initialize(self) -> None:
        if self._conn is not None:
            return
        try:
            self._conn = await asyncio.to_thread(self._connect)
        except sqlite3.Error as e:
            raise CacheError(f"Failed to open cache {self.db_path}: {e}") from e
        logger.info(f"Opened prompt cache at {self.db_path}")

    async def close(self) -> None:
        if self._conn is None:
            return
        async with self._lock:
            await asyncio.to_thread(self._conn.close)
            self._conn = None
        logger.debug(f"Closed prompt cache at {self.db_path}")

    async def _run(self, func: Callable[..., Any], *args: Any) -> Any:
        if self._conn is None:
            raise CacheError("Cache is not initialized")
        try:
            return await asyncio.to_thread(func, self._conn, *args)
        except sqlite3.Error as e:
            raise CacheError(f"SQLite operation failed: {e}") from e

    async def get(self, record_id: str) -> Optional[PromptRecord]:
        async with self._lock:
            records = await self._run(_load_records_sync, record_id)
        return records[0] if records else None

    async def list_records(self) -> List[PromptRecord]:
        async with self._lock:
            return await self._run(_load_records_sync)

    async def list_tags(self) -> List[str]:
        async with self._lock:
            rows = await self._run(
                lambda conn: conn.execute("SELECT name FROM tags ORDER BY name").fetchall()
            )
        return [row["name"] for row in rows]

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[CacheTransaction]:
        async with self._lock:
            await self._run(lambda conn: conn.execute("BEGIN IMMEDIATE"))
            try:
                yield _SqliteTransaction(self)
                await self._run(lambda conn: conn.execute("COMMIT"))
            except BaseException:
                # rollback() is a no-op when no transaction is open
                self._conn.rollback()
                logger.debug("Rolled back cache transaction")
                raise
