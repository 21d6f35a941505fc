"""SQLite-backed persistent store: one table of JSON records per category.

Every public operation is a coroutine that runs the blocking sqlite call in a
worker thread with its own connection, so the event loop only suspends at the
I/O boundary.
"""
from __future__ import annotations

import asyncio
import json
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Union

from . import config
from .errors import DuplicateKey, StorageUnavailable
from .logging import get_logger

LOG = get_logger("store")

Record = Dict[str, object]
Predicate = Callable[[Record], bool]


def _table_sql(table: str) -> str:
    return f"""
        CREATE TABLE IF NOT EXISTS "{table}" (
            id TEXT PRIMARY KEY,
            origin TEXT,
            data_json TEXT NOT NULL
        );
    """


class ContentStore:
    """Durable per-category tables keyed by ``id``.

    ``db_path=None`` models an environment without a persistence backend:
    ``initialize()`` then raises StorageUnavailable and callers degrade.
    """

    def __init__(self, db_path: Optional[Union[str, Path]] = None, tables: Sequence[str] = config.ALL_STORES) -> None:
        self.db_path = Path(db_path) if db_path is not None else None
        self.tables = tuple(tables)
        self.is_initialized = False

    @property
    def is_supported(self) -> bool:
        return self.db_path is not None

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        if self.db_path is None:
            raise StorageUnavailable("No database path configured")
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    # schema -----------------------------------------------------------------

    def _ensure_schema(self) -> None:
        with self.connect() as conn:
            version = conn.execute("PRAGMA user_version").fetchone()[0]
            if version not in (0, config.DB_VERSION):
                raise StorageUnavailable(
                    f"Unsupported schema version {version} (expected {config.DB_VERSION})"
                )
            conn.executescript("".join(_table_sql(table) for table in self.tables))
            conn.execute(f"PRAGMA user_version = {config.DB_VERSION}")
            conn.commit()

    async def initialize(self) -> "ContentStore":
        """Open or create the database and its tables; idempotent."""
        if self.is_initialized:
            return self
        if not self.is_supported:
            raise StorageUnavailable("Persistent storage is not available in this environment")
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            await asyncio.to_thread(self._ensure_schema)
        except (sqlite3.Error, OSError) as exc:
            self.is_initialized = False
            raise StorageUnavailable(f"Could not open {self.db_path}: {exc}") from exc
        self.is_initialized = True
        LOG.info(f"Content store ready at {self.db_path} (schema v{config.DB_VERSION})")
        return self

    def _check(self, table: str) -> None:
        if table not in self.tables:
            raise ValueError(f"Unknown table: {table!r}")
        if not self.is_initialized:
            raise StorageUnavailable("Content store has not been initialized")

    # sync workers -------------------------------------------------------------

    @staticmethod
    def _decode(row: sqlite3.Row) -> Record:
        return json.loads(row["data_json"])

    @staticmethod
    def _encode(record: Record) -> str:
        return json.dumps(record, ensure_ascii=False)

    @staticmethod
    def _record_id(record: Record) -> str:
        record_id = record.get("id") if isinstance(record, dict) else None
        if record_id is None or record_id == "":
            raise ValueError("Record has no id")
        return str(record_id)

    def _get_all(self, table: str) -> List[Record]:
        with self.connect() as conn:
            rows = conn.execute(f'SELECT data_json FROM "{table}" ORDER BY rowid').fetchall()
        return [self._decode(row) for row in rows]

    def _get_by_id(self, table: str, record_id: str) -> Optional[Record]:
        with self.connect() as conn:
            row = conn.execute(f'SELECT data_json FROM "{table}" WHERE id = ?', (record_id,)).fetchone()
        return self._decode(row) if row else None

    def _count(self, table: str) -> int:
        with self.connect() as conn:
            return int(conn.execute(f'SELECT COUNT(*) FROM "{table}"').fetchone()[0])

    def _add(self, table: str, record: Record) -> bool:
        record_id = self._record_id(record)
        with self.connect() as conn:
            try:
                conn.execute(
                    f'INSERT INTO "{table}" (id, origin, data_json) VALUES (?, ?, ?)',
                    (record_id, record.get("origin"), self._encode(record)),
                )
            except sqlite3.IntegrityError as exc:
                raise DuplicateKey(table, record_id) from exc
            conn.commit()
        return True

    def _put(self, table: str, record: Record) -> bool:
        record_id = self._record_id(record)
        with self.connect() as conn:
            conn.execute(
                f"""
                INSERT INTO "{table}" (id, origin, data_json) VALUES (?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET origin = excluded.origin, data_json = excluded.data_json
                """,
                (record_id, record.get("origin"), self._encode(record)),
            )
            conn.commit()
        return True

    def _delete(self, table: str, record_id: str) -> bool:
        with self.connect() as conn:
            cur = conn.execute(f'DELETE FROM "{table}" WHERE id = ?', (record_id,))
            conn.commit()
            return cur.rowcount > 0

    def _bulk_add(self, table: str, records: Sequence[Record]) -> Dict[str, int]:
        added = 0
        skipped = 0
        with self.connect() as conn:
            for record in records:
                try:
                    record_id = self._record_id(record)
                except ValueError:
                    skipped += 1
                    continue
                cur = conn.execute(
                    f'INSERT OR IGNORE INTO "{table}" (id, origin, data_json) VALUES (?, ?, ?)',
                    (record_id, record.get("origin"), self._encode(record)),
                )
                if cur.rowcount:
                    added += 1
                else:
                    skipped += 1
            conn.commit()
        return {"added": added, "skipped": skipped}

    def _clear(self, table: str) -> int:
        with self.connect() as conn:
            cur = conn.execute(f'DELETE FROM "{table}"')
            conn.commit()
            return cur.rowcount

    def _delete_ids(self, table: str, ids: Sequence[str]) -> int:
        removed = 0
        with self.connect() as conn:
            for record_id in ids:
                cur = conn.execute(f'DELETE FROM "{table}" WHERE id = ?', (record_id,))
                removed += cur.rowcount
            conn.commit()
        return removed

    # async contract -------------------------------------------------------------

    async def get_all_data(self, table: str) -> List[Record]:
        self._check(table)
        records = await asyncio.to_thread(self._get_all, table)
        LOG.debug(f"Retrieved {len(records)} items from {table}")
        return records

    async def get_by_id(self, table: str, record_id: str) -> Optional[Record]:
        self._check(table)
        return await asyncio.to_thread(self._get_by_id, table, str(record_id))

    async def get_store_count(self, table: str) -> int:
        self._check(table)
        return await asyncio.to_thread(self._count, table)

    async def add_data(self, table: str, record: Record) -> bool:
        """Insert a new record; raise DuplicateKey when the id is taken."""
        self._check(table)
        result = await asyncio.to_thread(self._add, table, record)
        LOG.debug(f"Added item {record.get('id')} to {table}")
        return result

    async def update_data(self, table: str, record: Record) -> bool:
        """Upsert by id."""
        self._check(table)
        result = await asyncio.to_thread(self._put, table, record)
        LOG.debug(f"Updated item {record.get('id')} in {table}")
        return result

    async def delete_data(self, table: str, record_id: str) -> bool:
        """Return True if a row was removed; a missing id is not an error."""
        self._check(table)
        if not record_id:
            LOG.warning(f"Invalid id provided for deletion from {table}: {record_id!r}")
            return False
        removed = await asyncio.to_thread(self._delete, table, str(record_id))
        if not removed:
            LOG.info(f"Item {record_id} not found in {table}, nothing to delete")
        return removed

    async def bulk_add_data(self, table: str, records: Sequence[Record]) -> bool:
        """Insert each record, skipping ids that already exist.

        Not all-or-nothing: returns True when at least one record landed.
        """
        self._check(table)
        if not records:
            LOG.warning(f"No items to add in bulk_add_data({table})")
            return False
        counts = await asyncio.to_thread(self._bulk_add, table, list(records))
        LOG.info(f"Bulk add to {table}: {counts['added']} added, {counts['skipped']} skipped")
        return counts["added"] > 0

    async def clear_store(self, table: str) -> bool:
        self._check(table)
        removed = await asyncio.to_thread(self._clear, table)
        LOG.info(f"Cleared {removed} items from {table}")
        return True

    async def scan(self, table: str, predicate: Predicate) -> List[Record]:
        """Full-table read filtered by ``predicate``."""
        return [record for record in await self.get_all_data(table) if predicate(record)]

    async def delete_where(self, table: str, predicate: Predicate) -> int:
        matches = await self.scan(table, predicate)
        if not matches:
            return 0
        ids = [str(record["id"]) for record in matches if record.get("id")]
        return await asyncio.to_thread(self._delete_ids, table, ids)

    async def table_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for table in self.tables:
            counts[table] = await self.get_store_count(table)
        return counts

    def status(self) -> Dict[str, object]:
        return {
            "connected": self.is_initialized,
            "name": config.DB_NAME,
            "version": config.DB_VERSION if self.is_initialized else None,
            "path": str(self.db_path) if self.db_path else None,
            "objectStores": list(self.tables) if self.is_initialized else [],
        }
