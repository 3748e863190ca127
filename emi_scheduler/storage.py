"""
Storage Backend Module

Provides the async storage interface shared by the loan repository, the ledger
and the notification store, with an in-memory implementation (testing) and a
SQLite implementation (persistence). All monetary values stored as Decimal strings.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Any, Union
from decimal import Decimal
from datetime import datetime, date, timezone
from dataclasses import dataclass, asdict
from contextlib import asynccontextmanager
from contextvars import ContextVar
from enum import Enum
from pathlib import Path
import asyncio
import copy
import json
import sqlite3
import threading

from .config import SchedulerConfig


# Storage whose transaction the current task is running
_current_transaction: ContextVar[Optional["AsyncStorageInterface"]] = ContextVar(
    "current_transaction", default=None
)


def _to_storable(value: Any) -> Any:
    """Convert a value into its JSON-friendly stored form"""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _to_storable(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_to_storable(v) for v in value]
    return value


@dataclass
class StorageRecord:
    """Base class for all stored records"""
    id: str
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage"""
        return {key: _to_storable(value) for key, value in asdict(self).items()}


class AsyncStorageInterface(ABC):
    """Abstract interface for async storage backends"""

    def __init__(self):
        self._transaction_lock = asyncio.Lock()

    @abstractmethod
    async def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Save a record to storage"""
        pass

    @abstractmethod
    async def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record from storage"""
        pass

    @abstractmethod
    async def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all records from a table"""
        pass

    @abstractmethod
    async def delete(self, table: str, record_id: str) -> bool:
        """Delete a record from storage"""
        pass

    @abstractmethod
    async def exists(self, table: str, record_id: str) -> bool:
        """Check if a record exists"""
        pass

    @abstractmethod
    async def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Find records whose fields equal every filter value"""
        pass

    @abstractmethod
    async def count(self, table: str) -> int:
        """Count records in table"""
        pass

    @abstractmethod
    async def clear_table(self, table: str) -> None:
        """Clear all records from a table"""
        pass

    async def close(self) -> None:
        """Close storage connection (default no-op)"""
        pass

    async def begin_transaction(self) -> None:
        """Start a transaction (default no-op)"""
        pass

    async def commit(self) -> None:
        """Commit current transaction (default no-op)"""
        pass

    async def rollback(self) -> None:
        """Rollback current transaction (default no-op)"""
        pass

    @asynccontextmanager
    async def atomic(self):
        """
        Run the block as one transaction.

        Blocks on the same storage run one at a time, across tasks. A block
        nested inside another on the same task joins the outer transaction.
        """
        if _current_transaction.get() is self:
            yield
            return

        async with self._transaction_lock:
            token = _current_transaction.set(self)
            try:
                await self.begin_transaction()
                try:
                    yield
                    await self.commit()
                except Exception:
                    await self.rollback()
                    raise
            finally:
                _current_transaction.reset(token)

    @asynccontextmanager
    async def _write_scope(self):
        """Writes from outside a running transaction wait until it ends"""
        if _current_transaction.get() is self:
            yield
        else:
            async with self._transaction_lock:
                yield


def _matches(record: Dict[str, Any], filters: Dict[str, Any]) -> bool:
    for key, value in filters.items():
        if key not in record or record[key] != _to_storable(value):
            return False
    return True


class AsyncInMemoryStorage(AsyncStorageInterface):
    """
    In-memory storage for testing.

    Transactions snapshot every table on begin and restore the snapshot on
    rollback. Writes from other tasks wait for the transaction to end; reads
    from other tasks see its uncommitted state.
    """

    def __init__(self):
        super().__init__()
        self._data: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._snapshot: Optional[Dict[str, Dict[str, Dict[str, Any]]]] = None
        self._lock = asyncio.Lock()

    def _table(self, table: str) -> Dict[str, Dict[str, Any]]:
        return self._data.setdefault(table, {})

    @staticmethod
    def _copy(data: Dict[str, Any]) -> Dict[str, Any]:
        # Deep copy to prevent external mutation
        return json.loads(json.dumps(data, default=str))

    async def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        async with self._write_scope(), self._lock:
            self._table(table)[record_id] = self._copy(_to_storable(data))

    async def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        async with self._lock:
            record = self._table(table).get(record_id)
            return self._copy(record) if record is not None else None

    async def load_all(self, table: str) -> List[Dict[str, Any]]:
        async with self._lock:
            return [self._copy(record) for record in self._table(table).values()]

    async def delete(self, table: str, record_id: str) -> bool:
        async with self._write_scope(), self._lock:
            return self._table(table).pop(record_id, None) is not None

    async def exists(self, table: str, record_id: str) -> bool:
        async with self._lock:
            return record_id in self._table(table)

    async def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        async with self._lock:
            return [
                self._copy(record) for record in self._table(table).values()
                if _matches(record, filters)
            ]

    async def count(self, table: str) -> int:
        async with self._lock:
            return len(self._table(table))

    async def clear_table(self, table: str) -> None:
        async with self._write_scope(), self._lock:
            self._data[table] = {}

    async def begin_transaction(self) -> None:
        async with self._lock:
            if self._snapshot is None:
                self._snapshot = copy.deepcopy(self._data)

    async def commit(self) -> None:
        async with self._lock:
            self._snapshot = None

    async def rollback(self) -> None:
        async with self._lock:
            if self._snapshot is not None:
                self._data = self._snapshot
                self._snapshot = None


class AsyncSQLiteStorage(AsyncStorageInterface):
    """SQLite storage; blocking calls run in worker threads"""

    def __init__(self, db_path: Union[str, Path] = ":memory:", timeout: float = 5.0):
        super().__init__()
        self.db_path = str(db_path)
        self._connection = sqlite3.connect(
            self.db_path, timeout=timeout, check_same_thread=False, isolation_level='DEFERRED'
        )
        self._connection.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._in_transaction = False
        self._tables = set()

        # Enable WAL mode for better concurrent access
        if self.db_path != ":memory:":
            with self._lock:
                self._connection.execute("PRAGMA journal_mode = WAL")
                self._connection.execute("PRAGMA synchronous = NORMAL")
                self._connection.commit()

    def _ensure_table(self, table: str) -> None:
        if table in self._tables:
            return
        self._connection.execute(f"""
            CREATE TABLE IF NOT EXISTS {table} (
                id TEXT PRIMARY KEY,
                data TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        self._connection.execute(f"""
            CREATE INDEX IF NOT EXISTS idx_{table}_created_at
            ON {table}(created_at)
        """)
        if not self._in_transaction:
            self._connection.commit()
        self._tables.add(table)

    def _maybe_commit(self) -> None:
        if not self._in_transaction:
            self._connection.commit()

    def _save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        with self._lock:
            self._ensure_table(table)
            now = datetime.now(timezone.utc).isoformat()
            self._connection.execute(f"""
                INSERT OR REPLACE INTO {table} (id, data, created_at, updated_at)
                VALUES (?, ?,
                    COALESCE((SELECT created_at FROM {table} WHERE id = ?), ?),
                    ?)
            """, (record_id, json.dumps(_to_storable(data), default=str), record_id, now, now))
            self._maybe_commit()

    def _load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            self._ensure_table(table)
            row = self._connection.execute(
                f"SELECT data FROM {table} WHERE id = ?", (record_id,)
            ).fetchone()
            return json.loads(row['data']) if row else None

    def _load_all(self, table: str) -> List[Dict[str, Any]]:
        with self._lock:
            self._ensure_table(table)
            rows = self._connection.execute(
                f"SELECT data FROM {table} ORDER BY created_at"
            ).fetchall()
            return [json.loads(row['data']) for row in rows]

    def _delete(self, table: str, record_id: str) -> bool:
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"DELETE FROM {table} WHERE id = ?", (record_id,))
            self._maybe_commit()
            return cursor.rowcount > 0

    def _count(self, table: str) -> int:
        with self._lock:
            self._ensure_table(table)
            row = self._connection.execute(f"SELECT COUNT(*) AS count FROM {table}").fetchone()
            return row['count']

    def _clear_table(self, table: str) -> None:
        with self._lock:
            self._ensure_table(table)
            self._connection.execute(f"DELETE FROM {table}")
            self._maybe_commit()

    async def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        async with self._write_scope():
            await asyncio.to_thread(self._save, table, record_id, data)

    async def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        return await asyncio.to_thread(self._load, table, record_id)

    async def load_all(self, table: str) -> List[Dict[str, Any]]:
        return await asyncio.to_thread(self._load_all, table)

    async def delete(self, table: str, record_id: str) -> bool:
        async with self._write_scope():
            return await asyncio.to_thread(self._delete, table, record_id)

    async def exists(self, table: str, record_id: str) -> bool:
        return await self.load(table, record_id) is not None

    async def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        records = await self.load_all(table)
        return [record for record in records if _matches(record, filters)]

    async def count(self, table: str) -> int:
        return await asyncio.to_thread(self._count, table)

    async def clear_table(self, table: str) -> None:
        async with self._write_scope():
            await asyncio.to_thread(self._clear_table, table)

    async def begin_transaction(self) -> None:
        with self._lock:
            # DEFERRED isolation opens the sqlite transaction on the first write
            self._in_transaction = True

    async def commit(self) -> None:
        def _commit():
            with self._lock:
                if self._in_transaction:
                    self._connection.commit()
                    self._in_transaction = False
        await asyncio.to_thread(_commit)

    async def rollback(self) -> None:
        def _rollback():
            with self._lock:
                if self._in_transaction:
                    self._connection.rollback()
                    self._in_transaction = False
                    # Tables created inside the transaction are gone too
                    self._tables.clear()
        await asyncio.to_thread(_rollback)

    async def close(self) -> None:
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None


def create_storage(config: SchedulerConfig) -> AsyncStorageInterface:
    """Factory choosing the storage backend from configuration"""
    storage_type = config.storage_type.lower()
    if storage_type == "sqlite":
        return AsyncSQLiteStorage(config.database_path, timeout=config.database_timeout)
    if storage_type == "memory":
        return AsyncInMemoryStorage()
    raise ValueError(f"Unknown storage type '{config.storage_type}'")
