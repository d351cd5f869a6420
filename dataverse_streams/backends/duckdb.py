"""
DuckDB storage backend.

Keeps the event log and stream projections in a local DuckDB database,
which makes the store convenient for offline analysis of stream
histories. Blocks use DuckDB's native BLOB[] list type.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, ClassVar

import duckdb

from ..events.types import Event, IndexFolder, Stream
from ..exceptions import StorageConnectionError, StorageIOError
from .base import StreamBackend, StreamFilters, StreamTransaction

logger = logging.getLogger(__name__)


# =============================================================================
# Column Definitions - Centralized for consistency and maintainability
# =============================================================================

EVENT_READ_COLUMNS = ("cid", "prev", "genesis", "blocks")

STREAM_READ_COLUMNS = ("stream_id", "dapp_id", "tip", "account", "model_id", "content")

INDEX_FOLDER_READ_COLUMNS = ("stream_id", "tip", "signal")

# No secondary index on signal: DuckDB rejects upserts that assign to
# indexed columns, and a columnar scan serves signal queries well.
_SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS events (
        cid VARCHAR(70) NOT NULL PRIMARY KEY,
        prev VARCHAR(70),
        genesis VARCHAR(70) NOT NULL,
        blocks BLOB[] NOT NULL CHECK (len(blocks) > 0 AND list_count(blocks) = len(blocks))
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS streams (
        stream_id VARCHAR(70) NOT NULL PRIMARY KEY,
        dapp_id UUID NOT NULL,
        tip VARCHAR(70) NOT NULL,
        account VARCHAR(100),
        model_id VARCHAR(70),
        content JSON NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS index_folders (
        stream_id VARCHAR(70) NOT NULL PRIMARY KEY,
        tip VARCHAR(70) NOT NULL,
        signal JSON
    )
    """,
)


def _dump_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"))


def _load_json(value: Any) -> Any:
    if value is None or not isinstance(value, str):
        return value
    return json.loads(value)


def _row_to_event(row: Any) -> Event:
    return Event(cid=row[0], prev=row[1], genesis=row[2], blocks=tuple(bytes(b) for b in row[3]))


def _row_to_stream(row: Any) -> Stream:
    data = dict(zip(STREAM_READ_COLUMNS, row))
    data["content"] = _load_json(data["content"])
    return Stream.from_dict(data)


def _row_to_folder(row: Any) -> IndexFolder:
    return IndexFolder(stream_id=row[0], tip=row[1], signal=_load_json(row[2]))


@dataclass
class DuckDBConfig:
    """Configuration for DuckDB storage."""

    db_path: str | Path = ":memory:"  # Use :memory: for in-memory database

    @classmethod
    def from_env(cls) -> DuckDBConfig:
        """Create config from environment variables."""
        import os

        db_path = os.environ.get("DATAVERSE_STREAMS_DUCKDB_PATH", ":memory:")
        return cls(db_path=db_path)


class DuckDBTransaction(StreamTransaction):
    """Operations bound to the backend's open transaction.

    Each call runs the blocking DuckDB API in a worker thread; the
    backend lock guarantees only one thread uses the connection at a time.
    """

    def __init__(self, conn: Any) -> None:
        self.conn = conn

    async def _fetchone(self, sql: str, params: list[Any] | None = None) -> Any:
        return await asyncio.to_thread(lambda: self.conn.execute(sql, params or []).fetchone())

    async def _fetchall(self, sql: str, params: list[Any] | None = None) -> list[Any]:
        return await asyncio.to_thread(lambda: self.conn.execute(sql, params or []).fetchall())

    async def _count(self, sql: str, params: list[Any]) -> int:
        # DuckDB reports affected rows as a single-row result
        row = await self._fetchone(sql, params)
        return int(row[0]) if row else 0

    async def get_event(self, cid: str) -> Event | None:
        row = await self._fetchone(
            f"SELECT {', '.join(EVENT_READ_COLUMNS)} FROM events WHERE cid = ?", [cid]
        )
        return _row_to_event(row) if row else None

    async def insert_event(self, event: Event) -> bool:
        count = await self._count(
            """
            INSERT INTO events (cid, prev, genesis, blocks) VALUES (?, ?, ?, ?)
            ON CONFLICT (cid) DO NOTHING
            """,
            [event.cid, event.prev, event.genesis, [bytes(b) for b in event.blocks]],
        )
        return count > 0

    async def get_events_by_genesis(self, genesis: str) -> list[Event]:
        rows = await self._fetchall(
            f"SELECT {', '.join(EVENT_READ_COLUMNS)} FROM events WHERE genesis = ?",
            [genesis],
        )
        return [_row_to_event(row) for row in rows]

    async def get_stream(self, stream_id: str) -> Stream | None:
        row = await self._fetchone(
            f"SELECT {', '.join(STREAM_READ_COLUMNS)} FROM streams WHERE stream_id = ?",
            [stream_id],
        )
        return _row_to_stream(row) if row else None

    async def insert_stream(self, stream: Stream) -> bool:
        count = await self._count(
            """
            INSERT INTO streams (stream_id, dapp_id, tip, account, model_id, content)
            VALUES (?, CAST(? AS UUID), ?, ?, ?, ?)
            ON CONFLICT (stream_id) DO NOTHING
            """,
            [
                stream.stream_id,
                str(stream.dapp_id),
                stream.tip,
                stream.account,
                stream.model_id,
                _dump_json(stream.content),
            ],
        )
        return count > 0

    async def compare_and_swap_tip(
        self,
        stream_id: str,
        expected_tip: str,
        new_tip: str,
        content: dict[str, Any],
    ) -> bool:
        count = await self._count(
            "UPDATE streams SET tip = ?, content = ? WHERE stream_id = ? AND tip = ?",
            [new_tip, _dump_json(content), stream_id, expected_tip],
        )
        return count == 1

    async def list_streams(self, filters: StreamFilters) -> list[Stream]:
        clauses: list[str] = []
        params: list[Any] = []
        if filters.model_id is not None:
            clauses.append("model_id = ?")
            params.append(filters.model_id)
        if filters.account is not None:
            clauses.append("account = ?")
            params.append(filters.account)
        if filters.dapp_id is not None:
            clauses.append("dapp_id = CAST(? AS UUID)")
            params.append(str(filters.dapp_id))

        sql = f"SELECT {', '.join(STREAM_READ_COLUMNS)} FROM streams"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY stream_id"
        if filters.limit is not None:
            sql += f" LIMIT {int(filters.limit)}"

        rows = await self._fetchall(sql, params)
        return [_row_to_stream(row) for row in rows]

    async def find_stream_by_content(self, model_id: str, key: str, value: Any) -> Stream | None:
        rows = await self._fetchall(
            f"SELECT {', '.join(STREAM_READ_COLUMNS)} FROM streams "
            "WHERE model_id = ? ORDER BY stream_id",
            [model_id],
        )
        for row in rows:
            stream = _row_to_stream(row)
            if stream.content.get(key) == value:
                return stream
        return None

    async def get_index_folder(self, stream_id: str) -> IndexFolder | None:
        row = await self._fetchone(
            f"SELECT {', '.join(INDEX_FOLDER_READ_COLUMNS)} FROM index_folders WHERE stream_id = ?",
            [stream_id],
        )
        return _row_to_folder(row) if row else None

    async def upsert_index_folder(self, folder: IndexFolder) -> None:
        await asyncio.to_thread(
            self.conn.execute,
            """
            INSERT INTO index_folders (stream_id, tip, signal) VALUES (?, ?, ?)
            ON CONFLICT (stream_id) DO UPDATE SET
                tip = excluded.tip,
                signal = excluded.signal
            """,
            [
                folder.stream_id,
                folder.tip,
                _dump_json(folder.signal) if folder.signal is not None else None,
            ],
        )

    async def list_signal_folders(self) -> list[IndexFolder]:
        rows = await self._fetchall(
            f"SELECT {', '.join(INDEX_FOLDER_READ_COLUMNS)} FROM index_folders "
            "WHERE signal IS NOT NULL ORDER BY stream_id"
        )
        return [_row_to_folder(row) for row in rows]


class DuckDBBackend(StreamBackend):
    """
    DuckDB storage backend.

    Features:
    - Local database (file-based or in-memory)
    - Native BLOB[] and JSON columns
    - Full SQL over the event log for offline analysis
    """

    name: ClassVar[str] = "duckdb"
    driver_errors: ClassVar[tuple[type[BaseException], ...]] = (duckdb.Error, OSError)

    def __init__(self, config: DuckDBConfig):
        """
        Initialize DuckDB backend.

        Args:
            config: DuckDB configuration
        """
        super().__init__()
        self.config = config
        self.conn: Any = None  # DuckDB connection (using Any due to type stub limitations)

    @classmethod
    async def create(cls, config: DuckDBConfig | None = None) -> DuckDBBackend:
        """Create and initialize DuckDB backend."""
        if config is None:
            config = DuckDBConfig.from_env()

        backend = cls(config)
        await backend.initialize()
        return backend

    async def initialize(self) -> None:
        """Open the database and create the schema."""
        if self._initialized:
            return

        def _init() -> None:
            """Run sync initialization in thread."""
            self.conn = duckdb.connect(str(self.config.db_path))
            for statement in _SCHEMA_STATEMENTS:
                self.conn.execute(statement)
            self.conn.execute("CREATE INDEX IF NOT EXISTS events_genesis_idx ON events (genesis)")

        try:
            await asyncio.to_thread(_init)
            self._initialized = True
            logger.info(f"DuckDB backend initialized: {self.config.db_path}")
        except (duckdb.Error, OSError) as e:
            raise StorageConnectionError(str(self.config.db_path), e) from e

    async def close(self) -> None:
        """Close DuckDB connection."""
        if self.conn:
            await asyncio.to_thread(self.conn.close)
            self.conn = None
        self._initialized = False

    async def _begin(self) -> DuckDBTransaction:
        if self.conn is None:
            raise StorageIOError("duckdb_begin", cause=RuntimeError("Not initialized"))
        await asyncio.to_thread(self.conn.execute, "BEGIN TRANSACTION")
        return DuckDBTransaction(self.conn)

    async def _commit(self, tx: StreamTransaction) -> None:
        await asyncio.to_thread(self.conn.execute, "COMMIT")

    async def _rollback(self, tx: StreamTransaction) -> None:
        if self.conn is not None:
            await asyncio.to_thread(self.conn.execute, "ROLLBACK")
