"""
SQLite storage backend.

Stores events, streams and index folders in a single SQLite file (or
in memory). The tip compare-and-swap is a conditional UPDATE inside a
`BEGIN IMMEDIATE` transaction, so it stays correct when several
processes share one database file.
"""

from __future__ import annotations

import base64
import json
import logging
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Any, ClassVar

import aiosqlite

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

# Blocks are stored as a compact JSON array of base64 strings. A null
# element can only appear unquoted right after "[" or ",".
_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS events (
    cid VARCHAR(70) NOT NULL CONSTRAINT events_pk PRIMARY KEY,
    prev VARCHAR(70),
    genesis VARCHAR(70) NOT NULL,
    blocks TEXT NOT NULL CHECK (
        json_valid(blocks)
        AND json_array_length(blocks) > 0
        AND instr(blocks, '[null') = 0
        AND instr(blocks, ',null') = 0
    )
);

CREATE TABLE IF NOT EXISTS streams (
    stream_id VARCHAR(70) NOT NULL CONSTRAINT streams_pk PRIMARY KEY,
    dapp_id TEXT NOT NULL,
    tip VARCHAR(70) NOT NULL,
    account VARCHAR(100),
    model_id VARCHAR(70),
    content TEXT NOT NULL CHECK (json_valid(content))
);

CREATE TABLE IF NOT EXISTS index_folders (
    stream_id VARCHAR(70) NOT NULL CONSTRAINT index_folders_pk PRIMARY KEY,
    tip VARCHAR(70) NOT NULL,
    signal TEXT
);

CREATE INDEX IF NOT EXISTS events_genesis_idx ON events (genesis);
CREATE INDEX IF NOT EXISTS streams_model_idx ON streams (model_id, account);
CREATE INDEX IF NOT EXISTS index_folders_signal_idx ON index_folders (signal);
"""


def _encode_blocks(blocks: tuple[bytes, ...]) -> str:
    return json.dumps(
        [base64.b64encode(bytes(block)).decode("ascii") for block in blocks],
        separators=(",", ":"),
    )


def _decode_blocks(raw: str) -> tuple[bytes, ...]:
    return tuple(base64.b64decode(block) for block in json.loads(raw))


def _dump_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"))


def _row_to_event(row: Any) -> Event:
    return Event(cid=row[0], prev=row[1], genesis=row[2], blocks=_decode_blocks(row[3]))


def _row_to_stream(row: Any) -> Stream:
    return Stream.from_dict(dict(zip(STREAM_READ_COLUMNS, row)))


def _row_to_folder(row: Any) -> IndexFolder:
    return IndexFolder(
        stream_id=row[0],
        tip=row[1],
        signal=json.loads(row[2]) if row[2] is not None else None,
    )


@dataclass
class SQLiteConfig:
    """Configuration for SQLite storage."""

    db_path: str | Path = ":memory:"
    timeout: float = 5.0  # Seconds to wait on a locked database file

    @classmethod
    def from_env(cls) -> SQLiteConfig:
        """Create config from environment variables."""
        import os

        db_path = os.environ.get("DATAVERSE_STREAMS_SQLITE_PATH", ":memory:")
        timeout_str = os.environ.get("DATAVERSE_STREAMS_SQLITE_TIMEOUT", "5.0")

        return cls(db_path=db_path, timeout=float(timeout_str))


class SQLiteTransaction(StreamTransaction):
    """Operations bound to the backend's open transaction."""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self.conn = conn

    async def _fetchone(self, sql: str, params: tuple = ()) -> Any:
        async with self.conn.execute(sql, params) as cursor:
            return await cursor.fetchone()

    async def _fetchall(self, sql: str, params: tuple = ()) -> list[Any]:
        async with self.conn.execute(sql, params) as cursor:
            return list(await cursor.fetchall())

    async def get_event(self, cid: str) -> Event | None:
        row = await self._fetchone(
            f"SELECT {', '.join(EVENT_READ_COLUMNS)} FROM events WHERE cid = ?", (cid,)
        )
        return _row_to_event(row) if row else None

    async def insert_event(self, event: Event) -> bool:
        cursor = await self.conn.execute(
            """
            INSERT INTO events (cid, prev, genesis, blocks) VALUES (?, ?, ?, ?)
            ON CONFLICT (cid) DO NOTHING
            """,
            (event.cid, event.prev, event.genesis, _encode_blocks(event.blocks)),
        )
        inserted = cursor.rowcount > 0
        await cursor.close()
        return inserted

    async def get_events_by_genesis(self, genesis: str) -> list[Event]:
        rows = await self._fetchall(
            f"SELECT {', '.join(EVENT_READ_COLUMNS)} FROM events WHERE genesis = ?",
            (genesis,),
        )
        return [_row_to_event(row) for row in rows]

    async def get_stream(self, stream_id: str) -> Stream | None:
        row = await self._fetchone(
            f"SELECT {', '.join(STREAM_READ_COLUMNS)} FROM streams WHERE stream_id = ?",
            (stream_id,),
        )
        return _row_to_stream(row) if row else None

    async def insert_stream(self, stream: Stream) -> bool:
        cursor = await self.conn.execute(
            """
            INSERT INTO streams (stream_id, dapp_id, tip, account, model_id, content)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT (stream_id) DO NOTHING
            """,
            (
                stream.stream_id,
                str(stream.dapp_id),
                stream.tip,
                stream.account,
                stream.model_id,
                _dump_json(stream.content),
            ),
        )
        inserted = cursor.rowcount > 0
        await cursor.close()
        return inserted

    async def compare_and_swap_tip(
        self,
        stream_id: str,
        expected_tip: str,
        new_tip: str,
        content: dict[str, Any],
    ) -> bool:
        cursor = await self.conn.execute(
            "UPDATE streams SET tip = ?, content = ? WHERE stream_id = ? AND tip = ?",
            (new_tip, _dump_json(content), stream_id, expected_tip),
        )
        swapped = cursor.rowcount == 1
        await cursor.close()
        return swapped

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
            clauses.append("dapp_id = ?")
            params.append(str(filters.dapp_id))

        sql = f"SELECT {', '.join(STREAM_READ_COLUMNS)} FROM streams"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY stream_id"
        if filters.limit is not None:
            sql += " LIMIT ?"
            params.append(filters.limit)

        rows = await self._fetchall(sql, tuple(params))
        return [_row_to_stream(row) for row in rows]

    async def find_stream_by_content(self, model_id: str, key: str, value: Any) -> Stream | None:
        path = '$."' + key.replace('"', '\\"') + '"'
        rows = await self._fetchall(
            f"""
            SELECT {', '.join(STREAM_READ_COLUMNS)} FROM streams
            WHERE model_id = ? AND json_extract(content, ?) IS NOT NULL
            ORDER BY stream_id
            """,
            (model_id, path),
        )
        # json_extract flattens types; compare the decoded value exactly
        for row in rows:
            stream = _row_to_stream(row)
            if stream.content.get(key) == value:
                return stream
        return None

    async def get_index_folder(self, stream_id: str) -> IndexFolder | None:
        row = await self._fetchone(
            f"SELECT {', '.join(INDEX_FOLDER_READ_COLUMNS)} FROM index_folders WHERE stream_id = ?",
            (stream_id,),
        )
        return _row_to_folder(row) if row else None

    async def upsert_index_folder(self, folder: IndexFolder) -> None:
        await self.conn.execute(
            """
            INSERT INTO index_folders (stream_id, tip, signal) VALUES (?, ?, ?)
            ON CONFLICT (stream_id) DO UPDATE SET
                tip = excluded.tip,
                signal = excluded.signal
            """,
            (
                folder.stream_id,
                folder.tip,
                _dump_json(folder.signal) if folder.signal is not None else None,
            ),
        )

    async def list_signal_folders(self) -> list[IndexFolder]:
        rows = await self._fetchall(
            f"""
            SELECT {', '.join(INDEX_FOLDER_READ_COLUMNS)} FROM index_folders
            WHERE signal IS NOT NULL ORDER BY stream_id
            """
        )
        return [_row_to_folder(row) for row in rows]


class SQLiteBackend(StreamBackend):
    """
    SQLite storage backend.

    Features:
    - Single file database (or :memory:)
    - Conditional UPDATE as the tip compare-and-swap
    - BEGIN IMMEDIATE write transactions, safe across processes
    """

    name: ClassVar[str] = "sqlite"
    driver_errors: ClassVar[tuple[type[BaseException], ...]] = (sqlite3.Error, OSError)

    def __init__(self, config: SQLiteConfig):
        """
        Initialize SQLite backend.

        Args:
            config: SQLite configuration
        """
        super().__init__()
        self.config = config
        self.conn: aiosqlite.Connection | None = None

    @classmethod
    async def create(cls, config: SQLiteConfig | None = None) -> SQLiteBackend:
        """Create and initialize SQLite backend."""
        if config is None:
            config = SQLiteConfig.from_env()

        backend = cls(config)
        await backend.initialize()
        return backend

    async def initialize(self) -> None:
        """Open the connection and create the schema."""
        if self._initialized:
            return

        try:
            # Autocommit mode: transactions are issued explicitly
            self.conn = await aiosqlite.connect(
                str(self.config.db_path),
                timeout=self.config.timeout,
                isolation_level=None,
            )
            if str(self.config.db_path) != ":memory:":
                await self.conn.execute("PRAGMA journal_mode = WAL")
            await self.conn.executescript(_SCHEMA_SQL)
            self._initialized = True
            logger.info(f"SQLite backend initialized: {self.config.db_path}")

        except (sqlite3.Error, OSError) as e:
            raise StorageConnectionError(str(self.config.db_path), e) from e

    async def close(self) -> None:
        """Close SQLite connection."""
        if self.conn:
            await self.conn.close()
            self.conn = None
        self._initialized = False

    async def _begin(self) -> SQLiteTransaction:
        if self.conn is None:
            raise StorageIOError("sqlite_begin", cause=RuntimeError("Not initialized"))
        await self.conn.execute("BEGIN IMMEDIATE")
        return SQLiteTransaction(self.conn)

    async def _commit(self, tx: StreamTransaction) -> None:
        await self.conn.execute("COMMIT")

    async def _rollback(self, tx: StreamTransaction) -> None:
        if self.conn is not None and self.conn.in_transaction:
            await self.conn.execute("ROLLBACK")
