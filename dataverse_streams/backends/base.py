"""
Abstract base classes for storage backends.

All storage implementations (memory, SQLite, DuckDB) implement these
interfaces. Every engine operation, read or write, runs inside a
`StreamTransaction`; the backend guarantees that a transaction is
all-or-nothing and that transactions on one handle are serialized.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, ClassVar

from ..events.types import Event, IndexFolder, Stream
from ..exceptions import StorageIOError, StreamStoreError

logger = logging.getLogger(__name__)


@dataclass
class StreamFilters:
    """Filters for listing streams."""

    model_id: str | None = None
    account: str | None = None
    dapp_id: str | None = None  # UUID string
    limit: int | None = None


class StreamTransaction(ABC):
    """Operations available inside one atomic unit of work."""

    # =========================================================================
    # Events (append-only)
    # =========================================================================

    @abstractmethod
    async def get_event(self, cid: str) -> Event | None:
        """Get an event by CID, or None."""

    @abstractmethod
    async def insert_event(self, event: Event) -> bool:
        """Insert an event unless its CID is already stored.

        Returns:
            True if a row was written, False if the CID already existed
        """

    @abstractmethod
    async def get_events_by_genesis(self, genesis: str) -> list[Event]:
        """All stored events rooted at `genesis`, in no particular order."""

    # =========================================================================
    # Streams
    # =========================================================================

    @abstractmethod
    async def get_stream(self, stream_id: str) -> Stream | None:
        """Get a stream row, or None."""

    @abstractmethod
    async def insert_stream(self, stream: Stream) -> bool:
        """Create a stream row unless one exists for `stream.stream_id`.

        Returns:
            True if created, False if the stream already existed
        """

    @abstractmethod
    async def compare_and_swap_tip(
        self,
        stream_id: str,
        expected_tip: str,
        new_tip: str,
        content: dict[str, Any],
    ) -> bool:
        """Move a stream's tip only if it still equals `expected_tip`.

        Content is written together with the tip. When `expected_tip ==
        new_tip` this rewrites content in place (used by rebuilds).

        Returns:
            True if the row was updated, False if the tip had moved
        """

    @abstractmethod
    async def list_streams(self, filters: StreamFilters) -> list[Stream]:
        """List streams matching filters, ordered by stream_id."""

    @abstractmethod
    async def find_stream_by_content(self, model_id: str, key: str, value: Any) -> Stream | None:
        """First stream of `model_id` whose top-level content[key] equals value."""

    # =========================================================================
    # Index folders
    # =========================================================================

    @abstractmethod
    async def get_index_folder(self, stream_id: str) -> IndexFolder | None:
        """Get the index folder for a stream, or None."""

    @abstractmethod
    async def upsert_index_folder(self, folder: IndexFolder) -> None:
        """Create or replace the index folder row for `folder.stream_id`."""

    @abstractmethod
    async def list_signal_folders(self) -> list[IndexFolder]:
        """All index folders that carry a signal, ordered by stream_id."""


class StreamBackend(ABC):
    """Transactional store behind a `StreamEngine`.

    Subclasses provide connection lifecycle and the begin/commit/rollback
    primitives; this class provides the serialized transaction scope.
    """

    # Driver exceptions that are reported to callers as StorageIOError
    driver_errors: ClassVar[tuple[type[BaseException], ...]] = (OSError,)

    #: Human readable backend name used in logs
    name: ClassVar[str] = "backend"

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._initialized = False

    @abstractmethod
    async def initialize(self) -> None:
        """Open connections and create the schema."""

    @abstractmethod
    async def close(self) -> None:
        """Release connections."""

    @abstractmethod
    async def _begin(self) -> StreamTransaction:
        """Start a transaction and return its operation handle."""

    @abstractmethod
    async def _commit(self, tx: StreamTransaction) -> None:
        """Commit the transaction started by `_begin`."""

    @abstractmethod
    async def _rollback(self, tx: StreamTransaction) -> None:
        """Discard the transaction started by `_begin`."""

    @property
    def initialized(self) -> bool:
        return self._initialized

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[StreamTransaction]:
        """Run a block of operations atomically.

        Commits when the block exits normally. Any exception (including
        cancellation) rolls back every write made in the block; driver
        errors surface as StorageIOError.
        """
        if not self._initialized:
            raise StorageIOError(f"{self.name}_transaction", cause=RuntimeError("Not initialized"))

        async with self._lock:
            try:
                tx = await self._begin()
            except self.driver_errors as e:
                raise StorageIOError(f"{self.name}_begin", cause=e) from e

            try:
                yield tx
            except BaseException as e:
                await self._safe_rollback(tx)
                if isinstance(e, self.driver_errors) and not isinstance(e, StreamStoreError):
                    raise StorageIOError(f"{self.name}_transaction", cause=e) from e
                raise

            try:
                await self._commit(tx)
            except self.driver_errors as e:
                await self._safe_rollback(tx)
                raise StorageIOError(f"{self.name}_commit", cause=e) from e

    async def _safe_rollback(self, tx: StreamTransaction) -> None:
        try:
            await self._rollback(tx)
        except self.driver_errors as e:
            # The original failure is the one worth reporting
            logger.error(f"{self.name} rollback failed: {e}")

    async def __aenter__(self) -> StreamBackend:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
