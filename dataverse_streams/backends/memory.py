"""
In-memory storage backend.

Keeps events, streams and index folders in dict arenas keyed by
identifier. Transactions stage their writes and apply them on commit,
so a rolled back transaction leaves no trace. Ideal for tests and
single-process embedding.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, ClassVar

from ..events.types import Event, IndexFolder, Stream
from .base import StreamBackend, StreamFilters, StreamTransaction

logger = logging.getLogger(__name__)


class MemoryTransaction(StreamTransaction):
    """Transaction over the memory arenas with staged writes."""

    def __init__(self, backend: MemoryBackend) -> None:
        self._backend = backend
        self._events: dict[str, Event] = {}
        self._streams: dict[str, Stream] = {}
        self._folders: dict[str, IndexFolder] = {}

    # Reads see staged writes first, then committed state

    def _stream(self, stream_id: str) -> Stream | None:
        if stream_id in self._streams:
            return self._streams[stream_id]
        return self._backend._streams.get(stream_id)

    def _all_streams(self) -> dict[str, Stream]:
        merged = dict(self._backend._streams)
        merged.update(self._streams)
        return merged

    def _all_folders(self) -> dict[str, IndexFolder]:
        merged = dict(self._backend._folders)
        merged.update(self._folders)
        return merged

    async def get_event(self, cid: str) -> Event | None:
        if cid in self._events:
            return self._events[cid]
        return self._backend._events.get(cid)

    async def insert_event(self, event: Event) -> bool:
        if await self.get_event(event.cid) is not None:
            return False
        self._events[event.cid] = event
        return True

    async def get_events_by_genesis(self, genesis: str) -> list[Event]:
        events = {cid: e for cid, e in self._backend._events.items() if e.genesis == genesis}
        events.update({cid: e for cid, e in self._events.items() if e.genesis == genesis})
        return list(events.values())

    async def get_stream(self, stream_id: str) -> Stream | None:
        stream = self._stream(stream_id)
        return copy.deepcopy(stream) if stream is not None else None

    async def insert_stream(self, stream: Stream) -> bool:
        if self._stream(stream.stream_id) is not None:
            return False
        self._streams[stream.stream_id] = copy.deepcopy(stream)
        return True

    async def compare_and_swap_tip(
        self,
        stream_id: str,
        expected_tip: str,
        new_tip: str,
        content: dict[str, Any],
    ) -> bool:
        current = self._stream(stream_id)
        if current is None or current.tip != expected_tip:
            return False
        updated = copy.deepcopy(current)
        updated.tip = new_tip
        updated.content = copy.deepcopy(content)
        self._streams[stream_id] = updated
        return True

    async def list_streams(self, filters: StreamFilters) -> list[Stream]:
        result = []
        for stream_id in sorted(self._all_streams()):
            stream = self._stream(stream_id)
            if filters.model_id is not None and stream.model_id != filters.model_id:
                continue
            if filters.account is not None and stream.account != filters.account:
                continue
            if filters.dapp_id is not None and str(stream.dapp_id) != str(filters.dapp_id):
                continue
            result.append(copy.deepcopy(stream))
            if filters.limit is not None and len(result) >= filters.limit:
                break
        return result

    async def find_stream_by_content(self, model_id: str, key: str, value: Any) -> Stream | None:
        for stream_id in sorted(self._all_streams()):
            stream = self._stream(stream_id)
            if stream.model_id == model_id and stream.content.get(key) == value:
                return copy.deepcopy(stream)
        return None

    async def get_index_folder(self, stream_id: str) -> IndexFolder | None:
        folder = self._all_folders().get(stream_id)
        return copy.deepcopy(folder) if folder is not None else None

    async def upsert_index_folder(self, folder: IndexFolder) -> None:
        self._folders[folder.stream_id] = copy.deepcopy(folder)

    async def list_signal_folders(self) -> list[IndexFolder]:
        folders = self._all_folders()
        return [
            copy.deepcopy(folders[stream_id])
            for stream_id in sorted(folders)
            if folders[stream_id].signal is not None
        ]

    def apply(self) -> None:
        """Publish staged writes to the backend arenas."""
        self._backend._events.update(self._events)
        self._backend._streams.update(self._streams)
        self._backend._folders.update(self._folders)


class MemoryBackend(StreamBackend):
    """
    Storage backend holding everything in process memory.

    Features:
    - Arena of immutable events keyed by CID
    - Staged writes, applied atomically on commit
    - Transactions serialized by the backend lock
    """

    name: ClassVar[str] = "memory"

    def __init__(self) -> None:
        super().__init__()
        self._events: dict[str, Event] = {}
        self._streams: dict[str, Stream] = {}
        self._folders: dict[str, IndexFolder] = {}

    @classmethod
    async def create(cls) -> MemoryBackend:
        """Create and initialize a memory backend."""
        backend = cls()
        await backend.initialize()
        return backend

    async def initialize(self) -> None:
        self._initialized = True
        logger.info("Memory backend initialized")

    async def close(self) -> None:
        self._initialized = False

    async def _begin(self) -> MemoryTransaction:
        return MemoryTransaction(self)

    async def _commit(self, tx: StreamTransaction) -> None:
        assert isinstance(tx, MemoryTransaction)
        tx.apply()

    async def _rollback(self, tx: StreamTransaction) -> None:
        # Staged writes are simply dropped
        pass

    def stats(self) -> dict[str, int]:
        """Row counts per table."""
        return {
            "events": len(self._events),
            "streams": len(self._streams),
            "index_folders": len(self._folders),
        }
