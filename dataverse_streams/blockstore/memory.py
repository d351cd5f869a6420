"""In-memory block store for tests and embedded use."""

from __future__ import annotations

from .base import BlockStore


class MemoryBlockStore(BlockStore):
    """Block store backed by a dict."""

    def __init__(self) -> None:
        self._blocks: dict[str, bytes] = {}

    async def put(self, cid: str, data: bytes) -> bool:
        if cid in self._blocks:
            return False
        self._blocks[cid] = bytes(data)
        return True

    async def get(self, cid: str) -> bytes | None:
        return self._blocks.get(cid)

    async def has(self, cid: str) -> bool:
        return cid in self._blocks

    def __len__(self) -> int:
        return len(self._blocks)
