"""
File-based block store.

Each block lives in its own file. The file name is the lower-case,
unpadded base32 of the CID, so any CID string maps to a safe name;
CIDs too long for a file name are stored under a hash of the CID.
Files are sharded into sub-directories by the first two hex digits of
the CID's sha256.

Writes are atomic: data goes to a temp file that is renamed into
place, so readers never observe a partial block.
"""

from __future__ import annotations

import base64
import hashlib
import logging
import os
import tempfile
from pathlib import Path

import aiofiles
import aiofiles.os

from ..exceptions import StorageIOError
from .base import BlockStore

logger = logging.getLogger(__name__)

# Longest encoded name stored as-is, well under common NAME_MAX of 255
MAX_NAME_LENGTH = 200


def _b32(data: bytes) -> str:
    return base64.b32encode(data).decode("ascii").rstrip("=").lower()


def block_file_name(cid: str) -> str:
    """File name for `cid`: "b" + base32(cid), or "h" + base32(sha256(cid)) when long."""
    raw = cid.encode("utf-8")
    name = f"b{_b32(raw)}"
    if len(name) > MAX_NAME_LENGTH:
        name = f"h{_b32(hashlib.sha256(raw).digest())}"
    return name


class FileBlockStore(BlockStore):
    """Block store rooted at a local directory.

    Args:
        root: Directory holding the sharded block files
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def path_for(self, cid: str) -> Path:
        """Location of the file holding `cid`."""
        shard = hashlib.sha256(cid.encode("utf-8")).hexdigest()[:2]
        return self.root / shard / f"{block_file_name(cid)}.block"

    async def put(self, cid: str, data: bytes) -> bool:
        path = self.path_for(cid)
        if await aiofiles.os.path.exists(path):
            return False

        try:
            await aiofiles.os.makedirs(path.parent, exist_ok=True)
        except OSError as e:
            raise StorageIOError("create_directory", str(path.parent), e) from e

        fd, temp_path = tempfile.mkstemp(dir=path.parent, prefix=".tmp_", suffix=".block")
        try:
            os.close(fd)
            async with aiofiles.open(temp_path, "wb") as f:
                await f.write(bytes(data))
                await f.flush()
                os.fsync(f.fileno())

            # Atomic rename; a concurrent writer of the same CID wrote identical bytes
            await aiofiles.os.replace(temp_path, path)
        except OSError as e:
            try:
                await aiofiles.os.remove(temp_path)
            except OSError:
                pass
            raise StorageIOError("write_block", str(path), e) from e

        logger.debug(f"Stored block {cid} ({len(data)} bytes)")
        return True

    async def get(self, cid: str) -> bytes | None:
        path = self.path_for(cid)
        try:
            if not await aiofiles.os.path.exists(path):
                return None
            async with aiofiles.open(path, "rb") as f:
                return await f.read()
        except OSError as e:
            raise StorageIOError("read_block", str(path), e) from e

    async def has(self, cid: str) -> bool:
        return await aiofiles.os.path.exists(self.path_for(cid))
