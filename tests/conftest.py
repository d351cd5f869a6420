"""
Shared test configuration and fixtures.

Provides event builders and backend fixtures. Backend-agnostic tests
take the parametrized `backend` fixture and run against the memory
backend and real in-memory SQLite and DuckDB databases.
"""

import logging
from typing import Any
from uuid import UUID

import pytest

from dataverse_streams.backends import MemoryBackend
from dataverse_streams.backends.duckdb import DuckDBBackend, DuckDBConfig
from dataverse_streams.backends.sqlite import SQLiteBackend, SQLiteConfig
from dataverse_streams.blockstore import MemoryBlockStore
from dataverse_streams.engine import StreamEngine
from dataverse_streams.events import Event, encode_payload
from dataverse_streams.projection import ProjectionCache, StreamProjector

logger = logging.getLogger(__name__)

DAPP_ID = UUID("7a1f0c7e-2b4d-4c1e-9a57-3f0e8d6b5a21")
OTHER_DAPP_ID = UUID("0b9e4c3a-1f2d-4e5b-8c7a-6d5e4f3a2b1c")

MODEL_ID = "kjzl6hvfrbw6c8apa5yce6ah3fsz9sgrh6upnivl6h3ipazbrbbw7hlkmsfcydx"
ACCOUNT = "did:pkh:eip155:1:0x3c1e4a8b2f7d5e6a9b0c1d2e3f4a5b6c7d8e9f0a"


def make_genesis(
    cid: str = "G",
    data: dict[str, Any] | None = None,
    *,
    model: str | None = MODEL_ID,
    controllers: list[str] | None = None,
    extra_blocks: tuple[bytes, ...] = (),
) -> Event:
    """Build a genesis event whose payload carries `data` as initial content."""
    payload = encode_payload(
        data if data is not None else {},
        model=model,
        controllers=controllers if controllers is not None else [ACCOUNT],
    )
    return Event(cid=cid, prev=None, genesis=cid, blocks=(payload, *extra_blocks))


def make_update(
    cid: str,
    prev: str,
    genesis: str = "G",
    patch: list[dict[str, Any]] | None = None,
) -> Event:
    """Build an update event carrying a JSON Patch (or no data at all)."""
    return Event(cid=cid, prev=prev, genesis=genesis, blocks=(encode_payload(patch),))


def set_field(path: str, value: Any) -> list[dict[str, Any]]:
    """Single-operation patch that sets `path` to `value`."""
    return [{"op": "add", "path": path, "value": value}]


async def create_backend(kind: str):
    if kind == "sqlite":
        return await SQLiteBackend.create(SQLiteConfig(db_path=":memory:"))
    if kind == "duckdb":
        return await DuckDBBackend.create(DuckDBConfig(db_path=":memory:"))
    return await MemoryBackend.create()


@pytest.fixture(params=["memory", "sqlite", "duckdb"])
async def backend(request):
    """
    Fixture providing an initialized backend of each kind.

    SQLite and DuckDB run against real in-memory databases.
    """
    storage = await create_backend(request.param)
    yield storage
    await storage.close()


@pytest.fixture
async def memory_backend():
    """Fixture providing the memory backend only."""
    storage = await MemoryBackend.create()
    yield storage
    await storage.close()


@pytest.fixture
def block_store():
    """Fixture providing an in-memory block store."""
    return MemoryBlockStore()


@pytest.fixture(params=["uncached", "cached"])
async def engine(request, backend, block_store):
    """
    Fixture providing an engine over each backend kind.

    Each backend runs once without a projection cache and once with the
    cache enabled, as engines built from the default config have.
    """
    cache = ProjectionCache(max_entries=100) if request.param == "cached" else None
    stream_engine = StreamEngine(backend, block_store=block_store, projector=StreamProjector(cache))
    yield stream_engine
    await stream_engine.close()
