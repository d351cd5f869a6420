"""
Tests for DuckDB storage backend.

Uses real DuckDB (in-memory or a temp file) for accurate testing.
"""

import duckdb
import pytest

from conftest import DAPP_ID, make_genesis, make_update

from dataverse_streams.backends.duckdb import DuckDBBackend, DuckDBConfig
from dataverse_streams.engine import StreamEngine
from dataverse_streams.exceptions import StorageIOError
from dataverse_streams.id_utils import stream_id_for_genesis


@pytest.fixture
async def duckdb_storage():
    """Fixture providing initialized in-memory DuckDB backend."""
    storage = await DuckDBBackend.create(DuckDBConfig(db_path=":memory:"))
    yield storage
    await storage.close()


class TestDuckDBInitialization:
    """Tests for DuckDB backend initialization."""

    @pytest.mark.asyncio
    async def test_create_with_defaults(self, monkeypatch):
        monkeypatch.delenv("DATAVERSE_STREAMS_DUCKDB_PATH", raising=False)
        storage = await DuckDBBackend.create()
        assert storage._initialized is True
        await storage.close()
        assert storage.conn is None

    def test_config_from_env(self, monkeypatch):
        monkeypatch.setenv("DATAVERSE_STREAMS_DUCKDB_PATH", "/data/streams.duckdb")
        assert DuckDBConfig.from_env().db_path == "/data/streams.duckdb"

    @pytest.mark.asyncio
    async def test_native_column_types(self, duckdb_storage):
        rows = duckdb_storage.conn.execute(
            "SELECT column_name, data_type FROM information_schema.columns "
            "WHERE table_name = 'events' OR table_name = 'streams'"
        ).fetchall()
        types = dict(rows)
        assert types["blocks"] == "BLOB[]"
        assert types["dapp_id"] == "UUID"


class TestDuckDBSchema:
    """The schema rejects rows the engine would never write."""

    @pytest.mark.asyncio
    async def test_empty_blocks_rejected_by_schema(self, duckdb_storage):
        with pytest.raises(duckdb.ConstraintException):
            duckdb_storage.conn.execute(
                "INSERT INTO events (cid, prev, genesis, blocks) VALUES ('G', NULL, 'G', []::BLOB[])"
            )

    @pytest.mark.asyncio
    async def test_null_block_rejected_by_schema(self, duckdb_storage):
        with pytest.raises(duckdb.ConstraintException):
            duckdb_storage.conn.execute(
                "INSERT INTO events (cid, prev, genesis, blocks) VALUES ('G', NULL, 'G', ['a'::BLOB, NULL])"
            )

    @pytest.mark.asyncio
    async def test_binary_blocks_round_trip(self, duckdb_storage):
        event = make_genesis("G", extra_blocks=(bytes(range(256)),))
        async with duckdb_storage.transaction() as tx:
            await tx.insert_event(event)
        async with duckdb_storage.transaction() as tx:
            assert await tx.get_event("G") == event


class TestDuckDBErrors:
    """Driver errors are wrapped and rolled back."""

    @pytest.mark.asyncio
    async def test_driver_error_wrapped(self, duckdb_storage):
        with pytest.raises(StorageIOError) as exc_info:
            async with duckdb_storage.transaction() as tx:
                await tx.insert_event(make_genesis("G"))
                await tx._fetchall("SELECT * FROM no_such_table")

        assert isinstance(exc_info.value.cause, duckdb.Error)
        async with duckdb_storage.transaction() as tx:
            assert await tx.get_event("G") is None


class TestDuckDBPersistence:
    """File databases keep streams across restarts."""

    @pytest.mark.asyncio
    async def test_reopen_file(self, tmp_path):
        config = DuckDBConfig(db_path=tmp_path / "streams.duckdb")

        engine = StreamEngine(await DuckDBBackend.create(config))
        await engine.submit_event(make_genesis("G", {"n": 0}), dapp_id=DAPP_ID)
        await engine.submit_event(make_update("A", "G", patch=[{"op": "add", "path": "/n", "value": 1}]))
        await engine.close()

        engine = StreamEngine(await DuckDBBackend.create(config))
        try:
            stream = await engine.get_stream(stream_id_for_genesis("G"))
            assert stream.tip == "A"
            assert stream.content == {"n": 1}
            assert [e.cid for e in await engine.load_events(stream.stream_id)] == ["G", "A"]
        finally:
            await engine.close()
