"""Tests for engine configuration and engine construction from config."""

import logging

import pytest
import yaml

from conftest import DAPP_ID, MODEL_ID, make_genesis, make_update

from dataverse_streams.backends import MemoryBackend
from dataverse_streams.backends.duckdb import DuckDBBackend
from dataverse_streams.backends.sqlite import SQLiteBackend
from dataverse_streams.blockstore import FileBlockStore, MemoryBlockStore
from dataverse_streams.config import EngineConfig
from dataverse_streams.engine import StreamEngine
from dataverse_streams.exceptions import ValidationError
from dataverse_streams.id_utils import stream_id_for_genesis


class TestEngineConfig:
    """Tests for EngineConfig construction and validation."""

    def test_defaults(self):
        config = EngineConfig()
        assert config.backend == "memory"
        assert config.db_path == ":memory:"
        assert config.projection_cache_size == 1000
        assert config.block_store_path is None
        assert config.structured_logging is False

    def test_unknown_backend_rejected(self):
        with pytest.raises(ValidationError, match="backend"):
            EngineConfig(backend="postgres")

    def test_negative_cache_size_rejected(self):
        with pytest.raises(ValidationError, match="projection_cache_size"):
            EngineConfig(projection_cache_size=-1)

    def test_block_size_limit_must_be_positive(self):
        with pytest.raises(ValidationError, match="max_block_bytes"):
            EngineConfig(max_block_bytes=0)

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("DATAVERSE_STREAMS_BACKEND", "sqlite")
        monkeypatch.setenv("DATAVERSE_STREAMS_DB_PATH", "/tmp/streams.db")
        monkeypatch.setenv("DATAVERSE_STREAMS_PROJECTION_CACHE_SIZE", "50")
        monkeypatch.setenv("DATAVERSE_STREAMS_MAX_BLOCK_BYTES", "4096")
        monkeypatch.setenv("DATAVERSE_STREAMS_STRUCTURED_LOGGING", "true")

        config = EngineConfig.from_env()
        assert config.backend == "sqlite"
        assert config.db_path == "/tmp/streams.db"
        assert config.projection_cache_size == 50
        assert config.max_block_bytes == 4096
        assert config.structured_logging is True

    def test_from_env_defaults(self, monkeypatch):
        for name in ("BACKEND", "DB_PATH", "PROJECTION_CACHE_SIZE", "BLOCK_STORE_PATH"):
            monkeypatch.delenv(f"DATAVERSE_STREAMS_{name}", raising=False)
        config = EngineConfig.from_env()
        assert config.backend == "memory"
        assert config.block_store_path is None

    def test_from_env_bad_number(self, monkeypatch):
        monkeypatch.setenv("DATAVERSE_STREAMS_PROJECTION_CACHE_SIZE", "lots")
        with pytest.raises(ValidationError, match="environment"):
            EngineConfig.from_env()

    def test_from_file(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text(
            yaml.safe_dump(
                {"engine": {"backend": "duckdb", "db_path": "streams.duckdb", "log_level": "DEBUG"}}
            )
        )
        config = EngineConfig.from_file(path)
        assert config.backend == "duckdb"
        assert config.db_path == "streams.duckdb"
        assert config.log_level == "DEBUG"

    def test_from_file_without_engine_section(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text("other: {}\n")
        assert EngineConfig.from_file(path) == EngineConfig()

    def test_from_file_unknown_setting(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text("engine:\n  colour: blue\n")
        with pytest.raises(ValidationError, match="colour"):
            EngineConfig.from_file(path)

    def test_from_file_invalid_yaml(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text("engine: [unclosed\n")
        with pytest.raises(ValidationError, match="invalid YAML"):
            EngineConfig.from_file(path)

    def test_from_missing_file(self, tmp_path):
        with pytest.raises(ValidationError, match="cannot read"):
            EngineConfig.from_file(tmp_path / "absent.yaml")

    def test_to_dict(self, tmp_path):
        config = EngineConfig(block_store_path=tmp_path)
        data = config.to_dict()
        assert data["block_store_path"] == str(tmp_path)
        assert EngineConfig.from_dict(data).block_store_path == str(tmp_path)


class TestEngineCreate:
    """Tests for StreamEngine.create."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "kind,backend_class",
        [("memory", MemoryBackend), ("sqlite", SQLiteBackend), ("duckdb", DuckDBBackend)],
    )
    async def test_backend_selection(self, kind, backend_class):
        engine = await StreamEngine.create(EngineConfig(backend=kind))
        try:
            assert isinstance(engine.backend, backend_class)
            assert engine.backend.initialized
            assert isinstance(engine.block_store, MemoryBlockStore)
        finally:
            await engine.close()

    @pytest.mark.asyncio
    async def test_projection_cache_configured(self):
        async with await StreamEngine.create(EngineConfig(projection_cache_size=5)) as engine:
            assert engine.projector.cache.max_entries == 5

        async with await StreamEngine.create(EngineConfig(projection_cache_size=0)) as engine:
            assert engine.projector.cache is None

    @pytest.mark.asyncio
    async def test_file_block_store(self, tmp_path):
        config = EngineConfig(block_store_path=tmp_path / "blocks")
        async with await StreamEngine.create(config) as engine:
            assert isinstance(engine.block_store, FileBlockStore)
            await engine.submit_event(make_genesis("G"), dapp_id=DAPP_ID)
            assert await engine.block_store.has("G")

    @pytest.mark.asyncio
    async def test_models_file(self, tmp_path):
        models = tmp_path / "models.yaml"
        models.write_text(
            yaml.safe_dump({"models": [{"model_id": MODEL_ID, "name": "post", "dapp_id": str(DAPP_ID)}]})
        )
        async with await StreamEngine.create(EngineConfig(models_file=models)) as engine:
            result = await engine.submit_event(make_genesis("G"))
            assert (await engine.get_stream(result.stream_id)).dapp_id == DAPP_ID

    @pytest.mark.asyncio
    async def test_block_size_limit_applied(self):
        async with await StreamEngine.create(EngineConfig(max_block_bytes=4)) as engine:
            assert engine.validator.max_block_bytes == 4

    @pytest.mark.asyncio
    async def test_custom_signal_extractor(self):
        engine = await StreamEngine.create(
            EngineConfig(), signal_extractor=lambda content: {"keys": sorted(content)}
        )
        async with engine:
            await engine.submit_event(make_genesis("G", {"b": 1, "a": 2}), dapp_id=DAPP_ID)
            assert await engine.query_by_signal({"keys": ["a"]}) == [stream_id_for_genesis("G")]

    @pytest.mark.asyncio
    async def test_sqlite_file_survives_restart(self, tmp_path):
        config = EngineConfig(backend="sqlite", db_path=tmp_path / "streams.db")

        async with await StreamEngine.create(config) as engine:
            await engine.submit_event(make_genesis("G", {"n": 0}), dapp_id=DAPP_ID)
            await engine.submit_event(make_update("A", "G", patch=[{"op": "add", "path": "/n", "value": 1}]))

        async with await StreamEngine.create(config) as engine:
            stream = await engine.get_stream(stream_id_for_genesis("G"))
            assert stream.tip == "A"
            assert stream.content == {"n": 1}

    @pytest.mark.asyncio
    async def test_log_level_applied(self):
        async with await StreamEngine.create(EngineConfig(log_level="WARNING")):
            assert logging.getLogger("dataverse_streams").level == logging.WARNING
        logging.getLogger("dataverse_streams").setLevel(logging.NOTSET)
