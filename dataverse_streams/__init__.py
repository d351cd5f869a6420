"""
Dataverse Streams

Resolves an append-only, content-addressed event log into mutable,
queryable streams.

Provides:
- Event validation and chain-linkage checks
- Compare-and-swap tip resolution (last successful swap wins)
- Deterministic JSON content projection with an LRU fold cache
- Index folders with signal queries, kept in step with stream tips
- Memory, SQLite and DuckDB backends; memory and file block stores

Usage:

    >>> from dataverse_streams import EngineConfig, StreamEngine
    >>> async with await StreamEngine.create(EngineConfig(backend="sqlite")) as engine:
    ...     result = await engine.submit_event(genesis, dapp_id=dapp_id)
    ...     stream = await engine.get_stream(result.stream_id)
    ...     matching = await engine.query_by_signal({"kind": "post"})

Backend Selection:

    # In-process, for tests and embedding
    from dataverse_streams.backends import MemoryBackend

    # SQLite for single-node deployments
    from dataverse_streams.backends.sqlite import SQLiteBackend, SQLiteConfig

    # DuckDB for local analytics over the event log
    from dataverse_streams.backends.duckdb import DuckDBBackend, DuckDBConfig
"""

# Backend abstraction
from .backends import MemoryBackend, StreamBackend, StreamFilters, StreamTransaction

# Block storage
from .blockstore import BlockStore, FileBlockStore, MemoryBlockStore

# Configuration
from .config import EngineConfig

# Engine
from .engine import StreamEngine, TipResolver

# Events
from .events import (
    ChainLinker,
    Event,
    EventValidator,
    IndexFolder,
    Stream,
    SubmitResult,
    SubmitStatus,
    TipConflict,
    decode_payload,
    encode_payload,
)

# Exceptions
from .exceptions import (
    ChainIntegrityError,
    EventNotFoundError,
    MalformedEventError,
    ModelNotFoundError,
    StorageConnectionError,
    StorageIOError,
    StreamNotFoundError,
    StreamStoreError,
    TipConflictError,
    UnknownStreamError,
    ValidationError,
)
from .id_utils import stream_id_for_genesis

# Index and projection
from .index import IndexMaintainer
from .projection import ProjectionCache, StreamProjector, canonical_json

# Models
from .registry import Model, ModelRegistry

# Conditional imports for optional backends
try:
    from .backends.duckdb import DuckDBBackend, DuckDBConfig  # noqa: F401

    _has_duckdb = True
except ImportError:
    _has_duckdb = False

try:
    from .backends.sqlite import SQLiteBackend, SQLiteConfig  # noqa: F401

    _has_sqlite = True
except ImportError:
    _has_sqlite = False


__all__ = [
    # Engine
    "StreamEngine",
    "TipResolver",
    "EngineConfig",
    # Records
    "Event",
    "Stream",
    "IndexFolder",
    "SubmitResult",
    "SubmitStatus",
    "TipConflict",
    "encode_payload",
    "decode_payload",
    "stream_id_for_genesis",
    # Pipeline components
    "EventValidator",
    "ChainLinker",
    "StreamProjector",
    "ProjectionCache",
    "canonical_json",
    "IndexMaintainer",
    # Storage
    "StreamBackend",
    "StreamTransaction",
    "StreamFilters",
    "MemoryBackend",
    "BlockStore",
    "MemoryBlockStore",
    "FileBlockStore",
    # Models
    "Model",
    "ModelRegistry",
    # Exceptions
    "StreamStoreError",
    "MalformedEventError",
    "ChainIntegrityError",
    "UnknownStreamError",
    "TipConflictError",
    "StreamNotFoundError",
    "EventNotFoundError",
    "ModelNotFoundError",
    "StorageIOError",
    "StorageConnectionError",
    "ValidationError",
]

# Add optional exports
if _has_duckdb:
    __all__.extend(["DuckDBBackend", "DuckDBConfig"])

if _has_sqlite:
    __all__.extend(["SQLiteBackend", "SQLiteConfig"])

__version__ = "0.1.0"
