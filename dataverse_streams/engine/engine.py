"""
Stream engine facade.

`StreamEngine` is the explicit handle every caller goes through. It owns
one storage backend and wires the ingestion pipeline together:

    validate -> link -> resolve tip -> project -> index -> archive

Everything after validation runs in a single backend transaction, so a
rejected event leaves no trace in `events`, `streams` or
`index_folders`, and an index folder never disagrees with its stream's
tip.
"""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from ..backends.base import StreamBackend, StreamFilters, StreamTransaction
from ..backends.memory import MemoryBackend
from ..blockstore.base import BlockStore
from ..blockstore.file import FileBlockStore
from ..blockstore.memory import MemoryBlockStore
from ..config import EngineConfig
from ..events.linker import ChainLinker, LinkOutcome, order_chain
from ..events.payload import decode_payload
from ..events.types import Event, IndexFolder, Stream, SubmitResult, SubmitStatus
from ..events.validator import EventValidator
from ..exceptions import (
    ChainIntegrityError,
    EventNotFoundError,
    MalformedEventError,
    StreamNotFoundError,
    UnknownStreamError,
    ValidationError,
)
from ..id_utils import is_stream_id, stream_id_for_genesis
from ..index.maintainer import IndexMaintainer
from ..index.signal import SignalExtractor
from ..logging_utils import StreamLoggerAdapter, configure_structured_logging, get_engine_logger
from ..projection.cache import ProjectionCache
from ..projection.projector import ProjectedState, StreamProjector
from ..registry import ModelRegistry
from .resolver import TipResolver

logger = get_engine_logger("engine")


async def create_backend(config: EngineConfig) -> StreamBackend:
    """Create and initialize the backend named by `config.backend`."""
    if config.backend == "sqlite":
        from ..backends.sqlite import SQLiteBackend, SQLiteConfig

        return await SQLiteBackend.create(SQLiteConfig(db_path=config.db_path))

    if config.backend == "duckdb":
        from ..backends.duckdb import DuckDBBackend, DuckDBConfig

        return await DuckDBBackend.create(DuckDBConfig(db_path=config.db_path))

    return await MemoryBackend.create()


class StreamEngine:
    """Resolves submitted events into streams.

    Args:
        backend: Transactional store for events, streams and index folders
        block_store: Archive for accepted event envelopes (default: in memory)
        projector: Content folder (default: uncached)
        index_maintainer: Signal derivation and index upkeep
        registry: Declared models, used to attribute genesis events to a dapp
        validator: Structural event checks
    """

    def __init__(
        self,
        backend: StreamBackend,
        *,
        block_store: BlockStore | None = None,
        projector: StreamProjector | None = None,
        index_maintainer: IndexMaintainer | None = None,
        registry: ModelRegistry | None = None,
        validator: EventValidator | None = None,
    ) -> None:
        self.backend = backend
        self.block_store = block_store if block_store is not None else MemoryBlockStore()
        self.projector = projector or StreamProjector()
        self.index_maintainer = index_maintainer or IndexMaintainer()
        self.registry = registry if registry is not None else ModelRegistry()
        self.validator = validator or EventValidator()
        self.linker = ChainLinker()
        self.resolver = TipResolver(self.projector, self.index_maintainer)

    @classmethod
    async def create(
        cls,
        config: EngineConfig | None = None,
        *,
        backend: StreamBackend | None = None,
        signal_extractor: SignalExtractor | None = None,
    ) -> StreamEngine:
        """Build an engine from configuration.

        Args:
            config: Engine settings (default: from environment)
            backend: Use this backend instead of the configured one
            signal_extractor: Custom signal derivation for index folders
        """
        if config is None:
            config = EngineConfig.from_env()

        if config.structured_logging:
            configure_structured_logging(config.log_level)
        else:
            logging.getLogger("dataverse_streams").setLevel(config.log_level)

        if backend is None:
            backend = await create_backend(config)
        elif not backend.initialized:
            await backend.initialize()

        block_store: BlockStore
        if config.block_store_path is not None:
            block_store = FileBlockStore(config.block_store_path)
        else:
            block_store = MemoryBlockStore()

        cache = ProjectionCache(config.projection_cache_size) if config.projection_cache_size else None
        registry = ModelRegistry.from_file(config.models_file) if config.models_file else ModelRegistry()

        engine = cls(
            backend,
            block_store=block_store,
            projector=StreamProjector(cache),
            index_maintainer=IndexMaintainer(signal_extractor),
            registry=registry,
            validator=EventValidator(config.max_block_bytes),
        )
        logger.info(f"Stream engine ready on {backend.name} backend")
        return engine

    async def close(self) -> None:
        """Close the backend and block store."""
        await self.backend.close()
        await self.block_store.close()

    async def __aenter__(self) -> StreamEngine:
        if not self.backend.initialized:
            await self.backend.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    # =========================================================================
    # Ingestion
    # =========================================================================

    async def submit_event(self, event: Event, *, dapp_id: UUID | str | None = None) -> SubmitResult:
        """Ingest one event.

        Args:
            event: The event to store
            dapp_id: Owning dapp for a genesis event. When omitted the
                owner is looked up from the model named in the genesis
                header. Ignored for other events.

        Returns:
            APPLIED if the event became its stream's tip, NOT_APPLIED if
            it was stored but lost the tip race (see `result.conflict`),
            or DUPLICATE if it was already stored.

        Raises:
            MalformedEventError: Structural or payload problems
            ChainIntegrityError: Unknown prev, genesis mismatch or CID collision
            UnknownStreamError: The event's stream was never created
            ValidationError: A genesis event whose owning dapp is unknown
            StorageIOError: The backend or block store failed
        """
        cid = event.cid if isinstance(event.cid, str) else None
        log = StreamLoggerAdapter(logger, {"event_cid": cid})

        try:
            self.validator.validate(event)
            decode_payload(event)
        except MalformedEventError as e:
            log.warning(f"Rejected malformed event: {e.message}")
            raise

        stream_id = stream_id_for_genesis(event.genesis)
        log = StreamLoggerAdapter(logger, {"event_cid": event.cid, "stream_id": stream_id})

        try:
            async with self.backend.transaction() as tx:
                result = await self._resolve(tx, event, stream_id, dapp_id)
                await self.block_store.put_event(event)
        except (ChainIntegrityError, MalformedEventError, UnknownStreamError, ValidationError) as e:
            log.warning(f"Rejected event: {e.message}")
            raise

        if result.status == SubmitStatus.APPLIED:
            log.debug(f"Applied event, tip is now {result.tip}")
        elif result.status == SubmitStatus.DUPLICATE:
            log.debug("Duplicate submission ignored")
        return result

    async def _resolve(
        self,
        tx: StreamTransaction,
        event: Event,
        stream_id: str,
        dapp_id: UUID | str | None,
    ) -> SubmitResult:
        outcome = await self.linker.link(tx, event)

        if outcome == LinkOutcome.GENESIS:
            owner = self._owner_for_genesis(event, dapp_id)
            return await self.resolver.create_stream(tx, event, stream_id, owner)

        stream = await tx.get_stream(stream_id)
        if stream is None:
            raise UnknownStreamError(stream_id, event.cid)

        if outcome == LinkOutcome.DUPLICATE:
            return SubmitResult(
                stream_id=stream_id,
                event_cid=event.cid,
                tip=stream.tip,
                status=SubmitStatus.DUPLICATE,
            )

        return await self.resolver.advance(tx, event, stream)

    def _owner_for_genesis(self, event: Event, dapp_id: UUID | str | None) -> UUID:
        if dapp_id is not None:
            if isinstance(dapp_id, UUID):
                return dapp_id
            try:
                return UUID(str(dapp_id))
            except ValueError as e:
                raise ValidationError("dapp_id", "not a UUID", str(dapp_id)) from e

        header = decode_payload(event).header
        model_id = header.model if header else None
        if model_id is not None and model_id in self.registry:
            return self.registry.dapp_for_model(model_id)

        raise ValidationError(
            "dapp_id",
            "required for a genesis event whose model is not registered",
            model_id,
        )

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_stream(self, stream_id: str) -> Stream:
        """Current tip and content of a stream.

        Raises:
            StreamNotFoundError: If no such stream exists
        """
        if not is_stream_id(stream_id):
            raise StreamNotFoundError(stream_id)
        async with self.backend.transaction() as tx:
            stream = await tx.get_stream(stream_id)
        if stream is None:
            raise StreamNotFoundError(stream_id)
        return stream

    async def get_event(self, cid: str) -> Event:
        """Get a stored event by CID.

        Falls back to the block store for events archived there but
        missing from the database.

        Raises:
            EventNotFoundError: If neither store holds the event
        """
        async with self.backend.transaction() as tx:
            event = await tx.get_event(cid)
        if event is not None:
            return event

        event = await self.block_store.get_event(cid)
        if event is None:
            raise EventNotFoundError(cid)
        logger.debug(f"Event {cid} served from block store")
        return event

    async def get_index_folder(self, stream_id: str) -> IndexFolder:
        """Index folder of a stream.

        Raises:
            StreamNotFoundError: If the stream has no index folder
        """
        if not is_stream_id(stream_id):
            raise StreamNotFoundError(stream_id)
        async with self.backend.transaction() as tx:
            folder = await tx.get_index_folder(stream_id)
        if folder is None:
            raise StreamNotFoundError(stream_id)
        return folder

    async def load_events(self, stream_id: str, tip: str | None = None) -> list[Event]:
        """Events of a stream's chain, genesis first.

        Args:
            stream_id: The stream to load
            tip: Walk back from this event instead of the current tip
                (e.g. to read an unapplied fork branch)

        Raises:
            StreamNotFoundError: If no such stream exists
            EventNotFoundError: If `tip` is not an event of this stream
            ChainIntegrityError: If the stored chain has a gap
        """
        if not is_stream_id(stream_id):
            raise StreamNotFoundError(stream_id)
        async with self.backend.transaction() as tx:
            return await self._load_chain(tx, stream_id, tip)

    async def project_branch(self, stream_id: str, tip: str) -> ProjectedState:
        """Content a stream would have with `tip` as its tip.

        Folds the chain ending at `tip`, which may be an unapplied fork
        branch. Nothing is written. With a projection cache the fold
        resumes from the deepest cached ancestor, usually the fork point.

        Raises:
            StreamNotFoundError: If no such stream exists
            EventNotFoundError: If `tip` is not an event of this stream
        """
        chain = await self.load_events(stream_id, tip)
        return self.projector.project(chain)

    async def _load_chain(self, tx: StreamTransaction, stream_id: str, tip: str | None) -> list[Event]:
        stream = await tx.get_stream(stream_id)
        if stream is None:
            raise StreamNotFoundError(stream_id)

        start = await tx.get_event(tip or stream.tip)
        if start is None or stream_id_for_genesis(start.genesis) != stream_id:
            raise EventNotFoundError(tip or stream.tip, stream_id)

        events = await tx.get_events_by_genesis(start.genesis)
        return order_chain(events, start.genesis, start.cid)

    async def list_streams(
        self,
        model_id: str | None = None,
        account: str | None = None,
        dapp_id: UUID | str | None = None,
        limit: int | None = None,
    ) -> list[Stream]:
        """Streams filtered by model, account and owning dapp, ordered by id."""
        filters = StreamFilters(
            model_id=model_id,
            account=account,
            dapp_id=str(dapp_id) if dapp_id is not None else None,
            limit=limit,
        )
        async with self.backend.transaction() as tx:
            return await tx.list_streams(filters)

    async def find_stream_by_content(self, model_id: str, key: str, value: Any) -> Stream | None:
        """First stream of `model_id` whose content has `key` equal to `value`."""
        async with self.backend.transaction() as tx:
            return await tx.find_stream_by_content(model_id, key, value)

    async def query_by_signal(self, predicate: Any) -> list[str]:
        """Stream ids whose index signal satisfies `predicate`.

        Args:
            predicate: A dict matched by JSON containment, or a callable
                taking the signal dict and returning a bool
        """
        async with self.backend.transaction() as tx:
            return await self.index_maintainer.query(tx, predicate)

    # =========================================================================
    # Repair
    # =========================================================================

    async def rebuild_stream(self, stream_id: str) -> Stream:
        """Re-fold a stream's content from its stored chain.

        Rewrites `streams.content` and the index folder at the current tip
        in one transaction. The fold ignores the projection cache.

        Raises:
            StreamNotFoundError: If no such stream exists
            ChainIntegrityError: If the stored chain has a gap
        """
        if not is_stream_id(stream_id):
            raise StreamNotFoundError(stream_id)
        log = StreamLoggerAdapter(logger, {"stream_id": stream_id})

        async with self.backend.transaction() as tx:
            chain = await self._load_chain(tx, stream_id, None)
            state = StreamProjector().project(chain)
            stream = await tx.get_stream(stream_id)

            if not await tx.compare_and_swap_tip(stream_id, state.tip, state.tip, state.content):
                raise ChainIntegrityError(state.tip, "tip moved during rebuild")
            await self.index_maintainer.refresh(tx, stream_id, state.tip, state.content)

        stream.content = state.content
        log.info(f"Rebuilt stream from {len(chain)} events")
        return stream
