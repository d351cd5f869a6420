"""
Content-addressed events and their ingestion checks.

Events are immutable records linked by `prev`/`genesis` CIDs. They are
validated for shape, then linked against stored ancestry before the
tip resolver considers them.
"""

from .linker import ChainLinker, LinkOutcome, order_chain
from .payload import EventPayload, StreamHeader, decode_payload, encode_payload
from .types import (
    Event,
    IndexFolder,
    Stream,
    SubmitResult,
    SubmitStatus,
    TipConflict,
)
from .validator import EventValidator

__all__ = [
    # Records
    "Event",
    "Stream",
    "IndexFolder",
    # Submission results
    "SubmitResult",
    "SubmitStatus",
    "TipConflict",
    # Payloads
    "EventPayload",
    "StreamHeader",
    "decode_payload",
    "encode_payload",
    # Checks
    "EventValidator",
    "ChainLinker",
    "LinkOutcome",
    "order_chain",
]
