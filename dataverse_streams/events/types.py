"""
Core record types for the stream resolution engine.

Events are immutable once written and addressed by their CID. Streams
and index folders are the mutable projections maintained on top of the
event chain.
"""

from __future__ import annotations

import base64
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from uuid import UUID

from ..exceptions import TipConflictError


@dataclass(frozen=True)
class Event:
    """A single immutable event in a stream's chain.

    Attributes:
        cid: Content identifier of this event (primary key)
        prev: CID of the predecessor event, None for the genesis event
        genesis: CID of the stream's genesis event (equals cid for genesis)
        blocks: Ordered, non-empty sequence of opaque binary blocks.
            blocks[0] carries the JSON payload; later blocks hold
            signatures and proofs that are stored but never folded.
    """

    cid: str
    prev: str | None
    genesis: str
    blocks: tuple[bytes, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        # Accept any sequence but store an immutable tuple
        if not isinstance(self.blocks, tuple):
            object.__setattr__(self, "blocks", tuple(self.blocks))

    @property
    def is_genesis(self) -> bool:
        """True for the self-referential first event of a stream."""
        return self.prev is None and self.cid == self.genesis

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-safe dictionary (blocks base64 encoded)."""
        return {
            "cid": self.cid,
            "prev": self.prev,
            "genesis": self.genesis,
            "blocks": [
                base64.b64encode(block).decode("ascii") if block is not None else None
                for block in self.blocks
            ],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Event:
        """Deserialize from dictionary."""
        return cls(
            cid=data["cid"],
            prev=data.get("prev"),
            genesis=data["genesis"],
            blocks=tuple(
                base64.b64decode(block) if block is not None else None
                for block in data.get("blocks", [])
            ),
        )


@dataclass
class Stream:
    """Mutable projection of a stream's accepted chain.

    Attributes:
        stream_id: Stable stream identifier derived from the genesis CID
        dapp_id: Owning tenant
        tip: CID of the currently accepted latest event
        account: Optional owning account (first controller of the genesis header)
        model_id: Optional model classifying the stream's content
        content: JSON document folded from genesis to tip
    """

    stream_id: str
    dapp_id: UUID
    tip: str
    account: str | None = None
    model_id: str | None = None
    content: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for storage."""
        return {
            "stream_id": self.stream_id,
            "dapp_id": str(self.dapp_id),
            "tip": self.tip,
            "account": self.account,
            "model_id": self.model_id,
            "content": self.content,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Stream:
        """Deserialize from dictionary."""
        dapp_id = data["dapp_id"]
        content = data.get("content")
        if isinstance(content, str):
            content = json.loads(content)
        return cls(
            stream_id=data["stream_id"],
            dapp_id=dapp_id if isinstance(dapp_id, UUID) else UUID(str(dapp_id)),
            tip=data["tip"],
            account=data.get("account"),
            model_id=data.get("model_id"),
            content=content if content is not None else {},
        )


@dataclass
class IndexFolder:
    """Secondary index entry kept in lockstep with a stream's tip."""

    stream_id: str
    tip: str
    signal: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {"stream_id": self.stream_id, "tip": self.tip, "signal": self.signal}


class SubmitStatus(Enum):
    """Outcome of an event submission."""

    APPLIED = "applied"  # Event became the stream's tip
    NOT_APPLIED = "not_applied"  # Stored, but the tip had moved on
    DUPLICATE = "duplicate"  # Event already stored, nothing written


@dataclass(frozen=True)
class TipConflict:
    """Details of a lost compare-and-swap on a stream's tip.

    The submitted event is durable and retrievable by CID; the caller
    resubmits a new event built on `current_tip`.
    """

    stream_id: str
    event_cid: str
    expected_prev: str | None
    current_tip: str

    def to_error(self) -> TipConflictError:
        """Convert to the equivalent exception."""
        return TipConflictError(
            self.stream_id, self.event_cid, self.expected_prev, self.current_tip
        )


@dataclass(frozen=True)
class SubmitResult:
    """Result of `StreamEngine.submit_event`."""

    stream_id: str
    event_cid: str
    tip: str
    status: SubmitStatus
    conflict: TipConflict | None = None

    @property
    def applied(self) -> bool:
        """Whether the submitted event became the stream's tip."""
        return self.status == SubmitStatus.APPLIED

    def raise_for_conflict(self) -> SubmitResult:
        """Raise TipConflictError if the submission lost a tip race."""
        if self.conflict is not None:
            raise self.conflict.to_error()
        return self

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the `{applied, tip}` response shape plus context."""
        return {
            "applied": self.applied,
            "tip": self.tip,
            "stream_id": self.stream_id,
            "event_cid": self.event_cid,
            "status": self.status.value,
        }
