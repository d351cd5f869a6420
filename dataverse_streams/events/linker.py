"""
Chain linkage verification.

An event may only join a stream by extending an event that is already
stored for the same genesis. Since `prev` must exist before its
successor is accepted, stored chains are always well-founded: no
cycles, one genesis per stream, monotonic extension.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING

from ..exceptions import ChainIntegrityError
from .types import Event

if TYPE_CHECKING:
    from ..backends.base import StreamTransaction

logger = logging.getLogger(__name__)


class LinkOutcome(Enum):
    """How an event relates to what is already stored."""

    GENESIS = "genesis"  # New stream root
    EXTENDS = "extends"  # prev is stored with the same genesis
    DUPLICATE = "duplicate"  # Identical event already stored


class ChainLinker:
    """Verifies an event's ancestry against stored events."""

    async def link(self, tx: StreamTransaction, event: Event) -> LinkOutcome:
        """Check that `event` can be stored.

        Args:
            tx: Open transaction to read stored events from
            event: A validated event

        Returns:
            The link outcome

        Raises:
            ChainIntegrityError: Unknown prev, genesis mismatch, or an
                existing event with the same CID but different fields
        """
        existing = await tx.get_event(event.cid)
        if existing is not None:
            if existing != event:
                raise ChainIntegrityError(
                    event.cid,
                    "cid collision with a stored event of different content",
                    prev=event.prev,
                    genesis=event.genesis,
                )
            return LinkOutcome.DUPLICATE

        if event.is_genesis:
            return LinkOutcome.GENESIS

        parent = await tx.get_event(event.prev)
        if parent is None:
            raise ChainIntegrityError(
                event.cid, "unknown prev", prev=event.prev, genesis=event.genesis
            )
        if parent.genesis != event.genesis:
            raise ChainIntegrityError(
                event.cid,
                f"genesis mismatch: prev belongs to {parent.genesis}",
                prev=event.prev,
                genesis=event.genesis,
            )

        logger.debug(f"Event {event.cid} extends {event.prev}")
        return LinkOutcome.EXTENDS


def order_chain(events: list[Event], genesis: str, tip: str) -> list[Event]:
    """Order the accepted chain from genesis to `tip`.

    Walks `prev` links backwards from the tip through an arena keyed by
    CID, so forked siblings that are not ancestors of the tip are left
    out.

    Raises:
        ChainIntegrityError: If a link is missing, leaves the stream, or
            loops back on itself
    """
    by_cid = {event.cid: event for event in events}
    chain: list[Event] = []
    seen: set[str] = set()
    cursor: str | None = tip

    while cursor is not None:
        if cursor in seen:
            raise ChainIntegrityError(cursor, "cycle in stored chain", genesis=genesis)
        seen.add(cursor)

        event = by_cid.get(cursor)
        if event is None:
            raise ChainIntegrityError(cursor, "missing event in stored chain", genesis=genesis)
        if event.genesis != genesis:
            raise ChainIntegrityError(cursor, "event belongs to another stream", genesis=genesis)
        chain.append(event)
        cursor = event.prev

    if chain[-1].cid != genesis:
        raise ChainIntegrityError(chain[-1].cid, "chain does not end at genesis", genesis=genesis)

    chain.reverse()
    return chain
