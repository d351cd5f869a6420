"""
Structural validation of incoming events.

Validation runs before anything is written: a rejected event never
reaches the block store or the database.
"""

from __future__ import annotations

import logging

from ..exceptions import MalformedEventError
from ..id_utils import check_id
from .types import Event

logger = logging.getLogger(__name__)


class EventValidator:
    """Checks an event's shape and linkage fields.

    Rules:
    - `blocks` is a non-empty sequence of bytes with no null entries
    - `cid` and `genesis` are non-empty and fit the identifier columns
    - `prev` is absent only for a self-referential genesis
    - a non-genesis event never references itself
    """

    def __init__(self, max_block_bytes: int | None = None) -> None:
        """
        Args:
            max_block_bytes: Optional upper bound on any single block's size
        """
        self.max_block_bytes = max_block_bytes

    def validate(self, event: Event) -> Event:
        """Validate an event, returning it unchanged when it is well-formed.

        Raises:
            MalformedEventError: On the first violated rule
        """
        cid = event.cid if isinstance(event.cid, str) else None

        reason = check_id(event.cid)
        if reason:
            raise MalformedEventError(cid, f"cid {reason}")
        reason = check_id(event.genesis)
        if reason:
            raise MalformedEventError(cid, f"genesis {reason}")
        reason = check_id(event.prev, allow_none=True)
        if reason:
            raise MalformedEventError(cid, f"prev {reason}")

        self._validate_blocks(event)

        if event.prev is None:
            if event.genesis != event.cid:
                raise MalformedEventError(
                    event.cid, "event without prev must be its own genesis"
                )
        else:
            if event.cid == event.genesis:
                raise MalformedEventError(event.cid, "genesis event must not have prev")
            if event.prev == event.cid:
                raise MalformedEventError(event.cid, "event references itself as prev")

        logger.debug(f"Validated event {event.cid} ({len(event.blocks)} blocks)")
        return event

    def _validate_blocks(self, event: Event) -> None:
        blocks = event.blocks
        if blocks is None or len(blocks) == 0:
            raise MalformedEventError(event.cid, "blocks must not be empty")

        for index, block in enumerate(blocks):
            if block is None:
                raise MalformedEventError(event.cid, f"block {index} is null")
            if not isinstance(block, (bytes, bytearray, memoryview)):
                raise MalformedEventError(
                    event.cid, f"block {index} is {type(block).__name__}, expected bytes"
                )
            if self.max_block_bytes is not None and len(block) > self.max_block_bytes:
                raise MalformedEventError(
                    event.cid,
                    f"block {index} exceeds {self.max_block_bytes} bytes",
                )
