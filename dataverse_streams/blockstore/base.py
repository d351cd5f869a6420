"""
Abstract block store.

A block store is content-addressed and append-only: data is written
once under its CID and never replaced or deleted. The engine archives
each accepted event's envelope here, keyed by the event CID.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod

from ..events.types import Event
from ..exceptions import StorageIOError


def encode_envelope(event: Event) -> bytes:
    """Serialize an event into its archived envelope."""
    return json.dumps(event.to_dict(), sort_keys=True, separators=(",", ":")).encode("utf-8")


def decode_envelope(data: bytes) -> Event:
    """Deserialize an archived envelope."""
    try:
        return Event.from_dict(json.loads(data.decode("utf-8")))
    except (UnicodeDecodeError, ValueError, KeyError, TypeError) as e:
        raise StorageIOError("decode_envelope", cause=e) from e


class BlockStore(ABC):
    """Content-addressed, immutable block storage."""

    @abstractmethod
    async def put(self, cid: str, data: bytes) -> bool:
        """Store `data` under `cid` unless already present.

        Returns:
            True if written, False if the CID was already stored
        """

    @abstractmethod
    async def get(self, cid: str) -> bytes | None:
        """Get the data stored under `cid`, or None."""

    @abstractmethod
    async def has(self, cid: str) -> bool:
        """Check whether `cid` is stored."""

    async def close(self) -> None:
        """Release resources. Nothing to do by default."""

    async def put_event(self, event: Event) -> bool:
        """Archive an event's envelope under its CID."""
        return await self.put(event.cid, encode_envelope(event))

    async def get_event(self, cid: str) -> Event | None:
        """Load an archived event, or None."""
        data = await self.get(cid)
        if data is None:
            return None
        return decode_envelope(data)
