"""
Event payload decoding.

The first block of an event may carry a JSON object. Genesis payloads
hold a header (model, controllers) and the initial content; later
payloads hold a JSON Patch to apply to the current content. Events
without data (anchor-style events) leave content untouched, and so do
events whose first block is not JSON at all: blocks are opaque bytes,
and only a JSON payload is interpreted.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from ..exceptions import MalformedEventError
from .types import Event


@dataclass
class StreamHeader:
    """Stream metadata declared by a genesis payload."""

    model: str | None = None
    controllers: list[str] = field(default_factory=list)

    @property
    def account(self) -> str | None:
        """The owning account is the first controller, if any."""
        return self.controllers[0] if self.controllers else None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> StreamHeader:
        """Deserialize from the payload's header object."""
        if not data:
            return cls()
        controllers = data.get("controllers") or []
        if isinstance(controllers, str):
            controllers = [controllers]
        return cls(model=data.get("model"), controllers=[str(c) for c in controllers])

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        result: dict[str, Any] = {"controllers": self.controllers}
        if self.model is not None:
            result["model"] = self.model
        return result


@dataclass
class EventPayload:
    """Decoded first block of an event."""

    header: StreamHeader | None
    data: Any = None
    opaque: bool = False  # First block is not JSON

    @property
    def has_data(self) -> bool:
        return self.data is not None


def decode_payload(event: Event) -> EventPayload:
    """Decode the JSON payload carried in `event.blocks[0]`.

    A first block that is not UTF-8 JSON decodes to an opaque payload
    with no header and no data.

    Raises:
        MalformedEventError: If the block is JSON but not an object, or
            its fields have the wrong shape for the event's position in
            the chain.
    """
    if not event.blocks or event.blocks[0] is None:
        raise MalformedEventError(event.cid, "missing payload block")

    try:
        raw = json.loads(bytes(event.blocks[0]).decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        return EventPayload(header=None, opaque=True)

    if not isinstance(raw, dict):
        raise MalformedEventError(event.cid, "payload must be a JSON object")

    data = raw.get("data")
    header_raw = raw.get("header")
    if header_raw is not None and not isinstance(header_raw, dict):
        raise MalformedEventError(event.cid, "payload header must be an object")

    if event.is_genesis:
        if data is not None and not isinstance(data, dict):
            raise MalformedEventError(event.cid, "genesis data must be a JSON object")
        return EventPayload(header=StreamHeader.from_dict(header_raw), data=data)

    if data is not None and not isinstance(data, list):
        raise MalformedEventError(event.cid, "update data must be a JSON Patch list")
    return EventPayload(header=None, data=data)


def encode_payload(
    data: Any = None,
    *,
    model: str | None = None,
    controllers: list[str] | None = None,
) -> bytes:
    """Encode a payload block.

    Producers (and tests) use this to build the first block of an event.
    A header is written only when model or controllers are given.
    """
    payload: dict[str, Any] = {}
    if model is not None or controllers:
        payload["header"] = StreamHeader(model=model, controllers=list(controllers or [])).to_dict()
    if data is not None:
        payload["data"] = data
    return json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")
