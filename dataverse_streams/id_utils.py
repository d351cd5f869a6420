"""Identifier helpers for streams and events.

Centralizes the identifier format knowledge so callers never need to
derive stream ids or check identifier limits themselves.

Stream IDs: "k" + base32(sha256(genesis_cid)), lower-case, unpadded.
"""

from __future__ import annotations

import base64
import hashlib

# Column width of every cid / stream id column in the schema
MAX_ID_LENGTH = 70

# Column width of streams.account
MAX_ACCOUNT_LENGTH = 100

STREAM_ID_PREFIX = "k"


def stream_id_for_genesis(genesis: str) -> str:
    """Derive the stable stream id for the stream rooted at `genesis`."""
    if not genesis:
        raise ValueError("genesis cid must not be empty")
    digest = hashlib.sha256(genesis.encode("utf-8")).digest()
    encoded = base64.b32encode(digest).decode("ascii").rstrip("=").lower()
    return f"{STREAM_ID_PREFIX}{encoded}"


def is_stream_id(value: str) -> bool:
    """Check whether a string has the shape of a derived stream id."""
    if not isinstance(value, str) or not value.startswith(STREAM_ID_PREFIX) or len(value) != 53:
        return False
    alphabet = set("abcdefghijklmnopqrstuvwxyz234567")
    return all(ch in alphabet for ch in value[1:])


def check_id(value: str | None, *, allow_none: bool = False, max_length: int = MAX_ID_LENGTH) -> str | None:
    """Return a reason string when `value` is not a usable identifier, else None."""
    if value is None:
        return None if allow_none else "must not be null"
    if not isinstance(value, str):
        return f"must be a string, got {type(value).__name__}"
    if not value:
        return "must not be empty"
    if len(value) > max_length:
        return f"exceeds {max_length} characters"
    return None
