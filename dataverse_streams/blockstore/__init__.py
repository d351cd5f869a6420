"""
Content-addressed block storage.

Immutable archive of raw event data keyed by CID.
"""

from .base import BlockStore, decode_envelope, encode_envelope
from .file import FileBlockStore
from .memory import MemoryBlockStore

__all__ = [
    "BlockStore",
    "MemoryBlockStore",
    "FileBlockStore",
    "encode_envelope",
    "decode_envelope",
]
