"""
Storage backend abstraction layer.

Provides the transactional store interface the engine runs against,
with memory, SQLite and DuckDB implementations. Each backend
implements the same interface, allowing seamless switching.
"""

from .base import StreamBackend, StreamFilters, StreamTransaction
from .memory import MemoryBackend

__all__ = [
    # Core classes
    "StreamBackend",
    "StreamTransaction",
    "StreamFilters",
    # Always-available backend
    "MemoryBackend",
]
