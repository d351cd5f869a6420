"""
LRU cache for folded stream states.

Keeps recently projected states keyed by the CID of the event they
were folded up to, so advancing or re-reading a stream does not
re-walk the whole chain.
"""

from __future__ import annotations

import copy
from collections import OrderedDict
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .projector import ProjectedState


class ProjectionCache:
    """
    LRU cache of projected states with size control.

    Features:
    - Least Recently Used eviction policy
    - Configurable max entries
    - Keyed by event CID (a CID fully determines the fold up to it)
    - Copies on the way in and out, so cached states are never aliased
    """

    def __init__(self, max_entries: int = 1000):
        """
        Initialize projection cache.

        Args:
            max_entries: Maximum number of states to cache
        """
        if max_entries < 1:
            raise ValueError(f"max_entries must be >= 1, got {max_entries}")

        self.max_entries = max_entries
        self._cache: OrderedDict[str, ProjectedState] = OrderedDict()
        self._hits = 0
        self._misses = 0

    def get(self, cid: str) -> ProjectedState | None:
        """Get the state folded up to `cid`, if cached."""
        state = self._cache.get(cid)
        if state is None:
            self._misses += 1
            return None

        self._cache.move_to_end(cid)
        self._hits += 1
        return copy.deepcopy(state)

    def put(self, cid: str, state: ProjectedState) -> None:
        """Store the state folded up to `cid`, evicting the oldest entry when full."""
        if cid in self._cache:
            del self._cache[cid]

        self._cache[cid] = copy.deepcopy(state)

        if len(self._cache) > self.max_entries:
            self._cache.popitem(last=False)

    def __contains__(self, cid: str) -> bool:
        return cid in self._cache

    def clear(self) -> None:
        """Clear all cached states."""
        self._cache.clear()

    def size(self) -> int:
        """Get current number of cached states."""
        return len(self._cache)

    def stats(self) -> dict[str, Any]:
        """
        Get cache statistics.

        Returns:
            Dict with cache metrics
        """
        return {
            "size": len(self._cache),
            "max_entries": self.max_entries,
            "hits": self._hits,
            "misses": self._misses,
            "utilization": len(self._cache) / self.max_entries,
        }
