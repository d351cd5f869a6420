"""
Index folder maintenance.

Index folders mirror each stream's tip together with a derived signal.
They are only ever written inside the transaction that moves the tip,
so a reader never sees `index_folders.tip` and `streams.tip` disagree.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from ..events.types import IndexFolder
from .signal import SignalExtractor, extract_signal, matches

if TYPE_CHECKING:
    from ..backends.base import StreamTransaction

logger = logging.getLogger(__name__)


class IndexMaintainer:
    """Keeps index folders in step with stream tips.

    Args:
        extractor: Derives the signal document from stream content.
            Defaults to `extract_signal`.
    """

    def __init__(self, extractor: SignalExtractor | None = None) -> None:
        self.extractor = extractor or extract_signal

    def derive_signal(self, content: dict[str, Any]) -> dict[str, Any] | None:
        """Derive the signal for a stream's content."""
        return self.extractor(content)

    async def refresh(
        self,
        tx: StreamTransaction,
        stream_id: str,
        tip: str,
        content: dict[str, Any],
    ) -> IndexFolder:
        """Upsert the index folder for `stream_id` in the caller's transaction."""
        folder = IndexFolder(stream_id=stream_id, tip=tip, signal=self.derive_signal(content))
        await tx.upsert_index_folder(folder)
        logger.debug(f"Index folder for {stream_id} now at {tip}")
        return folder

    async def query(self, tx: StreamTransaction, predicate: Any) -> list[str]:
        """Stream ids whose signal satisfies `predicate`, ordered by stream id."""
        folders = await tx.list_signal_folders()
        return [folder.stream_id for folder in folders if matches(folder.signal, predicate)]
