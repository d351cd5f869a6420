"""
Tip resolution.

Decides, inside the submission transaction, whether a linked event
becomes its stream's tip. The policy is optimistic compare-and-swap:

- A genesis event creates its stream row, at most once per stream id.
- Any other event is applied only if its `prev` is the stream's tip at
  the moment of the swap. Otherwise it is stored but not applied, and
  the caller is told the current tip so it can build on it.

There is no reorganisation: once a tip moves past a fork point, the
losing branch stays stored and unapplied.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from uuid import UUID

from ..events.types import Event, Stream, SubmitResult, SubmitStatus, TipConflict
from ..exceptions import MalformedEventError
from ..id_utils import MAX_ACCOUNT_LENGTH, check_id
from ..index.maintainer import IndexMaintainer
from ..projection.projector import ProjectedState, StreamProjector

if TYPE_CHECKING:
    from ..backends.base import StreamTransaction

logger = logging.getLogger(__name__)


class TipResolver:
    """Applies linked events to stream tips.

    Args:
        projector: Folds event payloads into stream content
        index_maintainer: Refreshes index folders alongside the tip
    """

    def __init__(self, projector: StreamProjector, index_maintainer: IndexMaintainer) -> None:
        self.projector = projector
        self.index_maintainer = index_maintainer

    async def create_stream(
        self,
        tx: StreamTransaction,
        event: Event,
        stream_id: str,
        dapp_id: UUID,
    ) -> SubmitResult:
        """Create the stream rooted at a genesis event."""
        state = self.projector.genesis_state(event)
        self._check_header(event, state)

        stream = Stream(
            stream_id=stream_id,
            dapp_id=dapp_id,
            tip=event.cid,
            account=state.account,
            model_id=state.model_id,
            content=state.content,
        )
        created = await tx.insert_stream(stream)
        await tx.insert_event(event)

        if not created:
            # Another writer created the stream first
            current = await tx.get_stream(stream_id)
            return self._conflict(stream_id, event, current.tip)

        await self.index_maintainer.refresh(tx, stream_id, event.cid, state.content)
        logger.info(f"Created stream {stream_id} at {event.cid}")
        return SubmitResult(
            stream_id=stream_id,
            event_cid=event.cid,
            tip=event.cid,
            status=SubmitStatus.APPLIED,
        )

    async def advance(self, tx: StreamTransaction, event: Event, stream: Stream) -> SubmitResult:
        """Store `event` and move the tip to it if `event.prev` is the current tip."""
        await tx.insert_event(event)

        if event.prev != stream.tip:
            return self._conflict(stream.stream_id, event, stream.tip)

        current = self.projector.cached_state(stream.tip)
        if current is None:
            current = ProjectedState(
                tip=stream.tip,
                content=stream.content,
                model_id=stream.model_id,
                account=stream.account,
            )
        new_state = self.projector.advance(current, event)

        swapped = await tx.compare_and_swap_tip(
            stream.stream_id, event.prev, event.cid, new_state.content
        )
        if not swapped:
            latest = await tx.get_stream(stream.stream_id)
            return self._conflict(stream.stream_id, event, latest.tip)

        await self.index_maintainer.refresh(tx, stream.stream_id, event.cid, new_state.content)
        logger.debug(f"Advanced stream {stream.stream_id} from {event.prev} to {event.cid}")
        return SubmitResult(
            stream_id=stream.stream_id,
            event_cid=event.cid,
            tip=event.cid,
            status=SubmitStatus.APPLIED,
        )

    def _conflict(self, stream_id: str, event: Event, current_tip: str) -> SubmitResult:
        conflict = TipConflict(
            stream_id=stream_id,
            event_cid=event.cid,
            expected_prev=event.prev,
            current_tip=current_tip,
        )
        logger.info(
            f"Event {event.cid} stored but not applied to {stream_id}: "
            f"prev {event.prev} is not tip {current_tip}"
        )
        return SubmitResult(
            stream_id=stream_id,
            event_cid=event.cid,
            tip=current_tip,
            status=SubmitStatus.NOT_APPLIED,
            conflict=conflict,
        )

    @staticmethod
    def _check_header(event: Event, state: ProjectedState) -> None:
        reason = check_id(state.model_id, allow_none=True)
        if reason:
            raise MalformedEventError(event.cid, f"header model {reason}")
        reason = check_id(state.account, allow_none=True, max_length=MAX_ACCOUNT_LENGTH)
        if reason:
            raise MalformedEventError(event.cid, f"header controller {reason}")
