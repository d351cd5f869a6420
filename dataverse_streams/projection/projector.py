"""
Stream content projection.

Reconstructs a stream's JSON content by folding event payloads from
genesis to tip:

1. The genesis payload's `data` is the initial content and its header
   supplies model and account.
2. Each later payload's `data` is a JSON Patch (RFC 6902) applied to
   the content so far; events without data leave it unchanged.

The fold is deterministic, so projecting the same chain twice yields
byte-identical canonical JSON.
"""

from __future__ import annotations

import copy
import json
import logging
from dataclasses import dataclass, field
from typing import Any

import jsonpatch
import jsonpointer

from ..events.payload import decode_payload
from ..events.types import Event
from ..exceptions import MalformedEventError
from .cache import ProjectionCache

logger = logging.getLogger(__name__)


def canonical_json(content: Any) -> str:
    """Serialize content with sorted keys and compact separators."""
    return json.dumps(content, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


@dataclass
class ProjectedState:
    """Content and stream metadata folded up to `tip`."""

    tip: str
    content: dict[str, Any] = field(default_factory=dict)
    model_id: str | None = None
    account: str | None = None

    def canonical_content(self) -> str:
        return canonical_json(self.content)


class StreamProjector:
    """Folds event payloads into stream content.

    Args:
        cache: Optional LRU cache of intermediate folds keyed by CID.
            Purely an optimization; results are identical without it.
    """

    def __init__(self, cache: ProjectionCache | None = None) -> None:
        self.cache = cache

    def genesis_state(self, event: Event) -> ProjectedState:
        """Initial state from a genesis event."""
        if not event.is_genesis:
            raise MalformedEventError(event.cid, "not a genesis event")

        payload = decode_payload(event)
        header = payload.header
        state = ProjectedState(
            tip=event.cid,
            content=copy.deepcopy(payload.data) if payload.data is not None else {},
            model_id=header.model if header else None,
            account=header.account if header else None,
        )
        self._remember(state)
        return state

    def advance(self, state: ProjectedState, event: Event) -> ProjectedState:
        """Apply one event on top of `state`, returning a new state.

        Raises:
            MalformedEventError: If the event does not follow `state.tip`
                or its patch cannot be applied
        """
        if event.prev != state.tip:
            raise MalformedEventError(
                event.cid, f"cannot fold onto {state.tip}: prev is {event.prev}"
            )

        payload = decode_payload(event)
        content = state.content
        if payload.has_data:
            content = self._apply_patch(event.cid, content, payload.data)
        else:
            content = copy.deepcopy(content)

        new_state = ProjectedState(
            tip=event.cid,
            content=content,
            model_id=state.model_id,
            account=state.account,
        )
        self._remember(new_state)
        return new_state

    def cached_state(self, cid: str) -> ProjectedState | None:
        """The cached fold up to `cid`, or None without a cache or on a miss."""
        if self.cache is None:
            return None
        return self.cache.get(cid)

    def project(self, chain: list[Event]) -> ProjectedState:
        """Fold an ordered chain (genesis first) into a state.

        With a cache, folding resumes from the deepest cached ancestor.
        """
        if not chain:
            raise ValueError("Cannot project an empty chain")

        start = 0
        state: ProjectedState | None = None
        if self.cache is not None:
            for index in range(len(chain) - 1, -1, -1):
                cached = self.cached_state(chain[index].cid)
                if cached is not None:
                    state = cached
                    start = index + 1
                    break

        if state is None:
            state = self.genesis_state(chain[0])
            start = 1

        for event in chain[start:]:
            state = self.advance(state, event)

        logger.debug(f"Projected {len(chain)} events up to {state.tip}")
        return state

    def _apply_patch(self, cid: str, content: dict[str, Any], operations: list[Any]) -> dict[str, Any]:
        try:
            patch = jsonpatch.JsonPatch(operations)
            result = patch.apply(content, in_place=False)
        except (
            jsonpatch.JsonPatchException,
            jsonpointer.JsonPointerException,
            TypeError,
            KeyError,
            ValueError,
        ) as e:
            raise MalformedEventError(cid, f"patch cannot be applied: {e}") from e

        if not isinstance(result, dict):
            raise MalformedEventError(cid, "patch must leave content a JSON object")
        return result

    def _remember(self, state: ProjectedState) -> None:
        if self.cache is not None:
            self.cache.put(state.tip, state)
