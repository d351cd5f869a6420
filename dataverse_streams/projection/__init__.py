"""
Stream content projection.

Folds the accepted chain of a stream into its materialized JSON content.
"""

from .cache import ProjectionCache
from .projector import ProjectedState, StreamProjector, canonical_json

__all__ = [
    "ProjectionCache",
    "ProjectedState",
    "StreamProjector",
    "canonical_json",
]
