"""
Secondary index over stream tips.

Provides signal derivation and the index folder maintainer.
"""

from .maintainer import IndexMaintainer
from .signal import SignalExtractor, extract_signal, matches, signal_contains

__all__ = [
    "IndexMaintainer",
    "SignalExtractor",
    "extract_signal",
    "matches",
    "signal_contains",
]
