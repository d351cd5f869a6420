"""
Engine facade and tip resolution.
"""

from .engine import StreamEngine, create_backend
from .resolver import TipResolver

__all__ = ["StreamEngine", "TipResolver", "create_backend"]
