"""
Signal derivation and matching for index folders.

A signal is a small JSON object summarizing a stream for lookups. The
default extractor follows the folder document layout: a top-level
`signal` object, or `options.signal` where `options` is either an
object or a base64-encoded JSON object.
"""

from __future__ import annotations

import base64
import binascii
import json
from collections.abc import Callable
from typing import Any

SignalExtractor = Callable[[dict[str, Any]], dict[str, Any] | None]


def _decode_options(options: Any) -> dict[str, Any] | None:
    if isinstance(options, dict):
        return options
    if not isinstance(options, str) or not options:
        return None

    # Options are stored base64 (standard or url-safe, padding optional)
    padded = options + "=" * (-len(options) % 4)
    for decoder in (base64.b64decode, base64.urlsafe_b64decode):
        try:
            decoded = json.loads(decoder(padded).decode("utf-8"))
        except (binascii.Error, ValueError, UnicodeDecodeError):
            continue
        if isinstance(decoded, dict):
            return decoded
    return None


def extract_signal(content: dict[str, Any]) -> dict[str, Any] | None:
    """Default signal extractor.

    Returns:
        The signal object, or None when the content carries none
    """
    if not isinstance(content, dict):
        return None

    signal = content.get("signal")
    if isinstance(signal, dict):
        return signal

    options = _decode_options(content.get("options"))
    if options is not None:
        signal = options.get("signal")
        if isinstance(signal, dict):
            return signal

    return None


def signal_contains(signal: Any, predicate: Any) -> bool:
    """JSON containment: every part of `predicate` is present in `signal`.

    Objects match when each predicate key matches recursively; arrays
    match when every predicate element is contained in some signal
    element; scalars compare by equality.
    """
    if isinstance(predicate, dict):
        if not isinstance(signal, dict):
            return False
        return all(key in signal and signal_contains(signal[key], value) for key, value in predicate.items())

    if isinstance(predicate, list):
        if not isinstance(signal, list):
            return False
        return all(any(signal_contains(item, wanted) for item in signal) for wanted in predicate)

    # bool is an int subclass; keep True distinct from 1
    if isinstance(predicate, bool) or isinstance(signal, bool):
        return type(predicate) is type(signal) and predicate == signal
    return signal == predicate


def matches(signal: dict[str, Any] | None, predicate: Any) -> bool:
    """Evaluate a query predicate (containment dict or callable) against a signal."""
    if signal is None:
        return False
    if callable(predicate):
        return bool(predicate(signal))
    if isinstance(predicate, dict):
        return signal_contains(signal, predicate)
    raise TypeError(f"predicate must be a dict or callable, got {type(predicate).__name__}")
