"""
Custom exceptions for the stream resolution engine.

All backends and engine components raise these exceptions
so callers can handle failures the same way regardless of
which store is configured.
"""


class StreamStoreError(Exception):
    """Base exception for all stream store errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class MalformedEventError(StreamStoreError):
    """Raised when an event fails structural validation.

    Malformed events are rejected before storage and never persisted.
    """

    def __init__(self, cid: str | None, reason: str):
        details = {"reason": reason}
        if cid:
            details["cid"] = cid
        super().__init__(f"Malformed event {cid or '<unknown>'}: {reason}", details)
        self.cid = cid
        self.reason = reason


class ChainIntegrityError(StreamStoreError):
    """Raised when an event does not extend a known chain.

    Covers unknown `prev` references, genesis mismatches, cycles and
    CID collisions. The offending event is never persisted.
    """

    def __init__(
        self,
        cid: str,
        reason: str,
        prev: str | None = None,
        genesis: str | None = None,
    ):
        details = {"cid": cid, "reason": reason}
        if prev:
            details["prev"] = prev
        if genesis:
            details["genesis"] = genesis
        super().__init__(f"Chain integrity error for event {cid}: {reason}", details)
        self.cid = cid
        self.reason = reason
        self.prev = prev
        self.genesis = genesis


class UnknownStreamError(StreamStoreError):
    """Raised when a non-genesis event belongs to a stream with no stream row."""

    def __init__(self, stream_id: str, cid: str):
        super().__init__(
            f"Unknown stream {stream_id} for event {cid}",
            {"stream_id": stream_id, "cid": cid},
        )
        self.stream_id = stream_id
        self.cid = cid


class TipConflictError(StreamStoreError):
    """Raised on request when an event was stored but not applied as tip.

    Submission itself never raises this; it reports a conflict on the
    result. Callers that prefer exceptions use
    `SubmitResult.raise_for_conflict()`.
    """

    def __init__(self, stream_id: str, cid: str, expected_prev: str | None, current_tip: str):
        details = {
            "stream_id": stream_id,
            "cid": cid,
            "current_tip": current_tip,
        }
        if expected_prev:
            details["expected_prev"] = expected_prev
        super().__init__(
            f"Event {cid} not applied to stream {stream_id}: tip is {current_tip}",
            details,
        )
        self.stream_id = stream_id
        self.cid = cid
        self.expected_prev = expected_prev
        self.current_tip = current_tip


class StreamNotFoundError(StreamStoreError):
    """Raised when a stream is not found."""

    def __init__(self, stream_id: str):
        super().__init__(f"Stream not found: {stream_id}", {"stream_id": stream_id})
        self.stream_id = stream_id


class EventNotFoundError(StreamStoreError):
    """Raised when an event is not found."""

    def __init__(self, cid: str, stream_id: str | None = None):
        details = {"cid": cid}
        if stream_id:
            details["stream_id"] = stream_id
        super().__init__(f"Event not found: {cid}", details)
        self.cid = cid
        self.stream_id = stream_id


class ModelNotFoundError(StreamStoreError):
    """Raised when a model id is not declared in the model registry."""

    def __init__(self, model_id: str):
        super().__init__(f"Model not found: {model_id}", {"model_id": model_id})
        self.model_id = model_id


class StorageIOError(StreamStoreError):
    """Raised when a storage operation fails.

    The surrounding transaction has been rolled back when this is raised.
    """

    def __init__(self, operation: str, path: str | None = None, cause: Exception | None = None):
        details = {"operation": operation}
        if path:
            details["path"] = path
        if cause:
            details["cause"] = str(cause)
        message = f"Storage I/O error during {operation}"
        if path:
            message += f": {path}"
        super().__init__(message, details)
        self.operation = operation
        self.path = path
        self.cause = cause


class StorageConnectionError(StreamStoreError):
    """Raised when the underlying store cannot be opened.

    Note: Named StorageConnectionError to avoid shadowing the builtin ConnectionError.
    """

    def __init__(self, endpoint: str, cause: Exception | None = None):
        details = {"endpoint": endpoint}
        if cause:
            details["cause"] = str(cause)
        super().__init__(f"Connection failed to {endpoint}", details)
        self.endpoint = endpoint
        self.cause = cause


class ValidationError(StreamStoreError):
    """Raised when a request argument is invalid."""

    def __init__(self, field: str, reason: str, value: str | None = None):
        details = {"field": field, "reason": reason}
        if value is not None:
            details["value"] = value
        super().__init__(f"Validation failed for {field}: {reason}", details)
        self.field = field
        self.reason = reason
        self.value = value


# Alias matching the storage failure category callers may look for
StorageFailure = StorageIOError
