"""Error taxonomy shared by the bridge, the console and the batch engine."""

from __future__ import annotations


class BridgeError(Exception):
    """Base class for every failure the bridge reports to a caller."""


class InvalidItemType(BridgeError):
    """The host does not know the requested item type."""

    def __init__(self, itemtype: str, message: str = "Invalid item type"):
        super().__init__(message)
        self.itemtype = itemtype


class SubformFetchError(BridgeError):
    """The host answered the subform request with a non-success status."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class SchemaDerivationError(BridgeError):
    """Subform HTML was fetched but no field schema could be derived from it."""


class ValidationError(BridgeError, ValueError):
    """User input rejected before anything is sent to the host."""


class ChunkProcessingError(BridgeError):
    """One chunk exhausted its retries (or was rejected by the host engine)."""

    def __init__(self, chunk_index: int, attempts: int, reason: str):
        super().__init__(
            f"Chunk {chunk_index + 1} failed after {attempts} attempt(s): {reason}"
        )
        self.chunk_index = chunk_index
        self.attempts = attempts
        self.reason = reason


class EngineError(BridgeError):
    """The host's processing engine raised; the message is passed through verbatim."""
