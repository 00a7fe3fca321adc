"""Exceptions raised by the ragchain pipeline.

Every error carries a stable ``kind`` string so that callers (the operation
dispatch table, the CLI) can tell failures apart without matching on
messages.
"""
from typing import Optional, Dict, Any


class RagChainError(Exception):
    """Base exception for all pipeline errors."""

    kind = "ragchain_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class BlankInputError(RagChainError):
    """Raised when a document or message is empty or whitespace only."""

    kind = "blank_input"


class UnsupportedSourceKindError(RagChainError):
    """Raised when an ingestion source kind is not recognised."""

    kind = "unsupported_source_kind"

    def __init__(self, source_kind: Any, **kwargs):
        self.source_kind = source_kind
        super().__init__(f"Unsupported source kind: {source_kind}", **kwargs)


class DimensionMismatchError(RagChainError):
    """Raised when a vector's size disagrees with the store's dimension."""

    kind = "dimension_mismatch"

    def __init__(self, expected: int, actual: int, **kwargs):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Embedding dimension mismatch: expected {expected}, got {actual}",
            **kwargs,
        )


class NotFoundError(RagChainError):
    """Raised when a snapshot, memory file, document or folder is missing."""

    kind = "not_found"

    def __init__(self, resource: str, path: Any, **kwargs):
        self.resource = resource
        self.path = str(path)
        super().__init__(f"{resource} not found: {path}", **kwargs)


class CorruptSnapshotError(RagChainError):
    """Raised when a vector store snapshot cannot be parsed."""

    kind = "corrupt_snapshot"

    def __init__(self, path: Any, reason: str, **kwargs):
        self.path = str(path)
        super().__init__(f"Corrupt store snapshot {path}: {reason}", **kwargs)


class CorruptMemoryError(RagChainError):
    """Raised when a stored chat memory row cannot be decoded."""

    kind = "corrupt_memory"

    def __init__(self, memory_id: str, path: Any, reason: str, **kwargs):
        self.memory_id = memory_id
        self.path = str(path)
        super().__init__(
            f"Corrupt chat memory {memory_id!r} in {path}: {reason}", **kwargs
        )


class BackendFailureError(RagChainError):
    """Raised when a completion or embedding backend call fails."""

    kind = "backend_failure"

    def __init__(self, backend: str, operation: str, reason: str, **kwargs):
        self.backend = backend
        self.operation = operation
        super().__init__(f"{backend} {operation} failed: {reason}", **kwargs)


class ConfigurationError(RagChainError):
    """Raised when chunk, window or score parameters are invalid."""

    kind = "configuration_error"


class DocumentLoadError(RagChainError):
    """Raised when a source cannot be read, fetched or parsed."""

    kind = "document_load_error"

    def __init__(self, source: Any, reason: str, **kwargs):
        self.source = str(source)
        super().__init__(f"Failed to load {source}: {reason}", **kwargs)
