"""
EmbedSearch Error Taxonomy

Every failure raised by the core derives from ``EmbedSearchError`` and falls
into one of four families, each with a fixed HTTP mapping:

    InputError     → 400  (bad request body/params, dimension mismatch, too-long text)
    ModelError     → 502  (embedding or generation service unavailable / timed out)
    StorageError   → 500  (datastore I/O failure or corrupted blob)
    NotFoundError  → 404  (lookup of a nonexistent chunk id)
"""


class EmbedSearchError(Exception):
    """Base class for all EmbedSearch errors."""

    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InputError(EmbedSearchError):
    """Malformed input; never retried."""

    status_code = 400


class DimensionMismatch(InputError):
    """A vector's dimension differs from the store's fixed dimension."""

    def __init__(self, expected: int, actual: int):
        super().__init__(
            f"vector dimension {actual} does not match store dimension {expected}"
        )
        self.expected = expected
        self.actual = actual


class InputTooLong(InputError):
    """Text exceeds the embedding model's input budget."""


class DuplicateChunk(InputError):
    """Chunk id already stored and the duplicate policy is 'reject'."""

    def __init__(self, chunk_id: str):
        super().__init__(f"chunk already exists: {chunk_id}")
        self.chunk_id = chunk_id


class ModelError(EmbedSearchError):
    """An external model call failed."""

    status_code = 502


class ModelUnavailable(ModelError):
    """Transient model failure; callers may retry."""


class ModelTimeout(ModelError):
    """The model did not answer in time."""


class StorageError(EmbedSearchError):
    """Datastore I/O failure or corruption."""

    status_code = 500


class NotFoundError(EmbedSearchError):
    """Lookup of a nonexistent chunk id."""

    status_code = 404

    def __init__(self, chunk_id: str):
        super().__init__(f"chunk not found: {chunk_id}")
        self.chunk_id = chunk_id
