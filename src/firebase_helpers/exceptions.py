"""Domain exceptions for the Firestore helpers.

Store-client exceptions (``google.api_core.exceptions``) are caught at the
service boundary and re-raised as one of these so that callers never handle
raw driver errors.
"""

from __future__ import annotations


class PersistenceError(Exception):
    """Root of every error raised by the Firestore helpers.

    The message names the model, and the document when one was addressed:
    ``[Person/p1] fetch_one failed: ...``. ``__cause__`` carries the
    store-client exception when there was one.
    """

    def __init__(
        self,
        *,
        entity_name: str,
        operation: str,
        detail: str,
        document_id: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.entity_name = entity_name
        self.operation = operation
        self.detail = detail
        self.document_id = document_id
        target = entity_name if document_id is None else f"{entity_name}/{document_id}"
        super().__init__(f"[{target}] {operation} failed: {detail}")
        if cause is not None:
            self.__cause__ = cause


class DocumentNotFoundError(PersistenceError):
    """Raised when a document addressed by primary id does not exist or has no data."""


class ObjectNotFoundError(PersistenceError):
    """Raised when no document matches a secondary-identifier lookup."""


class DecodingError(PersistenceError):
    """Raised when a stored document cannot be converted to the target model."""


class EncodingError(PersistenceError):
    """Raised when a model instance cannot be represented as a field-map."""


class MissingSecondaryIDError(PersistenceError):
    """Raised when a secondary-identifier keyed write is called without a value."""


class ConnectionFailedError(PersistenceError):
    """Raised when the store cannot be reached."""


class QueryError(PersistenceError):
    """Raised when a read or query fails inside the store."""


class BatchWriteError(PersistenceError):
    """Raised when an atomic batch cannot be committed."""
