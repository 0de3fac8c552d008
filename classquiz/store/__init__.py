"""Document store boundary for ClassQuiz."""

from .document_store import (
    DocumentNotFoundError,
    DocumentSnapshot,
    DocumentStore,
    DocumentStoreError,
    InMemoryDocumentStore,
    PermissionDeniedError,
    Snapshot,
    StoreClosedError,
    Subscription,
    describe_store_error,
)

__all__ = [
    "DocumentNotFoundError",
    "DocumentSnapshot",
    "DocumentStore",
    "DocumentStoreError",
    "InMemoryDocumentStore",
    "PermissionDeniedError",
    "Snapshot",
    "StoreClosedError",
    "Subscription",
    "describe_store_error",
]
