"""Document store boundary.

The hosted document database is reached through :class:`DocumentStore`.
Callers construct a client, call ``init()`` before use and ``close()`` when
done; there is no process-wide handle. Subscriptions deliver the full,
immutable result set of a query on every change, never a diff.

:class:`InMemoryDocumentStore` implements the protocol for local runs and
tests. Snapshots are delivered synchronously on the writing thread.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
import logging
from threading import RLock
from types import MappingProxyType
from typing import Any, Callable, Mapping, Protocol
from uuid import uuid4

logger = logging.getLogger(__name__)


class DocumentStoreError(Exception):
    """Base class for store failures."""


class PermissionDeniedError(DocumentStoreError):
    """The store's security rules rejected the operation."""


class DocumentNotFoundError(DocumentStoreError):
    """A document expected to exist is missing."""


class StoreClosedError(DocumentStoreError):
    """The client was used before ``init()`` or after ``close()``."""


@dataclass(frozen=True, slots=True)
class DocumentSnapshot:
    id: str
    data: Mapping[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return _thaw(self.data)


@dataclass(frozen=True, slots=True)
class Snapshot:
    """Full result set of a query at one point in time."""

    collection: str
    docs: tuple[DocumentSnapshot, ...]

    @property
    def empty(self) -> bool:
        return not self.docs

    def ids(self) -> list[str]:
        return [doc.id for doc in self.docs]


SnapshotCallback = Callable[[Snapshot], None]
DocumentCallback = Callable[[DocumentSnapshot | None], None]
ErrorCallback = Callable[[Exception], None]


class Subscription(Protocol):
    def cancel(self) -> None: ...

    @property
    def active(self) -> bool: ...


class DocumentStore(Protocol):
    """Narrow interface the workflows need from the document database."""

    def init(self) -> None: ...

    def close(self) -> None: ...

    def get(self, collection: str, doc_id: str) -> DocumentSnapshot | None: ...

    def add(self, collection: str, data: Mapping[str, Any]) -> str: ...

    def new_id(self, collection: str) -> str: ...

    def set(self, collection: str, doc_id: str, data: Mapping[str, Any], merge: bool = False) -> None: ...

    def delete(self, collection: str, doc_id: str) -> None: ...

    def query(self, collection: str, **equals: Any) -> Snapshot: ...

    def subscribe(
        self,
        collection: str,
        callback: SnapshotCallback,
        on_error: ErrorCallback | None = None,
        **equals: Any,
    ) -> Subscription: ...

    def subscribe_document(
        self,
        collection: str,
        doc_id: str,
        callback: DocumentCallback,
        on_error: ErrorCallback | None = None,
    ) -> Subscription: ...


def _freeze(value: Any) -> Any:
    """Read-only deep copy: mappings become proxies, lists become tuples."""
    if isinstance(value, Mapping):
        return MappingProxyType({key: _freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(item) for item in value)
    if isinstance(value, (set, frozenset)):
        return frozenset(_freeze(item) for item in value)
    return copy.deepcopy(value)


def _thaw(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: _thaw(item) for key, item in value.items()}
    if isinstance(value, tuple):
        return [_thaw(item) for item in value]
    if isinstance(value, frozenset):
        return set(value)
    return value


class _Listener:
    def __init__(
        self,
        store: "InMemoryDocumentStore",
        collection: str,
        emit: Callable[[], None],
        on_error: ErrorCallback | None,
    ) -> None:
        self._store = store
        self.collection = collection
        self.emit = emit
        self.on_error = on_error
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        if self._active:
            self._active = False
            self._store._remove_listener(self)

    def deliver(self) -> None:
        if not self._active:
            return
        try:
            self.emit()
        except Exception as exc:
            if self.on_error is None:
                raise
            self.on_error(exc)


class InMemoryDocumentStore:
    """Dictionary-backed store with query subscriptions.

    ``deny_writes``/``deny_reads`` name collections whose writes or reads
    raise :class:`PermissionDeniedError`, standing in for security rules.
    """

    def __init__(
        self,
        deny_writes: set[str] | None = None,
        deny_reads: set[str] | None = None,
    ) -> None:
        self._lock = RLock()
        self._collections: dict[str, dict[str, Mapping[str, Any]]] = {}
        self._listeners: list[_Listener] = []
        self._open = False
        self.deny_writes: set[str] = set(deny_writes or ())
        self.deny_reads: set[str] = set(deny_reads or ())

    # --- Lifecycle ---

    def init(self) -> None:
        with self._lock:
            self._open = True
        logger.debug("In-memory document store opened")

    def close(self) -> None:
        with self._lock:
            for listener in list(self._listeners):
                listener.cancel()
            self._open = False
        logger.debug("In-memory document store closed")

    def __enter__(self) -> "InMemoryDocumentStore":
        self.init()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def is_open(self) -> bool:
        return self._open

    # --- Reads ---

    def get(self, collection: str, doc_id: str) -> DocumentSnapshot | None:
        with self._lock:
            self._check_read(collection)
            data = self._collections.get(collection, {}).get(doc_id)
            return None if data is None else DocumentSnapshot(doc_id, data)

    def query(self, collection: str, **equals: Any) -> Snapshot:
        with self._lock:
            self._check_read(collection)
            return self._snapshot(collection, equals)

    # --- Writes ---

    def new_id(self, collection: str) -> str:
        return uuid4().hex[:20]

    def add(self, collection: str, data: Mapping[str, Any]) -> str:
        doc_id = self.new_id(collection)
        self.set(collection, doc_id, data)
        return doc_id

    def set(self, collection: str, doc_id: str, data: Mapping[str, Any], merge: bool = False) -> None:
        with self._lock:
            self._check_write(collection)
            rows = self._collections.setdefault(collection, {})
            if merge and doc_id in rows:
                merged = dict(rows[doc_id])
                merged.update(data)
                rows[doc_id] = _freeze(merged)
            else:
                rows[doc_id] = _freeze(data)
            listeners = self._listeners_for(collection)
        self._notify(listeners)

    def delete(self, collection: str, doc_id: str) -> None:
        with self._lock:
            self._check_write(collection)
            self._collections.get(collection, {}).pop(doc_id, None)
            listeners = self._listeners_for(collection)
        self._notify(listeners)

    # --- Subscriptions ---

    def subscribe(
        self,
        collection: str,
        callback: SnapshotCallback,
        on_error: ErrorCallback | None = None,
        **equals: Any,
    ) -> Subscription:
        def emit() -> None:
            with self._lock:
                self._check_read(collection)
                snapshot = self._snapshot(collection, equals)
            callback(snapshot)

        return self._register(collection, emit, on_error)

    def subscribe_document(
        self,
        collection: str,
        doc_id: str,
        callback: DocumentCallback,
        on_error: ErrorCallback | None = None,
    ) -> Subscription:
        def emit() -> None:
            with self._lock:
                self._check_read(collection)
                data = self._collections.get(collection, {}).get(doc_id)
            callback(None if data is None else DocumentSnapshot(doc_id, data))

        return self._register(collection, emit, on_error)

    # --- Internals ---

    def _register(self, collection: str, emit: Callable[[], None], on_error: ErrorCallback | None) -> _Listener:
        listener = _Listener(self, collection, emit, on_error)
        with self._lock:
            self._ensure_open()
            self._listeners.append(listener)
        listener.deliver()
        return listener

    def _remove_listener(self, listener: _Listener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _listeners_for(self, collection: str) -> list[_Listener]:
        return [listener for listener in self._listeners if listener.collection == collection]

    @staticmethod
    def _notify(listeners: list[_Listener]) -> None:
        for listener in listeners:
            listener.deliver()

    def _snapshot(self, collection: str, equals: Mapping[str, Any]) -> Snapshot:
        rows = self._collections.get(collection, {})
        docs = tuple(
            DocumentSnapshot(doc_id, data)
            for doc_id, data in rows.items()
            if all(data.get(key) == value for key, value in equals.items())
        )
        return Snapshot(collection=collection, docs=docs)

    def _ensure_open(self) -> None:
        if not self._open:
            raise StoreClosedError("Document store is not initialized; call init() first.")

    def _check_read(self, collection: str) -> None:
        self._ensure_open()
        if collection in self.deny_reads:
            raise PermissionDeniedError(f"Missing or insufficient permissions to read '{collection}'.")

    def _check_write(self, collection: str) -> None:
        self._ensure_open()
        if collection in self.deny_writes:
            raise PermissionDeniedError(f"Missing or insufficient permissions to write '{collection}'.")


def describe_store_error(exc: BaseException) -> str:
    """Turn a store failure into a message a teacher or student can act on."""
    if isinstance(exc, PermissionDeniedError):
        return (
            "The database rules denied this change. Check that you are signed in "
            "with the right account and have access to this class."
        )
    if isinstance(exc, StoreClosedError):
        return "The database connection is not available. Reload and try again."
    return f"Unknown error while saving: {exc}"
