"""
Protocol record store (implemented in memory and with SQLAlchemy)

Semantics follow a document database with push notifications:
* atomic per-document field writes, last write wins
* partial updates may delete a field (DELETE_FIELD), ask for a server-side timestamp (SERVER_TIMESTAMP)
  or address a key inside a map using a dotted path ("nextGameReady.user-1")
* subscribers receive the *current* snapshot of a document after every change (intermediate writes can be skipped)
"""

from copy import deepcopy
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional, Protocol

from src.core.shared_types import DocumentId


class _FieldMarker:
    def __init__(self, name: str) -> None:
        self.name = name

    def __repr__(self) -> str:
        return self.name


DELETE_FIELD = _FieldMarker("DELETE_FIELD")
SERVER_TIMESTAMP = _FieldMarker("SERVER_TIMESTAMP")

# Equality filters only: {"status": "pending", "toUserId": "u1"}
Filters = Mapping[str, Any]


@dataclass(frozen=True)
class DocumentSnapshot:
    collection: str
    id: DocumentId
    data: Optional[dict[str, Any]]

    @property
    def exists(self) -> bool:
        return self.data is not None

    def get(self, key: str, default: Any = None) -> Any:
        if self.data is None:
            return default
        return self.data.get(key, default)


DocumentCallback = Callable[[DocumentSnapshot], None]
QueryCallback = Callable[[list[DocumentSnapshot]], None]


class Subscription(Protocol):
    def unsubscribe(self) -> None:
        """Stop receiving notifications. Calling it twice is harmless."""
        ...


class RecordStore(Protocol):
    """Shared mutable document storage, the single source of truth of both clients."""

    def get(self, collection: str, doc_id: DocumentId) -> DocumentSnapshot:
        """Current snapshot of a document (exists=False if there is no such document)."""
        ...

    def subscribe(
        self, collection: str, doc_id: DocumentId, callback: DocumentCallback
    ) -> Subscription:
        """Deliver the current snapshot right away and again after every change/deletion."""
        ...

    def subscribe_query(
        self, collection: str, filters: Filters, callback: QueryCallback
    ) -> Subscription:
        """Deliver the current matching set right away and again after every change in the collection."""
        ...

    def create(
        self,
        collection: str,
        fields: Mapping[str, Any],
        doc_id: Optional[DocumentId] = None,
    ) -> DocumentId:
        """Store a new document, return its id. Raises DocumentExistsError if `doc_id` is taken."""
        ...

    def update(
        self, collection: str, doc_id: DocumentId, fields: Mapping[str, Any]
    ) -> None:
        """Merge partial fields into an existing document. Raises NotFoundError if it does not exist."""
        ...

    def query(self, collection: str, filters: Filters) -> list[DocumentSnapshot]:
        """All documents in the collection matching every equality filter."""
        ...


# --- Helpers shared by the implementations ---
def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def resolve_markers(fields: Mapping[str, Any], timestamp: str) -> dict[str, Any]:
    """Replace SERVER_TIMESTAMP markers (also nested ones) by the given timestamp."""
    resolved: dict[str, Any] = {}
    for key, value in fields.items():
        if value is SERVER_TIMESTAMP:
            resolved[key] = timestamp
        elif isinstance(value, Mapping):
            resolved[key] = resolve_markers(value, timestamp)
        else:
            resolved[key] = deepcopy(value)
    return resolved


def new_document(fields: Mapping[str, Any], timestamp: str) -> dict[str, Any]:
    """DELETE_FIELD makes no sense on creation, those keys are simply dropped."""
    return {
        key: value
        for key, value in resolve_markers(fields, timestamp).items()
        if value is not DELETE_FIELD
    }


def apply_update(
    data: dict[str, Any], fields: Mapping[str, Any], timestamp: str
) -> dict[str, Any]:
    """Return a copy of `data` with the partial update applied."""
    updated = deepcopy(data)
    for path, value in resolve_markers(fields, timestamp).items():
        *parents, leaf = path.split(".")
        target = updated
        for key in parents:
            child = target.get(key)
            if not isinstance(child, dict):
                child = {}
                target[key] = child
            target = child
        if value is DELETE_FIELD:
            target.pop(leaf, None)
        else:
            target[leaf] = value
    return updated


def matches(data: Mapping[str, Any], filters: Filters) -> bool:
    return all(data.get(key) == value for key, value in filters.items())
