"""Implementation of RecordStore keeping all documents in a dictionary (single process, any number of clients)."""

import logging
import threading
from copy import deepcopy
from typing import Any, Mapping, Optional
from uuid import uuid4

from src.core.exceptions import DocumentExistsError, NotFoundError
from src.core.shared_types import DocumentId
from src.store.notifications import HubSubscription, SubscriptionHub
from src.store.record_store import (
    DocumentCallback,
    DocumentSnapshot,
    Filters,
    QueryCallback,
    apply_update,
    matches,
    new_document,
    utc_timestamp,
)

logger = logging.getLogger(__name__)


class InMemoryRecordStore:
    """Documents stored per collection. Every client connected to the same instance sees the same data."""

    def __init__(self) -> None:
        self._documents: dict[str, dict[DocumentId, dict[str, Any]]] = {}
        self._lock = threading.RLock()
        self._hub = SubscriptionHub(self.get, self.query)

    @property
    def active_watches(self) -> int:
        return self._hub.active_watches

    def get(self, collection: str, doc_id: DocumentId) -> DocumentSnapshot:
        with self._lock:
            data = self._documents.get(collection, {}).get(doc_id)
            return DocumentSnapshot(collection, doc_id, deepcopy(data))

    def subscribe(
        self, collection: str, doc_id: DocumentId, callback: DocumentCallback
    ) -> HubSubscription:
        return self._hub.watch_document(collection, doc_id, callback)

    def subscribe_query(
        self, collection: str, filters: Filters, callback: QueryCallback
    ) -> HubSubscription:
        return self._hub.watch_query(collection, filters, callback)

    def create(
        self,
        collection: str,
        fields: Mapping[str, Any],
        doc_id: Optional[DocumentId] = None,
    ) -> DocumentId:
        new_id = doc_id or uuid4().hex
        with self._lock:
            documents = self._documents.setdefault(collection, {})
            if new_id in documents:
                raise DocumentExistsError(collection, new_id)
            documents[new_id] = new_document(fields, utc_timestamp())
        logger.debug("[store-create] %s/%s", collection, new_id)
        self._hub.notify(collection, new_id)
        return new_id

    def update(
        self, collection: str, doc_id: DocumentId, fields: Mapping[str, Any]
    ) -> None:
        with self._lock:
            documents = self._documents.get(collection, {})
            if doc_id not in documents:
                raise NotFoundError(collection, doc_id)
            documents[doc_id] = apply_update(documents[doc_id], fields, utc_timestamp())
        logger.debug("[store-update] %s/%s fields=%s", collection, doc_id, sorted(fields))
        self._hub.notify(collection, doc_id)

    def delete(self, collection: str, doc_id: DocumentId) -> None:
        """Remove a document (subscribers receive a snapshot with exists=False)."""
        with self._lock:
            removed = self._documents.get(collection, {}).pop(doc_id, None)
        if removed is not None:
            self._hub.notify(collection, doc_id)

    def query(self, collection: str, filters: Filters) -> list[DocumentSnapshot]:
        with self._lock:
            return [
                DocumentSnapshot(collection, doc_id, deepcopy(data))
                for doc_id, data in self._documents.get(collection, {}).items()
                if matches(data, filters)
            ]
