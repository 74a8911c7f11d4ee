"""
Push notifications for record store implementations.

Writes only enqueue the (collection, id) that changed. The first writer drains the queue and hands every subscriber the
document as it is *at delivery time*. Nested writes done by subscribers are therefore delivered after the current round,
and nobody ever receives an older snapshot after a newer one.
"""

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from itertools import count
from typing import Callable

from src.store.record_store import (
    DocumentCallback,
    DocumentSnapshot,
    Filters,
    QueryCallback,
)

logger = logging.getLogger(__name__)

DocumentKey = tuple[str, str]
FetchDocument = Callable[[str, str], DocumentSnapshot]
FetchQuery = Callable[[str, Filters], list[DocumentSnapshot]]


@dataclass
class HubSubscription:
    _cancel: Callable[[], None]
    _active: bool = field(default=True)

    def unsubscribe(self) -> None:
        if self._active:
            self._active = False
            self._cancel()


@dataclass
class _QueryWatch:
    collection: str
    filters: Filters
    callback: QueryCallback


class SubscriptionHub:
    def __init__(self, fetch_document: FetchDocument, fetch_query: FetchQuery) -> None:
        self._fetch_document = fetch_document
        self._fetch_query = fetch_query
        self._ids = count()
        self._document_watches: dict[DocumentKey, dict[int, DocumentCallback]] = {}
        self._query_watches: dict[int, _QueryWatch] = {}
        self._pending: deque[DocumentKey] = deque()
        self._dispatching = False
        self._lock = threading.RLock()

    @property
    def active_watches(self) -> int:
        """Number of live subscriptions (documents and queries)."""
        with self._lock:
            return sum(len(watchers) for watchers in self._document_watches.values()) + len(self._query_watches)

    def watch_document(
        self, collection: str, doc_id: str, callback: DocumentCallback
    ) -> HubSubscription:
        key = (collection, doc_id)
        watch_id = next(self._ids)
        with self._lock:
            self._document_watches.setdefault(key, {})[watch_id] = callback

        def _cancel() -> None:
            with self._lock:
                watchers = self._document_watches.get(key, {})
                watchers.pop(watch_id, None)
                if not watchers:
                    self._document_watches.pop(key, None)

        subscription = HubSubscription(_cancel)
        callback(self._fetch_document(collection, doc_id))
        return subscription

    def watch_query(
        self, collection: str, filters: Filters, callback: QueryCallback
    ) -> HubSubscription:
        watch_id = next(self._ids)
        with self._lock:
            self._query_watches[watch_id] = _QueryWatch(collection, dict(filters), callback)

        def _cancel() -> None:
            with self._lock:
                self._query_watches.pop(watch_id, None)

        subscription = HubSubscription(_cancel)
        callback(self._fetch_query(collection, filters))
        return subscription

    def notify(self, collection: str, doc_id: str) -> None:
        """Signal that a document changed. Delivers right away unless a delivery round is already running."""
        with self._lock:
            key = (collection, doc_id)
            if key not in self._pending:
                self._pending.append(key)
            if self._dispatching:
                return
            self._dispatching = True

        try:
            while True:
                with self._lock:
                    if not self._pending:
                        self._dispatching = False
                        return
                    collection, doc_id = self._pending.popleft()
                self._deliver(collection, doc_id)
        except BaseException:
            with self._lock:
                self._dispatching = False
            raise

    def _deliver(self, collection: str, doc_id: str) -> None:
        with self._lock:
            document_callbacks = list(self._document_watches.get((collection, doc_id), {}).values())
            query_watches = [
                watch for watch in self._query_watches.values() if watch.collection == collection
            ]

        if document_callbacks:
            snapshot = self._fetch_document(collection, doc_id)
            for callback in document_callbacks:
                self._call(callback, snapshot)

        for watch in query_watches:
            self._call(watch.callback, self._fetch_query(collection, watch.filters))

    @staticmethod
    def _call(callback: Callable[..., None], payload: object) -> None:
        # One misbehaving subscriber must not starve the others
        try:
            callback(payload)
        except Exception:
            logger.exception("[notify-failed] subscriber %r raised", callback)
