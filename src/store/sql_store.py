"""Implementation of RecordStore using SQLAlchemy"""

import logging
import threading
from copy import deepcopy
from typing import Any, Mapping, Optional, Self
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from src.core.config import SessionConfig
from src.core.exceptions import DocumentExistsError, NotFoundError, StoreError
from src.core.shared_types import DocumentId
from src.store.database import build_session_factory
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
from src.store.schema import DBDocument

logger = logging.getLogger(__name__)


class SQLRecordStore:
    """
    Documents stored as JSON rows. Change notifications are dispatched in-process after each commit,
    so all clients must share this store instance.
    Every read-modify-write runs under one lock, so concurrent field writes on a document never drop each other.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory
        # the in-memory engine shares a single sqlite connection between all sessions
        self._lock = threading.RLock()
        self._hub = SubscriptionHub(self.get, self.query)

    @property
    def active_watches(self) -> int:
        return self._hub.active_watches

    @classmethod
    def from_config(cls, config: SessionConfig) -> Self:
        return cls(build_session_factory(config))

    def get(self, collection: str, doc_id: DocumentId) -> DocumentSnapshot:
        try:
            with self._lock, self._session_factory() as db:
                document_db = self._fetch_document(db, collection, doc_id)
                return self._to_snapshot(collection, doc_id, document_db)
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to read {collection}/{doc_id}: {exc}") from exc

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
        try:
            with self._lock, self._session_factory() as db:
                if self._fetch_document(db, collection, new_id) is not None:
                    raise DocumentExistsError(collection, new_id)
                db.add(
                    DBDocument(
                        collection=collection,
                        id=new_id,
                        fields=new_document(fields, utc_timestamp()),
                    )
                )
                db.commit()
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to create {collection}/{new_id}: {exc}") from exc
        logger.debug("[store-create] %s/%s", collection, new_id)
        self._hub.notify(collection, new_id)
        return new_id

    def update(
        self, collection: str, doc_id: DocumentId, fields: Mapping[str, Any]
    ) -> None:
        try:
            with self._lock, self._session_factory() as db:
                document_db = self._fetch_document(db, collection, doc_id)
                if document_db is None:
                    raise NotFoundError(collection, doc_id)
                # assign a new dict: in-place mutation of a JSON column is not tracked
                document_db.fields = apply_update(document_db.fields, fields, utc_timestamp())
                db.commit()
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to update {collection}/{doc_id}: {exc}") from exc
        logger.debug("[store-update] %s/%s fields=%s", collection, doc_id, sorted(fields))
        self._hub.notify(collection, doc_id)

    def query(self, collection: str, filters: Filters) -> list[DocumentSnapshot]:
        """Equality filters are evaluated in Python (JSON column)."""
        try:
            with self._lock, self._session_factory() as db:
                rows = db.scalars(select(DBDocument).where(DBDocument.collection == collection))
                return [
                    self._to_snapshot(collection, row.id, row)
                    for row in rows
                    if matches(row.fields, filters)
                ]
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to query {collection}: {exc}") from exc

    def _fetch_document(
        self, db: Session, collection: str, doc_id: DocumentId
    ) -> DBDocument | None:
        query = select(DBDocument).where(
            DBDocument.collection == collection, DBDocument.id == doc_id
        )
        return db.scalar(query)

    def _to_snapshot(
        self, collection: str, doc_id: DocumentId, document_db: DBDocument | None
    ) -> DocumentSnapshot:
        """Convert SQLAlchemy model to a snapshot."""
        if document_db is None:
            return DocumentSnapshot(collection, doc_id, None)
        return DocumentSnapshot(collection, doc_id, deepcopy(document_db.fields))
