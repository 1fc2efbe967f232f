"""Document store backed by the SQL ``documents`` table."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Mapping

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy.exc import SQLAlchemyError

from errors import DocumentNotFound, PersistenceError
from models.document import Document

from .abstract_store import DocumentStore, StoredDocument

logger = logging.getLogger(__name__)


class SqlDocumentStore(DocumentStore):
    """Persist JSON records through Flask-SQLAlchemy."""

    def __init__(self, database: SQLAlchemy):
        self.db = database

    def _find(self, collection: str, key: str) -> Document | None:
        return (
            self.db.session.query(Document)
            .filter_by(collection=collection, key=key)
            .first()
        )

    def _commit(self, action: str, collection: str) -> None:
        try:
            self.db.session.commit()
        except SQLAlchemyError as exc:
            self.db.session.rollback()
            logger.exception("Failed to %s document in %s", action, collection)
            raise PersistenceError(f"Could not {action} {collection} record.") from exc

    def get(self, collection: str, key: str) -> dict | None:
        try:
            document = self._find(collection, key)
        except SQLAlchemyError as exc:
            logger.exception("Failed to read %s/%s", collection, key)
            raise PersistenceError(f"Could not read {collection} record.") from exc
        return dict(document.data) if document is not None else None

    def set(self, collection: str, key: str, data: Mapping[str, Any]) -> None:
        try:
            document = self._find(collection, key)
        except SQLAlchemyError as exc:
            logger.exception("Failed to read %s/%s", collection, key)
            raise PersistenceError(f"Could not write {collection} record.") from exc
        if document is None:
            document = Document(collection=collection, key=key, data=dict(data))
            self.db.session.add(document)
        else:
            document.data = dict(data)
        self._commit("write", collection)

    def update(self, collection: str, key: str, changes: Mapping[str, Any]) -> dict:
        try:
            document = self._find(collection, key)
        except SQLAlchemyError as exc:
            logger.exception("Failed to read %s/%s", collection, key)
            raise PersistenceError(f"Could not update {collection} record.") from exc
        if document is None:
            raise DocumentNotFound(collection, key)
        # JSON columns only track reassignment, not in-place mutation.
        document.data = {**(document.data or {}), **changes}
        self._commit("update", collection)
        return dict(document.data)

    def add(self, collection: str, data: Mapping[str, Any]) -> str:
        key = uuid.uuid4().hex
        self.set(collection, key, data)
        return key

    def query(self, collection: str, **equals: Any) -> list[StoredDocument]:
        try:
            documents = (
                self.db.session.query(Document)
                .filter_by(collection=collection)
                .order_by(Document.id)
                .all()
            )
        except SQLAlchemyError as exc:
            logger.exception("Failed to query %s", collection)
            raise PersistenceError(f"Could not query {collection}.") from exc

        # Predicates run in Python so JSON equality behaves the same on every backend.
        return [
            StoredDocument(document.key, dict(document.data))
            for document in documents
            if all((document.data or {}).get(name) == value for name, value in equals.items())
        ]
