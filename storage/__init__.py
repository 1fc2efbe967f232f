"""Document store backends."""

from .abstract_store import DocumentStore, StoredDocument
from .sql_store import SqlDocumentStore

__all__ = ["DocumentStore", "SqlDocumentStore", "StoredDocument"]
