"""Document store abstraction layer."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Mapping, NamedTuple


class StoredDocument(NamedTuple):
    """A record returned by a collection query."""

    key: str
    data: dict


class DocumentStore(ABC):
    """Interface for keyed JSON document backends."""

    @abstractmethod
    def get(self, collection: str, key: str) -> dict | None:
        """Return the record stored under ``key`` or ``None``."""

    @abstractmethod
    def set(self, collection: str, key: str, data: Mapping[str, Any]) -> None:
        """Create or overwrite the record stored under ``key``."""

    @abstractmethod
    def update(self, collection: str, key: str, changes: Mapping[str, Any]) -> dict:
        """Shallow-merge ``changes`` into an existing record and return it.

        Raises ``DocumentNotFound`` when the record does not exist.
        """

    @abstractmethod
    def add(self, collection: str, data: Mapping[str, Any]) -> str:
        """Store a record under a generated key and return the key."""

    @abstractmethod
    def query(self, collection: str, **equals: Any) -> list[StoredDocument]:
        """Return records whose fields equal every given value, oldest first."""
