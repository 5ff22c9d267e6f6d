"""
Event store boundary.

The analytics collection is append-only: browsers append, the dashboard
scans a time-bounded range, and an administrator may wipe everything.
``InMemoryEventStore`` backs tests and local development;
``FirestoreEventStore`` (see ``firestore.py``) is the deployed backend.
"""

import re
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from ..timeutil import coerce_datetime

# Store error statuses meaning "nothing to aggregate yet"
NO_DATA_CODES = frozenset({"FAILED_PRECONDITION", "NOT_FOUND"})

_NO_DATA_PATTERN = re.compile(
    r"requires an index"
    r"|index is (?:currently )?building"
    r"|no matching index"
    r"|collection\b.*\b(?:not found|does not exist)"
    r"|database\b.*\bdoes not exist",
    re.IGNORECASE,
)


class StoreError(Exception):
    """A request to the event store failed."""

    def __init__(self, message: str, status: int | None = None, code: str | None = None):
        super().__init__(message)
        self.status = status
        self.code = code


class StoreUnavailableError(StoreError):
    """The store could not be reached (network failure, 5xx, throttling)."""
    pass


class QueryTimeoutError(StoreUnavailableError):
    """A store query did not complete in time."""
    pass


def is_no_data_error(exc: BaseException) -> bool:
    """
    Check whether a store failure just means there is no data yet.

    Missing indexes and missing collections are normal on a fresh
    deployment. Connectivity failures never qualify.
    """
    if isinstance(exc, StoreUnavailableError):
        return False
    if getattr(exc, "code", None) in NO_DATA_CODES:
        return True
    return bool(_NO_DATA_PATTERN.search(str(exc)))


class EventStore(ABC):
    """Append-only collection of event documents."""

    @abstractmethod
    async def append(self, document: dict[str, Any]) -> str:
        """Write one document and return its id."""

    @abstractmethod
    async def query_since(
        self,
        field: str,
        cutoff: datetime | str,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Documents whose ``field`` is >= ``cutoff``, newest first."""

    @abstractmethod
    async def delete_all(self) -> int:
        """Remove every document. Returns the number deleted."""

    @abstractmethod
    async def ping(self) -> None:
        """Raise StoreError if the store is not usable."""


class InMemoryEventStore(EventStore):
    """List-backed store. Set ``fail_with`` to make every call raise it."""

    def __init__(self, documents: list[dict[str, Any]] | None = None):
        self.documents: list[dict[str, Any]] = []
        self.fail_with: BaseException | None = None
        for document in documents or []:
            self._insert(document)

    def _check(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    def _insert(self, document: dict[str, Any]) -> str:
        doc_id = str(document.get("id") or uuid.uuid4().hex)
        self.documents.append({**document, "id": doc_id})
        return doc_id

    async def append(self, document: dict[str, Any]) -> str:
        self._check()
        return self._insert(document)

    async def query_since(
        self,
        field: str,
        cutoff: datetime | str,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        self._check()

        if isinstance(cutoff, datetime):
            def key(document):
                return coerce_datetime(document.get(field))
        else:
            def key(document):
                value = document.get(field)
                return value if isinstance(value, str) else None

        matched = []
        for document in self.documents:
            value = key(document)
            if value is not None and value >= cutoff:
                matched.append((value, document))
        matched.sort(key=lambda pair: pair[0], reverse=True)
        results = [dict(document) for _, document in matched]
        return results[:limit] if limit else results

    async def delete_all(self) -> int:
        self._check()
        count = len(self.documents)
        self.documents.clear()
        return count

    async def ping(self) -> None:
        self._check()
