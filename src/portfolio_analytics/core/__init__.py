"""
Core analytics module.

Contains the event stores, the aggregation engine and the client that
ties them together.
"""

from .aggregation import RECENT_EVENTS_LIMIT, TOP_PAGES_LIMIT, in_window, summarize
from .client import MAX_WINDOW_DAYS, AnalyticsClient, parse_days
from .firestore import FirestoreEventStore
from .store import (
    EventStore,
    InMemoryEventStore,
    QueryTimeoutError,
    StoreError,
    StoreUnavailableError,
    is_no_data_error,
)

__all__ = [
    "AnalyticsClient", "parse_days", "MAX_WINDOW_DAYS",
    "summarize", "in_window", "TOP_PAGES_LIMIT", "RECENT_EVENTS_LIMIT",
    "EventStore", "InMemoryEventStore", "FirestoreEventStore",
    "StoreError", "StoreUnavailableError", "QueryTimeoutError", "is_no_data_error",
]
