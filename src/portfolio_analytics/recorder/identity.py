"""Visitor and session identifiers."""

import logging
import secrets
from datetime import datetime
from typing import Callable

from ..timeutil import to_epoch_ms, utcnow
from .storage import KeyValueStorage

logger = logging.getLogger(__name__)

VISITOR_ID_KEY = "analytics_visitor_id"
SESSION_ID_KEY = "analytics_session_id"


def _new_id(prefix: str, now: datetime) -> str:
    return f"{prefix}_{to_epoch_ms(now)}_{secrets.token_hex(6)}"


class VisitorIdentity:
    """
    Issues the durable visitor id and the per-session id.

    The visitor id is created once and never overwritten while durable
    storage persists. The session id lives in session storage. When storage
    is unusable a fresh, unpersisted id is returned for this call only.
    """

    def __init__(
        self,
        durable: KeyValueStorage,
        session: KeyValueStorage,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.durable = durable
        self.session = session
        self.clock = clock

    def _get_or_create(self, storage: KeyValueStorage, key: str, prefix: str) -> str:
        try:
            existing = storage.get(key)
            if existing:
                return existing
            created = _new_id(prefix, self.clock())
            storage.set(key, created)
            return created
        except Exception as e:
            logger.debug(f"Storage unavailable for {key}: {e}")
            return _new_id(prefix, self.clock())

    def visitor_id(self) -> str:
        return self._get_or_create(self.durable, VISITOR_ID_KEY, "v")

    def session_id(self) -> str:
        return self._get_or_create(self.session, SESSION_ID_KEY, "s")
