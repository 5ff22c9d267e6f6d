"""
First-touch attribution persistence.

Durable storage holds at most one first-touch record per browser. It is
written by the first non-direct visit and kept unchanged until it expires
(seven days after capture); the next attributed visit after that replaces it.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable

from pydantic import ValidationError

from ..models import FirstTouch
from ..referrer import SOURCE_DIRECT
from ..timeutil import utcnow
from ..utm import UTMParams
from .storage import KeyValueStorage

logger = logging.getLogger(__name__)

FIRST_TOUCH_KEY = "analytics_first_touch"
FIRST_TOUCH_TTL = timedelta(days=7)


class FirstTouchStore:
    """Reads, expires and captures the first-touch record."""

    def __init__(
        self,
        storage: KeyValueStorage,
        clock: Callable[[], datetime] = utcnow,
        ttl: timedelta = FIRST_TOUCH_TTL,
    ):
        self.storage = storage
        self.clock = clock
        self.ttl = ttl

    def load(self) -> FirstTouch | None:
        """Return the stored record, or None if absent, unreadable or expired."""
        try:
            raw = self.storage.get(FIRST_TOUCH_KEY)
        except Exception as e:
            logger.debug(f"Failed to read first touch: {e}")
            return None
        if not raw:
            return None

        try:
            first_touch = FirstTouch.model_validate_json(raw)
        except ValidationError:
            logger.debug("Discarding unreadable first touch record")
            self._remove()
            return None

        if first_touch.is_expired(self.clock()):
            self._remove()
            return None
        return first_touch

    def capture(self, source: str, referrer_domain: str, utm: UTMParams) -> FirstTouch:
        """Build and persist a new first-touch record starting now."""
        now = self.clock()
        first_touch = FirstTouch(
            source=source,
            referrer_domain=referrer_domain,
            utm=utm.to_dict(),
            captured_at=now,
            expires_at=now + self.ttl,
        )
        try:
            self.storage.set(FIRST_TOUCH_KEY, first_touch.model_dump_json(by_alias=True))
        except Exception as e:
            logger.debug(f"Failed to set first touch: {e}")
        return first_touch

    def resolve(self, source: str, referrer_domain: str, utm: UTMParams) -> FirstTouch | None:
        """
        First touch to attach to this visit's event.

        Keeps an unexpired record untouched; otherwise captures one when the
        visit is attributed (source other than "direct").
        """
        existing = self.load()
        if existing is not None:
            return existing
        if source == SOURCE_DIRECT:
            return None
        return self.capture(source, referrer_domain, utm)

    def _remove(self) -> None:
        try:
            self.storage.remove(FIRST_TOUCH_KEY)
        except Exception as e:
            logger.debug(f"Failed to remove first touch: {e}")
