"""
Analytics client: reads the event store and produces dashboard summaries.
"""
import asyncio
import logging
from datetime import datetime
from typing import Any, Optional

from ..config import AnalyticsConfig
from ..models import AnalyticsSummary
from ..referrer import LINKEDIN, SocialNetwork
from ..timeutil import date_bucket, utcnow, window_cutoff
from .aggregation import summarize
from .store import EventStore, QueryTimeoutError, StoreError, is_no_data_error

logger = logging.getLogger(__name__)

MAX_WINDOW_DAYS = 3650


def parse_days(raw: Any, default: int = 30) -> int:
    """Parse a window length; anything missing or not a positive integer gives ``default``."""
    if raw is None or isinstance(raw, bool):
        return default
    try:
        days = int(str(raw).strip())
    except ValueError:
        return default
    if days <= 0:
        return default
    return min(days, MAX_WINDOW_DAYS)


class AnalyticsClient:
    """Client for querying and maintaining the analytics collection."""

    def __init__(
        self,
        store: EventStore,
        config: AnalyticsConfig,
        network: SocialNetwork = LINKEDIN,
    ):
        self.store = store
        self.config = config
        self.network = network

    async def get_summary(
        self,
        days: Any = None,
        now: Optional[datetime] = None,
    ) -> AnalyticsSummary:
        """
        Summarize the last ``days`` days of events.

        "No data yet" store failures (missing index, missing collection)
        give an empty summary. Outages and timeouts propagate so the
        dashboard can show an error instead of zeros.
        """
        days = parse_days(days, self.config.default_window_days)
        now = now or utcnow()
        cutoff = window_cutoff(days, now)
        field = self.config.window_field
        cutoff_value = cutoff if field == "serverReceivedAt" else date_bucket(cutoff)

        try:
            documents = await asyncio.wait_for(
                self.store.query_since(field, cutoff_value),
                timeout=self.config.query_timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            logger.error(f"Summary query for {days}d timed out")
            raise QueryTimeoutError(
                f"Analytics query exceeded {self.config.query_timeout_seconds}s"
            ) from e
        except StoreError as e:
            if is_no_data_error(e):
                logger.info(f"No analytics data yet ({e}); returning empty summary")
                return AnalyticsSummary.empty(days)
            logger.error(f"Summary query failed: {e}")
            raise

        return summarize(
            documents,
            days,
            now=now,
            network=self.network,
            recent_limit=self.config.recent_events_limit,
            window_field=field,
        )

    async def record(self, document: dict[str, Any]) -> str:
        """Append one enriched event document."""
        return await self.store.append(document)

    async def clear(self) -> int:
        """Delete every stored event (administrative reset)."""
        deleted = await self.store.delete_all()
        logger.warning(f"Cleared {deleted} analytics events for {self.config.site_name}")
        return deleted

    async def health(self) -> dict[str, Any]:
        """Report whether the store is reachable."""
        try:
            await self.store.ping()
        except StoreError as e:
            return {"status": "error", "error": str(e)}
        return {"status": "connected", "error": None}
