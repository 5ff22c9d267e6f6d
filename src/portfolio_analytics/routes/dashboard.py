"""
Dashboard routes for portfolio analytics.

Serves the JSON summary consumed by the analytics dashboard, the
administrative reset and a health check.
"""

import logging
import time
from threading import Lock
from typing import Any

from fastapi import APIRouter, Header, HTTPException, Query, Response

from ..config import AnalyticsConfig, env_status, verify_api_key
from ..core.client import AnalyticsClient, parse_days
from ..core.store import QueryTimeoutError, StoreError
from ..timeutil import utcnow

logger = logging.getLogger(__name__)


class SummaryCache:
    """Short-lived in-memory cache of rendered summaries, keyed by window.

    Thread-safe. A TTL of 0 disables caching.
    """

    def __init__(self, ttl_seconds: int):
        self.ttl_seconds = ttl_seconds
        self._entries: dict[int, tuple[float, dict[str, Any]]] = {}
        self._lock = Lock()

    def get(self, days: int) -> dict[str, Any] | None:
        if self.ttl_seconds <= 0:
            return None
        now = time.monotonic()
        with self._lock:
            entry = self._entries.get(days)
            if entry is None:
                return None
            stored_at, value = entry
            if now - stored_at > self.ttl_seconds:
                self._entries.pop(days, None)
                return None
            return value

    def set(self, days: int, value: dict[str, Any]) -> None:
        if self.ttl_seconds <= 0:
            return
        with self._lock:
            self._entries[days] = (time.monotonic(), value)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


def _bearer_token(authorization: str | None) -> str | None:
    """Extract the token from an ``Authorization: Bearer <token>`` header."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def create_dashboard_router(client: AnalyticsClient, config: AnalyticsConfig) -> APIRouter:
    """Create the summary, reset and health routes.

    Args:
        client: Analytics client bound to the event store
        config: Analytics configuration
    """
    router = APIRouter(tags=["analytics"])
    cache = SummaryCache(config.cache_ttl_seconds)

    def _check_auth(authorization: str | None, key: str | None) -> bool:
        """Accept a bearer token, or the ``key`` query parameter as fallback."""
        if not config.has_auth:
            logger.warning(f"Site {config.site_name}: no API key set, allowing access")
            return True
        provided = _bearer_token(authorization) or key
        if not provided:
            return False
        return verify_api_key(config.api_key, provided)

    @router.get("/api/analytics/summary")
    async def summary(
        response: Response,
        days: str | None = Query(None, description="Trailing window in days (default 30)"),
        key: str | None = Query(None, description="API key (fallback for the Authorization header)"),
        authorization: str | None = Header(None),
    ):
        """Aggregated analytics for the last N days."""
        if not _check_auth(authorization, key):
            raise HTTPException(status_code=401, detail="Unauthorized")

        window = parse_days(days, config.default_window_days)
        data = cache.get(window)
        if data is None:
            try:
                result = await client.get_summary(window)
            except QueryTimeoutError as e:
                raise HTTPException(status_code=504, detail=f"Analytics query timed out: {e}") from None
            except StoreError as e:
                raise HTTPException(status_code=503, detail=f"Analytics store unavailable: {e}") from None
            data = result.to_json()
            cache.set(window, data)

        response.headers["Cache-Control"] = (
            f"s-maxage={config.cache_ttl_seconds}, stale-while-revalidate"
        )
        return data

    @router.delete("/api/analytics/events")
    async def clear_events(
        key: str | None = Query(None),
        authorization: str | None = Header(None),
    ):
        """Delete all analytics events."""
        if not _check_auth(authorization, key):
            raise HTTPException(status_code=401, detail="Unauthorized")
        try:
            deleted = await client.clear()
        except StoreError as e:
            raise HTTPException(status_code=503, detail=f"Analytics store unavailable: {e}") from None
        cache.clear()
        return {"success": True, "deleted": deleted}

    @router.get("/api/health")
    async def health():
        """Report configuration and store reachability."""
        variables = env_status()
        missing = [name for name, present in variables.items() if not present]
        store = await client.health()
        return {
            "status": "ok" if not missing else "missing_env_vars",
            "timestamp": utcnow().isoformat(),
            "environment": {"variables": variables, "missing": missing},
            "store": store,
        }

    return router
