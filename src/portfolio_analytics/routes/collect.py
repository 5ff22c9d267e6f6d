"""
Ingestion route: receives recorder payloads and stores enriched events.
"""

import logging

from fastapi import APIRouter, HTTPException, Request

from ..config import AnalyticsConfig
from ..core.client import AnalyticsClient
from ..core.store import StoreError
from ..ingest import InvalidPayloadError, build_event_document

logger = logging.getLogger(__name__)


def create_collect_router(client: AnalyticsClient, config: AnalyticsConfig) -> APIRouter:
    """Create the ``POST /api/track`` route."""
    router = APIRouter(tags=["analytics"])

    @router.post("/api/track")
    async def track(request: Request):
        """Store one tracking payload.

        Beacons may arrive with a text/plain content type, so the body is
        parsed as JSON regardless of the header.
        """
        try:
            payload = await request.json()
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid payload") from None

        peer = request.client.host if request.client else None
        try:
            document = build_event_document(
                payload, request.headers, peer, config.effective_ip_hash_salt
            )
        except InvalidPayloadError as e:
            raise HTTPException(status_code=400, detail=str(e)) from None

        try:
            await client.record(document)
        except StoreError as e:
            logger.error(f"Failed to store tracking event: {e}")
            raise HTTPException(status_code=500, detail="Internal server error") from None

        return {"success": True}

    return router
