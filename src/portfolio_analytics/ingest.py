"""
Server-side enrichment of incoming tracking payloads.

The recorder's payload is trusted for attribution but not for time or
identity. On receipt the server adds:

- serverReceivedAt: when the write was accepted (used for windowing)
- dateBucket: the UTC day of the *client* event time, so a late beacon
  still lands on the day the visit happened
- ipHash: salted, truncated SHA-256 of the caller IP (raw IPs are not kept)
- userAgent: the raw User-Agent header

Only ``path`` and ``source`` are required. Everything else is stored as
provided.
"""

import hashlib
import logging
from datetime import datetime
from typing import Any, Mapping

from .models import EventRecord
from .timeutil import date_bucket, utcnow

logger = logging.getLogger(__name__)

IP_HASH_LENGTH = 16

# Server-owned fields a client may not set
SERVER_FIELDS = ("serverReceivedAt", "dateBucket", "ipHash", "userAgent", "ip")


class InvalidPayloadError(ValueError):
    """Raised when a tracking payload lacks a structurally required field."""
    pass


def hash_ip(ip: str, salt: str) -> str:
    """One-way, salted hash of an IP address, truncated for storage."""
    return hashlib.sha256(f"{ip}{salt}".encode()).hexdigest()[:IP_HASH_LENGTH]


def client_ip(headers: Mapping[str, str], peer: str | None = None) -> str:
    """Caller IP: first X-Forwarded-For hop, then X-Real-IP, then the socket peer."""
    forwarded = headers.get("x-forwarded-for", "")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = headers.get("x-real-ip", "").strip()
    if real_ip:
        return real_ip
    return peer or "unknown"


def build_event_document(
    payload: Any,
    headers: Mapping[str, str],
    peer: str | None,
    salt: str,
    now: datetime | None = None,
) -> dict[str, Any]:
    """
    Validate a tracking payload and return the document to store.

    Raises:
        InvalidPayloadError: If the payload is not an object or lacks
            ``path`` or ``source``
    """
    if not isinstance(payload, dict):
        raise InvalidPayloadError("Payload must be a JSON object")
    if not payload.get("path") or not payload.get("source"):
        raise InvalidPayloadError("Payload requires path and source")

    received_at = now or utcnow()
    client_payload = {k: v for k, v in payload.items() if k not in SERVER_FIELDS}

    record = EventRecord.from_document(client_payload)
    event_time = record.timestamp
    if event_time is None:
        logger.debug("Payload without usable timestamp; bucketing by receipt time")
        event_time = received_at

    record.server_received_at = received_at
    record.date_bucket = date_bucket(event_time)
    record.ip_hash = hash_ip(client_ip(headers, peer), salt)
    record.user_agent = headers.get("user-agent", "")
    if record.timestamp is None:
        record.timestamp = event_time

    return record.to_document()
