"""
Best-effort event delivery.

Delivery is at-most-once with no retry: ``send`` returns immediately, a
beacon-style sender is tried first, and otherwise the event is POSTed from a
daemon thread that nobody waits on. Every failure is logged at DEBUG and
dropped. Losing an analytics event is acceptable; blocking the caller is not.
"""

import json
import logging
import threading
from typing import Any, Callable, Protocol
from urllib.parse import urlparse

import httpx

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "/api/track"

# (url, body) -> True when the beacon was queued
Beacon = Callable[[str, bytes], bool]


def _is_absolute(url: str) -> bool:
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


class Transport(Protocol):
    def send(self, payload: dict[str, Any]) -> None: ...


class BeaconTransport:
    """
    Fire-and-forget sender for recorder payloads.

    A relative ``endpoint`` is resolved against ``base_url`` (the site
    origin) for the POST fallback. Unless a custom client factory is given,
    the endpoint must resolve to an absolute http(s) URL, since the POST
    fallback also runs when a beacon refuses the payload.

    Raises:
        ValueError: If the POST fallback could never reach the endpoint
    """

    def __init__(
        self,
        endpoint: str = DEFAULT_ENDPOINT,
        beacon: Beacon | None = None,
        client_factory: Callable[[], httpx.Client] | None = None,
        timeout: float = 5.0,
        base_url: str = "",
        http_transport: httpx.BaseTransport | None = None,
    ):
        if client_factory is None and not (_is_absolute(endpoint) or _is_absolute(base_url)):
            raise ValueError(
                f"Tracking endpoint {endpoint!r} is relative; pass base_url with the site origin"
            )
        self.endpoint = endpoint
        self.beacon = beacon
        self.timeout = timeout
        self.base_url = base_url
        self._http_transport = http_transport
        self._client_factory = client_factory or self._default_client
        self._pending: set[threading.Thread] = set()
        self._lock = threading.Lock()

    def _default_client(self) -> httpx.Client:
        return httpx.Client(
            base_url=self.base_url, timeout=self.timeout, transport=self._http_transport
        )

    def send(self, payload: dict[str, Any]) -> None:
        """Queue one payload for delivery and return without waiting."""
        try:
            body = json.dumps(payload).encode()
        except (TypeError, ValueError) as e:
            logger.debug(f"Dropping unserializable payload: {e}")
            return

        if self.beacon is not None:
            try:
                if self.beacon(self.endpoint, body):
                    return
            except Exception as e:
                logger.debug(f"Beacon send failed, falling back to POST: {e}")

        thread = threading.Thread(target=self._post, args=(body,), daemon=True)
        with self._lock:
            self._pending.add(thread)
        try:
            thread.start()
        except RuntimeError as e:
            logger.debug(f"Could not start delivery thread: {e}")
            with self._lock:
                self._pending.discard(thread)

    def _post(self, body: bytes) -> None:
        try:
            with self._client_factory() as client:
                client.post(
                    self.endpoint,
                    content=body,
                    headers={"Content-Type": "application/json"},
                )
        except Exception as e:
            logger.debug(f"Failed to send tracking data: {e}")
        finally:
            with self._lock:
                self._pending.discard(threading.current_thread())

    def flush(self, timeout: float | None = None) -> None:
        """Wait for in-flight deliveries (e.g. before interpreter exit)."""
        with self._lock:
            pending = list(self._pending)
        for thread in pending:
            thread.join(timeout)
