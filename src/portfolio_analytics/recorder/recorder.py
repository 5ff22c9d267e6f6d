"""
Attribution recorder.

Builds one attributed event per trackable occurrence and hands it to a
best-effort transport. Nothing here raises to the caller: storage and
delivery problems only ever cost an analytics event.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable
from urllib.parse import urlparse

from ..models import PAGE_VIEW_EVENT, EventRecord, FirstTouch
from ..referrer import LINKEDIN, SocialNetwork, resolve_source
from ..timeutil import utcnow
from ..user_agent import detect_in_app_browser
from ..utm import parse_utm
from .first_touch import FirstTouchStore
from .identity import VisitorIdentity
from .storage import KeyValueStorage
from .transport import Transport

logger = logging.getLogger(__name__)

DEFAULT_EXCLUDED_PATHS = ("/admin", "/analytics")

PAGE_VIEW_KEY_PREFIX = "analytics_pv:"


@dataclass(frozen=True)
class PageContext:
    """What the browser knows about the current page."""

    url: str
    referrer: str = ""
    user_agent: str = ""
    screen_size: str = ""

    @property
    def path(self) -> str:
        return urlparse(self.url).path or "/"


class AttributionRecorder:
    """Classifies visits, maintains first touch and emits events."""

    def __init__(
        self,
        transport: Transport,
        durable_storage: KeyValueStorage,
        session_storage: KeyValueStorage,
        clock: Callable[[], datetime] = utcnow,
        network: SocialNetwork = LINKEDIN,
        excluded_paths: tuple[str, ...] = DEFAULT_EXCLUDED_PATHS,
    ):
        self.transport = transport
        self.session_storage = session_storage
        self.clock = clock
        self.network = network
        self.excluded_paths = excluded_paths
        self.identity = VisitorIdentity(durable_storage, session_storage, clock)
        self.first_touch = FirstTouchStore(durable_storage, clock)

    def is_excluded(self, path: str) -> bool:
        return any(path.startswith(prefix) for prefix in self.excluded_paths)

    def track_page_view(self, context: PageContext) -> EventRecord | None:
        """
        Record a navigation.

        Emits at most one page view per path per browser session. Returns the
        event that was sent, or None when the view was excluded, deduplicated
        or could not be built.
        """
        try:
            path = context.path
            if self.is_excluded(path):
                return None
            if self._already_viewed(path):
                return None
            record = self._build(context, PAGE_VIEW_EVENT, {}, capture_first_touch=True)
            self._mark_viewed(path)
            self._send(record)
            return record
        except Exception as e:
            logger.debug(f"Error in track_page_view: {e}")
            return None

    def track_event(self, context: PageContext, event_name: str, **attributes: Any) -> EventRecord | None:
        """
        Record an interaction such as ``click_resume`` or ``project_view``.

        Interactions are never deduplicated. Extra keyword arguments are
        stored as event attributes (``project=...``, ``label=...``).
        """
        if event_name == PAGE_VIEW_EVENT:
            return self.track_page_view(context)
        try:
            if self.is_excluded(context.path):
                return None
            record = self._build(context, event_name, attributes, capture_first_touch=False)
            self._send(record)
            return record
        except Exception as e:
            logger.debug(f"Error in track_event({event_name}): {e}")
            return None

    def _already_viewed(self, path: str) -> bool:
        try:
            return bool(self.session_storage.get(PAGE_VIEW_KEY_PREFIX + path))
        except Exception as e:
            # Without session storage we cannot dedupe; send anyway
            logger.debug(f"Page view dedup unavailable: {e}")
            return False

    def _mark_viewed(self, path: str) -> None:
        # Set only once the event has been built
        try:
            self.session_storage.set(PAGE_VIEW_KEY_PREFIX + path, "1")
        except Exception as e:
            logger.debug(f"Page view dedup unavailable: {e}")

    def _build(
        self,
        context: PageContext,
        event_name: str,
        attributes: dict[str, Any],
        capture_first_touch: bool,
    ) -> EventRecord:
        in_app = detect_in_app_browser(context.user_agent, self.network)
        utm = parse_utm(context.url)
        resolution = resolve_source(utm, context.referrer, in_app, self.network)

        first_touch: FirstTouch | None
        if capture_first_touch:
            first_touch = self.first_touch.resolve(
                resolution.source, resolution.referrer_domain, utm
            )
        else:
            first_touch = self.first_touch.load()

        extra = dict(attributes)
        if context.screen_size:
            extra.setdefault("screenSize", context.screen_size)

        return EventRecord(
            timestamp=self.clock(),
            path=context.path,
            event_name=event_name,
            source=resolution.source,
            referrer_domain=resolution.referrer_domain,
            utm=utm.to_dict(),
            in_app_browser_flag=resolution.in_app_browser,
            visitor_id=self.identity.visitor_id(),
            session_id=self.identity.session_id(),
            first_touch=first_touch,
            attributes=extra,
        )

    def _send(self, record: EventRecord) -> None:
        try:
            self.transport.send(record.to_payload())
        except Exception as e:
            logger.debug(f"Failed to hand off tracking data: {e}")
