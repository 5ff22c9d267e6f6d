"""
Pydantic models for analytics data.

Field names are snake_case in Python and camelCase on the wire and in the
document store (``visitorId``, ``inAppBrowserFlag``...).
"""

import logging
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .timeutil import coerce_datetime, normalize_value
from .utm import UTMParams

logger = logging.getLogger(__name__)

PAGE_VIEW_EVENT = "page_view"
PROJECT_VIEW_EVENT = "project_view"
CLICK_EVENT_PREFIX = "click_"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class WireModel(BaseModel):
    """Base model using camelCase aliases for serialization."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return str(value)


def _as_flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)


# =============================================================================
# Raw Data Models
# =============================================================================

class FirstTouch(WireModel):
    """The attribution captured at a browser's first non-direct visit."""

    source: str
    referrer_domain: str = ""
    utm: dict[str, str] = Field(default_factory=dict)
    captured_at: datetime
    expires_at: datetime

    @model_validator(mode="before")
    @classmethod
    def _accept_legacy_keys(cls, data: Any) -> Any:
        # Older browsers stored refDomain/timestamp as epoch milliseconds
        if isinstance(data, dict):
            data = dict(data)
            if "refDomain" in data and "referrerDomain" not in data:
                data["referrerDomain"] = data.pop("refDomain")
            if "timestamp" in data and "capturedAt" not in data:
                data["capturedAt"] = data.pop("timestamp")
        return data

    @field_validator("captured_at", "expires_at", mode="before")
    @classmethod
    def _coerce_time(cls, value: Any) -> Any:
        return coerce_datetime(value) or value

    @field_validator("utm", mode="before")
    @classmethod
    def _clean_utm(cls, value: Any) -> dict[str, str]:
        return UTMParams.from_mapping(value).to_dict()

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


class EventRecord(WireModel):
    """
    A single tracked occurrence (page view or interaction).

    Known fields are typed; anything else a client sends (``project``,
    ``label``, ``screenSize``...) lives in ``attributes``.
    """

    timestamp: datetime | None = None
    server_received_at: datetime | None = None
    date_bucket: str = ""
    path: str = ""
    event_name: str = ""
    source: str = ""
    referrer_domain: str = ""
    utm: dict[str, str] = Field(default_factory=dict)
    in_app_browser_flag: bool = False
    visitor_id: str = ""
    session_id: str = ""
    first_touch: FirstTouch | None = None
    ip_hash: str = ""
    user_agent: str = ""
    attributes: dict[str, Any] = Field(default_factory=dict)

    @field_validator(
        "date_bucket", "path", "event_name", "source", "referrer_domain",
        "visitor_id", "session_id", "ip_hash", "user_agent",
        mode="before",
    )
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return _as_text(value)

    @field_validator("date_bucket", mode="after")
    @classmethod
    def _trim_bucket(cls, value: str) -> str:
        # Legacy records kept a full ISO timestamp here
        if len(value) > 10 and value[4:5] == "-" and value[7:8] == "-":
            return value[:10]
        return value

    @field_validator("timestamp", "server_received_at", mode="before")
    @classmethod
    def _coerce_time(cls, value: Any) -> datetime | None:
        return coerce_datetime(value)

    @field_validator("in_app_browser_flag", mode="before")
    @classmethod
    def _coerce_flag(cls, value: Any) -> bool:
        return _as_flag(value)

    @field_validator("utm", mode="before")
    @classmethod
    def _clean_utm(cls, value: Any) -> dict[str, str]:
        return UTMParams.from_mapping(value).to_dict()

    @field_validator("first_touch", mode="before")
    @classmethod
    def _lenient_first_touch(cls, value: Any) -> FirstTouch | None:
        if isinstance(value, FirstTouch):
            return value
        if not isinstance(value, dict):
            return None
        try:
            return FirstTouch.model_validate(value)
        except ValidationError:
            return None

    @field_validator("attributes", mode="before")
    @classmethod
    def _coerce_attributes(cls, value: Any) -> dict[str, Any]:
        return dict(value) if isinstance(value, dict) else {}

    @property
    def event_time(self) -> datetime:
        """Best available time for ordering (server receipt, then client)."""
        return self.server_received_at or self.timestamp or _EPOCH

    @property
    def utm_params(self) -> UTMParams:
        return UTMParams.from_mapping(self.utm)

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> "EventRecord":
        """
        Parse a stored document leniently.

        Unknown top-level keys become attributes. Pre-rename field names
        (``ts``, ``receivedAt``, ``dateStr``, ``refDomain``,
        ``linkedinWebview``) are read when the current name is absent.
        Never raises: a document that still fails validation is kept as an
        attributes-only record so it is counted with default values.
        """
        if not isinstance(document, dict):
            return cls()

        nested = document.get("attributes")
        attributes: dict[str, Any] = dict(nested) if isinstance(nested, dict) else {}
        data: dict[str, Any] = {}

        for key, value in document.items():
            if key == "attributes":
                continue
            if key in _WIRE_FIELDS:
                data[key] = value
            elif key not in LEGACY_ALIASES:
                attributes[key] = value

        for legacy, current in LEGACY_ALIASES.items():
            if legacy in document and current not in data:
                data[current] = document[legacy]

        try:
            return cls.model_validate({**data, "attributes": attributes})
        except ValidationError as e:
            logger.warning(f"Malformed event record kept with defaults: {e.error_count()} errors")
            return cls(attributes=attributes)

    def to_document(self) -> dict[str, Any]:
        """Flatten into the stored document shape (known fields win on clashes)."""
        document = {k: v for k, v in self.attributes.items() if k not in _WIRE_FIELDS}
        document.update(
            self.model_dump(by_alias=True, exclude_none=True, exclude={"attributes"})
        )
        return document

    def to_payload(self) -> dict[str, Any]:
        """JSON-ready form sent by the recorder."""
        return normalize_value(self.to_document())

    def to_output(self, exclude: frozenset[str] = frozenset()) -> dict[str, Any]:
        """JSON-ready form for the activity log, minus excluded fields."""
        document = self.to_payload()
        return {k: v for k, v in document.items() if k not in exclude}


_WIRE_FIELDS = frozenset(
    field.alias or to_camel(name)
    for name, field in EventRecord.model_fields.items()
    if name != "attributes"
)

LEGACY_ALIASES = {
    "ts": "timestamp",
    "receivedAt": "serverReceivedAt",
    "dateStr": "dateBucket",
    "refDomain": "referrerDomain",
    "linkedinWebview": "inAppBrowserFlag",
}


# =============================================================================
# Aggregated Stats Models
# =============================================================================

class PageCount(WireModel):
    path: str
    count: int


class DayCount(WireModel):
    date: str
    count: int


class ProjectCount(WireModel):
    project: str
    count: int


class ButtonCount(WireModel):
    label: str
    count: int


class SocialStats(WireModel):
    """Traffic attributed to the tracked social network."""

    total: int = 0
    webview: int = 0
    with_utm: int = Field(default=0, alias="withUTM")


class AnalyticsSummary(WireModel):
    """Everything the analytics dashboard renders for one window."""

    window_days: int
    total_visits: int = 0
    unique_visitors: int = 0
    unique_sessions: int = 0
    visits_by_source: dict[str, int] = Field(default_factory=dict)
    top_pages: list[PageCount] = Field(default_factory=list)
    daily_visits: list[DayCount] = Field(default_factory=list)
    project_clicks: list[ProjectCount] = Field(default_factory=list)
    button_clicks: list[ButtonCount] = Field(default_factory=list)
    first_touch_sources: dict[str, int] = Field(default_factory=dict)
    linked_in_stats: SocialStats = Field(default_factory=SocialStats, alias="linkedInStats")
    recent_events: list[dict[str, Any]] = Field(default_factory=list)

    @classmethod
    def empty(cls, window_days: int) -> "AnalyticsSummary":
        return cls(window_days=window_days)

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
