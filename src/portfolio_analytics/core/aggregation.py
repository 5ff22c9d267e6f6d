"""
Aggregation of raw event documents into the dashboard summary.

``summarize`` is a pure function of its inputs: the same documents in the
same order, window and clock always produce the same summary. Every ranked
output uses an explicit sort key, and ties keep first-encountered order
because Python's sort is stable (also with ``reverse=True``).
"""

import re
from datetime import datetime
from typing import Any, Iterable

from ..models import (
    CLICK_EVENT_PREFIX,
    PROJECT_VIEW_EVENT,
    AnalyticsSummary,
    ButtonCount,
    DayCount,
    EventRecord,
    FirstTouch,
    PageCount,
    ProjectCount,
    SocialStats,
)
from ..referrer import LINKEDIN, SOURCE_UNKNOWN, SocialNetwork
from ..timeutil import date_bucket, utcnow, window_cutoff

TOP_PAGES_LIMIT = 10
RECENT_EVENTS_LIMIT = 100

# Dropped from the activity log to keep the payload small
RECENT_EVENT_EXCLUDED_FIELDS = frozenset({"userAgent", "ipHash", "ip"})

_BUCKET_RE = re.compile(r"\d{4}-\d{2}-\d{2}")


def _increment(counts: dict[str, int], key: str) -> None:
    counts[key] = counts.get(key, 0) + 1


def _ranked(counts: dict[str, int]) -> list[tuple[str, int]]:
    """Sort by count descending; ties stay in first-seen order."""
    return sorted(counts.items(), key=lambda x: x[1], reverse=True)


def in_window(record: EventRecord, cutoff: datetime, window_field: str = "serverReceivedAt") -> bool:
    """
    Check whether a record falls inside the window starting at ``cutoff``.

    Uses the server receipt time when windowing on it and it is present,
    otherwise a well-formed (YYYY-MM-DD) calendar-day bucket, otherwise
    the client timestamp.
    Records with no time information at all are kept, since the store
    already selected them for this window.
    """
    if window_field == "serverReceivedAt" and record.server_received_at is not None:
        return record.server_received_at >= cutoff
    if _BUCKET_RE.fullmatch(record.date_bucket):
        return record.date_bucket >= date_bucket(cutoff)
    if record.timestamp is not None:
        return record.timestamp >= cutoff
    return True


def _day_of(record: EventRecord) -> str:
    if record.date_bucket:
        return record.date_bucket
    moment = record.timestamp or record.server_received_at
    return date_bucket(moment) if moment else SOURCE_UNKNOWN


def _button_label(record: EventRecord) -> str:
    label = record.attributes.get("label")
    if label is not None and str(label):
        return str(label)
    return record.event_name[len(CLICK_EVENT_PREFIX):] or record.event_name


def summarize(
    documents: Iterable[dict[str, Any]],
    days: int,
    now: datetime | None = None,
    network: SocialNetwork = LINKEDIN,
    recent_limit: int = RECENT_EVENTS_LIMIT,
    window_field: str = "serverReceivedAt",
) -> AnalyticsSummary:
    """
    Reduce event documents into an AnalyticsSummary.

    Args:
        documents: Raw stored documents, in store order (newest first)
        days: Trailing window length in days
        now: End of the window (defaults to the current time)
        network: Social network reported in ``linkedInStats``
        recent_limit: Maximum number of raw events in ``recentEvents``
            (never more than RECENT_EVENTS_LIMIT)
        window_field: Which stored time the window is applied to
    """
    cutoff = window_cutoff(days, now or utcnow())
    recent_limit = min(recent_limit, RECENT_EVENTS_LIMIT)
    records = [EventRecord.from_document(document) for document in documents]
    selected = [r for r in records if in_window(r, cutoff, window_field)]

    visitors: set[str] = set()
    sessions: set[str] = set()
    by_source: dict[str, int] = {}
    pages: dict[str, int] = {}
    daily: dict[str, int] = {}
    projects: dict[str, int] = {}
    buttons: dict[str, int] = {}
    first_touches: dict[str, FirstTouch] = {}
    social = SocialStats()

    for record in selected:
        if record.visitor_id:
            visitors.add(record.visitor_id)
        if record.session_id:
            sessions.add(record.session_id)

        source = record.source or SOURCE_UNKNOWN
        _increment(by_source, source)
        _increment(pages, record.path or SOURCE_UNKNOWN)
        _increment(daily, _day_of(record))

        if record.event_name == PROJECT_VIEW_EVENT:
            project = record.attributes.get("project")
            if project is not None and str(project):
                _increment(projects, str(project))
        elif record.event_name.startswith(CLICK_EVENT_PREFIX):
            _increment(buttons, _button_label(record))

        # Union: matching source OR in-app browser, each record counted once
        if source == network.label or record.in_app_browser_flag:
            social.total += 1
            if record.in_app_browser_flag:
                social.webview += 1
            if record.utm_params.has_campaign_signal:
                social.with_utm += 1

        if record.visitor_id and record.first_touch is not None:
            known = first_touches.get(record.visitor_id)
            if known is None or record.first_touch.captured_at < known.captured_at:
                first_touches[record.visitor_id] = record.first_touch

    first_touch_sources: dict[str, int] = {}
    for first_touch in first_touches.values():
        _increment(first_touch_sources, first_touch.source)

    recent = sorted(selected, key=lambda r: r.event_time, reverse=True)[:recent_limit]

    return AnalyticsSummary(
        window_days=days,
        total_visits=len(selected),
        unique_visitors=len(visitors),
        unique_sessions=len(sessions),
        visits_by_source=dict(_ranked(by_source)),
        top_pages=[PageCount(path=p, count=c) for p, c in _ranked(pages)[:TOP_PAGES_LIMIT]],
        daily_visits=[DayCount(date=d, count=c) for d, c in sorted(daily.items(), key=lambda x: x[0])],
        project_clicks=[ProjectCount(project=p, count=c) for p, c in _ranked(projects)],
        button_clicks=[ButtonCount(label=b, count=c) for b, c in _ranked(buttons)],
        first_touch_sources=dict(_ranked(first_touch_sources)),
        linked_in_stats=social,
        recent_events=[r.to_output(RECENT_EVENT_EXCLUDED_FIELDS) for r in recent],
    )
