# Conversions between local events and Google Calendar event resources

from datetime import datetime
from typing import Any

from ..core.errors import MalformedRemoteEventError
from ..core.utils import ensure_utc, format_rfc3339, parse_rfc3339
from ..database.schema import Event

DEFAULT_REMOTE_TITLE = "Untitled Event"


def event_to_google(event: Event) -> dict[str, Any]:
    """Request body for events.insert / events.update."""
    tz = event.timezone or "UTC"
    body: dict[str, Any] = {
        "summary": event.title,
        "description": event.description or "",
        "start": {"dateTime": format_rfc3339(event.start_date), "timeZone": tz},
        "end": {"dateTime": format_rfc3339(event.end_date), "timeZone": tz},
        "location": event.location or "",
    }
    if event.virtual_link:
        body["source"] = {"title": event.title, "url": event.virtual_link}
    return body


def _remote_instant(payload: dict[str, Any], field: str) -> datetime:
    value = payload.get(field) or {}
    raw = value.get("dateTime") or value.get("date")
    if not raw:
        raise MalformedRemoteEventError(
            f"Remote event {payload.get('id')} has no {field}"
        )
    try:
        # all-day "date" values land on midnight UTC
        return parse_rfc3339(raw)
    except ValueError:
        raise MalformedRemoteEventError(
            f"Remote event {payload.get('id')} has an invalid {field}: {raw}"
        )


def google_to_event_fields(payload: dict[str, Any]) -> dict[str, Any]:
    """
    Local Event column values for a remote event resource.

    Raises:
        MalformedRemoteEventError: start/end missing, unparsable or reversed
    """
    start = _remote_instant(payload, "start")
    end = _remote_instant(payload, "end")
    if end <= start:
        raise MalformedRemoteEventError(
            f"Remote event {payload.get('id')} ends before it starts"
        )
    return {
        "title": payload.get("summary") or DEFAULT_REMOTE_TITLE,
        "description": payload.get("description") or "",
        "start_date": start,
        "end_date": end,
        "timezone": (payload.get("start") or {}).get("timeZone") or "UTC",
        "location": payload.get("location") or "",
    }


def conflict_snapshot(title: str, start: datetime, end: datetime) -> dict[str, Any]:
    """JSON-safe copy of the fields compared during import."""
    return {
        "title": title,
        "startDate": format_rfc3339(ensure_utc(start)),
        "endDate": format_rfc3339(ensure_utc(end)),
    }
