# Utility functions for the calendar service
# ID generation, RFC3339 datetime handling, view windows, query parsing

import uuid
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta


# ============================================================================
# ID GENERATION
# ============================================================================


def generate_id() -> str:
    """Generate an opaque identifier for a new row (32 hex characters)."""
    return uuid.uuid4().hex


# ============================================================================
# DATETIME HANDLING
# ============================================================================


def utc_now() -> datetime:
    """The service clock. Handlers call this once and pass the value down."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a datetime to aware UTC.

    Naive values (as returned by SQLite) are taken to already be UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_rfc3339(value: str) -> datetime:
    """
    Parse an ISO 8601 / RFC3339 datetime string into aware UTC.

    Date-only strings ("2024-06-01") parse to midnight UTC.

    Raises:
        ValueError: if the string is not a datetime
    """
    try:
        dt = date_parser.isoparse(value)
    except (ValueError, OverflowError) as e:
        raise ValueError(f"Invalid datetime format: {value}") from e
    return ensure_utc(dt)


def format_rfc3339(dt: Optional[datetime]) -> Optional[str]:
    """Format a datetime as RFC3339 with a Z suffix."""
    if dt is None:
        return None
    dt = ensure_utc(dt)
    if dt.microsecond:
        return dt.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"
    return dt.strftime("%Y-%m-%dT%H:%M:%SZ")


def start_of_day(d: date) -> datetime:
    return datetime.combine(d, time.min, tzinfo=timezone.utc)


def end_of_day(d: date) -> datetime:
    return datetime.combine(d, time.max, tzinfo=timezone.utc)


# ============================================================================
# VIEW WINDOWS
# ============================================================================

CALENDAR_VIEWS = ("month", "week", "day", "agenda")
AGENDA_DAYS = 30


def resolve_window(
    view: str, anchor: Optional[datetime], now: datetime
) -> tuple[datetime, datetime]:
    """
    Compute the closed [start, end] window for a calendar view.

    - day: the anchor's day
    - week: Sunday through Saturday around the anchor
    - month: first through last day of the anchor's month
    - agenda: the anchor's day plus the next 30 days

    Raises:
        ValueError: unknown view name
    """
    day = ensure_utc(anchor or now).date()

    if view == "day":
        return start_of_day(day), end_of_day(day)
    if view == "week":
        sunday = day - timedelta(days=(day.weekday() + 1) % 7)
        return start_of_day(sunday), end_of_day(sunday + timedelta(days=6))
    if view == "month":
        first = day.replace(day=1)
        last = first + relativedelta(months=1) - timedelta(days=1)
        return start_of_day(first), end_of_day(last)
    if view == "agenda":
        return start_of_day(day), end_of_day(day + timedelta(days=AGENDA_DAYS))
    raise ValueError(f"Unknown calendar view: {view}")


# ============================================================================
# QUERY PARAMETERS
# ============================================================================


def parse_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def parse_csv(value: Optional[str]) -> list[str]:
    """Split a comma-separated query value, dropping blanks."""
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]
