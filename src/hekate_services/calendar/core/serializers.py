# Response serializers for the calendar service
# Converts ORM rows and occurrences to camelCase JSON payloads

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from ..database.schema import (
    Event,
    EventRegistration,
    EventType,
    RecurrenceRule,
    CalendarIntegration,
    CalendarSyncEvent,
    CalendarConflict,
)
from .recurrence import Occurrence, pattern_from_rule
from .utils import ensure_utc, format_rfc3339


# ============================================================================
# UTILITY FUNCTIONS
# ============================================================================


def _enum_value(val: Any) -> Any:
    """Extract value from enum if needed."""
    if isinstance(val, Enum):
        return val.value
    return val


EVENT_COLORS: dict[EventType, tuple[str, str]] = {
    # (background, border)
    EventType.WEBINAR: ("#DBEAFE", "#3B82F6"),
    EventType.WORKSHOP: ("#D1FAE5", "#10B981"),
    EventType.COURSE: ("#EDE9FE", "#8B5CF6"),
    EventType.MEETING: ("#FEF3C7", "#F59E0B"),
    EventType.COMMUNITY: ("#FEE2E2", "#EF4444"),
    EventType.CONFERENCE: ("#CFFAFE", "#06B6D4"),
    EventType.NETWORKING: ("#FCE7F3", "#EC4899"),
    EventType.TRAINING: ("#ECFCCB", "#84CC16"),
}
DEFAULT_COLORS = ("#F3F4F6", "#6B7280")


def event_colors(event_type: EventType) -> tuple[str, str]:
    return EVENT_COLORS.get(event_type, DEFAULT_COLORS)


# ============================================================================
# EVENT SERIALIZERS
# ============================================================================


def serialize_recurrence_rule(rule: RecurrenceRule) -> dict[str, Any]:
    pattern = pattern_from_rule(rule)
    return {
        "id": rule.id,
        "freq": rule.frequency,
        "interval": rule.interval,
        "count": rule.count,
        "until": format_rfc3339(rule.until),
        "byweekday": rule.by_weekday,
        "bymonthday": rule.by_month_day,
        "bymonth": rule.by_month,
        "bysetpos": rule.by_set_pos,
        "lunarPhase": rule.lunar_phase,
        "exceptions": rule.exceptions or [],
        "isActive": rule.is_active,
        "description": pattern.describe() if pattern is not None else None,
        "rrule": pattern.to_rrule() if pattern is not None else None,
    }


def serialize_event(event: Event, include_rules: bool = True) -> dict[str, Any]:
    """Full representation of a stored base event."""
    result = {
        "id": event.id,
        "title": event.title,
        "description": event.description,
        "type": _enum_value(event.type),
        "status": _enum_value(event.status),
        "startDate": format_rfc3339(event.start_date),
        "endDate": format_rfc3339(event.end_date),
        "timezone": event.timezone,
        "location": event.location,
        "virtualLink": event.virtual_link,
        "isPublic": event.is_public,
        "maxAttendees": event.max_attendees,
        "requiresApproval": event.requires_approval,
        "accessType": _enum_value(event.access_type),
        "price": float(event.price) if event.price is not None else None,
        "freeTiers": event.free_tiers or [],
        "mode": _enum_value(event.mode),
        "tags": event.tags or [],
        "metadata": event.extra_metadata,
        "creatorId": event.creator_id,
        "createdAt": format_rfc3339(event.created_at),
        "updatedAt": format_rfc3339(event.updated_at),
    }
    if include_rules:
        result["recurrence"] = [
            serialize_recurrence_rule(rule) for rule in event.recurrence_rules
        ]
    return result


def serialize_registration(registration: Optional[EventRegistration]) -> Optional[dict[str, Any]]:
    if registration is None:
        return None
    return {
        "id": registration.id,
        "status": _enum_value(registration.status),
        "registeredAt": format_rfc3339(registration.registered_at),
    }


def serialize_occurrence(
    occurrence: Occurrence,
    *,
    user_id: str,
    now: datetime,
    attendee_count: int = 0,
    registration: Optional[EventRegistration] = None,
) -> dict[str, Any]:
    """
    Calendar entry for one occurrence: the base event's fields with the
    occurrence's own start/end and its structured key.
    """
    event = occurrence.event
    background, border = event_colors(event.type)
    creator = event.creator
    return {
        "id": event.id,
        "occurrenceKey": occurrence.key.to_dict(),
        "title": event.title,
        "description": event.description,
        "type": _enum_value(event.type),
        "status": _enum_value(event.status),
        "start": format_rfc3339(occurrence.start),
        "end": format_rfc3339(occurrence.end),
        "allDay": False,
        "timezone": event.timezone,
        "location": event.location,
        "virtualLink": event.virtual_link,
        "isPublic": event.is_public,
        "maxAttendees": event.max_attendees,
        "attendeeCount": attendee_count,
        "tags": event.tags or [],
        "creator": {
            "id": event.creator_id,
            "name": creator.name if creator else None,
            "email": creator.email if creator else None,
        },
        "isCreator": event.creator_id == user_id,
        "isRecurring": not occurrence.is_base or bool(event.recurrence_rules),
        "userRegistration": serialize_registration(registration),
        "canRegister": (
            registration is None
            and occurrence.start > now
            and (not event.max_attendees or attendee_count < event.max_attendees)
        ),
        "backgroundColor": background,
        "borderColor": border,
    }


def serialize_occurrence_brief(occurrence: Occurrence) -> dict[str, Any]:
    return {
        "occurrenceKey": occurrence.key.to_dict(),
        "start": format_rfc3339(occurrence.start),
        "end": format_rfc3339(occurrence.end),
    }


# ============================================================================
# INTEGRATION / SYNC SERIALIZERS
# ============================================================================


def serialize_integration(
    integration: CalendarIntegration, stats: Optional[dict[str, int]] = None
) -> dict[str, Any]:
    """Integration metadata. Tokens are never returned."""
    expires_at = ensure_utc(integration.token_expires_at)
    result = {
        "id": integration.id,
        "provider": _enum_value(integration.provider),
        "externalAccountId": integration.external_account_id,
        "externalAccountEmail": integration.external_account_email,
        "isActive": integration.is_active,
        "syncEnabled": integration.sync_enabled,
        "settings": integration.settings or {},
        "tokenExpiresAt": format_rfc3339(expires_at),
        "lastSyncAt": format_rfc3339(integration.last_sync_at),
        "createdAt": format_rfc3339(integration.created_at),
        "updatedAt": format_rfc3339(integration.updated_at),
    }
    if stats is not None:
        result["stats"] = stats
    return result


def serialize_sync_event(row: CalendarSyncEvent) -> dict[str, Any]:
    return row.model_dump(mode="json", by_alias=True)


def serialize_conflict(conflict: CalendarConflict) -> dict[str, Any]:
    return conflict.model_dump(mode="json", by_alias=True)
