# Calendar service persistence: ORM models, request schemas and operations

from .base import Base
from .schema import (
    User,
    Event,
    EventRegistration,
    RecurrenceRule,
    CalendarIntegration,
    CalendarSyncEvent,
    CalendarConflict,
    EventType,
    EventStatus,
    EventAccessType,
    EventMode,
    RegistrationStatus,
    CalendarProvider,
    SyncOperation,
    SyncDirection,
    SyncStatus,
    ConflictType,
)
from .pydantic_schemas import (
    EventCreate,
    EventUpdate,
    SyncRequest,
    IntegrationCreate,
    IntegrationUpdate,
    validate_event_rules,
)
from .operations import (
    require_visible_event,
    get_or_create_user,
    create_event,
    add_recurrence_rule,
    get_event,
    require_event,
    require_event_owner,
    update_event,
    delete_event,
    count_active_registrations,
    list_events,
    list_calendar_candidates,
    get_user_registrations,
    get_attendee_counts,
    list_exportable_events,
    get_integration,
    require_integration,
    list_integrations,
    upsert_integration,
    update_integration,
    disable_integration,
    get_integration_stats,
    find_mapping,
    find_mapping_for_event,
    record_mapping,
    record_failed_export,
    create_conflict,
    list_recent_sync_events,
    list_unresolved_conflicts,
)

__all__ = [
    "Base",
    "User",
    "Event",
    "EventRegistration",
    "RecurrenceRule",
    "CalendarIntegration",
    "CalendarSyncEvent",
    "CalendarConflict",
    "EventType",
    "EventStatus",
    "EventAccessType",
    "EventMode",
    "RegistrationStatus",
    "CalendarProvider",
    "SyncOperation",
    "SyncDirection",
    "SyncStatus",
    "ConflictType",
    "EventCreate",
    "EventUpdate",
    "SyncRequest",
    "IntegrationCreate",
    "IntegrationUpdate",
    "validate_event_rules",
    "require_visible_event",
    "get_or_create_user",
    "create_event",
    "add_recurrence_rule",
    "get_event",
    "require_event",
    "require_event_owner",
    "update_event",
    "delete_event",
    "count_active_registrations",
    "list_events",
    "list_calendar_candidates",
    "get_user_registrations",
    "get_attendee_counts",
    "list_exportable_events",
    "get_integration",
    "require_integration",
    "list_integrations",
    "upsert_integration",
    "update_integration",
    "disable_integration",
    "get_integration_stats",
    "find_mapping",
    "find_mapping_for_event",
    "record_mapping",
    "record_failed_export",
    "create_conflict",
    "list_recent_sync_events",
    "list_unresolved_conflicts",
]
