# Calendar service core: errors, time helpers, recurrence and serializers

from .errors import (
    CalendarAPIError,
    NotFoundError,
    EventNotFoundError,
    IntegrationNotFoundError,
    ValidationError,
    RequiredFieldError,
    InvalidFieldError,
    SchemaValidationError,
    DuplicateError,
    ConflictError,
    ForbiddenError,
    UnauthorizedError,
    MethodNotAllowedError,
    RemoteCalendarError,
    TokenRefreshError,
    MalformedRemoteEventError,
    InternalError,
    handle_exception,
)
from .utils import (
    CALENDAR_VIEWS,
    generate_id,
    utc_now,
    ensure_utc,
    parse_rfc3339,
    format_rfc3339,
    resolve_window,
    parse_bool,
    parse_csv,
)
from .recurrence import (
    DailyPattern,
    WeeklyPattern,
    MonthlyPattern,
    YearlyPattern,
    LunarPattern,
    RecurrencePattern,
    RulePattern,
    Occurrence,
    OccurrenceKey,
    parse_pattern,
    pattern_from_rule,
    rule_patterns,
    iter_occurrences,
    expand_event,
    expand_events,
)
from .serializers import (
    serialize_event,
    serialize_occurrence,
    serialize_occurrence_brief,
    serialize_integration,
    serialize_sync_event,
    serialize_conflict,
)

__all__ = [
    "CalendarAPIError",
    "NotFoundError",
    "EventNotFoundError",
    "IntegrationNotFoundError",
    "ValidationError",
    "RequiredFieldError",
    "InvalidFieldError",
    "SchemaValidationError",
    "DuplicateError",
    "ConflictError",
    "ForbiddenError",
    "UnauthorizedError",
    "MethodNotAllowedError",
    "RemoteCalendarError",
    "TokenRefreshError",
    "MalformedRemoteEventError",
    "InternalError",
    "handle_exception",
    "CALENDAR_VIEWS",
    "generate_id",
    "utc_now",
    "ensure_utc",
    "parse_rfc3339",
    "format_rfc3339",
    "resolve_window",
    "parse_bool",
    "parse_csv",
    "DailyPattern",
    "WeeklyPattern",
    "MonthlyPattern",
    "YearlyPattern",
    "LunarPattern",
    "RecurrencePattern",
    "RulePattern",
    "Occurrence",
    "OccurrenceKey",
    "parse_pattern",
    "pattern_from_rule",
    "rule_patterns",
    "iter_occurrences",
    "expand_event",
    "expand_events",
    "serialize_event",
    "serialize_occurrence",
    "serialize_occurrence_brief",
    "serialize_integration",
    "serialize_sync_event",
    "serialize_conflict",
]
