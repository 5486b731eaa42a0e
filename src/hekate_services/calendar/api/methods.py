"""
Community Calendar API - Endpoint Handlers

REST endpoints for the calendar view, event management, Google Calendar
integrations and sync. Uses Starlette for HTTP handling with SQLAlchemy for
database operations; the session and the caller's user id are provided by
SessionMiddleware.
"""

from __future__ import annotations

import json
import logging
import math
from datetime import datetime, timedelta
from functools import wraps
from typing import Any, Awaitable, Callable, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session
from starlette import status
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from ..database import (
    CalendarProvider,
    EventStatus,
    EventType,
    # Request schemas
    EventCreate,
    EventUpdate,
    IntegrationCreate,
    IntegrationUpdate,
    SyncRequest,
    validate_event_rules,
    # Operations
    get_or_create_user,
    create_event,
    require_event,
    require_visible_event,
    require_event_owner,
    update_event,
    delete_event,
    list_events,
    list_calendar_candidates,
    get_user_registrations,
    get_attendee_counts,
    require_integration,
    list_integrations,
    upsert_integration,
    update_integration,
    disable_integration,
    get_integration_stats,
    list_recent_sync_events,
    list_unresolved_conflicts,
)
from ..core import (
    # Errors
    CalendarAPIError,
    MethodNotAllowedError,
    RequiredFieldError,
    SchemaValidationError,
    UnauthorizedError,
    ValidationError,
    handle_exception,
    # Utils
    CALENDAR_VIEWS,
    ensure_utc,
    format_rfc3339,
    parse_bool,
    parse_csv,
    resolve_window,
    utc_now,
    # Recurrence
    expand_event,
    expand_events,
    rule_patterns,
    # Serializers
    serialize_event,
    serialize_occurrence,
    serialize_occurrence_brief,
    serialize_integration,
    serialize_sync_event,
    serialize_conflict,
)
from ..core.utils import parse_rfc3339
from ..sync import (
    CalendarReconciler,
    GoogleCalendarClient,
    sign_state,
    verify_state,
)

logger = logging.getLogger(__name__)


OCCURRENCES_LOOKBACK = timedelta(days=30)
OCCURRENCES_LOOKAHEAD = timedelta(days=365)
MAX_PAGE_SIZE = 100
RECENT_SYNC_LIMIT = 10


# ============================================================================
# REQUEST UTILITIES
# ============================================================================


def get_user_id(request: Request) -> str:
    """Authenticated user id set by SessionMiddleware."""
    user_id = getattr(request.state, "user_id", None)
    if user_id is None or str(user_id).strip() == "":
        raise UnauthorizedError("Missing user authentication")
    return str(user_id)


def get_now(request: Request) -> datetime:
    """Current instant; ``app.state.clock`` overrides the wall clock."""
    clock = getattr(request.app.state, "clock", None) or utc_now
    return ensure_utc(clock())


def get_google_client(request: Request) -> GoogleCalendarClient:
    client = getattr(request.app.state, "google_client", None)
    if client is None:
        raise CalendarAPIError(
            "Google Calendar integration is not configured",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            reason="backendError",
            domain="global",
        )
    return client


def get_oauth_state_secret(request: Request) -> str:
    secret = getattr(request.app.state, "oauth_state_secret", None)
    if not secret:
        raise CalendarAPIError(
            "OAuth state secret is not configured",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            reason="backendError",
            domain="global",
        )
    return secret


async def get_request_body(request: Request) -> dict[str, Any]:
    """Parse JSON body from request, return empty dict if no body."""
    body = await request.body()
    if not body:
        return {}
    data = json.loads(body)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def get_query_params(request: Request) -> dict[str, str]:
    """Get all query parameters as a dictionary."""
    return dict(request.query_params)


def parse_model(model, body: dict[str, Any]):
    """Validate ``body`` against a pydantic request model."""
    try:
        return model.model_validate(body)
    except PydanticValidationError as e:
        raise SchemaValidationError.from_pydantic(e)


class InvalidParameterError(Exception):
    """Raised when a query parameter has an invalid value."""
    def __init__(self, param_name: str, message: str):
        self.param_name = param_name
        self.message = message
        super().__init__(message)


def parse_int_param(
    params: dict[str, str],
    name: str,
    default: int,
    min_value: Optional[int] = None,
    max_value: Optional[int] = None,
) -> int:
    """
    Parse an integer query parameter with validation.

    Args:
        params: Query parameters dict
        name: Parameter name (e.g., "page")
        default: Default value if parameter not provided
        min_value: Minimum allowed value
        max_value: Maximum allowed value (clamps result)

    Raises:
        InvalidParameterError: If value is not a valid integer or is below min_value
    """
    raw_value = params.get(name)
    if raw_value is None:
        value = default
    else:
        try:
            value = int(raw_value)
        except (ValueError, TypeError):
            raise InvalidParameterError(name, f"{name} must be a valid integer")

    if min_value is not None and value < min_value:
        raise InvalidParameterError(name, f"{name} must be at least {min_value}")
    if max_value is not None:
        value = min(value, max_value)
    return value


def parse_datetime_param(params: dict[str, str], name: str) -> Optional[datetime]:
    raw_value = params.get(name)
    if not raw_value:
        return None
    try:
        return parse_rfc3339(raw_value)
    except ValueError:
        raise InvalidParameterError(name, f"{name} must be an RFC 3339 date or datetime")


def parse_enum_list_param(params: dict[str, str], name: str, enum_cls) -> list:
    values = []
    for raw in parse_csv(params.get(name)):
        try:
            values.append(enum_cls(raw.upper()))
        except ValueError:
            raise InvalidParameterError(name, f"Unknown {name} value: {raw}")
    return values


# ============================================================================
# ERROR HANDLING WRAPPER
# ============================================================================


def _error_response(code: int, message: str, reason: str, detail: str) -> JSONResponse:
    return JSONResponse(
        {
            "error": {
                "code": code,
                "message": message,
                "errors": [
                    {"domain": "global", "reason": reason, "message": detail}
                ],
            }
        },
        status_code=code,
    )


def api_handler(
    handler: Callable[[Request], Awaitable[JSONResponse]]
) -> Callable[[Request], Awaitable[JSONResponse]]:
    """
    Decorator that wraps API handlers with:
    - Database session access (from SessionMiddleware)
    - Error handling and conversion to JSON responses
    """
    @wraps(handler)
    async def wrapper(request: Request) -> JSONResponse:
        session = getattr(request.state, "db_session", None)
        if session is None:
            return _error_response(
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                "Missing database session",
                "backendError",
                "Database session not available",
            )

        try:
            request.state.db = session
            return await handler(request)
        except CalendarAPIError as e:
            return handle_exception(e)
        except json.JSONDecodeError:
            return _error_response(
                status.HTTP_400_BAD_REQUEST,
                "Invalid JSON in request body",
                "parseError",
                "Invalid JSON",
            )
        except InvalidParameterError as e:
            return _error_response(
                status.HTTP_400_BAD_REQUEST,
                f"Invalid value for {e.param_name} parameter",
                "invalidParameter",
                e.message,
            )
        except Exception as e:
            # Log full exception server-side, return a sanitized error
            logger.exception("Unhandled exception in calendar API: %s", e)
            return _error_response(
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                "Internal server error",
                "internalError",
                "Internal server error",
            )

    return wrapper


def method_not_allowed(method: str) -> JSONResponse:
    return MethodNotAllowedError(method).to_response()


async def health(request: Request) -> JSONResponse:
    return JSONResponse({"status": "healthy", "service": "calendar"})


# ============================================================================
# CALENDAR VIEW
# ============================================================================


@api_handler
async def calendar_get(request: Request) -> JSONResponse:
    """
    GET /calendar

    Expanded occurrences visible to the caller inside a view window.

    Query Parameters:
    - view: month (default), week, day or agenda
    - date: anchor date for the view (default: today)
    - startDate / endDate: explicit window, overrides view + date
    - types: comma-separated event types
    - myEvents: only events the caller created
    - myRegistrations: only events the caller is registered for
    """
    session: Session = request.state.db
    user_id = get_user_id(request)
    params = get_query_params(request)
    now = get_now(request)

    view = params.get("view", "month")
    if view not in CALENDAR_VIEWS:
        raise InvalidParameterError(
            "view", f"view must be one of: {', '.join(CALENDAR_VIEWS)}"
        )
    anchor = parse_datetime_param(params, "date")
    start_override = parse_datetime_param(params, "startDate")
    end_override = parse_datetime_param(params, "endDate")

    if start_override and end_override:
        window_start, window_end = start_override, end_override
        if window_start > window_end:
            raise ValidationError("startDate must not be after endDate", field="startDate")
    else:
        window_start, window_end = resolve_window(view, anchor, now)

    types = parse_enum_list_param(params, "types", EventType)
    my_events = parse_bool(params.get("myEvents"))
    my_registrations = parse_bool(params.get("myRegistrations"))

    events = list_calendar_candidates(
        session,
        user_id=user_id,
        window_start=window_start,
        window_end=window_end,
        types=types,
        my_events=my_events,
        my_registrations=my_registrations,
    )
    occurrences = expand_events(events, window_start, window_end)

    event_ids = list({occ.event.id for occ in occurrences})
    counts = get_attendee_counts(session, event_ids)
    registrations = get_user_registrations(session, user_id, event_ids)

    return JSONResponse(
        content={
            "events": [
                serialize_occurrence(
                    occ,
                    user_id=user_id,
                    now=now,
                    attendee_count=counts.get(occ.event.id, 0),
                    registration=registrations.get(occ.event.id),
                )
                for occ in occurrences
            ],
            "view": view,
            "dateRange": {
                "start": format_rfc3339(window_start),
                "end": format_rfc3339(window_end),
            },
            "filters": {
                "types": [t.value for t in types],
                "myEvents": my_events,
                "myRegistrations": my_registrations,
            },
        },
        status_code=status.HTTP_200_OK,
    )


# ============================================================================
# EVENT ENDPOINTS
# ============================================================================


@api_handler
async def events_list(request: Request) -> JSONResponse:
    """
    GET /events

    Paginated list of base events (not expanded) the caller may read.

    Query Parameters:
    - type, status: comma-separated filters
    - startDate, endDate: start date range
    - tags: comma-separated, events carrying any of them
    - createdBy, isPublic, search
    - page (default 1), limit (default 20, max 100)
    """
    session: Session = request.state.db
    user_id = get_user_id(request)
    params = get_query_params(request)

    page = parse_int_param(params, "page", 1, min_value=1)
    limit = parse_int_param(params, "limit", 20, min_value=1, max_value=MAX_PAGE_SIZE)
    is_public = params.get("isPublic")

    events, total = list_events(
        session,
        viewer_id=user_id,
        types=parse_enum_list_param(params, "type", EventType),
        statuses=parse_enum_list_param(params, "status", EventStatus),
        start_date=parse_datetime_param(params, "startDate"),
        end_date=parse_datetime_param(params, "endDate"),
        tags=parse_csv(params.get("tags")),
        created_by=params.get("createdBy") or None,
        is_public=parse_bool(is_public) if is_public is not None else None,
        search=params.get("search") or None,
        page=page,
        limit=limit,
    )

    return JSONResponse(
        content={
            "events": [serialize_event(e) for e in events],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": math.ceil(total / limit) if total else 0,
            },
        },
        status_code=status.HTTP_200_OK,
    )


@api_handler
async def events_insert(request: Request) -> JSONResponse:
    """
    POST /events

    Creates an event, optionally recurring.

    Request body (camelCase): title, type, startDate, endDate and the
    optional fields of EventCreate; ``recurrence`` takes one pattern
    ({"freq": "WEEKLY", "interval": 1, ...}).
    """
    session: Session = request.state.db
    user_id = get_user_id(request)
    body = await get_request_body(request)
    data: EventCreate = parse_model(EventCreate, body)

    virtual_link = str(data.virtual_link) if data.virtual_link else None
    validate_event_rules(
        start_date=data.start_date,
        end_date=data.end_date,
        now=get_now(request),
        access_type=data.access_type,
        price=data.price,
        free_tiers=data.free_tiers,
        mode=data.mode,
        location=data.location,
        virtual_link=virtual_link,
    )

    get_or_create_user(session, user_id)
    event = create_event(
        session,
        creator_id=user_id,
        title=data.title,
        type=data.type,
        start_date=data.start_date,
        end_date=data.end_date,
        recurrence=data.recurrence,
        description=data.description,
        status=data.status,
        timezone=data.timezone,
        location=data.location,
        virtual_link=virtual_link,
        max_attendees=data.max_attendees,
        is_public=data.is_public,
        requires_approval=data.requires_approval,
        access_type=data.access_type,
        price=data.price,
        free_tiers=data.free_tiers,
        mode=data.mode,
        tags=data.tags,
        extra_metadata=data.metadata,
    )
    logger.info("User %s created event %s", user_id, event.id)

    return JSONResponse(
        content=serialize_event(event),
        status_code=status.HTTP_201_CREATED,
    )


@api_handler
async def events_get(request: Request) -> JSONResponse:
    """
    GET /events/{eventId}

    Drafts are readable only by their creator; private events also by
    users registered for them.
    """
    session: Session = request.state.db
    user_id = get_user_id(request)
    event = require_visible_event(session, request.path_params["eventId"], user_id)
    return JSONResponse(content=serialize_event(event), status_code=status.HTTP_200_OK)


_RULE_FIELDS = {
    "start_date",
    "end_date",
    "access_type",
    "price",
    "free_tiers",
    "mode",
    "location",
    "virtual_link",
}


@api_handler
async def events_patch(request: Request) -> JSONResponse:
    """
    PATCH /events/{eventId}

    Partial update by the event's creator. When dates or access fields
    change, the merged state must still satisfy the creation rules; the
    start-in-the-future rule only applies when startDate itself changes.
    """
    session: Session = request.state.db
    event = require_event(session, request.path_params["eventId"])
    event = require_visible_event(session, request.path_params["eventId"], user_id)
    require_event_owner(event, user_id)

    body = await get_request_body(request)
    data: EventUpdate = parse_model(EventUpdate, body)
    changes = data.model_dump(exclude_unset=True)

    if "metadata" in changes:
        changes["extra_metadata"] = changes.pop("metadata")
    if changes.get("virtual_link") is not None:
        changes["virtual_link"] = str(changes["virtual_link"])
    for required in ("title", "type", "status", "start_date", "end_date", "mode", "access_type"):
        if required in changes and changes[required] is None:
            raise RequiredFieldError(required)

    if changes.keys() & _RULE_FIELDS:
        merged = {
            field: changes.get(field, getattr(event, field)) for field in _RULE_FIELDS
        }
        validate_event_rules(
            start_date=ensure_utc(merged["start_date"]),
            end_date=ensure_utc(merged["end_date"]),
            now=get_now(request) if "start_date" in changes else None,
            access_type=merged["access_type"],
            price=merged["price"],
            free_tiers=merged["free_tiers"],
            mode=merged["mode"],
            location=merged["location"],
            virtual_link=merged["virtual_link"],
        )

    update_event(session, event, changes)
    return JSONResponse(content=serialize_event(event), status_code=status.HTTP_200_OK)


@api_handler
async def events_delete(request: Request) -> JSONResponse:
    """
    DELETE /events/{eventId}

    Creator-only. Refused with 409 while the event has active registrations.
    """
    session: Session = request.state.db
    user_id = get_user_id(request)
    event_id = request.path_params["eventId"]
    event = require_event(session, event_id)
    require_event_owner(event, user_id)

    delete_event(session, event)
    logger.info("User %s deleted event %s", user_id, event_id)

    return Response(status_code=status.HTTP_204_NO_CONTENT)


@api_handler
async def events_occurrences(request: Request) -> JSONResponse:
    """
    GET /events/{eventId}/occurrences

    Query Parameters:
    - startDate: window start (default: now - 30 days)
    - endDate: window end (default: now + 365 days)
    """
    session: Session = request.state.db
    user_id = get_user_id(request)
    params = get_query_params(request)
    now = get_now(request)
    event = require_visible_event(session, request.path_params["eventId"], user_id)

    window_start = parse_datetime_param(params, "startDate") or now - OCCURRENCES_LOOKBACK
    window_end = parse_datetime_param(params, "endDate") or now + OCCURRENCES_LOOKAHEAD
    if window_start > window_end:
        raise ValidationError("startDate must not be after endDate", field="startDate")

    occurrences = expand_event(event, rule_patterns(event), window_start, window_end)
    return JSONResponse(
        content={
            "eventId": event.id,
            "occurrences": [serialize_occurrence_brief(o) for o in occurrences],
        },
        status_code=status.HTTP_200_OK,
    )


async def events_handler(request: Request) -> JSONResponse:
    """
    Dispatch handler for /events
    Routes to appropriate handler based on HTTP method.
    """
    method = request.method
    if method == "GET":
        return await events_list(request)
    elif method == "POST":
        return await events_insert(request)
    return method_not_allowed(method)


async def event_by_id_handler(request: Request) -> JSONResponse:
    """
    Dispatch handler for /events/{eventId}
    Routes to appropriate handler based on HTTP method.
    """
    method = request.method
    if method == "GET":
        return await events_get(request)
    elif method == "PATCH":
        return await events_patch(request)
    elif method == "DELETE":
        return await events_delete(request)
    return method_not_allowed(method)


# ============================================================================
# SYNC ENDPOINTS
# ============================================================================


@api_handler
async def sync_google_post(request: Request) -> JSONResponse:
    """
    POST /calendar/sync/google

    Runs one sync against the caller's Google integration.

    Request body:
    - integrationId (required)
    - direction: import, export or bidirectional (default)
    - eventIds: restrict export to these events
    """
    session: Session = request.state.db
    user_id = get_user_id(request)
    body = await get_request_body(request)
    data: SyncRequest = parse_model(SyncRequest, body)

    integration = require_integration(session, data.integration_id, user_id)
    if not integration.is_active or not integration.sync_enabled:
        raise ValidationError(
            "Integration is disabled", field="integrationId", reason="integrationDisabled"
        )

    reconciler = CalendarReconciler(session, get_google_client(request), get_now(request))
    summary = await reconciler.sync(integration, data.direction, data.event_ids)

    content: dict[str, Any] = {"success": True, "summary": summary.to_dict()}
    if summary.errors:
        content["errors"] = summary.errors
    return JSONResponse(content=content, status_code=status.HTTP_200_OK)


@api_handler
async def sync_google_get(request: Request) -> JSONResponse:
    """
    GET /calendar/sync/google?integrationId=

    Integration metadata, the most recent sync-event rows and all
    unresolved conflicts.
    """
    session: Session = request.state.db
    user_id = get_user_id(request)
    integration_id = get_query_params(request).get("integrationId")
    if not integration_id:
        raise RequiredFieldError("integrationId")

    integration = require_integration(session, integration_id, user_id)
    return JSONResponse(
        content={
            "integration": serialize_integration(integration),
            "recentSyncs": [
                serialize_sync_event(row)
                for row in list_recent_sync_events(session, integration.id, RECENT_SYNC_LIMIT)
            ],
            "conflicts": [
                serialize_conflict(c)
                for c in list_unresolved_conflicts(session, integration.id)
            ],
        },
        status_code=status.HTTP_200_OK,
    )


async def sync_google_handler(request: Request) -> JSONResponse:
    """
    Dispatch handler for /calendar/sync/google
    Routes to appropriate handler based on HTTP method.
    """
    method = request.method
    if method == "GET":
        return await sync_google_get(request)
    elif method == "POST":
        return await sync_google_post(request)
    return method_not_allowed(method)


# ============================================================================
# INTEGRATION ENDPOINTS
# ============================================================================


@api_handler
async def integrations_list(request: Request) -> JSONResponse:
    """
    GET /calendar/integrations

    Query Parameters:
    - includeStats: add per-integration sync counts
    """
    session: Session = request.state.db
    user_id = get_user_id(request)
    include_stats = parse_bool(get_query_params(request).get("includeStats"))

    items = [
        serialize_integration(
            integration,
            get_integration_stats(session, integration.id) if include_stats else None,
        )
        for integration in list_integrations(session, user_id)
    ]
    return JSONResponse(content={"integrations": items}, status_code=status.HTTP_200_OK)


@api_handler
async def integrations_insert(request: Request) -> JSONResponse:
    """
    POST /calendar/integrations

    Connects a provider account, or refreshes the stored tokens when the
    account is already connected (201 on create, 200 on refresh).
    """
    session: Session = request.state.db
    user_id = get_user_id(request)
    body = await get_request_body(request)
    data: IntegrationCreate = parse_model(IntegrationCreate, body)

    get_or_create_user(session, user_id)
    integration, created = upsert_integration(
        session,
        user_id=user_id,
        provider=data.provider,
        external_account_id=data.external_account_id,
        access_token=data.access_token,
        refresh_token=data.refresh_token,
        token_expires_at=data.token_expires_at,
        external_account_email=data.external_account_email,
        settings=data.settings,
    )
    return JSONResponse(
        content=serialize_integration(integration),
        status_code=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
    )


@api_handler
async def integrations_patch(request: Request) -> JSONResponse:
    """PATCH /calendar/integrations/{integrationId}"""
    session: Session = request.state.db
    user_id = get_user_id(request)
    integration = require_integration(
        session, request.path_params["integrationId"], user_id
    )
    body = await get_request_body(request)
    data: IntegrationUpdate = parse_model(IntegrationUpdate, body)

    update_integration(
        session, integration, sync_enabled=data.sync_enabled, settings=data.settings
    )
    return JSONResponse(
        content=serialize_integration(integration), status_code=status.HTTP_200_OK
    )


@api_handler
async def integrations_delete(request: Request) -> JSONResponse:
    """
    DELETE /calendar/integrations/{integrationId}

    Disconnects the integration. The row and its sync history are kept.
    """
    session: Session = request.state.db
    user_id = get_user_id(request)
    integration = require_integration(
        session, request.path_params["integrationId"], user_id
    )
    disable_integration(session, integration)
    logger.info("User %s disconnected integration %s", user_id, integration.id)
    return JSONResponse(
        content={"success": True, "integration": serialize_integration(integration)},
        status_code=status.HTTP_200_OK,
    )


async def integrations_handler(request: Request) -> JSONResponse:
    method = request.method
    if method == "GET":
        return await integrations_list(request)
    elif method == "POST":
        return await integrations_insert(request)
    return method_not_allowed(method)


async def integration_by_id_handler(request: Request) -> JSONResponse:
    method = request.method
    if method == "PATCH":
        return await integrations_patch(request)
    elif method == "DELETE":
        return await integrations_delete(request)
    return method_not_allowed(method)


# ============================================================================
# GOOGLE OAUTH
# ============================================================================


@api_handler
async def google_auth_start(request: Request) -> JSONResponse:
    """
    GET /calendar/auth/google

    Consent screen URL; ``state`` binds the callback to the caller.
    """
    user_id = get_user_id(request)
    state = sign_state(user_id, get_oauth_state_secret(request), get_now(request))
    url = get_google_client(request).authorization_url(state)
    return JSONResponse(content={"url": url}, status_code=status.HTTP_200_OK)


@api_handler
async def google_auth_callback(request: Request) -> JSONResponse:
    """
    GET /calendar/auth/google/callback

    Query Parameters:
    - code: authorization code
    - state: value issued by /calendar/auth/google
    - error: set by Google when the user declined
    """
    session: Session = request.state.db
    params = get_query_params(request)
    now = get_now(request)

    if params.get("error"):
        raise ValidationError(
            f"Google authorization failed: {params['error']}", field="error"
        )
    if not params.get("state"):
        raise RequiredFieldError("state")
    if not params.get("code"):
        raise RequiredFieldError("code")

    user_id = verify_state(params["state"], get_oauth_state_secret(request), now)

    client = get_google_client(request)
    grant = await client.exchange_code(params["code"], now)
    account = await client.get_account(grant.access_token)
    external_account_id = account.get("sub") or account.get("id")
    if not external_account_id:
        raise ValidationError("Google account id missing from userinfo response")

    get_or_create_user(session, user_id)
    integration, created = upsert_integration(
        session,
        user_id=user_id,
        provider=CalendarProvider.GOOGLE,
        external_account_id=external_account_id,
        access_token=grant.access_token,
        refresh_token=grant.refresh_token,
        token_expires_at=grant.expires_at,
        external_account_email=account.get("email"),
        settings={"calendarId": "primary"},
    )
    logger.info(
        "User %s connected Google account %s (%s)",
        user_id,
        external_account_id,
        "new" if created else "refreshed",
    )
    return JSONResponse(
        content=serialize_integration(integration),
        status_code=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
    )


# ============================================================================
# ROUTES
# ============================================================================


health_routes = [
    Route("/health", health, methods=["GET"]),
]

calendar_routes = [
    # GET /calendar
    Route("/calendar", calendar_get, methods=["GET"]),
]

event_routes = [
    # GET/POST /events
    Route("/events", events_handler),
    # GET /events/{eventId}/occurrences
    Route(
        "/events/{eventId}/occurrences",
        events_occurrences,
        methods=["GET"],
    ),
    # GET/PATCH/DELETE /events/{eventId}
    Route(
        "/events/{eventId}",
        event_by_id_handler,
    ),
]

sync_routes = [
    # GET/POST /calendar/sync/google
    Route(
        "/calendar/sync/google",
        sync_google_handler,
    ),
]

integration_routes = [
    # GET/POST /calendar/integrations
    Route(
        "/calendar/integrations",
        integrations_handler,
    ),
    # PATCH/DELETE /calendar/integrations/{integrationId}
    Route(
        "/calendar/integrations/{integrationId}",
        integration_by_id_handler,
    ),
]

oauth_routes = [
    # GET /calendar/auth/google/callback - must come before other auth routes
    Route(
        "/calendar/auth/google/callback",
        google_auth_callback,
        methods=["GET"],
    ),
    Route("/calendar/auth/google", google_auth_start, methods=["GET"]),
]

routes = (
    health_routes
    + calendar_routes
    + event_routes
    + sync_routes
    + integration_routes
    + oauth_routes
)
