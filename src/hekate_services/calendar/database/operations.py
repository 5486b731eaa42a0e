# Database operations for the calendar service
# CRUD for events, recurrence rules, integrations and sync bookkeeping

import logging
from datetime import datetime
from typing import Any, Optional, Sequence

from sqlalchemy.orm import Session, selectinload
from sqlalchemy import select, and_, or_, func, exists
from sqlalchemy.exc import IntegrityError

from .schema import (
    User,
    Event,
    EventRegistration,
    RecurrenceRule,
    CalendarIntegration,
    CalendarSyncEvent,
    CalendarConflict,
    EventStatus,
    EventType,
    CalendarProvider,
    SyncOperation,
    SyncDirection,
    SyncStatus,
    ConflictType,
    ACTIVE_REGISTRATION_STATUSES,
)
from ..core.utils import generate_id, ensure_utc
from ..core.recurrence import pattern_to_rule_fields
from ..core.errors import (
    EventNotFoundError,
    IntegrationNotFoundError,
    ConflictError,
    DuplicateError,
    ForbiddenError,
)

logger = logging.getLogger(__name__)


# ============================================================================
# USER OPERATIONS
# ============================================================================


def get_or_create_user(
    session: Session,
    user_id: str,
    email: Optional[str] = None,
    name: Optional[str] = None,
) -> User:
    """Ensure a local row exists for an authenticated platform user."""
    user = session.get(User, user_id)
    if user is not None:
        return user

    user = User(id=user_id, email=email, name=name)
    session.add(user)
    try:
        session.flush()
    except IntegrityError:
        session.rollback()
        raise DuplicateError(f"User with email {email} already exists")
    return user


# ============================================================================
# EVENT OPERATIONS
# ============================================================================


_EVENT_FIELDS = {
    "title",
    "description",
    "type",
    "status",
    "start_date",
    "end_date",
    "timezone",
    "location",
    "virtual_link",
    "is_public",
    "max_attendees",
    "requires_approval",
    "access_type",
    "price",
    "free_tiers",
    "mode",
    "tags",
    "extra_metadata",
}


def create_event(
    session: Session,
    creator_id: str,
    title: str,
    type: EventType,
    start_date: datetime,
    end_date: datetime,
    recurrence=None,
    **fields: Any,
) -> Event:
    """
    Create an event, optionally with one recurrence rule.

    ``fields`` takes any other Event column (description, status, ...).
    """
    unknown = set(fields) - _EVENT_FIELDS
    if unknown:
        raise TypeError(f"Unknown event fields: {sorted(unknown)}")

    fields["free_tiers"] = fields.get("free_tiers") or []
    fields["tags"] = fields.get("tags") or []

    event = Event(
        id=generate_id(),
        creator_id=creator_id,
        title=title,
        type=type,
        start_date=ensure_utc(start_date),
        end_date=ensure_utc(end_date),
        **fields,
    )
    session.add(event)

    if recurrence is not None:
        add_recurrence_rule(session, event, recurrence)

    session.flush()
    return event


def add_recurrence_rule(session: Session, event: Event, pattern) -> RecurrenceRule:
    rule = RecurrenceRule(
        id=generate_id(),
        event=event,
        is_active=True,
        **pattern_to_rule_fields(pattern),
    )
    session.add(rule)
    return rule


def get_event(session: Session, event_id: str) -> Optional[Event]:
    return session.execute(
        select(Event)
        .where(Event.id == event_id)
        .options(selectinload(Event.recurrence_rules))
    ).scalar_one_or_none()


def require_event(session: Session, event_id: str) -> Event:
    event = get_event(session, event_id)
    if event is None:
        raise EventNotFoundError(event_id)
    return event


def _registered(user_id: str):
    return exists().where(
        EventRegistration.event_id == Event.id,
        EventRegistration.user_id == user_id,
        EventRegistration.status.in_(ACTIVE_REGISTRATION_STATUSES),
    )


def visible_to(user_id: str):
    """
    Events ``user_id`` may read: their own, plus non-draft events that are
    public or that they hold an active registration for.
    """
    return or_(
        Event.creator_id == user_id,
        and_(
            Event.status != EventStatus.DRAFT,
            or_(Event.is_public.is_(True), _registered(user_id)),
        ),
    )


def require_visible_event(session: Session, event_id: str, user_id: str) -> Event:
    """
    Raises:
        EventNotFoundError: no such event
        ForbiddenError: the event is private or a draft of another user
    """
    event = require_event(session, event_id)
    if event.creator_id == user_id:
        return event
    visible = session.execute(
        select(Event.id).where(Event.id == event.id, visible_to(user_id))
    ).first()
    if visible is None:
        raise ForbiddenError("You do not have access to this event")
    return event


def require_event_owner(event: Event, user_id: str) -> None:
    if event.creator_id != user_id:
        raise ForbiddenError("Only the event creator can modify this event")


def update_event(session: Session, event: Event, changes: dict[str, Any]) -> Event:
    """Apply column changes to an event (keys are Event attribute names)."""
    unknown = set(changes) - _EVENT_FIELDS
    if unknown:
        raise TypeError(f"Unknown event fields: {sorted(unknown)}")

    for key, value in changes.items():
        if key in ("start_date", "end_date"):
            value = ensure_utc(value)
        setattr(event, key, value)
    session.flush()
    return event


def count_active_registrations(session: Session, event_id: str) -> int:
    return session.execute(
        select(func.count(EventRegistration.id)).where(
            EventRegistration.event_id == event_id,
            EventRegistration.status.in_(ACTIVE_REGISTRATION_STATUSES),
        )
    ).scalar_one()


def delete_event(session: Session, event: Event) -> None:
    """
    Delete an event and its rules.

    Raises:
        ConflictError: while the event still has active registrations
    """
    active = count_active_registrations(session, event.id)
    if active:
        raise ConflictError(
            f"Event has {active} active registration(s) and cannot be deleted"
        )
    session.delete(event)
    session.flush()


def list_events(
    session: Session,
    *,
    viewer_id: str,
    types: Sequence[EventType] = (),
    statuses: Sequence[EventStatus] = (),
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    tags: Sequence[str] = (),
    created_by: Optional[str] = None,
    is_public: Optional[bool] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[Event], int]:
    """
    Filtered page of the base events ``viewer_id`` may read, ordered by
    start date. Returns (events, total).
    """
    conditions = [visible_to(viewer_id)]
    if types:
        conditions.append(Event.type.in_(types))
    if statuses:
        conditions.append(Event.status.in_(statuses))
    if start_date is not None:
        conditions.append(Event.start_date >= ensure_utc(start_date))
    if end_date is not None:
        conditions.append(Event.start_date <= ensure_utc(end_date))
    if created_by:
        conditions.append(Event.creator_id == created_by)
    if is_public is not None:
        conditions.append(Event.is_public == is_public)
    if search:
        pattern = f"%{search}%"
        conditions.append(
            or_(Event.title.ilike(pattern), Event.description.ilike(pattern))
        )

    query = select(Event).where(*conditions).order_by(Event.start_date)
    total_query = select(func.count(Event.id)).where(*conditions)

    if tags:
        # JSON list columns are filtered in Python to stay portable
        events = list(
            session.execute(query.options(selectinload(Event.recurrence_rules)))
            .scalars()
            .all()
        )
        wanted = set(tags)
        events = [e for e in events if wanted.intersection(e.tags or [])]
        total = len(events)
        offset = (page - 1) * limit
        return events[offset : offset + limit], total

    total = session.execute(total_query).scalar_one()
    events = (
        session.execute(
            query.options(selectinload(Event.recurrence_rules))
            .offset((page - 1) * limit)
            .limit(limit)
        )
        .scalars()
        .all()
    )
    return list(events), total


def list_calendar_candidates(
    session: Session,
    *,
    user_id: str,
    window_start: datetime,
    window_end: datetime,
    types: Sequence[EventType] = (),
    my_events: bool = False,
    my_registrations: bool = False,
) -> list[Event]:
    """
    Published base events that may have an occurrence in the window.

    Visibility is public events, the user's own events and events the user
    is registered for. ``my_events`` / ``my_registrations`` narrow that set
    to the union of the selected categories.
    """
    registered = _registered(user_id)
    recurring = exists().where(
        RecurrenceRule.event_id == Event.id, RecurrenceRule.is_active.is_(True)
    )

    if my_events or my_registrations:
        scopes = []
        if my_events:
            scopes.append(Event.creator_id == user_id)
        if my_registrations:
            scopes.append(registered)
        visibility = or_(*scopes)
    else:
        visibility = or_(
            Event.is_public.is_(True), Event.creator_id == user_id, registered
        )

    conditions = [
        Event.status == EventStatus.PUBLISHED,
        visibility,
        Event.start_date <= ensure_utc(window_end),
        or_(Event.start_date >= ensure_utc(window_start), recurring),
    ]
    if types:
        conditions.append(Event.type.in_(types))

    return list(
        session.execute(
            select(Event)
            .where(*conditions)
            .options(selectinload(Event.recurrence_rules))
            .order_by(Event.start_date)
        )
        .scalars()
        .all()
    )


def get_user_registrations(
    session: Session, user_id: str, event_ids: Sequence[str]
) -> dict[str, EventRegistration]:
    if not event_ids:
        return {}
    rows = session.execute(
        select(EventRegistration).where(
            EventRegistration.user_id == user_id,
            EventRegistration.event_id.in_(event_ids),
        )
    ).scalars()
    return {r.event_id: r for r in rows}


def get_attendee_counts(session: Session, event_ids: Sequence[str]) -> dict[str, int]:
    if not event_ids:
        return {}
    rows = session.execute(
        select(EventRegistration.event_id, func.count(EventRegistration.id))
        .where(
            EventRegistration.event_id.in_(event_ids),
            EventRegistration.status.in_(ACTIVE_REGISTRATION_STATUSES),
        )
        .group_by(EventRegistration.event_id)
    ).all()
    return {event_id: count for event_id, count in rows}


def list_exportable_events(
    session: Session,
    user_id: str,
    since: datetime,
    event_ids: Optional[Sequence[str]] = None,
) -> list[Event]:
    """Events created by ``user_id`` starting at or after ``since``."""
    query = select(Event).where(
        Event.creator_id == user_id,
        Event.start_date >= ensure_utc(since),
    )
    if event_ids:
        query = query.where(Event.id.in_(event_ids))
    return list(session.execute(query.order_by(Event.start_date)).scalars().all())


# ============================================================================
# INTEGRATION OPERATIONS
# ============================================================================


def get_integration(
    session: Session, integration_id: str, user_id: Optional[str] = None
) -> Optional[CalendarIntegration]:
    query = select(CalendarIntegration).where(CalendarIntegration.id == integration_id)
    if user_id is not None:
        query = query.where(CalendarIntegration.user_id == user_id)
    return session.execute(query).scalar_one_or_none()


def require_integration(
    session: Session, integration_id: str, user_id: Optional[str] = None
) -> CalendarIntegration:
    integration = get_integration(session, integration_id, user_id)
    if integration is None:
        raise IntegrationNotFoundError(integration_id)
    return integration


def list_integrations(session: Session, user_id: str) -> list[CalendarIntegration]:
    return list(
        session.execute(
            select(CalendarIntegration)
            .where(CalendarIntegration.user_id == user_id)
            .order_by(CalendarIntegration.created_at)
        )
        .scalars()
        .all()
    )


def upsert_integration(
    session: Session,
    user_id: str,
    provider: CalendarProvider,
    external_account_id: str,
    access_token: str,
    refresh_token: Optional[str] = None,
    token_expires_at: Optional[datetime] = None,
    external_account_email: Optional[str] = None,
    settings: Optional[dict[str, Any]] = None,
) -> tuple[CalendarIntegration, bool]:
    """
    Connect a provider account, or refresh the tokens of an existing link.

    Reconnecting re-enables a previously disconnected integration. A missing
    refresh token keeps the stored one. Returns (integration, created).
    """
    integration = session.execute(
        select(CalendarIntegration).where(
            CalendarIntegration.user_id == user_id,
            CalendarIntegration.provider == provider,
            CalendarIntegration.external_account_id == external_account_id,
        )
    ).scalar_one_or_none()

    created = integration is None
    if created:
        integration = CalendarIntegration(
            id=generate_id(),
            user_id=user_id,
            provider=provider,
            external_account_id=external_account_id,
            settings=settings or {},
        )
        session.add(integration)
    elif settings:
        integration.settings = {**(integration.settings or {}), **settings}

    integration.access_token = access_token
    if refresh_token:
        integration.refresh_token = refresh_token
    integration.token_expires_at = ensure_utc(token_expires_at)
    if external_account_email:
        integration.external_account_email = external_account_email
    integration.is_active = True

    try:
        session.flush()
    except IntegrityError:
        session.rollback()
        raise DuplicateError("Calendar integration already exists")
    return integration, created


def update_integration(
    session: Session,
    integration: CalendarIntegration,
    sync_enabled: Optional[bool] = None,
    settings: Optional[dict[str, Any]] = None,
) -> CalendarIntegration:
    if sync_enabled is not None:
        integration.sync_enabled = sync_enabled
    if settings is not None:
        integration.settings = {**(integration.settings or {}), **settings}
    session.flush()
    return integration


def disable_integration(
    session: Session, integration: CalendarIntegration
) -> CalendarIntegration:
    """Disconnect: keep the row and its history, stop syncing."""
    integration.is_active = False
    integration.sync_enabled = False
    session.flush()
    return integration


def get_integration_stats(session: Session, integration_id: str) -> dict[str, int]:
    status_counts = dict(
        session.execute(
            select(CalendarSyncEvent.status, func.count(CalendarSyncEvent.id))
            .where(CalendarSyncEvent.integration_id == integration_id)
            .group_by(CalendarSyncEvent.status)
        ).all()
    )
    unresolved = session.execute(
        select(func.count(CalendarConflict.id)).where(
            CalendarConflict.integration_id == integration_id,
            CalendarConflict.resolved_at.is_(None),
        )
    ).scalar_one()
    return {
        "syncedEvents": status_counts.get(SyncStatus.SYNCED, 0),
        "failedEvents": status_counts.get(SyncStatus.FAILED, 0),
        "pendingEvents": status_counts.get(SyncStatus.PENDING, 0),
        "unresolvedConflicts": unresolved,
    }


# ============================================================================
# SYNC BOOKKEEPING
# ============================================================================


def find_mapping(
    session: Session, integration_id: str, external_id: str
) -> Optional[CalendarSyncEvent]:
    return session.execute(
        select(CalendarSyncEvent).where(
            CalendarSyncEvent.integration_id == integration_id,
            CalendarSyncEvent.external_id == external_id,
        )
    ).scalar_one_or_none()


def find_mapping_for_event(
    session: Session, integration_id: str, event_id: str
) -> Optional[CalendarSyncEvent]:
    """The mapping row binding a local event to a remote id, if any."""
    return (
        session.execute(
            select(CalendarSyncEvent)
            .where(
                CalendarSyncEvent.integration_id == integration_id,
                CalendarSyncEvent.event_id == event_id,
                CalendarSyncEvent.external_id.is_not(None),
            )
            .order_by(CalendarSyncEvent.created_at)
        )
        .scalars()
        .first()
    )


def record_mapping(
    session: Session,
    integration_id: str,
    event_id: str,
    external_id: str,
    direction: SyncDirection,
    now: datetime,
) -> CalendarSyncEvent:
    """
    Create the mapping for (integration, external id).

    A concurrent run that already stored the same pair wins; its row is
    returned and nothing new is written.
    """
    mapping = CalendarSyncEvent(
        id=generate_id(),
        integration_id=integration_id,
        event_id=event_id,
        external_id=external_id,
        operation=SyncOperation.CREATE,
        direction=direction,
        status=SyncStatus.SYNCED,
        created_at=now,
        synced_at=now,
    )
    try:
        with session.begin_nested():
            session.add(mapping)
    except IntegrityError:
        existing = find_mapping(session, integration_id, external_id)
        if existing is None:
            raise
        logger.info(
            "Mapping for %s on integration %s already exists; keeping %s",
            external_id,
            integration_id,
            existing.id,
        )
        return existing
    return mapping


def record_failed_export(
    session: Session,
    integration_id: str,
    event_id: str,
    error_message: str,
    now: datetime,
) -> CalendarSyncEvent:
    row = CalendarSyncEvent(
        id=generate_id(),
        integration_id=integration_id,
        event_id=event_id,
        external_id=None,
        operation=SyncOperation.CREATE,
        direction=SyncDirection.EXPORT,
        status=SyncStatus.FAILED,
        error_message=error_message,
        created_at=now,
    )
    session.add(row)
    session.flush()
    return row


def create_conflict(
    session: Session,
    integration_id: str,
    event_id: str,
    external_id: str,
    local_data: dict[str, Any],
    external_data: dict[str, Any],
    now: datetime,
    description: Optional[str] = None,
) -> CalendarConflict:
    conflict = CalendarConflict(
        id=generate_id(),
        integration_id=integration_id,
        event_id=event_id,
        external_id=external_id,
        conflict_type=ConflictType.DATA_MISMATCH,
        description=description,
        local_data=local_data,
        external_data=external_data,
        created_at=now,
    )
    session.add(conflict)
    session.flush()
    return conflict


def list_recent_sync_events(
    session: Session, integration_id: str, limit: int = 10
) -> list[CalendarSyncEvent]:
    return list(
        session.execute(
            select(CalendarSyncEvent)
            .where(CalendarSyncEvent.integration_id == integration_id)
            .order_by(CalendarSyncEvent.created_at.desc())
            .limit(limit)
        )
        .scalars()
        .all()
    )


def list_unresolved_conflicts(
    session: Session, integration_id: str
) -> list[CalendarConflict]:
    return list(
        session.execute(
            select(CalendarConflict)
            .where(
                CalendarConflict.integration_id == integration_id,
                CalendarConflict.resolved_at.is_(None),
            )
            .order_by(CalendarConflict.created_at.desc())
        )
        .scalars()
        .all()
    )
