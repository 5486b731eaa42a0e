# Schema for the Hekate calendar service
# Events, recurrence rules, registrations and external calendar sync state

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum as PyEnum
from typing import Any, Optional
from sqlalchemy import (
    String,
    Text,
    Integer,
    Numeric,
    Boolean,
    DateTime,
    ForeignKey,
    Enum,
    UniqueConstraint,
    CheckConstraint,
    Index,
)
from sqlalchemy import JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship
from .base import Base


# ============================================================================
# ENUMS
# ============================================================================


class EventType(PyEnum):
    WEBINAR = "WEBINAR"
    WORKSHOP = "WORKSHOP"
    COURSE = "COURSE"
    MEETING = "MEETING"
    COMMUNITY = "COMMUNITY"
    CONFERENCE = "CONFERENCE"
    NETWORKING = "NETWORKING"
    TRAINING = "TRAINING"


class EventStatus(PyEnum):
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    CANCELLED = "CANCELLED"


class EventAccessType(PyEnum):
    FREE = "FREE"
    PAID = "PAID"
    TIER = "TIER"


class EventMode(PyEnum):
    ONLINE = "ONLINE"
    IN_PERSON = "IN_PERSON"
    HYBRID = "HYBRID"


class RegistrationStatus(PyEnum):
    REGISTERED = "REGISTERED"
    CONFIRMED = "CONFIRMED"
    WAITLISTED = "WAITLISTED"
    CANCELLED = "CANCELLED"


class CalendarProvider(PyEnum):
    GOOGLE = "GOOGLE"
    OUTLOOK = "OUTLOOK"


class SyncOperation(PyEnum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"


class SyncDirection(PyEnum):
    IMPORT = "IMPORT"
    EXPORT = "EXPORT"


class SyncStatus(PyEnum):
    SYNCED = "SYNCED"
    FAILED = "FAILED"
    PENDING = "PENDING"


class ConflictType(PyEnum):
    DATA_MISMATCH = "DATA_MISMATCH"


ACTIVE_REGISTRATION_STATUSES = (
    RegistrationStatus.REGISTERED,
    RegistrationStatus.CONFIRMED,
    RegistrationStatus.WAITLISTED,
)


# ============================================================================
# MODELS
# ============================================================================


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    """Local projection of a platform user (event creator, integration owner)."""

    __tablename__ = "calendar_users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), unique=True, nullable=True)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    events: Mapped[list["Event"]] = relationship(back_populates="creator")
    integrations: Mapped[list["CalendarIntegration"]] = relationship(
        back_populates="user"
    )


class Event(Base):
    """
    A base event. Recurring events keep their rules in
    calendar_recurrence_rules; occurrences are never stored.
    """

    __tablename__ = "calendar_events"
    __table_args__ = (
        CheckConstraint("start_date < end_date", name="ck_event_start_before_end"),
        Index("ix_event_start", "start_date"),
        Index("ix_event_creator", "creator_id"),
        Index("ix_event_status", "status"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    type: Mapped[EventType] = mapped_column(
        Enum(EventType, name="event_type_enum"), nullable=False
    )
    status: Mapped[EventStatus] = mapped_column(
        Enum(EventStatus, name="event_status_enum"),
        default=EventStatus.DRAFT,
        nullable=False,
    )

    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    timezone: Mapped[str] = mapped_column(
        String(64), default="America/Sao_Paulo", nullable=False
    )

    location: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    virtual_link: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    is_public: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    max_attendees: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    requires_approval: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )

    access_type: Mapped[EventAccessType] = mapped_column(
        Enum(EventAccessType, name="event_access_type_enum"),
        default=EventAccessType.FREE,
        nullable=False,
    )
    price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    free_tiers: Mapped[list[str]] = mapped_column(JSON, default=list)
    mode: Mapped[EventMode] = mapped_column(
        Enum(EventMode, name="event_mode_enum"),
        default=EventMode.ONLINE,
        nullable=False,
    )
    tags: Mapped[list[str]] = mapped_column(JSON, default=list)
    # "metadata" is reserved on declarative classes
    extra_metadata: Mapped[Optional[dict[str, Any]]] = mapped_column(
        "metadata", JSON, nullable=True
    )

    creator_id: Mapped[str] = mapped_column(
        ForeignKey("calendar_users.id"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    creator: Mapped["User"] = relationship(back_populates="events")
    recurrence_rules: Mapped[list["RecurrenceRule"]] = relationship(
        back_populates="event",
        cascade="all, delete-orphan",
        order_by="RecurrenceRule.created_at",
    )
    registrations: Mapped[list["EventRegistration"]] = relationship(
        back_populates="event", cascade="all, delete-orphan"
    )


class EventRegistration(Base):
    __tablename__ = "calendar_event_registrations"
    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_registration_event_user"),
        Index("ix_registration_user", "user_id"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    event_id: Mapped[str] = mapped_column(
        ForeignKey("calendar_events.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(
        ForeignKey("calendar_users.id"), nullable=False
    )
    status: Mapped[RegistrationStatus] = mapped_column(
        Enum(RegistrationStatus, name="registration_status_enum"),
        default=RegistrationStatus.REGISTERED,
        nullable=False,
    )
    registered_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    event: Mapped["Event"] = relationship(back_populates="registrations")


class RecurrenceRule(Base):
    """
    Stored recurrence pattern for a base event.

    frequency is kept as plain text so that rows written by older
    clients with an unknown value can still be loaded and skipped.
    """

    __tablename__ = "calendar_recurrence_rules"
    __table_args__ = (
        CheckConstraint("interval >= 1", name="ck_rule_interval_positive"),
        CheckConstraint(
            "NOT (count IS NOT NULL AND until IS NOT NULL)",
            name="ck_rule_count_xor_until",
        ),
        Index("ix_rule_event", "event_id"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    event_id: Mapped[str] = mapped_column(
        ForeignKey("calendar_events.id", ondelete="CASCADE"), nullable=False
    )
    frequency: Mapped[str] = mapped_column(String(20), nullable=False)
    interval: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    until: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    by_weekday: Mapped[Optional[list[int]]] = mapped_column(JSON, nullable=True)
    by_month_day: Mapped[Optional[list[int]]] = mapped_column(JSON, nullable=True)
    by_month: Mapped[Optional[list[int]]] = mapped_column(JSON, nullable=True)
    by_set_pos: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    lunar_phase: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    exceptions: Mapped[Optional[list[str]]] = mapped_column(JSON, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    event: Mapped["Event"] = relationship(back_populates="recurrence_rules")


class CalendarIntegration(Base):
    """A user's link to a remote calendar provider account."""

    __tablename__ = "calendar_integrations"
    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "provider",
            "external_account_id",
            name="uq_integration_user_provider_account",
        ),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(
        ForeignKey("calendar_users.id"), nullable=False
    )
    provider: Mapped[CalendarProvider] = mapped_column(
        Enum(CalendarProvider, name="calendar_provider_enum"), nullable=False
    )
    external_account_id: Mapped[str] = mapped_column(String(255), nullable=False)
    external_account_email: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True
    )
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    token_expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    sync_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    settings: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    last_sync_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    user: Mapped["User"] = relationship(back_populates="integrations")
    sync_events: Mapped[list["CalendarSyncEvent"]] = relationship(
        back_populates="integration", cascade="all, delete-orphan"
    )
    conflicts: Mapped[list["CalendarConflict"]] = relationship(
        back_populates="integration", cascade="all, delete-orphan"
    )


class CalendarSyncEvent(Base):
    """
    Mapping between a local event and a remote event id, plus a log of
    failed export attempts (external_id is NULL on those rows).
    """

    __tablename__ = "calendar_sync_events"
    __table_args__ = (
        UniqueConstraint(
            "integration_id", "external_id", name="uq_sync_event_integration_external"
        ),
        Index("ix_sync_event_event", "integration_id", "event_id"),
        Index("ix_sync_event_created", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    integration_id: Mapped[str] = mapped_column(
        ForeignKey("calendar_integrations.id", ondelete="CASCADE"), nullable=False
    )
    event_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("calendar_events.id", ondelete="SET NULL"), nullable=True
    )
    external_id: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    operation: Mapped[SyncOperation] = mapped_column(
        Enum(SyncOperation, name="sync_operation_enum"), nullable=False
    )
    direction: Mapped[SyncDirection] = mapped_column(
        Enum(SyncDirection, name="sync_direction_enum"), nullable=False
    )
    status: Mapped[SyncStatus] = mapped_column(
        Enum(SyncStatus, name="sync_status_enum"),
        default=SyncStatus.PENDING,
        nullable=False,
    )
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    integration: Mapped["CalendarIntegration"] = relationship(
        back_populates="sync_events"
    )


class CalendarConflict(Base):
    """Local and remote copies of a mapped event disagree; awaits a human."""

    __tablename__ = "calendar_conflicts"
    __table_args__ = (Index("ix_conflict_integration", "integration_id"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    integration_id: Mapped[str] = mapped_column(
        ForeignKey("calendar_integrations.id", ondelete="CASCADE"), nullable=False
    )
    event_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("calendar_events.id", ondelete="SET NULL"), nullable=True
    )
    external_id: Mapped[str] = mapped_column(String(1024), nullable=False)
    conflict_type: Mapped[ConflictType] = mapped_column(
        Enum(ConflictType, name="conflict_type_enum"),
        default=ConflictType.DATA_MISMATCH,
        nullable=False,
    )
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    local_data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    external_data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    resolution: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    integration: Mapped["CalendarIntegration"] = relationship(
        back_populates="conflicts"
    )
