"""
Pydantic request schemas for the calendar service.

Bodies arrive in camelCase; models validate shape and field ranges, and
``validate_event_rules`` applies the cross-field rules that depend on the
current time.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Literal, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    AnyHttpUrl,
    field_validator,
)
from pydantic.alias_generators import to_camel

from .schema import (
    EventAccessType,
    EventMode,
    EventStatus,
    EventType,
    CalendarProvider,
)
from ..core.errors import InvalidFieldError, ValidationError
from ..core.recurrence import RecurrencePattern
from ..core.utils import ensure_utc


class _RequestModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


# ============================================================================
# EVENTS
# ============================================================================


class EventCreate(_RequestModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    type: EventType
    status: EventStatus = EventStatus.DRAFT
    start_date: datetime
    end_date: datetime
    timezone: str = "America/Sao_Paulo"
    location: Optional[str] = None
    virtual_link: Optional[AnyHttpUrl] = None
    max_attendees: Optional[int] = Field(None, gt=0)
    is_public: bool = True
    requires_approval: bool = False
    access_type: EventAccessType = EventAccessType.FREE
    price: Optional[Decimal] = Field(None, ge=0)
    free_tiers: Optional[list[str]] = None
    mode: EventMode = EventMode.ONLINE
    tags: list[str] = Field(default_factory=list)
    metadata: Optional[dict[str, Any]] = None
    recurrence: Optional[RecurrencePattern] = None

    @field_validator("start_date", "end_date")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @field_validator("status")
    @classmethod
    def _not_cancelled(cls, value: EventStatus) -> EventStatus:
        if value == EventStatus.CANCELLED:
            raise ValueError("New events cannot be cancelled")
        return value


class EventUpdate(_RequestModel):
    """Partial update; only fields present in the body are applied."""

    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    type: Optional[EventType] = None
    status: Optional[EventStatus] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    timezone: Optional[str] = None
    location: Optional[str] = None
    virtual_link: Optional[AnyHttpUrl] = None
    max_attendees: Optional[int] = Field(None, gt=0)
    is_public: Optional[bool] = None
    requires_approval: Optional[bool] = None
    access_type: Optional[EventAccessType] = None
    price: Optional[Decimal] = Field(None, ge=0)
    free_tiers: Optional[list[str]] = None
    mode: Optional[EventMode] = None
    tags: Optional[list[str]] = None
    metadata: Optional[dict[str, Any]] = None

    @field_validator("start_date", "end_date")
    @classmethod
    def _as_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value)


def validate_event_rules(
    *,
    start_date: datetime,
    end_date: datetime,
    now: Optional[datetime],
    access_type: EventAccessType,
    price: Optional[Decimal],
    free_tiers: Optional[list[str]],
    mode: EventMode,
    location: Optional[str],
    virtual_link: Optional[str],
) -> None:
    """
    Cross-field rules for an event's final state.

    ``now`` is None when the start date is not being changed, which skips
    the start-in-the-future rule.

    Raises:
        ValidationError / InvalidFieldError
    """
    if start_date >= end_date:
        raise ValidationError("Start date must be before end date", field="startDate")
    if now is not None and start_date <= now:
        raise ValidationError("Start date must be in the future", field="startDate")
    if access_type == EventAccessType.PAID and (price is None or price <= 0):
        raise InvalidFieldError("price", "Paid events require a price greater than 0")
    if access_type == EventAccessType.TIER and not free_tiers:
        raise InvalidFieldError(
            "freeTiers", "Tier-gated events require at least one tier"
        )
    if mode == EventMode.IN_PERSON and not location:
        raise InvalidFieldError("location", "In-person events require a location")
    if mode == EventMode.ONLINE and not virtual_link:
        raise InvalidFieldError("virtualLink", "Online events require a virtual link")


# ============================================================================
# SYNC
# ============================================================================


class SyncRequest(_RequestModel):
    integration_id: str = Field(..., min_length=1)
    direction: Literal["import", "export", "bidirectional"] = "bidirectional"
    event_ids: Optional[list[str]] = None


# ============================================================================
# INTEGRATIONS
# ============================================================================


class IntegrationCreate(_RequestModel):
    provider: CalendarProvider = CalendarProvider.GOOGLE
    external_account_id: str = Field(..., min_length=1)
    external_account_email: Optional[str] = None
    access_token: str = Field(..., min_length=1)
    refresh_token: Optional[str] = None
    token_expires_at: Optional[datetime] = None
    settings: dict[str, Any] = Field(default_factory=dict)

    @field_validator("token_expires_at")
    @classmethod
    def _as_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value)


class IntegrationUpdate(_RequestModel):
    sync_enabled: Optional[bool] = None
    settings: Optional[dict[str, Any]] = None
