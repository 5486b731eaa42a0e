"""
Two-way reconciliation between local events and a Google calendar.

One ``CalendarReconciler.sync`` call is one sync run:

1. refresh the access token if it has expired (failure aborts the run)
2. import: remote events in [now - 30d, now + 90d] become local events,
   update matching mapped events, or raise a conflict when title/start/end
   disagree
3. export: the user's events starting at or after now - 7d are inserted
   into or updated on the remote calendar
4. stamp ``last_sync_at``

Per-event failures never abort a phase; each one rolls back its own
savepoint and is reported as a message in the summary.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Literal, Optional, Sequence

from sqlalchemy.orm import Session

from ..core.errors import CalendarAPIError, MalformedRemoteEventError, TokenRefreshError
from ..core.utils import ensure_utc
from ..database.schema import (
    CalendarIntegration,
    Event,
    EventStatus,
    EventType,
    SyncDirection,
    SyncStatus,
)
from ..database import operations as ops
from .google_client import GoogleCalendarClient
from .transformers import conflict_snapshot, event_to_google, google_to_event_fields

logger = logging.getLogger(__name__)


IMPORT_LOOKBACK = timedelta(days=30)
IMPORT_LOOKAHEAD = timedelta(days=90)
EXPORT_LOOKBACK = timedelta(days=7)
DEFAULT_CALENDAR_ID = "primary"

Direction = Literal["import", "export", "bidirectional"]


@dataclass
class SyncSummary:
    imported: int = 0
    exported: int = 0
    conflicts: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "imported": self.imported,
            "exported": self.exported,
            "conflicts": self.conflicts,
            "errors": len(self.errors),
        }


class CalendarReconciler:
    def __init__(self, session: Session, client: GoogleCalendarClient, now: datetime):
        self.session = session
        self.client = client
        self.now = ensure_utc(now)

    async def sync(
        self,
        integration: CalendarIntegration,
        direction: Direction = "bidirectional",
        event_ids: Optional[Sequence[str]] = None,
    ) -> SyncSummary:
        """
        Run one sync for ``integration``.

        Raises:
            TokenRefreshError: the expired access token could not be renewed;
                nothing else is attempted and last_sync_at is left alone
        """
        if direction not in ("import", "export", "bidirectional"):
            raise ValueError(f"Unknown sync direction: {direction}")

        access_token = await self._ensure_access_token(integration)
        calendar_id = (integration.settings or {}).get("calendarId") or DEFAULT_CALENDAR_ID
        summary = SyncSummary()

        if direction in ("import", "bidirectional"):
            await self._import(integration, access_token, calendar_id, summary)
        if direction in ("export", "bidirectional"):
            await self._export(integration, access_token, calendar_id, event_ids, summary)

        integration.last_sync_at = self.now
        self.session.flush()

        logger.info(
            "Sync %s for integration %s: imported=%d exported=%d conflicts=%d errors=%d",
            direction,
            integration.id,
            summary.imported,
            summary.exported,
            summary.conflicts,
            len(summary.errors),
        )
        return summary

    # ------------------------------------------------------------------
    # Token precondition
    # ------------------------------------------------------------------

    async def _ensure_access_token(self, integration: CalendarIntegration) -> str:
        expires_at = ensure_utc(integration.token_expires_at)
        if expires_at is None or self.now < expires_at:
            return integration.access_token

        if not integration.refresh_token:
            logger.error("Integration %s has an expired token and no refresh token", integration.id)
            raise TokenRefreshError("Access token expired and no refresh token is stored")

        try:
            grant = await self.client.refresh_access_token(integration.refresh_token, self.now)
        except TokenRefreshError:
            logger.error("Token refresh failed for integration %s", integration.id)
            raise

        integration.access_token = grant.access_token
        integration.token_expires_at = grant.expires_at
        if grant.refresh_token:
            integration.refresh_token = grant.refresh_token
        self.session.flush()
        return grant.access_token

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------

    async def _import(
        self,
        integration: CalendarIntegration,
        access_token: str,
        calendar_id: str,
        summary: SyncSummary,
    ) -> None:
        try:
            remote_events = await self.client.list_events(
                access_token,
                calendar_id,
                self.now - IMPORT_LOOKBACK,
                self.now + IMPORT_LOOKAHEAD,
            )
        except CalendarAPIError:
            logger.error(
                "Failed to list remote events for integration %s",
                integration.id,
                exc_info=True,
            )
            summary.errors.append("Failed to fetch events from Google Calendar")
            return

        for payload in remote_events:
            if not payload.get("id") or not payload.get("start"):
                continue
            try:
                with self.session.begin_nested():
                    conflicted = self._import_one(integration, payload)
            except Exception:
                logger.warning(
                    "Failed to import remote event %s", payload.get("id"), exc_info=True
                )
                summary.errors.append(
                    f"Failed to import event: {payload.get('summary')}"
                )
                continue
            if conflicted:
                summary.conflicts += 1
            else:
                summary.imported += 1

    def _import_one(
        self,
        integration: CalendarIntegration,
        payload: dict[str, Any],
    ) -> bool:
        """Apply one remote event. Returns True when it produced a conflict."""
        external_id = payload["id"]
        fields = google_to_event_fields(payload)

        mapping = ops.find_mapping(self.session, integration.id, external_id)
        local = self.session.get(Event, mapping.event_id) if mapping and mapping.event_id else None

        if local is None:
            event = ops.create_event(
                self.session,
                creator_id=integration.user_id,
                type=EventType.MEETING,
                status=EventStatus.PUBLISHED,
                **fields,
            )
            if mapping is not None:
                # the previous local copy was deleted; rebind the remote id
                mapping.event_id = event.id
                mapping.synced_at = self.now
                mapping.status = SyncStatus.SYNCED
            else:
                mapping = ops.record_mapping(
                    self.session,
                    integration.id,
                    event.id,
                    external_id,
                    SyncDirection.IMPORT,
                    self.now,
                )
                if mapping.event_id != event.id:
                    # a concurrent run imported it first
                    self.session.delete(event)
                    self.session.flush()
            return False

        same = (
            local.title == fields["title"]
            and ensure_utc(local.start_date) == fields["start_date"]
            and ensure_utc(local.end_date) == fields["end_date"]
        )
        if not same:
            ops.create_conflict(
                self.session,
                integration_id=integration.id,
                event_id=local.id,
                external_id=external_id,
                local_data=conflict_snapshot(local.title, local.start_date, local.end_date),
                external_data=conflict_snapshot(
                    fields["title"], fields["start_date"], fields["end_date"]
                ),
                now=self.now,
                description="Event data mismatch detected during sync",
            )
            return True

        ops.update_event(
            self.session,
            local,
            {
                "description": fields["description"],
                "location": fields["location"],
                "timezone": fields["timezone"],
            },
        )
        mapping.synced_at = self.now
        mapping.status = SyncStatus.SYNCED
        return False

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    async def _export(
        self,
        integration: CalendarIntegration,
        access_token: str,
        calendar_id: str,
        event_ids: Optional[Sequence[str]],
        summary: SyncSummary,
    ) -> None:
        events = ops.list_exportable_events(
            self.session,
            integration.user_id,
            self.now - EXPORT_LOOKBACK,
            event_ids,
        )

        for event in events:
            title = event.title
            try:
                with self.session.begin_nested():
                    await self._export_one(integration, access_token, calendar_id, event)
                summary.exported += 1
            except Exception as e:
                logger.warning("Failed to export event %s", event.id, exc_info=True)
                message = f"Failed to export event: {title}"
                summary.errors.append(message)
                ops.record_failed_export(
                    self.session,
                    integration.id,
                    event.id,
                    f"{message} ({e})",
                    self.now,
                )

    async def _export_one(
        self,
        integration: CalendarIntegration,
        access_token: str,
        calendar_id: str,
        event: Event,
    ) -> None:
        body = event_to_google(event)
        mapping = ops.find_mapping_for_event(self.session, integration.id, event.id)

        if mapping is not None:
            await self.client.update_event(
                access_token, calendar_id, mapping.external_id, body
            )
            mapping.synced_at = self.now
            mapping.status = SyncStatus.SYNCED
            return

        created = await self.client.insert_event(access_token, calendar_id, body)
        external_id = created.get("id")
        if not external_id:
            raise MalformedRemoteEventError("Remote calendar returned an event without id")
        ops.record_mapping(
            self.session,
            integration.id,
            event.id,
            external_id,
            SyncDirection.EXPORT,
            self.now,
        )
