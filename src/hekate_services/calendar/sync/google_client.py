"""
Google Calendar v3 / OAuth2 client.

Thin async wrapper over httpx. Every non-2xx answer from the calendar API
becomes a RemoteCalendarError; failures at the token endpoint become
TokenRefreshError.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Mapping, Optional
from urllib.parse import quote, urlencode

import httpx

from ..core.errors import RemoteCalendarError, TokenRefreshError
from ..core.utils import format_rfc3339

logger = logging.getLogger(__name__)


GOOGLE_CALENDAR_SCOPES = (
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/calendar.events",
    "openid",
    "email",
)
MAX_PAGE_SIZE = 250


@dataclass(frozen=True)
class GoogleConfig:
    client_id: str
    client_secret: str
    redirect_uri: str
    token_url: str = "https://oauth2.googleapis.com/token"
    auth_url: str = "https://accounts.google.com/o/oauth2/v2/auth"
    api_url: str = "https://www.googleapis.com/calendar/v3"
    userinfo_url: str = "https://openidconnect.googleapis.com/v1/userinfo"
    timeout: float = 20.0

    @classmethod
    def from_environ(cls, environ: Mapping[str, str]) -> "GoogleConfig":
        defaults = cls("", "", "")
        return cls(
            client_id=environ.get("GOOGLE_CLIENT_ID", ""),
            client_secret=environ.get("GOOGLE_CLIENT_SECRET", ""),
            redirect_uri=environ.get("GOOGLE_REDIRECT_URI", ""),
            token_url=environ.get("GOOGLE_TOKEN_URL", defaults.token_url),
            auth_url=environ.get("GOOGLE_AUTH_URL", defaults.auth_url),
            api_url=environ.get("GOOGLE_CALENDAR_API_URL", defaults.api_url),
            userinfo_url=environ.get("GOOGLE_USERINFO_URL", defaults.userinfo_url),
            timeout=float(environ.get("GOOGLE_HTTP_TIMEOUT", defaults.timeout)),
        )


@dataclass(frozen=True)
class TokenGrant:
    access_token: str
    expires_at: Optional[datetime]
    refresh_token: Optional[str] = None


class GoogleCalendarClient:
    def __init__(self, http_client: httpx.AsyncClient, config: GoogleConfig):
        self.http = http_client
        self.config = config

    # ------------------------------------------------------------------
    # OAuth
    # ------------------------------------------------------------------

    def authorization_url(self, state: str) -> str:
        """Consent screen URL; offline access so a refresh token is issued."""
        params = {
            "client_id": self.config.client_id,
            "redirect_uri": self.config.redirect_uri,
            "response_type": "code",
            "scope": " ".join(GOOGLE_CALENDAR_SCOPES),
            "access_type": "offline",
            "prompt": "consent",
            "state": state,
        }
        return f"{self.config.auth_url}?{urlencode(params)}"

    async def _token_request(self, data: dict[str, str], now: datetime) -> TokenGrant:
        try:
            response = await self.http.post(self.config.token_url, data=data)
        except httpx.HTTPError as e:
            raise TokenRefreshError(f"Token endpoint unreachable: {e}")

        if response.status_code != 200:
            logger.warning(
                "Token endpoint rejected %s grant: %s %s",
                data.get("grant_type"),
                response.status_code,
                response.text[:200],
            )
            raise TokenRefreshError(
                f"Token endpoint returned {response.status_code}",
                remote_status=response.status_code,
            )

        payload = response.json()
        access_token = payload.get("access_token")
        if not access_token:
            raise TokenRefreshError("Token endpoint returned no access token")

        expires_in = payload.get("expires_in")
        expires_at = now + timedelta(seconds=int(expires_in)) if expires_in else None
        return TokenGrant(
            access_token=access_token,
            expires_at=expires_at,
            refresh_token=payload.get("refresh_token"),
        )

    async def refresh_access_token(self, refresh_token: str, now: datetime) -> TokenGrant:
        """
        Exchange a refresh token for a new access token.

        Raises:
            TokenRefreshError: grant rejected or endpoint unreachable
        """
        return await self._token_request(
            {
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "client_id": self.config.client_id,
                "client_secret": self.config.client_secret,
            },
            now,
        )

    async def exchange_code(self, code: str, now: datetime) -> TokenGrant:
        return await self._token_request(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.config.redirect_uri,
                "client_id": self.config.client_id,
                "client_secret": self.config.client_secret,
            },
            now,
        )

    async def get_account(self, access_token: str) -> dict[str, Any]:
        """OpenID userinfo for the connected account ({"sub", "email", ...})."""
        return await self._request(
            "GET", self.config.userinfo_url, access_token, absolute=True
        )

    # ------------------------------------------------------------------
    # Calendar API
    # ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        access_token: str,
        *,
        params: Optional[dict[str, Any]] = None,
        json: Optional[dict[str, Any]] = None,
        absolute: bool = False,
    ) -> dict[str, Any]:
        url = path if absolute else f"{self.config.api_url}{path}"
        try:
            response = await self.http.request(
                method,
                url,
                params=params,
                json=json,
                headers={"Authorization": f"Bearer {access_token}"},
            )
        except httpx.HTTPError as e:
            raise RemoteCalendarError(f"Google Calendar unreachable: {e}")

        if response.status_code >= 400:
            message = response.reason_phrase or "error"
            try:
                message = response.json()["error"]["message"]
            except (ValueError, KeyError, TypeError):
                pass
            raise RemoteCalendarError(
                f"Google Calendar API error {response.status_code}: {message}",
                remote_status=response.status_code,
            )
        if not response.content:
            return {}
        return response.json()

    @staticmethod
    def _events_path(calendar_id: str, event_id: Optional[str] = None) -> str:
        path = f"/calendars/{quote(calendar_id, safe='')}/events"
        if event_id is not None:
            path += f"/{quote(event_id, safe='')}"
        return path

    async def list_events(
        self,
        access_token: str,
        calendar_id: str,
        time_min: datetime,
        time_max: datetime,
    ) -> list[dict[str, Any]]:
        """All single (expanded) events in [time_min, time_max], following pagination."""
        params: dict[str, Any] = {
            "timeMin": format_rfc3339(time_min),
            "timeMax": format_rfc3339(time_max),
            "singleEvents": "true",
            "orderBy": "startTime",
            "maxResults": MAX_PAGE_SIZE,
        }
        items: list[dict[str, Any]] = []
        while True:
            page = await self._request(
                "GET", self._events_path(calendar_id), access_token, params=params
            )
            items.extend(page.get("items") or [])
            next_token = page.get("nextPageToken")
            if not next_token:
                return items
            params = {**params, "pageToken": next_token}

    async def insert_event(
        self, access_token: str, calendar_id: str, body: dict[str, Any]
    ) -> dict[str, Any]:
        return await self._request(
            "POST", self._events_path(calendar_id), access_token, json=body
        )

    async def update_event(
        self,
        access_token: str,
        calendar_id: str,
        event_id: str,
        body: dict[str, Any],
    ) -> dict[str, Any]:
        return await self._request(
            "PUT", self._events_path(calendar_id, event_id), access_token, json=body
        )
