"""
Shared pytest fixtures for all tests.

Provides a temporary SQLite database, sessions, an in-memory stand-in for
the Google Calendar / OAuth endpoints, and an ASGI client for the app.
"""

import json
import os
import tempfile
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qsl

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from hekate_platform.api.main import create_app
from hekate_platform.db.session import SessionManager, create_engine_from_url
from hekate_services.calendar.database import (
    Base,
    CalendarProvider,
    EventMode,
    EventStatus,
    EventType,
    create_event,
    get_or_create_user,
    upsert_integration,
)
from hekate_services.calendar.sync import GoogleCalendarClient, GoogleConfig


NOW = datetime(2024, 6, 1, 9, 0, tzinfo=timezone.utc)
USER_ALICE = "user-alice"
USER_BOB = "user-bob"
OAUTH_SECRET = "test-oauth-state-secret-0123456789abcdef"
EVENTS_PREFIX = "/calendar/v3/calendars/primary/events"


class FakeGoogleCalendar:
    """
    Minimal Google Calendar + OAuth server for httpx.MockTransport.

    Remote events live in ``events`` keyed by id. Flip ``fail_list``,
    ``fail_titles`` or ``token_status`` to simulate remote failures.
    """

    def __init__(self):
        self.events: dict[str, dict] = {}
        self.fail_list = False
        self.fail_titles: set[str] = set()
        self.token_status = 200
        self.token_requests: list[dict] = []
        self.auth_headers: list[str] = []
        self._next_id = 1

    def add_remote_event(self, summary, start, end, **extra):
        event_id = f"remote-{self._next_id}"
        self._next_id += 1
        self.events[event_id] = {
            "id": event_id,
            "summary": summary,
            "start": {"dateTime": start.strftime("%Y-%m-%dT%H:%M:%SZ"), "timeZone": "UTC"},
            "end": {"dateTime": end.strftime("%Y-%m-%dT%H:%M:%SZ"), "timeZone": "UTC"},
            **extra,
        }
        return event_id

    def handler(self, request: httpx.Request) -> httpx.Response:
        host = request.url.host
        if host == "oauth2.googleapis.com":
            self.token_requests.append(dict(parse_qsl(request.content.decode())))
            if self.token_status != 200:
                return httpx.Response(self.token_status, json={"error": "invalid_grant"})
            return httpx.Response(
                200,
                json={
                    "access_token": "fresh-access-token",
                    "expires_in": 3600,
                    "refresh_token": "fresh-refresh-token",
                },
            )
        if host == "openidconnect.googleapis.com":
            return httpx.Response(
                200, json={"sub": "google-account-1", "email": "alice@gmail.com"}
            )

        self.auth_headers.append(request.headers.get("Authorization", ""))
        path = request.url.path
        if request.method == "GET" and path == EVENTS_PREFIX:
            if self.fail_list:
                return httpx.Response(500, json={"error": {"message": "backend down"}})
            return httpx.Response(200, json={"items": list(self.events.values())})

        if request.method == "POST" and path == EVENTS_PREFIX:
            body = json.loads(request.content)
            if body.get("summary") in self.fail_titles:
                return httpx.Response(500, json={"error": {"message": "insert failed"}})
            event_id = f"remote-{self._next_id}"
            self._next_id += 1
            self.events[event_id] = {**body, "id": event_id}
            return httpx.Response(200, json=self.events[event_id])

        if request.method == "PUT" and path.startswith(EVENTS_PREFIX + "/"):
            event_id = path.rsplit("/", 1)[1]
            if event_id not in self.events:
                return httpx.Response(404, json={"error": {"message": "Not Found"}})
            body = json.loads(request.content)
            self.events[event_id] = {**body, "id": event_id}
            return httpx.Response(200, json=self.events[event_id])

        return httpx.Response(404, json={"error": {"message": "Not Found"}})


@pytest.fixture
def db_engine():
    """Engine for a temporary SQLite database with all tables created."""
    db_fd, db_path = tempfile.mkstemp(suffix=".db")
    engine = create_engine_from_url(f"sqlite:///{db_path}")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()
    os.close(db_fd)
    os.unlink(db_path)


@pytest.fixture
def session_manager(db_engine):
    return SessionManager(db_engine)


@pytest.fixture
def session(session_manager):
    session = session_manager.get_session()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def fake_google():
    return FakeGoogleCalendar()


@pytest.fixture
def google_config():
    return GoogleConfig(
        client_id="client-id",
        client_secret="client-secret",
        redirect_uri="http://localhost:8000/api/calendar/auth/google/callback",
    )


@pytest_asyncio.fixture
async def google_client(fake_google, google_config):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(fake_google.handler))
    yield GoogleCalendarClient(http_client, google_config)
    await http_client.aclose()


@pytest.fixture
def app(db_engine, google_client, monkeypatch):
    monkeypatch.setenv("ENVIRONMENT", "development")
    application = create_app(
        engine=db_engine, google_client=google_client, clock=lambda: NOW
    )
    application.state.oauth_state_secret = OAUTH_SECRET
    return application


@pytest_asyncio.fixture
async def client(app):
    """AsyncClient acting as Alice."""
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://testserver/api",
        headers={"X-User-Id": USER_ALICE},
    ) as c:
        yield c


@pytest_asyncio.fixture
async def client_bob(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://testserver/api",
        headers={"X-User-Id": USER_BOB},
    ) as c:
        yield c


@pytest_asyncio.fixture
async def anonymous_client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver/api") as c:
        yield c


def make_event(session, creator_id=USER_ALICE, title="Weekly sync", start=None, **fields):
    """Persist a published online event for ``creator_id``."""
    get_or_create_user(session, creator_id)
    start = start or NOW + timedelta(days=1)
    fields.setdefault("status", EventStatus.PUBLISHED)
    fields.setdefault("mode", EventMode.ONLINE)
    fields.setdefault("virtual_link", "https://meet.example.com/room")
    return create_event(
        session,
        creator_id=creator_id,
        title=title,
        type=fields.pop("type", EventType.MEETING),
        start_date=start,
        end_date=fields.pop("end", start + timedelta(hours=1)),
        **fields,
    )


def make_integration(session, user_id=USER_ALICE, expires_at=None, refresh_token="refresh-1"):
    get_or_create_user(session, user_id)
    integration, _ = upsert_integration(
        session,
        user_id=user_id,
        provider=CalendarProvider.GOOGLE,
        external_account_id=f"google-{user_id}",
        access_token="access-1",
        refresh_token=refresh_token,
        token_expires_at=expires_at or NOW + timedelta(hours=1),
        settings={"calendarId": "primary"},
    )
    return integration
