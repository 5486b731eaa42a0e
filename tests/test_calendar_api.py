"""Integration tests for the calendar HTTP API."""

from datetime import timedelta
from urllib.parse import parse_qs, urlparse

import pytest
from httpx import AsyncClient

from conftest import NOW, USER_ALICE, USER_BOB, make_event
from hekate_services.calendar.core.utils import generate_id
from hekate_services.calendar.database import (
    CalendarIntegration,
    EventRegistration,
    EventStatus,
    EventType,
    RegistrationStatus,
    get_or_create_user,
)


def event_body(**overrides):
    body = {
        "title": "Python workshop",
        "type": "WORKSHOP",
        "status": "PUBLISHED",
        "startDate": "2024-06-10T10:00:00Z",
        "endDate": "2024-06-10T12:00:00Z",
        "virtualLink": "https://meet.example.com/python",
    }
    body.update(overrides)
    return body


def error_of(response):
    data = response.json()
    assert "error" in data
    return data["error"]


@pytest.mark.asyncio
class TestHealthAndAuth:
    async def test_health_needs_no_identity(self, anonymous_client: AsyncClient):
        response = await anonymous_client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    async def test_missing_identity_is_rejected(self, anonymous_client: AsyncClient):
        response = await anonymous_client.get("/calendar")
        assert response.status_code == 401
        assert error_of(response)["errors"][0]["reason"] == "authError"

    @pytest.mark.parametrize(
        "method,path",
        [
            ("PUT", "/events"),
            ("POST", "/events/some-id"),
            ("DELETE", "/calendar/sync/google"),
            ("PUT", "/calendar/integrations/some-id"),
        ],
    )
    async def test_unsupported_method(self, client: AsyncClient, method, path):
        response = await client.request(method, path, json={})
        assert response.status_code == 405
        error = error_of(response)
        assert error["errors"][0]["reason"] == "methodNotAllowed"
        assert error["message"] == f"Method {method} not allowed"


@pytest.mark.asyncio
class TestEventsInsert:
    async def test_create_recurring_event(self, client: AsyncClient):
        response = await client.post(
            "/events", json=event_body(recurrence={"freq": "WEEKLY", "count": 4})
        )
        assert response.status_code == 201
        data = response.json()
        assert data["title"] == "Python workshop"
        assert data["type"] == "WORKSHOP"
        assert data["status"] == "PUBLISHED"
        assert data["creatorId"] == USER_ALICE
        assert data["startDate"] == "2024-06-10T10:00:00Z"
        assert len(data["recurrence"]) == 1
        rule = data["recurrence"][0]
        assert rule["freq"] == "WEEKLY"
        assert rule["count"] == 4
        assert rule["description"] == "Weekly, 4 times"
        assert rule["rrule"] == "RRULE:FREQ=WEEKLY;INTERVAL=1;COUNT=4"

    async def test_defaults_to_draft(self, client: AsyncClient):
        body = event_body()
        del body["status"]
        response = await client.post("/events", json=body)
        assert response.status_code == 201
        assert response.json()["status"] == "DRAFT"

    async def test_in_person_paid_event(self, client: AsyncClient):
        response = await client.post(
            "/events",
            json=event_body(
                mode="IN_PERSON",
                location="Community hall",
                virtualLink=None,
                accessType="PAID",
                price=25,
                maxAttendees=40,
                tags=["python", "beginners"],
            ),
        )
        assert response.status_code == 201
        data = response.json()
        assert data["price"] == 25.0
        assert data["maxAttendees"] == 40
        assert data["tags"] == ["python", "beginners"]

    @pytest.mark.parametrize(
        "overrides,location,message",
        [
            (
                {"endDate": "2024-06-10T09:00:00Z"},
                "startDate",
                "Start date must be before end date",
            ),
            (
                {"startDate": "2024-05-01T10:00:00Z", "endDate": "2024-05-01T11:00:00Z"},
                "startDate",
                "Start date must be in the future",
            ),
            ({"accessType": "PAID"}, "price", None),
            ({"accessType": "TIER"}, "freeTiers", None),
            ({"mode": "IN_PERSON"}, "location", None),
            ({"virtualLink": None}, "virtualLink", None),
        ],
    )
    async def test_rejects_invalid_event(self, client: AsyncClient, overrides, location, message):
        response = await client.post("/events", json=event_body(**overrides))
        assert response.status_code == 400
        error = error_of(response)
        assert error["code"] == 400
        assert error["errors"][0]["location"] == location
        if message:
            assert error["message"] == message

    async def test_rejects_missing_title(self, client: AsyncClient):
        body = event_body()
        del body["title"]
        response = await client.post("/events", json=body)
        assert response.status_code == 400
        locations = [e.get("location") for e in error_of(response)["errors"]]
        assert "title" in locations

    async def test_rejects_invalid_recurrence(self, client: AsyncClient):
        response = await client.post(
            "/events",
            json=event_body(
                recurrence={"freq": "WEEKLY", "count": 2, "until": "2024-08-01T00:00:00Z"}
            ),
        )
        assert response.status_code == 400

    async def test_rejects_cancelled_status(self, client: AsyncClient):
        response = await client.post("/events", json=event_body(status="CANCELLED"))
        assert response.status_code == 400

    async def test_invalid_json(self, client: AsyncClient):
        response = await client.post(
            "/events", content=b"{not json", headers={"Content-Type": "application/json"}
        )
        assert response.status_code == 400
        assert error_of(response)["errors"][0]["reason"] == "parseError"


@pytest.mark.asyncio
class TestCalendarView:
    async def test_month_view_expands_recurrence(self, client: AsyncClient):
        created = await client.post(
            "/events", json=event_body(recurrence={"freq": "WEEKLY", "count": 4})
        )
        event_id = created.json()["id"]

        response = await client.get("/calendar", params={"view": "month", "date": "2024-06-15"})
        assert response.status_code == 200
        data = response.json()
        assert data["view"] == "month"
        assert data["dateRange"] == {
            "start": "2024-06-01T00:00:00Z",
            "end": "2024-06-30T23:59:59.999Z",
        }
        assert [e["start"] for e in data["events"]] == [
            "2024-06-10T10:00:00Z",
            "2024-06-17T10:00:00Z",
            "2024-06-24T10:00:00Z",
        ]
        first = data["events"][0]
        assert first["id"] == event_id
        assert first["occurrenceKey"]["index"] == 0
        assert first["isCreator"] is True
        assert first["isRecurring"] is True
        assert first["canRegister"] is True
        assert first["backgroundColor"] == "#D1FAE5"
        assert first["creator"]["id"] == USER_ALICE
        assert data["events"][1]["occurrenceKey"]["index"] == 1

    async def test_explicit_range_overrides_view(self, client: AsyncClient):
        await client.post("/events", json=event_body(recurrence={"freq": "DAILY"}))
        response = await client.get(
            "/calendar",
            params={
                "view": "month",
                "startDate": "2024-06-11T00:00:00Z",
                "endDate": "2024-06-13T23:59:59Z",
            },
        )
        assert response.status_code == 200
        assert len(response.json()["events"]) == 3

    async def test_visibility_and_filters(self, client: AsyncClient, session_manager):
        start = NOW + timedelta(days=3)
        with session_manager.with_session() as session:
            make_event(session, USER_ALICE, title="Alice public", start=start)
            make_event(session, USER_BOB, title="Bob private", start=start, is_public=False)
            make_event(session, USER_BOB, title="Bob public", start=start, type=EventType.WEBINAR)
            make_event(session, USER_BOB, title="Bob draft", start=start, status=EventStatus.DRAFT)

        response = await client.get("/calendar", params={"view": "week", "date": "2024-06-04"})
        titles = {e["title"] for e in response.json()["events"]}
        assert titles == {"Alice public", "Bob public"}

        response = await client.get(
            "/calendar", params={"view": "week", "date": "2024-06-04", "myEvents": "true"}
        )
        assert [e["title"] for e in response.json()["events"]] == ["Alice public"]

        response = await client.get(
            "/calendar", params={"view": "week", "date": "2024-06-04", "types": "WEBINAR"}
        )
        data = response.json()
        assert [e["title"] for e in data["events"]] == ["Bob public"]
        assert data["filters"]["types"] == ["WEBINAR"]

    async def test_registered_private_event_is_visible(self, client: AsyncClient, session_manager):
        with session_manager.with_session() as session:
            event = make_event(session, USER_BOB, title="Invite only", is_public=False)
            get_or_create_user(session, USER_ALICE)
            session.add(
                EventRegistration(
                    id=generate_id(),
                    event_id=event.id,
                    user_id=USER_ALICE,
                    status=RegistrationStatus.CONFIRMED,
                )
            )

        response = await client.get(
            "/calendar",
            params={"view": "week", "date": "2024-06-04", "myRegistrations": "true"},
        )
        events = response.json()["events"]
        assert [e["title"] for e in events] == ["Invite only"]
        assert events[0]["userRegistration"]["status"] == "CONFIRMED"
        assert events[0]["attendeeCount"] == 1
        assert events[0]["canRegister"] is False

    async def test_invalid_view(self, client: AsyncClient):
        response = await client.get("/calendar", params={"view": "year"})
        assert response.status_code == 400
        assert error_of(response)["errors"][0]["reason"] == "invalidParameter"

    async def test_invalid_type_filter(self, client: AsyncClient):
        response = await client.get("/calendar", params={"types": "PARTY"})
        assert response.status_code == 400


@pytest.mark.asyncio
class TestEventResource:
    async def test_get_and_occurrences(self, client: AsyncClient):
        created = await client.post(
            "/events", json=event_body(recurrence={"freq": "DAILY", "count": 3})
        )
        event_id = created.json()["id"]

        response = await client.get(f"/events/{event_id}")
        assert response.status_code == 200
        assert response.json()["recurrence"][0]["description"] == "Daily, 3 times"

        response = await client.get(f"/events/{event_id}/occurrences")
        assert response.status_code == 200
        occurrences = response.json()["occurrences"]
        assert [o["start"] for o in occurrences] == [
            "2024-06-10T10:00:00Z",
            "2024-06-11T10:00:00Z",
            "2024-06-12T10:00:00Z",
        ]

    async def test_get_missing_event(self, client: AsyncClient):
        response = await client.get("/events/does-not-exist")
        assert response.status_code == 404
        assert error_of(response)["errors"][0]["reason"] == "eventNotFound"

    async def test_patch_by_creator(self, client: AsyncClient):
        event_id = (await client.post("/events", json=event_body())).json()["id"]
        response = await client.patch(
            f"/events/{event_id}", json={"title": "Advanced Python", "tags": ["advanced"]}
        )
        assert response.status_code == 200
        assert response.json()["title"] == "Advanced Python"
        assert response.json()["tags"] == ["advanced"]

    async def test_patch_keeps_date_invariants(self, client: AsyncClient):
        event_id = (await client.post("/events", json=event_body())).json()["id"]
        response = await client.patch(
            f"/events/{event_id}", json={"endDate": "2024-06-10T08:00:00Z"}
        )
        assert response.status_code == 400
        assert error_of(response)["message"] == "Start date must be before end date"

        response = await client.patch(
            f"/events/{event_id}",
            json={"startDate": "2024-05-20T10:00:00Z", "endDate": "2024-05-20T11:00:00Z"},
        )
        assert response.status_code == 400
        assert error_of(response)["message"] == "Start date must be in the future"

    async def test_patch_by_other_user_is_forbidden(self, client: AsyncClient, client_bob: AsyncClient):
        event_id = (await client.post("/events", json=event_body())).json()["id"]
        response = await client_bob.patch(f"/events/{event_id}", json={"title": "Mine now"})
        assert response.status_code == 403

    async def test_delete_blocked_by_active_registrations(self, client: AsyncClient, session_manager):
        with session_manager.with_session() as session:
            event = make_event(session, USER_ALICE)
            get_or_create_user(session, USER_BOB)
            registration = EventRegistration(
                id=generate_id(),
                event_id=event.id,
                user_id=USER_BOB,
                status=RegistrationStatus.REGISTERED,
            )
            session.add(registration)

        response = await client.delete(f"/events/{event.id}")
        assert response.status_code == 409

        with session_manager.with_session() as session:
            session.get(EventRegistration, registration.id).status = RegistrationStatus.CANCELLED

        response = await client.delete(f"/events/{event.id}")
        assert response.status_code == 204
        response = await client.get(f"/events/{event.id}")
        assert response.status_code == 404

    async def test_delete_by_other_user_is_forbidden(self, client: AsyncClient, client_bob: AsyncClient):
        event_id = (await client.post("/events", json=event_body())).json()["id"]
        response = await client_bob.delete(f"/events/{event_id}")
        assert response.status_code == 403


@pytest.mark.asyncio
class TestEventVisibility:
    async def test_private_event_is_hidden_from_others(
        self, client: AsyncClient, client_bob: AsyncClient, session_manager
    ):
        with session_manager.with_session() as session:
            private = make_event(session, USER_ALICE, title="Private", is_public=False)
            make_event(session, USER_ALICE, title="Open")

        response = await client_bob.get(f"/events/{private.id}")
        assert response.status_code == 403
        assert error_of(response)["errors"][0]["reason"] == "forbidden"

        response = await client_bob.get(f"/events/{private.id}/occurrences")
        assert response.status_code == 403

        response = await client_bob.get("/events")
        assert [e["title"] for e in response.json()["events"]] == ["Open"]
        assert response.json()["pagination"]["total"] == 1

        response = await client.get(f"/events/{private.id}")
        assert response.status_code == 200
        response = await client.get("/events")
        assert {e["title"] for e in response.json()["events"]} == {"Private", "Open"}

    async def test_draft_is_visible_only_to_creator(
        self, client: AsyncClient, client_bob: AsyncClient, session_manager
    ):
        with session_manager.with_session() as session:
            draft = make_event(session, USER_ALICE, title="Draft", status=EventStatus.DRAFT)

        response = await client_bob.get(f"/events/{draft.id}")
        assert response.status_code == 403
        response = await client_bob.get("/events", params={"status": "DRAFT"})
        assert response.json()["events"] == []

        response = await client.get("/events", params={"status": "DRAFT"})
        assert [e["title"] for e in response.json()["events"]] == ["Draft"]

    async def test_registered_user_can_read_private_event(
        self, client_bob: AsyncClient, session_manager
    ):
        with session_manager.with_session() as session:
            private = make_event(session, USER_ALICE, title="Invite only", is_public=False)
            get_or_create_user(session, USER_BOB)
            session.add(
                EventRegistration(
                    id=generate_id(),
                    event_id=private.id,
                    user_id=USER_BOB,
                    status=RegistrationStatus.REGISTERED,
                )
            )

        response = await client_bob.get(f"/events/{private.id}")
        assert response.status_code == 200
        response = await client_bob.get(f"/events/{private.id}/occurrences")
        assert len(response.json()["occurrences"]) == 1
        response = await client_bob.get("/events")
        assert [e["title"] for e in response.json()["events"]] == ["Invite only"]


@pytest.mark.asyncio
class TestEventsList:
    async def test_pagination_and_filters(self, client: AsyncClient, session_manager):
        with session_manager.with_session() as session:
            for day in range(3):
                make_event(
                    session,
                    title=f"Meetup {day}",
                    start=NOW + timedelta(days=day + 1),
                    tags=["meetup"] if day else ["kickoff"],
                )

        response = await client.get("/events", params={"limit": 2})
        data = response.json()
        assert data["pagination"] == {"page": 1, "limit": 2, "total": 3, "pages": 2}
        assert [e["title"] for e in data["events"]] == ["Meetup 0", "Meetup 1"]

        response = await client.get("/events", params={"tags": "kickoff"})
        assert [e["title"] for e in response.json()["events"]] == ["Meetup 0"]

        response = await client.get("/events", params={"search": "meetup 2"})
        assert [e["title"] for e in response.json()["events"]] == ["Meetup 2"]

    async def test_invalid_page(self, client: AsyncClient):
        response = await client.get("/events", params={"page": "zero"})
        assert response.status_code == 400


@pytest.mark.asyncio
class TestIntegrations:
    async def test_connect_refresh_and_disconnect(self, client: AsyncClient, session_manager):
        body = {
            "externalAccountId": "google-123",
            "externalAccountEmail": "alice@gmail.com",
            "accessToken": "access-1",
            "refreshToken": "refresh-1",
            "tokenExpiresAt": "2024-06-01T10:00:00Z",
        }
        created = await client.post("/calendar/integrations", json=body)
        assert created.status_code == 201
        integration = created.json()
        assert integration["provider"] == "GOOGLE"
        assert integration["isActive"] is True
        assert "accessToken" not in integration
        assert "refreshToken" not in integration

        refreshed = await client.post(
            "/calendar/integrations", json={**body, "accessToken": "access-2"}
        )
        assert refreshed.status_code == 200
        assert refreshed.json()["id"] == integration["id"]

        listed = await client.get("/calendar/integrations", params={"includeStats": "true"})
        items = listed.json()["integrations"]
        assert len(items) == 1
        assert items[0]["stats"] == {
            "syncedEvents": 0,
            "failedEvents": 0,
            "pendingEvents": 0,
            "unresolvedConflicts": 0,
        }

        patched = await client.patch(
            f"/calendar/integrations/{integration['id']}",
            json={"syncEnabled": False, "settings": {"calendarId": "work"}},
        )
        assert patched.status_code == 200
        assert patched.json()["syncEnabled"] is False
        assert patched.json()["settings"]["calendarId"] == "work"

        deleted = await client.delete(f"/calendar/integrations/{integration['id']}")
        assert deleted.status_code == 200
        assert deleted.json()["integration"]["isActive"] is False

        with session_manager.with_session() as session:
            row = session.get(CalendarIntegration, integration["id"])
            assert row is not None
            assert row.is_active is False
            assert row.access_token == "access-2"

    async def test_other_users_integration_is_hidden(self, client: AsyncClient, client_bob: AsyncClient):
        created = await client.post(
            "/calendar/integrations",
            json={"externalAccountId": "google-123", "accessToken": "access-1"},
        )
        response = await client_bob.delete(f"/calendar/integrations/{created.json()['id']}")
        assert response.status_code == 404


@pytest.mark.asyncio
class TestGoogleSync:
    async def connect(self, client, **overrides):
        body = {
            "externalAccountId": "google-123",
            "accessToken": "access-1",
            "refreshToken": "refresh-1",
            "tokenExpiresAt": "2024-06-01T10:00:00Z",
            "settings": {"calendarId": "primary"},
        }
        body.update(overrides)
        return (await client.post("/calendar/integrations", json=body)).json()["id"]

    async def test_sync_and_status(self, client: AsyncClient, fake_google):
        integration_id = await self.connect(client)
        await client.post("/events", json=event_body())

        response = await client.post(
            "/calendar/sync/google", json={"integrationId": integration_id}
        )
        assert response.status_code == 200
        data = response.json()
        assert data == {
            "success": True,
            "summary": {"imported": 0, "exported": 1, "conflicts": 0, "errors": 0},
        }
        assert len(fake_google.events) == 1

        status = await client.get(
            "/calendar/sync/google", params={"integrationId": integration_id}
        )
        assert status.status_code == 200
        payload = status.json()
        assert payload["integration"]["lastSyncAt"] == "2024-06-01T09:00:00Z"
        assert len(payload["recentSyncs"]) == 1
        assert payload["recentSyncs"][0]["status"] == "SYNCED"
        assert payload["recentSyncs"][0]["direction"] == "EXPORT"
        assert payload["conflicts"] == []

    async def test_sync_reports_item_errors(self, client: AsyncClient, fake_google):
        integration_id = await self.connect(client)
        await client.post("/events", json=event_body())
        fake_google.fail_list = True

        response = await client.post(
            "/calendar/sync/google", json={"integrationId": integration_id}
        )
        assert response.status_code == 200
        assert response.json()["errors"] == ["Failed to fetch events from Google Calendar"]

    async def test_token_refresh_failure(self, client: AsyncClient, fake_google):
        integration_id = await self.connect(client, tokenExpiresAt="2024-06-01T08:00:00Z")
        fake_google.token_status = 401

        response = await client.post(
            "/calendar/sync/google", json={"integrationId": integration_id}
        )
        assert response.status_code == 502
        assert error_of(response)["errors"][0]["reason"] == "tokenRefreshFailed"

        status = await client.get(
            "/calendar/sync/google", params={"integrationId": integration_id}
        )
        assert status.json()["integration"]["lastSyncAt"] is None

    async def test_disabled_integration_is_refused(self, client: AsyncClient):
        integration_id = await self.connect(client)
        await client.delete(f"/calendar/integrations/{integration_id}")

        response = await client.post(
            "/calendar/sync/google", json={"integrationId": integration_id}
        )
        assert response.status_code == 400

    async def test_unknown_integration(self, client: AsyncClient):
        response = await client.post("/calendar/sync/google", json={"integrationId": "nope"})
        assert response.status_code == 404

    async def test_status_requires_integration_id(self, client: AsyncClient):
        response = await client.get("/calendar/sync/google")
        assert response.status_code == 400

    async def test_invalid_direction(self, client: AsyncClient):
        integration_id = await self.connect(client)
        response = await client.post(
            "/calendar/sync/google",
            json={"integrationId": integration_id, "direction": "sideways"},
        )
        assert response.status_code == 400


@pytest.mark.asyncio
class TestGoogleOAuth:
    async def test_connect_flow(self, client: AsyncClient, anonymous_client: AsyncClient, fake_google):
        response = await client.get("/calendar/auth/google")
        assert response.status_code == 200
        url = urlparse(response.json()["url"])
        query = parse_qs(url.query)
        assert url.netloc == "accounts.google.com"
        assert query["client_id"] == ["client-id"]
        assert query["access_type"] == ["offline"]
        state = query["state"][0]

        callback = await anonymous_client.get(
            "/calendar/auth/google/callback", params={"code": "auth-code", "state": state}
        )
        assert callback.status_code == 201
        data = callback.json()
        assert data["externalAccountId"] == "google-account-1"
        assert data["externalAccountEmail"] == "alice@gmail.com"
        assert data["settings"] == {"calendarId": "primary"}
        assert fake_google.token_requests[0]["grant_type"] == "authorization_code"
        assert fake_google.token_requests[0]["code"] == "auth-code"

        listed = await client.get("/calendar/integrations")
        assert [i["id"] for i in listed.json()["integrations"]] == [data["id"]]

    async def test_tampered_state_is_rejected(self, anonymous_client: AsyncClient, fake_google):
        response = await anonymous_client.get(
            "/calendar/auth/google/callback",
            params={"code": "auth-code", "state": "forged.signature"},
        )
        assert response.status_code == 400
        assert fake_google.token_requests == []

    async def test_declined_consent(self, anonymous_client: AsyncClient):
        response = await anonymous_client.get(
            "/calendar/auth/google/callback", params={"error": "access_denied"}
        )
        assert response.status_code == 400
