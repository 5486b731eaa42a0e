"""Tests for datetime helpers, view windows and OAuth state signing."""

from datetime import date, datetime, time, timedelta, timezone

import jwt
import pytest

from hekate_services.calendar.core.errors import ValidationError
from hekate_services.calendar.core.utils import (
    format_rfc3339,
    parse_bool,
    parse_csv,
    parse_rfc3339,
    resolve_window,
)
from hekate_services.calendar.sync.oauth_state import (
    STATE_MAX_AGE,
    sign_state,
    verify_state,
)

UTC = timezone.utc
NOW = datetime(2024, 6, 12, 15, 30, tzinfo=UTC)  # a Wednesday


class TestResolveWindow:
    def test_day(self):
        start, end = resolve_window("day", None, NOW)
        assert start == datetime(2024, 6, 12, tzinfo=UTC)
        assert end == datetime.combine(date(2024, 6, 12), time.max, tzinfo=UTC)

    def test_week_runs_sunday_to_saturday(self):
        start, end = resolve_window("week", None, NOW)
        assert start == datetime(2024, 6, 9, tzinfo=UTC)
        assert end.date() == date(2024, 6, 15)

    def test_week_anchored_on_sunday(self):
        start, _ = resolve_window("week", datetime(2024, 6, 16, 8, tzinfo=UTC), NOW)
        assert start.date() == date(2024, 6, 16)

    def test_month_in_leap_february(self):
        start, end = resolve_window("month", datetime(2024, 2, 10, tzinfo=UTC), NOW)
        assert start.date() == date(2024, 2, 1)
        assert end.date() == date(2024, 2, 29)

    def test_agenda_spans_thirty_days(self):
        start, end = resolve_window("agenda", None, NOW)
        assert start.date() == date(2024, 6, 12)
        assert end.date() == date(2024, 6, 12) + timedelta(days=30)

    def test_unknown_view(self):
        with pytest.raises(ValueError):
            resolve_window("year", None, NOW)


class TestRfc3339:
    def test_parse_offset_to_utc(self):
        assert parse_rfc3339("2024-06-01T12:00:00+02:00") == datetime(2024, 6, 1, 10, tzinfo=UTC)

    def test_parse_date_only(self):
        assert parse_rfc3339("2024-06-01") == datetime(2024, 6, 1, tzinfo=UTC)

    def test_parse_invalid(self):
        with pytest.raises(ValueError):
            parse_rfc3339("next tuesday")

    def test_format(self):
        assert format_rfc3339(datetime(2024, 6, 1, 10, tzinfo=UTC)) == "2024-06-01T10:00:00Z"
        assert (
            format_rfc3339(datetime(2024, 6, 1, 10, 0, 0, 123456, tzinfo=UTC))
            == "2024-06-01T10:00:00.123Z"
        )
        assert format_rfc3339(None) is None


class TestQueryParsing:
    def test_parse_bool(self):
        assert parse_bool("true") is True
        assert parse_bool("1") is True
        assert parse_bool("no") is False
        assert parse_bool(None, default=True) is True

    def test_parse_csv(self):
        assert parse_csv("WEBINAR, ,MEETING") == ["WEBINAR", "MEETING"]
        assert parse_csv(None) == []


SECRET = "state-signing-secret-0123456789abcdef"


class TestOAuthState:
    def test_round_trip(self):
        state = sign_state("user-1", SECRET, NOW)
        assert verify_state(state, SECRET, NOW + timedelta(minutes=1)) == "user-1"

    def test_is_an_hs256_jwt(self):
        state = sign_state("user-1", SECRET, NOW)
        assert jwt.get_unverified_header(state)["alg"] == "HS256"
        claims = jwt.decode(state, options={"verify_signature": False})
        assert claims["sub"] == "user-1"
        assert claims["exp"] - claims["iat"] == STATE_MAX_AGE.total_seconds()

    def test_tampered_payload(self):
        header, _, signature = sign_state("user-1", SECRET, NOW).split(".")
        forged = sign_state("user-2", SECRET, NOW).split(".")[1]
        with pytest.raises(ValidationError):
            verify_state(f"{header}.{forged}.{signature}", SECRET, NOW)

    def test_wrong_secret(self):
        state = sign_state("user-1", SECRET, NOW)
        with pytest.raises(ValidationError):
            verify_state(state, "another-signing-secret-0123456789abcdef", NOW)

    def test_expiry_follows_request_clock(self):
        state = sign_state("user-1", SECRET, NOW)
        assert verify_state(state, SECRET, NOW + STATE_MAX_AGE - timedelta(seconds=1))
        with pytest.raises(ValidationError):
            verify_state(state, SECRET, NOW + STATE_MAX_AGE + timedelta(seconds=1))

    def test_issued_in_the_future(self):
        state = sign_state("user-1", SECRET, NOW)
        with pytest.raises(ValidationError):
            verify_state(state, SECRET, NOW - timedelta(minutes=1))

    def test_missing_subject(self):
        token = jwt.encode(
            {"aud": "google-calendar-connect", "iat": NOW, "exp": NOW + STATE_MAX_AGE},
            SECRET,
            algorithm="HS256",
        )
        with pytest.raises(ValidationError):
            verify_state(token, SECRET, NOW)

    def test_malformed(self):
        with pytest.raises(ValidationError):
            verify_state("not-a-state", SECRET, NOW)
