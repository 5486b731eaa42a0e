# Recurrence patterns and occurrence expansion
# Patterns are a tagged union on "freq"; occurrences are derived per query
# and never stored.

import heapq
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Annotated, Any, ClassVar, Iterable, Iterator, Literal, NamedTuple, Optional, Union

from dateutil.relativedelta import relativedelta
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError as PydanticValidationError,
    field_validator,
    model_validator,
)

from .utils import ensure_utc

logger = logging.getLogger(__name__)


# Mean synodic month
LUNAR_CYCLE_DAYS = 29.530588853
LUNAR_CYCLE = timedelta(days=LUNAR_CYCLE_DAYS)

KNOWN_FREQUENCIES = ("DAILY", "WEEKLY", "MONTHLY", "YEARLY", "LUNAR")

WEEKDAY_NAMES = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
)
WEEKDAY_CODES = ("MO", "TU", "WE", "TH", "FR", "SA", "SU")
MONTH_NAMES = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)

Weekday = Annotated[int, Field(ge=0, le=6)]
MonthDay = Annotated[int, Field(ge=1, le=31)]
Month = Annotated[int, Field(ge=1, le=12)]


def _ordinal(n: int) -> str:
    if n == -1:
        return "last"
    if 10 <= n % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")
    return f"{n}{suffix}"


# ============================================================================
# PATTERNS
# ============================================================================


class _PatternBase(BaseModel):
    """Fields shared by every frequency."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True, frozen=True)

    interval: int = Field(1, ge=1, le=999)
    count: Optional[int] = Field(None, gt=0)
    until: Optional[datetime] = None
    exceptions: list[date] = Field(default_factory=list)

    @field_validator("until")
    @classmethod
    def _until_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value)

    @model_validator(mode="after")
    def _single_termination(self):
        if self.count is not None and self.until is not None:
            raise ValueError("Cannot specify both count and until")
        return self

    # -- arithmetic --------------------------------------------------------

    def shift(self, dt: datetime, steps: int) -> datetime:
        """Move ``dt`` forward by ``steps`` whole units of this frequency."""
        raise NotImplementedError

    def first_index(self, base_start: datetime, window_start: datetime) -> int:
        """
        Index of the first candidate occurrence at or after ``window_start``.

        Never overshoots; callers skip candidates that still fall before
        the window.
        """
        raise NotImplementedError

    # -- presentation ------------------------------------------------------

    def _every(self, plural: str, adverb: str) -> str:
        if self.interval == 1:
            return adverb
        return f"Every {self.interval} {plural}"

    def _termination_text(self) -> str:
        if self.count is not None:
            return f", {self.count} times"
        if self.until is not None:
            return f", until {self.until.date().isoformat()}"
        return ""

    def describe(self) -> str:
        """Human-readable summary, e.g. "Weekly on Monday, 10 times"."""
        raise NotImplementedError

    def _rrule_parts(self) -> list[str]:
        return []

    def to_rrule(self) -> Optional[str]:
        """iCalendar RRULE line for providers that understand it."""
        parts = [f"FREQ={self.freq}", f"INTERVAL={self.interval}"]
        parts.extend(self._rrule_parts())
        if self.count is not None:
            parts.append(f"COUNT={self.count}")
        elif self.until is not None:
            parts.append(f"UNTIL={self.until.strftime('%Y%m%dT%H%M%SZ')}")
        return "RRULE:" + ";".join(parts)


class _FixedStepPattern(_PatternBase):
    """Frequencies whose unit is a fixed duration."""

    def unit(self) -> timedelta:
        raise NotImplementedError

    def shift(self, dt: datetime, steps: int) -> datetime:
        return dt + self.unit() * steps

    def first_index(self, base_start: datetime, window_start: datetime) -> int:
        if window_start <= base_start:
            return 0
        step = self.unit() * self.interval
        # exact ceiling in integer microseconds
        return -(-(window_start - base_start) // step)


class _CalendarStepPattern(_PatternBase):
    """Frequencies stepped by calendar fields; overflowing days clamp to month end."""

    months_per_unit: ClassVar[int] = 1

    def shift(self, dt: datetime, steps: int) -> datetime:
        return dt + relativedelta(months=steps * self.months_per_unit)

    def first_index(self, base_start: datetime, window_start: datetime) -> int:
        if window_start <= base_start:
            return 0
        months = (window_start.year - base_start.year) * 12 + (
            window_start.month - base_start.month
        )
        estimate = months // (self.months_per_unit * self.interval) - 1
        return max(estimate, 0)


class DailyPattern(_FixedStepPattern):
    freq: Literal["DAILY"] = "DAILY"

    def unit(self) -> timedelta:
        return timedelta(days=1)

    def describe(self) -> str:
        return self._every("days", "Daily") + self._termination_text()


class WeeklyPattern(_FixedStepPattern):
    freq: Literal["WEEKLY"] = "WEEKLY"
    byweekday: Optional[list[Weekday]] = None

    def unit(self) -> timedelta:
        return timedelta(weeks=1)

    def describe(self) -> str:
        text = self._every("weeks", "Weekly")
        if self.byweekday:
            text += " on " + ", ".join(WEEKDAY_NAMES[d] for d in self.byweekday)
        return text + self._termination_text()

    def _rrule_parts(self) -> list[str]:
        if not self.byweekday:
            return []
        return ["BYDAY=" + ",".join(WEEKDAY_CODES[d] for d in self.byweekday)]


class MonthlyPattern(_CalendarStepPattern):
    freq: Literal["MONTHLY"] = "MONTHLY"
    byweekday: Optional[list[Weekday]] = None
    bymonthday: Optional[list[MonthDay]] = None
    bysetpos: Optional[int] = Field(None, ge=-1, le=5)

    @model_validator(mode="after")
    def _setpos_needs_weekday(self):
        if self.bysetpos is not None and not self.byweekday:
            raise ValueError("bysetpos requires byweekday")
        if self.bysetpos == 0:
            raise ValueError("bysetpos must not be 0")
        return self

    def describe(self) -> str:
        text = self._every("months", "Monthly")
        if self.byweekday:
            days = ", ".join(WEEKDAY_NAMES[d] for d in self.byweekday)
            if self.bysetpos is not None:
                text += f" on the {_ordinal(self.bysetpos)} {days}"
            else:
                text += f" on {days}"
        if self.bymonthday:
            text += " on day " + ", ".join(str(d) for d in self.bymonthday)
        return text + self._termination_text()

    def _rrule_parts(self) -> list[str]:
        parts = []
        if self.byweekday:
            parts.append("BYDAY=" + ",".join(WEEKDAY_CODES[d] for d in self.byweekday))
        if self.bymonthday:
            parts.append("BYMONTHDAY=" + ",".join(str(d) for d in self.bymonthday))
        if self.bysetpos is not None:
            parts.append(f"BYSETPOS={self.bysetpos}")
        return parts


class YearlyPattern(_CalendarStepPattern):
    freq: Literal["YEARLY"] = "YEARLY"
    bymonth: Optional[list[Month]] = None
    bymonthday: Optional[list[MonthDay]] = None

    months_per_unit: ClassVar[int] = 12

    def describe(self) -> str:
        text = self._every("years", "Yearly")
        if self.bymonth:
            text += " in " + ", ".join(MONTH_NAMES[m - 1] for m in self.bymonth)
        if self.bymonthday:
            text += " on day " + ", ".join(str(d) for d in self.bymonthday)
        return text + self._termination_text()

    def _rrule_parts(self) -> list[str]:
        parts = []
        if self.bymonth:
            parts.append("BYMONTH=" + ",".join(str(m) for m in self.bymonth))
        if self.bymonthday:
            parts.append("BYMONTHDAY=" + ",".join(str(d) for d in self.bymonthday))
        return parts


class LunarPattern(_FixedStepPattern):
    """Repeats every synodic month from the base event."""

    freq: Literal["LUNAR"] = "LUNAR"
    lunar_phase: Literal["FULL", "NEW"] = Field("FULL", alias="lunarPhase")

    def unit(self) -> timedelta:
        return LUNAR_CYCLE

    def describe(self) -> str:
        moon = "full moon" if self.lunar_phase == "FULL" else "new moon"
        if self.interval == 1:
            text = f"Every {moon}"
        else:
            text = f"Every {self.interval} lunar cycles ({moon})"
        return text + self._termination_text()

    def to_rrule(self) -> Optional[str]:
        return None


RecurrencePattern = Annotated[
    Union[DailyPattern, WeeklyPattern, MonthlyPattern, YearlyPattern, LunarPattern],
    Field(discriminator="freq"),
]

PATTERN_ADAPTER: TypeAdapter = TypeAdapter(RecurrencePattern)


def parse_pattern(data: dict[str, Any]):
    """
    Validate a pattern dict (request body shape, camelCase accepted).

    Raises:
        pydantic.ValidationError: when the shape is invalid
    """
    return PATTERN_ADAPTER.validate_python(data)


# ============================================================================
# STORAGE MAPPING
# ============================================================================


def pattern_to_rule_fields(pattern) -> dict[str, Any]:
    """Column values for a RecurrenceRule row holding ``pattern``."""
    return {
        "frequency": pattern.freq,
        "interval": pattern.interval,
        "count": pattern.count,
        "until": pattern.until,
        "by_weekday": getattr(pattern, "byweekday", None),
        "by_month_day": getattr(pattern, "bymonthday", None),
        "by_month": getattr(pattern, "bymonth", None),
        "by_set_pos": getattr(pattern, "bysetpos", None),
        "lunar_phase": getattr(pattern, "lunar_phase", None),
        "exceptions": [d.isoformat() for d in pattern.exceptions] or None,
    }


_ROW_FIELDS = (
    ("byweekday", "by_weekday"),
    ("bymonthday", "by_month_day"),
    ("bymonth", "by_month"),
    ("bysetpos", "by_set_pos"),
    ("lunarPhase", "lunar_phase"),
)


def pattern_from_rule(rule):
    """
    Rebuild a pattern from a stored RecurrenceRule row.

    Returns None (and logs a warning) for an unknown frequency or a row
    that no longer validates; such rules contribute no occurrences.
    """
    if rule.frequency not in KNOWN_FREQUENCIES:
        logger.warning(
            "Skipping recurrence rule %s of event %s: unrecognised frequency %r",
            rule.id,
            rule.event_id,
            rule.frequency,
        )
        return None

    data: dict[str, Any] = {
        "freq": rule.frequency,
        "interval": rule.interval,
        "count": rule.count,
        "until": rule.until,
        "exceptions": rule.exceptions or [],
    }
    for key, column in _ROW_FIELDS:
        value = getattr(rule, column)
        if value is not None:
            data[key] = value

    try:
        return PATTERN_ADAPTER.validate_python(data)
    except PydanticValidationError as e:
        logger.warning(
            "Skipping malformed recurrence rule %s of event %s: %s",
            rule.id,
            rule.event_id,
            e.errors(include_url=False),
        )
        return None


class RulePattern(NamedTuple):
    rule_id: Optional[str]
    pattern: Any


def rule_patterns(event) -> list[RulePattern]:
    """Active, valid patterns attached to an event, in rule order."""
    bound = []
    for rule in event.recurrence_rules:
        if not rule.is_active:
            continue
        pattern = pattern_from_rule(rule)
        if pattern is not None:
            bound.append(RulePattern(rule.id, pattern))
    return bound


# ============================================================================
# OCCURRENCES
# ============================================================================


@dataclass(frozen=True)
class OccurrenceKey:
    """Identity of an occurrence. Index 0 with no rule is the base event."""

    event_id: str
    index: int
    rule_id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {"eventId": self.event_id, "index": self.index, "ruleId": self.rule_id}


@dataclass(frozen=True)
class Occurrence:
    key: OccurrenceKey
    event: Any
    start: datetime
    end: datetime

    @property
    def is_base(self) -> bool:
        return self.key.index == 0


def _base_occurrence(event, window_start, window_end) -> Iterator[Occurrence]:
    start = ensure_utc(event.start_date)
    if window_start <= start <= window_end:
        yield Occurrence(
            OccurrenceKey(event.id, 0), event, start, ensure_utc(event.end_date)
        )


def _pattern_occurrences(
    event, bound: RulePattern, window_start: datetime, window_end: datetime
) -> Iterator[Occurrence]:
    pattern = bound.pattern
    base_start = ensure_utc(event.start_date)
    base_end = ensure_utc(event.end_date)
    skipped = set(pattern.exceptions)

    i = max(pattern.first_index(base_start, window_start), 1)
    while True:
        if pattern.count is not None and i >= pattern.count:
            return
        steps = i * pattern.interval
        occ_start = pattern.shift(base_start, steps)
        if pattern.until is not None and occ_start > pattern.until:
            return
        if occ_start > window_end:
            return
        if occ_start >= window_start and occ_start.date() not in skipped:
            yield Occurrence(
                OccurrenceKey(event.id, i, bound.rule_id),
                event,
                occ_start,
                pattern.shift(base_end, steps),
            )
        i += 1


def _bind(patterns: Iterable) -> list[RulePattern]:
    return [p if isinstance(p, RulePattern) else RulePattern(None, p) for p in patterns]


def iter_occurrences(
    event,
    patterns: Iterable,
    window_start: datetime,
    window_end: datetime,
) -> Iterator[Occurrence]:
    """
    Lazily yield the occurrences of ``event`` whose start lies in the closed
    window, ascending by start.

    ``patterns`` holds RecurrencePattern values or RulePattern pairs. When
    several sources land on the same instant only the first is yielded,
    with the base event ahead of every pattern.
    """
    window_start = ensure_utc(window_start)
    window_end = ensure_utc(window_end)
    if window_end < window_start:
        return

    sources = [_base_occurrence(event, window_start, window_end)]
    sources.extend(
        _pattern_occurrences(event, bound, window_start, window_end)
        for bound in _bind(patterns)
    )

    last_start = None
    for occurrence in heapq.merge(*sources, key=lambda o: o.start):
        if occurrence.start == last_start:
            continue
        last_start = occurrence.start
        yield occurrence


def expand_event(
    event,
    patterns: Iterable,
    window_start: datetime,
    window_end: datetime,
) -> list[Occurrence]:
    """Materialize the occurrences of ``event`` inside [window_start, window_end]."""
    return list(iter_occurrences(event, patterns, window_start, window_end))


def expand_events(events: Iterable, window_start: datetime, window_end: datetime) -> list[Occurrence]:
    """Expand many stored events using their own rules; result sorted by start."""
    occurrences = []
    for event in events:
        occurrences.extend(
            iter_occurrences(event, rule_patterns(event), window_start, window_end)
        )
    occurrences.sort(key=lambda o: (o.start, o.key.event_id, o.key.index))
    return occurrences
