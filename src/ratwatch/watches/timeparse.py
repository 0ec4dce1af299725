"""Natural-language time parsing for watch scheduling.

Turns text such as "10m", "1h30m", "10pm", "22:00", "tomorrow 3pm",
"friday 9am", "dec 31 11:59pm" or "2025-01-11 15:00" into a UTC instant,
interpreting wall-clock expressions in the guild's timezone.

Parsing is an ordered tuple of pure matchers folded first-success. A matcher
returns None when its pattern does not apply, a ParsedTime when it does, and
raises TimeParseError when its pattern applies but the values are out of
range. The first matching family decides; there is no fall-through after a
range failure.
"""

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from enum import Enum
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dateutil import parser as date_parser

from ratwatch.watches.types import TimeParseError

logger = logging.getLogger(__name__)

UTC_ZONE = ZoneInfo("UTC")

USAGE_HINT = "Use formats like: 10m, 2h, 1h30m, 10pm, 22:00, tomorrow 3pm, friday 9am, dec 31 10pm"


class ParseKind(Enum):
    RELATIVE = "relative"
    ABSOLUTE_TIME = "absolute_time"
    ABSOLUTE_DAY = "absolute_day"
    ABSOLUTE_DATE = "absolute_date"
    FULL_DATETIME = "full_datetime"


@dataclass(frozen=True)
class ParsedTime:
    utc_time: datetime
    kind: ParseKind
    local_time: datetime


@dataclass(frozen=True)
class _Context:
    now_utc: datetime
    tz: ZoneInfo

    @property
    def now_local(self) -> datetime:
        return self.now_utc.astimezone(self.tz)

    @property
    def today(self) -> date:
        return self.now_local.date()

    def at(self, day: date, hour: int, minute: int, second: int = 0) -> datetime:
        return datetime(day.year, day.month, day.day, hour, minute, second, tzinfo=self.tz)

    def is_past(self, local: datetime) -> bool:
        return local.astimezone(UTC) <= self.now_utc

    def result(self, local: datetime, kind: ParseKind) -> ParsedTime:
        return ParsedTime(utc_time=local.astimezone(UTC), kind=kind, local_time=local)


Matcher = Callable[[str, _Context], ParsedTime | None]


def resolve_timezone(name: str | None) -> ZoneInfo:
    """Resolve an IANA timezone id, falling back to UTC when unknown."""
    if not name:
        return UTC_ZONE
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("invalid_timezone", extra={"guild.timezone": name})
        return UTC_ZONE


# ---------------------------------------------------------------------------
# Time-of-day components ("10pm", "10:30pm", "22:00", "noon")
# ---------------------------------------------------------------------------

_TWELVE_HOUR_RE = re.compile(r"(\d+)(?::(\d+))?\s*(am|pm)")
_TWENTY_FOUR_HOUR_RE = re.compile(r"(\d+):(\d+)")

KEYWORD_TIMES: dict[str, tuple[int, int]] = {
    "noon": (12, 0),
    "midnight": (0, 0),
    "morning": (9, 0),
    "afternoon": (15, 0),
    "evening": (18, 0),
    "night": (21, 0),
}


def _minute_value(raw: str | None) -> int:
    if raw is None:
        return 0
    if len(raw) != 2:
        raise TimeParseError("Minutes must be written with two digits (e.g. 10:05pm)")
    minute = int(raw)
    if minute > 59:
        raise TimeParseError("Minutes must be between 00 and 59")
    return minute


def _twelve_hour(text: str) -> tuple[int, int] | None:
    match = _TWELVE_HOUR_RE.fullmatch(text)
    if not match:
        return None
    hour = int(match.group(1))
    if not 1 <= hour <= 12:
        raise TimeParseError("Hour must be between 1 and 12 when using am/pm")
    minute = _minute_value(match.group(2))
    if match.group(3) == "am":
        hour = 0 if hour == 12 else hour
    elif hour != 12:
        hour += 12
    return hour, minute


def _twenty_four_hour(text: str) -> tuple[int, int] | None:
    match = _TWENTY_FOUR_HOUR_RE.fullmatch(text)
    if not match:
        return None
    hour = int(match.group(1))
    if len(match.group(1)) > 2 or hour > 23:
        raise TimeParseError("Hour must be between 0 and 23")
    return hour, _minute_value(match.group(2))


def _clock_time(text: str) -> tuple[int, int] | None:
    """Parse a trailing time component; None when it is not a time at all."""
    text = text.strip()
    for parse in (_twelve_hour, _twenty_four_hour):
        parsed = parse(text)
        if parsed is not None:
            return parsed
    return KEYWORD_TIMES.get(text)


def _next_time_of_day(ctx: _Context, hour: int, minute: int) -> ParsedTime:
    local = ctx.at(ctx.today, hour, minute)
    if ctx.is_past(local):
        local = ctx.at(ctx.today + timedelta(days=1), hour, minute)
    return ctx.result(local, ParseKind.ABSOLUTE_TIME)


# ---------------------------------------------------------------------------
# Matchers, in priority order
# ---------------------------------------------------------------------------

_RELATIVE_RE = re.compile(
    r"(?:in\s+)?"
    r"(?:(\d+)\s*w(?:eeks?|ks?)?)?\s*"
    r"(?:(\d+)\s*d(?:ays?)?)?\s*"
    r"(?:(\d+)\s*h(?:ours?|rs?)?)?\s*"
    r"(?:(\d+)\s*m(?:in(?:ute)?s?)?)?"
)


def match_relative(text: str, ctx: _Context) -> ParsedTime | None:
    match = _RELATIVE_RE.fullmatch(text)
    if not match or not any(match.groups()):
        return None

    weeks, days, hours, minutes = (int(g) if g else 0 for g in match.groups())
    if weeks == days == hours == minutes == 0:
        raise TimeParseError("Duration must be greater than zero")

    try:
        utc_time = ctx.now_utc + timedelta(
            weeks=weeks, days=days, hours=hours, minutes=minutes
        )
    except OverflowError as e:
        raise TimeParseError("Duration is too large") from e
    return ParsedTime(
        utc_time=utc_time,
        kind=ParseKind.RELATIVE,
        local_time=utc_time.astimezone(ctx.tz),
    )


def match_twelve_hour(text: str, ctx: _Context) -> ParsedTime | None:
    parsed = _twelve_hour(text)
    if parsed is None:
        return None
    return _next_time_of_day(ctx, *parsed)


def match_twenty_four_hour(text: str, ctx: _Context) -> ParsedTime | None:
    parsed = _twenty_four_hour(text)
    if parsed is None:
        return None
    return _next_time_of_day(ctx, *parsed)


def match_keyword(text: str, ctx: _Context) -> ParsedTime | None:
    parsed = KEYWORD_TIMES.get(text)
    if parsed is None:
        return None
    return _next_time_of_day(ctx, *parsed)


WEEKDAYS: dict[str, int] = {
    "monday": 0, "mon": 0,
    "tuesday": 1, "tue": 1, "tues": 1,
    "wednesday": 2, "wed": 2,
    "thursday": 3, "thu": 3, "thur": 3, "thurs": 3,
    "friday": 4, "fri": 4,
    "saturday": 5, "sat": 5,
    "sunday": 6, "sun": 6,
}  # fmt: skip

_NAMED_DAY_RE = re.compile(r"(next\s+)?([a-z]+)(?:\s+(.+))?")


def match_named_day(text: str, ctx: _Context) -> ParsedTime | None:
    match = _NAMED_DAY_RE.fullmatch(text)
    if not match:
        return None
    is_next, word, time_text = match.groups()

    if word in ("today", "tomorrow") and not is_next:
        if word == "today":
            clock = _clock_time(time_text) if time_text else (23, 59)
            if clock is None:
                return None
            hour, minute = clock
            local = ctx.at(ctx.today, hour, minute)
            if ctx.is_past(local):
                raise TimeParseError("That time has already passed today")
            return ctx.result(local, ParseKind.ABSOLUTE_DAY)

        clock = _clock_time(time_text) if time_text else (0, 0)
        if clock is None:
            return None
        hour, minute = clock
        day = ctx.today + timedelta(days=1)
        local = ctx.at(day, hour, minute)
        if ctx.is_past(local):
            local = ctx.at(day + timedelta(days=1), hour, minute)
        return ctx.result(local, ParseKind.ABSOLUTE_DAY)

    target = WEEKDAYS.get(word)
    if target is None:
        return None

    clock = _clock_time(time_text) if time_text else (0, 0)
    if clock is None:
        return None
    hour, minute = clock
    # Same weekday as today means next week, with or without "next"
    days_ahead = (target - ctx.today.weekday()) % 7 or 7
    day = ctx.today + timedelta(days=days_ahead)
    local = ctx.at(day, hour, minute)
    if ctx.is_past(local):
        local = ctx.at(day + timedelta(days=7), hour, minute)
    return ctx.result(local, ParseKind.ABSOLUTE_DAY)


MONTHS: dict[str, int] = {
    "january": 1,
    "february": 2,
    "march": 3,
    "april": 4,
    "may": 5,
    "june": 6,
    "july": 7,
    "august": 8,
    "september": 9,
    "october": 10,
    "november": 11,
    "december": 12,
}

_MONTH_DAY_RE = re.compile(r"([a-z]+)\.?\s+(\d+)(?:st|nd|rd|th)?(?:,?\s+(.+))?")


def _month_number(word: str) -> int | None:
    if len(word) < 3:
        return None
    for name, number in MONTHS.items():
        if name.startswith(word):
            return number
    return None


def match_month_day(text: str, ctx: _Context) -> ParsedTime | None:
    match = _MONTH_DAY_RE.fullmatch(text)
    if not match:
        return None
    month = _month_number(match.group(1))
    if month is None:
        return None

    time_text = match.group(3)
    clock = _clock_time(time_text) if time_text else (0, 0)
    if clock is None:
        # Not a time; may still be a full date such as "jan 11, 2025 3pm"
        return None
    hour, minute = clock

    day_of_month = int(match.group(2))
    if not 1 <= day_of_month <= 31:
        raise TimeParseError("Day must be between 1 and 31")

    year = ctx.today.year
    try:
        local = ctx.at(date(year, month, day_of_month), hour, minute)
    except ValueError as e:
        raise TimeParseError(f"'{text}' is not a valid calendar date") from e

    if ctx.is_past(local):
        try:
            local = ctx.at(date(year + 1, month, day_of_month), hour, minute)
        except ValueError as e:
            raise TimeParseError(f"'{text}' is not a valid date next year") from e
    return ctx.result(local, ParseKind.ABSOLUTE_DATE)


_ISO_DATETIME_RE = re.compile(
    r"(\d{4})-(\d{1,2})-(\d{1,2})(?:t|\s+)(\d{1,2}):(\d{2})(?::(\d{2}))?"
)
_US_DATETIME_RE = re.compile(
    r"(\d{1,2})/(\d{1,2})/(\d{4})\s+(\d{1,2}):(\d{2})(?::(\d{2}))?\s*(am|pm)?"
)
_HAS_DATE_RE = re.compile(r"\d[/.-]\d|[a-z]{3,}\.?\s*\d")
_HAS_TIME_RE = re.compile(r"\d:\d{2}|\d\s*(?:am|pm)\b")


def _full_datetime(
    ctx: _Context, year: int, month: int, day: int, hour: int, minute: int, second: int
) -> ParsedTime:
    if not ctx.today.year <= year <= ctx.today.year + 10:
        raise TimeParseError("Year must be within the next ten years")
    if hour > 23 or minute > 59 or second > 59:
        raise TimeParseError("Time of day is out of range")
    try:
        local = ctx.at(date(year, month, day), hour, minute, second)
    except ValueError as e:
        raise TimeParseError("Not a valid calendar date") from e
    return ctx.result(local, ParseKind.FULL_DATETIME)


def match_full_datetime(text: str, ctx: _Context) -> ParsedTime | None:
    if match := _ISO_DATETIME_RE.fullmatch(text):
        year, month, day, hour, minute = (int(g) for g in match.groups()[:5])
        second = int(match.group(6) or 0)
        return _full_datetime(ctx, year, month, day, hour, minute, second)

    if match := _US_DATETIME_RE.fullmatch(text):
        month, day, year, hour, minute = (int(g) for g in match.groups()[:5])
        second = int(match.group(6) or 0)
        meridiem = match.group(7)
        if meridiem:
            if not 1 <= hour <= 12:
                raise TimeParseError("Hour must be between 1 and 12 when using am/pm")
            if meridiem == "pm" and hour < 12:
                hour += 12
            elif meridiem == "am" and hour == 12:
                hour = 0
        return _full_datetime(ctx, year, month, day, hour, minute, second)

    # Free-form fallback only when both a date and a time are present
    if not (_HAS_DATE_RE.search(text) and _HAS_TIME_RE.search(text)):
        return None
    default = ctx.now_local.replace(
        hour=0, minute=0, second=0, microsecond=0, tzinfo=None
    )
    try:
        parsed = date_parser.parse(text, default=default)
    except (date_parser.ParserError, ValueError, OverflowError):
        return None

    if parsed.tzinfo is not None:
        local = parsed.astimezone(ctx.tz)
        if not ctx.today.year <= local.year <= ctx.today.year + 10:
            raise TimeParseError("Year must be within the next ten years")
        return ctx.result(local, ParseKind.FULL_DATETIME)
    return _full_datetime(
        ctx,
        parsed.year,
        parsed.month,
        parsed.day,
        parsed.hour,
        parsed.minute,
        parsed.second,
    )


MATCHERS: tuple[Matcher, ...] = (
    match_relative,
    match_twelve_hour,
    match_twenty_four_hour,
    match_keyword,
    match_named_day,
    match_month_day,
    match_full_datetime,
)


def parse_time(
    text: str,
    timezone: str | None = "UTC",
    *,
    now: datetime | None = None,
) -> ParsedTime:
    """Parse a human time expression into a future UTC instant.

    Args:
        text: The expression, e.g. "tomorrow 3pm".
        timezone: IANA timezone used for wall-clock expressions. Unknown ids
            fall back to UTC with a warning.
        now: Reference instant (timezone-aware); defaults to the current time.

    Returns:
        ParsedTime with the UTC instant, the family that matched, and the
        instant in the guild's local time.

    Raises:
        TimeParseError: If no family matches, the matching family rejects the
            values, or the result is not in the future.
    """
    if not text or not text.strip():
        raise TimeParseError("Time cannot be empty. " + USAGE_HINT)

    normalized = " ".join(text.strip().lower().split())
    now_utc = (now or datetime.now(UTC)).astimezone(UTC)
    ctx = _Context(now_utc=now_utc, tz=resolve_timezone(timezone))

    result: ParsedTime | None = None
    for matcher in MATCHERS:
        result = matcher(normalized, ctx)
        if result is not None:
            break

    if result is None:
        logger.debug("time_parse_unrecognized", extra={"parse.input": normalized})
        raise TimeParseError(f"Could not understand '{text.strip()}'. " + USAGE_HINT)

    if result.utc_time <= now_utc:
        raise TimeParseError("Scheduled time must be in the future")

    logger.debug(
        "time_parsed",
        extra={
            "parse.input": normalized,
            "parse.kind": result.kind.value,
            "parse.utc": result.utc_time.isoformat(),
            "guild.timezone": ctx.tz.key,
        },
    )
    return result
