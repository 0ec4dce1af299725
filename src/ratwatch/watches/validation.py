"""Advance-time bounds for newly scheduled watches."""

from datetime import UTC, datetime, timedelta

from ratwatch.watches.types import AdvanceTimeError


def _plural(value: float, unit: str) -> str:
    shown = f"{value:g}"
    return f"{shown} {unit}" if value == 1 else f"{shown} {unit}s"


def validate_advance_time(
    utc_time: datetime,
    min_advance_minutes: float,
    max_advance_days: float,
    *,
    now: datetime | None = None,
) -> None:
    """Check that a scheduled instant is inside the allowed window.

    Raises:
        AdvanceTimeError: If the instant is sooner than min_advance_minutes or
            later than max_advance_days from now.
    """
    if utc_time.tzinfo is None:
        raise ValueError("utc_time must be timezone-aware")
    now_utc = (now or datetime.now(UTC)).astimezone(UTC)

    if utc_time < now_utc + timedelta(minutes=min_advance_minutes):
        raise AdvanceTimeError(
            "Scheduled time must be at least "
            f"{_plural(min_advance_minutes, 'minute')} in the future"
        )

    if utc_time > now_utc + timedelta(days=max_advance_days):
        hours = max_advance_days * 24
        limit = (
            _plural(max_advance_days, "day")
            if hours >= 48 and max_advance_days == int(max_advance_days)
            else _plural(hours, "hour")
        )
        raise AdvanceTimeError(
            f"Scheduled time cannot be more than {limit} in the future"
        )
