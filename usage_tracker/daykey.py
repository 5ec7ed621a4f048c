# usage_tracker/daykey.py
"""
Calendar-day keys in one fixed civil timezone.

Every writer and reader buckets by Beijing time (UTC+8, no DST) so that day
boundaries never depend on the host clock's TZ setting.
"""

from __future__ import annotations

import re
from datetime import UTC, date, datetime, timedelta, timezone

from usage_tracker.errors import UsageValidationError, ValidationReason

DAY_TZ = timezone(timedelta(hours=8), "Asia/Shanghai")
DAY_KEY_FORMAT = "%Y-%m-%d"

_DAY_KEY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def _as_day_tz(now: datetime | None) -> datetime:
    if now is None:
        now = datetime.now(UTC)
    elif now.tzinfo is None:
        # naive timestamps are taken as UTC, never as host-local time
        now = now.replace(tzinfo=UTC)
    return now.astimezone(DAY_TZ)


def today(now: datetime | None = None) -> date:
    return _as_day_tz(now).date()


def current_day_key(now: datetime | None = None) -> str:
    """Return today's key (YYYY-MM-DD) in UTC+8."""
    return today(now).strftime(DAY_KEY_FORMAT)


def parse_day_key(value: str) -> str:
    """
    Validate a caller-supplied day string.

    Only strict YYYY-MM-DD naming a real calendar date is accepted; the
    canonical key is returned unchanged.
    """
    if not isinstance(value, str) or not _DAY_KEY_RE.match(value):
        raise UsageValidationError(
            reason=ValidationReason.INVALID_FORMAT,
            message="Invalid date format. Use YYYY-MM-DD.",
            details={"date": value},
        )
    try:
        datetime.strptime(value, DAY_KEY_FORMAT)
    except ValueError as e:
        raise UsageValidationError(
            reason=ValidationReason.INVALID_FORMAT,
            message="Invalid date format. Use YYYY-MM-DD.",
            details={"date": value},
        ) from e
    return value


def is_future_day(key: str, now: datetime | None = None) -> bool:
    return date.fromisoformat(key) > today(now)
