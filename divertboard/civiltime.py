from __future__ import annotations
import calendar
import re
from datetime import date, datetime, time, timedelta, timezone
from functools import lru_cache
from typing import Any, Mapping
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .errors import InvalidCivilField, InvalidZone

_DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})$")

# Offset changes are at most a few hours apart from the repeated wall time.
_FOLD_LOOKBACK = timedelta(hours=3)


@lru_cache(maxsize=64)
def _load_zone(key: str) -> ZoneInfo:
    try:
        return ZoneInfo(key)
    except (ZoneInfoNotFoundError, ValueError, OSError):
        raise InvalidZone(key) from None


def resolve_zone(zone: str | ZoneInfo) -> ZoneInfo:
    """Return the ZoneInfo for an IANA key, raising InvalidZone when unknown."""
    if isinstance(zone, ZoneInfo):
        return zone
    if not isinstance(zone, str) or not zone.strip():
        raise InvalidZone(zone)
    return _load_zone(zone.strip())


def civil_date(year: int, month: int, day: int) -> date:
    if not 1 <= year <= 9999:
        raise InvalidCivilField(f"Year out of range: {year}")
    if not 1 <= month <= 12:
        raise InvalidCivilField(f"Month out of range: {month}")
    last = calendar.monthrange(year, month)[1]
    if not 1 <= day <= last:
        raise InvalidCivilField(f"Day out of range for {year:04d}-{month:02d}: {day}")
    return date(year, month, day)


def civil_time(hour: int, minute: int) -> time:
    if not 0 <= hour <= 23:
        raise InvalidCivilField(f"Hour out of range: {hour}")
    if not 0 <= minute <= 59:
        raise InvalidCivilField(f"Minute out of range: {minute}")
    return time(hour, minute)


def parse_civil_date(text: str) -> date:
    """Parse a "YYYY-MM-DD" date key."""
    m = _DATE_RE.match((text or "").strip())
    if not m:
        raise InvalidCivilField(f"Expected YYYY-MM-DD, got {text!r}")
    return civil_date(*(int(g) for g in m.groups()))


def parse_civil_time(text: str) -> time:
    """Parse an "HH:MM" time of day."""
    m = _TIME_RE.match((text or "").strip())
    if not m:
        raise InvalidCivilField(f"Expected HH:MM, got {text!r}")
    return civil_time(int(m.group(1)), int(m.group(2)))


def as_civil_date(value: date | str) -> date:
    if isinstance(value, datetime):
        raise InvalidCivilField("Expected a calendar date, got a datetime")
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return parse_civil_date(value)
    raise InvalidCivilField(f"Unsupported date value: {value!r}")


def as_civil_time(value: time | str) -> time:
    if isinstance(value, time):
        if value.tzinfo is not None:
            raise InvalidCivilField("Time of day must not carry a timezone")
        return time(value.hour, value.minute)
    if isinstance(value, str):
        return parse_civil_time(value)
    raise InvalidCivilField(f"Unsupported time value: {value!r}")


def date_key(day: date) -> str:
    return f"{day.year:04d}-{day.month:02d}-{day.day:02d}"


def _as_utc(instant: datetime) -> datetime:
    # Naive datetimes are stored as UTC throughout.
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc)


def _offset_at(instant: datetime, tz: ZoneInfo) -> timedelta:
    return instant.astimezone(tz).utcoffset() or timedelta(0)


def _wall_clock(instant: datetime, tz: ZoneInfo) -> datetime:
    return instant.astimezone(tz).replace(tzinfo=None)


def to_instant(day: date | str, time_of_day: time | str, zone: str | ZoneInfo) -> datetime:
    """Return the UTC instant at which the wall clock in ``zone`` reads ``day`` + ``time_of_day``.

    The civil fields are first read as if they were UTC, the zone offset at
    that provisional instant is subtracted, and the subtraction is redone
    with the offset found at the candidate when the two differ.

    - Wall times repeated by a fall-back transition resolve to the earlier
      instant.
    - Wall times skipped by a spring-forward transition do not exist; they
      resolve one gap-length later (02:30 in a 02:00-03:00 gap reads 03:30).
    """
    tz = resolve_zone(zone)
    wall = datetime.combine(as_civil_date(day), as_civil_time(time_of_day))
    provisional = wall.replace(tzinfo=timezone.utc)
    try:
        first = provisional - _offset_at(provisional, tz)
        second = provisional - _offset_at(first, tz)
        valid = [c for c in (first, second) if _wall_clock(c, tz) == wall]
        if not valid:
            return max(first, second)
        instant = min(valid)
        earlier = provisional - _offset_at(instant - _FOLD_LOOKBACK, tz)
    except OverflowError:
        raise InvalidCivilField(f"Date out of range: {wall.isoformat()}") from None
    if earlier < instant and _wall_clock(earlier, tz) == wall:
        return earlier
    return instant


def civil_parts(instant: datetime, zone: str | ZoneInfo) -> tuple[date, time]:
    local = _as_utc(instant).astimezone(resolve_zone(zone))
    return local.date(), time(local.hour, local.minute)


def format_civil(instant: datetime, zone: str | ZoneInfo) -> str:
    """Format an instant as "YYYY-MM-DD HH:MM" wall clock in ``zone``."""
    day, tod = civil_parts(instant, zone)
    return f"{date_key(day)} {tod.hour:02d}:{tod.minute:02d}"


def format_display(instant: datetime | None, zone: str | ZoneInfo) -> str:
    if instant is None:
        return ""
    local = _as_utc(instant).astimezone(resolve_zone(zone))
    return f"{local:%b} {local.day}, {local.year}, {local:%H:%M}"


def date_key_for_instant(instant: datetime, zone: str | ZoneInfo) -> str:
    return date_key(civil_parts(instant, zone)[0])


def today_date_key(zone: str | ZoneInfo, now: datetime | None = None) -> str:
    return date_key_for_instant(now or datetime.now(timezone.utc), zone)


def to_epoch_ms(instant: datetime) -> int:
    return int(_as_utc(instant).timestamp() * 1000)


def coerce_instant(value: Any) -> datetime | None:
    """Convert a stored timestamp into an aware UTC datetime.

    Accepts datetimes (naive = UTC), ISO-8601 text, epoch milliseconds and
    timestamp mappings carrying ``seconds`` / ``nanoseconds``. Returns None
    for missing or unreadable values.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return _as_utc(value)
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        s = value.strip()
        if not s:
            return None
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        try:
            return _as_utc(datetime.fromisoformat(s))
        except ValueError:
            return None
    if isinstance(value, Mapping):
        seconds = value.get("seconds")
        if isinstance(seconds, (int, float)) and not isinstance(seconds, bool):
            nanos = value.get("nanoseconds") or 0
            try:
                return datetime.fromtimestamp(seconds + nanos / 1e9, tz=timezone.utc)
            except (OverflowError, OSError, ValueError):
                return None
    return None


def parse_instant(value: str, zone: str | ZoneInfo) -> datetime:
    """Parse ISO-8601 text into a UTC instant.

    - Text with an offset or trailing Z is converted to UTC.
    - Naive text is read as wall clock in ``zone``.
    """
    s = (value or "").strip()
    if not s:
        raise InvalidCivilField("Empty datetime string")
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        raise InvalidCivilField(f"Invalid datetime: {value!r}") from None
    if dt.tzinfo is None:
        # Wall clock resolves to the minute; seconds ride on top of it.
        instant = to_instant(dt.date(), time(dt.hour, dt.minute), zone)
        return instant + timedelta(seconds=dt.second, microseconds=dt.microsecond)
    return dt.astimezone(timezone.utc)


def isoformat_z(instant: datetime) -> str:
    """Format an instant as an ISO string with trailing Z."""
    return _as_utc(instant).replace(tzinfo=None).isoformat() + "Z"


def to_naive_utc(instant: datetime) -> datetime:
    return _as_utc(instant).replace(tzinfo=None)
