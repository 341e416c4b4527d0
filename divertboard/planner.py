from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from .civiltime import civil_parts, coerce_instant, date_key, resolve_zone
from .errors import InvalidRange
from .payload import DivertStatus
from .recurrence import each_day

DEFAULT_BACKFILL_DAYS = 7


@dataclass(frozen=True)
class Window:
    start: datetime
    end: datetime


def default_window(now: datetime | None = None, hours: int = 24) -> Window:
    start = now or datetime.now(timezone.utc)
    return Window(start=start, end=start + timedelta(hours=hours))


def partitions_to_scan(
    window: Window,
    zone: str | ZoneInfo,
    backfill_days: int = DEFAULT_BACKFILL_DAYS,
) -> tuple[str, ...]:
    """Day keys whose partitions may hold an occurrence overlapping ``window``.

    Occurrences are bucketed by the civil day they start on, so the scan runs
    from ``backfill_days`` before the window's first day through its last
    day, in ascending order.
    """
    if backfill_days < 0:
        raise InvalidRange(f"backfill_days must be >= 0, got {backfill_days}")
    tz = resolve_zone(zone)
    try:
        first = civil_parts(window.start, tz)[0] - timedelta(days=backfill_days)
        last = civil_parts(window.end, tz)[0]
    except OverflowError:
        raise InvalidRange(f"Window {window.start} .. {window.end} with {backfill_days} backfill day(s) is out of range") from None
    return tuple(date_key(d) for d in each_day(first, last))


def overlaps(window: Window, start: datetime, end: Optional[datetime]) -> bool:
    """[start, end or +inf) against the closed window [window.start, window.end]."""
    w_start = coerce_instant(window.start)
    w_end = coerce_instant(window.end)
    s = coerce_instant(start)
    e = coerce_instant(end)
    return s <= w_end and (e is None or e > w_start)


def is_active_in_window(status: str, start: datetime, end: Optional[datetime], window: Window) -> bool:
    return status == DivertStatus.ACTIVE and overlaps(window, start, end)
