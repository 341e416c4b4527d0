from __future__ import annotations
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterator, Optional
from zoneinfo import ZoneInfo

from dateutil.rrule import DAILY, rrule

from .civiltime import as_civil_date, as_civil_time, date_key, resolve_zone, to_instant
from .errors import InvalidCivilField, InvalidRange


@dataclass(frozen=True)
class Occurrence:
    start: datetime
    end: Optional[datetime]  # None while the divert is ongoing
    date_key: str

    @property
    def is_open(self) -> bool:
        return self.end is None


def is_overnight(daily_start: time | str, daily_end: time | str) -> bool:
    """An end time not later than the start time rolls into the next civil day."""
    return as_civil_time(daily_end) <= as_civil_time(daily_start)


def each_day(first: date, last: date) -> Iterator[date]:
    """Yield civil days from ``first`` to ``last`` inclusive."""
    rule = rrule(DAILY, dtstart=datetime.combine(first, time()), until=datetime.combine(last, time()))
    for dt in rule:
        yield dt.date()


def expand(
    start_date: date | str,
    end_date: date | str,
    daily_start: time | str,
    daily_end: time | str,
    zone: str | ZoneInfo,
) -> list[Occurrence]:
    """Expand a recurring daily window into one occurrence per start day.

    Overnight windows end on the day after they start. Over a multi-day range
    the last start day is the day before ``end_date`` so the final occurrence
    ends on ``end_date``; a single-day overnight range still yields one
    occurrence ending the next morning.
    """
    tz = resolve_zone(zone)
    first = as_civil_date(start_date)
    last = as_civil_date(end_date)
    t_start = as_civil_time(daily_start)
    t_end = as_civil_time(daily_end)
    if last < first:
        raise InvalidRange(f"End date {date_key(last)} is before start date {date_key(first)}")

    overnight = is_overnight(t_start, t_end)
    if overnight and last > first:
        last = last - timedelta(days=1)
    if overnight and last == date.max:
        raise InvalidCivilField(f"Overnight end falls after {date_key(last)}")

    out = []
    for day in each_day(first, last):
        end_day = day + timedelta(days=1) if overnight else day
        out.append(Occurrence(
            start=to_instant(day, t_start, tz),
            end=to_instant(end_day, t_end, tz),
            date_key=date_key(day),
        ))
    return out


def single(
    start_date: date | str,
    start_time: time | str,
    end_date: date | str | None = None,
    end_time: time | str | None = None,
    zone: str | ZoneInfo = "UTC",
) -> Occurrence:
    """Build a one-off occurrence; it stays open unless both end fields are given."""
    tz = resolve_zone(zone)
    day = as_civil_date(start_date)
    start = to_instant(day, start_time, tz)
    end = None
    if end_date and end_time:
        end = to_instant(end_date, end_time, tz)
        if end < start:
            raise InvalidRange("End is before start")
    return Occurrence(start=start, end=end, date_key=date_key(day))
