"""Tests for daily recurrence expansion and one-off occurrences."""

from datetime import date, datetime, time, timedelta, timezone

import pytest

from divertboard.civiltime import format_civil
from divertboard.errors import InvalidCivilField, InvalidRange
from divertboard.recurrence import Occurrence, each_day, expand, is_overnight, single

REGINA = "America/Regina"
NY = "America/New_York"


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class TestIsOvernight:
    def test_later_end_is_same_day(self) -> None:
        assert not is_overnight("07:00", "19:00")

    def test_earlier_end_is_overnight(self) -> None:
        assert is_overnight("22:00", "06:00")

    def test_equal_times_are_overnight(self) -> None:
        assert is_overnight(time(8, 0), time(8, 0))

    def test_minutes_compared(self) -> None:
        assert not is_overnight("07:00", "07:01")
        assert is_overnight("07:01", "07:00")


class TestEachDay:
    def test_inclusive(self) -> None:
        assert list(each_day(date(2025, 1, 1), date(2025, 1, 3))) == [
            date(2025, 1, 1), date(2025, 1, 2), date(2025, 1, 3),
        ]

    def test_leap_february(self) -> None:
        assert list(each_day(date(2024, 2, 28), date(2024, 3, 1))) == [
            date(2024, 2, 28), date(2024, 2, 29), date(2024, 3, 1),
        ]

    def test_single_day(self) -> None:
        assert list(each_day(date(2025, 1, 1), date(2025, 1, 1))) == [date(2025, 1, 1)]


class TestExpand:
    def test_single_day_baseline(self) -> None:
        occs = expand("2025-03-08", "2025-03-08", "01:30", "03:30", REGINA)
        assert occs == [Occurrence(start=utc(2025, 3, 8, 7, 30), end=utc(2025, 3, 8, 9, 30), date_key="2025-03-08")]
        assert occs[0].end - occs[0].start == timedelta(hours=2)

    def test_same_day_windows(self) -> None:
        occs = expand("2025-01-01", "2025-01-03", "07:00", "19:00", REGINA)
        assert [o.date_key for o in occs] == ["2025-01-01", "2025-01-02", "2025-01-03"]
        for o in occs:
            assert o.end - o.start == timedelta(hours=12)
        assert occs[0].start == utc(2025, 1, 1, 13, 0)
        assert occs[0].end == utc(2025, 1, 2, 1, 0)

    def test_overnight_multi_day(self) -> None:
        occs = expand("2025-01-01", "2025-01-03", "22:00", "06:00", REGINA)
        assert [o.date_key for o in occs] == ["2025-01-01", "2025-01-02"]
        assert occs[0].start == utc(2025, 1, 2, 4, 0)
        assert occs[0].end == utc(2025, 1, 2, 12, 0)
        assert format_civil(occs[1].end, REGINA) == "2025-01-03 06:00"

    def test_overnight_single_day_spills_into_next_day(self) -> None:
        occs = expand("2025-01-01", "2025-01-01", "22:00", "06:00", REGINA)
        assert len(occs) == 1
        assert format_civil(occs[0].start, REGINA) == "2025-01-01 22:00"
        assert format_civil(occs[0].end, REGINA) == "2025-01-02 06:00"
        assert occs[0].date_key == "2025-01-01"

    def test_equal_times_run_a_full_day(self) -> None:
        occs = expand("2025-01-01", "2025-01-03", "08:00", "08:00", REGINA)
        assert [o.date_key for o in occs] == ["2025-01-01", "2025-01-02"]
        for o in occs:
            assert o.end - o.start == timedelta(hours=24)

    @pytest.mark.parametrize("days", [0, 1, 6, 30])
    def test_same_day_count(self, days: int) -> None:
        start = date(2025, 2, 20)
        end = start + timedelta(days=days)
        occs = expand(start, end, "07:00", "19:00", NY)
        assert len(occs) == days + 1
        assert all(o.end > o.start for o in occs)

    @pytest.mark.parametrize("days", [1, 2, 7, 31])
    def test_overnight_count_and_last_end(self, days: int) -> None:
        start = date(2025, 2, 20)
        end = start + timedelta(days=days)
        occs = expand(start, end, "19:00", "07:00", NY)
        assert len(occs) == days
        assert format_civil(occs[-1].end, NY) == f"{end.isoformat()} 07:00"

    def test_ascending_calendar_order(self) -> None:
        occs = expand("2024-12-30", "2025-01-02", "07:00", "19:00", REGINA)
        assert [o.date_key for o in occs] == ["2024-12-30", "2024-12-31", "2025-01-01", "2025-01-02"]
        assert [o.start for o in occs] == sorted(o.start for o in occs)

    def test_restartable(self) -> None:
        args = ("2025-01-01", "2025-01-05", "22:00", "06:00", NY)
        assert expand(*args) == expand(*args)

    def test_overnight_across_spring_forward(self) -> None:
        occs = expand("2025-03-08", "2025-03-10", "22:00", "06:00", NY)
        assert [o.date_key for o in occs] == ["2025-03-08", "2025-03-09"]
        # The first night loses an hour to the clock change.
        assert occs[0].end - occs[0].start == timedelta(hours=7)
        assert occs[1].end - occs[1].start == timedelta(hours=8)

    def test_end_before_start(self) -> None:
        with pytest.raises(InvalidRange):
            expand("2025-01-03", "2025-01-01", "07:00", "19:00", REGINA)

    def test_bad_time(self) -> None:
        with pytest.raises(InvalidCivilField):
            expand("2025-01-01", "2025-01-03", "07:00", "19:75", REGINA)

    def test_overnight_past_last_date(self) -> None:
        with pytest.raises(InvalidCivilField):
            expand(date(9999, 12, 31), date(9999, 12, 31), "22:00", "06:00", "UTC")

    def test_overnight_ending_on_last_date(self) -> None:
        [occ] = expand(date(9999, 12, 30), date(9999, 12, 31), "22:00", "06:00", "UTC")
        assert occ.date_key == "9999-12-30"
        assert occ.end == utc(9999, 12, 31, 6, 0)


class TestSingle:
    def test_open_ended_without_end(self) -> None:
        occ = single("2025-01-01", "07:00", zone=REGINA)
        assert occ.start == utc(2025, 1, 1, 13, 0)
        assert occ.end is None
        assert occ.is_open
        assert occ.date_key == "2025-01-01"

    def test_end_needs_date_and_time(self) -> None:
        assert single("2025-01-01", "07:00", "2025-01-02", None, REGINA).end is None
        assert single("2025-01-01", "07:00", None, "09:00", REGINA).end is None

    def test_closed(self) -> None:
        occ = single("2025-01-01", "07:00", "2025-01-02", "09:00", REGINA)
        assert occ.end == utc(2025, 1, 2, 15, 0)
        assert not occ.is_open

    def test_end_before_start(self) -> None:
        with pytest.raises(InvalidRange):
            single("2025-01-02", "07:00", "2025-01-01", "09:00", REGINA)
