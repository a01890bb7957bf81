from datetime import date, datetime, time, timedelta, timezone

from payroll_api.services.clock import FixedClock, SystemClock


def test_now_is_in_organisation_offset():
    c = FixedClock(datetime(2025, 1, 27, 10, 0))
    assert c.now().utcoffset() == timedelta(hours=8)
    assert c.today() == date(2025, 1, 27)


def test_utc_instant_maps_to_local_day():
    # 17:30 UTC on the 26th is already the 27th in UTC+8
    c = FixedClock(datetime(2025, 1, 26, 17, 30, tzinfo=timezone.utc))
    assert c.today() == date(2025, 1, 27)


def test_day_boundaries():
    c = FixedClock(datetime(2025, 1, 27, 10, 0))
    start, end = c.start_of_day(date(2025, 1, 27)), c.end_of_day(date(2025, 1, 27))
    assert start.time() == time.min and end.time() == time.max
    assert start.utcoffset() == timedelta(hours=8)
    assert c.to_storage(start) == datetime(2025, 1, 26, 16, 0)


def test_sunday_is_the_default_off_day():
    c = FixedClock(datetime(2025, 1, 27, 10, 0))
    assert not c.is_working_day(date(2025, 1, 26))
    assert c.is_working_day(date(2025, 1, 25))
    # Jan 1..25 2025 has three Sundays
    assert c.count_working_days(date(2025, 1, 1), date(2025, 1, 25)) == 22


def test_weekly_off_day_is_configurable():
    c = FixedClock(datetime(2025, 1, 27, 10, 0), weekly_off_day=5)
    assert c.is_working_day(date(2025, 1, 26))
    assert not c.is_working_day(date(2025, 1, 25))

    none = FixedClock(datetime(2025, 1, 27, 10, 0), weekly_off_day=None)
    assert none.count_working_days(date(2025, 1, 20), date(2025, 1, 26)) == 7


def test_storage_round_trip_keeps_the_instant():
    c = FixedClock(datetime(2025, 1, 27, 10, 0))
    stored = c.to_storage(c.now())
    assert stored.tzinfo is None
    assert stored == datetime(2025, 1, 27, 2, 0)
    assert c.from_storage(stored) == c.now()
    assert c.from_storage(None) is None


def test_fixed_clock_advance():
    c = FixedClock(datetime(2025, 1, 27, 17, 59, 59))
    c.advance(seconds=2)
    assert c.now().time() == time(18, 0, 1)


def test_system_clock_uses_offset():
    c = SystemClock(offset_hours=-5)
    assert c.now().utcoffset() == timedelta(hours=-5)
