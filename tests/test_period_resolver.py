from datetime import date, datetime
from decimal import Decimal

from payroll_api.services.clock import FixedClock
from payroll_api.services.period import (
    next_period, period_factor, resolve_bounds, resolve_period, semi_monthly_bounds,
)
from payroll_api.services.settings import SettingsSnapshot


def _clock(y=2025, m=1, d=27, hh=10):
    return FixedClock(datetime(y, m, d, hh, 0))


def test_in_progress_period_is_capped_at_today():
    s = SettingsSnapshot(period_start=date(2025, 1, 16), period_end=date(2025, 1, 31))
    p = resolve_period(s, _clock())
    assert p.capped_end == date(2025, 1, 27)
    assert p.in_progress
    # 16..27 Jan minus Sundays 19 and 26
    assert p.working_days == 10
    assert p.period_factor == Decimal("0.5")


def test_finished_period_uses_full_range():
    s = SettingsSnapshot(period_start=date(2025, 1, 1), period_end=date(2025, 1, 25))
    p = resolve_period(s, _clock())
    assert p.capped_end == date(2025, 1, 25)
    assert p.working_days == 22
    assert p.period_factor == Decimal("1")
    assert p.warnings == ()


def test_period_factor_threshold():
    assert period_factor(date(2025, 1, 16), date(2025, 1, 31)) == Decimal("0.5")
    assert period_factor(date(2025, 1, 1), date(2025, 1, 17)) == Decimal("1")


def test_future_period_falls_back_to_default_divisor():
    p = resolve_bounds(date(2025, 2, 1), date(2025, 2, 15), _clock())
    assert p.working_days == 22
    assert any("no working days" in w for w in p.warnings)


def test_inverted_period_is_flagged_not_raised():
    p = resolve_bounds(date(2025, 1, 20), date(2025, 1, 10), _clock(), fallback_days=20)
    assert p.working_days == 20
    assert len(p.warnings) == 2


def test_missing_period_defaults_to_semi_monthly_half():
    p = resolve_period(SettingsSnapshot(missing=True), _clock(d=5))
    assert (p.period_start, p.period_end) == (date(2025, 1, 1), date(2025, 1, 15))
    assert p.capped_end == date(2025, 1, 5)
    assert any("no pay period configured" in w for w in p.warnings)


def test_semi_monthly_bounds_end_of_february():
    assert semi_monthly_bounds(date(2024, 2, 20)) == (date(2024, 2, 16), date(2024, 2, 29))


def test_next_period_follows_configured_one():
    s = SettingsSnapshot(period_start=date(2025, 1, 16), period_end=date(2025, 1, 31))
    assert next_period(s, _clock()) == (date(2025, 2, 1), date(2025, 2, 15))
    s = SettingsSnapshot(period_start=date(2025, 2, 1), period_end=date(2025, 2, 15))
    assert next_period(s, _clock()) == (date(2025, 2, 16), date(2025, 2, 28))
