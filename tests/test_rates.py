from decimal import Decimal

import pytest

from payroll_api.services import rates as R


def test_late_ten_minutes_on_a_thousand_per_day():
    card = R.rate_card(Decimal("22000"), 22)
    assert card.daily_rate == Decimal("1000")
    assert R.money(R.late_deduction(600, card)) == Decimal("20.83")


def test_late_deduction_is_capped_at_half_a_day():
    card = R.rate_card(Decimal("22000"), 22)
    assert R.late_deduction(10 ** 9, card) == Decimal("500")
    assert R.late_deduction(-30, card) == Decimal("0")


def test_absence_uses_period_divisor():
    card = R.rate_card(Decimal("20000"), 11)
    assert R.money(R.absence_deduction(card)) == Decimal("1818.18")
    assert R.money(R.daily_rate_for_month(Decimal("20000"), 22)) == Decimal("909.09")


def test_partial_deduction_counts_hours_short():
    card = R.rate_card(Decimal("22000"), 22)
    assert R.partial_deduction(Decimal("6"), card) == Decimal("250")
    assert R.partial_deduction(Decimal("0"), card) == Decimal("1000")
    assert R.partial_deduction(Decimal("9"), card) == Decimal("0")


def test_earnings_are_hourly_proration():
    card = R.rate_card(Decimal("22000"), 22)
    assert R.earnings(Decimal("4"), card) == Decimal("500")


def test_no_rounding_between_steps():
    card = R.rate_card(Decimal("20000"), 11)
    # 3 absences summed before rounding, not 3 × 1818.18
    assert R.money(R.absence_deduction(card) * 3) == Decimal("5454.55")


def test_net_pay_floors_at_zero():
    assert R.net_pay(Decimal("1000"), Decimal("2500.50")) == Decimal("0")
    assert R.net_pay(Decimal("1000"), Decimal("250")) == Decimal("750")


def test_loan_payment_prorated_by_period_factor():
    assert R.loan_payment(Decimal("10000"), Decimal("10"), Decimal("0.5")) == Decimal("500")


def test_zero_working_days_is_rejected():
    with pytest.raises(ValueError):
        R.daily_rate_for_period(Decimal("1000"), 0)


def test_money_rounds_half_up():
    assert R.money(Decimal("0.125")) == Decimal("0.13")
    assert R.money("1") == Decimal("1.00")
