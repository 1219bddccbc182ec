"""
Test suite for rates module

Tests direct-ratio period rate conversion and due date stepping.
"""

import pytest
from decimal import Decimal
from datetime import date

from lending_engine.rates import (
    RateBasis, RepaymentFrequency, TenureUnit, SUPPORTED_TENURE_UNITS,
    to_period_rate, from_period_rate, to_annual_rate, add_months, due_date, period_of
)


class TestPeriodRateConversion:
    """Test conversion of nominal rates into per-period rates"""

    def test_annual_to_monthly(self):
        assert to_period_rate(Decimal('12'), RateBasis.ANNUAL, RepaymentFrequency.MONTHLY) == Decimal('1')

    def test_annual_to_weekly(self):
        assert to_period_rate(Decimal('52'), RateBasis.ANNUAL, RepaymentFrequency.WEEKLY) == Decimal('1')

    def test_annual_to_daily(self):
        assert to_period_rate(Decimal('36.5'), RateBasis.ANNUAL, RepaymentFrequency.DAILY) == Decimal('0.1')

    def test_monthly_to_daily_uses_thirty_days(self):
        assert to_period_rate(Decimal('3'), RateBasis.MONTHLY, RepaymentFrequency.DAILY) == Decimal('0.1')

    def test_monthly_to_weekly(self):
        assert to_period_rate(Decimal('3'), RateBasis.MONTHLY, RepaymentFrequency.WEEKLY) == Decimal('0.7')

    def test_daily_to_weekly_and_monthly(self):
        assert to_period_rate(Decimal('0.1'), RateBasis.DAILY, RepaymentFrequency.WEEKLY) == Decimal('0.7')
        assert to_period_rate(Decimal('0.1'), RateBasis.DAILY, RepaymentFrequency.MONTHLY) == Decimal('3.0')

    def test_same_basis_is_identity(self):
        assert to_period_rate(Decimal('2'), RateBasis.MONTHLY, RepaymentFrequency.MONTHLY) == Decimal('2')
        assert to_period_rate(Decimal('0.2'), RateBasis.DAILY, RepaymentFrequency.DAILY) == Decimal('0.2')

    def test_bullet_accrues_monthly(self):
        assert period_of(RepaymentFrequency.BULLET) == RepaymentFrequency.MONTHLY
        assert to_period_rate(Decimal('24'), RateBasis.ANNUAL, RepaymentFrequency.BULLET) == Decimal('2')

    @pytest.mark.parametrize("basis,frequency", [
        (RateBasis.ANNUAL, RepaymentFrequency.MONTHLY),
        (RateBasis.MONTHLY, RepaymentFrequency.DAILY),
        (RateBasis.DAILY, RepaymentFrequency.WEEKLY),
    ])
    def test_inverse_conversion(self, basis, frequency):
        period = to_period_rate(Decimal('24'), basis, frequency)
        assert from_period_rate(period, basis, frequency) == Decimal('24')

    def test_to_annual_rate(self):
        assert to_annual_rate(Decimal('0.1'), RateBasis.DAILY) == Decimal('36.5')
        assert to_annual_rate(Decimal('2'), RateBasis.MONTHLY) == Decimal('24')
        assert to_annual_rate(Decimal('24'), RateBasis.ANNUAL) == Decimal('24')


class TestDueDates:
    """Test due date stepping from the disbursement date"""

    def test_supported_tenure_units(self):
        assert SUPPORTED_TENURE_UNITS[RepaymentFrequency.DAILY] == TenureUnit.DAYS
        assert SUPPORTED_TENURE_UNITS[RepaymentFrequency.WEEKLY] == TenureUnit.WEEKS
        assert SUPPORTED_TENURE_UNITS[RepaymentFrequency.MONTHLY] == TenureUnit.MONTHS
        assert SUPPORTED_TENURE_UNITS[RepaymentFrequency.BULLET] == TenureUnit.MONTHS

    def test_add_months_clamps_month_end(self):
        assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
        assert add_months(date(2023, 1, 31), 1) == date(2023, 2, 28)
        assert add_months(date(2024, 11, 15), 3) == date(2025, 2, 15)

    def test_daily_and_weekly_steps(self):
        start = date(2024, 3, 1)
        assert due_date(start, RepaymentFrequency.DAILY, 1) == date(2024, 3, 2)
        assert due_date(start, RepaymentFrequency.WEEKLY, 2) == date(2024, 3, 15)

    def test_monthly_steps_do_not_drift(self):
        """Each date is computed from the start, so a short month does not shift later ones"""
        start = date(2024, 1, 31)
        assert due_date(start, RepaymentFrequency.MONTHLY, 1) == date(2024, 2, 29)
        assert due_date(start, RepaymentFrequency.MONTHLY, 2) == date(2024, 3, 31)
        assert due_date(start, RepaymentFrequency.BULLET, 3) == date(2024, 4, 30)
