"""
Rate Conversion Module

Converts nominal interest rates between daily, monthly and annual bases and
into per-period rates for each repayment frequency. Conversion is by direct
ratio only; no compounding is applied. Also steps due dates forward from the
disbursement date.
"""

from decimal import Decimal
from datetime import date, timedelta
from enum import Enum
from typing import Dict, Tuple
import calendar


class RateBasis(Enum):
    """Period a nominal interest rate is quoted for"""
    DAILY = "daily"
    MONTHLY = "monthly"
    ANNUAL = "annual"


class RepaymentFrequency(Enum):
    """How often installments fall due"""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    BULLET = "bullet"      # Monthly interest, principal with the final installment


class TenureUnit(Enum):
    """Unit the loan tenure is expressed in"""
    DAYS = "days"
    WEEKS = "weeks"
    MONTHS = "months"


# (numerator, denominator) so that period_rate = rate * num / den.
# Kept rational so the inverse conversion is exact.
_PERIOD_FACTORS: Dict[Tuple[RateBasis, RepaymentFrequency], Tuple[int, int]] = {
    (RateBasis.DAILY, RepaymentFrequency.DAILY): (1, 1),
    (RateBasis.DAILY, RepaymentFrequency.WEEKLY): (7, 1),
    (RateBasis.DAILY, RepaymentFrequency.MONTHLY): (30, 1),
    (RateBasis.MONTHLY, RepaymentFrequency.DAILY): (1, 30),
    (RateBasis.MONTHLY, RepaymentFrequency.WEEKLY): (7, 30),
    (RateBasis.MONTHLY, RepaymentFrequency.MONTHLY): (1, 1),
    (RateBasis.ANNUAL, RepaymentFrequency.DAILY): (1, 365),
    (RateBasis.ANNUAL, RepaymentFrequency.WEEKLY): (1, 52),
    (RateBasis.ANNUAL, RepaymentFrequency.MONTHLY): (1, 12),
}

_ANNUAL_MULTIPLIERS = {
    RateBasis.DAILY: Decimal('365'),
    RateBasis.MONTHLY: Decimal('12'),
    RateBasis.ANNUAL: Decimal('1'),
}

# Tenure unit each frequency counts its periods in
SUPPORTED_TENURE_UNITS = {
    RepaymentFrequency.DAILY: TenureUnit.DAYS,
    RepaymentFrequency.WEEKLY: TenureUnit.WEEKS,
    RepaymentFrequency.MONTHLY: TenureUnit.MONTHS,
    RepaymentFrequency.BULLET: TenureUnit.MONTHS,
}


def period_of(frequency: RepaymentFrequency) -> RepaymentFrequency:
    """Period used for rate conversion; bullet loans accrue monthly"""
    if frequency == RepaymentFrequency.BULLET:
        return RepaymentFrequency.MONTHLY
    return frequency


def _factor(basis: RateBasis, frequency: RepaymentFrequency) -> Tuple[Decimal, Decimal]:
    numerator, denominator = _PERIOD_FACTORS[(basis, period_of(frequency))]
    return Decimal(numerator), Decimal(denominator)


def to_period_rate(rate: Decimal, basis: RateBasis, frequency: RepaymentFrequency) -> Decimal:
    """
    Convert a nominal percent rate into the percent rate for one repayment period

    Examples: 12 annual -> 1 monthly; 3 monthly -> 0.1 daily; 0.1 daily -> 0.7 weekly.
    """
    numerator, denominator = _factor(basis, frequency)
    return rate * numerator / denominator


def from_period_rate(period_rate: Decimal, basis: RateBasis, frequency: RepaymentFrequency) -> Decimal:
    """Inverse of to_period_rate"""
    numerator, denominator = _factor(basis, frequency)
    return period_rate * denominator / numerator


def to_annual_rate(rate: Decimal, basis: RateBasis) -> Decimal:
    """Annualise a nominal percent rate by simple multiplication"""
    return rate * _ANNUAL_MULTIPLIERS[basis]


def add_months(start_date: date, months: int) -> date:
    """Add months to a date, handling month-end edge cases"""
    month = start_date.month - 1 + months
    year = start_date.year + month // 12
    month = month % 12 + 1
    day = min(start_date.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def due_date(start_date: date, frequency: RepaymentFrequency, sequence: int) -> date:
    """Due date of installment `sequence`, counted from the disbursement date"""
    if frequency == RepaymentFrequency.DAILY:
        return start_date + timedelta(days=sequence)
    elif frequency == RepaymentFrequency.WEEKLY:
        return start_date + timedelta(days=7 * sequence)
    elif frequency in (RepaymentFrequency.MONTHLY, RepaymentFrequency.BULLET):
        return add_months(start_date, sequence)
    else:
        raise ValueError(f"Unsupported repayment frequency: {frequency}")
