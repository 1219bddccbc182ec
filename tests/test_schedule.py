"""
Test suite for amortization schedules

Tests reducing-balance, flat, bullet and interest-only schedule generation,
term validation and installment invariants.
"""

import pytest
from decimal import Decimal
from datetime import date

from lending_engine.currency import Money, Currency
from lending_engine.exceptions import InvalidTermsError
from lending_engine.rates import RateBasis, RepaymentFrequency, TenureUnit
from lending_engine.schedule import (
    AmortizationCalculator, CalculationMethod, Installment, InstallmentStatus,
    LoanTerms, annuity_payment
)


def make_terms(principal='100000', rate='12', tenure=12,
               frequency=RepaymentFrequency.MONTHLY,
               method=CalculationMethod.REDUCING,
               disbursed=date(2024, 1, 15),
               basis=RateBasis.ANNUAL, unit=None):
    return LoanTerms(
        principal=Money(Decimal(principal), Currency.INR),
        interest_rate=Decimal(rate) if rate is not None else None,
        tenure=tenure,
        repayment_frequency=frequency,
        calculation_method=method,
        disbursement_date=disbursed,
        rate_basis=basis,
        tenure_unit=unit
    )


class TestReducingSchedule:
    """Test equal-installment reducing-balance schedules"""

    def setup_method(self):
        self.calculator = AmortizationCalculator()
        self.result = self.calculator.compute_schedule(make_terms())

    def test_installment_amount(self):
        """Test the annuity installment for 100000 at 12% over 12 months"""
        assert self.result.installment_amount.amount == Decimal('8884.88')
        assert self.result.total_payable.amount == Decimal('106618.56')
        assert self.result.total_interest.amount == Decimal('6618.56')

    def test_first_installment_split(self):
        first = self.result.installments[0]
        assert first.sequence == 1
        assert first.interest_component.amount == Decimal('1000.00')
        assert first.principal_component.amount == Decimal('7884.88')
        assert first.balance.amount == Decimal('92115.12')
        assert first.status == InstallmentStatus.PENDING
        assert first.paid_amount.is_zero()

    def test_schedule_shape(self):
        installments = self.result.installments
        assert len(installments) == 12
        assert [i.sequence for i in installments] == list(range(1, 13))
        assert installments[0].due_date == date(2024, 2, 15)
        assert self.result.maturity_date == date(2025, 1, 15)

    def test_balance_reaches_zero(self):
        assert self.result.final_balance.is_zero()

    def test_balances_never_increase(self):
        balances = [i.balance for i in self.result.installments]
        for earlier, later in zip(balances, balances[1:]):
            assert later <= earlier

    def test_amounts_sum_to_total_payable(self):
        total = sum((i.amount.amount for i in self.result.installments), Decimal('0'))
        assert total == self.result.total_payable.amount

    def test_components_match_amount(self):
        for installment in self.result.installments:
            assert installment.principal_component + installment.interest_component == installment.amount

    def test_rates_reported(self):
        assert self.result.period_rate == Decimal('1')
        assert self.result.effective_rate == Decimal('12')
        assert self.result.interest_rate == Decimal('12')
        assert self.result.converged
        assert self.result.iterations == 0

    def test_daily_reducing_schedule(self):
        """Test a daily schedule with a daily rate basis"""
        terms = make_terms(principal='10000', rate='0.1', tenure=30,
                           frequency=RepaymentFrequency.DAILY,
                           basis=RateBasis.DAILY, disbursed=date(2024, 3, 1))
        result = self.calculator.compute_schedule(terms)

        assert len(result.installments) == 30
        assert result.installments[0].due_date == date(2024, 3, 2)
        assert result.maturity_date == date(2024, 3, 31)
        assert result.installments[0].interest_component.amount == Decimal('10.00')
        assert result.final_balance.is_zero()
        assert result.effective_rate == Decimal('36.5')


class TestAnnuityPayment:
    """Test the annuity formula"""

    def test_zero_rate_spreads_principal(self):
        assert annuity_payment(Decimal('1200'), Decimal('0'), 12) == Decimal('100')

    def test_known_value(self):
        payment = annuity_payment(Decimal('100000'), Decimal('0.01'), 12)
        assert payment.quantize(Decimal('0.01')) == Decimal('8884.88')


class TestInterestOnlySchedule:
    """Test interest-only schedules"""

    def test_interest_only_schedule(self):
        terms = make_terms(principal='50000', rate='24', tenure=6,
                           method=CalculationMethod.INTEREST_ONLY)
        result = AmortizationCalculator().compute_schedule(terms)

        assert result.installment_amount.amount == Decimal('1000.00')
        assert result.total_interest.amount == Decimal('6000.00')
        assert result.total_payable.amount == Decimal('56000.00')
        assert len(result.installments) == 6

        for installment in result.installments:
            assert installment.amount.amount == Decimal('1000.00')
            assert installment.interest_component.amount == Decimal('1000.00')
            assert installment.principal_component.is_zero()
            assert installment.balance.amount == Decimal('50000.00')

    def test_interest_only_daily(self):
        terms = make_terms(principal='10000', rate='0.1', tenure=5,
                           frequency=RepaymentFrequency.DAILY,
                           method=CalculationMethod.INTEREST_ONLY,
                           basis=RateBasis.DAILY, disbursed=date(2024, 3, 1))
        result = AmortizationCalculator().compute_schedule(terms)

        assert result.installment_amount.amount == Decimal('10.00')
        assert [i.due_date.day for i in result.installments] == [2, 3, 4, 5, 6]


class TestFlatSchedule:
    """Test flat-interest schedules"""

    def test_flat_monthly(self):
        terms = make_terms(principal='120000', method=CalculationMethod.FLAT)
        result = AmortizationCalculator().compute_schedule(terms)

        assert result.total_interest.amount == Decimal('14400.00')
        assert result.total_payable.amount == Decimal('134400.00')
        assert result.installment_amount.amount == Decimal('11200.00')

        for number, installment in enumerate(result.installments, start=1):
            assert installment.amount.amount == Decimal('11200.00')
            assert installment.principal_component.amount == Decimal('10000.00')
            assert installment.interest_component.amount == Decimal('1200.00')
            assert installment.balance.amount == Decimal('120000') - Decimal('10000') * number

        assert result.final_balance.is_zero()

    def test_flat_weekly(self):
        terms = make_terms(principal='52000', rate='52', tenure=4,
                           frequency=RepaymentFrequency.WEEKLY,
                           method=CalculationMethod.FLAT, disbursed=date(2024, 3, 1))
        result = AmortizationCalculator().compute_schedule(terms)

        assert result.total_interest.amount == Decimal('2080.00')
        assert result.installment_amount.amount == Decimal('13520.00')
        assert result.installments[0].principal_component.amount == Decimal('13000.00')
        assert result.installments[0].interest_component.amount == Decimal('520.00')
        assert result.installments[1].due_date == date(2024, 3, 15)
        assert result.maturity_date == date(2024, 3, 29)


class TestBulletSchedule:
    """Test bullet repayment: interest each month, principal at maturity"""

    def test_bullet_even_split(self):
        terms = make_terms(tenure=6, frequency=RepaymentFrequency.BULLET)
        result = AmortizationCalculator().compute_schedule(terms)

        assert result.total_interest.amount == Decimal('6000.00')
        assert result.installment_amount.amount == Decimal('1200.00')
        assert len(result.installments) == 6

        for installment in result.installments[:-1]:
            assert installment.amount.amount == Decimal('1200.00')
            assert installment.principal_component.is_zero()
            assert installment.balance.amount == Decimal('100000.00')

        final = result.installments[-1]
        assert final.amount.amount == Decimal('100000.00')
        assert final.principal_component.amount == Decimal('100000.00')
        assert final.interest_component.is_zero()
        assert final.balance.is_zero()

    def test_bullet_residue_lands_on_final_installment(self):
        """Test rounding residue of the interest share goes to the last installment"""
        terms = make_terms(rate='10', tenure=7, frequency=RepaymentFrequency.BULLET)
        result = AmortizationCalculator().compute_schedule(terms)

        assert result.total_interest.amount == Decimal('5833.33')
        assert result.installments[0].amount.amount == Decimal('972.22')
        final = result.installments[-1]
        assert final.interest_component.amount == Decimal('0.01')
        assert final.amount.amount == Decimal('100000.01')

        total = sum((i.amount.amount for i in result.installments), Decimal('0'))
        assert total == result.total_payable.amount

    def test_single_period_bullet(self):
        terms = make_terms(tenure=1, frequency=RepaymentFrequency.BULLET)
        result = AmortizationCalculator().compute_schedule(terms)

        assert len(result.installments) == 1
        only = result.installments[0]
        assert only.amount.amount == Decimal('101000.00')
        assert only.interest_component.amount == Decimal('1000.00')
        assert only.balance.is_zero()
        assert result.total_payable.amount == Decimal('101000.00')


class TestScheduleDates:
    """Test due date generation"""

    def test_month_end_disbursement(self):
        """Test that a month-end start clamps without drifting"""
        terms = make_terms(tenure=3, disbursed=date(2024, 1, 31))
        result = AmortizationCalculator().compute_schedule(terms)

        assert [i.due_date for i in result.installments] == [
            date(2024, 2, 29), date(2024, 3, 31), date(2024, 4, 30)
        ]

    def test_backdated_disbursement(self):
        terms = make_terms(tenure=2, disbursed=date(2020, 6, 1))
        result = AmortizationCalculator().compute_schedule(terms)
        assert result.installments[0].due_date == date(2020, 7, 1)


class TestTermValidation:
    """Test rejection of invalid loan terms"""

    def setup_method(self):
        self.calculator = AmortizationCalculator()

    def test_non_positive_principal(self):
        with pytest.raises(InvalidTermsError, match="Principal amount must be greater than 0"):
            self.calculator.compute_schedule(make_terms(principal='0'))

    def test_non_positive_rate(self):
        with pytest.raises(InvalidTermsError, match="Interest rate must be greater than 0"):
            self.calculator.compute_schedule(make_terms(rate='0'))

        with pytest.raises(InvalidTermsError, match="Interest rate must be greater than 0"):
            self.calculator.compute_schedule(make_terms(rate=None))

    def test_tenure_below_one(self):
        with pytest.raises(InvalidTermsError, match="Tenure must be at least 1"):
            self.calculator.compute_schedule(make_terms(tenure=0))

    def test_missing_disbursement_date(self):
        with pytest.raises(InvalidTermsError, match="Disbursement date is required"):
            self.calculator.compute_schedule(make_terms(disbursed=None))

    def test_mismatched_tenure_unit(self):
        terms = make_terms(frequency=RepaymentFrequency.WEEKLY, unit=TenureUnit.MONTHS)
        with pytest.raises(InvalidTermsError, match="requires tenure in weeks"):
            self.calculator.compute_schedule(terms)

    def test_flat_bullet_rejected(self):
        terms = make_terms(frequency=RepaymentFrequency.BULLET, method=CalculationMethod.FLAT)
        with pytest.raises(InvalidTermsError, match="Bullet repayment is not available"):
            self.calculator.compute_schedule(terms)

    def test_invalid_terms_is_value_error(self):
        with pytest.raises(ValueError):
            self.calculator.compute_schedule(make_terms(principal='-5'))

    def test_tenure_unit_defaults_from_frequency(self):
        assert make_terms(frequency=RepaymentFrequency.DAILY).tenure_unit == TenureUnit.DAYS
        assert make_terms(frequency=RepaymentFrequency.BULLET).tenure_unit == TenureUnit.MONTHS


class TestInstallment:
    """Test Installment record invariants"""

    def inr(self, value):
        return Money(Decimal(value), Currency.INR)

    def test_amount_must_equal_components(self):
        with pytest.raises(ValueError, match="does not equal"):
            Installment(
                sequence=1, due_date=date(2024, 2, 1),
                amount=self.inr('1100'), principal_component=self.inr('1000'),
                interest_component=self.inr('50'), balance=self.inr('0')
            )

    def test_negative_paid_amount_rejected(self):
        with pytest.raises(ValueError, match="Paid amount cannot be negative"):
            Installment(
                sequence=1, due_date=date(2024, 2, 1),
                amount=self.inr('1100'), principal_component=self.inr('1000'),
                interest_component=self.inr('100'), balance=self.inr('0'),
                paid_amount=self.inr('-1')
            )

    def test_totals_include_late_fee(self):
        installment = Installment(
            sequence=1, due_date=date(2024, 2, 1),
            amount=self.inr('1100'), principal_component=self.inr('1000'),
            interest_component=self.inr('100'), balance=self.inr('0'),
            paid_amount=self.inr('200'), late_fee=self.inr('50')
        )
        assert installment.total_due.amount == Decimal('1150.00')
        assert installment.outstanding.amount == Decimal('950.00')
        assert installment.is_pending
