"""
Amortization Schedule Module

Turns loan terms into a full installment schedule under one of three
structures: flat interest, reducing balance (including bullet repayment) and
interest-only. Pure computation: no storage, no clock, no logging.
"""

from decimal import Decimal, ROUND_DOWN
from datetime import date
from dataclasses import dataclass, field
from typing import List, Optional
from enum import Enum

from .currency import Money, Currency, round_to_currency
from .exceptions import InvalidTermsError
from .rates import (
    RateBasis, RepaymentFrequency, TenureUnit, SUPPORTED_TENURE_UNITS,
    to_period_rate, to_annual_rate, due_date
)


class CalculationMethod(Enum):
    """How interest and principal are spread across installments"""
    FLAT = "flat"                    # Interest on original principal, equal slices
    REDUCING = "reducing"            # Interest on declining balance
    INTEREST_ONLY = "interest_only"  # Interest every period, principal out of band


class InstallmentStatus(Enum):
    """Payment state of a single installment"""
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"


@dataclass
class LoanTerms:
    """Loan terms as entered by the operator"""
    principal: Money
    interest_rate: Optional[Decimal]    # Percent, e.g. Decimal('12') for 12%
    tenure: int                         # Number of repayment periods
    repayment_frequency: RepaymentFrequency
    calculation_method: CalculationMethod
    disbursement_date: Optional[date]
    rate_basis: RateBasis = RateBasis.ANNUAL
    tenure_unit: Optional[TenureUnit] = None

    def __post_init__(self):
        if self.interest_rate is not None and not isinstance(self.interest_rate, Decimal):
            self.interest_rate = Decimal(str(self.interest_rate))
        if self.tenure_unit is None:
            self.tenure_unit = SUPPORTED_TENURE_UNITS[self.repayment_frequency]

    @property
    def currency(self) -> Currency:
        return self.principal.currency

    @property
    def period_rate(self) -> Decimal:
        """Interest rate per repayment period, in percent"""
        return to_period_rate(self.interest_rate, self.rate_basis, self.repayment_frequency)

    def validate(self, require_rate: bool = True) -> None:
        """
        Check the terms can produce a schedule

        Raises:
            InvalidTermsError: On non-positive amounts, a missing disbursement
                date or an unsupported frequency/tenure combination
        """
        if not self.principal.is_positive():
            raise InvalidTermsError("Principal amount must be greater than 0")
        if require_rate and (self.interest_rate is None or self.interest_rate <= Decimal('0')):
            raise InvalidTermsError("Interest rate must be greater than 0")
        if not isinstance(self.tenure, int) or self.tenure < 1:
            raise InvalidTermsError("Tenure must be at least 1 period")
        if self.disbursement_date is None:
            raise InvalidTermsError("Disbursement date is required")

        expected_unit = SUPPORTED_TENURE_UNITS[self.repayment_frequency]
        if self.tenure_unit != expected_unit:
            raise InvalidTermsError(
                f"{self.repayment_frequency.value} repayment requires tenure in "
                f"{expected_unit.value}, got {self.tenure_unit.value}"
            )
        if (self.repayment_frequency == RepaymentFrequency.BULLET and
                self.calculation_method == CalculationMethod.FLAT):
            raise InvalidTermsError("Bullet repayment is not available for flat-interest loans")


@dataclass
class Installment:
    """One row of a repayment schedule"""
    sequence: int
    due_date: date
    amount: Money
    principal_component: Money
    interest_component: Money
    balance: Money                      # Principal outstanding after this installment
    paid_amount: Money = None
    status: InstallmentStatus = InstallmentStatus.PENDING
    late_fee: Money = None
    paid_date: Optional[date] = None
    id: Optional[str] = None
    loan_id: Optional[str] = None

    def __post_init__(self):
        zero_amount = Money.zero(self.amount.currency)
        if self.paid_amount is None:
            self.paid_amount = zero_amount
        if self.late_fee is None:
            self.late_fee = zero_amount

        if self.paid_amount.is_negative():
            raise ValueError("Paid amount cannot be negative")

        # Validate that amount equals principal + interest
        calculated = self.principal_component + self.interest_component
        if abs(calculated.amount - self.amount.amount) > self.amount.currency.minor_unit:
            raise ValueError(f"Installment amount {self.amount.to_string()} does not equal "
                             f"principal {self.principal_component.to_string()} + "
                             f"interest {self.interest_component.to_string()}")

    @property
    def currency(self) -> Currency:
        return self.amount.currency

    @property
    def total_due(self) -> Money:
        """Scheduled amount plus any late fee"""
        return self.amount + self.late_fee

    @property
    def outstanding(self) -> Money:
        """Amount still owed on this installment"""
        remaining = self.total_due - self.paid_amount
        if remaining.is_negative():
            return Money.zero(self.currency)
        return remaining

    @property
    def is_pending(self) -> bool:
        return self.status == InstallmentStatus.PENDING


@dataclass
class AmortizationResult:
    """Outcome of a schedule computation"""
    installment_amount: Money           # Periodic interest for interest-only loans
    total_interest: Money
    total_payable: Money
    effective_rate: Decimal             # Annualised nominal rate, percent
    period_rate: Decimal                # Rate per repayment period, percent
    interest_rate: Decimal              # Nominal rate in the terms' basis
    installments: List[Installment] = field(default_factory=list)
    converged: bool = True
    iterations: int = 0

    @property
    def final_balance(self) -> Money:
        return self.installments[-1].balance

    @property
    def maturity_date(self) -> date:
        return self.installments[-1].due_date


class AmortizationCalculator:
    """
    Produces installment schedules from loan terms
    """

    def compute_schedule(self, terms: LoanTerms) -> AmortizationResult:
        """
        Compute the full installment schedule for a loan

        Args:
            terms: Loan terms

        Returns:
            AmortizationResult with exactly `terms.tenure` installments

        Raises:
            InvalidTermsError: If the terms are invalid
        """
        terms.validate()

        if terms.calculation_method == CalculationMethod.INTEREST_ONLY:
            result = self._interest_only_schedule(terms)
        elif terms.calculation_method == CalculationMethod.FLAT:
            result = self._flat_schedule(terms)
        elif terms.repayment_frequency == RepaymentFrequency.BULLET:
            result = self._bullet_schedule(terms)
        elif terms.calculation_method == CalculationMethod.REDUCING:
            result = self._reducing_schedule(terms)
        else:
            raise InvalidTermsError(f"Unsupported calculation method: {terms.calculation_method}")

        return result

    def _result(
        self,
        terms: LoanTerms,
        installment_amount: Decimal,
        total_interest: Decimal,
        total_payable: Decimal,
        installments: List[Installment]
    ) -> AmortizationResult:
        currency = terms.currency
        return AmortizationResult(
            installment_amount=Money(installment_amount, currency),
            total_interest=Money(total_interest, currency),
            total_payable=Money(total_payable, currency),
            effective_rate=to_annual_rate(terms.interest_rate, terms.rate_basis),
            period_rate=terms.period_rate,
            interest_rate=terms.interest_rate,
            installments=installments
        )

    def _row(
        self,
        terms: LoanTerms,
        sequence: int,
        amount: Decimal,
        principal: Decimal,
        interest: Decimal,
        balance: Decimal
    ) -> Installment:
        currency = terms.currency
        if balance < Decimal('0'):
            balance = Decimal('0')
        return Installment(
            sequence=sequence,
            due_date=due_date(terms.disbursement_date, terms.repayment_frequency, sequence),
            amount=Money(amount, currency),
            principal_component=Money(principal, currency),
            interest_component=Money(interest, currency),
            balance=Money(balance, currency)
        )

    def _interest_only_schedule(self, terms: LoanTerms) -> AmortizationResult:
        """Interest every period; principal only moves through principal payments"""
        currency = terms.currency
        principal = terms.principal.amount
        periods = terms.tenure
        rate = terms.period_rate / Decimal('100')

        payment = round_to_currency(principal * rate, currency)
        installments = [
            self._row(terms, number, payment, Decimal('0'), payment, principal)
            for number in range(1, periods + 1)
        ]

        total_interest = payment * periods
        return self._result(terms, payment, total_interest, principal + total_interest, installments)

    def _flat_schedule(self, terms: LoanTerms) -> AmortizationResult:
        """Interest on the original principal, spread evenly with the principal"""
        currency = terms.currency
        principal = terms.principal.amount
        periods = terms.tenure
        rate = terms.period_rate / Decimal('100')

        total_interest = round_to_currency(principal * rate * periods, currency)
        payment = round_to_currency((principal + total_interest) / periods, currency)
        principal_slice = principal / periods
        principal_part = round_to_currency(principal_slice, currency)
        interest_part = round_to_currency(total_interest / periods, currency)

        installments = []
        for number in range(1, periods + 1):
            balance = round_to_currency(principal - principal_slice * number, currency)
            installments.append(
                self._row(terms, number, payment, principal_part, interest_part, balance)
            )

        return self._result(terms, payment, total_interest, principal + total_interest, installments)

    def _reducing_schedule(self, terms: LoanTerms) -> AmortizationResult:
        """Equal installments on a declining balance"""
        currency = terms.currency
        principal = terms.principal.amount
        periods = terms.tenure
        rate = terms.period_rate / Decimal('100')

        exact_payment = annuity_payment(principal, rate, periods)
        payment = round_to_currency(exact_payment, currency)

        installments = []
        balance = principal
        for number in range(1, periods + 1):
            interest = balance * rate
            balance -= exact_payment - interest
            interest_part = round_to_currency(interest, currency)
            installments.append(
                self._row(terms, number, payment, payment - interest_part, interest_part,
                          round_to_currency(balance, currency))
            )

        total_payable = payment * periods
        return self._result(terms, payment, total_payable - principal, total_payable, installments)

    def _bullet_schedule(self, terms: LoanTerms) -> AmortizationResult:
        """Interest-only installments with the whole principal due in the last one"""
        currency = terms.currency
        principal = terms.principal.amount
        periods = terms.tenure
        rate = terms.period_rate / Decimal('100')

        total_interest = round_to_currency(principal * rate * periods, currency)
        if periods == 1:
            amount = principal + total_interest
            installments = [self._row(terms, 1, amount, principal, total_interest, Decimal('0'))]
            return self._result(terms, amount, total_interest, amount, installments)

        # Rounded down so the final installment never carries negative interest
        share = (total_interest / (periods - 1)).quantize(currency.minor_unit, rounding=ROUND_DOWN)
        installments = [
            self._row(terms, number, share, Decimal('0'), share, principal)
            for number in range(1, periods)
        ]
        final_interest = total_interest - share * (periods - 1)
        installments.append(
            self._row(terms, periods, final_interest + principal, principal, final_interest, Decimal('0'))
        )

        return self._result(terms, share, total_interest, principal + total_interest, installments)


def annuity_payment(principal: Decimal, rate: Decimal, periods: int) -> Decimal:
    """
    Equal-installment payment: P * r * (1+r)^n / ((1+r)^n - 1)

    Args:
        principal: Amount borrowed
        rate: Rate per period as a fraction (0.01 for 1%)
        periods: Number of installments
    """
    if rate == Decimal('0'):
        return principal / periods
    factor = (Decimal('1') + rate) ** periods
    return principal * rate * factor / (factor - Decimal('1'))
