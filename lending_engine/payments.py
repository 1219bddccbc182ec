"""
Payment Allocation Module

Allocates incoming payments against installments (late fee, then interest,
then principal, then excess), applies lump-sum principal payments on
interest-only loans against interest that has actually accrued, and rewrites
pending installments after a principal reduction.

All functions are pure: they return new records and leave persistence,
excess redistribution and loan completion to the caller.
"""

from decimal import Decimal
from datetime import date, datetime
from dataclasses import dataclass, replace
from typing import List, Optional, Tuple

from .currency import Money, money_min, money_max
from .exceptions import InvalidPaymentDateError, NonPositivePaymentError
from .rates import RateBasis, RepaymentFrequency, to_annual_rate, to_period_rate
from .schedule import Installment, InstallmentStatus


@dataclass
class PaymentAllocationResult:
    """How one payment was split; consumed by the caller, never persisted here"""
    payment_amount: Money
    late_fee_paid: Money
    interest_paid: Money
    principal_paid: Money
    excess_amount: Money
    new_status: Optional[InstallmentStatus]
    remaining_balance: Money

    # Interest-only principal payments
    elapsed_days: Optional[int] = None
    elapsed_interest_due: Optional[Money] = None
    elapsed_interest_cleared: Optional[Money] = None
    principal_reduction: Optional[Money] = None
    new_principal_balance: Optional[Money] = None
    new_periodic_interest: Optional[Money] = None
    periodic_savings: Optional[Money] = None

    @property
    def is_overpayment(self) -> bool:
        return self.excess_amount.is_positive()

    @property
    def is_underpayment(self) -> bool:
        return self.new_status is not None and self.new_status != InstallmentStatus.PAID

    @property
    def is_principal_payment(self) -> bool:
        return self.new_principal_balance is not None


@dataclass
class InterestOnlyLoanState:
    """Current state of an interest-only loan as needed for principal payments"""
    loan_id: str
    current_principal_balance: Money
    interest_rate: Decimal              # Percent in rate_basis
    rate_basis: RateBasis
    repayment_frequency: RepaymentFrequency
    disbursement_date: date

    def __post_init__(self):
        if not isinstance(self.interest_rate, Decimal):
            self.interest_rate = Decimal(str(self.interest_rate))

    @property
    def periodic_rate(self) -> Decimal:
        """Rate per repayment period as a fraction"""
        return to_period_rate(self.interest_rate, self.rate_basis, self.repayment_frequency) / Decimal('100')

    def periodic_interest(self, balance: Money) -> Money:
        return Money(balance.amount * self.periodic_rate, balance.currency)


def _take(component: Money, available: Money) -> Tuple[Money, Money]:
    """Apply `available` to `component`; returns (amount taken, amount left over)"""
    taken = money_min(component, available)
    return taken, available - taken


def _as_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


class PaymentAllocator:
    """
    Splits a payment on one installment in fixed priority order
    """

    def allocate(self, installment: Installment, payment_amount: Money) -> PaymentAllocationResult:
        """
        Allocate a payment against an installment

        Amounts already paid on the installment are attributed first, in the
        same priority, to find what is still outstanding on each component.

        Args:
            installment: Installment being paid
            payment_amount: Incoming payment

        Returns:
            PaymentAllocationResult with the split and the resulting status

        Raises:
            NonPositivePaymentError: If payment_amount <= 0
        """
        if not payment_amount.is_positive():
            raise NonPositivePaymentError(
                f"Payment amount must be greater than 0, got {payment_amount.to_string()}"
            )
        if payment_amount.currency != installment.currency:
            raise ValueError("Payment currency must match installment currency")

        # What previous payments already covered
        prior = installment.paid_amount
        fee_covered, prior = _take(installment.late_fee, prior)
        interest_covered, prior = _take(installment.interest_component, prior)
        principal_covered, prior = _take(installment.principal_component, prior)

        remaining = payment_amount
        late_fee_paid, remaining = _take(installment.late_fee - fee_covered, remaining)
        interest_paid, remaining = _take(installment.interest_component - interest_covered, remaining)
        principal_paid, remaining = _take(installment.principal_component - principal_covered, remaining)

        paid_to_date = installment.paid_amount + payment_amount
        if paid_to_date >= installment.total_due:
            new_status = InstallmentStatus.PAID
        elif paid_to_date.is_positive():
            new_status = InstallmentStatus.PARTIAL
        else:
            new_status = InstallmentStatus.PENDING

        remaining_balance = money_max(installment.total_due - paid_to_date,
                                      Money.zero(installment.currency))

        return PaymentAllocationResult(
            payment_amount=payment_amount,
            late_fee_paid=late_fee_paid,
            interest_paid=interest_paid,
            principal_paid=principal_paid,
            excess_amount=remaining,
            new_status=new_status,
            remaining_balance=remaining_balance
        )


def apply_allocation(
    installment: Installment,
    result: PaymentAllocationResult,
    payment_date: Optional[date] = None
) -> Installment:
    """
    Return the installment with an allocation applied

    Excess is not credited to this installment; the caller redistributes it.
    """
    applied = result.payment_amount - result.excess_amount
    paid_date = installment.paid_date
    if result.new_status == InstallmentStatus.PAID:
        paid_date = payment_date or paid_date

    return replace(
        installment,
        paid_amount=installment.paid_amount + applied,
        status=result.new_status,
        paid_date=paid_date
    )


class PrincipalPaymentProcessor:
    """
    Lump-sum principal payments on interest-only loans

    Interest is charged only for days that have actually elapsed since
    disbursement, on the current principal balance, as simple daily interest.
    """

    def __init__(self, days_in_year: int = 365):
        self.days_in_year = Decimal(days_in_year)

    def apply_principal_payment(
        self,
        loan: InterestOnlyLoanState,
        payment_amount: Money,
        payment_date: date
    ) -> PaymentAllocationResult:
        """
        Split a payment between elapsed interest and principal reduction

        Args:
            loan: Interest-only loan state
            payment_amount: Incoming payment
            payment_date: Caller-supplied payment date (may be backdated)

        Returns:
            PaymentAllocationResult including new balance, new periodic
            interest and periodic savings

        Raises:
            NonPositivePaymentError: If payment_amount <= 0
            InvalidPaymentDateError: If the payment predates disbursement
        """
        if not payment_amount.is_positive():
            raise NonPositivePaymentError(
                f"Payment amount must be greater than 0, got {payment_amount.to_string()}"
            )

        balance = loan.current_principal_balance
        currency = balance.currency
        zero_amount = Money.zero(currency)

        elapsed_days = (_as_date(payment_date) - _as_date(loan.disbursement_date)).days
        if elapsed_days < 0:
            raise InvalidPaymentDateError(
                f"Payment date {payment_date} is before disbursement date {loan.disbursement_date}"
            )

        annual_rate = to_annual_rate(loan.interest_rate, loan.rate_basis)
        daily_rate = annual_rate / self.days_in_year / Decimal('100')
        due_interest = Money(balance.amount * daily_rate * elapsed_days, currency)

        interest_cleared = money_min(payment_amount, due_interest)
        principal_reduction = money_min(money_max(payment_amount - interest_cleared, zero_amount), balance)
        excess = payment_amount - interest_cleared - principal_reduction
        new_balance = balance - principal_reduction

        old_periodic = loan.periodic_interest(balance)
        new_periodic = loan.periodic_interest(new_balance)

        return PaymentAllocationResult(
            payment_amount=payment_amount,
            late_fee_paid=zero_amount,
            interest_paid=interest_cleared,
            principal_paid=principal_reduction,
            excess_amount=excess,
            new_status=None,
            remaining_balance=new_balance,
            elapsed_days=elapsed_days,
            elapsed_interest_due=due_interest,
            elapsed_interest_cleared=interest_cleared,
            principal_reduction=principal_reduction,
            new_principal_balance=new_balance,
            new_periodic_interest=new_periodic,
            periodic_savings=old_periodic - new_periodic
        )


class ScheduleRecalculator:
    """
    Rewrites pending installments of an interest-only loan after a principal change
    """

    def recalculate_future_installments(
        self,
        loan_id: Optional[str],
        installments: List[Installment],
        new_principal_balance: Money,
        new_periodic_interest: Money
    ) -> List[Installment]:
        """
        Regenerate pending installments for a new principal balance

        Paid and partial installments pass through untouched. Applying the
        same balance twice yields the same schedule.

        Args:
            loan_id: Loan the installments belong to
            installments: Current schedule
            new_principal_balance: Principal outstanding after the payment
            new_periodic_interest: Interest per period on the new balance

        Returns:
            Full schedule ordered by sequence, with pending installments rewritten
        """
        if new_periodic_interest.is_negative():
            raise ValueError("Periodic interest cannot be negative")

        settled = not new_principal_balance.is_positive()
        updated = []
        for installment in sorted(installments, key=lambda i: i.sequence):
            if loan_id and installment.loan_id and installment.loan_id != loan_id:
                raise ValueError(
                    f"Installment {installment.sequence} belongs to loan {installment.loan_id}, not {loan_id}"
                )

            if not installment.is_pending:
                updated.append(installment)
                continue

            if settled:
                zero_amount = Money.zero(installment.currency)
                updated.append(replace(
                    installment,
                    amount=zero_amount,
                    principal_component=zero_amount,
                    interest_component=zero_amount,
                    balance=zero_amount,
                    status=InstallmentStatus.PAID
                ))
            else:
                updated.append(replace(
                    installment,
                    amount=new_periodic_interest,
                    principal_component=Money.zero(installment.currency),
                    interest_component=new_periodic_interest,
                    balance=new_principal_balance
                ))

        return updated
