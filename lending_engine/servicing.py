"""
Loan Servicing Module

Caller-side helpers around the allocation engine: installment status and
overdue tracking, the sequential payment policy, redistribution of excess
payments over upcoming installments, late-fee assessment, loan status
derivation and payment-record consistency checks.
"""

from decimal import Decimal
from datetime import date
from dataclasses import replace
from enum import Enum
from typing import Iterable, List, Optional

from .currency import Money, money_min
from .schedule import Installment, InstallmentStatus


class LoanStatus(Enum):
    """Lifecycle status shown for a loan"""
    PENDING = "pending"          # Approved, not yet disbursed
    ACTIVE = "active"
    OVERDUE = "overdue"
    COMPLETED = "completed"


def refresh_status(installment: Installment) -> Installment:
    """Recompute an installment's status from the amount paid against it, late fee included"""
    if installment.paid_amount >= installment.total_due:
        status = InstallmentStatus.PAID
    elif installment.paid_amount.is_positive():
        status = InstallmentStatus.PARTIAL
    else:
        status = InstallmentStatus.PENDING

    if status == installment.status:
        return installment
    return replace(installment, status=status)


def days_overdue(installment: Installment, as_of: date) -> int:
    """Days past due for an unpaid installment, 0 otherwise"""
    if installment.status == InstallmentStatus.PAID:
        return 0
    if installment.due_date >= as_of:
        return 0
    return (as_of - installment.due_date).days


def earliest_unpaid(installments: Iterable[Installment]) -> Optional[Installment]:
    """Unpaid installment with the earliest due date"""
    unpaid = [i for i in installments if i.status != InstallmentStatus.PAID]
    if not unpaid:
        return None
    return min(unpaid, key=lambda i: (i.due_date, i.sequence))


def payable_installments(installments: List[Installment]) -> List[Installment]:
    """
    Installments that may receive a payment under the sequential payment policy

    Paid installments stay visible for reference, partial ones always need
    completion, and pending ones are payable only up to the current due one.
    """
    current = earliest_unpaid(installments)
    cutoff = current.sequence if current else 1

    payable = []
    for installment in sorted(installments, key=lambda i: i.sequence):
        if installment.status in (InstallmentStatus.PAID, InstallmentStatus.PARTIAL):
            payable.append(installment)
        elif installment.sequence <= cutoff:
            payable.append(installment)
    return payable


def _reduce(installment: Installment, reduction: Money) -> Installment:
    """Take `reduction` off principal first, then interest; a cleared installment becomes paid"""
    from_principal = money_min(reduction, installment.principal_component)
    from_interest = money_min(reduction - from_principal, installment.interest_component)
    applied = from_principal + from_interest
    balance = installment.balance - applied
    if balance.is_negative():
        balance = Money.zero(installment.currency)

    return refresh_status(replace(
        installment,
        amount=installment.amount - applied,
        principal_component=installment.principal_component - from_principal,
        interest_component=installment.interest_component - from_interest,
        balance=balance
    ))


def distribute_excess(
    installments: List[Installment],
    after_sequence: int,
    excess: Money,
    spread: int = 3
) -> List[Installment]:
    """
    Spread an overpayment evenly across the next pending installments

    Not meant for interest-only loans, whose principal payments go through
    PrincipalPaymentProcessor instead.

    Args:
        installments: Current schedule
        after_sequence: Sequence of the installment that received the payment
        excess: Overpaid amount
        spread: How many upcoming pending installments share the excess

    Returns:
        Full schedule ordered by sequence with the targets reduced
    """
    ordered = sorted(installments, key=lambda i: i.sequence)
    if not excess.is_positive() or spread < 1:
        return ordered

    targets = [
        i.sequence for i in ordered
        if i.sequence > after_sequence and i.status == InstallmentStatus.PENDING
    ][:spread]
    if not targets:
        return ordered

    share = excess / Decimal(len(targets))
    last_share = excess - share * Decimal(len(targets) - 1)

    result = []
    for installment in ordered:
        if installment.sequence in targets:
            amount = last_share if installment.sequence == targets[-1] else share
            installment = _reduce(installment, amount)
        result.append(installment)
    return result


def assess_late_fee(
    installment: Installment,
    as_of: date,
    late_fee_rate: Decimal,
    grace_period_days: int = 0
) -> Installment:
    """
    Charge a late fee on an overdue installment

    Fee = scheduled amount * late_fee_rate / 100, charged once; an installment
    that already carries a late fee is returned unchanged.
    """
    if installment.late_fee.is_positive():
        return installment
    if days_overdue(installment, as_of) <= grace_period_days:
        return installment

    fee = installment.amount * (late_fee_rate / Decimal('100'))
    if not fee.is_positive():
        return installment
    return replace(installment, late_fee=fee)


def outstanding_balance(total_payable: Money, installments: Iterable[Installment]) -> Money:
    """Total payable less everything paid against the schedule"""
    paid = Money.zero(total_payable.currency)
    for installment in installments:
        if installment.status in (InstallmentStatus.PAID, InstallmentStatus.PARTIAL):
            paid = paid + installment.paid_amount
    remaining = total_payable - paid
    if remaining.is_negative():
        return Money.zero(total_payable.currency)
    return remaining


def derive_loan_status(
    installments: List[Installment],
    as_of: date,
    disbursed: bool = True
) -> LoanStatus:
    """
    Loan status from its schedule

    Completed when every installment is paid, overdue when any unpaid
    installment is past due, active once disbursed, pending before that.
    """
    if installments and all(i.status == InstallmentStatus.PAID for i in installments):
        return LoanStatus.COMPLETED

    if any(days_overdue(i, as_of) > 0 for i in installments):
        return LoanStatus.OVERDUE

    paid_any = any(i.paid_amount.is_positive() for i in installments)
    if disbursed or paid_any:
        return LoanStatus.ACTIVE
    return LoanStatus.PENDING


def find_payment_inconsistencies(installment: Installment, payment_amounts: List[Money]) -> List[str]:
    """Compare an installment's paid amount against its payment records"""
    issues = []
    if installment.status == InstallmentStatus.PAID and installment.amount.is_positive() and not payment_amounts:
        issues.append("Installment marked as paid but no payment records found")

    recorded = Money.zero(installment.currency)
    for amount in payment_amounts:
        recorded = recorded + amount

    if abs((recorded - installment.paid_amount).amount) > installment.currency.minor_unit:
        issues.append(
            f"Payment records total ({recorded.to_string()}) doesn't match "
            f"installment paid amount ({installment.paid_amount.to_string()})"
        )
    return issues
