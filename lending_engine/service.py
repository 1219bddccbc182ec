"""
Loan Servicing Service Module

Caller-side orchestration around the pure engine: turns servicing commands
into engine calls, logs each invocation, and publishes the results as events
for persistence handlers. Nothing is published for a command unless every
engine step it runs has succeeded.
"""

from decimal import Decimal
from datetime import date
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional
import logging

from .config import EngineConfig, get_config
from .events import EventDispatcher, EventPayload, LendingEvent
from .exceptions import LendingEngineError
from .logging_config import get_logger, log_action
from .payments import (
    InterestOnlyLoanState, PaymentAllocationResult, PaymentAllocator,
    PrincipalPaymentProcessor, ScheduleRecalculator, apply_allocation
)
from .schedule import (
    AmortizationCalculator, AmortizationResult, Installment, InstallmentStatus, LoanTerms
)
from .schemas import InstallmentOverrideCommand, PrincipalPaymentCommand, RecordPaymentCommand
from .servicing import assess_late_fee, distribute_excess
from .solver import ReverseRateSolver


@dataclass
class PaymentOutcome:
    """Everything the caller must persist for one payment command"""
    loan_id: str
    allocation: PaymentAllocationResult
    installments: List[Installment]                   # Full schedule after the payment
    updated_installments: List[Installment] = field(default_factory=list)
    loan_completed: bool = False
    loan_state: Optional[InterestOnlyLoanState] = None


def _optional_decimal(value: Optional[str]) -> Optional[Decimal]:
    if value is None:
        return None
    return Decimal(value)


def _changed(before: List[Installment], after: List[Installment]) -> List[Installment]:
    previous = {i.sequence: i for i in before}
    return [i for i in after if previous.get(i.sequence) != i]


def _allocation_data(allocation: PaymentAllocationResult) -> Dict[str, Any]:
    data = {
        "payment_amount": str(allocation.payment_amount.amount),
        "late_fee_paid": str(allocation.late_fee_paid.amount),
        "interest_paid": str(allocation.interest_paid.amount),
        "principal_paid": str(allocation.principal_paid.amount),
        "excess_amount": str(allocation.excess_amount.amount),
        "remaining_balance": str(allocation.remaining_balance.amount),
        "currency": allocation.payment_amount.currency.code,
    }
    if allocation.new_status is not None:
        data["new_status"] = allocation.new_status.value
    if allocation.is_principal_payment:
        data.update({
            "elapsed_days": allocation.elapsed_days,
            "elapsed_interest_cleared": str(allocation.elapsed_interest_cleared.amount),
            "new_principal_balance": str(allocation.new_principal_balance.amount),
            "new_periodic_interest": str(allocation.new_periodic_interest.amount),
            "periodic_savings": str(allocation.periodic_savings.amount),
        })
    return data


class LoanServicingService:
    """
    Orchestrates schedule creation and payment recording for a loan
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        dispatcher: Optional[EventDispatcher] = None,
        logger: Optional[logging.Logger] = None
    ):
        self.config = config or get_config()
        self.dispatcher = dispatcher or EventDispatcher()
        self.logger = logger or get_logger("lending.service")

        self.calculator = AmortizationCalculator()
        self.solver = ReverseRateSolver(
            calculator=self.calculator,
            max_iterations=self.config.solver_max_iterations,
            tolerance=_optional_decimal(self.config.solver_tolerance),
            max_period_rate=Decimal(self.config.solver_max_period_rate)
        )
        self.allocator = PaymentAllocator()
        self.principal_processor = PrincipalPaymentProcessor(days_in_year=self.config.days_in_year)
        self.recalculator = ScheduleRecalculator()

    def create_schedule(self, loan_id: str, terms: LoanTerms) -> AmortizationResult:
        """
        Compute and announce the schedule for a new loan

        Raises:
            InvalidTermsError: If the terms are invalid
        """
        try:
            result = self.calculator.compute_schedule(terms)
        except LendingEngineError as e:
            log_action(self.logger, "warning", f"Schedule rejected: {e}",
                       loan_id=loan_id, action="compute_schedule")
            raise

        result.installments = [replace(i, loan_id=loan_id) for i in result.installments]

        log_action(self.logger, "info", "Schedule computed", loan_id=loan_id,
                   action="compute_schedule",
                   extra={
                       "method": terms.calculation_method.value,
                       "installments": len(result.installments),
                       "installment_amount": str(result.installment_amount.amount),
                       "total_payable": str(result.total_payable.amount),
                   })

        self.dispatcher.publish(EventPayload(
            event_type=LendingEvent.SCHEDULE_CREATED,
            entity_type="loan",
            entity_id=loan_id,
            data={
                "installment_amount": str(result.installment_amount.amount),
                "total_interest": str(result.total_interest.amount),
                "total_payable": str(result.total_payable.amount),
                "installments": len(result.installments),
                "maturity_date": result.maturity_date.isoformat(),
            }
        ))
        return result

    def override_installment(self, command: InstallmentOverrideCommand, terms: LoanTerms) -> AmortizationResult:
        """
        Rebuild a schedule around an operator-fixed installment amount

        A search that does not converge still returns its best estimate; the
        shortfall is logged and flagged on the result.
        """
        target = command.installment_amount.to_money()
        try:
            result = self.solver.solve_rate_for_installment(terms, target)
        except LendingEngineError as e:
            log_action(self.logger, "warning", f"Installment override rejected: {e}",
                       loan_id=command.loan_id, action="solve_rate")
            raise

        result.installments = [replace(i, loan_id=command.loan_id) for i in result.installments]

        level = "info" if result.converged else "warning"
        message = "Rate solved for installment" if result.converged else \
            "Rate search did not converge, using best estimate"
        log_action(self.logger, level, message, loan_id=command.loan_id, action="solve_rate",
                   extra={
                       "target_installment": str(target.amount),
                       "installment_amount": str(result.installment_amount.amount),
                       "interest_rate": str(result.interest_rate),
                       "iterations": result.iterations,
                       "converged": result.converged,
                   })

        self.dispatcher.publish(EventPayload(
            event_type=LendingEvent.RATE_SOLVED,
            entity_type="loan",
            entity_id=command.loan_id,
            data={
                "interest_rate": str(result.interest_rate),
                "effective_rate": str(result.effective_rate),
                "installment_amount": str(result.installment_amount.amount),
                "converged": result.converged,
            }
        ))
        return result

    def record_installment_payment(
        self,
        command: RecordPaymentCommand,
        installments: List[Installment],
        interest_only: bool = False
    ) -> PaymentOutcome:
        """
        Record a payment against one installment

        Excess is spread over upcoming pending installments unless the loan
        is interest-only.

        Raises:
            NonPositivePaymentError: If the amount is not positive
            ValueError: If the installment does not exist
        """
        target = next((i for i in installments if i.sequence == command.installment_sequence), None)
        if target is None:
            raise ValueError(
                f"Installment {command.installment_sequence} not found for loan {command.loan_id}"
            )

        amount = command.amount.to_money()
        try:
            allocation = self.allocator.allocate(target, amount)
        except LendingEngineError as e:
            log_action(self.logger, "warning", f"Payment rejected: {e}",
                       loan_id=command.loan_id, action="allocate_payment")
            raise

        paid = apply_allocation(target, allocation, command.payment_date)
        schedule = sorted(
            [paid if i.sequence == target.sequence else i for i in installments],
            key=lambda i: i.sequence
        )
        if allocation.is_overpayment and not interest_only:
            schedule = distribute_excess(
                schedule, target.sequence, allocation.excess_amount,
                spread=self.config.excess_spread_installments
            )

        completed = all(i.status == InstallmentStatus.PAID for i in schedule)
        outcome = PaymentOutcome(
            loan_id=command.loan_id,
            allocation=allocation,
            installments=schedule,
            updated_installments=_changed(installments, schedule),
            loan_completed=completed
        )

        log_action(self.logger, "info", "Installment payment allocated",
                   loan_id=command.loan_id, action="allocate_payment",
                   extra=dict(_allocation_data(allocation),
                              installment=target.sequence,
                              updated_installments=len(outcome.updated_installments)))

        self._publish_outcome(command.loan_id, LendingEvent.PAYMENT_RECORDED, outcome,
                              {"installment_sequence": target.sequence,
                               "payment_date": command.payment_date.isoformat(),
                               "payment_method": command.payment_method})
        return outcome

    def record_principal_payment(
        self,
        command: PrincipalPaymentCommand,
        loan: InterestOnlyLoanState,
        installments: List[Installment]
    ) -> PaymentOutcome:
        """
        Record a lump-sum principal payment on an interest-only loan

        Raises:
            NonPositivePaymentError: If the amount is not positive
            InvalidPaymentDateError: If the payment predates disbursement
        """
        amount = command.amount.to_money()
        try:
            allocation = self.principal_processor.apply_principal_payment(loan, amount, command.payment_date)
        except LendingEngineError as e:
            log_action(self.logger, "warning", f"Principal payment rejected: {e}",
                       loan_id=command.loan_id, action="principal_payment")
            raise

        schedule = self.recalculator.recalculate_future_installments(
            loan.loan_id, installments,
            allocation.new_principal_balance, allocation.new_periodic_interest
        )

        completed = (not allocation.new_principal_balance.is_positive() and
                     all(i.status == InstallmentStatus.PAID for i in schedule))
        outcome = PaymentOutcome(
            loan_id=command.loan_id,
            allocation=allocation,
            installments=schedule,
            updated_installments=_changed(installments, schedule),
            loan_completed=completed,
            loan_state=replace(loan, current_principal_balance=allocation.new_principal_balance)
        )

        log_action(self.logger, "info", "Principal payment applied",
                   loan_id=command.loan_id, action="principal_payment",
                   extra=dict(_allocation_data(allocation),
                              updated_installments=len(outcome.updated_installments)))

        self._publish_outcome(command.loan_id, LendingEvent.PRINCIPAL_REDUCED, outcome,
                              {"payment_date": command.payment_date.isoformat(),
                               "payment_method": command.payment_method})
        return outcome

    def assess_late_fees(
        self,
        loan_id: str,
        installments: List[Installment],
        as_of: date
    ) -> List[Installment]:
        """
        Charge the configured late fee on installments overdue as of `as_of`

        Uses `late_fee_rate` and `grace_period_days` from the config. Installments
        that already carry a fee are left alone, so repeated runs charge once.

        Returns:
            Full schedule ordered by sequence
        """
        rate = Decimal(self.config.late_fee_rate)
        schedule = [
            assess_late_fee(i, as_of, rate, grace_period_days=self.config.grace_period_days)
            for i in sorted(installments, key=lambda i: i.sequence)
        ]
        charged = _changed(installments, schedule)
        if not charged:
            return schedule

        fees = {str(i.sequence): str(i.late_fee.amount) for i in charged}
        log_action(self.logger, "info", "Late fees assessed", loan_id=loan_id,
                   action="assess_late_fee",
                   extra={"as_of": as_of.isoformat(), "late_fee_rate": str(rate), "fees": fees})

        self.dispatcher.publish(EventPayload(
            event_type=LendingEvent.LATE_FEES_ASSESSED,
            entity_type="loan",
            entity_id=loan_id,
            data={"as_of": as_of.isoformat(), "fees": fees}
        ))
        return schedule

    def _publish_outcome(
        self,
        loan_id: str,
        event_type: LendingEvent,
        outcome: PaymentOutcome,
        details: Dict[str, Any]
    ) -> None:
        self.dispatcher.publish(EventPayload(
            event_type=event_type,
            entity_type="loan",
            entity_id=loan_id,
            data=dict(_allocation_data(outcome.allocation), **details)
        ))

        self.dispatcher.publish(EventPayload(
            event_type=LendingEvent.INSTALLMENTS_UPDATED,
            entity_type="loan",
            entity_id=loan_id,
            data={
                "sequences": [i.sequence for i in outcome.updated_installments],
                "count": len(outcome.updated_installments),
            }
        ))

        if outcome.loan_completed:
            log_action(self.logger, "info", "Loan fully repaid", loan_id=loan_id, action="complete_loan")
            self.dispatcher.publish(EventPayload(
                event_type=LendingEvent.LOAN_COMPLETED,
                entity_type="loan",
                entity_id=loan_id,
                data={}
            ))
