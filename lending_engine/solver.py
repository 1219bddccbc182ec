"""
Reverse Rate Solver Module

Infers the interest rate implied by an operator-chosen installment amount and
recomputes the schedule at that rate. Flat, interest-only and bullet loans are
solved in closed form; reducing-balance loans use a bracketed bisection that
tracks convergence explicitly and degrades to its best estimate instead of
failing.
"""

from decimal import Decimal
from dataclasses import dataclass, replace
from typing import Optional

from .currency import Money
from .exceptions import InvalidTermsError
from .rates import RepaymentFrequency, from_period_rate
from .schedule import (
    AmortizationCalculator, AmortizationResult, CalculationMethod, LoanTerms,
    annuity_payment
)

RATE_QUANTUM = Decimal('1E-10')

# Decimal places tried, shortest first, when reporting a solved rate
RATE_PLACES = (2, 4, 6, 8)


@dataclass
class BisectionOutcome:
    """Best period rate found by the bisection search"""
    rate: Decimal               # Fraction per period
    error: Decimal              # |installment(rate) - target|
    iterations: int
    converged: bool


class ReverseRateSolver:
    """
    Solves for the rate that reproduces a target installment
    """

    def __init__(
        self,
        calculator: Optional[AmortizationCalculator] = None,
        max_iterations: int = 200,
        tolerance: Optional[Decimal] = None,
        max_period_rate: Decimal = Decimal('100')
    ):
        self.calculator = calculator or AmortizationCalculator()
        self.max_iterations = max_iterations
        self.tolerance = tolerance                  # None = one minor unit of the loan currency
        self.max_period_rate = max_period_rate      # Percent per period

    def solve_rate_for_installment(self, terms: LoanTerms, target_installment: Money) -> AmortizationResult:
        """
        Infer the interest rate for a fixed installment and rebuild the schedule

        Args:
            terms: Loan terms; interest_rate is ignored
            target_installment: Installment amount chosen by the operator

        Returns:
            AmortizationResult computed at the inferred rate, with `converged`
            and `iterations` describing the search

        Raises:
            InvalidTermsError: If the terms are invalid or no positive rate can
                produce the target installment
        """
        terms.validate(require_rate=False)
        if target_installment.currency != terms.currency:
            raise InvalidTermsError("Installment currency must match principal currency")
        if not target_installment.is_positive():
            raise InvalidTermsError("Target installment must be greater than 0")

        principal = terms.principal.amount
        periods = Decimal(terms.tenure)
        target = target_installment.amount
        converged = True
        iterations = 0

        if terms.calculation_method == CalculationMethod.INTEREST_ONLY:
            period_rate = target / principal
        elif terms.calculation_method == CalculationMethod.FLAT:
            total_interest = target * periods - principal
            if total_interest <= Decimal('0'):
                raise InvalidTermsError(
                    f"Installment {target_installment.to_string()} does not cover the principal"
                )
            period_rate = total_interest / (principal * periods)
        elif terms.repayment_frequency == RepaymentFrequency.BULLET:
            period_rate = self._bullet_rate(principal, terms.tenure, target, target_installment)
        else:
            if target * periods <= principal:
                raise InvalidTermsError(
                    f"Installment {target_installment.to_string()} does not cover the principal"
                )
            outcome = self._bisect(principal, terms.tenure, target, self._tolerance_for(terms))
            period_rate = outcome.rate
            converged = outcome.converged
            iterations = outcome.iterations

        nominal = from_period_rate(period_rate * Decimal('100'), terms.rate_basis,
                                   terms.repayment_frequency)
        result = self._shortest_rate_schedule(terms, nominal, target_installment)
        result.converged = converged
        result.iterations = iterations
        return result

    def _shortest_rate_schedule(
        self,
        terms: LoanTerms,
        nominal: Decimal,
        target_installment: Money
    ) -> AmortizationResult:
        """
        Schedule at the shortest rounding of `nominal` that still reproduces the target

        Several rates round to the same installment. Falls back to
        RATE_QUANTUM when no shorter rate matches.
        """
        for places in RATE_PLACES:
            candidate = nominal.quantize(Decimal(1).scaleb(-places))
            if candidate <= Decimal('0'):
                continue
            result = self.calculator.compute_schedule(replace(terms, interest_rate=candidate.normalize()))
            if result.installment_amount == target_installment:
                return result

        return self.calculator.compute_schedule(
            replace(terms, interest_rate=nominal.quantize(RATE_QUANTUM).normalize())
        )

    def _tolerance_for(self, terms: LoanTerms) -> Decimal:
        if self.tolerance is not None:
            return self.tolerance
        return terms.currency.minor_unit

    def _bullet_rate(self, principal: Decimal, periods: int, target: Decimal, target_installment: Money) -> Decimal:
        if periods == 1:
            total_interest = target - principal
        else:
            total_interest = target * (periods - 1)
        if total_interest <= Decimal('0'):
            raise InvalidTermsError(
                f"Installment {target_installment.to_string()} does not cover the principal"
            )
        return total_interest / (principal * periods)

    def _bisect(self, principal: Decimal, periods: int, target: Decimal, tolerance: Decimal) -> BisectionOutcome:
        """
        Bracketed bisection on the per-period rate

        The installment grows monotonically with the rate, so the root stays
        inside [low, high] and the bracket halves on every step.
        """
        low = Decimal('0')
        high = self.max_period_rate / Decimal('100')

        best_rate = high
        best_error = abs(annuity_payment(principal, high, periods) - target)

        for iteration in range(1, self.max_iterations + 1):
            mid = (low + high) / 2
            error = annuity_payment(principal, mid, periods) - target

            if abs(error) < best_error:
                best_rate = mid
                best_error = abs(error)

            if abs(error) <= tolerance:
                return BisectionOutcome(rate=mid, error=abs(error), iterations=iteration, converged=True)

            if error > 0:
                high = mid
            else:
                low = mid

        return BisectionOutcome(
            rate=best_rate,
            error=best_error,
            iterations=self.max_iterations,
            converged=best_error <= tolerance
        )
