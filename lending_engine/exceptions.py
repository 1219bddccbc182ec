"""Exception hierarchy for the lending engine."""


class LendingEngineError(Exception):
    """Base exception for all lending engine errors."""


class InvalidTermsError(LendingEngineError, ValueError):
    """Raised when loan terms cannot produce a schedule."""


class NonPositivePaymentError(LendingEngineError, ValueError):
    """Raised when a payment amount is zero or negative."""


class InvalidPaymentDateError(LendingEngineError, ValueError):
    """Raised when a payment is dated before the loan was disbursed."""
