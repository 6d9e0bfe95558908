"""
Error taxonomy for financial aggregation and insurance reconciliation.

Aggregations never raise for "no data"; reconciliation raises every error below
and callers must surface it instead of recording a payment.
"""
from typing import Any, Optional


class FinanceError(Exception):
    """Base class for finance engine errors."""
    pass


class InvalidAmount(FinanceError, ValueError):
    """Raised for malformed, NaN, infinite or (where required) negative money input."""

    def __init__(self, value: Any, reason: str = "not a valid monetary amount"):
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid amount {value!r}: {reason}")


class NoMatchingTransactions(FinanceError):
    """Raised when reconciliation is requested for an insurer/period with no claims."""

    def __init__(self, insurer_id: int, period_key: str):
        self.insurer_id = insurer_id
        self.period_key = period_key
        super().__init__(
            f"No transactions found for insurer {insurer_id} in period {period_key}"
        )


class ZeroExpectedAmount(FinanceError):
    """Raised when the matched transactions expect nothing from the insurer."""

    def __init__(self, insurer_id: int, period_key: str):
        self.insurer_id = insurer_id
        self.period_key = period_key
        super().__init__(
            f"Total expected amount is zero for insurer {insurer_id} in period {period_key}"
        )


class UnknownInsurer(FinanceError, LookupError):
    """Raised when an insurer id is not present in the loaded insurer set."""

    def __init__(self, insurer_id: Any):
        self.insurer_id = insurer_id
        super().__init__(f"Insurer {insurer_id} not found")


class CommitConflict(FinanceError):
    """
    Raised when the store rejects an atomic write batch.

    Safe to retry only by re-running the whole reconciliation from a fresh read.
    """

    def __init__(self, message: str, transaction_id: Optional[int] = None):
        self.transaction_id = transaction_id
        super().__init__(message)


class CalculationValidationError(FinanceError):
    """Exception raised when calculation validation fails."""
    pass
