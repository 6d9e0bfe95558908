"""
Insurance reconciliation engine.

Distributes an insurer's actually received bulk payment for a period across that
insurer's transactions in the period, proportionally to each transaction's
expected coverage.

Reconciliation is two-phase:
1. ``plan`` reads the ledger and computes every new actual-paid amount with no
   side effects.
2. ``commit`` hands the whole batch to the store, which applies all rows or none.

``reconcile`` runs both and, on CommitConflict, starts over from a fresh read.
Re-running with the same inputs recomputes from the same expected amounts, so it
overwrites rather than compounds.
"""
import logging
from decimal import Decimal
from typing import Any, List, Optional

from core.config import RECONCILIATION_MAX_ATTEMPTS
from services.finance_errors import (
    CalculationValidationError, CommitConflict, NoMatchingTransactions, UnknownInsurer, ZeroExpectedAmount,
)
from services.finance_types import (
    ActualPaidUpdate, AllocationLine, InsurancePaymentEntry, ReconciliationPlan, TransactionRecord,
)
from services.ledger_store import LedgerStore
from services.money import Money
from utils.datetime_utils import Window

logger = logging.getLogger(__name__)


def default_period_key(window: Window) -> str:
    start, end = window
    return f"{start.isoformat()}/{end.isoformat()}"


class ReconciliationEngine:
    """Plans and commits insurer payment distributions against a LedgerStore."""

    def __init__(self, store: LedgerStore, max_attempts: int = RECONCILIATION_MAX_ATTEMPTS):
        self.store = store
        self.max_attempts = max(1, max_attempts)

    @staticmethod
    def _spread_remainder(allocations: List[AllocationLine], remainder: Money) -> None:
        """
        Hand the rounding remainder out one minor unit per line.

        Walks backwards from the last line (ascending id) with a non-zero expected
        amount. A negative unit is never taken from a line already at zero, so no
        allocation drops below zero when the received amount is non-negative.
        Half-up rounding leaves at most half a unit per line, so there are always
        enough lines and none moves by more than one unit.
        """
        units = remainder.to_minor_units()
        if units == 0:
            return
        step = Money.from_minor_units(1 if units > 0 else -1)
        candidates = [line for line in reversed(allocations) if not line['expected_amount'].is_zero()]
        for line in candidates:
            if units == 0:
                break
            if units < 0 and not line['new_actual_paid'] > Money.zero():
                continue
            line['new_actual_paid'] = line['new_actual_paid'] + step
            units -= 1 if units > 0 else -1
        if units != 0:
            raise CalculationValidationError(
                f"Could not spread rounding remainder {remainder} over {len(candidates)} allocations"
            )

    @staticmethod
    def compute_plan(
        insurer_id: int,
        window: Window,
        actual_received_amount: Any,
        transactions: List[TransactionRecord],
        period_key: Optional[str] = None,
        notes: Optional[str] = None
    ) -> ReconciliationPlan:
        """
        Compute the allocation for an already-read transaction set.

        Each transaction gets ``round2(expected * received / total_expected)``.
        The rounding remainder is spread one minor unit per transaction, starting
        from the last transaction (ascending id) whose expected amount is non-zero,
        so the allocations sum to the received amount exactly and none is negative.

        Raises:
            InvalidAmount: If the received amount is malformed or negative
            NoMatchingTransactions: If the transaction set is empty
            ZeroExpectedAmount: If the transactions expect nothing from the insurer
        """
        received = Money.parse_non_negative(actual_received_amount)
        key = period_key or default_period_key(window)

        if not transactions:
            raise NoMatchingTransactions(insurer_id, key)

        ordered = sorted(transactions, key=lambda t: t['id'])
        total_expected = Money.sum(t['insurance_expected_amount'] for t in ordered)
        if total_expected.is_zero():
            raise ZeroExpectedAmount(insurer_id, key)

        ratio: Decimal = received.ratio_to(total_expected)

        allocations: List[AllocationLine] = []
        for transaction in ordered:
            expected = transaction['insurance_expected_amount']
            allocations.append(AllocationLine(
                transaction_id=transaction['id'],
                expected_amount=expected,
                previous_actual_paid=transaction['insurance_actual_paid_amount'],
                new_actual_paid=(expected * ratio).round2(),
                version=transaction['version'],
            ))

        remainder = received - Money.sum(line['new_actual_paid'] for line in allocations)
        ReconciliationEngine._spread_remainder(allocations, remainder)

        return ReconciliationPlan(
            insurer_id=insurer_id,
            period_key=key,
            period_start=window[0],
            period_end=window[1],
            actual_received_amount=received,
            total_expected=total_expected,
            ratio=ratio,
            allocations=allocations,
            remainder=remainder,
            notes=notes,
        )

    def plan(
        self,
        insurer_id: int,
        window: Window,
        actual_received_amount: Any,
        period_key: Optional[str] = None,
        notes: Optional[str] = None
    ) -> ReconciliationPlan:
        """
        Read the insurer's transactions in the window and compute the allocation.

        Raises:
            InvalidAmount: If the received amount is malformed or negative
            UnknownInsurer: If the insurer is not in the loaded insurer set
            NoMatchingTransactions: If the insurer has no transactions in the window
            ZeroExpectedAmount: If the transactions expect nothing from the insurer
        """
        # Validate before touching the store
        Money.parse_non_negative(actual_received_amount)

        insurer_ids = {insurer['id'] for insurer in self.store.list_insurers()}
        if insurer_id not in insurer_ids:
            raise UnknownInsurer(insurer_id)

        start, end = window
        transactions = self.store.list_transactions(start, end, insurer_id=insurer_id)
        return self.compute_plan(
            insurer_id, window, actual_received_amount, transactions, period_key, notes
        )

    def commit(self, plan: ReconciliationPlan) -> None:
        """
        Apply a plan atomically, together with the insurer payment record.

        Raises:
            CommitConflict: If the store rejected the batch
        """
        batch: List[ActualPaidUpdate] = [
            ActualPaidUpdate(
                transaction_id=line['transaction_id'],
                amount=line['new_actual_paid'],
                expected_version=line['version'],
            )
            for line in plan['allocations']
        ]
        payment = InsurancePaymentEntry(
            insurer_id=plan['insurer_id'],
            period_start=plan['period_start'],
            period_end=plan['period_end'],
            amount_received=plan['actual_received_amount'],
            notes=plan['notes'],
        )
        self.store.commit_actual_paid(batch, payment)
        logger.info(
            f"Reconciled insurer {plan['insurer_id']} for {plan['period_key']}: "
            f"received={plan['actual_received_amount']}, expected={plan['total_expected']}, "
            f"transactions={len(batch)}, remainder={plan['remainder']}"
        )

    def reconcile(
        self,
        insurer_id: int,
        window: Window,
        actual_received_amount: Any,
        period_key: Optional[str] = None,
        notes: Optional[str] = None
    ) -> ReconciliationPlan:
        """
        Plan and commit, re-reading the ledger after each CommitConflict.

        Only the whole read-plan-commit cycle is retried; a plan computed from
        stale rows is never committed twice.

        Raises:
            CommitConflict: If every attempt conflicted
        """
        attempt = 0
        while True:
            attempt += 1
            plan = self.plan(insurer_id, window, actual_received_amount, period_key, notes)
            try:
                self.commit(plan)
                return plan
            except CommitConflict as e:
                if attempt >= self.max_attempts:
                    logger.error(
                        f"Reconciliation for insurer {insurer_id} ({plan['period_key']}) "
                        f"failed after {attempt} attempts: {e}"
                    )
                    raise
                logger.warning(
                    f"Commit conflict reconciling insurer {insurer_id} "
                    f"(attempt {attempt}/{self.max_attempts}), retrying from a fresh read: {e}"
                )
