"""
Test utilities for clinic finance tests.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from services.finance_errors import CommitConflict
from services.finance_types import (
    ActualPaidUpdate, ExpenseRecord, InsurancePaymentEntry, InsurerRecord, TransactionRecord,
)
from services.money import Money
from utils.datetime_utils import CLINIC_TZ


def clinic_datetime(year: int, month: int, day: int, hour: int = 10, minute: int = 0) -> datetime:
    """Aware datetime in clinic time."""
    return datetime(year, month, day, hour, minute, tzinfo=CLINIC_TZ)


def make_transaction(
    id: int,
    patient_paid: str = "0",
    expected: str = "0",
    insurer_id: Optional[int] = 1,
    actual: Optional[str] = None,
    payment_method: str = "cash",
    created_at: Optional[datetime] = None,
    patient_id: Optional[int] = None,
    version: int = 1
) -> TransactionRecord:
    """Create a TransactionRecord whose billed amount is patient paid + expected."""
    paid = Money.parse(patient_paid)
    expected_money = Money.parse(expected)
    return TransactionRecord(
        id=id,
        patient_id=patient_id if patient_id is not None else id,
        insurer_id=insurer_id,
        total_billed_amount=paid + expected_money,
        patient_paid_amount=paid,
        insurance_expected_amount=expected_money,
        insurance_actual_paid_amount=Money.parse(actual) if actual is not None else None,
        payment_method=payment_method,  # type: ignore[typeddict-item]
        created_at=created_at or clinic_datetime(2024, 1, 15),
        version=version,
    )


def make_expense(
    id: int,
    amount: str,
    category: str = "operational",
    expense_date: Optional[date] = None,
    description: str = "Supplies"
) -> ExpenseRecord:
    return ExpenseRecord(
        id=id,
        description=description,
        amount=Money.parse(amount),
        category=category,  # type: ignore[typeddict-item]
        expense_date=expense_date or date(2024, 1, 15),
        reported_by_id=None,
    )


def make_insurer(id: int, name: str, coverage: str = "80") -> InsurerRecord:
    return InsurerRecord(id=id, name=name, coverage_percentage=Decimal(coverage))


class FakeLedgerStore:
    """
    In-memory LedgerStore.

    ``conflicts_to_raise`` makes the next N commits fail with CommitConflict
    without applying anything, simulating a concurrent writer.
    """

    def __init__(
        self,
        transactions: Optional[List[TransactionRecord]] = None,
        expenses: Optional[List[ExpenseRecord]] = None,
        insurers: Optional[List[InsurerRecord]] = None,
        conflicts_to_raise: int = 0
    ):
        self.transactions: Dict[int, TransactionRecord] = {t['id']: t for t in (transactions or [])}
        self.expenses = list(expenses or [])
        self.insurers = list(insurers or [])
        self.conflicts_to_raise = conflicts_to_raise
        self.commit_calls = 0
        self.list_calls = 0
        self.payments: Dict[Tuple[int, datetime], InsurancePaymentEntry] = {}

    def list_transactions(
        self, start: datetime, end: datetime, insurer_id: Optional[int] = None
    ) -> List[TransactionRecord]:
        self.list_calls += 1
        return [
            dict(t)  # type: ignore[misc]
            for t in sorted(self.transactions.values(), key=lambda t: t['id'])
            if start <= t['created_at'] < end
            and (insurer_id is None or t['insurer_id'] == insurer_id)
        ]

    def list_expenses(self, start: datetime, end: datetime) -> List[ExpenseRecord]:
        return [e for e in self.expenses if start.date() <= e['expense_date'] < end.date()]

    def list_insurers(self) -> List[InsurerRecord]:
        return list(self.insurers)

    def commit_actual_paid(
        self,
        batch: Sequence[ActualPaidUpdate],
        payment: Optional[InsurancePaymentEntry] = None
    ) -> None:
        self.commit_calls += 1
        if self.conflicts_to_raise > 0:
            self.conflicts_to_raise -= 1
            # A concurrent writer bumped the first row
            first = self.transactions[batch[0]['transaction_id']]
            first['version'] += 1
            raise CommitConflict("Concurrent update", transaction_id=first['id'])

        for update in batch:
            row = self.transactions.get(update['transaction_id'])
            if row is None or row['version'] != update['expected_version']:
                raise CommitConflict("Version mismatch", transaction_id=update['transaction_id'])

        for update in batch:
            row = self.transactions[update['transaction_id']]
            row['insurance_actual_paid_amount'] = update['amount']
            row['version'] += 1

        if payment is not None:
            self.payments[(payment['insurer_id'], payment['period_start'])] = payment

    def actual_paid(self) -> Dict[int, Optional[Money]]:
        return {tid: t['insurance_actual_paid_amount'] for tid, t in self.transactions.items()}
