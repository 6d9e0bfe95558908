"""
Ledger record extractor for finance calculations.

Normalizes Transaction, Expense and Insurer rows (ORM entities or plain mappings
from an external store) into typed records with Money amounts, handling edge
cases and malformed data gracefully.
"""
from typing import Any, Iterable, List, Mapping, Optional
from datetime import datetime
from decimal import Decimal, InvalidOperation
import logging

from services.finance_errors import InvalidAmount
from services.finance_types import (
    TransactionRecord, ExpenseRecord, InsurerRecord,
    PAYMENT_METHODS, EXPENSE_CATEGORIES,
)
from services.money import Money
from utils.datetime_utils import Window, in_window, to_clinic_datetime

logger = logging.getLogger(__name__)


def _field(row: Any, name: str, default: Any = None) -> Any:
    """Read a field from an ORM entity or a mapping."""
    if isinstance(row, Mapping):
        return row.get(name, default)  # type: ignore[reportUnknownMemberType]
    return getattr(row, name, default)


class LedgerExtractor:
    """
    Extracts typed finance records from store rows.

    Handles:
    - Amounts delivered as Decimal, int, float or numeric string
    - Timestamps delivered as aware/naive datetimes or ISO strings
    - Missing payment method (defaults to cash)
    - Malformed rows (logged and skipped, never aborting the whole read)
    """

    @staticmethod
    def extract_transactions(rows: Iterable[Any]) -> List[TransactionRecord]:
        """
        Extract transaction records, skipping rows that cannot be normalized.

        Args:
            rows: Transaction entities or mappings

        Returns:
            List of TransactionRecord sorted by id
        """
        records: List[TransactionRecord] = []
        skipped = 0
        for row in rows:
            try:
                records.append(LedgerExtractor.extract_transaction(row))
            except (InvalidAmount, ValueError, TypeError) as e:
                skipped += 1
                logger.warning(f"Skipping malformed transaction {_field(row, 'id')}: {e}")

        records.sort(key=lambda r: r['id'])
        logger.debug(f"Extracted {len(records)} transactions ({skipped} skipped)")
        return records

    @staticmethod
    def extract_transaction(row: Any) -> TransactionRecord:
        """
        Extract a single transaction record.

        Raises:
            InvalidAmount: If any required amount is malformed
            ValueError: If the payment method or timestamp is invalid
        """
        payment_method = _field(row, 'payment_method') or "cash"
        if payment_method not in PAYMENT_METHODS:
            raise ValueError(f"Unknown payment method: {payment_method}")

        created_at = _field(row, 'created_at')
        if created_at is None:
            raise ValueError("Missing created_at")

        actual_raw = _field(row, 'insurance_actual_paid_amount')
        insurer_id = _field(row, 'insurer_id')

        return TransactionRecord(
            id=int(_field(row, 'id')),
            patient_id=int(_field(row, 'patient_id')),
            insurer_id=int(insurer_id) if insurer_id is not None else None,
            total_billed_amount=Money.parse(_field(row, 'total_billed_amount')),
            patient_paid_amount=Money.parse(_field(row, 'patient_paid_amount')),
            insurance_expected_amount=Money.parse(_field(row, 'insurance_expected_amount', 0)),
            insurance_actual_paid_amount=Money.parse(actual_raw) if actual_raw is not None else None,
            payment_method=payment_method,
            created_at=to_clinic_datetime(created_at),
            version=int(_field(row, 'version', 1) or 1),
        )

    @staticmethod
    def extract_expenses(rows: Iterable[Any]) -> List[ExpenseRecord]:
        """Extract expense records, skipping rows that cannot be normalized."""
        records: List[ExpenseRecord] = []
        for row in rows:
            try:
                records.append(LedgerExtractor.extract_expense(row))
            except (InvalidAmount, ValueError, TypeError) as e:
                logger.warning(f"Skipping malformed expense {_field(row, 'id')}: {e}")

        records.sort(key=lambda r: r['id'])
        logger.debug(f"Extracted {len(records)} expenses")
        return records

    @staticmethod
    def extract_expense(row: Any) -> ExpenseRecord:
        category = _field(row, 'category')
        if category not in EXPENSE_CATEGORIES:
            raise ValueError(f"Unknown expense category: {category}")

        raw_date = _field(row, 'expense_date')
        if raw_date is None:
            raise ValueError("Missing expense_date")
        if isinstance(raw_date, (str, datetime)):
            expense_date = to_clinic_datetime(raw_date).date()
        else:
            expense_date = raw_date

        reported_by_id = _field(row, 'reported_by_id')
        return ExpenseRecord(
            id=int(_field(row, 'id')),
            description=_field(row, 'description') or "",
            amount=Money.parse(_field(row, 'amount')),
            category=category,
            expense_date=expense_date,
            reported_by_id=int(reported_by_id) if reported_by_id is not None else None,
        )

    @staticmethod
    def extract_insurers(rows: Iterable[Any]) -> List[InsurerRecord]:
        records: List[InsurerRecord] = []
        for row in rows:
            try:
                coverage = Decimal(str(_field(row, 'coverage_percentage', 0)))
            except InvalidOperation:
                logger.warning(f"Skipping insurer {_field(row, 'id')} with invalid coverage percentage")
                continue
            records.append(InsurerRecord(
                id=int(_field(row, 'id')),
                name=str(_field(row, 'name')),
                coverage_percentage=coverage,
            ))
        return records

    @staticmethod
    def filter_transactions(
        transactions: Iterable[TransactionRecord],
        window: Window,
        insurer_id: Optional[int] = None
    ) -> List[TransactionRecord]:
        """Keep transactions created in ``[start, end)``, optionally for one insurer."""
        return [
            t for t in transactions
            if in_window(t['created_at'], window)
            and (insurer_id is None or t['insurer_id'] == insurer_id)
        ]

    @staticmethod
    def filter_expenses(expenses: Iterable[ExpenseRecord], window: Window) -> List[ExpenseRecord]:
        """Keep expenses whose date falls in ``[start, end)``."""
        return [e for e in expenses if in_window(e['expense_date'], window)]

