"""
Ledger store: read transactions, expenses and insurers, and atomically commit
reconciled actual-paid amounts.

``LedgerStore`` is the contract the finance engines depend on. ``SqlAlchemyLedgerStore``
implements it over the relational models; tests can supply in-memory fakes.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Sequence

from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from models.expense import Expense
from models.insurance_payment import InsurancePayment
from models.insurer import Insurer
from models.transaction import Transaction
from services.finance_errors import CommitConflict
from services.finance_types import (
    ActualPaidUpdate, ExpenseRecord, InsurancePaymentEntry, InsurerRecord, TransactionRecord,
)
from services.ledger_extractor import LedgerExtractor

logger = logging.getLogger(__name__)


class LedgerStore(Protocol):
    """Storage contract for the finance engines."""

    def list_transactions(
        self, start: datetime, end: datetime, insurer_id: Optional[int] = None
    ) -> List[TransactionRecord]:
        """Transactions created in ``[start, end)``, ascending id."""
        ...

    def list_expenses(self, start: datetime, end: datetime) -> List[ExpenseRecord]:
        """Expenses dated in ``[start, end)``."""
        ...

    def list_insurers(self) -> List[InsurerRecord]:
        ...

    def commit_actual_paid(
        self,
        batch: Sequence[ActualPaidUpdate],
        payment: Optional[InsurancePaymentEntry] = None
    ) -> None:
        """
        Apply every update in the batch, or none of them.

        Raises:
            CommitConflict: If any row is missing, its version changed since it was read,
                or a lock, serialization or integrity race rejected the write
        """
        ...


class SqlAlchemyLedgerStore:
    """LedgerStore backed by a SQLAlchemy session."""

    def __init__(self, db: Session):
        self.db = db

    def list_transactions(
        self, start: datetime, end: datetime, insurer_id: Optional[int] = None
    ) -> List[TransactionRecord]:
        query = self.db.query(Transaction).filter(
            Transaction.created_at >= start,
            Transaction.created_at < end,
        )
        if insurer_id is not None:
            query = query.filter(Transaction.insurer_id == insurer_id)
        rows = query.order_by(Transaction.id).all()
        return LedgerExtractor.extract_transactions(rows)

    def list_expenses(self, start: datetime, end: datetime) -> List[ExpenseRecord]:
        rows = self.db.query(Expense).filter(
            Expense.expense_date >= start.date(),
            Expense.expense_date < end.date(),
        ).order_by(Expense.id).all()
        return LedgerExtractor.extract_expenses(rows)

    def list_insurers(self) -> List[InsurerRecord]:
        rows = self.db.query(Insurer).order_by(Insurer.id).all()
        return LedgerExtractor.extract_insurers(rows)

    def commit_actual_paid(
        self,
        batch: Sequence[ActualPaidUpdate],
        payment: Optional[InsurancePaymentEntry] = None
    ) -> None:
        """
        Overwrite actual-paid amounts under row locks in one database transaction.

        Locks the affected transaction rows (SELECT ... FOR UPDATE), checks the
        version stamp captured at read time, applies every update, upserts the
        insurer payment record and commits. Any mismatch rolls back the whole batch.
        """
        transaction_ids = [update['transaction_id'] for update in batch]
        try:
            rows = self.db.query(Transaction).filter(
                Transaction.id.in_(transaction_ids)
            ).with_for_update().all()
            rows_by_id: Dict[int, Transaction] = {row.id: row for row in rows}

            for update in batch:
                row = rows_by_id.get(update['transaction_id'])
                if row is None:
                    raise CommitConflict(
                        f"Transaction {update['transaction_id']} no longer exists",
                        transaction_id=update['transaction_id'],
                    )
                if row.version != update['expected_version']:
                    raise CommitConflict(
                        f"Transaction {row.id} changed since it was read "
                        f"(version {update['expected_version']} -> {row.version})",
                        transaction_id=row.id,
                    )
                row.insurance_actual_paid_amount = update['amount'].round2().amount
                row.version = row.version + 1

            if payment is not None:
                self._upsert_payment(payment)

            self.db.commit()
        except CommitConflict:
            self.db.rollback()
            raise
        except (OperationalError, IntegrityError) as e:
            # Lock timeouts, serialization failures and a concurrent payment insert
            self.db.rollback()
            logger.warning(f"Concurrent write rejected actual-paid batch of {len(batch)} transactions: {e}")
            raise CommitConflict(f"Store rejected the reconciliation batch: {e}") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception(f"Failed to commit actual-paid batch of {len(batch)} transactions: {e}")
            raise

        logger.info(f"Committed actual-paid amounts for {len(batch)} transactions")

    def _upsert_payment(self, payment: InsurancePaymentEntry) -> None:
        existing = self.db.query(InsurancePayment).filter(
            InsurancePayment.insurer_id == payment['insurer_id'],
            InsurancePayment.period_start == payment['period_start'],
        ).with_for_update().first()

        values: Dict[str, Any] = {
            'period_end': payment['period_end'],
            'amount_received': payment['amount_received'].amount,
            'notes': payment['notes'],
        }
        if existing is None:
            self.db.add(InsurancePayment(
                insurer_id=payment['insurer_id'],
                period_start=payment['period_start'],
                **values,
            ))
        else:
            for key, value in values.items():
                setattr(existing, key, value)
        self.db.flush()
