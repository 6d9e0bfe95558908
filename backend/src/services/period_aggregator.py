"""
Period aggregator: fold transactions and expenses for one window into a PeriodSummary.

Inputs are already filtered to a half-open window ``[start, end)``. All sums are
exact Money additions, so the summary totals always equal the sum of their parts.
"""
import logging
from collections import defaultdict
from datetime import date
from typing import Dict, Iterable, List, Mapping, Optional, Set

from core.constants import UNKNOWN_INSURER_KEY, UNKNOWN_INSURER_NAME
from services.finance_types import (
    CategoryBreakdown, DailySnapshot, ExpenseRecord, InsurerCount, InsurerKey, MethodBreakdown,
    PeriodSummary, RevenueVariant, TransactionRecord,
)
from services.money import Money

logger = logging.getLogger(__name__)


def insurer_amount(transaction: TransactionRecord, variant: RevenueVariant) -> Money:
    """
    Insurer-attributed amount of a transaction.

    The final variant uses the reconciled actual-paid amount, falling back to the
    expected amount while the transaction is unreconciled.
    """
    if variant == "final" and transaction['insurance_actual_paid_amount'] is not None:
        return transaction['insurance_actual_paid_amount']
    return transaction['insurance_expected_amount']


class PeriodAggregator:
    """Builds PeriodSummary values. Never raises for empty input."""

    @staticmethod
    def empty_summary(period_key: str) -> PeriodSummary:
        return PeriodSummary(
            period_key=period_key,
            total_revenue=Money.zero(),
            total_expense=Money.zero(),
            net_profit=Money.zero(),
            final_total_revenue=Money.zero(),
            final_net_profit=Money.zero(),
            revenue_by_method=MethodBreakdown(cash=Money.zero(), mobile_money=Money.zero()),
            revenue_by_insurer={},
            expense_by_category=CategoryBreakdown(clinical=Money.zero(), operational=Money.zero()),
            transaction_count=0,
            patient_count=0,
            unknown_insurer_ids=[],
        )

    @staticmethod
    def aggregate(
        transactions: List[TransactionRecord],
        expenses: List[ExpenseRecord],
        period_key: str,
        known_insurer_ids: Optional[Iterable[int]] = None,
        variant: RevenueVariant = "expected"
    ) -> PeriodSummary:
        """
        Aggregate one period.

        Args:
            transactions: Transactions created within the period window
            expenses: Expenses dated within the period window
            period_key: Label for the period (e.g. "2024-01" or "2024-01-15")
            known_insurer_ids: Loaded insurer set. Transactions referencing an insurer
                outside it are grouped under "unknown" and reported, never dropped.
                None disables the check.
            variant: Whether revenue_by_insurer uses expected or final amounts

        Returns:
            PeriodSummary with all calculated values
        """
        summary = PeriodAggregator.empty_summary(period_key)
        if not transactions and not expenses:
            return summary

        known: Optional[Set[int]] = set(known_insurer_ids) if known_insurer_ids is not None else None

        patient_paid: List[Money] = []
        expected: List[Money] = []
        final_insurer: List[Money] = []
        by_method: Dict[str, List[Money]] = {"cash": [], "mobile_money": []}
        by_insurer: Dict[InsurerKey, List[Money]] = {}
        unknown_ids: Set[int] = set()
        patient_ids: Set[int] = set()

        for transaction in transactions:
            paid = transaction['patient_paid_amount']
            patient_paid.append(paid)
            expected.append(transaction['insurance_expected_amount'])
            final_insurer.append(insurer_amount(transaction, "final"))
            patient_ids.add(transaction['patient_id'])

            # 'none' is entirely insurer-attributed
            method = transaction['payment_method']
            if method in by_method:
                by_method[method].append(paid)

            insurer_id = transaction['insurer_id']
            if insurer_id is None:
                continue
            key: InsurerKey = insurer_id
            if known is not None and insurer_id not in known:
                key = UNKNOWN_INSURER_KEY
                unknown_ids.add(insurer_id)
            by_insurer.setdefault(key, []).append(insurer_amount(transaction, variant))

        if unknown_ids:
            logger.warning(
                f"Period {period_key}: transactions reference unknown insurers {sorted(unknown_ids)}"
            )

        total_expense = Money.sum(e['amount'] for e in expenses)
        total_revenue = Money.sum(patient_paid) + Money.sum(expected)
        final_total_revenue = Money.sum(patient_paid) + Money.sum(final_insurer)

        summary['total_revenue'] = total_revenue
        summary['total_expense'] = total_expense
        summary['net_profit'] = total_revenue - total_expense
        summary['final_total_revenue'] = final_total_revenue
        summary['final_net_profit'] = final_total_revenue - total_expense
        summary['revenue_by_method'] = MethodBreakdown(
            cash=Money.sum(by_method["cash"]),
            mobile_money=Money.sum(by_method["mobile_money"]),
        )
        summary['revenue_by_insurer'] = {key: Money.sum(values) for key, values in by_insurer.items()}
        summary['expense_by_category'] = CategoryBreakdown(
            clinical=Money.sum(e['amount'] for e in expenses if e['category'] == "clinical"),
            operational=Money.sum(e['amount'] for e in expenses if e['category'] == "operational"),
        )
        summary['transaction_count'] = len(transactions)
        summary['patient_count'] = len(patient_ids)
        summary['unknown_insurer_ids'] = sorted(unknown_ids)

        logger.debug(
            f"Aggregated period {period_key}: {len(transactions)} transactions, "
            f"{len(expenses)} expenses, revenue={total_revenue}"
        )
        return summary


class DailySnapshotCalculator:
    """Dashboard cards for a single clinic day."""

    @staticmethod
    def calculate(
        day: date,
        transactions: List[TransactionRecord],
        insurer_names: Mapping[int, str]
    ) -> DailySnapshot:
        """
        Args:
            day: Clinic-local date
            transactions: Transactions created during that day
            insurer_names: Insurer id -> display name

        Returns:
            DailySnapshot with per-insurer counts sorted by insurer name
        """
        counts: Dict[int, int] = defaultdict(int)
        for transaction in transactions:
            if transaction['insurer_id'] is not None:
                counts[transaction['insurer_id']] += 1

        insurer_counts = [
            InsurerCount(
                insurer_id=insurer_id,
                insurer_name=insurer_names.get(insurer_id, UNKNOWN_INSURER_NAME),
                transaction_count=count,
            )
            for insurer_id, count in counts.items()
        ]
        insurer_counts.sort(key=lambda c: c['insurer_name'])

        return DailySnapshot(
            date=day,
            paid_today=Money.sum(t['patient_paid_amount'] for t in transactions),
            insurance_expected=Money.sum(t['insurance_expected_amount'] for t in transactions),
            transaction_count=len(transactions),
            insurer_counts=insurer_counts,
        )
