"""
Report builder: month-by-month financial report with grand totals.

Combines one PeriodSummary per month across an inclusive month range into a
table for UI display and document export. Grand totals are the field-wise sum
of every row and are cross-checked against a single aggregation over the whole
range.
"""
import logging
import os
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Set

from core.config import ENVIRONMENT
from services.finance_errors import CalculationValidationError
from services.finance_types import (
    CategoryBreakdown, ComparisonBasis, ComparisonPoint, ExpenseRecord, InsurerKey,
    MethodBreakdown, PeriodSummary, ReportTable, RevenueVariant, TransactionRecord,
)
from services.ledger_extractor import LedgerExtractor
from services.money import Money
from services.period_aggregator import PeriodAggregator
from utils.datetime_utils import month_display, month_key, month_keys_between, month_range_window

logger = logging.getLogger(__name__)

EXPORT_HEADER = [
    "Month", "Patients", "Mobile Money", "Insurance", "Cash",
    "Total Revenue", "Expenses", "Net Profit",
]


def range_key(from_year: int, from_month: int, to_year: int, to_month: int) -> str:
    return f"{from_year}-{from_month:02d}..{to_year}-{to_month:02d}"


class ReportBuilder:
    """Builds ReportTable values. Empty ranges give empty rows and zero totals."""

    @staticmethod
    def build(
        from_year: int,
        from_month: int,
        to_year: int,
        to_month: int,
        transactions: List[TransactionRecord],
        expenses: List[ExpenseRecord],
        known_insurer_ids: Optional[Iterable[int]] = None,
        variant: RevenueVariant = "expected"
    ) -> ReportTable:
        """
        Build the monthly report for an inclusive month range.

        Args:
            from_year, from_month, to_year, to_month: Inclusive range (caller guarantees order)
            transactions: Transactions for the whole range (records outside it are ignored)
            expenses: Expenses for the whole range (records outside it are ignored)
            known_insurer_ids: Loaded insurer set, see PeriodAggregator.aggregate
            variant: Revenue variant for the per-insurer breakdown

        Returns:
            ReportTable with one row per month that has activity, ascending
        """
        known = list(known_insurer_ids) if known_insurer_ids is not None else None
        window = month_range_window(from_year, from_month, to_year, to_month)
        in_range_transactions = LedgerExtractor.filter_transactions(transactions, window)
        in_range_expenses = LedgerExtractor.filter_expenses(expenses, window)

        transactions_by_month: Dict[str, List[TransactionRecord]] = defaultdict(list)
        for transaction in in_range_transactions:
            transactions_by_month[month_key(transaction['created_at'])].append(transaction)
        expenses_by_month: Dict[str, List[ExpenseRecord]] = defaultdict(list)
        for expense in in_range_expenses:
            expenses_by_month[month_key(expense['expense_date'])].append(expense)

        rows: List[PeriodSummary] = []
        for key in month_keys_between(from_year, from_month, to_year, to_month):
            if key not in transactions_by_month and key not in expenses_by_month:
                continue
            rows.append(PeriodAggregator.aggregate(
                transactions_by_month.get(key, []),
                expenses_by_month.get(key, []),
                key,
                known,
                variant,
            ))

        period = range_key(from_year, from_month, to_year, to_month)
        unique_patients = len({t['patient_id'] for t in in_range_transactions})
        grand_totals = ReportBuilder.combine(rows, period, unique_patients)

        whole_range = PeriodAggregator.aggregate(
            in_range_transactions, in_range_expenses, period, known, variant
        )
        ReportBuilder._validate_totals(grand_totals, whole_range)

        logger.debug(f"Built report {period}: {len(rows)} months with activity")
        return ReportTable(
            rows=rows,
            grand_totals=grand_totals,
            total_unique_patients=unique_patients,
        )

    @staticmethod
    def combine(rows: List[PeriodSummary], period_key: str, patient_count: int) -> PeriodSummary:
        """Field-wise sum of summaries. Patient count is passed in since patients repeat across months."""
        totals = PeriodAggregator.empty_summary(period_key)
        by_insurer: Dict[InsurerKey, List[Money]] = defaultdict(list)
        unknown_ids: Set[int] = set()

        for row in rows:
            for key, amount in row['revenue_by_insurer'].items():
                by_insurer[key].append(amount)
            unknown_ids.update(row['unknown_insurer_ids'])
            totals['transaction_count'] += row['transaction_count']

        def total(field: str) -> Money:
            return Money.sum(row[field] for row in rows)  # type: ignore[literal-required]

        totals['total_revenue'] = total('total_revenue')
        totals['total_expense'] = total('total_expense')
        totals['net_profit'] = total('net_profit')
        totals['final_total_revenue'] = total('final_total_revenue')
        totals['final_net_profit'] = total('final_net_profit')
        totals['revenue_by_method'] = MethodBreakdown(
            cash=Money.sum(row['revenue_by_method']['cash'] for row in rows),
            mobile_money=Money.sum(row['revenue_by_method']['mobile_money'] for row in rows),
        )
        totals['revenue_by_insurer'] = {key: Money.sum(values) for key, values in by_insurer.items()}
        totals['expense_by_category'] = CategoryBreakdown(
            clinical=Money.sum(row['expense_by_category']['clinical'] for row in rows),
            operational=Money.sum(row['expense_by_category']['operational'] for row in rows),
        )
        totals['patient_count'] = patient_count
        totals['unknown_insurer_ids'] = sorted(unknown_ids)
        return totals

    @staticmethod
    def monthly_comparison(table: ReportTable, basis: ComparisonBasis = "revenue") -> List[ComparisonPoint]:
        """
        Revenue vs expense vs profit chart points, one per report row.

        The "cash" basis counts only cash patient payments as revenue.
        """
        points: List[ComparisonPoint] = []
        for row in table['rows']:
            revenue = row['revenue_by_method']['cash'] if basis == "cash" else row['total_revenue']
            points.append(ComparisonPoint(
                month=row['period_key'],
                revenue=revenue,
                total_expense=row['total_expense'],
                profit=revenue - row['total_expense'],
            ))
        return points

    @staticmethod
    def export_rows(table: ReportTable) -> List[List[str]]:
        """Header, one line per month and a closing Total line, as fixed-point strings."""
        def line(label: str, summary: PeriodSummary) -> List[str]:
            insurance = Money.sum(summary['revenue_by_insurer'].values())
            return [
                label,
                str(summary['patient_count']),
                summary['revenue_by_method']['mobile_money'].to_wire(),
                insurance.to_wire(),
                summary['revenue_by_method']['cash'].to_wire(),
                summary['total_revenue'].to_wire(),
                summary['total_expense'].to_wire(),
                summary['net_profit'].to_wire(),
            ]

        lines = [list(EXPORT_HEADER)]
        lines.extend(line(month_display(row['period_key']), row) for row in table['rows'])
        lines.append(line("Total", table['grand_totals']))
        return lines

    @staticmethod
    def _validate_totals(grand_totals: PeriodSummary, whole_range: PeriodSummary) -> None:
        """
        Validate that grand totals equal a single aggregation over the range.

        Fails loudly in development/test environments, logs warnings in production.
        """
        is_test = os.getenv("PYTEST_VERSION") is not None
        is_dev_or_test = ENVIRONMENT in ['development', 'test'] or is_test

        mismatches: List[str] = []
        for field in ('total_revenue', 'total_expense', 'net_profit', 'final_total_revenue', 'transaction_count'):
            if grand_totals[field] != whole_range[field]:  # type: ignore[literal-required]
                mismatches.append(
                    f"{field} mismatch: rows={grand_totals[field]}, "  # type: ignore[literal-required]
                    f"range={whole_range[field]}"  # type: ignore[literal-required]
                )
        if grand_totals['revenue_by_method'] != whole_range['revenue_by_method']:
            mismatches.append("revenue_by_method mismatch")
        if grand_totals['revenue_by_insurer'] != whole_range['revenue_by_insurer']:
            mismatches.append("revenue_by_insurer mismatch")

        if not mismatches:
            return
        if is_dev_or_test:
            raise CalculationValidationError(
                f"Report validation failed for {grand_totals['period_key']}: " + "; ".join(mismatches)
            )
        for message in mismatches:
            logger.warning(f"Report validation warning for {grand_totals['period_key']}: {message}")
