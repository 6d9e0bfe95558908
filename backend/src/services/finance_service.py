"""
Service for financial summaries, reports and insurance reconciliation.

Wires ledger store reads to the finance engines. Every read goes through a
half-open window in clinic time.
"""

import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from core.config import RECONCILIATION_MAX_ATTEMPTS
from services.annual_distribution import AnnualDistributionBuilder
from services.finance_types import (
    AnnualDistributionTable, ComparisonBasis, ComparisonPoint, DailySnapshot,
    InsurancePaymentRecord, PeriodSummary, ReconciliationPlan, ReportTable, RevenueVariant,
)
from services.insurance_payment_tracker import InsurancePaymentTracker
from services.ledger_store import LedgerStore
from services.period_aggregator import DailySnapshotCalculator, PeriodAggregator
from services.reconciliation_engine import ReconciliationEngine
from services.report_builder import ReportBuilder, range_key
from utils.datetime_utils import (
    clinic_now, day_window, month_key, month_range_window, month_window, year_window,
)

logger = logging.getLogger(__name__)


def validate_month_range(from_year: int, from_month: int, to_year: int, to_month: int) -> None:
    """
    Raises:
        ValueError: If a month is outside 1-12 or the range is reversed
    """
    for month in (from_month, to_month):
        if month < 1 or month > 12:
            raise ValueError(f"Month must be between 1 and 12, got {month}")
    if (from_year, from_month) > (to_year, to_month):
        raise ValueError("From month must not be after to month")


class FinanceService:
    """Service for finance operations."""

    @staticmethod
    def _insurer_names(store: LedgerStore) -> Dict[int, str]:
        return {insurer['id']: insurer['name'] for insurer in store.list_insurers()}

    @staticmethod
    def get_period_summary(
        store: LedgerStore,
        start: datetime,
        end: datetime,
        period_key: Optional[str] = None,
        variant: RevenueVariant = "expected"
    ) -> PeriodSummary:
        """Summarize any half-open window ``[start, end)``."""
        transactions = store.list_transactions(start, end)
        expenses = store.list_expenses(start, end)
        known = FinanceService._insurer_names(store).keys()
        key = period_key or f"{start.isoformat()}/{end.isoformat()}"
        return PeriodAggregator.aggregate(transactions, expenses, key, known, variant)

    @staticmethod
    def get_financial_summary(
        store: LedgerStore,
        from_year: int,
        from_month: int,
        to_year: int,
        to_month: int
    ) -> PeriodSummary:
        """
        Expected and final revenue and profit for a month range.

        The per-insurer breakdown uses final amounts (actual where reconciled).
        """
        validate_month_range(from_year, from_month, to_year, to_month)
        start, end = month_range_window(from_year, from_month, to_year, to_month)
        return FinanceService.get_period_summary(
            store, start, end, range_key(from_year, from_month, to_year, to_month), "final"
        )

    @staticmethod
    def get_monthly_report(
        store: LedgerStore,
        from_year: int,
        from_month: int,
        to_year: int,
        to_month: int,
        variant: RevenueVariant = "expected"
    ) -> ReportTable:
        validate_month_range(from_year, from_month, to_year, to_month)
        start, end = month_range_window(from_year, from_month, to_year, to_month)
        transactions = store.list_transactions(start, end)
        expenses = store.list_expenses(start, end)
        known = FinanceService._insurer_names(store).keys()
        return ReportBuilder.build(
            from_year, from_month, to_year, to_month, transactions, expenses, known, variant
        )

    @staticmethod
    def get_monthly_comparison(
        store: LedgerStore,
        from_year: int,
        from_month: int,
        to_year: int,
        to_month: int,
        basis: ComparisonBasis = "revenue"
    ) -> List[ComparisonPoint]:
        table = FinanceService.get_monthly_report(store, from_year, from_month, to_year, to_month)
        return ReportBuilder.monthly_comparison(table, basis)

    @staticmethod
    def get_annual_distribution(store: LedgerStore, year: int) -> AnnualDistributionTable:
        start, end = year_window(year)
        transactions = store.list_transactions(start, end)
        return AnnualDistributionBuilder.build(year, transactions, FinanceService._insurer_names(store))

    @staticmethod
    def get_insurance_payments(
        store: LedgerStore,
        from_year: int,
        from_month: int,
        to_year: int,
        to_month: int,
        insurer_id: Optional[int] = None,
        today: Optional[date] = None
    ) -> List[InsurancePaymentRecord]:
        """
        Expected vs actual insurer payments per insurer and month.

        When a single insurer is requested, the month still in progress is left
        out since it cannot be reconciled yet.
        """
        validate_month_range(from_year, from_month, to_year, to_month)
        start, end = month_range_window(from_year, from_month, to_year, to_month)
        transactions = store.list_transactions(start, end, insurer_id=insurer_id)

        exclude_month = None
        if insurer_id is not None:
            exclude_month = month_key(today or clinic_now())

        return InsurancePaymentTracker.build(
            transactions, FinanceService._insurer_names(store), insurer_id, exclude_month
        )

    @staticmethod
    def get_daily_snapshot(store: LedgerStore, day: Optional[date] = None) -> DailySnapshot:
        day = day or clinic_now().date()
        start, end = day_window(day)
        transactions = store.list_transactions(start, end)
        return DailySnapshotCalculator.calculate(day, transactions, FinanceService._insurer_names(store))

    @staticmethod
    def reconcile_insurer_month(
        store: LedgerStore,
        insurer_id: int,
        year: int,
        month: int,
        actual_received_amount: Any,
        notes: Optional[str] = None,
        max_attempts: int = RECONCILIATION_MAX_ATTEMPTS
    ) -> ReconciliationPlan:
        """
        Distribute an insurer's payment for one calendar month and commit it.

        Raises:
            InvalidAmount, UnknownInsurer, NoMatchingTransactions, ZeroExpectedAmount,
            CommitConflict: Propagated from the reconciliation engine
        """
        validate_month_range(year, month, year, month)
        engine = ReconciliationEngine(store, max_attempts=max_attempts)
        return engine.reconcile(
            insurer_id,
            month_window(year, month),
            actual_received_amount,
            period_key=f"{year}-{month:02d}",
            notes=notes,
        )
