"""
Type definitions for financial aggregation and insurance reconciliation.

This module provides TypedDict definitions for type-safe ledger extraction and
finance calculations. Records hold Money values; conversion to wire strings
happens only at the API boundary.
"""
from typing import TypedDict, Optional, Literal, Dict, List, Union
from datetime import date, datetime
from decimal import Decimal

from services.money import Money


PaymentMethod = Literal["cash", "mobile_money", "none"]
ExpenseCategory = Literal["clinical", "operational"]

# Which insurer amount a summary attributes to insurers
RevenueVariant = Literal["expected", "final"]

# Chart basis for monthly comparison ("cash" is the cash-in view)
ComparisonBasis = Literal["revenue", "cash"]

# Insurer id, or UNKNOWN_INSURER_KEY for insurers missing from the loaded set
InsurerKey = Union[int, str]

PAYMENT_METHODS: List[str] = ["cash", "mobile_money", "none"]
EXPENSE_CATEGORIES: List[str] = ["clinical", "operational"]


class TransactionRecord(TypedDict):
    """
    Typed representation of a billing transaction read from the ledger store.

    All money fields have been normalized through Money.parse.
    """
    id: int
    patient_id: int
    insurer_id: Optional[int]  # None for self-pay
    total_billed_amount: Money
    patient_paid_amount: Money
    insurance_expected_amount: Money
    insurance_actual_paid_amount: Optional[Money]  # None until reconciled
    payment_method: PaymentMethod
    created_at: datetime  # Clinic timezone
    version: int  # Optimistic concurrency stamp


class ExpenseRecord(TypedDict):
    """Typed representation of an expense record."""
    id: int
    description: str
    amount: Money
    category: ExpenseCategory
    expense_date: date
    reported_by_id: Optional[int]


class InsurerRecord(TypedDict):
    """Typed representation of an insurer."""
    id: int
    name: str
    coverage_percentage: Decimal  # 0-100


class MethodBreakdown(TypedDict):
    cash: Money
    mobile_money: Money


class CategoryBreakdown(TypedDict):
    clinical: Money
    operational: Money


class PeriodSummary(TypedDict):
    """Financial summary for one period. Always recomputable; never persisted."""
    period_key: str
    total_revenue: Money  # patient paid + insurance expected
    total_expense: Money
    net_profit: Money
    final_total_revenue: Money  # patient paid + insurance actual (expected when unknown)
    final_net_profit: Money
    revenue_by_method: MethodBreakdown
    revenue_by_insurer: Dict[InsurerKey, Money]
    expense_by_category: CategoryBreakdown
    transaction_count: int
    patient_count: int  # Distinct patients in this period
    unknown_insurer_ids: List[int]  # Surfaced, never dropped


class ReportTable(TypedDict):
    """Month-by-month report with grand totals."""
    rows: List[PeriodSummary]
    grand_totals: PeriodSummary
    total_unique_patients: int


class ComparisonPoint(TypedDict):
    """Single month in a revenue/expense/profit comparison chart."""
    month: str  # YYYY-MM
    revenue: Money
    total_expense: Money
    profit: Money


class AnnualDistributionTable(TypedDict):
    """Month x insurer expected coverage table for one calendar year."""
    year: int
    months: List[str]  # Month names, calendar order, active months only
    insurer_names: List[str]  # Sorted alphabetically
    cells: Dict[str, Dict[str, Money]]  # month name -> insurer name -> amount


class AllocationLine(TypedDict):
    """One transaction's share of a reconciled insurer payment."""
    transaction_id: int
    expected_amount: Money
    previous_actual_paid: Optional[Money]
    new_actual_paid: Money
    version: int  # Version read during planning


class ReconciliationPlan(TypedDict):
    """Computed (not yet committed) distribution of an insurer payment."""
    insurer_id: int
    period_key: str
    period_start: datetime
    period_end: datetime
    actual_received_amount: Money
    total_expected: Money
    ratio: Decimal
    allocations: List[AllocationLine]
    remainder: Money  # Spread one minor unit per line over the last non-zero transactions
    notes: Optional[str]


class ActualPaidUpdate(TypedDict):
    """Single row of an atomic commit batch."""
    transaction_id: int
    amount: Money
    expected_version: int


class InsurancePaymentEntry(TypedDict):
    """Insurer bulk payment persisted alongside a reconciliation commit."""
    insurer_id: int
    period_start: datetime
    period_end: datetime
    amount_received: Money
    notes: Optional[str]


class InsurancePaymentRecord(TypedDict):
    """Expected vs actual insurer payments for one insurer and month."""
    insurer_id: InsurerKey
    insurer_name: str
    month: str  # YYYY-MM
    month_display: str  # "January 2024"
    people_received: int
    expected_amount: Money
    actual_paid_amount: Money
    difference: Money  # actual - expected
    is_reconciled: bool


class InsurerCount(TypedDict):
    insurer_id: InsurerKey
    insurer_name: str
    transaction_count: int


class DailySnapshot(TypedDict):
    """Dashboard cards for a single day."""
    date: date
    paid_today: Money
    insurance_expected: Money
    transaction_count: int
    insurer_counts: List[InsurerCount]


class CoverageSplit(TypedDict):
    """Patient/insurer shares of a bill, computed when a transaction is created."""
    total_billed_amount: Money
    patient_paid_amount: Money
    insurance_expected_amount: Money
    payment_method: PaymentMethod
