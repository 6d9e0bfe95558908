"""
Shared response models for API endpoints.

Money values cross the API as fixed-point strings (e.g. "8000.00") so no binary
float ever reaches a client.
"""

from datetime import date, datetime
from typing import Dict, List, Optional, Union

from pydantic import BaseModel


class MethodBreakdownResponse(BaseModel):
    cash: str
    mobile_money: str


class CategoryBreakdownResponse(BaseModel):
    clinical: str
    operational: str


class PeriodSummaryResponse(BaseModel):
    """Response model for a period financial summary."""
    period_key: str
    currency: str
    total_revenue: str
    total_expense: str
    net_profit: str
    final_total_revenue: str
    final_net_profit: str
    revenue_by_method: MethodBreakdownResponse
    revenue_by_insurer: Dict[str, str]  # Insurer id (or "unknown") -> amount
    expense_by_category: CategoryBreakdownResponse
    transaction_count: int
    patient_count: int
    unknown_insurer_ids: List[int]


class MonthlyReportResponse(BaseModel):
    """Response model for the month-by-month report."""
    rows: List[PeriodSummaryResponse]
    grand_totals: PeriodSummaryResponse
    total_unique_patients: int


class ComparisonPointResponse(BaseModel):
    month: str
    revenue: str
    total_expense: str
    profit: str


class MonthlyComparisonResponse(BaseModel):
    """Response model for the revenue/expense/profit chart."""
    basis: str
    points: List[ComparisonPointResponse]


class AnnualDistributionResponse(BaseModel):
    """Response model for the month x insurer annual chart."""
    year: int
    months: List[str]
    insurer_names: List[str]
    cells: Dict[str, Dict[str, str]]


class InsurancePaymentRecordResponse(BaseModel):
    insurer_id: int
    insurer_name: str
    month: str
    month_display: str
    people_received: int
    expected_amount: str
    actual_paid_amount: str
    difference: str
    is_reconciled: bool


class InsurancePaymentListResponse(BaseModel):
    """Response model for listing insurer payment records."""
    records: List[InsurancePaymentRecordResponse]


class InsurerCountResponse(BaseModel):
    insurer_id: int
    insurer_name: str
    transaction_count: int


class DailySnapshotResponse(BaseModel):
    """Response model for the daily dashboard cards."""
    date: date
    paid_today: str
    insurance_expected: str
    transaction_count: int
    insurer_counts: List[InsurerCountResponse]


class ReconcileRequest(BaseModel):
    """Request model for reconciling an insurer's monthly payment."""
    year: int
    month: int
    amount_received: Union[str, int, float]  # Normalized through Money.parse; strings preferred
    notes: Optional[str] = None


class AllocationLineResponse(BaseModel):
    transaction_id: int
    expected_amount: str
    previous_actual_paid: Optional[str] = None
    new_actual_paid: str


class ReconciliationResponse(BaseModel):
    """Response model for a committed reconciliation."""
    insurer_id: int
    period_key: str
    period_start: datetime
    period_end: datetime
    actual_received_amount: str
    total_expected: str
    ratio: str
    remainder: str
    notes: Optional[str] = None
    allocations: List[AllocationLineResponse]
