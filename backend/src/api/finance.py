# pyright: reportMissingTypeStubs=false
"""
Finance API endpoints: summaries, reports, charts and insurance reconciliation.
"""

import csv
import io
import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi import status as http_status
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from api.responses import (
    AllocationLineResponse,
    AnnualDistributionResponse,
    CategoryBreakdownResponse,
    ComparisonPointResponse,
    DailySnapshotResponse,
    InsurancePaymentListResponse,
    InsurancePaymentRecordResponse,
    InsurerCountResponse,
    MethodBreakdownResponse,
    MonthlyComparisonResponse,
    MonthlyReportResponse,
    PeriodSummaryResponse,
    ReconcileRequest,
    ReconciliationResponse,
)
from core.config import CURRENCY_CODE
from core.database import get_db
from services.finance_errors import (
    CommitConflict, InvalidAmount, NoMatchingTransactions, UnknownInsurer, ZeroExpectedAmount,
)
from services.finance_service import FinanceService
from services.finance_types import PeriodSummary, ReconciliationPlan
from services.ledger_store import LedgerStore, SqlAlchemyLedgerStore
from services.report_builder import ReportBuilder
from utils.datetime_utils import clinic_now, month_range_window

logger = logging.getLogger(__name__)

router = APIRouter()


def get_ledger_store(db: Session = Depends(get_db)) -> LedgerStore:
    """FastAPI dependency providing the ledger store for the request's session."""
    return SqlAlchemyLedgerStore(db)


def _default_year() -> int:
    return clinic_now().year


def _bad_request(e: ValueError) -> HTTPException:
    return HTTPException(status_code=http_status.HTTP_400_BAD_REQUEST, detail=str(e))


def _summary_response(summary: PeriodSummary) -> PeriodSummaryResponse:
    return PeriodSummaryResponse(
        period_key=summary['period_key'],
        currency=CURRENCY_CODE,
        total_revenue=summary['total_revenue'].to_wire(),
        total_expense=summary['total_expense'].to_wire(),
        net_profit=summary['net_profit'].to_wire(),
        final_total_revenue=summary['final_total_revenue'].to_wire(),
        final_net_profit=summary['final_net_profit'].to_wire(),
        revenue_by_method=MethodBreakdownResponse(
            cash=summary['revenue_by_method']['cash'].to_wire(),
            mobile_money=summary['revenue_by_method']['mobile_money'].to_wire(),
        ),
        revenue_by_insurer={
            str(key): amount.to_wire() for key, amount in summary['revenue_by_insurer'].items()
        },
        expense_by_category=CategoryBreakdownResponse(
            clinical=summary['expense_by_category']['clinical'].to_wire(),
            operational=summary['expense_by_category']['operational'].to_wire(),
        ),
        transaction_count=summary['transaction_count'],
        patient_count=summary['patient_count'],
        unknown_insurer_ids=summary['unknown_insurer_ids'],
    )


def _reconciliation_response(plan: ReconciliationPlan) -> ReconciliationResponse:
    return ReconciliationResponse(
        insurer_id=plan['insurer_id'],
        period_key=plan['period_key'],
        period_start=plan['period_start'],
        period_end=plan['period_end'],
        actual_received_amount=plan['actual_received_amount'].to_wire(),
        total_expected=plan['total_expected'].to_wire(),
        ratio=str(plan['ratio']),
        remainder=plan['remainder'].to_wire(),
        notes=plan['notes'],
        allocations=[
            AllocationLineResponse(
                transaction_id=line['transaction_id'],
                expected_amount=line['expected_amount'].to_wire(),
                previous_actual_paid=(
                    line['previous_actual_paid'].to_wire()
                    if line['previous_actual_paid'] is not None else None
                ),
                new_actual_paid=line['new_actual_paid'].to_wire(),
            )
            for line in plan['allocations']
        ],
    )


@router.get("/summary", summary="Financial summary for one month", response_model=PeriodSummaryResponse)
async def get_month_summary(
    year: int = Query(..., description="Calendar year"),
    month: int = Query(..., ge=1, le=12, description="Calendar month (1-12)"),
    store: LedgerStore = Depends(get_ledger_store)
) -> PeriodSummaryResponse:
    """Get revenue, expense and profit figures for one clinic-local month."""
    start, end = month_range_window(year, month, year, month)
    summary = FinanceService.get_period_summary(store, start, end, f"{year}-{month:02d}")
    return _summary_response(summary)


@router.get(
    "/financial-summary",
    summary="Expected vs final revenue for a month range",
    response_model=PeriodSummaryResponse,
)
async def get_financial_summary(
    from_year: int = Query(...),
    from_month: int = Query(..., ge=1, le=12),
    to_year: int = Query(...),
    to_month: int = Query(..., ge=1, le=12),
    store: LedgerStore = Depends(get_ledger_store)
) -> PeriodSummaryResponse:
    try:
        summary = FinanceService.get_financial_summary(store, from_year, from_month, to_year, to_month)
    except ValueError as e:
        raise _bad_request(e)
    return _summary_response(summary)


@router.get("/reports/monthly", summary="Monthly report", response_model=MonthlyReportResponse)
async def get_monthly_report(
    from_year: int = Query(...),
    from_month: int = Query(..., ge=1, le=12),
    to_year: int = Query(...),
    to_month: int = Query(..., ge=1, le=12),
    store: LedgerStore = Depends(get_ledger_store)
) -> MonthlyReportResponse:
    """Get one row per month with activity plus grand totals."""
    try:
        table = FinanceService.get_monthly_report(store, from_year, from_month, to_year, to_month)
    except ValueError as e:
        raise _bad_request(e)
    return MonthlyReportResponse(
        rows=[_summary_response(row) for row in table['rows']],
        grand_totals=_summary_response(table['grand_totals']),
        total_unique_patients=table['total_unique_patients'],
    )


@router.get("/reports/monthly.csv", summary="Monthly report as CSV")
async def export_monthly_report(
    from_year: int = Query(...),
    from_month: int = Query(..., ge=1, le=12),
    to_year: int = Query(...),
    to_month: int = Query(..., ge=1, le=12),
    store: LedgerStore = Depends(get_ledger_store)
) -> StreamingResponse:
    try:
        table = FinanceService.get_monthly_report(store, from_year, from_month, to_year, to_month)
    except ValueError as e:
        raise _bad_request(e)

    buffer = io.StringIO()
    csv.writer(buffer).writerows(ReportBuilder.export_rows(table))
    buffer.seek(0)
    filename = f"report_{from_year}-{from_month:02d}_{to_year}-{to_month:02d}.csv"
    return StreamingResponse(
        iter([buffer.getvalue()]),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get(
    "/charts/monthly-comparison",
    summary="Revenue vs expenses vs profit per month",
    response_model=MonthlyComparisonResponse,
)
async def get_monthly_comparison(
    from_year: int = Query(...),
    from_month: int = Query(..., ge=1, le=12),
    to_year: int = Query(...),
    to_month: int = Query(..., ge=1, le=12),
    basis: str = Query("revenue", pattern="^(revenue|cash)$"),
    store: LedgerStore = Depends(get_ledger_store)
) -> MonthlyComparisonResponse:
    try:
        points = FinanceService.get_monthly_comparison(
            store, from_year, from_month, to_year, to_month, basis  # type: ignore[arg-type]
        )
    except ValueError as e:
        raise _bad_request(e)
    return MonthlyComparisonResponse(
        basis=basis,
        points=[
            ComparisonPointResponse(
                month=point['month'],
                revenue=point['revenue'].to_wire(),
                total_expense=point['total_expense'].to_wire(),
                profit=point['profit'].to_wire(),
            )
            for point in points
        ],
    )


@router.get(
    "/charts/annual-distribution",
    summary="Expected insurer coverage by month and insurer",
    response_model=AnnualDistributionResponse,
)
async def get_annual_distribution(
    year: Optional[int] = Query(None, description="Calendar year, defaults to the current year"),
    store: LedgerStore = Depends(get_ledger_store)
) -> AnnualDistributionResponse:
    table = FinanceService.get_annual_distribution(store, year or _default_year())
    return AnnualDistributionResponse(
        year=table['year'],
        months=table['months'],
        insurer_names=table['insurer_names'],
        cells={
            month: {name: amount.to_wire() for name, amount in row.items()}
            for month, row in table['cells'].items()
        },
    )


@router.get(
    "/insurance-payments",
    summary="Expected vs actual insurer payments per month",
    response_model=InsurancePaymentListResponse,
)
async def get_insurance_payments(
    from_year: int = Query(...),
    from_month: int = Query(..., ge=1, le=12),
    to_year: int = Query(...),
    to_month: int = Query(..., ge=1, le=12),
    insurer_id: Optional[int] = Query(None),
    store: LedgerStore = Depends(get_ledger_store)
) -> InsurancePaymentListResponse:
    try:
        records = FinanceService.get_insurance_payments(
            store, from_year, from_month, to_year, to_month, insurer_id
        )
    except ValueError as e:
        raise _bad_request(e)
    return InsurancePaymentListResponse(records=[
        InsurancePaymentRecordResponse(
            insurer_id=int(record['insurer_id']),
            insurer_name=record['insurer_name'],
            month=record['month'],
            month_display=record['month_display'],
            people_received=record['people_received'],
            expected_amount=record['expected_amount'].to_wire(),
            actual_paid_amount=record['actual_paid_amount'].to_wire(),
            difference=record['difference'].to_wire(),
            is_reconciled=record['is_reconciled'],
        )
        for record in records
    ])


@router.get("/daily", summary="Daily dashboard snapshot", response_model=DailySnapshotResponse)
async def get_daily_snapshot(
    day: Optional[date] = Query(None, description="Clinic-local date, defaults to today"),
    store: LedgerStore = Depends(get_ledger_store)
) -> DailySnapshotResponse:
    snapshot = FinanceService.get_daily_snapshot(store, day)
    return DailySnapshotResponse(
        date=snapshot['date'],
        paid_today=snapshot['paid_today'].to_wire(),
        insurance_expected=snapshot['insurance_expected'].to_wire(),
        transaction_count=snapshot['transaction_count'],
        insurer_counts=[
            InsurerCountResponse(
                insurer_id=int(count['insurer_id']),
                insurer_name=count['insurer_name'],
                transaction_count=count['transaction_count'],
            )
            for count in snapshot['insurer_counts']
        ],
    )


@router.post(
    "/insurers/{insurer_id}/reconcile",
    summary="Reconcile an insurer's monthly payment",
    response_model=ReconciliationResponse,
)
async def reconcile_insurer_payment(
    insurer_id: int,
    request: ReconcileRequest,
    store: LedgerStore = Depends(get_ledger_store)
) -> ReconciliationResponse:
    """
    Distribute the amount received from an insurer across its transactions for the month.

    A failed reconciliation is never reported as a recorded payment.
    """
    try:
        plan = FinanceService.reconcile_insurer_month(
            store,
            insurer_id,
            request.year,
            request.month,
            request.amount_received,
            notes=request.notes,
        )
    except InvalidAmount as e:
        raise HTTPException(status_code=http_status.HTTP_400_BAD_REQUEST, detail=str(e))
    except UnknownInsurer as e:
        raise HTTPException(status_code=http_status.HTTP_404_NOT_FOUND, detail=str(e))
    except (NoMatchingTransactions, ZeroExpectedAmount) as e:
        raise HTTPException(status_code=http_status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    except CommitConflict as e:
        logger.warning(f"Reconciliation conflict for insurer {insurer_id}: {e}")
        raise HTTPException(status_code=http_status.HTTP_409_CONFLICT, detail=str(e))
    except ValueError as e:
        raise _bad_request(e)

    return _reconciliation_response(plan)
