"""
Unit tests for the finance service orchestration.
"""
import pytest
from datetime import date

from services.finance_service import FinanceService, validate_month_range
from services.money import Money
from tests.utils import FakeLedgerStore, clinic_datetime, make_expense, make_insurer, make_transaction


@pytest.fixture
def store() -> FakeLedgerStore:
    return FakeLedgerStore(
        transactions=[
            make_transaction(1, patient_paid="2000", expected="8000", insurer_id=1,
                             created_at=clinic_datetime(2024, 1, 5)),
            make_transaction(2, patient_paid="1000", expected="4000", insurer_id=1,
                             created_at=clinic_datetime(2024, 1, 20)),
            make_transaction(3, patient_paid="900", expected="8100", insurer_id=2,
                             created_at=clinic_datetime(2024, 2, 3)),
            make_transaction(4, patient_paid="3000", insurer_id=None, payment_method="mobile_money",
                             created_at=clinic_datetime(2024, 2, 3, 15)),
        ],
        expenses=[make_expense(1, "1000", "clinical", date(2024, 1, 2))],
        insurers=[make_insurer(1, "RSSB", "80"), make_insurer(2, "MMI", "90")],
    )


class TestValidateMonthRange:
    """Test month range validation."""

    def test_reversed_range(self):
        with pytest.raises(ValueError):
            validate_month_range(2024, 5, 2024, 4)

    def test_invalid_month(self):
        with pytest.raises(ValueError):
            validate_month_range(2024, 0, 2024, 4)

    def test_valid_range(self):
        validate_month_range(2023, 12, 2024, 1)


class TestFinanceService:
    """Test store reads wired to the engines."""

    def test_financial_summary_before_and_after_reconciliation(self, store):
        before = FinanceService.get_financial_summary(store, 2024, 1, 2024, 2)

        FinanceService.reconcile_insurer_month(store, 1, 2024, 1, "9000")
        after = FinanceService.get_financial_summary(store, 2024, 1, 2024, 2)

        assert before['total_revenue'] == Money.parse("27000")
        assert before['final_total_revenue'] == Money.parse("27000")
        assert after['total_revenue'] == Money.parse("27000")
        assert after['final_total_revenue'] == Money.parse("24000")
        assert after['final_net_profit'] == Money.parse("23000")
        assert after['revenue_by_insurer'][1] == Money.parse("9000")

    def test_monthly_report(self, store):
        table = FinanceService.get_monthly_report(store, 2024, 1, 2024, 3)

        assert [row['period_key'] for row in table['rows']] == ["2024-01", "2024-02"]
        assert table['grand_totals']['total_revenue'] == Money.parse("27000")

    def test_monthly_comparison_cash_basis(self, store):
        points = FinanceService.get_monthly_comparison(store, 2024, 1, 2024, 2, "cash")

        assert [p['revenue'] for p in points] == [Money.parse("3000"), Money.parse("900")]

    def test_annual_distribution(self, store):
        table = FinanceService.get_annual_distribution(store, 2024)

        assert table['months'] == ["January", "February"]
        assert table['insurer_names'] == ["MMI", "RSSB"]
        assert table['cells']["January"]["RSSB"] == Money.parse("12000")

    def test_insurance_payments_excludes_current_month_for_single_insurer(self, store):
        records = FinanceService.get_insurance_payments(
            store, 2024, 1, 2024, 2, insurer_id=2, today=date(2024, 2, 10)
        )

        assert records == []

    def test_insurance_payments_all_insurers(self, store):
        records = FinanceService.get_insurance_payments(store, 2024, 1, 2024, 2)

        assert [(r['month'], r['insurer_name']) for r in records] == [
            ("2024-02", "MMI"),
            ("2024-01", "RSSB"),
        ]

    def test_daily_snapshot(self, store):
        snapshot = FinanceService.get_daily_snapshot(store, date(2024, 2, 3))

        assert snapshot['paid_today'] == Money.parse("3900")
        assert snapshot['insurance_expected'] == Money.parse("8100")
        assert snapshot['transaction_count'] == 2

    def test_reconcile_insurer_month_period_key(self, store):
        plan = FinanceService.reconcile_insurer_month(store, 2, 2024, 2, "8100", notes="Paid in full")

        assert plan['period_key'] == "2024-02"
        assert store.actual_paid()[3] == Money.parse("8100")
