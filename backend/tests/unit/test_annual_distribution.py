"""
Unit tests for the annual distribution builder.
"""
from services.annual_distribution import AnnualDistributionBuilder
from services.money import Money
from tests.utils import clinic_datetime, make_transaction

NAMES = {1: "RSSB", 2: "MMI", 3: "Britam"}


class TestAnnualDistributionBuilder:
    """Test month x insurer bucketing."""

    def test_empty_year(self):
        table = AnnualDistributionBuilder.build(2024, [], NAMES)

        assert table == {'year': 2024, 'months': [], 'insurer_names': [], 'cells': {}}

    def test_months_in_calendar_order_with_zero_cells(self):
        transactions = [
            make_transaction(1, expected="100", insurer_id=1, created_at=clinic_datetime(2024, 3, 1)),
            make_transaction(2, expected="250", insurer_id=2, created_at=clinic_datetime(2024, 1, 9)),
            make_transaction(3, expected="50", insurer_id=1, created_at=clinic_datetime(2024, 1, 10)),
        ]

        table = AnnualDistributionBuilder.build(2024, transactions, NAMES)

        assert table['months'] == ["January", "March"]
        assert table['insurer_names'] == ["MMI", "RSSB"]
        assert table['cells'] == {
            "January": {"MMI": Money.parse("250"), "RSSB": Money.parse("50")},
            "March": {"MMI": Money.zero(), "RSSB": Money.parse("100")},
        }

    def test_self_pay_month_appears_without_column(self):
        transactions = [
            make_transaction(1, patient_paid="500", insurer_id=None, created_at=clinic_datetime(2024, 6, 1)),
        ]

        table = AnnualDistributionBuilder.build(2024, transactions, NAMES)

        assert table['months'] == ["June"]
        assert table['insurer_names'] == []
        assert table['cells'] == {"June": {}}

    def test_other_years_ignored(self):
        transactions = [
            make_transaction(1, expected="100", insurer_id=1, created_at=clinic_datetime(2023, 12, 31, 23, 59)),
            make_transaction(2, expected="100", insurer_id=3, created_at=clinic_datetime(2025, 1, 1, 0, 0)),
        ]

        table = AnnualDistributionBuilder.build(2024, transactions, NAMES)

        assert table['months'] == []

    def test_unknown_insurer_column(self):
        transactions = [
            make_transaction(1, expected="75", insurer_id=99, created_at=clinic_datetime(2024, 2, 2)),
        ]

        table = AnnualDistributionBuilder.build(2024, transactions, NAMES)

        assert table['insurer_names'] == ["Unknown Insurer"]
        assert table['cells']["February"]["Unknown Insurer"] == Money.parse("75")
