"""
Unit tests for the insurance payment tracker.
"""
from services.insurance_payment_tracker import InsurancePaymentTracker
from services.money import Money
from tests.utils import clinic_datetime, make_transaction

NAMES = {1: "RSSB", 2: "MMI"}


class TestInsurancePaymentTracker:
    """Test expected vs actual records per insurer and month."""

    def test_groups_by_insurer_and_month(self):
        transactions = [
            make_transaction(1, expected="8000", actual="6000", insurer_id=1, created_at=clinic_datetime(2024, 1, 5)),
            make_transaction(2, expected="4000", actual="3000", insurer_id=1, created_at=clinic_datetime(2024, 1, 6)),
            make_transaction(3, expected="900", insurer_id=2, created_at=clinic_datetime(2024, 1, 7)),
            make_transaction(4, expected="100", insurer_id=1, created_at=clinic_datetime(2024, 2, 1)),
            make_transaction(5, patient_paid="500", insurer_id=None, created_at=clinic_datetime(2024, 2, 1)),
        ]

        records = InsurancePaymentTracker.build(transactions, NAMES)

        assert [(r['month'], r['insurer_name']) for r in records] == [
            ("2024-02", "RSSB"),
            ("2024-01", "MMI"),
            ("2024-01", "RSSB"),
        ]
        rssb_january = records[2]
        assert rssb_january['month_display'] == "January 2024"
        assert rssb_january['people_received'] == 2
        assert rssb_january['expected_amount'] == Money.parse("12000")
        assert rssb_january['actual_paid_amount'] == Money.parse("9000")
        assert rssb_january['difference'] == Money.parse("-3000")
        assert rssb_january['is_reconciled'] is True
        assert records[1]['is_reconciled'] is False
        assert records[1]['actual_paid_amount'] == Money.zero()

    def test_insurer_filter_and_excluded_month(self):
        transactions = [
            make_transaction(1, expected="100", insurer_id=1, created_at=clinic_datetime(2024, 1, 5)),
            make_transaction(2, expected="100", insurer_id=1, created_at=clinic_datetime(2024, 2, 5)),
            make_transaction(3, expected="100", insurer_id=2, created_at=clinic_datetime(2024, 1, 5)),
        ]

        records = InsurancePaymentTracker.build(transactions, NAMES, insurer_id=1, exclude_month="2024-02")

        assert [(r['insurer_id'], r['month']) for r in records] == [(1, "2024-01")]

    def test_unknown_insurer_name(self):
        transactions = [make_transaction(1, expected="100", insurer_id=77)]

        records = InsurancePaymentTracker.build(transactions, NAMES)

        assert records[0]['insurer_name'] == "Unknown Insurer"
        assert records[0]['insurer_id'] == 77

    def test_empty(self):
        assert InsurancePaymentTracker.build([], NAMES) == []
