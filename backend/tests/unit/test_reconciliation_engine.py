"""
Unit tests for the insurance reconciliation engine.
"""
import pytest
from decimal import Decimal

from sqlalchemy.exc import DataError

from services.finance_errors import (
    CommitConflict, InvalidAmount, NoMatchingTransactions, UnknownInsurer, ZeroExpectedAmount,
)
from services.money import Money
from services.reconciliation_engine import ReconciliationEngine
from tests.utils import FakeLedgerStore, clinic_datetime, make_insurer, make_transaction
from utils.datetime_utils import month_window

JANUARY = month_window(2024, 1)


def _store(*transactions, **kwargs) -> FakeLedgerStore:
    return FakeLedgerStore(
        transactions=list(transactions),
        insurers=[make_insurer(1, "RSSB"), make_insurer(2, "MMI")],
        **kwargs,
    )


class TestComputePlan:
    """Test allocation without a store."""

    def test_underpayment_split_proportionally(self):
        """80% insurer, expected 8000 + 4000, received 9000 -> 6000 / 3000."""
        transactions = [
            make_transaction(1, patient_paid="2000", expected="8000"),
            make_transaction(2, patient_paid="1000", expected="4000"),
        ]

        plan = ReconciliationEngine.compute_plan(1, JANUARY, "9000", transactions)

        assert [line['new_actual_paid'] for line in plan['allocations']] == [
            Money.parse("6000"), Money.parse("3000"),
        ]
        assert plan['total_expected'] == Money.parse("12000")
        assert plan['ratio'] == Decimal("0.75")
        assert plan['remainder'] == Money.zero()

    def test_overpayment_is_valid(self):
        transactions = [make_transaction(1, expected="1000"), make_transaction(2, expected="1000")]

        plan = ReconciliationEngine.compute_plan(1, JANUARY, "3000", transactions)

        assert [line['new_actual_paid'] for line in plan['allocations']] == [
            Money.parse("1500"), Money.parse("1500"),
        ]

    def test_remainder_goes_to_last_nonzero_transaction(self):
        """100 split three ways leaves one minor unit for the last transaction."""
        transactions = [
            make_transaction(3, expected="10"),
            make_transaction(1, expected="10"),
            make_transaction(2, expected="10"),
            make_transaction(4, expected="0"),
        ]

        plan = ReconciliationEngine.compute_plan(1, JANUARY, "100", transactions)

        amounts = {line['transaction_id']: line['new_actual_paid'] for line in plan['allocations']}
        assert amounts == {
            1: Money.parse("33.33"),
            2: Money.parse("33.33"),
            3: Money.parse("33.34"),
            4: Money.zero(),
        }
        assert plan['remainder'] == Money.parse("0.01")
        assert Money.sum(amounts.values()) == Money.parse("100")

    def test_negative_remainder_spread_one_unit_per_line(self):
        """Rounding up overshoots by four units; they come back from the last four lines."""
        transactions = [make_transaction(i, expected="1.00") for i in range(1, 10)]
        transactions.append(make_transaction(10, expected="0.50"))

        plan = ReconciliationEngine.compute_plan(1, JANUARY, "0.34", transactions)

        amounts = {line['transaction_id']: line['new_actual_paid'] for line in plan['allocations']}
        assert plan['remainder'] == Money.parse("-0.04")
        assert all(amounts[i] == Money.parse("0.04") for i in range(1, 7))
        assert all(amounts[i] == Money.parse("0.03") for i in range(7, 10))
        assert amounts[10] == Money.parse("0.01")
        assert Money.sum(amounts.values()) == Money.parse("0.34")

    def test_negative_remainder_skips_zero_allocations(self):
        """Shares 0.006 x3 round up, 0.002 rounds to zero; the unit comes from id 3, not id 4."""
        transactions = [
            make_transaction(1, expected="3.00"),
            make_transaction(2, expected="3.00"),
            make_transaction(3, expected="3.00"),
            make_transaction(4, expected="1.00"),
        ]

        plan = ReconciliationEngine.compute_plan(1, JANUARY, "0.02", transactions)

        amounts = [line['new_actual_paid'] for line in plan['allocations']]
        assert plan['remainder'] == Money.parse("-0.01")
        assert amounts == [Money.parse("0.01"), Money.parse("0.01"), Money.zero(), Money.zero()]

    def test_allocations_ordered_by_id(self):
        transactions = [make_transaction(5, expected="10"), make_transaction(2, expected="10")]

        plan = ReconciliationEngine.compute_plan(1, JANUARY, "20", transactions)

        assert [line['transaction_id'] for line in plan['allocations']] == [2, 5]

    def test_zero_received_sets_all_to_zero(self):
        transactions = [make_transaction(1, expected="500", actual="400")]

        plan = ReconciliationEngine.compute_plan(1, JANUARY, "0", transactions)

        assert plan['allocations'][0]['new_actual_paid'] == Money.zero()
        assert plan['allocations'][0]['previous_actual_paid'] == Money.parse("400")

    def test_no_transactions(self):
        with pytest.raises(NoMatchingTransactions):
            ReconciliationEngine.compute_plan(1, JANUARY, "100", [], period_key="2024-01")

    def test_zero_expected(self):
        transactions = [make_transaction(1, patient_paid="500", expected="0")]

        with pytest.raises(ZeroExpectedAmount):
            ReconciliationEngine.compute_plan(1, JANUARY, "100", transactions)

    @pytest.mark.parametrize("amount", ["-1", "abc", None, "NaN"])
    def test_invalid_received_amount(self, amount):
        with pytest.raises(InvalidAmount):
            ReconciliationEngine.compute_plan(1, JANUARY, amount, [make_transaction(1, expected="10")])


class TestReconcile:
    """Test the read-plan-commit cycle against a store."""

    def test_reconcile_commits_batch_and_payment(self):
        store = _store(
            make_transaction(1, patient_paid="2000", expected="8000"),
            make_transaction(2, patient_paid="1000", expected="4000"),
            make_transaction(3, expected="5000", insurer_id=2),
        )
        engine = ReconciliationEngine(store)

        plan = engine.reconcile(1, JANUARY, "9000", period_key="2024-01", notes="January batch")

        assert store.actual_paid() == {1: Money.parse("6000"), 2: Money.parse("3000"), 3: None}
        payment = store.payments[(1, JANUARY[0])]
        assert payment['amount_received'] == Money.parse("9000")
        assert payment['notes'] == "January batch"
        assert plan['period_key'] == "2024-01"

    def test_transactions_outside_window_are_untouched(self):
        store = _store(
            make_transaction(1, expected="100", created_at=clinic_datetime(2024, 1, 31, 23, 59)),
            make_transaction(2, expected="100", created_at=clinic_datetime(2024, 2, 1, 0, 0)),
        )

        ReconciliationEngine(store).reconcile(1, JANUARY, "50")

        assert store.actual_paid() == {1: Money.parse("50"), 2: None}

    def test_no_matching_transactions_writes_nothing(self):
        store = _store(make_transaction(1, expected="100", insurer_id=2))

        with pytest.raises(NoMatchingTransactions):
            ReconciliationEngine(store).reconcile(1, JANUARY, "100")

        assert store.commit_calls == 0
        assert store.payments == {}
        assert store.actual_paid() == {1: None}

    def test_zero_expected_writes_nothing(self):
        store = _store(make_transaction(1, patient_paid="100", expected="0"))

        with pytest.raises(ZeroExpectedAmount):
            ReconciliationEngine(store).reconcile(1, JANUARY, "100")

        assert store.commit_calls == 0

    def test_unknown_insurer(self):
        store = _store(make_transaction(1, expected="100", insurer_id=42))

        with pytest.raises(UnknownInsurer):
            ReconciliationEngine(store).reconcile(42, JANUARY, "100")

        assert store.commit_calls == 0

    def test_invalid_amount_checked_before_reading(self):
        store = _store(make_transaction(1, expected="100"))

        with pytest.raises(InvalidAmount):
            ReconciliationEngine(store).reconcile(1, JANUARY, "-5")

        assert store.list_calls == 0

    def test_rerun_is_idempotent(self):
        store = _store(
            make_transaction(1, expected="333.33"),
            make_transaction(2, expected="666.67"),
            make_transaction(3, expected="123.45"),
        )
        engine = ReconciliationEngine(store)

        engine.reconcile(1, JANUARY, "777.77")
        first = store.actual_paid()
        engine.reconcile(1, JANUARY, "777.77")

        assert store.actual_paid() == first
        assert len(store.payments) == 1

    def test_commit_conflict_retries_from_fresh_read(self):
        store = _store(make_transaction(1, expected="100"), conflicts_to_raise=1)
        engine = ReconciliationEngine(store, max_attempts=3)

        engine.reconcile(1, JANUARY, "80")

        assert store.commit_calls == 2
        assert store.list_calls == 2
        assert store.actual_paid() == {1: Money.parse("80")}

    def test_commit_conflict_raised_after_max_attempts(self):
        store = _store(make_transaction(1, expected="100"), conflicts_to_raise=5)
        engine = ReconciliationEngine(store, max_attempts=2)

        with pytest.raises(CommitConflict):
            engine.reconcile(1, JANUARY, "80")

        assert store.commit_calls == 2
        assert store.actual_paid() == {1: None}

    def test_non_conflict_store_error_is_not_retried(self):
        class OverflowingStore(FakeLedgerStore):
            def commit_actual_paid(self, batch, payment=None):
                self.commit_calls += 1
                raise DataError("UPDATE transactions", {}, Exception("numeric field overflow"))

        store = OverflowingStore(
            transactions=[make_transaction(1, expected="100")],
            insurers=[make_insurer(1, "RSSB")],
        )

        with pytest.raises(DataError):
            ReconciliationEngine(store, max_attempts=3).reconcile(1, JANUARY, "80")

        assert store.commit_calls == 1
        assert store.list_calls == 1
        assert store.actual_paid() == {1: None}

    def test_plan_has_no_side_effects(self):
        store = _store(make_transaction(1, expected="100"))

        ReconciliationEngine(store).plan(1, JANUARY, "80")

        assert store.commit_calls == 0
        assert store.actual_paid() == {1: None}
