"""
Insurance payment tracker: expected vs actually paid insurer amounts per insurer and month.

Used by the payments screen to see which insurer months still need reconciling.
"""
from collections import defaultdict
from typing import Dict, List, Mapping, Optional, Tuple

from core.constants import UNKNOWN_INSURER_NAME
from services.finance_types import InsurancePaymentRecord, TransactionRecord
from services.money import Money
from utils.datetime_utils import month_display, month_key


class InsurancePaymentTracker:
    """Groups insurer-covered transactions into InsurancePaymentRecord rows."""

    @staticmethod
    def build(
        transactions: List[TransactionRecord],
        insurer_names: Mapping[int, str],
        insurer_id: Optional[int] = None,
        exclude_month: Optional[str] = None
    ) -> List[InsurancePaymentRecord]:
        """
        Build one record per insurer x month with activity.

        Args:
            transactions: Transactions already limited to the month range
            insurer_names: Insurer id -> display name
            insurer_id: Only report this insurer
            exclude_month: YYYY-MM key to leave out (e.g. the month still in progress)

        Returns:
            Records sorted newest month first, then by insurer name
        """
        groups: Dict[Tuple[int, str], List[TransactionRecord]] = defaultdict(list)
        for transaction in transactions:
            transaction_insurer = transaction['insurer_id']
            if transaction_insurer is None:
                continue
            if insurer_id is not None and transaction_insurer != insurer_id:
                continue
            key = month_key(transaction['created_at'])
            if key == exclude_month:
                continue
            groups[(transaction_insurer, key)].append(transaction)

        records: List[InsurancePaymentRecord] = []
        for (group_insurer, key), members in groups.items():
            expected = Money.sum(t['insurance_expected_amount'] for t in members)
            actual = Money.sum(
                t['insurance_actual_paid_amount'] for t in members
                if t['insurance_actual_paid_amount'] is not None
            )
            records.append(InsurancePaymentRecord(
                insurer_id=group_insurer,
                insurer_name=insurer_names.get(group_insurer, UNKNOWN_INSURER_NAME),
                month=key,
                month_display=month_display(key),
                people_received=len(members),
                expected_amount=expected,
                actual_paid_amount=actual,
                difference=actual - expected,
                is_reconciled=all(t['insurance_actual_paid_amount'] is not None for t in members),
            ))

        # Newest month first, then insurer name
        records.sort(key=lambda r: r['insurer_name'])
        records.sort(key=lambda r: r['month'], reverse=True)
        return records
