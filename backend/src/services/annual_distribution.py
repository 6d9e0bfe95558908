"""
Annual distribution builder: expected insurer coverage bucketed by month x insurer.
"""
import logging
from collections import defaultdict
from typing import Dict, List, Mapping, Set

from core.constants import MONTH_NAMES, UNKNOWN_INSURER_NAME
from services.finance_types import AnnualDistributionTable, TransactionRecord
from services.ledger_extractor import LedgerExtractor
from services.money import Money
from utils.datetime_utils import to_clinic_datetime, year_window

logger = logging.getLogger(__name__)


class AnnualDistributionBuilder:
    """Builds the month x insurer table used by the annual trend chart."""

    @staticmethod
    def build(
        year: int,
        transactions: List[TransactionRecord],
        insurer_names: Mapping[int, str]
    ) -> AnnualDistributionTable:
        """
        Build the distribution for one calendar year.

        Only months with at least one transaction appear, in calendar order.
        Self-pay transactions make a month appear but add no insurer column.
        Columns are the union of insurer names over the included months, sorted
        alphabetically, and every included month has a cell (0 when the insurer
        had no activity). Insurers missing from ``insurer_names`` are shown as
        "Unknown Insurer".
        """
        in_year = LedgerExtractor.filter_transactions(transactions, year_window(year))

        month_numbers: Set[int] = set()
        sums: Dict[int, Dict[str, List[Money]]] = defaultdict(lambda: defaultdict(list))
        columns: Set[str] = set()
        unknown_ids: Set[int] = set()

        for transaction in in_year:
            month_number = to_clinic_datetime(transaction['created_at']).month
            month_numbers.add(month_number)
            insurer_id = transaction['insurer_id']
            if insurer_id is None:
                continue
            name = insurer_names.get(insurer_id)
            if name is None:
                unknown_ids.add(insurer_id)
                name = UNKNOWN_INSURER_NAME
            columns.add(name)
            sums[month_number][name].append(transaction['insurance_expected_amount'])

        if unknown_ids:
            logger.warning(f"Annual distribution {year}: unknown insurers {sorted(unknown_ids)}")

        ordered_columns = sorted(columns)
        months: List[str] = []
        cells: Dict[str, Dict[str, Money]] = {}
        for month_number in sorted(month_numbers):
            month_name = MONTH_NAMES[month_number - 1]
            months.append(month_name)
            cells[month_name] = {
                name: Money.sum(sums[month_number].get(name, [])) for name in ordered_columns
            }

        return AnnualDistributionTable(
            year=year,
            months=months,
            insurer_names=ordered_columns,
            cells=cells,
        )
