"""
Coverage split applied when a transaction is created.

The insurer's coverage percentage is applied once, at creation, and the result
is frozen on the transaction. Shares are always computed so that the patient
and insurer amounts sum exactly to the bill.
"""
from decimal import Decimal
from typing import Any, Optional

from services.finance_types import CoverageSplit, PaymentMethod
from services.money import Money

FULL_COVERAGE = Decimal('100')


def _validate_percentage(coverage_percentage: Optional[Decimal]) -> Decimal:
    if coverage_percentage is None:
        return Decimal('0')
    pct = Decimal(str(coverage_percentage))
    if not pct.is_finite() or pct < 0 or pct > FULL_COVERAGE:
        raise ValueError(f"Coverage percentage must be between 0 and 100, got {coverage_percentage}")
    return pct


def split_bill(
    total_billed: Any,
    coverage_percentage: Optional[Decimal],
    payment_method: PaymentMethod = "cash"
) -> CoverageSplit:
    """
    Split a bill between the patient and the insurer.

    Args:
        total_billed: Full bill amount (parsed through Money.parse_non_negative)
        coverage_percentage: Insurer coverage 0-100, or None for self-pay
        payment_method: How the patient pays their share

    Returns:
        CoverageSplit. Full coverage sets the patient share to 0 and the method to 'none'.

    Raises:
        InvalidAmount: If the bill is malformed or negative
        ValueError: If the percentage is outside 0-100
    """
    total = Money.parse_non_negative(total_billed)
    pct = _validate_percentage(coverage_percentage)

    if pct == FULL_COVERAGE:
        return CoverageSplit(
            total_billed_amount=total,
            patient_paid_amount=Money.zero(),
            insurance_expected_amount=total,
            payment_method="none",
        )

    expected = (total * (pct / FULL_COVERAGE)).round2()
    patient_paid = total - expected
    if payment_method == "none" and not patient_paid.is_zero():
        raise ValueError("Payment method 'none' requires the insurer to cover the whole bill")
    return CoverageSplit(
        total_billed_amount=total,
        patient_paid_amount=patient_paid,
        insurance_expected_amount=expected,
        payment_method=payment_method,
    )


def split_from_patient_payment(
    amount: Any,
    coverage_percentage: Optional[Decimal],
    payment_method: PaymentMethod = "cash"
) -> CoverageSplit:
    """
    Rebuild the bill from what the patient paid at the front desk.

    The patient pays the uncovered share, so the bill is
    ``patient_paid * 100 / (100 - coverage)``. Under full coverage the patient
    pays nothing and ``amount`` is taken as the whole bill.
    """
    entered = Money.parse_non_negative(amount)
    pct = _validate_percentage(coverage_percentage)

    if pct == FULL_COVERAGE:
        return split_bill(entered, pct, payment_method)
    if payment_method == "none" and not entered.is_zero():
        raise ValueError("Payment method 'none' requires the insurer to cover the whole bill")

    total = (entered * (FULL_COVERAGE / (FULL_COVERAGE - pct))).round2()
    return CoverageSplit(
        total_billed_amount=total,
        patient_paid_amount=entered,
        insurance_expected_amount=total - entered,
        payment_method=payment_method,
    )
