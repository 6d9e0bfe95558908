"""
Transaction model representing a single patient visit billing event.

At creation the bill is split between the patient and the insurer using the
insurer's coverage percentage, so that
``patient_paid_amount + insurance_expected_amount == total_billed_amount``.
``insurance_actual_paid_amount`` stays NULL until the insurer's bulk payment for
the period is reconciled.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, Text, ForeignKey, TIMESTAMP, Integer, Numeric, Index, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class Transaction(Base):
    """
    Billing transaction entity.

    The reconciliation engine only ever changes ``insurance_actual_paid_amount``
    and bumps ``version``; every other column is owned by the ledger.
    """

    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the transaction."""

    patient_id: Mapped[int] = mapped_column(Integer)
    """Patient who received the service."""

    insurer_id: Mapped[Optional[int]] = mapped_column(ForeignKey("insurers.id", ondelete="RESTRICT"), nullable=True)
    """Insurer covering part of the bill, NULL for self-pay."""

    total_billed_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    """Full bill for the visit."""

    patient_paid_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    """Amount the patient paid directly."""

    insurance_expected_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    """Coverage the insurer is expected to pay, frozen at creation time."""

    insurance_actual_paid_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    """Share of the insurer's reconciled bulk payment attributed to this transaction."""

    payment_method: Mapped[str] = mapped_column(String(20), default="cash")
    """How the patient paid: 'cash', 'mobile_money' or 'none' (fully insurer-covered)."""

    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    """Optional free-text description of the visit."""

    reported_by_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    """Staff user who recorded the transaction."""

    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    """Optimistic concurrency stamp, incremented on every actual-paid update."""

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    """Timestamp of the visit billing event."""

    updated_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    """Timestamp when the transaction was last updated."""

    insurer = relationship("Insurer", back_populates="transactions")
    """Relationship to the Insurer entity."""

    __table_args__ = (
        Index('idx_transactions_created_at', 'created_at'),
        Index('idx_transactions_insurer_created_at', 'insurer_id', 'created_at'),
        Index('idx_transactions_patient', 'patient_id'),
        CheckConstraint(
            "payment_method IN ('cash', 'mobile_money', 'none')",
            name='chk_transaction_payment_method'
        ),
        CheckConstraint('total_billed_amount >= 0', name='chk_transaction_total_non_negative'),
        CheckConstraint('patient_paid_amount >= 0', name='chk_transaction_patient_paid_non_negative'),
        CheckConstraint('insurance_expected_amount >= 0', name='chk_transaction_expected_non_negative'),
    )
