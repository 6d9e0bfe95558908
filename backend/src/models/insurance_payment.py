"""
Insurance payment model recording an insurer's actual bulk payment for a period.

One row per insurer and period start. Reconciling the same period again updates
the row in the same database transaction that overwrites the per-transaction
actual-paid amounts, so the record and the distribution never disagree.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import ForeignKey, TIMESTAMP, Numeric, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class InsurancePayment(Base):
    """Insurer bulk payment entity."""

    __tablename__ = "insurance_payments"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the payment record."""

    insurer_id: Mapped[int] = mapped_column(ForeignKey("insurers.id", ondelete="RESTRICT"))
    """Insurer that made the payment."""

    period_start: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True))
    """Inclusive start of the reconciled period."""

    period_end: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True))
    """Exclusive end of the reconciled period."""

    amount_received: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    """Amount actually received from the insurer."""

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    """Optional notes entered with the payment."""

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    """Timestamp when the payment was first recorded."""

    updated_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    """Timestamp of the latest reconciliation for this period."""

    insurer = relationship("Insurer")
    """Relationship to the Insurer entity."""

    __table_args__ = (
        UniqueConstraint('insurer_id', 'period_start', name='uq_insurance_payments_insurer_period'),
    )
