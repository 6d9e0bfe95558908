"""
Insurer model representing insurance providers that cover patient bills.

Each insurer covers a fixed percentage of a patient's bill. The percentage is
applied when a transaction is created; later edits only affect future
transactions because the expected amount is frozen on each transaction.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, TIMESTAMP, Numeric, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.constants import MAX_STRING_LENGTH
from core.database import Base


class Insurer(Base):
    """Insurance provider entity."""

    __tablename__ = "insurers"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the insurer."""

    name: Mapped[str] = mapped_column(String(MAX_STRING_LENGTH), unique=True)
    """Display name (e.g., "RSSB", "MMI")."""

    coverage_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2))
    """Share of a bill the insurer is contractually expected to pay (0-100)."""

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    """Timestamp when the insurer was created."""

    updated_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    """Timestamp when the insurer was last updated."""

    transactions = relationship("Transaction", back_populates="insurer")
    """Relationship to the transactions billed to this insurer."""

    __table_args__ = (
        CheckConstraint(
            'coverage_percentage >= 0 AND coverage_percentage <= 100',
            name='chk_insurer_coverage_range'
        ),
    )
