"""
Expense model representing clinic spending, tagged clinical or operational.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, Text, TIMESTAMP, Date, Integer, Numeric, Index, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from core.database import Base


class Expense(Base):
    """Expense entity."""

    __tablename__ = "expenses"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    """Unique identifier for the expense."""

    description: Mapped[str] = mapped_column(Text)
    """What the money was spent on."""

    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    """Amount spent."""

    category: Mapped[str] = mapped_column(String(20))
    """'clinical' or 'operational'."""

    expense_date: Mapped[date] = mapped_column(Date)
    """Date the expense applies to (clinic local date)."""

    reported_by_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    """Staff user who reported the expense."""

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    """Timestamp when the expense was recorded."""

    __table_args__ = (
        Index('idx_expenses_expense_date', 'expense_date'),
        CheckConstraint("category IN ('clinical', 'operational')", name='chk_expense_category'),
        CheckConstraint('amount >= 0', name='chk_expense_amount_non_negative'),
    )
