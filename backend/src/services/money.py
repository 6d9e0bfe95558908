"""
Fixed-point money type.

All monetary values that are summed, multiplied or compared go through Money so
that report totals always equal the exact sum of their rows, whatever the order
of addition. Values are backed by Decimal; parsing quantizes to minor units
(2 decimal places), arithmetic is exact, and ``round2`` is applied explicitly
after ratio multiplication.
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from functools import total_ordering
from typing import Any, Iterable, Union

from core.constants import MAX_MONEY_AMOUNT, MINOR_UNITS_PER_MAJOR, MONEY_QUANTUM
from services.finance_errors import InvalidAmount

Scalar = Union[int, Decimal]


@total_ordering
class Money:
    """Immutable monetary amount (may be negative, e.g. net profit)."""

    __slots__ = ('_amount',)

    def __init__(self, amount: Union[Decimal, int] = 0):
        if isinstance(amount, bool) or not isinstance(amount, (Decimal, int)):
            raise TypeError(f"Money requires Decimal or int, got {type(amount).__name__}; use Money.parse")
        amount = Decimal(amount)
        if not amount.is_finite():
            raise InvalidAmount(amount, "not a finite number")
        object.__setattr__(self, '_amount', amount)

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("Money is immutable")

    # Construction

    @classmethod
    def zero(cls) -> "Money":
        return cls(Decimal('0'))

    @classmethod
    def parse(cls, value: Any) -> "Money":
        """
        Normalize a store value (Decimal, int, numeric string or float) to Money.

        Floats are converted through their shortest repr so 0.1 becomes 0.10, not
        0.1000000000000000055.

        Raises:
            InvalidAmount: On None, booleans, non-numeric strings, NaN, infinity or
                amounts beyond what a Numeric(12, 2) column holds
        """
        if value is None or isinstance(value, bool):
            raise InvalidAmount(value)
        if isinstance(value, Money):
            return value
        try:
            if isinstance(value, Decimal):
                amount = value
            elif isinstance(value, int):
                amount = Decimal(value)
            elif isinstance(value, float):
                amount = Decimal(repr(value))
            elif isinstance(value, str):
                text = value.strip().replace(',', '')
                if not text:
                    raise InvalidAmount(value, "empty string")
                amount = Decimal(text)
            else:
                raise InvalidAmount(value, f"unsupported type {type(value).__name__}")
            if not amount.is_finite():
                raise InvalidAmount(value, "not a finite number")
            if abs(amount) > MAX_MONEY_AMOUNT:
                raise InvalidAmount(value, f"exceeds the maximum of {MAX_MONEY_AMOUNT}")
            quantized = amount.quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)
        except InvalidOperation as e:
            raise InvalidAmount(value) from e

        return cls(quantized)

    @classmethod
    def parse_non_negative(cls, value: Any) -> "Money":
        """Parse and reject negative amounts (e.g. an insurer's received payment)."""
        money = cls.parse(value)
        if money.is_negative():
            raise InvalidAmount(value, "must be greater than or equal to 0")
        return money

    @classmethod
    def from_minor_units(cls, minor_units: int) -> "Money":
        return cls(Decimal(minor_units) / MINOR_UNITS_PER_MAJOR)

    @classmethod
    def sum(cls, values: Iterable["Money"]) -> "Money":
        total = Decimal('0')
        for value in values:
            total += value._amount
        return cls(total)

    # Accessors

    @property
    def amount(self) -> Decimal:
        return self._amount

    def is_zero(self) -> bool:
        return self._amount == 0

    def is_negative(self) -> bool:
        return self._amount < 0

    # Arithmetic

    def __add__(self, other: "Money") -> "Money":
        if not isinstance(other, Money):
            return NotImplemented
        return Money(self._amount + other._amount)

    def __sub__(self, other: "Money") -> "Money":
        if not isinstance(other, Money):
            return NotImplemented
        return Money(self._amount - other._amount)

    def __neg__(self) -> "Money":
        return Money(-self._amount)

    def __mul__(self, scalar: Scalar) -> "Money":
        """Exact multiplication by a ratio or percentage factor; call round2 afterwards."""
        if isinstance(scalar, bool) or not isinstance(scalar, (int, Decimal)):
            return NotImplemented
        return Money(self._amount * scalar)

    __rmul__ = __mul__

    def ratio_to(self, other: "Money") -> Decimal:
        """
        Exact ratio ``self / other``.

        Raises:
            ZeroDivisionError: If other is zero
        """
        if other.is_zero():
            raise ZeroDivisionError("ratio to a zero amount")
        return self._amount / other._amount

    def round2(self) -> "Money":
        """Round half-up to minor units."""
        return Money(self._amount.quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP))

    # Comparison

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        return self._amount == other._amount

    def __lt__(self, other: "Money") -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        return self._amount < other._amount

    def __hash__(self) -> int:
        return hash(self._amount)

    # Serialization

    def to_wire(self) -> str:
        """Fixed-point string with two decimals, e.g. "8000.00"."""
        return format(self.round2()._amount, 'f')

    def to_minor_units(self) -> int:
        return int(self.round2()._amount * MINOR_UNITS_PER_MAJOR)

    def __str__(self) -> str:
        return self.to_wire()

    def __repr__(self) -> str:
        return f"Money('{self._amount}')"
