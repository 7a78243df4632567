"""
Money Utilities

Currency is held as an integer number of pence. The only external
representation is a decimal string with exactly two fraction digits.

Splits across referral levels are exact: each one reports its rounding
remainder instead of dropping it.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_EVEN, Decimal, InvalidOperation
from typing import Iterable, List, Sequence, Tuple, Union

from app.core.errors import InvalidAmount

PENNY = Decimal("0.01")
HUNDRED = Decimal(100)

# Largest amount a Numeric(12, 2) column holds
MAX_PENCE = 10**12 - 1

MoneyInput = Union["Money", Decimal, int, str]
PercentInput = Union[Decimal, int, str]


@dataclass(frozen=True, order=True)
class Money:
    """An exact amount of pounds and pence."""

    pence: int

    # ========== Construction ==========

    @classmethod
    def zero(cls) -> "Money":
        return cls(0)

    @classmethod
    def from_pence(cls, pence: int) -> "Money":
        return cls(int(pence))

    @classmethod
    def parse(cls, value: MoneyInput) -> "Money":
        """
        Parse a decimal amount into Money.

        Args:
            value: Money, Decimal, int (whole pounds) or decimal string

        Returns:
            Money instance

        Raises:
            InvalidAmount: value is not a number, is a float, has more
                than two fraction digits or exceeds MAX_PENCE

        Example:
            >>> Money.parse("333.33").pence
            33333
        """
        if isinstance(value, Money):
            return value
        if isinstance(value, (bool, float)):
            raise InvalidAmount(f"Unsupported amount type: {type(value).__name__}")
        try:
            amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
            if not amount.is_finite():
                raise InvalidAmount(f"Invalid amount: {value!r}")
            if amount != amount.quantize(PENNY):
                raise InvalidAmount(f"Amount {value} has more than two decimal places")
            pence = int((amount * HUNDRED).to_integral_value())
        except InvalidOperation:
            raise InvalidAmount(f"Invalid amount: {value!r}")
        if abs(pence) > MAX_PENCE:
            raise InvalidAmount(f"Amount {value} exceeds the maximum of {cls(MAX_PENCE)}")
        return cls(pence)

    # ========== Arithmetic ==========

    def __add__(self, other: "Money") -> "Money":
        return Money(self.pence + other.pence)

    def __sub__(self, other: "Money") -> "Money":
        return Money(self.pence - other.pence)

    def percent(self, percentage: PercentInput) -> "Money":
        """
        Multiply by a percentage, rounding half-to-even to the nearest penny.

        Example:
            >>> str(Money.parse("333.33").percent(20))
            '66.67'
        """
        raw = Decimal(self.pence) * Decimal(str(percentage)) / HUNDRED
        return Money(int(raw.quantize(Decimal(1), rounding=ROUND_HALF_EVEN)))

    @staticmethod
    def sum(amounts: Iterable["Money"]) -> "Money":
        return Money(sum(amount.pence for amount in amounts))

    # ========== Predicates ==========

    def is_positive(self) -> bool:
        return self.pence > 0

    def is_negative(self) -> bool:
        return self.pence < 0

    # ========== Conversion ==========

    def to_decimal(self) -> Decimal:
        return (Decimal(self.pence) / HUNDRED).quantize(PENNY)

    def __str__(self) -> str:
        sign = "-" if self.pence < 0 else ""
        pounds, pence = divmod(abs(self.pence), 100)
        return f"{sign}{pounds}.{pence:02d}"


def allocate(total: Money, percentages: Sequence[PercentInput]) -> Tuple[List[Money], Money]:
    """
    Split a total by percentages and reconcile the rounding.

    Args:
        total: Amount being split
        percentages: One percentage per share (e.g. [60, 20, 10])

    Returns:
        (shares, remainder) where sum(shares) + remainder == total exactly.
        The remainder holds both the unallocated share and rounding drift.

    Example:
        >>> shares, rest = allocate(Money.parse("333.33"), [60, 20, 10])
        >>> [str(s) for s in shares], str(rest)
        (['200.00', '66.67', '33.33'], '33.33')
    """
    shares = [total.percent(pct) for pct in percentages]
    remainder = total - Money.sum(shares)
    return shares, remainder
