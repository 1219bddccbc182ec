"""
Currency and Money Module

ISO 4217 currency codes with minor-unit precision, and an immutable Money type
that rounds to the currency's minor unit on construction. NEVER uses float for
monetary values.
"""

from decimal import Decimal, ROUND_HALF_UP, getcontext
from dataclasses import dataclass
from functools import total_ordering
from enum import Enum

# Enough digits for annuity factors on long daily schedules
getcontext().prec = 28


class Currency(Enum):
    """ISO 4217 codes with the number of digits in the minor unit"""
    INR = ("INR", 2)  # Indian Rupee, 2 decimal places (paise)
    USD = ("USD", 2)  # US Dollar, 2 decimal places
    EUR = ("EUR", 2)  # Euro, 2 decimal places
    GBP = ("GBP", 2)  # British Pound, 2 decimal places
    KES = ("KES", 2)  # Kenyan Shilling, 2 decimal places
    JPY = ("JPY", 0)  # Japanese Yen, 0 decimal places

    def __init__(self, code: str, precision: int):
        self.code = code
        self.precision = precision

    @property
    def minor_unit(self) -> Decimal:
        """Smallest representable amount, e.g. 0.01 for INR"""
        return Decimal('0.1') ** self.precision


def _as_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


@total_ordering
@dataclass(frozen=True)
class Money:
    """
    An amount in one currency, always held at the currency's minor unit.

    Arithmetic between different currencies raises ValueError; scaling by a
    Decimal rounds the result half-up back to the minor unit.
    """
    amount: Decimal
    currency: Currency

    def __post_init__(self):
        object.__setattr__(self, 'amount',
                           round_to_currency(_as_decimal(self.amount), self.currency))

    @classmethod
    def zero(cls, currency: Currency) -> 'Money':
        return cls(Decimal('0'), currency)

    def _check_currency(self, other: 'Money', verb: str) -> None:
        if self.currency != other.currency:
            raise ValueError(f"Cannot {verb} {self.currency.code} and {other.currency.code}")

    def __add__(self, other: 'Money') -> 'Money':
        self._check_currency(other, "add")
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: 'Money') -> 'Money':
        self._check_currency(other, "subtract")
        return Money(self.amount - other.amount, self.currency)

    def __mul__(self, factor) -> 'Money':
        return Money(self.amount * _as_decimal(factor), self.currency)

    def __truediv__(self, divisor) -> 'Money':
        return Money(self.amount / _as_decimal(divisor), self.currency)

    def __neg__(self) -> 'Money':
        return Money(-self.amount, self.currency)

    def __abs__(self) -> 'Money':
        return Money(abs(self.amount), self.currency)

    def __eq__(self, other) -> bool:
        return (isinstance(other, Money) and self.currency == other.currency
                and self.amount == other.amount)

    def __hash__(self) -> int:
        return hash((self.amount, self.currency))

    def __lt__(self, other: 'Money') -> bool:
        self._check_currency(other, "compare")
        return self.amount < other.amount

    def is_zero(self) -> bool:
        return self.amount.is_zero()

    def is_positive(self) -> bool:
        return self.amount > 0

    def is_negative(self) -> bool:
        return self.amount < 0

    def to_string(self) -> str:
        """Display form, e.g. "INR 1,234.56" """
        return f"{self.currency.code} {self.amount:,.{self.currency.precision}f}"


def round_to_currency(value: Decimal, currency: Currency) -> Decimal:
    """Quantize to the currency minor unit, half-up"""
    return value.quantize(currency.minor_unit, rounding=ROUND_HALF_UP)


def money_min(first: Money, second: Money) -> Money:
    """Smaller of two amounts in the same currency"""
    return first if first <= second else second


def money_max(first: Money, second: Money) -> Money:
    """Larger of two amounts in the same currency"""
    return first if first >= second else second
