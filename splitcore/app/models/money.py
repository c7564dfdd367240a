"""
models/money.py — Exact decimal money value.

All monetary arithmetic in the engine goes through Money. Never float.

Key design points:
  - Every operation is evaluated in MONEY_CONTEXT: 20 significant digits,
    ROUND_HALF_UP. Intermediate results are NOT rounded to display precision;
    only quantize()/to_display() round to currency places.
  - float input is rejected outright. Construct from str, int or Decimal.
  - Money / Money yields a plain Decimal ratio; Money / number yields Money.
  - Money is immutable and hashable, so it can be used in frozen dataclasses
    and as dict values shared between snapshots.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Context, Decimal

from splitcore.config import BaseConfig


MONEY_CONTEXT = Context(prec=BaseConfig.MONEY_PRECISION, rounding=ROUND_HALF_UP)

DEFAULT_PLACES = 2


def currency_places(currency: str | None) -> int:
    """Display precision for a currency code. Unknown codes use 2 places."""
    if currency is None:
        return DEFAULT_PLACES
    return BaseConfig.CURRENCY_PLACES.get(currency.upper(), DEFAULT_PLACES)


def to_decimal(value) -> Decimal:
    """
    Coerces a str/int/Decimal/Money into a Decimal under MONEY_CONTEXT.

    Raises TypeError for float (binary floating point never enters the engine)
    and for bool (a bool is an int subclass, but never a valid amount).
    """
    if isinstance(value, Money):
        return value.amount
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError(
            f"Monetary values must be str, int or Decimal, not {type(value).__name__}."
        )
    if isinstance(value, Decimal):
        return MONEY_CONTEXT.plus(value)
    if isinstance(value, (int, str)):
        return MONEY_CONTEXT.plus(Decimal(value))
    raise TypeError(f"Cannot convert {type(value).__name__} to Money.")


def _quantum(places: int) -> Decimal:
    return Decimal(1).scaleb(-places)


@dataclass(frozen=True, order=True)
class Money:
    """
    Immutable exact money value.

    Examples:
        >>> Money("100.00") / 3
        Money(amount=Decimal('33.333333333333333333'))
        >>> (Money("100.00") / 3).quantize()
        Money(amount=Decimal('33.33'))
        >>> Money("33.34") / Money("100.00")
        Decimal('0.3334')
    """

    amount: Decimal

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", to_decimal(self.amount))

    # ── Constructors ───────────────────────────────────────────────────────

    @classmethod
    def zero(cls) -> "Money":
        return cls(Decimal(0))

    @classmethod
    def from_display(cls, value, places: int = DEFAULT_PLACES) -> "Money":
        """Parses a display value and rounds it half-up to `places`."""
        return cls(value).quantize(places)

    # ── Arithmetic ─────────────────────────────────────────────────────────

    def __add__(self, other) -> "Money":
        return Money(MONEY_CONTEXT.add(self.amount, to_decimal(other)))

    def __radd__(self, other) -> "Money":
        # Supports sum() over Money, whose start value is int 0.
        return self.__add__(other)

    def __sub__(self, other) -> "Money":
        return Money(MONEY_CONTEXT.subtract(self.amount, to_decimal(other)))

    def __rsub__(self, other) -> "Money":
        return Money(MONEY_CONTEXT.subtract(to_decimal(other), self.amount))

    def __mul__(self, factor) -> "Money":
        if isinstance(factor, Money):
            raise TypeError("Cannot multiply Money by Money.")
        return Money(MONEY_CONTEXT.multiply(self.amount, to_decimal(factor)))

    __rmul__ = __mul__

    def __truediv__(self, divisor):
        if isinstance(divisor, Money):
            return MONEY_CONTEXT.divide(self.amount, divisor.amount)
        return Money(MONEY_CONTEXT.divide(self.amount, to_decimal(divisor)))

    def __neg__(self) -> "Money":
        return Money(MONEY_CONTEXT.minus(self.amount))

    def __abs__(self) -> "Money":
        return Money(MONEY_CONTEXT.abs(self.amount))

    # ── Rounding ───────────────────────────────────────────────────────────

    def quantize(self, places: int = DEFAULT_PLACES, rounding: str = ROUND_HALF_UP) -> "Money":
        """Rounds to `places` decimal places (half-up unless told otherwise)."""
        return Money(self.amount.quantize(_quantum(places), rounding=rounding, context=MONEY_CONTEXT))

    def to_display(self, places: int = DEFAULT_PLACES) -> Decimal:
        """Returns the display value as a Decimal with exactly `places` places."""
        return self.quantize(places).amount

    # ── Predicates ─────────────────────────────────────────────────────────

    def is_zero(self) -> bool:
        return self.amount.is_zero()

    def is_positive(self) -> bool:
        return self.amount > 0

    def is_negative(self) -> bool:
        return self.amount < 0

    def within(self, other, tolerance) -> bool:
        """True if |self - other| <= tolerance."""
        return abs(self - other).amount <= to_decimal(tolerance)

    # ── Derived values ─────────────────────────────────────────────────────

    def percentage_of(self, total: "Money") -> Decimal:
        """self / total * 100 at full precision."""
        return MONEY_CONTEXT.multiply(self / total, Decimal(100))

    def format(self, currency: str | None = None) -> str:
        places = currency_places(currency)
        text = f"{self.to_display(places)}"
        return f"{currency} {text}" if currency else text

    def __str__(self) -> str:
        return str(self.amount)


def sum_money(values) -> Money:
    """Exact sum of an iterable of Money. Empty input sums to Money.zero()."""
    total = Money.zero()
    for value in values:
        total = total + value
    return total
