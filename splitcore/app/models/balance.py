"""
models/balance.py — Pairwise balance between two members of a group.

Key design points:
  - The pair is stored in canonical order: user_a is always the lower member id
    (plain string ordering). The sign of `amount` alone encodes direction:
        amount > 0  → user_b owes user_a
        amount < 0  → user_a owes user_b
  - A Balance is immutable. Folding an expense or settlement produces a new
    Balance via shifted(); the ledger swaps it in.
  - Status is derived, never stored: SETTLED when |amount| is below the
    tolerance, ACTIVE otherwise. A new expense can reopen a settled pair.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from decimal import Decimal

from splitcore.app.errors import SelfSettlement
from splitcore.app.models.money import Money


DEFAULT_TOLERANCE = Decimal("0.01")


class BalanceStatus(str, enum.Enum):
    ACTIVE  = "active"
    SETTLED = "settled"


@dataclass(frozen=True)
class Balance:
    user_a: str
    user_b: str
    amount: Money
    currency: str

    def __post_init__(self) -> None:
        if self.user_a == self.user_b:
            raise SelfSettlement(self.user_a)
        if not isinstance(self.amount, Money):
            object.__setattr__(self, "amount", Money(self.amount))
        if self.user_a > self.user_b:
            a, b = self.user_b, self.user_a
            object.__setattr__(self, "user_a", a)
            object.__setattr__(self, "user_b", b)
            object.__setattr__(self, "amount", -self.amount)

    @classmethod
    def owed(cls, creditor: str, debtor: str, amount: Money, currency: str) -> "Balance":
        """Balance meaning `debtor` owes `creditor` `amount`."""
        return cls(user_a=creditor, user_b=debtor, amount=amount, currency=currency)

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.user_a, self.user_b, self.currency)

    @property
    def creditor(self) -> str | None:
        if self.amount.is_positive():
            return self.user_a
        if self.amount.is_negative():
            return self.user_b
        return None

    @property
    def debtor(self) -> str | None:
        if self.amount.is_positive():
            return self.user_b
        if self.amount.is_negative():
            return self.user_a
        return None

    @property
    def magnitude(self) -> Money:
        return abs(self.amount)

    def shifted(self, creditor: str, debtor: str, amount: Money) -> "Balance":
        """Returns a new Balance with `debtor` owing `creditor` an extra `amount`."""
        if creditor == self.user_a and debtor == self.user_b:
            return Balance(self.user_a, self.user_b, self.amount + amount, self.currency)
        if creditor == self.user_b and debtor == self.user_a:
            return Balance(self.user_a, self.user_b, self.amount - amount, self.currency)
        raise ValueError(
            f"Pair ({creditor!r}, {debtor!r}) does not belong to balance {self.key!r}."
        )

    def status(self, tolerance=DEFAULT_TOLERANCE) -> BalanceStatus:
        if self.magnitude.amount < tolerance:
            return BalanceStatus.SETTLED
        return BalanceStatus.ACTIVE

    def is_settled(self, tolerance=DEFAULT_TOLERANCE) -> bool:
        return self.status(tolerance) is BalanceStatus.SETTLED

    def amount_owed_by(self, member_id: str) -> Money:
        """What `member_id` owes the other party (zero if they are owed)."""
        if member_id == self.debtor:
            return self.magnitude
        return Money.zero()
