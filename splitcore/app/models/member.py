"""
models/member.py — Member record consumed by the split engine.

Members are supplied by the caller's identity directory for each calculation.
The engine never mutates them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from splitcore.app.models.money import Money, to_decimal


@dataclass(frozen=True)
class Member:
    id: str
    name: str = ""
    # Non-negative; None means no income data (income methods fall back to equal).
    income: Money | None = None
    # Positive real. Used by the weighted method when no explicit weight is given.
    weight: Decimal = field(default=Decimal(1))
    is_active: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "id", str(self.id))
        if self.income is not None and not isinstance(self.income, Money):
            object.__setattr__(self, "income", Money(self.income))
        object.__setattr__(self, "weight", to_decimal(self.weight))

    @property
    def has_income(self) -> bool:
        return self.income is not None and self.income.is_positive()

    @property
    def display_name(self) -> str:
        return self.name or f"member_{self.id}"


def member_ids(members) -> list[str]:
    """Member ids in input order."""
    return [m.id for m in members]
