"""
models/settlement.py — Payment-shaped values flowing in and out of the ledger.

  - Settlement           : a direct payment (real or proposed) from one member
                           to another. Folding it reduces what the payer owes.
  - ExpenseSplit         : a completed split plus who paid, ready to fold.
  - OptimizedSettlement  : one payment instruction emitted by the optimizer.
  - OptimizationResult   : optimizer output plus the comparison with the raw
                           pairwise transfers it replaces.

No business logic beyond derived totals.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from splitcore.app.errors import InvalidSettlement, SelfSettlement
from splitcore.app.models.money import Money, sum_money
from splitcore.app.models.split import SplitResult


@dataclass(frozen=True)
class Settlement:
    from_user_id: str
    to_user_id: str
    amount: Money
    currency: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "from_user_id", str(self.from_user_id))
        object.__setattr__(self, "to_user_id", str(self.to_user_id))
        if not isinstance(self.amount, Money):
            object.__setattr__(self, "amount", Money(self.amount))
        if self.from_user_id == self.to_user_id:
            raise SelfSettlement(self.from_user_id)
        if not self.amount.is_positive():
            raise InvalidSettlement(
                f"Settlement amount must be greater than zero (got {self.amount}).",
                field="amount",
            )


@dataclass(frozen=True)
class ExpenseSplit:
    """
    A validated split ready to be folded into a ledger.

    `payers` maps member id → amount that member actually paid. A single-payer
    expense has one entry equal to the split total.
    """
    results: tuple[SplitResult, ...]
    payers: dict[str, Money]
    currency: str
    expense_id: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "results", tuple(self.results))
        object.__setattr__(
            self,
            "payers",
            {str(k): v if isinstance(v, Money) else Money(v) for k, v in self.payers.items()},
        )

    @classmethod
    def single_payer(
            cls,
            payer_id: str,
            results,
            currency: str,
            expense_id: str | None = None,
    ) -> "ExpenseSplit":
        results = tuple(results)
        return cls(results=results, payers={str(payer_id): sum_money(r.amount for r in results)},
                   currency=currency, expense_id=expense_id)

    @property
    def total(self) -> Money:
        return sum_money(r.amount for r in self.results)

    @property
    def paid_total(self) -> Money:
        return sum_money(self.payers.values())

    @property
    def is_multi_payer(self) -> bool:
        return len(self.payers) > 1


@dataclass(frozen=True)
class OptimizedSettlement:
    from_user_id: str
    to_user_id: str
    amount: Money
    reason: str
    savings: int
    currency: str = ""


@dataclass(frozen=True)
class OptimizationResult:
    current_settlements: tuple[Settlement, ...]
    optimized_settlements: tuple[OptimizedSettlement, ...]
    transaction_reduction: int
    complexity_reduction: int        # percentage, 0-100
    currency: str = ""
    net_positions: dict[str, Money] = field(default_factory=dict)
