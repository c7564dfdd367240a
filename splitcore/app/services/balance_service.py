"""
services/balance_service.py — Pairwise balance ledger for one group.

This file is the SINGLE SOURCE OF TRUTH for how expenses and settlements change
who-owes-whom. The folding rules must not be reimplemented elsewhere.

Layer rules:
  - No I/O. A ledger is an in-memory value owned by one caller context.
  - Folding never mutates a ledger: fold_expense()/fold_settlement() return a
    NEW BalanceLedger. Readers holding the old one keep a consistent snapshot.
  - At most one writer per group. Callers serialise folds for the same group.

Conservation guarantee:
  Every fold is expressed as pairwise shifts ("debtor owes creditor X more").
  Each shift adds +X to one member's net position and -X to the other's, so
  sum(net_positions(currency).values()) == 0 for every currency, always.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field

from splitcore.app.errors import InvalidSettlement
from splitcore.app.models.balance import Balance
from splitcore.app.models.money import Money, currency_places, sum_money
from splitcore.app.models.settlement import ExpenseSplit, Settlement
from splitcore.config import BaseConfig


logger = logging.getLogger(__name__)

SETTLEMENT_TOLERANCE = BaseConfig.SETTLEMENT_TOLERANCE


@dataclass(frozen=True)
class MemberSummary:
    """What one member owes to, and is owed by, each counterparty."""
    member_id: str
    currency: str
    owes_to: dict[str, Money] = field(default_factory=dict)
    owed_by: dict[str, Money] = field(default_factory=dict)

    @property
    def net(self) -> Money:
        return sum_money(self.owed_by.values()) - sum_money(self.owes_to.values())


def _shift(
        balances: dict[tuple[str, str, str], Balance],
        creditor: str,
        debtor: str,
        amount: Money,
        currency: str,
) -> None:
    """Records that `debtor` owes `creditor` an extra `amount` (may be negative)."""
    if creditor == debtor or amount.is_zero():
        return
    current = Balance.owed(creditor, debtor, Money.zero(), currency)
    existing = balances.get(current.key)
    base = existing if existing is not None else current
    updated = base.shifted(creditor, debtor, amount)
    balances[updated.key] = updated


def net_positions_from(balances) -> dict[str, Money]:
    """
    Collapses pairwise balances to one net position per member.

    Positive → the member is owed money overall (creditor).
    Negative → the member owes money overall (debtor).
    """
    nets: dict[str, Money] = defaultdict(Money.zero)
    for balance in balances:
        nets[balance.user_a] = nets[balance.user_a] + balance.amount
        nets[balance.user_b] = nets[balance.user_b] - balance.amount
    return dict(nets)


class BalanceLedger:
    """
    Immutable-by-convention map of (user_a, user_b, currency) → Balance.

    Usage:
        ledger = BalanceLedger(default_currency="INR")
        ledger = ledger.fold_expense(ExpenseSplit.single_payer("a", results, "INR"))
        ledger = ledger.fold_settlement(Settlement("b", "a", Money("10.00"), "INR"))
        ledger.net_positions("INR")
    """

    def __init__(
            self,
            balances=None,
            *,
            default_currency: str = BaseConfig.DEFAULT_CURRENCY,
            tolerance=SETTLEMENT_TOLERANCE,
    ) -> None:
        self._balances: dict[tuple[str, str, str], Balance] = {}
        for balance in balances or ():
            self._balances[balance.key] = balance
        self.default_currency = default_currency
        self.tolerance = tolerance

    def _derive(self, balances: dict) -> "BalanceLedger":
        return BalanceLedger(
            balances.values(),
            default_currency=self.default_currency,
            tolerance=self.tolerance,
        )

    # ── Reads ──────────────────────────────────────────────────────────────

    def __len__(self) -> int:
        return len(self._balances)

    def currencies(self) -> list[str]:
        return sorted({key[2] for key in self._balances})

    def balances(self, currency: str | None = None) -> list[Balance]:
        """All tracked pairs (settled ones included), in canonical key order."""
        return [
            self._balances[key]
            for key in sorted(self._balances)
            if currency is None or key[2] == currency
        ]

    def active_balances(self, currency: str | None = None) -> list[Balance]:
        return [b for b in self.balances(currency) if not b.is_settled(self.tolerance)]

    def balance_between(self, member_a: str, member_b: str, currency: str | None = None) -> Balance:
        """The pair's balance in canonical form; a zero balance if never touched."""
        currency = currency or self.default_currency
        probe = Balance(member_a, member_b, Money.zero(), currency)
        return self._balances.get(probe.key, probe)

    def is_settled(self, member_a: str, member_b: str, currency: str | None = None) -> bool:
        return self.balance_between(member_a, member_b, currency).is_settled(self.tolerance)

    def net_positions(self, currency: str | None = None) -> dict[str, Money]:
        return net_positions_from(self.balances(currency or self.default_currency))

    def member_summary(self, member_id: str, currency: str | None = None) -> MemberSummary:
        currency = currency or self.default_currency
        summary = MemberSummary(member_id=member_id, currency=currency)
        for balance in self.active_balances(currency):
            if member_id not in (balance.user_a, balance.user_b):
                continue
            other = balance.user_b if balance.user_a == member_id else balance.user_a
            owed = balance.amount_owed_by(member_id)
            if owed.is_positive():
                summary.owes_to[other] = owed
            else:
                summary.owed_by[other] = balance.magnitude
        return summary

    def pairwise_debts(self, currency: str | None = None) -> list[Settlement]:
        """Active balances expressed as raw debtor → creditor transfers."""
        currency = currency or self.default_currency
        return [
            Settlement(b.debtor, b.creditor, b.magnitude, b.currency)
            for b in self.active_balances(currency)
        ]

    # ── Folds ──────────────────────────────────────────────────────────────

    def fold_expense(self, expense: ExpenseSplit) -> "BalanceLedger":
        """
        Folds a completed split into the ledger and returns the new ledger.

        Single payer: every other member's share becomes debt to the payer.
        Multiple payers: each member's position (paid - share) is computed;
        each debtor's deficit is allocated across creditors in proportion to
        their surplus, with the rounding remainder going to the first creditor.

        Raises:
            InvalidSettlement -- no payer, or payer totals differ from the split
                                 total by more than the tolerance.
        """
        if not expense.payers:
            raise InvalidSettlement("An expense needs at least one payer.", field="payers")

        total = expense.total
        if not expense.paid_total.within(total, self.tolerance):
            raise InvalidSettlement(
                f"Paid amounts ({expense.paid_total}) must equal the split total ({total}).",
                field="payers",
            )

        balances = dict(self._balances)
        if expense.is_multi_payer:
            self._fold_multi_payer(balances, expense)
        else:
            payer_id = next(iter(expense.payers))
            for result in expense.results:
                if result.member_id != payer_id:
                    _shift(balances, payer_id, result.member_id, result.amount, expense.currency)

        logger.debug(
            "Folded expense %s (%s %s, %d payers) into ledger.",
            expense.expense_id, total, expense.currency, len(expense.payers),
        )
        return self._derive(balances)

    def _fold_multi_payer(self, balances: dict, expense: ExpenseSplit) -> None:
        places = currency_places(expense.currency)
        positions: dict[str, Money] = {}
        for member_id, paid in expense.payers.items():
            positions[member_id] = positions.get(member_id, Money.zero()) + paid
        for result in expense.results:
            positions[result.member_id] = (
                positions.get(result.member_id, Money.zero()) - result.amount
            )

        creditors = [(mid, net) for mid, net in positions.items() if net.is_positive()]
        debtors = [(mid, -net) for mid, net in positions.items() if net.is_negative()]
        surplus_total = sum_money(net for _, net in creditors)
        if surplus_total.is_zero():
            return

        for debtor_id, deficit in debtors:
            portions = [
                (deficit * (surplus / surplus_total)).quantize(places)
                for _, surplus in creditors
            ]
            portions[0] = portions[0] + (deficit - sum_money(portions))
            for (creditor_id, _), portion in zip(creditors, portions):
                _shift(balances, creditor_id, debtor_id, portion, expense.currency)

    def fold_settlement(self, settlement: Settlement) -> "BalanceLedger":
        """
        Folds a direct payment: `from_user_id` paid `to_user_id`, which reduces
        what from_user_id owes (or increases what they are owed).
        """
        balances = dict(self._balances)
        _shift(
            balances,
            settlement.from_user_id,
            settlement.to_user_id,
            settlement.amount,
            settlement.currency,
        )
        logger.debug(
            "Folded settlement %s -> %s (%s %s) into ledger.",
            settlement.from_user_id, settlement.to_user_id,
            settlement.amount, settlement.currency,
        )
        return self._derive(balances)


def fold_expense(ledger: BalanceLedger, expense_split: ExpenseSplit) -> BalanceLedger:
    return ledger.fold_expense(expense_split)


def fold_settlement(ledger: BalanceLedger, settlement: Settlement) -> BalanceLedger:
    return ledger.fold_settlement(settlement)


def build_ledger(expense_splits=(), settlements=(), **kwargs) -> BalanceLedger:
    """Replays expenses, then settlements, into a fresh ledger."""
    ledger = BalanceLedger(**kwargs)
    for expense in expense_splits:
        ledger = ledger.fold_expense(expense)
    for settlement in settlements:
        ledger = ledger.fold_settlement(settlement)
    return ledger
