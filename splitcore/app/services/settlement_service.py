"""
services/settlement_service.py — Debt simplification over a group's balances.

Given the pairwise balances of one group in one currency, produces the
payment instructions that clear every member's net position.

Algorithm (greedy minimum cash flow):
  1. Collapse pairwise balances to one net position per member. Chains and
     cycles (A owes B, B owes C, C owes A) cancel here; no graph walk needed.
  2. Split members into creditors (net > 0) and debtors (net < 0). Positions
     whose magnitude is below the tolerance are treated as settled.
  3. Repeatedly match the largest creditor with the largest debtor, transfer
     min(credit, debt), and drop whichever side reaches zero. Ties go to the
     lower member id, so the output is deterministic.

Guarantees:
  - Each debtor pays out exactly its net debtor magnitude.
  - Never more transfers than the raw non-zero pairwise balances: if the
    greedy pass would emit more, the raw balances are returned as-is.
  - Folding the emitted settlements into the ledger and optimizing again
    yields an empty list.

Layer rules:
  - No I/O and no ledger mutation. Balances in, instructions out.
"""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal

from splitcore.app.errors import CurrencyMismatch
from splitcore.app.models.money import Money, to_decimal
from splitcore.app.models.settlement import (
    OptimizationResult,
    OptimizedSettlement,
    Settlement,
)
from splitcore.app.services.balance_service import net_positions_from
from splitcore.config import BaseConfig


logger = logging.getLogger(__name__)

SETTLEMENT_TOLERANCE = BaseConfig.SETTLEMENT_TOLERANCE

OPTIMIZED_REASON = "Optimized settlement to minimize transactions"
DIRECT_REASON = "Direct settlement of an existing balance"


# ── Private helpers ────────────────────────────────────────────────────────

def _single_currency(balances) -> str:
    """
    Returns the one currency shared by all balances ("" for no balances).

    Raises:
        CurrencyMismatch -- balances span more than one currency.
    """
    currencies = {b.currency for b in balances}
    if len(currencies) > 1:
        raise CurrencyMismatch(currencies)
    return next(iter(currencies), "")


def _raw_transfers(balances, tolerance) -> list[Settlement]:
    """Non-settled balances as debtor → creditor transfers, in key order."""
    return [
        Settlement(b.debtor, b.creditor, b.magnitude, b.currency)
        for b in sorted(balances, key=lambda b: b.key)
        if not b.is_settled(tolerance)
    ]


def _largest(positions: dict[str, Money]) -> str:
    return min(positions, key=lambda member_id: (-positions[member_id].amount, member_id))


def simplify_debts(
        net_positions: dict[str, Money],
        tolerance=SETTLEMENT_TOLERANCE,
) -> list[tuple[str, str, Money]]:
    """
    Greedy largest-creditor vs largest-debtor matching.

    Args:
        net_positions: {member_id: net}. Positive means owed, negative owes.
                       Should sum to zero (ledger conservation).

    Returns:
        List of (from_member_id, to_member_id, amount). Empty when every
        position is already within tolerance of zero.
    """
    tolerance = to_decimal(tolerance)
    creditors = {
        mid: net for mid, net in net_positions.items()
        if net.is_positive() and net.amount >= tolerance
    }
    debtors = {
        mid: -net for mid, net in net_positions.items()
        if net.is_negative() and -net.amount >= tolerance
    }

    transfers: list[tuple[str, str, Money]] = []
    while creditors and debtors:
        cid = _largest(creditors)
        did = _largest(debtors)

        transfer = min(creditors[cid], debtors[did])
        transfers.append((did, cid, transfer))

        creditors[cid] = creditors[cid] - transfer
        debtors[did] = debtors[did] - transfer

        if creditors[cid].amount < tolerance:
            del creditors[cid]
        if debtors[did].amount < tolerance:
            del debtors[did]

    return transfers


def _attribute_savings(transfers, raw: list[Settlement]) -> list[int]:
    """
    Counts how many raw transfers each emitted transfer stands in for.

    Each raw transfer is attributed to exactly one emitted transfer: one from
    the same payer if any, else one to the same payee, else the first. The
    saving is that count minus the transfer itself (never below zero).
    """
    counts = [0] * len(transfers)
    if not transfers:
        return counts
    for debt in raw:
        index = next(
            (i for i, (src, _, _) in enumerate(transfers) if src == debt.from_user_id),
            None,
        )
        if index is None:
            index = next(
                (i for i, (_, dst, _) in enumerate(transfers) if dst == debt.to_user_id),
                0,
            )
        counts[index] += 1
    return [max(count - 1, 0) for count in counts]


# ── Public service functions ───────────────────────────────────────────────

def optimize_settlements(balances, tolerance=SETTLEMENT_TOLERANCE) -> list[OptimizedSettlement]:
    """
    Reduces a group's pairwise balances to a minimal list of payments.

    Args:
        balances:  iterable of Balance, all in one currency. Settled balances
                   are allowed and ignored.
        tolerance: magnitude below which a position counts as settled.

    Returns:
        OptimizedSettlement list, largest-first in matching order.

    Raises:
        CurrencyMismatch -- balances in more than one currency.
    """
    balances = list(balances)
    currency = _single_currency(balances)
    raw = _raw_transfers(balances, tolerance)

    transfers = simplify_debts(net_positions_from(balances), tolerance)
    reason = OPTIMIZED_REASON
    if len(transfers) > len(raw):
        transfers = [(d.from_user_id, d.to_user_id, d.amount) for d in raw]
        reason = DIRECT_REASON

    savings = _attribute_savings(transfers, raw)
    settlements = [
        OptimizedSettlement(
            from_user_id=src,
            to_user_id=dst,
            amount=amount,
            reason=reason,
            savings=saved,
            currency=currency,
        )
        for (src, dst, amount), saved in zip(transfers, savings)
    ]

    logger.info(
        "Settlement optimization: %d raw transfers -> %d settlements (%s).",
        len(raw), len(settlements), currency or "-",
    )
    return settlements


def analyze_settlements(balances, tolerance=SETTLEMENT_TOLERANCE) -> OptimizationResult:
    """
    Runs the optimizer and compares its output with the raw transfers.

    transaction_reduction = raw - optimized.
    complexity_reduction  = reduction / raw * 100, rounded half-up to an int;
                            0 when there are no raw transfers.
    """
    balances = list(balances)
    currency = _single_currency(balances)
    raw = _raw_transfers(balances, tolerance)
    optimized = optimize_settlements(balances, tolerance)

    reduction = len(raw) - len(optimized)
    complexity = 0
    if raw:
        complexity = int(
            (Decimal(reduction) * 100 / len(raw)).quantize(Decimal(1), rounding=ROUND_HALF_UP)
        )

    return OptimizationResult(
        current_settlements=tuple(raw),
        optimized_settlements=tuple(optimized),
        transaction_reduction=reduction,
        complexity_reduction=complexity,
        currency=currency,
        net_positions=net_positions_from(balances),
    )
