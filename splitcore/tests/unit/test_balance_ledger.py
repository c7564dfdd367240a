"""
tests/unit/test_balance_ledger.py — Unit tests for balance_service.BalanceLedger.

What this file proves:
  - Single payer: every other participant's share becomes debt to the payer
  - A settlement for the full amount brings the pair to SETTLED, and the pair
    stays tracked (a later expense can reopen it)
  - Overpaying a settlement flips the direction of the pair
  - Pairs are stored in canonical order (lower id first); direction is carried
    by the sign alone
  - Multiple payers: deficits are allocated across creditors in proportion to
    their surplus
  - Payer totals that differ from the split total are rejected
  - Folding returns a NEW ledger; the old one is untouched
  - Net positions always sum to zero per currency, and currencies never mix

Unit test constraints:
  - Pure Python. The calculator builds the split; nothing is mocked.
"""

from __future__ import annotations

import pytest

from splitcore.app.errors import InvalidSettlement, SelfSettlement
from splitcore.app.models.balance import Balance, BalanceStatus
from splitcore.app.models.member import Member
from splitcore.app.models.money import Money, sum_money
from splitcore.app.models.settlement import ExpenseSplit, Settlement
from splitcore.app.services.balance_service import BalanceLedger, build_ledger
from splitcore.app.services.split_service import calculate_split


# ── Helpers ────────────────────────────────────────────────────────────────

def _expense(payer: str, total: str, *ids: str, currency: str = "INR") -> ExpenseSplit:
    """Equal split of `total` across `ids`, paid in full by `payer`."""
    results = calculate_split("equal", total, [Member(i) for i in ids])
    return ExpenseSplit.single_payer(payer, results, currency)


def _pay(src: str, dst: str, amount: str, currency: str = "INR") -> Settlement:
    return Settlement(src, dst, Money(amount), currency)


def _assert_conserved(ledger: BalanceLedger) -> None:
    for currency in ledger.currencies():
        total = sum_money(ledger.net_positions(currency).values())
        assert total.is_zero(), f"net positions in {currency} sum to {total}"


# ── Single payer ───────────────────────────────────────────────────────────

def test_single_payer_is_owed_every_other_share():
    ledger = BalanceLedger().fold_expense(_expense("a", "90.00", "a", "b", "c"))

    assert ledger.net_positions("INR") == {
        "a": Money("60.00"), "b": Money("-30.00"), "c": Money("-30.00"),
    }
    ab = ledger.balance_between("a", "b", "INR")
    assert ab.creditor == "a"
    assert ab.debtor == "b"
    assert ab.magnitude == Money("30.00")
    _assert_conserved(ledger)


def test_payer_outside_split_is_owed_everything():
    ledger = BalanceLedger().fold_expense(_expense("p", "50.00", "a", "b"))

    assert ledger.net_positions("INR")["p"] == Money("50.00")
    assert len(ledger) == 2


# ── Settlements ────────────────────────────────────────────────────────────

def test_full_settlement_brings_pair_to_settled():
    ledger = BalanceLedger().fold_expense(_expense("a", "90.00", "a", "b", "c"))
    ledger = ledger.fold_settlement(_pay("b", "a", "30.00"))

    assert ledger.is_settled("a", "b", "INR")
    assert ledger.balance_between("a", "b", "INR").status() is BalanceStatus.SETTLED
    # Still tracked, just not active.
    assert len(ledger.balances("INR")) == 2
    assert [(b.user_a, b.user_b) for b in ledger.active_balances("INR")] == [("a", "c")]


def test_settled_pair_reopens_on_new_expense():
    ledger = build_ledger(
        [_expense("a", "20.00", "a", "b")],
        [_pay("b", "a", "10.00")],
    )
    ledger = ledger.fold_expense(_expense("b", "20.00", "a", "b"))

    assert ledger.balance_between("a", "b", "INR").creditor == "b"
    assert ledger.balance_between("a", "b", "INR").magnitude == Money("10.00")


def test_overpayment_flips_direction():
    ledger = BalanceLedger().fold_expense(_expense("a", "60.00", "a", "b"))
    ledger = ledger.fold_settlement(_pay("b", "a", "40.00"))

    balance = ledger.balance_between("a", "b", "INR")
    assert balance.creditor == "b"
    assert balance.magnitude == Money("10.00")


def test_settlement_with_no_prior_balance_creates_one():
    ledger = BalanceLedger().fold_settlement(_pay("a", "b", "15.00"))

    assert ledger.net_positions("INR") == {"a": Money("15.00"), "b": Money("-15.00")}


def test_self_settlement_is_rejected():
    with pytest.raises(SelfSettlement):
        _pay("a", "a", "5.00")


@pytest.mark.parametrize("amount", ["0", "-1.00"])
def test_non_positive_settlement_is_rejected(amount):
    with pytest.raises(InvalidSettlement):
        _pay("a", "b", amount)


# ── Canonical order ────────────────────────────────────────────────────────

def test_pair_is_stored_lower_id_first():
    ledger = BalanceLedger().fold_expense(_expense("z", "40.00", "a", "z"))

    (balance,) = ledger.balances("INR")
    assert (balance.user_a, balance.user_b) == ("a", "z")
    assert balance.amount == Money("-20.00")     # a owes z
    assert ledger.balance_between("z", "a", "INR") == balance


def test_balance_constructor_normalises_order():
    balance = Balance("m", "c", Money("5.00"), "INR")

    assert (balance.user_a, balance.user_b) == ("c", "m")
    assert balance.amount == Money("-5.00")
    assert balance.creditor == "m"


def test_amount_owed_by_reads_from_either_side():
    balance = Balance.owed("c", "m", Money("7.50"), "INR")

    assert balance.amount_owed_by("m") == Money("7.50")
    assert balance.amount_owed_by("c").is_zero()


def test_balance_with_itself_is_rejected():
    with pytest.raises(SelfSettlement):
        Balance("a", "a", Money("1.00"), "INR")


# ── Multiple payers ────────────────────────────────────────────────────────

def test_multi_payer_allocates_by_surplus():
    """
    100.00 split equally across a, b, c, d; a paid 60, b paid 40.
    Positions: a +35, b +15, c -25, d -25. Each debtor's 25 goes 70/30.
    """
    results = calculate_split("equal", "100.00", [Member(i) for i in "abcd"])
    expense = ExpenseSplit(results, {"a": "60.00", "b": "40.00"}, "INR")
    ledger = BalanceLedger().fold_expense(expense)

    assert ledger.balance_between("a", "c", "INR").magnitude == Money("17.50")
    assert ledger.balance_between("b", "c", "INR").magnitude == Money("7.50")
    assert ledger.balance_between("a", "d", "INR").magnitude == Money("17.50")
    assert ledger.balance_between("b", "d", "INR").magnitude == Money("7.50")
    assert ledger.net_positions("INR") == {
        "a": Money("35.00"), "b": Money("15.00"),
        "c": Money("-25.00"), "d": Money("-25.00"),
    }
    # The two payers owe each other nothing.
    assert ledger.is_settled("a", "b", "INR")


def test_multi_payer_remainder_stays_conserved():
    results = calculate_split("equal", "100.00", [Member(i) for i in "abc"])
    expense = ExpenseSplit(results, {"a": "33.33", "b": "33.33", "c": "33.34"}, "INR")
    ledger = BalanceLedger().fold_expense(expense)

    _assert_conserved(ledger)


def test_payer_total_mismatch_is_rejected():
    results = calculate_split("equal", "100.00", [Member("a"), Member("b")])
    with pytest.raises(InvalidSettlement) as exc_info:
        BalanceLedger().fold_expense(ExpenseSplit(results, {"a": "50.00"}, "INR"))
    assert exc_info.value.field == "payers"


def test_expense_without_payer_is_rejected():
    results = calculate_split("equal", "10.00", [Member("a")])
    with pytest.raises(InvalidSettlement):
        BalanceLedger().fold_expense(ExpenseSplit(results, {}, "INR"))


# ── Snapshots and reads ────────────────────────────────────────────────────

def test_fold_returns_new_ledger_and_leaves_old_untouched():
    empty = BalanceLedger()
    folded = empty.fold_expense(_expense("a", "10.00", "a", "b"))

    assert len(empty) == 0
    assert empty.net_positions("INR") == {}
    assert len(folded) == 1


def test_member_summary_lists_both_directions():
    ledger = build_ledger([
        _expense("a", "90.00", "a", "b", "c"),
        _expense("b", "20.00", "b", "d"),
    ])

    summary_b = ledger.member_summary("b", "INR")
    assert summary_b.owes_to == {"a": Money("30.00")}
    assert summary_b.owed_by == {"d": Money("10.00")}
    assert summary_b.net == Money("-20.00")


def test_pairwise_debts_point_debtor_to_creditor():
    ledger = BalanceLedger().fold_expense(_expense("a", "30.00", "a", "b", "c"))

    debts = ledger.pairwise_debts("INR")
    assert [(d.from_user_id, d.to_user_id, d.amount) for d in debts] == [
        ("b", "a", Money("10.00")),
        ("c", "a", Money("10.00")),
    ]


def test_untouched_pair_reads_as_zero():
    balance = BalanceLedger().balance_between("x", "y", "INR")
    assert balance.amount.is_zero()
    assert balance.creditor is None


# ── Conservation and currencies ────────────────────────────────────────────

def test_currencies_are_kept_apart():
    ledger = build_ledger([
        _expense("a", "10.00", "a", "b", currency="INR"),
        _expense("b", "8.00", "a", "b", currency="USD"),
    ])

    assert ledger.currencies() == ["INR", "USD"]
    assert ledger.net_positions("INR")["a"] == Money("5.00")
    assert ledger.net_positions("USD")["a"] == Money("-4.00")


def test_net_positions_sum_to_zero_after_many_folds():
    ledger = build_ledger(
        [
            _expense("a", "100.00", "a", "b", "c"),
            _expense("c", "77.77", "a", "b", "c", "d"),
            _expense("d", "12.34", "b", "d"),
            _expense("b", "5.00", "a", "b", "c", "d", currency="USD"),
        ],
        [_pay("b", "a", "20.00"), _pay("d", "c", "1.00", currency="USD")],
    )
    _assert_conserved(ledger)
