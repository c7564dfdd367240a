"""
services/split_service.py — Split calculation.

This file is the SINGLE SOURCE OF TRUTH for how an expense total is divided
among members. Every method maps (total, members, params) → SplitResult list.

Layer rules:
  - No I/O. Receives plain values, returns plain values or raises a
    SplitValidationError subclass (errors.py). Fails fast: on any input error
    nothing is computed and nothing is returned.
  - All arithmetic goes through Money (MONEY_CONTEXT: 20 digits, half-up).

Exact-sum guarantee (applies to every method):
  1. The method computes per-member amounts at full precision.
  2. Each amount is rounded half-up to currency places.
  3. The signed residual (total - sum of amounts) is added to the FIRST member
     in input order, whose percentage is then recomputed.
  4. sum(result.amount) == total is asserted before returning; a failure is a
     programming error and surfaces as INTERNAL_ERROR.
  Percentages are always derived from the final amount: amount / total * 100.
"""

from __future__ import annotations

import logging
from decimal import ROUND_DOWN, Decimal, InvalidOperation

from splitcore.app.errors import (
    AppError,
    CustomSumMismatch,
    DuplicateMember,
    ErrorCode,
    InsufficientMembers,
    InvalidAmount,
    InvalidWeights,
    NoIncomeData,
    PercentageSumMismatch,
    SplitValidationError,
    UnknownMember,
)
from splitcore.app.models.member import Member
from splitcore.app.models.money import (
    DEFAULT_PLACES,
    MONEY_CONTEXT,
    Money,
    sum_money,
    to_decimal,
)
from splitcore.app.models.split import (
    CalculationStep,
    SplitComputation,
    SplitMethod,
    SplitResult,
    build_params,
)
from splitcore.config import BaseConfig


logger = logging.getLogger(__name__)

SUM_TOLERANCE = BaseConfig.SUM_TOLERANCE
PROGRESSIVE_EXPONENT = BaseConfig.PROGRESSIVE_EXPONENT


class _StepLog:
    """Collects the ordered, purely descriptive steps of one calculation."""

    def __init__(self) -> None:
        self._steps: list[CalculationStep] = []

    def add(self, operation: str, description: str) -> None:
        self._steps.append(
            CalculationStep(index=len(self._steps) + 1, operation=operation,
                            description=description)
        )

    def freeze(self) -> tuple[CalculationStep, ...]:
        return tuple(self._steps)


# ── Input checks ───────────────────────────────────────────────────────────

def _require_members(members: list[Member]) -> None:
    """Raises InsufficientMembers on an empty list, DuplicateMember on repeats."""
    if not members:
        raise InsufficientMembers(0)
    seen: set[str] = set()
    for member in members:
        if member.id in seen:
            raise DuplicateMember(member.id)
        seen.add(member.id)


def _require_known_ids(referenced: list[str], members: list[Member], field: str) -> None:
    """Raises UnknownMember for the first parameter key outside the member list."""
    known = {m.id for m in members}
    for member_id in referenced:
        if member_id not in known:
            raise UnknownMember(member_id, field=field)


def _income_members(members: list[Member]) -> list[Member]:
    with_income = [m for m in members if m.has_income]
    if not with_income:
        raise NoIncomeData()
    return with_income


# ── Per-method algorithms ──────────────────────────────────────────────────
# Each returns SplitResults in member input order with unrounded amounts.
# Percentages are filled in by _finalize().

def _equal(total: Money, members, params, steps: _StepLog, places: int, **_) -> list[SplitResult]:
    n = len(members)
    base = (total / n).quantize(places, rounding=ROUND_DOWN)
    remainder = total - base * n

    steps.add("compute base split", f"{total} / {n} = {base} per member (rounded down)")

    results = [SplitResult(member_id=m.id, member_name=m.name, amount=base,
                           percentage=Decimal(0)) for m in members]
    if not remainder.is_zero():
        first = results[0]
        results[0] = _with_amount(first, first.amount + remainder)
        steps.add("assign remainder",
                  f"remainder {remainder} assigned to first member {first.member_id!r}")
    return results


def _percentage(total: Money, members, params, steps: _StepLog, tolerance, **_) -> list[SplitResult]:
    pct_sum = sum((params.percentage_for(m.id) for m in members), Decimal(0))
    if abs(pct_sum - 100) > tolerance:
        raise PercentageSumMismatch(pct_sum)

    steps.add("validate percentages", f"percentages sum to {pct_sum}%")
    results = []
    for member in members:
        pct = params.percentage_for(member.id)
        amount = total * pct / 100
        results.append(SplitResult(member_id=member.id, member_name=member.name,
                                   amount=amount, percentage=pct))
    steps.add("compute percentage split", f"amount = {total} x pct / 100 for {len(members)} members")
    return results


def _custom(total: Money, members, params, steps: _StepLog, tolerance, **_) -> list[SplitResult]:
    amounts = [params.amount_for(m.id) for m in members]
    custom_sum = sum_money(amounts)
    if not custom_sum.within(total, tolerance):
        raise CustomSumMismatch(actual=custom_sum.amount, expected=total.amount)

    steps.add("validate custom amounts", f"custom amounts sum to {custom_sum} of {total}")
    return [
        SplitResult(member_id=m.id, member_name=m.name, amount=amount, percentage=Decimal(0))
        for m, amount in zip(members, amounts)
    ]


def _equal_fallback(total: Money, n: int) -> Money:
    """Equal share of the FULL total, independent of the income pool."""
    return total / n


def _income_proportional(total: Money, members, params, steps: _StepLog, **_) -> list[SplitResult]:
    with_income = _income_members(members)
    total_income = sum_money(m.income for m in with_income)
    steps.add("sum incomes",
              f"{len(with_income)} of {len(members)} members have income, total {total_income}")

    fallback = _equal_fallback(total, len(members))
    results = []
    for member in members:
        if member.has_income:
            ratio = member.income / total_income
            amount = total * ratio
        else:
            amount = fallback
        results.append(SplitResult(member_id=member.id, member_name=member.name,
                                   amount=amount, percentage=Decimal(0)))

    if len(with_income) < len(members):
        steps.add("income fallback",
                  f"{len(members) - len(with_income)} members without income take "
                  f"{fallback} (equal share of total)")
    steps.add("compute proportional split", "amount = total x income / total income")
    return results


def _income_progressive(total: Money, members, params, steps: _StepLog,
                        exponent: Decimal = PROGRESSIVE_EXPONENT, **_) -> list[SplitResult]:
    with_income = _income_members(members)
    total_income = sum_money(m.income for m in with_income)
    avg_income = total_income / len(with_income)
    steps.add("average income", f"average over {len(with_income)} members = {avg_income}")

    multipliers: dict[str, Decimal] = {}
    for member in with_income:
        ratio = member.income / avg_income
        multipliers[member.id] = MONEY_CONTEXT.power(ratio, exponent)
    multiplier_sum = sum(multipliers.values(), Decimal(0))
    steps.add("progressive multipliers",
              f"multiplier = (income / average) ^ {exponent}, sum {multiplier_sum}")

    fallback = _equal_fallback(total, len(members))
    results = []
    for member in members:
        if member.id in multipliers:
            proportion = MONEY_CONTEXT.divide(multipliers[member.id], multiplier_sum)
            amount = total * proportion
        else:
            amount = fallback
        results.append(SplitResult(member_id=member.id, member_name=member.name,
                                   amount=amount, percentage=Decimal(0)))

    if len(with_income) < len(members):
        steps.add("income fallback",
                  f"{len(members) - len(with_income)} members without income take "
                  f"{fallback} (equal share of total)")
    return results


def _proportional(total: Money, members, units: list[Decimal], steps: _StepLog,
                  label: str) -> list[Money]:
    """
    Shared weight/share distribution. Non-positive units contribute zero.
    Raises InvalidWeights when no member contributes.
    """
    effective = [u if u > 0 else Decimal(0) for u in units]
    unit_sum = sum(effective, Decimal(0))
    if unit_sum <= 0:
        raise InvalidWeights(sum(units, Decimal(0)))

    zeroed = sum(1 for u in units if u <= 0)
    if zeroed:
        steps.add(f"ignore non-positive {label}",
                  f"{zeroed} members have {label} <= 0 and contribute nothing")
    steps.add(f"sum {label}", f"total {label} = {unit_sum}")
    return [total * MONEY_CONTEXT.divide(u, unit_sum) for u in effective]


def _weighted(total: Money, members, params, steps: _StepLog, **_) -> list[SplitResult]:
    weights = [params.weight_for(m) for m in members]
    amounts = _proportional(total, members, weights, steps, "weights")
    steps.add("compute weighted split", "amount = total x weight / total weight")
    return [
        SplitResult(member_id=m.id, member_name=m.name, amount=amount,
                    percentage=Decimal(0), weight=w)
        for m, w, amount in zip(members, weights, amounts)
    ]


def _shares(total: Money, members, params, steps: _StepLog, **_) -> list[SplitResult]:
    shares = [params.shares_for(m.id) for m in members]
    amounts = _proportional(total, members, shares, steps, "shares")
    steps.add("compute share split", "amount = total x shares / total shares")
    return [
        SplitResult(member_id=m.id, member_name=m.name, amount=amount,
                    percentage=Decimal(0), shares=s)
        for m, s, amount in zip(members, shares, amounts)
    ]


def _adjustment(total: Money, members, params, steps: _StepLog, **_) -> list[SplitResult]:
    base = total / len(members)
    steps.add("compute base split", f"{total} / {len(members)} = {base} per member")

    results = []
    for member in members:
        adjustment = params.adjustment_for(member.id)
        results.append(SplitResult(member_id=member.id, member_name=member.name,
                                   amount=base + adjustment, percentage=Decimal(0),
                                   adjustment_amount=adjustment))
    adjusted = [r for r in results if not r.adjustment_amount.is_zero()]
    if adjusted:
        steps.add("apply adjustments", f"{len(adjusted)} members adjusted from the base split")
    return results


_ALGORITHMS = {
    SplitMethod.EQUAL:               _equal,
    SplitMethod.PERCENTAGE:          _percentage,
    SplitMethod.CUSTOM:              _custom,
    SplitMethod.INCOME_PROPORTIONAL: _income_proportional,
    SplitMethod.INCOME_PROGRESSIVE:  _income_progressive,
    SplitMethod.WEIGHTED:            _weighted,
    SplitMethod.SHARES:              _shares,
    SplitMethod.ADJUSTMENT:          _adjustment,
}


# ── Post-processing ────────────────────────────────────────────────────────

def _with_amount(result: SplitResult, amount: Money) -> SplitResult:
    return SplitResult(
        member_id=result.member_id,
        member_name=result.member_name,
        amount=amount,
        percentage=result.percentage,
        shares=result.shares,
        weight=result.weight,
        adjustment_amount=result.adjustment_amount,
    )


def _with_percentage(result: SplitResult, total: Money) -> SplitResult:
    return SplitResult(
        member_id=result.member_id,
        member_name=result.member_name,
        amount=result.amount,
        percentage=result.amount.percentage_of(total),
        shares=result.shares,
        weight=result.weight,
        adjustment_amount=result.adjustment_amount,
    )


def _finalize(
        total: Money,
        raw: list[SplitResult],
        places: int,
        tolerance: Decimal,
        steps: _StepLog,
) -> tuple[list[SplitResult], Money]:
    """
    Rounds every amount to `places`, assigns the signed residual to the first
    member and derives percentages. Returns (results, residual).
    """
    rounded = [_with_amount(r, r.amount.quantize(places)) for r in raw]
    steps.add("round to currency precision", f"amounts rounded half-up to {places} places")

    residual = total - sum_money(r.amount for r in rounded)
    if not residual.is_zero():
        first = rounded[0]
        rounded[0] = _with_amount(first, first.amount + residual)
        operation = (
            "redistribute remainder" if abs(residual).amount <= tolerance
            else "reconcile distribution residual"
        )
        steps.add(operation, f"residual {residual} assigned to first member {first.member_id!r}")
        if abs(residual).amount > tolerance:
            logger.info(
                "Split residual %s exceeds tolerance %s; assigned to member %r.",
                residual, tolerance, first.member_id,
            )

    results = [_with_percentage(r, total) for r in rounded]

    calculated = sum_money(r.amount for r in results)
    if calculated != total:
        # Sanity check: must always hold; a failure here is a programming error.
        raise AppError(
            ErrorCode.INTERNAL_ERROR,
            f"Split computation produced sum {calculated} for total {total}. "
            f"This is a bug, please report it.",
        )
    steps.add("verify total", f"sum of amounts {calculated} equals total {total}")
    return results, residual


# ── Public API ─────────────────────────────────────────────────────────────

def compute_split(
        method,
        total,
        members,
        params=None,
        *,
        places: int = DEFAULT_PLACES,
        tolerance=SUM_TOLERANCE,
        progressive_exponent=PROGRESSIVE_EXPONENT,
) -> SplitComputation:
    """
    Runs one split calculation and returns results plus descriptive steps.

    Args:
        method:   SplitMethod or tag string. Unknown tags fall back to 'equal'.
        total:    Money (or str/int/Decimal). Must be > 0.
        members:  Participating members, in the order that decides tie-breaks.
        params:   Parameter variant or plain mapping (see models.split.build_params).
        places:   Currency display precision used for per-member rounding.
        tolerance: Accepted drift for percentage and custom sums.

    Raises:
        SplitValidationError subclass for any input error (see errors.py).
    """
    method = SplitMethod.parse(method)
    total = total if isinstance(total, Money) else Money(total)
    members = list(members)
    tolerance = to_decimal(tolerance)

    _require_members(members)
    if not total.is_positive():
        raise InvalidAmount(total.amount)

    split_params = build_params(method, params)
    key = getattr(split_params, "key", "params")
    _require_known_ids(split_params.referenced_ids(), members, field=key)

    steps = _StepLog()
    steps.add("validate inputs",
              f"method '{method.value}', total {total}, {len(members)} members")

    algorithm = _ALGORITHMS[method]
    try:
        raw = algorithm(
            total,
            members,
            split_params,
            steps,
            places=places,
            tolerance=tolerance,
            exponent=to_decimal(progressive_exponent),
        )
        results, residual = _finalize(total, raw, places, tolerance, steps)
    except InvalidOperation as exc:
        # A total or share with more digits than MONEY_CONTEXT holds cannot be rounded.
        raise InvalidAmount(
            total.amount,
            f"Expense total {total} exceeds the {MONEY_CONTEXT.prec}-digit calculation precision.",
        ) from exc

    logger.debug("Calculated '%s' split of %s across %d members.",
                 method.value, total, len(members))

    return SplitComputation(
        method=method,
        total=total,
        results=tuple(results),
        steps=steps.freeze(),
        residual=residual,
    )


def calculate_split(method, total, members, params=None, **kwargs) -> list[SplitResult]:
    """
    Returns the per-member split for an expense.

    Fails fast with a SplitValidationError subclass; never drops a member or
    invents data. Keyword arguments are passed through to compute_split().
    """
    try:
        computation = compute_split(method, total, members, params, **kwargs)
    except SplitValidationError as exc:
        logger.warning("Split calculation rejected: %s (%s)", exc.code, exc.message)
        raise
    return list(computation.results)


SUPPORTED_METHODS: tuple[SplitMethod, ...] = tuple(_ALGORITHMS)
