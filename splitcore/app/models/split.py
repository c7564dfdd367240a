"""
models/split.py — Split method tags, per-method parameters and split results.

No business logic. No imports from services.

Key design points:
  - SplitMethod is a str enum so tags can be compared against raw strings and
    serialised without conversion. SplitMethod.parse() maps any unknown tag
    to EQUAL.
  - Each method takes exactly one parameter variant. Maps are keyed by member
    id and hold Decimal/Money values. A missing entry is NOT an implicit zero
    unless the variant documents it:
        PercentageParams  missing → 0%
        CustomParams      missing → 0.00
        WeightedParams    missing → member.weight (default 1)
        SharesParams      missing → 1 share
        AdjustmentParams  missing → 0.00 adjustment
  - SplitResult amounts are Money. Percentages are Decimal in [0, 100]
    (adjustments can push them outside that range; see the adjustment method).
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from typing import ClassVar

from splitcore.app.errors import ErrorCode, SplitValidationError
from splitcore.app.models.money import Money, sum_money, to_decimal


logger = logging.getLogger(__name__)


class SplitMethod(str, enum.Enum):
    EQUAL               = "equal"
    PERCENTAGE          = "percentage"
    CUSTOM              = "custom"
    INCOME_PROPORTIONAL = "income-proportional"
    INCOME_PROGRESSIVE  = "income-progressive"
    WEIGHTED            = "weighted"
    SHARES              = "shares"
    ADJUSTMENT          = "adjustment"

    @classmethod
    def parse(cls, tag) -> "SplitMethod":
        """Resolves a method tag. Unknown tags fall back to EQUAL."""
        if isinstance(tag, cls):
            return tag
        try:
            return cls(str(tag).strip().lower())
        except ValueError:
            logger.warning("Unknown split method %r, falling back to 'equal'.", tag)
            return cls.EQUAL

    @property
    def is_income_based(self) -> bool:
        return self in (SplitMethod.INCOME_PROPORTIONAL, SplitMethod.INCOME_PROGRESSIVE)


# ── Parameter variants ─────────────────────────────────────────────────────

def _decimal_map(values) -> dict[str, Decimal]:
    return {str(k): to_decimal(v) for k, v in (values or {}).items()}


def _money_map(values) -> dict[str, Money]:
    return {str(k): Money(v) for k, v in (values or {}).items()}


@dataclass(frozen=True)
class EqualParams:
    def referenced_ids(self) -> list[str]:
        return []


@dataclass(frozen=True)
class IncomeParams:
    """Income methods read member.income; they take no per-member map."""
    def referenced_ids(self) -> list[str]:
        return []


@dataclass(frozen=True)
class PercentageParams:
    key: ClassVar[str] = "percentages"

    percentages: dict[str, Decimal] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "percentages", _decimal_map(self.percentages))

    def referenced_ids(self) -> list[str]:
        return list(self.percentages)

    def percentage_for(self, member_id: str) -> Decimal:
        return self.percentages.get(member_id, Decimal(0))


@dataclass(frozen=True)
class CustomParams:
    key: ClassVar[str] = "amounts"

    amounts: dict[str, Money] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "amounts", _money_map(self.amounts))

    def referenced_ids(self) -> list[str]:
        return list(self.amounts)

    def amount_for(self, member_id: str) -> Money:
        return self.amounts.get(member_id, Money.zero())


@dataclass(frozen=True)
class WeightedParams:
    key: ClassVar[str] = "weights"

    weights: dict[str, Decimal] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "weights", _decimal_map(self.weights))

    def referenced_ids(self) -> list[str]:
        return list(self.weights)

    def weight_for(self, member) -> Decimal:
        if member.id in self.weights:
            return self.weights[member.id]
        return member.weight if member.weight is not None else Decimal(1)


@dataclass(frozen=True)
class SharesParams:
    key: ClassVar[str] = "shares"

    shares: dict[str, Decimal] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "shares", _decimal_map(self.shares))

    def referenced_ids(self) -> list[str]:
        return list(self.shares)

    def shares_for(self, member_id: str) -> Decimal:
        return self.shares.get(member_id, Decimal(1))


@dataclass(frozen=True)
class AdjustmentParams:
    key: ClassVar[str] = "adjustments"

    adjustments: dict[str, Money] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "adjustments", _money_map(self.adjustments))

    def referenced_ids(self) -> list[str]:
        return list(self.adjustments)

    def adjustment_for(self, member_id: str) -> Money:
        return self.adjustments.get(member_id, Money.zero())


SplitParams = (
    EqualParams
    | IncomeParams
    | PercentageParams
    | CustomParams
    | WeightedParams
    | SharesParams
    | AdjustmentParams
)

_PARAMS_BY_METHOD: dict[SplitMethod, type] = {
    SplitMethod.EQUAL:               EqualParams,
    SplitMethod.PERCENTAGE:          PercentageParams,
    SplitMethod.CUSTOM:              CustomParams,
    SplitMethod.INCOME_PROPORTIONAL: IncomeParams,
    SplitMethod.INCOME_PROGRESSIVE:  IncomeParams,
    SplitMethod.WEIGHTED:            WeightedParams,
    SplitMethod.SHARES:              SharesParams,
    SplitMethod.ADJUSTMENT:          AdjustmentParams,
}

_PARAM_KEYS = {cls.key for cls in _PARAMS_BY_METHOD.values() if hasattr(cls, "key")}


def build_params(method: SplitMethod, params=None) -> SplitParams:
    """
    Builds the parameter variant for `method`.

    Accepts:
      - None or an empty map         → variant with no entries
      - an instance of the variant   → returned unchanged
      - {"<key>": {member_id: v}}    → e.g. {"percentages": {"a": "50"}}
      - {member_id: v}               → the per-member map itself

    Raises SplitValidationError(INVALID_FIELD) when given a variant built for a
    different method, a map keyed only for other methods, or a non-empty map
    for a method that takes no parameters (equal, income-*).
    """
    params_cls = _PARAMS_BY_METHOD[method]

    if params is None or (isinstance(params, Mapping) and not params):
        return params_cls()

    if isinstance(params, params_cls):
        return params

    if isinstance(params, (EqualParams, IncomeParams, PercentageParams, CustomParams,
                           WeightedParams, SharesParams, AdjustmentParams)):
        raise SplitValidationError(
            ErrorCode.INVALID_FIELD,
            f"{type(params).__name__} cannot be used with the '{method.value}' method.",
            field="params",
        )

    key = getattr(params_cls, "key", None)
    if key is None:
        raise SplitValidationError(
            ErrorCode.INVALID_FIELD,
            f"The '{method.value}' method takes no parameters.",
            field="params",
        )

    if key in params:
        return params_cls(params[key])

    foreign = sorted(k for k in params if k in _PARAM_KEYS)
    if foreign:
        raise SplitValidationError(
            ErrorCode.INVALID_FIELD,
            f"The '{method.value}' method reads '{key}', not {', '.join(map(repr, foreign))}.",
            field="params",
        )
    return params_cls(params)


# ── Results ────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class SplitResult:
    member_id: str
    amount: Money
    percentage: Decimal
    member_name: str = ""
    shares: Decimal | None = None
    weight: Decimal | None = None
    adjustment_amount: Money | None = None


@dataclass(frozen=True)
class CalculationStep:
    index: int
    operation: str
    description: str


@dataclass(frozen=True)
class SplitComputation:
    """
    Full outcome of one calculation: results plus the descriptive steps the
    algorithm took and the residual assigned to the first member.
    """
    method: SplitMethod
    total: Money
    results: tuple[SplitResult, ...]
    steps: tuple[CalculationStep, ...]
    residual: Money

    @property
    def calculated_total(self) -> Money:
        return sum_money(r.amount for r in self.results)
