"""
errors.py — AppError base class, engine exception taxonomy and code registry.

Every failure raised by the split engine must use a code defined here.
Do not raise strings or generic exceptions from service code.

Rules:
  - Error codes are a versioned contract. They do not change once published.
  - Error messages are human-readable prose. They may be improved at any time.
  - Calculator failures are caller-recoverable input errors, never process-fatal.
    The validator converts them into ValidationIssue entries instead of raising.
"""

from __future__ import annotations

from decimal import Decimal


class AppError(Exception):

    def __init__(
            self,
            code: str,
            message: str,
            field: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code    = code
        self.message = message
        self.field   = field  # which input field caused the error

    def to_dict(self) -> dict:
        payload = {
            "code":    self.code,
            "message": self.message,
        }
        if self.field is not None:
            payload["field"] = self.field
        return {"error": payload}

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(code={self.code!r}, "
            f"message={self.message!r})"
        )


# ── Error Code Registry ────────────────────────────────────────────────────
#
# Organised by component. These are the string values placed in the `code`
# of every error envelope and ValidationIssue.
# ──────────────────────────────────────────────────────────────────────────

class ErrorCode:

    # ── Schema / Input Errors ──────────────────────────────────────────────
    MISSING_FIELD              = "MISSING_FIELD"
    INVALID_FIELD              = "INVALID_FIELD"
    INVALID_AMOUNT             = "INVALID_AMOUNT"
    INVALID_AMOUNT_PRECISION   = "INVALID_AMOUNT_PRECISION"
    INVALID_TITLE              = "INVALID_TITLE"

    # ── Split Calculation Errors ───────────────────────────────────────────
    PERCENTAGE_SUM_MISMATCH    = "PERCENTAGE_SUM_MISMATCH"
    CUSTOM_SUM_MISMATCH        = "CUSTOM_SUM_MISMATCH"
    NO_INCOME_DATA             = "NO_INCOME_DATA"
    INVALID_WEIGHTS            = "INVALID_WEIGHTS"
    INVALID_PERCENTAGE         = "INVALID_PERCENTAGE"
    INVALID_SHARES             = "INVALID_SHARES"
    NEGATIVE_AMOUNT            = "NEGATIVE_AMOUNT"
    ADJUSTMENT_SUM_MISMATCH    = "ADJUSTMENT_SUM_MISMATCH"

    # ── Structural Errors (member selection) ───────────────────────────────
    EMPTY_MEMBER_SET           = "EMPTY_MEMBER_SET"
    UNKNOWN_MEMBER             = "UNKNOWN_MEMBER"
    DUPLICATE_MEMBER           = "DUPLICATE_MEMBER"
    INSUFFICIENT_MEMBERS       = "INSUFFICIENT_MEMBERS"
    ALL_MEMBERS_EXCLUDED       = "ALL_MEMBERS_EXCLUDED"

    # ── Payer Errors ───────────────────────────────────────────────────────
    PAYER_REQUIRED             = "PAYER_REQUIRED"
    PAYER_SUM_MISMATCH         = "PAYER_SUM_MISMATCH"
    DUPLICATE_PAYER            = "DUPLICATE_PAYER"
    INVALID_PAYER_AMOUNT       = "INVALID_PAYER_AMOUNT"

    # ── Ledger / Settlement Errors ─────────────────────────────────────────
    CURRENCY_MISMATCH          = "CURRENCY_MISMATCH"
    SELF_SETTLEMENT            = "SELF_SETTLEMENT"
    INVALID_SETTLEMENT         = "INVALID_SETTLEMENT"

    # ── System Errors ──────────────────────────────────────────────────────
    INTERNAL_ERROR             = "INTERNAL_ERROR"


# ── Warning Code Registry ──────────────────────────────────────────────────
#
# Warnings never block. They are returned in ValidationResult.warnings.
# ──────────────────────────────────────────────────────────────────────────

class WarningCode:

    ZERO_SHARE              = "ZERO_SHARE"
    LARGE_EXPENSE           = "LARGE_EXPENSE"
    PRECISION_ROUNDED       = "PRECISION_ROUNDED"
    SINGLE_MEMBER           = "SINGLE_MEMBER"
    LARGE_GROUP             = "LARGE_GROUP"
    INACTIVE_MEMBER         = "INACTIVE_MEMBER"
    INCOME_FALLBACK         = "INCOME_FALLBACK"
    PAYER_EXCEEDS_TOTAL     = "PAYER_EXCEEDS_TOTAL"
    AMOUNT_EXCEEDS_TOTAL    = "AMOUNT_EXCEEDS_TOTAL"
    UNUSUAL_VALUE           = "UNUSUAL_VALUE"
    ROUNDING_DIFFERENCE     = "ROUNDING_DIFFERENCE"
    NON_DESCRIPTIVE_TITLE   = "NON_DESCRIPTIVE_TITLE"


# ── Split calculation failures ─────────────────────────────────────────────

class SplitValidationError(AppError):
    """Base class for every input failure raised by the split calculator."""


class PercentageSumMismatch(SplitValidationError):

    def __init__(self, actual: Decimal) -> None:
        super().__init__(
            ErrorCode.PERCENTAGE_SUM_MISMATCH,
            f"Percentages must add up to 100%. Current total: {actual}%.",
            field="percentages",
        )
        self.actual = actual


class CustomSumMismatch(SplitValidationError):

    def __init__(self, actual: Decimal, expected: Decimal) -> None:
        super().__init__(
            ErrorCode.CUSTOM_SUM_MISMATCH,
            f"Custom amounts ({actual}) must equal expense total ({expected}).",
            field="amounts",
        )
        self.actual   = actual
        self.expected = expected


class NoIncomeData(SplitValidationError):

    def __init__(self) -> None:
        super().__init__(
            ErrorCode.NO_INCOME_DATA,
            "At least one member must have a positive income for income-based splitting.",
            field="income",
        )


class InvalidWeights(SplitValidationError):

    def __init__(self, total_weight: Decimal) -> None:
        super().__init__(
            ErrorCode.INVALID_WEIGHTS,
            f"Total weight must be greater than zero (got {total_weight}).",
            field="weights",
        )
        self.total_weight = total_weight


class InvalidAmount(SplitValidationError):

    def __init__(self, amount, message: str | None = None) -> None:
        super().__init__(
            ErrorCode.INVALID_AMOUNT,
            message or f"Expense total must be greater than zero (got {amount}).",
            field="amount",
        )
        self.amount = amount


class EmptyMemberSet(SplitValidationError):

    def __init__(self) -> None:
        super().__init__(
            ErrorCode.EMPTY_MEMBER_SET,
            "At least one member must be selected to split the expense.",
            field="selected_members",
        )


class InsufficientMembers(SplitValidationError):

    def __init__(self, count: int = 0) -> None:
        super().__init__(
            ErrorCode.INSUFFICIENT_MEMBERS,
            f"A split needs at least one participating member (got {count}).",
            field="members",
        )
        self.count = count


class UnknownMember(SplitValidationError):

    def __init__(self, member_id: str, field: str | None = "members") -> None:
        super().__init__(
            ErrorCode.UNKNOWN_MEMBER,
            f"Member {member_id!r} is not part of this split.",
            field=field,
        )
        self.member_id = member_id


class DuplicateMember(SplitValidationError):

    def __init__(self, member_id: str) -> None:
        super().__init__(
            ErrorCode.DUPLICATE_MEMBER,
            f"Member {member_id!r} appears more than once.",
            field="members",
        )
        self.member_id = member_id


# ── Ledger / settlement failures ───────────────────────────────────────────

class LedgerError(AppError):
    """Base class for failures raised while folding into or reading a ledger."""


class CurrencyMismatch(LedgerError):

    def __init__(self, currencies) -> None:
        names = ", ".join(sorted(currencies))
        super().__init__(
            ErrorCode.CURRENCY_MISMATCH,
            f"Expected a single currency, got: {names}.",
            field="currency",
        )
        self.currencies = tuple(sorted(currencies))


class SelfSettlement(LedgerError):

    def __init__(self, member_id: str) -> None:
        super().__init__(
            ErrorCode.SELF_SETTLEMENT,
            f"Member {member_id!r} cannot settle with themselves.",
            field="to_user_id",
        )
        self.member_id = member_id


class InvalidSettlement(LedgerError):

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(ErrorCode.INVALID_SETTLEMENT, message, field=field)
