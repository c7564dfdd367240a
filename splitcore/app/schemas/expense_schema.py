"""
schemas/expense_schema.py — Marshmallow schemas for raw expense payloads.

Validation responsibility:
  - This file:
      - Field types, required fields, title length after trim
      - Expense amount: strictly positive, max 2 decimal places
      - Payer amounts: strictly positive, max 2 decimal places
      - Method parameter maps: member id → Decimal
  - services/validation_service.py:
      - Member selection against the group (needs the member list)
      - Payer totals vs expense amount (needs Decimal arithmetic over entries)
      - Per-method checks on precomputed splits
      - Re-running the calculator and converting its failures into issues

IMPORTANT: Inherits from marshmallow.Schema directly. The engine has no
           framework integration layer to bind schemas to.
"""

from __future__ import annotations

from decimal import Decimal

from marshmallow import (
    EXCLUDE,
    Schema,
    ValidationError,
    fields,
    validate,
)

from splitcore.app.errors import ErrorCode
from splitcore.config import BaseConfig


# ── Shared monetary amount validator ──────────────────────────────────────
#
# Max 2 decimal places, strictly positive. Input with more places is REJECTED
# with INVALID_AMOUNT_PRECISION, never silently rounded here. The validator
# service decides whether that is blocking.
# ──────────────────────────────────────────────────────────────────────────

def _validate_monetary_amount(value: Decimal) -> None:
    """
    Validates a monetary Decimal value:
      - Must be strictly greater than zero.
      - Must have at most 2 decimal places.

    Callers detect INVALID_AMOUNT_PRECISION by matching the raised message to
    the known ErrorCode constant.
    """
    if value <= Decimal("0"):
        raise ValidationError("Amount must be greater than zero.")

    # Decimal("10.123").as_tuple().exponent == -3  → 3 dp → reject
    if value.as_tuple().exponent < -2:
        raise ValidationError(ErrorCode.INVALID_AMOUNT_PRECISION)


# ── Shared non-empty string validators ────────────────────────────────────
#
# validate.Length(min=1) alone allows whitespace-only strings like "   "
# because len("   ") == 3. These strip first, then check.
# ──────────────────────────────────────────────────────────────────────────

def _validate_non_empty_after_trim(value: str) -> None:
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


def _validate_title(value: str) -> None:
    """Title is required and must be MIN..MAX characters once trimmed."""
    trimmed = value.strip()
    if not trimmed:
        raise ValidationError("Expense title is required.")
    if len(trimmed) < BaseConfig.MIN_TITLE_LENGTH:
        raise ValidationError(
            f"Title must be at least {BaseConfig.MIN_TITLE_LENGTH} characters long."
        )
    if len(trimmed) > BaseConfig.MAX_TITLE_LENGTH:
        raise ValidationError(
            f"Title cannot exceed {BaseConfig.MAX_TITLE_LENGTH} characters."
        )


def _decimal_map() -> fields.Dict:
    return fields.Dict(keys=fields.Str(), values=fields.Decimal(), required=False)


# ── Sub-schema: one entry in the `payers` array ───────────────────────────

class PayerInputSchema(Schema):
    """
    One payer of a multi-payer expense. Whether member_id belongs to the
    group is checked in validation_service.py, not here.
    """

    member_id = fields.Str(
        required=True,
        validate=_validate_non_empty_after_trim,
    )

    amount = fields.Decimal(
        required=True,
        validate=_validate_monetary_amount,
    )


# ── Sub-schema: one entry in the `splits` array ───────────────────────────

class SplitEntrySchema(Schema):
    """
    One precomputed (user-declared) split entry. Every per-method value is
    optional; which ones matter depends on the expense's split_method and is
    checked in validation_service.py.
    """

    member_id = fields.Str(
        required=True,
        validate=_validate_non_empty_after_trim,
    )
    amount = fields.Decimal(load_default=None, allow_none=True)
    percentage = fields.Decimal(load_default=None, allow_none=True)
    custom_amount = fields.Decimal(load_default=None, allow_none=True)
    shares = fields.Decimal(load_default=None, allow_none=True)
    weight = fields.Decimal(load_default=None, allow_none=True)
    adjustment_amount = fields.Decimal(load_default=None, allow_none=True)
    adjustment_reason = fields.Str(load_default=None, allow_none=True)


# ── Method parameters ──────────────────────────────────────────────────────

class SplitParamsSchema(Schema):
    """
    Method parameter maps keyed by member id. Only the map matching the
    expense's method is used; see models/split.py build_params().

        {"percentages": {"a": "50", "b": "50"}}
        {"weights": {"a": 2}}
    """

    class Meta:
        unknown = EXCLUDE

    percentages = _decimal_map()
    amounts = _decimal_map()
    weights = _decimal_map()
    shares = _decimal_map()
    adjustments = _decimal_map()


# ── Expense payload ────────────────────────────────────────────────────────

class ExpenseSchema(Schema):
    """
    Raw expense payload accepted by validate_expense().

    Checks in this schema:
      - title non-empty after trim and within length bounds
      - amount strictly positive, max 2 dp (INVALID_AMOUNT_PRECISION)
      - selected_members present (may be empty; emptiness is reported by the
        validator with EMPTY_MEMBER_SET so the message is specific)
      - payer entries well-formed

    Checks NOT in this schema (belong in validation_service.py):
      - selected/excluded ids are group members
      - payers sum to amount, no duplicate payers
      - per-method split checks
    """

    class Meta:
        unknown = EXCLUDE

    title = fields.Str(
        required=True,
        validate=_validate_title,
    )

    amount = fields.Decimal(
        required=True,
        validate=_validate_monetary_amount,
    )

    category = fields.Str(
        load_default="other",
        validate=validate.Length(min=1, error="Category is required."),
    )

    # Free-form tag; unknown tags fall back to 'equal' in SplitMethod.parse().
    split_method = fields.Str(
        required=True,
        validate=_validate_non_empty_after_trim,
    )

    selected_members = fields.List(fields.Str(), required=True)
    excluded_members = fields.List(fields.Str(), load_default=list)

    multiple_payers = fields.Bool(load_default=False)
    paid_by = fields.Str(load_default=None, allow_none=True)
    payers = fields.List(fields.Nested(PayerInputSchema), load_default=None, allow_none=True)

    splits = fields.List(fields.Nested(SplitEntrySchema), load_default=None, allow_none=True)
    params = fields.Nested(SplitParamsSchema, load_default=None, allow_none=True)

    currency = fields.Str(
        load_default=None,
        allow_none=True,
        validate=validate.Length(equal=3, error="currency must be a 3-letter code."),
    )
