"""
schemas/settlement_schema.py — Marshmallow schemas for settlements and balances.

Validation responsibility:
  - This file (SettlementInputSchema): field types, positive amount with at
    most 2 decimal places, payer and recipient differ.
  - models/settlement.py: the same positivity and self-settlement rules are
    re-checked when a Settlement value is constructed, so code paths that skip
    the schema cannot fold an invalid payment.
  - Membership of either party is the caller's concern.

Dump schemas (BalanceSchema, SettlementSchema, OptimizedSettlementSchema,
OptimizationResultSchema) write amounts as strings, never floats.

IMPORTANT: Inherits from marshmallow.Schema directly.
"""

from __future__ import annotations

from decimal import Decimal

from marshmallow import Schema, ValidationError, fields, validate, validates_schema

from splitcore.app.errors import ErrorCode
from splitcore.app.models.balance import DEFAULT_TOLERANCE


# ── Shared monetary amount validator ──────────────────────────────────────
#
# Same rule as expense_schema.py, kept local so each schema file stands on
# its own.
# ──────────────────────────────────────────────────────────────────────────

def _validate_monetary_amount(value: Decimal) -> None:
    if value <= Decimal("0"):
        raise ValidationError("Amount must be greater than zero.")
    if value.as_tuple().exponent < -2:
        raise ValidationError(ErrorCode.INVALID_AMOUNT_PRECISION)


def _money_string(value) -> str | None:
    if value is None:
        return None
    return str(value.amount)


# ── Input ──────────────────────────────────────────────────────────────────

class SettlementInputSchema(Schema):
    """
    A direct payment to fold into a ledger.

        {"from_user_id": "b", "to_user_id": "a", "amount": "25.00", "currency": "INR"}

    currency is optional; the session falls back to the configured default.
    """

    from_user_id = fields.Str(required=True, validate=validate.Length(min=1))
    to_user_id = fields.Str(required=True, validate=validate.Length(min=1))

    amount = fields.Decimal(
        required=True,
        validate=_validate_monetary_amount,
    )

    currency = fields.Str(
        load_default=None,
        allow_none=True,
        validate=validate.Length(equal=3, error="currency must be a 3-letter code."),
    )

    @validates_schema
    def validate_parties(self, data: dict, **kwargs) -> None:
        if data.get("from_user_id") is not None and data.get("from_user_id") == data.get("to_user_id"):
            raise ValidationError({"to_user_id": [ErrorCode.SELF_SETTLEMENT]})


# ── Output ─────────────────────────────────────────────────────────────────

class BalanceSchema(Schema):
    """
    A pairwise balance in canonical order. `creditor`/`debtor` are null for a
    zero balance.

    `status` is judged against `tolerance`; pass the ledger's own
    (BalanceSchema(tolerance=ledger.tolerance)) so a dumped status agrees with
    BalanceLedger.active_balances().
    """

    user_a = fields.Str()
    user_b = fields.Str()
    amount = fields.Function(lambda balance: _money_string(balance.amount))
    currency = fields.Str()
    creditor = fields.Str(allow_none=True)
    debtor = fields.Str(allow_none=True)
    status = fields.Method("get_status")

    def __init__(self, *args, tolerance=DEFAULT_TOLERANCE, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.tolerance = tolerance

    def get_status(self, balance) -> str:
        return balance.status(self.tolerance).value


class SettlementSchema(Schema):

    from_user_id = fields.Str()
    to_user_id = fields.Str()
    amount = fields.Function(lambda settlement: _money_string(settlement.amount))
    currency = fields.Str()


class OptimizedSettlementSchema(Schema):

    from_user_id = fields.Str()
    to_user_id = fields.Str()
    amount = fields.Function(lambda settlement: _money_string(settlement.amount))
    currency = fields.Str()
    reason = fields.Str()
    savings = fields.Int()


class OptimizationResultSchema(Schema):

    currency = fields.Str()
    current_settlements = fields.List(fields.Nested(SettlementSchema))
    optimized_settlements = fields.List(fields.Nested(OptimizedSettlementSchema))
    transaction_reduction = fields.Int()
    complexity_reduction = fields.Int()
    net_positions = fields.Method("get_net_positions")

    def get_net_positions(self, result) -> dict:
        return {
            member_id: _money_string(net)
            for member_id, net in sorted(result.net_positions.items())
        }
