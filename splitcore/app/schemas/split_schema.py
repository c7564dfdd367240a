"""
schemas/split_schema.py — Dump schemas for split results and calculation audits.

Monetary amounts are always dumped as strings ("33.34"), never floats, so the
exact value survives JSON. Percentages are dumped as strings rounded half-up to
2 places; the exact value stays on the SplitResult.

IMPORTANT: Inherits from marshmallow.Schema directly.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP

from marshmallow import Schema, fields

from splitcore.app.models.split import SplitMethod


def _money_string(value) -> str | None:
    """Money → "12.34" (exact, already rounded by the calculator)."""
    if value is None:
        return None
    return str(value.amount)


class SplitResultSchema(Schema):

    member_id = fields.Str()
    member_name = fields.Str()
    amount = fields.Function(lambda result: _money_string(result.amount))
    percentage = fields.Decimal(as_string=True, places=2, rounding=ROUND_HALF_UP)
    shares = fields.Decimal(as_string=True, allow_none=True)
    weight = fields.Decimal(as_string=True, allow_none=True)
    adjustment_amount = fields.Function(
        lambda result: _money_string(result.adjustment_amount)
    )


class CalculationStepSchema(Schema):

    index = fields.Int()
    operation = fields.Str()
    description = fields.Str()


class CalculationAuditSchema(Schema):
    """
    Dump-only view of a CalculationAudit.

        {"method": "equal", "total_amount": "100.00", "member_count": 3,
         "calculated_total": "100.00", "difference": "0.00", "is_balanced": true,
         "steps": [...], "results": [...], "timestamp": "2026-..."}
    """

    method = fields.Enum(SplitMethod, by_value=True)
    total_amount = fields.Function(lambda audit: _money_string(audit.total_amount))
    member_count = fields.Int()
    calculated_total = fields.Function(lambda audit: _money_string(audit.calculated_total))
    difference = fields.Function(lambda audit: _money_string(audit.difference))
    is_balanced = fields.Bool()
    steps = fields.List(fields.Nested(CalculationStepSchema))
    results = fields.List(fields.Nested(SplitResultSchema))
    timestamp = fields.DateTime()
