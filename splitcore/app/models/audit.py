"""
models/audit.py — Immutable record of one split calculation.

CalculationAudit is built by services/audit_service.py once a calculation has
finished. It is never mutated afterwards; history retention is the recorder's
concern, persistence is the caller's.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from splitcore.app.models.money import Money
from splitcore.app.models.split import CalculationStep, SplitMethod, SplitResult


@dataclass(frozen=True)
class CalculationAudit:
    method: SplitMethod
    total_amount: Money
    member_count: int
    calculated_total: Money        # sum of result amounts
    difference: Money              # |total_amount - calculated_total|
    steps: tuple[CalculationStep, ...]
    results: tuple[SplitResult, ...]
    timestamp: datetime

    @property
    def is_balanced(self) -> bool:
        return self.difference.is_zero()
