"""
session.py — SplitSession: the caller-context owner of all mutable engine state.

A session holds exactly two kinds of state:
  - one AuditRecorder (bounded FIFO of CalculationAudits)
  - one BalanceLedger per group id

Everything else is delegated to the pure service functions. Sessions do no
locking: callers must serialise writes for the same group (one worker or one
lock per group id). Reads return immutable snapshots and are always safe.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping

from splitcore.app.errors import SplitValidationError
from splitcore.app.models.money import Money, currency_places
from splitcore.app.models.settlement import Settlement
from splitcore.app.schemas.settlement_schema import SettlementInputSchema
from splitcore.app.services.audit_service import AuditRecorder
from splitcore.app.services.balance_service import BalanceLedger
from splitcore.app.services.settlement_service import analyze_settlements, optimize_settlements
from splitcore.app.services.split_service import compute_split
from splitcore.app.services.validation_service import validate_expense


logger = logging.getLogger(__name__)


class SplitSession:

    def __init__(self, config) -> None:
        self.config = config
        self.recorder = AuditRecorder(capacity=config.AUDIT_HISTORY_CAPACITY)
        self._ledgers: dict[str, BalanceLedger] = {}

    # ── Calculation ────────────────────────────────────────────────────────

    def calculate(self, method, total, members, params=None, currency: str | None = None):
        """
        Calculates a split and records its audit in this session's history.

        Returns:
            (list[SplitResult], CalculationAudit)

        Raises:
            SplitValidationError subclass -- nothing is recorded in that case.
        """
        currency = currency or self.config.DEFAULT_CURRENCY
        members = list(members)
        try:
            computation = compute_split(
                method,
                total,
                members,
                params,
                places=currency_places(currency),
                tolerance=self.config.SUM_TOLERANCE,
                progressive_exponent=self.config.PROGRESSIVE_EXPONENT,
            )
        except SplitValidationError as exc:
            logger.warning("Split calculation rejected: %s (%s)", exc.code, exc.message)
            raise

        audit = self.recorder.record(
            computation.method,
            computation.total,
            members,
            computation.results,
            steps=computation.steps,
        )
        return list(computation.results), audit

    def validate(self, expense_data, members):
        return validate_expense(expense_data, members)

    def audit_history(self):
        return self.recorder.history()

    # ── Ledger ─────────────────────────────────────────────────────────────

    def ledger(self, group_id) -> BalanceLedger:
        """Current ledger snapshot for a group (empty if never written)."""
        group_id = str(group_id)
        if group_id not in self._ledgers:
            self._ledgers[group_id] = BalanceLedger(
                default_currency=self.config.DEFAULT_CURRENCY,
                tolerance=self.config.SETTLEMENT_TOLERANCE,
            )
        return self._ledgers[group_id]

    def record_expense(self, group_id, expense_split) -> BalanceLedger:
        ledger = self.ledger(group_id).fold_expense(expense_split)
        self._ledgers[str(group_id)] = ledger
        return ledger

    def record_settlement(self, group_id, settlement) -> BalanceLedger:
        """
        Folds a direct payment. Accepts a Settlement or a raw mapping, which
        is loaded through SettlementInputSchema (marshmallow ValidationError
        propagates on bad input).
        """
        if isinstance(settlement, Mapping):
            data = SettlementInputSchema().load(settlement)
            settlement = Settlement(
                from_user_id=data["from_user_id"],
                to_user_id=data["to_user_id"],
                amount=Money(data["amount"]),
                currency=data["currency"] or self.config.DEFAULT_CURRENCY,
            )
        ledger = self.ledger(group_id).fold_settlement(settlement)
        self._ledgers[str(group_id)] = ledger
        return ledger

    # ── Optimization ───────────────────────────────────────────────────────

    def optimize(self, group_id, currency: str | None = None):
        currency = currency or self.config.DEFAULT_CURRENCY
        return optimize_settlements(
            self.ledger(group_id).balances(currency),
            tolerance=self.config.SETTLEMENT_TOLERANCE,
        )

    def analyze(self, group_id, currency: str | None = None):
        currency = currency or self.config.DEFAULT_CURRENCY
        return analyze_settlements(
            self.ledger(group_id).balances(currency),
            tolerance=self.config.SETTLEMENT_TOLERANCE,
        )
