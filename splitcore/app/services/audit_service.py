"""
services/audit_service.py — Calculation audit records and bounded history.

Layer rules:
  - No I/O. An audit is an in-memory value; persisting it is the caller's job.
  - The history is owned by whoever created the AuditRecorder (one session,
    one request chain). There is no module-level recorder.

Eviction is FIFO by creation: once `capacity` audits are held, recording a new
one drops the oldest created. Reading history never reorders it.
"""

from __future__ import annotations

import logging
from collections import deque
from datetime import datetime, timezone

from splitcore.app.models.audit import CalculationAudit
from splitcore.app.models.money import Money, sum_money
from splitcore.app.models.split import CalculationStep, SplitMethod
from splitcore.config import BaseConfig


logger = logging.getLogger(__name__)


def _default_steps(member_count: int, results) -> tuple[CalculationStep, ...]:
    """Steps used when the caller did not capture the calculator's own steps."""
    return (
        CalculationStep(1, "compute base split",
                        f"split computed for {member_count} members"),
        CalculationStep(2, "verify total",
                        f"{len(results)} results summed and compared with the total"),
    )


def build_audit(
        method,
        total,
        members,
        results,
        steps=None,
        timestamp: datetime | None = None,
) -> CalculationAudit:
    """
    Wraps a finished calculation into an immutable CalculationAudit.

    `difference` is |total - sum(result amounts)|. For any result produced by
    the calculator it is zero; a non-zero value means the results were edited
    or supplied from elsewhere.
    """
    total = total if isinstance(total, Money) else Money(total)
    results = tuple(results)
    members = list(members)
    calculated = sum_money(r.amount for r in results)

    return CalculationAudit(
        method=SplitMethod.parse(method),
        total_amount=total,
        member_count=len(members),
        calculated_total=calculated,
        difference=abs(total - calculated),
        steps=tuple(steps) if steps else _default_steps(len(members), results),
        results=results,
        timestamp=timestamp or datetime.now(timezone.utc),
    )


class AuditRecorder:
    """
    Bounded FIFO history of CalculationAudits.

    Usage:
        recorder = AuditRecorder(capacity=5)
        audit = recorder.record("equal", total, members, results)
        recorder.history()   # newest first
    """

    def __init__(self, capacity: int = BaseConfig.AUDIT_HISTORY_CAPACITY) -> None:
        if capacity <= 0:
            raise ValueError("Audit history capacity must be a positive integer.")
        self._audits: deque[CalculationAudit] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._audits.maxlen

    def __len__(self) -> int:
        return len(self._audits)

    def append(self, audit: CalculationAudit) -> CalculationAudit:
        if len(self._audits) == self.capacity:
            logger.debug("Audit history full (%d); evicting oldest.", self.capacity)
        self._audits.append(audit)
        logger.info(
            "Audit recorded: method=%s total=%s members=%d difference=%s",
            audit.method.value, audit.total_amount, audit.member_count, audit.difference,
        )
        return audit

    def record(self, method, total, members, results, steps=None) -> CalculationAudit:
        return self.append(build_audit(method, total, members, results, steps))

    def history(self) -> list[CalculationAudit]:
        """Most recently created first."""
        return list(reversed(self._audits))

    def latest(self) -> CalculationAudit | None:
        return self._audits[-1] if self._audits else None

    def clear(self) -> None:
        self._audits.clear()


def record_audit(method, total, members, results, steps=None,
                 recorder: AuditRecorder | None = None) -> CalculationAudit:
    """
    Builds a CalculationAudit and, when a recorder is given, appends it to
    that recorder's history.
    """
    if recorder is not None:
        return recorder.record(method, total, members, results, steps)
    audit = build_audit(method, total, members, results, steps)
    logger.debug("Audit built without recorder: method=%s total=%s",
                 audit.method.value, audit.total_amount)
    return audit
