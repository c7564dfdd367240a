"""
tests/integration/conftest.py — Fixtures and helpers for all integration tests.

Design:
  - Every test gets a fresh SplitSession from create_session("testing"):
    empty audit history, no ledgers. Sessions share nothing, so tests are
    isolated without any teardown.
  - TestingConfig pins AUDIT_HISTORY_CAPACITY to 5 so eviction tests do not
    depend on the environment.

Helper functions (not fixtures) are provided for common operations:
  - make_members(*ids, **incomes)       → list[Member]
  - record_equal_expense(session, ...)  → (results, audit, ledger)

These are plain functions (not pytest fixtures) so they can be called with
arbitrary arguments in any test without fixture parameterization overhead.
"""

from __future__ import annotations

import pytest

from splitcore.app import create_session
from splitcore.app.models.member import Member
from splitcore.app.models.settlement import ExpenseSplit


# ═══════════════════════════════════════════════════════════════════════════
# Session fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def split_session():
    """A fresh SplitSession in 'testing' mode for each test."""
    return create_session("testing")


# ═══════════════════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════════════════

def make_members(*ids: str, **incomes) -> list[Member]:
    """Members in the given order; keyword args give incomes by id."""
    return [Member(id=i, name=i.title(), income=incomes.get(i)) for i in ids]


def record_equal_expense(session, group_id, payer: str, total: str, members,
                         currency: str = "INR"):
    """Calculates an equal split, folds it into the group ledger, returns all three."""
    results, audit = session.calculate("equal", total, members, currency=currency)
    ledger = session.record_expense(
        group_id, ExpenseSplit.single_payer(payer, results, currency)
    )
    return results, audit, ledger
