"""
tests/unit/test_validation_service.py — Unit tests for validation_service.

What this file proves:
  - validate_expense() never raises; every problem is a coded issue
  - Schema failures map to MISSING_FIELD / INVALID_TITLE / INVALID_AMOUNT
  - A 3-dp amount is a PRECISION_ROUNDED warning, not an error
  - Member selection errors: EMPTY_MEMBER_SET, UNKNOWN_MEMBER,
    DUPLICATE_MEMBER, ALL_MEMBERS_EXCLUDED
  - Payer errors: PAYER_REQUIRED, PAYER_SUM_MISMATCH, DUPLICATE_PAYER
  - Calculator failures surface with the calculator's own code and field
  - Declared splits are checked per method
  - Warnings and suggestions never make a result invalid
  - quick_validate() and suggest_split_methods() behave as documented

Unit test constraints:
  - Pure Python. Members are plain Member values; nothing is mocked.
"""

from __future__ import annotations

import pytest

from splitcore.app.errors import ErrorCode, WarningCode
from splitcore.app.models.member import Member
from splitcore.app.models.validation import ValidationResult
from splitcore.app.services.validation_service import (
    quick_validate,
    suggest_split_methods,
    validate_expense,
)


# ── Helpers ────────────────────────────────────────────────────────────────

def _members() -> list[Member]:
    return [Member("a", "Asha"), Member("b", "Bilal"), Member("c", "Chen")]


def _payload(**overrides) -> dict:
    """A valid equal-split payload; override any key."""
    payload = {
        "title": "Team dinner",
        "amount": "90.00",
        "split_method": "equal",
        "selected_members": ["a", "b", "c"],
        "paid_by": "a",
    }
    payload.update(overrides)
    return payload


# ═══════════════════════════════════════════════════════════════════════════
# Valid payloads
# ═══════════════════════════════════════════════════════════════════════════

def test_valid_equal_payload_has_no_issues():
    result = validate_expense(_payload(), _members())

    assert result.is_valid
    assert result.errors == []
    assert result.warnings == []
    assert result.suggestions == []


def test_to_dict_shape():
    payload = validate_expense(_payload(title=""), _members()).to_dict()

    assert payload["is_valid"] is False
    assert payload["errors"][0] == {
        "code": ErrorCode.INVALID_TITLE,
        "message": "Expense title is required.",
        "field": "title",
    }


def test_non_mapping_payload_is_an_error_not_an_exception():
    result = validate_expense(["not", "a", "dict"], _members())

    assert result.error_codes() == [ErrorCode.INVALID_FIELD]


# ═══════════════════════════════════════════════════════════════════════════
# Title and amount
# ═══════════════════════════════════════════════════════════════════════════

def test_missing_title_is_missing_field():
    payload = _payload()
    del payload["title"]
    result = validate_expense(payload, _members())

    assert not result.is_valid
    assert (result.errors[0].code, result.errors[0].field) == (ErrorCode.MISSING_FIELD, "title")


@pytest.mark.parametrize("title", ["x", "y" * 101])
def test_title_length_bounds(title):
    result = validate_expense(_payload(title=title), _members())
    assert result.error_codes() == [ErrorCode.INVALID_TITLE]


def test_title_without_letters_is_a_warning():
    result = validate_expense(_payload(title="!!!"), _members())

    assert result.is_valid
    assert WarningCode.NON_DESCRIPTIVE_TITLE in result.warning_codes()
    assert any("more detail" in s for s in result.suggestions)


@pytest.mark.parametrize("amount", ["0", "-5.00", "abc"])
def test_bad_amount_is_invalid_amount(amount):
    result = validate_expense(_payload(amount=amount), _members())

    assert result.error_codes() == [ErrorCode.INVALID_AMOUNT]
    assert result.errors[0].field == "amount"


def test_three_decimal_amount_is_rounded_with_warning():
    result = validate_expense(_payload(amount="90.005"), _members())

    assert result.is_valid
    assert result.warning_codes() == [WarningCode.PRECISION_ROUNDED]


def test_amount_above_maximum_is_rejected_and_flagged_large():
    result = validate_expense(_payload(amount="20000000.00"), _members())

    assert ErrorCode.INVALID_AMOUNT in result.error_codes()
    assert WarningCode.LARGE_EXPENSE in result.warning_codes()


def test_amount_beyond_calculation_precision_is_reported():
    result = validate_expense(
        _payload(title="Yacht", amount="100000000000000000000"), _members()
    )
    assert result.error_codes() == [ErrorCode.INVALID_AMOUNT]
    assert result.errors[0].field == "amount"


def test_oversized_amount_with_three_places_is_not_rounded():
    result = validate_expense(_payload(amount="100000000000000000000.125"), _members())

    assert result.error_codes() == [ErrorCode.INVALID_AMOUNT]
    assert WarningCode.PRECISION_ROUNDED not in result.warning_codes()


def test_declared_splits_are_not_checked_against_an_oversized_amount():
    result = validate_expense(
        _payload(amount="100000000000000000000", split_method="custom",
                 selected_members=["a", "b"], splits=[
                     {"member_id": "a", "custom_amount": "50.00"},
                     {"member_id": "b", "custom_amount": "30.00"},
                 ]),
        _members(),
    )
    assert result.error_codes() == [ErrorCode.INVALID_AMOUNT]


def test_small_amount_gets_a_suggestion():
    result = validate_expense(_payload(amount="6.00"), _members())

    assert result.is_valid
    assert any("small expense" in s for s in result.suggestions)


# ═══════════════════════════════════════════════════════════════════════════
# Member selection
# ═══════════════════════════════════════════════════════════════════════════

def test_empty_selection():
    result = validate_expense(_payload(selected_members=[]), _members())

    assert result.error_codes() == [ErrorCode.EMPTY_MEMBER_SET]
    assert result.errors[0].field == "selected_members"


def test_unknown_selected_member():
    result = validate_expense(_payload(selected_members=["a", "zed"]), _members())
    assert result.error_codes() == [ErrorCode.UNKNOWN_MEMBER]


def test_duplicate_selected_member():
    result = validate_expense(_payload(selected_members=["a", "b", "a"]), _members())
    assert result.error_codes() == [ErrorCode.DUPLICATE_MEMBER]


def test_excluding_everyone():
    result = validate_expense(
        _payload(selected_members=["a", "b"], excluded_members=["a", "b"]), _members()
    )
    assert result.error_codes() == [ErrorCode.ALL_MEMBERS_EXCLUDED]


def test_single_participant_warns():
    result = validate_expense(
        _payload(selected_members=["a", "b"], excluded_members=["b"]), _members()
    )
    assert result.is_valid
    assert result.warning_codes() == [WarningCode.SINGLE_MEMBER]


def test_inactive_member_warns():
    members = _members()[:2] + [Member("c", "Chen", is_active=False)]
    result = validate_expense(_payload(), members)

    assert result.is_valid
    assert result.warning_codes() == [WarningCode.INACTIVE_MEMBER]


def test_large_group_warns_and_suggests():
    members = [Member(f"m{i:02d}") for i in range(21)]
    result = validate_expense(
        _payload(amount="210.00", selected_members=[m.id for m in members], paid_by="m00"),
        members,
    )

    assert result.is_valid
    assert result.warning_codes() == [WarningCode.LARGE_GROUP]
    assert any("large groups" in s for s in result.suggestions)


# ═══════════════════════════════════════════════════════════════════════════
# Payers
# ═══════════════════════════════════════════════════════════════════════════

def test_unknown_paid_by():
    result = validate_expense(_payload(paid_by="zed"), _members())
    assert result.error_codes() == [ErrorCode.UNKNOWN_MEMBER]
    assert result.errors[0].field == "paid_by"


def test_multiple_payers_without_payers():
    result = validate_expense(_payload(multiple_payers=True, payers=[]), _members())
    assert result.error_codes() == [ErrorCode.PAYER_REQUIRED]


def test_payer_sum_must_match_amount():
    result = validate_expense(
        _payload(multiple_payers=True, payers=[
            {"member_id": "a", "amount": "50.00"},
            {"member_id": "b", "amount": "30.00"},
        ]),
        _members(),
    )
    assert result.error_codes() == [ErrorCode.PAYER_SUM_MISMATCH]


def test_duplicate_payer():
    result = validate_expense(
        _payload(multiple_payers=True, payers=[
            {"member_id": "a", "amount": "45.00"},
            {"member_id": "a", "amount": "45.00"},
        ]),
        _members(),
    )
    assert result.error_codes() == [ErrorCode.DUPLICATE_PAYER]


def test_payer_with_invalid_amount_is_not_also_missing():
    result = validate_expense(
        _payload(multiple_payers=True, payers=[{"member_id": "a", "amount": "-1"}]),
        _members(),
    )
    assert result.error_codes() == [ErrorCode.INVALID_PAYER_AMOUNT]
    assert result.errors[0].field == "payers.0.amount"


# ═══════════════════════════════════════════════════════════════════════════
# Calculator-backed checks
# ═══════════════════════════════════════════════════════════════════════════

def test_percentage_params_off_by_one():
    result = validate_expense(
        _payload(split_method="percentage",
                 params={"percentages": {"a": "50", "b": "30", "c": "21"}}),
        _members(),
    )
    assert result.error_codes() == [ErrorCode.PERCENTAGE_SUM_MISMATCH]
    assert result.errors[0].field == "percentages"


def test_all_zero_weights():
    result = validate_expense(
        _payload(split_method="weighted",
                 params={"weights": {"a": "0", "b": "0", "c": "0"}}),
        _members(),
    )
    assert result.error_codes() == [ErrorCode.INVALID_WEIGHTS]


def test_income_method_without_any_income():
    result = validate_expense(_payload(split_method="income-proportional"), _members())
    assert result.error_codes() == [ErrorCode.NO_INCOME_DATA]


def test_income_method_with_partial_income_warns():
    members = [Member("a", income="9000"), Member("b"), Member("c", income="1000")]
    result = validate_expense(_payload(split_method="income-proportional"), members)

    assert result.is_valid
    assert result.warning_codes() == [WarningCode.INCOME_FALLBACK]


def test_unknown_method_falls_back_with_warning():
    result = validate_expense(_payload(split_method="mystery"), _members())

    assert result.is_valid
    assert result.warning_codes() == [WarningCode.UNUSUAL_VALUE]


def test_zero_share_from_calculator_warns():
    result = validate_expense(
        _payload(split_method="shares", params={"shares": {"a": 1, "b": 1, "c": 0}}),
        _members(),
    )
    assert result.is_valid
    assert result.warning_codes() == [WarningCode.ZERO_SHARE]


def test_params_for_another_method_are_rejected():
    result = validate_expense(
        _payload(split_method="shares", params={"weights": {"a": "3"}}), _members()
    )
    assert result.error_codes() == [ErrorCode.INVALID_FIELD]
    assert result.errors[0].field == "params"


def test_calculator_is_skipped_after_structural_errors():
    result = validate_expense(
        _payload(selected_members=["a", "zed"], split_method="percentage",
                 params={"percentages": {"a": "10"}}),
        _members(),
    )
    assert result.error_codes() == [ErrorCode.UNKNOWN_MEMBER]


# ═══════════════════════════════════════════════════════════════════════════
# Declared splits
# ═══════════════════════════════════════════════════════════════════════════

def test_declared_custom_splits_must_sum_to_amount():
    result = validate_expense(
        _payload(split_method="custom", selected_members=["a", "b"], splits=[
            {"member_id": "a", "custom_amount": "50.00"},
            {"member_id": "b", "custom_amount": "30.00"},
        ]),
        _members(),
    )
    assert result.error_codes() == [ErrorCode.CUSTOM_SUM_MISMATCH]


def test_declared_zero_percentage_is_a_warning():
    result = validate_expense(
        _payload(split_method="percentage", splits=[
            {"member_id": "a", "percentage": "50"},
            {"member_id": "b", "percentage": "50"},
            {"member_id": "c", "percentage": "0"},
        ]),
        _members(),
    )
    assert result.is_valid
    assert result.warning_codes() == [WarningCode.ZERO_SHARE]


def test_declared_percentages_with_two_places_get_rounding_hint():
    result = validate_expense(
        _payload(split_method="percentage", splits=[
            {"member_id": "a", "percentage": "33.33"},
            {"member_id": "b", "percentage": "33.33"},
            {"member_id": "c", "percentage": "33.34"},
        ]),
        _members(),
    )
    assert result.is_valid
    assert "Round percentages to one decimal place." in result.suggestions


def test_declared_percentage_out_of_range():
    result = validate_expense(
        _payload(split_method="percentage", selected_members=["a", "b"], splits=[
            {"member_id": "a", "percentage": "120"},
            {"member_id": "b", "percentage": "-20"},
        ]),
        _members(),
    )
    assert result.error_codes() == [ErrorCode.INVALID_PERCENTAGE, ErrorCode.INVALID_PERCENTAGE]


def test_declared_adjustment_that_goes_negative():
    result = validate_expense(
        _payload(split_method="adjustment", splits=[
            {"member_id": "a", "adjustment_amount": "40.00"},
            {"member_id": "b", "adjustment_amount": "-40.00"},
            {"member_id": "c"},
        ]),
        _members(),
    )
    assert result.error_codes() == [ErrorCode.NEGATIVE_AMOUNT]
    assert result.errors[0].field == "splits.1.adjustment_amount"


def test_declared_shares_must_be_positive():
    result = validate_expense(
        _payload(split_method="shares", selected_members=["a", "b"], splits=[
            {"member_id": "a", "shares": "2"},
            {"member_id": "b", "shares": "0"},
        ]),
        _members(),
    )
    assert result.error_codes() == [ErrorCode.INVALID_SHARES]


def test_declared_split_for_non_participant():
    result = validate_expense(
        _payload(split_method="custom", selected_members=["a", "b"], splits=[
            {"member_id": "a", "custom_amount": "45.00"},
            {"member_id": "c", "custom_amount": "45.00"},
        ]),
        _members(),
    )
    assert result.error_codes() == [ErrorCode.UNKNOWN_MEMBER]


# ═══════════════════════════════════════════════════════════════════════════
# ValidationResult
# ═══════════════════════════════════════════════════════════════════════════

def test_suggestions_are_deduplicated():
    result = ValidationResult()
    result.suggest("Split it.")
    result.suggest("Split it.")

    assert result.suggestions == ["Split it."]
    assert result.is_valid


# ═══════════════════════════════════════════════════════════════════════════
# quick_validate
# ═══════════════════════════════════════════════════════════════════════════

@pytest.mark.parametrize("field,value,expected", [
    ("title", "   ", (False, "Title is required")),
    ("title", "a", (False, "Title too short")),
    ("title", "x" * 101, (False, "Title too long")),
    ("title", "Groceries", (True, None)),
    ("amount", "abc", (False, "Invalid amount")),
    ("amount", "-1", (False, "Amount must be positive")),
    ("amount", "99999999", (False, "Amount too large")),
    ("amount", "12.50", (True, None)),
    ("percentage", "x", (False, "Invalid percentage")),
    ("percentage", "101", (False, "Percentage must be 0-100%")),
    ("percentage", "0", (True, None)),
    ("notes", "anything", (True, None)),
])
def test_quick_validate(field, value, expected):
    assert quick_validate(field, value) == expected


# ═══════════════════════════════════════════════════════════════════════════
# suggest_split_methods
# ═══════════════════════════════════════════════════════════════════════════

def test_suggestions_without_amount_are_equal_only():
    assert suggest_split_methods({"selected_members": ["a"]}, _members()) == ["equal"]


def test_suggestions_for_income_group_with_wide_spread():
    members = [Member("a", income="1000"), Member("b", income="5000"), Member("c", income="3000")]
    suggestions = suggest_split_methods(
        {"amount": "2000", "selected_members": ["a", "b", "c"]}, members
    )
    assert suggestions == [
        "equal", "income-proportional", "income-progressive", "custom", "percentage",
    ]


def test_suggestions_for_shared_food():
    members = [Member(i) for i in "abcd"]
    suggestions = suggest_split_methods(
        {"amount": "500", "category": "Food", "selected_members": list("abcd")}, members
    )
    assert suggestions == ["equal", "shares"]
