"""
services/validation_service.py — Expense validation, quick field checks and
split method suggestions.

Contract: validate_expense() NEVER raises for bad input. Every problem, from a
malformed payload to a calculator failure, becomes a ValidationIssue in the
returned ValidationResult so the caller can decide whether to block or warn.

Order of checks (each appends to the same result):
  1. Payload shape          → ExpenseSchema (marshmallow); errors converted
  2. Title quality          → suggestions / NON_DESCRIPTIVE_TITLE warning
  3. Amount bounds          → MIN/MAX errors, large/small hints
  4. Member selection       → EMPTY_MEMBER_SET, UNKNOWN_MEMBER, DUPLICATE_MEMBER,
                              ALL_MEMBERS_EXCLUDED, size and inactive warnings
  5. Payers                 → PAYER_REQUIRED, PAYER_SUM_MISMATCH, DUPLICATE_PAYER
  6. Splits                 → per-method checks on precomputed entries, or a
                              calculator run converted into issues
  7. Business rules         → warnings and suggestions only

Layer rules:
  - No I/O. Members come from the caller.
  - The calculator remains the single source of truth for split arithmetic;
    this module only re-runs it, never reimplements it.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from decimal import Decimal

from marshmallow import ValidationError, fields

from splitcore.app.errors import EmptyMemberSet, ErrorCode, SplitValidationError, WarningCode
from splitcore.app.models.money import Money, currency_places, sum_money
from splitcore.app.models.split import SplitMethod
from splitcore.app.models.validation import ValidationResult
from splitcore.app.schemas.expense_schema import ExpenseSchema
from splitcore.app.services.split_service import compute_split
from splitcore.config import BaseConfig


logger = logging.getLogger(__name__)

TOLERANCE = BaseConfig.SUM_TOLERANCE

_KNOWN_METHODS = {m.value for m in SplitMethod}

_CODE_MESSAGES = {
    ErrorCode.INVALID_AMOUNT_PRECISION: "Amount must have at most 2 decimal places.",
}


# ── Private helpers ────────────────────────────────────────────────────────

def _flatten_messages(messages, prefix: str | None = None):
    """
    Yields (field_path, message) pairs from a marshmallow messages structure.

    {"payers": {0: {"amount": ["..."]}}} → ("payers.0.amount", "...")
    "_schema" entries map to the parent path (None at the top level).
    """
    if isinstance(messages, dict):
        for key, value in messages.items():
            if key == "_schema":
                path = prefix
            else:
                path = f"{prefix}.{key}" if prefix else str(key)
            yield from _flatten_messages(value, path)
    elif isinstance(messages, (list, tuple)):
        for value in messages:
            yield from _flatten_messages(value, prefix)
    else:
        yield prefix, str(messages)


def _code_for(field_path: str | None, message: str) -> str:
    """Picks the ErrorCode for one schema message."""
    if message in vars(ErrorCode).values():
        return message
    if message.startswith("Missing data for required field"):
        return ErrorCode.MISSING_FIELD
    if field_path == "title":
        return ErrorCode.INVALID_TITLE
    if field_path == "amount":
        return ErrorCode.INVALID_AMOUNT
    if field_path and field_path.startswith("payers.") and field_path.endswith(".amount"):
        return ErrorCode.INVALID_PAYER_AMOUNT
    return ErrorCode.INVALID_FIELD


def _load_payload(expense_data, result: ValidationResult) -> dict:
    """
    Loads the raw payload through ExpenseSchema.

    Schema errors become issues. An amount rejected only for precision is
    downgraded to a PRECISION_ROUNDED warning and loaded rounded half-up.
    """
    try:
        return ExpenseSchema().load(expense_data)
    except ValidationError as err:
        data = dict(err.valid_data) if isinstance(err.valid_data, dict) else {}
        # Nested fields keep partial entries in valid_data; drop them whole.
        for key in err.messages:
            data.pop(key, None)
        for field_path, message in _flatten_messages(err.messages):
            code = _code_for(field_path, message)
            if code == ErrorCode.INVALID_AMOUNT_PRECISION and field_path == "amount":
                raw = fields.Decimal().deserialize(expense_data.get("amount"))
                if raw > BaseConfig.MAX_AMOUNT:
                    # left unrounded; _check_amount rejects it
                    data["amount"] = raw
                    continue
                data["amount"] = Money.from_display(raw).amount
                result.warn(
                    WarningCode.PRECISION_ROUNDED,
                    "Amount will be rounded to 2 decimal places for calculations.",
                    field="amount",
                )
                continue
            result.error(code, _CODE_MESSAGES.get(message, message), field=field_path)
        return data


def _decimal_places(value: Decimal) -> int:
    exponent = value.as_tuple().exponent
    return -exponent if isinstance(exponent, int) and exponent < 0 else 0


def _parse_decimal(value) -> Decimal | None:
    try:
        return fields.Decimal().deserialize(value)
    except ValidationError:
        return None


# ── Check stages ───────────────────────────────────────────────────────────

def _check_title(data: dict, result: ValidationResult) -> None:
    title = data.get("title")
    if not title:
        return
    trimmed = title.strip()
    if len(trimmed) < 5:
        result.suggest("Consider adding more detail to the expense title for better tracking.")
    if not any(ch.isalpha() for ch in trimmed):
        result.warn(WarningCode.NON_DESCRIPTIVE_TITLE,
                    "Title should contain descriptive text.", field="title")


def _check_amount(amount: Money | None, result: ValidationResult) -> None:
    if amount is None:
        return
    if amount.amount < BaseConfig.MIN_AMOUNT:
        result.error(ErrorCode.INVALID_AMOUNT,
                     f"Amount must be at least {BaseConfig.MIN_AMOUNT}.", field="amount")
    if amount.amount > BaseConfig.MAX_AMOUNT:
        result.error(ErrorCode.INVALID_AMOUNT,
                     f"Amount cannot exceed {BaseConfig.MAX_AMOUNT}.", field="amount")
    if amount.amount > BaseConfig.LARGE_EXPENSE_THRESHOLD:
        result.warn(WarningCode.LARGE_EXPENSE,
                    "This is a large expense. Please verify the amount is correct.",
                    field="amount")
    if amount.amount < BaseConfig.SMALL_EXPENSE_THRESHOLD:
        result.suggest("Consider if this small expense needs to be tracked separately "
                       "or can be combined with others.")


def _check_member_selection(data: dict, members, result: ValidationResult) -> list:
    """Returns the participating Member objects (selected, known, not excluded)."""
    selected = data.get("selected_members")
    if selected is None:
        return []
    if not selected:
        result.error_from(EmptyMemberSet())
        return []

    by_id = {m.id: m for m in members}
    seen: set[str] = set()
    for member_id in selected:
        if member_id in seen:
            result.error(ErrorCode.DUPLICATE_MEMBER,
                         f"Member {member_id!r} is selected more than once.",
                         field="selected_members")
        seen.add(member_id)
        if member_id not in by_id:
            result.error(ErrorCode.UNKNOWN_MEMBER,
                         f"Member {member_id!r} is not a member of this group.",
                         field="selected_members")

    excluded = data.get("excluded_members") or []
    for member_id in excluded:
        if member_id not in by_id:
            result.error(ErrorCode.UNKNOWN_MEMBER,
                         f"Excluded member {member_id!r} is not a member of this group.",
                         field="excluded_members")

    participant_ids = list(dict.fromkeys(
        mid for mid in selected if mid in by_id and mid not in set(excluded)
    ))
    if excluded and not participant_ids:
        result.error(ErrorCode.ALL_MEMBERS_EXCLUDED,
                     "Cannot exclude all selected members.", field="excluded_members")
        return []

    participants = [by_id[mid] for mid in participant_ids]

    if len(participants) == 1:
        result.warn(WarningCode.SINGLE_MEMBER,
                    "Only one member selected. Consider if this should be a personal "
                    "expense instead.", field="selected_members")
    if len(participants) > BaseConfig.LARGE_GROUP_SIZE:
        result.warn(WarningCode.LARGE_GROUP,
                    "Large number of members selected. This might make expense "
                    "management complex.", field="selected_members")
    for member in participants:
        if not member.is_active:
            result.warn(WarningCode.INACTIVE_MEMBER,
                        f"Member {member.id!r} is inactive.", field="selected_members")

    return participants


def _check_payers(data: dict, amount: Money | None, members, result: ValidationResult,
                  payers_rejected: bool = False) -> None:
    known = {m.id for m in members}

    paid_by = data.get("paid_by")
    if paid_by is not None and paid_by not in known:
        result.error(ErrorCode.UNKNOWN_MEMBER,
                     f"Payer {paid_by!r} is not a member of this group.", field="paid_by")

    if not data.get("multiple_payers"):
        return

    payers = data.get("payers") or []
    if not payers and payers_rejected:
        return
    if not payers:
        result.error(ErrorCode.PAYER_REQUIRED,
                     "At least one payer is required when multiple payers option is enabled.",
                     field="payers")
        return

    payer_ids = [p["member_id"] for p in payers]
    if len(payer_ids) != len(set(payer_ids)):
        result.error(ErrorCode.DUPLICATE_PAYER,
                     "Each member can only be added as a payer once.", field="payers")

    for index, payer in enumerate(payers):
        if payer["member_id"] not in known:
            result.error(ErrorCode.UNKNOWN_MEMBER,
                         f"Payer {index + 1} is not a member of this group.",
                         field=f"payers.{index}.member_id")
        if amount is not None and payer["amount"] > amount.amount:
            result.warn(WarningCode.PAYER_EXCEEDS_TOTAL,
                        f"Payer {index + 1} is paying more than the total expense amount.",
                        field=f"payers.{index}.amount")

    if amount is not None:
        paid = sum_money(Money(p["amount"]) for p in payers)
        if not paid.within(amount, TOLERANCE):
            result.error(ErrorCode.PAYER_SUM_MISMATCH,
                         f"Total paid amounts ({paid}) must equal expense amount ({amount}).",
                         field="payers")


def _check_declared_splits(method: SplitMethod, splits: list[dict], amount: Money,
                           participants, result: ValidationResult) -> None:
    """Per-method checks on user-declared split entries."""
    participant_ids = {m.id for m in participants}
    seen: set[str] = set()
    for entry in splits:
        member_id = entry["member_id"]
        if member_id in seen:
            result.error(ErrorCode.DUPLICATE_MEMBER,
                         f"Member {member_id!r} appears more than once in splits.",
                         field="splits")
        seen.add(member_id)
        if member_id not in participant_ids:
            result.error(ErrorCode.UNKNOWN_MEMBER,
                         f"Split entry for {member_id!r} is not a participating member.",
                         field="splits")

    if method is SplitMethod.EQUAL:
        declared = sum_money(Money(e["amount"] or 0) for e in splits)
        if not declared.within(amount, TOLERANCE):
            result.warn(WarningCode.ROUNDING_DIFFERENCE,
                        "Equal split calculation may have rounding differences.",
                        field="splits")

    elif method is SplitMethod.PERCENTAGE:
        total_pct = sum((e["percentage"] or Decimal(0) for e in splits), Decimal(0))
        if abs(Decimal(100) - total_pct) > TOLERANCE:
            result.error(ErrorCode.PERCENTAGE_SUM_MISMATCH,
                         f"Split percentages must add up to 100%. Current total: {total_pct}%",
                         field="splits")
        for index, entry in enumerate(splits):
            pct = entry["percentage"]
            if pct is None or pct < 0 or pct > 100:
                result.error(ErrorCode.INVALID_PERCENTAGE,
                             f"Member {index + 1} must have a valid percentage (0-100%).",
                             field=f"splits.{index}.percentage")
            elif pct == 0:
                result.warn(WarningCode.ZERO_SHARE,
                            f"Member {index + 1} is assigned 0%.",
                            field=f"splits.{index}.percentage")
        if any(e["percentage"] is not None and _decimal_places(e["percentage"]) > 1
               for e in splits):
            result.suggest("Round percentages to one decimal place.")

    elif method is SplitMethod.CUSTOM:
        values = [
            e["custom_amount"] if e["custom_amount"] is not None else (e["amount"] or Decimal(0))
            for e in splits
        ]
        declared = sum_money(Money(v) for v in values)
        if not declared.within(amount, TOLERANCE):
            result.error(ErrorCode.CUSTOM_SUM_MISMATCH,
                         f"Custom split amounts ({declared}) must equal expense total ({amount}).",
                         field="splits")
        for index, value in enumerate(values):
            if value < 0:
                result.error(ErrorCode.NEGATIVE_AMOUNT,
                             f"Member {index + 1} cannot have a negative amount.",
                             field=f"splits.{index}.custom_amount")
            elif value == 0:
                result.warn(WarningCode.ZERO_SHARE, f"Member {index + 1} is assigned 0.",
                            field=f"splits.{index}.custom_amount")
            if value > amount.amount:
                result.warn(WarningCode.AMOUNT_EXCEEDS_TOTAL,
                            f"Member {index + 1} is assigned more than the total expense amount.",
                            field=f"splits.{index}.custom_amount")

    elif method is SplitMethod.SHARES:
        for index, entry in enumerate(splits):
            shares = entry["shares"]
            if shares is None or shares <= 0:
                result.error(ErrorCode.INVALID_SHARES,
                             f"Member {index + 1} must have valid shares greater than 0.",
                             field=f"splits.{index}.shares")
            elif shares > 1000:
                result.warn(WarningCode.UNUSUAL_VALUE,
                            f"Member {index + 1} has unusually high number of shares.",
                            field=f"splits.{index}.shares")

    elif method is SplitMethod.WEIGHTED:
        for index, entry in enumerate(splits):
            weight = entry["weight"]
            if weight is None or weight <= 0:
                result.error(ErrorCode.INVALID_WEIGHTS,
                             f"Member {index + 1} must have valid weight greater than 0.",
                             field=f"splits.{index}.weight")
            elif weight > 100:
                result.warn(WarningCode.UNUSUAL_VALUE,
                            f"Member {index + 1} has unusually high weight value.",
                            field=f"splits.{index}.weight")

    elif method is SplitMethod.ADJUSTMENT:
        if not participants:
            return
        base = amount / len(participants)
        adjusted = Money.zero()
        for index, entry in enumerate(splits):
            final = base + (entry["adjustment_amount"] or Decimal(0))
            adjusted = adjusted + final
            if final.is_negative():
                result.error(ErrorCode.NEGATIVE_AMOUNT,
                             f"Member {index + 1} adjustment results in negative amount.",
                             field=f"splits.{index}.adjustment_amount")
        difference = abs(amount - adjusted)
        if difference.amount > TOLERANCE:
            result.error(ErrorCode.ADJUSTMENT_SUM_MISMATCH,
                         f"Adjusted amounts must equal expense total. "
                         f"Difference: {difference.quantize()}",
                         field="splits")


def _check_calculated_split(method: SplitMethod, data: dict, amount: Money, participants,
                            places: int, result: ValidationResult) -> None:
    """Runs the calculator and converts its outcome into issues."""
    try:
        computation = compute_split(method, amount, participants, data.get("params"),
                                    places=places, tolerance=TOLERANCE)
    except SplitValidationError as exc:
        result.error_from(exc)
        return

    for split in computation.results:
        if split.amount.is_zero():
            result.warn(WarningCode.ZERO_SHARE,
                        f"Member {split.member_id!r} is assigned 0.", field="splits")
        elif split.amount.is_negative():
            result.error(ErrorCode.NEGATIVE_AMOUNT,
                         f"Member {split.member_id!r} would be assigned a negative amount "
                         f"({split.amount}).", field="splits")


def _check_business_rules(method: SplitMethod, data: dict, amount: Money | None,
                          participants, result: ValidationResult) -> None:
    if amount is None:
        return

    if amount.amount > 50000 and len(participants) == 1:
        result.warn(WarningCode.LARGE_EXPENSE,
                    "Large expense for single person. Consider verifying this is correct.",
                    field="amount")

    if method is SplitMethod.EQUAL and len(participants) > 10:
        result.suggest("For large groups, consider using percentage or weighted splits "
                       "for more fairness.")

    if method.is_income_based:
        lacking = [m for m in participants if not m.has_income]
        if lacking and len(lacking) < len(participants):
            result.warn(WarningCode.INCOME_FALLBACK,
                        "Some members lack income data. They will use equal split as fallback.",
                        field="selected_members")

    category = (data.get("category") or "").lower()
    if category == "food" and amount.amount > 5000:
        result.suggest("High food expense. Consider if this includes multiple meals "
                       "or special occasion.")
    if category == "transportation" and len(participants) > 8:
        result.suggest("Large group for transportation. Verify all members actually "
                       "used this transport.")


# ── Public service functions ───────────────────────────────────────────────

def validate_expense(expense_data, members) -> ValidationResult:
    """
    Validates an expense payload against the group's members.

    Args:
        expense_data: raw mapping (see ExpenseSchema for the accepted keys).
        members:      the group's Member records.

    Returns:
        ValidationResult. is_valid is False when any error was recorded.
    """
    result = ValidationResult()
    members = list(members)

    if not isinstance(expense_data, Mapping):
        result.error(ErrorCode.INVALID_FIELD, "Expense data must be a mapping.")
        return result

    data = _load_payload(expense_data, result)
    amount = Money(data["amount"]) if data.get("amount") is not None else None

    tag = data.get("split_method")
    method = SplitMethod.parse(tag) if tag else SplitMethod.EQUAL
    if tag and tag.strip().lower() not in _KNOWN_METHODS:
        result.warn(WarningCode.UNUSUAL_VALUE,
                    f"Unknown split method {tag!r}; 'equal' will be used.",
                    field="split_method")

    places = currency_places(data.get("currency") or BaseConfig.DEFAULT_CURRENCY)

    _check_title(data, result)
    amount_errors = len(result.errors)
    _check_amount(amount, result)
    amount_in_range = amount is not None and len(result.errors) == amount_errors
    structural_errors = len(result.errors)
    participants = _check_member_selection(data, members, result)
    _check_payers(data, amount, members, result,
                  payers_rejected="payers" not in data and bool(expense_data.get("payers")))

    if amount_in_range and participants:
        splits = data.get("splits")
        if splits:
            _check_declared_splits(method, splits, amount, participants, result)
        elif len(result.errors) == structural_errors:
            _check_calculated_split(method, data, amount, participants, places, result)

    _check_business_rules(method, data, amount, participants, result)

    if not result.is_valid:
        logger.debug("Expense validation failed: %s", result.error_codes())
    return result


def quick_validate(field: str, value) -> tuple[bool, str | None]:
    """
    Single-field check for real-time feedback.

    Supports 'title', 'amount' and 'percentage'. Unknown fields pass.
    """
    if field == "title":
        trimmed = value.strip() if isinstance(value, str) else ""
        if not trimmed:
            return False, "Title is required"
        if len(trimmed) < BaseConfig.MIN_TITLE_LENGTH:
            return False, "Title too short"
        if len(trimmed) > BaseConfig.MAX_TITLE_LENGTH:
            return False, "Title too long"

    elif field == "amount":
        amount = _parse_decimal(value)
        if amount is None:
            return False, "Invalid amount"
        if amount <= 0:
            return False, "Amount must be positive"
        if amount > BaseConfig.MAX_AMOUNT:
            return False, "Amount too large"

    elif field == "percentage":
        percentage = _parse_decimal(value)
        if percentage is None:
            return False, "Invalid percentage"
        if percentage < 0 or percentage > 100:
            return False, "Percentage must be 0-100%"

    return True, None


def suggest_split_methods(expense_data, members) -> list[str]:
    """
    Orders the split methods that suit this expense. 'equal' is always first.

    Accepts a partial payload: only amount, category and selected_members are
    read. With no amount or no selection the answer is just ['equal'].
    """
    amount = _parse_decimal(expense_data.get("amount")) if expense_data.get("amount") else None
    selected_ids = expense_data.get("selected_members") or []
    if amount is None or not selected_ids:
        return [SplitMethod.EQUAL.value]

    selected = [m for m in members if m.id in set(selected_ids)]
    with_income = [m for m in selected if m.has_income]

    suggestions = [SplitMethod.EQUAL.value]

    if with_income and len(with_income) == len(selected):
        suggestions.append(SplitMethod.INCOME_PROPORTIONAL.value)
        incomes = [m.income.amount for m in with_income]
        if len(incomes) > 1 and max(incomes) / min(incomes) > 2:
            suggestions.append(SplitMethod.INCOME_PROGRESSIVE.value)

    if amount > 1000 and len(selected) <= 5:
        suggestions.append(SplitMethod.CUSTOM.value)
        suggestions.append(SplitMethod.PERCENTAGE.value)

    if (expense_data.get("category") or "").lower() == "food" and len(selected) > 3:
        suggestions.append(SplitMethod.SHARES.value)

    return suggestions
