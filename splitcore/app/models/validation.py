"""
models/validation.py — Structured outcome of validating an expense.

A ValidationResult is always returned, never raised. Blocking problems go to
`errors`; anything a caller may show but need not block on goes to `warnings`
(with a WarningCode) or `suggestions` (plain advice text).
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class ValidationIssue:
    code: str
    message: str
    field: str | None = None

    def to_dict(self) -> dict:
        payload = {"code": self.code, "message": self.message}
        if self.field is not None:
            payload["field"] = self.field
        return payload


@dataclass
class ValidationResult:
    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def error(self, code: str, message: str, field: str | None = None) -> None:
        self.errors.append(ValidationIssue(code, message, field))

    def error_from(self, exc) -> None:
        """Records an AppError (code, message, field) as a blocking issue."""
        self.errors.append(ValidationIssue(exc.code, exc.message, exc.field))

    def warn(self, code: str, message: str, field: str | None = None) -> None:
        self.warnings.append(ValidationIssue(code, message, field))

    def suggest(self, text: str) -> None:
        if text not in self.suggestions:
            self.suggestions.append(text)

    def error_codes(self) -> list[str]:
        return [issue.code for issue in self.errors]

    def warning_codes(self) -> list[str]:
        return [issue.code for issue in self.warnings]

    def to_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "errors": [issue.to_dict() for issue in self.errors],
            "warnings": [issue.to_dict() for issue in self.warnings],
            "suggestions": list(self.suggestions),
        }
