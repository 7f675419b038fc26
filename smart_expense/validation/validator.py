"""
Record Validation

DESIGN DECISION: Records arrive from the store as raw documents (dicts,
often with camelCase keys). They are converted into models here, at the
boundary, and every failure is translated into the core ValidationError
with one ValidationIssue per offending field.

The engines then work only with well-formed models, and a malformed record
is rejected individually instead of poisoning a whole batch.

IMPORTANT: Validation NEVER silently fixes issues. It reports them.
"""

from collections.abc import Mapping
from typing import Any, TypeVar, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from smart_expense.errors import ValidationError
from smart_expense.models.ledger import (
    Budget,
    Category,
    Frequency,
    RecurringRule,
    SavingsGoal,
    Transaction,
    TransactionType,
    ValidationIssue,
)


ModelT = TypeVar("ModelT", bound=BaseModel)

# pydantic error type -> our issue type
_ISSUE_TYPES = {
    "missing": "missing",
    "string_too_short": "missing",
    "greater_than": "invalid_value",
    "greater_than_equal": "invalid_value",
    "enum": "invalid_enum",
}


def issues_from_pydantic(error: PydanticValidationError) -> list[ValidationIssue]:
    """Translate pydantic errors into ValidationIssues."""
    issues = []
    for err in error.errors():
        field = ".".join(str(part) for part in err.get("loc", ())) or "record"
        issues.append(ValidationIssue(
            field=field,
            issue_type=_ISSUE_TYPES.get(err.get("type", ""), "invalid_format"),
            message=err.get("msg", "Invalid value"),
            severity="error",
        ))
    return issues


def parse_record(
    model_cls: type[ModelT],
    raw: Union[ModelT, Mapping[str, Any]],
) -> ModelT:
    """
    Convert a raw record into `model_cls`.

    Already-built models pass through unchanged.

    Raises:
        ValidationError: If the record does not fit the schema
    """
    if isinstance(raw, model_cls):
        return raw
    if not isinstance(raw, Mapping):
        raise ValidationError(
            f"Expected a {model_cls.__name__} record, got {type(raw).__name__}",
            [ValidationIssue(
                field="record",
                issue_type="invalid_format",
                message=f"Not a mapping: {type(raw).__name__}",
            )],
        )
    try:
        return model_cls.model_validate(dict(raw))
    except PydanticValidationError as e:
        issues = issues_from_pydantic(e)
        fields = ", ".join(issue.field for issue in issues)
        raise ValidationError(
            f"Invalid {model_cls.__name__} record ({fields})",
            issues,
        ) from e


def parse_frequency(value: Union[Frequency, str]) -> Frequency:
    """
    Resolve a frequency value.

    Raises:
        ValidationError: For anything other than daily/weekly/monthly/yearly
    """
    if isinstance(value, Frequency):
        return value
    try:
        return Frequency(value)
    except ValueError:
        allowed = ", ".join(f.value for f in Frequency)
        raise ValidationError(
            f"Unknown frequency: {value!r}",
            [ValidationIssue(
                field="frequency",
                issue_type="invalid_enum",
                message=f"Unknown frequency {value!r}. Allowed: {allowed}",
            )],
        ) from None


def parse_transaction_type(value: Union[TransactionType, str]) -> TransactionType:
    """
    Resolve a transaction type value.

    Raises:
        ValidationError: For anything other than income/expense
    """
    if isinstance(value, TransactionType):
        return value
    try:
        return TransactionType(value)
    except ValueError:
        raise ValidationError(
            f"Unknown transaction type: {value!r}",
            [ValidationIssue(
                field="type",
                issue_type="invalid_enum",
                message=f"Unknown type {value!r}. Allowed: income, expense",
            )],
        ) from None


def require_positive_amount(amount: float, field: str = "amount") -> float:
    """
    Check an amount is strictly positive.

    Raises:
        ValidationError: If it is zero or negative
    """
    if amount is None or amount <= 0:
        raise ValidationError(
            f"{field} must be greater than zero",
            [ValidationIssue(
                field=field,
                issue_type="invalid_value",
                message=f"{field} must be greater than zero, got {amount}",
            )],
        )
    return amount


class RecordValidator:
    """Typed entry points for every ledger record kind."""

    def transaction(self, raw: Union[Transaction, Mapping[str, Any]]) -> Transaction:
        return parse_record(Transaction, raw)

    def budget(self, raw: Union[Budget, Mapping[str, Any]]) -> Budget:
        return parse_record(Budget, raw)

    def category(self, raw: Union[Category, Mapping[str, Any]]) -> Category:
        return parse_record(Category, raw)

    def recurring_rule(
        self,
        raw: Union[RecurringRule, Mapping[str, Any]],
    ) -> RecurringRule:
        return parse_record(RecurringRule, raw)

    def savings_goal(self, raw: Union[SavingsGoal, Mapping[str, Any]]) -> SavingsGoal:
        return parse_record(SavingsGoal, raw)

    def get_user_friendly_summary(self, error: ValidationError) -> str:
        """
        Generate a readable summary of a validation failure.

        This is what we show to users.
        """
        if not error.issues:
            return f"❌ {error.message}"

        lines = ["❌ This record could not be saved:"]
        for issue in error.issues:
            lines.append(f"   • {issue.field}: {issue.message}")
        return "\n".join(lines)
