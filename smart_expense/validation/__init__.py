"""Record validation package."""

from smart_expense.validation.validator import (
    RecordValidator,
    issues_from_pydantic,
    parse_frequency,
    parse_record,
    parse_transaction_type,
    require_positive_amount,
)

__all__ = [
    "RecordValidator",
    "issues_from_pydantic",
    "parse_frequency",
    "parse_record",
    "parse_transaction_type",
    "require_positive_amount",
]
