"""
Error Taxonomy for the Ledger Core

DESIGN DECISION: Two kinds of failure matter to callers:
1. ValidationError - a record is structurally wrong (missing field,
   non-positive amount, unknown enum value)
2. NotFoundError - a record referenced by id does not exist

"No data" is never an error. Empty snapshots produce zero-valued results.
"""

from typing import Optional

from smart_expense.models.ledger import ValidationIssue


class LedgerError(Exception):
    """Base exception for the ledger core."""
    pass


class ValidationError(LedgerError):
    """
    A record failed validation.

    Carries the individual issues so callers can show each one.
    """

    def __init__(
        self,
        message: str,
        issues: Optional[list[ValidationIssue]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.issues = issues or []

    @property
    def fields(self) -> list[str]:
        """Names of the fields that failed."""
        return [issue.field for issue in self.issues]


class NotFoundError(LedgerError):
    """Entity referenced by id does not exist for this user."""

    def __init__(self, entity_type: str, entity_id: str):
        super().__init__(f"{entity_type} not found: {entity_id}")
        self.entity_type = entity_type
        self.entity_id = entity_id
