"""
Ledger Data Models

These models define the records a user's ledger is made of:
Transactions, Budgets, Categories, RecurringRules and SavingsGoals.

They are designed to:
1. Reject structurally invalid records at the boundary
2. Accept raw document-store records (camelCase keys) directly
3. Stay plain data - no store access, no global state

DESIGN DECISION: Amounts are ordinary floats. The sign of a transaction is
carried by its `type`, never by the sign of `amount`.

DESIGN DECISION: A transaction's `category` is free text, matched exactly
(case-sensitive). Transactions never reference a Category record by id.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator


def new_id() -> str:
    """Generate a fresh record id."""
    return uuid4().hex


def to_naive_utc(value: datetime) -> datetime:
    """
    Normalize a timestamp so naive and aware values can be compared.

    Aware timestamps are converted to UTC and stripped of tzinfo.
    Naive timestamps are returned unchanged.
    """
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


# Categories are auto-created from transaction category names, so both share
# one length limit
CATEGORY_NAME_MAX_LENGTH = 100


# =============================================================================
# ENUMS
# =============================================================================

class TransactionType(str, Enum):
    """Direction of money flow."""
    INCOME = "income"
    EXPENSE = "expense"


class Frequency(str, Enum):
    """How often a recurring rule fires."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


_RECORD_CONFIG = ConfigDict(
    str_strip_whitespace=True,
    populate_by_name=True,
)


# =============================================================================
# LEDGER RECORDS
# =============================================================================

class Transaction(BaseModel):
    """
    A single income or expense entry.

    Created by manual entry, assisted entry, or rule materialization.
    Identity (`id`) never changes once created.
    """
    model_config = _RECORD_CONFIG

    id: str = Field(default_factory=new_id)
    user_id: str = Field(..., min_length=1, alias="userId")
    title: str = Field(..., min_length=1, max_length=200)
    amount: float = Field(..., gt=0, description="Always positive")
    type: TransactionType
    category: str = Field(
        ...,
        min_length=1,
        max_length=CATEGORY_NAME_MAX_LENGTH,
        description="Free-text category key (case-sensitive)"
    )
    date: datetime
    notes: Optional[str] = Field(default=None, max_length=1000)
    savings_goal_id: Optional[str] = Field(
        default=None,
        alias="savingsGoalId",
        description="Goal funded by this transaction, if any"
    )
    attachment: Optional[str] = Field(
        default=None,
        description="Receipt reference (e.g. base64 or URL)"
    )

    @field_validator("date")
    @classmethod
    def normalize_date(cls, v: datetime) -> datetime:
        return to_naive_utc(v)

    @property
    def is_income(self) -> bool:
        return self.type == TransactionType.INCOME

    @property
    def is_expense(self) -> bool:
        return self.type == TransactionType.EXPENSE


class Budget(BaseModel):
    """
    A monthly spending limit for one category.

    CRITICAL: `spent` on the stored record is only a cache. The
    authoritative figure is recomputed from transactions every time.
    """
    model_config = _RECORD_CONFIG

    id: str = Field(default_factory=new_id)
    user_id: str = Field(..., min_length=1, alias="userId")
    category: str = Field(..., min_length=1, max_length=CATEGORY_NAME_MAX_LENGTH)
    limit: float = Field(..., ge=0)
    spent: float = Field(default=0.0, ge=0)


class Category(BaseModel):
    """Display/taxonomy record for a category name."""
    model_config = _RECORD_CONFIG

    id: str = Field(default_factory=new_id)
    user_id: str = Field(..., min_length=1, alias="userId")
    name: str = Field(..., min_length=1, max_length=CATEGORY_NAME_MAX_LENGTH)
    type: TransactionType
    color: str = Field(default="#3b82f6")
    icon: Optional[str] = None


class RecurringRule(BaseModel):
    """
    An automation rule that materializes transactions on a schedule.

    `next_due_date` is optional here so that a damaged record can still be
    loaded; the scheduler skips and reports such rules.
    """
    model_config = _RECORD_CONFIG

    id: str = Field(default_factory=new_id)
    user_id: str = Field(..., min_length=1, alias="userId")
    title: str = Field(..., min_length=1, max_length=200)
    amount: float = Field(..., gt=0)
    type: TransactionType
    category: str = Field(..., min_length=1, max_length=CATEGORY_NAME_MAX_LENGTH)
    frequency: Frequency
    next_due_date: Optional[datetime] = Field(default=None, alias="nextDueDate")
    last_processed: Optional[datetime] = Field(default=None, alias="lastProcessed")

    @field_validator("next_due_date", "last_processed")
    @classmethod
    def normalize_dates(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v) if v is not None else None

    def is_due(self, now: datetime) -> bool:
        """A rule is due when its next due date is at or before `now`."""
        if self.next_due_date is None:
            return False
        return self.next_due_date <= to_naive_utc(now)


class SavingsGoal(BaseModel):
    """
    A savings target.

    Completion is derived, never stored. Goals are not deleted when they
    complete.
    """
    model_config = _RECORD_CONFIG

    id: str = Field(default_factory=new_id)
    user_id: str = Field(..., min_length=1, alias="userId")
    name: str = Field(..., min_length=1, max_length=100)
    target_amount: float = Field(..., gt=0, alias="targetAmount")
    current_amount: float = Field(default=0.0, ge=0, alias="currentAmount")
    manual_amount: float = Field(
        default=0.0,
        ge=0,
        alias="manualAmount",
        description="Part of current_amount added by 'add funds', not by transactions"
    )
    deadline: datetime
    color: str = Field(default="#10b981")

    @field_validator("deadline")
    @classmethod
    def normalize_deadline(cls, v: datetime) -> datetime:
        return to_naive_utc(v)

    @property
    def is_complete(self) -> bool:
        return self.current_amount >= self.target_amount


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found on a record."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'invalid_enum')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        default="error",
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
