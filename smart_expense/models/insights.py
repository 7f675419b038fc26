"""
Insight and Result Models

Everything the engines hand back to callers. These are read-only view
models: they are derived from a ledger snapshot and never persisted.
"""

import datetime as dt
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from smart_expense.models.ledger import (
    Budget,
    Category,
    RecurringRule,
    SavingsGoal,
    Transaction,
    ValidationIssue,
)


class HealthStatus(str, Enum):
    """Label attached to a health score band."""
    CRITICAL = "Critical"
    FAIR = "Fair"
    GOOD = "Good"
    EXCELLENT = "Excellent"


# =============================================================================
# AGGREGATION RESULTS
# =============================================================================

class Summary(BaseModel):
    """Global income/expense/balance totals."""

    income: float = 0.0
    expense: float = 0.0
    balance: float = 0.0


class TrendResult(BaseModel):
    """Month-over-month change, in percent."""

    income_trend_pct: float = 0.0
    expense_trend_pct: float = 0.0

    # Partition totals behind the percentages
    current_income: float = 0.0
    previous_income: float = 0.0
    current_expense: float = 0.0
    previous_expense: float = 0.0


class DailyPoint(BaseModel):
    """Income and expense totals for one calendar day."""

    date: dt.date
    income: float = 0.0
    expense: float = 0.0

    @property
    def label(self) -> str:
        """Short chart label, e.g. 'Jan 5'."""
        return f"{self.date.strftime('%b')} {self.date.day}"


class CategoryTotal(BaseModel):
    """Summed amount for one category."""

    category: str
    total: float


class FinancialHealth(BaseModel):
    """
    Bounded savings-behaviour heuristic.

    Not a standardized financial metric.
    """

    score: int = Field(..., ge=0, le=100)
    savings_rate: float = Field(..., ge=0)
    status: HealthStatus
    celebrate: bool = Field(
        default=False,
        description="True when the score is high enough to celebrate"
    )


class BudgetStatus(BaseModel):
    """A budget with its recomputed spend and derived progress."""

    budget: Budget
    progress_pct: float = 0.0
    remaining: float = 0.0
    over_budget: bool = False


class BudgetOverview(BaseModel):
    """All budgets for the current month plus their totals."""

    budgets: list[BudgetStatus] = Field(default_factory=list)
    total_budgeted: float = 0.0
    total_spent: float = 0.0
    total_remaining: float = 0.0
    progress_pct: float = 0.0
    days_remaining_in_month: int = 0
    safe_daily_spend: float = 0.0


class CalendarDay(BaseModel):
    """One cell of a month calendar."""

    date: dt.date
    income: float = 0.0
    expense: float = 0.0
    has_transactions: bool = False


class GoalProgress(BaseModel):
    """Derived progress for a savings goal."""

    goal_id: str
    name: str
    progress_pct: float
    remaining: float
    days_left: int
    is_complete: bool


class LoanQuote(BaseModel):
    """Fixed-rate amortized loan figures."""

    monthly_payment: float
    total_repayment: float
    total_interest: float


class CompoundInterestResult(BaseModel):
    """Future value of a savings plan with monthly compounding."""

    future_value: float
    total_invested: float
    interest_earned: float


# =============================================================================
# SCHEDULER RESULTS
# =============================================================================

class RuleIssue(BaseModel):
    """A rule the scheduler could not process."""

    rule_id: Optional[str] = None
    reason: str
    issues: list[ValidationIssue] = Field(default_factory=list)


class SchedulerResult(BaseModel):
    """
    Output of one scheduler pass.

    The scheduler never persists anything. The caller creates the
    materialized transactions and writes back the updated rules.
    """

    materialized: list[Transaction] = Field(default_factory=list)
    updated_rules: list[RecurringRule] = Field(default_factory=list)
    skipped: list[RuleIssue] = Field(default_factory=list)
    failures: list[RuleIssue] = Field(default_factory=list)
    sources: dict[str, str] = Field(
        default_factory=dict,
        description="Materialized transaction id -> id of the rule that produced it"
    )

    @property
    def count(self) -> int:
        """Number of materialized transactions."""
        return len(self.materialized)

    def transactions_for(self, rule_id: str) -> list[Transaction]:
        """Materialized transactions of one rule, oldest first."""
        return [tx for tx in self.materialized if self.sources.get(tx.id) == rule_id]

    @property
    def needs_refresh(self) -> bool:
        """Aggregated views are stale if anything was materialized."""
        return self.count > 0


# =============================================================================
# GOAL FUNDING RESULTS
# =============================================================================

class FundingResult(BaseModel):
    """Outcome of adding money to a savings goal."""

    goal: SavingsGoal
    amount: float
    was_complete: bool

    @property
    def is_complete(self) -> bool:
        return self.goal.is_complete

    @property
    def completed_now(self) -> bool:
        """True only when this funding crossed the target."""
        return self.is_complete and not self.was_complete


# =============================================================================
# ORCHESTRATOR RESULTS
# =============================================================================

class LedgerSnapshot(BaseModel):
    """All ledger collections of one user, as loaded from the store."""

    user_id: str
    transactions: list[Transaction] = Field(default_factory=list)
    budgets: list[Budget] = Field(default_factory=list)
    categories: list[Category] = Field(default_factory=list)
    recurring_rules: list[RecurringRule] = Field(default_factory=list)
    savings_goals: list[SavingsGoal] = Field(default_factory=list)

    def counts(self) -> dict[str, int]:
        return {
            "transactions": len(self.transactions),
            "budgets": len(self.budgets),
            "categories": len(self.categories),
            "recurring_rules": len(self.recurring_rules),
            "savings_goals": len(self.savings_goals),
        }


class DashboardView(BaseModel):
    """Everything the overview screen shows, derived from one snapshot."""

    reference_now: dt.datetime
    summary: Summary
    health: FinancialHealth
    trend: TrendResult
    daily_series: list[DailyPoint] = Field(default_factory=list)
    top_income: list[CategoryTotal] = Field(default_factory=list)
    top_expense: list[CategoryTotal] = Field(default_factory=list)
    budgets: BudgetOverview = Field(default_factory=BudgetOverview)
    goals: list[GoalProgress] = Field(default_factory=list)
    recent: list[Transaction] = Field(
        default_factory=list,
        description="Most recent transactions, newest first"
    )


class SyncResult(BaseModel):
    """Result of a session sync: scheduler pass plus fresh view."""

    scheduler: SchedulerResult
    view: DashboardView

    @property
    def materialized_count(self) -> int:
        return self.scheduler.count


class TransactionResult(BaseModel):
    """Result of creating a transaction through the orchestrator."""

    transaction: Transaction
    category_created: Optional[Category] = None
    funding: Optional[FundingResult] = None
    funding_error: Optional[str] = Field(
        default=None,
        description="Set when the linked goal could not be funded"
    )
