"""
Data Models Package

This package contains all Pydantic models used by the ledger core.
Records read from the store and results handed to callers conform to these schemas.
"""

from smart_expense.models.ledger import (
    Budget,
    Category,
    Frequency,
    RecurringRule,
    SavingsGoal,
    Transaction,
    TransactionType,
    ValidationIssue,
    new_id,
    to_naive_utc,
)
from smart_expense.models.insights import (
    BudgetOverview,
    BudgetStatus,
    CalendarDay,
    CategoryTotal,
    CompoundInterestResult,
    DailyPoint,
    DashboardView,
    FinancialHealth,
    FundingResult,
    GoalProgress,
    HealthStatus,
    LedgerSnapshot,
    LoanQuote,
    RuleIssue,
    SchedulerResult,
    Summary,
    SyncResult,
    TransactionResult,
    TrendResult,
)
from smart_expense.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger records
    "Budget",
    "Category",
    "Frequency",
    "RecurringRule",
    "SavingsGoal",
    "Transaction",
    "TransactionType",
    "ValidationIssue",
    "new_id",
    "to_naive_utc",
    # Insights and results
    "BudgetOverview",
    "BudgetStatus",
    "CalendarDay",
    "CategoryTotal",
    "CompoundInterestResult",
    "DailyPoint",
    "DashboardView",
    "FinancialHealth",
    "FundingResult",
    "GoalProgress",
    "HealthStatus",
    "LedgerSnapshot",
    "LoanQuote",
    "RuleIssue",
    "SchedulerResult",
    "Summary",
    "SyncResult",
    "TransactionResult",
    "TrendResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
