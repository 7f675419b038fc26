"""Aggregation engine package."""

from smart_expense.analytics.aggregation import (
    budgets_with_spent,
    daily_series,
    financial_health,
    health_score,
    health_status,
    month_over_month_trend,
    previous_month,
    savings_rate_pct,
    summarize,
    top_categories,
    trend_pct,
)
from smart_expense.analytics.calculators import compound_interest, loan_payment
from smart_expense.analytics.reports import (
    budget_overview,
    budget_status,
    days_remaining_in_month,
    goal_progress,
    month_calendar,
)

__all__ = [
    # Core aggregations
    "budgets_with_spent",
    "daily_series",
    "financial_health",
    "health_score",
    "health_status",
    "month_over_month_trend",
    "previous_month",
    "savings_rate_pct",
    "summarize",
    "top_categories",
    "trend_pct",
    # Reports
    "budget_overview",
    "budget_status",
    "days_remaining_in_month",
    "goal_progress",
    "month_calendar",
    # Calculators
    "compound_interest",
    "loan_payment",
]
