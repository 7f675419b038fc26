"""
Derived Reports

Budget overview, month calendar and savings-goal progress. Like the core
aggregations these are pure functions of a snapshot and a reference time.
"""

import calendar
import math
from collections.abc import Iterable
from datetime import date, datetime

from smart_expense.analytics.aggregation import budgets_with_spent
from smart_expense.errors import ValidationError
from smart_expense.models.insights import (
    BudgetOverview,
    BudgetStatus,
    CalendarDay,
    GoalProgress,
)
from smart_expense.models.ledger import (
    Budget,
    SavingsGoal,
    Transaction,
    TransactionType,
    ValidationIssue,
    to_naive_utc,
)


SECONDS_PER_DAY = 24 * 60 * 60


def budget_status(budget: Budget) -> BudgetStatus:
    """Progress figures for a budget whose `spent` is already current."""
    progress = (budget.spent / budget.limit * 100) if budget.limit > 0 else 0.0
    return BudgetStatus(
        budget=budget,
        progress_pct=progress,
        remaining=max(0.0, budget.limit - budget.spent),
        over_budget=budget.spent > budget.limit,
    )


def days_remaining_in_month(reference_now: datetime) -> int:
    """Days left after the reference day in its month (0 on the last day)."""
    last_day = calendar.monthrange(reference_now.year, reference_now.month)[1]
    return last_day - reference_now.day


def budget_overview(
    budgets: Iterable[Budget],
    transactions: Iterable[Transaction],
    reference_now: datetime,
) -> BudgetOverview:
    """
    Current-month budget screen data.

    Spend is recomputed from transactions; stored `spent` values are ignored.
    `safe_daily_spend` spreads what is left over the remaining days.
    """
    reference_now = to_naive_utc(reference_now)
    current = budgets_with_spent(budgets, transactions, reference_now)

    total_budgeted = sum((b.limit for b in current), 0.0)
    total_spent = sum((b.spent for b in current), 0.0)
    total_remaining = max(0.0, total_budgeted - total_spent)
    days_left = days_remaining_in_month(reference_now)

    return BudgetOverview(
        budgets=[budget_status(b) for b in current],
        total_budgeted=total_budgeted,
        total_spent=total_spent,
        total_remaining=total_remaining,
        progress_pct=(total_spent / total_budgeted * 100) if total_budgeted > 0 else 0.0,
        days_remaining_in_month=days_left,
        safe_daily_spend=(total_remaining / days_left) if days_left > 0 else 0.0,
    )


def month_calendar(
    transactions: Iterable[Transaction],
    year: int,
    month: int,
) -> list[CalendarDay]:
    """
    One entry per day of the given month with that day's totals.

    Raises:
        ValidationError: If `month` is not 1-12
    """
    if not 1 <= month <= 12:
        raise ValidationError(
            f"Invalid month: {month}",
            [ValidationIssue(
                field="month",
                issue_type="invalid_value",
                message=f"Month must be 1-12, got {month}",
            )],
        )

    days_in_month = calendar.monthrange(year, month)[1]
    days = {
        day: CalendarDay(date=date(year, month, day))
        for day in range(1, days_in_month + 1)
    }

    for tx in transactions:
        if tx.date.year != year or tx.date.month != month:
            continue
        cell = days[tx.date.day]
        cell.has_transactions = True
        if tx.type == TransactionType.INCOME:
            cell.income += tx.amount
        else:
            cell.expense += tx.amount

    return list(days.values())


def goal_progress(goal: SavingsGoal, reference_now: datetime) -> GoalProgress:
    """Progress toward a savings goal and days left until its deadline."""
    seconds_left = (goal.deadline - to_naive_utc(reference_now)).total_seconds()
    return GoalProgress(
        goal_id=goal.id,
        name=goal.name,
        progress_pct=goal.current_amount / goal.target_amount * 100,
        remaining=max(0.0, goal.target_amount - goal.current_amount),
        days_left=math.ceil(seconds_left / SECONDS_PER_DAY),
        is_complete=goal.is_complete,
    )
