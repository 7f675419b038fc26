"""
Aggregation Engine

Derives read-only financial insights from a transaction/budget snapshot.

DESIGN DECISION: Every function here is pure.
- No store access, no clock access, no global state
- The reference time is always passed in explicitly
- Identical snapshot + reference time => identical output

This makes them safe to re-run on every render and trivial to test.

"No data" is never an error: empty inputs produce zero-valued results.
Categories are grouped by exact (case-sensitive) string match.
"""

import math
from collections.abc import Iterable
from datetime import date, datetime, timedelta
from typing import Union

from dateutil.relativedelta import relativedelta

from smart_expense.errors import ValidationError
from smart_expense.models.insights import (
    CategoryTotal,
    DailyPoint,
    FinancialHealth,
    HealthStatus,
    Summary,
    TrendResult,
)
from smart_expense.models.ledger import (
    Budget,
    Transaction,
    TransactionType,
    ValidationIssue,
    to_naive_utc,
)
from smart_expense.validation import parse_transaction_type


# Health score bands (lower bound inclusive)
HEALTH_BASE_SCORE = 50
HEALTH_BANDS = (
    (80, HealthStatus.EXCELLENT),
    (60, HealthStatus.GOOD),
    (40, HealthStatus.FAIR),
    (0, HealthStatus.CRITICAL),
)
CELEBRATION_THRESHOLD = 80


# =============================================================================
# HELPERS
# =============================================================================

def month_of(when: Union[date, datetime]) -> tuple[int, int]:
    """(year, month) of a timestamp."""
    return when.year, when.month


def previous_month(reference_now: Union[date, datetime]) -> tuple[int, int]:
    """
    (year, month) of the calendar month before the reference month.

    Computed from the first day of the reference month, so a reference
    date of March 31 yields February rather than skipping it.
    """
    first = date(reference_now.year, reference_now.month, 1)
    prev = first - relativedelta(months=1)
    return prev.year, prev.month


def in_month(tx: Transaction, year: int, month: int) -> bool:
    return tx.date.year == year and tx.date.month == month


# =============================================================================
# SUMMARY
# =============================================================================

def summarize(transactions: Iterable[Transaction]) -> Summary:
    """Sum income and expense; balance = income - expense."""
    income = 0.0
    expense = 0.0
    for tx in transactions:
        if tx.type == TransactionType.INCOME:
            income += tx.amount
        elif tx.type == TransactionType.EXPENSE:
            expense += tx.amount
    return Summary(income=income, expense=expense, balance=income - expense)


# =============================================================================
# BUDGETS
# =============================================================================

def budgets_with_spent(
    budgets: Iterable[Budget],
    transactions: Iterable[Transaction],
    reference_now: datetime,
) -> list[Budget]:
    """
    Recompute each budget's `spent` for the reference calendar month.

    `spent` is the sum of expense amounts whose category exactly equals the
    budget's category and whose date falls in the month/year of
    `reference_now`. The stored `spent` value is ignored. Duplicate budgets
    for one category each get the same figure.

    Returns copies; the input budgets are not modified.
    """
    year, month = month_of(to_naive_utc(reference_now))

    spent_by_category: dict[str, float] = {}
    for tx in transactions:
        if tx.type == TransactionType.EXPENSE and in_month(tx, year, month):
            spent_by_category[tx.category] = (
                spent_by_category.get(tx.category, 0.0) + tx.amount
            )

    return [
        budget.model_copy(update={"spent": spent_by_category.get(budget.category, 0.0)})
        for budget in budgets
    ]


# =============================================================================
# TRENDS
# =============================================================================

def trend_pct(curr: float, prev: float) -> float:
    """
    Percentage change from `prev` to `curr`.

    100 when a previously-zero figure becomes nonzero, 0 when both are zero.
    """
    if prev == 0:
        return 100.0 if curr > 0 else 0.0
    return (curr - prev) / prev * 100


def month_over_month_trend(
    transactions: Iterable[Transaction],
    reference_now: datetime,
) -> TrendResult:
    """Compare the reference calendar month against the month before it."""
    reference_now = to_naive_utc(reference_now)
    cur_year, cur_month = month_of(reference_now)
    prev_year, prev_month = previous_month(reference_now)

    cur_income = cur_expense = prev_income = prev_expense = 0.0
    for tx in transactions:
        if in_month(tx, cur_year, cur_month):
            if tx.type == TransactionType.INCOME:
                cur_income += tx.amount
            else:
                cur_expense += tx.amount
        elif in_month(tx, prev_year, prev_month):
            if tx.type == TransactionType.INCOME:
                prev_income += tx.amount
            else:
                prev_expense += tx.amount

    return TrendResult(
        income_trend_pct=trend_pct(cur_income, prev_income),
        expense_trend_pct=trend_pct(cur_expense, prev_expense),
        current_income=cur_income,
        previous_income=prev_income,
        current_expense=cur_expense,
        previous_expense=prev_expense,
    )


# =============================================================================
# TIME SERIES
# =============================================================================

def daily_series(
    transactions: Iterable[Transaction],
    reference_now: datetime,
    window_days: int = 30,
) -> list[DailyPoint]:
    """
    Per-day income/expense for the trailing window ending on the reference day.

    Always returns exactly `window_days` entries, oldest first, zero-filled.

    Raises:
        ValidationError: If `window_days` is less than 1
    """
    if window_days < 1:
        raise ValidationError(
            "window_days must be at least 1",
            [ValidationIssue(
                field="window_days",
                issue_type="invalid_value",
                message=f"window_days must be at least 1, got {window_days}",
            )],
        )

    end = to_naive_utc(reference_now).date()
    start = end - timedelta(days=window_days - 1)

    points = {
        start + timedelta(days=offset): DailyPoint(date=start + timedelta(days=offset))
        for offset in range(window_days)
    }

    for tx in transactions:
        point = points.get(tx.date.date())
        if point is None:
            continue
        if tx.type == TransactionType.INCOME:
            point.income += tx.amount
        else:
            point.expense += tx.amount

    return list(points.values())


# =============================================================================
# BREAKDOWNS
# =============================================================================

def top_categories(
    transactions: Iterable[Transaction],
    tx_type: Union[TransactionType, str],
    n: int = 5,
) -> list[CategoryTotal]:
    """
    Largest categories of one transaction type.

    Sorted by total descending; ties keep first-encountered order.

    Raises:
        ValidationError: If `tx_type` is not income/expense
    """
    tx_type = parse_transaction_type(tx_type)

    totals: dict[str, float] = {}
    for tx in transactions:
        if tx.type == tx_type:
            totals[tx.category] = totals.get(tx.category, 0.0) + tx.amount

    ranked = sorted(totals.items(), key=lambda item: item[1], reverse=True)
    return [
        CategoryTotal(category=category, total=total)
        for category, total in ranked[:max(n, 0)]
    ]


# =============================================================================
# FINANCIAL HEALTH
# =============================================================================

def savings_rate_pct(summary: Summary) -> float:
    """Share of income not spent, in percent, floored at 0."""
    if summary.income == 0:
        return 0.0
    return max(0.0, (summary.income - summary.expense) / summary.income * 100)


def health_score(summary: Summary) -> int:
    """
    Bounded [0, 100] heuristic of savings behaviour.

    - No income and no expense: 50 (neutral, no data)
    - No income but some expense: 0
    - Otherwise start at 50:
        +20 if savings rate > 20%
        +10 more if savings rate > 40%
        +20 if expense < income
    """
    if summary.income == 0 and summary.expense == 0:
        return HEALTH_BASE_SCORE
    if summary.income == 0:
        return 0

    savings_rate = (summary.income - summary.expense) / summary.income * 100
    score = HEALTH_BASE_SCORE
    if savings_rate > 20:
        score += 20
    if savings_rate > 40:
        score += 10
    if summary.expense < summary.income:
        score += 20
    return int(math.floor(min(100, max(0, score))))


def health_status(score: int) -> HealthStatus:
    """Label for a health score."""
    for lower_bound, status in HEALTH_BANDS:
        if score >= lower_bound:
            return status
    return HealthStatus.CRITICAL


def financial_health(summary: Summary) -> FinancialHealth:
    """Score, savings rate and status label together."""
    score = health_score(summary)
    return FinancialHealth(
        score=score,
        savings_rate=savings_rate_pct(summary),
        status=health_status(score),
        celebrate=score > CELEBRATION_THRESHOLD,
    )
